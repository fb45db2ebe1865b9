"""Application entry point for the Arduino Code Forge project."""

from __future__ import annotations

from typing import Optional

import gradio as gr
import uvicorn

from config.settings import load_config
from modules.proxy.server import build_server
from modules.ui.layout import build_app
from modules.utils.logging import setup_logging


def main(config_path: Optional[str] = None) -> None:
    """Load configuration, mount the UI next to the proxy and serve both."""
    config = load_config(config_path)
    logger = setup_logging(config)

    server = build_server(config)
    demo = build_app(config)
    demo.queue()
    server = gr.mount_gradio_app(server, demo, path="/")

    logger.info("Serving on http://%s:%s (proxy: %s)", config.host, config.port, config.resolved_proxy_url())
    uvicorn.run(server, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
