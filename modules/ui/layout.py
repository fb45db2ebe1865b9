"""Gradio layout composition for the code forge."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import gradio as gr

from config.settings import AppConfig
from modules.generation.components import ComponentCatalog
from modules.ui.callbacks import ControllerFactory, ControllerRegistry, build_callbacks, make_controller_factory

REFRESH_SECONDS = 1.0
DESCRIPTION_PLACEHOLDER = (
    "e.g., 'Turn on the LED when a button is pressed', "
    "'Read temperature every 5 seconds and print to serial', "
    "'Control a servo motor with a potentiometer'."
)


def _load_catalog(config: AppConfig) -> ComponentCatalog:
    catalog = ComponentCatalog.default()
    components_path = config.metadata.get("components_path")
    if components_path:
        catalog.load_from_file(Path(components_path))
    return catalog


def build_app(config: AppConfig, controller_factory: Optional[ControllerFactory] = None) -> Any:
    """Compose and return the Gradio application."""
    catalog = _load_catalog(config)
    registry = ControllerRegistry(controller_factory or make_controller_factory(config))
    callbacks_map = build_callbacks(config, registry=registry)

    with gr.Blocks(title="Arduino Code Forge") as demo:
        session_key = gr.State(value=None, delete_callback=registry.discard)

        header = gr.Markdown("## Arduino Code Forge")
        sign_out_btn = gr.Button("Sign Out", variant="stop", size="sm", visible=False)

        with gr.Column(visible=True) as loading_panel:
            gr.Markdown("Loading application...")

        with gr.Column(visible=False) as main_panel:
            with gr.Column(visible=False) as auth_panel:
                auth_title = gr.Markdown("### Login")
                auth_error = gr.Markdown("")
                email = gr.Textbox(label="Email", placeholder="your.email@example.com")
                password = gr.Textbox(label="Password", type="password", placeholder="••••••••")
                auth_submit_btn = gr.Button("Login", variant="primary")
                auth_toggle_btn = gr.Button("Don't have an account? Sign Up", variant="secondary")

            with gr.Row():
                with gr.Column():
                    component = gr.Dropdown(
                        label="Select Arduino Component",
                        choices=catalog.names(),
                        value=None,
                    )
                    description = gr.Textbox(
                        label="Describe what you want the code to do",
                        lines=8,
                        placeholder=DESCRIPTION_PLACEHOLDER,
                    )
                    generate_btn = gr.Button("Generate Code", variant="primary", interactive=False)

                with gr.Column():
                    status = gr.Markdown("")
                    code_output = gr.Code(label="Generated Code", language="cpp", interactive=False)

                with gr.Column():
                    gr.Markdown("### Your Code History")
                    history_md = gr.Markdown("")
                    history_picker = gr.Dropdown(label="History entry", choices=[], value=None)
                    view_code_btn = gr.Button("View Code")

        gr.Markdown("© 2025 Arduino Code Forge. All rights reserved.")

        view_outputs = [
            loading_panel,
            main_panel,
            header,
            sign_out_btn,
            auth_panel,
            auth_title,
            auth_error,
            auth_submit_btn,
            auth_toggle_btn,
            generate_btn,
            status,
            code_output,
            history_md,
            history_picker,
        ]

        demo.load(fn=callbacks_map["on_load"], outputs=[session_key, *view_outputs])

        timer = gr.Timer(value=REFRESH_SECONDS, active=True)
        timer.tick(fn=callbacks_map["on_refresh"], inputs=[session_key], outputs=view_outputs, show_progress="hidden")

        for control in (component, description):
            control.change(
                fn=callbacks_map["on_form_change"],
                inputs=[session_key, component, description],
                outputs=[generate_btn],
                show_progress="hidden",
            )

        auth_submit_btn.click(
            fn=callbacks_map["on_auth_submit"],
            inputs=[session_key, email, password],
            outputs=view_outputs,
        )
        auth_toggle_btn.click(fn=callbacks_map["on_toggle_mode"], inputs=[session_key], outputs=view_outputs)
        sign_out_btn.click(fn=callbacks_map["on_sign_out"], inputs=[session_key], outputs=view_outputs)

        generate_btn.click(
            fn=callbacks_map["on_generate"],
            inputs=[session_key, component, description],
            outputs=view_outputs,
        )
        view_code_btn.click(
            fn=callbacks_map["on_view_code"],
            inputs=[session_key, history_picker],
            outputs=view_outputs,
        )

    return demo
