"""One-off script for debugging the proxy against the real generation API."""

import json

from config.settings import load_config
from modules.generation.code_generator import CodeGenerator
from modules.proxy.handler import handle_generate_request
from modules.utils.logging import setup_logging


def main() -> None:
    # 1. Real config; GEMINI_API_KEY is read from .env / the environment
    config = load_config()
    setup_logging(config)

    # 2. Same payload the UI sends
    payload = {
        "selectedComponent": "DHT22 Temperature & Humidity Sensor",
        "description": "Read temperature every 5 seconds and print to serial",
        "model": config.default_model,
    }

    # 3. Call the handler directly, bypassing HTTP
    response = handle_generate_request("POST", json.dumps(payload), generator=CodeGenerator())

    print("Status:", response.status_code)
    if response.ok:
        print(response.body["generatedCode"])
    else:
        print("Error:", response.body.get("error"))


if __name__ == "__main__":
    main()
