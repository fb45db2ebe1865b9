"""Configuration helpers for the Arduino Code Forge project."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

DEFAULT_MODEL = "gemini-2.0-flash"
PROXY_ROUTE = "/api/generate-arduino-code"


@dataclass(slots=True)
class AppConfig:
    """Centralized application configuration."""

    app_id: str = "default-app-id"
    default_model: str = DEFAULT_MODEL
    host: str = "127.0.0.1"
    port: int = 7860
    proxy_url: Optional[str] = None
    firebase_api_key: Optional[str] = None
    firebase_project_id: Optional[str] = None
    firebase_service_account: Optional[Path] = None
    request_timeout: float = 60.0
    log_dir: Path = Path("logs")
    log_level: str = "INFO"
    metadata: dict[str, Any] = field(default_factory=dict)

    def resolved_proxy_url(self) -> str:
        """Return the proxy endpoint the client should call."""
        if self.proxy_url:
            return self.proxy_url
        return f"http://{self.host}:{self.port}{PROXY_ROUTE}"


def _load_env_file(path: Path) -> None:
    """Populate environment variables from a simple KEY=VALUE .env file."""
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ[key.strip()] = value.strip().strip('"').strip("'")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Return an AppConfig instance with environment-aware settings.

    Generation credentials are intentionally left in the environment; the
    proxy reads them per request.
    """
    env_path = Path(config_path) if config_path else Path(".env")
    _load_env_file(env_path)

    port_raw = os.getenv("PORT", "7860")
    try:
        port = int(port_raw)
    except ValueError:
        port = 7860

    service_account = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")
    metadata: dict[str, Any] = {}
    components_path = os.getenv("COMPONENTS_PATH")
    if components_path:
        metadata["components_path"] = components_path

    return AppConfig(
        app_id=os.getenv("APP_ID", "default-app-id"),
        default_model=os.getenv("GENERATION_MODEL", DEFAULT_MODEL),
        host=os.getenv("HOST", "127.0.0.1"),
        port=port,
        proxy_url=os.getenv("PROXY_URL") or None,
        firebase_api_key=os.getenv("FIREBASE_API_KEY") or None,
        firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
        firebase_service_account=Path(service_account) if service_account else None,
        request_timeout=_env_float("REQUEST_TIMEOUT", 60.0),
        log_dir=Path(os.getenv("LOG_DIR", "logs")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        metadata=metadata,
    )
