"""Client used by the UI to call the proxy function over HTTP."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from config.settings import DEFAULT_MODEL

logger = logging.getLogger(__name__)


class ProxyClientError(RuntimeError):
    """Transport failure or non-2xx answer from the proxy."""


class ProxyClient:
    """POST form values to the proxy and return the generated code."""

    def __init__(
        self,
        url: str,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def generate(self, component: str, description: str, model: str = DEFAULT_MODEL) -> str:
        """Return the ``generatedCode`` field, which may be empty."""
        payload = {"selectedComponent": component, "description": description, "model": model}
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ProxyClientError(str(exc)) from exc

        data = self._json(response)
        if not response.ok:
            message = data.get("error") or f"Proxy function error: {response.reason}"
            raise ProxyClientError(message)
        return str(data.get("generatedCode") or "")

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            logger.warning("Proxy returned a non-JSON body (status=%s)", response.status_code)
            return {}
        return data if isinstance(data, dict) else {}
