"""Stateless request handler that turns a form submission into Arduino code."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from config.settings import DEFAULT_MODEL
from modules.generation.code_generator import CodeGenerator, GenerationError, MissingCredentialError
from modules.generation.prompt_builder import build_prompt

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}

METHOD_NOT_ALLOWED = "Method Not Allowed. This function only accepts POST requests."
MISSING_FIELDS = "Missing selectedComponent or description in request body."
MISSING_CREDENTIAL = "Server configuration error: API key missing on the server."
UNEXPECTED_ERROR = "An unexpected server error occurred. Please try again."


@dataclass(slots=True)
class ProxyResponse:
    """Status code plus JSON body returned to the caller."""

    status_code: int
    body: Dict[str, str]
    headers: Dict[str, str] = field(default_factory=lambda: dict(JSON_HEADERS))

    @property
    def ok(self) -> bool:
        return self.status_code == 200


@dataclass(slots=True, frozen=True)
class GenerationRequest:
    """Validated proxy input."""

    component: str
    description: str
    model: str = DEFAULT_MODEL


def _error(status_code: int, message: str) -> ProxyResponse:
    return ProxyResponse(status_code=status_code, body={"error": message})


def _parse_body(body: Union[str, bytes, Dict[str, Any], None]) -> Any:
    if body is None or body == b"" or body == "":
        return {}
    if isinstance(body, dict):
        return body
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    return json.loads(body)


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_generation_request(payload: Any, default_model: str = DEFAULT_MODEL) -> Optional[GenerationRequest]:
    """Return a GenerationRequest, or None when a required field is missing."""
    if not isinstance(payload, dict):
        return None
    component = _clean(payload.get("selectedComponent"))
    description = _clean(payload.get("description"))
    if not component or not description:
        return None
    model = _clean(payload.get("model")) or default_model
    return GenerationRequest(component=component, description=description, model=model)


def handle_generate_request(
    method: str,
    body: Union[str, bytes, Dict[str, Any], None],
    generator: Optional[CodeGenerator] = None,
    default_model: str = DEFAULT_MODEL,
) -> ProxyResponse:
    """Validate the payload, call the generation API once and relay the result."""
    if (method or "").upper() != "POST":
        return _error(405, METHOD_NOT_ALLOWED)

    generator = generator or CodeGenerator()

    try:
        payload = _parse_body(body)
    except (ValueError, UnicodeDecodeError) as exc:
        logger.error("Unable to parse request body: %s", exc)
        return _error(500, UNEXPECTED_ERROR)

    request = parse_generation_request(payload, default_model=default_model)
    if request is None:
        logger.error("Missing selectedComponent or description in request body.")
        return _error(400, MISSING_FIELDS)

    try:
        api_key = generator.resolve_api_key(request.model)
    except MissingCredentialError as exc:
        logger.error("Server configuration error: %s", exc)
        return _error(500, MISSING_CREDENTIAL)
    except GenerationError as exc:
        logger.error("No backend available for model %s: %s", request.model, exc)
        return _error(500, f"AI generation failed: {exc}. Please try again with a different prompt.")

    prompt = build_prompt(request.component, request.description)
    try:
        text = generator.generate(prompt, model=request.model, api_key=api_key)
    except GenerationError as exc:
        logger.error("Generation API error: %s", exc)
        return _error(500, f"AI generation failed: {exc}. Please try again with a different prompt.")

    logger.info("Generated %d characters for component %r", len(text), request.component)
    return ProxyResponse(status_code=200, body={"generatedCode": text})
