"""Arduino code generation via third-party LLM APIs."""

from __future__ import annotations

import importlib
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from config.settings import DEFAULT_MODEL

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """Raised when the upstream generation API fails."""


class MissingCredentialError(RuntimeError):
    """Raised when the backend's API key is absent from the environment."""

    def __init__(self, env_var: str) -> None:
        super().__init__(f"{env_var} environment variable is not set.")
        self.env_var = env_var


@dataclass(slots=True, frozen=True)
class BackendRequest:
    """Information passed to generation backends."""

    prompt: str
    model: str
    api_key: str


BackendCallable = Callable[[BackendRequest], str]


@dataclass(slots=True)
class _BackendEntry:
    backend: BackendCallable
    credential_env: str


class CodeGenerator:
    """Route a prompt to Gemini, GPT or Claude depending on the model id."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ
        self._backends: Dict[str, _BackendEntry] = {}
        self._auto_register_backends()

    def register_backend(self, name: str, backend: BackendCallable, credential_env: str) -> None:
        """Register a generation backend and the env var holding its key."""
        self._backends[name.lower()] = _BackendEntry(backend=backend, credential_env=credential_env)

    def clear_backends(self) -> None:
        """Remove all backends (mainly for tests)."""
        self._backends.clear()

    @staticmethod
    def backend_for_model(model: str) -> str:
        """Map a model identifier to a backend name."""
        lowered = (model or "").lower()
        if lowered.startswith("claude"):
            return "claude"
        if lowered.startswith("gpt") or (lowered[:2] in ("o1", "o3", "o4")):
            return "gpt"
        return "gemini"

    def resolve_api_key(self, model: str) -> str:
        """Read the credential for ``model`` from the environment.

        Looked up on every call; never cached.
        """
        entry = self._entry(model)
        environ = self._environ if self._environ is not None else os.environ
        api_key = environ.get(entry.credential_env, "")
        if not api_key:
            raise MissingCredentialError(entry.credential_env)
        return api_key

    def generate(self, prompt: str, model: str = DEFAULT_MODEL, api_key: Optional[str] = None) -> str:
        """Call the upstream API exactly once and return its text verbatim."""
        entry = self._entry(model)
        key = api_key or self.resolve_api_key(model)
        request = BackendRequest(prompt=prompt, model=model, api_key=key)
        logger.info("Requesting generation from %s backend (model=%s)", self.backend_for_model(model), model)
        try:
            text = entry.backend(request)
        except GenerationError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise GenerationError(str(exc) or exc.__class__.__name__) from exc
        return text if isinstance(text, str) else ""

    # Internal helpers ---------------------------------------------------------
    def _entry(self, model: str) -> _BackendEntry:
        name = self.backend_for_model(model)
        entry = self._backends.get(name)
        if entry is None:
            raise GenerationError(f"No generation backend registered for '{model}'.")
        return entry

    def _auto_register_backends(self) -> None:
        self.register_backend("gemini", _gemini_backend, "GEMINI_API_KEY")
        self.register_backend("gpt", _openai_backend, "OPENAI_API_KEY")
        self.register_backend("claude", _claude_backend, "ANTHROPIC_API_KEY")


def _import_sdk(module_name: str, package: str) -> Any:
    try:
        return importlib.import_module(module_name)
    except ImportError as exc:
        raise GenerationError(f"{package} is not installed: {exc}") from exc


def _gemini_backend(request: BackendRequest) -> str:
    genai = _import_sdk("google.genai", "google-genai")
    client = genai.Client(api_key=request.api_key)
    response = client.models.generate_content(model=request.model, contents=request.prompt)
    return response.text or ""


def _openai_backend(request: BackendRequest) -> str:
    openai_module = _import_sdk("openai", "openai")
    client_kwargs = {"api_key": request.api_key}
    base_url = os.getenv("OPENAI_BASE_URL")
    if base_url:
        client_kwargs["base_url"] = base_url
    client = openai_module.OpenAI(**client_kwargs)
    completion = client.chat.completions.create(
        model=request.model,
        messages=[{"role": "user", "content": request.prompt}],
    )
    if not completion.choices:
        return ""
    return completion.choices[0].message.content or ""


def _claude_backend(request: BackendRequest) -> str:
    anthropic_module = _import_sdk("anthropic", "anthropic")
    client = anthropic_module.Anthropic(api_key=request.api_key)
    message = client.messages.create(
        model=request.model,
        max_tokens=4096,
        messages=[{"role": "user", "content": request.prompt}],
    )
    parts = [getattr(block, "text", "") for block in (message.content or [])]
    return "".join(parts)
