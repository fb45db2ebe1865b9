"""Callback implementations for the Gradio interface."""

from __future__ import annotations

import threading
import uuid
from typing import Any, Callable, Dict, Iterator, Optional

import gradio as gr

from config.settings import AppConfig
from modules.client.controller import ControllerSnapshot, ForgeController, SessionState
from modules.client.view import ViewModel, build_view
from modules.proxy.client import ProxyClient
from modules.services.auth_service import AuthService
from modules.services.history_service import HistoryStore

ControllerFactory = Callable[[], ForgeController]

# Order of the components every render callback updates; layout.py wires
# its outputs in exactly this order.
VIEW_FIELDS = (
    "loading_panel",
    "main_panel",
    "header",
    "sign_out_btn",
    "auth_panel",
    "auth_title",
    "auth_error",
    "auth_submit_btn",
    "auth_toggle_btn",
    "generate_btn",
    "status",
    "code_output",
    "history_md",
    "history_picker",
)

_LOADING_SNAPSHOT = ControllerSnapshot(
    state=SessionState.AUTH_LOADING,
    user_id=None,
    history=(),
    history_notice=None,
    generated_code="",
    error=None,
    auth_error=None,
    is_busy=False,
    is_login_mode=True,
)


def make_controller_factory(config: AppConfig, history_store: Optional[HistoryStore] = None) -> ControllerFactory:
    """Return a factory producing one controller per browser session."""
    store = history_store or HistoryStore.from_config(config)

    def _factory() -> ForgeController:
        return ForgeController(
            auth=AuthService(config.firebase_api_key, timeout=config.request_timeout),
            history_store=store,
            proxy=ProxyClient(config.resolved_proxy_url(), timeout=config.request_timeout),
            model=config.default_model,
        )

    return _factory


def view_updates(view: ViewModel) -> tuple[Any, ...]:
    """Map a ViewModel onto Gradio updates in VIEW_FIELDS order."""
    return (
        gr.update(visible=view.show_loading),
        gr.update(visible=view.show_main),
        gr.update(value=view.header),
        gr.update(visible=view.show_sign_out, interactive=view.controls_enabled),
        gr.update(visible=view.show_auth_panel),
        gr.update(value=view.auth_title),
        gr.update(value=view.auth_error),
        gr.update(value=view.auth_submit_label, interactive=view.controls_enabled),
        gr.update(value=view.auth_toggle_label),
        gr.update(value=view.generate_label, interactive=view.generate_enabled),
        gr.update(value=view.status),
        gr.update(value=view.code),
        gr.update(value=view.history_markdown),
        gr.update(choices=view.history_choices),
    )


def render(controller: Optional[ForgeController]) -> tuple[Any, ...]:
    snapshot = controller.snapshot() if controller is not None else _LOADING_SNAPSHOT
    return view_updates(build_view(snapshot))


class ControllerRegistry:
    """Controllers keyed by an opaque per-browser-session token.

    Only the token lives in ``gr.State``; the controller holds locks and live
    subscriptions that must not be copied.
    """

    def __init__(self, factory: ControllerFactory) -> None:
        self._factory = factory
        self._controllers: Dict[str, ForgeController] = {}
        self._lock = threading.Lock()

    def create(self) -> str:
        controller = self._factory()
        key = uuid.uuid4().hex
        with self._lock:
            self._controllers[key] = controller
        controller.start()
        return key

    def get(self, key: Optional[str]) -> Optional[ForgeController]:
        if not key:
            return None
        with self._lock:
            return self._controllers.get(key)

    def discard(self, key: Optional[str]) -> None:
        with self._lock:
            controller = self._controllers.pop(key, None) if key else None
        if controller is not None:
            controller.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._controllers)


def build_callbacks(
    config: AppConfig,
    controller_factory: Optional[ControllerFactory] = None,
    registry: Optional[ControllerRegistry] = None,
) -> dict[str, Any]:
    """Return a dictionary of Gradio callback functions.

    Every callback receives the session token stored in ``gr.State``.
    """

    controllers = registry or ControllerRegistry(controller_factory or make_controller_factory(config))

    def on_load() -> tuple[Any, ...]:
        key = controllers.create()
        return (key, *render(controllers.get(key)))

    def on_refresh(key: Optional[str]) -> tuple[Any, ...]:
        controller = controllers.get(key)
        if controller is not None:
            controller.check_history()
        return render(controller)

    def on_form_change(key: Optional[str], component: Optional[str], description: Optional[str]) -> Any:
        controller = controllers.get(key)
        if controller is None:
            return gr.update(interactive=False)
        controller.set_form(component, description)
        view = build_view(controller.snapshot())
        return gr.update(value=view.generate_label, interactive=view.generate_enabled)

    def on_auth_submit(key: Optional[str], email: str, password: str) -> tuple[Any, ...]:
        controller = controllers.get(key)
        if controller is not None:
            controller.submit_credentials((email or "").strip(), password or "")
        return render(controller)

    def on_toggle_mode(key: Optional[str]) -> tuple[Any, ...]:
        controller = controllers.get(key)
        if controller is not None:
            controller.toggle_mode()
        return render(controller)

    def on_sign_out(key: Optional[str]) -> tuple[Any, ...]:
        controller = controllers.get(key)
        if controller is not None:
            controller.sign_out()
        return render(controller)

    def on_generate(
        key: Optional[str], component: Optional[str], description: Optional[str]
    ) -> Iterator[tuple[Any, ...]]:
        controller = controllers.get(key)
        if controller is None:
            yield render(controller)
            return
        controller.set_form(component, description)
        if not controller.snapshot().can_generate or not controller.start_generation():
            yield render(controller)
            return
        yield render(controller)
        controller.run_generation(component or "", (description or "").strip())
        yield render(controller)

    def on_view_code(key: Optional[str], record_id: Optional[str]) -> tuple[Any, ...]:
        controller = controllers.get(key)
        if controller is not None and record_id:
            controller.view_code(record_id)
        return render(controller)

    return {
        "on_load": on_load,
        "on_refresh": on_refresh,
        "on_form_change": on_form_change,
        "on_auth_submit": on_auth_submit,
        "on_toggle_mode": on_toggle_mode,
        "on_sign_out": on_sign_out,
        "on_generate": on_generate,
        "on_view_code": on_view_code,
    }
