"""ForgeController session, history and generation tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from modules.client import controller as controller_module
from modules.client.controller import SessionState
from modules.services.auth_service import AuthError, AuthUser
from modules.services.history_service import HistoryError, HistoryRecord


def _record(doc_id: str, when: datetime | None, code: str = "// code") -> HistoryRecord:
    return HistoryRecord(
        id=doc_id,
        component="LED",
        description="blink",
        code=code,
        timestamp=when,
        user_id="uid-maker@example.com",
    )


def _login(controller, email: str = "maker@example.com", password: str = "secret123") -> None:
    assert controller.submit_credentials(email, password) is True


def test_initial_state_is_auth_loading(make_controller):
    controller = make_controller(start=False)
    assert controller.state is SessionState.AUTH_LOADING
    assert controller.snapshot().is_loading


def test_no_user_falls_back_to_anonymous_session(make_controller, fake_auth):
    controller = make_controller()

    assert fake_auth.anonymous_calls == 1
    assert controller.state is SessionState.ANONYMOUS
    assert controller.user_id == "anon-1"
    assert controller.history == []
    assert controller.history_notice == controller_module.HISTORY_REQUIRES_LOGIN


def test_anonymous_failure_enters_degraded_state(make_controller, fake_auth, fake_store):
    fake_auth.anonymous_error = AuthError("auth/network-request-failed")
    controller = make_controller()

    assert controller.state is SessionState.UNAUTHENTICATED
    assert controller.user_id == "local-id"
    assert controller.session is None
    assert controller.auth_error == controller_module.ANONYMOUS_SIGN_IN_FAILED
    assert controller.history_notice == controller_module.FEATURES_REQUIRE_LOGIN
    assert fake_store.subscriptions == {}


@pytest.mark.parametrize(
    ("is_anonymous", "expected"),
    [(False, SessionState.AUTHENTICATED), (True, SessionState.ANONYMOUS)],
)
def test_user_notification_maps_to_exactly_one_state(make_controller, is_anonymous, expected):
    controller = make_controller(start=False)
    controller.on_auth_changed(AuthUser(uid="u1", is_anonymous=is_anonymous))

    assert controller.state is expected
    assert controller.user_id == "u1"


def test_login_opens_history_subscription(make_controller, fake_store):
    controller = make_controller()
    _login(controller)

    assert controller.state is SessionState.AUTHENTICATED
    assert controller.history_notice is None
    assert len(fake_store.active_subscriptions("uid-maker@example.com")) == 1


def test_login_failure_maps_error_code(make_controller):
    controller = make_controller()

    assert controller.submit_credentials("maker@example.com", "wrong") is False
    assert controller.auth_error == "Invalid email or password."
    assert controller.state is SessionState.ANONYMOUS
    assert controller.is_busy is False


def test_sign_up_mode_creates_account(make_controller, fake_auth):
    controller = make_controller()
    controller.toggle_mode()

    assert controller.submit_credentials("new@example.com", "123") is False
    assert controller.auth_error == "Password should be at least 6 characters."

    assert controller.submit_credentials("new@example.com", "longenough") is True
    assert "new@example.com" in fake_auth.accounts
    assert controller.state is SessionState.AUTHENTICATED


def test_history_is_sorted_newest_first_with_undated_last(make_controller, fake_store):
    controller = make_controller()
    _login(controller)

    older = _record("a", datetime(2024, 1, 1, tzinfo=timezone.utc))
    newer = _record("b", datetime(2024, 6, 1, tzinfo=timezone.utc))
    pending = _record("c", None)
    fake_store.push("uid-maker@example.com", [pending, older, newer])

    assert [record.id for record in controller.history] == ["b", "a", "c"]

    fake_store.push("uid-maker@example.com", [newer, pending, older])
    assert [record.id for record in controller.history] == ["b", "a", "c"]


def test_history_push_replaces_list_wholesale(make_controller, fake_store):
    controller = make_controller()
    _login(controller)

    fake_store.push("uid-maker@example.com", [_record("a", None), _record("b", None)])
    fake_store.push("uid-maker@example.com", [_record("z", None)])

    assert [record.id for record in controller.history] == ["z"]


def test_history_error_keeps_last_known_list(make_controller, fake_store):
    controller = make_controller()
    _login(controller)
    fake_store.push("uid-maker@example.com", [_record("a", None)])

    fake_store.fail("uid-maker@example.com", HistoryError("unavailable"))

    assert controller.error == controller_module.HISTORY_LOAD_FAILED
    assert [record.id for record in controller.history] == ["a"]


def test_sign_out_clears_history_and_closes_subscription(make_controller, fake_store, fake_auth):
    controller = make_controller()
    _login(controller)
    fake_store.push("uid-maker@example.com", [_record("a", None)])
    subscription = fake_store.active_subscriptions("uid-maker@example.com")[0]

    observed = []
    fake_auth.sign_out = lambda: observed.append((list(controller.history), controller.state))
    controller.sign_out()

    # cleared before the provider had a chance to notify anyone
    assert observed == [([], SessionState.AUTH_LOADING)]
    assert subscription.active is False
    assert controller.history == []

    fake_store.push("uid-maker@example.com", [_record("late", None)])
    assert controller.history == []


def test_sign_out_returns_to_anonymous_session(make_controller):
    controller = make_controller()
    _login(controller)

    controller.sign_out()

    assert controller.state is SessionState.ANONYMOUS
    assert controller.history_notice == controller_module.HISTORY_REQUIRES_LOGIN


def test_generate_while_anonymous_shows_code_and_login_advisory(make_controller, fake_store, fake_proxy):
    controller = make_controller()

    assert controller.generate("LED", "blink every second") is True

    assert controller.generated_code == fake_proxy.code
    assert controller.error == controller_module.SAVE_REQUIRES_LOGIN
    assert fake_store.writes == []
    assert controller.is_busy is False


def test_generate_while_authenticated_saves_and_history_catches_up(make_controller, fake_store, fake_proxy):
    controller = make_controller()
    _login(controller)

    controller.generate("LED", "blink every second")

    assert controller.error is None
    assert len(fake_store.writes) == 1
    assert fake_store.writes[0].user_id == "uid-maker@example.com"
    assert [record.code for record in controller.history] == [fake_proxy.code]


def test_save_failure_keeps_generated_code(make_controller, fake_store, fake_proxy):
    controller = make_controller()
    _login(controller)
    fake_store.fail_writes = True

    controller.generate("LED", "blink")

    assert controller.generated_code == fake_proxy.code
    assert controller.error == controller_module.SAVE_FAILED


def test_upstream_error_is_shown_and_code_cleared(make_controller, fake_proxy):
    controller = make_controller()
    controller.generated_code = "old code"
    fake_proxy.error = "AI generation failed: quota exceeded. Please try again with a different prompt."

    controller.generate("LED", "blink")

    assert "quota exceeded" in controller.error
    assert controller.generated_code == ""
    assert controller.is_busy is False


def test_empty_result_is_an_error(make_controller, fake_proxy):
    controller = make_controller()
    fake_proxy.code = ""

    controller.generate("LED", "blink")

    assert controller.error == controller_module.EMPTY_RESULT
    assert controller.generated_code == ""
    assert controller.is_busy is False


def test_only_one_generation_in_flight(make_controller, fake_proxy):
    controller = make_controller()
    assert controller.start_generation() is True

    assert controller.generate("LED", "blink") is False
    assert fake_proxy.calls == []

    controller.run_generation("LED", "blink")
    assert controller.is_busy is False
    assert len(fake_proxy.calls) == 1


def test_sign_out_during_generation_skips_history_write(make_controller, fake_store, fake_proxy):
    controller = make_controller()
    _login(controller)
    fake_proxy.before_return = controller.sign_out

    controller.generate("LED", "blink")

    assert controller.generated_code == fake_proxy.code
    assert controller.error == controller_module.SESSION_CHANGED
    assert fake_store.writes == []
    assert controller.state is SessionState.ANONYMOUS


def test_view_code_loads_history_entry(make_controller, fake_store):
    controller = make_controller()
    _login(controller)
    fake_store.push("uid-maker@example.com", [_record("a", None, code="// from history")])

    assert controller.view_code("a") is True
    assert controller.generated_code == "// from history"
    assert controller.view_code("missing") is False


def test_close_tears_down_subscriptions(make_controller, fake_auth, fake_store):
    controller = make_controller()
    _login(controller)

    controller.close()

    assert fake_auth.listener_count == 0
    assert fake_store.active_subscriptions("uid-maker@example.com") == []


def test_can_generate_requires_inputs(make_controller):
    controller = make_controller()
    controller.set_form("", "blink")
    assert controller.snapshot().can_generate is False
    controller.set_form("LED", "   ")
    assert controller.snapshot().can_generate is False
    controller.set_form("LED", "blink")
    assert controller.snapshot().can_generate is True


def test_state_stays_loading_while_anonymous_sign_in_is_outstanding(make_controller, fake_auth):
    controller = make_controller(start=False)
    observed = []
    sign_in = fake_auth.sign_in_anonymously

    def _recording_sign_in():
        observed.append((controller.state, list(controller.history)))
        return sign_in()

    fake_auth.sign_in_anonymously = _recording_sign_in
    controller.start()

    assert observed == [(SessionState.AUTH_LOADING, [])]
    assert controller.state is SessionState.ANONYMOUS


def test_anonymous_fallback_after_sign_out_starts_from_empty_history(make_controller, fake_auth, fake_store):
    controller = make_controller()
    _login(controller)
    fake_store.push("uid-maker@example.com", [_record("a", None)])
    observed = []
    sign_in = fake_auth.sign_in_anonymously

    def _recording_sign_in():
        observed.append((controller.state, list(controller.history)))
        return sign_in()

    fake_auth.sign_in_anonymously = _recording_sign_in
    controller.sign_out()

    assert observed == [(SessionState.AUTH_LOADING, [])]


def test_generate_in_degraded_state_shows_code_without_saving(make_controller, fake_auth, fake_store, fake_proxy):
    fake_auth.anonymous_error = AuthError("auth/network-request-failed")
    controller = make_controller()
    assert controller.state is SessionState.UNAUTHENTICATED

    assert controller.generate("LED", "blink") is True

    assert controller.generated_code == fake_proxy.code
    assert controller.error == controller_module.SAVE_REQUIRES_LOGIN
    assert fake_store.writes == []
    assert controller.is_busy is False


def test_stopped_history_listener_surfaces_load_error(make_controller, fake_store):
    controller = make_controller()
    _login(controller)
    fake_store.push("uid-maker@example.com", [_record("a", None)])
    assert controller.check_history() is True

    fake_store.stall("uid-maker@example.com")

    assert controller.check_history() is False
    assert controller.error == controller_module.HISTORY_LOAD_FAILED
    assert [record.id for record in controller.history] == ["a"]


def test_check_history_without_subscription_is_noop(make_controller):
    controller = make_controller()
    assert controller.check_history() is True
    assert controller.error is None
