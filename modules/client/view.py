"""Turn a controller snapshot into plain display values."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from modules.client.controller import ControllerSnapshot, SessionState
from modules.services.history_service import HistoryRecord

CODE_PLACEHOLDER = "// Your generated Arduino code will appear here."
EMPTY_HISTORY = "No code generated yet. Your history will appear here after you generate some code!"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"


@dataclass(slots=True)
class ViewModel:
    """Everything the layout needs to draw one frame."""

    show_loading: bool
    show_main: bool
    show_auth_panel: bool
    show_sign_out: bool
    header: str
    auth_title: str
    auth_submit_label: str
    auth_toggle_label: str
    auth_error: str
    status: str
    code: str
    generate_label: str
    generate_enabled: bool
    controls_enabled: bool
    history_markdown: str
    history_choices: List[Tuple[str, str]]


def _format_timestamp(record: HistoryRecord) -> str:
    if record.timestamp is None:
        return ""
    return record.timestamp.astimezone().strftime(TIMESTAMP_FORMAT)


def history_label(record: HistoryRecord) -> str:
    stamp = _format_timestamp(record)
    return f"{record.component} ({stamp})" if stamp else record.component


def render_history(records: Tuple[HistoryRecord, ...], notice: Optional[str]) -> str:
    if notice:
        return f"*{notice}*"
    if not records:
        return EMPTY_HISTORY
    blocks = []
    for record in records:
        stamp = _format_timestamp(record)
        title = f"**{record.component}**" + (f" · {stamp}" if stamp else "")
        blocks.append(f"{title}\n\n{record.description}")
    return "\n\n---\n\n".join(blocks)


def build_view(snapshot: ControllerSnapshot) -> ViewModel:
    loading = snapshot.state is SessionState.AUTH_LOADING
    authenticated = snapshot.state is SessionState.AUTHENTICATED
    has_session = snapshot.state in (SessionState.ANONYMOUS, SessionState.AUTHENTICATED)

    header = "## Arduino Code Forge"
    if snapshot.user_id and not loading:
        header += f"\n\nUser ID: `{snapshot.user_id}`"

    if snapshot.is_busy:
        status = "Generating..."
    elif snapshot.error:
        status = f"**Error:** {snapshot.error}"
    else:
        status = ""

    return ViewModel(
        show_loading=loading,
        show_main=not loading,
        show_auth_panel=not loading and not authenticated,
        show_sign_out=has_session,
        header=header,
        auth_title="### Login" if snapshot.is_login_mode else "### Sign Up",
        auth_submit_label="Login" if snapshot.is_login_mode else "Sign Up",
        auth_toggle_label=(
            "Don't have an account? Sign Up"
            if snapshot.is_login_mode
            else "Already have an account? Login"
        ),
        auth_error=snapshot.auth_error or "",
        status=status,
        code=snapshot.generated_code or CODE_PLACEHOLDER,
        generate_label="Generating..." if snapshot.is_busy else "Generate Code",
        generate_enabled=snapshot.can_generate,
        controls_enabled=not snapshot.is_busy,
        history_markdown=render_history(snapshot.history, snapshot.history_notice),
        history_choices=[(history_label(record), record.id) for record in snapshot.history],
    )
