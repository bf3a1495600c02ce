"""Frame rendering for the interactive view.

`render_frame` is a pure projection of controller state onto styled text. It
reads the state and never writes to it, so it can be called after every event.
"""

from __future__ import annotations

from rich.text import Text

from ..config import Viewport
from ..models import BotType, CheckStatus, MergeableState, PullRequest
from ..state import Action, Confirm, ControllerState, Search, Status, StatusKind
from ..utils.text import format_labels, format_mergeable, truncate
from ..utils.time import format_age
from .theme import DEFAULT_THEME, Theme

HEADER_TITLE = " gh-deps Interactive Mode "
HELP_LINE = "  Use ↑/↓ or j/k to navigate, / to search, o to open in browser, r to refresh, Enter to merge, q to quit"
COLUMN_HEADER = f"{'#':<4} {'REPO':<20} {'BOT':<12} {'CI':<4} {'MERGE':<6} {'LABELS':<15} {'VERSION':<12} TITLE"

# Rows taken by header, help, column header, separator and footer
RESERVED_ROWS = 10
MIN_VISIBLE_ROWS = 5
# Width of the fixed columns plus separators and margins
FIXED_COLUMNS_WIDTH = 90
MIN_TITLE_WIDTH = 30

MODAL_INNER_WIDTH = 63
MODAL_FIELD_WIDTH = 49

STATUS_PREFIXES = {
    StatusKind.ERROR: "✗ ",
    StatusKind.SUCCESS: "✓ ",
}


def visible_window(cursor: int, total: int, height: int) -> tuple[int, int]:
    """Return the `[start, end)` slice of rows to draw, keeping `cursor` near the middle.

    Args:
        cursor: Selected index into the visible list.
        total: Number of visible PRs.
        height: Terminal height in rows.

    Returns:
        Start and end indices, both within `[0, total]`.
    """
    max_rows = max(MIN_VISIBLE_ROWS, height - RESERVED_ROWS)
    start = max(0, cursor - max_rows // 2)
    end = start + max_rows
    if end > total:
        end = total
        start = max(0, end - max_rows)
    return start, end


def format_row(index: int, pr: PullRequest, width: int) -> str:
    title_width = max(MIN_TITLE_WIDTH, width - FIXED_COLUMNS_WIDTH)
    return (
        f"{index:<4} {truncate(pr.repo_name, 20):<20} {truncate(pr.bot_type.display_name, 12):<12} "
        f"{pr.ci_status.value:<4} {format_mergeable(pr.mergeable_state):<6} {format_labels(pr.labels, 15):<15} "
        f"{truncate(pr.version, 12):<12} {truncate(pr.title, title_width)}"
    )


def row_marker(state: ControllerState, pr: PullRequest) -> str:
    """Short tag for a row with background work attached, or an empty string."""
    action = state.pending_for(pr.key)
    if action is Action.MERGE:
        return "  [merging]"
    if action is Action.REBASE:
        return "  [rebasing]"
    schedule = state.polls.get(pr.key)
    if schedule is not None:
        return f"  [polling {schedule.attempt}/{state.polls.settings.max_attempts}]"
    return ""


def render_frame(
    state: ControllerState,
    viewport: Viewport,
    now: float,
    theme: Theme = DEFAULT_THEME,
) -> Text:
    """Draw the whole screen for `state`.

    Args:
        state: Controller state to project.
        viewport: Terminal size.
        now: Wall-clock time used for the "refreshed ... ago" footer.
        theme: Styles to draw with.

    Returns:
        The frame as styled text, one terminal row per line.
    """
    model = state.model
    out = Text()

    out.append(HEADER_TITLE, style=theme.header)
    out.append("\n")
    out.append(HELP_LINE, style=theme.dim)
    out.append("\n\n")

    if isinstance(state.mode, Search):
        out.append(f"Search: {model.query}█\n\n")
    elif model.query:
        out.append(f"Filter: {model.query} (press / to edit, Esc to clear)", style=theme.dim)
        out.append("\n\n")

    if state.status is not None:
        _append_status(out, state.status, state.refreshing, theme)

    out.append(COLUMN_HEADER, style=theme.dim)
    out.append("\n")
    out.append("─" * viewport.width + "\n")

    start, end = visible_window(model.cursor, len(model.visible), viewport.height)
    for index in range(start, end):
        pr = model.visible[index]
        line = format_row(index + 1, pr, viewport.width) + row_marker(state, pr)
        if index == model.cursor:
            out.append("❯ " + line, style=theme.selected)
        else:
            out.append("  " + line, style=theme.normal)
        out.append("\n")

    out.append("\n")
    out.append(_footer(state, now), style=theme.dim)
    out.append("\n")

    if isinstance(state.mode, Confirm):
        out.append("\n")
        out.append_text(render_modal(state.mode, theme))

    return out


def _append_status(out: Text, status: Status, refreshing: bool, theme: Theme) -> None:
    if status.kind is StatusKind.ERROR:
        out.append(STATUS_PREFIXES[status.kind] + status.text, style=theme.error)
    elif status.kind is StatusKind.SUCCESS:
        out.append(STATUS_PREFIXES[status.kind] + status.text, style=theme.success)
    elif refreshing:
        out.append("⟳ " + status.text, style=theme.dim)
    else:
        out.append(status.text)
    out.append("\n\n")


def _footer(state: ControllerState, now: float) -> str:
    model = state.model
    if not model.visible:
        text = "  No PRs match your filter"
    else:
        text = f"  {model.cursor + 1}/{len(model.visible)} PRs"
    if state.last_refreshed_at is not None:
        text += f" • refreshed {format_age(now - state.last_refreshed_at)}"
    if len(state.polls):
        text += f" • polling {len(state.polls)}"
    return text


def _modal_line(text: str = "") -> str:
    return f"║ {truncate(text, MODAL_INNER_WIDTH - 2):<{MODAL_INNER_WIDTH - 2}} ║\n"


def _modal_field(label: str, value: str) -> str:
    return _modal_line(f"{label:<12}{truncate(value, MODAL_FIELD_WIDTH)}")


def rebase_explanation(bot_type: BotType) -> str:
    if bot_type.uses_checkbox_rebase:
        return "This will check the rebase checkbox in the PR body."
    if bot_type.rebase_command:
        return f"This will post: {bot_type.rebase_command}"
    return f"{bot_type.display_name} does not support rebase."


def merge_warning(pr: PullRequest) -> tuple[str, bool] | None:
    """Warning shown before merging `pr`, and whether it is severe."""
    if pr.mergeable_state is MergeableState.CONFLICTING:
        return "⚠ WARNING: This PR has conflicts!", True
    if pr.ci_status is CheckStatus.FAILURE:
        return "⚠ WARNING: CI checks are failing!", True
    if pr.ci_status is CheckStatus.PENDING:
        return "⚠ WARNING: CI checks are pending", False
    return None


def render_modal(mode: Confirm, theme: Theme = DEFAULT_THEME) -> Text:
    """Draw the confirmation box for the action awaiting a yes/no answer."""
    pr = mode.target
    rebase = mode.action is Action.REBASE
    border = "═" * MODAL_INNER_WIDTH
    title = "TRIGGER REBASE" if rebase else "CONFIRM MERGE"

    modal = Text(style=theme.selected)
    modal.append(f"╔{border}╗\n")
    modal.append(f"║{' ' * 15}{title:<{MODAL_INNER_WIDTH - 15}}║\n")
    modal.append(f"╠{border}╣\n")
    modal.append(_modal_field("Repository:", pr.repository))
    modal.append(_modal_field("PR Number:", f"#{pr.number}"))
    modal.append(_modal_field("Title:", pr.title))
    modal.append(_modal_field("URL:", pr.url))
    modal.append(_modal_field("Bot:", pr.bot_type.display_name))
    modal.append(_modal_field("Version:", pr.version))
    modal.append(_modal_field("CI Status:", pr.ci_status.value))
    modal.append(_modal_field("Mergeable:", format_mergeable(pr.mergeable_state)))
    modal.append(f"╠{border}╣\n")
    if rebase:
        modal.append(_modal_line(rebase_explanation(pr.bot_type)))
    else:
        warning = merge_warning(pr)
        if warning is not None:
            text, severe = warning
            modal.append(_modal_line(text), style=theme.error if severe else theme.selected)
    modal.append(_modal_line())
    if rebase:
        modal.append(_modal_line("Trigger rebase? (y/n or Esc to cancel)"))
    else:
        modal.append(_modal_line("Merge this PR? (y/n or Esc to cancel)"))
    modal.append(f"╚{border}╝\n")
    return modal
