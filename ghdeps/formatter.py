from __future__ import annotations

from collections.abc import Sequence

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .list_model import sort_by_repo
from .models import PullRequest
from .utils.text import format_labels, format_mergeable, truncate, truncate_with_ellipsis
from .utils.time import format_date

COLUMNS = ("REPO", "BOT", "CI", "MERGE", "LABELS", "DATE", "VERSION", "TITLE", "URL")
REPO_WIDTH = 20
LABELS_WIDTH = 30
TITLE_WIDTH = 60


def build_table(prs: Sequence[PullRequest], show_row_numbers: bool = False) -> Table:
    """Build the static PR table.

    Args:
        prs: PRs in display order.
        show_row_numbers: Prefix each row with its 1-based position, matching
            the numbering used by the interactive view.

    Returns:
        A `rich.table.Table` ready to print.
    """
    table = Table(box=box.SIMPLE_HEAD, show_edge=False, pad_edge=False)
    if show_row_numbers:
        table.add_column("#", justify="right", no_wrap=True)
    for name in COLUMNS:
        table.add_column(name, no_wrap=name != "TITLE", overflow="fold" if name == "URL" else "ellipsis")
    for index, pr in enumerate(prs, start=1):
        row = [
            truncate(pr.repo_name, REPO_WIDTH),
            pr.bot_type.display_name,
            pr.ci_status.value,
            format_mergeable(pr.mergeable_state),
            format_labels(pr.labels, LABELS_WIDTH),
            format_date(pr.created_at),
            pr.version,
            truncate_with_ellipsis(pr.title, TITLE_WIDTH),
            pr.url,
        ]
        if show_row_numbers:
            row.insert(0, str(index))
        # Titles and labels may contain brackets; keep them out of markup parsing
        table.add_row(*(Text(cell) for cell in row))
    return table


def summary_line(count: int, limit: int, skip_checks: bool) -> str:
    text = f"Total: {count} dependency update PRs"
    if limit > 0 and count >= limit:
        text += f" (limited to {limit} PRs)"
    if skip_checks:
        text += " [check runs skipped]"
    return text


def render_table(
    prs: Sequence[PullRequest],
    console: Console,
    *,
    limit: int = 0,
    skip_checks: bool = False,
    show_row_numbers: bool = False,
) -> list[PullRequest]:
    """Print the PR table and its summary line.

    Returns:
        The PRs sorted by repository short name, the order the table was
        printed in.
    """
    ordered = sort_by_repo(prs)
    if not ordered:
        console.print("No dependency update PRs found.")
        return ordered
    console.print(build_table(ordered, show_row_numbers=show_row_numbers))
    console.print()
    console.print(summary_line(len(ordered), limit, skip_checks), markup=False, highlight=False)
    return ordered
