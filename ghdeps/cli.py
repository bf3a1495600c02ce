from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import sys
from collections.abc import Iterator, Sequence

import httpx
from rich.console import Console
from textual.logging import TextualHandler

from . import __version__
from .config import DEFAULT_LIMIT, AppConfig, RunConfig, load_config, normalize_exclusions, resolve_token
from .formatter import render_table
from .github import GitHubAPIError, GitHubClient
from .models import PullRequest
from .tui import GhDepsApp

logger = logging.getLogger(__name__)

EXIT_ERROR = 1
EXIT_INTERRUPTED = 130

NOISY_LOGGERS = ("httpx", "httpcore")


class UsageError(ValueError):
    """Invalid combination of command-line options."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gh-deps",
        description="List dependency update PRs opened by Renovate, Dependabot and GitHub Actions, "
        "and optionally merge or rebase them interactively.",
    )
    parser.add_argument("--org", help="GitHub organization name")
    parser.add_argument("--user", help="GitHub user name")
    parser.add_argument(
        "-l", "--limit", type=int, default=DEFAULT_LIMIT, help="Limit number of PRs to display (0 = unlimited)"
    )
    parser.add_argument("-i", "--interactive", action="store_true", help="Enable interactive PR merge mode")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--skip-checks", action="store_true", help="Skip fetching CI check status")
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="REPO",
        help="Repository to skip (repeatable, comma-separated values accepted)",
    )
    parser.add_argument("--version", action="version", version=f"gh-deps {__version__}")
    return parser


def parse_run_config(argv: Sequence[str] | None, cfg: AppConfig) -> RunConfig:
    """Parse command-line flags into a `RunConfig`.

    Args:
        argv: Arguments without the program name; None reads `sys.argv`.
        cfg: Loaded config file, whose exclusions are merged with `--exclude`.

    Returns:
        The validated run configuration.

    Raises:
        UsageError: If neither or both of --org/--user are given, or the
            limit is negative.
    """
    args = build_parser().parse_args(argv)
    if not args.org and not args.user:
        raise UsageError("either --org or --user must be specified")
    if args.org and args.user:
        raise UsageError("cannot specify both --org and --user")
    if args.limit < 0:
        raise UsageError("--limit must be >= 0")
    target = args.org or args.user
    return RunConfig(
        target=target,
        is_organization=bool(args.org),
        limit=args.limit,
        interactive=args.interactive,
        verbose=args.verbose,
        skip_checks=args.skip_checks,
        exclude_repositories=normalize_exclusions(target, [*cfg.exclude_repositories, *args.exclude]),
    )


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextlib.contextmanager
def textual_logging() -> Iterator[None]:
    """Route log records to Textual's devtools console while the app owns the terminal."""
    root = logging.getLogger()
    saved = root.handlers[:]
    root.handlers = [TextualHandler()]
    try:
        yield
    finally:
        root.handlers = saved


async def fetch_initial(client: GitHubClient, run_config: RunConfig) -> list[PullRequest]:
    """Fetch the PRs shown by the table and used to seed interactive mode."""
    limit_text = f"up to {run_config.limit} PRs" if run_config.limit > 0 else "all PRs"
    logger.info(f"Fetching dependency PRs from {run_config.scope_label} ({limit_text})")
    prs = await client.fetch_pull_requests(run_config.target, run_config.is_organization, run_config.limit)
    if run_config.verbose:
        try:
            info = await client.check_rate_limit()
        except (GitHubAPIError, httpx.HTTPError) as e:
            logger.warning(f"Could not read rate limit: {e}")
        else:
            logger.debug(f"Rate limit: {info.remaining}/{info.limit} remaining, resets at {info.reset_at}")
    return prs


def run(argv: Sequence[str] | None = None, console: Console | None = None) -> int:
    """Run gh-deps and return the process exit status.

    Args:
        argv: Arguments without the program name; None reads `sys.argv`.
        console: Console for table output; defaults to stdout.

    Returns:
        0 on success, 1 on errors, 130 when interrupted.
    """
    console = console or Console()
    try:
        cfg = load_config()
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: invalid configuration file: {e}", file=sys.stderr)
        return EXIT_ERROR
    try:
        run_config = parse_run_config(argv, cfg)
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    configure_logging(run_config.verbose)

    token = resolve_token(cfg)
    if not token:
        print(
            "Error: GitHub token not found. Set GH_TOKEN or GITHUB_TOKEN, or run `gh auth login`.",
            file=sys.stderr,
        )
        return EXIT_ERROR
    client = GitHubClient(
        token, skip_checks=run_config.skip_checks, exclude_repositories=run_config.exclude_repositories
    )

    try:
        prs = asyncio.run(fetch_initial(client, run_config))
    except KeyboardInterrupt:
        print("\nInterrupted, shutting down...", file=sys.stderr)
        return EXIT_INTERRUPTED
    except (GitHubAPIError, httpx.HTTPError) as e:
        print(f"Error: failed to fetch pull requests: {e}", file=sys.stderr)
        return EXIT_ERROR

    ordered = render_table(
        prs,
        console,
        limit=run_config.limit,
        skip_checks=run_config.skip_checks,
        show_row_numbers=run_config.interactive,
    )
    if not ordered or not run_config.interactive:
        return 0

    with textual_logging():
        GhDepsApp(ordered, client, run_config, cfg).run()
    return 0


def main() -> None:
    """Entry point for the `gh-deps` console script."""
    sys.exit(run())
