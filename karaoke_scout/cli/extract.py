# =============================================================================
# karaoke_scout/cli/extract.py - CLI Extract Command
# =============================================================================
#
# Runs one extraction over the sources given on the command line:
#
#   Scrape     - pages and group feeds go through the headless browser
#   Extract    - each text chunk / photo becomes one model job
#   Reconcile  - dedup, time checks, geo completion, geocoding, venue lookup
#
# Typical usage:
#   python -m karaoke_scout https://bar.example.com/events
#   python -m karaoke_scout https://www.facebook.com/groups/123 --session fb
#   python -m karaoke_scout flyer.jpg --kind photo --json -o run.json
#
# Source kinds are inferred unless --kind is given: local files and image
# URLs are photos, facebook group URLs are group feeds, anything else is a
# page.  With --interactive-login a login wall prompts on the terminal for
# credentials; otherwise it fails that source with LOGIN_REQUIRED.
# =============================================================================

"""Standalone CLI for running a karaoke-scout extraction.

Usage::

    python -m karaoke_scout URL [URL ...] [--kind page|photo|group_feed]
        [--session REF] [--config FILE] [--json] [--output FILE]
        [--no-venue-validation] [--interactive-login] [--verbose]

Prints a summary table (or the full run result as JSON) to stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
from pathlib import Path
from urllib.parse import urlparse

from karaoke_scout.models.events import CredentialsRequestedEvent, ProgressEvent
from karaoke_scout.models.records import ExtractionRunResult
from karaoke_scout.models.targets import Credentials, ExtractionTarget, TargetKind

_IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp", ".gif"}
_MAX_FILE_SIZE = 20 * 1024 * 1024


# ---------------------------------------------------------------------------
# Target construction
# ---------------------------------------------------------------------------


def infer_kind(source: str) -> TargetKind:
    """Guess a target kind from a URL or path."""
    parsed = urlparse(source)
    path = parsed.path.lower()
    if Path(path).suffix in _IMAGE_SUFFIXES:
        return TargetKind.PHOTO
    if "facebook.com" in parsed.netloc.lower() and path.startswith("/groups/"):
        return TargetKind.GROUP_FEED
    return TargetKind.PAGE


def build_targets(
    sources: list[str],
    kind: TargetKind | None = None,
    session_ref: str | None = None,
) -> list[ExtractionTarget]:
    """Turn command-line sources into :class:`ExtractionTarget` objects.

    Raises
    ------
    ValueError
        If a local file is missing, not an image, or too large.
    """
    targets: list[ExtractionTarget] = []
    for source in sources:
        if "://" not in source:
            targets.append(_file_target(Path(source)))
            continue
        resolved = kind or infer_kind(source)
        targets.append(
            ExtractionTarget(
                source_url=source,
                kind=resolved,
                session_ref=session_ref if resolved != TargetKind.PHOTO else None,
            )
        )
    return targets


def _file_target(path: Path) -> ExtractionTarget:
    if not path.exists():
        raise ValueError(f"File not found: {path}")
    if path.suffix.lower() not in _IMAGE_SUFFIXES:
        raise ValueError(
            f"Unsupported file type: {path.suffix}. Allowed: {', '.join(sorted(_IMAGE_SUFFIXES))}"
        )
    data = path.read_bytes()
    if len(data) > _MAX_FILE_SIZE:
        raise ValueError(f"File too large: {len(data):,} bytes. Maximum: {_MAX_FILE_SIZE:,} bytes.")
    return ExtractionTarget(
        source_url=f"upload://{path.name}", kind=TargetKind.PHOTO, image_bytes=data
    )


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_summary(run: ExtractionRunResult) -> str:
    """Human-readable report: counts, then one line per show."""
    s = run.summary
    sep = "=" * 60
    lines = [
        sep,
        "  karaoke-scout - Extraction Report",
        sep,
        f"Run:       {run.run_id}",
        f"Sources:   {s.sources} ({s.sources_failed} failed)",
        f"Jobs:      {s.jobs} ({s.succeeded} ok, {s.failed} failed)",
        f"Shows:     {s.shows}",
        (
            f"  validated {s.validated} | conflict {s.conflicted} | skipped {s.skipped}"
            f" | geo_fixed {s.geo_fixed} | time_fixed {s.time_fixed} | error {s.errors}"
        ),
    ]
    if s.error_kinds:
        kinds = ", ".join(f"{kind.value}={count}" for kind, count in sorted(s.error_kinds.items()))
        lines.append(f"Job errors: {kinds}")
    if run.djs:
        lines.append(f"DJs:       {', '.join(dj.name for dj in run.djs)}")
    if run.vendors:
        lines.append(f"Vendors:   {', '.join(v.name for v in run.vendors)}")

    if run.shows:
        lines.append("")
        lines.append("SHOWS")
        lines.append("-" * 40)
        for show in run.shows:
            when = " ".join(part for part in (show.day, show.start_time) if part) or "?"
            where = ", ".join(part for part in (show.city, show.state) if part)
            dj = f" with {show.dj_name}" if show.dj_name else ""
            lines.append(f"  [{show.status.value}] {show.venue or '?'} ({where or '?'}) {when}{dj}")
            if show.status_reason:
                lines.append(f"      {show.status_reason}")

    if run.target_failures:
        lines.append("")
        lines.append("FAILED SOURCES")
        lines.append("-" * 40)
        for failure in run.target_failures:
            lines.append(f"  {failure.source_url}: {failure.failure.value} ({failure.message})")

    lines.append(sep)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Pipeline runner
# ---------------------------------------------------------------------------


def _credential_prompter(channel):  # noqa: ANN001, ANN202
    """Listener answering credential requests from the terminal."""

    async def _on_event(event: ProgressEvent) -> None:
        if not isinstance(event, CredentialsRequestedEvent):
            return
        print(
            f"Login required for session '{event.session_ref}' ({event.source_url}); "
            f"{event.timeout_s:.0f}s to answer.",
            file=sys.stderr,
        )
        username = await asyncio.to_thread(input, "Username: ")
        password = await asyncio.to_thread(getpass.getpass, "Password: ")
        if not channel.supply(event.session_ref, Credentials(username=username, password=password)):
            print("Too late: the login request already timed out.", file=sys.stderr)

    return _on_event


async def _run(args: argparse.Namespace) -> int:
    # Deferred imports: building settings and providers is slower than
    # argument validation, and logging must be configured first.
    from karaoke_scout.config.loader import build_settings
    from karaoke_scout.main import build_pipeline, run_extraction
    from karaoke_scout.pipeline.progress_tracker import ALL_RUNS
    from karaoke_scout.utils.errors import KaraokeScoutError

    try:
        targets = build_targets(
            args.sources, TargetKind(args.kind) if args.kind else None, args.session
        )
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        settings = build_settings(args.config)
    except KaraokeScoutError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    components = build_pipeline(
        settings,
        venue_validation=not args.no_venue_validation,
        interactive_login=True if args.interactive_login else None,
    )
    channel = components["credential_channel"]
    if channel.is_available():
        components["progress_tracker"].register_listener(ALL_RUNS, _credential_prompter(channel))

    print(f"Extracting from {len(targets)} source(s)", file=sys.stderr)
    try:
        run = await run_extraction(targets, components)
    except KaraokeScoutError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Done in {run.metadata.get('elapsed_s', 0):.1f}s", file=sys.stderr)

    text = run.model_dump_json(indent=2) if args.json_output else format_summary(run)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Results written to: {args.output}", file=sys.stderr)
    else:
        print(text)
    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="karaoke-scout",
        description=(
            "Extract karaoke show listings from web pages, photos and "
            "access-gated group photo feeds."
        ),
    )
    parser.add_argument(
        "sources",
        nargs="+",
        help="URLs (pages, photos, group feeds) or local image files.",
    )
    parser.add_argument(
        "--kind",
        choices=[kind.value for kind in TargetKind],
        default=None,
        help="Treat every URL as this kind instead of inferring it.",
    )
    parser.add_argument(
        "--session",
        default=None,
        help="Session reference for cookies / login (e.g. 'facebook').",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Optional YAML config file (default: config/config.yaml).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output the full run result as JSON.",
    )
    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Write results to a file instead of stdout.",
    )
    parser.add_argument(
        "--no-venue-validation",
        action="store_true",
        help="Skip the model venue-lookup pass.",
    )
    parser.add_argument(
        "--interactive-login",
        action="store_true",
        help="Prompt for credentials when a login wall is hit.",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug-level logging on stderr.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point; exits 0 on success, 1 on input or setup errors."""
    from karaoke_scout.utils.logging import configure_logging

    args = _build_parser().parse_args(argv)
    if args.verbose:
        level = "DEBUG"
    elif args.json_output:
        level = "WARNING"
    else:
        level = "INFO"
    configure_logging(log_level=level)

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
