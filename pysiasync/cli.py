"""CLI interface for pysiasync."""

import logging
import time
from pathlib import Path
from typing import Any, Optional

import click

from . import __version__
from .api import SiaClient, SkynetClient
from .exceptions import SiaAPIError, SiaSyncError
from .models import Redundancy
from .output import OutputFormatter
from .sync import (
    EventRecorder,
    FingerprintMode,
    IdentifierStateManager,
    SyncEngine,
    SyncEventKind,
    SyncOptions,
    parse_extensions,
)
from .utils import (
    DEFAULT_DATA_PIECES,
    DEFAULT_PARITY_PIECES,
    DEFAULT_PREFIX,
    DEFAULT_RETRY_DELAY,
    DEFAULT_USER_AGENT,
)

logger = logging.getLogger(__name__)

# Poll interval of the foreground loop while the watcher thread works
WATCH_POLL_INTERVAL = 0.5


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pysiasync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


def _print_stats(out: OutputFormatter, stats: dict, dry_run: bool) -> None:
    if out.json_output:
        out.output_json({**stats, "dry_run": dry_run})
        return
    items = [
        ("Uploaded", f"{stats['uploads']} files"),
        ("Deleted remotely", f"{stats['deletes_remote']} files"),
        ("Updated", f"{stats['updates']} files"),
    ]
    if stats["skips"] > 0:
        items.append(("Skipped", f"{stats['skips']} files"))
    if stats["failures"] > 0:
        items.append(("Failed", f"{stats['failures']} files"))
    title = "Dry Run Complete" if dry_run else "Initial Sync Complete"
    out.print_summary(title, items)


@click.command()
@click.argument(
    "directory", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--address", "-a", help="Sia API address (default: 127.0.0.1:9980)")
@click.option("--password", envvar="SIA_API_PASSWORD", help="Sia API password")
@click.option(
    "--agent", default=DEFAULT_USER_AGENT, show_default=True, help="Sia agent string"
)
@click.option(
    "--subfolder",
    "-s",
    default=DEFAULT_PREFIX,
    show_default=True,
    help="Remote folder to sync files into",
)
@click.option(
    "--archive",
    is_flag=True,
    help="Never delete remote files when local files are removed",
)
@click.option("--include", help="Comma separated extensions to sync exclusively")
@click.option("--exclude", help="Comma separated extensions to ignore")
@click.option(
    "--data-pieces",
    type=click.IntRange(min=1),
    default=DEFAULT_DATA_PIECES,
    show_default=True,
    help="Number of data pieces per file",
)
@click.option(
    "--parity-pieces",
    type=click.IntRange(min=1),
    default=DEFAULT_PARITY_PIECES,
    show_default=True,
    help="Number of parity pieces per file",
)
@click.option(
    "--size-only",
    is_flag=True,
    help="Compare files by size only and re-upload files whose size changed",
)
@click.option("--sync-only", is_flag=True, help="Sync once, do not watch for changes")
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.option(
    "--retry-delay",
    type=click.FloatRange(min=0),
    default=DEFAULT_RETRY_DELAY,
    show_default=True,
    help="Seconds to wait before retrying a failed upload",
)
@click.option(
    "--portal",
    help="Upload to this Skynet portal instead of a Sia node",
)
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for persisted skylinks (Skynet only)",
)
@click.option(
    "--reset-state", is_flag=True, help="Forget persisted skylinks before syncing"
)
@click.option(
    "--skip-check", is_flag=True, help="Skip the allowance and contract check"
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging output")
@click.version_option(__version__)
@click.pass_context
def main(  # noqa: C901
    ctx: Any,
    directory: Path,
    address: Optional[str],
    password: Optional[str],
    agent: str,
    subfolder: str,
    archive: bool,
    include: Optional[str],
    exclude: Optional[str],
    data_pieces: int,
    parity_pieces: int,
    size_only: bool,
    sync_only: bool,
    dry_run: bool,
    retry_delay: float,
    portal: Optional[str],
    state_dir: Optional[Path],
    reset_state: bool,
    skip_check: bool,
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pysiasync - keep DIRECTORY synchronized with Sia.

    Uploads files missing remotely, removes remote files deleted locally
    (unless --archive is given) and then watches DIRECTORY for changes.
    """
    _configure_logging(verbose)
    out = OutputFormatter(json_output=json, quiet=quiet)

    try:
        options = SyncOptions(
            prefix=subfolder,
            archive=archive,
            include_extensions=parse_extensions(include),
            exclude_extensions=parse_extensions(exclude),
            fingerprint_mode=(
                FingerprintMode.SIZE if size_only else FingerprintMode.CONTENT
            ),
            sync_only=sync_only,
            dry_run=dry_run,
            redundancy=Redundancy(data_pieces, parity_pieces),
            retry_delay=retry_delay,
        )
    except (SiaSyncError, ValueError) as e:
        out.error(f"Invalid option: {e}")
        ctx.exit(1)

    state = None
    if portal:
        store: Any = SkynetClient(portal_url=portal, user_agent=agent)
        state = IdentifierStateManager(state_dir)
        if reset_state and state.clear_state(directory.resolve(), options.prefix):
            out.info("Cleared persisted skylinks")
    else:
        store = SiaClient(address=address, password=password, user_agent=agent)

    # Only a one-shot sync needs the events afterwards
    recorder: Optional[EventRecorder] = None
    sink: Any = out.event
    if sync_only:
        recorder = EventRecorder(forward=out.event)
        sink = recorder
    engine: Optional[SyncEngine] = None

    try:
        if not portal and not skip_check:
            out.info("Checking Sia node...")
            info = store.check_connection()
            out.info(
                f"Connected to Sia {info['version']}, "
                f"{info['good_for_upload']} contracts ready for upload"
            )

        out.info(f"Syncing {directory} to {options.prefix}")
        engine = SyncEngine(directory, store, options, sink=sink, state=state)
        stats = engine.reconcile()
        _print_stats(out, stats, dry_run)

        if sync_only:
            if recorder is not None and recorder.of_kind(SyncEventKind.FAILED):
                ctx.exit(1)
            return

        engine.start_watching()
        out.info(f"Watching {engine.root} for changes (Ctrl+C to stop)")
        while True:
            time.sleep(WATCH_POLL_INTERVAL)
    except KeyboardInterrupt:
        out.info("Stopping")
    except SiaAPIError as e:
        out.error(f"API error: {e}")
        ctx.exit(1)
    except (SiaSyncError, OSError) as e:
        out.error(str(e))
        ctx.exit(1)
    finally:
        if engine is not None:
            engine.close()
        store.close()


if __name__ == "__main__":
    main()
