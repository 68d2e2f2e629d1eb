"""CLI interface for pydrivesync."""

import logging
from pathlib import Path
from typing import Any, Callable, Optional

import click

from .api import DriveClient
from .cli_progress import TransferProgressDisplay
from .config import config
from .exceptions import DriveAPIError, SyncError
from .output import OutputFormatter
from .sync import (
    CachedMd5Comparer,
    FileComparer,
    Md5Comparer,
    PullSyncOptions,
    PushSyncOptions,
    SyncEngine,
    SyncResult,
)
from .sync.engine import SyncProgressCallback
from .transfer import CancelToken
from .utils import DEFAULT_TIMEOUT, format_size, parse_iso_timestamp

logger = logging.getLogger(__name__)

SyncRunner = Callable[
    [SyncEngine, Optional[SyncProgressCallback], CancelToken], SyncResult
]


def require_api_key(ctx: Any, out: OutputFormatter) -> str:
    """Return the API key from the command line or config, or exit."""
    api_key = ctx.obj.get("api_key") or config.api_key
    if not api_key:
        out.error(
            "No API key configured. Run 'pydrivesync init' or set "
            "DRIVESYNC_API_KEY."
        )
        ctx.exit(1)
    return api_key


def build_cli(commands: list[click.Command]) -> click.Group:
    """Build the command group from an explicit list of commands.

    Args:
        commands: Commands to expose (see default_commands)

    Returns:
        The click group to invoke
    """

    @click.group(commands=commands)
    @click.option(
        "--api-key", "-k", envvar="DRIVESYNC_API_KEY", help="Drive API access token"
    )
    @click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
    @click.option("--json", is_flag=True, help="Output in JSON format")
    @click.option(
        "--verbose",
        "-v",
        is_flag=True,
        help="Enable verbose/debug logging output",
    )
    @click.version_option(package_name="pydrivesync")
    @click.pass_context
    def main(
        ctx: Any,
        api_key: Optional[str],
        quiet: bool,
        json: bool,
        verbose: bool,
    ) -> None:
        """pydrivesync - keep a local directory in sync with a Drive folder."""
        ctx.ensure_object(dict)
        ctx.obj["api_key"] = api_key
        # Progress narration would corrupt JSON on stdout
        ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet or json)
        ctx.obj["verbose"] = verbose

        if verbose:
            logging.basicConfig(
                level=logging.DEBUG,
                format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%H:%M:%S",
            )
            logging.getLogger("pydrivesync").setLevel(logging.DEBUG)
        else:
            logging.basicConfig(level=logging.WARNING)

    return main


@click.command()
@click.option(
    "--api-key",
    "-k",
    prompt="Enter your Drive API access token",
    help="Drive API access token",
)
@click.pass_context
def init(ctx: Any, api_key: str) -> None:
    """Store an API key in the config directory for future use."""
    out: OutputFormatter = ctx.obj["out"]

    out.info("Validating API key...")
    try:
        with DriveClient(api_key=api_key) as client:
            client.get_about()
        out.success("API key is valid")
    except DriveAPIError as e:
        out.error(f"API key validation failed: {e}")
        if not click.confirm("Save API key anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(1)

    try:
        config.save_api_key(api_key)
    except OSError as e:
        out.error(f"Failed to save configuration: {e}")
        ctx.exit(1)
    out.success(f"Configuration saved to {config.get_config_path()}")


def sync_options(func: Callable) -> Callable:
    """Options shared by push and pull."""
    options = [
        click.option(
            "--dry-run",
            is_flag=True,
            help="Show what would be synced without changing anything",
        ),
        click.option(
            "--delete-extraneous",
            is_flag=True,
            help="Delete entries that do not exist on the source side",
        ),
        click.option(
            "--chunk-size",
            "-c",
            type=int,
            default=8,
            help="Chunk size in MB for uploads and downloads (default: 8MB)",
        ),
        click.option(
            "--timeout",
            type=float,
            default=DEFAULT_TIMEOUT,
            help=(
                "Abort a transfer when no data moved for this many seconds, "
                "0 disables (default: 300)"
            ),
        ),
        click.option("--no-progress", is_flag=True, help="Disable progress bars"),
        click.option(
            "--no-cache",
            is_flag=True,
            help="Always hash local files instead of using the md5 cache",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _make_comparer(no_cache: bool) -> FileComparer:
    if no_cache:
        return Md5Comparer()
    return CachedMd5Comparer(config.get_md5_cache_path())


def _run_sync(
    ctx: Any,
    runner: SyncRunner,
    no_progress: bool,
    dry_run: bool,
) -> None:
    """Run a sync direction, render its result and map errors to exit codes."""
    out: OutputFormatter = ctx.obj["out"]
    api_key = require_api_key(ctx, out)
    cancel_token = CancelToken()

    try:
        with DriveClient(api_key=api_key) as client:
            engine = SyncEngine(client, output=out)
            if no_progress or dry_run or out.quiet:
                result = runner(engine, None, cancel_token)
            else:
                with TransferProgressDisplay() as display:
                    result = runner(engine, display.update, cancel_token)
    except KeyboardInterrupt:
        cancel_token.cancel()
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
        return
    except (SyncError, DriveAPIError) as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(result.to_dict())
        return

    out.print("")
    out.success("Dry run complete!" if result.dry_run else "Sync complete!")
    if result.total_operations == 0:
        out.info("No changes needed - everything is in sync!")
        return
    out.info(f"Total actions: {result.total_operations}")
    if result.dirs_created:
        out.info(f"  Directories created: {result.dirs_created}")
    if result.files_created:
        out.info(f"  Files created: {result.files_created}")
    if result.files_updated:
        out.info(f"  Files updated: {result.files_updated}")
    if result.deleted:
        out.info(f"  Deleted: {result.deleted}")


@click.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.argument("root_id")
@sync_options
@click.option(
    "--skip-free-space-check",
    is_flag=True,
    help="Do not check the remote storage quota before uploading",
)
@click.pass_context
def push(
    ctx: Any,
    path: Path,
    root_id: str,
    dry_run: bool,
    delete_extraneous: bool,
    chunk_size: int,
    timeout: float,
    no_progress: bool,
    no_cache: bool,
    skip_free_space_check: bool,
) -> None:
    """Push a local directory to a remote sync root.

    PATH: Local directory (the source of truth)

    ROOT_ID: Id of the remote directory; it must be empty on the first push

    Examples:
        pydrivesync push ./photos 1AbCdEf             # Upload new and changed files
        pydrivesync push ./photos 1AbCdEf --dry-run   # Preview changes
        pydrivesync push ./photos 1AbCdEf --delete-extraneous
    """
    out: OutputFormatter = ctx.obj["out"]
    try:
        options = PushSyncOptions(
            delete_extraneous=delete_extraneous,
            dry_run=dry_run,
            chunk_size=chunk_size * 1024 * 1024,
            timeout=timeout,
            check_free_space=not skip_free_space_check,
        )
    except SyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    comparer = _make_comparer(no_cache)

    def runner(
        engine: SyncEngine,
        progress: Optional[SyncProgressCallback],
        cancel_token: CancelToken,
    ) -> SyncResult:
        return engine.push_sync(
            path,
            root_id,
            options,
            comparer=comparer,
            cancel_token=cancel_token,
            progress_callback=progress,
        )

    _run_sync(ctx, runner, no_progress, dry_run)


@click.command()
@click.argument("root_id")
@click.argument("path", type=click.Path(path_type=Path))
@sync_options
@click.pass_context
def pull(
    ctx: Any,
    root_id: str,
    path: Path,
    dry_run: bool,
    delete_extraneous: bool,
    chunk_size: int,
    timeout: float,
    no_progress: bool,
    no_cache: bool,
) -> None:
    """Pull a remote sync root into a local directory.

    ROOT_ID: Id of a directory previously used with push

    PATH: Local directory (created if missing)

    Examples:
        pydrivesync pull 1AbCdEf ./photos             # Download new and changed files
        pydrivesync pull 1AbCdEf ./photos --delete-extraneous
    """
    out: OutputFormatter = ctx.obj["out"]
    try:
        options = PullSyncOptions(
            delete_extraneous=delete_extraneous,
            dry_run=dry_run,
            chunk_size=chunk_size * 1024 * 1024,
            timeout=timeout,
        )
    except SyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    comparer = _make_comparer(no_cache)

    def runner(
        engine: SyncEngine,
        progress: Optional[SyncProgressCallback],
        cancel_token: CancelToken,
    ) -> SyncResult:
        return engine.pull_sync(
            root_id,
            path,
            options,
            comparer=comparer,
            cancel_token=cancel_token,
            progress_callback=progress,
        )

    _run_sync(ctx, runner, no_progress, dry_run)


def _format_time(timestamp: Optional[str]) -> str:
    dt = parse_iso_timestamp(timestamp)
    return dt.strftime("%Y-%m-%d %H:%M:%S") if dt else ""


@click.command()
@click.option("--skip-header", is_flag=True, help="Do not print the header row")
@click.pass_context
def roots(ctx: Any, skip_header: bool) -> None:
    """List remote directories marked as sync roots."""
    out: OutputFormatter = ctx.obj["out"]
    api_key = require_api_key(ctx, out)

    try:
        with DriveClient(api_key=api_key) as client:
            sync_roots = SyncEngine(client, output=out).list_sync_roots()
    except (SyncError, DriveAPIError) as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(
            [
                {"id": r.id, "name": r.name, "created": r.created_time}
                for r in sync_roots
            ]
        )
        return

    if not sync_roots:
        out.info("No sync roots found")
        return
    out.print_table(
        ["Id", "Name", "Created"],
        [[r.id, r.name, _format_time(r.created_time)] for r in sync_roots],
        show_header=not skip_header,
    )


@click.command()
@click.argument("root_id")
@click.option("--skip-header", is_flag=True, help="Do not print the header row")
@click.option("--size-in-bytes", is_flag=True, help="Show sizes in bytes")
@click.pass_context
def content(ctx: Any, root_id: str, skip_header: bool, size_in_bytes: bool) -> None:
    """List the synced content of a sync root.

    ROOT_ID: Id of the sync root
    """
    out: OutputFormatter = ctx.obj["out"]
    api_key = require_api_key(ctx, out)

    try:
        with DriveClient(api_key=api_key) as client:
            entries = SyncEngine(client, output=out).list_sync_content(root_id)
    except (SyncError, DriveAPIError) as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(
            [
                {
                    "id": f.id,
                    "path": f.relative_path,
                    "type": "dir" if f.is_dir else "bin",
                    "size": f.size,
                    "modified": f.entry.modified_time,
                }
                for f in entries
            ]
        )
        return

    rows = []
    for f in entries:
        if f.is_dir:
            size = ""
        else:
            size = str(f.size) if size_in_bytes else format_size(f.size)
        rows.append(
            [
                f.id,
                f.relative_path,
                "dir" if f.is_dir else "bin",
                size,
                _format_time(f.entry.modified_time),
            ]
        )
    out.print_table(
        ["Id", "Path", "Type", "Size", "Modified"],
        rows,
        show_header=not skip_header,
    )


def default_commands() -> list[click.Command]:
    """The commands exposed by the pydrivesync executable."""
    return [init, push, pull, roots, content]


def run() -> None:
    """Console script entry point."""
    build_cli(default_commands())()
