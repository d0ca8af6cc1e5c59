import os
from contextlib import contextmanager
from datetime import datetime

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gsb import __version__, log
from gsb.config import load_config, save_global_config
from gsb.errors import SaveError
from gsb.snapshot import create_snapshot_store
from gsb.snapshot.archive import parse_snapshot_name
from gsb.tracing import StageTimer


@click.group()
@click.version_option(version=__version__)
@click.option("--root", type=click.Path(file_okay=False), default=None,
              help="Directory holding one subdirectory per target (overrides config).")
@click.pass_context
def main(ctx, root):
    """gsb: timestamped snapshots of a directory, restorable at any time."""
    config = load_config()
    if root:
        config["root"] = os.path.abspath(root)
    ctx.obj = config


def _store(ctx):
    return create_snapshot_store(ctx.obj, audit_log=log.LOGS_FILE)


def _progress(console):
    """Callback rendering core progress lines, dimmed and unformatted."""
    def _print(line):
        console.print(line, style="dim", markup=False, highlight=False)
    return _print


@contextmanager
def _errors(console):
    """Print a failed operation's message in red and exit 1."""
    try:
        yield
    except (SaveError, OSError) as e:
        console.print(str(e), style="red", markup=False, highlight=False)
        raise SystemExit(1)


def _size(path):
    try:
        size = os.path.getsize(path)
    except OSError:
        return "?"
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f}{unit}"
        size /= 1024
    return f"{size:.1f}GB"


@main.command()
@click.pass_context
def targets(ctx):
    """List all targets."""
    console = Console()
    store = _store(ctx)
    names = store.targets()
    if not names:
        console.print("[dim]No targets. Add one with 'gsb add NAME PATH'.[/dim]")
        return

    table = Table(title="Targets")
    table.add_column("Name", style="bold cyan")
    table.add_column("Source", style="dim")
    table.add_column("Saves", justify="right")
    for name in names:
        try:
            source = store.source(name)
            count = str(len(store.list(name)))
        except (SaveError, OSError) as e:
            source, count = f"[red]{escape(str(e))}[/red]", "-"
        table.add_row(name, source, count)
    console.print(table)


@main.command()
@click.argument("name")
@click.argument("path", type=click.Path())
@click.pass_context
def add(ctx, name, path):
    """Register target NAME backed up from directory PATH."""
    console = Console()
    with _errors(console):
        storage = _store(ctx).add_target(name, path)
    console.print(f"Created {storage}")


@main.command()
@click.argument("name")
@click.pass_context
def backup(ctx, name):
    """Take a new snapshot of target NAME."""
    console = Console()
    timer = StageTimer(console)
    with _errors(console):
        snapshot = _store(ctx).create(name, callback=timer.track(_progress(console)))
    timer.mark("backup")
    console.print(f"[bold green]Saved {snapshot}[/bold green]")


@main.command()
@click.argument("name")
@click.pass_context
def saves(ctx, name):
    """List the snapshots of target NAME, newest first."""
    console = Console()
    store = _store(ctx)
    with _errors(console):
        snapshot_list = store.list(name)
        storage = store.storage_dir(name)

    if not snapshot_list:
        console.print("[dim]No saves found.[/dim]")
        return

    table = Table(title=f"Saves of {name}")
    table.add_column("Save", style="bold cyan")
    table.add_column("Created (UTC)", style="dim")
    table.add_column("Size", justify="right")
    table.add_column("", style="green")
    for idx, snapshot in enumerate(snapshot_list):
        created = parse_snapshot_name(snapshot).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(
            snapshot,
            created,
            _size(os.path.join(storage, snapshot)),
            "latest" if idx == 0 else "",
        )
    console.print(table)


@main.command()
@click.argument("name")
@click.argument("save")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def restore(ctx, name, save, yes):
    """Replace the source directory of NAME with the contents of SAVE."""
    console = Console()
    store = _store(ctx)
    with _errors(console):
        source = store.source(name)
    if not yes and not click.confirm(f"Overwrite {source} with {save}?", default=False):
        console.print("[dim]Cancelled.[/dim]")
        return

    timer = StageTimer(console)
    with _errors(console):
        store.restore(name, save, callback=timer.track(_progress(console)))
    timer.mark("restore")
    console.print(f"[bold green]Restored {save}[/bold green]")


@main.command()
@click.argument("name")
@click.argument("save")
@click.pass_context
def delete(ctx, name, save):
    """Delete SAVE of target NAME. The newest save is kept."""
    console = Console()
    with _errors(console):
        _store(ctx).delete(name, save, callback=_progress(console))
    console.print(f"  [red]Deleted[/red] {save}")


@main.command()
@click.argument("name")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def prune(ctx, name, yes):
    """Delete every save of NAME except the newest."""
    console = Console()
    store = _store(ctx)
    with _errors(console):
        snapshot_list = store.list(name)
    if len(snapshot_list) > 1 and not yes:
        console.print(f"[bold]About to delete {len(snapshot_list) - 1} save(s), keeping {snapshot_list[0]}.[/bold]")
        if not click.confirm("Delete these saves?", default=False):
            console.print("[dim]Cancelled.[/dim]")
            return

    with _errors(console):
        removed = store.prune(name, callback=_progress(console))
    console.print(f"[bold green]Done. {len(removed)} save(s) removed.[/bold green]")


@main.command()
@click.option("-n", "--limit", default=20, help="Number of log entries to show.")
@click.option("--target", default=None, help="Only show entries for this target.")
def logs(limit, target):
    """Show the audit log."""
    console = Console()
    entries = [e for e in log.read_log(log.LOGS_FILE) if not target or e.get("target") == target]
    if not entries:
        console.print("[dim]No logs found.[/dim]")
        return

    table = Table(title="Audit Log")
    table.add_column("Time", style="dim")
    table.add_column("Event", style="bold")
    table.add_column("Target", style="cyan")
    table.add_column("Save")

    for entry in entries[-limit:]:
        ts = entry.get("timestamp", "")
        if ts:
            try:
                ts = datetime.fromisoformat(ts).strftime("%m-%d %H:%M:%S")
            except ValueError:
                pass
        save = entry.get("snapshot") or ", ".join(entry.get("removed", []))
        table.add_row(ts, entry.get("event", ""), entry.get("target", ""), save)

    console.print(table)


@main.command("config")
@click.option("--root", "new_root", type=click.Path(file_okay=False), default=None,
              help="Default directory holding the targets.")
@click.option("--staged/--no-staged", default=None,
              help="Extract restores into a staging directory and swap it in.")
def config_cmd(new_root, staged):
    """Show or update ~/.gsb/config.json."""
    updates = {}
    if new_root:
        updates["root"] = os.path.abspath(os.path.expanduser(new_root))
    if staged is not None:
        updates["staged_restore"] = staged
    if updates:
        save_global_config(updates)

    console = Console()
    config = load_config()
    console.print(f"root            {config['root']}", highlight=False)
    console.print(f"staged_restore  {config['staged_restore']}", highlight=False)
