"""
Operator CLI for block-storage volumes.

Usage:
    # Show volumes in the current project
    stackdash-volumes list

    # Detach a stuck volume (escalates through the detach tiers)
    stackdash-volumes detach <instance-id> <volume-id>

    # Detach from every server, then delete
    stackdash-volumes remove <volume-id> --yes

    # Last resort when every detach tier failed
    stackdash-volumes cleanup <volume-id>
"""

import argparse
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from .config import load_config
from .errors import APIError, ConfigError, VolumeInUseError, VolumeStateUnknownError
from .manager import VolumeLifecycleManager
from .models import DeleteOutcome, Snapshot

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_REFUSED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stackdash-volumes",
        description="Safely detach, delete and repair block-storage volumes",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--label", help="Human-readable volume name for messages")
    sub = parser.add_subparsers(dest="command", required=True)

    list_parser = sub.add_parser("list", help="List volumes")
    list_parser.add_argument("--all-projects", action="store_true", help="List volumes of every project (admin)")

    status_parser = sub.add_parser("status", help="Show the current state of a volume")
    status_parser.add_argument("volume_id")

    detach_parser = sub.add_parser("detach", help="Detach a volume from a server")
    detach_parser.add_argument("instance_id")
    detach_parser.add_argument("volume_id")

    for name, help_text in (
        ("delete", "Delete a detached volume"),
        ("remove", "Detach a volume from all servers, then delete it"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("volume_id")
        p.add_argument("--yes", "-y", action="store_true", help="Delete even if snapshots exist")

    cleanup_parser = sub.add_parser("cleanup", help="Emergency cleanup after all detach tiers failed")
    cleanup_parser.add_argument("volume_id")

    return parser


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )


def confirm_snapshots_prompt(snapshots: List[Snapshot]) -> bool:
    console.print(f"[yellow]This volume has {len(snapshots)} snapshot(s):[/yellow]")
    for snapshot in snapshots:
        console.print(f"  • {snapshot.snapshot_id} {snapshot.name or ''} ({snapshot.status})")
    return Confirm.ask("Delete the volume anyway?", default=False)


def cmd_list(manager: VolumeLifecycleManager, args) -> int:
    volumes = manager.list_volumes(all_projects=args.all_projects or None)

    table = Table(title=f"Volumes ({len(volumes)})")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Size (GB)", justify="right")
    table.add_column("Attached to")

    for volume in volumes:
        table.add_row(
            volume.volume_id,
            volume.name or "-",
            volume.status,
            str(volume.size) if volume.size is not None else "-",
            ", ".join(volume.server_ids) or "-",
        )
    console.print(table)
    return EXIT_OK


def cmd_status(manager: VolumeLifecycleManager, args) -> int:
    state = manager.check_status(args.volume_id)
    if state is None:
        console.print(f"[red]Could not read volume {args.volume_id}[/red]")
        return EXIT_FAILED
    if not state.exists:
        console.print(f"Volume {args.volume_id} not found")
        return EXIT_FAILED

    console.print(f"[bold]{state.name or state.volume_id}[/bold]")
    console.print(f"  status:        {state.status}")
    console.print(f"  attach_status: {state.attach_status or '-'}")
    for attachment in state.attachments:
        console.print(f"  attached to {attachment.server_id} at {attachment.device or '?'}")
    return EXIT_OK


def cmd_detach(manager: VolumeLifecycleManager, args) -> int:
    result = manager.detach(args.instance_id, args.volume_id, args.label)
    if result:
        console.print(f"[green]✅ Volume {args.volume_id} detached ({result.tier})[/green]")
        return EXIT_OK

    if result.permission_denied:
        console.print("[red]❌ Permission denied; an administrator role is required for forced detach[/red]")
    else:
        console.print(
            f"[red]❌ Could not detach {args.volume_id} after tiers: {', '.join(result.attempted)}[/red]\n"
            f"   Run 'stackdash-volumes cleanup {args.volume_id}' as a last resort."
        )
    return EXIT_FAILED


def _report_delete(result, volume_id: str) -> int:
    if result.outcome is DeleteOutcome.CONFIRMED:
        console.print(f"[green]✅ Volume {volume_id} deleted[/green]")
        return EXIT_OK
    if result.outcome is DeleteOutcome.ASSUMED:
        console.print(
            f"[yellow]⚠️  Deletion of {volume_id} accepted but not yet observed "
            f"(last status: {result.final_status or 'unknown'})[/yellow]"
        )
        return EXIT_OK
    if result.outcome is DeleteOutcome.DECLINED:
        console.print("Deletion cancelled")
        return EXIT_FAILED
    console.print(f"[red]❌ Delete request for {volume_id} was rejected[/red]")
    return EXIT_FAILED


def cmd_delete(manager: VolumeLifecycleManager, args) -> int:
    confirm = None if args.yes else confirm_snapshots_prompt
    result = manager.safe_delete(args.volume_id, args.label, confirm)
    return _report_delete(result, args.volume_id)


def cmd_remove(manager: VolumeLifecycleManager, args) -> int:
    confirm = None if args.yes else confirm_snapshots_prompt
    result = manager.remove_volume(args.volume_id, args.label, confirm)
    return _report_delete(result, args.volume_id)


def cmd_cleanup(manager: VolumeLifecycleManager, args) -> int:
    result = manager.emergency_cleanup(args.volume_id, args.label)
    if result.confirmed:
        console.print(f"[green]✅ Volume {args.volume_id} is available[/green]")
    else:
        console.print(
            f"[yellow]⚠️  Partial success: volume {args.volume_id} reports "
            f"'{result.final_status or 'unknown'}'[/yellow]"
        )
    return EXIT_OK


COMMANDS = {
    "list": cmd_list,
    "status": cmd_status,
    "detach": cmd_detach,
    "delete": cmd_delete,
    "remove": cmd_remove,
    "cleanup": cmd_cleanup,
}


def main(argv: Optional[List[str]] = None, manager: Optional[VolumeLifecycleManager] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        if manager is None:
            manager = VolumeLifecycleManager.from_config(load_config())
        return COMMANDS[args.command](manager, args)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        return EXIT_REFUSED
    except (VolumeInUseError, VolumeStateUnknownError) as e:
        console.print(f"[red]❌ {e}[/red]")
        return EXIT_REFUSED
    except APIError as e:
        console.print(f"[red]❌ {e}[/red]")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
