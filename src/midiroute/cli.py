"""
Command-line entry point.

    midiroute devices                 List MIDI input ports
    midiroute bindings [--app ID]     Show the compiled action index
    midiroute run                     Route MIDI input until Ctrl-C
"""

import argparse
import logging
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from midiroute.config import ManagerSettings
from midiroute.logging_config import get_logger, setup_logging
from midiroute.manager import MIDIManager
from midiroute.midi_io import DeviceManager

logger = get_logger(__name__)

DEFAULT_CONFIG_ROOT = Path.home() / ".midiroute"


def _describe_action(bound) -> str:
    control_id = getattr(bound, "control_id", None)
    if control_id is not None:
        return f"control:{control_id}"
    return f"{bound.handler_id}: {bound.action}"


def list_devices(console: Console) -> None:
    table = Table(title="MIDI Input Ports")
    table.add_column("#", justify="right")
    table.add_column("Name")
    for i, name in enumerate(DeviceManager.list_input_ports(), start=1):
        table.add_row(str(i), name)
    console.print(table)


def show_bindings(manager: MIDIManager, console: Console, application_id: Optional[str] = None) -> None:
    table = Table(title=f"Compiled MIDI Actions ({len(manager.index)})")
    for column in ("Application", "Bank", "Device", "Ch", "Command", "Number", "Value", "Action"):
        table.add_column(column)

    def sort_key(key):
        return tuple("" if part is None else str(part) for part in key)

    for key in sorted(manager.index, key=sort_key):
        if application_id and key.application_id != application_id:
            continue
        bound = manager.index.get(key)
        table.add_row(
            key.application_id,
            key.bank_id,
            key.device_name,
            str(key.channel),
            key.command_type.value,
            "" if key.controller_number is None else str(key.controller_number),
            "" if key.controller_value is None else str(key.controller_value),
            _describe_action(bound),
        )
    console.print(table)


def run(manager: MIDIManager, console: Console) -> None:
    manager.update()
    if not manager.is_running:
        console.print("[yellow]No referenced MIDI devices are connected; waiting for devices...[/yellow]")

    poll_interval = manager.settings.poll_interval
    last_poll = time.monotonic()
    try:
        while True:
            manager.process_events()
            now = time.monotonic()
            if now - last_poll >= poll_interval:
                last_poll = now
                if manager.refresh_devices():
                    manager.update()
            time.sleep(0.001)
    except KeyboardInterrupt:
        console.print("Stopping...")
    finally:
        manager.stop()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Route MIDI controller input to application actions")
    parser.add_argument(
        "--config-root",
        type=Path,
        default=DEFAULT_CONFIG_ROOT,
        help=f"Directory holding the MIDI and Loupedeck+ layouts (default: {DEFAULT_CONFIG_ROOT})",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--debug-module",
        action="append",
        default=[],
        metavar="MODULE",
        help="Enable debug logging for one module only, e.g. midiroute.dispatcher (repeatable)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("devices", help="List MIDI input ports")
    bindings_parser = subparsers.add_parser("bindings", help="Show the compiled action index")
    bindings_parser.add_argument("--app", help="Only show bindings for this application ID")
    run_parser = subparsers.add_parser("run", help="Route MIDI input until interrupted")
    run_parser.add_argument(
        "--virtual-source",
        action="append",
        default=[],
        help="Offer a virtual MIDI input with this name (repeatable)",
    )

    args = parser.parse_args(argv)

    setup_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        module_levels={name: logging.DEBUG for name in args.debug_module},
    )
    console = Console()

    if args.command == "devices":
        list_devices(console)
        return

    settings = ManagerSettings(
        config_root=args.config_root,
        virtual_sources=getattr(args, "virtual_source", []),
    )
    manager = MIDIManager(settings)

    if args.command == "bindings":
        show_bindings(manager, console, args.app)
    elif args.command == "run":
        run(manager, console)


if __name__ == "__main__":
    main()
