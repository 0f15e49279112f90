#!/usr/bin/env python3
"""
Demo script for midiroute.

This script demonstrates:
- Writing a small MIDI layout with two banks for "All Applications"
- Binding a Loupedeck+ knob (aliased across its display modes)
- Registering an action handler and a virtual control
- Switching banks with a MIDI button
- Processing MIDI input in the host loop

Bindings in this demo:
- Any device named by --device, channel 1:
    Note 36        -> print "play" (bank 1) / print "stop" (bank 2)
    Note 37        -> next MIDI bank
    CC 1 (14-bit)  -> "fader" virtual control, prints the 14-bit value
- Loupedeck+ knob 3 left/right -> print "nudge left"/"nudge right"
"""

import argparse
import logging
import tempfile
import time
from pathlib import Path

from midiroute.config import ALL_APPLICATIONS, ManagerSettings
from midiroute.logging_config import get_logger, set_module_level, setup_logging
from midiroute.manager import MIDIManager
from midiroute.messages import MIDIMetadata

setup_logging(level=logging.INFO)

logger = get_logger(__name__)

set_module_level("midiroute.dispatcher", logging.DEBUG)


class PrintHandler:
    """Action handler that prints the action payload."""

    def execute(self, action):
        print(f"[ACTION] {action}")


def on_fader(metadata: MIDIMetadata, device_name: str) -> None:
    value = metadata.fourteen_bit_value if metadata.fourteen_bit_command else metadata.controller_value
    print(f"[FADER] {device_name} ch{metadata.channel + 1} -> {value}")


def create_layout(device: str) -> dict:
    """Two banks of bindings for one device."""
    return {
        ALL_APPLICATIONS: {
            "1": {
                "bankLabel": "Transport",
                "1": {"device": device, "channel": 0, "commandType": "noteOn", "number": 36,
                      "action": "play", "handlerID": "demo_print"},
                "2": {"device": device, "channel": 0, "commandType": "noteOn", "number": 37,
                      "action": {"id": "next"}, "handlerID": "global_midibanks"},
                "3": {"device": device, "channel": 0, "commandType": "controlChange", "number": 1,
                      "action": {"id": "fader"}, "handlerID": "demo_midicontrols"},
            },
            "2": {
                "bankLabel": "Stop Only",
                "1": {"device": device, "channel": 0, "commandType": "noteOn", "number": 36,
                      "action": "stop", "handlerID": "demo_print"},
                "2": {"device": device, "channel": 0, "commandType": "noteOn", "number": 37,
                      "action": {"id": "next"}, "handlerID": "global_midibanks"},
            },
        },
    }


def create_loupedeck_layout() -> dict:
    return {
        ALL_APPLICATIONS: {
            "1": {
                "3Left": {"action": "nudge left", "handlerID": "demo_print"},
                "3Right": {"action": "nudge right", "handlerID": "demo_print"},
            },
        },
    }


def main():
    parser = argparse.ArgumentParser(description="midiroute demo")
    parser.add_argument("--device", required=True, help="MIDI input port name to bind")
    args = parser.parse_args()

    config_root = Path(tempfile.mkdtemp(prefix="midiroute-demo-"))
    print(f"\n1. Using config root {config_root}")

    settings = ManagerSettings(
        config_root=config_root,
        number_of_banks=2,
        merge_fourteen_bit=True,
        midi_default_layout=create_layout(args.device),
        loupedeck_default_layout=create_loupedeck_layout(),
    )

    print("\n2. Creating manager...")
    manager = MIDIManager(settings, notify=lambda message: print(f"[NOTIFY] {message}"))
    manager.handlers.add_handler("demo_print", PrintHandler())
    manager.controls.new("fader", group="demo", text="Demo Fader", fn=on_fader)
    manager.register_control_groups()
    print(f"   Compiled {len(manager.index)} actions")

    print("\n3. Enabling MIDI and Loupedeck+ support...")
    manager.enabled(True)
    manager.enabled_loupedeck(True)
    if manager.is_running:
        print(f"   Watching: {', '.join(sorted(manager.used_devices()))}")
    else:
        print(f"   {args.device} is not connected, nothing to watch yet")

    print("\nListening for events... (Press Ctrl+C to exit)")
    try:
        while True:
            manager.process_events()
            time.sleep(0.01)
    except KeyboardInterrupt:
        print("\n\nShutting down...")
    finally:
        manager.stop()
        print("Demo complete!")


if __name__ == "__main__":
    main()
