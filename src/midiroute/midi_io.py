"""
MIDI device registry and device watchers.

Watchers are only opened for devices that bindings actually reference. A
background thread reads all open ports and queues raw messages; translation
and dispatch happen on the host thread in process_pending_messages(), so
the dispatcher only ever runs on one thread.
"""

import queue
import threading
import time
from typing import Callable, NamedTuple, Optional

import mido

from midiroute.dispatcher import VIRTUAL_DEVICE_PREFIX, virtual_device_name
from midiroute.logging_config import get_logger
from midiroute.messages import CommandType, FourteenBitMerger, MIDIMetadata, translate_message

logger = get_logger(__name__)

MessageCallback = Callable[[str, CommandType, MIDIMetadata, str], None]
DevicesChangedCallback = Callable[[list[str], list[str]], None]
OpenInput = Callable[..., mido.ports.BaseInput]


class DeviceRegistry:
    """
    Known physical MIDI inputs and virtual source names.

    Physical names come from mido; virtual names are configured. The
    registry only records what exists: it never opens or closes watchers.
    """

    def __init__(
        self,
        virtual_sources: Optional[list[str]] = None,
        list_inputs: Optional[Callable[[], list[str]]] = None,
    ):
        self._list_inputs = list_inputs or mido.get_input_names
        self._physical: list[str] = []
        self._virtual: list[str] = list(virtual_sources or [])
        self._callbacks: list[DevicesChangedCallback] = []
        self._lock = threading.RLock()

    @property
    def physical(self) -> list[str]:
        with self._lock:
            return list(self._physical)

    @property
    def virtual(self) -> list[str]:
        with self._lock:
            return list(self._virtual)

    @property
    def count(self) -> int:
        """Total number of known devices, physical and virtual."""
        with self._lock:
            return len(self._physical) + len(self._virtual)

    def on_change(self, callback: DevicesChangedCallback) -> None:
        """Register a callback fired with (physical, virtual) when the device list changes."""
        self._callbacks.append(callback)

    def all_device_names(self) -> list[str]:
        """Physical names followed by "virtual_"-prefixed virtual names."""
        with self._lock:
            return list(self._physical) + [virtual_device_name(name) for name in self._virtual]

    def refresh(self) -> bool:
        """
        Poll mido for the current input ports.

        Returns:
            True if the device list changed
        """
        try:
            physical = list(dict.fromkeys(self._list_inputs()))
        except Exception as e:
            logger.error(f"Failed to list MIDI input ports: {e}")
            return False
        return self.update(physical, self.virtual)

    def update(self, physical: list[str], virtual: list[str]) -> bool:
        """
        Record a new device list (device-change notification entry point).

        Returns:
            True if the list differs from the previous one
        """
        with self._lock:
            changed = physical != self._physical or virtual != self._virtual
            self._physical = list(physical)
            self._virtual = list(virtual)

        if changed:
            logger.debug(
                f"MIDI devices updated ({len(physical)} physical, {len(virtual)} virtual, "
                f"{len(physical) + len(virtual)} total)",
            )
            for callback in list(self._callbacks):
                try:
                    callback(list(physical), list(virtual))
                except Exception as e:
                    logger.exception(f"Error in device change callback: {e}")
        return changed


class _RawMessage(NamedTuple):
    device_name: str
    is_virtual: bool
    message: mido.Message


class DeviceWatcher:
    """An open input port for one physical device or virtual source."""

    def __init__(self, device_name: str, port: mido.ports.BaseInput, is_virtual: bool = False):
        """
        Args:
            device_name: Device name as used in bindings ("virtual_" prefix included for virtual sources)
            port: Open mido input port
            is_virtual: Whether the port is a virtual source
        """
        self.device_name = device_name
        self.port = port
        self.is_virtual = is_virtual
        self.merger = FourteenBitMerger()

    @property
    def port_name(self) -> str:
        """Name of the port as the MIDI subsystem knows it."""
        if self.is_virtual:
            return self.device_name[len(VIRTUAL_DEVICE_PREFIX):]
        return self.device_name

    def close(self) -> None:
        self.port.close()


def _default_open_input(name: str, virtual: bool = False) -> mido.ports.BaseInput:
    if virtual:
        return mido.open_input(name, virtual=True)
    return mido.open_input(name)


class DeviceManager:
    """
    Opens and closes device watchers, and funnels their input to one callback.

    Uses a background thread to read MIDI input without blocking, queuing
    messages for processing by the host thread.
    """

    def __init__(
        self,
        on_message: MessageCallback,
        registry: DeviceRegistry,
        merge_fourteen_bit: bool = False,
        open_input: Optional[OpenInput] = None,
        merge_exempt: Optional[set[str]] = None,
    ):
        """
        Args:
            on_message: Callback(device_name, command_type, metadata, description)
            registry: Known devices
            merge_fourteen_bit: Merge coarse/fine CC pairs into 14-bit values
            open_input: Port factory (name, virtual=False) -> input port
            merge_exempt: Devices never merged, such as surfaces whose relative
                encoders use CC 0-31 with plain 7-bit values
        """
        self._on_message = on_message
        self._registry = registry
        self._merge_fourteen_bit = merge_fourteen_bit
        self._merge_exempt = set(merge_exempt or ())
        self._open_input = open_input or _default_open_input

        self._watchers: dict[str, DeviceWatcher] = {}
        self._port_lock = threading.Lock()

        self._running = threading.Event()
        self._input_thread: Optional[threading.Thread] = None
        self._message_queue: queue.Queue[_RawMessage] = queue.Queue(maxsize=1000)

        self._dropped_messages = 0
        self._processed_messages = 0

    @property
    def watched_devices(self) -> list[str]:
        with self._port_lock:
            return sorted(self._watchers)

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    def get_device(self, device_name: str, virtual: bool = False) -> Optional[DeviceWatcher]:
        """Get the watcher for a device, if one is open."""
        if virtual:
            device_name = virtual_device_name(device_name)
        with self._port_lock:
            return self._watchers.get(device_name)

    def start(self, used_devices: set[str]) -> list[str]:
        """
        Open watchers for known devices that bindings reference.

        Devices already watched are left alone. A device that fails to open
        stays unopened until the next start().

        Args:
            used_devices: Device names referenced by bindings

        Returns:
            Names of the devices opened by this call
        """
        opened = []
        for device_name in self._registry.all_device_names():
            if device_name not in used_devices:
                continue
            with self._port_lock:
                if device_name in self._watchers:
                    continue

            is_virtual = device_name.startswith(VIRTUAL_DEVICE_PREFIX)
            port_name = device_name[len(VIRTUAL_DEVICE_PREFIX):] if is_virtual else device_name
            try:
                port = self._open_input(port_name, virtual=is_virtual)
            except Exception as e:
                logger.error(f"Failed to open MIDI device '{device_name}': {e}")
                continue

            with self._port_lock:
                self._watchers[device_name] = DeviceWatcher(device_name, port, is_virtual)
            opened.append(device_name)
            kind = "Virtual MIDI Source" if is_virtual else "Physical MIDI"
            logger.info(f"Created {kind} Watcher: {device_name}")

        if self._watchers and not self._running.is_set():
            self._running.set()
            self._input_thread = threading.Thread(target=self._input_loop, daemon=True, name="MIDIInputThread")
            self._input_thread.start()
            logger.debug("Started MIDI input thread")

        return opened

    def stop(self) -> None:
        """Stop the input thread and close every watcher."""
        if self._input_thread and self._input_thread.is_alive():
            logger.debug("Stopping MIDI input thread...")
            self._running.clear()
            self._input_thread.join(timeout=2.0)

            if self._input_thread.is_alive():
                logger.warning("Input thread did not stop gracefully")

        self._input_thread = None
        self._running.clear()

        with self._port_lock:
            watchers = list(self._watchers.values())
            self._watchers.clear()

        for watcher in watchers:
            try:
                watcher.close()
                logger.info(f"Closed MIDI device: {watcher.device_name}")
            except Exception as e:
                logger.error(f"Error closing MIDI device '{watcher.device_name}': {e}")

        # Drop input that arrived after the last processing pass
        while True:
            try:
                self._message_queue.get_nowait()
            except queue.Empty:
                break

        logger.debug(f"MIDI devices closed. Stats: {self.get_stats()}")

    def _input_loop(self) -> None:
        """
        Background thread: read MIDI input from all watchers and queue it.

        Uses iter_pending() for non-blocking reads with low latency.
        """
        logger.debug("MIDI input loop started")

        while self._running.is_set():
            try:
                with self._port_lock:
                    watchers = list(self._watchers.values())

                for watcher in watchers:
                    for msg in watcher.port.iter_pending():
                        self.enqueue(watcher.device_name, msg, watcher.is_virtual)

                time.sleep(0.001)

            except Exception as e:
                logger.exception(f"Error in MIDI input loop: {e}")

        logger.debug("MIDI input loop stopped")

    def enqueue(self, device_name: str, msg: mido.Message, is_virtual: bool = False) -> bool:
        """
        Queue a raw message as if it arrived from a device.

        Args:
            device_name: Watched device name ("virtual_" prefix included for virtual sources)
            msg: mido message
            is_virtual: Whether it came from a virtual source

        Returns:
            True if queued, False if the queue was full
        """
        try:
            self._message_queue.put_nowait(_RawMessage(device_name, is_virtual, msg))
            return True
        except queue.Full:
            self._dropped_messages += 1
            if self._dropped_messages % 100 == 1:
                logger.warning(f"Dropped {self._dropped_messages} MIDI messages (queue full)")
            return False

    def process_pending_messages(self) -> int:
        """
        Translate and hand off all queued messages (call from the host thread).

        Returns:
            Number of messages processed
        """
        count = 0

        while True:
            try:
                raw = self._message_queue.get_nowait()
            except queue.Empty:
                break

            try:
                self._handle(raw)
                self._processed_messages += 1
                count += 1
            except Exception as e:
                logger.exception(f"Error processing MIDI message: {e}")

        return count

    def _handle(self, raw: _RawMessage) -> None:
        translated = translate_message(raw.message, is_virtual=raw.is_virtual)
        if translated is None:
            return
        command_type, metadata = translated

        if self._merge_fourteen_bit and raw.device_name not in self._merge_exempt:
            with self._port_lock:
                watcher = self._watchers.get(raw.device_name)
            if watcher is not None:
                metadata = watcher.merger.merge(command_type, metadata)

        # The dispatcher adds the virtual prefix from metadata.is_virtual
        device_name = raw.device_name
        if raw.is_virtual and device_name.startswith(VIRTUAL_DEVICE_PREFIX):
            device_name = device_name[len(VIRTUAL_DEVICE_PREFIX):]

        logger.debug(f"Received MIDI message from {device_name}: {raw.message}")
        self._on_message(device_name, command_type, metadata, str(raw.message))

    def get_stats(self) -> dict[str, int]:
        return {
            "processed": self._processed_messages,
            "dropped": self._dropped_messages,
            "queued": self._message_queue.qsize(),
            "watchers": len(self._watchers),
        }

    @staticmethod
    def list_input_ports() -> list[str]:
        """
        List available MIDI input ports.

        Returns:
            List of input port names
        """
        try:
            return mido.get_input_names()
        except Exception as e:
            logger.error(f"Failed to list input ports: {e}")
            return []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
