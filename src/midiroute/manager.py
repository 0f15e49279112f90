"""
MIDI Manager - user-facing interface for midiroute.

The MIDIManager wires the preference store, the Action Compiler, the
Bank/Context Resolvers, the Event Dispatcher and the device watchers
together, and exposes the operations the host needs: start/stop/update,
process_events() for the host loop, bank switching and binding queries.
"""

from typing import Any, Callable, Optional

from midiroute.banks import LOUPEDECK_BANKS_HANDLER_ID, MIDI_BANKS_HANDLER_ID, BankSwitcher, Notifier
from midiroute.callbacks import DispatchQueue
from midiroute.compiler import CompiledActionIndex, compile_actions, referenced_devices
from midiroute.config import ConfigurationError, ManagerSettings
from midiroute.controls import ControlRegistry
from midiroute.dispatcher import EventDispatcher, FrontmostApplication
from midiroute.logging_config import get_logger
from midiroute.messages import CommandType, MIDIMetadata
from midiroute.midi_io import DeviceManager, DeviceRegistry, DeviceWatcher, OpenInput
from midiroute.migration import migrate_legacy_layout
from midiroute.preferences import JSONPreference, SettingsStore
from midiroute.plugins.loupedeck_plus import LoupedeckPlusPlugin
from midiroute.registry import ActionHandlerRegistry, ControlGroupHandler
from midiroute.resolver import BankContextResolver

logger = get_logger(__name__)


class MIDIManager:
    """
    Main API for MIDI action routing.

    Provides:
    - Persisted MIDI and Loupedeck+ layouts with one-time legacy migration
    - Automatic recompilation of the action index on every layout change
    - Device watchers for the devices bindings reference
    - Deferred, error-isolated action dispatch
    - Bank switching per application

    Example:
        >>> manager = MIDIManager(ManagerSettings(config_root=path), frontmost_application=get_bundle_id)
        >>> manager.enabled(True)
        >>> while True:
        ...     manager.process_events()
    """

    def __init__(
        self,
        settings: ManagerSettings,
        frontmost_application: Optional[FrontmostApplication] = None,
        handlers: Optional[ActionHandlerRegistry] = None,
        controls: Optional[ControlRegistry] = None,
        notify: Optional[Notifier] = None,
        open_input: Optional[OpenInput] = None,
        list_inputs: Optional[Callable[[], list[str]]] = None,
    ):
        """
        Initialize the manager.

        Args:
            settings: Static settings (paths, bank count, virtual sources)
            frontmost_application: Returns the frontmost application ID.
                If None, every event resolves to "All Applications".
            handlers: Action-handler registry (a new one is created if None)
            controls: Virtual control registry (a new one is created if None)
            notify: Called with a short message after bank switches
            open_input: Port factory, defaults to mido.open_input
            list_inputs: Input port enumerator, defaults to mido.get_input_names

        Raises:
            ConfigurationError: If config_root exists but is not a directory
        """
        if settings.config_root.exists() and not settings.config_root.is_dir():
            raise ConfigurationError(f"config_root is not a directory: {settings.config_root}")

        self._settings = settings
        self._frontmost_application = frontmost_application or (lambda: None)
        self.handlers = handlers or ActionHandlerRegistry()
        self.controls = controls or ControlRegistry()
        self.loupedeck = LoupedeckPlusPlugin()
        self.learning_mode = False

        # Persisted state
        self._store = SettingsStore(settings.settings_file)
        self.enabled = self._store.prop("enableMIDI", False)
        self.enabled_loupedeck = self._store.prop("enableLoupedeck", False)
        self.active_banks = self._store.prop("midi.activeBanks", {})
        self.active_loupedeck_banks = self._store.prop("loupedeckplus.activeBanks", {})

        self.items = JSONPreference(settings.midi_settings_path, default=settings.midi_default_layout)
        self.loupedeck_items = JSONPreference(
            settings.loupedeck_settings_path,
            default=settings.loupedeck_default_layout,
        )
        self._migrate()

        # Compiled index, replaced wholesale on every layout change
        self._index = CompiledActionIndex()
        self.items.watch(self._on_layout_changed)
        self.loupedeck_items.watch(self._on_layout_changed)

        # Resolution and dispatch
        self.resolver = BankContextResolver(self.items.peek, self.active_banks.peek)
        self.loupedeck_resolver = BankContextResolver(
            self.loupedeck_items.peek,
            self.active_loupedeck_banks.peek,
            modifier=self.loupedeck.modifier,
        )
        self.queue = DispatchQueue()
        self.dispatcher = EventDispatcher(
            index=lambda: self._index,
            resolver=self.resolver,
            surface_resolvers={self.loupedeck.device_name: self.loupedeck_resolver},
            controls=self.controls,
            handlers=self.handlers,
            queue=self.queue,
            frontmost_application=self._frontmost_application,
            learning_mode=lambda: self.learning_mode,
        )

        # Devices
        self.device_registry = DeviceRegistry(settings.virtual_sources, list_inputs=list_inputs)
        self._devices = DeviceManager(
            on_message=self.dispatcher.dispatch,
            registry=self.device_registry,
            merge_fourteen_bit=settings.merge_fourteen_bit,
            open_input=open_input,
            merge_exempt={self.loupedeck.device_name},
        )

        # Bank actions
        self.midi_banks = BankSwitcher(
            "MIDI",
            self.items.peek,
            self.active_banks,
            self.resolver,
            self._frontmost_application,
            settings.number_of_banks,
            notify,
        )
        self.loupedeck_banks = BankSwitcher(
            "Loupedeck+",
            self.loupedeck_items.peek,
            self.active_loupedeck_banks,
            self.loupedeck_resolver,
            self._frontmost_application,
            settings.number_of_banks,
            notify,
        )
        self.handlers.add_handler(MIDI_BANKS_HANDLER_ID, self.midi_banks)
        self.handlers.add_handler(LOUPEDECK_BANKS_HANDLER_ID, self.loupedeck_banks)

        self.enabled.watch(lambda _: self.update())
        self.enabled_loupedeck.watch(lambda _: self.update())

        self.device_registry.refresh()
        self.compile()

    # Properties

    @property
    def settings(self) -> ManagerSettings:
        return self._settings

    @property
    def index(self) -> CompiledActionIndex:
        """The current compiled action index."""
        return self._index

    @property
    def is_running(self) -> bool:
        return bool(self._devices.watched_devices)

    # Compilation

    def compile(self) -> CompiledActionIndex:
        """
        Rebuild the compiled action index from the current layouts.

        The new index is built completely before it replaces the old one.
        """
        index = compile_actions(self.items.get(), self.loupedeck_items.get(), self.loupedeck)
        self._index = index
        logger.debug(f"Action index rebuilt ({len(index)} entries)")
        return index

    def _on_layout_changed(self, _value: Any) -> None:
        self.compile()

    # Dispatch

    def dispatch(
        self,
        device_name: str,
        command_type: CommandType,
        metadata: MIDIMetadata,
        description: str = "",
    ):
        """Handle one MIDI message (the callback attached to every device watcher)."""
        return self.dispatcher.dispatch(device_name, command_type, metadata, description)

    def process_events(self) -> int:
        """
        Process pending MIDI input, then run the deferred actions it produced.

        Call this regularly from the host loop.

        Returns:
            Number of MIDI messages processed
        """
        count = self._devices.process_pending_messages()
        self.queue.process_pending()
        return count

    # Device lifecycle

    def used_devices(self) -> set[str]:
        """Device names referenced by bindings (plus the Loupedeck+ when enabled)."""
        devices = referenced_devices(self.items.get())
        if self.enabled_loupedeck():
            devices.add(self.loupedeck.device_name)
        return devices

    def start(self) -> list[str]:
        """
        Open watchers for referenced devices that are not already watched.

        Returns:
            Names of the devices opened by this call
        """
        return self._devices.start(self.used_devices())

    def stop(self) -> None:
        """Close every device watcher."""
        self._devices.stop()
        self.loupedeck_resolver.reset()

    def update(self) -> None:
        """Start when MIDI or Loupedeck+ support is enabled, otherwise stop."""
        if self.enabled() or self.enabled_loupedeck():
            self.start()
        else:
            self.stop()

    def refresh_devices(self) -> bool:
        """Poll the MIDI subsystem for the device list. Does not open watchers."""
        return self.device_registry.refresh()

    def devices(self) -> list[str]:
        """Physical MIDI device names."""
        return self.device_registry.physical

    def virtual_devices(self) -> list[str]:
        """Virtual MIDI source names."""
        return self.device_registry.virtual

    def get_device(self, device_name: str, virtual: bool = False) -> Optional[DeviceWatcher]:
        """Get the open watcher for a device, or None."""
        return self._devices.get_device(device_name, virtual)

    # Virtual controls

    def register_control_groups(self) -> list[str]:
        """
        Register one action handler per virtual control group.

        Call after all virtual controls are registered.

        Returns:
            Handler IDs registered
        """
        registered = []
        for group in self.controls.all_groups():
            handler = ControlGroupHandler(group, self.controls)
            self.handlers.add_handler(handler.handler_id, handler)
            registered.append(handler.handler_id)
        return registered

    # Queries

    def get_binding(self, application_id: str, bank_id: str, button_id: str, field: str) -> Any:
        """Read one field of a MIDI binding record, or None if any level is missing."""
        return _get_field(self.items.get(), application_id, bank_id, button_id, field)

    def get_loupedeck_binding(self, application_id: str, bank_id: str, button_id: str, field: str) -> Any:
        """Read one field of a Loupedeck+ binding record, or None if any level is missing."""
        return _get_field(self.loupedeck_items.get(), application_id, bank_id, button_id, field)

    # Migration

    def _migrate(self) -> None:
        migrate_legacy_layout(
            self._settings.midi_legacy_path,
            self.items,
            self._store.prop("midi.updatedPreferencesToV2", False),
            clear_none_values=True,
        )
        migrate_legacy_layout(
            self._settings.loupedeck_legacy_path,
            self.loupedeck_items,
            self._store.prop("loupedeckplus.updatedPreferencesToV2", False),
        )

    # Context manager support

    def __enter__(self):
        self.update()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False


def _get_field(tree: Any, application_id: str, bank_id: str, button_id: str, field: str) -> Any:
    app = tree.get(application_id) if isinstance(tree, dict) else None
    bank = app.get(bank_id) if isinstance(app, dict) else None
    button = bank.get(button_id) if isinstance(bank, dict) else None
    return button.get(field) if isinstance(button, dict) else None
