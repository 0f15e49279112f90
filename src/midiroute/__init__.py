"""
midiroute: MIDI Action Routing

Binds physical and virtual MIDI controllers (and the Loupedeck+ surface) to
application actions. Per-application, per-bank bindings are compiled into a
flat lookup index, and every incoming message is resolved against the
frontmost application's active bank and dispatched to its bound action.
"""

__version__ = "0.1.0"

# Main API
from .manager import MIDIManager

# Configuration models
from .config import (
    ALL_APPLICATIONS,
    ButtonPreference,
    ConfigurationError,
    LoupedeckButtonPreference,
    ManagerSettings,
)

# Routing core
from .compiler import (
    ActionKey,
    CompiledActionIndex,
    RegistryAction,
    VirtualControlAction,
    compile_actions,
)
from .dispatcher import EventDispatcher
from .resolver import BankContext, BankContextResolver
from .banks import BankSwitcher
from .callbacks import DispatchQueue
from .messages import CommandType, MIDIMetadata

# Registries
from .controls import ControlRegistry, VirtualControl
from .registry import ActionHandler, ActionHandlerRegistry

# Logging configuration
from .logging_config import (
    get_logger,
    set_module_level,
    setup_logging,
)

# Surface plugins
from .plugin import SurfacePlugin
from .plugins.loupedeck_plus import LoupedeckPlusPlugin

__all__ = [
    # Version
    "__version__",
    # Main API
    "MIDIManager",
    # Configuration models
    "ALL_APPLICATIONS",
    "ButtonPreference",
    "ConfigurationError",
    "LoupedeckButtonPreference",
    "ManagerSettings",
    # Routing core
    "ActionKey",
    "CompiledActionIndex",
    "RegistryAction",
    "VirtualControlAction",
    "compile_actions",
    "EventDispatcher",
    "BankContext",
    "BankContextResolver",
    "BankSwitcher",
    "DispatchQueue",
    "CommandType",
    "MIDIMetadata",
    # Registries
    "ControlRegistry",
    "VirtualControl",
    "ActionHandler",
    "ActionHandlerRegistry",
    # Logging configuration
    "setup_logging",
    "get_logger",
    "set_module_level",
    # Surface plugins
    "SurfacePlugin",
    "LoupedeckPlusPlugin",
]
