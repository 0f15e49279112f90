"""
Action-handler registry.

Bindings that do not target a virtual control name an action handler by
ID. The handler receives the binding's stored action payload through
execute(). Handlers are registered by the host (and by the manager for
bank switching).
"""

from typing import Any, Optional, Protocol, runtime_checkable

from midiroute.controls import ControlRegistry, virtual_control_handler_id
from midiroute.logging_config import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ActionHandler(Protocol):
    """Anything with an execute(action) method."""

    def execute(self, action: Any) -> Any: ...


class ActionHandlerRegistry:
    """
    Registry of action handlers by handler ID.

    Example:
        >>> registry = ActionHandlerRegistry()
        >>> registry.add_handler("fcpx_shortcuts", shortcuts_handler)
        >>> registry.get_handler("fcpx_shortcuts").execute({"id": "Cut"})
    """

    def __init__(self):
        self._handlers: dict[str, ActionHandler] = {}

    def add_handler(self, handler_id: str, handler: ActionHandler) -> ActionHandler:
        """
        Register a handler.

        Args:
            handler_id: Handler ID referenced by bindings
            handler: Object with an execute(action) method

        Returns:
            The handler, for chaining

        Raises:
            TypeError: If handler has no execute() method
        """
        if not isinstance(handler, ActionHandler):
            raise TypeError(f"Handler '{handler_id}' must implement execute(action)")

        if handler_id in self._handlers:
            logger.warning(f"Handler '{handler_id}' already registered, overwriting")

        self._handlers[handler_id] = handler
        logger.debug(f"Registered action handler: {handler_id}")
        return handler

    def remove_handler(self, handler_id: str) -> None:
        if handler_id in self._handlers:
            del self._handlers[handler_id]
            logger.debug(f"Unregistered action handler: {handler_id}")

    def get_handler(self, handler_id: Optional[str]) -> Optional[ActionHandler]:
        if handler_id is None:
            return None
        return self._handlers.get(handler_id)

    def list_handlers(self) -> list[str]:
        return list(self._handlers.keys())


class ControlGroupHandler:
    """
    Handler entry for a group of virtual controls.

    Virtual controls are invoked directly by the dispatcher, so execute() is
    a no-op; the handler exists so action choosers can list the group's
    controls and so bindings can name it.
    """

    def __init__(self, group: str, controls: ControlRegistry):
        self.group = group
        self._controls = controls

    @property
    def handler_id(self) -> str:
        return virtual_control_handler_id(self.group)

    def choices(self) -> list[dict[str, Any]]:
        """One choice per control in the group, with the action payload to store."""
        return [
            {"text": control.text, "subText": control.sub_text, "params": {"id": control.control_id}}
            for control in self._controls.get_all()
            if control.group == self.group
        ]

    def execute(self, action: Any) -> None:
        pass
