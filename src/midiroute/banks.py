"""
Bank-switch actions.

A BankSwitcher is an action handler: bindings can target it with an action
payload of {"id": 3}, {"id": "next"} or {"id": "previous"}. Each switch writes
the new bank to the Active Bank Context for the resolved frontmost
application and posts a notification.
"""

from typing import Any, Callable, Optional, Union

from midiroute.config import BANK_LABEL_KEY
from midiroute.logging_config import get_logger
from midiroute.preferences import PreferenceKey
from midiroute.resolver import BankContextResolver

logger = get_logger(__name__)

Notifier = Callable[[str], None]

NEXT = "next"
PREVIOUS = "previous"

MIDI_BANKS_HANDLER_ID = "global_midibanks"
LOUPEDECK_BANKS_HANDLER_ID = "global_loupedeckbanks"


def log_notification(message: str) -> None:
    """Default notifier: log at INFO."""
    logger.info(message)


class BankSwitcher:
    """
    Switches the active bank of the frontmost application.

    Args:
        title: Surface name used in notifications and choices (e.g. "MIDI")
        tree: Returns the preference tree (for bank labels)
        active_banks: Persisted application -> bank ID map
        resolver: Resolver used to pick the application the switch applies to
        frontmost_application: Returns the frontmost application ID
        number_of_banks: Highest bank number; next/previous wrap around it
        notify: Called with a short message after each switch
    """

    def __init__(
        self,
        title: str,
        tree: Callable[[], Any],
        active_banks: PreferenceKey,
        resolver: BankContextResolver,
        frontmost_application: Callable[[], Optional[str]],
        number_of_banks: int,
        notify: Optional[Notifier] = None,
    ):
        self.title = title
        self._tree = tree
        self._active_banks = active_banks
        self._resolver = resolver
        self._frontmost_application = frontmost_application
        self._number_of_banks = number_of_banks
        self._notify = notify or log_notification

    @property
    def number_of_banks(self) -> int:
        return self._number_of_banks

    def current_bank(self, application_id: Optional[str] = None) -> str:
        """Active bank of the given (or frontmost) application."""
        resolved = self._resolver.resolve_application(
            application_id if application_id is not None else self._frontmost_application(),
        )
        return self._resolver.active_bank(resolved)

    def select(self, bank: Union[int, str]) -> str:
        """Select a bank by number."""
        return self._switch(int(bank))

    def next(self) -> str:
        """Select the next bank, wrapping to 1 after the last."""
        return self._switch(NEXT)

    def previous(self) -> str:
        """Select the previous bank, wrapping to the last before 1."""
        return self._switch(PREVIOUS)

    def execute(self, action: Any) -> Optional[str]:
        """
        Action-handler entry point.

        Args:
            action: {"id": <bank number> | "next" | "previous"}

        Returns:
            The new bank ID, or None if the payload was not understood
        """
        bank = action.get("id") if isinstance(action, dict) else action
        if bank in (NEXT, PREVIOUS):
            return self._switch(bank)
        try:
            return self._switch(int(bank))
        except (TypeError, ValueError):
            logger.warning(f"Unknown bank action: {action!r}")
            return None

    def choices(self) -> list[dict[str, Any]]:
        """Actions offered to action choosers."""
        choices = [
            {"text": f"{self.title} Bank {i}", "params": {"id": i}}
            for i in range(1, self._number_of_banks + 1)
        ]
        choices.append({"text": f"Next {self.title} Bank", "params": {"id": NEXT}})
        choices.append({"text": f"Previous {self.title} Bank", "params": {"id": PREVIOUS}})
        return choices

    def _switch(self, target: Union[int, str]) -> str:
        application_id = self._resolver.resolve_application(self._frontmost_application())
        active_banks = dict(self._active_banks() or {})

        try:
            current = int(active_banks.get(application_id) or 1)
        except (TypeError, ValueError):
            current = 1

        if target == NEXT:
            new_bank = 1 if current >= self._number_of_banks else current + 1
        elif target == PREVIOUS:
            new_bank = self._number_of_banks if current <= 1 else current - 1
        else:
            new_bank = target

        bank_id = str(new_bank)
        active_banks[application_id] = bank_id
        self._active_banks.set(active_banks)

        label = self._bank_label(application_id, bank_id)
        logger.debug(f"{self.title} bank for '{application_id}' set to {bank_id}")
        try:
            self._notify(f"{self.title} Bank: {label}")
        except Exception as e:
            logger.exception(f"Error posting bank notification: {e}")
        return bank_id

    def _bank_label(self, application_id: str, bank_id: str) -> str:
        tree = self._tree() or {}
        bank = tree.get(application_id, {}).get(bank_id) if isinstance(tree.get(application_id), dict) else None
        if isinstance(bank, dict) and bank.get(BANK_LABEL_KEY):
            return str(bank[BANK_LABEL_KEY])
        return bank_id
