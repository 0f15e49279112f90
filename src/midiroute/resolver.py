"""
Bank/Context Resolver.

Determines which (application_id, bank_id) pair an incoming message is
looked up under, given the frontmost application and the message itself.
"""

from typing import Any, Callable, NamedTuple, Optional

from midiroute.config import ALL_APPLICATIONS, DEFAULT_BANK, is_ignored
from midiroute.logging_config import get_logger
from midiroute.messages import CommandType, MIDIMetadata
from midiroute.plugin import ModifierKey

logger = get_logger(__name__)

TreeProvider = Callable[[], Any]
ActiveBanksProvider = Callable[[], Optional[dict[str, str]]]


class BankContext(NamedTuple):
    application_id: str
    bank_id: str


class BankContextResolver:
    """
    Resolves the application and bank a message should be looked up under.

    Each resolver reads one preference tree and one active-bank map. A
    resolver constructed with a ModifierKey also tracks whether that key is
    held; the state belongs to the instance, not to the process.
    """

    def __init__(
        self,
        tree: TreeProvider,
        active_banks: ActiveBanksProvider,
        modifier: Optional[ModifierKey] = None,
    ):
        """
        Args:
            tree: Returns the preference tree used for application fallback
            active_banks: Returns the application -> bank ID map
            modifier: Optional bank modifier key
        """
        self._tree = tree
        self._active_banks = active_banks
        self._modifier = modifier
        self._modifier_pressed = False

    @property
    def modifier_pressed(self) -> bool:
        return self._modifier_pressed

    def reset(self) -> None:
        """Release the modifier (e.g. when devices are closed)."""
        self._modifier_pressed = False

    def resolve_application(self, application_id: Optional[str]) -> str:
        """
        Application ID to use for lookups.

        Falls back to "All Applications" when the tree has no entry for the
        application or the entry is flagged ignore.
        """
        tree = self._tree() or {}
        if not application_id or application_id not in tree:
            return ALL_APPLICATIONS
        if is_ignored(tree, application_id):
            return ALL_APPLICATIONS
        return application_id

    def active_bank(self, application_id: str) -> str:
        """Active bank for an (already resolved) application, default "1"."""
        active_banks = self._active_banks() or {}
        bank_id = active_banks.get(application_id)
        return str(bank_id) if bank_id else DEFAULT_BANK

    def resolve(
        self,
        application_id: Optional[str],
        command_type: CommandType,
        metadata: MIDIMetadata,
    ) -> BankContext:
        """
        Resolve the lookup context for one message.

        Messages from the modifier key itself update the held state and are
        resolved against the plain bank; every other message gets the
        modifier's bank suffix while the key is held.
        """
        resolved_application = self.resolve_application(application_id)
        bank_id = self.active_bank(resolved_application)

        if self._modifier is not None:
            if self._modifier.matches(metadata.channel, metadata.note):
                if command_type == CommandType.NOTE_ON and metadata.velocity != 0:
                    self._modifier_pressed = True
                elif command_type in (CommandType.NOTE_ON, CommandType.NOTE_OFF):
                    # Note on with velocity 0 is a release
                    self._modifier_pressed = False
                logger.debug(f"Modifier pressed: {self._modifier_pressed}")
            elif self._modifier_pressed:
                bank_id = f"{bank_id}{self._modifier.bank_suffix}"

        return BankContext(resolved_application, bank_id)
