"""
One-time migration of legacy flat-group layouts.

Older layouts stored banks under group IDs such as "fcpx3" or "global1".
These are split into (application ID, bank ID):

    "fcpx3"   -> ("com.apple.FinalCut", "3")
    "global1" -> ("All Applications", "1")

Migration runs only when the new layout file does not exist yet, the legacy
file exists, and the persisted completion flag is not set.
"""

import copy
import json
from pathlib import Path
from typing import Any, Optional

from midiroute.config import ALL_APPLICATIONS, FINAL_CUT_PRO_BUNDLE_ID
from midiroute.logging_config import get_logger
from midiroute.preferences import JSONPreference, PreferenceError, PreferenceKey

logger = get_logger(__name__)

LEGACY_GROUP_PREFIXES: dict[str, str] = {
    "fcpx": FINAL_CUT_PRO_BUNDLE_ID,
    "global": ALL_APPLICATIONS,
}

# Older editors stored the literal "None" where no value was chosen
LEGACY_NONE_VALUE = "None"


def split_group_id(group_id: str) -> Optional[tuple[str, str]]:
    """
    Split a legacy group ID into (application_id, bank_id).

    Returns:
        The pair, or None for an unknown prefix or a missing bank number
    """
    for prefix, application_id in LEGACY_GROUP_PREFIXES.items():
        if group_id.startswith(prefix):
            bank_id = group_id[len(prefix):]
            if not bank_id:
                return None
            return application_id, bank_id
    return None


def convert_legacy_layout(legacy: dict[str, Any], clear_none_values: bool = False) -> dict[str, Any]:
    """
    Convert a legacy group-keyed layout into the application/bank tree.

    Args:
        legacy: Legacy layout (group ID -> bank of button records)
        clear_none_values: Replace value == "None" with "" in button records

    Returns:
        New preference tree
    """
    new_data: dict[str, Any] = {}
    for group_id, data in legacy.items():
        split = split_group_id(group_id)
        if split is None:
            logger.warning(f"Skipping legacy group with unknown ID: {group_id}")
            continue
        if not isinstance(data, dict):
            continue

        application_id, bank_id = split
        bank = copy.deepcopy(data)

        if clear_none_values:
            for record in bank.values():
                if isinstance(record, dict) and record.get("value") == LEGACY_NONE_VALUE:
                    record["value"] = ""

        new_data.setdefault(application_id, {})[bank_id] = bank
    return new_data


def migrate_legacy_layout(
    legacy_path: Path,
    target: JSONPreference,
    completed: PreferenceKey,
    clear_none_values: bool = False,
) -> bool:
    """
    Migrate a legacy layout file into the target preference, at most once.

    Args:
        legacy_path: Path of the legacy layout file
        target: Preference the converted tree is written to
        completed: Persisted flag set once migration succeeds
        clear_none_values: Replace value == "None" with "" in button records

    Returns:
        True if a migration was performed
    """
    if target.exists() or completed():
        return False

    legacy_path = Path(legacy_path)
    if not legacy_path.exists():
        return False

    try:
        with open(legacy_path, encoding="utf-8") as f:
            legacy = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read legacy layout {legacy_path}, skipping migration: {e}")
        return False

    if not isinstance(legacy, dict):
        logger.warning(f"Legacy layout {legacy_path} is not an object, skipping migration")
        return False

    new_data = convert_legacy_layout(legacy, clear_none_values=clear_none_values)

    try:
        target.set(new_data)
        completed.set(True)
    except PreferenceError as e:
        logger.error(f"Could not save migrated layout: {e}")
        return False

    logger.info(f"Converted legacy layout {legacy_path.name} to {target.path.name}")
    return True
