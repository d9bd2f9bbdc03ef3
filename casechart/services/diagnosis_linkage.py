"""Diagnosis Linkage Synchronizer.

Keeps the diagnosis list and its dependent collections (billing codes,
orders/referrals) consistent while the user edits diagnoses:

- The entry at index 0 is the primary diagnosis; ``is_primary`` is re-derived
  from position after every structural change.
- Every linked item points at a diagnosis currently on the list. Stale links
  are rewritten to the primary code (or emptied when there are no diagnoses).
- Removing a diagnosis never deletes linked items; they are relinked.

All functions mutate the lists they are given in place and report whether
anything changed so callers know when the record needs saving.
"""

import logging
from collections.abc import Iterable, MutableSequence, Sequence
from typing import Any

from casechart.schemas.case_record import DiagnosisEntry, LinkableEntry

logger = logging.getLogger(__name__)


class InvalidDiagnosisError(ValueError):
    """Raised when a diagnosis without a usable code is inserted."""


class DuplicateDiagnosisError(ValueError):
    """Raised when a diagnosis code is already on the list."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Diagnosis {code} is already on the case")


def _usable_code(entry: Any) -> str:
    """Get an entry's trimmed code, or "" if it has none."""
    code = getattr(entry, "code", None)
    if not isinstance(code, str):
        return ""
    return code.strip()


def valid_codes(diagnoses: Iterable[Any]) -> set[str]:
    """Get the set of usable diagnosis codes on the list."""
    return {code for code in (_usable_code(entry) for entry in diagnoses or ()) if code}


def primary_code(diagnoses: Sequence[Any]) -> str:
    """Get the primary (index 0) diagnosis code, or "" for an empty list."""
    if not diagnoses:
        return ""
    return _usable_code(diagnoses[0])


def find_diagnosis(diagnoses: Sequence[Any], code: str) -> int:
    """Get the index of the first entry with ``code``, or -1."""
    wanted = (code or "").strip()
    for index, entry in enumerate(diagnoses):
        if wanted and _usable_code(entry) == wanted:
            return index
    return -1


def reapply_primary(diagnoses: Sequence[DiagnosisEntry]) -> bool:
    """Set ``is_primary`` from list position.

    Returns:
        True if any flag changed.
    """
    changed = False
    for index, entry in enumerate(diagnoses):
        is_primary = index == 0
        if getattr(entry, "is_primary", None) != is_primary:
            entry.is_primary = is_primary
            changed = True
    return changed


def sync_links(items: Iterable[LinkableEntry], diagnoses: Sequence[DiagnosisEntry]) -> bool:
    """Repair links that no longer point at a diagnosis on the list.

    Items linked to a code still on the list are left alone. Empty or stale
    links are set to the primary code. Idempotent.

    Returns:
        True if any link was rewritten.
    """
    codes = valid_codes(diagnoses)
    fallback = primary_code(diagnoses)
    changed = False

    for item in items or ():
        raw = getattr(item, "linked_diagnosis_code", "")
        current = raw.strip() if isinstance(raw, str) else ""
        if current and current in codes:
            continue
        if raw == fallback:
            continue
        if current:
            logger.warning(f"Relinking item from removed diagnosis {current} to {fallback or '(none)'}")
        item.linked_diagnosis_code = fallback
        changed = True

    return changed


def _sync_dependents(
    dependents: Iterable[MutableSequence[LinkableEntry]],
    diagnoses: Sequence[DiagnosisEntry],
) -> bool:
    changed = False
    for items in dependents:
        # Evaluate every collection; do not short-circuit
        changed = sync_links(items, diagnoses) or changed
    return changed


def add_diagnosis(
    diagnoses: MutableSequence[DiagnosisEntry],
    entry: DiagnosisEntry,
    *,
    reject_duplicates: bool = True,
) -> bool:
    """Append a diagnosis and re-derive the primary flag.

    The first diagnosis added to an empty list becomes primary.

    Raises:
        InvalidDiagnosisError: If the entry has no usable code.
        DuplicateDiagnosisError: If the code is already on the list and
            ``reject_duplicates`` is set.
    """
    code = _usable_code(entry)
    if not code:
        raise InvalidDiagnosisError("Diagnosis code is required")
    if reject_duplicates and code in valid_codes(diagnoses):
        raise DuplicateDiagnosisError(code)

    entry.is_primary = False
    diagnoses.append(entry)
    reapply_primary(diagnoses)
    return True


def remove_diagnosis(
    diagnoses: MutableSequence[DiagnosisEntry],
    index: int,
    *dependents: MutableSequence[LinkableEntry],
) -> bool:
    """Remove the diagnosis at ``index`` and relink dependents.

    Linked items are never removed; items that pointed at the removed code
    move to the new primary diagnosis. Out-of-range indexes are a no-op.

    Returns:
        True if a diagnosis was removed.
    """
    if not 0 <= index < len(diagnoses):
        logger.warning(f"Ignoring removal of diagnosis at index {index}; list has {len(diagnoses)} entries")
        return False

    removed = diagnoses.pop(index)
    reapply_primary(diagnoses)
    _sync_dependents(dependents, diagnoses)
    logger.debug(f"Removed diagnosis {_usable_code(removed) or '(blank)'} at index {index}")
    return True


def move_diagnosis(
    diagnoses: MutableSequence[DiagnosisEntry],
    index: int,
    direction: int,
    *dependents: MutableSequence[LinkableEntry],
) -> bool:
    """Swap the diagnosis at ``index`` with its neighbour.

    Moving an entry to index 0 makes it primary. Moves off either end of the
    list are a no-op.

    Args:
        diagnoses: Diagnosis list to reorder
        index: Entry to move
        direction: -1 to move up, +1 to move down
        *dependents: Linked collections to resync

    Returns:
        True if the list was reordered.
    """
    if direction not in (-1, 1):
        raise ValueError(f"direction must be -1 or +1, got {direction}")

    target = index + direction
    if not (0 <= index < len(diagnoses) and 0 <= target < len(diagnoses)):
        logger.warning(f"Ignoring move of diagnosis {index} -> {target}; list has {len(diagnoses)} entries")
        return False

    diagnoses[index], diagnoses[target] = diagnoses[target], diagnoses[index]
    reapply_primary(diagnoses)
    _sync_dependents(dependents, diagnoses)
    return True


def replace_diagnosis(
    diagnoses: MutableSequence[DiagnosisEntry],
    index: int,
    entry: DiagnosisEntry,
    *dependents: MutableSequence[LinkableEntry],
    reject_duplicates: bool = True,
) -> bool:
    """Replace the diagnosis at ``index`` (e.g. a new search selection).

    Changing a code changes identity, so dependents are resynced: items
    linked to the old code move to the primary diagnosis.

    Returns:
        True if the entry differed from the one it replaced.

    Raises:
        InvalidDiagnosisError: If the entry has no usable code.
        DuplicateDiagnosisError: If another entry already has the code.
    """
    if not 0 <= index < len(diagnoses):
        logger.warning(f"Ignoring replacement of diagnosis at index {index}; list has {len(diagnoses)} entries")
        return False

    code = _usable_code(entry)
    if not code:
        raise InvalidDiagnosisError("Diagnosis code is required")
    others = [other for position, other in enumerate(diagnoses) if position != index]
    if reject_duplicates and code in valid_codes(others):
        raise DuplicateDiagnosisError(code)

    entry.is_primary = index == 0
    previous = diagnoses[index]
    changed = previous.model_dump() != entry.model_dump()
    diagnoses[index] = entry
    reapply_primary(diagnoses)
    changed = _sync_dependents(dependents, diagnoses) or changed
    return changed
