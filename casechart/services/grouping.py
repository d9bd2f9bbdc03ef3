"""Group linked billing/order rows under their diagnoses.

Groups are derived for presentation on every render and never stored. Each
diagnosis gets a group in list order; rows with an empty or unknown link go
to a trailing synthetic "unlinked" group.
"""

from collections.abc import Callable, MutableSequence, Sequence
from dataclasses import dataclass, field
import logging
from typing import Any, TypeVar

from casechart.schemas.case_record import DiagnosisEntry, LinkableEntry

logger = logging.getLogger(__name__)

UNLINKED_GROUP_KEY = "__unlinked__"
UNLINKED_GROUP_LABEL = "Unlinked"

ItemT = TypeVar("ItemT", bound=LinkableEntry)


@dataclass
class DiagnosisGroup:
    """Indexes of dependent rows linked to one diagnosis."""

    key: str  # Diagnosis code, or UNLINKED_GROUP_KEY
    label: str
    indexes: list[int] = field(default_factory=list)

    @property
    def is_unlinked(self) -> bool:
        return self.key == UNLINKED_GROUP_KEY

    @property
    def is_empty(self) -> bool:
        return not self.indexes


def _default_linked_code(item: Any) -> str:
    return getattr(item, "linked_diagnosis_code", "")


def _clean(code: Any) -> str:
    return code.strip() if isinstance(code, str) else ""


def build_diagnosis_groups(
    diagnoses: Sequence[DiagnosisEntry],
    items: Sequence[Any],
    get_linked_code: Callable[[Any], str] | None = None,
) -> list[DiagnosisGroup]:
    """Partition item indexes by linked diagnosis.

    Order within each group follows the items' original order. The unlinked
    group is added only when some item has no valid link, or when there are
    no diagnoses (then it is the only group and holds every item).

    Args:
        diagnoses: Diagnosis list, in display order
        items: Billing codes or orders/referrals
        get_linked_code: Reads an item's linked code; defaults to
            ``linked_diagnosis_code``

    Returns:
        Groups in diagnosis order, unlinked group last.
    """
    get_linked_code = get_linked_code or _default_linked_code

    if not diagnoses:
        return [DiagnosisGroup(UNLINKED_GROUP_KEY, UNLINKED_GROUP_LABEL, list(range(len(items))))]

    groups: list[DiagnosisGroup] = []
    by_code: dict[str, DiagnosisGroup] = {}
    for entry in diagnoses:
        code = _clean(getattr(entry, "code", ""))
        group = DiagnosisGroup(code, getattr(entry, "display_label", code) if code else "")
        groups.append(group)
        # With duplicate codes, rows go to the first group for the code
        if code and code not in by_code:
            by_code[code] = group

    unlinked = DiagnosisGroup(UNLINKED_GROUP_KEY, UNLINKED_GROUP_LABEL)
    for index, item in enumerate(items):
        code = _clean(get_linked_code(item))
        by_code.get(code, unlinked).indexes.append(index)

    if unlinked.indexes:
        groups.append(unlinked)
    return groups


def materialize_default_row(
    group: DiagnosisGroup,
    items: MutableSequence[ItemT],
    factory: Callable[[], ItemT],
) -> bool:
    """Give an empty diagnosis group one editable row.

    The new row comes from ``factory`` and is linked to the group's code.
    Unlinked and non-empty groups are left alone.

    Returns:
        True if a row was appended.
    """
    if group.is_unlinked or not group.key or group.indexes:
        return False

    item = factory()
    item.linked_diagnosis_code = group.key
    items.append(item)
    group.indexes.append(len(items) - 1)
    logger.debug(f"Materialized default row for diagnosis {group.key}")
    return True


def materialize_default_rows(
    diagnoses: Sequence[DiagnosisEntry],
    items: MutableSequence[ItemT],
    factory: Callable[[], ItemT],
) -> bool:
    """Ensure every diagnosis has at least one linked row.

    Returns:
        True if any row was appended.
    """
    changed = False
    seen: set[str] = set()
    for group in build_diagnosis_groups(diagnoses, items):
        # Duplicate codes share the first group's rows
        if group.key in seen:
            continue
        seen.add(group.key)
        changed = materialize_default_row(group, items, factory) or changed
    return changed
