"""Derive assessment rows from the active region selection.

Selecting regions decides which rows the combined ROM, RIMs, MMT, special
test, and neuroscreen tables show. The rows carry the base keys used to read
and write the namespaced measurement maps. Changing the selection only
changes which rows are derived; stored measurements are never touched.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
import logging

from casechart.schemas.base import NeuroTest, RegionCategory, Side
from casechart.schemas.case_record import AssessmentRecord
from casechart.services.region_catalogue import (
    REGION_PREFIXES,
    MovementDefinition,
    MuscleDefinition,
    Region,
    RegionCatalogue,
    SpecialTestDefinition,
    get_region_catalogue,
)

logger = logging.getLogger(__name__)

Definition = MovementDefinition | MuscleDefinition | SpecialTestDefinition


@dataclass
class RegionItem:
    """A catalogue definition tagged with the region it came from."""

    region_key: str
    region_name: str
    definition: Definition

    @property
    def base_key(self) -> str:
        return self.definition.base_key


@dataclass
class MovementRow:
    """One row of a region's combined ROM table (left and right collapsed)."""

    region_key: str
    joint: str
    label: str
    normal: str = ""
    midline: bool = False
    base_keys: dict[Side, str] = field(default_factory=dict)


@dataclass
class NeuroscreenRow:
    """One spinal/cranial level of a neuroscreen table."""

    region_key: str
    level: str
    reflex: str | None
    base_keys: dict[Side, dict[NeuroTest, str]] = field(default_factory=dict)


def combined_region_items(
    selected_regions: list[str],
    category: RegionCategory,
    catalogue: RegionCatalogue | None = None,
) -> list[RegionItem]:
    """Collect one category's definitions across the selected regions.

    Items keep selection order, then catalogue order within a region.
    Unknown regions are skipped.
    """
    catalogue = catalogue or get_region_catalogue()
    items: list[RegionItem] = []
    for region_key in selected_regions:
        region = catalogue.get(region_key)
        if region is None:
            continue
        for definition in region.items(category):
            items.append(RegionItem(region_key, region.name, definition))
    return items


def motion_label(region_key: str, joint: str) -> str:
    """Drop the region's own prefix from a joint name ("Hip Flexion" -> "Flexion")."""
    for prefix in REGION_PREFIXES.get(region_key, ()):
        if (joint or "").startswith(prefix):
            return joint[len(prefix):]
    return joint


def group_movements(region: Region) -> list[MovementRow]:
    """Collapse a region's ROM definitions into one row per joint.

    A joint with a midline definition has a single value per table; every
    other joint has a left and a right value.
    """
    rows: dict[str, MovementRow] = {}
    for item in region.rom:
        row = rows.get(item.joint)
        if row is None:
            row = MovementRow(
                region_key=region.key,
                joint=item.joint,
                label=motion_label(region.key, item.joint),
                normal=item.normal,
            )
            rows[item.joint] = row
        if item.side == Side.MIDLINE:
            row.midline = True

    for row in rows.values():
        if row.midline:
            row.base_keys = {Side.MIDLINE: MovementDefinition(row.joint).base_key}
        else:
            row.base_keys = {
                side: MovementDefinition(row.joint, side).base_key for side in (Side.LEFT, Side.RIGHT)
            }
    return list(rows.values())


def neuroscreen_rows(region_key: str, catalogue: RegionCatalogue | None = None) -> list[NeuroscreenRow]:
    """Rows for a neuroscreen region ([] for an unknown region)."""
    catalogue = catalogue or get_region_catalogue()
    region = catalogue.get_neuroscreen(region_key)
    if region is None:
        logger.warning(f"Unknown neuroscreen region: {region_key}")
        return []
    return [
        NeuroscreenRow(
            region_key=region.key,
            level=level.level,
            reflex=level.reflex,
            base_keys={side: level.base_keys(side) for side in (Side.LEFT, Side.RIGHT)},
        )
        for level in region.levels
    ]


# ============================================================================
# Region selection
# ============================================================================


def _clean_selection(selection: list[str], is_known: Callable[[str], bool], kind: str) -> list[str]:
    valid: list[str] = []
    for region_key in selection:
        if not is_known(region_key):
            logger.warning(f"Filtered unknown {kind} region from selection: {region_key}")
            continue
        if region_key not in valid:
            valid.append(region_key)
    return valid


def filter_invalid_regions(record: AssessmentRecord, catalogue: RegionCatalogue | None = None) -> bool:
    """Drop unknown and repeated region keys from both selections.

    The assessment selection is checked against the assessment regions and
    the neuroscreen selection against the neuroscreen regions.

    Returns:
        True if either selection changed.
    """
    catalogue = catalogue or get_region_catalogue()
    regions = _clean_selection(record.selected_regions, catalogue.is_assessment_region, "assessment")
    neuro = _clean_selection(record.neuro_selected_regions, catalogue.is_neuroscreen_region, "neuroscreen")

    changed = False
    if regions != record.selected_regions:
        record.selected_regions = regions
        changed = True
    if neuro != record.neuro_selected_regions:
        record.neuro_selected_regions = neuro
        changed = True
    return changed


def _set_selected(record: AssessmentRecord, field_name: str, region_key: str, selected: bool) -> bool:
    current: list[str] = getattr(record, field_name)
    if selected == (region_key in current):
        return False
    if selected:
        current.append(region_key)
    else:
        setattr(record, field_name, [key for key in current if key != region_key])
    return True


def set_region_selected(
    record: AssessmentRecord,
    region_key: str,
    selected: bool,
    catalogue: RegionCatalogue | None = None,
) -> bool:
    """Select or deselect an assessment region.

    Measurements already recorded for the region stay in the maps either
    way.

    Returns:
        True if the selection changed.
    """
    catalogue = catalogue or get_region_catalogue()
    if not catalogue.is_assessment_region(region_key):
        logger.warning(f"Ignoring selection change for unknown region: {region_key}")
        return False
    return _set_selected(record, "selected_regions", region_key, selected)


def set_neuroscreen_selected(
    record: AssessmentRecord,
    region_key: str,
    selected: bool,
    catalogue: RegionCatalogue | None = None,
) -> bool:
    """Select or deselect a neuroscreen region; values are kept either way."""
    catalogue = catalogue or get_region_catalogue()
    if not catalogue.is_neuroscreen_region(region_key):
        logger.warning(f"Ignoring selection change for unknown neuroscreen region: {region_key}")
        return False
    return _set_selected(record, "neuro_selected_regions", region_key, selected)


def toggle_region(record: AssessmentRecord, region_key: str, catalogue: RegionCatalogue | None = None) -> bool:
    """Flip an assessment region's selection."""
    selected = region_key in record.selected_regions
    return set_region_selected(record, region_key, not selected, catalogue)


def toggle_neuroscreen_region(
    record: AssessmentRecord,
    region_key: str,
    catalogue: RegionCatalogue | None = None,
) -> bool:
    """Flip a neuroscreen region's selection."""
    selected = region_key in record.neuro_selected_regions
    return set_neuroscreen_selected(record, region_key, not selected, catalogue)


def ordered_selection(record: AssessmentRecord, catalogue: RegionCatalogue | None = None) -> list[str]:
    """Selected assessment regions in the selector's display order."""
    catalogue = catalogue or get_region_catalogue()
    selected = set(record.selected_regions)
    return [key for key in catalogue.ordered_keys() if key in selected]


def ordered_neuroscreen_selection(record: AssessmentRecord, catalogue: RegionCatalogue | None = None) -> list[str]:
    """Selected neuroscreen regions in the selector's display order."""
    catalogue = catalogue or get_region_catalogue()
    selected = set(record.neuro_selected_regions)
    return [key for key in catalogue.ordered_neuroscreen_keys() if key in selected]
