"""Namespaced Assessment Store.

Several regions can be assessed in the same visit and they share movement
vocabulary ("Flexion", "Internal Rotation"), so measurements are stored under
region-qualified keys in the flat assessment maps:

    "<region>:<baseKey>"   e.g. "hip:Hip Flexion_L", "upper-extremity:C5-L-dermatome"

Writes always use the namespaced form. Reads look for the namespaced key
first and, as a migration path for documents saved before namespacing, fall
back to the bare ``baseKey``. Once a region writes a field the bare key is
never consulted again for that region.

Deselecting a region never deletes its values; reselecting shows them again.
"""

from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass
import logging

from casechart.schemas.base import AssessmentTable, NeuroTest, Side

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"


class InvalidGradeError(ValueError):
    """Raised when a graded measurement is outside its option set."""

    def __init__(self, table: AssessmentTable, value: str) -> None:
        self.table = table
        self.value = value
        super().__init__(f"Invalid {table.value} grade: {value!r}")


# ============================================================================
# Key codec
# ============================================================================


@dataclass(frozen=True)
class AssessmentKey:
    """A (region, base key) pair and its flat string encoding."""

    region: str | None
    base_key: str

    def encode(self) -> str:
        """Encode to the stored key ("region:base", or bare base)."""
        if not self.region:
            return self.base_key
        return f"{self.region}{KEY_SEPARATOR}{self.base_key}"

    @classmethod
    def decode(cls, raw: str) -> "AssessmentKey":
        """Decode a stored key; keys without a region prefix are legacy."""
        region, sep, base_key = raw.partition(KEY_SEPARATOR)
        if not sep or not region:
            return cls(region=None, base_key=raw)
        return cls(region=region, base_key=base_key)

    @property
    def is_legacy(self) -> bool:
        """Check if this is a bare, pre-namespacing key."""
        return self.region is None


def namespaced_key(region: str, base_key: str) -> str:
    """Build the stored key for a region's field."""
    return AssessmentKey(region, base_key).encode()


def movement_key(joint: str, side: Side | str = Side.MIDLINE) -> str:
    """Base key for a ROM/RIMs movement ("Hip Flexion_L", or the joint for midline)."""
    side_value = Side(side).value
    return f"{joint}_{side_value}" if side_value else joint


def neuro_key(level: str, side: Side | str, test: NeuroTest | str) -> str:
    """Base key for a neuroscreen cell ("C5-L-dermatome")."""
    return f"{level}-{Side(side).value}-{NeuroTest(test).value}"


# ============================================================================
# Read / write
# ============================================================================


def read_value(
    data: Mapping[str, str] | None,
    region: str,
    base_key: str,
    default: str = "",
    *,
    legacy_fallback: bool = True,
) -> str:
    """Read a region's value.

    Presence of the namespaced key is checked by membership, not truthiness,
    so an explicitly cleared value ("") hides any legacy bare value.
    """
    data = data or {}
    key = namespaced_key(region, base_key)
    if key in data:
        return data[key]
    if legacy_fallback and base_key in data:
        return data[base_key]
    return default


def write_value(data: MutableMapping[str, str], region: str, base_key: str, value: str) -> bool:
    """Write a region's value under its namespaced key.

    The bare legacy key, if present, is left as it was.

    Returns:
        True if the stored value changed.
    """
    key = namespaced_key(region, base_key)
    if key in data and data[key] == value:
        return False
    data[key] = value
    return True


def region_values(data: Mapping[str, str] | None, region: str) -> dict[str, str]:
    """Get ``{base_key: value}`` for every namespaced key of a region."""
    values: dict[str, str] = {}
    for raw, value in (data or {}).items():
        key = AssessmentKey.decode(raw)
        if key.region == region:
            values[key.base_key] = value
    return values


def migrate_legacy_keys(data: MutableMapping[str, str], region: str, base_keys: Iterable[str]) -> int:
    """Copy bare values into a region's namespace.

    Only base keys the region has not written yet are copied. The bare keys
    are kept because other regions may still fall back to them.

    Returns:
        Number of keys copied.
    """
    copied = 0
    for base_key in base_keys:
        key = namespaced_key(region, base_key)
        if key not in data and base_key in data:
            data[key] = data[base_key]
            copied += 1
    if copied:
        logger.info(f"Migrated {copied} legacy assessment keys into region {region}")
    return copied


class RegionAssessmentView:
    """A measurement map seen through one region's namespace."""

    def __init__(
        self,
        data: MutableMapping[str, str],
        region: str,
        legacy_fallback: bool = True,
    ) -> None:
        self.data = data
        self.region = region
        self.legacy_fallback = legacy_fallback

    def read(self, base_key: str, default: str = "") -> str:
        return read_value(self.data, self.region, base_key, default, legacy_fallback=self.legacy_fallback)

    def write(self, base_key: str, value: str) -> bool:
        return write_value(self.data, self.region, base_key, value)

    def __contains__(self, base_key: object) -> bool:
        if not isinstance(base_key, str):
            return False
        if namespaced_key(self.region, base_key) in self.data:
            return True
        return self.legacy_fallback and base_key in self.data

    def values(self) -> dict[str, str]:
        """Get the region's own (namespaced) values."""
        return region_values(self.data, self.region)


# ============================================================================
# Grades
# ============================================================================

RIMS_GRADES = ("strong-painfree", "strong-painful", "weak-painfree", "weak-painful")
DERMATOME_GRADES = ("intact", "impaired", "absent")
MYOTOME_GRADES = ("5/5", "4/5", "3/5", "2/5", "1/5", "0/5")
REFLEX_GRADES = ("4+", "3+", "2+", "1+", "0")

GRADE_OPTIONS: dict[AssessmentTable, tuple[str, ...]] = {
    AssessmentTable.RIMS: RIMS_GRADES,
    AssessmentTable.DERMATOME: DERMATOME_GRADES,
    AssessmentTable.MYOTOME: MYOTOME_GRADES,
    AssessmentTable.REFLEX: REFLEX_GRADES,
}


def validate_grade(table: AssessmentTable, value: str) -> str:
    """Check a value against the table's grade options.

    Tables without an option set (degrees, free text) accept anything. The
    empty string clears a cell and is always allowed.

    Raises:
        InvalidGradeError: If the value is not an allowed grade.
    """
    options = GRADE_OPTIONS.get(table)
    if options is None or value == "" or value in options:
        return value
    raise InvalidGradeError(table, value)
