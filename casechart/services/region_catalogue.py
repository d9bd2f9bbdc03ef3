"""Regional assessment catalogue.

Read-only reference data describing, for each anatomical region, which
movements, resisted tests, muscles, and special tests are assessed, plus the
spinal levels offered by the neuroscreen. The grouping step uses it to know
which base keys exist for a region; nothing here is ever mutated.
"""

from dataclasses import dataclass, field
import logging
import threading

from casechart.schemas.base import AssessmentTable, NeuroTest, RegionCategory, Side
from casechart.services.assessment_store import movement_key, neuro_key

logger = logging.getLogger(__name__)


class UnknownRegionError(ValueError):
    """Raised when a region key is not in the catalogue."""

    def __init__(self, region_key: str) -> None:
        self.region_key = region_key
        super().__init__(f"Unknown region: {region_key}")


class UnknownMeasurementError(ValueError):
    """Raised when a table has no such row for a region."""

    def __init__(self, table: AssessmentTable, region_key: str, base_key: str) -> None:
        self.table = table
        self.region_key = region_key
        self.base_key = base_key
        super().__init__(f"No {table.value} row {base_key!r} for region {region_key}")


@dataclass(frozen=True)
class MovementDefinition:
    """A ROM or RIMs movement."""

    joint: str
    side: Side = Side.MIDLINE
    normal: str = ""  # Normal range, e.g. "120°"

    @property
    def base_key(self) -> str:
        return movement_key(self.joint, self.side)


@dataclass(frozen=True)
class MuscleDefinition:
    """A manual muscle test."""

    muscle: str
    side: Side = Side.MIDLINE
    normal: str = "5/5"

    @property
    def base_key(self) -> str:
        return movement_key(self.muscle, self.side)


@dataclass(frozen=True)
class SpecialTestDefinition:
    """A special (provocation) test."""

    name: str
    purpose: str = ""

    @property
    def base_key(self) -> str:
        return self.name


@dataclass(frozen=True)
class Region:
    """An anatomical region and its assessment definitions."""

    key: str
    name: str
    rom: tuple[MovementDefinition, ...] = ()
    rims: tuple[MovementDefinition, ...] = ()
    mmt: tuple[MuscleDefinition, ...] = ()
    special_tests: tuple[SpecialTestDefinition, ...] = ()

    def items(self, category: RegionCategory) -> tuple:
        """Get the definitions for one category."""
        return {
            RegionCategory.ROM: self.rom,
            RegionCategory.RIMS: self.rims,
            RegionCategory.MMT: self.mmt,
            RegionCategory.SPECIAL_TESTS: self.special_tests,
        }[RegionCategory(category)]


@dataclass(frozen=True)
class NeuroLevel:
    """A spinal or cranial nerve level, with its reflex if one is tested."""

    level: str
    reflex: str | None = None

    def base_keys(self, side: Side) -> dict[NeuroTest, str]:
        """Base keys for the tests performed at this level on one side."""
        tests = [NeuroTest.DERMATOME, NeuroTest.MYOTOME]
        if self.reflex:
            tests.append(NeuroTest.REFLEX)
        return {test: neuro_key(self.level, side, test) for test in tests}


@dataclass(frozen=True)
class NeuroscreenRegion:
    """A neuroscreen region (upper/lower extremity, cranial nerves)."""

    key: str
    name: str
    levels: tuple[NeuroLevel, ...] = field(default_factory=tuple)


# ============================================================================
# Catalogue data
# ============================================================================

L, R, MID = Side.LEFT, Side.RIGHT, Side.MIDLINE


def _bilateral_rom(*movements: tuple[str, str]) -> tuple[MovementDefinition, ...]:
    return tuple(
        MovementDefinition(joint, side, normal)
        for joint, normal in movements
        for side in (R, L)
    )


def _rims_from(rom: tuple[MovementDefinition, ...]) -> tuple[MovementDefinition, ...]:
    return tuple(MovementDefinition(item.joint, item.side) for item in rom)


def _bilateral_mmt(*muscles: str) -> tuple[MuscleDefinition, ...]:
    return tuple(MuscleDefinition(muscle, side) for muscle in muscles for side in (R, L))


def _tests(*tests: tuple[str, str]) -> tuple[SpecialTestDefinition, ...]:
    return tuple(SpecialTestDefinition(name, purpose) for name, purpose in tests)


def _spine_rom(prefix: str, flexion: str, extension: str, lateral: str, rotation: str):
    return (
        MovementDefinition(f"{prefix} Flexion", MID, flexion),
        MovementDefinition(f"{prefix} Extension", MID, extension),
        MovementDefinition("Lateral Flexion", R, lateral),
        MovementDefinition("Lateral Flexion", L, lateral),
        MovementDefinition("Rotation", R, rotation),
        MovementDefinition("Rotation", L, rotation),
    )


_LUMBAR_ROM = _spine_rom("Lumbar", "40-60°", "20-35°", "15-20°", "3-18°")
_CERVICAL_ROM = _spine_rom("Cervical", "45-50°", "45-75°", "45°", "60-80°")
_THORACIC_ROM = _spine_rom("Thoracic", "20-45°", "25-45°", "20-40°", "30-45°")
_SHOULDER_ROM = _bilateral_rom(
    ("Shoulder Flexion", "180°"),
    ("Shoulder Extension", "60°"),
    ("Shoulder Abduction", "180°"),
    ("Internal Rotation", "70°"),
    ("External Rotation", "90°"),
)
_KNEE_ROM = _bilateral_rom(("Knee Flexion", "135°"), ("Knee Extension", "0°"))
_HIP_ROM = _bilateral_rom(
    ("Hip Flexion", "120°"),
    ("Hip Extension", "30°"),
    ("Hip Abduction", "45°"),
    ("Hip Adduction", "30°"),
    ("Hip Internal Rotation", "45°"),
    ("Hip External Rotation", "45°"),
)
_ANKLE_ROM = _bilateral_rom(
    ("Ankle Dorsiflexion", "20°"),
    ("Ankle Plantarflexion", "50°"),
    ("Ankle Inversion", "35°"),
    ("Ankle Eversion", "15°"),
)
_ELBOW_ROM = _bilateral_rom(
    ("Elbow Flexion", "145°"),
    ("Elbow Extension", "0°"),
    ("Forearm Pronation", "80°"),
    ("Forearm Supination", "80°"),
)
_WRIST_ROM = _bilateral_rom(
    ("Wrist Flexion", "80°"),
    ("Wrist Extension", "70°"),
    ("Radial Deviation", "20°"),
    ("Ulnar Deviation", "35°"),
)

REGIONAL_ASSESSMENTS: dict[str, Region] = {
    region.key: region
    for region in (
        Region(
            key="lumbar-spine",
            name="Lumbar Spine",
            rom=_LUMBAR_ROM,
            rims=_rims_from(_LUMBAR_ROM),
            mmt=_bilateral_mmt("Hip Flexors", "Quadriceps", "Hamstrings", "Glut Max"),
            special_tests=_tests(
                ("Straight Leg Raise (SLR)", "Neural tension/disc pathology"),
                ("Slump Test", "Neural tension"),
                ("Prone Instability Test", "Lumbar instability"),
                ("Centralization Phenomena", "Directional preference"),
                ("FABERE/Patrick Test", "Hip/SI joint pathology"),
            ),
        ),
        Region(
            key="cervical-spine",
            name="Cervical Spine",
            rom=_CERVICAL_ROM,
            rims=_rims_from(_CERVICAL_ROM),
            mmt=(
                MuscleDefinition("Neck Flexors"),
                MuscleDefinition("Neck Extensors"),
                *_bilateral_mmt("Upper Trap", "Levator Scapulae"),
            ),
            special_tests=_tests(
                ("Spurling Test", "Cervical radiculopathy"),
                ("Upper Limb Tension Test", "Neural tension"),
                ("Cervical Distraction Test", "Cervical radiculopathy"),
                ("Vertebral Artery Test", "Vertebrobasilar insufficiency"),
            ),
        ),
        Region(
            key="shoulder",
            name="Shoulder",
            rom=_SHOULDER_ROM,
            rims=_rims_from(_SHOULDER_ROM),
            mmt=_bilateral_mmt("Deltoid Anterior", "Deltoid Middle", "Deltoid Posterior", "Rotator Cuff"),
            special_tests=_tests(
                ("Neer Impingement Sign", "Subacromial impingement"),
                ("Hawkins-Kennedy Test", "Subacromial impingement"),
                ("Empty Can Test", "Supraspinatus pathology"),
                ("Apprehension Test", "Anterior shoulder instability"),
            ),
        ),
        Region(
            key="knee",
            name="Knee",
            rom=_KNEE_ROM,
            rims=_rims_from(_KNEE_ROM),
            mmt=_bilateral_mmt("Quadriceps", "Hamstrings"),
            special_tests=_tests(
                ("Lachman Test", "ACL integrity"),
                ("Anterior Drawer Test", "ACL integrity"),
                ("Posterior Drawer Test", "PCL integrity"),
                ("McMurray Test", "Meniscal tear"),
                ("Valgus Stress Test", "MCL integrity"),
                ("Varus Stress Test", "LCL integrity"),
            ),
        ),
        Region(
            key="hip",
            name="Hip",
            rom=_HIP_ROM,
            rims=_rims_from(_HIP_ROM),
            mmt=_bilateral_mmt(
                "Hip Flexors",
                "Glut Max (Hip Extensors)",
                "Glut Med (Abductors)",
                "Hip Adductors",
                "Hip Internal Rotators",
                "Hip External Rotators",
            ),
            special_tests=_tests(
                ("FABER (Patrick)", "Hip/SI joint pathology"),
                ("FADIR", "Femoroacetabular impingement"),
                ("Scour Test", "Hip intra-articular pathology"),
                ("Thomas Test", "Hip flexor tightness"),
                ("Ober Test", "IT band tightness"),
            ),
        ),
        Region(
            key="ankle",
            name="Foot & Ankle",
            rom=_ANKLE_ROM,
            rims=_rims_from(_ANKLE_ROM),
            mmt=_bilateral_mmt(
                "Dorsiflexors (Tibialis Anterior)",
                "Plantarflexors (Gastrocnemius/Soleus)",
                "Invertors (Tibialis Posterior)",
                "Evertors (Peroneals)",
            ),
            special_tests=_tests(
                ("Anterior Drawer Test", "ATFL integrity"),
                ("Talar Tilt Test", "CFL integrity"),
                ("Thompson Test", "Achilles tendon rupture"),
                ("Kleiger Test", "Deltoid ligament/syndesmosis"),
                ("Squeeze Test", "Syndesmosis injury"),
            ),
        ),
        Region(
            key="elbow",
            name="Elbow",
            rom=_ELBOW_ROM,
            rims=_rims_from(_ELBOW_ROM),
            mmt=_bilateral_mmt(
                "Biceps (Elbow Flexion)",
                "Triceps (Elbow Extension)",
                "Pronators",
                "Supinators",
            ),
            special_tests=_tests(
                ("Cozen's Test", "Lateral epicondylitis"),
                ("Mill's Test", "Lateral epicondylitis"),
                ("Golfer's Elbow Test", "Medial epicondylitis"),
                ("Valgus Stress Test", "UCL integrity"),
                ("Varus Stress Test", "RCL integrity"),
            ),
        ),
        Region(
            key="wrist-hand",
            name="Wrist & Hand",
            rom=_WRIST_ROM,
            rims=_rims_from(_WRIST_ROM),
            mmt=_bilateral_mmt("Wrist Flexors", "Wrist Extensors", "Radial Deviators", "Ulnar Deviators"),
            special_tests=_tests(
                ("Finkelstein's Test", "De Quervain tenosynovitis"),
                ("Phalen's Test", "Carpal tunnel syndrome"),
                ("Tinel's Sign (Wrist)", "Median nerve irritation"),
                ("TFCC Load Test", "TFCC pathology"),
            ),
        ),
        Region(
            key="thoracic-spine",
            name="Thoracic Spine",
            rom=_THORACIC_ROM,
            rims=_rims_from(_THORACIC_ROM),
            mmt=(MuscleDefinition("Thoracic Extensors"), *_bilateral_mmt("Scapular Retractors")),
            special_tests=_tests(
                ("PA Spring Test", "Facet/rib dysfunction"),
                ("Rib Spring Test", "Rib hypomobility"),
                ("Thoracic Rotation Test", "Segmental restriction"),
            ),
        ),
    )
}

NEUROSCREEN_REGIONS: dict[str, NeuroscreenRegion] = {
    "lower-extremity": NeuroscreenRegion(
        key="lower-extremity",
        name="Lower Extremity",
        levels=(
            NeuroLevel("L1"),
            NeuroLevel("L2"),
            NeuroLevel("L3", "Patellar"),
            NeuroLevel("L4", "Patellar"),
            NeuroLevel("L5"),
            NeuroLevel("S1", "Achilles"),
            NeuroLevel("S2"),
        ),
    ),
    "upper-extremity": NeuroscreenRegion(
        key="upper-extremity",
        name="Upper Extremity",
        levels=(
            NeuroLevel("C5", "Biceps"),
            NeuroLevel("C6", "Brachioradialis"),
            NeuroLevel("C7", "Triceps"),
            NeuroLevel("C8"),
            NeuroLevel("T1"),
        ),
    ),
    "cranial-nerves": NeuroscreenRegion(
        key="cranial-nerves",
        name="Cranial Nerves",
        levels=(
            NeuroLevel("CN I"),
            NeuroLevel("CN II", "Pupillary"),
            NeuroLevel("CN III", "Pupillary"),
            NeuroLevel("CN IV"),
            NeuroLevel("CN V", "Corneal"),
            NeuroLevel("CN VI"),
            NeuroLevel("CN VII"),
            NeuroLevel("CN VIII"),
            NeuroLevel("CN IX", "Gag"),
            NeuroLevel("CN X", "Gag"),
            NeuroLevel("CN XI"),
            NeuroLevel("CN XII"),
        ),
    ),
}

# Display order for the region selector; unlisted regions follow
REGION_ORDER: tuple[str, ...] = (
    "hip",
    "knee",
    "ankle",
    "shoulder",
    "elbow",
    "wrist-hand",
    "cervical-spine",
    "thoracic-spine",
    "lumbar-spine",
)

# Measurement tables and the definitions that give them rows
TABLE_CATEGORIES: dict[AssessmentTable, RegionCategory] = {
    AssessmentTable.AROM: RegionCategory.ROM,
    AssessmentTable.PROM: RegionCategory.ROM,
    AssessmentTable.ROM: RegionCategory.ROM,
    AssessmentTable.RIMS: RegionCategory.RIMS,
    AssessmentTable.MMT: RegionCategory.MMT,
    AssessmentTable.SPECIAL_TESTS: RegionCategory.SPECIAL_TESTS,
}

NEURO_TABLES: dict[AssessmentTable, NeuroTest] = {
    AssessmentTable.DERMATOME: NeuroTest.DERMATOME,
    AssessmentTable.MYOTOME: NeuroTest.MYOTOME,
    AssessmentTable.REFLEX: NeuroTest.REFLEX,
}

# Joint-name prefixes dropped from row labels inside a region's own table
REGION_PREFIXES: dict[str, tuple[str, ...]] = {
    "hip": ("Hip ",),
    "knee": ("Knee ",),
    "ankle": ("Ankle ",),
    "shoulder": ("Shoulder ",),
    "elbow": ("Elbow ",),
    "wrist-hand": ("Wrist ", "Forearm "),
    "cervical-spine": ("Cervical ",),
    "thoracic-spine": ("Thoracic ",),
    "lumbar-spine": ("Lumbar ",),
}


# ============================================================================
# Catalogue service
# ============================================================================


class RegionCatalogue:
    """Lookup wrapper over the region and neuroscreen tables."""

    def __init__(
        self,
        regions: dict[str, Region] | None = None,
        neuroscreen: dict[str, NeuroscreenRegion] | None = None,
        order: tuple[str, ...] = REGION_ORDER,
    ) -> None:
        self._regions = dict(regions if regions is not None else REGIONAL_ASSESSMENTS)
        self._neuroscreen = dict(neuroscreen if neuroscreen is not None else NEUROSCREEN_REGIONS)
        self._order = order
        logger.info(
            f"Region catalogue initialized with {len(self._regions)} regions, "
            f"{len(self._neuroscreen)} neuroscreen regions"
        )

    def __contains__(self, region_key: object) -> bool:
        return region_key in self._regions or region_key in self._neuroscreen

    def get(self, region_key: str) -> Region | None:
        """Get a regional assessment definition."""
        return self._regions.get(region_key)

    def get_neuroscreen(self, region_key: str) -> NeuroscreenRegion | None:
        """Get a neuroscreen region definition."""
        return self._neuroscreen.get(region_key)

    def is_assessment_region(self, region_key: str) -> bool:
        return region_key in self._regions

    def is_neuroscreen_region(self, region_key: str) -> bool:
        return region_key in self._neuroscreen

    def ordered_keys(self) -> list[str]:
        """Assessment region keys in display order."""
        ordered = [key for key in self._order if key in self._regions]
        return ordered + [key for key in self._regions if key not in ordered]

    def ordered_neuroscreen_keys(self) -> list[str]:
        """Neuroscreen region keys in display order."""
        return list(self._neuroscreen)

    def base_keys(self, region_key: str, category: RegionCategory) -> list[str]:
        """Base keys defined for a region category ([] for unknown regions)."""
        region = self.get(region_key)
        if region is None:
            return []
        return [item.base_key for item in region.items(category)]

    def neuro_base_keys(self, region_key: str) -> list[str]:
        """Every base key of a neuroscreen region, both sides."""
        region = self.get_neuroscreen(region_key)
        if region is None:
            return []
        return [
            key
            for level in region.levels
            for side in (Side.LEFT, Side.RIGHT)
            for key in level.base_keys(side).values()
        ]

    def measurement_base_keys(self, region_key: str, table: AssessmentTable) -> list[str]:
        """Base keys a table holds for a region.

        Neuroscreen tables (dermatome, myotome, reflex) belong to neuroscreen
        regions and every other table to assessment regions; a region of the
        wrong kind has no keys.
        """
        table = AssessmentTable(table)
        test = NEURO_TABLES.get(table)
        if test is None:
            return self.base_keys(region_key, TABLE_CATEGORIES[table])
        region = self.get_neuroscreen(region_key)
        if region is None:
            return []
        return [
            level.base_keys(side)[test]
            for level in region.levels
            for side in (Side.LEFT, Side.RIGHT)
            if test in level.base_keys(side)
        ]

    def get_stats(self) -> dict[str, int]:
        """Get catalogue statistics."""
        return {
            "regions": len(self._regions),
            "neuroscreen_regions": len(self._neuroscreen),
            "movements": sum(len(region.rom) for region in self._regions.values()),
            "special_tests": sum(len(region.special_tests) for region in self._regions.values()),
        }


# Singleton instance and lock
_catalogue: RegionCatalogue | None = None
_catalogue_lock = threading.Lock()


def get_region_catalogue() -> RegionCatalogue:
    """Get the singleton region catalogue."""
    global _catalogue
    if _catalogue is None:
        with _catalogue_lock:
            if _catalogue is None:
                _catalogue = RegionCatalogue()
    return _catalogue


def reset_region_catalogue() -> None:
    """Reset the singleton instance (for testing)."""
    global _catalogue
    with _catalogue_lock:
        _catalogue = None
