"""Physical therapy code catalogue and search.

Provides the ICD-10 diagnoses and CPT procedure codes offered when adding a
diagnosis or billing line, and the ranked search behind the diagnosis search
box:

- Exact code match ranks highest, then code prefix, then label/description
  prefix, then substring matches.
- Labels of the form "M54.5 - Low back pain" are split so the description
  can be searched even when none was supplied.

Note: CPT codes are owned by the American Medical Association (AMA).
Selections should be verified by qualified billing staff.
"""

from dataclasses import dataclass
import logging
import re
import threading

from casechart.schemas.base import CodeKind
from casechart.schemas.case_record import BillingCodeEntry, DiagnosisEntry

logger = logging.getLogger(__name__)

_LABEL_PATTERN = re.compile(r"^([A-Z0-9.]+)\s*[-–—:]\s*(.+)$", re.IGNORECASE)


@dataclass(frozen=True)
class CodeOption:
    """A selectable code."""

    value: str
    label: str
    description: str = ""


@dataclass(frozen=True)
class NormalizedOption:
    """Search view of a code option."""

    code: str
    description: str
    friendly_label: str


@dataclass
class CodeMatch:
    """A search hit."""

    option: CodeOption
    score: int


# ============================================================================
# Code tables
# ============================================================================

ICD10_CODES: list[CodeOption] = [
    # Low back
    CodeOption("M54.5", "M54.5 - Low back pain", "Low back pain, unspecified"),
    CodeOption(
        "M51.36",
        "M51.36 - Other intervertebral disc degeneration, lumbar region",
        "Disc degeneration in lumbar spine",
    ),
    CodeOption("M54.16", "M54.16 - Radiculopathy, lumbar region", "Nerve root compression in lumbar spine"),
    # Neck
    CodeOption("M54.2", "M54.2 - Cervicalgia", "Neck pain, unspecified"),
    CodeOption(
        "M50.30",
        "M50.30 - Other cervical disc degeneration, unspecified cervical region",
        "Cervical disc degeneration",
    ),
    CodeOption("M54.12", "M54.12 - Radiculopathy, cervical region", "Nerve root compression in cervical spine"),
    # Shoulder
    CodeOption(
        "M75.41",
        "M75.41 - Impingement syndrome of right shoulder",
        "Impingement syndrome, right shoulder",
    ),
    CodeOption("M75.21", "M75.21 - Bicipital tendinitis, right shoulder", "Bicipital tendinitis, right shoulder"),
    CodeOption("M25.511", "M25.511 - Pain in right shoulder", "Right shoulder pain, unspecified cause"),
    CodeOption("M25.512", "M25.512 - Pain in left shoulder", "Left shoulder pain, unspecified cause"),
    CodeOption(
        "M75.30",
        "M75.30 - Calcific tendinitis of unspecified shoulder",
        "Calcific deposits in shoulder tendons",
    ),
    CodeOption(
        "M75.100",
        "M75.100 - Unspecified rotator cuff tear or rupture of unspecified shoulder, "
        "not specified as traumatic",
        "Rotator cuff pathology",
    ),
    # Knee
    CodeOption("M25.561", "M25.561 - Pain in right knee", "Right knee pain, unspecified cause"),
    CodeOption("M25.562", "M25.562 - Pain in left knee", "Left knee pain, unspecified cause"),
    CodeOption(
        "M17.10",
        "M17.10 - Unilateral primary osteoarthritis, unspecified knee",
        "Knee osteoarthritis, one side",
    ),
    CodeOption(
        "S83.511A",
        "S83.511A - Sprain of anterior cruciate ligament of right knee, initial encounter",
        "ACL injury, right knee, first treatment",
    ),
    # Hip
    CodeOption("M25.551", "M25.551 - Pain in right hip", "Right hip pain, unspecified cause"),
    CodeOption("M25.552", "M25.552 - Pain in left hip", "Left hip pain, unspecified cause"),
    CodeOption(
        "M16.10",
        "M16.10 - Unilateral primary osteoarthritis, unspecified hip",
        "Hip osteoarthritis, one side",
    ),
    # General musculoskeletal
    CodeOption("M79.3", "M79.3 - Panniculitis, unspecified", "Inflammation of subcutaneous fat tissue"),
    CodeOption("M62.81", "M62.81 - Muscle weakness (generalized)", "Generalized muscle weakness"),
    CodeOption("M25.50", "M25.50 - Pain in unspecified joint", "Joint pain, location not specified"),
    # Ankle/foot
    CodeOption("M25.571", "M25.571 - Pain in right ankle and joints of right foot", "Right ankle/foot pain"),
    CodeOption("M25.572", "M25.572 - Pain in left ankle and joints of left foot", "Left ankle/foot pain"),
    CodeOption(
        "S93.401A",
        "S93.401A - Sprain of unspecified ligament of right ankle, initial encounter",
        "Right ankle sprain, first treatment",
    ),
    # Balance and gait
    CodeOption("R26.81", "R26.81 - Unsteadiness on feet", "Balance impairment, unsteadiness"),
    CodeOption(
        "R26.2",
        "R26.2 - Difficulty in walking, not elsewhere classified",
        "Walking difficulty, gait dysfunction",
    ),
]

CPT_CODES: list[CodeOption] = [
    # Time-based procedures
    CodeOption(
        "97110",
        "97110 - Therapeutic Exercise",
        "Therapeutic procedure, 1 or more areas, each 15 minutes; therapeutic exercises to develop "
        "strength and endurance, range of motion and flexibility",
    ),
    CodeOption(
        "97112",
        "97112 - Neuromuscular Re-education",
        "Therapeutic procedure, 1 or more areas, each 15 minutes; neuromuscular reeducation of movement, "
        "balance, coordination, kinesthetic sense, posture, and/or proprioception",
    ),
    CodeOption(
        "97116",
        "97116 - Gait Training",
        "Therapeutic procedure, 1 or more areas, each 15 minutes; gait training (includes stair climbing)",
    ),
    CodeOption(
        "97140",
        "97140 - Manual Therapy",
        "Manual therapy techniques (eg, mobilization/manipulation, manual lymphatic drainage, "
        "manual traction), 1 or more regions, each 15 minutes",
    ),
    CodeOption(
        "97530",
        "97530 - Therapeutic Activities",
        "Therapeutic activities, direct (one-on-one) patient contact, each 15 minutes",
    ),
    CodeOption(
        "97535",
        "97535 - Self-Care Training",
        "Self-care/home management training, direct one-on-one contact, each 15 minutes",
    ),
    # Modalities
    CodeOption("97010", "97010 - Hot/Cold Packs", "Application of a modality to 1 or more areas; hot or cold packs"),
    CodeOption("97012", "97012 - Mechanical Traction", "Application of a modality to 1 or more areas; traction, mechanical"),
    CodeOption(
        "97014",
        "97014 - Electrical Stimulation",
        "Application of a modality to 1 or more areas; electrical stimulation (unattended)",
    ),
    CodeOption(
        "97032",
        "97032 - Electrical Stimulation (Manual)",
        "Application of a modality to 1 or more areas; electrical stimulation (manual), each 15 minutes",
    ),
    CodeOption(
        "97033",
        "97033 - Iontophoresis",
        "Application of a modality to 1 or more areas; iontophoresis, each 15 minutes",
    ),
    CodeOption(
        "97035",
        "97035 - Ultrasound",
        "Application of a modality to 1 or more areas; ultrasound, each 15 minutes",
    ),
    CodeOption("97039", "97039 - Unlisted Modality", "Unlisted modality (specify type and time if constant attendance)"),
    CodeOption(
        "97113",
        "97113 - Aquatic Therapy",
        "Therapeutic procedure, 1 or more areas, each 15 minutes; aquatic therapy with therapeutic exercises",
    ),
    CodeOption(
        "97124",
        "97124 - Massage",
        "Therapeutic procedure, 1 or more areas, each 15 minutes; massage, including effleurage, "
        "petrissage and/or tapotement",
    ),
    # Evaluations
    CodeOption("97161", "97161 - PT Evaluation Low Complexity", "Physical therapy evaluation: low complexity"),
    CodeOption("97162", "97162 - PT Evaluation Moderate Complexity", "Physical therapy evaluation: moderate complexity"),
    CodeOption("97163", "97163 - PT Evaluation High Complexity", "Physical therapy evaluation: high complexity"),
    CodeOption("97164", "97164 - PT Re-evaluation", "Re-evaluation of physical therapy established plan of care"),
    # Other
    CodeOption("97150", "97150 - Group Therapy", "Therapeutic procedure(s), group (2 or more individuals)"),
    CodeOption("97542", "97542 - Wheelchair Management Training", "Wheelchair management (eg, assessment, fitting, training), each 15 minutes"),
    CodeOption(
        "97750",
        "97750 - Physical Performance Test",
        "Physical performance test or measurement (eg, musculoskeletal, functional capacity), "
        "with written report, each 15 minutes",
    ),
]


# ============================================================================
# Search helpers
# ============================================================================


def normalize_option(option: CodeOption) -> NormalizedOption:
    """Split an option into code, description, and a friendly label.

    The description falls back to the text after the code in the label; the
    friendly label is the description when there is one.
    """
    raw_code = (option.value or "").strip()
    raw_label = (option.label or "").strip()
    raw_description = (option.description or "").strip()

    code = raw_code
    description_from_label = ""
    match = _LABEL_PATTERN.match(raw_label)
    if match:
        if not code:
            code = match.group(1)
        description_from_label = match.group(2).strip()

    description = raw_description or description_from_label
    friendly_label = description or raw_label or code
    return NormalizedOption(code=code, description=description, friendly_label=friendly_label)


def score_option(option: CodeOption, query: str) -> int:
    """Score how well an option matches a search query (0 = no match)."""
    query = (query or "").strip().lower()
    if not query:
        return 0

    norm = normalize_option(option)
    code = (norm.code or option.value or "").lower()
    description = (norm.description or option.description or "").lower()
    label = (norm.friendly_label or option.label or "").lower()

    if code == query:
        return 100
    if code.startswith(query):
        return 90
    if label.startswith(query):
        return 80
    if description.startswith(query):
        return 75
    if query in code:
        return 60
    if query in label:
        return 55
    if query in description:
        return 50
    return 0


# ============================================================================
# Catalogue service
# ============================================================================

# Singleton instance and lock
_code_service: "CodeCatalogueService | None" = None
_code_lock = threading.Lock()


def get_code_catalogue_service() -> "CodeCatalogueService":
    """Get the singleton code catalogue service instance."""
    global _code_service
    if _code_service is None:
        with _code_lock:
            if _code_service is None:
                _code_service = CodeCatalogueService()
    return _code_service


def reset_code_catalogue_service() -> None:
    """Reset the singleton instance (for testing)."""
    global _code_service
    with _code_lock:
        _code_service = None


class CodeCatalogueService:
    """Lookup and search over the ICD-10 and CPT tables."""

    def __init__(
        self,
        icd10_codes: list[CodeOption] | None = None,
        cpt_codes: list[CodeOption] | None = None,
    ) -> None:
        """Initialize the catalogue, indexing codes by value."""
        self._tables: dict[CodeKind, list[CodeOption]] = {
            CodeKind.ICD10: list(icd10_codes if icd10_codes is not None else ICD10_CODES),
            CodeKind.CPT: list(cpt_codes if cpt_codes is not None else CPT_CODES),
        }
        self._index: dict[CodeKind, dict[str, CodeOption]] = {
            kind: {option.value: option for option in options if option.value}
            for kind, options in self._tables.items()
        }
        logger.info(
            f"Code catalogue initialized with {len(self._index[CodeKind.ICD10])} ICD-10 "
            f"and {len(self._index[CodeKind.CPT])} CPT codes"
        )

    def get(self, code: str, kind: CodeKind = CodeKind.ICD10) -> CodeOption | None:
        """Get a code option by exact code."""
        return self._index[CodeKind(kind)].get((code or "").strip())

    def search(self, query: str, kind: CodeKind = CodeKind.ICD10, limit: int = 10) -> list[CodeMatch]:
        """Rank code options against a query.

        Args:
            query: Code or text typed by the user
            kind: Code system to search
            limit: Maximum number of matches

        Returns:
            Matches with score > 0, best first; ties keep table order.
        """
        if not (query or "").strip():
            return []
        matches = [
            CodeMatch(option=option, score=score)
            for option in self._tables[CodeKind(kind)]
            if (score := score_option(option, query)) > 0
        ]
        matches.sort(key=lambda match: match.score, reverse=True)
        return matches[:limit]

    def to_diagnosis(self, code: str) -> DiagnosisEntry | None:
        """Build a diagnosis entry from an ICD-10 code in the catalogue."""
        option = self.get(code, CodeKind.ICD10)
        if option is None:
            return None
        return DiagnosisEntry(code=option.value, description=option.description, label=option.label)

    def apply_cpt(self, entry: BillingCodeEntry, code: str) -> bool:
        """Set a billing line's code, filling description and label.

        Unknown codes are kept but their description and label are cleared.

        Returns:
            True if the entry changed.
        """
        option = self.get(code, CodeKind.CPT)
        new_values = {
            "code": (code or "").strip(),
            "description": option.description if option else "",
            "label": option.label if option else "",
        }
        changed = any(getattr(entry, name) != value for name, value in new_values.items())
        for name, value in new_values.items():
            setattr(entry, name, value)
        return changed

    def get_stats(self) -> dict[str, int]:
        """Get catalogue statistics."""
        return {kind.value: len(index) for kind, index in self._index.items()}
