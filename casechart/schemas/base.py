"""Base schemas and enums for case charts."""

from enum import Enum


class Side(str, Enum):
    """Body side for a measurement row."""

    LEFT = "L"
    RIGHT = "R"
    MIDLINE = ""  # Spinal/central movements with no side


class OrderType(str, Enum):
    """Kind of order or referral."""

    UNSET = ""
    REFERRAL = "referral"
    ORDER = "order"  # Order/prescription
    CONSULT = "consult"


class AssessmentTable(str, Enum):
    """Flat measurement maps on the assessment record."""

    AROM = "arom"
    PROM = "prom"
    RIMS = "rims"  # Resisted isometric movement grading
    ROM = "rom"
    MMT = "mmt"
    SPECIAL_TESTS = "special_tests"
    DERMATOME = "dermatome"
    MYOTOME = "myotome"
    REFLEX = "reflex"


class NeuroTest(str, Enum):
    """Neuroscreen test kinds, used as base-key suffixes."""

    DERMATOME = "dermatome"
    MYOTOME = "myotome"
    REFLEX = "reflex"


class RegionCategory(str, Enum):
    """Definition lists carried by a catalogue region."""

    ROM = "rom"
    RIMS = "rims"
    MMT = "mmt"
    SPECIAL_TESTS = "specialTests"


class CodeKind(str, Enum):
    """Code systems offered by the code catalogue."""

    ICD10 = "icd10"
    CPT = "cpt"


class LinkedCollection(str, Enum):
    """Billing record collections whose rows link to a diagnosis."""

    BILLING_CODES = "billing_codes"
    ORDERS_REFERRALS = "orders_referrals"
