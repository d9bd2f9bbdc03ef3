"""Pydantic schemas for case charts."""

from casechart.schemas.base import (
    AssessmentTable,
    CodeKind,
    LinkedCollection,
    NeuroTest,
    OrderType,
    RegionCategory,
    Side,
)
from casechart.schemas.case_record import (
    AssessmentRecord,
    BillingCodeEntry,
    BillingRecord,
    CaseRecord,
    DiagnosisEntry,
    LinkableEntry,
    OrderReferralEntry,
)

__all__ = [
    # Enums
    "AssessmentTable",
    "CodeKind",
    "LinkedCollection",
    "NeuroTest",
    "OrderType",
    "RegionCategory",
    "Side",
    # Case record
    "AssessmentRecord",
    "BillingCodeEntry",
    "BillingRecord",
    "CaseRecord",
    "DiagnosisEntry",
    "LinkableEntry",
    "OrderReferralEntry",
]
