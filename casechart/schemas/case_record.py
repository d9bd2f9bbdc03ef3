"""Case record schemas: diagnoses, linked billing/orders, and assessments.

The stored document uses camelCase keys (``diagnosisCodes``,
``linkedDiagnosisCode``, ``isPrimary``). Models expose snake_case attributes
with camelCase aliases; dump with ``by_alias=True`` to get the document shape
back. Unknown fields are kept so nothing the editor wrote is lost on a round
trip.

Input from the editor is free text, so validation is lenient: malformed
values are coerced rather than rejected.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from casechart.schemas.base import AssessmentTable, OrderType


def _as_text(value: Any) -> str:
    """Coerce a loosely typed value to a string (``None`` -> "")."""
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_code(value: Any) -> str:
    """Coerce a code-like value to a trimmed string."""
    return _as_text(value).strip()


def _mapping_items(value: Any) -> list[Any]:
    """Keep only entries that can be parsed as records."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, (Mapping, BaseModel))]


class DiagnosisEntry(BaseModel):
    """An ICD-10 diagnosis on the case.

    ``is_primary`` is a cache of "this entry is at index 0"; list position is
    the source of truth and the flag is re-derived on load and after every
    list mutation.
    """

    code: str = Field(default="", description="ICD-10 code, trimmed")
    description: str = Field(default="", description="Diagnosis description")
    label: str = Field(default="", description="Display label, e.g. 'M54.5 - Low back pain'")
    is_primary: bool = Field(default=False, alias="isPrimary", description="Derived from position")

    model_config = {"populate_by_name": True, "extra": "allow"}

    @field_validator("code", mode="before")
    @classmethod
    def _clean_code(cls, value: Any) -> str:
        return _as_code(value)

    @field_validator("description", "label", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("is_primary", mode="before")
    @classmethod
    def _clean_flag(cls, value: Any) -> bool:
        return bool(value) if not isinstance(value, str) else value.lower() in ("true", "1", "yes")

    @property
    def display_label(self) -> str:
        """Label for lists and group headers."""
        if self.label:
            return self.label
        if self.code and self.description:
            return f"{self.code} - {self.description}"
        return self.code or self.description


class LinkableEntry(BaseModel):
    """Base for records that reference one diagnosis by code."""

    linked_diagnosis_code: str = Field(
        default="",
        alias="linkedDiagnosisCode",
        description="Code of the linked diagnosis, or empty",
    )

    model_config = {"populate_by_name": True, "extra": "allow"}

    @field_validator("linked_diagnosis_code", mode="before")
    @classmethod
    def _clean_link(cls, value: Any) -> str:
        return _as_code(value)


class BillingCodeEntry(LinkableEntry):
    """A CPT billing line."""

    code: str = Field(default="", description="CPT code")
    description: str = Field(default="", description="CPT description")
    label: str = Field(default="", description="Display label")
    units: int = Field(default=1, ge=1, description="Billed units")
    time_spent: str = Field(default="", alias="timeSpent", description="Free-text time spent")

    @field_validator("code", mode="before")
    @classmethod
    def _clean_code(cls, value: Any) -> str:
        return _as_code(value)

    @field_validator("description", "label", "time_spent", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("units", mode="before")
    @classmethod
    def _clean_units(cls, value: Any) -> int:
        # Same rule as the units input: anything unparsable or < 1 bills one unit
        try:
            units = int(value)
        except (TypeError, ValueError):
            return 1
        return units if units >= 1 else 1


class OrderReferralEntry(LinkableEntry):
    """An order, prescription, referral, or consult."""

    type: OrderType = Field(default=OrderType.UNSET, description="Order kind")
    details: str = Field(default="", description="Free-text details")

    @field_validator("type", mode="before")
    @classmethod
    def _clean_type(cls, value: Any) -> OrderType:
        try:
            return OrderType(_as_code(value).lower())
        except ValueError:
            return OrderType.UNSET

    @field_validator("details", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> str:
        return _as_text(value)


class BillingRecord(BaseModel):
    """Billing part of a case: diagnoses and the two linked collections."""

    diagnosis_codes: list[DiagnosisEntry] = Field(default_factory=list, alias="diagnosisCodes")
    billing_codes: list[BillingCodeEntry] = Field(default_factory=list, alias="billingCodes")
    orders_referrals: list[OrderReferralEntry] = Field(default_factory=list, alias="ordersReferrals")

    model_config = {"populate_by_name": True, "extra": "allow"}

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_shapes(cls, data: Any) -> Any:
        if isinstance(data, BaseModel):
            return data
        if not isinstance(data, Mapping):
            return {}
        data = dict(data)
        # Older drafts stored diagnoses under "icdCodes"
        if "diagnosisCodes" not in data and "diagnosis_codes" not in data and "icdCodes" in data:
            data["diagnosisCodes"] = data.pop("icdCodes")
        for alias, name in (
            ("diagnosisCodes", "diagnosis_codes"),
            ("billingCodes", "billing_codes"),
            ("ordersReferrals", "orders_referrals"),
        ):
            for key in (alias, name):
                if key in data:
                    data[key] = _mapping_items(data[key])
        return data

    @model_validator(mode="after")
    def _derive_primary(self) -> "BillingRecord":
        # Blank rows are unfilled search placeholders, not diagnoses
        self.diagnosis_codes = [entry for entry in self.diagnosis_codes if entry.code]
        for index, entry in enumerate(self.diagnosis_codes):
            entry.is_primary = index == 0
        return self


class AssessmentRecord(BaseModel):
    """Objective assessment maps shared by all selected regions.

    Measurement maps are flat ``{key: value}`` dicts. Keys are
    ``"<region>:<baseKey>"`` for anything written by this package and bare
    ``baseKey`` for documents saved before namespacing.

    Regional assessments and the neuroscreen keep separate region
    selections. Documents that nest the neuroscreen under ``neuro``
    (``neuro.selectedRegions``, ``neuro.dermatome``, ...) are flattened on
    load.
    """

    selected_regions: list[str] = Field(default_factory=list, alias="selectedRegions")
    neuro_selected_regions: list[str] = Field(default_factory=list, alias="neuroSelectedRegions")
    arom: dict[str, str] = Field(default_factory=dict)
    prom: dict[str, str] = Field(default_factory=dict)
    rims: dict[str, str] = Field(default_factory=dict)
    rom: dict[str, str] = Field(default_factory=dict)
    mmt: dict[str, str] = Field(default_factory=dict)
    special_tests: dict[str, str] = Field(default_factory=dict, alias="specialTests")
    dermatome: dict[str, str] = Field(default_factory=dict)
    myotome: dict[str, str] = Field(default_factory=dict)
    reflex: dict[str, str] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "allow"}

    @model_validator(mode="before")
    @classmethod
    def _flatten_neuro(cls, data: Any) -> Any:
        if not isinstance(data, Mapping) or not isinstance(data.get("neuro"), Mapping):
            return data
        data = dict(data)
        neuro = data.pop("neuro")
        for source, target in (
            ("selectedRegions", "neuroSelectedRegions"),
            ("dermatome", "dermatome"),
            ("myotome", "myotome"),
            ("reflex", "reflex"),
        ):
            if source in neuro and target not in data:
                data[target] = neuro[source]
        return data

    @field_validator("selected_regions", "neuro_selected_regions", mode="before")
    @classmethod
    def _clean_regions(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [_as_code(item) for item in value if _as_code(item)]

    @field_validator(
        "arom", "prom", "rims", "rom", "mmt", "special_tests", "dermatome", "myotome", "reflex",
        mode="before",
    )
    @classmethod
    def _clean_map(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, Mapping):
            return {}
        return {str(key): _as_text(val) for key, val in value.items() if val is not None}

    def table(self, table: AssessmentTable) -> dict[str, str]:
        """Get the live measurement map for a table."""
        return getattr(self, table.value)


class CaseRecord(BaseModel):
    """The case document owned by one editing session."""

    id: str | None = Field(None, description="Case identifier")
    billing: BillingRecord = Field(default_factory=BillingRecord)
    assessment: AssessmentRecord = Field(default_factory=AssessmentRecord)

    model_config = {"populate_by_name": True, "extra": "allow"}

    @field_validator("billing", "assessment", mode="before")
    @classmethod
    def _default_sections(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_document(self) -> dict[str, Any]:
        """Dump to the camelCase document shape for persistence."""
        return self.model_dump(by_alias=True, mode="json")
