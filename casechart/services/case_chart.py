"""Case Chart Session Service.

Entry point for one editing session over a case record. Every operation
takes the record explicitly, applies one user edit, and leaves the record
consistent before returning:

- The first diagnosis is primary.
- Every billing code and order/referral links to a diagnosis on the list
  (or has an empty link when there are none).
- Each diagnosis has at least one linked billing row and order row when
  default rows are enabled.
- Measurements are written under region-namespaced keys.

Mutations return True when the record changed and needs saving. Changes are
audited through ``casechart.core.audit``.
"""

import logging
import threading
from collections.abc import MutableSequence

from casechart.core.audit import AuditAction, log_record_change
from casechart.core.config import Settings, settings as default_settings
from casechart.schemas.base import AssessmentTable, LinkedCollection
from casechart.schemas.case_record import (
    BillingCodeEntry,
    CaseRecord,
    DiagnosisEntry,
    LinkableEntry,
    OrderReferralEntry,
)
from casechart.services import diagnosis_linkage, grouping, region_rows
from casechart.services.assessment_store import read_value, validate_grade, write_value
from casechart.services.code_catalogue import CodeCatalogueService, get_code_catalogue_service
from casechart.services.grouping import DiagnosisGroup
from casechart.services.region_catalogue import (
    RegionCatalogue,
    UnknownMeasurementError,
    UnknownRegionError,
    get_region_catalogue,
)

logger = logging.getLogger(__name__)

_FACTORIES = {
    LinkedCollection.BILLING_CODES: BillingCodeEntry,
    LinkedCollection.ORDERS_REFERRALS: OrderReferralEntry,
}


class CaseChartService:
    """Apply chart edits to a case record and keep it consistent."""

    def __init__(
        self,
        config: Settings | None = None,
        catalogue: RegionCatalogue | None = None,
        codes: CodeCatalogueService | None = None,
    ) -> None:
        self.settings = config or default_settings
        self.catalogue = catalogue or get_region_catalogue()
        self.codes = codes or get_code_catalogue_service()
        logger.info(
            f"Case chart service initialized (reject_duplicates={self.settings.reject_duplicate_diagnoses}, "
            f"default_rows={self.settings.materialize_default_rows}, "
            f"legacy_fallback={self.settings.legacy_key_fallback})"
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _audit(
        self,
        record: CaseRecord,
        action: AuditAction,
        resource_type: str,
        resource_id: str | None = None,
        **details: object,
    ) -> None:
        if not self.settings.audit_enabled:
            return
        log_record_change(action, resource_type, case_id=record.id, resource_id=resource_id, **details)

    @staticmethod
    def _dependents(record: CaseRecord) -> tuple[list[BillingCodeEntry], list[OrderReferralEntry]]:
        return record.billing.billing_codes, record.billing.orders_referrals

    @staticmethod
    def _collection(record: CaseRecord, collection: LinkedCollection | str) -> MutableSequence[LinkableEntry]:
        return getattr(record.billing, LinkedCollection(collection).value)

    def _after_diagnosis_change(self, record: CaseRecord) -> bool:
        """Relink dependents and top up default rows."""
        relinked = self.sync_all_links(record)
        materialized = self.ensure_default_rows(record)
        return relinked or materialized

    # ------------------------------------------------------------------
    # Diagnoses
    # ------------------------------------------------------------------

    def add_diagnosis(self, record: CaseRecord, entry: DiagnosisEntry) -> bool:
        """Append a diagnosis.

        Rows with an empty link adopt the primary diagnosis once the list
        is no longer empty.

        Raises:
            InvalidDiagnosisError: If the entry has no code.
            DuplicateDiagnosisError: If the code is already on the case and
                duplicates are rejected.
        """
        diagnosis_linkage.add_diagnosis(
            record.billing.diagnosis_codes,
            entry,
            reject_duplicates=self.settings.reject_duplicate_diagnoses,
        )
        self._after_diagnosis_change(record)
        logger.info(f"Added diagnosis {entry.code} to case {record.id}")
        self._audit(record, AuditAction.CREATE, "diagnosis_codes", entry.code, is_primary=entry.is_primary)
        return True

    def add_diagnosis_code(self, record: CaseRecord, code: str) -> bool:
        """Add a diagnosis by ICD-10 code, filling details from the catalogue.

        Codes missing from the catalogue are added with the code alone.
        """
        entry = self.codes.to_diagnosis(code) or DiagnosisEntry(code=code)
        return self.add_diagnosis(record, entry)

    def remove_diagnosis(self, record: CaseRecord, index: int) -> bool:
        """Remove a diagnosis; its linked rows move to the primary diagnosis."""
        diagnoses = record.billing.diagnosis_codes
        removed = diagnoses[index].code if 0 <= index < len(diagnoses) else None
        if not diagnosis_linkage.remove_diagnosis(diagnoses, index, *self._dependents(record)):
            return False
        self.ensure_default_rows(record)
        self._audit(record, AuditAction.DELETE, "diagnosis_codes", removed, index=index)
        return True

    def move_diagnosis(self, record: CaseRecord, index: int, direction: int) -> bool:
        """Move a diagnosis up (-1) or down (+1)."""
        diagnoses = record.billing.diagnosis_codes
        if not diagnosis_linkage.move_diagnosis(diagnoses, index, direction, *self._dependents(record)):
            return False
        moved = diagnoses[index + direction].code
        self._audit(record, AuditAction.REORDER, "diagnosis_codes", moved, index=index, direction=direction)
        return True

    def replace_diagnosis(self, record: CaseRecord, index: int, entry: DiagnosisEntry) -> bool:
        """Replace a diagnosis with a new selection."""
        diagnoses = record.billing.diagnosis_codes
        previous = diagnoses[index].code if 0 <= index < len(diagnoses) else None
        changed = diagnosis_linkage.replace_diagnosis(
            diagnoses,
            index,
            entry,
            *self._dependents(record),
            reject_duplicates=self.settings.reject_duplicate_diagnoses,
        )
        if not changed:
            return False
        self.ensure_default_rows(record)
        self._audit(record, AuditAction.UPDATE, "diagnosis_codes", entry.code, previous=previous, index=index)
        return True

    def sync_all_links(self, record: CaseRecord) -> bool:
        """Repair stale links in both linked collections."""
        changed = False
        diagnoses = record.billing.diagnosis_codes
        for collection in LinkedCollection:
            if diagnosis_linkage.sync_links(self._collection(record, collection), diagnoses):
                changed = True
                self._audit(record, AuditAction.RELINK, collection.value)
        return changed

    # ------------------------------------------------------------------
    # Linked rows
    # ------------------------------------------------------------------

    def _add_linked(self, record: CaseRecord, collection: LinkedCollection, item: LinkableEntry) -> bool:
        # New rows start on the primary diagnosis
        item.linked_diagnosis_code = diagnosis_linkage.primary_code(record.billing.diagnosis_codes)
        self._collection(record, collection).append(item)
        self._audit(record, AuditAction.CREATE, collection.value, getattr(item, "code", None) or None)
        return True

    def _remove_linked(self, record: CaseRecord, collection: LinkedCollection, index: int) -> bool:
        items = self._collection(record, collection)
        if not 0 <= index < len(items):
            logger.warning(f"Ignoring removal of {collection.value} row {index}; list has {len(items)} rows")
            return False
        items.pop(index)
        self._audit(record, AuditAction.DELETE, collection.value, index=index)
        return True

    def add_billing_code(self, record: CaseRecord, entry: BillingCodeEntry | None = None) -> bool:
        """Append a billing row linked to the primary diagnosis."""
        return self._add_linked(record, LinkedCollection.BILLING_CODES, entry or BillingCodeEntry())

    def add_order_referral(self, record: CaseRecord, entry: OrderReferralEntry | None = None) -> bool:
        """Append an order/referral row linked to the primary diagnosis."""
        return self._add_linked(record, LinkedCollection.ORDERS_REFERRALS, entry or OrderReferralEntry())

    def remove_billing_code(self, record: CaseRecord, index: int) -> bool:
        return self._remove_linked(record, LinkedCollection.BILLING_CODES, index)

    def remove_order_referral(self, record: CaseRecord, index: int) -> bool:
        return self._remove_linked(record, LinkedCollection.ORDERS_REFERRALS, index)

    def set_billing_code(self, record: CaseRecord, index: int, code: str) -> bool:
        """Set a billing row's CPT code, filling description and label."""
        items = record.billing.billing_codes
        if not 0 <= index < len(items):
            logger.warning(f"Ignoring CPT change on billing row {index}; list has {len(items)} rows")
            return False
        if not self.codes.apply_cpt(items[index], code):
            return False
        self._audit(record, AuditAction.UPDATE, LinkedCollection.BILLING_CODES.value, items[index].code)
        return True

    def link_item(self, record: CaseRecord, collection: LinkedCollection | str, index: int, code: str) -> bool:
        """Point a row at a diagnosis on the list.

        Codes not on the list are ignored so links stay valid.
        """
        items = self._collection(record, collection)
        code = (code or "").strip()
        if not 0 <= index < len(items):
            logger.warning(f"Ignoring link change on row {index}; list has {len(items)} rows")
            return False
        if code not in diagnosis_linkage.valid_codes(record.billing.diagnosis_codes):
            logger.warning(f"Ignoring link to diagnosis {code!r}; not on case {record.id}")
            return False
        if items[index].linked_diagnosis_code == code:
            return False
        items[index].linked_diagnosis_code = code
        self._audit(record, AuditAction.RELINK, LinkedCollection(collection).value, code, index=index)
        return True

    # ------------------------------------------------------------------
    # Grouping
    # ------------------------------------------------------------------

    def diagnosis_groups(self, record: CaseRecord, collection: LinkedCollection | str) -> list[DiagnosisGroup]:
        """Group a linked collection's rows by diagnosis for display."""
        return grouping.build_diagnosis_groups(
            record.billing.diagnosis_codes,
            self._collection(record, collection),
        )

    def ensure_default_rows(self, record: CaseRecord) -> bool:
        """Give every diagnosis one empty row in each linked collection.

        Does nothing when default rows are disabled.
        """
        if not self.settings.materialize_default_rows:
            return False
        changed = False
        for collection, factory in _FACTORIES.items():
            items = self._collection(record, collection)
            before = len(items)
            if grouping.materialize_default_rows(record.billing.diagnosis_codes, items, factory):
                changed = True
                self._audit(record, AuditAction.MATERIALIZE, collection.value, rows=len(items) - before)
        return changed

    # ------------------------------------------------------------------
    # Regional assessments
    # ------------------------------------------------------------------

    def toggle_region(self, record: CaseRecord, region_key: str) -> bool:
        """Select or deselect a region; measurements are kept either way."""
        if not region_rows.toggle_region(record.assessment, region_key, self.catalogue):
            return False
        selected = region_key in record.assessment.selected_regions
        self._audit(record, AuditAction.UPDATE, "selected_regions", region_key, selected=selected)
        return True

    def toggle_neuroscreen_region(self, record: CaseRecord, region_key: str) -> bool:
        """Select or deselect a neuroscreen region; measurements are kept either way."""
        if not region_rows.toggle_neuroscreen_region(record.assessment, region_key, self.catalogue):
            return False
        selected = region_key in record.assessment.neuro_selected_regions
        self._audit(record, AuditAction.UPDATE, "neuro_selected_regions", region_key, selected=selected)
        return True

    def _check_measurement(self, table: AssessmentTable, region: str, base_key: str) -> None:
        if region not in self.catalogue:
            raise UnknownRegionError(region)
        # Keys outside the derived rows would never be shown again
        if base_key not in self.catalogue.measurement_base_keys(region, table):
            raise UnknownMeasurementError(table, region, base_key)

    def record_measurement(
        self,
        record: CaseRecord,
        table: AssessmentTable | str,
        region: str,
        base_key: str,
        value: str,
    ) -> bool:
        """Write one measurement under the region's namespace.

        Raises:
            UnknownRegionError: If the region is not in the catalogue.
            UnknownMeasurementError: If the table has no such row for the
                region, including tables of the other region kind.
            InvalidGradeError: If a graded value is outside its options and
                strict grades are on.
        """
        table = AssessmentTable(table)
        self._check_measurement(table, region, base_key)
        value = "" if value is None else str(value)
        if self.settings.strict_grades:
            validate_grade(table, value)

        if not write_value(record.assessment.table(table), region, base_key, value):
            return False
        self._audit(record, AuditAction.UPDATE, table.value, f"{region}:{base_key}")
        return True

    def read_measurement(
        self,
        record: CaseRecord,
        table: AssessmentTable | str,
        region: str,
        base_key: str,
        default: str = "",
    ) -> str:
        """Read one measurement, falling back to legacy bare keys if enabled."""
        return read_value(
            record.assessment.table(AssessmentTable(table)),
            region,
            base_key,
            default,
            legacy_fallback=self.settings.legacy_key_fallback,
        )

    # ------------------------------------------------------------------
    # Whole record
    # ------------------------------------------------------------------

    def normalize(self, record: CaseRecord) -> bool:
        """Bring a freshly loaded record into a consistent state.

        Re-derives the primary flag, drops unknown regions from the
        selection, repairs links, and adds default rows.

        Returns:
            True if anything changed.
        """
        changed = diagnosis_linkage.reapply_primary(record.billing.diagnosis_codes)
        changed = region_rows.filter_invalid_regions(record.assessment, self.catalogue) or changed
        changed = self._after_diagnosis_change(record) or changed
        if changed:
            logger.info(f"Normalized case {record.id}")
        return changed


# Singleton instance and lock
_service: CaseChartService | None = None
_service_lock = threading.Lock()


def get_case_chart_service() -> CaseChartService:
    """Get the singleton case chart service instance."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = CaseChartService()
    return _service


def reset_case_chart_service() -> None:
    """Reset the singleton instance (for testing)."""
    global _service
    with _service_lock:
        _service = None
