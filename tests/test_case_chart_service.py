"""Tests for the case chart session service."""

import logging

import pytest

from casechart.core.config import Settings
from casechart.schemas.base import AssessmentTable, LinkedCollection
from casechart.schemas.case_record import (
    BillingCodeEntry,
    CaseRecord,
    DiagnosisEntry,
    OrderReferralEntry,
)
from casechart.services.assessment_store import InvalidGradeError
from casechart.services.case_chart import (
    CaseChartService,
    get_case_chart_service,
    reset_case_chart_service,
)
from casechart.services.diagnosis_linkage import DuplicateDiagnosisError, InvalidDiagnosisError
from casechart.services.region_catalogue import UnknownMeasurementError, UnknownRegionError


def _links(items) -> list[str]:
    return [item.linked_diagnosis_code for item in items]


# ============================================================================
# Service Tests
# ============================================================================


class TestServiceInit:
    """Test service initialization."""

    def setup_method(self):
        """Reset singleton before each test."""
        reset_case_chart_service()

    def test_singleton_pattern(self):
        """Test singleton pattern works."""
        assert get_case_chart_service() is get_case_chart_service()

    def test_singleton_reset(self):
        """Test singleton can be reset."""
        service1 = get_case_chart_service()
        reset_case_chart_service()
        assert get_case_chart_service() is not service1


# ============================================================================
# Diagnosis Tests
# ============================================================================


class TestDiagnoses:
    """Test diagnosis edits through the service."""

    def test_first_diagnosis_links_existing_rows(self, service):
        """Test rows added before any diagnosis adopt the first one."""
        record = CaseRecord()
        service.add_billing_code(record)
        assert _links(record.billing.billing_codes) == [""]

        service.add_diagnosis(record, DiagnosisEntry(code="M54.5"))
        assert record.billing.diagnosis_codes[0].is_primary is True
        assert _links(record.billing.billing_codes) == ["M54.5"]

    def test_add_materializes_default_rows(self, service):
        """Test each new diagnosis gets a billing row and an order row."""
        record = CaseRecord()
        service.add_diagnosis(record, DiagnosisEntry(code="M54.5"))
        service.add_diagnosis(record, DiagnosisEntry(code="M25.512"))
        assert _links(record.billing.billing_codes) == ["M54.5", "M25.512"]
        assert _links(record.billing.orders_referrals) == ["M54.5", "M25.512"]

    def test_default_rows_disabled(self):
        """Test no rows are created when default rows are off."""
        service = CaseChartService(config=Settings(_env_file=None, materialize_default_rows=False))
        record = CaseRecord()
        service.add_diagnosis(record, DiagnosisEntry(code="M54.5"))
        assert record.billing.billing_codes == []

    def test_add_diagnosis_code_uses_catalogue(self, service):
        """Test adding by code fills the description."""
        record = CaseRecord()
        service.add_diagnosis_code(record, "M25.512")
        entry = record.billing.diagnosis_codes[0]
        assert entry.description == "Left shoulder pain, unspecified cause"
        assert entry.label == "M25.512 - Pain in left shoulder"

    def test_add_unknown_code(self, service):
        """Test codes missing from the catalogue are still added."""
        record = CaseRecord()
        service.add_diagnosis_code(record, "Z99.89")
        assert record.billing.diagnosis_codes[0].code == "Z99.89"

    def test_duplicate_rejected(self, service, case_record):
        """Test duplicates are rejected by default."""
        with pytest.raises(DuplicateDiagnosisError):
            service.add_diagnosis_code(case_record, "M54.5")

    def test_duplicate_allowed_when_configured(self, case_record):
        """Test duplicates are accepted when configured."""
        service = CaseChartService(config=Settings(_env_file=None, reject_duplicate_diagnoses=False))
        assert service.add_diagnosis(case_record, DiagnosisEntry(code="M54.5")) is True
        assert len(case_record.billing.diagnosis_codes) == 3

    def test_blank_rejected(self, service):
        """Test blank codes are rejected."""
        with pytest.raises(InvalidDiagnosisError):
            service.add_diagnosis(CaseRecord(), DiagnosisEntry(code=""))

    def test_remove_relinks_without_deleting(self, service, case_record):
        """Test removing a diagnosis keeps and relinks its rows."""
        billing_count = len(case_record.billing.billing_codes)
        assert service.remove_diagnosis(case_record, 0) is True
        assert len(case_record.billing.billing_codes) == billing_count
        assert set(_links(case_record.billing.billing_codes)) == {"M25.512"}

    def test_remove_out_of_range(self, service, case_record):
        """Test invalid indexes are ignored."""
        assert service.remove_diagnosis(case_record, 5) is False
        assert len(case_record.billing.diagnosis_codes) == 2

    def test_move_changes_primary(self, service, case_record):
        """Test moving a diagnosis up makes it primary."""
        assert service.move_diagnosis(case_record, 1, -1) is True
        assert case_record.billing.diagnosis_codes[0].code == "M25.512"
        assert case_record.billing.diagnosis_codes[0].is_primary is True
        assert case_record.billing.diagnosis_codes[1].is_primary is False

    def test_move_off_end(self, service, case_record):
        """Test moves past the end are ignored."""
        assert service.move_diagnosis(case_record, 0, -1) is False

    def test_replace_diagnosis(self, service, case_record):
        """Test replacing a diagnosis relinks rows of the old code."""
        assert service.replace_diagnosis(case_record, 1, DiagnosisEntry(code="M54.2")) is True
        assert _links(case_record.billing.orders_referrals) == ["M54.5", "M54.2"]
        assert "M25.512" not in _links(case_record.billing.billing_codes)

    def test_replace_adds_default_rows_for_new_code(self, service, case_record):
        """Test the replacement diagnosis gets its own rows."""
        service.replace_diagnosis(case_record, 1, DiagnosisEntry(code="M54.2"))
        assert "M54.2" in _links(case_record.billing.billing_codes)
        assert "M54.2" in _links(case_record.billing.orders_referrals)


# ============================================================================
# Linked Row Tests
# ============================================================================


class TestLinkedRows:
    """Test billing and order rows."""

    def test_new_rows_link_to_primary(self, service, case_record):
        """Test added rows start on the primary diagnosis."""
        service.add_billing_code(case_record, BillingCodeEntry(code="97530", linked_diagnosis_code="M99.9"))
        service.add_order_referral(case_record, OrderReferralEntry(type="consult"))
        assert case_record.billing.billing_codes[-1].linked_diagnosis_code == "M54.5"
        assert case_record.billing.orders_referrals[-1].linked_diagnosis_code == "M54.5"

    def test_remove_rows(self, service, case_record):
        """Test removing rows by index."""
        assert service.remove_billing_code(case_record, 0) is True
        assert case_record.billing.billing_codes[0].code == "97140"
        assert service.remove_order_referral(case_record, 0) is True
        assert case_record.billing.orders_referrals == []

    def test_remove_rows_out_of_range(self, service, case_record):
        """Test invalid indexes are ignored."""
        assert service.remove_billing_code(case_record, 9) is False
        assert service.remove_order_referral(case_record, -1) is False

    def test_set_billing_code(self, service, case_record):
        """Test setting a CPT code fills details from the catalogue."""
        assert service.set_billing_code(case_record, 1, "97140") is True
        entry = case_record.billing.billing_codes[1]
        assert entry.label == "97140 - Manual Therapy"
        assert entry.description.startswith("Manual therapy techniques")

    def test_set_billing_code_out_of_range(self, service, case_record):
        """Test invalid indexes are ignored."""
        assert service.set_billing_code(case_record, 9, "97110") is False

    def test_link_item(self, service, case_record):
        """Test pointing a row at another diagnosis."""
        assert service.link_item(case_record, LinkedCollection.BILLING_CODES, 0, "M25.512") is True
        assert case_record.billing.billing_codes[0].linked_diagnosis_code == "M25.512"
        assert service.link_item(case_record, "billing_codes", 0, "M25.512") is False

    def test_link_item_to_unknown_code(self, service, case_record):
        """Test links to codes not on the case are refused."""
        assert service.link_item(case_record, LinkedCollection.BILLING_CODES, 0, "M99.9") is False
        assert case_record.billing.billing_codes[0].linked_diagnosis_code == "M54.5"

    def test_sync_all_links(self, service, case_record):
        """Test stale links in both collections are repaired."""
        case_record.billing.orders_referrals[0].linked_diagnosis_code = "M99.9"
        assert service.sync_all_links(case_record) is True
        assert _links(case_record.billing.billing_codes) == ["M54.5", "M54.5"]
        assert _links(case_record.billing.orders_referrals) == ["M54.5"]
        assert service.sync_all_links(case_record) is False


# ============================================================================
# Grouping Tests
# ============================================================================


class TestGroups:
    """Test diagnosis groups through the service."""

    def test_groups(self, service, case_record):
        """Test rows are grouped per diagnosis."""
        service.normalize(case_record)
        groups = service.diagnosis_groups(case_record, LinkedCollection.BILLING_CODES)
        assert [group.key for group in groups] == ["M54.5", "M25.512"]
        assert all(not group.is_empty for group in groups)

    def test_ensure_default_rows(self, service, case_record):
        """Test empty groups get one row and a second pass adds none."""
        assert service.ensure_default_rows(case_record) is True
        assert service.ensure_default_rows(case_record) is False
        groups = service.diagnosis_groups(case_record, "orders_referrals")
        assert [len(group.indexes) for group in groups] == [1, 1]


# ============================================================================
# Assessment Tests
# ============================================================================


class TestAssessments:
    """Test regional measurements through the service."""

    def test_record_and_read(self, service, case_record):
        """Test a measurement is stored under the region namespace."""
        assert service.record_measurement(case_record, AssessmentTable.AROM, "hip", "Hip Flexion_L", "95") is True
        assert case_record.assessment.arom["hip:Hip Flexion_L"] == "95"
        assert case_record.assessment.arom["Hip Flexion_L"] == "80"
        assert service.read_measurement(case_record, "arom", "hip", "Hip Flexion_L") == "95"

    def test_unchanged_value(self, service, case_record):
        """Test rewriting the same value reports no change."""
        assert service.record_measurement(case_record, "arom", "shoulder", "Shoulder Flexion_R", "150") is False

    def test_legacy_read(self, service, case_record):
        """Test legacy values are read when fallback is on."""
        assert service.read_measurement(case_record, AssessmentTable.AROM, "hip", "Hip Flexion_L") == "80"

    def test_legacy_read_disabled(self, case_record):
        """Test legacy values are hidden when fallback is off."""
        service = CaseChartService(config=Settings(_env_file=None, legacy_key_fallback=False))
        assert service.read_measurement(case_record, AssessmentTable.AROM, "hip", "Hip Flexion_L") == ""

    def test_neuroscreen_measurement(self, service, case_record):
        """Test neuroscreen regions accept measurements."""
        service.record_measurement(case_record, AssessmentTable.DERMATOME, "upper-extremity", "C5-L-dermatome", "intact")
        assert case_record.assessment.dermatome == {"upper-extremity:C5-L-dermatome": "intact"}

    def test_unknown_region(self, service, case_record):
        """Test measurements for unknown regions are rejected."""
        with pytest.raises(UnknownRegionError):
            service.record_measurement(case_record, AssessmentTable.AROM, "pelvis", "Flexion_L", "10")

    def test_invalid_grade(self, service, case_record):
        """Test graded tables reject values outside their options."""
        with pytest.raises(InvalidGradeError):
            service.record_measurement(case_record, AssessmentTable.RIMS, "hip", "Hip Flexion_L", "maybe")
        assert case_record.assessment.rims == {}

    def test_grades_not_strict(self, case_record):
        """Test any value is accepted when strict grades are off."""
        service = CaseChartService(config=Settings(_env_file=None, strict_grades=False))
        assert service.record_measurement(case_record, AssessmentTable.RIMS, "hip", "Hip Flexion_L", "maybe") is True

    def test_toggle_region_keeps_values(self, service, case_record):
        """Test deselecting a region keeps its measurements."""
        assert service.toggle_region(case_record, "shoulder") is True
        assert "shoulder" not in case_record.assessment.selected_regions
        assert service.read_measurement(case_record, "arom", "shoulder", "Shoulder Flexion_R") == "150"
        assert service.toggle_region(case_record, "pelvis") is False

    def test_toggle_neuroscreen_region_keeps_values(self, service, case_record):
        """Test the neuroscreen selection toggles apart from assessment regions."""
        service.record_measurement(case_record, AssessmentTable.REFLEX, "lower-extremity", "L4-R-reflex", "2+")
        assert service.toggle_neuroscreen_region(case_record, "lower-extremity") is True
        assert case_record.assessment.neuro_selected_regions == ["lower-extremity"]
        assert service.toggle_neuroscreen_region(case_record, "lower-extremity") is True
        assert case_record.assessment.neuro_selected_regions == []
        assert case_record.assessment.selected_regions == ["shoulder", "hip"]
        assert service.read_measurement(case_record, "reflex", "lower-extremity", "L4-R-reflex") == "2+"
        assert service.toggle_neuroscreen_region(case_record, "hip") is False

    def test_neuro_table_needs_neuroscreen_region(self, service, case_record):
        """Test neuroscreen tables reject assessment regions."""
        with pytest.raises(UnknownMeasurementError):
            service.record_measurement(case_record, AssessmentTable.DERMATOME, "hip", "C5-L-dermatome", "intact")
        assert case_record.assessment.dermatome == {}

    def test_assessment_table_needs_assessment_region(self, service, case_record):
        """Test assessment tables reject neuroscreen regions."""
        with pytest.raises(UnknownMeasurementError):
            service.record_measurement(case_record, AssessmentTable.AROM, "lower-extremity", "Hip Flexion_L", "90")

    def test_unknown_base_key(self, service, case_record):
        """Test keys outside the region's rows are rejected."""
        with pytest.raises(UnknownMeasurementError):
            service.record_measurement(case_record, AssessmentTable.AROM, "hip", "Knee Flexion_L", "90")
        with pytest.raises(UnknownMeasurementError):
            service.record_measurement(case_record, AssessmentTable.REFLEX, "upper-extremity", "C8-L-reflex", "2+")
        assert "hip:Knee Flexion_L" not in case_record.assessment.arom


# ============================================================================
# Normalize Tests
# ============================================================================


class TestNormalize:
    """Test normalizing a loaded record."""

    def test_normalize(self, service, case_document):
        """Test a loaded record is made consistent."""
        case_document["assessment"]["selectedRegions"].append("pelvis")
        record = CaseRecord.model_validate(case_document)
        assert service.normalize(record) is True

        assert record.billing.diagnosis_codes[0].is_primary is True
        assert record.assessment.selected_regions == ["shoulder", "hip"]
        assert _links(record.billing.billing_codes)[:2] == ["M54.5", "M54.5"]
        assert "M54.5" in _links(record.billing.orders_referrals)

    def test_normalize_keeps_neuroscreen_selection(self, service, case_document):
        """Test valid neuroscreen keys survive normalization."""
        case_document["assessment"]["neuroSelectedRegions"] = ["upper-extremity", "pelvis", "hip"]
        record = CaseRecord.model_validate(case_document)
        service.normalize(record)

        assert record.assessment.neuro_selected_regions == ["upper-extremity"]
        assert record.assessment.selected_regions == ["shoulder", "hip"]

    def test_normalize_twice(self, service, case_record):
        """Test a normalized record needs no further changes."""
        service.normalize(case_record)
        assert service.normalize(case_record) is False

    def test_normalize_empty_record(self, service):
        """Test an empty record is already consistent."""
        assert service.normalize(CaseRecord()) is False


# ============================================================================
# Audit Tests
# ============================================================================


class TestAuditing:
    """Test audit events emitted by the service."""

    def test_changes_audited(self, service, caplog):
        """Test mutations write audit events."""
        record = CaseRecord(id="case-009")
        with caplog.at_level(logging.INFO, logger="audit"):
            service.add_diagnosis(record, DiagnosisEntry(code="M54.5"))
        assert "AUDIT: create diagnosis_codes/M54.5 case=case-009" in caplog.text
        assert "AUDIT: materialize billing_codes" in caplog.text

    def test_no_change_not_audited(self, service, case_record, caplog):
        """Test no-op calls write nothing."""
        with caplog.at_level(logging.INFO, logger="audit"):
            service.move_diagnosis(case_record, 0, -1)
        assert "AUDIT" not in caplog.text

    def test_audit_disabled(self, case_record, caplog):
        """Test auditing can be turned off."""
        service = CaseChartService(config=Settings(_env_file=None, audit_enabled=False))
        with caplog.at_level(logging.INFO, logger="audit"):
            service.remove_diagnosis(case_record, 0)
        assert "AUDIT" not in caplog.text
