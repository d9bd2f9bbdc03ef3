"""Pytest configuration and fixtures for case chart tests."""

import pytest

from casechart.core.config import Settings
from casechart.schemas.case_record import (
    BillingCodeEntry,
    CaseRecord,
    DiagnosisEntry,
    OrderReferralEntry,
)
from casechart.services.case_chart import CaseChartService, reset_case_chart_service
from casechart.services.code_catalogue import reset_code_catalogue_service
from casechart.services.region_catalogue import reset_region_catalogue


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset service singletons around every test."""
    reset_region_catalogue()
    reset_code_catalogue_service()
    reset_case_chart_service()
    yield
    reset_case_chart_service()
    reset_code_catalogue_service()
    reset_region_catalogue()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with defaults, isolated from the environment's .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def service(test_settings: Settings) -> CaseChartService:
    """Session service using the default catalogues."""
    return CaseChartService(config=test_settings)


@pytest.fixture
def diagnoses() -> list[DiagnosisEntry]:
    """Two diagnoses: low back pain (primary) and left shoulder pain."""
    return [
        DiagnosisEntry(code="M54.5", description="Low back pain, unspecified", is_primary=True),
        DiagnosisEntry(code="M25.512", description="Left shoulder pain, unspecified cause"),
    ]


@pytest.fixture
def case_document() -> dict:
    """A stored case document in the camelCase shape."""
    return {
        "id": "case-001",
        "billing": {
            "diagnosisCodes": [
                {"code": "M54.5", "description": "Low back pain", "isPrimary": False},
                {"code": "M25.512", "description": "Pain in left shoulder", "isPrimary": True},
            ],
            "billingCodes": [
                {"code": "97110", "units": 2, "linkedDiagnosisCode": "M54.5"},
                {"code": "97140", "units": 1, "linkedDiagnosisCode": "M99.9"},
            ],
            "ordersReferrals": [
                {"type": "referral", "details": "Orthopedics", "linkedDiagnosisCode": "M25.512"},
            ],
        },
        "assessment": {
            "selectedRegions": ["shoulder", "hip"],
            "arom": {"Hip Flexion_L": "80", "shoulder:Shoulder Flexion_R": "150"},
            "rims": {},
        },
    }


@pytest.fixture
def case_record(case_document: dict) -> CaseRecord:
    """The sample document loaded as a record."""
    return CaseRecord.model_validate(case_document)


@pytest.fixture
def billing_items() -> list[BillingCodeEntry]:
    return [
        BillingCodeEntry(code="97110", linked_diagnosis_code="M54.5"),
        BillingCodeEntry(code="97140", linked_diagnosis_code="M25.512"),
    ]


@pytest.fixture
def order_items() -> list[OrderReferralEntry]:
    return [OrderReferralEntry(type="order", details="Home exercise program", linked_diagnosis_code="M54.5")]
