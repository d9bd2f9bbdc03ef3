"""Services for Case Chart Core.

Services implement the chart editing logic:
- diagnosis_linkage: Primary diagnosis and link consistency
- assessment_store: Region-namespaced measurement maps
- region_catalogue / region_rows: Assessment regions and derived rows
- grouping: Linked rows grouped under diagnoses, default rows
- code_catalogue: ICD-10/CPT lookup and search
- CaseChartService: One editing session over a case record
"""

from casechart.services.assessment_store import (
    AssessmentKey,
    InvalidGradeError,
    RegionAssessmentView,
    migrate_legacy_keys,
    namespaced_key,
    read_value,
    write_value,
)
from casechart.services.case_chart import (
    CaseChartService,
    get_case_chart_service,
    reset_case_chart_service,
)
from casechart.services.code_catalogue import (
    CodeCatalogueService,
    CodeOption,
    get_code_catalogue_service,
    reset_code_catalogue_service,
)
from casechart.services.diagnosis_linkage import (
    DuplicateDiagnosisError,
    InvalidDiagnosisError,
    add_diagnosis,
    move_diagnosis,
    primary_code,
    reapply_primary,
    remove_diagnosis,
    replace_diagnosis,
    sync_links,
)
from casechart.services.grouping import (
    UNLINKED_GROUP_KEY,
    DiagnosisGroup,
    build_diagnosis_groups,
    materialize_default_row,
    materialize_default_rows,
)
from casechart.services.region_catalogue import (
    RegionCatalogue,
    UnknownMeasurementError,
    UnknownRegionError,
    get_region_catalogue,
    reset_region_catalogue,
)

__all__ = [
    # Assessment store
    "AssessmentKey",
    "InvalidGradeError",
    "RegionAssessmentView",
    "migrate_legacy_keys",
    "namespaced_key",
    "read_value",
    "write_value",
    # Session service
    "CaseChartService",
    "get_case_chart_service",
    "reset_case_chart_service",
    # Code catalogue
    "CodeCatalogueService",
    "CodeOption",
    "get_code_catalogue_service",
    "reset_code_catalogue_service",
    # Diagnosis linkage
    "DuplicateDiagnosisError",
    "InvalidDiagnosisError",
    "add_diagnosis",
    "move_diagnosis",
    "primary_code",
    "reapply_primary",
    "remove_diagnosis",
    "replace_diagnosis",
    "sync_links",
    # Grouping
    "UNLINKED_GROUP_KEY",
    "DiagnosisGroup",
    "build_diagnosis_groups",
    "materialize_default_row",
    "materialize_default_rows",
    # Region catalogue
    "RegionCatalogue",
    "UnknownMeasurementError",
    "UnknownRegionError",
    "get_region_catalogue",
    "reset_region_catalogue",
]
