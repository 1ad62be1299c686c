"""Validates raw remote-service JSON and builds typed response models."""

from typing import Any

from labreport.remote.exceptions import RemoteResponseValidationError
from labreport.remote.models import (
    AnalysisBiomarker,
    AnalysisPayload,
    CategoryAnalysis,
    ProcessingStage,
    RemoteStatus,
    StatusUpdate,
)

_MAX_BIOMARKERS = 500


def build_report_id(data: Any) -> str:
    if not isinstance(data, dict):
        raise RemoteResponseValidationError("Upload response must be an object")
    report_id = data.get("lab_report_id") or data.get("report_id")
    if not report_id or not isinstance(report_id, str):
        raise RemoteResponseValidationError("Upload response is missing 'lab_report_id'")
    return report_id


def build_status_update(data: Any) -> StatusUpdate:
    """Build a StatusUpdate from a status poll response.

    Raises:
        RemoteResponseValidationError: on unknown stage/status or bad progress.
    """
    if not isinstance(data, dict):
        raise RemoteResponseValidationError("Status response must be an object")
    status = _build_enum(RemoteStatus, data.get("status"), "status")
    stage = _build_enum(ProcessingStage, data.get("processing_stage"), "processing_stage")
    progress = data.get("progress_percentage", 0)
    if isinstance(progress, bool) or not isinstance(progress, (int, float)):
        raise RemoteResponseValidationError("'progress_percentage' must be a number")
    error_message = data.get("error_message")
    if error_message is not None and not isinstance(error_message, str):
        raise RemoteResponseValidationError("'error_message' must be a string or null")
    return StatusUpdate(
        stage=stage,
        progress_fraction=float(progress) / 100.0,
        status=status,
        error_message=error_message,
    )


def build_analysis(data: Any) -> AnalysisPayload:
    """Validate an analysis response and build an AnalysisPayload.

    Raises:
        RemoteResponseValidationError: on any validation failure.
    """
    if not isinstance(data, dict):
        raise RemoteResponseValidationError("Analysis response must be an object")
    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise RemoteResponseValidationError("'confidence' must be a number")
    if not 0.0 <= confidence <= 1.0:
        raise RemoteResponseValidationError(f"'confidence' out of range: {confidence}")
    raw_categories = data.get("categories")
    if not isinstance(raw_categories, list):
        raise RemoteResponseValidationError("'categories' must be a list")
    categories = tuple(_build_category(item, i) for i, item in enumerate(raw_categories))
    payload = AnalysisPayload(
        categories=categories,
        confidence=float(confidence),
        document_type=_optional_str(data.get("document_type"), "document_type"),
        extracted_text=_optional_str(data.get("extracted_text"), "extracted_text") or "",
    )
    if payload.biomarker_count > _MAX_BIOMARKERS:
        raise RemoteResponseValidationError(
            f"Too many biomarkers: {payload.biomarker_count} (max {_MAX_BIOMARKERS})"
        )
    return payload


def _build_category(raw: Any, index: int) -> CategoryAnalysis:
    if not isinstance(raw, dict):
        raise RemoteResponseValidationError(f"Category at index {index} must be an object")
    category = raw.get("category")
    if not category or not isinstance(category, str):
        raise RemoteResponseValidationError(
            f"Category at index {index}: 'category' must be a non-empty string"
        )
    biomarkers = raw.get("biomarkers")
    if not isinstance(biomarkers, list):
        raise RemoteResponseValidationError(
            f"Category at index {index}: 'biomarkers' must be a list"
        )
    return CategoryAnalysis(
        category=category,
        biomarkers=tuple(_build_biomarker(item, index, j) for j, item in enumerate(biomarkers)),
    )


def _build_biomarker(raw: Any, category_index: int, index: int) -> AnalysisBiomarker:
    where = f"Biomarker {index} in category {category_index}"
    if not isinstance(raw, dict):
        raise RemoteResponseValidationError(f"{where} must be an object")
    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise RemoteResponseValidationError(f"{where}: 'name' must be a non-empty string")
    value = raw.get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RemoteResponseValidationError(f"{where}: 'value' must be a number")
    status = raw.get("status") or "unknown"
    if not isinstance(status, str):
        raise RemoteResponseValidationError(f"{where}: 'status' must be a string")
    return AnalysisBiomarker(
        name=name,
        value=float(value),
        unit=_optional_str(raw.get("unit"), f"{where}: 'unit'"),
        normal_range=_optional_str(raw.get("normal_range"), f"{where}: 'normal_range'"),
        status=status,
    )


def _build_enum(enum_cls: Any, raw: Any, field: str) -> Any:
    if not isinstance(raw, str):
        raise RemoteResponseValidationError(f"'{field}' must be a string")
    try:
        return enum_cls(raw)
    except ValueError:
        raise RemoteResponseValidationError(f"Unknown {field}: {raw}") from None


def _optional_str(raw: Any, field: str) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise RemoteResponseValidationError(f"{field} must be a string or null")
    return raw
