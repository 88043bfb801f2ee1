#!/usr/bin/env python3

from pydantic import BaseModel

# Pydantic Models


class ConversionResult(BaseModel):
    map_file: str
    output_file: str | None = None
    status: str  # 'success' or 'error'
    strategy: str | None = None  # 'tree' or 'xpath'
    functoid_count: int = 0
    link_count: int = 0
    mapping_count: int = 0  # Top-level mapping trees emitted
    line_count: int = 0
    source_schema: str | None = None
    target_schema: str | None = None
    warnings: list[str] = []
    error: str | None = None


class BatchFileResult(BaseModel):
    map_file: str
    status: str  # 'success', 'error' or 'skipped'
    output_file: str | None = None
    source_schema: str | None = None  # Resolved XSD used for the source side
    target_schema: str | None = None
    error: str | None = None


class BatchConversionReport(BaseModel):
    """Outcome of converting every map under a directory."""

    directory: str
    output_directory: str | None = None
    results: list[BatchFileResult] = []
    total_files: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    truncated: bool = False  # More maps found than MAX_BATCH_FILES allows


class FunctoidSummary(BaseModel):
    id: str
    kind: str
    type_code: str | None = None
    page: int = 1
    input_count: int = 0
    output_count: int = 0


class MapAnalysis(BaseModel):
    """Structural summary of one map."""

    map_file: str
    source_schema: str | None = None
    target_schema: str | None = None
    functoid_count: int = 0
    link_count: int = 0
    page_count: int = 1
    functoid_kinds: dict[str, int] = {}
    source_namespaces: dict[str, str] = {}
    target_namespaces: dict[str, str] = {}
    complexity: str  # 'Low', 'Medium', 'High', 'Very High'
    functoids: list[FunctoidSummary] = []  # Only filled with include_details


class ValidationIssue(BaseModel):
    severity: str  # 'error', 'warning', 'info'
    message: str
    functoid_id: str | None = None


class MapValidation(BaseModel):
    map_file: str
    status: str  # 'pass', 'warn' or 'fail'
    issues: list[ValidationIssue] = []
    summary: dict[str, int] = {}
