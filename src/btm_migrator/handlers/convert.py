#!/usr/bin/env python3
"""
Handlers for map conversion, analysis and validation.

Each handler runs the parse/resolve/translate/emit pipeline (or the parts
it needs) on local files and returns a pydantic result model that the
command line prints as YAML.
"""

import logging
from collections import Counter
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel

from ..core.config import MigratorConfig, migrator_config
from ..models.models import (
    BatchConversionReport,
    BatchFileResult,
    ConversionResult,
    FunctoidSummary,
    MapAnalysis,
    MapValidation,
    ValidationIssue,
)
from ..services.domain.btm import BtmParser, RelationshipResolver
from ..services.domain.btm.functoid_types import UNKNOWN_KIND
from ..services.domain.btm.namespaces import XS_PREFIX
from ..services.domain.lml import LmlEmitter, MapTranslator

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

MAP_EXTENSION = ".btm"


def generate_lml(map_path: PathLike, source_schema: Optional[PathLike] = None,
                 target_schema: Optional[PathLike] = None, config: MigratorConfig = None):
    """Run the full pipeline and return (lml_text, document, translated_map)."""
    config = config or migrator_config
    document = BtmParser(config).parse(map_path, source_schema, target_schema)
    translated = MapTranslator(config).translate(document, source_schema, target_schema)
    text = LmlEmitter().emit(translated)
    return text, document, translated


def default_output_path(map_path: PathLike, config: MigratorConfig = None) -> Path:
    config = config or migrator_config
    return Path(map_path).with_suffix(config.OUTPUT_EXTENSION)


def convert_map(map_path: PathLike, source_schema: Optional[PathLike], target_schema: Optional[PathLike],
                output_path: Optional[PathLike] = None, config: MigratorConfig = None) -> ConversionResult:
    """Convert one map and write the .lml file.

    The text is generated completely before anything is written, so a
    failed conversion never leaves a partial output file.

    Args:
        map_path: BizTalk .btm file
        source_schema: Source XSD (may be None)
        target_schema: Target XSD (may be None)
        output_path: Destination, defaults to the map path with the output extension
        config: Configuration, defaults to the environment

    Returns:
        ConversionResult for the written file

    Raises:
        FileNotFoundError: If the map file does not exist
        MapParseError: If the map is not a readable BizTalk map
    """
    map_path = Path(map_path)
    output = Path(output_path) if output_path else default_output_path(map_path, config)
    logger.info(f"Converting {map_path} -> {output}", extra={"map_file": str(map_path)})

    text, document, translated = generate_lml(map_path, source_schema, target_schema, config)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")

    warnings = [
        f"Functoid {node.id} has unknown type {node.type_code}"
        for node in document.nodes if node.kind == UNKNOWN_KIND
    ]
    warnings.extend(
        f"Functoid {node.id} ({node.kind}) needs manual review"
        for node in document.nodes if node.kind == "Scripting" and not node.script_body and not node.script_function
    )

    logger.info(f"Wrote {output} ({len(text.splitlines())} lines)", extra={"map_file": str(map_path)})
    return ConversionResult(
        map_file=str(map_path),
        output_file=str(output),
        status="success",
        strategy=translated.strategy,
        functoid_count=len(document.nodes),
        link_count=len(document.edges),
        mapping_count=len(translated.mappings),
        line_count=len(text.splitlines()),
        source_schema=document.source_schema_name,
        target_schema=document.target_schema_name,
        warnings=warnings,
    )


def find_matching_schema(map_name: str, schema_directory: PathLike, side: str) -> Optional[Path]:
    """Pick the XSD for one side of a map from a schema directory.

    Tries ``<map>_<Side>.xsd``, ``<map><Side>.xsd`` and ``<Side>.xsd`` before
    settling for the first .xsd in the directory.
    """
    directory = Path(schema_directory)
    if not directory.is_dir():
        return None

    for name in (f"{map_name}_{side}.xsd", f"{map_name}{side}.xsd", f"{side}.xsd"):
        candidate = directory / name
        if candidate.is_file():
            return candidate

    xsd_files = sorted(directory.glob("*.xsd"))
    return xsd_files[0] if xsd_files else None


def convert_directory(directory: PathLike, output_directory: Optional[PathLike] = None, recursive: bool = True,
                      source_schema_dir: Optional[PathLike] = None, target_schema_dir: Optional[PathLike] = None,
                      config: MigratorConfig = None) -> BatchConversionReport:
    """Convert every .btm under a directory, one at a time.

    A failure is recorded against its file and the batch carries on.
    """
    config = config or migrator_config
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Directory not found: {directory}")

    pattern = f"**/*{MAP_EXTENSION}" if recursive else f"*{MAP_EXTENSION}"
    map_files = sorted(directory.glob(pattern))
    report = BatchConversionReport(
        directory=str(directory),
        output_directory=str(output_directory) if output_directory else None,
        total_files=len(map_files),
    )

    if len(map_files) > config.MAX_BATCH_FILES:
        logger.warning(f"Found {len(map_files)} maps, converting the first {config.MAX_BATCH_FILES}")
        report.truncated = True
        for skipped in map_files[config.MAX_BATCH_FILES:]:
            report.results.append(BatchFileResult(map_file=str(skipped), status="skipped"))
            report.skipped += 1
        map_files = map_files[:config.MAX_BATCH_FILES]

    logger.info(f"Batch converting {len(map_files)} maps from {directory}")

    for map_file in map_files:
        name = map_file.stem
        source_schema = find_matching_schema(name, source_schema_dir, "Source") if source_schema_dir else None
        target_schema = find_matching_schema(name, target_schema_dir, "Target") if target_schema_dir else None

        if output_directory:
            output = Path(output_directory) / map_file.relative_to(directory).with_suffix(config.OUTPUT_EXTENSION)
        else:
            output = default_output_path(map_file, config)

        result = BatchFileResult(
            map_file=str(map_file),
            status="success",
            source_schema=str(source_schema) if source_schema else None,
            target_schema=str(target_schema) if target_schema else None,
        )
        try:
            converted = convert_map(map_file, source_schema, target_schema, output, config)
            result.output_file = converted.output_file
            report.succeeded += 1
        except Exception as e:
            logger.error(f"Failed to convert {map_file}: {e}", extra={"map_file": str(map_file)})
            result.status = "error"
            result.error = str(e)
            report.failed += 1
        report.results.append(result)

    logger.info(f"Batch complete: {report.succeeded} converted, {report.failed} failed, {report.skipped} skipped")
    return report


def calculate_complexity(node_count: int, edge_count: int) -> str:
    total = node_count + edge_count
    if total < 10:
        return "Low"
    if total < 50:
        return "Medium"
    if total < 100:
        return "High"
    return "Very High"


def analyze_map(map_path: PathLike, include_details: bool = False, config: MigratorConfig = None) -> MapAnalysis:
    """Functoid statistics, namespaces and a rough complexity rating for a map."""
    document = BtmParser(config).parse(map_path)
    RelationshipResolver(document).resolve_relationships()

    kinds = Counter(node.kind or UNKNOWN_KIND for node in document.nodes)
    analysis = MapAnalysis(
        map_file=str(map_path),
        source_schema=document.source_schema_name,
        target_schema=document.target_schema_name,
        functoid_count=len(document.nodes),
        link_count=len(document.edges),
        page_count=document.page_count,
        functoid_kinds=dict(sorted(kinds.items())),
        source_namespaces=document.source_namespaces,
        target_namespaces=document.target_namespaces,
        complexity=calculate_complexity(len(document.nodes), len(document.edges)),
    )

    if include_details:
        analysis.functoids = [
            FunctoidSummary(
                id=node.id,
                kind=node.kind,
                type_code=node.type_code,
                page=node.page,
                input_count=len(node.input_edges),
                output_count=len(node.output_edges),
            )
            for node in document.nodes
        ]
    return analysis


def validate_map(map_path: PathLike, source_schema: Optional[PathLike] = None,
                 target_schema: Optional[PathLike] = None, config: MigratorConfig = None) -> MapValidation:
    """Check a map for problems that degrade the conversion.

    A map that cannot be parsed at all yields a single error issue and
    status 'fail' instead of raising.
    """
    issues: list[ValidationIssue] = []

    def warn(message: str, functoid_id: Optional[str] = None) -> None:
        issues.append(ValidationIssue(severity="warning", message=message, functoid_id=functoid_id))

    try:
        document = BtmParser(config).parse(map_path, source_schema, target_schema)
    except Exception as e:
        logger.error(f"Validation could not parse {map_path}: {e}", extra={"map_file": str(map_path)})
        issues.append(ValidationIssue(severity="error", message=str(e)))
        return MapValidation(map_file=str(map_path), status="fail", issues=issues, summary={"errors": 1, "warnings": 0})

    resolver = RelationshipResolver(document)
    resolver.resolve_relationships()

    if not document.source_schema_name:
        warn("Source schema not specified in map")
    if not document.target_schema_name:
        warn("Target schema not specified in map")

    scripting = 0
    for node in document.nodes:
        if not node.input_edges and not node.output_edges:
            warn(f"Orphaned functoid {node.id} ({node.kind})", node.id)
        elif node.output_edges and not resolver.get_target_nodes(node):
            warn(f"Output of functoid {node.id} ({node.kind}) never reaches a target field", node.id)
        if node.kind == UNKNOWN_KIND:
            warn(f"Unknown functoid type {node.type_code}", node.id)
        if node.kind == "Scripting":
            scripting += 1

    if scripting:
        warn(f"Map contains {scripting} scripting functoid(s) which may need manual review")
    if not [p for p in document.source_namespaces if p != XS_PREFIX]:
        warn("No source namespaces found, paths may be unqualified")
    if not [p for p in document.target_namespaces if p != XS_PREFIX]:
        warn("No target namespaces found, paths may be unqualified")

    warnings = sum(1 for issue in issues if issue.severity == "warning")
    return MapValidation(
        map_file=str(map_path),
        status="warn" if warnings else "pass",
        issues=issues,
        summary={"errors": 0, "warnings": warnings},
    )


def write_report(model: BaseModel, path: PathLike) -> Path:
    """Write a result model as YAML."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(model.model_dump(), f, sort_keys=False)
    logger.info(f"Report written to {path}")
    return path
