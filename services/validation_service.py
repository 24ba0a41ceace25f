"""
Validation service: the read-only dry run of an import.

prepare_import() is the single path from (file, request) to evaluated
rows; the apply service calls it too.
"""

from dataclasses import dataclass, field
from typing import Optional
import structlog

from exceptions import MappingError
from models.imports import ImportRequest, ImportValidateResponse
from parsers.source_reader import SelectedTable
from services.manual_overrides import ManualOverrideStore
from services.mapping_service import ImportMapping
from services.row_derivation import DerivationResult, EvaluationResult, derive_rows, evaluate
from services.source_service import load_source

logger = structlog.get_logger(__name__)


@dataclass
class PreparedImport:
    """Everything derived from one (file, request) pair."""
    table: SelectedTable
    mapping: ImportMapping
    overrides: ManualOverrideStore
    derivation: DerivationResult
    evaluation: EvaluationResult
    warnings: list[str] = field(default_factory=list)


def check_mapping(mapping: ImportMapping, overrides: ManualOverrideStore) -> list[str]:
    """
    Terminal problems that leave nothing to import.

    Returns:
        Field error messages (empty when the mapping is usable)
    """
    errors = []
    if mapping.column_of("product_name") is None and not overrides.has_any_value("product_name"):
        errors.append("Map a column to product name, or enter a product name for all rows")
    if not mapping.has_price_column and not overrides.has_any_price():
        errors.append("Map at least one price column, or enter prices manually")
    errors.extend(overrides.manual_column_errors())
    return errors


def prepare_import(content: bytes, filename: Optional[str], request: ImportRequest) -> PreparedImport:
    """
    Re-read the file and derive the row set from scratch.

    Args:
        content: Upload bytes
        filename: Original file name
        request: Mapping, manual values, ignored rows and source options

    Returns:
        PreparedImport

    Raises:
        ImportParseError: If the file cannot be read
        MappingError: If the mapping cannot produce any importable row
    """
    loaded = load_source(content, filename, request)
    table = loaded.table

    mapping = ImportMapping.from_wire(request.mapping, column_count=table.width)
    for column in request.hidden_columns:
        mapping.hide_column(column)

    overrides = ManualOverrideStore.from_request(request)

    field_errors = check_mapping(mapping, overrides)
    if field_errors:
        logger.info("import_mapping_rejected", field_errors=field_errors)
        raise MappingError(field_errors)

    derivation = derive_rows(table, mapping, overrides, request.ignored_rows)
    evaluation = evaluate(derivation)

    return PreparedImport(
        table=table,
        mapping=mapping,
        overrides=overrides,
        derivation=derivation,
        evaluation=evaluation,
        warnings=list(loaded.parsed.warnings),
    )


class ValidationService:
    """
    Dry-run validation.

    Performs no writes.
    """

    def validate(
        self,
        content: bytes,
        filename: Optional[str],
        request: ImportRequest,
    ) -> ImportValidateResponse:
        """
        Validate an import without writing anything.

        Args:
            content: Upload bytes
            filename: Original file name
            request: Import request

        Returns:
            ImportValidateResponse with row errors, unimported rows and estimates

        Raises:
            ImportParseError: If the file cannot be read
            MappingError: If the mapping cannot produce any importable row
        """
        logger.info("import_validate_started", filename=filename, size_bytes=len(content))

        prepared = prepare_import(content, filename, request)
        evaluation = prepared.evaluation

        response = ImportValidateResponse(
            row_errors=evaluation.row_errors,
            row_warnings=evaluation.row_warnings,
            unimported_products=evaluation.unimported,
            stats_estimate=evaluation.stats_estimate(),
            pair_count=prepared.derivation.pair_count,
            warnings=prepared.warnings,
        )

        logger.info(
            "import_validate_completed",
            total_rows=response.stats_estimate.total_input_rows,
            mapped_rows=response.stats_estimate.mapped_rows,
            row_errors=len(response.row_errors),
            row_warnings=len(response.row_warnings),
            unimported=len(response.unimported_products),
        )
        return response


# Singleton instance
_validation_service: Optional[ValidationService] = None


def get_validation_service() -> ValidationService:
    """Get or create ValidationService instance."""
    global _validation_service
    if _validation_service is None:
        _validation_service = ValidationService()
    return _validation_service
