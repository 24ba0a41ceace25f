"""
Preview service: read an upload and describe it for the mapping screen.

Returns the selected sheet/table's columns, a page of data rows, the
suggested mapping and the columns that can be hidden. Nothing is written
and no mapping is required.
"""

from typing import Optional
import structlog

from config import settings
from models.imports import ImportPreviewRequest, ImportPreviewResponse, SourceType
from parsers.source_reader import describe_sheets, describe_tables, page_window
from services.header_normalizer import canonical_label
from services.mapping_service import auto_hidden_columns, infer_mapping, template_key
from services.source_service import load_source

logger = structlog.get_logger(__name__)

TABLE_SAMPLE_ROWS = 5


class PreviewService:
    """Builds ImportPreviewResponse objects."""

    def preview(
        self,
        content: bytes,
        filename: Optional[str],
        request: ImportPreviewRequest,
    ) -> ImportPreviewResponse:
        """
        Parse an upload and propose a mapping.

        Args:
            content: Upload bytes
            filename: Original file name
            request: Source options plus the requested preview page

        Returns:
            ImportPreviewResponse

        Raises:
            ImportParseError: If the file cannot be read or an index is out of range
        """
        logger.info("import_preview_started", filename=filename, size_bytes=len(content))

        loaded = load_source(content, filename, request)
        parsed, table = loaded.parsed, loaded.table

        headers = table.header if table.has_header else [""] * table.width
        mapping = infer_mapping(headers)
        hidden = auto_hidden_columns(headers, table.rows, mapping)

        columns = table.columns()
        for column in columns:
            column.canonical_label = canonical_label(column.header_value)

        page_size = settings.import_preview_page_size
        page, offset, total_pages = page_window(len(table.rows), request.preview_page, page_size)

        response = ImportPreviewResponse(
            source_type=parsed.source_type,
            file_name=filename,
            has_header=table.has_header,
            columns=columns,
            sample_rows=table.rows[offset:offset + page_size],
            sample_row_offset=offset,
            preview_page=page,
            preview_page_size=page_size,
            preview_total_rows=len(table.rows),
            preview_total_pages=total_pages,
            suggested_mapping=mapping.to_wire(),
            pair_count=mapping.pair_count,
            auto_hidden_columns=hidden,
            template_key=template_key(headers) if table.has_header else None,
            warnings=list(parsed.warnings),
        )

        if parsed.source_type == SourceType.PDF:
            response.tables = describe_tables(parsed, table.has_header, TABLE_SAMPLE_ROWS)
            response.selected_table_index = table.table_index
            response.pages_detected = parsed.pages_detected
        else:
            response.sheets = describe_sheets(parsed)
            response.selected_sheet_index = table.sheet_index

        logger.info(
            "import_preview_completed",
            source_type=parsed.source_type.value,
            columns=len(columns),
            data_rows=len(table.rows),
            mapped_fields=len(response.suggested_mapping),
            hidden_columns=len(hidden),
        )
        return response


# Singleton instance
_preview_service: Optional[PreviewService] = None


def get_preview_service() -> PreviewService:
    """Get or create PreviewService instance."""
    global _preview_service
    if _preview_service is None:
        _preview_service = PreviewService()
    return _preview_service
