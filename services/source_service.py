"""
Loads an upload into a SelectedTable, going through the parse cache.

Shared by preview, validate and apply so all three read the file the
same way.
"""

from dataclasses import dataclass
from typing import Optional
import structlog

from config import settings
from exceptions import ImportParseError
from models.imports import ImportSourceOptions
from parsers.source_reader import (
    ParsedSource,
    SelectedTable,
    detect_source_type,
    parse_source,
    select_table,
)
from services import source_cache_service

logger = structlog.get_logger(__name__)


@dataclass
class LoadedSource:
    parsed: ParsedSource
    table: SelectedTable


def load_source(
    content: bytes,
    filename: Optional[str],
    options: ImportSourceOptions,
) -> LoadedSource:
    """
    Parse (or fetch from cache) the upload and select the working table.

    Args:
        content: Upload bytes
        filename: Original file name
        options: Source type, sheet/table index, header flag, PDF page window

    Returns:
        LoadedSource

    Raises:
        ImportParseError: Oversize, empty or unreadable upload, bad index
    """
    if len(content) > settings.import_max_file_bytes:
        raise ImportParseError(
            message=f"File is larger than {settings.import_max_file_mb} MB",
            details={"size_bytes": len(content), "max_mb": settings.import_max_file_mb}
        )

    source_type = detect_source_type(content, filename, options.source_type)
    key = source_cache_service.make_cache_key(
        content,
        source_type=source_type.value,
        page_from=options.page_from,
        page_to=options.page_to,
    )

    parsed = source_cache_service.get_or_parse(
        key,
        lambda: parse_source(
            content,
            source_type,
            filename=filename,
            page_from=options.page_from,
            page_to=options.page_to,
            max_pages=settings.import_pdf_max_pages,
        ),
    )

    table = select_table(
        parsed,
        sheet_index=options.sheet_index,
        table_index=options.table_index,
        has_header=options.has_header,
    )

    logger.info(
        "source_loaded",
        source_type=source_type.value,
        size_bytes=len(content),
        data_rows=len(table.rows),
        columns=table.width,
    )
    return LoadedSource(parsed=parsed, table=table)
