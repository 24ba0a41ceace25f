"""
Price-list import API routes.

Preview, validate and apply share one multipart shape: the file plus
form fields. Scalar fields are sent as-is; mapping and manual-value
fields are JSON-encoded strings.

See services/preview_service.py, services/validation_service.py and
services/import_apply_service.py for the pipeline itself.
"""

from typing import Any, Optional
import json

from fastapi import APIRouter, Depends, File, Header, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool
import structlog

from exceptions import AppError, MappingError, ValidationError
from models.imports import (
    ImportApplyRequest,
    ImportApplyResponse,
    ImportPreviewRequest,
    ImportPreviewResponse,
    ImportRequest,
    ImportValidateResponse,
    MappingPresetCreate,
    MappingPresetResponse,
    SourceType,
)
from services.import_apply_service import get_import_apply_service
from services.import_template_service import (
    TEMPLATE_FILENAME,
    TEMPLATE_MEDIA_TYPE,
    build_template_csv,
)
from services.mapping_preset_service import get_mapping_preset_service
from services.preview_service import get_preview_service
from services.validation_service import get_validation_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/import", tags=["Import"])

SCALAR_FORM_FIELDS = (
    "sourceType",
    "sheetIndex",
    "tableIndex",
    "hasHeader",
    "previewPage",
    "pageFrom",
    "pageTo",
    "mode",
    "confirmation",
    "manualSupplierName",
)

# Compared exactly against the overwrite sentinel
VERBATIM_FORM_FIELDS = ("confirmation",)

JSON_FORM_FIELDS = (
    "mapping",
    "ignoredRows",
    "manualValuesByRow",
    "manualGlobalValues",
    "manualColumns",
    "hiddenColumns",
)


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# DEPENDENCIES
# ===================

def get_tenant_id(x_tenant_id: Optional[str] = Header(None)) -> str:
    """Tenant of the caller, from the X-Tenant-ID header."""
    if not x_tenant_id or not x_tenant_id.strip():
        raise AppError(
            code="TENANT_REQUIRED",
            message="X-Tenant-ID header is required",
            status_code=400
        )
    return x_tenant_id.strip()


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Acting user, from the optional X-User-ID header."""
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


async def parse_form(request: Request, model: type[BaseModel]) -> Any:
    """
    Build a request model from the multipart form.

    Raises:
        ValidationError: If a JSON field does not decode or a value is invalid
    """
    form = await request.form()
    payload: dict[str, Any] = {}

    for name in SCALAR_FORM_FIELDS:
        value = form.get(name)
        if isinstance(value, str) and value.strip() != "":
            payload[name] = value if name in VERBATIM_FORM_FIELDS else value.strip()

    for name in JSON_FORM_FIELDS:
        raw = form.get(name)
        if not isinstance(raw, str) or not raw.strip():
            continue
        try:
            payload[name] = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(
                message=f"Field {name} is not valid JSON",
                details={"field": name, "error": str(e)}
            )

    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            message="Invalid import request",
            details={
                "errors": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ]
            }
        )


# ===================
# PIPELINE ROUTES
# ===================

@router.post("/preview", response_model=ImportPreviewResponse)
async def preview_import(request: Request, file: UploadFile = File(...)):
    """
    Read an upload and propose a column mapping.

    Read-only. Returns columns, a page of rows, the suggested mapping and
    the sheets (Excel) or tables (PDF) that can be selected.

    Raises:
        400: File cannot be read, page window too large, bad sheet/table index
        422: Invalid form field
    """
    try:
        options: ImportPreviewRequest = await parse_form(request, ImportPreviewRequest)
        content = await file.read()

        service = get_preview_service()
        return await run_in_threadpool(service.preview, content, file.filename, options)

    except Exception as e:
        return handle_error(e)


@router.post("/validate", response_model=ImportValidateResponse)
async def validate_import(request: Request, file: UploadFile = File(...)):
    """
    Dry-run an import with the given mapping and manual values.

    Performs no writes. A mapping that cannot produce any row answers
    422 with fieldErrors filled.

    Raises:
        400: File cannot be read
        422: Mapping unusable or invalid form field
    """
    try:
        import_request: ImportRequest = await parse_form(request, ImportRequest)
        content = await file.read()

        service = get_validation_service()
        return await run_in_threadpool(service.validate, content, file.filename, import_request)

    except MappingError as e:
        body = ImportValidateResponse(field_errors=e.field_errors).model_dump(by_alias=True, mode="json")
        body.update(e.to_dict())
        return JSONResponse(status_code=e.status_code, content=body)
    except Exception as e:
        return handle_error(e)


@router.post("/apply", response_model=ImportApplyResponse)
async def apply_import(
    request: Request,
    file: UploadFile = File(...),
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
):
    """
    Commit an import to the tenant's catalog.

    mode=merge appends; mode=overwrite wipes the catalog first and needs
    confirmation=DELETE. Either every write lands or none does.

    Raises:
        400: Missing confirmation for overwrite, unreadable file
        422: Mapping unusable or invalid form field
        500: Write failed (rolled back)
    """
    try:
        apply_request: ImportApplyRequest = await parse_form(request, ImportApplyRequest)
        content = await file.read()

        service = get_import_apply_service()
        return await run_in_threadpool(
            service.apply,
            tenant_id,
            content,
            file.filename,
            apply_request,
            user_id,
        )

    except Exception as e:
        return handle_error(e)


@router.get("/template")
async def download_template():
    """CSV template with the recommended columns and one example row."""
    return Response(
        content=build_template_csv(),
        media_type=TEMPLATE_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'},
    )


# ===================
# SAVED MAPPINGS
# ===================

@router.get("/mappings", response_model=list[MappingPresetResponse])
async def list_mapping_presets(
    source_type: Optional[SourceType] = Query(None, alias="sourceType"),
    template_key: Optional[str] = Query(None, alias="templateKey"),
    tenant_id: str = Depends(get_tenant_id),
):
    """List the tenant's saved mappings, newest first."""
    try:
        service = get_mapping_preset_service()
        return service.list_presets(tenant_id, source_type=source_type, template_key=template_key)
    except Exception as e:
        return handle_error(e)


@router.post("/mappings", response_model=MappingPresetResponse, status_code=201)
async def save_mapping_preset(
    data: MappingPresetCreate,
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
):
    """
    Save a mapping under a name (replaces an existing preset with that name).

    Raises:
        422: Unknown field key or a column used twice
    """
    try:
        service = get_mapping_preset_service()
        return service.save_preset(tenant_id, data, user_id=user_id)
    except Exception as e:
        return handle_error(e)


@router.delete("/mappings/{preset_id}", status_code=204)
async def delete_mapping_preset(preset_id: str, tenant_id: str = Depends(get_tenant_id)):
    """
    Delete a saved mapping.

    Raises:
        404: Not one of the tenant's presets
    """
    try:
        service = get_mapping_preset_service()
        service.delete_preset(tenant_id, preset_id)
        return Response(status_code=204)
    except Exception as e:
        return handle_error(e)
