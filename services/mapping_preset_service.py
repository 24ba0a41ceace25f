"""
Saved column mappings per tenant (import_mappings table).

A preset is keyed by (source type, template key, name); saving under an
existing name replaces its mapping.
"""

from datetime import datetime, timezone
from typing import Optional
import structlog

from config import get_supabase_client
from exceptions import DatabaseError, MappingPresetNotFoundError
from models.imports import MappingPresetCreate, MappingPresetResponse, SourceType
from services.mapping_service import ImportMapping

logger = structlog.get_logger(__name__)


class MappingPresetService:
    """CRUD for saved import mappings."""

    def __init__(self, client=None):
        self.db = client or get_supabase_client()
        self.table = "import_mappings"

    def list_presets(
        self,
        tenant_id: str,
        source_type: Optional[SourceType] = None,
        template_key: Optional[str] = None,
    ) -> list[MappingPresetResponse]:
        """
        List a tenant's presets, newest first.

        Args:
            tenant_id: Owning tenant
            source_type: Only presets for this source type
            template_key: Only presets saved for this header fingerprint

        Returns:
            List of MappingPresetResponse
        """
        try:
            query = self.db.table(self.table).select("*").eq("tenant_id", tenant_id)
            if source_type is not None:
                query = query.eq("source_type", source_type.value)
            if template_key:
                query = query.eq("template_key", template_key)
            result = query.order("updated_at", desc=True).execute()
        except Exception as e:
            logger.error("list_mapping_presets_failed", tenant_id=tenant_id, error=str(e))
            raise DatabaseError("select", str(e))

        return [self._to_response(row) for row in result.data or []]

    def save_preset(
        self,
        tenant_id: str,
        data: MappingPresetCreate,
        user_id: Optional[str] = None,
    ) -> MappingPresetResponse:
        """
        Save a preset, replacing the mapping of one with the same name.

        Raises:
            MappingError: If the mapping names unknown fields or reuses a column
            DatabaseError: If the write fails
        """
        mapping = ImportMapping.from_wire(data.mapping, column_count=_column_bound(data.mapping))
        now = datetime.now(timezone.utc).isoformat()

        existing = self._find(tenant_id, data.source_type, data.template_key, data.name)
        try:
            if existing:
                result = (
                    self.db.table(self.table)
                    .update({"mapping_json": mapping.to_wire(), "updated_at": now})
                    .eq("id", existing["id"])
                    .eq("tenant_id", tenant_id)
                    .execute()
                )
            else:
                row = {
                    "tenant_id": tenant_id,
                    "name": data.name,
                    "source_type": data.source_type.value,
                    "template_key": data.template_key,
                    "mapping_json": mapping.to_wire(),
                    "created_at": now,
                    "updated_at": now,
                }
                if user_id:
                    row["created_by"] = user_id
                result = self.db.table(self.table).insert(row).execute()
        except Exception as e:
            logger.error("save_mapping_preset_failed", tenant_id=tenant_id, error=str(e))
            raise DatabaseError("upsert", str(e))

        logger.info(
            "mapping_preset_saved",
            tenant_id=tenant_id,
            name=data.name,
            replaced=existing is not None,
            fields=len(mapping.to_wire()),
        )
        return self._to_response(result.data[0])

    def delete_preset(self, tenant_id: str, preset_id: str) -> None:
        """
        Delete one of the tenant's presets.

        Raises:
            MappingPresetNotFoundError: If the tenant has no preset with this id
        """
        try:
            found = (
                self.db.table(self.table)
                .select("id")
                .eq("id", preset_id)
                .eq("tenant_id", tenant_id)
                .execute()
            )
            if not found.data:
                raise MappingPresetNotFoundError(preset_id)

            self.db.table(self.table).delete().eq("id", preset_id).eq("tenant_id", tenant_id).execute()
        except MappingPresetNotFoundError:
            raise
        except Exception as e:
            logger.error("delete_mapping_preset_failed", preset_id=preset_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("mapping_preset_deleted", tenant_id=tenant_id, preset_id=preset_id)

    def _find(
        self,
        tenant_id: str,
        source_type: SourceType,
        template_key: Optional[str],
        name: str,
    ) -> Optional[dict]:
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("source_type", source_type.value)
                .eq("name", name)
                .execute()
            )
        except Exception as e:
            logger.error("find_mapping_preset_failed", tenant_id=tenant_id, error=str(e))
            raise DatabaseError("select", str(e))

        # template_key is nullable; NULL never matches eq()
        for row in result.data or []:
            if (row.get("template_key") or "") == (template_key or ""):
                return row
        return None

    @staticmethod
    def _to_response(row: dict) -> MappingPresetResponse:
        return MappingPresetResponse(
            id=row["id"],
            name=row["name"],
            source_type=row["source_type"],
            template_key=row.get("template_key"),
            mapping=row.get("mapping_json") or {},
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


def _column_bound(payload: dict) -> int:
    """Presets are saved without a file; any non-negative column is in range."""
    columns = [v for v in payload.values() if isinstance(v, int) and not isinstance(v, bool)]
    return max(columns, default=0) + 1


# Singleton instance
_mapping_preset_service: Optional[MappingPresetService] = None


def get_mapping_preset_service() -> MappingPresetService:
    """Get or create MappingPresetService instance."""
    global _mapping_preset_service
    if _mapping_preset_service is None:
        _mapping_preset_service = MappingPresetService()
    return _mapping_preset_service
