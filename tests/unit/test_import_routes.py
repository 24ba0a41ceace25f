"""
Unit tests for the import API routes.

Services that write are patched to run over FakeSupabaseClient.
"""

import json
from unittest.mock import patch
import pytest

from services.import_apply_service import ImportApplyService
from services.mapping_preset_service import MappingPresetService
from tests.conftest import TENANT_ID
from tests.factories import HEBREW_MAPPING, hebrew_price_list

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
TENANT_HEADERS = {"X-Tenant-ID": TENANT_ID}


def upload(content: bytes = None, name: str = "prices.xlsx") -> dict:
    return {"file": (name, content if content is not None else hebrew_price_list(), XLSX_TYPE)}


@pytest.fixture
def apply_service(fake_db):
    service = ImportApplyService(client=fake_db)
    with patch("routes.imports.get_import_apply_service", return_value=service):
        yield service


@pytest.fixture
def preset_service(fake_db):
    service = MappingPresetService(client=fake_db)
    with patch("routes.imports.get_mapping_preset_service", return_value=service):
        yield service


class TestPreviewRoute:
    """Tests for POST /api/import/preview."""

    def test_preview(self, test_client):
        response = test_client.post("/api/import/preview", files=upload(), data={"hasHeader": "true"})

        assert response.status_code == 200
        body = response.json()
        assert body["sourceType"] == "excel"
        assert len(body["columns"]) == 6
        assert body["columns"][0]["letter"] == "A"
        assert body["suggestedMapping"]["product_name"] == 0
        assert body["suggestedMapping"]["price_1"] == 3
        assert body["previewTotalRows"] == 2

    def test_unreadable_file(self, test_client):
        response = test_client.post("/api/import/preview", files=upload(b"", "empty.csv"))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "IMPORT_PARSE_ERROR"


class TestValidateRoute:
    """Tests for POST /api/import/validate."""

    def test_validate(self, test_client):
        response = test_client.post(
            "/api/import/validate",
            files=upload(),
            data={"mapping": json.dumps(HEBREW_MAPPING)},
        )

        assert response.status_code == 200
        assert response.json()["statsEstimate"] == {"totalInputRows": 2, "mappedRows": 2, "skippedRows": 0}

    def test_unusable_mapping_is_422_with_field_errors(self, test_client):
        response = test_client.post(
            "/api/import/validate",
            files=upload(),
            data={"mapping": json.dumps({"price_1": 3})},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["fieldErrors"]
        assert body["error"]["code"] == "IMPORT_MAPPING_INVALID"

    def test_bad_json_field(self, test_client):
        response = test_client.post(
            "/api/import/validate",
            files=upload(),
            data={"mapping": "{not json"},
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["field"] == "mapping"

    def test_invalid_scalar_field(self, test_client):
        response = test_client.post(
            "/api/import/validate",
            files=upload(),
            data={"mapping": json.dumps(HEBREW_MAPPING), "sheetIndex": "-5"},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestApplyRoute:
    """Tests for POST /api/import/apply."""

    def test_tenant_required(self, test_client, apply_service):
        response = test_client.post(
            "/api/import/apply",
            files=upload(),
            data={"mapping": json.dumps(HEBREW_MAPPING)},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "TENANT_REQUIRED"

    def test_merge(self, test_client, apply_service, fake_db):
        response = test_client.post(
            "/api/import/apply",
            files=upload(),
            data={"mapping": json.dumps(HEBREW_MAPPING), "mode": "merge"},
            headers={**TENANT_HEADERS, "X-User-ID": "user-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["stats"]["pricesInserted"] == 2
        assert body["importDiagnostics"]["rowsAfterDedupe"] == 2
        assert fake_db.rows("price_entries")[0]["created_by"] == "user-1"

    @pytest.mark.parametrize("confirmation", ["delete", " DELETE ", "DELETE ", "\tDELETE"])
    def test_overwrite_needs_exact_confirmation(self, test_client, apply_service, fake_db, confirmation):
        response = test_client.post(
            "/api/import/apply",
            files=upload(),
            data={"mapping": json.dumps(HEBREW_MAPPING), "mode": "overwrite", "confirmation": confirmation},
            headers=TENANT_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "IMPORT_CONFIRMATION_REQUIRED"
        assert fake_db.calls == []

    def test_overwrite_with_confirmation(self, test_client, apply_service, fake_db):
        response = test_client.post(
            "/api/import/apply",
            files=upload(),
            data={"mapping": json.dumps(HEBREW_MAPPING), "mode": "overwrite", "confirmation": "DELETE"},
            headers=TENANT_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["mode"] == "overwrite"
        assert response.json()["stats"]["pricesInserted"] == 2

    def test_write_failure_is_500(self, test_client, apply_service, fake_db):
        fake_db.fail_on.add(("insert", "products"))

        response = test_client.post(
            "/api/import/apply",
            files=upload(),
            data={"mapping": json.dumps(HEBREW_MAPPING)},
            headers=TENANT_HEADERS,
        )

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "IMPORT_APPLY_FAILED"
        assert error["details"]["rolled_back"] is True


class TestTemplateRoute:
    """Tests for GET /api/import/template."""

    def test_template(self, test_client):
        response = test_client.get("/api/import/template")

        assert response.status_code == 200
        assert response.content.startswith(b"\xef\xbb\xbf")
        assert "import_template.csv" in response.headers["content-disposition"]
        first_line = response.content.decode("utf-8-sig").splitlines()[0]
        assert first_line.startswith("product_name,sku")


class TestMappingRoutes:
    """Tests for the saved mapping endpoints."""

    def test_crud(self, test_client, preset_service):
        created = test_client.post(
            "/api/import/mappings",
            json={"name": "Supplier A", "sourceType": "excel", "mapping": {"product_name": 0, "price_1": 2}},
            headers=TENANT_HEADERS,
        )
        assert created.status_code == 201
        preset_id = created.json()["id"]

        listed = test_client.get("/api/import/mappings", params={"sourceType": "excel"}, headers=TENANT_HEADERS)
        assert [p["name"] for p in listed.json()] == ["Supplier A"]
        assert listed.json()[0]["sourceType"] == "excel"

        deleted = test_client.delete(f"/api/import/mappings/{preset_id}", headers=TENANT_HEADERS)
        assert deleted.status_code == 204

        missing = test_client.delete(f"/api/import/mappings/{preset_id}", headers=TENANT_HEADERS)
        assert missing.status_code == 404

    def test_invalid_mapping(self, test_client, preset_service):
        response = test_client.post(
            "/api/import/mappings",
            json={"name": "Bad", "mapping": {"product_name": 0, "price_1": 0}},
            headers=TENANT_HEADERS,
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "IMPORT_MAPPING_INVALID"

    def test_tenant_required(self, test_client, preset_service):
        assert test_client.get("/api/import/mappings").status_code == 400
