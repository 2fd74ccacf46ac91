from pathlib import Path

import pytest
from pydantic import ValidationError

from gateway_openapi.document.codec import load_document
from gateway_openapi.document.models import (
    COMPONENT_KINDS,
    Components,
    Document,
    Info,
    Operation,
    PathItem,
    Schema,
    parse_component_ref,
    schema_ref,
)

FIXTURES = Path(__file__).parent / "fixtures"


class TestComponentRefs:
    def test_schema_ref(self):
        assert schema_ref("User") == "#/components/schemas/User"

    def test_parse_component_ref(self):
        assert parse_component_ref("#/components/schemas/User") == ("schemas", "User")
        assert parse_component_ref("#/components/responses/NotFound") == ("responses", "NotFound")

    def test_parse_external_ref(self):
        assert parse_component_ref("other.yaml#/components/schemas/User") is None
        assert parse_component_ref("#/definitions/User") is None
        assert parse_component_ref("#/components/schemas/") is None
        assert parse_component_ref("") is None

    def test_component_kinds_use_ref_names(self):
        assert COMPONENT_KINDS["schemas"] == "schemas"
        assert COMPONENT_KINDS["request_bodies"] == "requestBodies"
        assert COMPONENT_KINDS["security_schemes"] == "securitySchemes"


class TestSchema:
    def test_aliases(self):
        schema = Schema.model_validate({
            "$ref": "#/components/schemas/User",
            "allOf": [{"type": "object"}],
            "not": {"type": "null"},
            "additionalProperties": False,
        })
        assert schema.ref == "#/components/schemas/User"
        assert schema.all_of[0].type == "object"
        assert schema.not_.type == "null"
        assert schema.additional_properties is False

    def test_ref_name(self):
        assert Schema(ref="#/components/schemas/User").ref_name == "User"
        assert Schema(ref="#/components/responses/NotFound").ref_name is None
        assert Schema(type="string").ref_name is None

    def test_additional_properties_schema(self):
        schema = Schema.model_validate({"additionalProperties": {"$ref": "#/components/schemas/Tag"}})
        assert isinstance(schema.additional_properties, Schema)
        assert schema.additional_properties.ref_name == "Tag"

    def test_unknown_keys_kept(self):
        schema = Schema.model_validate({"type": "string", "minLength": 1, "x-internal": True})
        dumped = schema.model_dump(by_alias=True, exclude_none=True)
        assert dumped == {"type": "string", "minLength": 1, "x-internal": True}

    def test_frozen(self):
        schema = Schema(type="string")
        with pytest.raises(ValidationError):
            schema.type = "integer"


class TestPathItem:
    def test_operations_in_method_order(self):
        item = PathItem(post=Operation(operation_id="create"), get=Operation(operation_id="list"))
        assert list(item.operations) == ["get", "post"]

    def test_with_operations_replaces_all(self):
        item = PathItem(summary="Users", get=Operation(), post=Operation(), delete=Operation())
        trimmed = item.with_operations({"get": item.get})
        assert list(trimmed.operations) == ["get"]
        assert trimmed.summary == "Users"
        assert list(item.operations) == ["get", "post", "delete"]

    def test_status_codes_become_strings(self):
        op = Operation.model_validate({"responses": {200: {"description": "ok"}}})
        assert "200" in op.responses


class TestDocument:
    def test_load_fixture(self):
        doc = load_document(FIXTURES / "users-openapi.yaml")
        assert doc.openapi == "3.0.1"
        assert doc.info.title == "Users API"
        assert set(doc.paths) == {"/users", "/users/{id}", "/health"}
        assert doc.paths["/users/{id}"].parameters[0].in_ == "path"
        assert doc.paths["/users"].post.request_body.content["application/json"].schema_.ref_name == "CreateUserRequest"

    def test_null_sections(self):
        doc = Document.model_validate({"openapi": "3.0.0", "paths": None, "tags": None, "components": None})
        assert doc.paths == {}
        assert doc.tags == []
        assert doc.components == Components()

    def test_numeric_versions(self):
        doc = Document.model_validate({"openapi": 3.1, "info": {"title": "x", "version": 2}})
        assert doc.openapi == "3.1"
        assert doc.info.version == "2"

    def test_info_defaults(self):
        assert Info().version == "1.0.0"

    def test_collections_keyed_by_ref_kind(self):
        doc = load_document(FIXTURES / "users-openapi.yaml")
        collections = doc.components.collections()
        assert set(collections) == {"schemas", "responses", "securitySchemes"}
        assert "User" in collections["schemas"]
