import logging
from pathlib import Path

from gateway_openapi.document.codec import document_to_dict, load_document
from gateway_openapi.document.models import Document, parse_component_ref
from gateway_openapi.pipeline.pruner import iter_refs
from gateway_openapi.pipeline.renamer import apply_prefix

FIXTURES = Path(__file__).parent / "fixtures"


def _schema_refs(doc: Document) -> set[str]:
    return {key[1] for key in map(parse_component_ref, iter_refs(doc)) if key and key[0] == "schemas"}


class TestApplyPrefix:
    def test_blank_prefix_returns_input(self):
        doc = load_document(FIXTURES / "users-openapi.yaml")
        assert apply_prefix(doc, None) is doc
        assert apply_prefix(doc, "  ") is doc

    def test_no_schemas_returns_input(self):
        doc = Document.model_validate({"paths": {"/x": {"get": {"responses": {"200": {"description": "ok"}}}}}})
        assert apply_prefix(doc, "Users") is doc

    def test_schemas_renamed(self):
        renamed = apply_prefix(load_document(FIXTURES / "users-openapi.yaml"), "Users")
        assert set(renamed.components.schemas) == {
            "UsersUser", "UsersAddress", "UsersCreateUserRequest", "UsersHealthStatus", "UsersError",
        }

    def test_every_schema_reference_resolves(self):
        renamed = apply_prefix(load_document(FIXTURES / "users-openapi.yaml"), "Users")
        refs = _schema_refs(renamed)
        assert refs
        assert refs <= set(renamed.components.schemas)

    def test_references_rewritten_everywhere(self):
        renamed = apply_prefix(load_document(FIXTURES / "users-openapi.yaml"), "Users")
        data = document_to_dict(renamed)
        users = data["paths"]["/users"]
        assert users["get"]["responses"]["200"]["content"]["application/json"]["schema"]["items"]["$ref"] == \
            "#/components/schemas/UsersUser"
        assert users["post"]["requestBody"]["content"]["application/json"]["schema"]["$ref"] == \
            "#/components/schemas/UsersCreateUserRequest"
        assert data["components"]["schemas"]["UsersUser"]["properties"]["address"]["$ref"] == \
            "#/components/schemas/UsersAddress"
        assert data["components"]["responses"]["NotFound"]["content"]["application/json"]["schema"]["$ref"] == \
            "#/components/schemas/UsersError"

    def test_non_schema_references_untouched(self):
        renamed = apply_prefix(load_document(FIXTURES / "users-openapi.yaml"), "Users")
        assert renamed.paths["/users/{id}"].get.responses["404"].ref == "#/components/responses/NotFound"
        assert set(renamed.components.responses) == {"NotFound"}
        assert set(renamed.components.security_schemes) == {"bearer", "apiKey"}

    def test_unknown_references_left_alone(self):
        doc = Document.model_validate({
            "paths": {"/x": {"get": {"responses": {"200": {
                "description": "ok",
                "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Elsewhere"}}},
            }}}}},
            "components": {"schemas": {"Local": {"type": "string"}}},
        })
        renamed = apply_prefix(doc, "P")
        schema = renamed.paths["/x"].get.responses["200"].content["application/json"].schema_
        assert schema.ref == "#/components/schemas/Elsewhere"
        assert set(renamed.components.schemas) == {"PLocal"}

    def test_composition_and_header_references(self):
        doc = Document.model_validate({
            "paths": {"/x": {"get": {"responses": {"200": {
                "description": "ok",
                "headers": {"X-Page": {"schema": {"$ref": "#/components/schemas/Page"}}},
            }}}}},
            "components": {
                "schemas": {
                    "Page": {"type": "integer"},
                    "Pet": {
                        "allOf": [{"$ref": "#/components/schemas/Base"}],
                        "not": {"$ref": "#/components/schemas/Page"},
                        "additionalProperties": {"$ref": "#/components/schemas/Base"},
                    },
                    "Base": {"type": "object"},
                },
                "parameters": {"page": {"name": "page", "in": "query", "schema": {"$ref": "#/components/schemas/Page"}}},
            },
        })
        renamed = apply_prefix(doc, "A")
        pet = renamed.components.schemas["APet"]
        assert pet.all_of[0].ref_name == "ABase"
        assert pet.not_.ref_name == "APage"
        assert pet.additional_properties.ref_name == "ABase"
        assert renamed.components.parameters["page"].schema_.ref_name == "APage"
        header = renamed.paths["/x"].get.responses["200"].headers["X-Page"]
        assert header.schema_.ref_name == "APage"

    def test_input_not_modified(self):
        doc = load_document(FIXTURES / "users-openapi.yaml")
        before = document_to_dict(doc)
        apply_prefix(doc, "Users")
        assert document_to_dict(doc) == before

    def test_different_prefixes_from_one_source(self):
        doc = load_document(FIXTURES / "users-openapi.yaml")
        first = apply_prefix(doc, "A")
        second = apply_prefix(doc, "B")
        assert _schema_refs(first) <= set(first.components.schemas)
        assert _schema_refs(second) <= set(second.components.schemas)
        assert all(name.startswith("A") for name in first.components.schemas)
        assert all(name.startswith("B") for name in second.components.schemas)

    def test_discriminator_mapping_rewritten(self):
        doc = Document.model_validate({
            "paths": {"/pets": {"get": {"responses": {"200": {
                "description": "ok",
                "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
            }}}}},
            "components": {"schemas": {
                "Pet": {
                    "oneOf": [{"$ref": "#/components/schemas/Cat"}, {"$ref": "#/components/schemas/Dog"}],
                    "discriminator": {
                        "propertyName": "kind",
                        "mapping": {"cat": "#/components/schemas/Cat", "dog": "Dog", "fox": "https://example.com/fox.json"},
                    },
                },
                "Cat": {"type": "object"},
                "Dog": {"type": "object"},
            }},
        })
        renamed = apply_prefix(doc, "U")
        assert set(renamed.components.schemas) == {"UPet", "UCat", "UDog"}
        discriminator = renamed.components.schemas["UPet"].discriminator
        assert discriminator.property_name == "kind"
        assert discriminator.mapping == {
            "cat": "#/components/schemas/UCat",
            "dog": "UDog",
            "fox": "https://example.com/fox.json",
        }
        assert _schema_refs(renamed) <= set(renamed.components.schemas)
        data = document_to_dict(renamed)
        assert data["components"]["schemas"]["UPet"]["discriminator"]["mapping"]["cat"] == "#/components/schemas/UCat"

    def test_names_differing_in_case_warn(self, caplog):
        doc = Document.model_validate({
            "components": {"schemas": {"User": {"type": "object"}, "user": {"type": "string"}}},
        })
        with caplog.at_level(logging.WARNING):
            renamed = apply_prefix(doc, "P")
        assert set(renamed.components.schemas) == {"Puser"}
        assert renamed.components.schemas["Puser"].type == "string"
        assert "differ only in case" in caplog.text
