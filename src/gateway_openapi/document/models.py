"""OpenAPI 3.x document model.

Every stage of the aggregation pipeline reads and writes these models. They
are frozen: a stage that wants a different tree builds one (usually with
``model_copy(update=...)``) instead of editing its input, so one cached
document can be shared by concurrent runs.

Keys the model does not name (``x-*`` extensions, scalar schema constraints,
``webhooks``, ...) are kept as extra fields and written back out unchanged.
``x-*`` keys inside the Paths and Responses maps are split off into
``path_extensions`` / ``response_extensions`` and merged back on dump.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

COMPONENTS_REF_PREFIX = "#/components/"
SCHEMA_REF_PREFIX = "#/components/schemas/"


def schema_ref(name: str) -> str:
    """Build a ``$ref`` string pointing at ``components.schemas[name]``."""
    return SCHEMA_REF_PREFIX + name


def is_extension(key) -> bool:
    return isinstance(key, str) and key.startswith("x-")


def _split_extensions(data, field_name: str, extensions_name: str):
    """Move ``x-*`` keys of ``data[field_name]`` into ``data[extensions_name]``."""
    if not isinstance(data, dict):
        return data
    entries = data.get(field_name)
    if not isinstance(entries, dict) or not any(is_extension(k) for k in entries):
        return data
    data = dict(data)
    data[field_name] = {k: v for k, v in entries.items() if not is_extension(k)}
    data[extensions_name] = {k: v for k, v in entries.items() if is_extension(k)}
    return data


def parse_component_ref(ref: str) -> tuple[str, str] | None:
    """Split ``#/components/{kind}/{name}`` into ``(kind, name)``.

    Returns None for external or non-component references.
    """
    if not ref or not ref.startswith(COMPONENTS_REF_PREFIX):
        return None
    parts = ref[len(COMPONENTS_REF_PREFIX):].split("/", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


class OpenApiModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)


class Discriminator(OpenApiModel):
    property_name: str | None = Field(default=None, alias="propertyName")
    mapping: dict[str, str] | None = None  # value -> schema name or $ref


class Schema(OpenApiModel):
    """A schema node: inline, or a reference into ``components.schemas``."""

    ref: str | None = Field(default=None, alias="$ref")
    type: str | list[str] | None = None
    format: str | None = None
    title: str | None = None
    description: str | None = None
    required: list[str] | None = None
    enum: list[Any] | None = None
    properties: "dict[str, Schema] | None" = None
    items: "Schema | None" = None
    all_of: "list[Schema] | None" = Field(default=None, alias="allOf")
    one_of: "list[Schema] | None" = Field(default=None, alias="oneOf")
    any_of: "list[Schema] | None" = Field(default=None, alias="anyOf")
    not_: "Schema | None" = Field(default=None, alias="not")
    additional_properties: "Schema | bool | None" = Field(default=None, alias="additionalProperties")
    discriminator: Discriminator | None = None

    @property
    def ref_name(self) -> str | None:
        """Name of the referenced component schema, if this node is a schema reference."""
        if self.ref and self.ref.startswith(SCHEMA_REF_PREFIX):
            return self.ref[len(SCHEMA_REF_PREFIX):]
        return None


def discriminator_target(value: str) -> str | None:
    """Schema name a ``discriminator.mapping`` value points at.

    A mapping value is either a ``$ref`` or a bare schema name. Returns None
    for references outside ``components.schemas``.
    """
    if value.startswith(SCHEMA_REF_PREFIX):
        return value[len(SCHEMA_REF_PREFIX):]
    if "/" in value or "#" in value:
        return None
    return value


class MediaType(OpenApiModel):
    schema_: Schema | None = Field(default=None, alias="schema")


class Header(OpenApiModel):
    ref: str | None = Field(default=None, alias="$ref")
    description: str | None = None
    required: bool | None = None
    schema_: Schema | None = Field(default=None, alias="schema")
    content: dict[str, MediaType] | None = None


class Parameter(OpenApiModel):
    ref: str | None = Field(default=None, alias="$ref")
    name: str | None = None
    in_: str | None = Field(default=None, alias="in")  # query / path / header / cookie
    description: str | None = None
    required: bool | None = None
    deprecated: bool | None = None
    schema_: Schema | None = Field(default=None, alias="schema")
    content: dict[str, MediaType] | None = None


class RequestBody(OpenApiModel):
    ref: str | None = Field(default=None, alias="$ref")
    description: str | None = None
    required: bool | None = None
    content: dict[str, MediaType] | None = None


class Response(OpenApiModel):
    ref: str | None = Field(default=None, alias="$ref")
    description: str | None = None
    headers: dict[str, Header] | None = None
    content: dict[str, MediaType] | None = None


class Operation(OpenApiModel):
    operation_id: str | None = Field(default=None, alias="operationId")
    summary: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    parameters: list[Parameter] | None = None
    request_body: RequestBody | None = Field(default=None, alias="requestBody")
    responses: dict[str, Response] | None = None
    deprecated: bool | None = None
    security: list[dict[str, list[str]]] | None = None
    response_extensions: dict[str, Any] = Field(default={}, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _split_response_extensions(cls, data):
        return _split_extensions(data, "responses", "response_extensions")

    @field_serializer("responses", mode="wrap")
    def _dump_responses(self, value, handler):
        data = handler(value)
        if data is None or not self.response_extensions:
            return data
        return {**data, **self.response_extensions}

    @field_validator("responses", mode="before")
    @classmethod
    def _status_codes_as_strings(cls, value):
        # YAML reads `200:` as an int key
        if isinstance(value, dict):
            return {str(code): response for code, response in value.items()}
        return value


class PathItem(OpenApiModel):
    """Operations available on one path, keyed by lower-case HTTP method."""

    ref: str | None = Field(default=None, alias="$ref")
    summary: str | None = None
    description: str | None = None
    parameters: list[Parameter] | None = None
    get: Operation | None = None
    put: Operation | None = None
    post: Operation | None = None
    delete: Operation | None = None
    options: Operation | None = None
    head: Operation | None = None
    patch: Operation | None = None
    trace: Operation | None = None

    @property
    def operations(self) -> dict[str, Operation]:
        return {
            method: getattr(self, method)
            for method in HTTP_METHODS
            if getattr(self, method) is not None
        }

    def with_operations(self, operations: dict[str, Operation]) -> "PathItem":
        """Return a copy of this path item carrying exactly ``operations``."""
        return self.model_copy(update={method: operations.get(method) for method in HTTP_METHODS})


class Components(OpenApiModel):
    schemas: dict[str, Schema] | None = None
    responses: dict[str, Response] | None = None
    parameters: dict[str, Parameter] | None = None
    request_bodies: dict[str, RequestBody] | None = Field(default=None, alias="requestBodies")
    security_schemes: dict[str, Any] | None = Field(default=None, alias="securitySchemes")
    headers: dict[str, Header] | None = None
    examples: dict[str, Any] | None = None
    links: dict[str, Any] | None = None
    callbacks: dict[str, Any] | None = None

    def collections(self) -> dict[str, dict[str, Any]]:
        """Non-empty collections keyed by the name used in ``#/components/{kind}/...``."""
        result = {}
        for field_name, field in type(self).model_fields.items():
            value = getattr(self, field_name)
            if value:
                result[field.alias or field_name] = value
        return result


# Attribute name -> ref kind, in declaration order
COMPONENT_KINDS = {
    name: (field.alias or name) for name, field in Components.model_fields.items()
}


class Info(OpenApiModel):
    title: str = ""
    version: str = "1.0.0"
    description: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_string(cls, value):
        # `version: 1.0` is a float in YAML
        if isinstance(value, (int, float)):
            return str(value)
        return value


class Server(OpenApiModel):
    url: str
    description: str | None = None


class Tag(OpenApiModel):
    name: str
    description: str | None = None


class Document(OpenApiModel):
    """Root of an OpenAPI 3.x document."""

    openapi: str = "3.0.1"
    info: Info = Info()
    servers: list[Server] = []
    paths: dict[str, PathItem] = {}
    components: Components = Components()
    security: list[dict[str, list[str]]] = []
    tags: list[Tag] = []
    external_docs: dict[str, Any] | None = Field(default=None, alias="externalDocs")
    path_extensions: dict[str, Any] = Field(default={}, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _split_path_extensions(cls, data):
        return _split_extensions(data, "paths", "path_extensions")

    @field_serializer("paths", mode="wrap")
    def _dump_paths(self, value, handler):
        data = handler(value)
        if not self.path_extensions:
            return data
        return {**data, **self.path_extensions}

    @field_validator("openapi", mode="before")
    @classmethod
    def _openapi_as_string(cls, value):
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("servers", "security", "tags", "paths", mode="before")
    @classmethod
    def _null_as_empty(cls, value, info):
        if value is None:
            return {} if info.field_name == "paths" else []
        return value

    @field_validator("components", mode="before")
    @classmethod
    def _null_components(cls, value):
        return {} if value is None else value
