"""Schema renaming.

Prefixes every component schema name of a document (``User`` ->
``UsersUser``) and rewrites each schema reference to match, so documents
from different services can be merged without name collisions.

Every node on the way to a rewritten reference is rebuilt. The input
document, which may be a cached copy shared with other requests using a
different prefix, is never touched.
"""

import logging

from gateway_openapi.document.models import (
    Document,
    Header,
    MediaType,
    Operation,
    Parameter,
    PathItem,
    RequestBody,
    Response,
    Schema,
    discriminator_target,
    schema_ref,
)

logger = logging.getLogger(__name__)


def apply_prefix(document: Document, prefix: str | None) -> Document:
    """Return a copy of ``document`` with schemas renamed to ``prefix + name``.

    The input itself is returned when ``prefix`` is blank or the document has
    no component schemas. References to schemas the document does not define
    are left as they are.
    """
    if not prefix or not prefix.strip():
        logger.debug("No prefix specified, returning document unchanged")
        return document

    schemas = document.components.schemas or {}
    if not schemas:
        logger.debug("No schemas to rename, returning document unchanged")
        return document

    rewriter = _ReferenceRewriter(_rename_map(schemas, prefix))
    logger.debug("Renaming %d schemas with prefix '%s'", len(schemas), prefix)

    components = document.components
    updates = {
        "schemas": {rewriter.new_name(name): rewriter.schema(schema) for name, schema in schemas.items()},
    }
    if components.responses is not None:
        updates["responses"] = {k: rewriter.response(v) for k, v in components.responses.items()}
    if components.parameters is not None:
        updates["parameters"] = {k: rewriter.parameter(v) for k, v in components.parameters.items()}
    if components.request_bodies is not None:
        updates["request_bodies"] = {k: rewriter.request_body(v) for k, v in components.request_bodies.items()}
    if components.headers is not None:
        updates["headers"] = {k: rewriter.header(v) for k, v in components.headers.items()}
    # securitySchemes, examples, links and callbacks hold no schema references: shared as-is

    renamed = document.model_copy(update={
        "servers": list(document.servers),
        "paths": {path: rewriter.path_item(item) for path, item in document.paths.items()},
        "components": components.model_copy(update=updates),
        "security": list(document.security),
        "tags": list(document.tags),
    })
    logger.info("Schema renaming complete: %d schemas renamed with prefix '%s'", len(schemas), prefix)
    return renamed


def _rename_map(schemas: dict, prefix: str) -> dict[str, str]:
    """Lower-cased old name -> new name. Names differing only in case collide; the last one wins."""
    name_map: dict[str, str] = {}
    for name in schemas:
        key = name.lower()
        if key in name_map:
            logger.warning(
                "Schema names '%s' and '%s' differ only in case; both are renamed to '%s'",
                name_map[key][len(prefix):], name, prefix + name,
            )
        name_map[key] = prefix + name
    return name_map


class _ReferenceRewriter:
    """Rebuilds document nodes, pointing schema references at renamed schemas."""

    def __init__(self, name_map: dict[str, str]):
        self.name_map = name_map  # lower-cased old name -> new name

    def new_name(self, name: str) -> str:
        return self.name_map[name.lower()]

    def schema(self, schema: Schema | None) -> Schema | None:
        if schema is None:
            return None

        update = {}
        name = schema.ref_name
        if name is not None and name.lower() in self.name_map:
            update["ref"] = schema_ref(self.name_map[name.lower()])

        if schema.properties is not None:
            update["properties"] = {k: self.schema(v) for k, v in schema.properties.items()}
        if schema.items is not None:
            update["items"] = self.schema(schema.items)
        for field in ("all_of", "one_of", "any_of"):
            members = getattr(schema, field)
            if members is not None:
                update[field] = [self.schema(s) for s in members]
        if schema.not_ is not None:
            update["not_"] = self.schema(schema.not_)
        if isinstance(schema.additional_properties, Schema):
            update["additional_properties"] = self.schema(schema.additional_properties)
        if schema.discriminator is not None and schema.discriminator.mapping:
            update["discriminator"] = schema.discriminator.model_copy(update={
                "mapping": {value: self.mapping_target(target) for value, target in schema.discriminator.mapping.items()},
            })

        return schema.model_copy(update=update)

    def mapping_target(self, target: str) -> str:
        name = discriminator_target(target)
        if name is None or name.lower() not in self.name_map:
            return target
        new_name = self.name_map[name.lower()]
        return schema_ref(new_name) if target.startswith("#") else new_name

    def content(self, content: dict[str, MediaType] | None) -> dict[str, MediaType] | None:
        if content is None:
            return None
        return {
            media_type: media.model_copy(update={"schema_": self.schema(media.schema_)})
            for media_type, media in content.items()
        }

    def header(self, header: Header) -> Header:
        return header.model_copy(update={
            "schema_": self.schema(header.schema_),
            "content": self.content(header.content),
        })

    def parameter(self, parameter: Parameter) -> Parameter:
        return parameter.model_copy(update={
            "schema_": self.schema(parameter.schema_),
            "content": self.content(parameter.content),
        })

    def request_body(self, request_body: RequestBody | None) -> RequestBody | None:
        if request_body is None:
            return None
        return request_body.model_copy(update={"content": self.content(request_body.content)})

    def response(self, response: Response) -> Response:
        headers = None
        if response.headers is not None:
            headers = {k: self.header(v) for k, v in response.headers.items()}
        return response.model_copy(update={"content": self.content(response.content), "headers": headers})

    def operation(self, operation: Operation) -> Operation:
        update = {"request_body": self.request_body(operation.request_body)}
        if operation.parameters is not None:
            update["parameters"] = [self.parameter(p) for p in operation.parameters]
        if operation.responses is not None:
            update["responses"] = {code: self.response(r) for code, r in operation.responses.items()}
        if operation.tags is not None:
            update["tags"] = list(operation.tags)
        return operation.model_copy(update=update)

    def path_item(self, path_item: PathItem) -> PathItem:
        operations = {method: self.operation(op) for method, op in path_item.operations.items()}
        rebuilt = path_item.with_operations(operations)
        if path_item.parameters is not None:
            rebuilt = rebuilt.model_copy(update={"parameters": [self.parameter(p) for p in path_item.parameters]})
        return rebuilt
