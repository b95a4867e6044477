"""OpenAPI (and Swagger 2) loading and chunking utilities.

A description is rendered into three families of text: the API info block,
one block per operation and one block per reusable schema. Every block goes
through the same word-window chunker as Markdown. Anything that cannot be
parsed degrades to raw word windows flagged with ``parse_error``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import yaml

from docchat.models import Chunk, OpenAPIChunkMetadata
from docchat.utils.text import chunk_words, normalize_whitespace

LOGGER = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
MAX_SCHEMA_DEPTH = 8
_BOUND_KEYS = (
    "minimum",
    "maximum",
    "exclusiveMinimum",
    "exclusiveMaximum",
    "minLength",
    "maxLength",
    "minItems",
    "maxItems",
    "pattern",
    "format",
)


class OpenAPIParseError(ValueError):
    pass


@dataclass(slots=True)
class Block:
    """Rendered text for one info, operation or schema family."""

    label: str
    kind: str
    text: str
    endpoint: Optional[str] = None
    method: Optional[str] = None
    schema_name: Optional[str] = None


def parse_document(content: str) -> Dict[str, Any]:
    """Parse JSON or YAML text into an OpenAPI mapping."""
    try:
        data = json.loads(content)
    except ValueError:
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise OpenAPIParseError(f"Not valid JSON or YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise OpenAPIParseError("Top level of an API description must be a mapping")
    if "openapi" not in data and "swagger" not in data:
        raise OpenAPIParseError("Missing 'openapi' or 'swagger' version field")
    if not isinstance(data.get("paths", {}), dict):
        raise OpenAPIParseError("'paths' must be a mapping")
    return data


def extract_title(content: str) -> Optional[str]:
    try:
        info = parse_document(content).get("info") or {}
    except OpenAPIParseError:
        return None
    title = info.get("title") if isinstance(info, dict) else None
    return str(title) if title else None


# -- schema rendering -------------------------------------------------------


def _ref_name(ref: str) -> str:
    return ref.rsplit("/", 1)[-1]


def _schema_kind(schema: Any) -> str:
    if not isinstance(schema, dict):
        return "literal"
    if "$ref" in schema:
        return "ref"
    if any(key in schema for key in ("allOf", "oneOf", "anyOf")):
        return "composite"
    if schema.get("type") == "array" or "items" in schema:
        return "array"
    if schema.get("type") == "object" or "properties" in schema:
        return "object"
    return "scalar"


def render_schema(schema: Any, *, indent: int = 0, depth: int = 0) -> List[str]:
    """Render a JSON schema depth-first as indented lines.

    ``$ref`` targets are named, not expanded, so cyclic schemas terminate;
    inline nesting deeper than ``MAX_SCHEMA_DEPTH`` is cut off.
    """
    pad = "  " * indent
    if depth > MAX_SCHEMA_DEPTH:
        return [f"{pad}... (nested schema truncated)"]

    kind = _schema_kind(schema)
    if kind == "literal":
        return [f"{pad}{schema}"]
    if kind == "ref":
        return [f"{pad}Reference: {_ref_name(str(schema['$ref']))}"]

    lines: List[str] = []
    schema_type = schema.get("type")
    if schema_type:
        if isinstance(schema_type, list):
            schema_type = " | ".join(str(item) for item in schema_type)
        lines.append(f"{pad}Type: {schema_type}")
    if schema.get("description"):
        lines.append(f"{pad}Description: {normalize_whitespace(str(schema['description']).splitlines())}")
    if schema.get("enum"):
        lines.append(f"{pad}Enum: {', '.join(str(value) for value in schema['enum'])}")
    for key in _BOUND_KEYS:
        if key in schema:
            lines.append(f"{pad}{key}: {schema[key]}")
    if "default" in schema:
        lines.append(f"{pad}Default: {json.dumps(schema['default'], default=str)}")

    if kind == "composite":
        for key in ("allOf", "oneOf", "anyOf"):
            for position, variant in enumerate(schema.get(key) or [], start=1):
                lines.append(f"{pad}{key} #{position}:")
                lines.extend(render_schema(variant, indent=indent + 1, depth=depth + 1))
    elif kind == "array":
        items = schema.get("items")
        if _schema_kind(items) == "ref":
            lines.append(f"{pad}Items: {_ref_name(str(items['$ref']))}")
        elif isinstance(items, dict) and _schema_kind(items) == "scalar" and set(items) <= {"type"}:
            lines.append(f"{pad}Items: {items.get('type', 'any')}")
        elif items is not None:
            lines.append(f"{pad}Items:")
            lines.extend(render_schema(items, indent=indent + 1, depth=depth + 1))
    elif kind == "object":
        required = schema.get("required") or []
        if required:
            lines.append(f"{pad}Required: {', '.join(str(name) for name in required)}")
        properties = schema.get("properties") or {}
        if properties:
            lines.append(f"{pad}Properties:")
            for name, prop in properties.items():
                marker = " (required)" if name in required else ""
                lines.append(f"{pad}  - {name}{marker}:")
                lines.extend(render_schema(prop, indent=indent + 2, depth=depth + 1))
    return lines


# -- families ---------------------------------------------------------------


def _render_info(api: Dict[str, Any]) -> Optional[Block]:
    info = api.get("info")
    if not isinstance(info, dict):
        return None
    lines = [f"API: {info.get('title', 'Untitled')}"]
    if info.get("description"):
        lines.append(str(info["description"]).strip())
    lines.append(f"Version: {info.get('version', 'unknown')}")
    servers = [server.get("url") for server in api.get("servers") or [] if isinstance(server, dict)]
    if servers:
        lines.append(f"Servers: {', '.join(str(url) for url in servers if url)}")
    return Block(label="info", kind="info", text="\n".join(lines))


def _render_parameter(param: Dict[str, Any]) -> str:
    if "$ref" in param:
        return f"- Reference: {_ref_name(str(param['$ref']))}"
    schema = param.get("schema") if isinstance(param.get("schema"), dict) else {}
    param_type = schema.get("type") or param.get("type")
    if "$ref" in schema:
        param_type = _ref_name(str(schema["$ref"]))
    details = [str(param.get("in", "query"))]
    if param.get("required"):
        details.append("required")
    if param_type:
        details.append(str(param_type))
    line = f"- {param.get('name', '?')} ({', '.join(details)})"
    if param.get("description"):
        line += f": {normalize_whitespace(str(param['description']).splitlines())}"
    enum = schema.get("enum") or param.get("enum")
    if enum:
        line += f" [enum: {', '.join(str(value) for value in enum)}]"
    default = schema.get("default", param.get("default"))
    if default is not None:
        line += f" [default: {default}]"
    return line


def _render_content(content: Dict[str, Any], indent: int) -> List[str]:
    lines: List[str] = []
    for media_type, media in content.items():
        lines.append(f"{'  ' * indent}Content-Type: {media_type}")
        if isinstance(media, dict) and media.get("schema") is not None:
            lines.extend(render_schema(media["schema"], indent=indent + 1))
    return lines


def _render_operation(
    path: str, method: str, operation: Dict[str, Any], shared_params: List[Any]
) -> Block:
    label = f"{method.upper()} {path}"
    lines = [f"Endpoint: {label}"]
    if operation.get("summary"):
        lines.append(f"Summary: {operation['summary']}")
    if operation.get("description"):
        lines.append(f"Description: {str(operation['description']).strip()}")
    if operation.get("operationId"):
        lines.append(f"Operation ID: {operation['operationId']}")
    if operation.get("tags"):
        lines.append(f"Tags: {', '.join(str(tag) for tag in operation['tags'])}")
    if operation.get("deprecated"):
        lines.append("Deprecated: yes")

    params = [p for p in shared_params + list(operation.get("parameters") or []) if isinstance(p, dict)]
    body_params = [p for p in params if p.get("in") == "body"]
    params = [p for p in params if p.get("in") != "body"]
    if params:
        lines.append("")
        lines.append("Parameters:")
        lines.extend(_render_parameter(param) for param in params)

    request_body = operation.get("requestBody")
    if isinstance(request_body, dict):
        lines.append("")
        required = " (required)" if request_body.get("required") else ""
        lines.append(f"Request Body{required}:")
        if "$ref" in request_body:
            lines.append(f"  Reference: {_ref_name(str(request_body['$ref']))}")
        if request_body.get("description"):
            lines.append(f"  Description: {request_body['description']}")
        lines.extend(_render_content(request_body.get("content") or {}, indent=1))
    for body in body_params:
        # Swagger 2 carries the body as an ``in: body`` parameter
        lines.append("")
        lines.append(f"Request Body ({body.get('name', 'body')}):")
        lines.extend(render_schema(body.get("schema") or {}, indent=1))

    responses = operation.get("responses") or {}
    if isinstance(responses, dict) and responses:
        lines.append("")
        lines.append("Responses:")
        for code, response in responses.items():
            if not isinstance(response, dict):
                continue
            if "$ref" in response:
                lines.append(f"- {code}: Reference: {_ref_name(str(response['$ref']))}")
                continue
            lines.append(f"- {code}: {response.get('description', '')}".rstrip())
            lines.extend(_render_content(response.get("content") or {}, indent=1))
            if response.get("schema") is not None:
                lines.extend(render_schema(response["schema"], indent=1))

    return Block(label=label, kind="endpoint", text="\n".join(lines), endpoint=path, method=method)


def _iter_blocks(api: Dict[str, Any]) -> Iterator[Block]:
    info = _render_info(api)
    if info is not None:
        yield info

    for path, path_item in (api.get("paths") or {}).items():
        if not isinstance(path_item, dict):
            continue
        shared = list(path_item.get("parameters") or [])
        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if isinstance(operation, dict):
                yield _render_operation(str(path), method, operation, shared)

    components = api.get("components") if isinstance(api.get("components"), dict) else {}
    schemas = components.get("schemas") or api.get("definitions") or {}
    for name, schema in schemas.items():
        lines = [f"Schema: {name}"]
        lines.extend(render_schema(schema))
        yield Block(label=f"schema-{name}", kind="schema", text="\n".join(lines), schema_name=str(name))


def build_openapi_chunks(
    content: str,
    file_name: str,
    *,
    max_words: int = 500,
    overlap: int = 50,
) -> Iterator[Chunk]:
    """Produce chunks for an OpenAPI description.

    Never raises on malformed input; see ``build_raw_chunks``.
    """
    try:
        api = parse_document(content)
        blocks = list(_iter_blocks(api))
    except (ValueError, AttributeError, TypeError) as exc:
        LOGGER.warning("Could not parse %s as OpenAPI (%s), indexing raw text", file_name, exc)
        yield from build_raw_chunks(content, file_name, max_words=max_words, overlap=overlap)
        return

    if not blocks:
        LOGGER.warning("No operations or schemas found in %s, indexing raw text", file_name)
        yield from build_raw_chunks(content, file_name, max_words=max_words, overlap=overlap)
        return

    sequence = 0
    for section_index, block in enumerate(blocks):
        for sub_index, text in enumerate(
            chunk_words(block.text, max_words=max_words, overlap=overlap)
        ):
            yield Chunk(
                content=text,
                index=sequence,
                metadata=OpenAPIChunkMetadata(
                    file_name=file_name,
                    section=block.label,
                    section_index=section_index,
                    sub_index=sub_index,
                    kind=block.kind,
                    endpoint=block.endpoint,
                    method=block.method,
                    schema_name=block.schema_name,
                ),
            )
            sequence += 1


def build_raw_chunks(
    content: str,
    file_name: str,
    *,
    max_words: int = 500,
    overlap: int = 50,
) -> Iterator[Chunk]:
    """Word-window the unparsed text, flagging every chunk with ``parse_error``."""
    texts = chunk_words(content, max_words=max_words, overlap=overlap) or [content]
    for sub_index, text in enumerate(texts):
        yield Chunk(
            content=text,
            index=sub_index,
            metadata=OpenAPIChunkMetadata(
                file_name=file_name,
                section="raw",
                sub_index=sub_index,
                kind="raw",
                parse_error=True,
            ),
        )
