"""OpenAPI document generation for the configured tools."""

from typing import Any, Dict, Iterable, Mapping

from .models import ParamSpec, ToolDefinition

OPENAPI_VERSION = "3.1.0"
API_TITLE = "Local Code Tools"
API_VERSION = "1.0.0"
MOUNT_PREFIX = "/broker"

RESULT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "code": {"type": "integer"},
        "out": {"type": "string"},
        "err": {"type": "string"},
    },
    "required": ["code", "out", "err"],
}

ROOTS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "roots": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "path": {"type": "string"},
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "keywords": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["path", "name"],
            },
        }
    },
    "required": ["roots"],
}


def server_url(headers: Mapping[str, str]) -> str:
    """Public base URL of the broker, honouring reverse-proxy headers."""
    proto = headers.get("x-forwarded-proto") or "http"
    host = headers.get("x-forwarded-host") or headers.get("host") or ""
    return f"{proto}://{host}{MOUNT_PREFIX}"


def _param_schema(spec: ParamSpec) -> Dict[str, Any]:
    prop: Dict[str, Any] = {}
    if spec.type:
        prop["type"] = spec.type
    if spec.items:
        prop["items"] = spec.items
    if spec.enum:
        prop["enum"] = spec.enum
    if spec.has_default:
        prop["default"] = spec.default
    if spec.has_example:
        prop["example"] = spec.example
    return prop


def _operation(tool: ToolDefinition) -> Dict[str, Any]:
    schema = ROOTS_SCHEMA if tool.lists_roots else RESULT_SCHEMA
    op: Dict[str, Any] = {
        "operationId": tool.name,
        "summary": tool.description,
        "responses": {
            "200": {
                "description": "OK",
                "content": {"application/json": {"schema": schema}},
            }
        },
    }
    if tool.lists_roots:
        return op

    properties = {}
    required = []
    for name, spec in tool.params.items():
        properties[name] = _param_schema(spec)
        if not spec.has_default:
            required.append(name)

    op["requestBody"] = {
        "required": True,
        "content": {
            "application/json": {
                "schema": {"type": "object", "properties": properties, "required": required}
            }
        },
    }
    return op


def generate_openapi(tools: Iterable[ToolDefinition], base_url: str) -> Dict[str, Any]:
    """Describe every tool endpoint as an OpenAPI document.

    Parameterless tools become GET operations returning the root listing; the
    rest become POST operations taking a JSON body and returning a run result.

    Args:
        tools: Configured tool definitions
        base_url: Server URL advertised to clients

    Returns:
        OpenAPI document as a JSON-serializable dict
    """
    paths: Dict[str, Any] = {}
    for tool in tools:
        method = "get" if tool.lists_roots else "post"
        paths[tool.path] = {method: _operation(tool)}

    return {
        "openapi": OPENAPI_VERSION,
        "info": {"title": API_TITLE, "version": API_VERSION},
        "servers": [{"url": base_url}],
        "paths": paths,
    }
