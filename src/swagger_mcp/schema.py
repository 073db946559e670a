"""Schema extraction for OpenAPI operations.

Handles:
- Parameter separation by location (path, query, header, cookie)
- JSON request bodies (OpenAPI 3 requestBody and Swagger 2.0 body parameters)
- Merging everything into one closed-world input schema
- Success/error response schemas
- Internal $ref resolution with a cycle guard
- Tool descriptions aimed at an AI caller
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, FrozenSet, List, Optional

from .models import PARAMETER_LOCATIONS, Operation, ParameterBucket


logger = logging.getLogger(__name__)

LOCATION_KEY = "x-parameter-location"
RESPONSE_CODE_KEY = "x-response-code"
BODY_PROPERTY = "_body"

SUCCESS_CODES = ("200", "201", "204", "206")
_DESCRIBED_LOCATIONS = ("path", "query", "header")
_NESTED_LIST_KEYS = ("allOf", "oneOf", "anyOf")

_MISSING = object()


def _json_schema(content: Any) -> Any:
    """Return the schema of the JSON media type in a content map, or _MISSING."""
    if not isinstance(content, dict):
        return _MISSING
    media = content.get("application/json")
    if media is None:
        for media_type, candidate in content.items():
            if media_type.split(";")[0].strip().endswith("+json"):
                media = candidate
                break
    if not isinstance(media, dict):
        return _MISSING
    return media.get("schema") or {}


def extract_parameters(operation: Operation) -> ParameterBucket:
    bucket = ParameterBucket()

    for parameter in operation.parameters:
        name = parameter.get("name")
        location = parameter.get("in")
        if not name:
            logger.warning(
                "Parameter without name in %s %s, skipping",
                operation.method.upper(),
                operation.path,
            )
            continue

        if location == "body":
            bucket.body = copy.deepcopy(parameter.get("schema") or {})
            bucket.body_required = parameter.get("required") is True
            continue

        if location not in PARAMETER_LOCATIONS:
            logger.warning(
                "Unsupported parameter location %r for %s in %s %s, skipping",
                location,
                name,
                operation.method.upper(),
                operation.path,
            )
            continue

        schema = copy.deepcopy(parameter.get("schema") or {})
        if not schema:
            # Swagger 2.0 keeps type information on the parameter itself.
            schema = {"type": parameter.get("type", "string")}
            for key in ("format", "items", "enum", "default", "minimum", "maximum"):
                if key in parameter:
                    schema[key] = copy.deepcopy(parameter[key])
        if parameter.get("description"):
            schema["description"] = parameter["description"]
        if "example" in parameter:
            schema["example"] = parameter["example"]

        bucket.location(location)[name] = schema
        if parameter.get("required") is True:
            bucket.required[location].append(name)

    request_body = operation.request_body or {}
    body_schema = _json_schema(request_body.get("content"))
    if body_schema is not _MISSING:
        bucket.body = copy.deepcopy(body_schema)
        bucket.body_required = request_body.get("required") is True

    return bucket


def build_input_schema(
    operation: Operation, spec: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    bucket = extract_parameters(operation)
    properties: Dict[str, Any] = {}
    required: List[str] = []

    for location in PARAMETER_LOCATIONS:
        for name, param_schema in bucket.location(location).items():
            properties[name] = {**param_schema, LOCATION_KEY: location}
        required.extend(bucket.required[location])

    body = bucket.body
    if body is not None and spec is not None:
        body = resolve_schema_refs(body, spec)

    if body and isinstance(body.get("properties"), dict):
        for name, prop_schema in body["properties"].items():
            if name in properties:
                logger.warning(
                    "Body property %r of %s %s shadows a %s parameter, keeping the parameter",
                    name,
                    operation.method.upper(),
                    operation.path,
                    properties[name][LOCATION_KEY],
                )
                continue
            properties[name] = prop_schema
        body_required = body.get("required")
        if isinstance(body_required, list):
            required.extend(n for n in body_required if n in body["properties"])
    elif body:
        properties[BODY_PROPERTY] = body
        if bucket.body_required:
            required.append(BODY_PROPERTY)

    return {
        "type": "object",
        "properties": properties,
        "required": list(dict.fromkeys(required)),
        "additionalProperties": False,
    }


def extract_output_schema(operation: Operation) -> Dict[str, Any]:
    responses = operation.responses or {}

    for code in SUCCESS_CODES:
        response = responses.get(code)
        if response is None:
            response = responses.get(int(code))
        if not isinstance(response, dict):
            continue
        schema = _json_schema(response.get("content"))
        if schema is _MISSING and "schema" in response:
            schema = response["schema"] or {}
        if schema is not _MISSING:
            return {**schema, RESPONSE_CODE_KEY: code}

    default = responses.get("default")
    if isinstance(default, dict):
        schema = _json_schema(default.get("content"))
        if schema is _MISSING:
            schema = default.get("schema") or _MISSING
        if schema is not _MISSING and schema:
            return dict(schema)

    return {}


def extract_error_schemas(operation: Operation) -> Dict[str, Any]:
    errors: Dict[str, Any] = {}

    for code, response in (operation.responses or {}).items():
        code = str(code)
        if not code.startswith(("4", "5")):
            continue
        response = response if isinstance(response, dict) else {}
        schema = _json_schema(response.get("content"))
        if schema is _MISSING and "schema" in response:
            schema = response["schema"] or {}
        if schema is _MISSING:
            schema = {
                "type": "object",
                "description": response.get("description") or "Error response",
            }
        errors[code] = schema

    return errors


def build_tool_description(operation: Operation, method: str, path: str) -> str:
    parts: List[str] = []

    if operation.summary:
        parts.append(operation.summary)
    elif operation.operation_id:
        parts.append(operation.operation_id)
    else:
        parts.append(f"{method.upper()} {path}")

    if operation.description and operation.description != operation.summary:
        parts.append(operation.description)

    bucket = extract_parameters(operation)
    hints = [
        f"{location}: {', '.join(bucket.required[location])}"
        for location in _DESCRIBED_LOCATIONS
        if bucket.required[location]
    ]
    if hints:
        parts.append(f"Required parameters: {'; '.join(hints)}")

    if operation.tags:
        parts.append(f"Tags: {', '.join(operation.tags)}")

    return ". ".join(parts)


def resolve_pointer(spec: Dict[str, Any], ref: str) -> Any:
    """Walk an internal ``#/...`` pointer through the spec, or return _MISSING."""
    if not isinstance(ref, str) or not ref.startswith("#/"):
        return _MISSING
    node: Any = spec
    for raw in ref[2:].split("/"):
        segment = raw.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict) and segment in node:
            node = node[segment]
        elif isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
            node = node[int(segment)]
        else:
            return _MISSING
    return node


def is_resolvable(ref: Any, spec: Dict[str, Any]) -> bool:
    return resolve_pointer(spec, ref) is not _MISSING


def resolve_schema_refs(schema: Any, spec: Dict[str, Any]) -> Any:
    return _resolve(schema, spec, frozenset())


def _resolve(schema: Any, spec: Dict[str, Any], visiting: FrozenSet[str]) -> Any:
    if not isinstance(schema, dict):
        return schema

    ref = schema.get("$ref")
    if isinstance(ref, str):
        if ref in visiting:
            logger.warning("Circular $ref detected, leaving unresolved: %s", ref)
            return schema
        target = resolve_pointer(spec, ref)
        if target is _MISSING:
            logger.warning("Could not resolve $ref: %s", ref)
            return schema
        resolved = _resolve(target, spec, visiting | {ref})
        # Keys next to the $ref (location tags, response codes) survive resolution.
        siblings = _resolve(
            {key: value for key, value in schema.items() if key != "$ref"}, spec, visiting
        )
        if siblings and isinstance(resolved, dict):
            return {**resolved, **siblings}
        return resolved

    result = dict(schema)

    if isinstance(result.get("properties"), dict):
        result["properties"] = {
            key: _resolve(value, spec, visiting) for key, value in result["properties"].items()
        }

    if isinstance(result.get("items"), dict):
        result["items"] = _resolve(result["items"], spec, visiting)

    if isinstance(result.get("additionalProperties"), dict):
        result["additionalProperties"] = _resolve(result["additionalProperties"], spec, visiting)

    for key in _NESTED_LIST_KEYS:
        if isinstance(result.get(key), list):
            result[key] = [_resolve(item, spec, visiting) for item in result[key]]

    return result
