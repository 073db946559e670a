"""Internal models for operations, compiled tools and the manifest."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .errors import RegistrationError, SwaggerMCPError, ToolInvocationError


HTTP_METHODS = ("get", "post", "put", "patch", "delete", "options", "head")
MUTATING_METHODS = ("post", "put", "patch")
PARAMETER_LOCATIONS = ("path", "query", "header", "cookie")


@dataclass(frozen=True)
class Operation:
    method: str
    path: str
    operation_id: str
    parameters: Tuple[Dict[str, Any], ...] = ()
    request_body: Optional[Dict[str, Any]] = None
    responses: Dict[str, Any] = field(default_factory=dict)
    tags: Tuple[str, ...] = ()
    summary: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_spec(
        cls,
        method: str,
        path: str,
        operation: Dict[str, Any],
        shared_parameters: Optional[List[Dict[str, Any]]] = None,
    ) -> "Operation":
        method = method.lower()
        check_operation_shape(operation)
        # Operation-level parameters override path-level ones with the same name and location.
        merged: Dict[Tuple[Any, Any], Dict[str, Any]] = {}
        for parameter in [*(shared_parameters or []), *(operation.get("parameters") or [])]:
            if isinstance(parameter, dict):
                schema = parameter.get("schema")
                if schema is not None and not isinstance(schema, dict):
                    raise RegistrationError(
                        f"Parameter {parameter.get('name')!r} schema must be an object"
                    )
                merged[(parameter.get("name"), parameter.get("in"))] = parameter

        return cls(
            method=method,
            path=path,
            operation_id=operation.get("operationId") or fallback_operation_id(method, path),
            parameters=tuple(merged.values()),
            request_body=operation.get("requestBody"),
            responses=dict(operation.get("responses") or {}),
            tags=tuple(operation.get("tags") or ()),
            summary=operation.get("summary"),
            description=operation.get("description"),
        )


def check_operation_shape(operation: Any) -> None:
    if not isinstance(operation, dict):
        raise RegistrationError("Operation must be an object")
    for key, expected, label in (
        ("parameters", list, "an array"),
        ("requestBody", dict, "an object"),
        ("responses", dict, "an object"),
        ("tags", list, "an array"),
    ):
        value = operation.get(key)
        if value is not None and not isinstance(value, expected):
            raise RegistrationError(f"{key} must be {label}, got {type(value).__name__}")


def fallback_operation_id(method: str, path: str) -> str:
    sanitized = path.strip("/").replace("/", "_").replace("{", "").replace("}", "")
    return f"{method.lower()}_{sanitized or 'root'}"


@dataclass
class ParameterBucket:
    path: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    query: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    header: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    cookie: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    required: Dict[str, List[str]] = field(
        default_factory=lambda: {location: [] for location in PARAMETER_LOCATIONS}
    )
    body: Optional[Dict[str, Any]] = None
    body_required: bool = False

    def location(self, name: str) -> Dict[str, Dict[str, Any]]:
        return getattr(self, name)


@dataclass(frozen=True)
class RequestConfig:
    method: str
    url: str
    params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    json_body: Any = None
    has_body: bool = False


@dataclass(frozen=True)
class ToolResponse:
    data: Any = None
    error: Optional[ToolInvocationError] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


ToolHandler = Callable[[Dict[str, Any]], Awaitable[ToolResponse]]


@dataclass(frozen=True)
class ToolRecord:
    name: str
    description: str
    method: str
    path: str
    operation_id: str
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any]
    error_schemas: Dict[str, Any]
    handler: ToolHandler
    tags: Tuple[str, ...] = ()

    async def invoke(self, arguments: Dict[str, Any]) -> ToolResponse:
        return await self.handler(arguments)


@dataclass(frozen=True)
class CompileFailure:
    method: str
    path: str
    error: SwaggerMCPError

    def __str__(self) -> str:
        return f"{self.method.upper()} {self.path}: {self.error}"


class ManifestTool(BaseModel):
    name: str
    description: str
    method: str
    path: str
    tags: List[str] = Field(default_factory=list)


class ManifestServer(BaseModel):
    url: str


class Manifest(BaseModel):
    name: str
    version: str
    description: str
    tools: List[ManifestTool] = Field(default_factory=list)
    server: ManifestServer


@dataclass(frozen=True)
class CompileResult:
    tools: List[ToolRecord]
    failures: List[CompileFailure]
    manifest: Manifest
