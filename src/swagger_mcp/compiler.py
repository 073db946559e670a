"""Compile an OpenAPI document into tool records and a manifest."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from jsonschema.exceptions import SchemaError
from jsonschema.protocols import Validator
from jsonschema.validators import Draft7Validator, validator_for

from .errors import (
    NoToolsRegistered,
    RegistrationError,
    SchemaCompileError,
    SecurityViolation,
    ToolInvocationError,
    ValidationFailure,
)
from .executors import RestExecutor, build_request_config
from .loader import build_operation, get_base_url, iter_operation_entries
from .logging import redact_payload
from .models import (
    CompileFailure,
    CompileResult,
    Manifest,
    ManifestServer,
    ManifestTool,
    Operation,
    ToolHandler,
    ToolRecord,
    ToolResponse,
)
from .schema import (
    build_input_schema,
    build_tool_description,
    extract_error_schemas,
    extract_output_schema,
    is_resolvable,
    resolve_schema_refs,
)
from .security import sanitize_tool_name, validate_port


logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_NAME = "swagger-mcp"
DEFAULT_MANIFEST_VERSION = "1.0.0"
DEFAULT_MANIFEST_DESCRIPTION = "MCP server generated from Swagger/OpenAPI"


def _opaque_dangling_refs(schema: Any, spec: Dict[str, Any]) -> Any:
    if isinstance(schema, dict):
        ref = schema.get("$ref")
        if ref is not None and not is_resolvable(ref, spec):
            return {}
        return {key: _opaque_dangling_refs(value, spec) for key, value in schema.items()}
    if isinstance(schema, list):
        return [_opaque_dangling_refs(item, spec) for item in schema]
    return schema


def _has_refs(schema: Any) -> bool:
    if isinstance(schema, dict):
        return "$ref" in schema or any(_has_refs(value) for value in schema.values())
    if isinstance(schema, list):
        return any(_has_refs(item) for item in schema)
    return False


def compile_validator(schema: Dict[str, Any], spec: Optional[Dict[str, Any]] = None) -> Validator:
    """Compile a JSON-schema validator for a generated input schema.

    Refs left in place by resolution (cycles) still point into the spec, so the
    spec's reusable sections are embedded in the validator's copy of the schema.
    Refs that cannot be resolved at all are treated as opaque (accept anything).
    """
    candidate: Dict[str, Any] = dict(schema)
    if spec is not None:
        candidate = _opaque_dangling_refs(candidate, spec)
    if spec is not None and _has_refs(candidate):
        for section in ("components", "definitions"):
            if section in spec and section not in candidate:
                candidate[section] = spec[section]

    validator_cls = validator_for(candidate, default=Draft7Validator)
    try:
        validator_cls.check_schema(candidate)
    except SchemaError as exc:
        raise SchemaCompileError(f"Invalid generated schema: {exc.message}") from exc
    return validator_cls(candidate)


def validation_messages(validator: Validator, arguments: Any) -> List[str]:
    messages = []
    errors = sorted(validator.iter_errors(arguments), key=lambda e: [str(p) for p in e.path])
    for error in errors:
        location = "/".join(str(part) for part in error.path)
        messages.append(f"{location}: {error.message}" if location else error.message)
    return messages


class ToolCompiler:
    def __init__(
        self,
        executor: Optional[RestExecutor] = None,
        max_concurrency: int = 20,
    ) -> None:
        self.executor = executor or RestExecutor()
        self.max_concurrency = max_concurrency

    def compile(
        self,
        spec: Dict[str, Any],
        base_url: Optional[str] = None,
        port: Union[int, str] = 4000,
        source: Optional[str] = None,
    ) -> CompileResult:
        server_port = validate_port(port)
        base_url = base_url or get_base_url(spec, source)
        if not base_url:
            logger.warning("Spec declares no server URL; tool calls will fail until a base URL is set")

        # Shared by every handler from this compile run, never across runs.
        semaphore = asyncio.Semaphore(self.max_concurrency)
        used_names: Set[str] = set()
        tools: List[ToolRecord] = []
        failures: List[CompileFailure] = []

        for method, path, raw, shared_parameters in iter_operation_entries(spec):
            try:
                tool = self._compile_entry(
                    spec, method, path, raw, shared_parameters, base_url, used_names, semaphore
                )
            except (SecurityViolation, RegistrationError, SchemaCompileError) as exc:
                logger.error("Failed to register %s %s: %s", method.upper(), path, exc)
                failures.append(CompileFailure(method, path, exc))
                continue
            used_names.add(tool.name)
            tools.append(tool)
            logger.info("Registered tool: %s", tool.name)

        if not tools:
            raise NoToolsRegistered(failures)

        manifest = build_manifest(spec, tools, server_port)
        logger.info("Compiled %s tools (%s failed)", len(tools), len(failures))
        return CompileResult(tools=tools, failures=failures, manifest=manifest)

    def _compile_entry(
        self,
        spec: Dict[str, Any],
        method: str,
        path: str,
        raw: Any,
        shared_parameters: List[Dict[str, Any]],
        base_url: str,
        used_names: Set[str],
        semaphore: asyncio.Semaphore,
    ) -> ToolRecord:
        try:
            operation = build_operation(spec, method, path, raw, shared_parameters)
            return self._compile_operation(operation, spec, base_url, used_names, semaphore)
        except (TypeError, AttributeError, ValueError) as exc:
            # Shapes the structural checks do not cover still fail only this operation.
            raise RegistrationError(f"Malformed operation: {exc}") from exc

    def _compile_operation(
        self,
        operation: Operation,
        spec: Dict[str, Any],
        base_url: str,
        used_names: Set[str],
        semaphore: asyncio.Semaphore,
    ) -> ToolRecord:
        name = self._unique_name(operation, used_names)

        input_schema = resolve_schema_refs(build_input_schema(operation, spec), spec)
        output_schema = resolve_schema_refs(extract_output_schema(operation), spec)
        error_schemas = {
            code: resolve_schema_refs(schema, spec)
            for code, schema in extract_error_schemas(operation).items()
        }
        description = build_tool_description(operation, operation.method, operation.path)
        validator = compile_validator(input_schema, spec)

        return ToolRecord(
            name=name,
            description=description,
            method=operation.method.upper(),
            path=operation.path,
            operation_id=operation.operation_id,
            input_schema=input_schema,
            output_schema=output_schema,
            error_schemas=error_schemas,
            handler=self._make_handler(name, operation, base_url, validator, semaphore),
            tags=operation.tags,
        )

    def _unique_name(self, operation: Operation, used_names: Set[str]) -> str:
        name = sanitize_tool_name(f"{operation.method.upper()} {operation.path}")
        if name not in used_names:
            return name

        candidate = sanitize_tool_name(f"{name} ({operation.operation_id})")
        if candidate in used_names:
            raise RegistrationError(f"Tool name collision could not be resolved: {candidate}")
        return candidate

    def _make_handler(
        self,
        name: str,
        operation: Operation,
        base_url: str,
        validator: Validator,
        semaphore: asyncio.Semaphore,
    ) -> ToolHandler:
        executor = self.executor

        async def handler(arguments: Dict[str, Any]) -> ToolResponse:
            arguments = arguments if arguments is not None else {}
            messages = validation_messages(validator, arguments)
            if messages:
                return ToolResponse(error=ValidationFailure(messages))

            async with semaphore:
                logger.info("Executing tool=%s payload=%s", name, redact_payload(arguments))
                try:
                    request = build_request_config(
                        arguments, operation, operation.method, operation.path, base_url
                    )
                    result = await executor.execute(request)
                except ToolInvocationError as exc:
                    logger.error("Tool execution failed: tool=%s %s", name, exc)
                    return ToolResponse(error=exc)

            return ToolResponse(data=result)

        handler.__name__ = f"invoke_{operation.operation_id}"
        return handler


def build_manifest(spec: Dict[str, Any], tools: List[ToolRecord], port: int) -> Manifest:
    info = spec.get("info") or {}
    return Manifest(
        name=info.get("title") or DEFAULT_MANIFEST_NAME,
        version=str(info.get("version") or DEFAULT_MANIFEST_VERSION),
        description=info.get("description") or DEFAULT_MANIFEST_DESCRIPTION,
        tools=[
            ManifestTool(
                name=tool.name,
                description=tool.description,
                method=tool.method,
                path=tool.path,
                tags=list(tool.tags),
            )
            for tool in tools
        ],
        server=ManifestServer(url=f"http://localhost:{port}"),
    )


def write_manifest(manifest: Manifest, path: Union[str, Path]) -> Path:
    target = Path(path).resolve()
    target.write_text(
        json.dumps(manifest.model_dump(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )
    logger.info("Generated %s with %s tools", target, len(manifest.tools))
    return target


def compile_spec(
    spec: Dict[str, Any],
    base_url: Optional[str] = None,
    port: Union[int, str] = 4000,
    executor: Optional[RestExecutor] = None,
) -> CompileResult:
    return ToolCompiler(executor=executor).compile(spec, base_url=base_url, port=port)
