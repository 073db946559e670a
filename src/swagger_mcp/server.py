"""MCP server setup for compiled Swagger tools."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from pydantic import PrivateAttr

from .config import Settings
from .models import Manifest, ToolRecord


logger = logging.getLogger(__name__)


class SwaggerTool(Tool):
    """FastMCP tool backed by a compiled ``ToolRecord``.

    The JSON schema generated from the spec is published as-is; input
    validation happens inside the record's handler.
    """

    _record: ToolRecord = PrivateAttr()

    @classmethod
    def from_record(cls, record: ToolRecord) -> "SwaggerTool":
        tool = cls(
            name=record.name,
            description=record.description,
            parameters=record.input_schema,
            tags=set(record.tags),
        )
        tool._record = record
        return tool

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        response = await self._record.invoke(arguments)
        if response.error is not None:
            raise ToolError(json.dumps(response.error.to_dict(), ensure_ascii=False))
        return _format_result(response.data)


def _format_result(data: Any) -> ToolResult:
    text = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False)
    return ToolResult(
        content=text,
        structured_content=data if isinstance(data, dict) else None,
    )


def build_server(
    settings: Settings, manifest: Manifest, tools: Iterable[ToolRecord]
) -> tuple[FastMCP, object | None]:
    mcp = FastMCP(manifest.name, instructions=_instructions(manifest))
    for record in tools:
        mcp.add_tool(SwaggerTool.from_record(record))
        logger.debug("Mounted tool: %s", record.name)

    app = _get_http_app(mcp, settings)
    _attach_healthcheck(app, manifest)
    return mcp, app


def _attach_healthcheck(app, manifest: Manifest) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return

    async def healthcheck(_request):  # type: ignore[no-untyped-def]
        from starlette.responses import JSONResponse

        return JSONResponse({"status": "ok", "tools": len(manifest.tools)})

    app.add_route("/health", healthcheck, methods=["GET"])


def _instructions(manifest: Manifest) -> str:
    return (
        f"{manifest.description} "
        f"Each tool forwards one operation of the {manifest.name} API ({manifest.version})."
    )


def _get_http_app(mcp: FastMCP, settings: Settings):  # type: ignore[no-untyped-def]
    transport = settings.transport.lower()
    if transport in {"http"}:
        return mcp.http_app(transport="http", stateless_http=True, json_response=True)
    if transport in {"streamable-http", "streamablehttp"}:
        return mcp.http_app(transport="streamable-http", stateless_http=True, json_response=True)
    if transport in {"sse"}:
        return mcp.http_app(transport="sse")
    return None
