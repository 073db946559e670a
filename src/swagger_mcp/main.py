"""CLI entry point for swagger-mcp."""

from __future__ import annotations

import asyncio
import sys
import traceback
from typing import Any, Dict, Optional

import click
import uvicorn

from .compiler import ToolCompiler, write_manifest
from .config import Settings
from .errors import SwaggerMCPError
from .executors import RestExecutor
from .loader import SpecLoader
from .logging import configure_logging
from .models import CompileResult
from .security import validate_port
from .server import build_server


async def _compile(settings: Settings) -> CompileResult:
    loader = SpecLoader(
        settings.security_config(),
        timeout_seconds=settings.fetch_timeout_seconds,
        cache_seconds=settings.spec_cache_seconds,
    )
    spec = await loader.load(settings.swagger_source or "")
    click.echo(f"Loaded Swagger: {spec['info']['title']}")

    executor = RestExecutor(
        timeout_seconds=settings.request_timeout_seconds,
        max_response_bytes=settings.max_response_bytes,
        max_retries=settings.max_retries,
    )
    compiler = ToolCompiler(executor=executor, max_concurrency=settings.max_concurrency)
    return compiler.compile(
        spec,
        base_url=settings.base_url,
        port=settings.port,
        source=settings.swagger_source,
    )


async def _run(settings: Settings) -> None:
    result = await _compile(settings)

    manifest_path = write_manifest(result.manifest, settings.manifest_path)
    click.echo(f"Generated {manifest_path} with {len(result.tools)} tools")
    for failure in result.failures:
        click.echo(f"Skipped {failure}", err=True)

    if settings.manifest_only:
        click.echo("Manifest-only mode enabled. MCP server not started.")
        return

    mcp, app = build_server(settings, result.manifest, result.tools)
    if app is None:
        await mcp.run_stdio_async()
        return

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=settings.shutdown_grace_seconds,
    )
    server = uvicorn.Server(config)
    await server.serve()


@click.command()
@click.option(
    "--swagger",
    "swagger_source",
    help="Path or URL to Swagger/OpenAPI file (or SWAGGER_MCP_SWAGGER_SOURCE).",
)
@click.option(
    "--manifest-only",
    is_flag=True,
    default=None,
    help="Generate the MCP manifest without starting the server.",
)
@click.option("--manifest-path", type=click.Path(dir_okay=False), help="Where to write the manifest.")
@click.option("--port", type=int, help="Port number for the MCP server.")
@click.option("--host", help="Interface to bind the MCP server to.")
@click.option(
    "--transport",
    type=click.Choice(["streamable-http", "http", "sse", "stdio"], case_sensitive=False),
    help="MCP transport.",
)
@click.option("--base-url", help="Override the API base URL declared by the spec.")
@click.option("--allow-http", is_flag=True, default=None, help="Allow HTTP spec URLs (insecure).")
@click.option(
    "--allowed-hosts",
    help="Comma-separated hostnames allowed for remote specs (supports *.example.com).",
)
@click.option(
    "--base-directory",
    type=click.Path(file_okay=False),
    help="Restrict local spec files to this directory.",
)
@click.option(
    "--allow-private-ips",
    is_flag=True,
    default=None,
    help="Allow private/internal addresses for remote specs (enables SSRF).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level.",
)
@click.option("--debug", is_flag=True, help="Print the full error chain on failure.")
def cli(debug: bool, **options: Optional[Any]) -> None:
    """Convert a Swagger/OpenAPI spec into MCP tools and serve them."""
    overrides: Dict[str, Any] = {key: value for key, value in options.items() if value is not None}

    try:
        settings = Settings(**overrides)
        if not settings.swagger_source:
            raise click.UsageError("Missing option '--swagger' (or SWAGGER_MCP_SWAGGER_SOURCE).")
        configure_logging(settings.log_level)
        validate_port(settings.port)
        if settings.allow_http:
            click.echo("Warning: HTTP URLs are allowed. This is insecure for production use.", err=True)
        if settings.allow_private_ips:
            click.echo("Warning: Private IP access is enabled. This may enable SSRF attacks.", err=True)
        asyncio.run(_run(settings))
    except (SwaggerMCPError, ValueError, OSError) as exc:
        click.echo(f"Error: {exc}", err=True)
        if debug:
            traceback.print_exc(file=sys.stderr)
        sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
