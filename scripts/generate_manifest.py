"""Compile a Swagger/OpenAPI spec programmatically and write its MCP manifest."""

from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from swagger_mcp.compiler import compile_spec, write_manifest
from swagger_mcp.config import SecurityConfig
from swagger_mcp.loader import load_swagger
from swagger_mcp.logging import configure_logging


async def _generate(source: str, output: str, port: int, allowed_hosts: List[str]) -> None:
    security = SecurityConfig(allowed_hosts=tuple(allowed_hosts))
    spec = await load_swagger(source, security)
    print(f"Loaded API: {spec['info']['title']}")

    result = compile_spec(spec, port=port)
    for tool in result.tools:
        print(f"  {tool.name}")
    for failure in result.failures:
        print(f"  skipped {failure}")

    target = write_manifest(result.manifest, output)
    print(f"Wrote {target} with {len(result.tools)} tools")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("source", help="Local path or https URL of the spec")
    parser.add_argument("--output", default="mcp.json")
    parser.add_argument("--port", type=int, default=4000)
    parser.add_argument(
        "--allowed-host",
        action="append",
        default=[],
        help="Restrict remote specs to these hosts (repeatable)",
    )
    args = parser.parse_args(argv)

    configure_logging("WARNING")
    asyncio.run(_generate(args.source, args.output, args.port, args.allowed_host))


if __name__ == "__main__":
    main()
