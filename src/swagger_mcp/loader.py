"""OpenAPI spec loader and operation parser."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import urljoin

import httpx
import yaml

from .config import SecurityConfig
from .errors import SpecLoadError, SwaggerMCPError
from .logging import redact_url
from .models import HTTP_METHODS, Operation, check_operation_shape
from .schema import resolve_pointer
from .security import validate_file_path, validate_swagger_spec, validate_url


logger = logging.getLogger(__name__)

MAX_SPEC_BYTES = 10 * 1024 * 1024
_YAML_SUFFIXES = (".yaml", ".yml")


class ResponseTooLarge(Exception):
    pass


async def read_limited(response: httpx.Response, max_bytes: int) -> bytes:
    """Read a streamed response body, refusing anything over ``max_bytes``."""
    declared = response.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise ResponseTooLarge(
            f"Response size {declared} bytes exceeds maximum allowed {max_bytes} bytes"
        )

    chunks: List[bytes] = []
    received = 0
    async for chunk in response.aiter_bytes():
        received += len(chunk)
        if received > max_bytes:
            raise ResponseTooLarge(f"Response exceeds maximum allowed {max_bytes} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


def is_remote(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


class SpecLoader:
    def __init__(
        self,
        security: SecurityConfig = SecurityConfig(),
        timeout_seconds: float = 10,
        max_bytes: int = MAX_SPEC_BYTES,
        cache_seconds: int = 0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.security = security
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes
        self.cache_seconds = cache_seconds
        self._transport = transport
        self._cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    async def load(self, source: str) -> Dict[str, Any]:
        try:
            if is_remote(source):
                spec = await self._load_remote(source)
            else:
                spec = self._load_file(source)
            validate_swagger_spec(spec)
        except SpecLoadError:
            raise
        except (SwaggerMCPError, httpx.HTTPError, ResponseTooLarge, OSError, ValueError, yaml.YAMLError) as exc:
            raise SpecLoadError(source, str(exc)) from exc

        logger.info(
            "Loaded spec %r (%s) from %s",
            spec["info"]["title"],
            spec["info"]["version"],
            redact_url(source),
        )
        return spec

    async def _load_remote(self, url: str) -> Any:
        cached = self._cache.get(url)
        if cached and time.time() - cached[0] < self.cache_seconds:
            return cached[1]

        validate_url(url, self.security)

        # Redirects are not followed; a redirect target would bypass the URL checks.
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self._transport, follow_redirects=False
        ) as client:
            async with client.stream("GET", url, headers={"Accept": "application/json"}) as response:
                if not response.is_success:
                    raise SpecLoadError(url, f"HTTP {response.status_code}")
                body = await read_limited(response, self.max_bytes)

        text = body.decode("utf-8")
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            if not url.split("?", 1)[0].lower().endswith(_YAML_SUFFIXES):
                raise
            data = yaml.safe_load(text)

        if self.cache_seconds > 0:
            self._cache[url] = (time.time(), data)
        return data

    def _load_file(self, source: str) -> Any:
        path = validate_file_path(source, self.security)
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() in _YAML_SUFFIXES:
            # safe_load never constructs arbitrary Python objects from tags.
            return yaml.safe_load(text)
        return json.loads(text)


async def load_swagger(
    source: str, security_config: SecurityConfig = SecurityConfig()
) -> Dict[str, Any]:
    return await SpecLoader(security_config).load(source)


def get_base_url(spec: Dict[str, Any], source: Optional[str] = None) -> str:
    servers = spec.get("servers") or []
    if servers and isinstance(servers[0], dict) and servers[0].get("url"):
        url = servers[0]["url"]
        if source and is_remote(source) and not is_remote(url):
            return urljoin(source, url)
        return url

    host = spec.get("host")
    if host:
        schemes = spec.get("schemes") or ["https"]
        return f"{schemes[0]}://{host}{spec.get('basePath') or ''}"

    return ""


def _dereference_parameters(spec: Dict[str, Any], parameters: Any) -> List[Dict[str, Any]]:
    resolved: List[Dict[str, Any]] = []
    for parameter in parameters if isinstance(parameters, list) else []:
        if isinstance(parameter, dict) and "$ref" in parameter:
            target = resolve_pointer(spec, parameter["$ref"])
            if not isinstance(target, dict):
                logger.warning("Could not resolve parameter $ref: %s", parameter["$ref"])
                continue
            parameter = target
        if isinstance(parameter, dict):
            resolved.append(parameter)
    return resolved


def iter_operation_entries(
    spec: Dict[str, Any],
) -> Iterator[Tuple[str, str, Any, List[Dict[str, Any]]]]:
    """Yield ``(method, path, raw operation, shared parameters)`` for every HTTP verb."""
    for path, methods in (spec.get("paths") or {}).items():
        if not isinstance(methods, dict):
            logger.warning("Skipping malformed path item: %s", path)
            continue
        shared_parameters = _dereference_parameters(spec, methods.get("parameters"))
        for method, operation in methods.items():
            if method.lower() in HTTP_METHODS:
                yield method.lower(), path, operation, shared_parameters


def build_operation(
    spec: Dict[str, Any],
    method: str,
    path: str,
    operation: Any,
    shared_parameters: Optional[List[Dict[str, Any]]] = None,
) -> Operation:
    """Dereference an operation's parameters and body, then build the ``Operation``.

    Raises ``RegistrationError`` when the operation is not shaped like an OpenAPI operation.
    """
    check_operation_shape(operation)
    operation = {
        **operation,
        "parameters": _dereference_parameters(spec, operation.get("parameters")),
    }
    request_body = operation.get("requestBody")
    if isinstance(request_body, dict) and "$ref" in request_body:
        target = resolve_pointer(spec, request_body["$ref"])
        operation["requestBody"] = target if isinstance(target, dict) else None
    return Operation.from_spec(method, path, operation, shared_parameters)
