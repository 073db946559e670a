"""Execution layer that turns validated tool input into REST calls."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set
from urllib.parse import quote

import httpx

from .errors import NetworkError, RequestBuildError, UpstreamHTTPError
from .loader import ResponseTooLarge, read_limited
from .logging import redact_url
from .models import MUTATING_METHODS, Operation, RequestConfig
from .schema import BODY_PROPERTY, extract_parameters


logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = ("GET", "HEAD", "OPTIONS")
_MAX_ERROR_TEXT = 2000


def _header_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def build_request_config(
    arguments: Dict[str, Any],
    operation: Operation,
    method: str,
    route: str,
    base_url: str,
) -> RequestConfig:
    bucket = extract_parameters(operation)
    used_keys: Set[str] = set()

    path = route
    for name in bucket.path:
        token = f"{{{name}}}"
        if token not in path:
            continue
        if arguments.get(name) is None:
            raise RequestBuildError(f"Missing value for path parameter '{name}'")
        path = path.replace(token, quote(_header_value(arguments[name]), safe=""))
        used_keys.add(name)
    url = base_url.rstrip("/") + path if base_url else path

    params: Dict[str, Any] = {}
    for name in bucket.query:
        if name in arguments:
            params[name] = arguments[name]
            used_keys.add(name)

    headers: Dict[str, str] = {}
    for name in bucket.header:
        if name in arguments:
            headers[name] = _header_value(arguments[name])
            used_keys.add(name)

    cookies = []
    for name in bucket.cookie:
        if name in arguments:
            cookies.append(f"{name}={quote(_header_value(arguments[name]), safe='')}")
            used_keys.add(name)
    if cookies:
        headers["Cookie"] = "; ".join(cookies)

    remaining = {
        key: value
        for key, value in arguments.items()
        if key not in used_keys and key not in bucket.path
    }

    method = method.lower()
    json_body: Any = None
    has_body = False
    if method in MUTATING_METHODS:
        if BODY_PROPERTY in remaining:
            json_body = remaining[BODY_PROPERTY]
            has_body = True
        elif remaining or bucket.body is not None:
            json_body = remaining
            has_body = True
        if has_body:
            headers.setdefault("Content-Type", "application/json")
    else:
        for key, value in remaining.items():
            if key != BODY_PROPERTY:
                params[key] = value

    return RequestConfig(
        method=method.upper(),
        url=url,
        params=params,
        headers=headers,
        json_body=json_body,
        has_body=has_body,
    )


def _error_message(response: httpx.Response, body: bytes) -> str:
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if value:
                return value if isinstance(value, str) else json.dumps(value)
    return text[:_MAX_ERROR_TEXT] or response.reason_phrase or "Request failed"


def _decode_body(body: bytes) -> Any:
    if not body:
        return {"status": "ok"}
    text = body.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


class RestExecutor:
    def __init__(
        self,
        timeout_seconds: float = 30,
        max_response_bytes: int = 10 * 1024 * 1024,
        max_retries: int = 0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_response_bytes = max_response_bytes
        self.max_retries = max_retries
        self._transport = transport

    async def execute(self, request: RequestConfig) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._send(request)
            except NetworkError as exc:
                if request.method not in IDEMPOTENT_METHODS or attempt > self.max_retries:
                    raise
                backoff = min(2 ** attempt, 6)
                logger.warning(
                    "REST call failed (attempt %s/%s). Retrying in %ss. %s %s: %s",
                    attempt,
                    self.max_retries,
                    backoff,
                    request.method,
                    redact_url(request.url),
                    exc,
                )
                await asyncio.sleep(backoff)

    async def _send(self, request: RequestConfig) -> Any:
        if not request.url.lower().startswith(("http://", "https://")):
            raise RequestBuildError(
                f"Could not build request to {request.url}: no absolute base URL configured"
            )

        kwargs: Dict[str, Any] = {"params": request.params, "headers": request.headers}
        if request.has_body:
            kwargs["content"] = json.dumps(request.json_body)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                async with client.stream(request.method, request.url, **kwargs) as response:
                    body = await read_limited(response, self.max_response_bytes)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"No response from {request.url}: request timed out") from exc
        except ResponseTooLarge as exc:
            raise NetworkError(f"Response from {request.url} rejected: {exc}") from exc
        except (httpx.UnsupportedProtocol, httpx.InvalidURL, httpx.LocalProtocolError) as exc:
            raise RequestBuildError(f"Could not build request to {request.url}: {exc}") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"No response from {request.url}: {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise RequestBuildError(f"Could not build request to {request.url}: {exc}") from exc

        if response.is_error:
            raise UpstreamHTTPError(response.status_code, _error_message(response, body))

        return _decode_body(body)
