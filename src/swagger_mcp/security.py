"""Security gate for spec sources, generated names and ports.

Everything here fails closed: a check either returns the validated value or
raises a ``SecurityViolation`` subclass describing what was rejected.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Mapping, Union
from urllib.parse import SplitResult, urlsplit

from .config import SecurityConfig
from .errors import (
    EmptyName,
    ExtensionNotAllowed,
    FileNotFound,
    FileTooLarge,
    HostNotAllowed,
    InvalidPort,
    InvalidSpec,
    InvalidURL,
    NotAFile,
    PathTraversal,
    PrivateIPBlocked,
    SchemeNotAllowed,
)


logger = logging.getLogger(__name__)

MAX_TOOL_NAME_LENGTH = 200

# Hostname patterns only; names that resolve to private addresses are not caught.
_PRIVATE_HOST_PATTERNS = [
    re.compile(r"^127\."),
    re.compile(r"^10\."),
    re.compile(r"^172\.(1[6-9]|2\d|3[01])\."),
    re.compile(r"^192\.168\."),
    re.compile(r"^169\.254\."),
    re.compile(r"^::1$"),
    re.compile(r"^fe80:"),
    re.compile(r"^fc00:"),
    re.compile(r"^fd00:"),
]

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def is_private_host(hostname: str) -> bool:
    host = hostname.strip("[]").lower()
    return any(pattern.search(host) for pattern in _PRIVATE_HOST_PATTERNS)


def _host_allowed(hostname: str, allowed_hosts: tuple[str, ...]) -> bool:
    for entry in allowed_hosts:
        entry = entry.lower()
        if entry.startswith("*."):
            domain = entry[2:]
            if hostname == domain or hostname.endswith("." + domain):
                return True
        elif hostname == entry:
            return True
    return False


def validate_url(url: str, config: SecurityConfig = SecurityConfig()) -> SplitResult:
    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
        # Accessing .port validates the port component.
        parsed.port
    except ValueError as exc:
        raise InvalidURL(f"Invalid URL: {exc}") from exc

    if not parsed.scheme or not hostname:
        raise InvalidURL(f"Invalid URL: {url!r}")

    scheme = parsed.scheme.lower()
    if scheme not in config.allowed_schemes:
        raise SchemeNotAllowed(
            f"URL scheme '{scheme}' not allowed. "
            f"Allowed schemes: {', '.join(config.allowed_schemes)}"
        )

    if config.allowed_hosts and not _host_allowed(hostname, config.allowed_hosts):
        raise HostNotAllowed(
            f"Host '{hostname}' not in allowlist. "
            f"Allowed hosts: {', '.join(config.allowed_hosts)}"
        )

    if config.block_private_ips and is_private_host(hostname):
        raise PrivateIPBlocked(
            f"Access to private/internal IP addresses is blocked for security: {hostname}"
        )

    return parsed


def validate_file_path(
    path: Union[str, Path], config: SecurityConfig = SecurityConfig()
) -> Path:
    resolved = Path(path).expanduser().resolve()

    extension = resolved.suffix.lower()
    if extension not in config.allowed_extensions:
        raise ExtensionNotAllowed(
            f"File extension '{extension}' not allowed. "
            f"Allowed extensions: {', '.join(config.allowed_extensions)}"
        )

    if not resolved.exists():
        raise FileNotFound(f"File not found: {resolved}")
    if not resolved.is_file():
        raise NotAFile(f"Path is not a file: {resolved}")

    size = resolved.stat().st_size
    if size > config.max_file_size:
        raise FileTooLarge(
            f"File size {size} bytes exceeds maximum allowed {config.max_file_size} bytes"
        )

    if config.base_directory:
        base = Path(config.base_directory).expanduser().resolve()
        if resolved != base and base not in resolved.parents:
            raise PathTraversal(
                f"File path '{resolved}' is outside allowed base directory '{base}'"
            )

    return resolved


def validate_swagger_spec(spec: Any) -> bool:
    if not isinstance(spec, Mapping):
        raise InvalidSpec("Swagger spec must be an object")

    if not (spec.get("openapi") or spec.get("swagger")):
        raise InvalidSpec("Missing OpenAPI/Swagger version field (openapi or swagger)")

    info = spec.get("info")
    if not isinstance(info, Mapping):
        raise InvalidSpec("Missing required field: info")
    if not info.get("title"):
        raise InvalidSpec("Missing required field: info.title")
    if not info.get("version"):
        raise InvalidSpec("Missing required field: info.version")

    paths = spec.get("paths")
    if not isinstance(paths, Mapping):
        raise InvalidSpec("Missing or invalid required field: paths (must be an object)")
    if not paths:
        raise InvalidSpec("Swagger spec must contain at least one entry in paths")

    if spec.get("swagger") and not spec.get("openapi"):
        logger.warning(
            "Swagger 2.0 detected. Consider upgrading to OpenAPI 3.x for better support."
        )

    return True


def sanitize_tool_name(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise EmptyName("Tool name must be a non-empty string")

    sanitized = _CONTROL_CHARS.sub("", name).strip()[:MAX_TOOL_NAME_LENGTH]
    if not sanitized:
        raise EmptyName("Tool name becomes empty after sanitization")
    return sanitized


def validate_port(port: Any) -> int:
    if isinstance(port, bool):
        raise InvalidPort(f"Port must be an integer, got: {port!r}")
    if isinstance(port, int):
        value = port
    else:
        try:
            value = int(str(port).strip())
        except ValueError as exc:
            raise InvalidPort(f"Port must be an integer, got: {port!r}") from exc

    if value < 1 or value > 65535:
        raise InvalidPort(f"Port must be between 1 and 65535, got: {value}")

    if value < 1024:
        logger.warning("Port %s is a privileged port (requires elevated permissions)", value)

    return value
