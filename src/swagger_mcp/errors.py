"""Error taxonomy for loading, compiling and invoking tools."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class SwaggerMCPError(Exception):
    pass


class SpecLoadError(SwaggerMCPError):
    """Fetching, parsing or validating a spec failed."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Failed to load Swagger spec from {source}: {reason}")
        self.source = source
        self.reason = reason


class SecurityViolation(SwaggerMCPError):
    pass


class InvalidURL(SecurityViolation):
    pass


class SchemeNotAllowed(SecurityViolation):
    pass


class HostNotAllowed(SecurityViolation):
    pass


class PrivateIPBlocked(SecurityViolation):
    pass


class ExtensionNotAllowed(SecurityViolation):
    pass


class FileNotFound(SecurityViolation):
    pass


class NotAFile(SecurityViolation):
    pass


class FileTooLarge(SecurityViolation):
    pass


class PathTraversal(SecurityViolation):
    pass


class InvalidSpec(SecurityViolation):
    pass


class EmptyName(SecurityViolation):
    pass


class InvalidPort(SecurityViolation):
    pass


class SchemaCompileError(SwaggerMCPError):
    pass


class RegistrationError(SwaggerMCPError):
    pass


class NoToolsRegistered(SwaggerMCPError):
    def __init__(self, failures: Optional[List[Any]] = None) -> None:
        failures = failures or []
        super().__init__(
            f"No tools could be registered from the spec ({len(failures)} operation(s) failed)"
        )
        self.failures = failures


class ToolInvocationError(SwaggerMCPError):
    """Base for failures contained within a single tool invocation."""

    kind = "invocation_error"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": str(self), "type": self.kind}


class ValidationFailure(ToolInvocationError):
    kind = "validation_error"

    def __init__(self, messages: List[str]) -> None:
        super().__init__("Invalid input: " + "; ".join(messages))
        self.messages = messages

    def to_dict(self) -> Dict[str, Any]:
        return {"error": str(self), "type": self.kind, "details": list(self.messages)}


class UpstreamHTTPError(ToolInvocationError):
    kind = "http_error"

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "type": self.kind, "status": self.status_code}


class NetworkError(ToolInvocationError):
    kind = "network_error"


class RequestBuildError(ToolInvocationError):
    kind = "request_error"
