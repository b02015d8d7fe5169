"""Error taxonomy shared by the job subsystem and the HTTP layer."""

from __future__ import annotations


class XcbridgeError(Exception):
    status_code = 500
    error = "internal_error"
    prefix = ""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.prefix}{self.message}"


class InvalidRequest(XcbridgeError):
    status_code = 400
    error = "invalid_request"
    prefix = "Invalid request: "


class Unauthorized(XcbridgeError):
    status_code = 401
    error = "unauthorized"

    def __str__(self) -> str:
        return "Unauthorized"


class PathNotAllowed(XcbridgeError):
    status_code = 403
    error = "path_not_allowed"
    prefix = "Path not allowed: "


class JobNotFound(XcbridgeError):
    status_code = 404
    error = "build_not_found"
    prefix = "Build not found: "


class ToolStartError(XcbridgeError):
    """The external tool could not be invoked at all."""

    status_code = 500
    error = "command_failed"
    prefix = "Command execution failed: "


class InternalFailure(XcbridgeError):
    status_code = 500
    error = "internal_error"
    prefix = "Internal error: "


class ToolNotFound(XcbridgeError):
    status_code = 503
    error = "xcode_not_found"

    def __str__(self) -> str:
        return "Xcode not found. Please install Xcode and run xcode-select."
