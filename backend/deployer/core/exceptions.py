"""
Custom exception hierarchy for domain-specific errors.

This module provides a clean separation between domain errors and HTTP concerns.
Services raise domain exceptions, and the exception handlers in main.py map them to HTTP responses.
"""
from typing import Any, Dict, List, Optional


class DomainException(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# Not Found Errors (404)
# =============================================================================

class NotFoundError(DomainException):
    """Base class for resource not found errors."""
    pass


class ChallengeNotFoundError(NotFoundError):
    """Challenge does not exist."""

    def __init__(self, identifier: str):
        super().__init__(f"Challenge not found: {identifier}", {"identifier": identifier})


class NoActiveContainerError(NotFoundError):
    """Challenge has no running container to inspect."""

    def __init__(self, identifier: str):
        super().__init__(f"No active container found for challenge {identifier}", {"identifier": identifier})


# =============================================================================
# Conflict Errors (409)
# =============================================================================

class ConflictError(DomainException):
    """Base class for requests that collide with existing state."""
    pass


class PortConflictError(ConflictError):
    """Requested host port is already bound."""

    def __init__(self, port: int, available_ports: List[int]):
        super().__init__(
            f"Port {port} is already in use",
            {"port": port, "available_ports": list(available_ports)},
        )
        self.port = port
        self.available_ports = list(available_ports)


class DirectoryExistsError(ConflictError):
    """Working directory of a previous deployment is still present."""

    def __init__(self, path: str, hint: str):
        super().__init__(
            "Challenge directory already exists.",
            {"path": path, "hint": hint},
        )


class DeploymentInProgressError(ConflictError):
    """Another deploy/stop for the same challenge is still running."""

    def __init__(self, challenge_id: str):
        super().__init__(
            f"A deployment operation is already in progress for challenge {challenge_id}",
            {"challenge_id": challenge_id},
        )


# =============================================================================
# Validation Errors (400/422)
# =============================================================================

class ValidationError(DomainException):
    """Base class for validation errors."""
    pass


class ChallengeNotDeployableError(ValidationError):
    """Challenge is not marked as deployable."""

    def __init__(self, challenge_id: str):
        super().__init__(
            "Challenge is not marked as deployable",
            {"challenge_id": challenge_id},
        )


class InvalidGitHubUrlError(ValidationError):
    """Repository URL is not a github.com owner/repo URL."""

    def __init__(self, url: Optional[str]):
        super().__init__(
            "Valid GitHub URL is required for deployment",
            {"github_url": url, "reason": "Expected format: https://github.com/owner/repo"},
        )


class InvalidPortError(ValidationError):
    """Port is not a number in [1, 65535]."""

    def __init__(self, name: str, value: Any):
        super().__init__(
            f"{name} must be a valid number between 1 and 65535. Received: {value}",
            {"field": name, "value": value},
        )


class InvalidPortRangeError(ValidationError):
    """Port range bounds are invalid."""

    def __init__(self, start: int, end: int):
        super().__init__(
            f"Invalid port range {start}-{end}",
            {"start": start, "end": end},
        )


class DeploymentNotActiveError(ValidationError):
    """Deployment is not in active state."""

    def __init__(self, challenge_id: str, current_status: str):
        super().__init__(
            "Challenge is not currently deployed",
            {"challenge_id": challenge_id, "current_status": current_status},
        )


class InvalidTransitionError(ValidationError):
    """Deployment status change not permitted by the state machine."""

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            f"Cannot move deployment from {current_status} to {target_status}",
            {"current_status": current_status, "target_status": target_status},
        )


# =============================================================================
# Authorization Errors (403)
# =============================================================================

class AuthorizationError(DomainException):
    """Base class for authorization errors."""
    pass


class InsufficientPermissionsError(AuthorizationError):
    """Caller lacks required permissions."""

    def __init__(self, required_role: str, action: str):
        super().__init__(
            f"Insufficient permissions: {required_role} role required for {action}",
            {"required_role": required_role, "action": action}
        )


# =============================================================================
# Operation Errors (500)
# =============================================================================

class OperationError(DomainException):
    """Base class for operation failures."""
    pass


class CommandError(OperationError):
    """External command exited non-zero or could not be started."""

    def __init__(self, label: str, returncode: int, stderr: str):
        reason = stderr.strip() or f"exited with code {returncode}"
        super().__init__(
            f"{label} failed: {reason}",
            {"command": label, "returncode": returncode, "stderr": stderr},
        )
        self.label = label
        self.returncode = returncode
        self.stderr = stderr


class CommandTimeoutError(CommandError):
    """External command exceeded its timeout and was killed."""

    def __init__(self, label: str, timeout: float):
        super().__init__(label, -1, f"Command timed out after {timeout} seconds")
        self.timeout = timeout


class PortBindError(CommandError):
    """Container runtime could not publish the host port."""
    pass


class PortScanError(OperationError):
    """Host port listing tool failed."""

    def __init__(self, reason: str):
        super().__init__(f"Port scan failed: {reason}", {"reason": reason})


class UnsupportedPlatformError(OperationError):
    """Host OS has no known port listing method."""

    def __init__(self, platform: str):
        super().__init__(f"Unsupported platform for port scanning: {platform}", {"platform": platform})


class DeploymentExecutionError(OperationError):
    """Deployment execution failed."""

    def __init__(self, challenge_id: str, reason: str):
        super().__init__(
            f"Deployment failed ({challenge_id}): {reason}",
            {"challenge_id": challenge_id, "reason": reason}
        )
