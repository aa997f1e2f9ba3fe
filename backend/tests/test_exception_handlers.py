"""
Tests for domain exception to HTTP status mapping.
"""
import pytest

from deployer.core.exception_handlers import status_code_for
from deployer.core.exceptions import (
    ChallengeNotFoundError,
    CommandTimeoutError,
    DeploymentInProgressError,
    DomainException,
    InsufficientPermissionsError,
    InvalidPortError,
    PortBindError,
    PortConflictError,
)


class TestStatusCodeFor:
    """Tests for status_code_for."""

    @pytest.mark.parametrize(
        "exc, expected",
        [
            (ChallengeNotFoundError("abc"), 404),
            (PortConflictError(8080, [8081]), 409),
            (DeploymentInProgressError("abc"), 409),
            (InvalidPortError("Port", "x"), 400),
            (InsufficientPermissionsError("admin", "stop"), 403),
            (CommandTimeoutError("Cloning repository", 120), 500),
            (PortBindError("Running container", 125, "port is already allocated"), 500),
            (DomainException("uncategorized"), 500),
        ],
    )
    def test_category_status(self, exc, expected):
        assert status_code_for(exc) == expected
