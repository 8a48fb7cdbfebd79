"""Builders for azure-core errors as the ARM SDK raises them."""

from __future__ import annotations

from azure.core.exceptions import HttpResponseError, ODataV4Format


def arm_error(
    status_code: int | None,
    code: str | None = None,
    message: str = "Simulated failure",
    *,
    error_class: type[HttpResponseError] = HttpResponseError,
) -> HttpResponseError:
    """Build an HttpResponseError (or subclass) with an ARM error body.

    Args:
        status_code: HTTP status of the simulated response.
        code: ARM error code, e.g. "AuthorizationFailed". None leaves no body.
        message: Error message from the service.
        error_class: Concrete azure-core exception class to raise.
    """
    error = error_class(message=message)
    error.status_code = status_code
    if code is not None:
        error.error = ODataV4Format({"code": code, "message": message})
    return error


def tag_write_denied(scope: str = "/subscriptions/sub/resourceGroups/rg") -> HttpResponseError:
    """AuthorizationFailed for the tags write action."""
    return arm_error(
        403,
        "AuthorizationFailed",
        "The client 'uami-provisioner' does not have authorization to perform action "
        f"'Microsoft.Resources/tags/write' over scope '{scope}'.",
    )


def resource_write_denied(scope: str = "/subscriptions/sub/resourceGroups/rg") -> HttpResponseError:
    """AuthorizationFailed for a resource write action."""
    return arm_error(
        403,
        "AuthorizationFailed",
        "The client 'uami-provisioner' does not have authorization to perform action "
        f"'Microsoft.ManagedIdentity/userAssignedIdentities/write' over scope '{scope}'.",
    )
