"""
Health Check Endpoints.

This module provides basic system status endpoints (health, version)
used for monitoring and deployment verification.
"""

from importlib.metadata import PackageNotFoundError, version as package_version

from fastapi import APIRouter

router = APIRouter()


def _version() -> str:
    try:
        return package_version("ai-office")
    except PackageNotFoundError:
        return "0.0.0"


@router.get(
    "/health",
    summary="Health Check",
    description="Check the operational status of the API server.",
    response_description="Status object.",
)
async def health_check():
    """Return a simple status indicator confirming the server is reachable."""
    return {"status": "ok"}


@router.get(
    "/version",
    summary="Get Version",
    description="Retrieve version information for the API server.",
    response_description="Version object.",
)
async def version():
    return {"version": _version(), "schema_version": "v1"}
