"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for remote_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from provisioner.config import EngineConfig  # noqa: E402

IDENTITY_ID = (
    "/subscriptions/12345678-1234-1234-1234-123456789012/resourceGroups/rg-platform"
    "/providers/Microsoft.ManagedIdentity/userAssignedIdentities/uami-app"
)


@pytest.fixture
def engine_config() -> EngineConfig:
    """Short callback delay and budget so stabilization tests stay readable."""
    return EngineConfig(callback_delay_seconds=5, stabilization_timeout_seconds=30)


@pytest.fixture
def identity_model() -> dict:
    """Desired model of a user-assigned identity."""
    return {
        "id": IDENTITY_ID,
        "type": "Microsoft.ManagedIdentity/userAssignedIdentities",
        "location": "westeurope",
        "properties": {},
        "tags": {"owner": "platform", "env": "prod"},
    }
