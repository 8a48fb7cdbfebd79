"""In-memory control planes for engine tests.

Remote failures are raised as the same azure-core exceptions the ARM SDK
raises, so classification runs exactly as it does against Azure.

Usage:
    from remote_mock import FakeResourceClient, tag_write_denied

    client = FakeResourceClient(pending_rounds=2)
    client.inject_error("add_tags", tag_write_denied())
    engine = ReconciliationEngine(GENERIC_ARM_RESOURCE, client)
"""

from .control_plane import FakePolicyClient, FakeResourceClient
from .errors import arm_error, resource_write_denied, tag_write_denied

__all__ = [
    "FakePolicyClient",
    "FakeResourceClient",
    "arm_error",
    "resource_write_denied",
    "tag_write_denied",
]
