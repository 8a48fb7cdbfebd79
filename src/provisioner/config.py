"""Configuration management with validation.

Engine behaviour that is not part of a resource kind declaration (callback
pacing, stabilization budget, platform-owned tag prefixes) is loaded from the
environment and validated once, at construction time.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_CALLBACK_DELAY_SECONDS = 15
MIN_CALLBACK_DELAY_SECONDS = 1
MAX_CALLBACK_DELAY_SECONDS = 300

DEFAULT_STABILIZATION_TIMEOUT_SECONDS = 600
MAX_STABILIZATION_TIMEOUT_SECONDS = 12 * 3600

# Tags with these prefixes are written by the platform, never by callers
DEFAULT_PROTECTED_TAG_PREFIXES: tuple[str, ...] = ("hidden-",)

# Limits for desired-state documents
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max desired-state file

VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"


def _get_int(key: str, default: int) -> int:
    value = os.environ.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer: {value}") from e


def _get_bool(key: str, default: bool) -> bool:
    value = os.environ.get(key, "").lower()
    if not value:
        return default
    return value in ("true", "1", "yes")


def _get_list(key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.environ.get(key)
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class EngineConfig:
    """Reconciliation engine configuration.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-operation.
    """

    # Delay the orchestrator should wait before re-invoking an in-progress operation
    callback_delay_seconds: int = DEFAULT_CALLBACK_DELAY_SECONDS

    # Total time an operation may stay in progress before it is failed as not stabilized
    stabilization_timeout_seconds: int = DEFAULT_STABILIZATION_TIMEOUT_SECONDS

    # Observed tags with these prefixes are never removed
    protected_tag_prefixes: tuple[str, ...] = field(
        default_factory=lambda: DEFAULT_PROTECTED_TAG_PREFIXES
    )

    # Reads downgrade tag permission failures to warnings instead of failing
    soft_fail_tag_reads: bool = True

    def __post_init__(self) -> None:
        errors: list[str] = []

        if not (
            MIN_CALLBACK_DELAY_SECONDS <= self.callback_delay_seconds <= MAX_CALLBACK_DELAY_SECONDS
        ):
            errors.append(
                f"CALLBACK_DELAY_SECONDS must be between {MIN_CALLBACK_DELAY_SECONDS} "
                f"and {MAX_CALLBACK_DELAY_SECONDS} seconds"
            )

        if not (0 <= self.stabilization_timeout_seconds <= MAX_STABILIZATION_TIMEOUT_SECONDS):
            errors.append(
                f"STABILIZATION_TIMEOUT_SECONDS must be between 0 "
                f"and {MAX_STABILIZATION_TIMEOUT_SECONDS} seconds"
            )

        object.__setattr__(self, "protected_tag_prefixes", tuple(self.protected_tag_prefixes))
        if any(not prefix for prefix in self.protected_tag_prefixes):
            # An empty prefix would protect every tag and silently disable removal
            errors.append("PROTECTED_TAG_PREFIXES must not contain empty prefixes")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load configuration from environment variables.

        Environment Variables:
            CALLBACK_DELAY_SECONDS: Re-invocation delay for in-progress operations (default: 15)
            STABILIZATION_TIMEOUT_SECONDS: Budget for asynchronous completion (default: 600)
            PROTECTED_TAG_PREFIXES: Comma-separated platform tag prefixes (default: hidden-)
            SOFT_FAIL_TAG_READS: If "true", tag read permission failures are warnings (default: true)
        """
        return cls(
            callback_delay_seconds=_get_int("CALLBACK_DELAY_SECONDS", DEFAULT_CALLBACK_DELAY_SECONDS),
            stabilization_timeout_seconds=_get_int(
                "STABILIZATION_TIMEOUT_SECONDS", DEFAULT_STABILIZATION_TIMEOUT_SECONDS
            ),
            protected_tag_prefixes=_get_list(
                "PROTECTED_TAG_PREFIXES", DEFAULT_PROTECTED_TAG_PREFIXES
            ),
            soft_fail_tag_reads=_get_bool("SOFT_FAIL_TAG_READS", True),
        )


@dataclass(frozen=True)
class ArmSettings:
    """Settings for the Azure Resource Manager client used by the CLI."""

    subscription_id: str
    client_id: str | None = None

    def __post_init__(self) -> None:
        if not self.subscription_id:
            raise ConfigurationError("AZURE_SUBSCRIPTION_ID is required")
        if not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            raise ConfigurationError(
                f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}"
            )

    @classmethod
    def from_env(cls) -> ArmSettings:
        """Load ARM settings from AZURE_SUBSCRIPTION_ID and AZURE_CLIENT_ID."""
        return cls(
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
            client_id=os.environ.get("AZURE_CLIENT_ID") or None,
        )
