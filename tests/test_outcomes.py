"""Tests for the outcome vocabulary."""

from __future__ import annotations

import json

import pytest

from provisioner.outcomes import (
    ContinuationError,
    ContinuationState,
    IdentityToken,
    OperationStatus,
    OutcomeCategory,
    Phase,
    ProgressEvent,
    Verb,
)


class TestOutcomeCategory:
    """Tests for category retry hints."""

    @pytest.mark.parametrize(
        "category",
        [OutcomeCategory.THROTTLED, OutcomeCategory.INTERNAL_ERROR, OutcomeCategory.NETWORK_FAILURE],
    )
    def test_retryable(self, category: OutcomeCategory) -> None:
        assert category.retryable is True

    @pytest.mark.parametrize(
        "category",
        [
            OutcomeCategory.ALREADY_EXISTS,
            OutcomeCategory.NOT_FOUND,
            OutcomeCategory.ACCESS_DENIED,
            OutcomeCategory.TAG_PERMISSION_DENIED,
            OutcomeCategory.NOT_UPDATABLE,
            OutcomeCategory.NOT_STABILIZED,
            OutcomeCategory.UNKNOWN,
        ],
    )
    def test_not_retryable(self, category: OutcomeCategory) -> None:
        assert category.retryable is False

    def test_verb_mutating(self) -> None:
        assert {verb for verb in Verb if verb.mutating} == {Verb.CREATE, Verb.UPDATE, Verb.DELETE}


class TestContinuationState:
    """Tests for continuation serialization."""

    def test_json_round_trip(self) -> None:
        state = ContinuationState(
            verb=Verb.UPDATE,
            phase=Phase.STABILIZING,
            operation_token=None,
            identity=IdentityToken(id="p-1", version="h1"),
            remaining_timeout_seconds=25,
        )

        restored = ContinuationState.from_dict(json.loads(json.dumps(state.to_dict())))

        assert restored == state

    def test_defaults(self) -> None:
        state = ContinuationState.from_dict({"verb": "create", "operationToken": "op-1"})

        assert state.phase == Phase.INVOKING
        assert state.remaining_timeout_seconds == 0
        assert state.identity is None

    @pytest.mark.parametrize(
        "payload",
        [
            ["create"],
            {},
            {"verb": "upsert"},
            {"verb": "create", "phase": "waiting"},
            {"verb": "create", "remainingTimeoutSeconds": "10"},
            {"verb": "create", "remainingTimeoutSeconds": True},
            {"verb": "create", "operationToken": 7},
            {"verb": "create", "identity": {"version": "h"}},
            {"verb": "create", "identity": "p-1"},
        ],
    )
    def test_malformed(self, payload: object) -> None:
        with pytest.raises(ContinuationError):
            ContinuationState.from_dict(payload)


class TestProgressEvent:
    """Tests for event construction and rendering."""

    def test_success(self) -> None:
        event = ProgressEvent.success({"id": "/x"}, warnings=["tags skipped"])

        assert event.succeeded
        assert event.to_dict() == {
            "status": "SUCCESS",
            "resourceModel": {"id": "/x"},
            "warnings": ["tags skipped"],
        }

    def test_failed(self) -> None:
        event = ProgressEvent.failed(OutcomeCategory.THROTTLED, "slow down")

        assert event.status == OperationStatus.FAILED
        assert event.to_dict() == {
            "status": "FAILED",
            "errorCode": "Throttling",
            "retryable": True,
            "message": "slow down",
        }

    def test_in_progress(self) -> None:
        continuation = ContinuationState(verb=Verb.CREATE, operation_token="op-1", remaining_timeout_seconds=10)

        event = ProgressEvent.in_progress(continuation, model={"id": "/x"}, callback_delay_seconds=5)

        data = event.to_dict()
        assert data["status"] == "IN_PROGRESS"
        assert data["callbackDelaySeconds"] == 5
        assert data["callbackContext"] == {
            "verb": "create",
            "phase": "invoking",
            "operationToken": "op-1",
            "remainingTimeoutSeconds": 10,
        }

    def test_list_page(self) -> None:
        event = ProgressEvent.success(None, models=[{"id": "/a"}], next_token="2")

        assert event.to_dict() == {
            "status": "SUCCESS",
            "resourceModels": [{"id": "/a"}],
            "nextToken": "2",
        }
