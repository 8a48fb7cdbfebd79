"""Resumable reconciliation of one resource against the control plane.

Each call to ReconciliationEngine.reconcile() is one stateless invocation of a
logical operation. A first invocation runs the whole chain:

    Start -> ValidatingImmutability (update only)
          -> ResolvingIdentity (content-addressed kinds without a token)
          -> Invoking
          -> ReconcilingTags (taggable kinds, create/update)
          -> Done

and ends in exactly one of Success, Failed or InProgress. An InProgress
result carries a ContinuationState; the orchestrator hands it back on the
next invocation, which re-enters at Invoking (or at stabilization) and skips
the immutability and identity steps. Those only guard the first invocation of
a logical operation.

CONTRACT:
- No internal retries, no backoff, no caches. Retryable categories are
  reported and the orchestrator decides.
- Observed tags are read in the same invocation that mutates them.
- A stale version token rejected by the remote system is reported as
  InvalidRequest; the engine never re-reads and retries with a fresh token.
- Remote errors never escape reconcile(); they are classified.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from . import immutability
from . import tags as tag_reconciler
from .classifier import Classification, classify
from .config import EngineConfig
from .identity import IdempotencyResolver
from .kinds import ResourceKind
from .outcomes import (
    ContinuationError,
    ContinuationState,
    IdentityToken,
    OutcomeCategory,
    Phase,
    ProgressEvent,
    ResourceModel,
    Verb,
)
from .remote import RemoteClient, RemoteResult, ResourceStatus, status_of


OPERATION_NAMES: dict[Verb, str] = {
    Verb.CREATE: "CreateResource",
    Verb.READ: "ReadResource",
    Verb.UPDATE: "UpdateResource",
    Verb.DELETE: "DeleteResource",
    Verb.LIST: "ListResources",
}


class ReconciliationEngine:
    """Drives create/read/update/delete/list for one resource kind.

    The client and logger are injected; the engine holds no state between
    invocations.
    """

    def __init__(
        self,
        kind: ResourceKind,
        client: RemoteClient,
        *,
        config: EngineConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Bind the engine to a resource kind and its client.

        Args:
            kind: Resource kind declaration.
            client: Remote client bound to the same kind.
            config: Engine configuration; defaults are used when omitted.
            logger: Diagnostic sink; the module logger when omitted.

        Raises:
            ResourceKindError: If the kind is content-addressed and the client
                cannot list entries.
        """
        self._kind = kind
        self._client = client
        self._config = config or EngineConfig()
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._resolver = (
            IdempotencyResolver(kind, client) if kind.content_addressed is not None else None  # type: ignore[arg-type]
        )

    @property
    def kind(self) -> ResourceKind:
        return self._kind

    @property
    def config(self) -> EngineConfig:
        return self._config

    # =========================================================================
    # Entry point
    # =========================================================================

    def reconcile(
        self,
        verb: Verb | str,
        desired: Mapping[str, Any] | None,
        previous: Mapping[str, Any] | None = None,
        continuation: ContinuationState | Mapping[str, Any] | None = None,
        *,
        next_token: str | None = None,
    ) -> ProgressEvent:
        """Run one invocation of a logical operation.

        Args:
            verb: Operation to perform.
            desired: Desired resource model.
            previous: Last known model (update only); None on create.
            continuation: State returned by a previous InProgress invocation
                of the same operation, or None for a first invocation.
            next_token: Pagination token (list only).

        Returns:
            ProgressEvent with status SUCCESS, FAILED or IN_PROGRESS.
        """
        verb = Verb(verb)
        model: ResourceModel = dict(desired or {})
        prior: ResourceModel | None = dict(previous) if previous is not None else None

        self._logger.info(
            "Reconcile invocation",
            extra={
                "kind": self._kind.name,
                "verb": verb.value,
                "resource": self._kind.identifier(model),
                "resumed": continuation is not None,
            },
        )

        if continuation is not None:
            try:
                state = self._load_continuation(verb, continuation)
            except ContinuationError as e:
                self._logger.warning(
                    "Rejected continuation state",
                    extra={"kind": self._kind.name, "verb": verb.value, "error": str(e)},
                )
                return ProgressEvent.failed(OutcomeCategory.INVALID_REQUEST, str(e))
            return self._resume(verb, model, state)

        match verb:
            case Verb.CREATE:
                return self._create(model)
            case Verb.READ:
                return self._read(model)
            case Verb.UPDATE:
                return self._update(model, prior)
            case Verb.DELETE:
                return self._delete(model)
            case Verb.LIST:
                return self._list(model, next_token)

    # =========================================================================
    # First invocations
    # =========================================================================

    def _create(self, desired: ResourceModel) -> ProgressEvent:
        invalid = self._invalid_tags(desired)
        if invalid is not None:
            return invalid

        if self._resolver is not None:
            try:
                existing = self._resolver.resolve(desired)
            except Exception as e:
                return self._failed(e, "ListEntries", desired)
            if existing is not None:
                message = (
                    f"Resource of type '{self._kind.name}' with identifier "
                    f"'{existing.id}' already exists."
                )
                self._logger.info(
                    "Create skipped, equivalent entry exists",
                    extra={"kind": self._kind.name, "entry_id": existing.id},
                )
                return ProgressEvent.failed(OutcomeCategory.ALREADY_EXISTS, message)

        try:
            result = self._client.create(desired)
        except Exception as e:
            return self._failed(e, OPERATION_NAMES[Verb.CREATE], desired)

        return self._after_invoke(
            Verb.CREATE,
            desired,
            result,
            identity=None,
            remaining=self._config.stabilization_timeout_seconds,
            resumed=False,
        )

    def _update(self, desired: ResourceModel, previous: ResourceModel | None) -> ProgressEvent:
        changed = immutability.changed_fields(previous, desired, self._kind.immutable_fields)
        if changed:
            self._logger.warning(
                "Refusing update of create-only fields",
                extra={
                    "kind": self._kind.name,
                    "resource": self._kind.identifier(previous),
                    "fields": changed,
                },
            )
            return ProgressEvent.failed(
                OutcomeCategory.NOT_UPDATABLE,
                f"Resource of type '{self._kind.name}' cannot update create-only "
                f"properties: {', '.join(changed)}",
                model=previous,
            )

        invalid = self._invalid_tags(desired)
        if invalid is not None:
            return invalid

        identity: IdentityToken | None = None
        if self._resolver is not None:
            identity = self._resolver.token_from_model(desired)
            if identity is None:
                try:
                    identity = self._resolver.resolve(desired)
                except Exception as e:
                    return self._failed(e, "ListEntries", desired)
                if identity is None:
                    return ProgressEvent.failed(
                        OutcomeCategory.NOT_FOUND,
                        f"Resource of type '{self._kind.name}' with identifier "
                        f"'{self._kind.identifier(desired) or '<unknown>'}' was not found.",
                    )

        try:
            result = self._client.update(desired, identity)
        except Exception as e:
            return self._failed(e, OPERATION_NAMES[Verb.UPDATE], desired)

        return self._after_invoke(
            Verb.UPDATE,
            desired,
            result,
            identity=identity,
            remaining=self._config.stabilization_timeout_seconds,
            resumed=False,
        )

    def _delete(self, desired: ResourceModel) -> ProgressEvent:
        identity: IdentityToken | None = None
        if self._resolver is not None:
            identity = self._resolver.token_from_model(desired)
            if identity is None:
                try:
                    identity = self._resolver.resolve(desired)
                except Exception as e:
                    return self._failed(e, "ListEntries", desired, verb=Verb.DELETE)
                if identity is None:
                    self._logger.info(
                        "Nothing to delete, no matching entry",
                        extra={"kind": self._kind.name, "resource": self._kind.identifier(desired)},
                    )
                    return ProgressEvent.success(None)

        try:
            result = self._client.delete(desired, identity)
        except Exception as e:
            return self._failed(e, OPERATION_NAMES[Verb.DELETE], desired, verb=Verb.DELETE)

        return self._after_invoke(
            Verb.DELETE,
            desired,
            result,
            identity=identity,
            remaining=self._config.stabilization_timeout_seconds,
            resumed=False,
        )

    def _read(self, desired: ResourceModel) -> ProgressEvent:
        if self._resolver is not None:
            try:
                observed = self._resolver.find_entry(desired)
            except Exception as e:
                return self._failed(e, "ListEntries", desired)
            if observed is None:
                return ProgressEvent.failed(
                    OutcomeCategory.NOT_FOUND,
                    f"Resource of type '{self._kind.name}' with identifier "
                    f"'{self._kind.identifier(desired) or '<unknown>'}' was not found.",
                )
        else:
            try:
                observed = dict(self._client.read(desired))
            except Exception as e:
                return self._failed(e, OPERATION_NAMES[Verb.READ], desired)

        ident = desired.get(self._kind.identifier_field)
        if ident is not None:
            observed.setdefault(self._kind.identifier_field, ident)

        warnings: list[str] = []
        if self._kind.taggable:
            try:
                observed[self._kind.tags_field] = dict(self._client.get_tags(observed))
            except Exception as e:
                classification = self._classify(e, "GetTags", observed)
                soft = classification.category in (
                    OutcomeCategory.TAG_PERMISSION_DENIED,
                    OutcomeCategory.ACCESS_DENIED,
                )
                if not (soft and self._config.soft_fail_tag_reads):
                    return ProgressEvent.failed(classification.category, classification.message)
                warnings.append(classification.message)

        return ProgressEvent.success(observed, warnings=warnings)

    def _list(self, desired: ResourceModel, next_token: str | None) -> ProgressEvent:
        if not self._kind.supports_list:
            return ProgressEvent.failed(
                OutcomeCategory.INVALID_REQUEST,
                f"Resource of type '{self._kind.name}' does not support listing.",
            )
        try:
            models, following = self._client.list_models(desired, next_token)
        except Exception as e:
            return self._failed(e, OPERATION_NAMES[Verb.LIST], desired)
        return ProgressEvent.success(None, models=[dict(m) for m in models], next_token=following)

    # =========================================================================
    # Resumed invocations
    # =========================================================================

    def _load_continuation(
        self, verb: Verb, continuation: ContinuationState | Mapping[str, Any]
    ) -> ContinuationState:
        state = (
            continuation
            if isinstance(continuation, ContinuationState)
            else ContinuationState.from_dict(
                dict(continuation) if isinstance(continuation, Mapping) else continuation
            )
        )
        if not verb.mutating:
            raise ContinuationError(f"Verb '{verb.value}' does not accept continuation state")
        if state.verb != verb:
            raise ContinuationError(
                f"Continuation belongs to '{state.verb.value}', not '{verb.value}'"
            )
        if state.phase == Phase.INVOKING and not state.operation_token:
            raise ContinuationError("Continuation in invoking phase has no operation token")
        if state.phase == Phase.STABILIZING and verb == Verb.DELETE:
            raise ContinuationError("Delete operations do not stabilize")
        return state

    def _resume(self, verb: Verb, desired: ResourceModel, state: ContinuationState) -> ProgressEvent:
        """Re-enter a pending operation without re-running first-invocation guards."""
        desired = self._with_identity(desired, state.identity)

        if state.phase == Phase.STABILIZING:
            try:
                observed = self._client.read(desired)
            except Exception as e:
                return self._failed(e, OPERATION_NAMES[Verb.READ], desired)
            return self._check_stabilized(
                verb, desired, observed, state.identity, state.remaining_timeout_seconds, resumed=True
            )

        try:
            result = self._client.resume(verb, desired, state.operation_token or "")
        except Exception as e:
            return self._failed(e, OPERATION_NAMES[verb], desired, verb=verb)

        if result.pending and result.pending_token is None:
            result = RemoteResult(model=result.model, pending_token=state.operation_token)

        return self._after_invoke(
            verb,
            desired,
            result,
            identity=state.identity,
            remaining=state.remaining_timeout_seconds,
            resumed=True,
        )

    # =========================================================================
    # Shared steps
    # =========================================================================

    def _after_invoke(
        self,
        verb: Verb,
        desired: ResourceModel,
        result: RemoteResult,
        *,
        identity: IdentityToken | None,
        remaining: int,
        resumed: bool,
    ) -> ProgressEvent:
        if result.pending:
            return self._in_progress(
                verb,
                Phase.INVOKING,
                desired,
                result,
                identity=identity,
                remaining=remaining,
                resumed=resumed,
            )

        if verb == Verb.DELETE:
            self._logger.info(
                "Resource deleted",
                extra={"kind": self._kind.name, "resource": self._kind.identifier(desired)},
            )
            return ProgressEvent.success(None)

        if self._kind.stabilizes:
            return self._check_stabilized(
                verb, desired, result.model, identity, remaining, resumed=resumed
            )
        return self._finish(verb, desired, result.model, identity)

    def _check_stabilized(
        self,
        verb: Verb,
        desired: ResourceModel,
        observed: ResourceModel | None,
        identity: IdentityToken | None,
        remaining: int,
        *,
        resumed: bool,
    ) -> ProgressEvent:
        status = status_of(observed)
        if status == ResourceStatus.ACTIVE:
            return self._finish(verb, desired, observed, identity)
        if status == ResourceStatus.FAILED:
            return ProgressEvent.failed(
                OutcomeCategory.NOT_STABILIZED,
                f"Resource of type '{self._kind.name}' with identifier "
                f"'{self._kind.identifier(observed) or self._kind.identifier(desired)}' "
                f"entered state '{(observed or {}).get('provisioningState')}'.",
            )
        return self._in_progress(
            verb,
            Phase.STABILIZING,
            desired,
            RemoteResult(model=observed),
            identity=identity,
            remaining=remaining,
            resumed=resumed,
        )

    def _in_progress(
        self,
        verb: Verb,
        phase: Phase,
        desired: ResourceModel,
        result: RemoteResult,
        *,
        identity: IdentityToken | None,
        remaining: int,
        resumed: bool,
    ) -> ProgressEvent:
        if resumed and remaining <= 0:
            self._logger.warning(
                "Stabilization budget exhausted",
                extra={"kind": self._kind.name, "verb": verb.value, "phase": phase.value},
            )
            return ProgressEvent.failed(
                OutcomeCategory.NOT_STABILIZED,
                f"Resource of type '{self._kind.name}' with identifier "
                f"'{self._kind.identifier(desired) or '<unknown>'}' did not stabilize.",
            )

        if identity is None:
            observed_id = self._kind.identifier(result.model)
            if observed_id and result.model and result.model.get(self._kind.identifier_field):
                identity = IdentityToken(id=observed_id)

        delay = min(self._config.callback_delay_seconds, max(remaining, 0))
        state = ContinuationState(
            verb=verb,
            phase=phase,
            operation_token=result.pending_token if phase == Phase.INVOKING else None,
            identity=identity,
            remaining_timeout_seconds=max(remaining - delay, 0),
        )
        self._logger.info(
            "Operation in progress",
            extra={
                "kind": self._kind.name,
                "verb": verb.value,
                "phase": phase.value,
                "remaining_seconds": state.remaining_timeout_seconds,
            },
        )
        return ProgressEvent.in_progress(
            state,
            model=self._kind.merge_server_fields(desired, result.model),
            callback_delay_seconds=delay,
            message=result.status_message,
        )

    def _finish(
        self,
        verb: Verb,
        desired: ResourceModel,
        observed: ResourceModel | None,
        identity: IdentityToken | None,
    ) -> ProgressEvent:
        model = self._kind.merge_server_fields(desired, observed)
        if identity is not None and self._kind.content_addressed is not None:
            if not model.get(self._kind.content_addressed.id_field):
                model = self._kind.content_addressed.apply_token(model, identity)

        warnings: list[str] = []
        if verb in (Verb.CREATE, Verb.UPDATE) and self._kind.taggable:
            try:
                desired_tags = self._kind.desired_tags(desired)
            except TypeError as e:
                return ProgressEvent.failed(OutcomeCategory.INVALID_REQUEST, str(e))
            if desired_tags is not None:
                outcome = self._reconcile_tags(model, desired_tags)
                if isinstance(outcome, ProgressEvent):
                    return outcome
                warnings.extend(outcome)

        self._logger.info(
            "Reconcile succeeded",
            extra={
                "kind": self._kind.name,
                "verb": verb.value,
                "resource": self._kind.identifier(model),
                "warnings": len(warnings),
            },
        )
        return ProgressEvent.success(model, warnings=warnings)

    def _reconcile_tags(
        self, model: ResourceModel, desired_tags: dict[str, str]
    ) -> list[str] | ProgressEvent:
        """Apply the tag delta against tags read fresh from the remote.

        Remove and add are independent calls; neither is rolled back when the
        other fails. Tagging permission failures become warnings, anything
        else fails the operation.
        """
        warnings: list[str] = []

        try:
            observed = self._client.get_tags(model)
        except Exception as e:
            classification = self._classify(e, "GetTags", model)
            if classification.category != OutcomeCategory.TAG_PERMISSION_DENIED:
                return ProgressEvent.failed(classification.category, classification.message)
            return [classification.message]

        delta = tag_reconciler.diff(
            desired_tags,
            observed,
            protected_prefixes=self._config.protected_tag_prefixes,
        )
        if delta.is_empty:
            return warnings

        self._logger.info(
            "Reconciling tags",
            extra={
                "kind": self._kind.name,
                "resource": self._kind.identifier(model),
                "tags_to_add": sorted(delta.to_add),
                "tags_to_remove": sorted(delta.removals),
            },
        )

        hard_failure: Classification | None = None
        calls = (
            ("RemoveTags", self._client.remove_tags, delta.removals),
            ("AddTags", self._client.add_tags, delta.to_add),
        )
        for operation, call, payload in calls:
            if not payload:
                continue
            try:
                call(model, payload)
            except Exception as e:
                classification = self._classify(e, operation, model)
                if classification.category == OutcomeCategory.TAG_PERMISSION_DENIED:
                    warnings.append(classification.message)
                elif hard_failure is None:
                    hard_failure = classification

        if hard_failure is not None:
            return ProgressEvent.failed(hard_failure.category, hard_failure.message)
        return warnings

    # =========================================================================
    # Helpers
    # =========================================================================

    def _invalid_tags(self, desired: ResourceModel) -> ProgressEvent | None:
        """Refuse a malformed tag field before any remote call is made."""
        try:
            self._kind.desired_tags(desired)
        except TypeError as e:
            self._logger.warning(
                "Refusing malformed tags",
                extra={"kind": self._kind.name, "resource": self._kind.identifier(desired)},
            )
            return ProgressEvent.failed(OutcomeCategory.INVALID_REQUEST, str(e))
        return None

    def _with_identity(
        self, desired: ResourceModel, identity: IdentityToken | None
    ) -> ResourceModel:
        if identity is None:
            return desired
        if self._kind.content_addressed is not None:
            if desired.get(self._kind.content_addressed.id_field):
                return desired
            return self._kind.content_addressed.apply_token(desired, identity)
        if desired.get(self._kind.identifier_field):
            return desired
        return {**desired, self._kind.identifier_field: identity.id}

    def _summary(self, model: ResourceModel | None) -> str:
        """Request summary safe to put in messages: identifiers and field names only."""
        model = model or {}
        return (
            f"{{kind={self._kind.name}, identifier={self._kind.identifier(model)}, "
            f"fields={sorted(model)}}}"
        )

    def _classify(self, error: Exception, operation: str, model: ResourceModel | None) -> Classification:
        classification = classify(
            error,
            type_name=self._kind.name,
            operation=operation,
            identifier=self._kind.identifier(model),
            request=self._summary(model),
        )
        self._logger.warning(
            "Remote call failed",
            extra={
                "kind": self._kind.name,
                "operation": operation,
                "category": classification.category.value,
                "error_type": type(error).__name__,
            },
        )
        return classification

    def _failed(
        self,
        error: Exception,
        operation: str,
        model: ResourceModel | None,
        *,
        verb: Verb | None = None,
    ) -> ProgressEvent:
        classification = self._classify(error, operation, model)
        if verb == Verb.DELETE and classification.category == OutcomeCategory.NOT_FOUND:
            # Already gone: delete is idempotent
            self._logger.info(
                "Resource already absent, delete treated as done",
                extra={"kind": self._kind.name, "resource": self._kind.identifier(model)},
            )
            return ProgressEvent.success(None)
        return ProgressEvent.failed(classification.category, classification.message)
