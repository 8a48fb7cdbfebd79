"""Generic Azure Resource Manager client.

Adapts ResourceManagementClient to the RemoteClient protocol for any resource
addressable by its full ARM id. Long-running operations are never waited on:
each poller advances by a single status request, and one that has not
finished is handed back as its continuation token. resume() rebuilds the
poller from that token on the next invocation.

Tags are managed through the tags-at-scope API rather than the resource body
so that tagging permissions stay separate from write permissions on the
resource itself.
"""

from __future__ import annotations

import logging
from typing import Any

from azure.core.exceptions import ResourceExistsError
from azure.core.polling import LROPoller
from azure.mgmt.core.polling.arm_polling import ARMPolling
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import Tags, TagsPatchOperation, TagsPatchResource

from .outcomes import IdentityToken, ResourceModel, TagSet, Verb
from .remote import RemoteResult
from .translation import (
    ABSENT,
    Absent,
    Present,
    from_generic_resource,
    lookup,
    map_present,
    or_default,
    resource_group_of,
    to_generic_resource,
)

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2022-09-01"


class SingleStepPolling(ARMPolling):
    """ARM polling that makes one status request per run.

    LROPoller runs the polling method on a daemon thread. Stopping after one
    step lets the caller join that thread before the invocation returns.
    """

    def _poll(self) -> None:
        self.update_status()
        if self.finished():
            # Raises on a failed or canceled operation, then fetches the final resource
            super()._poll()


class ArmResourceClient:
    """RemoteClient for resources managed by id through ARM."""

    def __init__(
        self,
        client: ResourceManagementClient,
        *,
        api_version: str = DEFAULT_API_VERSION,
    ) -> None:
        self._client = client
        self._api_version = api_version

    @property
    def api_version(self) -> str:
        return self._api_version

    # =========================================================================
    # Resource lifecycle
    # =========================================================================

    def create(self, desired: ResourceModel) -> RemoteResult:
        resource_id = self._resource_id(desired)
        # PUT is an upsert and would overwrite an existing resource
        # TODO: send If-None-Match: * on the PUT to close the gap between check and write
        if self._client.resources.check_existence_by_id(resource_id, self._api_version):
            raise ResourceExistsError(message=f"Resource '{resource_id}' already exists")
        poller = self._client.resources.begin_create_or_update_by_id(
            resource_id,
            self._api_version,
            to_generic_resource(desired),
            polling=SingleStepPolling(),
        )
        return self._settle(poller)

    def update(self, desired: ResourceModel, token: IdentityToken | None) -> RemoteResult:
        # ARM versions generic resources with etags, not identity tokens
        return self._settle(self._begin_update(desired))

    def delete(self, desired: ResourceModel, token: IdentityToken | None) -> RemoteResult:
        poller = self._client.resources.begin_delete_by_id(
            self._resource_id(desired),
            self._api_version,
            polling=SingleStepPolling(),
        )
        return self._settle(poller)

    def read(self, desired: ResourceModel) -> ResourceModel:
        resource = self._client.resources.get_by_id(self._resource_id(desired), self._api_version)
        return from_generic_resource(resource) or {}

    def resume(self, verb: Verb, desired: ResourceModel, operation_token: str) -> RemoteResult:
        resource_id = self._resource_id(desired)
        logger.debug(
            "Resuming long-running operation",
            extra={"verb": verb.value, "resource_id": resource_id},
        )
        match verb:
            case Verb.CREATE:
                poller = self._client.resources.begin_create_or_update_by_id(
                    resource_id,
                    self._api_version,
                    to_generic_resource(desired),
                    polling=SingleStepPolling(),
                    continuation_token=operation_token,
                )
            case Verb.UPDATE:
                poller = self._begin_update(desired, continuation_token=operation_token)
            case Verb.DELETE:
                poller = self._client.resources.begin_delete_by_id(
                    resource_id,
                    self._api_version,
                    polling=SingleStepPolling(),
                    continuation_token=operation_token,
                )
            case _:
                raise ValueError(f"Verb '{verb.value}' has no long-running operation")
        return self._settle(poller)

    def list_models(
        self, desired: ResourceModel, next_token: str | None
    ) -> tuple[list[ResourceModel], str | None]:
        resource_filter = or_default(
            map_present(lookup(desired, "type"), lambda t: f"resourceType eq '{t}'"),
            None,
        )

        match self._resource_group(desired):
            case Present(group):
                pager = self._client.resources.list_by_resource_group(group, filter=resource_filter)
            case Absent():
                pager = self._client.resources.list(filter=resource_filter)

        pages = pager.by_page(continuation_token=next_token)
        try:
            page = next(pages)
        except StopIteration:
            return [], None
        models = [m for m in (from_generic_resource(r) for r in page) if m is not None]
        return models, pages.continuation_token

    # =========================================================================
    # Tags
    # =========================================================================

    def get_tags(self, model: ResourceModel) -> TagSet:
        result = self._client.tags.get_at_scope(self._resource_id(model))
        tags = result.properties.tags if result.properties is not None else None
        return dict(tags or {})

    def add_tags(self, model: ResourceModel, tags: TagSet) -> None:
        self._patch_tags(model, tags, TagsPatchOperation.MERGE)

    def remove_tags(self, model: ResourceModel, tags: TagSet) -> None:
        self._patch_tags(model, tags, TagsPatchOperation.DELETE)

    def _patch_tags(self, model: ResourceModel, tags: TagSet, operation: TagsPatchOperation) -> None:
        patch = TagsPatchResource(operation=operation, properties=Tags(tags=dict(tags)))
        self._client.tags.begin_update_at_scope(self._resource_id(model), patch).result()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _begin_update(self, desired: ResourceModel, **kwargs: Any) -> LROPoller[Any]:
        """Start, or rebuild from a token, the write behind an update.

        Without tag intent the update is a PATCH so existing tags are left
        alone without reading them; a PUT would replace them.
        """
        resource_id = self._resource_id(desired)
        match lookup(desired, "tags"):
            case Present():
                begin = self._client.resources.begin_create_or_update_by_id
            case Absent():
                begin = self._client.resources.begin_update_by_id
        return begin(
            resource_id,
            self._api_version,
            to_generic_resource(desired),
            polling=SingleStepPolling(),
            **kwargs,
        )

    def _settle(self, poller: LROPoller[Any]) -> RemoteResult:
        """Return the finished result, or the token to resume from."""
        # One polling step: joins the poller's thread and re-raises its failure
        poller.wait()
        if poller.polling_method().finished():
            return RemoteResult(model=from_generic_resource(poller.result()))
        return RemoteResult(
            pending_token=poller.continuation_token(),
            status_message=f"Operation status: {poller.status()}",
        )

    def _resource_id(self, model: ResourceModel) -> str:
        match lookup(model, "id"):
            case Present(resource_id) if isinstance(resource_id, str) and resource_id.startswith("/"):
                return resource_id
            case _:
                raise ValueError("Resource model requires a full ARM 'id'")

    def _resource_group(self, model: ResourceModel) -> Present[str] | Absent:
        match lookup(model, "resourceGroup"):
            case Present(group):
                return Present(str(group))
            case Absent():
                pass
        match lookup(model, "id"):
            case Present(resource_id):
                return resource_group_of(str(resource_id))
            case Absent():
                return ABSENT
