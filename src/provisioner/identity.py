"""Idempotent creation and adoption for content-addressed resources.

Some control planes assign no caller-chosen key: an entry is identified by its
content plus a server-issued (id, version) pair. Before creating such an
entry we look for one with identical content under the same parent, and
before updating or deleting one without an explicit token we recover the
token from the same listing.

KNOWN LIMITATION: the probe and the create are two separate calls. Two
concurrent reconciliations against the same parent can both observe "no
match" and both create. Preventing that requires a conditional-create
primitive on the remote side; nothing here locks across invocations.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .kinds import ContentAddressing, ResourceKind, ResourceKindError
from .outcomes import IdentityToken, ResourceModel
from .remote import ContentAddressedClient

logger = logging.getLogger(__name__)


def content_string(value: Any) -> str | None:
    """Canonical string form of a content field.

    Strings are used verbatim; structures are rendered as compact JSON with
    sorted keys, so a document supplied as a mapping matches the same document
    stored remotely as text produced by this function.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class IdempotencyResolver:
    """Finds an existing entry with the same content as a desired model."""

    def __init__(self, kind: ResourceKind, client: ContentAddressedClient) -> None:
        """Bind the resolver to a content-addressed kind.

        Raises:
            ResourceKindError: If the kind is not content-addressed or the
                client cannot list entries.
        """
        if kind.content_addressed is None:
            raise ResourceKindError(f"Resource kind '{kind.name}' is not content-addressed")
        if not isinstance(client, ContentAddressedClient):
            raise ResourceKindError(
                f"Client for '{kind.name}' must implement list_entries() for content addressing"
            )
        self._kind = kind
        self._addressing: ContentAddressing = kind.content_addressed
        self._client = client

    def token_from_model(self, desired: ResourceModel) -> IdentityToken | None:
        """Explicit identity token carried by the desired model, if any."""
        return self._addressing.token_from(desired)

    def resolve(self, desired: ResourceModel) -> IdentityToken | None:
        """Return the identity of an existing entry with identical content.

        Remote read errors propagate; the engine classifies them.

        Returns:
            IdentityToken of the first matching entry, or None.
        """
        parent = desired.get(self._addressing.parent_field)
        if not parent:
            return None

        entry = self._match_content(desired, self._client.list_entries(str(parent)))
        if entry is None:
            logger.debug(
                "No entry with matching content",
                extra={"kind": self._kind.name, "parent": parent},
            )
            return None

        token = self._addressing.token_from(entry)
        logger.debug(
            "Resolved existing entry by content",
            extra={"kind": self._kind.name, "parent": parent, "entry_id": token.id if token else None},
        )
        return token

    def find_entry(self, desired: ResourceModel) -> ResourceModel | None:
        """Return the remote entry the desired model refers to.

        Matches by explicit id when the model carries one, otherwise by
        content. The parent field is filled in from the desired model.
        """
        parent = desired.get(self._addressing.parent_field)
        if not parent:
            return None

        entries = self._client.list_entries(str(parent))
        explicit = self.token_from_model(desired)
        if explicit is not None:
            entry = next(
                (e for e in entries if str(e.get(self._addressing.id_field)) == explicit.id),
                None,
            )
        else:
            entry = self._match_content(desired, entries)

        if entry is None:
            return None
        found = dict(entry)
        found.setdefault(self._addressing.parent_field, parent)
        return found

    def _match_content(
        self, desired: ResourceModel, entries: list[ResourceModel]
    ) -> ResourceModel | None:
        wanted = content_string(desired.get(self._addressing.content_field))
        if wanted is None:
            return None
        for entry in entries:
            if not entry.get(self._addressing.id_field):
                continue
            if content_string(entry.get(self._addressing.content_field)) == wanted:
                return entry
        return None
