"""
Legacy ID to relational ID lookups for a single migration run.
"""

from __future__ import annotations

import logging
from typing import Optional

from taskboard.db import DbClient
from taskboard.schemas import CanonicalAssignee
from taskboard.types import EntityType

logger = logging.getLogger(__name__)


class IdentityMap:
    """
    Per-run mapping from legacy Firebase keys to new row ids.

    Users and contacts are tracked separately. Insertion order is kept so
    ``first`` returns the first record migrated. Nothing here is persisted;
    every run builds its own map.
    """

    def __init__(self):
        self._ids: dict[EntityType, dict[str, int]] = {
            EntityType.USER: {},
            EntityType.CONTACT: {},
        }

    def record(self, entity: EntityType, legacy_id: str, new_id: int) -> None:
        self._table(entity)[legacy_id] = new_id

    def resolve(self, entity: EntityType, legacy_id: str) -> Optional[int]:
        return self._table(entity).get(legacy_id)

    def first(self, entity: EntityType) -> Optional[int]:
        return next(iter(self._table(entity).values()), None)

    def count(self, entity: EntityType) -> int:
        return len(self._table(entity))

    def _table(self, entity: EntityType) -> dict[str, int]:
        try:
            return self._ids[entity]
        except KeyError:
            raise ValueError(f"{entity} ids are not tracked") from None


def resolve_owner(
    identity: IdentityMap, reference: Optional[str], default: Optional[int]
) -> Optional[int]:
    """Map an explicit legacy user reference, else fall back to ``default``."""
    if reference:
        owner_id = identity.resolve(EntityType.USER, reference)
        if owner_id is not None:
            return owner_id
        logger.warning(
            "Owner reference %s was not migrated, using default owner", reference
        )
    return default


def resolve_assignee(
    identity: IdentityMap,
    db: DbClient,
    assignee: CanonicalAssignee,
    owner_user_id: int,
) -> Optional[int]:
    """
    Find the contact a legacy task assignment points at.

    A key that was migrated as a legacy contact maps through the identity
    map, whoever owns that contact. Otherwise the display name is matched,
    first among the owner's contacts and then across every contact in the
    store; the lowest id wins. Returns ``None`` when nothing matches.
    """
    if assignee.key:
        contact_id = identity.resolve(EntityType.CONTACT, assignee.key)
        if contact_id is not None:
            return contact_id
    if not assignee.name:
        return None
    contact_id = db.find_contact_id_by_name(assignee.name, owner_user_id)
    if contact_id is None:
        contact_id = db.find_contact_id_by_name(assignee.name)
        if contact_id is not None:
            logger.debug(
                "Assignee %r matched a contact owned by another user", assignee.name
            )
    return contact_id
