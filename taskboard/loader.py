"""
Writes normalized legacy records into the relational store, one record at a time.

Each loader returns a ``RecordOutcome`` and never raises for a problem with
the record itself, so one bad record cannot stop its siblings.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from taskboard.db import DbClient
from taskboard.errors import PersistenceConflict, RelationalTransactionFailure
from taskboard.identity import IdentityMap, resolve_assignee
from taskboard.report import RecordOutcome
from taskboard.schemas import CanonicalContact, CanonicalTask, CanonicalUser
from taskboard.types import EntityType

logger = logging.getLogger(__name__)

PasswordHasher = Callable[[str], str]


def load_user(
    db: DbClient, legacy_id: str, user: CanonicalUser, hasher: PasswordHasher
) -> RecordOutcome:
    if not user.email:
        return _failed(EntityType.USER, legacy_id, user.name, "missing email")
    if not user.password:
        return _failed(EntityType.USER, legacy_id, user.name, "missing password")
    try:
        password_hash = hasher(user.password)
        user_id, created = db.upsert_user(
            name=user.name,
            email=user.email,
            initials=user.initials,
            password_hash=password_hash,
        )
    except (PersistenceConflict, SQLAlchemyError, ValueError) as exc:
        return _failed(EntityType.USER, legacy_id, user.name, str(exc))

    logger.info(
        "✓ Migrated user: %s (%s)", user.name, "created" if created else "updated"
    )
    return RecordOutcome.success(EntityType.USER, legacy_id, user_id)


def load_contact(
    db: DbClient,
    legacy_id: str,
    contact: CanonicalContact,
    owner_user_id: Optional[int],
    *,
    dedupe: bool = False,
) -> RecordOutcome:
    if owner_user_id is None:
        return _failed(
            EntityType.CONTACT, legacy_id, contact.name, "no owner user available"
        )
    if not contact.name:
        return _failed(EntityType.CONTACT, legacy_id, contact.name, "missing name")
    try:
        if dedupe:
            existing = db.find_contact(owner_user_id, contact.name, contact.email)
            if existing is not None:
                logger.info("✓ Reused existing contact: %s", contact.name)
                return RecordOutcome.success(EntityType.CONTACT, legacy_id, existing.id)
        record = db.create_contact(
            owner_user_id,
            contact.name,
            email=contact.email,
            phone=contact.phone,
            color=contact.color,
        )
    except (PersistenceConflict, SQLAlchemyError) as exc:
        return _failed(EntityType.CONTACT, legacy_id, contact.name, str(exc))

    logger.info("✓ Migrated contact: %s", contact.name)
    return RecordOutcome.success(EntityType.CONTACT, legacy_id, record.id)


def load_task(
    db: DbClient,
    identity: IdentityMap,
    legacy_id: str,
    task: CanonicalTask,
    creator_user_id: Optional[int],
) -> RecordOutcome:
    """
    Resolve the task's assignees, then write it in one transaction.

    Assignees that match no contact are dropped and reported on the outcome;
    the task itself still persists.
    """
    if creator_user_id is None:
        return _failed(EntityType.TASK, legacy_id, task.title, "no creator user available")

    try:
        contact_ids: list[int] = []
        skipped: list[str] = []
        for assignee in task.assignees:
            contact_id = resolve_assignee(identity, db, assignee, creator_user_id)
            if contact_id is None:
                logger.warning(
                    "Task %s: no contact matches %r, skipping assignment",
                    legacy_id,
                    assignee.label,
                )
                skipped.append(assignee.label)
            else:
                contact_ids.append(contact_id)

        record = db.create_task(
            creator_user_id,
            title=task.title,
            description=task.description,
            due_date=task.due_date,
            priority=task.priority,
            category=task.category,
            status=task.status,
            subtasks=[(s.title, s.is_completed) for s in task.subtasks],
            contact_ids=contact_ids,
            require_owned_contacts=False,
        )
    except (PersistenceConflict, RelationalTransactionFailure, SQLAlchemyError) as exc:
        return _failed(EntityType.TASK, legacy_id, task.title, str(exc))

    logger.info("✓ Migrated task: %s", task.title)
    return RecordOutcome.success(
        EntityType.TASK, legacy_id, record.id, skipped_assignees=tuple(skipped)
    )


def _failed(
    entity: EntityType, legacy_id: str, label: Optional[str], message: str
) -> RecordOutcome:
    logger.error(
        "✗ Failed to migrate %s %s (%s): %s", entity.value, label, legacy_id, message
    )
    return RecordOutcome.failure(entity, legacy_id, message)
