"""
Sequences the Firebase to relational migration.

Stages run strictly in dependency order (users, contacts, tasks) because
contacts need an owner id and tasks need both identity tables. A failure on
one record is recorded and the stage moves on; only an unreachable database
or an unreadable mandatory collection stops the run.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from taskboard.db import DbClient
from taskboard.errors import SourceUnavailable
from taskboard.identity import IdentityMap, resolve_owner
from taskboard.legacy_source import (
    CONTACTS_PATH,
    TASKS_PATH,
    USERS_PATH,
    LegacySource,
)
from taskboard.loader import PasswordHasher, load_contact, load_task, load_user
from taskboard.normalize import normalize_contact, normalize_task, normalize_user
from taskboard.passwords import hash_password
from taskboard.report import MigrationReport, RecordOutcome
from taskboard.types import EntityType, MigrationState

logger = logging.getLogger(__name__)

DEFAULT_MANDATORY_COLLECTIONS = (USERS_PATH,)


class MigrationAborted(Exception):
    """Internal signal for a fatal fault; carried into the report."""


class Migrator:
    """
    One migration run from a legacy source into a relational client.

    Usage:
        migrator = Migrator(FirebaseLegacySource(url), PostgresDbClient(db_url))
        report = migrator.run()

    Identity maps live on the instance for the duration of the run only.
    """

    def __init__(
        self,
        source: LegacySource,
        db: DbClient,
        *,
        hasher: PasswordHasher = hash_password,
        mandatory_collections: Iterable[str] = DEFAULT_MANDATORY_COLLECTIONS,
        dedupe_contacts: bool = False,
    ) -> None:
        self._source = source
        self._db = db
        self._hasher = hasher
        self._mandatory = frozenset(mandatory_collections)
        self._dedupe_contacts = dedupe_contacts
        self.identity = IdentityMap()
        self.report = MigrationReport()

    @property
    def state(self) -> MigrationState:
        return self.report.state

    def run(self) -> MigrationReport:
        if self.state != MigrationState.NOT_STARTED:
            raise RuntimeError("a Migrator instance can only run once")

        logger.info("Starting migration from Firebase to the relational store...")
        try:
            self._check_connection()

            self._enter(MigrationState.MIGRATING_USERS)
            self._migrate_users()

            self._enter(MigrationState.MIGRATING_CONTACTS)
            self._migrate_contacts()

            self._enter(MigrationState.MIGRATING_TASKS)
            self._migrate_tasks()
        except MigrationAborted as exc:
            self.report.fatal_error = str(exc)
            self._enter(MigrationState.FAILED)
            logger.error("✗ Migration failed: %s", exc)
            return self.report

        self._enter(MigrationState.COMPLETED)
        return self.report

    def _enter(self, state: MigrationState) -> None:
        logger.debug("Migration state %s -> %s", self.report.state.value, state.value)
        self.report.state = state

    def _check_connection(self) -> None:
        try:
            self._db.ping()
        except SQLAlchemyError as exc:
            raise MigrationAborted(f"cannot open relational connection: {exc}") from exc

    def _fetch(self, path: str) -> Optional[dict[str, Any]]:
        try:
            records = self._source.fetch(path)
        except SourceUnavailable as exc:
            if path in self._mandatory:
                raise MigrationAborted(str(exc)) from exc
            logger.warning("Skipping %s stage: %s", path, exc)
            self.report.stage_errors.append(str(exc))
            return None
        if not records:
            logger.info("No records found in %s", path)
        return records

    def _each_record(
        self,
        entity: EntityType,
        records: Mapping[str, Any],
        load: Callable[[str, Mapping[str, Any]], RecordOutcome],
    ) -> None:
        for legacy_id, raw in records.items():
            if not isinstance(raw, Mapping):
                outcome = RecordOutcome.failure(
                    entity, legacy_id, f"unexpected record of type {type(raw).__name__}"
                )
                logger.error("✗ Skipping %s %s: %s", entity.value, legacy_id, outcome.error)
            else:
                outcome = load(legacy_id, raw)
            self.report.add(outcome)
            if outcome.ok and entity in (EntityType.USER, EntityType.CONTACT):
                self.identity.record(entity, legacy_id, outcome.new_id)

    def _migrate_users(self) -> None:
        logger.info("Migrating users...")
        records = self._fetch(USERS_PATH)
        if records is None:
            return
        self._each_record(
            EntityType.USER,
            records,
            lambda legacy_id, raw: load_user(
                self._db, legacy_id, normalize_user(raw), self._hasher
            ),
        )

    def _migrate_contacts(self) -> None:
        logger.info("Migrating contacts...")
        records = self._fetch(CONTACTS_PATH)
        if records is None:
            return
        # Contacts without an owner reference go to the first migrated user.
        default_owner = self.identity.first(EntityType.USER)

        def load(legacy_id: str, raw: Mapping[str, Any]) -> RecordOutcome:
            contact = normalize_contact(raw)
            owner_id = resolve_owner(self.identity, contact.owner_ref, default_owner)
            return load_contact(
                self._db, legacy_id, contact, owner_id, dedupe=self._dedupe_contacts
            )

        self._each_record(EntityType.CONTACT, records, load)

    def _migrate_tasks(self) -> None:
        logger.info("Migrating tasks...")
        records = self._fetch(TASKS_PATH)
        if records is None:
            return
        default_creator = self.identity.first(EntityType.USER)

        def load(legacy_id: str, raw: Mapping[str, Any]) -> RecordOutcome:
            task = normalize_task(raw)
            creator_id = resolve_owner(self.identity, task.creator_ref, default_creator)
            return load_task(self._db, self.identity, legacy_id, task, creator_id)

        self._each_record(EntityType.TASK, records, load)
