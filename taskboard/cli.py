"""
Command-line entry point for the one-shot Firebase migration.
"""

from __future__ import annotations

import argparse
import functools
import logging
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from taskboard.config import get_settings
from taskboard.db import PostgresDbClient
from taskboard.dependencies import get_db_client, get_legacy_source
from taskboard.legacy_source import FirebaseLegacySource
from taskboard.migrator import Migrator
from taskboard.passwords import hash_password
from taskboard.report import EXIT_FATAL

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Migrate users, contacts and tasks from Firebase into the relational store."
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL",
    )
    parser.add_argument(
        "--firebase-url",
        default=None,
        help="Override FIREBASE_URL",
    )
    parser.add_argument(
        "--dedupe-contacts",
        action="store_true",
        default=None,
        help="Reuse an owner's existing contact with the same name and email",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default from LOG_LEVEL, else INFO)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(levelname)s:%(message)s",
    )

    if args.firebase_url:
        source = FirebaseLegacySource(
            base_url=args.firebase_url, timeout=settings.legacy_request_timeout
        )
    else:
        source = get_legacy_source()
    logger.info("Firebase URL: %s", getattr(source, "base_url", source))

    try:
        if args.database_url:
            db = PostgresDbClient(args.database_url)
        else:
            db = get_db_client()
    except (SQLAlchemyError, ValueError) as exc:
        logger.error("✗ Migration failed: cannot open relational connection: %s", exc)
        return EXIT_FATAL

    dedupe = settings.dedupe_contacts if args.dedupe_contacts is None else True
    migrator = Migrator(
        source,
        db,
        hasher=functools.partial(hash_password, rounds=settings.bcrypt_rounds),
        dedupe_contacts=dedupe,
    )
    report = migrator.run()

    log = logger.info if report.succeeded else logger.error
    for line in report.summary_lines():
        log(line)
    return report.exit_code()
