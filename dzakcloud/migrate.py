"""One-time import of the legacy flat JSON data files into the database.

The previous version of the site kept ``users.json``, ``payments.json`` and
``contacts.json`` in a data directory. Each file is optional; rows that are
already present are left untouched, so the import can run on every start.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .database import (
    DEFAULT_CONTACT_STATUS,
    DEFAULT_PAYMENT_STATUS,
    Database,
    _current_timestamp,
    _parse_datetime,
)

logger = logging.getLogger("dzakcloud.migrate")

USERS_FILE = "users.json"
PAYMENTS_FILE = "payments.json"
CONTACTS_FILE = "contacts.json"


@dataclass
class ImportResult:
    source: str
    found: bool = False
    inserted: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class LegacyImportReport:
    users: ImportResult = field(default_factory=lambda: ImportResult(USERS_FILE))
    payments: ImportResult = field(default_factory=lambda: ImportResult(PAYMENTS_FILE))
    contacts: ImportResult = field(default_factory=lambda: ImportResult(CONTACTS_FILE))

    @property
    def inserted(self) -> int:
        return self.users.inserted + self.payments.inserted + self.contacts.inserted


def _load_records(path: Path) -> Optional[List[Dict[str, Any]]]:
    if not path.exists():
        logger.info("No %s file found, skipping", path.name)
        return None

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to read %s: %s", path, exc)
        return None

    if not isinstance(data, list):
        logger.error("Expected %s to contain a JSON array", path)
        return None
    return [item for item in data if isinstance(item, dict)]


def _timestamp(value: object) -> datetime:
    if not value:
        return _current_timestamp()
    return _parse_datetime(str(value))


def _required(record: Dict[str, Any], key: str) -> str:
    value = record.get(key)
    if value is None or not str(value).strip():
        raise KeyError(key)
    return str(value).strip()


def _decode_legacy_password(value: str) -> str:
    """Recover the plaintext from the old Base64 password encoding."""

    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return value


def _import_user(database: Database, record: Dict[str, Any]) -> bool:
    password = _decode_legacy_password(_required(record, "password"))
    if not password:
        raise ValueError("empty password")
    return database.import_user(
        email=_required(record, "email"),
        password=password,
        name=str(record.get("name") or record.get("fullName") or "Unknown"),
        created_at=_timestamp(record.get("createdAt")),
        updated_at=_timestamp(record.get("updatedAt")),
    )


def _import_payment(database: Database, record: Dict[str, Any]) -> bool:
    return database.import_payment(
        payment_id=_required(record, "id"),
        email=_required(record, "email"),
        service=str(record.get("service") or record.get("package") or "Unknown Service"),
        amount=Decimal(str(_required(record, "amount"))),
        status=str(record.get("status") or DEFAULT_PAYMENT_STATUS),
        qr_code_url=record.get("qrCodeUrl") or None,
        created_at=_timestamp(record.get("createdAt")),
        updated_at=_timestamp(record.get("updatedAt")),
    )


def _import_contact(database: Database, record: Dict[str, Any]) -> bool:
    return database.import_contact(
        name=_required(record, "name"),
        email=_required(record, "email"),
        topic=_required(record, "topic"),
        subject=_required(record, "subject"),
        description=_required(record, "description"),
        status=str(record.get("status") or DEFAULT_CONTACT_STATUS),
        notes=str(record.get("notes") or ""),
        created_at=_timestamp(record.get("createdAt")),
        updated_at=_timestamp(record.get("updatedAt")),
    )


def _import_file(
    database: Database,
    path: Path,
    result: ImportResult,
    importer: Callable[[Database, Dict[str, Any]], bool],
) -> None:
    records = _load_records(path)
    if records is None:
        return
    result.found = True

    for index, record in enumerate(records):
        try:
            inserted = importer(database, record)
        except KeyError as exc:
            logger.warning("Skipping %s entry %d: missing field %s", path.name, index, exc)
            result.failed += 1
            continue
        except (ValueError, TypeError, InvalidOperation, sqlite3.IntegrityError) as exc:
            logger.warning("Skipping %s entry %d: %s", path.name, index, exc)
            result.failed += 1
            continue

        if inserted:
            result.inserted += 1
        else:
            result.skipped += 1

    logger.info(
        "Imported %s: %d inserted, %d already present, %d rejected",
        path.name,
        result.inserted,
        result.skipped,
        result.failed,
    )


def import_legacy_data(database: Database, data_dir: Path) -> LegacyImportReport:
    """Upsert the legacy JSON files from ``data_dir`` into ``database``."""

    report = LegacyImportReport()
    if not data_dir.is_dir():
        logger.info("Legacy data directory %s does not exist, skipping import", data_dir)
        return report

    _import_file(database, data_dir / USERS_FILE, report.users, _import_user)
    _import_file(database, data_dir / PAYMENTS_FILE, report.payments, _import_payment)
    _import_file(database, data_dir / CONTACTS_FILE, report.contacts, _import_contact)
    return report


__all__ = ["ImportResult", "LegacyImportReport", "import_legacy_data"]
