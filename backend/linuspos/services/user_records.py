"""
Versioned upgrades for exported user records.

The older terminals kept users as a JSON list in a key-value store. Fields
were added over time, so a record may be missing `permissions` (v0) or
`isActive` (v1) and always carries its password in plain text. Importing
runs each record through upgrade_user_record() once; the ORM model itself
never has to guess at missing fields.

    v0: {username, password, role, name}
    v1: v0 + permissions
    v2: v1 + isActive, password replaced by passwordHash (bcrypt)
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_STAFF, USER_RECORD_VERSION
from ..validation import ValidationError
from .auth_service import get_user_by_username, hash_password
from .permission_service import PERMISSION_COLUMNS, build_permission_row, permissions_for_role

logger = logging.getLogger(__name__)


def detect_version(record: dict) -> int:
    if "recordVersion" in record:
        return int(record["recordVersion"])
    if "passwordHash" in record:
        return 2
    if "permissions" in record:
        return 1
    return 0


def _v0_to_v1(record: dict) -> dict:
    upgraded = dict(record)
    role = upgraded.get("role") if upgraded.get("role") in ROLES else ROLE_STAFF
    upgraded["role"] = role
    upgraded["permissions"] = permissions_for_role(role)
    return upgraded


def _v1_to_v2(record: dict) -> dict:
    upgraded = dict(record)
    password = upgraded.pop("password", None)
    if not password:
        raise ValidationError(f"User {upgraded.get('username')!r} has no password to migrate")

    upgraded["passwordHash"] = hash_password(password, check_strength=False)
    upgraded["isActive"] = upgraded.get("isActive", True) is not False

    # Partial permission dicts from early builds: fill the gaps with False
    perms = upgraded.get("permissions") or {}
    upgraded["permissions"] = {code: bool(perms.get(code, False)) for code in PERMISSION_COLUMNS}
    return upgraded


_STEPS = {0: _v0_to_v1, 1: _v1_to_v2}


def upgrade_user_record(record: dict) -> dict:
    """Bring one exported user record up to the current version."""
    if not isinstance(record, dict):
        raise ValidationError("User record must be an object")
    if not str(record.get("username") or "").strip():
        raise ValidationError("User record has no username")

    version = detect_version(record)
    if version > USER_RECORD_VERSION:
        raise ValidationError(f"Unsupported user record version {version}")

    upgraded = dict(record)
    while version < USER_RECORD_VERSION:
        upgraded = _STEPS[version](upgraded)
        version += 1
    upgraded["recordVersion"] = USER_RECORD_VERSION
    return upgraded


def import_user_records(records: list[dict]) -> tuple[int, int]:
    """
    Upgrade and insert legacy user records. Existing usernames are skipped.

    Returns (imported, skipped). All inserts share one commit.
    """
    if not isinstance(records, list):
        raise ValidationError("Expected a JSON list of users")

    imported = skipped = 0
    for raw in records:
        record = upgrade_user_record(raw)
        username = str(record["username"]).strip()

        if get_user_by_username(username):
            logger.info("Skipping existing user %s", username)
            skipped += 1
            continue

        role = record.get("role") if record.get("role") in ROLES else ROLE_STAFF
        user = User(
            username=username,
            name=str(record.get("name") or username).strip(),
            role=role,
            password_hash=record["passwordHash"],
            is_active=record.get("isActive", True) is not False,
            record_version=record["recordVersion"],
        )
        user.permissions = build_permission_row(record.get("permissions") or permissions_for_role(role))
        db.session.add(user)
        imported += 1

    db.session.commit()
    return imported, skipped
