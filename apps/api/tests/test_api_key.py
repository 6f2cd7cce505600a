"""Tests for API key issue and lookup."""

from datetime import datetime

from sqlalchemy.orm import Session

from schola_api.auth.api_key import (
    KEY_PREFIX_LENGTH,
    compute_key_digest,
    compute_key_prefix,
    get_tenant_by_api_key,
    issue_api_key,
)


def test_issued_key_is_not_stored(db: Session, school):
    api_key, raw_key = issue_api_key(db, school, label="front-office")
    db.commit()

    assert raw_key.startswith("sk_")
    assert api_key.prefix == raw_key[:KEY_PREFIX_LENGTH]
    assert api_key.digest == compute_key_digest(raw_key)
    assert raw_key not in (api_key.prefix, api_key.digest)


def test_lookup_resolves_tenant(db: Session, school):
    api_key, raw_key = issue_api_key(db, school)
    db.commit()

    tenant = get_tenant_by_api_key(db, raw_key)

    assert tenant.id == school.id
    assert api_key.last_used_at is not None


def test_wrong_secret_with_same_prefix(db: Session, school):
    _, raw_key = issue_api_key(db, school)
    db.commit()

    forged = compute_key_prefix(raw_key) + "x" * 30
    assert get_tenant_by_api_key(db, forged) is None


def test_revoked_key_rejected(db: Session, school):
    api_key, raw_key = issue_api_key(db, school)
    api_key.revoked_at = datetime.utcnow()
    db.commit()

    assert get_tenant_by_api_key(db, raw_key) is None


def test_short_key_rejected(db: Session):
    assert get_tenant_by_api_key(db, "sk_") is None
    assert get_tenant_by_api_key(db, "") is None
