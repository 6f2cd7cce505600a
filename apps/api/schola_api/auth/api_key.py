"""API key authentication with prefix+digest lookup."""

import hashlib
import hmac
import secrets
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from schola_api.models import APIKey, Tenant
from schola_api.settings import get_settings

KEY_PREFIX_LENGTH = 8


def compute_key_prefix(raw_key: str) -> str:
    """Compute prefix (first 8 chars) of API key."""
    return raw_key[:KEY_PREFIX_LENGTH]


def compute_key_digest(raw_key: str) -> str:
    """Compute HMAC-SHA256 digest of API key."""
    secret = get_settings().secret_key.encode()
    return hmac.new(secret, raw_key.encode(), hashlib.sha256).hexdigest()


def issue_api_key(db: Session, tenant: Tenant, label: Optional[str] = None) -> tuple[APIKey, str]:
    """Create a key for a tenant. The raw key is returned once and never stored."""
    raw_key = f"sk_{secrets.token_urlsafe(32)}"
    api_key = APIKey(
        tenant_id=tenant.id,
        prefix=compute_key_prefix(raw_key),
        digest=compute_key_digest(raw_key),
        label=label,
        is_active=True,
    )
    db.add(api_key)
    db.flush()
    return api_key, raw_key


def get_tenant_by_api_key(db: Session, api_key: str) -> Optional[Tenant]:
    """Get tenant by API key using indexed prefix lookup and constant-time digest check."""
    if not api_key or len(api_key) < KEY_PREFIX_LENGTH:
        return None

    prefix = compute_key_prefix(api_key)
    digest = compute_key_digest(api_key)

    candidates = (
        db.query(APIKey)
        .filter(
            APIKey.prefix == prefix,
            APIKey.is_active == True,  # noqa: E712
            APIKey.revoked_at.is_(None),
        )
        .all()
    )

    for api_key_obj in candidates:
        if hmac.compare_digest(api_key_obj.digest, digest):
            api_key_obj.last_used_at = datetime.utcnow()
            db.commit()
            return db.query(Tenant).filter(Tenant.id == api_key_obj.tenant_id).first()

    return None
