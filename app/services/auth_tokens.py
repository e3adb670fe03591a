import hashlib
import secrets
from datetime import timedelta

from sqlalchemy.orm import Session

from app.models import RefreshToken
from app.services.timeutils import as_utc, db_datetime, utcnow


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _new_token() -> str:
    return secrets.token_urlsafe(48)


def issue_refresh_token(
    db: Session,
    user_id: int,
    expires_in_days: int,
    ip: str | None = None,
    user_agent: str | None = None,
) -> tuple[str, RefreshToken]:
    raw = _new_token()
    record = RefreshToken(
        user_id=user_id,
        token_hash=_hash_token(raw),
        expires_at=utcnow() + timedelta(days=expires_in_days),
        ip=ip,
        user_agent=user_agent,
    )
    db.add(record)
    db.flush()
    return raw, record


def get_valid_refresh_token(db: Session, raw_token: str) -> RefreshToken | None:
    record = db.query(RefreshToken).filter(RefreshToken.token_hash == _hash_token(raw_token)).first()
    if not record:
        return None
    if record.revoked_at is not None or as_utc(record.expires_at) <= utcnow():
        return None
    return record


def revoke_refresh_token(record: RefreshToken, replaced_by_id: int | None = None) -> None:
    record.revoked_at = utcnow()
    record.replaced_by_id = replaced_by_id


def revoke_refresh_token_by_raw(db: Session, raw_token: str) -> bool:
    db_now = db_datetime(db, utcnow())
    updated = (
        db.query(RefreshToken)
        .filter(
            RefreshToken.token_hash == _hash_token(raw_token),
            RefreshToken.revoked_at.is_(None),
        )
        .update(
            {
                RefreshToken.revoked_at: db_now,
            },
            synchronize_session=False,
        )
    )
    return updated == 1
