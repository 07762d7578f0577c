"""Xero repository - Database operations for tokens and sync logs"""

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ...models_xero import SINGLETON_KEY, XeroSyncLog, XeroToken

_TOKEN_COLUMNS = (
    "access_token",
    "refresh_token",
    "expires_in",
    "expires_at",
    "token_type",
    "scope",
    "id_token",
    "session_state",
)


class XeroTokenRepository:
    """Repository for the singleton Xero token row"""

    @staticmethod
    def get_token(db: Session) -> Optional[XeroToken]:
        """Get the stored token row, if any"""
        return db.query(XeroToken).filter(XeroToken.singleton_key == SINGLETON_KEY).first()

    @staticmethod
    def upsert_token(db: Session, tenant_id: Optional[str] = None, **token_data) -> XeroToken:
        """
        Replace every token column in one statement.
        tenant_id is only written when given, so refreshes keep the selected tenant.
        """
        values = {column: token_data.get(column) for column in _TOKEN_COLUMNS}
        values["singleton_key"] = SINGLETON_KEY
        if tenant_id is not None:
            values["tenant_id"] = tenant_id

        update_values = {k: v for k, v in values.items() if k != "singleton_key"}

        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(XeroToken).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite_insert(XeroToken).values(**values)
        else:
            return XeroTokenRepository._upsert_fallback(db, values)

        stmt = stmt.on_conflict_do_update(index_elements=[XeroToken.singleton_key], set_=update_values)
        db.execute(stmt)
        db.commit()
        db.expire_all()
        return XeroTokenRepository.get_token(db)

    @staticmethod
    def _upsert_fallback(db: Session, values: dict) -> XeroToken:
        token = XeroTokenRepository.get_token(db)
        if token is None:
            token = XeroToken(**values)
            db.add(token)
        else:
            for key, value in values.items():
                setattr(token, key, value)
        db.commit()
        db.refresh(token)
        return token

    @staticmethod
    def set_tenant_id(db: Session, tenant_id: Optional[str]) -> bool:
        """Write the tenant onto the token row. Returns False when no row exists."""
        token = XeroTokenRepository.get_token(db)
        if token is None:
            return False
        token.tenant_id = tenant_id
        db.commit()
        return True

    @staticmethod
    def delete_all(db: Session) -> int:
        """Delete every token row (there should only ever be one)"""
        result = db.execute(delete(XeroToken))
        db.commit()
        return result.rowcount or 0

    @staticmethod
    def count(db: Session) -> int:
        return len(db.execute(select(XeroToken.id)).all())


class XeroSyncLogRepository:
    """Repository for sync history"""

    @staticmethod
    def add_log(db: Session, **log_data) -> XeroSyncLog:
        log = XeroSyncLog(**log_data)
        db.add(log)
        db.commit()
        db.refresh(log)
        return log

    @staticmethod
    def get_recent(db: Session, limit: int = 20) -> list[XeroSyncLog]:
        return db.query(XeroSyncLog).order_by(XeroSyncLog.created_at.desc(), XeroSyncLog.id.desc()).limit(limit).all()
