# token_store.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional, Tuple

import psycopg


@dataclass(frozen=True)
class StoredToken:
    access_token: str
    account_id: str
    account_name: str
    expires_at: Optional[datetime]


def get_stored_token(
    database_url: str,
    *,
    user_id: Optional[str] = None,
) -> Optional[StoredToken]:
    """Most recently updated active Meta account, for `user_id` when given."""
    sql = """
        SELECT access_token, account_id, account_name, token_expires_at
        FROM meta_accounts
        WHERE is_active = true
    """
    params: tuple = ()
    if user_id:
        sql += " AND user_id = %s"
        params = (user_id,)
    sql += " ORDER BY updated_at DESC LIMIT 1"

    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
            if not row:
                return None
            access_token, account_id, account_name, expires_at = row
            return StoredToken(
                access_token=access_token,
                account_id=account_id,
                account_name=account_name,
                expires_at=expires_at,
            )


def is_expiring(tok: StoredToken, *, buffer_minutes: int = 10, now: Optional[datetime] = None) -> bool:
    if tok.expires_at is None:
        return False
    expires_at = tok.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return expires_at <= now + timedelta(minutes=buffer_minutes)


def get_valid_access_token(
    database_url: str,
    *,
    user_id: Optional[str] = None,
    refresh_buffer_minutes: int = 10,
) -> Tuple[str, str]:
    """(access_token, account_id) of the active Meta account."""
    tok = get_stored_token(database_url, user_id=user_id)
    if not tok:
        who = f" for user '{user_id}'" if user_id else ""
        raise RuntimeError(f"No active Meta account found in meta_accounts{who}.")

    # Tokens are refreshed by re-connecting the account; just fail fast here.
    if is_expiring(tok, buffer_minutes=refresh_buffer_minutes):
        raise RuntimeError(
            f"Meta token in DB is expired/near-expiry (expires_at={tok.expires_at.isoformat()})."
        )

    return tok.access_token, tok.account_id
