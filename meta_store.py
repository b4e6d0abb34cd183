"""meta_store.py

Postgres side of the Meta integration:

  - meta_accounts               connected ad accounts and their tokens
  - meta_ad_templates           ads pulled from Graph, reused as creative templates
  - campaign_meta_ads           ads selected for a saved campaign (+ overrides)
  - meta_ad_variables           placeholders declared for an ad
  - meta_ad_location_overrides  per-location creative/targeting/budget overrides

`sync_meta_ads` is the only function here that talks to Graph.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Sequence

import psycopg
from psycopg.rows import dict_row

from db import from_jsonb, store_errors, to_jsonb
from meta_client import MetaClient, normalize_ad_account_id
from models import MetaAd, MetaAdFilters, MetaAdTemplateRecord, TemplateVariable

log = logging.getLogger(__name__)

OverrideType = Literal["creative", "targeting", "budget"]

_METRIC_KEYS = ("impressions", "clicks", "spend", "reach")


def _stringify_ids(row: Dict[str, Any], *cols: str) -> Dict[str, Any]:
    data = dict(row)
    for col in cols:
        if data.get(col) is not None:
            data[col] = str(data[col])
    return data


def _template_from_row(row: Dict[str, Any]) -> MetaAdTemplateRecord:
    data = _stringify_ids(row, "id")
    for col in ("creative", "targeting", "performance_metrics"):
        data[col] = from_jsonb(data.get(col))
    data["creative"] = data.get("creative") or {}
    return MetaAdTemplateRecord.model_validate(data)


def template_record_from_ad(ad: MetaAd, *, metrics: Optional[Dict[str, Any]] = None) -> MetaAdTemplateRecord:
    return MetaAdTemplateRecord(
        meta_ad_id=ad.id,
        name=ad.name,
        creative=ad.creative.model_dump(exclude_none=True),
        targeting=ad.targeting,
        campaign_id=ad.campaign_id,
        ad_set_id=ad.adset_id,
        account_id=ad.account_id,
        status=ad.status,
        performance_metrics=metrics,
        last_synced=datetime.now(timezone.utc),
    )


class MetaStorePG:
    def __init__(self, database_url: str):
        self.database_url = database_url
        self._init()

    def _conn(self):
        return psycopg.connect(self.database_url)

    def _init(self) -> None:
        with store_errors("initialize Meta tables"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS meta_accounts (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          user_id UUID,
                          account_id VARCHAR(255) NOT NULL,
                          account_name VARCHAR(255) NOT NULL,
                          access_token TEXT NOT NULL,
                          refresh_token TEXT,
                          token_expires_at TIMESTAMPTZ,
                          is_active BOOLEAN NOT NULL DEFAULT true,
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                        )
                        """
                    )
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS meta_ad_templates (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          meta_ad_id VARCHAR(255) UNIQUE NOT NULL,
                          name VARCHAR(500) NOT NULL,
                          creative JSONB NOT NULL,
                          targeting JSONB,
                          campaign_id VARCHAR(255),
                          ad_set_id VARCHAR(255),
                          account_id VARCHAR(255),
                          status VARCHAR(50) DEFAULT 'ACTIVE',
                          performance_metrics JSONB,
                          last_synced TIMESTAMPTZ NOT NULL DEFAULT now(),
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                        )
                        """
                    )
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS campaign_meta_ads (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          campaign_id UUID NOT NULL,
                          meta_ad_id VARCHAR(255) NOT NULL,
                          meta_ad_name VARCHAR(500) NOT NULL,
                          location_id UUID,
                          override_settings JSONB,
                          is_active BOOLEAN NOT NULL DEFAULT true,
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          UNIQUE (campaign_id, meta_ad_id)
                        )
                        """
                    )
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS meta_ad_variables (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          meta_ad_id VARCHAR(255) NOT NULL,
                          variable_name VARCHAR(255) NOT NULL,
                          variable_type VARCHAR(50) NOT NULL,
                          default_value TEXT,
                          is_required BOOLEAN NOT NULL DEFAULT false,
                          description TEXT,
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          UNIQUE (meta_ad_id, variable_name)
                        )
                        """
                    )
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS meta_ad_location_overrides (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          campaign_meta_ad_id UUID NOT NULL REFERENCES campaign_meta_ads(id) ON DELETE CASCADE,
                          location_id UUID NOT NULL,
                          override_type VARCHAR(50) NOT NULL,
                          override_data JSONB NOT NULL,
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          UNIQUE (campaign_meta_ad_id, location_id, override_type)
                        )
                        """
                    )
                    cur.execute(
                        "CREATE INDEX IF NOT EXISTS idx_meta_ad_templates_account_id ON meta_ad_templates(account_id)"
                    )
                conn.commit()

    # -----------------------------
    # Accounts
    # -----------------------------

    def save_meta_account(
        self,
        *,
        account_id: str,
        account_name: str,
        access_token: str,
        user_id: Optional[str] = None,
        refresh_token: Optional[str] = None,
        token_expires_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        with store_errors("save Meta account"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        INSERT INTO meta_accounts
                          (user_id, account_id, account_name, access_token, refresh_token, token_expires_at)
                        VALUES (%s, %s, %s, %s, %s, %s)
                        RETURNING id, user_id, account_id, account_name, token_expires_at, is_active, created_at
                        """,
                        (user_id, normalize_ad_account_id(account_id), account_name, access_token,
                         refresh_token, token_expires_at),
                    )
                    row = cur.fetchone()
                conn.commit()
        return _stringify_ids(row, "id", "user_id")

    def get_meta_accounts(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Active accounts, newest first. Tokens are not returned."""
        sql = (
            "SELECT id, user_id, account_id, account_name, token_expires_at, is_active, created_at "
            "FROM meta_accounts WHERE is_active = true"
        )
        params: tuple = ()
        if user_id:
            sql += " AND user_id = %s"
            params = (user_id,)
        sql += " ORDER BY created_at DESC"
        with store_errors("fetch Meta accounts"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(sql, params)
                    rows = cur.fetchall()
        return [_stringify_ids(r, "id", "user_id") for r in rows]

    def delete_meta_account(self, account_row_id: str) -> None:
        with store_errors("delete Meta account"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "UPDATE meta_accounts SET is_active = false, updated_at = now() WHERE id = %s",
                        (account_row_id,),
                    )
                conn.commit()

    # -----------------------------
    # Ad templates (cache)
    # -----------------------------

    def upsert_ad_templates(self, records: Sequence[MetaAdTemplateRecord]) -> int:
        if not records:
            return 0
        rows = [
            (
                r.meta_ad_id,
                r.name,
                to_jsonb(r.creative or {}),
                to_jsonb(r.targeting),
                r.campaign_id,
                r.ad_set_id,
                r.account_id,
                r.status,
                to_jsonb(r.performance_metrics),
                r.last_synced or datetime.now(timezone.utc),
            )
            for r in records
        ]
        with store_errors("sync Meta ads"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.executemany(
                        """
                        INSERT INTO meta_ad_templates
                          (meta_ad_id, name, creative, targeting, campaign_id, ad_set_id, account_id,
                           status, performance_metrics, last_synced)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT (meta_ad_id) DO UPDATE SET
                          name = EXCLUDED.name,
                          creative = EXCLUDED.creative,
                          targeting = EXCLUDED.targeting,
                          campaign_id = EXCLUDED.campaign_id,
                          ad_set_id = EXCLUDED.ad_set_id,
                          account_id = EXCLUDED.account_id,
                          status = EXCLUDED.status,
                          performance_metrics = COALESCE(EXCLUDED.performance_metrics,
                                                         meta_ad_templates.performance_metrics),
                          last_synced = EXCLUDED.last_synced,
                          updated_at = now()
                        """,
                        rows,
                    )
                conn.commit()
        return len(rows)

    def get_ad_templates(
        self,
        account_id: Optional[str] = None,
        filters: Optional[MetaAdFilters] = None,
    ) -> List[MetaAdTemplateRecord]:
        clauses: List[str] = []
        params: List[Any] = []
        if account_id:
            clauses.append("account_id = %s")
            params.append(account_id)
        if filters is not None:
            if filters.status:
                clauses.append("status = ANY(%s)")
                params.append(list(filters.status))
            if filters.campaign_id:
                clauses.append("campaign_id = %s")
                params.append(filters.campaign_id)
            if filters.ad_set_id:
                clauses.append("ad_set_id = %s")
                params.append(filters.ad_set_id)
            if filters.search_query:
                clauses.append("name ILIKE %s")
                params.append(f"%{filters.search_query}%")

        sql = "SELECT * FROM meta_ad_templates"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY name ASC"
        with store_errors("fetch Meta ad templates"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(sql, params)
                    rows = cur.fetchall()
        return [_template_from_row(r) for r in rows]

    def get_ad_template(self, template_id: str) -> Optional[MetaAdTemplateRecord]:
        with store_errors("fetch Meta ad template"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        "SELECT * FROM meta_ad_templates WHERE id::text = %s OR meta_ad_id = %s",
                        (template_id, template_id),
                    )
                    row = cur.fetchone()
        return _template_from_row(row) if row else None

    def update_ad_template(self, template_id: str, updates: Dict[str, Any]) -> None:
        allowed = {"name", "creative", "targeting", "status", "performance_metrics"}
        unknown = set(updates) - allowed
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not updates:
            return
        values = {
            k: to_jsonb(v) if k in {"creative", "targeting", "performance_metrics"} else v
            for k, v in updates.items()
        }
        assignments = ", ".join(f"{col} = %s" for col in values)
        with store_errors("update Meta ad template"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"UPDATE meta_ad_templates SET {assignments}, updated_at = now() WHERE id::text = %s",
                        (*values.values(), template_id),
                    )
                    n = int(cur.rowcount or 0)
                conn.commit()
        if n == 0:
            raise LookupError(f"Meta ad template not found: {template_id}")

    def clear_cache(self, account_id: Optional[str] = None) -> int:
        with store_errors("clear Meta ad cache"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    if account_id:
                        cur.execute("DELETE FROM meta_ad_templates WHERE account_id = %s", (account_id,))
                    else:
                        cur.execute("DELETE FROM meta_ad_templates")
                    n = int(cur.rowcount or 0)
                conn.commit()
        return n

    def cache_stats(self, account_id: Optional[str] = None) -> Dict[str, Any]:
        sql = "SELECT COUNT(1), MAX(last_synced) FROM meta_ad_templates"
        params: tuple = ()
        if account_id:
            sql += " WHERE account_id = %s"
            params = (account_id,)
        with store_errors("get cache stats"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    total, last_sync = cur.fetchone()
        return {
            "total_ads": int(total or 0),
            "last_sync": last_sync.isoformat() if last_sync else None,
            "account_id": account_id,
        }

    # -----------------------------
    # Campaign selections
    # -----------------------------

    def save_campaign_meta_ads(self, campaign_id: str, ads: Sequence[Dict[str, Any]]) -> None:
        """ads: [{meta_ad_id, meta_ad_name, location_id?, override_settings?}]"""
        if not ads:
            return
        rows = [
            (
                campaign_id,
                a["meta_ad_id"],
                a["meta_ad_name"],
                a.get("location_id"),
                to_jsonb(a.get("override_settings")),
            )
            for a in ads
        ]
        with store_errors("save campaign Meta ads"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.executemany(
                        """
                        INSERT INTO campaign_meta_ads
                          (campaign_id, meta_ad_id, meta_ad_name, location_id, override_settings, is_active)
                        VALUES (%s, %s, %s, %s, %s, true)
                        ON CONFLICT (campaign_id, meta_ad_id) DO UPDATE SET
                          meta_ad_name = EXCLUDED.meta_ad_name,
                          location_id = EXCLUDED.location_id,
                          override_settings = EXCLUDED.override_settings,
                          is_active = true,
                          updated_at = now()
                        """,
                        rows,
                    )
                conn.commit()

    def get_campaign_meta_ads(self, campaign_id: str) -> List[Dict[str, Any]]:
        with store_errors("fetch campaign Meta ads"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        SELECT * FROM campaign_meta_ads
                        WHERE campaign_id = %s AND is_active = true
                        ORDER BY created_at ASC
                        """,
                        (campaign_id,),
                    )
                    rows = cur.fetchall()
        out = []
        for r in rows:
            data = _stringify_ids(r, "id", "campaign_id", "location_id")
            data["override_settings"] = from_jsonb(data.get("override_settings"))
            out.append(data)
        return out

    def update_campaign_meta_ad_override(self, campaign_id: str, meta_ad_id: str, overrides: Dict[str, Any]) -> None:
        with store_errors("update campaign Meta ad overrides"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE campaign_meta_ads SET override_settings = %s, updated_at = now()
                        WHERE campaign_id = %s AND meta_ad_id = %s
                        """,
                        (to_jsonb(overrides), campaign_id, meta_ad_id),
                    )
                conn.commit()

    # -----------------------------
    # Variables / location overrides
    # -----------------------------

    def save_ad_variables(self, meta_ad_id: str, variables: Sequence[TemplateVariable]) -> None:
        if not variables:
            return
        rows = [
            (meta_ad_id, v.name, v.type, v.value, v.is_required, v.description)
            for v in variables
        ]
        with store_errors("save Meta ad variables"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.executemany(
                        """
                        INSERT INTO meta_ad_variables
                          (meta_ad_id, variable_name, variable_type, default_value, is_required, description)
                        VALUES (%s, %s, %s, %s, %s, %s)
                        ON CONFLICT (meta_ad_id, variable_name) DO UPDATE SET
                          variable_type = EXCLUDED.variable_type,
                          default_value = EXCLUDED.default_value,
                          is_required = EXCLUDED.is_required,
                          description = EXCLUDED.description
                        """,
                        rows,
                    )
                conn.commit()

    def get_ad_variables(self, meta_ad_id: str) -> List[TemplateVariable]:
        with store_errors("fetch Meta ad variables"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        SELECT variable_name, variable_type, default_value, is_required, description
                        FROM meta_ad_variables WHERE meta_ad_id = %s
                        ORDER BY variable_name ASC
                        """,
                        (meta_ad_id,),
                    )
                    rows = cur.fetchall()
        return [
            TemplateVariable(name=name, type=vtype, value=default, is_required=required, description=desc)
            for (name, vtype, default, required, desc) in rows
        ]

    def save_location_override(
        self,
        campaign_meta_ad_id: str,
        location_id: str,
        override_type: OverrideType,
        override_data: Dict[str, Any],
    ) -> None:
        if override_type not in ("creative", "targeting", "budget"):
            raise ValueError(f"Unknown override type: {override_type}")
        with store_errors("save location overrides"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO meta_ad_location_overrides
                          (campaign_meta_ad_id, location_id, override_type, override_data)
                        VALUES (%s, %s, %s, %s)
                        ON CONFLICT (campaign_meta_ad_id, location_id, override_type) DO UPDATE SET
                          override_data = EXCLUDED.override_data,
                          updated_at = now()
                        """,
                        (campaign_meta_ad_id, location_id, override_type, to_jsonb(override_data)),
                    )
                conn.commit()

    def get_location_overrides(self, campaign_meta_ad_id: str) -> List[Dict[str, Any]]:
        with store_errors("fetch location overrides"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        SELECT * FROM meta_ad_location_overrides
                        WHERE campaign_meta_ad_id = %s
                        ORDER BY created_at ASC
                        """,
                        (campaign_meta_ad_id,),
                    )
                    rows = cur.fetchall()
        out = []
        for r in rows:
            data = _stringify_ids(r, "id", "campaign_meta_ad_id", "location_id")
            data["override_data"] = from_jsonb(data.get("override_data"))
            out.append(data)
        return out


def _metrics_from_insights(rows: List[dict]) -> Optional[Dict[str, Any]]:
    if not rows:
        return None
    first = rows[0]
    return {k: first.get(k) for k in _METRIC_KEYS if first.get(k) is not None} or None


def sync_meta_ads(
    client: MetaClient,
    store: MetaStorePG,
    *,
    account_id: Optional[str] = None,
    force_refresh: bool = False,
    with_insights: bool = False,
) -> Dict[str, Any]:
    """Pull every ad of the account from Graph into meta_ad_templates.

    force_refresh drops the account's cached rows first, so ads deleted on
    Meta's side disappear from the cache too.
    """
    acct = normalize_ad_account_id(account_id or client.cfg.ad_account_id)
    ads = client.get_ads(acct)

    records: List[MetaAdTemplateRecord] = []
    for ad in ads:
        # Graph returns the bare numeric id; the cache is keyed by act_<id>
        ad.account_id = normalize_ad_account_id(ad.account_id or acct)
        metrics = _metrics_from_insights(client.get_ad_insights(ad.id)) if with_insights else None
        records.append(template_record_from_ad(ad, metrics=metrics))

    removed = store.clear_cache(acct) if force_refresh else 0
    synced = store.upsert_ad_templates(records)
    log.info("Synced %d Meta ads for %s (removed %d cached)", synced, acct, removed)
    return {"account_id": acct, "synced": synced, "removed": removed}
