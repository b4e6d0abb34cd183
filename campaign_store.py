"""campaign_store.py

Persist saved campaigns and the locations they target.

Tables (created automatically):
  - campaigns
  - campaign_locations(campaign_id, location_id) unique

Deletes are soft: rows get is_active=false and drop out of every listing.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import psycopg
from psycopg.rows import dict_row

from db import from_jsonb, store_errors, to_jsonb
from location_store import convert_to_location_summary
from models import Campaign, CampaignLocation, CampaignLocationUpdate, CampaignUpdate, CampaignWithLocations

log = logging.getLogger(__name__)

_CAMPAIGN_COLUMNS = (
    "user_id",
    "name",
    "platform",
    "objective",
    "test_type",
    "duration",
    "budget",
    "bid_strategy",
    "start_date",
    "end_date",
    "default_radius_miles",
    "status",
    "configuration",
    "notes",
)


def _campaign_from_row(row: Dict[str, Any]) -> Campaign:
    data = dict(row)
    data["id"] = str(data["id"])
    if data.get("user_id") is not None:
        data["user_id"] = str(data["user_id"])
    data["configuration"] = from_jsonb(data.get("configuration"))
    return Campaign.model_validate(data)


def _campaign_location_from_row(row: Dict[str, Any]) -> CampaignLocation:
    return CampaignLocation(
        id=str(row["id"]),
        campaign_id=str(row["campaign_id"]),
        location_id=str(row["location_id"]),
        location_budget=row.get("location_budget"),
        location_radius_miles=row.get("location_radius_miles"),
        is_active=row["is_active"],
        created_at=row.get("created_at"),
    )


class CampaignStorePG:
    def __init__(self, database_url: str):
        self.database_url = database_url
        self._init()

    def _conn(self):
        return psycopg.connect(self.database_url)

    def _init(self) -> None:
        with store_errors("initialize campaign tables"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS campaigns (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          user_id UUID,
                          name VARCHAR(255) NOT NULL,
                          platform VARCHAR(50) NOT NULL DEFAULT 'Meta',
                          objective VARCHAR(100) NOT NULL DEFAULT 'Engagement',
                          test_type VARCHAR(50) DEFAULT 'LocalTest',
                          duration VARCHAR(50) DEFAULT 'Evergreen',
                          budget DECIMAL(10, 2) NOT NULL,
                          bid_strategy VARCHAR(100) DEFAULT 'Highest volume or value',
                          start_date TIMESTAMPTZ,
                          end_date TIMESTAMPTZ,
                          default_radius_miles DECIMAL(6, 2) DEFAULT 5,
                          status VARCHAR(20) DEFAULT 'Draft'
                            CHECK (status IN ('Draft', 'Active', 'Paused', 'Completed')),
                          configuration JSONB,
                          notes TEXT,
                          is_active BOOLEAN NOT NULL DEFAULT true,
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                        )
                        """
                    )
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS campaign_locations (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          campaign_id UUID NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
                          location_id UUID NOT NULL,
                          location_budget DECIMAL(10, 2),
                          location_radius_miles DECIMAL(6, 2),
                          is_active BOOLEAN NOT NULL DEFAULT true,
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          UNIQUE (campaign_id, location_id)
                        )
                        """
                    )
                    cur.execute("CREATE INDEX IF NOT EXISTS idx_campaigns_user_id ON campaigns(user_id)")
                    cur.execute(
                        "CREATE INDEX IF NOT EXISTS idx_campaign_locations_campaign_id ON campaign_locations(campaign_id)"
                    )
                conn.commit()

    # -----------------------------
    # Campaigns
    # -----------------------------

    def create_campaign(self, campaign: Campaign, user_id: Optional[str] = None) -> Campaign:
        data = campaign.model_dump(include=set(_CAMPAIGN_COLUMNS))
        data["user_id"] = user_id or campaign.user_id
        data["configuration"] = to_jsonb(data.get("configuration"))
        cols = list(data.keys())
        with store_errors("create campaign"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"INSERT INTO campaigns ({', '.join(cols)}) VALUES ({', '.join(['%s'] * len(cols))}) RETURNING *",
                        tuple(data.values()),
                    )
                    row = cur.fetchone()
                conn.commit()
        created = _campaign_from_row(row)
        log.info("Created campaign %s (%s)", created.id, created.name)
        return created

    def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        with store_errors("fetch campaign"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute("SELECT * FROM campaigns WHERE id = %s", (campaign_id,))
                    row = cur.fetchone()
        return _campaign_from_row(row) if row else None

    def list_campaigns(self, user_id: Optional[str] = None) -> List[Campaign]:
        sql = "SELECT * FROM campaigns WHERE is_active = true"
        params: tuple = ()
        if user_id:
            sql += " AND user_id = %s"
            params = (user_id,)
        sql += " ORDER BY created_at DESC"
        with store_errors("fetch campaigns"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(sql, params)
                    rows = cur.fetchall()
        return [_campaign_from_row(r) for r in rows]

    def update_campaign(self, campaign_id: str, update: CampaignUpdate) -> Campaign:
        values = update.model_dump(exclude_unset=True)
        if "name" in values and not (values["name"] or "").strip():
            raise ValueError("Campaign name is required")
        if "configuration" in values:
            values["configuration"] = to_jsonb(values["configuration"])
        if not values:
            existing = self.get_campaign(campaign_id)
            if existing is None:
                raise LookupError(f"Campaign not found: {campaign_id}")
            return existing

        assignments = ", ".join(f"{col} = %s" for col in values)
        with store_errors("update campaign"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"UPDATE campaigns SET {assignments}, updated_at = now() WHERE id = %s RETURNING *",
                        (*values.values(), campaign_id),
                    )
                    row = cur.fetchone()
                conn.commit()
        if row is None:
            raise LookupError(f"Campaign not found: {campaign_id}")
        return _campaign_from_row(row)

    def delete_campaign(self, campaign_id: str) -> None:
        with store_errors("delete campaign"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "UPDATE campaigns SET is_active = false, updated_at = now() WHERE id = %s",
                        (campaign_id,),
                    )
                conn.commit()

    # -----------------------------
    # Campaign locations
    # -----------------------------

    def add_location_to_campaign(
        self,
        campaign_id: str,
        location_id: str,
        *,
        location_budget: Optional[float] = None,
        location_radius_miles: Optional[float] = None,
    ) -> CampaignLocation:
        rows = self.bulk_add_locations_to_campaign(
            campaign_id,
            [location_id],
            default_budget=location_budget,
            default_radius=location_radius_miles,
        )
        return rows[0]

    def bulk_add_locations_to_campaign(
        self,
        campaign_id: str,
        location_ids: Sequence[str],
        *,
        default_budget: Optional[float] = None,
        default_radius: Optional[float] = None,
    ) -> List[CampaignLocation]:
        """Adds (or re-activates) locations; per-location overrides are reset to the given defaults."""
        out: List[CampaignLocation] = []
        if not location_ids:
            return out
        with store_errors("add locations to campaign"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    for location_id in location_ids:
                        cur.execute(
                            """
                            INSERT INTO campaign_locations
                              (campaign_id, location_id, location_budget, location_radius_miles, is_active)
                            VALUES (%s, %s, %s, %s, true)
                            ON CONFLICT (campaign_id, location_id) DO UPDATE SET
                              location_budget = EXCLUDED.location_budget,
                              location_radius_miles = EXCLUDED.location_radius_miles,
                              is_active = true
                            RETURNING *
                            """,
                            (campaign_id, location_id, default_budget, default_radius),
                        )
                        out.append(_campaign_location_from_row(cur.fetchone()))
                conn.commit()
        return out

    def update_campaign_location(
        self,
        campaign_id: str,
        location_id: str,
        update: CampaignLocationUpdate,
    ) -> CampaignLocation:
        values = update.model_dump(exclude_unset=True)
        if not values:
            raise ValueError("Nothing to update")
        assignments = ", ".join(f"{col} = %s" for col in values)
        with store_errors("update campaign location"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"""
                        UPDATE campaign_locations SET {assignments}
                        WHERE campaign_id = %s AND location_id = %s
                        RETURNING *
                        """,
                        (*values.values(), campaign_id, location_id),
                    )
                    row = cur.fetchone()
                conn.commit()
        if row is None:
            raise LookupError(f"Location {location_id} is not part of campaign {campaign_id}")
        return _campaign_location_from_row(row)

    def remove_location_from_campaign(self, campaign_id: str, location_id: str) -> None:
        with store_errors("remove location from campaign"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE campaign_locations SET is_active = false
                        WHERE campaign_id = %s AND location_id = %s
                        """,
                        (campaign_id, location_id),
                    )
                conn.commit()

    def get_campaign_with_locations(self, campaign_id: str) -> Optional[CampaignWithLocations]:
        campaign = self.get_campaign(campaign_id)
        if campaign is None:
            return None
        with store_errors("fetch campaign locations"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        SELECT cl.*,
                               l.code, l.name, l.display_name, l.state, l.location,
                               l.address_info, l.contact_info
                        FROM campaign_locations cl
                        LEFT JOIN locations l ON l.id = cl.location_id
                        WHERE cl.campaign_id = %s AND cl.is_active = true
                        """,
                        (campaign_id,),
                    )
                    rows = cur.fetchall()

        locations: List[CampaignLocation] = []
        for row in rows:
            cl = _campaign_location_from_row(row)
            if row.get("name") is not None:
                cl.location = convert_to_location_summary({**row, "id": row["location_id"]})
            locations.append(cl)
        return CampaignWithLocations(**campaign.model_dump(), locations=locations)
