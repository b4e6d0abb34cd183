"""Named groups of locations, used to select many centers at once."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import psycopg
from psycopg.rows import dict_row

from db import store_errors
from location_store import LocationStorePG, convert_to_location_summary
from models import (
    LocationGroup,
    LocationGroupMember,
    LocationGroupRequest,
    LocationGroupWithMembers,
    LocationSummary,
)

log = logging.getLogger(__name__)


def _group_from_row(row: Dict[str, Any]) -> LocationGroup:
    data = dict(row)
    data["id"] = str(data["id"])
    if data.get("user_id") is not None:
        data["user_id"] = str(data["user_id"])
    return LocationGroup.model_validate(data)


def _member_from_row(row: Dict[str, Any]) -> LocationGroupMember:
    return LocationGroupMember(
        id=str(row["id"]),
        group_id=str(row["group_id"]),
        location_id=str(row["location_id"]),
        is_active=row["is_active"],
        created_at=row.get("created_at"),
    )


class LocationGroupStorePG:
    def __init__(self, database_url: str, *, locations: Optional[LocationStorePG] = None):
        self.database_url = database_url
        # when set, member ids are resolved through it (covers the JSON location source)
        self.locations = locations
        self._init()

    def _conn(self):
        return psycopg.connect(self.database_url)

    def _init(self) -> None:
        with store_errors("initialize location group tables"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS location_groups (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          name VARCHAR(255) NOT NULL,
                          description TEXT,
                          user_id UUID,
                          is_active BOOLEAN NOT NULL DEFAULT true,
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                        )
                        """
                    )
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS location_group_members (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          group_id UUID NOT NULL REFERENCES location_groups(id) ON DELETE CASCADE,
                          location_id UUID NOT NULL,
                          is_active BOOLEAN NOT NULL DEFAULT true,
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          UNIQUE (group_id, location_id)
                        )
                        """
                    )
                conn.commit()

    def get_all_groups(self) -> List[LocationGroup]:
        with store_errors("fetch location groups"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute("SELECT * FROM location_groups WHERE is_active = true ORDER BY name")
                    rows = cur.fetchall()
        return [_group_from_row(r) for r in rows]

    def get_groups_with_location_counts(self) -> List[LocationGroup]:
        with store_errors("fetch groups with counts"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        SELECT g.*, COUNT(m.id) AS location_count
                        FROM location_groups g
                        LEFT JOIN location_group_members m
                          ON m.group_id = g.id AND m.is_active = true
                        WHERE g.is_active = true
                        GROUP BY g.id
                        ORDER BY g.name
                        """
                    )
                    rows = cur.fetchall()
        return [_group_from_row(r) for r in rows]

    def get_group_by_id(self, group_id: str) -> Optional[LocationGroupWithMembers]:
        with store_errors("fetch location group"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        "SELECT * FROM location_groups WHERE id = %s AND is_active = true",
                        (group_id,),
                    )
                    row = cur.fetchone()
                    if not row:
                        return None
                    cur.execute(
                        "SELECT * FROM location_group_members WHERE group_id = %s AND is_active = true",
                        (group_id,),
                    )
                    members = [_member_from_row(m) for m in cur.fetchall()]
        group = _group_from_row(row)
        return LocationGroupWithMembers(
            **group.model_dump(exclude={"location_count"}),
            location_count=len(members),
            members=members,
            locations=self.get_group_locations(group_id),
        )

    def create_group(self, request: LocationGroupRequest, user_id: Optional[str] = None) -> LocationGroup:
        name = (request.name or "").strip()
        if not name:
            raise ValueError("Group name is required")
        with store_errors("create location group"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        INSERT INTO location_groups (name, description, user_id, is_active)
                        VALUES (%s, %s, %s, true)
                        RETURNING *
                        """,
                        (name, request.description, user_id),
                    )
                    row = cur.fetchone()
                conn.commit()
        group = _group_from_row(row)
        if request.location_ids:
            self.add_locations_to_group(group.id, request.location_ids)
        log.info("Created location group %s with %d locations", group.id, len(request.location_ids))
        return group

    def update_group(self, group_id: str, request: LocationGroupRequest) -> LocationGroup:
        values = request.model_dump(exclude_unset=True, include={"name", "description", "is_active"})
        if "name" in values and not (values["name"] or "").strip():
            raise ValueError("Group name is required")
        if not values:
            existing = self.get_group_by_id(group_id)
            if existing is None:
                raise LookupError(f"Location group not found: {group_id}")
            return LocationGroup(**existing.model_dump(exclude={"members", "locations"}))

        assignments = ", ".join(f"{col} = %s" for col in values)
        with store_errors("update location group"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"UPDATE location_groups SET {assignments}, updated_at = now() WHERE id = %s RETURNING *",
                        (*values.values(), group_id),
                    )
                    row = cur.fetchone()
                conn.commit()
        if row is None:
            raise LookupError(f"Location group not found: {group_id}")
        return _group_from_row(row)

    def delete_group(self, group_id: str) -> None:
        """Soft delete: the group stops being listed, members are kept."""
        with store_errors("delete location group"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "UPDATE location_groups SET is_active = false, updated_at = now() WHERE id = %s",
                        (group_id,),
                    )
                conn.commit()

    def add_locations_to_group(self, group_id: str, location_ids: Sequence[str]) -> None:
        if not location_ids:
            return
        with store_errors("add locations to group"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.executemany(
                        """
                        INSERT INTO location_group_members (group_id, location_id, is_active)
                        VALUES (%s, %s, true)
                        ON CONFLICT (group_id, location_id) DO UPDATE SET is_active = true
                        """,
                        [(group_id, loc_id) for loc_id in location_ids],
                    )
                conn.commit()

    def remove_locations_from_group(self, group_id: str, location_ids: Sequence[str]) -> None:
        if not location_ids:
            return
        with store_errors("remove locations from group"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "DELETE FROM location_group_members WHERE group_id = %s AND location_id::text = ANY(%s)",
                        (group_id, list(location_ids)),
                    )
                conn.commit()

    def get_group_locations(self, group_id: str) -> List[LocationSummary]:
        if self.locations is not None:
            with store_errors("fetch group locations"):
                with self._conn() as conn:
                    with conn.cursor() as cur:
                        cur.execute(
                            "SELECT location_id FROM location_group_members WHERE group_id = %s AND is_active = true",
                            (group_id,),
                        )
                        ids = {str(r[0]) for r in cur.fetchall()}
            return [loc for loc in self.locations.get_all_locations() if loc.id in ids]

        with store_errors("fetch group locations"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        SELECT l.id, l.code, l.name, l.display_name, l.state, l.location,
                               l.address_info, l.contact_info
                        FROM location_group_members m
                        JOIN locations l ON l.id = m.location_id
                        WHERE m.group_id = %s AND m.is_active = true
                        ORDER BY l.name
                        """,
                        (group_id,),
                    )
                    rows = cur.fetchall()
        return [convert_to_location_summary(r) for r in rows]
