"""Location reads and per-location targeting configuration.

Locations come from the `locations` table, or from a centers JSON export when
LOCATIONS_JSON_PATH is set. Configurations always live in `location_configs`.
The corporate placeholder center (code CORP) is never returned.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import psycopg
from psycopg.rows import dict_row

from db import from_jsonb, store_errors, to_jsonb
from models import (
    CORPORATE_LOCATION_CODE,
    LocationConfig,
    LocationConfigRequest,
    LocationFilters,
    LocationSummary,
    LocationWithConfig,
    PaginatedResponse,
)
from template_vars import Coordinates

log = logging.getLogger(__name__)


# -----------------------------
# Raw center records -> summaries
# -----------------------------

def _obj(value: Any) -> Dict[str, Any]:
    value = from_jsonb(value)
    return value if isinstance(value, dict) else {}


def _state_code(raw: Dict[str, Any]) -> str:
    return _obj(raw.get("state")).get("short_name") or ""


def _city(raw: Dict[str, Any]) -> str:
    return _obj(raw.get("address_info")).get("city") or ""


def _zip(raw: Dict[str, Any]) -> str:
    return _obj(raw.get("address_info")).get("zip_code") or ""


def convert_to_location_summary(raw: Dict[str, Any]) -> LocationSummary:
    address_info = _obj(raw.get("address_info"))
    phone = _obj(_obj(raw.get("contact_info")).get("phone_1"))
    coords = _obj(raw.get("location"))

    name = raw.get("name") or "Unknown Location"
    city = address_info.get("city") or "Unknown City"
    state = _state_code(raw) or "Unknown State"
    zip_code = address_info.get("zip_code") or ""

    street = address_info.get("address_1") or "Unknown Address"
    if address_info.get("address_2"):
        street = f"{street}, {address_info['address_2']}"

    return LocationSummary(
        id=str(raw.get("id") or ""),
        name=name,
        display_name=raw.get("display_name") or name,
        city=city,
        state=state,
        zip_code=zip_code,
        phone_number=phone.get("display_number") or "No phone available",
        address=f"{street}, {city}, {state} {zip_code}".rstrip(),
        coordinates=Coordinates(
            latitude=float(coords.get("latitude") or 0),
            longitude=float(coords.get("longitude") or 0),
        ),
        location_prime=raw.get("code") or "UNKNOWN",
    )


def _is_target(raw: Dict[str, Any]) -> bool:
    return raw.get("code") != CORPORATE_LOCATION_CODE


def filter_raw_locations(raws: Iterable[Dict[str, Any]], filters: Optional[LocationFilters] = None) -> List[Dict[str, Any]]:
    """Same semantics as the SQL search: substring on name/display name/city, exact lists for the rest."""
    out = [r for r in raws if _is_target(r)]
    if filters is None:
        return out
    if filters.search:
        term = filters.search.lower()
        out = [
            r for r in out
            if term in (r.get("name") or "").lower()
            or term in (r.get("display_name") or "").lower()
            or term in _city(r).lower()
        ]
    if filters.states:
        out = [r for r in out if _state_code(r) in filters.states]
    if filters.cities:
        out = [r for r in out if _city(r) in filters.cities]
    if filters.zip_codes:
        out = [r for r in out if _zip(r) in filters.zip_codes]
    return out


def summarize(raws: Iterable[Dict[str, Any]]) -> List[LocationSummary]:
    return sorted((convert_to_location_summary(r) for r in raws), key=lambda s: s.name.lower())


def unique_states(raws: Iterable[Dict[str, Any]]) -> List[str]:
    return sorted({_state_code(r) for r in raws if _is_target(r) and _state_code(r)})


def unique_cities(raws: Iterable[Dict[str, Any]], state: Optional[str] = None) -> List[str]:
    return sorted({
        _city(r) for r in raws
        if _is_target(r) and _city(r) and (not state or _state_code(r) == state)
    })


def paginate(items: Sequence[Any], *, page: int = 1, limit: int = 50) -> PaginatedResponse:
    if page < 1 or limit < 1:
        raise ValueError("page and limit must be positive")
    start = (page - 1) * limit
    return PaginatedResponse(
        items=list(items[start:start + limit]),
        total=len(items),
        page=page,
        limit=limit,
        total_pages=math.ceil(len(items) / limit) if items else 0,
    )


def attach_configs(locations: Iterable[LocationSummary], configs: Iterable[LocationConfig]) -> List[LocationWithConfig]:
    by_location = {c.location_id: c for c in configs}
    out: List[LocationWithConfig] = []
    for loc in locations:
        out.append(LocationWithConfig(**loc.model_dump(), config=by_location.get(loc.id)))
    return out


class JsonLocationSource:
    """Centers export file: {"centers": [...]}, read once and cached."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._centers: Optional[List[Dict[str, Any]]] = None

    def centers(self) -> List[Dict[str, Any]]:
        if self._centers is None:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            centers = data.get("centers") if isinstance(data, dict) else None
            if not isinstance(centers, list):
                raise ValueError("Invalid JSON structure: centers array not found")
            self._centers = centers
            log.info("Loaded %d centers from %s", len(centers), self.path)
        return self._centers


# -----------------------------
# Postgres store
# -----------------------------

_CONFIG_COLUMNS = (
    "budget",
    "custom_settings",
    "notes",
    "is_active",
    "primary_lat",
    "primary_lng",
    "radius_miles",
    "coordinate_list",
    "landing_page_url",
)
_JSON_COLUMNS = {"custom_settings", "coordinate_list"}


def _config_from_row(row: Dict[str, Any]) -> LocationConfig:
    data = dict(row)
    data["id"] = str(data["id"]) if data.get("id") is not None else None
    data["location_id"] = str(data["location_id"])
    data["user_id"] = str(data["user_id"]) if data.get("user_id") is not None else None
    for col in _JSON_COLUMNS:
        data[col] = from_jsonb(data.get(col))
    return LocationConfig.model_validate(data)


def _column_values(request: LocationConfigRequest, *, only_set: bool) -> Dict[str, Any]:
    dumped = request.model_dump(exclude_unset=only_set, exclude={"location_id"})
    out: Dict[str, Any] = {}
    for col in _CONFIG_COLUMNS:
        if col not in dumped:
            continue
        value = dumped[col]
        out[col] = to_jsonb(value) if col in _JSON_COLUMNS else value
    return out


class LocationStorePG:
    def __init__(self, database_url: str, *, json_source: Optional[JsonLocationSource] = None):
        self.database_url = database_url
        self.json_source = json_source
        self._init()

    def _conn(self):
        return psycopg.connect(self.database_url)

    def _init(self) -> None:
        with store_errors("initialize location tables"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS locations (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          code VARCHAR(50) NOT NULL UNIQUE,
                          name VARCHAR(255) NOT NULL,
                          display_name VARCHAR(255) NOT NULL,
                          description TEXT,
                          country JSONB,
                          state JSONB NOT NULL,
                          location JSONB NOT NULL,
                          currency JSONB,
                          address_info JSONB NOT NULL,
                          contact_info JSONB NOT NULL,
                          additional_info JSONB,
                          settings JSONB,
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                        )
                        """
                    )
                    # no FK: configs may target centers that only exist in the JSON source
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS location_configs (
                          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                          location_id UUID NOT NULL,
                          user_id UUID,
                          budget DECIMAL(10, 2),
                          custom_settings JSONB,
                          notes TEXT,
                          is_active BOOLEAN NOT NULL DEFAULT true,
                          primary_lat DECIMAL(10, 8),
                          primary_lng DECIMAL(11, 8),
                          radius_miles DECIMAL(6, 2),
                          coordinate_list JSONB,
                          landing_page_url TEXT,
                          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                          UNIQUE (location_id, user_id)
                        )
                        """
                    )
                    cur.execute("CREATE INDEX IF NOT EXISTS idx_locations_name ON locations(name)")
                    cur.execute(
                        "CREATE INDEX IF NOT EXISTS idx_location_configs_location_id ON location_configs(location_id)"
                    )
                conn.commit()

    # -----------------------------
    # Raw reads
    # -----------------------------

    def _query_raw(self, where: str = "", params: Sequence[Any] = (), *, action: str) -> List[Dict[str, Any]]:
        sql = (
            "SELECT id, code, name, display_name, state, location, address_info, contact_info "
            "FROM locations WHERE code <> %s"
        )
        if where:
            sql += " AND " + where
        sql += " ORDER BY name"
        with store_errors(action):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(sql, (CORPORATE_LOCATION_CODE, *params))
                    return list(cur.fetchall())

    def _raw_all(self) -> List[Dict[str, Any]]:
        if self.json_source is not None:
            return self.json_source.centers()
        return self._query_raw(action="fetch locations")

    # -----------------------------
    # Locations
    # -----------------------------

    def get_all_locations(self) -> List[LocationSummary]:
        return summarize(filter_raw_locations(self._raw_all()))

    def get_location_by_id(self, location_id: str) -> Optional[LocationSummary]:
        if self.json_source is not None:
            for raw in self.json_source.centers():
                if str(raw.get("id")) == location_id:
                    return convert_to_location_summary(raw)
            return None
        rows = self._query_raw("id::text = %s", (location_id,), action="fetch location")
        return convert_to_location_summary(rows[0]) if rows else None

    def search_locations(self, filters: LocationFilters) -> List[LocationSummary]:
        if self.json_source is not None:
            return summarize(filter_raw_locations(self.json_source.centers(), filters))

        clauses: List[str] = []
        params: List[Any] = []
        if filters.search:
            term = f"%{filters.search}%"
            clauses.append("(name ILIKE %s OR display_name ILIKE %s OR address_info->>'city' ILIKE %s)")
            params.extend([term, term, term])
        if filters.states:
            clauses.append("state->>'short_name' = ANY(%s)")
            params.append(list(filters.states))
        if filters.cities:
            clauses.append("address_info->>'city' = ANY(%s)")
            params.append(list(filters.cities))
        if filters.zip_codes:
            clauses.append("address_info->>'zip_code' = ANY(%s)")
            params.append(list(filters.zip_codes))
        rows = self._query_raw(" AND ".join(clauses), params, action="search locations")
        return [convert_to_location_summary(r) for r in rows]

    def get_locations_by_state(self, state: str) -> List[LocationSummary]:
        return self.search_locations(LocationFilters(states=[state]))

    def get_unique_states(self) -> List[str]:
        return unique_states(self._raw_all())

    def get_unique_cities(self, state: Optional[str] = None) -> List[str]:
        return unique_cities(self._raw_all(), state)

    def bulk_insert_locations(self, centers: Sequence[Dict[str, Any]]) -> int:
        """Inserts raw center records; existing codes are left untouched."""
        rows = [
            (
                c["code"],
                c["name"],
                c.get("display_name") or c["name"],
                to_jsonb(c.get("country")),
                to_jsonb(c.get("state") or {}),
                to_jsonb(c.get("location") or {}),
                to_jsonb(c.get("currency")),
                to_jsonb(c.get("address_info") or {}),
                to_jsonb(c.get("contact_info") or {}),
            )
            for c in centers
        ]
        if not rows:
            return 0
        with store_errors("bulk insert locations"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.executemany(
                        """
                        INSERT INTO locations
                          (code, name, display_name, country, state, location, currency, address_info, contact_info)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT (code) DO NOTHING
                        """,
                        rows,
                    )
                conn.commit()
        log.info("Bulk inserted %d locations", len(rows))
        return len(rows)

    # -----------------------------
    # Configs
    # -----------------------------

    @staticmethod
    def _owner_clause(user_id: Optional[str]) -> tuple:
        if user_id:
            return "user_id = %s", (user_id,)
        return "user_id IS NULL", ()

    def get_location_config(self, location_id: str, user_id: Optional[str] = None) -> Optional[LocationConfig]:
        owner, owner_params = self._owner_clause(user_id)
        with store_errors("fetch location config"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"SELECT * FROM location_configs WHERE location_id = %s AND {owner}",
                        (location_id, *owner_params),
                    )
                    row = cur.fetchone()
        return _config_from_row(row) if row else None

    def list_location_configs(self, user_id: Optional[str] = None) -> List[LocationConfig]:
        owner, owner_params = self._owner_clause(user_id)
        with store_errors("fetch location configs"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(f"SELECT * FROM location_configs WHERE {owner}", owner_params)
                    rows = cur.fetchall()
        return [_config_from_row(r) for r in rows]

    def create_location_config(self, request: LocationConfigRequest, user_id: Optional[str] = None) -> LocationConfig:
        if not request.location_id:
            raise ValueError("location_id is required")
        values = _column_values(request, only_set=False)
        if values.get("is_active") is None:
            values["is_active"] = True
        cols = ["location_id", "user_id", *values.keys()]
        placeholders = ", ".join(["%s"] * len(cols))
        with store_errors("create location config"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"INSERT INTO location_configs ({', '.join(cols)}) VALUES ({placeholders}) RETURNING *",
                        (request.location_id, user_id, *values.values()),
                    )
                    row = cur.fetchone()
                conn.commit()
        return _config_from_row(row)

    def update_location_config(
        self,
        location_id: str,
        request: LocationConfigRequest,
        user_id: Optional[str] = None,
    ) -> LocationConfig:
        values = _column_values(request, only_set=True)
        if not values:
            existing = self.get_location_config(location_id, user_id)
            if existing is None:
                raise LookupError(f"No location config for location {location_id}")
            return existing

        owner, owner_params = self._owner_clause(user_id)
        assignments = ", ".join(f"{col} = %s" for col in values)
        with store_errors("update location config"):
            with self._conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"""
                        UPDATE location_configs
                        SET {assignments}, updated_at = now()
                        WHERE location_id = %s AND {owner}
                        RETURNING *
                        """,
                        (*values.values(), location_id, *owner_params),
                    )
                    row = cur.fetchone()
                conn.commit()
        if row is None:
            raise LookupError(f"No location config for location {location_id}")
        return _config_from_row(row)

    def delete_location_config(self, location_id: str, user_id: Optional[str] = None) -> bool:
        owner, owner_params = self._owner_clause(user_id)
        with store_errors("delete location config"):
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"DELETE FROM location_configs WHERE location_id = %s AND {owner}",
                        (location_id, *owner_params),
                    )
                    n = int(cur.rowcount or 0)
                conn.commit()
        return n > 0

    def get_locations_with_configs(self, user_id: Optional[str] = None) -> List[LocationWithConfig]:
        return attach_configs(self.get_all_locations(), self.list_location_configs(user_id))
