"""Shared database helpers for the psycopg-backed stores."""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

import psycopg
from dotenv import load_dotenv


class StoreError(RuntimeError):
    """A database call failed. The message names the operation that failed."""


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Re-raise psycopg errors as StoreError("Failed to <action>: ...")."""
    try:
        yield
    except psycopg.Error as e:
        raise StoreError(f"Failed to {action}: {e}") from e


def to_jsonb(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def from_jsonb(value: Any) -> Any:
    # psycopg already decodes json/jsonb columns; text columns need a parse
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


@dataclass(frozen=True)
class AppConfig:
    database_url: Optional[str] = None
    locations_json_path: Optional[str] = None
    service_api_key: Optional[str] = None

    @staticmethod
    def from_env() -> "AppConfig":
        """Loads service settings from environment variables (optionally via .env)."""
        load_dotenv(override=False)
        return AppConfig(
            database_url=os.getenv("DATABASE_URL", "").strip() or None,
            locations_json_path=os.getenv("LOCATIONS_JSON_PATH", "").strip() or None,
            service_api_key=os.getenv("SERVICE_API_KEY", "").strip() or None,
        )

    def require_database(self) -> str:
        if not self.database_url:
            raise ValueError("DATABASE_URL is not set.")
        return self.database_url
