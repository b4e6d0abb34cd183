"""
Meta Graph API client
=====================

Read/write access to the ad account whose ads are used as campaign templates:
accounts, campaigns, ad sets, ads, creatives and insights.

One `MetaClient` per `MetaConfig`. Nothing here is module-global, so tests and
multi-account callers can hold as many clients as they need.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from dotenv import load_dotenv

from models import MetaAd, MetaAdCreative, MetaAdFilters
from token_store import get_valid_access_token

log = logging.getLogger(__name__)

DEFAULT_API_VERSION = "v19.0"

ACCOUNT_FIELDS = (
    "id,name,account_id,account_status,account_type,business_name,currency,timezone_name,"
    "timezone_offset_hours_utc,is_personal,is_prepay_account,business_city,business_state,"
    "business_country_code,created_time"
)
CAMPAIGN_FIELDS = (
    "id,name,objective,status,special_ad_categories,created_time,updated_time,start_time,stop_time,"
    "daily_budget,lifetime_budget,budget_remaining,buying_type,spend_cap,bid_strategy,"
    "configured_status,effective_status,account_id"
)
ADSET_FIELDS = (
    "id,name,campaign_id,status,daily_budget,lifetime_budget,budget_remaining,bid_amount,bid_info,"
    "billing_event,optimization_goal,targeting,created_time,updated_time,start_time,end_time,"
    "configured_status,effective_status,account_id"
)
CREATIVE_FIELDS = (
    "id,name,title,body,call_to_action_type,image_url,image_hash,video_id,thumbnail_url,"
    "object_story_spec,status"
)
AD_FIELDS = (
    "id,name,status,configured_status,effective_status,campaign_id,adset_id,account_id,bid_amount,"
    f"bid_info,targeting,created_time,updated_time,creative{{{CREATIVE_FIELDS}}}"
)
INSIGHT_FIELDS = (
    "impressions,clicks,spend,ctr,cpc,cpm,reach,frequency,actions,action_values,"
    "cost_per_action_type,unique_actions"
)

# Graph error codes worth retrying: 4 app rate limit, 17 user rate limit.
RETRYABLE_CODES = {4, 17}
RETRYABLE_HTTP = {429, 500, 502, 503, 504}
INVALID_TOKEN_CODE = 190


# -----------------------------
# Exceptions
# -----------------------------

class MetaAPIError(RuntimeError):
    def __init__(self, message: str, *, http_status: int | None = None, error: dict | None = None):
        super().__init__(message)
        self.http_status = http_status
        self.error = error or {}

    @property
    def code(self) -> Optional[int]:
        code = self.error.get("code")
        return int(code) if isinstance(code, int) or (isinstance(code, str) and code.isdigit()) else None


# -----------------------------
# Config
# -----------------------------

@dataclass(frozen=True)
class MetaConfig:
    access_token: str
    ad_account_id: str
    api_version: str = DEFAULT_API_VERSION
    app_secret: str | None = None
    timeout_s: int = 30

    @staticmethod
    def from_env() -> "MetaConfig":
        """Loads config from environment variables (optionally via .env)."""
        load_dotenv(override=False)

        account_id = os.getenv("META_AD_ACCOUNT_ID", "").strip()
        api_version = os.getenv("META_API_VERSION", DEFAULT_API_VERSION).strip() or DEFAULT_API_VERSION
        app_secret = os.getenv("META_APP_SECRET", "").strip() or None

        # "db" reads the token of the user's active row in meta_accounts
        token_source = os.getenv("META_TOKEN_SOURCE", "").strip().lower()
        database_url = os.getenv("DATABASE_URL", "").strip()

        if token_source == "db":
            if not database_url:
                raise ValueError("META_TOKEN_SOURCE=db but DATABASE_URL is not set.")
            user_id = os.getenv("META_USER_ID", "").strip() or None
            token, db_account_id = get_valid_access_token(database_url, user_id=user_id)
            account_id = account_id or db_account_id
        else:
            token = os.getenv("META_ACCESS_TOKEN", "").strip()

        if not token:
            raise ValueError(
                "Missing access token. Set META_ACCESS_TOKEN or set META_TOKEN_SOURCE=db with an active meta_accounts row."
            )
        if not account_id:
            raise ValueError("Missing META_AD_ACCOUNT_ID in environment (.env).")

        return MetaConfig(
            access_token=token,
            ad_account_id=normalize_ad_account_id(account_id),
            api_version=api_version,
            app_secret=app_secret,
        )


def normalize_ad_account_id(ad_account_id: str) -> str:
    """
    Meta endpoints use act_<AD_ACCOUNT_ID>.
    Accept either 'act_123' or '123' from the user.
    """
    ad_account_id = ad_account_id.strip()
    if ad_account_id.startswith("act_"):
        return ad_account_id
    if ad_account_id.isdigit():
        return f"act_{ad_account_id}"
    return ad_account_id


# -----------------------------
# Payload helpers
# -----------------------------

def _creative_from_graph(raw: Optional[dict]) -> MetaAdCreative:
    """Graph creative -> MetaAdCreative with a call_to_action object.

    Graph keeps the CTA type at top level and the link inside
    object_story_spec.link_data; both are folded into call_to_action.
    """
    raw = dict(raw or {})
    if "call_to_action" not in raw:
        link_data = ((raw.get("object_story_spec") or {}).get("link_data") or {})
        story_cta = link_data.get("call_to_action") or {}
        cta_type = raw.get("call_to_action_type") or story_cta.get("type")
        link = (story_cta.get("value") or {}).get("link") or link_data.get("link")
        if cta_type or link:
            raw["call_to_action"] = {"type": cta_type or "", "value": {"link": link}}
        if not raw.get("title") and link_data.get("name"):
            raw["title"] = link_data["name"]
        if not raw.get("body") and link_data.get("message"):
            raw["body"] = link_data["message"]
    return MetaAdCreative.model_validate(raw)


def ad_from_graph(raw: dict) -> MetaAd:
    data = dict(raw)
    data["creative"] = _creative_from_graph(raw.get("creative"))
    return MetaAd.model_validate(data)


def build_filtering(filters: Optional[MetaAdFilters]) -> List[dict]:
    """MetaAdFilters -> Graph `filtering` clauses."""
    if filters is None:
        return []
    out: List[dict] = []
    if filters.status:
        out.append({"field": "effective_status", "operator": "IN", "value": list(filters.status)})
    if filters.campaign_id:
        out.append({"field": "campaign.id", "operator": "EQUAL", "value": filters.campaign_id})
    if filters.ad_set_id:
        out.append({"field": "adset.id", "operator": "EQUAL", "value": filters.ad_set_id})
    if filters.search_query:
        out.append({"field": "name", "operator": "CONTAIN", "value": filters.search_query})
    return out


# -----------------------------
# Meta Client (REST via requests)
# -----------------------------

class MetaClient:
    def __init__(self, cfg: MetaConfig, *, session: Optional[requests.Session] = None, backoff_s: float = 1.5):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.base_url = f"https://graph.facebook.com/{cfg.api_version}"
        self.backoff_s = backoff_s

    @property
    def account_id(self) -> str:
        return normalize_ad_account_id(self.cfg.ad_account_id)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        data: Optional[dict] = None,
        max_retries: int = 2,
    ) -> Any:
        url = self.base_url + "/" + path.lstrip("/")
        params = dict(params or {})
        data = dict(data or {})

        # Graph API accepts access_token as query or form field.
        if method.upper() == "GET":
            params.setdefault("access_token", self.cfg.access_token)
        else:
            data.setdefault("access_token", self.cfg.access_token)

        # Required when "App Secret Proof for Server API calls" is enabled on the app.
        if self.cfg.app_secret:
            proof = hmac.new(
                self.cfg.app_secret.encode("utf-8"),
                self.cfg.access_token.encode("utf-8"),
                hashlib.sha256,
            ).hexdigest()
            if method.upper() == "GET":
                params.setdefault("appsecret_proof", proof)
            else:
                data.setdefault("appsecret_proof", proof)

        last_err: Optional[Exception] = None
        for attempt in range(max_retries + 1):
            try:
                resp = self.session.request(
                    method=method.upper(),
                    url=url,
                    params=params,
                    data=data or None,
                    timeout=self.cfg.timeout_s,
                )
                # Meta often returns JSON even for errors.
                try:
                    payload = resp.json()
                except ValueError:
                    payload = {"raw": resp.text}

                if resp.status_code >= 400 or (isinstance(payload, dict) and "error" in payload):
                    error_obj = payload.get("error", {}) if isinstance(payload, dict) else {}
                    raw = payload.get("raw") if isinstance(payload, dict) else payload
                    if error_obj.get("code") == INVALID_TOKEN_CODE:
                        msg = "Invalid access token - please re-authenticate"
                    else:
                        msg = error_obj.get("message") or raw or "Unknown Meta API error"
                    raise MetaAPIError(
                        f"Meta API error ({resp.status_code}): {msg}",
                        http_status=resp.status_code,
                        error=error_obj,
                    )
                return payload
            except MetaAPIError as e:
                last_err = e
                is_retryable = e.http_status in RETRYABLE_HTTP or e.code in RETRYABLE_CODES
                if attempt < max_retries and is_retryable:
                    log.warning("Meta API rate limited or unavailable (attempt %d): %s", attempt + 1, e)
                    time.sleep(self.backoff_s * (attempt + 1))
                    continue
                raise
            except requests.RequestException as e:
                last_err = e
                if attempt < max_retries:
                    log.warning("Network error calling Meta API (attempt %d): %s", attempt + 1, e)
                    time.sleep(self.backoff_s * (attempt + 1))
                    continue
                raise MetaAPIError(f"Network error calling Meta API: {e}") from e

        raise MetaAPIError(f"Meta API request failed after retries: {last_err}")

    def _get_all_pages(self, path: str, *, params: dict, max_pages: int = 20) -> List[dict]:
        """Collects up to `max_pages` pages for a Graph API edge."""
        out: List[dict] = []
        after: str | None = None
        for _ in range(max_pages):
            p = dict(params)
            if after:
                p["after"] = after
            payload = self._request("GET", path, params=p)
            data = payload.get("data") or []
            if isinstance(data, list):
                out.extend(data)
            cursors = ((payload.get("paging") or {}).get("cursors") or {})
            after = cursors.get("after")
            if not after or not (payload.get("paging") or {}).get("next"):
                break
        return out

    # -----------------------------
    # Accounts
    # -----------------------------

    def whoami(self) -> dict:
        return self._request("GET", "/me", params={"fields": "id,name"})

    def get_accounts(self) -> List[dict]:
        return self._get_all_pages("/me/adaccounts", params={"fields": ACCOUNT_FIELDS, "limit": "100"})

    def get_account(self, ad_account_id: str | None = None) -> dict:
        acct = normalize_ad_account_id(ad_account_id or self.cfg.ad_account_id)
        return self._request("GET", f"/{acct}", params={"fields": ACCOUNT_FIELDS})

    def auth_state(self) -> dict:
        """Token check used by the service health views. Never raises for Graph errors."""
        try:
            accounts = self.get_accounts()
        except MetaAPIError as e:
            return {"is_authenticated": False, "error": str(e)}
        first = accounts[0] if accounts else {}
        return {
            "is_authenticated": bool(accounts),
            "account_id": self.cfg.ad_account_id or first.get("id"),
            "account_name": first.get("name"),
            "error": None if accounts else "No ad accounts visible to this token",
        }

    # -----------------------------
    # Campaigns / ad sets
    # -----------------------------

    def get_campaigns(self, ad_account_id: str | None = None) -> List[dict]:
        acct = normalize_ad_account_id(ad_account_id or self.cfg.ad_account_id)
        return self._get_all_pages(f"/{acct}/campaigns", params={"fields": CAMPAIGN_FIELDS, "limit": "100"})

    def get_campaign(self, campaign_id: str) -> dict:
        return self._request("GET", f"/{campaign_id}", params={"fields": CAMPAIGN_FIELDS})

    def get_ad_sets(self, ad_account_id: str | None = None, campaign_id: str | None = None) -> List[dict]:
        if campaign_id:
            path = f"/{campaign_id}/adsets"
        else:
            path = f"/{normalize_ad_account_id(ad_account_id or self.cfg.ad_account_id)}/adsets"
        return self._get_all_pages(path, params={"fields": ADSET_FIELDS, "limit": "100"})

    def get_ad_set(self, ad_set_id: str) -> dict:
        return self._request("GET", f"/{ad_set_id}", params={"fields": ADSET_FIELDS})

    # -----------------------------
    # Ads
    # -----------------------------

    def get_ads(self, ad_account_id: str | None = None, filters: Optional[MetaAdFilters] = None) -> List[MetaAd]:
        acct = normalize_ad_account_id(ad_account_id or self.cfg.ad_account_id)
        params: Dict[str, str] = {"fields": AD_FIELDS, "limit": "100"}
        filtering = build_filtering(filters)
        if filtering:
            params["filtering"] = json.dumps(filtering)
        rows = self._get_all_pages(f"/{acct}/ads", params=params)
        return [ad_from_graph(r) for r in rows]

    def get_ad(self, ad_id: str) -> MetaAd:
        return ad_from_graph(self._request("GET", f"/{ad_id}", params={"fields": AD_FIELDS}))

    def create_ad(self, payload: dict, *, ad_account_id: str | None = None) -> str:
        acct = normalize_ad_account_id(ad_account_id or self.cfg.ad_account_id)
        data = {k: (json.dumps(v) if isinstance(v, (dict, list)) else v) for k, v in payload.items()}
        res = self._request("POST", f"/{acct}/ads", data=data)
        if not res.get("id"):
            raise MetaAPIError("Failed to create ad", error=res if isinstance(res, dict) else {})
        return str(res["id"])

    def update_ad(self, ad_id: str, payload: dict) -> dict:
        data = {k: (json.dumps(v) if isinstance(v, (dict, list)) else v) for k, v in payload.items()}
        res = self._request("POST", f"/{ad_id}", data=data)
        if not res.get("success", True):
            raise MetaAPIError("Failed to update ad", error=res)
        return res

    def duplicate_ad(self, ad_id: str, new_name: str) -> str:
        """Copies an ad into its own ad set. The copy always starts PAUSED."""
        original = self.get_ad(ad_id)
        payload: Dict[str, Any] = {
            "name": new_name,
            "adset_id": original.adset_id,
            "status": "PAUSED",
        }
        if original.creative.id:
            payload["creative"] = {"creative_id": original.creative.id}
        return self.create_ad(payload)

    def set_status(self, object_id: str, status: str) -> dict:
        return self._request("POST", f"/{object_id}", data={"status": status.upper()})

    def get_ad_insights(self, ad_id: str, date_range: Optional[Dict[str, str]] = None) -> List[dict]:
        params: Dict[str, str] = {"fields": INSIGHT_FIELDS}
        if date_range:
            params["time_range"] = json.dumps({"since": date_range["since"], "until": date_range["until"]})
        payload = self._request("GET", f"/{ad_id}/insights", params=params)
        return payload.get("data") or []

    def get_ad_creatives(self, ad_account_id: str | None = None) -> List[MetaAdCreative]:
        acct = normalize_ad_account_id(ad_account_id or self.cfg.ad_account_id)
        rows = self._get_all_pages(f"/{acct}/adcreatives", params={"fields": CREATIVE_FIELDS, "limit": "100"})
        return [_creative_from_graph(r) for r in rows]

    def batch_get_ads(self, ad_ids: List[str]) -> List[MetaAd]:
        """Fetches up to 50 ads per Graph batch call. Failed entries are skipped."""
        out: List[MetaAd] = []
        for start in range(0, len(ad_ids), 50):
            chunk = ad_ids[start:start + 50]
            batch = [{"method": "GET", "relative_url": f"{ad_id}?fields={AD_FIELDS}"} for ad_id in chunk]
            results = self._request("POST", "/", data={"batch": json.dumps(batch)})
            for ad_id, item in zip(chunk, results or []):
                if not item or int(item.get("code") or 0) != 200:
                    log.warning("Batch fetch failed for ad %s: %s", ad_id, (item or {}).get("body"))
                    continue
                out.append(ad_from_graph(json.loads(item["body"])))
        return out

    def search_ads(self, query: str, ad_account_id: str | None = None) -> List[MetaAd]:
        return self.get_ads(ad_account_id, MetaAdFilters(search_query=query))

    def get_ads_by_status(self, status: List[str], ad_account_id: str | None = None) -> List[MetaAd]:
        return self.get_ads(ad_account_id, MetaAdFilters(status=status))

    def get_ads_by_campaign(self, campaign_id: str) -> List[MetaAd]:
        return self.get_ads(None, MetaAdFilters(campaign_id=campaign_id))

    def get_ads_by_ad_set(self, ad_set_id: str) -> List[MetaAd]:
        return self.get_ads(None, MetaAdFilters(ad_set_id=ad_set_id))
