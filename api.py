"""campaign_builder.api

FastAPI service for the multi-location campaign builder: browse locations,
manage groups and saved campaigns, preview templates, and generate the Meta
bulk-upload file for a campaign.

Endpoints
---------
- GET  /health, /                        -> health / root info
- GET  /locations                        -> filtered + paginated locations
- GET  /locations/states, /locations/cities
- GET  /locations/with-configs
- GET  /locations/{id}
- GET|PUT|DELETE /locations/{id}/config
- /groups, /campaigns                    -> CRUD (soft deletes)
- GET  /templates, POST /templates/preview, POST /templates/validate
- POST /review                           -> campaign summary + form errors
- POST /generate                         -> CSV/JSON file download
- POST /meta/sync, GET /meta/templates, GET|DELETE /meta/cache

Optional API Key
----------------
If you set SERVICE_API_KEY in the environment, requests must include:
  X-API-Key: <SERVICE_API_KEY>

Environment variables
---------------------
- DATABASE_URL (locations, groups, campaigns and the Meta ad cache)
- LOCATIONS_JSON_PATH (read locations from a centers JSON file instead)
- META_ACCESS_TOKEN / META_AD_ACCOUNT_ID (or META_TOKEN_SOURCE=db)
- META_API_VERSION, META_APP_SECRET
- SERVICE_API_KEY
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, ValidationError

from ad_processing import preview_meta_ad, review_summary
from campaign_export import generate_export
from campaign_store import CampaignStorePG
from db import AppConfig, StoreError
from location_group_store import LocationGroupStorePG
from location_store import JsonLocationSource, LocationStorePG, paginate
from meta_client import MetaAPIError, MetaClient, MetaConfig
from meta_store import MetaStorePG, sync_meta_ads
from models import (
    BUILTIN_TEMPLATES,
    Campaign,
    CampaignConfiguration,
    CampaignLocationUpdate,
    CampaignUpdate,
    GenerationPlan,
    LocationConfigRequest,
    LocationFilters,
    LocationGroupRequest,
    LocationWithConfig,
    MetaAd,
    MetaAdFilters,
    get_builtin_template,
)
from template_vars import CamelModel, VariableContext, available_variables, preview_template, validate_template

log = logging.getLogger(__name__)

app = FastAPI(title="Campaign Builder API", version="1.0.0")


# -----------------------------
# Error mapping
# -----------------------------

@app.exception_handler(ValidationError)
def _on_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(ValueError)
def _on_value_error(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(LookupError)
def _on_lookup_error(request: Request, exc: LookupError) -> JSONResponse:
    message = exc.args[0] if exc.args else "Not found"
    return JSONResponse(status_code=404, content={"detail": str(message)})


# KeyError is a LookupError too, but a missing dict key is a server bug, not a 404.
@app.exception_handler(KeyError)
def _on_key_error(request: Request, exc: KeyError) -> JSONResponse:
    log.exception("Unhandled KeyError on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.exception_handler(MetaAPIError)
def _on_meta_error(request: Request, exc: MetaAPIError) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={
            "detail": {
                "message": str(exc),
                "http_status": exc.http_status,
                "meta_error": exc.error,
            }
        },
    )


@app.exception_handler(StoreError)
def _on_store_error(request: Request, exc: StoreError) -> JSONResponse:
    log.error("%s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# -----------------------------
# Dependencies
# -----------------------------

def require_api_key(x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")) -> None:
    expected = (os.getenv("SERVICE_API_KEY") or "").strip()
    if not expected:
        return
    if not x_api_key or x_api_key.strip() != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    return AppConfig.from_env()


def _database_url() -> str:
    url = get_app_config().database_url
    if not url:
        raise HTTPException(status_code=503, detail="Server misconfigured: DATABASE_URL is not set")
    return url


@lru_cache(maxsize=1)
def get_location_store() -> LocationStorePG:
    cfg = get_app_config()
    source = JsonLocationSource(cfg.locations_json_path) if cfg.locations_json_path else None
    return LocationStorePG(_database_url(), json_source=source)


@lru_cache(maxsize=1)
def get_group_store() -> LocationGroupStorePG:
    locations = get_location_store() if get_app_config().locations_json_path else None
    return LocationGroupStorePG(_database_url(), locations=locations)


@lru_cache(maxsize=1)
def get_campaign_store() -> CampaignStorePG:
    return CampaignStorePG(_database_url())


@lru_cache(maxsize=1)
def get_meta_store() -> MetaStorePG:
    return MetaStorePG(_database_url())


def get_location_lookup() -> Callable[[], LocationStorePG]:
    """Lazy access for endpoints that only need locations when ids are given."""
    return get_location_store


def get_meta_client() -> MetaClient:
    try:
        cfg = MetaConfig.from_env()
    except (ValueError, RuntimeError) as e:
        raise HTTPException(status_code=500, detail=f"Server misconfigured: {e}")
    return MetaClient(cfg)


router = APIRouter(dependencies=[Depends(require_api_key)])


# -----------------------------
# Request bodies
# -----------------------------

class TemplatePreviewRequest(BaseModel):
    template: str
    context: VariableContext = Field(default_factory=VariableContext)


class TemplateValidateRequest(BaseModel):
    template: str
    context: Optional[VariableContext] = None
    available: Optional[List[str]] = None


class ReviewRequest(CamelModel):
    config: CampaignConfiguration
    locations: List[LocationWithConfig] = Field(default_factory=list)
    location_ids: List[str] = Field(default_factory=list)
    meta_ads: List[MetaAd] = Field(default_factory=list)


class LocationIdsRequest(BaseModel):
    location_ids: List[str]
    default_budget: Optional[float] = None
    default_radius: Optional[float] = None


class CampaignMetaAdsRequest(BaseModel):
    ads: List[Dict[str, Any]]


def _resolve_locations(
    inline: List[LocationWithConfig],
    location_ids: List[str],
    lookup: Callable[[], LocationStorePG],
) -> List[LocationWithConfig]:
    """Inline locations first, then the requested ids in request order."""
    out = list(inline)
    if not location_ids:
        return out
    by_id = {loc.id: loc for loc in lookup().get_locations_with_configs()}
    missing = [i for i in location_ids if i not in by_id]
    if missing:
        raise LookupError(f"Unknown locations: {', '.join(missing)}")
    out.extend(by_id[i] for i in location_ids)
    return out


# -----------------------------
# Health
# -----------------------------

@app.get("/")
def root() -> JSONResponse:
    return JSONResponse({"ok": True, "docs": "/docs", "health": "/health"})


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"ok": True}


# -----------------------------
# Locations
# -----------------------------

@router.get("/locations")
def list_locations(
    search: Optional[str] = None,
    states: List[str] = Query(default=[]),
    cities: List[str] = Query(default=[]),
    zip_codes: List[str] = Query(default=[]),
    page: int = 1,
    limit: int = 50,
    store: LocationStorePG = Depends(get_location_store),
) -> Dict[str, Any]:
    filters = LocationFilters(search=search, states=states, cities=cities, zip_codes=zip_codes)
    result = paginate(store.search_locations(filters), page=page, limit=limit)
    return result.model_dump(by_alias=True)


@router.get("/locations/states")
def list_states(store: LocationStorePG = Depends(get_location_store)) -> Dict[str, Any]:
    return {"states": store.get_unique_states()}


@router.get("/locations/cities")
def list_cities(state: Optional[str] = None, store: LocationStorePG = Depends(get_location_store)) -> Dict[str, Any]:
    return {"cities": store.get_unique_cities(state)}


@router.get("/locations/with-configs")
def list_locations_with_configs(
    user_id: Optional[str] = None,
    store: LocationStorePG = Depends(get_location_store),
) -> List[Dict[str, Any]]:
    return [loc.model_dump(by_alias=True) for loc in store.get_locations_with_configs(user_id)]


@router.get("/locations/{location_id}")
def get_location(location_id: str, store: LocationStorePG = Depends(get_location_store)) -> Dict[str, Any]:
    loc = store.get_location_by_id(location_id)
    if loc is None:
        raise LookupError(f"Location not found: {location_id}")
    return loc.model_dump(by_alias=True)


@router.get("/locations/{location_id}/config")
def get_location_config(
    location_id: str,
    user_id: Optional[str] = None,
    store: LocationStorePG = Depends(get_location_store),
) -> Dict[str, Any]:
    cfg = store.get_location_config(location_id, user_id)
    if cfg is None:
        raise LookupError(f"No configuration for location {location_id}")
    return cfg.model_dump(by_alias=True)


@router.put("/locations/{location_id}/config")
def save_location_config(
    location_id: str,
    body: Dict[str, Any],
    user_id: Optional[str] = None,
    store: LocationStorePG = Depends(get_location_store),
) -> Dict[str, Any]:
    req = LocationConfigRequest.model_validate({**body, "location_id": location_id})
    if store.get_location_config(location_id, user_id) is None:
        cfg = store.create_location_config(req, user_id)
    else:
        cfg = store.update_location_config(location_id, req, user_id)
    return cfg.model_dump(by_alias=True)


@router.delete("/locations/{location_id}/config")
def delete_location_config(
    location_id: str,
    user_id: Optional[str] = None,
    store: LocationStorePG = Depends(get_location_store),
) -> Dict[str, Any]:
    if not store.delete_location_config(location_id, user_id):
        raise LookupError(f"No configuration for location {location_id}")
    return {"ok": True}


# -----------------------------
# Groups
# -----------------------------

@router.get("/groups")
def list_groups(store: LocationGroupStorePG = Depends(get_group_store)) -> List[Dict[str, Any]]:
    return [g.model_dump(by_alias=True) for g in store.get_groups_with_location_counts()]


@router.post("/groups", status_code=201)
def create_group(
    body: LocationGroupRequest,
    user_id: Optional[str] = None,
    store: LocationGroupStorePG = Depends(get_group_store),
) -> Dict[str, Any]:
    return store.create_group(body, user_id).model_dump(by_alias=True)


@router.get("/groups/{group_id}")
def get_group(group_id: str, store: LocationGroupStorePG = Depends(get_group_store)) -> Dict[str, Any]:
    group = store.get_group_by_id(group_id)
    if group is None:
        raise LookupError(f"Location group not found: {group_id}")
    return group.model_dump(by_alias=True)


@router.patch("/groups/{group_id}")
def update_group(
    group_id: str,
    body: LocationGroupRequest,
    store: LocationGroupStorePG = Depends(get_group_store),
) -> Dict[str, Any]:
    return store.update_group(group_id, body).model_dump(by_alias=True)


@router.delete("/groups/{group_id}")
def delete_group(group_id: str, store: LocationGroupStorePG = Depends(get_group_store)) -> Dict[str, Any]:
    store.delete_group(group_id)
    return {"ok": True}


@router.post("/groups/{group_id}/locations")
def add_group_locations(
    group_id: str,
    body: LocationIdsRequest,
    store: LocationGroupStorePG = Depends(get_group_store),
) -> Dict[str, Any]:
    store.add_locations_to_group(group_id, body.location_ids)
    return {"ok": True, "added": len(body.location_ids)}


@router.post("/groups/{group_id}/locations/remove")
def remove_group_locations(
    group_id: str,
    body: LocationIdsRequest,
    store: LocationGroupStorePG = Depends(get_group_store),
) -> Dict[str, Any]:
    store.remove_locations_from_group(group_id, body.location_ids)
    return {"ok": True, "removed": len(body.location_ids)}


# -----------------------------
# Campaigns
# -----------------------------

@router.get("/campaigns")
def list_campaigns(user_id: Optional[str] = None, store: CampaignStorePG = Depends(get_campaign_store)) -> List[Dict[str, Any]]:
    return [c.model_dump(by_alias=True) for c in store.list_campaigns(user_id)]


@router.post("/campaigns", status_code=201)
def create_campaign(
    body: Dict[str, Any],
    user_id: Optional[str] = None,
    store: CampaignStorePG = Depends(get_campaign_store),
) -> Dict[str, Any]:
    campaign = Campaign.model_validate(body)
    return store.create_campaign(campaign, user_id).model_dump(by_alias=True)


@router.get("/campaigns/{campaign_id}")
def get_campaign(campaign_id: str, store: CampaignStorePG = Depends(get_campaign_store)) -> Dict[str, Any]:
    campaign = store.get_campaign_with_locations(campaign_id)
    if campaign is None:
        raise LookupError(f"Campaign not found: {campaign_id}")
    return campaign.model_dump(by_alias=True)


@router.patch("/campaigns/{campaign_id}")
def update_campaign(
    campaign_id: str,
    body: Dict[str, Any],
    store: CampaignStorePG = Depends(get_campaign_store),
) -> Dict[str, Any]:
    update = CampaignUpdate.model_validate(body)
    return store.update_campaign(campaign_id, update).model_dump(by_alias=True)


@router.delete("/campaigns/{campaign_id}")
def delete_campaign(campaign_id: str, store: CampaignStorePG = Depends(get_campaign_store)) -> Dict[str, Any]:
    store.delete_campaign(campaign_id)
    return {"ok": True}


@router.post("/campaigns/{campaign_id}/locations")
def add_campaign_locations(
    campaign_id: str,
    body: LocationIdsRequest,
    store: CampaignStorePG = Depends(get_campaign_store),
) -> List[Dict[str, Any]]:
    rows = store.bulk_add_locations_to_campaign(
        campaign_id,
        body.location_ids,
        default_budget=body.default_budget,
        default_radius=body.default_radius,
    )
    return [r.model_dump(by_alias=True) for r in rows]


@router.patch("/campaigns/{campaign_id}/locations/{location_id}")
def update_campaign_location(
    campaign_id: str,
    location_id: str,
    body: Dict[str, Any],
    store: CampaignStorePG = Depends(get_campaign_store),
) -> Dict[str, Any]:
    update = CampaignLocationUpdate.model_validate(body)
    return store.update_campaign_location(campaign_id, location_id, update).model_dump(by_alias=True)


@router.delete("/campaigns/{campaign_id}/locations/{location_id}")
def remove_campaign_location(
    campaign_id: str,
    location_id: str,
    store: CampaignStorePG = Depends(get_campaign_store),
) -> Dict[str, Any]:
    store.remove_location_from_campaign(campaign_id, location_id)
    return {"ok": True}


@router.get("/campaigns/{campaign_id}/meta-ads")
def list_campaign_meta_ads(campaign_id: str, store: MetaStorePG = Depends(get_meta_store)) -> List[Dict[str, Any]]:
    return jsonable_encoder(store.get_campaign_meta_ads(campaign_id))


@router.post("/campaigns/{campaign_id}/meta-ads")
def save_campaign_meta_ads(
    campaign_id: str,
    body: CampaignMetaAdsRequest,
    store: MetaStorePG = Depends(get_meta_store),
) -> Dict[str, Any]:
    for ad in body.ads:
        if not ad.get("meta_ad_id") or not ad.get("meta_ad_name"):
            raise ValueError("Each ad needs meta_ad_id and meta_ad_name")
    store.save_campaign_meta_ads(campaign_id, body.ads)
    return {"ok": True, "saved": len(body.ads)}


# -----------------------------
# Templates
# -----------------------------

@router.get("/templates")
def list_templates() -> List[Dict[str, Any]]:
    return [t.model_dump(by_alias=True) for t in BUILTIN_TEMPLATES]


@router.get("/templates/{template_id}")
def get_template(template_id: str) -> Dict[str, Any]:
    tpl = get_builtin_template(template_id)
    if tpl is None:
        raise LookupError(f"Unknown template: {template_id}")
    return tpl.model_dump(by_alias=True)


@router.post("/templates/preview")
def template_preview(body: TemplatePreviewRequest) -> Dict[str, Any]:
    return preview_template(body.template, body.context).model_dump()


@router.post("/templates/validate")
def template_validate(body: TemplateValidateRequest) -> Dict[str, Any]:
    if body.available is not None:
        available = body.available
    else:
        available = available_variables(body.context or VariableContext())
    return validate_template(body.template, available).model_dump()


# -----------------------------
# Review / generate
# -----------------------------

@router.post("/review")
def review(body: ReviewRequest, lookup: Callable[[], LocationStorePG] = Depends(get_location_lookup)) -> Dict[str, Any]:
    locations = _resolve_locations(body.locations, body.location_ids, lookup)
    return review_summary(body.config, locations, meta_ads=body.meta_ads).model_dump()


@router.post("/generate")
def generate(plan: GenerationPlan, lookup: Callable[[], LocationStorePG] = Depends(get_location_lookup)) -> Response:
    locations = _resolve_locations(plan.locations, plan.location_ids, lookup)
    result = generate_export(plan, locations)
    media_type = "application/json" if plan.options.format == "json" else "text/csv"
    log.info("Generated %s with %d rows", result.file_name, result.row_count)
    return Response(
        content=result.content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{result.file_name}"',
            "X-Row-Count": str(result.row_count),
        },
    )


# -----------------------------
# Meta
# -----------------------------

@router.post("/meta/sync")
def meta_sync(
    account_id: Optional[str] = None,
    force_refresh: bool = False,
    with_insights: bool = False,
    client: MetaClient = Depends(get_meta_client),
    store: MetaStorePG = Depends(get_meta_store),
) -> Dict[str, Any]:
    result = sync_meta_ads(
        client,
        store,
        account_id=account_id,
        force_refresh=force_refresh,
        with_insights=with_insights,
    )
    return {"ok": True, **result}


@router.get("/meta/templates")
def meta_templates(
    account_id: Optional[str] = None,
    status: List[str] = Query(default=[]),
    campaign_id: Optional[str] = None,
    ad_set_id: Optional[str] = None,
    search: Optional[str] = None,
    store: MetaStorePG = Depends(get_meta_store),
) -> List[Dict[str, Any]]:
    filters = MetaAdFilters(status=status, campaign_id=campaign_id, ad_set_id=ad_set_id, search_query=search)
    return jsonable_encoder(store.get_ad_templates(account_id, filters))


@router.get("/meta/templates/{template_id}")
def meta_template(template_id: str, store: MetaStorePG = Depends(get_meta_store)) -> Dict[str, Any]:
    record = store.get_ad_template(template_id)
    if record is None:
        raise LookupError(f"Meta ad template not found: {template_id}")
    return jsonable_encoder(record)


@router.get("/meta/templates/{template_id}/preview")
def meta_template_preview(
    template_id: str,
    location_id: Optional[str] = None,
    store: MetaStorePG = Depends(get_meta_store),
    lookup: Callable[[], LocationStorePG] = Depends(get_location_lookup),
) -> Dict[str, Any]:
    record = store.get_ad_template(template_id)
    if record is None:
        raise LookupError(f"Meta ad template not found: {template_id}")
    location = None
    if location_id:
        location = lookup().get_location_by_id(location_id)
        if location is None:
            raise LookupError(f"Location not found: {location_id}")
    return preview_meta_ad(record.to_meta_ad(), location).model_dump()


@router.get("/meta/cache")
def meta_cache_stats(account_id: Optional[str] = None, store: MetaStorePG = Depends(get_meta_store)) -> Dict[str, Any]:
    return store.cache_stats(account_id)


@router.delete("/meta/cache")
def meta_cache_clear(account_id: Optional[str] = None, store: MetaStorePG = Depends(get_meta_store)) -> Dict[str, Any]:
    return {"ok": True, "removed": store.clear_cache(account_id)}


@router.get("/meta/accounts")
def meta_accounts(user_id: Optional[str] = None, store: MetaStorePG = Depends(get_meta_store)) -> List[Dict[str, Any]]:
    return jsonable_encoder(store.get_meta_accounts(user_id))


@router.delete("/meta/accounts/{account_row_id}")
def meta_account_delete(account_row_id: str, store: MetaStorePG = Depends(get_meta_store)) -> Dict[str, Any]:
    store.delete_meta_account(account_row_id)
    return {"ok": True}


app.include_router(router)
