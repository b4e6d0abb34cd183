"""API tests with in-memory stores swapped in through dependency overrides."""

import csv
import io
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

import api
from db import StoreError
from meta_client import MetaAPIError
from models import CampaignWithLocations, LocationConfig, MetaAdTemplateRecord


class FakeLocationStore:
    def __init__(self, locations):
        self.locations = locations
        self.configs = {}

    def search_locations(self, filters):
        out = self.locations
        if filters.states:
            out = [loc for loc in out if loc.state in filters.states]
        if filters.search:
            out = [loc for loc in out if filters.search.lower() in loc.name.lower()]
        return out

    def get_unique_states(self):
        return sorted({loc.state for loc in self.locations})

    def get_unique_cities(self, state=None):
        return sorted({loc.city for loc in self.locations if not state or loc.state == state})

    def get_location_by_id(self, location_id):
        return next((loc for loc in self.locations if loc.id == location_id), None)

    def get_locations_with_configs(self, user_id=None):
        return list(self.locations)

    def get_location_config(self, location_id, user_id=None):
        return self.configs.get(location_id)

    def create_location_config(self, request, user_id=None):
        cfg = LocationConfig(**request.model_dump(exclude_none=True))
        self.configs[cfg.location_id] = cfg
        return cfg

    def update_location_config(self, location_id, request, user_id=None):
        current = self.configs[location_id]
        cfg = current.model_copy(update=request.model_dump(exclude_unset=True))
        self.configs[location_id] = cfg
        return cfg

    def delete_location_config(self, location_id, user_id=None):
        return self.configs.pop(location_id, None) is not None


class FakeCampaignStore:
    def __init__(self):
        self.campaigns = {}

    def create_campaign(self, campaign, user_id=None):
        created = campaign.model_copy(update={"id": f"c{len(self.campaigns) + 1}", "user_id": user_id})
        self.campaigns[created.id] = created
        return created

    def list_campaigns(self, user_id=None):
        return [c for c in self.campaigns.values() if c.is_active]

    def get_campaign_with_locations(self, campaign_id):
        c = self.campaigns.get(campaign_id)
        return CampaignWithLocations(**c.model_dump()) if c else None

    def update_campaign(self, campaign_id, update):
        if campaign_id not in self.campaigns:
            raise LookupError(f"Campaign not found: {campaign_id}")
        c = self.campaigns[campaign_id].model_copy(update=update.model_dump(exclude_unset=True))
        self.campaigns[campaign_id] = c
        return c

    def delete_campaign(self, campaign_id):
        self.campaigns[campaign_id] = self.campaigns[campaign_id].model_copy(update={"is_active": False})


class FakeMetaStore:
    def __init__(self):
        self.records = [
            MetaAdTemplateRecord(
                id="t1",
                meta_ad_id="2385",
                name="Summer Promo",
                creative={"title": "Summer at {{location.name}}"},
                account_id="act_42",
                last_synced=datetime(2025, 6, 1, tzinfo=timezone.utc),
            )
        ]

    def get_ad_templates(self, account_id=None, filters=None):
        return [r for r in self.records if not account_id or r.account_id == account_id]

    def get_ad_template(self, template_id):
        return next((r for r in self.records if template_id in (r.id, r.meta_ad_id)), None)

    def cache_stats(self, account_id=None):
        return {"total_ads": len(self.records), "last_sync": "2025-06-01T00:00:00+00:00", "account_id": account_id}

    def clear_cache(self, account_id=None):
        n = len(self.records)
        self.records = []
        return n


@pytest.fixture
def stores(locations):
    return {
        "locations": FakeLocationStore(locations),
        "campaigns": FakeCampaignStore(),
        "meta": FakeMetaStore(),
    }


@pytest.fixture
def client(stores, monkeypatch):
    monkeypatch.delenv("SERVICE_API_KEY", raising=False)
    api.app.dependency_overrides[api.get_location_store] = lambda: stores["locations"]
    api.app.dependency_overrides[api.get_location_lookup] = lambda: (lambda: stores["locations"])
    api.app.dependency_overrides[api.get_campaign_store] = lambda: stores["campaigns"]
    api.app.dependency_overrides[api.get_meta_store] = lambda: stores["meta"]
    with TestClient(api.app) as c:
        yield c
    api.app.dependency_overrides.clear()


def plan_payload(campaign_config, locations=None, location_ids=None, fmt="csv"):
    body = {
        "config": campaign_config.model_dump(mode="json", by_alias=True),
        "options": {"format": fmt},
    }
    if locations:
        body["locations"] = [loc.model_dump(mode="json", by_alias=True) for loc in locations]
    if location_ids:
        body["locationIds"] = location_ids
    return body


# =============================================================================
# HEALTH / AUTH
# =============================================================================


class TestHealthAndAuth:
    def test_health(self, client):
        assert client.get("/health").json() == {"ok": True}

    def test_api_key_required_when_set(self, client, monkeypatch):
        monkeypatch.setenv("SERVICE_API_KEY", "secret")
        assert client.get("/templates").status_code == 401
        assert client.get("/templates", headers={"X-API-Key": "secret"}).status_code == 200
        # health stays open
        assert client.get("/health").status_code == 200


# =============================================================================
# LOCATIONS
# =============================================================================


class TestLocations:
    def test_paginated_list(self, client):
        data = client.get("/locations", params={"limit": 1}).json()
        assert data["total"] == 2
        assert data["totalPages"] == 2
        assert data["items"][0]["name"] == "Uptown"

    def test_search(self, client):
        data = client.get("/locations", params={"search": "cherry"}).json()
        assert [i["id"] for i in data["items"]] == ["loc-cherry"]

    def test_invalid_page(self, client):
        assert client.get("/locations", params={"page": 0}).status_code == 422

    def test_states_and_cities(self, client):
        assert client.get("/locations/states").json() == {"states": ["CO"]}
        assert client.get("/locations/cities", params={"state": "CO"}).json() == {"cities": ["Denver"]}

    def test_get_by_id(self, client):
        assert client.get("/locations/loc-uptown").json()["zipCode"] == "80202"
        assert client.get("/locations/nope").status_code == 404

    def test_config_lifecycle(self, client):
        assert client.get("/locations/loc-uptown/config").status_code == 404

        created = client.put("/locations/loc-uptown/config", json={"radiusMiles": 4, "primaryLat": 39.7, "primaryLng": -104.9})
        assert created.status_code == 200
        assert created.json()["radiusMiles"] == 4

        updated = client.put("/locations/loc-uptown/config", json={"notes": "busy"})
        assert updated.json()["notes"] == "busy"

        assert client.delete("/locations/loc-uptown/config").json() == {"ok": True}
        assert client.delete("/locations/loc-uptown/config").status_code == 404

    def test_invalid_config(self, client):
        resp = client.put("/locations/loc-uptown/config", json={"primaryLat": 100, "primaryLng": 0, "radiusMiles": 1})
        assert resp.status_code == 422
        assert "Primary latitude must be between -90 and 90" in str(resp.json()["detail"])


# =============================================================================
# CAMPAIGNS
# =============================================================================


class TestCampaigns:
    def test_create_list_update_delete(self, client):
        resp = client.post("/campaigns", json={"name": " Spring ", "budget": 25})
        assert resp.status_code == 201
        campaign_id = resp.json()["id"]
        assert resp.json()["name"] == "Spring"

        assert len(client.get("/campaigns").json()) == 1
        patched = client.patch(f"/campaigns/{campaign_id}", json={"status": "Active"})
        assert patched.json()["status"] == "Active"

        assert client.delete(f"/campaigns/{campaign_id}").json() == {"ok": True}
        assert client.get("/campaigns").json() == []

    def test_invalid_campaign(self, client):
        resp = client.post("/campaigns", json={"name": "", "budget": 25})
        assert resp.status_code == 422

    def test_missing_campaign(self, client):
        assert client.get("/campaigns/zzz").status_code == 404
        assert client.patch("/campaigns/zzz", json={"notes": "x"}).status_code == 404


# =============================================================================
# TEMPLATES
# =============================================================================


class TestTemplates:
    def test_list(self, client):
        ids = [t["id"] for t in client.get("/templates").json()]
        assert ids == ["template_1", "template_2", "template_3", "template_4"]

    def test_unknown(self, client):
        assert client.get("/templates/nope").status_code == 404

    def test_preview(self, client):
        resp = client.post(
            "/templates/preview",
            json={"template": "Visit {{location.name}}", "context": {"location": {"name": "Uptown"}}},
        )
        data = resp.json()
        assert data["processed"] == "Visit Uptown"
        assert data["validation"]["is_valid"] is True

    def test_validate(self, client):
        resp = client.post("/templates/validate", json={"template": "{{custom.code}}", "available": ["location.name"]})
        assert resp.json()["missing_variables"] == ["custom.code"]


# =============================================================================
# REVIEW / GENERATE
# =============================================================================


class TestGenerate:
    def test_review(self, client, campaign_config):
        resp = client.post("/review", json=plan_payload(campaign_config, location_ids=["loc-uptown", "loc-cherry"]))
        data = resp.json()
        assert data["location_count"] == 2
        assert data["estimated_rows"] == 2
        assert data["ready"] is True

    def test_review_with_meta_ads(self, client, campaign_config, meta_ad):
        campaign_config.ads = []
        body = plan_payload(campaign_config, location_ids=["loc-uptown", "loc-cherry"])
        body["metaAds"] = [meta_ad.model_dump(mode="json")]
        data = client.post("/review", json=body).json()
        assert data["ad_count"] == 1
        assert data["estimated_rows"] == 2
        assert data["ready"] is True

    def test_generate_csv(self, client, campaign_config, locations):
        resp = client.post("/generate", json=plan_payload(campaign_config, locations=locations))
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert 'filename="EWC_Meta_June1_AllCampaigns.csv"' in resp.headers["content-disposition"]
        rows = list(csv.reader(io.StringIO(resp.text)))
        assert len(rows) == 3
        assert resp.headers["x-row-count"] == "2"

    def test_generate_json_by_ids(self, client, campaign_config):
        resp = client.post("/generate", json=plan_payload(campaign_config, location_ids=["loc-cherry"], fmt="json"))
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json()[0]["Link"] == "https://waxcenter.com/cherry-creek"

    def test_generate_unknown_location(self, client, campaign_config):
        resp = client.post("/generate", json=plan_payload(campaign_config, location_ids=["nope"]))
        assert resp.status_code == 404
        assert "nope" in resp.json()["detail"]

    def test_generate_without_locations(self, client, campaign_config):
        resp = client.post("/generate", json=plan_payload(campaign_config))
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Select at least one location"


# =============================================================================
# META
# =============================================================================


class TestMeta:
    def test_templates(self, client):
        data = client.get("/meta/templates", params={"account_id": "act_42"}).json()
        assert [t["meta_ad_id"] for t in data] == ["2385"]

    def test_template_preview_with_location(self, client):
        resp = client.get("/meta/templates/2385/preview", params={"location_id": "loc-uptown"})
        assert resp.json()["title"] == "Summer at Uptown"

    def test_cache(self, client):
        assert client.get("/meta/cache").json()["total_ads"] == 1
        assert client.delete("/meta/cache").json() == {"ok": True, "removed": 1}

    def test_sync_maps_graph_errors(self, client, stores):
        class FailingClient:
            cfg = None

            def get_ads(self, *args, **kwargs):
                raise MetaAPIError("Meta API error (400): boom", http_status=400, error={"code": 100})

        api.app.dependency_overrides[api.get_meta_client] = lambda: FailingClient()
        resp = client.post("/meta/sync", params={"account_id": "act_42"})
        assert resp.status_code == 502
        assert resp.json()["detail"]["meta_error"] == {"code": 100}

    def test_store_errors_are_500(self, client, stores, monkeypatch):
        def broken(account_id=None):
            raise StoreError("Failed to get cache stats: connection refused")

        monkeypatch.setattr(stores["meta"], "cache_stats", broken)
        resp = client.get("/meta/cache")
        assert resp.status_code == 500
        assert resp.json()["detail"].startswith("Failed to get cache stats")

    def test_internal_key_error_is_500(self, client, stores, monkeypatch):
        def broken(account_id=None):
            raise KeyError("total_ads")

        monkeypatch.setattr(stores["meta"], "cache_stats", broken)
        resp = client.get("/meta/cache")
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal server error"}
