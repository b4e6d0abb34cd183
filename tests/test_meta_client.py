"""Tests for the Graph API client using a scripted requests session."""

import json

import pytest
import requests

from meta_client import (
    MetaAPIError,
    MetaClient,
    MetaConfig,
    ad_from_graph,
    build_filtering,
    normalize_ad_account_id,
)
from models import MetaAdFilters


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    """Returns queued responses in order and records every call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, params=None, data=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params, "data": data})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def make_client(*responses, app_secret=None):
    cfg = MetaConfig(access_token="tok", ad_account_id="act_42", app_secret=app_secret)
    session = FakeSession(*responses)
    return MetaClient(cfg, session=session, backoff_s=0), session


GRAPH_AD = {
    "id": "2385",
    "name": "Summer Promo",
    "status": "ACTIVE",
    "adset_id": "77",
    "campaign_id": "66",
    "creative": {
        "id": "c1",
        "call_to_action_type": "BOOK_NOW",
        "object_story_spec": {
            "link_data": {
                "link": "https://waxcenter.com",
                "name": "Summer at {{location.name}}",
                "message": "Visit us in {{location.city}}",
            }
        },
    },
}


class TestHelpers:
    def test_normalize_account_id(self):
        assert normalize_ad_account_id("123") == "act_123"
        assert normalize_ad_account_id(" act_123 ") == "act_123"

    def test_ad_from_graph_folds_story_spec(self):
        ad = ad_from_graph(GRAPH_AD)
        assert ad.creative.title == "Summer at {{location.name}}"
        assert ad.creative.body == "Visit us in {{location.city}}"
        assert ad.creative.call_to_action.type == "BOOK_NOW"
        assert ad.creative.call_to_action.value.link == "https://waxcenter.com"
        assert ad.adset_id == "77"

    def test_build_filtering(self):
        clauses = build_filtering(MetaAdFilters(status=["ACTIVE"], campaign_id="66", search_query="Summer"))
        assert clauses == [
            {"field": "effective_status", "operator": "IN", "value": ["ACTIVE"]},
            {"field": "campaign.id", "operator": "EQUAL", "value": "66"},
            {"field": "name", "operator": "CONTAIN", "value": "Summer"},
        ]
        assert build_filtering(None) == []


class TestConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("META_ACCESS_TOKEN", "abc")
        monkeypatch.setenv("META_AD_ACCOUNT_ID", "42")
        monkeypatch.delenv("META_TOKEN_SOURCE", raising=False)
        monkeypatch.delenv("META_API_VERSION", raising=False)
        cfg = MetaConfig.from_env()
        assert cfg.ad_account_id == "act_42"
        assert cfg.api_version == "v19.0"

    def test_missing_token(self, monkeypatch):
        monkeypatch.setenv("META_ACCESS_TOKEN", "")
        monkeypatch.setenv("META_AD_ACCOUNT_ID", "42")
        monkeypatch.delenv("META_TOKEN_SOURCE", raising=False)
        with pytest.raises(ValueError, match="Missing access token"):
            MetaConfig.from_env()


class TestRequests:
    def test_get_sends_token_and_proof(self):
        client, session = make_client(FakeResponse(payload={"id": "1", "name": "Me"}), app_secret="shh")
        assert client.whoami() == {"id": "1", "name": "Me"}
        call = session.calls[0]
        assert call["url"] == "https://graph.facebook.com/v19.0/me"
        assert call["params"]["access_token"] == "tok"
        assert len(call["params"]["appsecret_proof"]) == 64

    def test_invalid_token_message(self):
        client, _ = make_client(FakeResponse(400, {"error": {"code": 190, "message": "Session expired"}}))
        with pytest.raises(MetaAPIError, match="Invalid access token - please re-authenticate") as exc:
            client.whoami()
        assert exc.value.http_status == 400
        assert exc.value.code == 190

    def test_rate_limit_is_retried(self):
        client, session = make_client(
            FakeResponse(400, {"error": {"code": 17, "message": "User request limit reached"}}),
            FakeResponse(payload={"id": "1"}),
        )
        assert client.whoami() == {"id": "1"}
        assert len(session.calls) == 2

    def test_server_error_gives_up_after_retries(self):
        client, session = make_client(*[FakeResponse(503, None, text="unavailable")] * 3)
        with pytest.raises(MetaAPIError, match="unavailable"):
            client.whoami()
        assert len(session.calls) == 3

    def test_client_error_not_retried(self):
        client, session = make_client(FakeResponse(400, {"error": {"code": 100, "message": "Bad field"}}))
        with pytest.raises(MetaAPIError, match="Bad field"):
            client.whoami()
        assert len(session.calls) == 1

    def test_non_object_error_body(self):
        client, session = make_client(FakeResponse(400, [{"code": 400, "body": "bad"}]))
        with pytest.raises(MetaAPIError, match=r"Meta API error \(400\)") as exc:
            client.whoami()
        assert exc.value.error == {}
        assert len(session.calls) == 1

    def test_network_error_wrapped(self):
        boom = requests.ConnectionError("down")
        client, _ = make_client(boom, boom, boom)
        with pytest.raises(MetaAPIError, match="Network error"):
            client.whoami()


class TestAds:
    def test_get_ads_follows_cursor(self):
        client, session = make_client(
            FakeResponse(payload={"data": [GRAPH_AD], "paging": {"cursors": {"after": "A"}, "next": "https://next"}}),
            FakeResponse(payload={"data": [dict(GRAPH_AD, id="2386")], "paging": {"cursors": {"after": "B"}}}),
        )
        ads = client.get_ads(filters=MetaAdFilters(status=["ACTIVE"]))
        assert [a.id for a in ads] == ["2385", "2386"]
        assert session.calls[0]["url"].endswith("/act_42/ads")
        assert json.loads(session.calls[0]["params"]["filtering"])[0]["value"] == ["ACTIVE"]
        assert session.calls[1]["params"]["after"] == "A"

    def test_create_ad_serializes_nested(self):
        client, session = make_client(FakeResponse(payload={"id": "999"}))
        ad_id = client.create_ad({"name": "x", "creative": {"creative_id": "c1"}, "status": "PAUSED"})
        assert ad_id == "999"
        assert session.calls[0]["method"] == "POST"
        assert json.loads(session.calls[0]["data"]["creative"]) == {"creative_id": "c1"}

    def test_duplicate_ad_starts_paused(self):
        client, session = make_client(FakeResponse(payload=GRAPH_AD), FakeResponse(payload={"id": "1000"}))
        assert client.duplicate_ad("2385", "Copy") == "1000"
        data = session.calls[1]["data"]
        assert data["status"] == "PAUSED"
        assert data["adset_id"] == "77"

    def test_batch_skips_failures(self):
        batch = [
            {"code": 200, "body": json.dumps(GRAPH_AD)},
            {"code": 404, "body": json.dumps({"error": {"message": "gone"}})},
        ]
        client, _ = make_client(FakeResponse(payload=batch))
        ads = client.batch_get_ads(["2385", "1"])
        assert [a.id for a in ads] == ["2385"]

    def test_insights_time_range(self):
        client, session = make_client(FakeResponse(payload={"data": [{"impressions": "10"}]}))
        rows = client.get_ad_insights("2385", {"since": "2025-06-01", "until": "2025-06-30"})
        assert rows == [{"impressions": "10"}]
        assert json.loads(session.calls[0]["params"]["time_range"])["since"] == "2025-06-01"

    def test_auth_state_reports_errors(self):
        client, _ = make_client(FakeResponse(401, {"error": {"code": 190}}))
        state = client.auth_state()
        assert state["is_authenticated"] is False
        assert "Invalid access token" in state["error"]
