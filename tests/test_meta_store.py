"""Tests for syncing Graph ads into the template cache and token expiry checks."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from meta_store import sync_meta_ads, template_record_from_ad
from models import MetaAd
from token_store import StoredToken, is_expiring


class FakeClient:
    def __init__(self, ads, insights=None):
        self.cfg = SimpleNamespace(ad_account_id="act_42")
        self.ads = ads
        self.insights = insights or {}
        self.requested_accounts = []

    def get_ads(self, ad_account_id=None, filters=None):
        self.requested_accounts.append(ad_account_id)
        return self.ads

    def get_ad_insights(self, ad_id, date_range=None):
        return self.insights.get(ad_id, [])


class FakeStore:
    def __init__(self):
        self.upserted = []
        self.cleared = []

    def clear_cache(self, account_id=None):
        self.cleared.append(account_id)
        return 3

    def upsert_ad_templates(self, records):
        self.upserted.extend(records)
        return len(records)


def graph_ads():
    return [
        MetaAd.model_validate(
            {"id": "1", "name": "A", "status": "ACTIVE", "adset_id": "9", "creative": {"title": "Hi {{location.name}}"}}
        ),
        MetaAd.model_validate({"id": "2", "name": "B", "account_id": "7"}),
    ]


class TestSync:
    def test_upserts_every_ad(self):
        client, store = FakeClient(graph_ads()), FakeStore()
        result = sync_meta_ads(client, store)
        assert result == {"account_id": "act_42", "synced": 2, "removed": 0}
        assert client.requested_accounts == ["act_42"]
        assert store.cleared == []
        first, second = store.upserted
        assert first.meta_ad_id == "1"
        assert first.ad_set_id == "9"
        assert first.account_id == "act_42"
        assert first.creative == {"title": "Hi {{location.name}}"}
        # Graph sends bare numeric ids; the cache stores them normalized
        assert second.account_id == "act_7"

    def test_force_refresh_clears_account_first(self):
        store = FakeStore()
        result = sync_meta_ads(FakeClient(graph_ads()), store, account_id="99", force_refresh=True)
        assert store.cleared == ["act_99"]
        assert result["removed"] == 3

    def test_force_refresh_clears_what_it_stores(self):
        ads = [MetaAd.model_validate({"id": "5", "name": "C", "account_id": "42"})]
        client, store = FakeClient(ads), FakeStore()
        sync_meta_ads(client, store, force_refresh=True)
        assert store.cleared == ["act_42"]
        assert [r.account_id for r in store.upserted] == ["act_42"]

    def test_insight_metrics(self):
        client = FakeClient(graph_ads(), insights={"1": [{"impressions": "100", "clicks": "4", "ctr": "4.0"}]})
        store = FakeStore()
        sync_meta_ads(client, store, with_insights=True)
        assert store.upserted[0].performance_metrics == {"impressions": "100", "clicks": "4"}
        assert store.upserted[1].performance_metrics is None

    def test_record_from_ad_sets_sync_time(self):
        record = template_record_from_ad(graph_ads()[0])
        assert record.last_synced is not None
        assert record.status == "ACTIVE"


class TestTokenExpiry:
    now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def token(self, expires_at):
        return StoredToken(access_token="t", account_id="act_1", account_name="Main", expires_at=expires_at)

    def test_no_expiry(self):
        assert not is_expiring(self.token(None), now=self.now)

    def test_within_buffer(self):
        assert is_expiring(self.token(self.now + timedelta(minutes=5)), now=self.now)

    def test_outside_buffer(self):
        assert not is_expiring(self.token(self.now + timedelta(hours=1)), now=self.now)

    def test_naive_timestamp_is_utc(self):
        naive = (self.now + timedelta(minutes=5)).replace(tzinfo=None)
        assert is_expiring(self.token(naive), now=self.now)
