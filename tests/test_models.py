"""Tests for domain model validation and form checks."""

from datetime import date

import pytest
from pydantic import ValidationError

from models import (
    AdConfiguration,
    Campaign,
    CampaignConfiguration,
    CampaignUpdate,
    GenerationPlan,
    LocationConfig,
    LocationConfigRequest,
    LocationSummary,
    LocationWithConfig,
    MetaAdTemplateRecord,
    ad_configuration_errors,
    campaign_settings_errors,
    get_builtin_template,
)


class TestCampaignConfiguration:
    """Wizard settings."""

    def test_month_and_day_derived_from_selected_date(self):
        cfg = CampaignConfiguration(prefix="EWC", selected_date=date(2025, 6, 9))
        assert cfg.month == "June"
        assert cfg.day == "9"

    def test_explicit_month_kept(self):
        cfg = CampaignConfiguration(selected_date=date(2025, 6, 9), month="July", day="1")
        assert (cfg.month, cfg.day) == ("July", "1")

    def test_camel_case_keys_accepted(self):
        cfg = CampaignConfiguration.model_validate({"prefix": "EWC", "bidStrategy": "Cost cap", "testType": "A/B"})
        assert cfg.bid_strategy == "Cost cap"
        assert cfg.test_type == "A/B"

    def test_settings_errors(self):
        errors = campaign_settings_errors(CampaignConfiguration(prefix="  ", budget=0))
        assert errors == {
            "prefix": "Campaign prefix is required",
            "budget": "Budget must be greater than 0",
        }

    def test_settings_valid(self):
        assert campaign_settings_errors(CampaignConfiguration(prefix="EWC", budget=25)) == {}

    def test_ad_errors_by_index(self):
        ads = [
            AdConfiguration(name="Ad 1", template_id="template_1", caption="Hi"),
            AdConfiguration(name="", template_id="", caption=" "),
        ]
        assert ad_configuration_errors(ads) == {
            1: {
                "name": "Ad name is required",
                "templateId": "Template selection is required",
                "caption": "Ad caption is required",
            }
        }


class TestCampaign:
    def test_name_is_stripped(self):
        assert Campaign(name="  Spring  ", budget=10).name == "Spring"

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError, match="Campaign name is required"):
            Campaign(name="   ", budget=10)

    def test_budget_must_be_positive(self):
        with pytest.raises(ValidationError, match="Budget must be greater than 0"):
            Campaign(name="Spring", budget=0)

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            Campaign(name="Spring", budget=10, status="Archived")

    def test_partial_update(self):
        update = CampaignUpdate.model_validate({"status": "Paused"})
        assert update.model_dump(exclude_unset=True) == {"status": "Paused"}
        with pytest.raises(ValidationError):
            CampaignUpdate(budget=-1)


class TestLocationConfigRequest:
    """Targeting config checks."""

    def test_valid(self):
        req = LocationConfigRequest(primary_lat=39.7, primary_lng=-104.9, radius_miles=3, landing_page_url="https://x.com/a")
        assert req.radius_miles == 3

    @pytest.mark.parametrize(
        "kwargs,message",
        [
            ({"primary_lat": 91, "primary_lng": 0, "radius_miles": 1}, "Primary latitude must be between -90 and 90"),
            ({"primary_lat": 0, "primary_lng": 200, "radius_miles": 1}, "Primary longitude must be between -180 and 180"),
            ({"primary_lat": 0, "primary_lng": 0, "radius_miles": 0}, "Radius must be a positive number"),
            ({"coordinate_list": [{"lat": 0, "lng": 0, "radius": -1}]}, "All radius values must be positive numbers"),
            ({"landing_page_url": "not a url"}, "Please enter a valid landing page URL"),
        ],
    )
    def test_invalid(self, kwargs, message):
        with pytest.raises(ValidationError, match=message):
            LocationConfigRequest(**kwargs)


class TestLocationWithConfig:
    def test_config_landing_page_wins(self):
        loc = LocationWithConfig(
            id="1",
            name="Uptown",
            display_name="Uptown",
            city="Denver",
            state="CO",
            landing_page_url="https://a.example",
            config=LocationConfig(location_id="1", landing_page_url="https://b.example"),
        )
        assert loc.effective_landing_page_url() == "https://b.example"

    def test_falls_back_to_location(self):
        loc = LocationWithConfig(id="1", name="U", display_name="U", city="D", state="CO", landing_page_url="https://a.example")
        assert loc.effective_landing_page_url() == "https://a.example"

    def test_summary_serializes_camel_case(self):
        loc = LocationSummary(id="1", name="U", display_name="U", city="D", state="CO", zip_code="80202")
        data = loc.model_dump(by_alias=True)
        assert data["zipCode"] == "80202"
        assert data["displayName"] == "U"


class TestTemplates:
    def test_builtin_lookup(self):
        assert get_builtin_template("template_4").fields.call_to_action == "Get Directions"
        assert get_builtin_template("nope") is None

    def test_cached_record_to_meta_ad(self):
        record = MetaAdTemplateRecord(
            meta_ad_id="123",
            name="Ad",
            creative={"title": "Hi {{location.name}}", "call_to_action": {"type": "LEARN_MORE"}},
            ad_set_id="9",
        )
        ad = record.to_meta_ad()
        assert ad.id == "123"
        assert ad.adset_id == "9"
        assert ad.creative.call_to_action.type == "LEARN_MORE"

    def test_generation_plan_defaults(self):
        plan = GenerationPlan.model_validate({"config": {"prefix": "EWC"}, "locationIds": ["a"]})
        assert plan.location_ids == ["a"]
        assert plan.options.format == "csv"
        assert plan.options.include_headers is True
