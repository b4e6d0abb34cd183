"""Tests for the bulk-upload rows and files."""

import csv
import io
import json

import pytest

from ad_processing import generate_campaign_with_meta_ads
from campaign_export import (
    HEADERS,
    build_export_rows,
    export_file_name,
    format_addresses,
    format_sheet_date,
    generate_export,
    render_export,
    to_csv,
)
from models import CampaignOverrides, GenerationOptions, GenerationPlan, LocationOverride
from reference_values import (
    AD_SETTINGS,
    EXCLUDED_ZIP,
    generate_ad_name,
    generate_ad_set_name,
    generate_campaign_name,
)


@pytest.fixture
def rows(meta_ad, locations, campaign_config):
    processed = generate_campaign_with_meta_ads(campaign_config, [meta_ad], locations)
    return build_export_rows(campaign_config, locations, processed)


class TestNames:
    def test_campaign_name(self):
        assert generate_campaign_name("Cherry Creek", "June", "1") == "EWC_Meta_June1_Engagement_LocalTest_CherryCreek"

    def test_ad_set_and_ad_names_carry_month(self):
        assert generate_ad_set_name("Uptown", "June", "1", prefix="X") == "X_Meta_June1_Engagement_LocalTest_Uptown_June"
        assert generate_ad_name("Uptown", "June", "1") == generate_ad_set_name("Uptown", "June", "1")

    def test_file_name(self, campaign_config):
        assert export_file_name(campaign_config) == "EWC_Meta_June1_AllCampaigns.csv"
        assert export_file_name(campaign_config, "json") == "EWC_Meta_June1_AllCampaigns.json"
        with pytest.raises(ValueError):
            export_file_name(campaign_config, "xlsx")


class TestFormatting:
    def test_sheet_date_utc(self):
        assert format_sheet_date("2025-06-01T14:30:00Z") == "06/01/2025 02:30:00 pm"
        assert format_sheet_date("2025-06-01T09:05:00-02:00") == "06/01/2025 11:05:00 am"
        assert format_sheet_date("2025-06-30") == "06/30/2025 12:00:00 am"

    def test_sheet_date_passthrough(self):
        assert format_sheet_date("") == ""
        assert format_sheet_date("next week") == "next week"

    def test_addresses_use_location_coordinates(self, uptown_location):
        assert format_addresses(uptown_location, 5.0) == "(39.739, -104.990) +5mi"

    def test_addresses_prefer_config(self, cherry_creek_location):
        assert format_addresses(cherry_creek_location, 5.0) == "(39.720, -104.950) +3mi"

    def test_addresses_location_override_radius(self, cherry_creek_location):
        assert format_addresses(cherry_creek_location, 5.0, 7.5) == "(39.720, -104.950) +7.5mi"


class TestRows:
    def test_header_count(self):
        assert len(HEADERS) == 82
        assert len(set(HEADERS)) == 82

    def test_one_row_per_location_and_ad(self, rows):
        assert len(rows) == 2
        assert all(list(r.keys()) == HEADERS for r in rows)

    def test_row_values(self, rows):
        first, second = rows
        assert first["Campaign Name"] == "EWC_Meta_June1_Engagement_LocalTest_Uptown"
        assert first["Ad Set Name"] == "EWC_Meta_June1_Engagement_LocalTest_Uptown_June"
        assert first["Campaign Lifetime Budget"] == "50"
        assert first["Campaign Start Time"] == "06/01/2025 02:30:00 pm"
        assert first["Title"] == "Summer at Uptown"
        assert first["Body"] == "Visit us in Denver, CO. Budget $50"
        assert first["Call to Action"] == "BOOK_NOW"
        assert first["Link"] == "https://waxcenter.com/uptown"
        assert first["Excluded Zip"] == EXCLUDED_ZIP
        assert second["Link"] == "https://waxcenter.com/cherry-creek"
        assert second["Addresses"] == "(39.720, -104.950) +3mi"

    def test_empty_copy_falls_back_to_defaults(self, locations, campaign_config):
        from models import MetaAd

        processed = generate_campaign_with_meta_ads(campaign_config, [MetaAd(id="1")], locations[:1])
        row = build_export_rows(campaign_config, locations[:1], processed)[0]
        assert row["Title"] == AD_SETTINGS["title"]
        assert row["Body"] == AD_SETTINGS["body"]
        assert row["Call to Action"] == AD_SETTINGS["call_to_action"]

    def test_location_override_budget_and_radius(self, meta_ad, locations, campaign_config):
        overrides = CampaignOverrides(location_specific={"loc-uptown": LocationOverride(budget=80, radius_miles=2)})
        processed = generate_campaign_with_meta_ads(campaign_config, [meta_ad], locations, overrides)
        uptown, cherry = build_export_rows(campaign_config, locations, processed, overrides)
        assert uptown["Campaign Lifetime Budget"] == "80"
        assert uptown["Addresses"] == "(39.739, -104.990) +2mi"
        assert cherry["Campaign Lifetime Budget"] == "50"
        assert cherry["Addresses"] == "(39.720, -104.950) +3mi"

    def test_unknown_location(self, meta_ad, locations, campaign_config):
        processed = generate_campaign_with_meta_ads(campaign_config, [meta_ad], locations)
        with pytest.raises(LookupError):
            build_export_rows(campaign_config, locations[:1], processed)


class TestRender:
    def test_csv(self, rows):
        text = to_csv(rows)
        parsed = list(csv.reader(io.StringIO(text)))
        assert parsed[0] == HEADERS
        assert len(parsed) == 3
        assert parsed[1][HEADERS.index("Title")] == "Summer at Uptown"

    def test_csv_without_headers(self, rows):
        parsed = list(csv.reader(io.StringIO(to_csv(rows, include_headers=False))))
        assert len(parsed) == 2

    def test_json(self, meta_ad, locations, campaign_config):
        processed = generate_campaign_with_meta_ads(campaign_config, [meta_ad], locations)
        data = json.loads(render_export(campaign_config, locations, processed, fmt="json"))
        assert len(data) == 2
        assert data[1]["Ad Name"].endswith("CherryCreek_June")


class TestGenerateExport:
    def test_builtin_templates_used_without_meta_ads(self, locations, campaign_config):
        plan = GenerationPlan(config=campaign_config, locations=locations)
        result = generate_export(plan, locations)
        assert result.file_name == "EWC_Meta_June1_AllCampaigns.csv"
        assert result.row_count == 2
        assert "Special Offer at Uptown!" in result.content
        assert "Visit Cherry Creek!" in result.content

    def test_custom_file_name_and_json(self, meta_ad, locations, campaign_config):
        plan = GenerationPlan(
            config=campaign_config,
            meta_ads=[meta_ad],
            options=GenerationOptions(format="json", file_name="out.json"),
        )
        result = generate_export(plan, locations)
        assert result.file_name == "out.json"
        assert json.loads(result.content)[0]["Title"] == "Summer at Uptown"

    def test_requires_locations(self, campaign_config):
        with pytest.raises(ValueError, match="Select at least one location"):
            generate_export(GenerationPlan(config=campaign_config), [])

    def test_requires_ads(self, locations, campaign_config):
        campaign_config.ads = []
        with pytest.raises(ValueError, match="Add at least one ad"):
            generate_export(GenerationPlan(config=campaign_config), locations)
