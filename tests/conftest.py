"""Shared fixtures: two Denver-area centers, a campaign config and a Meta ad."""

from datetime import date

import pytest

from models import (
    AdConfiguration,
    CallToAction,
    CallToActionValue,
    CampaignConfiguration,
    LocationConfig,
    LocationWithConfig,
    MetaAd,
    MetaAdCreative,
)
from template_vars import Coordinates


@pytest.fixture
def uptown_location():
    return LocationWithConfig(
        id="loc-uptown",
        name="Uptown",
        display_name="Denver Uptown",
        city="Denver",
        state="CO",
        zip_code="80202",
        phone_number="555-0100",
        address="1 Main St",
        coordinates=Coordinates(latitude=39.7392, longitude=-104.9903),
        location_prime="0123",
        landing_page_url="https://waxcenter.com/uptown",
    )


@pytest.fixture
def cherry_creek_location():
    return LocationWithConfig(
        id="loc-cherry",
        name="Cherry Creek",
        display_name="Denver Cherry Creek",
        city="Denver",
        state="CO",
        zip_code="80206",
        phone_number="555-0200",
        address="2 Fillmore St",
        coordinates=Coordinates(latitude=39.7170, longitude=-104.9530),
        location_prime="0456",
        config=LocationConfig(
            location_id="loc-cherry",
            primary_lat=39.72,
            primary_lng=-104.95,
            radius_miles=3,
            landing_page_url="https://waxcenter.com/cherry-creek",
        ),
    )


@pytest.fixture
def locations(uptown_location, cherry_creek_location):
    return [uptown_location, cherry_creek_location]


@pytest.fixture
def campaign_config():
    return CampaignConfiguration(
        prefix="EWC",
        platform="Meta",
        selected_date=date(2025, 6, 1),
        objective="Engagement",
        test_type="LocalTest",
        budget=50,
        start_date="2025-06-01T14:30:00Z",
        end_date="2025-06-30",
        ads=[AdConfiguration(id="ad-1", name="Promo", template_id="template_1", caption="Visit {{location.name}}!")],
    )


@pytest.fixture
def meta_ad():
    return MetaAd(
        id="2385",
        name="Summer Promo",
        status="ACTIVE",
        creative=MetaAdCreative(
            title="Summer at {{location.name}}",
            body="Visit us in {{location.city}}, {{location.state}}. Budget ${{campaign.budget}}",
            call_to_action=CallToAction(
                type="BOOK_NOW",
                value=CallToActionValue(link="{{location.landingPageUrl}}"),
            ),
        ),
        targeting={"geo_locations": {"countries": ["US"]}},
    )
