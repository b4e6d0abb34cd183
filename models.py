"""models.py

Domain models for the campaign builder: locations, location groups, campaign
settings, ad configurations, Meta ads and processed ads.

Models that come from the web client accept camelCase keys (`zipCode`,
`bidStrategy`, ...) as well as snake_case. Meta Graph payloads keep Graph's own
snake_case field names.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from template_vars import CamelModel, Coordinates, VariableContext


MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

# Corporate placeholder center that is never a target location.
CORPORATE_LOCATION_CODE = "CORP"


# -----------------------------
# Locations
# -----------------------------

class LocationSummary(CamelModel):
    # Only id and name are required; missing display fields render blank.
    id: str
    name: str
    display_name: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    phone_number: str = ""
    address: str = ""
    coordinates: Coordinates = Field(default_factory=Coordinates)
    # location code, used as the radius anchor name in exports
    location_prime: str = ""
    landing_page_url: Optional[str] = None

    @model_validator(mode="after")
    def _default_display_name(self) -> "LocationSummary":
        if not self.display_name:
            self.display_name = self.name
        return self


class CoordinatePoint(CamelModel):
    lat: float
    lng: float
    radius: float = 1.0


class LocationConfig(CamelModel):
    id: Optional[str] = None
    location_id: str
    user_id: Optional[str] = None
    budget: Optional[float] = None
    custom_settings: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    is_active: bool = True
    primary_lat: Optional[float] = None
    primary_lng: Optional[float] = None
    radius_miles: Optional[float] = None
    coordinate_list: Optional[List[CoordinatePoint]] = None
    landing_page_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LocationConfigRequest(CamelModel):
    """Create/update payload for a location's targeting configuration."""

    location_id: Optional[str] = None
    budget: Optional[float] = None
    custom_settings: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None
    primary_lat: Optional[float] = None
    primary_lng: Optional[float] = None
    radius_miles: Optional[float] = None
    coordinate_list: Optional[List[CoordinatePoint]] = None
    landing_page_url: Optional[str] = None

    @model_validator(mode="after")
    def _check_targeting(self) -> "LocationConfigRequest":
        primary = (self.primary_lat, self.primary_lng, self.radius_miles)
        if any(v is not None for v in primary):
            if self.primary_lat is None or not -90 <= self.primary_lat <= 90:
                raise ValueError("Primary latitude must be between -90 and 90")
            if self.primary_lng is None or not -180 <= self.primary_lng <= 180:
                raise ValueError("Primary longitude must be between -180 and 180")
            if self.radius_miles is None or self.radius_miles <= 0:
                raise ValueError("Radius must be a positive number")

        for point in self.coordinate_list or []:
            if not -90 <= point.lat <= 90:
                raise ValueError("All latitudes must be between -90 and 90")
            if not -180 <= point.lng <= 180:
                raise ValueError("All longitudes must be between -180 and 180")
            if point.radius <= 0:
                raise ValueError("All radius values must be positive numbers")

        url = (self.landing_page_url or "").strip()
        if url:
            parsed = urlparse(url)
            if not parsed.scheme or not parsed.netloc:
                raise ValueError("Please enter a valid landing page URL")
        return self


class LocationWithConfig(LocationSummary):
    config: Optional[LocationConfig] = None

    def effective_landing_page_url(self) -> Optional[str]:
        if self.config and self.config.landing_page_url:
            return self.config.landing_page_url
        return self.landing_page_url


class LocationFilters(CamelModel):
    search: Optional[str] = None
    states: List[str] = Field(default_factory=list)
    cities: List[str] = Field(default_factory=list)
    zip_codes: List[str] = Field(default_factory=list)


T = TypeVar("T")


class PaginatedResponse(CamelModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


# -----------------------------
# Location groups
# -----------------------------

class LocationGroup(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    user_id: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    location_count: Optional[int] = None


class LocationGroupMember(CamelModel):
    id: Optional[str] = None
    group_id: str
    location_id: str
    is_active: bool = True
    created_at: Optional[datetime] = None


class LocationGroupWithMembers(LocationGroup):
    members: List[LocationGroupMember] = Field(default_factory=list)
    locations: List[LocationSummary] = Field(default_factory=list)


class LocationGroupRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    location_ids: List[str] = Field(default_factory=list)


# -----------------------------
# Campaign settings (wizard)
# -----------------------------

class AdConfiguration(CamelModel):
    id: str = ""
    name: str = ""
    template_id: str = ""
    landing_page: str = ""
    # e.g. "+4m"
    radius: str = ""
    caption: str = ""
    additional_notes: str = ""
    scheduled_date: str = ""
    status: Literal["Paused", "Active", "Draft"] = "Paused"
    customizations: Optional[Dict[str, str]] = None


class CampaignConfiguration(CamelModel):
    prefix: str = ""
    platform: str = "Meta"
    selected_date: Optional[date] = None
    month: str = ""
    day: str = ""
    objective: str = "Engagement"
    test_type: str = "LocalTest"
    duration: str = "Evergreen"
    budget: float = 0.0
    bid_strategy: str = "Highest volume or value"
    start_date: str = ""
    end_date: str = ""
    ads: List[AdConfiguration] = Field(default_factory=list)
    radius: float = 5.0

    @model_validator(mode="after")
    def _derive_month_day(self) -> "CampaignConfiguration":
        if self.selected_date is not None:
            if not self.month:
                self.month = MONTH_NAMES[self.selected_date.month - 1]
            if not self.day:
                self.day = str(self.selected_date.day)
        return self


def campaign_settings_errors(config: CampaignConfiguration) -> Dict[str, str]:
    """Field -> message for every campaign setting that blocks the next step."""
    errors: Dict[str, str] = {}
    if not config.prefix.strip():
        errors["prefix"] = "Campaign prefix is required"
    if not config.platform:
        errors["platform"] = "Platform selection is required"
    if not config.objective:
        errors["objective"] = "Campaign objective is required"
    if not config.test_type:
        errors["testType"] = "Test type is required"
    if not config.duration:
        errors["duration"] = "Campaign duration is required"
    if config.budget <= 0:
        errors["budget"] = "Budget must be greater than 0"
    if not config.bid_strategy:
        errors["bidStrategy"] = "Bid strategy is required"
    return errors


def ad_configuration_errors(ads: List[AdConfiguration]) -> Dict[int, Dict[str, str]]:
    """Index -> {field: message} for every incomplete ad configuration."""
    out: Dict[int, Dict[str, str]] = {}
    for index, ad in enumerate(ads):
        errs: Dict[str, str] = {}
        if not ad.name.strip():
            errs["name"] = "Ad name is required"
        if not ad.template_id:
            errs["templateId"] = "Template selection is required"
        if not ad.caption.strip():
            errs["caption"] = "Ad caption is required"
        if errs:
            out[index] = errs
    return out


class Campaign(CamelModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    name: str
    platform: str = "Meta"
    objective: str = "Engagement"
    test_type: Optional[str] = "LocalTest"
    duration: Optional[str] = "Evergreen"
    budget: float
    bid_strategy: Optional[str] = "Highest volume or value"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    default_radius_miles: float = 5.0
    status: Literal["Draft", "Active", "Paused", "Completed"] = "Draft"
    configuration: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        if not (v or "").strip():
            raise ValueError("Campaign name is required")
        return v.strip()

    @field_validator("budget")
    @classmethod
    def _budget_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Budget must be greater than 0")
        return v


class CampaignLocation(CamelModel):
    id: Optional[str] = None
    campaign_id: str
    location_id: str
    location_budget: Optional[float] = None
    location_radius_miles: Optional[float] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    location: Optional[LocationSummary] = None


class CampaignWithLocations(Campaign):
    locations: List[CampaignLocation] = Field(default_factory=list)


class CampaignUpdate(CamelModel):
    name: Optional[str] = None
    platform: Optional[str] = None
    objective: Optional[str] = None
    test_type: Optional[str] = None
    duration: Optional[str] = None
    budget: Optional[float] = None
    bid_strategy: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    default_radius_miles: Optional[float] = None
    status: Optional[Literal["Draft", "Active", "Paused", "Completed"]] = None
    configuration: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("budget")
    @classmethod
    def _budget_positive(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("Budget must be greater than 0")
        return v


class CampaignLocationUpdate(CamelModel):
    location_budget: Optional[float] = None
    location_radius_miles: Optional[float] = None
    is_active: Optional[bool] = None


# -----------------------------
# Meta ads
# -----------------------------

class CallToActionValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    link: Optional[str] = None
    link_format: Optional[str] = None


class CallToAction(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = ""
    value: Optional[CallToActionValue] = None


class MetaAdCreative(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    call_to_action: Optional[CallToAction] = None
    image_url: Optional[str] = None
    image_hash: Optional[str] = None
    video_id: Optional[str] = None
    object_story_spec: Optional[Dict[str, Any]] = None


class MetaAd(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    status: Optional[str] = None
    creative: MetaAdCreative = Field(default_factory=MetaAdCreative)
    targeting: Optional[Dict[str, Any]] = None
    campaign_id: Optional[str] = None
    adset_id: Optional[str] = None
    account_id: Optional[str] = None
    bid_info: Optional[Dict[str, Any]] = None


class MetaAdFilters(CamelModel):
    status: List[str] = Field(default_factory=list)
    campaign_id: Optional[str] = None
    ad_set_id: Optional[str] = None
    search_query: Optional[str] = None


class MetaAdTemplateRecord(BaseModel):
    """A Meta ad cached in `meta_ad_templates`."""

    id: Optional[str] = None
    meta_ad_id: str
    name: str
    creative: Dict[str, Any] = Field(default_factory=dict)
    targeting: Optional[Dict[str, Any]] = None
    campaign_id: Optional[str] = None
    ad_set_id: Optional[str] = None
    account_id: Optional[str] = None
    status: Optional[str] = "ACTIVE"
    performance_metrics: Optional[Dict[str, Any]] = None
    last_synced: Optional[datetime] = None

    def to_meta_ad(self) -> MetaAd:
        return MetaAd(
            id=self.meta_ad_id,
            name=self.name,
            status=self.status,
            creative=MetaAdCreative.model_validate(self.creative or {}),
            targeting=self.targeting,
            campaign_id=self.campaign_id,
            adset_id=self.ad_set_id,
            account_id=self.account_id,
        )


class TemplateVariable(CamelModel):
    name: str
    type: Literal["location", "campaign", "custom"] = "custom"
    value: Optional[str] = None
    is_required: bool = False
    description: Optional[str] = None


class LocationOverride(CamelModel):
    custom: Dict[str, str] = Field(default_factory=dict)
    creative: Optional[Dict[str, Any]] = None
    budget: Optional[float] = None
    radius_miles: Optional[float] = None


class CampaignOverrides(CamelModel):
    creative: Optional[Dict[str, Any]] = None
    location_specific: Dict[str, LocationOverride] = Field(default_factory=dict)


class ProcessedContent(CamelModel):
    title: str = ""
    body: str = ""
    call_to_action: str = ""
    landing_page_url: str = ""


class ProcessedAd(CamelModel):
    id: str
    name: str
    location_id: Optional[str] = None
    creative: MetaAdCreative
    targeting: Optional[Dict[str, Any]] = None
    variables: VariableContext
    processed_content: ProcessedContent


# -----------------------------
# Ad templates
# -----------------------------

class AdTemplateFields(CamelModel):
    headline: str = ""
    description: str = ""
    call_to_action: str = ""
    image_url: str = ""
    landing_page_url: str = ""


class AdVariable(CamelModel):
    name: str
    type: Literal["location_field", "custom", "template_specific"] = "location_field"
    default_value: str = ""
    required: bool = False
    description: Optional[str] = None


class AdTemplate(CamelModel):
    id: str
    name: str
    type: Literal["template_1", "template_2", "template_3", "template_4", "custom"] = "custom"
    fields: AdTemplateFields
    variables: List[AdVariable] = Field(default_factory=list)
    is_active: bool = True
    is_custom: bool = False


BUILTIN_TEMPLATES: List[AdTemplate] = [
    AdTemplate(
        id="template_1",
        name="Promotional Offer Template",
        type="template_1",
        fields=AdTemplateFields(
            headline="Special Offer at {{location.name}}!",
            description=(
                "Visit our {{location.city}} location for exclusive deals and amazing service. "
                "Call {{location.phoneNumber}} to learn more!"
            ),
            call_to_action="Visit Us Today",
            image_url="/images/template1-hero.jpg",
            landing_page_url="{{location.landingPageUrl}}",
        ),
        variables=[
            AdVariable(name="location.name", default_value="Our Store", required=True, description="Location name"),
            AdVariable(name="location.city", default_value="Your City", required=True, description="City name"),
            AdVariable(name="location.phoneNumber", default_value="(555) 123-4567", required=True, description="Phone number"),
        ],
    ),
    AdTemplate(
        id="template_2",
        name="Service Announcement Template",
        type="template_2",
        fields=AdTemplateFields(
            headline="Now Serving {{location.city}}!",
            description=(
                "We're excited to announce our new services in {{location.city}}, {{location.state}}. "
                "Located at {{location.address}}, we're here to help!"
            ),
            call_to_action="Learn More",
            image_url="/images/template2-hero.jpg",
            landing_page_url="{{location.landingPageUrl}}",
        ),
        variables=[
            AdVariable(name="location.city", default_value="Your City", required=True, description="City name"),
            AdVariable(name="location.state", default_value="Your State", required=True, description="State name"),
            AdVariable(name="location.address", default_value="123 Main St", required=True, description="Full address"),
        ],
    ),
    AdTemplate(
        id="template_3",
        name="Grand Opening Template",
        type="template_3",
        fields=AdTemplateFields(
            headline="Grand Opening in {{location.city}}!",
            description=(
                "Join us for the grand opening of our newest location in {{location.city}}, "
                "{{location.state}}! Special offers available."
            ),
            call_to_action="Join the Celebration",
            image_url="/images/template3-hero.jpg",
            landing_page_url="{{location.landingPageUrl}}",
        ),
        variables=[
            AdVariable(name="location.city", default_value="Your City", required=True, description="City name"),
            AdVariable(name="location.state", default_value="Your State", required=True, description="State name"),
        ],
    ),
    AdTemplate(
        id="template_4",
        name="Contact Information Template",
        type="template_4",
        fields=AdTemplateFields(
            headline="Find Us in {{location.city}}",
            description=(
                "Visit us at {{location.address}} or call {{location.phoneNumber}}. "
                "We're here to serve the {{location.city}} community!"
            ),
            call_to_action="Get Directions",
            image_url="/images/template4-hero.jpg",
            landing_page_url="{{location.landingPageUrl}}",
        ),
        variables=[
            AdVariable(name="location.city", default_value="Your City", required=True, description="City name"),
            AdVariable(name="location.address", default_value="123 Main St", required=True, description="Full address"),
            AdVariable(name="location.phoneNumber", default_value="(555) 123-4567", required=True, description="Phone number"),
        ],
    ),
]


def get_builtin_template(template_id: str) -> Optional[AdTemplate]:
    for tpl in BUILTIN_TEMPLATES:
        if tpl.id == template_id:
            return tpl
    return None


class GenerationOptions(CamelModel):
    format: Literal["csv", "json"] = "csv"
    include_headers: bool = True
    file_name: Optional[str] = None


class GenerationPlan(CamelModel):
    """Everything needed to build one bulk-upload file.

    Locations may be given inline or by id (resolved against the location
    store). When no Meta ads are given, ads are built from the configuration's
    ad slots using the built-in templates.
    """

    config: CampaignConfiguration
    locations: List[LocationWithConfig] = Field(default_factory=list)
    location_ids: List[str] = Field(default_factory=list)
    meta_ads: List[MetaAd] = Field(default_factory=list)
    overrides: CampaignOverrides = Field(default_factory=CampaignOverrides)
    options: GenerationOptions = Field(default_factory=GenerationOptions)
