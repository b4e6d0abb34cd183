"""campaign_export.py

Builds Meta bulk-import rows (one per location x ad) and writes them as CSV or
JSON.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Optional, Sequence

from ad_processing import ads_from_configurations, generate_campaign_with_meta_ads
from models import (
    BUILTIN_TEMPLATES,
    CampaignConfiguration,
    CampaignOverrides,
    GenerationPlan,
    LocationOverride,
    LocationWithConfig,
    ProcessedAd,
)
from reference_values import (
    AD_SETTINGS,
    ADSET_SETTINGS,
    CAMPAIGN_SETTINGS,
    DEFAULT_LANDING_PAGE,
    DEFAULT_PLACEMENTS,
    DISPLAY_LINK,
    EXCLUDED_ZIP,
    generate_ad_name,
    generate_ad_set_name,
    generate_campaign_name,
)
from template_vars import format_budget

log = logging.getLogger(__name__)

HEADERS: List[str] = [
    "Campaign ID",
    "Campaign Name",
    "Campaign Status",
    "Campaign Objective",
    "Buying Type",
    "Campaign Lifetime Budget",
    "Campaign Bid Strategy",
    "Campaign Start Time",
    "Campaign Stop Time",
    "New Objective",
    "Buy With Prime Type",
    "Is Budget Scheduling Enabled For Campaign",
    "Campaign High Demand Periods",
    "Buy With Integration Partner",
    "Ad Set ID",
    "Ad Set Run Status",
    "Ad Set Lifetime Impressions",
    "Ad Set Name",
    "Ad Set Time Start",
    "Ad Set Time Stop",
    "Destination Type",
    "Use Accelerated Delivery",
    "Is Budget Scheduling Enabled For Ad Set",
    "Ad Set High Demand Periods",
    "Link Object ID",
    "Optimized Conversion Tracking Pixels",
    "Optimized Event",
    "Link",
    "Addresses",
    "Location Types",
    "Excluded Regions",
    "Excluded Zip",
    "Gender",
    "Age Min",
    "Age Max",
    "Excluded Custom Audiences",
    "Flexible Inclusions",
    "Targeting Relaxation",
    "Brand Safety Inventory Filtering Levels",
    "Optimization Goal",
    "Attribution Spec",
    "Billing Event",
    "Ad ID",
    "Ad Status",
    "Preview Link",
    "Instagram Preview Link",
    "Ad Name",
    "Automatic Format",
    "Title",
    "Title Placement",
    "Body",
    "Body Placement",
    "Display Link",
    "Link Placement",
    "Optimize text per person",
    "Conversion Tracking Pixels",
    "Image Hash",
    "Video Thumbnail URL",
    "Image Placement",
    "Additional Image 1 Hash",
    "Additional Image 1 Placement",
    "Additional Image 2 Hash",
    "Additional Image 2 Placement",
    "Additional Image 3 Hash",
    "Additional Image 3 Placement",
    "Additional Image 4 Hash",
    "Additional Image 4 Placement",
    "Creative Type",
    "URL Tags",
    "Video ID",
    "Video Placement",
    "Additional Video 1 ID",
    "Additional Video 1 Placement",
    "Additional Video 1 Thumbnail URL",
    "Instagram Account ID",
    "Call to Action",
    "Additional Custom Tracking Specs",
    "Video Retargeting",
    "Permalink",
    "Use Page as Actor",
    "Dynamic Creative Call to Action",
    "Degrees of Freedom Type",
]


def format_sheet_date(value: Optional[str]) -> str:
    """ISO date/datetime -> "MM/DD/YYYY hh:mm:ss am|pm" in UTC.

    Naive values are taken as UTC. Anything unparseable is returned unchanged.
    """
    if not value:
        return ""
    try:
        d = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return value
    if d.tzinfo is not None:
        d = d.astimezone(timezone.utc)
    hour = d.hour % 12 or 12
    ampm = "pm" if d.hour >= 12 else "am"
    return f"{d.month:02d}/{d.day:02d}/{d.year} {hour:02d}:{d.minute:02d}:{d.second:02d} {ampm}"


def format_addresses(
    location: LocationWithConfig,
    default_radius: float,
    radius_override: Optional[float] = None,
) -> str:
    cfg = location.config
    lat = location.coordinates.latitude
    lng = location.coordinates.longitude
    if cfg is not None and cfg.primary_lat is not None and cfg.primary_lng is not None:
        lat, lng = cfg.primary_lat, cfg.primary_lng
    radius = cfg.radius_miles if cfg is not None and cfg.radius_miles else default_radius
    if radius_override:
        radius = radius_override
    return f"({lat:.3f}, {lng:.3f}) +{format_budget(float(radius))}mi"


def landing_page_for(location: LocationWithConfig, ad: ProcessedAd) -> str:
    return (
        location.effective_landing_page_url()
        or ad.processed_content.landing_page_url
        or DEFAULT_LANDING_PAGE
    )


def build_row(
    config: CampaignConfiguration,
    location: LocationWithConfig,
    ad: ProcessedAd,
    override: Optional[LocationOverride] = None,
) -> Dict[str, str]:
    names = dict(
        prefix=config.prefix,
        platform=config.platform,
        objective=config.objective,
        test_type=config.test_type,
    )
    start = format_sheet_date(config.start_date)
    stop = format_sheet_date(config.end_date)
    content = ad.processed_content
    cta = content.call_to_action or AD_SETTINGS["call_to_action"]
    budget = config.budget
    radius = None
    if override is not None:
        if override.budget is not None:
            budget = override.budget
        radius = override.radius_miles

    values = [
        "",
        generate_campaign_name(location.name, config.month, config.day, **names),
        CAMPAIGN_SETTINGS["campaign_status"],
        CAMPAIGN_SETTINGS["campaign_objective"],
        CAMPAIGN_SETTINGS["buying_type"],
        format_budget(budget),
        config.bid_strategy,
        start,
        stop,
        CAMPAIGN_SETTINGS["new_objective"],
        CAMPAIGN_SETTINGS["buy_with_prime_type"],
        CAMPAIGN_SETTINGS["is_budget_scheduling_enabled"],
        CAMPAIGN_SETTINGS["high_demand_periods"],
        CAMPAIGN_SETTINGS["buy_with_integration_partner"],
        "",
        ADSET_SETTINGS["run_status"],
        ADSET_SETTINGS["lifetime_impressions"],
        generate_ad_set_name(location.name, config.month, config.day, **names),
        start,
        stop,
        ADSET_SETTINGS["destination_type"],
        ADSET_SETTINGS["use_accelerated_delivery"],
        ADSET_SETTINGS["is_budget_scheduling_enabled"],
        ADSET_SETTINGS["high_demand_periods"],
        ADSET_SETTINGS["link_object_id"],
        ADSET_SETTINGS["optimized_conversion_tracking_pixels"],
        ADSET_SETTINGS["optimized_event"],
        landing_page_for(location, ad),
        format_addresses(location, config.radius, radius),
        ADSET_SETTINGS["location_types"],
        ADSET_SETTINGS["excluded_regions"],
        EXCLUDED_ZIP,
        ADSET_SETTINGS["gender"],
        ADSET_SETTINGS["age_min"],
        ADSET_SETTINGS["age_max"],
        ADSET_SETTINGS["excluded_custom_audiences"],
        ADSET_SETTINGS["flexible_inclusions"],
        ADSET_SETTINGS["targeting_relaxation"],
        ADSET_SETTINGS["brand_safety_filtering"],
        ADSET_SETTINGS["optimization_goal"],
        ADSET_SETTINGS["attribution_spec"],
        ADSET_SETTINGS["billing_event"],
        "",
        AD_SETTINGS["status"],
        AD_SETTINGS["preview_link"],
        AD_SETTINGS["instagram_preview_link"],
        generate_ad_name(location.name, config.month, config.day, **names),
        AD_SETTINGS["ad_format"],
        content.title or AD_SETTINGS["title"],
        DEFAULT_PLACEMENTS,
        content.body or AD_SETTINGS["body"],
        DEFAULT_PLACEMENTS,
        DISPLAY_LINK,
        DEFAULT_PLACEMENTS,
        AD_SETTINGS["optimize_text_per_person"],
        AD_SETTINGS["conversion_tracking_pixels"],
        AD_SETTINGS["image_hash"],
        AD_SETTINGS["video_thumbnail_url"],
        AD_SETTINGS["image_placement"],
        AD_SETTINGS["additional_image_1_hash"],
        AD_SETTINGS["additional_image_1_placement"],
        "",
        "",
        "",
        "",
        "",
        "",
        AD_SETTINGS["creative_type"],
        AD_SETTINGS["url_tags"],
        AD_SETTINGS["video_id"],
        AD_SETTINGS["video_placement"],
        AD_SETTINGS["additional_video_1_id"],
        AD_SETTINGS["additional_video_1_placement"],
        AD_SETTINGS["additional_video_1_thumbnail_url"],
        AD_SETTINGS["instagram_account_id"],
        cta,
        AD_SETTINGS["additional_custom_tracking_specs"],
        AD_SETTINGS["video_retargeting"],
        AD_SETTINGS["permalink"],
        AD_SETTINGS["use_page_as_actor"],
        cta,
        AD_SETTINGS["degrees_of_freedom_type"],
    ]
    return dict(zip(HEADERS, values))


def build_export_rows(
    config: CampaignConfiguration,
    locations: Sequence[LocationWithConfig],
    processed_ads: Sequence[ProcessedAd],
    overrides: Optional[CampaignOverrides] = None,
) -> List[Dict[str, str]]:
    by_id = {loc.id: loc for loc in locations}
    per_location = overrides.location_specific if overrides else {}
    rows: List[Dict[str, str]] = []
    for ad in processed_ads:
        location = by_id.get(ad.location_id or "")
        if location is None:
            raise LookupError(f"Processed ad {ad.id} references unknown location {ad.location_id}")
        rows.append(build_row(config, location, ad, per_location.get(location.id)))
    log.info("Built %d export rows for %d locations", len(rows), len(locations))
    return rows


def to_csv(rows: Sequence[Dict[str, str]], *, include_headers: bool = True) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL)
    if include_headers:
        writer.writerow(HEADERS)
    for row in rows:
        writer.writerow([row.get(h, "") for h in HEADERS])
    return buf.getvalue()


def to_json(rows: Sequence[Dict[str, str]]) -> str:
    return json.dumps(list(rows), ensure_ascii=False, indent=2)


def export_file_name(config: CampaignConfiguration, fmt: str = "csv") -> str:
    if fmt not in ("csv", "json"):
        raise ValueError(f"Unsupported export format: {fmt}")
    return f"{config.prefix}_{config.platform}_{config.month}{config.day}_AllCampaigns.{fmt}"


def render_export(
    config: CampaignConfiguration,
    locations: Sequence[LocationWithConfig],
    processed_ads: Sequence[ProcessedAd],
    *,
    fmt: str = "csv",
    include_headers: bool = True,
    overrides: Optional[CampaignOverrides] = None,
) -> str:
    rows = build_export_rows(config, locations, processed_ads, overrides)
    if fmt == "json":
        return to_json(rows)
    if fmt == "csv":
        return to_csv(rows, include_headers=include_headers)
    raise ValueError(f"Unsupported export format: {fmt}")


class ExportResult(NamedTuple):
    file_name: str
    content: str
    row_count: int


def generate_export(plan: GenerationPlan, locations: Sequence[LocationWithConfig]) -> ExportResult:
    """Process every (location, ad) pair of the plan and render the upload file."""
    if not locations:
        raise ValueError("Select at least one location")
    ads = list(plan.meta_ads) or ads_from_configurations(plan.config.ads, BUILTIN_TEMPLATES)
    if not ads:
        raise ValueError("Add at least one ad")

    processed = generate_campaign_with_meta_ads(plan.config, ads, locations, plan.overrides)
    fmt = plan.options.format
    content = render_export(
        plan.config,
        locations,
        processed,
        fmt=fmt,
        include_headers=plan.options.include_headers,
        overrides=plan.overrides,
    )
    file_name = plan.options.file_name or export_file_name(plan.config, fmt)
    return ExportResult(file_name=file_name, content=content, row_count=len(processed))
