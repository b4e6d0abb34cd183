"""ad_processing.py

Expands a campaign into one processed ad per (location, ad) pair.

Order is location-major: every ad for the first location, then every ad for
the second, and so on. Nothing here touches the network or the database, so
the same inputs always give the same output.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from models import (
    AdConfiguration,
    AdTemplate,
    CallToAction,
    CallToActionValue,
    CampaignConfiguration,
    CampaignOverrides,
    LocationSummary,
    LocationWithConfig,
    MetaAd,
    MetaAdCreative,
    ProcessedAd,
    ProcessedContent,
    ad_configuration_errors,
    campaign_settings_errors,
)
from template_vars import CampaignVars, LocationVars, VariableContext, resolve

LocationLike = Union[LocationSummary, LocationWithConfig]


def _landing_page(location: LocationLike) -> Optional[str]:
    if isinstance(location, LocationWithConfig):
        return location.effective_landing_page_url()
    return location.landing_page_url


def build_variable_context(
    location: Optional[LocationLike],
    config: Optional[CampaignConfiguration],
    custom: Optional[Dict[str, str]] = None,
) -> VariableContext:
    ctx = VariableContext(custom=dict(custom or {}))
    if location is not None:
        ctx.location = LocationVars(
            name=location.name,
            city=location.city,
            state=location.state,
            zip_code=location.zip_code,
            phone_number=location.phone_number,
            address=location.address,
            landing_page_url=_landing_page(location),
            coordinates=location.coordinates,
        )
    if config is not None:
        ctx.campaign = CampaignVars(
            name=config.prefix,
            objective=config.objective,
            platform=config.platform,
            budget=config.budget,
            start_date=config.start_date,
            end_date=config.end_date,
        )
    return ctx


def _merge_creative(creative: MetaAdCreative, override: Optional[Dict[str, Any]]) -> MetaAdCreative:
    # shallow: an overridden call_to_action replaces the whole object
    if not override:
        return creative.model_copy(deep=True)
    data = creative.model_dump(exclude_unset=True)
    data.update(override)
    return MetaAdCreative.model_validate(data)


def process_ad_with_variables(
    ad: MetaAd,
    context: VariableContext,
    overrides: Optional[CampaignOverrides] = None,
    *,
    location_id: Optional[str] = None,
) -> ProcessedAd:
    creative = _merge_creative(ad.creative, overrides.creative if overrides else None)
    loc_override = overrides.location_specific.get(location_id) if overrides and location_id else None
    if loc_override is not None and loc_override.creative:
        # per-location creative wins over the campaign-wide one
        creative = _merge_creative(creative, loc_override.creative)

    cta = creative.call_to_action
    cta_type = cta.type if cta else ""
    link = cta.value.link if cta and cta.value and cta.value.link else ""

    content = ProcessedContent(
        title=resolve(creative.title or "", context),
        body=resolve(creative.body or "", context),
        call_to_action=resolve(cta_type, context),
        landing_page_url=resolve(link, context),
    )
    return ProcessedAd(
        id=ad.id,
        name=ad.name,
        location_id=location_id,
        creative=creative,
        targeting=ad.targeting,
        variables=context,
        processed_content=content,
    )


def generate_campaign_with_meta_ads(
    config: CampaignConfiguration,
    ads: Sequence[MetaAd],
    locations: Sequence[LocationLike],
    overrides: Optional[CampaignOverrides] = None,
) -> List[ProcessedAd]:
    overrides = overrides or CampaignOverrides()
    out: List[ProcessedAd] = []
    for location in locations:
        loc_override = overrides.location_specific.get(location.id)
        custom = loc_override.custom if loc_override else {}
        for ad in ads:
            ctx = build_variable_context(location, config, custom)
            out.append(process_ad_with_variables(ad, ctx, overrides, location_id=location.id))
    return out


class MetaAdPreview(BaseModel):
    title: str = ""
    body: str = ""
    call_to_action: str = ""
    landing_page_url: str = ""
    image_url: Optional[str] = None


def preview_meta_ad(ad: MetaAd, sample_location: Optional[LocationLike] = None) -> MetaAdPreview:
    """Show an ad as it would render for `sample_location`.

    Without a location the creative text is returned as authored, placeholders
    included.
    """
    creative = ad.creative
    cta = creative.call_to_action
    cta_type = cta.type if cta else ""
    link = cta.value.link if cta and cta.value and cta.value.link else ""

    if sample_location is None:
        return MetaAdPreview(
            title=creative.title or "",
            body=creative.body or "",
            call_to_action=cta_type,
            landing_page_url=link,
            image_url=creative.image_url,
        )

    ctx = build_variable_context(sample_location, None)
    return MetaAdPreview(
        title=resolve(creative.title or "", ctx),
        body=resolve(creative.body or "", ctx),
        call_to_action=resolve(cta_type, ctx),
        landing_page_url=resolve(link, ctx),
        image_url=creative.image_url,
    )


def ad_from_template(template: AdTemplate, *, caption: Optional[str] = None) -> MetaAd:
    """Turn a built-in template into the ad shape the generator consumes."""
    fields = template.fields
    return MetaAd(
        id=template.id,
        name=template.name,
        status="PAUSED",
        creative=MetaAdCreative(
            name=template.name,
            title=fields.headline,
            body=caption if caption else fields.description,
            image_url=fields.image_url or None,
            call_to_action=CallToAction(
                type=fields.call_to_action,
                value=CallToActionValue(link=fields.landing_page_url),
            ),
        ),
    )


def ads_from_configurations(
    ads: Sequence[AdConfiguration],
    templates: Sequence[AdTemplate],
) -> List[MetaAd]:
    by_id = {t.id: t for t in templates}
    out: List[MetaAd] = []
    for cfg in ads:
        tpl = by_id.get(cfg.template_id)
        if tpl is None:
            raise LookupError(f"Unknown template: {cfg.template_id}")
        ad = ad_from_template(tpl, caption=cfg.caption or None)
        ad.id = cfg.id or tpl.id
        ad.name = cfg.name or tpl.name
        ad.status = cfg.status.upper()
        if cfg.landing_page and ad.creative.call_to_action is not None:
            ad.creative.call_to_action.value = CallToActionValue(link=cfg.landing_page)
        out.append(ad)
    return out


class ReviewSummary(BaseModel):
    location_count: int
    ad_count: int
    estimated_rows: int
    total_budget: float
    settings_errors: Dict[str, str] = Field(default_factory=dict)
    ad_errors: Dict[int, Dict[str, str]] = Field(default_factory=dict)
    ready: bool


def review_summary(
    config: CampaignConfiguration,
    locations: Sequence[LocationLike],
    ads: Optional[Sequence[AdConfiguration]] = None,
    *,
    meta_ads: Optional[Sequence[MetaAd]] = None,
) -> ReviewSummary:
    """Summarize what an export would produce.

    Selected Meta ads replace the configured template ads, the same way the
    export uses them.
    """
    settings = campaign_settings_errors(config)
    if meta_ads:
        ad_count, ad_errs = len(meta_ads), {}
    else:
        ads = list(ads if ads is not None else config.ads)
        ad_count, ad_errs = len(ads), ad_configuration_errors(ads)
    return ReviewSummary(
        location_count=len(locations),
        ad_count=ad_count,
        estimated_rows=len(locations) * ad_count,
        total_budget=config.budget * len(locations),
        settings_errors=settings,
        ad_errors=ad_errs,
        ready=bool(locations) and ad_count > 0 and not settings and not ad_errs,
    )
