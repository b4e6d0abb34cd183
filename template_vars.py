"""template_vars.py

Placeholder substitution for ad creative text.

Templates contain `{{namespace.field}}` placeholders where namespace is one of
`location`, `campaign` or `custom`:

    "Visit {{location.name}} in {{location.city}}! Budget: ${{campaign.budget}}"

Substitution rules
------------------
- Built-in placeholders (location.* / campaign.*) always resolve. When the
  namespace or the field is missing from the context they become "".
- `{{custom.<key>}}` resolves only for keys present in `context.custom`.
  Unknown custom keys are left in the output as literal text so they show up
  in review instead of silently producing blank ad copy.
- Anything else (`{{ad.name}}`, `{{placement}}`, ...) is left untouched. Meta
  expands some of these itself at delivery time (see URL tags).
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts both snake_case and the camelCase keys used by the web client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(CamelModel):
    latitude: float = 0.0
    longitude: float = 0.0


class LocationVars(CamelModel):
    name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    landing_page_url: Optional[str] = None
    # informational only, never substituted
    coordinates: Optional[Coordinates] = None


class CampaignVars(CamelModel):
    name: Optional[str] = None
    objective: Optional[str] = None
    platform: Optional[str] = None
    budget: Optional[float] = None
    # opaque display strings, not parsed
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class VariableContext(CamelModel):
    location: Optional[LocationVars] = None
    campaign: Optional[CampaignVars] = None
    custom: Dict[str, str] = Field(default_factory=dict)


# -----------------------------
# Resolver
# -----------------------------

def format_budget(value: Any) -> str:
    """Render a budget the way it was typed: 50 -> "50", 92.69 -> "92.69"."""
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _loc(attr: str) -> Callable[[VariableContext], str]:
    def get(ctx: VariableContext) -> str:
        return _text(getattr(ctx.location, attr, None)) if ctx.location else ""

    return get


def _camp(attr: str) -> Callable[[VariableContext], str]:
    def get(ctx: VariableContext) -> str:
        return _text(getattr(ctx.campaign, attr, None)) if ctx.campaign else ""

    return get


def _budget(ctx: VariableContext) -> str:
    return format_budget(ctx.campaign.budget) if ctx.campaign else ""


# (placeholder, accessor) in substitution order.
BUILTIN_PLACEHOLDERS: Tuple[Tuple[str, Callable[[VariableContext], str]], ...] = (
    ("location.name", _loc("name")),
    ("location.city", _loc("city")),
    ("location.state", _loc("state")),
    ("location.zipCode", _loc("zip_code")),
    ("location.phoneNumber", _loc("phone_number")),
    ("location.address", _loc("address")),
    ("location.landingPageUrl", _loc("landing_page_url")),
    ("campaign.name", _camp("name")),
    ("campaign.objective", _camp("objective")),
    ("campaign.platform", _camp("platform")),
    ("campaign.budget", _budget),
    ("campaign.startDate", _camp("start_date")),
    ("campaign.endDate", _camp("end_date")),
)

LOCATION_VARIABLES = [name for name, _ in BUILTIN_PLACEHOLDERS if name.startswith("location.")]
CAMPAIGN_VARIABLES = [name for name, _ in BUILTIN_PLACEHOLDERS if name.startswith("campaign.")]


def resolve(template: str, context: VariableContext) -> str:
    """Expand every recognized placeholder in `template` using `context`.

    Pure: the same (template, context) always yields the same string.
    """
    if not template:
        return ""
    out = template
    for name, get in BUILTIN_PLACEHOLDERS:
        token = "{{" + name + "}}"
        if token in out:
            out = out.replace(token, get(context))
    for key, value in (context.custom or {}).items():
        out = out.replace("{{custom." + key + "}}", _text(value))
    return out


def process_templates(templates: Dict[str, str], context: VariableContext) -> Dict[str, str]:
    return {key: resolve(tpl, context) for key, tpl in templates.items()}


# -----------------------------
# Inspection / validation
# -----------------------------

_VARIABLE_RE = re.compile(r"\{\{([^}]+)\}\}")


def extract_variables(template: str) -> List[str]:
    """Unique placeholder names in order of first appearance."""
    out: List[str] = []
    for m in _VARIABLE_RE.finditer(template or ""):
        name = m.group(1).strip()
        if name not in out:
            out.append(name)
    return out


def available_variables(context: VariableContext) -> List[str]:
    names: List[str] = []
    if context.location is not None:
        names.extend(LOCATION_VARIABLES)
    if context.campaign is not None:
        names.extend(CAMPAIGN_VARIABLES)
    for key in (context.custom or {}):
        names.append(f"custom.{key}")
    return names


class TemplateValidation(BaseModel):
    is_valid: bool
    missing_variables: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def _is_available(variable: str, available: List[str]) -> bool:
    if variable in available:
        return True
    if "." in variable:
        # namespace-level availability, e.g. "location" covers location.name
        return variable.split(".", 1)[0] in available
    return False


def validate_template(template: str, available: List[str]) -> TemplateValidation:
    missing: List[str] = []
    errors: List[str] = []
    warnings: List[str] = []
    for m in _VARIABLE_RE.finditer(template or ""):
        variable = m.group(1).strip()
        if not _is_available(variable, available):
            missing.append(variable)
            errors.append(f"Variable '{variable}' is not available")
        if "undefined" in variable or "null" in variable:
            warnings.append(f"Variable '{variable}' may be undefined")
    return TemplateValidation(
        is_valid=not missing,
        missing_variables=missing,
        errors=errors,
        warnings=warnings,
    )


class TemplatePreview(BaseModel):
    processed: str
    variables: List[str]
    validation: TemplateValidation


def preview_template(template: str, context: VariableContext) -> TemplatePreview:
    return TemplatePreview(
        processed=resolve(template, context),
        variables=extract_variables(template),
        validation=validate_template(template, available_variables(context)),
    )


class TemplateStats(BaseModel):
    variable_count: int
    character_count: int
    line_count: int
    complexity: Literal["low", "medium", "high"]


def template_stats(template: str) -> TemplateStats:
    variables = extract_variables(template)
    chars = len(template)
    complexity: Literal["low", "medium", "high"] = "low"
    if len(variables) > 5 or chars > 500:
        complexity = "high"
    elif len(variables) > 2 or chars > 200:
        complexity = "medium"
    return TemplateStats(
        variable_count=len(variables),
        character_count=chars,
        line_count=len(template.split("\n")),
        complexity=complexity,
    )


# -----------------------------
# Sanitizing
# -----------------------------

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_RE = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)
_JS_PROTO_RE = re.compile(r"javascript:", re.IGNORECASE)
_HANDLER_RE = re.compile(r"on\w+\s*=", re.IGNORECASE)


def sanitize_template(template: str) -> str:
    out = _SCRIPT_RE.sub("", template)
    out = _JS_PROTO_RE.sub("", out)
    out = _HANDLER_RE.sub("", out)
    return _IFRAME_RE.sub("", out)


def sanitize_string(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    out = re.sub(r"[<>]", "", value)
    out = _JS_PROTO_RE.sub("", out)
    out = _HANDLER_RE.sub("", out)
    return out.strip()


def safe_context(context: VariableContext) -> VariableContext:
    """Copy of `context` with every substitutable string sanitized."""
    safe = VariableContext()
    if context.location is not None:
        loc = context.location
        safe.location = LocationVars(
            name=sanitize_string(loc.name),
            city=sanitize_string(loc.city),
            state=sanitize_string(loc.state),
            zip_code=sanitize_string(loc.zip_code),
            phone_number=sanitize_string(loc.phone_number),
            address=sanitize_string(loc.address),
            landing_page_url=sanitize_string(loc.landing_page_url),
            coordinates=loc.coordinates,
        )
    if context.campaign is not None:
        camp = context.campaign
        safe.campaign = CampaignVars(
            name=sanitize_string(camp.name),
            objective=sanitize_string(camp.objective),
            platform=sanitize_string(camp.platform),
            budget=camp.budget,
            start_date=sanitize_string(camp.start_date),
            end_date=sanitize_string(camp.end_date),
        )
    safe.custom = {k: sanitize_string(v) for k, v in (context.custom or {}).items()}
    return safe


# -----------------------------
# Display formatting
# -----------------------------

def format_phone(phone: Optional[str]) -> str:
    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    return phone


def format_currency(amount: Any, currency: str = "USD") -> str:
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        return "0"
    symbol = "$" if currency.upper() == "USD" else f"{currency.upper()} "
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(float(amount)):,.2f}"


def format_date(value: Optional[str], fmt: str = "MM/DD/YYYY") -> str:
    if not value:
        return ""
    try:
        d = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return value
    return (
        fmt.replace("MM", f"{d.month:02d}")
        .replace("DD", f"{d.day:02d}")
        .replace("YYYY", str(d.year))
    )
