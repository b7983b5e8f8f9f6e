"""
Content rendering.

Placeholders are `{{token}}` (case-insensitive) filled from lead fields.
Unknown or empty fields render as an empty string, never as an error.

WhatsApp templates use positional `{{1}}..{{n}}` slots. A step either lists
its parameters explicitly (each one rendered like text) or relies on the
positional convention:

    {{1}} contact name, or company name, or "Cliente"
    {{2}} company name
    {{3}} today's date (dd/mm/YYYY)
    {{4}} empty (generic link slot)
    {{5}} configurator link
"""

import re
from datetime import datetime
from typing import Dict, List, Optional

from leadflow.core.timezone import format_local_date
from leadflow.services.automations.types import Lead, Step

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_]\w*)\s*\}\}")
POSITIONAL_PATTERN = re.compile(r"\{\{(\d+)\}\}")

DEFAULT_CONTACT_NAME = "Cliente"

COUNTRY_LANGUAGE_MAP = {
    "italy": "it", "italia": "it", "it": "it",
    "spain": "es", "españa": "es", "spagna": "es", "es": "es",
    "france": "fr", "francia": "fr", "fr": "fr",
    "germany": "de", "germania": "de", "deutschland": "de", "de": "de",
    "portugal": "pt", "portogallo": "pt", "pt": "pt",
    "brasil": "pt_BR", "brazil": "pt_BR",
    "united kingdom": "en", "uk": "en", "usa": "en", "united states": "en",
    "canada": "en", "australia": "en", "en": "en",
}

DEFAULT_LANGUAGE = "en"
FALLBACK_LANGUAGES = ("en", "it")


def lead_placeholders(lead: Lead) -> Dict[str, str]:
    """Token -> value for a lead. Italian and English aliases share values."""
    first_name = lead.first_name
    last_name = lead.last_name
    phone = lead.phone or ""
    company = lead.company_name or ""
    pipeline = lead.pipeline or ""
    link = lead.configurator_url

    return {
        "nome": first_name,
        "first_name": first_name,
        "cognome": last_name,
        "last_name": last_name,
        "email": lead.email or "",
        "telefono": phone,
        "phone": phone,
        "azienda": company,
        "company": company,
        "pipeline": pipeline,
        "segment": pipeline,
        "linkconfiguratore": link,
        "configurator_link": link,
    }


def render_text(content: Optional[str], lead: Lead) -> str:
    """Substitute every named placeholder of content."""
    if not content:
        return ""
    values = lead_placeholders(lead)
    return PLACEHOLDER_PATTERN.sub(lambda m: values.get(m.group(1).lower(), ""), content)


def language_for_country(country: Optional[str]) -> str:
    """Template language for a lead country (default English)."""
    if not country:
        return DEFAULT_LANGUAGE
    return COUNTRY_LANGUAGE_MAP.get(country.strip().lower(), DEFAULT_LANGUAGE)


def language_candidates(selected: str) -> List[str]:
    """Languages to try, in order: selected, then en, then it."""
    candidates = [selected]
    for lang in FALLBACK_LANGUAGES:
        if lang not in candidates:
            candidates.append(lang)
    return candidates


def count_positional_slots(body_text: Optional[str]) -> int:
    """Highest slot index; Meta expects one parameter per slot, reused or not."""
    return max((int(n) for n in POSITIONAL_PATTERN.findall(body_text or "")), default=0)


def positional_params(lead: Lead, count: int, today: str) -> List[str]:
    """Parameters following the positional convention, sized to count."""
    conventional = [
        lead.contact_name or lead.company_name or DEFAULT_CONTACT_NAME,
        lead.company_name or "",
        today,
        "",
        lead.configurator_url,
    ]
    return [conventional[i] if i < len(conventional) else "" for i in range(count)]


def build_template_params(
    step: Step,
    lead: Lead,
    body_text: Optional[str],
    today: str,
) -> List[str]:
    """
    Ordered template parameters for a step.

    Args:
        step: Step being dispatched
        lead: Recipient
        body_text: Body of the approved template (for the slot count)
        today: Local date string for the {{3}} slot
    """
    if step.template_params:
        return [render_text(str(p), lead) for p in step.template_params]
    return positional_params(lead, count_positional_slots(body_text), today)


def today_string(now: datetime, tz_name: str) -> str:
    """Local calendar date used for the date slot."""
    return format_local_date(now, tz_name)
