"""
contract_conduit.cma.sections

Catalog of CMA presentation sections and report-config defaults.

Responsibilities:
- Ordered section catalog (id, name, category, default-enabled, editable).
- Resolve an included/order pair into the sections a report actually renders.
- Default cover page config and the allowed layout / photo layout / map style values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, get_args

SectionCategory = Literal["introduction", "listings", "analysis"]


@dataclass(frozen=True, slots=True)
class ReportSection:
    id: str
    name: str
    category: SectionCategory
    default_enabled: bool
    editable: bool = False


CMA_REPORT_SECTIONS: tuple[ReportSection, ...] = (
    ReportSection("cover_page", "Cover Page", "introduction", True),
    ReportSection("listing_brochure", "Listing Brochure", "introduction", False),
    ReportSection("cover_letter", "Cover Letter", "introduction", True, editable=True),
    ReportSection("agent_resume", "Agent Resume", "introduction", False, editable=True),
    ReportSection("our_company", "Our Company", "introduction", False),
    ReportSection("what_is_cma", "What is a CMA?", "introduction", False),
    ReportSection("contact_me", "Contact Me", "introduction", True),
    ReportSection("map_all_listings", "Map of All Listings", "listings", True),
    ReportSection("summary_comparables", "Summary of Comparable Properties", "listings", True),
    ReportSection("listings_header", "Listings Chapter Header", "listings", False),
    ReportSection("property_details", "Property Details", "listings", True),
    ReportSection("property_photos", "Property Photos", "listings", True),
    ReportSection("adjustments", "Adjustments", "listings", False),
    ReportSection("analysis_header", "Analysis Chapter Header", "analysis", False),
    ReportSection("online_valuation", "Online Valuation Analysis", "analysis", False),
    ReportSection("price_per_sqft", "Average Price Per Sq. Ft.", "analysis", True),
    ReportSection("comparable_stats", "Comparable Property Statistics", "analysis", True),
)

SECTIONS_BY_ID: dict[str, ReportSection] = {s.id: s for s in CMA_REPORT_SECTIONS}
ALL_SECTION_IDS: tuple[str, ...] = tuple(SECTIONS_BY_ID)
DEFAULT_ENABLED_SECTIONS: tuple[str, ...] = tuple(
    s.id for s in CMA_REPORT_SECTIONS if s.default_enabled
)
EDITABLE_SECTIONS: tuple[str, ...] = tuple(s.id for s in CMA_REPORT_SECTIONS if s.editable)

Layout = Literal["two_photos", "single_photo", "no_photos"]
PhotoLayout = Literal["first_dozen", "all", "ai_suggested", "custom"]
MapStyle = Literal["streets", "satellite", "dark"]
CoverBackground = Literal["none", "gradient", "image"]

LAYOUT_OPTIONS: tuple[str, ...] = get_args(Layout)
PHOTO_LAYOUT_OPTIONS: tuple[str, ...] = get_args(PhotoLayout)
MAP_STYLE_OPTIONS: tuple[str, ...] = get_args(MapStyle)

DEFAULT_COVER_PAGE_CONFIG: dict[str, Any] = {
    "title": "Comparative Market Analysis",
    "subtitle": "Prepared exclusively for you",
    "show_date": True,
    "show_agent_photo": True,
    "background": "none",
}


def unknown_section_ids(ids: list[str] | None) -> list[str]:
    return [i for i in ids or [] if i not in SECTIONS_BY_ID]


def resolve_sections(
    included: list[str] | None, order: list[str] | None = None
) -> list[ReportSection]:
    """
    Sections to render, in display order.

    `included=None` means the catalog defaults. Ids listed in `order` come first in
    that order; included sections missing from `order` follow in catalog order.
    Unknown ids are ignored here; API validation rejects them earlier.
    """

    enabled = set(DEFAULT_ENABLED_SECTIONS if included is None else included)
    resolved: list[ReportSection] = []
    seen: set[str] = set()
    for section_id in order or []:
        section = SECTIONS_BY_ID.get(section_id)
        if section is None or section_id in seen or section_id not in enabled:
            continue
        resolved.append(section)
        seen.add(section_id)
    for section in CMA_REPORT_SECTIONS:
        if section.id in enabled and section.id not in seen:
            resolved.append(section)
            seen.add(section.id)
    return resolved


def cover_page_config(overrides: dict[str, Any] | None) -> dict[str, Any]:
    return {**DEFAULT_COVER_PAGE_CONFIG, **(overrides or {})}
