"""
contract_conduit.pdf.report

CMA presentation PDF built with reportlab platypus.

Responsibilities:
- Render the enabled report sections in their configured order.
- Apply cover page, cover letter and agent branding.
- Stamp an optional agent footer on every page.

Photos are referenced by URL and counted, not embedded; rendering never touches
the network.
"""

from __future__ import annotations

import io
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, StyleSheet1, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    Flowable,
    HRFlowable,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from contract_conduit.cma import extract
from contract_conduit.cma.adjustments import CompAdjustmentResult
from contract_conduit.cma.sections import cover_page_config, resolve_sections
from contract_conduit.cma.statistics import PropertyStatistics, StatMetric, format_price, summarize
from contract_conduit.db.models import AgentProfile, Cma

BRAND_PRIMARY = colors.HexColor("#222222")
BRAND_ACCENT = colors.HexColor("#EF4923")
BRAND_LIGHT = colors.HexColor("#f8f9fa")
RULE_GREY = colors.HexColor("#e0e0e0")

PHOTOS_FIRST_DOZEN = 12

WHAT_IS_CMA = (
    "A Comparative Market Analysis compares your home with similar properties that "
    "recently sold, are pending, or are currently listed nearby. Adjusting for "
    "differences in size, features and condition gives a realistic price range for "
    "today's market."
)


@dataclass(slots=True)
class ReportOptions:
    included_sections: list[str] | None = None
    section_order: list[str] | None = None
    cover_letter_override: str | None = None
    layout: str = "two_photos"
    photo_layout: str = "first_dozen"
    include_agent_footer: bool = True
    cover_page_config: dict[str, Any] | None = None
    custom_photo_selections: dict[str, list[str]] = field(default_factory=dict)


@dataclass(slots=True)
class _Context:
    cma: Cma
    options: ReportOptions
    agent: AgentProfile | None
    subject: dict[str, Any] | None
    comparables: list[dict[str, Any]]
    statistics: PropertyStatistics | None
    adjustments: list[CompAdjustmentResult]
    today: date
    styles: StyleSheet1


def _styles() -> StyleSheet1:
    styles = getSampleStyleSheet()
    styles.add(
        ParagraphStyle(
            name="CoverTitle",
            parent=styles["Heading1"],
            fontSize=30,
            leading=36,
            alignment=TA_CENTER,
            textColor=BRAND_PRIMARY,
            fontName="Helvetica-Bold",
            spaceAfter=12,
        )
    )
    styles.add(
        ParagraphStyle(
            name="CoverSubtitle",
            parent=styles["Normal"],
            fontSize=14,
            alignment=TA_CENTER,
            textColor=colors.gray,
            spaceAfter=24,
        )
    )
    styles.add(
        ParagraphStyle(
            name="SectionHeader",
            parent=styles["Heading2"],
            fontSize=16,
            textColor=BRAND_PRIMARY,
            fontName="Helvetica-Bold",
            spaceBefore=6,
            spaceAfter=10,
        )
    )
    styles.add(
        ParagraphStyle(
            name="ChapterHeader",
            parent=styles["Heading1"],
            fontSize=26,
            alignment=TA_CENTER,
            textColor=BRAND_ACCENT,
            spaceBefore=3 * inch,
        )
    )
    styles.add(
        ParagraphStyle(name="Body", parent=styles["Normal"], fontSize=10, leading=14, spaceAfter=6)
    )
    styles.add(
        ParagraphStyle(name="Small", parent=styles["Normal"], fontSize=8, textColor=colors.gray)
    )
    return styles


def _p(text: Any, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(str(text)), style)


def _fmt_num(value: float | None, digits: int = 0) -> str:
    if value is None:
        return "-"
    return f"{value:,.{digits}f}"


def _grid(data: list[list[Any]], col_widths: list[float], *, header: bool = True) -> Table:
    table = Table(data, colWidths=col_widths, repeatRows=1 if header else 0)
    commands: list[tuple[Any, ...]] = [
        ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
        ("TOPPADDING", (0, 0), (-1, -1), 5),
        ("LINEBELOW", (0, 0), (-1, -1), 0.5, RULE_GREY),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]
    if header:
        commands += [
            ("BACKGROUND", (0, 0), (-1, 0), BRAND_PRIMARY),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, BRAND_LIGHT]),
        ]
    table.setStyle(TableStyle(commands))
    return table


def _heading(ctx: _Context, title: str) -> list[Flowable]:
    return [
        _p(title, ctx.styles["SectionHeader"]),
        HRFlowable(width="100%", thickness=1, color=BRAND_ACCENT, spaceAfter=10),
    ]


def _agent_name(agent: AgentProfile | None) -> str:
    return (agent.display_name if agent else None) or "Your Agent"


# --- Sections --------------------------------------------------------------


def _cover_page(ctx: _Context) -> list[Flowable]:
    cover = cover_page_config(ctx.options.cover_page_config)
    flow: list[Flowable] = [Spacer(1, 2 * inch), _p(cover["title"], ctx.styles["CoverTitle"])]
    if cover.get("subtitle"):
        flow.append(_p(cover["subtitle"], ctx.styles["CoverSubtitle"]))
    address = extract.extract_full_address(ctx.subject) if ctx.subject else ctx.cma.name
    flow.append(_p(address, ctx.styles["CoverSubtitle"]))
    if cover.get("show_date", True):
        flow.append(_p(ctx.today.strftime("%B %d, %Y"), ctx.styles["CoverSubtitle"]))
    flow.append(Spacer(1, 1.5 * inch))
    flow.append(_p(f"Prepared by {_agent_name(ctx.agent)}", ctx.styles["CoverSubtitle"]))
    return flow


def _listing_brochure(ctx: _Context) -> list[Flowable]:
    brochure = ctx.cma.brochure or {}
    flow = _heading(ctx, "Listing Brochure")
    if brochure.get("url"):
        label = brochure.get("filename") or brochure["url"]
        flow.append(_p(f"Brochure: {label}", ctx.styles["Body"]))
        flow.append(_p(brochure["url"], ctx.styles["Small"]))
    else:
        flow.append(_p("No listing brochure has been attached.", ctx.styles["Body"]))
    return flow


def _cover_letter(ctx: _Context) -> list[Flowable]:
    text = ctx.options.cover_letter_override or (
        ctx.agent.default_cover_letter if ctx.agent else None
    )
    flow = _heading(ctx, "Cover Letter")
    for paragraph in (text or "").split("\n\n"):
        if paragraph.strip():
            flow.append(_p(paragraph.strip(), ctx.styles["Body"]))
    flow.append(Spacer(1, 12))
    flow.append(_p(_agent_name(ctx.agent), ctx.styles["Body"]))
    return flow


def _agent_resume(ctx: _Context) -> list[Flowable]:
    flow = _heading(ctx, "Agent Resume")
    flow.append(_p(_agent_name(ctx.agent), ctx.styles["Heading3"]))
    if ctx.agent and ctx.agent.title:
        flow.append(_p(ctx.agent.title, ctx.styles["Small"]))
    if ctx.agent and ctx.agent.bio:
        flow.append(_p(ctx.agent.bio, ctx.styles["Body"]))
    return flow


def _our_company(ctx: _Context) -> list[Flowable]:
    company = (ctx.agent.marketing_company if ctx.agent else None) or "Our Brokerage"
    flow = _heading(ctx, "Our Company")
    flow.append(
        _p(
            f"{company} combines local market expertise with modern marketing to help "
            "clients buy and sell with confidence.",
            ctx.styles["Body"],
        )
    )
    return flow


def _what_is_cma(ctx: _Context) -> list[Flowable]:
    return [*_heading(ctx, "What is a CMA?"), _p(WHAT_IS_CMA, ctx.styles["Body"])]


def _contact_me(ctx: _Context) -> list[Flowable]:
    agent = ctx.agent
    rows = [["Name", _agent_name(agent)]]
    if agent:
        for label, value in (
            ("Phone", agent.phone),
            ("Email", agent.email),
            ("Website", agent.website_url),
            ("Facebook", agent.facebook_url),
            ("Instagram", agent.instagram_url),
            ("LinkedIn", agent.linkedin_url),
        ):
            if value:
                rows.append([label, value])
    return [*_heading(ctx, "Contact Me"), _grid(rows, [1.5 * inch, 4.5 * inch], header=False)]


def _map_all_listings(ctx: _Context) -> list[Flowable]:
    rows: list[list[Any]] = [["", "Address", "Latitude", "Longitude"]]
    labelled = ([("Subject", ctx.subject)] if ctx.subject else []) + [
        (str(i), comp) for i, comp in enumerate(ctx.comparables, start=1)
    ]
    for label, prop in labelled:
        coords = extract.coordinates(prop)
        rows.append(
            [
                label,
                extract.extract_full_address(prop),
                f"{coords[0]:.5f}" if coords else "-",
                f"{coords[1]:.5f}" if coords else "-",
            ]
        )
    widths = [0.7 * inch, 3.8 * inch, 1 * inch, 1 * inch]
    return [*_heading(ctx, "Map of All Listings"), _grid(rows, widths)]


def _summary_comparables(ctx: _Context) -> list[Flowable]:
    rows: list[list[Any]] = [
        ["Address", "Status", "Price", "Beds", "Baths", "Sq Ft", "$/Sq Ft", "DOM"]
    ]
    for comp in ctx.comparables:
        address = extract.extract_full_address(comp)
        rows.append(
            [
                address if len(address) <= 38 else address[:35] + "...",
                extract.normalize_status(comp.get("standardStatus") or comp.get("status")),
                format_price(extract.extract_price(comp)),
                _fmt_num(extract.extract_beds(comp)),
                _fmt_num(extract.extract_baths(comp), 1),
                _fmt_num(extract.extract_sqft(comp)),
                _fmt_num(extract.price_per_sqft(comp)),
                _fmt_num(extract.extract_dom(comp)),
            ]
        )
    summary = summarize(ctx.comparables)
    widths = [w * inch for w in (2.3, 0.7, 0.9, 0.45, 0.5, 0.6, 0.6, 0.45)]
    return [
        *_heading(ctx, "Summary of Comparable Properties"),
        _grid(rows, widths),
        Spacer(1, 8),
        _p(f"{summary.count} comparables, price range {summary.price_range}", ctx.styles["Small"]),
    ]


def _chapter(title: str) -> Callable[[_Context], list[Flowable]]:
    def render(ctx: _Context) -> list[Flowable]:
        return [_p(title, ctx.styles["ChapterHeader"])]

    return render


def _selected_photos(ctx: _Context, prop: dict[str, Any]) -> list[str]:
    photos = extract.photos(prop)
    layout = ctx.options.photo_layout
    if layout == "all":
        return photos
    if layout == "custom":
        return ctx.options.custom_photo_selections.get(extract.property_id(prop), [])
    return photos[:PHOTOS_FIRST_DOZEN]


def _property_details(ctx: _Context) -> list[Flowable]:
    flow = _heading(ctx, "Property Details")
    per_property = {"two_photos": 2, "single_photo": 1}.get(ctx.options.layout, 0)
    for comp in ctx.comparables:
        flow.append(_p(extract.extract_full_address(comp), ctx.styles["Heading4"]))
        acres = extract.normalized_acres(comp)
        rows = [
            [
                "Price",
                format_price(extract.extract_price(comp)),
                "Year Built",
                _fmt_num(extract.extract_year_built(comp)),
            ],
            [
                "Beds",
                _fmt_num(extract.extract_beds(comp)),
                "Baths",
                _fmt_num(extract.extract_baths(comp), 1),
            ],
            ["Sq Ft", _fmt_num(extract.extract_sqft(comp)), "Lot (acres)", _fmt_num(acres, 2)],
            ["DOM", _fmt_num(extract.extract_dom(comp)), "MLS #", extract.property_id(comp) or "-"],
        ]
        flow.append(_grid(rows, [1.2 * inch, 1.8 * inch, 1.2 * inch, 1.8 * inch], header=False))
        photos = extract.photos(comp)[:per_property]
        for url in photos:
            flow.append(_p(url, ctx.styles["Small"]))
        flow.append(Spacer(1, 10))
    return flow


def _property_photos(ctx: _Context) -> list[Flowable]:
    rows: list[list[Any]] = [["Address", "Photos available", "Photos shown"]]
    for comp in ctx.comparables:
        rows.append(
            [
                extract.extract_full_address(comp),
                str(len(extract.photos(comp))),
                str(len(_selected_photos(ctx, comp))),
            ]
        )
    return [*_heading(ctx, "Property Photos"), _grid(rows, [4 * inch, 1.2 * inch, 1.2 * inch])]


def _adjustments(ctx: _Context) -> list[Flowable]:
    flow = _heading(ctx, "Adjustments")
    if not ctx.adjustments:
        flow.append(_p("No adjustments were calculated for this CMA.", ctx.styles["Body"]))
        return flow
    rows: list[list[Any]] = [["Comparable", "Sale Price", "Adjustments", "Total", "Adjusted Price"]]
    for result in ctx.adjustments:
        items = "; ".join(f"{a.name} {a.value:+,.0f}" for a in result.adjustments) or "-"
        rows.append(
            [
                Paragraph(escape(result.comp_address), ctx.styles["Small"]),
                format_price(result.sale_price),
                Paragraph(escape(items), ctx.styles["Small"]),
                f"{result.total_adjustment:+,.0f}",
                format_price(result.adjusted_price),
            ]
        )
    flow.append(_grid(rows, [1.8 * inch, 0.9 * inch, 2.1 * inch, 0.7 * inch, 1 * inch]))
    return flow


def _online_valuation(ctx: _Context) -> list[Flowable]:
    flow = _heading(ctx, "Online Valuation Analysis")
    flow.append(
        _p(
            "Online estimates are produced by automated models without seeing the home. "
            "The comparables in this report reflect actual local market activity.",
            ctx.styles["Body"],
        )
    )
    if ctx.statistics:
        flow.append(
            _p(
                f"Comparable median price: {format_price(ctx.statistics.price.median)}",
                ctx.styles["Body"],
            )
        )
    return flow


def _price_per_sqft(ctx: _Context) -> list[Flowable]:
    rows: list[list[Any]] = [["Address", "Price", "Sq Ft", "$/Sq Ft"]]
    for comp in ctx.comparables:
        rows.append(
            [
                extract.extract_full_address(comp),
                format_price(extract.extract_price(comp)),
                _fmt_num(extract.extract_sqft(comp)),
                _fmt_num(extract.price_per_sqft(comp)),
            ]
        )
    widths = [3.4 * inch, 1.1 * inch, 0.9 * inch, 0.9 * inch]
    flow = [*_heading(ctx, "Average Price Per Sq. Ft."), _grid(rows, widths)]
    if ctx.statistics:
        flow.append(Spacer(1, 8))
        flow.append(
            _p(
                f"Average: ${ctx.statistics.price_per_sqft.average:,.0f}/sq ft",
                ctx.styles["Body"],
            )
        )
    return flow


def _metric_row(label: str, metric: StatMetric, fmt: Callable[[float], str]) -> list[str]:
    return [label, fmt(metric.min), fmt(metric.max), fmt(metric.average), fmt(metric.median)]


def _comparable_stats(ctx: _Context) -> list[Flowable]:
    flow = _heading(ctx, "Comparable Property Statistics")
    stats = ctx.statistics
    if stats is None:
        flow.append(_p("No comparables selected.", ctx.styles["Body"]))
        return flow

    def money(v: float) -> str:
        return format_price(v)

    def whole(v: float) -> str:
        return f"{v:,.0f}"

    def one(v: float) -> str:
        return f"{v:,.1f}"

    def two(v: float) -> str:
        return f"{v:,.2f}"

    rows = [
        ["Metric", "Low", "High", "Average", "Median"],
        _metric_row("Price", stats.price, money),
        _metric_row("$/Sq Ft", stats.price_per_sqft, money),
        _metric_row("Living Area", stats.living_area, whole),
        _metric_row("Lot Size (sq ft)", stats.lot_size, whole),
        _metric_row("Acres", stats.acres, two),
        _metric_row("Bedrooms", stats.bedrooms, one),
        _metric_row("Bathrooms", stats.bathrooms, one),
        _metric_row("Year Built", stats.year_built, whole),
        _metric_row("Days on Market", stats.days_on_market, whole),
    ]
    flow.append(_grid(rows, [1.6 * inch, 1.2 * inch, 1.2 * inch, 1.2 * inch, 1.2 * inch]))
    return flow


_RENDERERS: dict[str, Callable[[_Context], list[Flowable]]] = {
    "cover_page": _cover_page,
    "listing_brochure": _listing_brochure,
    "cover_letter": _cover_letter,
    "agent_resume": _agent_resume,
    "our_company": _our_company,
    "what_is_cma": _what_is_cma,
    "contact_me": _contact_me,
    "map_all_listings": _map_all_listings,
    "summary_comparables": _summary_comparables,
    "listings_header": _chapter("Listings"),
    "property_details": _property_details,
    "property_photos": _property_photos,
    "adjustments": _adjustments,
    "analysis_header": _chapter("Analysis"),
    "online_valuation": _online_valuation,
    "price_per_sqft": _price_per_sqft,
    "comparable_stats": _comparable_stats,
}


def _footer(agent: AgentProfile | None) -> Callable[[Any, Any], None]:
    parts = [_agent_name(agent)]
    if agent:
        parts += [p for p in (agent.phone, agent.email) if p]
    text = "  |  ".join(parts)

    def draw(canvas: Any, doc: Any) -> None:
        canvas.saveState()
        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(colors.gray)
        canvas.drawString(doc.leftMargin, 0.5 * inch, text)
        canvas.drawRightString(doc.pagesize[0] - doc.rightMargin, 0.5 * inch, str(doc.page))
        canvas.restoreState()

    return draw


def render_cma_pdf(
    cma: Cma,
    *,
    options: ReportOptions,
    agent: AgentProfile | None,
    statistics: PropertyStatistics | None,
    adjustments: list[CompAdjustmentResult] | None = None,
    today: date | None = None,
) -> bytes:
    subject, comparables = extract.split_subject(cma.properties_data or [], cma.subject_property_id)
    ctx = _Context(
        cma=cma,
        options=options,
        agent=agent,
        subject=subject,
        comparables=comparables,
        statistics=statistics,
        adjustments=adjustments or [],
        today=today or date.today(),
        styles=_styles(),
    )

    story: list[Flowable] = []
    for section in resolve_sections(options.included_sections, options.section_order):
        if story:
            story.append(PageBreak())
        story.extend(_RENDERERS[section.id](ctx))
    if not story:
        story.append(_p(cma.name, ctx.styles["Body"]))

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        title=cma.name,
        author=_agent_name(agent),
        leftMargin=0.6 * inch,
        rightMargin=0.6 * inch,
        topMargin=0.6 * inch,
        bottomMargin=0.8 * inch,
    )
    if options.include_agent_footer:
        footer = _footer(agent)
        doc.build(story, onFirstPage=footer, onLaterPages=footer)
    else:
        doc.build(story)
    return buffer.getvalue()
