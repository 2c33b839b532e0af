"""
PDF rendering of the actuarial report using ReportLab.
The cover page is drawn directly on the canvas; content pages carry a running
header/footer and are built from platypus flowables.
"""

from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    HRFlowable,
    KeepTogether,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from .models import ActuarialReport, RiskLevel

# ── Page dimensions ──────────────────────────────────────────────────────────
PAGE_W, PAGE_H = letter
CONTENT_W = 6.8 * inch

# ── Brand palette ────────────────────────────────────────────────────────────
PRIMARY       = colors.HexColor("#1e3a5f")
PRIMARY_DARK  = colors.HexColor("#152d4a")
PRIMARY_LIGHT = colors.HexColor("#2d5a8e")
ACCENT        = colors.HexColor("#c9960f")
ACCENT_LIGHT  = colors.HexColor("#e8b020")
LIGHT_BG      = colors.HexColor("#f5f7fa")
WHITE         = colors.white
DARK_TEXT     = colors.HexColor("#0f172a")
MUTED         = colors.HexColor("#64748b")
GRID          = colors.HexColor("#d1d9e0")

SEVERITY_COLORS = {
    RiskLevel.CRITICAL: colors.HexColor("#991b1b"),
    RiskLevel.HIGH:     colors.HexColor("#dc2626"),
    RiskLevel.MEDIUM:   colors.HexColor("#d97706"),
    RiskLevel.LOW:      colors.HexColor("#16a34a"),
}

# (savings % above, label, color, background) for the cover headline box
SAVINGS_TIERS = (
    (15.0, "Critical Arbitrage Exposure", colors.HexColor("#dc2626"), colors.HexColor("#fef2f2")),
    (8.0,  "Significant Savings Available", colors.HexColor("#d97706"), colors.HexColor("#fffbeb")),
    (0.0,  "Moderate Optimization Potential", colors.HexColor("#1d4ed8"), colors.HexColor("#eff6ff")),
)

BASE_TABLE_STYLE = [
    ("BACKGROUND",    (0, 0), (-1, 0),  PRIMARY),
    ("ROWBACKGROUNDS",(0, 1), (-1, -1), [WHITE, LIGHT_BG]),
    ("BOX",           (0, 0), (-1, -1), 0.5, GRID),
    ("INNERGRID",     (0, 0), (-1, -1), 0.25, GRID),
    ("LINEBEFORE",    (0, 0), (0, -1),  4, ACCENT),
    ("TOPPADDING",    (0, 0), (-1, -1), 7),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 7),
    ("LEFTPADDING",   (0, 0), (-1, -1), 10),
    ("RIGHTPADDING",  (0, 0), (-1, -1), 10),
    ("VALIGN",        (0, 0), (-1, -1), "MIDDLE"),
]


def _money(value: float) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.0f}"


def _savings_tier(pct: float):
    for threshold, label, color, bg in SAVINGS_TIERS:
        if pct > threshold:
            return label, color, bg
    return SAVINGS_TIERS[-1][1:]


# ── Canvas helpers ───────────────────────────────────────────────────────────

def _draw_cover(c, report: ActuarialReport):
    summary = report.executive_summary
    label, tier_color, tier_bg = _savings_tier(summary.savings_percentage)

    c.setFillColor(PRIMARY_DARK)
    c.rect(0, 0, PAGE_W, PAGE_H, fill=1, stroke=0)
    c.setFillColor(PRIMARY)
    c.rect(0, PAGE_H * 0.22, PAGE_W, PAGE_H * 0.58, fill=1, stroke=0)

    # Gold stripes
    c.setFillColor(ACCENT)
    c.rect(0, PAGE_H - 26, PAGE_W, 26, fill=1, stroke=0)
    c.rect(0, 0, PAGE_W, 18, fill=1, stroke=0)
    c.setFillColor(ACCENT_LIGHT)
    c.rect(0, PAGE_H - 30, PAGE_W, 4, fill=1, stroke=0)

    c.setFillColor(colors.HexColor("#0d2240"))
    c.rect(0, PAGE_H - 82, PAGE_W, 52, fill=1, stroke=0)
    c.setFillColor(WHITE)
    c.setFont("Helvetica-Bold", 24)
    c.drawCentredString(PAGE_W / 2, PAGE_H - 57, "PHARMACY BENEFIT ARBITRAGE ANALYSIS")

    c.setFillColor(colors.HexColor("#a8c4e0"))
    c.setFont("Helvetica", 11)
    c.drawCentredString(PAGE_W / 2, PAGE_H - 97, "Board-Ready Actuarial Report  ·  Confidential")

    c.setStrokeColor(ACCENT)
    c.setLineWidth(1.2)
    c.line(1.1 * inch, PAGE_H - 114, PAGE_W - 1.1 * inch, PAGE_H - 114)

    # ── Contract info box ─────────────────────────────────────────────────
    bx = 1.0 * inch
    bw = PAGE_W - 2.0 * inch
    by = PAGE_H - 300
    bh = 170

    c.setFillColor(colors.HexColor("#07172a"))
    c.rect(bx + 4, by - 4, bw, bh, fill=1, stroke=0)
    c.setFillColor(WHITE)
    c.rect(bx, by, bw, bh, fill=1, stroke=0)
    c.setFillColor(ACCENT)
    c.rect(bx, by, 5, bh, fill=1, stroke=0)

    lx = bx + 22
    rx = bx + bw / 2 + 12
    rows = [
        (("PBM", report.pbm_name), ("REPORT DATE", f"{report.generated_at:%B %d, %Y}")),
        (("CONTRACT", report.contract_id), ("REPORT ID", report.report_id)),
        (("ANNUAL PHARMACY SPEND", _money(summary.total_annual_spend)),
         ("TIMELINE", summary.estimated_implementation_timeline)),
    ]
    for i, (left, right) in enumerate(rows):
        label_y = by + bh - 28 - i * 54
        if i:
            c.setStrokeColor(colors.HexColor("#e2e8f0"))
            c.setLineWidth(0.4)
            c.line(lx, label_y + 14, bx + bw - 18, label_y + 14)
        for x, (caption, value) in ((lx, left), (rx, right)):
            c.setFillColor(MUTED)
            c.setFont("Helvetica-Bold", 7.5)
            c.drawString(x, label_y, caption)
            c.setFillColor(DARK_TEXT)
            c.setFont("Helvetica-Bold" if i == 0 else "Helvetica", 12)
            c.drawString(x, label_y - 20, str(value)[:40])

    # ── Headline box ──────────────────────────────────────────────────────
    gb_y = PAGE_H - 490
    gb_h = 168

    c.setFillColor(colors.HexColor("#07172a"))
    c.rect(bx + 4, gb_y - 4, bw, gb_h, fill=1, stroke=0)
    c.setFillColor(tier_bg)
    c.rect(bx, gb_y, bw, gb_h, fill=1, stroke=0)
    c.setFillColor(tier_color)
    c.rect(bx, gb_y, 6, gb_h, fill=1, stroke=0)
    c.rect(bx, gb_y + gb_h - 4, bw, 4, fill=1, stroke=0)

    c.setFillColor(MUTED)
    c.setFont("Helvetica-Bold", 8)
    c.drawString(bx + 22, gb_y + gb_h - 24, "IDENTIFIED ARBITRAGE")

    c.setFillColor(tier_color)
    c.setFont("Helvetica-Bold", 40)
    c.drawString(bx + 22, gb_y + gb_h - 78, _money(summary.total_arbitrage_identified))
    c.setFont("Helvetica-Bold", 15)
    c.drawString(bx + 22, gb_y + gb_h - 104, label)

    c.setFillColor(MUTED)
    c.setFont("Helvetica", 9.5)
    c.drawString(
        bx + 22, gb_y + gb_h - 126,
        f"{summary.savings_percentage:.1f}% of annual spend  ·  "
        f"{_money(summary.confidence_weighted_savings)} confidence-weighted  ·  "
        f"{summary.critical_findings} high-priority findings",
    )

    c.setFillColor(colors.HexColor("#6b96be"))
    c.setFont("Helvetica", 8)
    c.drawCentredString(
        PAGE_W / 2, 32,
        "Estimates rest on documented utilization assumptions; see the appendix before acting.",
    )


def _draw_header_footer(c, doc):
    c.setFillColor(PRIMARY)
    c.rect(0, PAGE_H - 34, PAGE_W, 34, fill=1, stroke=0)
    c.setFillColor(ACCENT)
    c.rect(0, PAGE_H - 36, PAGE_W, 2, fill=1, stroke=0)

    c.setFillColor(WHITE)
    c.setFont("Helvetica-Bold", 7.5)
    c.drawString(0.85 * inch, PAGE_H - 21, "PHARMACY BENEFIT ARBITRAGE ANALYSIS")
    c.setFont("Helvetica", 7.5)
    c.drawRightString(PAGE_W - 0.85 * inch, PAGE_H - 21, f"Page {doc.page}")

    c.setStrokeColor(GRID)
    c.setLineWidth(0.4)
    c.line(0.85 * inch, 0.44 * inch, PAGE_W - 0.85 * inch, 0.44 * inch)
    c.setFillColor(MUTED)
    c.setFont("Helvetica", 7)
    c.drawCentredString(PAGE_W / 2, 0.27 * inch, "CONFIDENTIAL: For Plan Sponsor Board Use Only")


# ── Paragraph styles ─────────────────────────────────────────────────────────

def make_styles() -> dict:
    base = getSampleStyleSheet()
    return {
        "section_num": ParagraphStyle(
            "section_num", parent=base["Normal"],
            fontSize=8.5, fontName="Helvetica-Bold", textColor=ACCENT,
            spaceBefore=16, spaceAfter=1,
        ),
        "section_heading": ParagraphStyle(
            "section_heading", parent=base["Normal"],
            fontSize=19, fontName="Helvetica-Bold", textColor=PRIMARY,
            spaceAfter=4, leading=23,
        ),
        "subsection_heading": ParagraphStyle(
            "subsection_heading", parent=base["Normal"],
            fontSize=11.5, fontName="Helvetica-Bold", textColor=DARK_TEXT,
            spaceBefore=6, spaceAfter=2,
        ),
        "body": ParagraphStyle(
            "body", parent=base["Normal"],
            fontSize=10.5, fontName="Helvetica", textColor=DARK_TEXT,
            leading=16, alignment=TA_JUSTIFY, spaceAfter=8,
        ),
        "body_left": ParagraphStyle(
            "body_left", parent=base["Normal"],
            fontSize=10, fontName="Helvetica", textColor=DARK_TEXT,
            leading=14, spaceAfter=3,
        ),
        "table_header": ParagraphStyle(
            "table_header", parent=base["Normal"],
            fontSize=8.5, fontName="Helvetica-Bold", textColor=WHITE, leading=12,
        ),
        "table_cell": ParagraphStyle(
            "table_cell", parent=base["Normal"],
            fontSize=9.5, fontName="Helvetica", textColor=DARK_TEXT, leading=13,
        ),
        "table_cell_bold": ParagraphStyle(
            "table_cell_bold", parent=base["Normal"],
            fontSize=9.5, fontName="Helvetica-Bold", textColor=DARK_TEXT, leading=13,
        ),
        "table_cell_muted": ParagraphStyle(
            "table_cell_muted", parent=base["Normal"],
            fontSize=9, fontName="Helvetica-Oblique", textColor=MUTED, leading=13,
        ),
        "badge": ParagraphStyle(
            "badge", parent=base["Normal"],
            fontSize=8.5, fontName="Helvetica-Bold", textColor=WHITE, alignment=TA_CENTER,
        ),
        "number": ParagraphStyle(
            "number", parent=base["Normal"],
            fontSize=11, fontName="Helvetica-Bold", textColor=WHITE, alignment=TA_CENTER,
        ),
    }


# ── Story helpers ────────────────────────────────────────────────────────────

def _p(text, style) -> Paragraph:
    return Paragraph(escape(str(text)), style)


def section_header(num: str, title: str, styles: dict) -> list:
    return [
        Paragraph(num, styles["section_num"]),
        Paragraph(title, styles["section_heading"]),
        HRFlowable(width="100%", thickness=3, color=ACCENT,
                   spaceAfter=14, spaceBefore=5, lineCap="round"),
    ]


def data_table(header: list[str], rows: list[list], col_widths: list[float], styles: dict,
               extra_style: list = None) -> Table:
    data = [[_p(h, styles["table_header"]) for h in header]]
    for row in rows:
        data.append([
            cell if isinstance(cell, Paragraph) else _p(cell, styles["table_cell"])
            for cell in row
        ])
    table = Table(data, colWidths=col_widths, repeatRows=1)
    table.setStyle(TableStyle(BASE_TABLE_STYLE + (extra_style or [])))
    return table


def numbered_row(i: int, text: str, styles: dict, color=ACCENT) -> Table:
    row = Table(
        [[_p(i, styles["number"]), _p(text, styles["body_left"])]],
        colWidths=[0.38 * inch, CONTENT_W - 0.38 * inch],
    )
    row.setStyle(TableStyle([
        ("BACKGROUND",    (0, 0), (0, 0), color),
        ("BACKGROUND",    (1, 0), (1, 0), LIGHT_BG),
        ("BOX",           (0, 0), (-1, -1), 0.5, GRID),
        ("TOPPADDING",    (0, 0), (-1, -1), 9),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 9),
        ("LEFTPADDING",   (0, 0), (0, 0), 0),
        ("RIGHTPADDING",  (0, 0), (0, 0), 0),
        ("LEFTPADDING",   (1, 0), (1, 0), 14),
        ("RIGHTPADDING",  (1, 0), (1, 0), 12),
        ("VALIGN",        (0, 0), (-1, -1), "TOP"),
    ]))
    return row


def opportunity_block(opp, styles: dict) -> Table:
    color = SEVERITY_COLORS.get(opp.severity, MUTED)
    block = Table(
        [
            [
                _p(opp.title, ParagraphStyle(
                    f"oh_{opp.id}", parent=styles["subsection_heading"],
                    spaceBefore=0, spaceAfter=0,
                )),
                _p(opp.severity.value.upper(), styles["badge"]),
            ],
            [
                _p(opp.description, styles["table_cell"]),
                _p(
                    f"Savings: {_money(opp.potential_savings)} "
                    f"({opp.confidence_level:.0%} conf., {opp.complexity.value} complexity)",
                    ParagraphStyle(
                        f"os_{opp.id}", parent=styles["table_cell"],
                        textColor=color, fontName="Helvetica-Bold",
                    ),
                ),
            ],
        ],
        colWidths=[CONTENT_W - 1.6 * inch, 1.6 * inch],
    )
    block.setStyle(TableStyle([
        ("BACKGROUND",    (0, 0), (0, 0), LIGHT_BG),
        ("BACKGROUND",    (1, 0), (1, 0), color),
        ("BACKGROUND",    (0, 1), (-1, 1), WHITE),
        ("LINEBEFORE",    (0, 0), (0, -1), 5, color),
        ("BOX",           (0, 0), (-1, -1), 0.5, GRID),
        ("LINEBELOW",     (0, 0), (-1, 0), 0.5, GRID),
        ("TOPPADDING",    (0, 0), (-1, -1), 8),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
        ("LEFTPADDING",   (0, 0), (-1, -1), 12),
        ("RIGHTPADDING",  (0, 0), (-1, -1), 10),
        ("VALIGN",        (0, 0), (-1, 0), "MIDDLE"),
        ("VALIGN",        (0, 1), (-1, 1), "TOP"),
    ]))
    return block


# ── Main report builder ──────────────────────────────────────────────────────

def generate_pdf_report(report: ActuarialReport, output_path: str):
    doc = SimpleDocTemplate(
        output_path,
        pagesize=letter,
        topMargin=0.75 * inch,
        bottomMargin=0.60 * inch,
        leftMargin=0.85 * inch,
        rightMargin=0.85 * inch,
        title="Pharmacy Benefit Arbitrage Analysis",
    )
    styles = make_styles()
    summary = report.executive_summary
    model = report.financial_model

    def _on_first_page(canvas, doc):
        canvas.saveState()
        _draw_cover(canvas, report)
        canvas.restoreState()

    def _on_later_pages(canvas, doc):
        canvas.saveState()
        _draw_header_footer(canvas, doc)
        canvas.restoreState()

    # Page 1 is drawn entirely by _on_first_page
    story = [Spacer(1, 0.01), PageBreak()]

    # ── 01 EXECUTIVE SUMMARY ────────────────────────────────────────────────
    story += section_header("01", "Executive Summary", styles)
    story.append(data_table(
        ["Metric", "Value"],
        [
            ["Total Annual Pharmacy Spend", _money(summary.total_annual_spend)],
            ["Identified Arbitrage", _money(summary.total_arbitrage_identified)],
            ["Arbitrage as % of Spend", f"{summary.savings_percentage:.1f}%"],
            ["Confidence-Weighted Savings", _money(summary.confidence_weighted_savings)],
            ["High-Priority Findings", summary.critical_findings],
            ["Implementation Timeline", summary.estimated_implementation_timeline],
        ],
        [3.4 * inch, 3.4 * inch],
        styles,
    ))
    story.append(Spacer(1, 0.2 * inch))
    if report.board_recommendations:
        story.append(_p(report.board_recommendations[0], styles["body"]))

    # ── 02 ARBITRAGE OPPORTUNITIES ──────────────────────────────────────────
    story += section_header("02", "Arbitrage Opportunities", styles)
    if not report.detailed_findings:
        story.append(_p("No arbitrage opportunities met the detection thresholds.", styles["body"]))
    for opp in report.detailed_findings:
        story.append(KeepTogether([opportunity_block(opp, styles), Spacer(1, 9)]))
    story.append(PageBreak())

    # ── 03 COST STRUCTURE ───────────────────────────────────────────────────
    story += section_header("03", "Cost Structure", styles)
    visible = model.visible_costs
    hidden = model.hidden_costs
    story.append(data_table(
        ["Cost Component", "Type", "Annual Amount"],
        [
            ["Ingredient cost", "Visible", _money(visible.ingredient_cost)],
            ["Dispensing fees", "Visible", _money(visible.dispensing_fees)],
            ["Administrative fees", "Visible", _money(visible.admin_fees)],
            ["Spread markup", "Hidden", _money(hidden.spread_markup)],
            ["Retained rebates", "Hidden", _money(hidden.retained_rebates)],
            ["Specialty markup", "Hidden", _money(hidden.specialty_markup)],
            ["Mail order premium", "Hidden", _money(hidden.mail_premium)],
            [_p("Total hidden PBM revenue", styles["table_cell_bold"]), "",
             _p(_money(hidden.total), styles["table_cell_bold"])],
        ],
        [3.2 * inch, 1.4 * inch, 2.2 * inch],
        styles,
        [("ALIGN", (2, 1), (2, -1), "RIGHT")],
    ))
    story.append(Spacer(1, 0.25 * inch))

    story.append(_p("Revenue Stream Ranges", styles["subsection_heading"]))
    story.append(data_table(
        ["Stream", "Visibility", "Low", "Likely", "High"],
        [
            [s.stream_type.value.replace("_", " ").title(), s.category.value,
             _money(s.amount_min), _money(s.amount_likely), _money(s.amount_max)]
            for s in model.revenue_streams
        ],
        [2.0 * inch, 1.3 * inch, 1.15 * inch, 1.2 * inch, 1.15 * inch],
        styles,
        [("ALIGN", (2, 1), (-1, -1), "RIGHT")],
    ))
    story.append(PageBreak())

    # ── 04 BOARD RECOMMENDATIONS ────────────────────────────────────────────
    story += section_header("04", "Board Recommendations", styles)
    for i, rec in enumerate(report.board_recommendations, 1):
        story.append(numbered_row(i, rec, styles))
        story.append(Spacer(1, 6))

    # ── 05 IMPLEMENTATION ROADMAP ───────────────────────────────────────────
    story += section_header("05", "Implementation Roadmap", styles)
    if report.implementation_roadmap:
        story.append(data_table(
            ["Phase", "Duration", "Savings", "Prerequisites", "Risks"],
            [
                [f"{p.phase_number}. {p.name}", f"{p.duration_months} months", _money(p.estimated_savings),
                 "; ".join(p.prerequisites), "; ".join(p.risks)]
                for p in report.implementation_roadmap
            ],
            [1.5 * inch, 0.9 * inch, 1.0 * inch, 1.7 * inch, 1.7 * inch],
            styles,
            [("VALIGN", (0, 1), (-1, -1), "TOP")],
        ))
    else:
        story.append(_p("No implementation phases: no opportunities were identified.", styles["body"]))
    story.append(PageBreak())

    # ── 06 ASSUMPTIONS & SENSITIVITY ────────────────────────────────────────
    story += section_header("06", "Assumptions & Sensitivity", styles)
    story.append(data_table(
        ["Assumption", "Value", "Basis", "Sensitivity"],
        [[a.description, f"{a.value:,.2f}", a.basis.replace("_", " "), a.sensitivity.value]
         for a in model.assumptions],
        [3.0 * inch, 1.0 * inch, 1.6 * inch, 1.2 * inch],
        styles,
    ))
    story.append(Spacer(1, 0.2 * inch))
    story.append(data_table(
        ["Scenario", "Variable", "Change", "Savings Impact"],
        [[s.name, s.variable, f"{s.change_percentage:+.0f}%", _money(s.savings_impact)]
         for s in model.sensitivity_scenarios],
        [2.6 * inch, 2.0 * inch, 0.9 * inch, 1.3 * inch],
        styles,
    ))

    # ── 07 AUDIT TRAIL ──────────────────────────────────────────────────────
    story += section_header("07", "Audit Trail", styles)
    story.append(data_table(
        ["Timestamp", "Action", "Actor", "Details"],
        [
            [f"{e.timestamp:%Y-%m-%d %H:%M:%S}", e.action, e.actor,
             ", ".join(f"{k}={v}" for k, v in e.details.items())]
            for e in report.audit_trail
        ],
        [1.5 * inch, 1.8 * inch, 1.3 * inch, 2.2 * inch],
        styles,
    ))

    doc.build(story, onFirstPage=_on_first_page, onLaterPages=_on_later_pages)
