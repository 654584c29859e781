"""
document.py - Turns an audit report into a PDF document.

Rendering happens in two steps:

  build_document(report)  report dict -> document dict (sections + appendix)
  render_pdf(report)      document dict -> PDF bytes (fpdf2)

Both are pure functions of the report: nothing here touches the network
or the browser, so a report saved yesterday renders the same PDF today.
"""

from fpdf import FPDF

from errors import RenderingError

# ────────────────────────────────────────────────────────────────────
# TEXT TABLE
#
# One entry per (finding key, found). Polarity decides the banner color.
# ────────────────────────────────────────────────────────────────────

POSITIVE = "positive"
NEGATIVE = "negative"

SECTION_TEXTS = {
    ("impressum", True): {
        "title": "Impressum",
        "polarity": POSITIVE,
        "body": "Auf der Seite wurde ein Link zum Impressum gefunden.",
        "recommendation": (
            "Prüfen Sie, ob das Impressum von jeder Unterseite mit höchstens zwei "
            "Klicks erreichbar ist und alle Pflichtangaben nach § 5 DDG enthält "
            "(Name, Anschrift, Kontakt, Register- und Umsatzsteuerangaben)."
        ),
    },
    ("impressum", False): {
        "title": "Impressum",
        "polarity": NEGATIVE,
        "body": "Auf der Seite wurde kein Link zu einem Impressum gefunden.",
        "recommendation": (
            "Ergänzen Sie einen gut sichtbaren Link \"Impressum\" (z. B. im Footer), "
            "der auf eine Seite mit allen Anbieterangaben nach § 5 DDG führt. "
            "Ein fehlendes Impressum kann abgemahnt werden."
        ),
    },
    ("datenschutz", True): {
        "title": "Datenschutzerklärung",
        "polarity": POSITIVE,
        "body": "Auf der Seite wurde ein Link zur Datenschutzerklärung gefunden.",
        "recommendation": (
            "Halten Sie die Datenschutzerklärung aktuell: Sie muss alle eingesetzten "
            "Dienste, Cookies und Drittanbieter mit Zweck und Rechtsgrundlage "
            "(Art. 13 DSGVO) nennen."
        ),
    },
    ("datenschutz", False): {
        "title": "Datenschutzerklärung",
        "polarity": NEGATIVE,
        "body": "Auf der Seite wurde kein Link zu einer Datenschutzerklärung gefunden.",
        "recommendation": (
            "Verlinken Sie von jeder Seite aus eine Datenschutzerklärung, die die "
            "Informationspflichten nach Art. 13 DSGVO erfüllt."
        ),
    },
    ("cookies", True): {
        "title": "Cookies",
        "polarity": NEGATIVE,
        "body": "Beim Laden der Seite wurden {count} Cookie(s) gesetzt, bevor eine "
                "Einwilligung eingeholt werden konnte.",
        "recommendation": (
            "Setzen Sie nicht notwendige Cookies erst nach einer aktiven Einwilligung "
            "über ein Cookie-Banner (§ 25 TDDDG). Technisch notwendige Cookies sollten "
            "in der Datenschutzerklärung dokumentiert sein."
        ),
    },
    ("cookies", False): {
        "title": "Cookies",
        "polarity": POSITIVE,
        "body": "Beim Laden der Seite wurden {count} Cookies gesetzt.",
        "recommendation": (
            "Es ist kein Handlungsbedarf erkennbar. Prüfen Sie nach Änderungen an der "
            "Seite erneut, ob Cookies ohne Einwilligung gesetzt werden."
        ),
    },
    ("externalServices", True): {
        "title": "Externe Dienste",
        "polarity": NEGATIVE,
        "body": "Die Seite lädt Inhalte von Drittanbietern: {services}. Dabei wird die "
                "IP-Adresse der Besucher an den Anbieter übertragen.",
        "recommendation": (
            "Binden Sie Schriftarten lokal ein und laden Sie Analyse- und "
            "Marketing-Dienste erst nach Einwilligung. Nennen Sie alle Anbieter in "
            "der Datenschutzerklärung."
        ),
    },
}

SERVICE_NAMES = [
    ("usesGoogleFonts", "Google Fonts"),
    ("usesGoogleAnalytics", "Google Analytics / Tag Manager"),
    ("usesFacebookPixel", "Facebook Pixel"),
]

APPENDIX_TITLE = "Details zur Barrierefreiheit"
NO_DESCRIPTION = "Keine Beschreibung verfügbar."

# Banner colors: green for positive, red for negative.
POLARITY_COLORS = {
    POSITIVE: (46, 213, 115),
    NEGATIVE: (255, 71, 87),
}


def _get(data, path, default=None):
    """
    Read a dotted path ('findings.cookies.count') from nested dicts.

    Returns `default` if any step is missing or the value is None.
    """
    value = data
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return default
        value = value[part]
    return default if value is None else value


def _as_int(value, default=0):
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# ────────────────────────────────────────────────────────────────────
# DOCUMENT MODEL
# ────────────────────────────────────────────────────────────────────

def _section(key, found, **values):
    texts = SECTION_TEXTS[(key, found)]
    return {
        "title": texts["title"],
        "body_text": texts["body"].format(**values),
        "recommendation_text": texts["recommendation"],
        "polarity": texts["polarity"],
    }


def build_document(report):
    """
    Map a report dict to the document that render_pdf() draws.

    Section order is fixed: impressum, datenschutz, cookies, then external
    services (only if a known tracker was detected). The violation appendix
    keeps the report's order and is empty when there are no violations.
    """
    impressum = bool(_get(report, "findings.impressum.found", False))
    datenschutz = bool(_get(report, "findings.datenschutz.found", False))
    cookie_count = _as_int(_get(report, "findings.cookies.count", 0))

    sections = [
        _section("impressum", impressum),
        _section("datenschutz", datenschutz),
        _section("cookies", cookie_count > 0, count=cookie_count),
    ]

    services = [
        name for field, name in SERVICE_NAMES
        if _get(report, f"findings.externalServices.{field}", False) is True
    ]
    if services:
        sections.append(
            _section("externalServices", True, services=", ".join(services))
        )

    violations = _get(report, "accessibility.violations", [])
    if not isinstance(violations, list):
        violations = []

    appendix = []
    for violation in violations:
        if not isinstance(violation, dict):
            continue
        appendix.append({
            "headline": _get(violation, "help") or _get(violation, "description")
                        or NO_DESCRIPTION,
            "impact_label": _get(violation, "impact", "unknown"),
            "rule_id": _get(violation, "id", "unknown"),
            "learn_more_link": _get(violation, "helpUrl") or None,
        })

    summary = [
        ("Impressum gefunden", "Ja" if impressum else "Nein"),
        ("Datenschutz-Link gefunden", "Ja" if datenschutz else "Nein"),
        ("Anzahl der Cookies", str(cookie_count)),
        ("Barrierefreiheits-Verstöße", str(len(appendix))),
    ]
    if _get(report, "accessibility.scanFailed", False) is True:
        summary.append(("Barrierefreiheitsprüfung",
                        "fehlgeschlagen: " + str(_get(report, "accessibility.scanError",
                                                      "unbekannter Fehler"))))

    return {
        "title": "Audit-Report",
        "url": str(_get(report, "url", "N/A")),
        "timestamp": str(_get(report, "timestamp", "N/A")),
        "summary": summary,
        "sections": sections,
        "appendix": appendix,
    }


# ────────────────────────────────────────────────────────────────────
# PDF OUTPUT (fpdf2)
# ────────────────────────────────────────────────────────────────────

def _sanitize_for_pdf(text):
    """Replace Unicode characters that Helvetica can't render."""
    replacements = {
        "\u2014": "--", "\u2013": "-", "\u2018": "'", "\u2019": "'",
        "\u201c": '"', "\u201d": '"', "\u201e": '"', "\u2026": "...",
        "\u00a0": " ", "\u2022": "*", "\u2192": "->",
    }
    text = str(text)
    for char, repl in replacements.items():
        text = text.replace(char, repl)
    # Strip any remaining non-latin1 characters.
    return text.encode("latin-1", errors="replace").decode("latin-1")


class AuditPDF(FPDF):
    """FPDF with a page-number footer."""

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.set_text_color(120, 120, 120)
        self.cell(0, 10, f"Seite {self.page_no()}/{{nb}}", align="C")


def _draw_section(pdf, section):
    pdf.set_x(pdf.l_margin)
    pdf.set_fill_color(*POLARITY_COLORS[section["polarity"]])
    pdf.set_text_color(255, 255, 255)
    pdf.set_font("Helvetica", "B", 13)
    marker = "OK" if section["polarity"] == POSITIVE else "HANDLUNGSBEDARF"
    pdf.cell(0, 10, _sanitize_for_pdf(f"  {section['title']}: {marker}"),
             fill=True, new_x="LMARGIN", new_y="NEXT")
    pdf.set_text_color(0, 0, 0)
    pdf.ln(2)

    pdf.set_font("Helvetica", "", 11)
    pdf.multi_cell(0, 6, text=_sanitize_for_pdf(section["body_text"]),
                   new_x="LMARGIN", new_y="NEXT")
    pdf.ln(1)
    pdf.set_font("Helvetica", "B", 11)
    pdf.cell(0, 6, "Empfehlung:", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 11)
    pdf.multi_cell(0, 6, text=_sanitize_for_pdf(section["recommendation_text"]),
                   new_x="LMARGIN", new_y="NEXT")
    pdf.ln(6)


def _draw_appendix(pdf, appendix):
    pdf.set_font("Helvetica", "B", 16)
    pdf.set_text_color(17, 24, 39)
    pdf.cell(0, 10, _sanitize_for_pdf(APPENDIX_TITLE), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(2)

    for entry in appendix:
        pdf.set_font("Helvetica", "B", 11)
        pdf.set_text_color(17, 24, 39)
        pdf.multi_cell(0, 6, text=_sanitize_for_pdf(f"- {entry['headline']}"),
                       new_x="LMARGIN", new_y="NEXT")
        pdf.set_font("Helvetica", "", 9)
        pdf.set_text_color(107, 114, 128)
        pdf.cell(0, 5, _sanitize_for_pdf(
            f"   (Auswirkung: {entry['impact_label']}, ID: {entry['rule_id']})"),
            new_x="LMARGIN", new_y="NEXT")
        if entry["learn_more_link"]:
            pdf.set_font("Helvetica", "U", 9)
            pdf.set_text_color(37, 99, 235)
            pdf.cell(0, 5, "   Mehr erfahren...", link=entry["learn_more_link"],
                     new_x="LMARGIN", new_y="NEXT")
        pdf.ln(3)
    pdf.set_text_color(0, 0, 0)


def _draw_document(document):
    pdf = AuditPDF()
    pdf.set_title("Audit-Report")
    pdf.set_creator("Website Compliance Auditor")
    pdf.set_auto_page_break(auto=True, margin=20)
    pdf.add_page()

    # ── Title ──────────────────────────────────────────────────
    pdf.set_font("Helvetica", "B", 24)
    pdf.set_text_color(30, 58, 138)
    pdf.cell(0, 15, _sanitize_for_pdf(document["title"]), align="C",
             new_x="LMARGIN", new_y="NEXT")

    # ── URL and date ───────────────────────────────────────────
    pdf.set_font("Helvetica", "", 11)
    pdf.set_text_color(75, 85, 99)
    pdf.multi_cell(0, 7, text=_sanitize_for_pdf(f"für die Webseite: {document['url']}"),
                   align="C", new_x="LMARGIN", new_y="NEXT")
    pdf.cell(0, 7, _sanitize_for_pdf(f"Geprüft am: {document['timestamp']}"), align="C",
             new_x="LMARGIN", new_y="NEXT")
    pdf.ln(6)

    # ── Summary ────────────────────────────────────────────────
    pdf.set_text_color(17, 24, 39)
    pdf.set_font("Helvetica", "B", 16)
    pdf.cell(0, 10, "Zusammenfassung", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 11)
    for label, value in document["summary"]:
        pdf.multi_cell(0, 7, text=_sanitize_for_pdf(f"{label}: {value}"),
                       new_x="LMARGIN", new_y="NEXT")
    pdf.ln(6)

    # ── Findings ───────────────────────────────────────────────
    for section in document["sections"]:
        _draw_section(pdf, section)

    # ── Accessibility appendix ─────────────────────────────────
    if document["appendix"]:
        pdf.add_page()
        _draw_appendix(pdf, document["appendix"])

    return bytes(pdf.output())


def render_pdf(report):
    """
    Build the PDF bytes for an audit report.

    Raises RenderingError if the document can't be drawn; in that case no
    bytes are returned at all.
    """
    try:
        document = build_document(report)
        return _draw_document(document)
    except RenderingError:
        raise
    except Exception as e:
        raise RenderingError(f"PDF generation failed: {e}") from e
