import pytest

import document
from document import build_document, render_pdf
from errors import RenderingError


def test_sections_in_fixed_order(sample_report):
    doc = build_document(sample_report)
    assert [s["title"] for s in doc["sections"]] == [
        "Impressum", "Datenschutzerklärung", "Cookies", "Externe Dienste",
    ]
    assert [s["polarity"] for s in doc["sections"]] == [
        "positive", "negative", "negative", "negative",
    ]


def test_cookie_section_includes_count(sample_report):
    cookies = build_document(sample_report)["sections"][2]
    assert "2 Cookie(s)" in cookies["body_text"]


def test_external_services_only_when_a_tracker_is_used(sample_report):
    services = sample_report["findings"]["externalServices"]
    services["usesGoogleFonts"] = False
    doc = build_document(sample_report)
    assert [s["title"] for s in doc["sections"]] == ["Impressum", "Datenschutzerklärung", "Cookies"]


def test_external_services_lists_detected_trackers(sample_report):
    sample_report["findings"]["externalServices"]["usesFacebookPixel"] = True
    section = build_document(sample_report)["sections"][3]
    assert "Google Fonts, Facebook Pixel" in section["body_text"]


def test_appendix_keeps_report_order_and_links(sample_report):
    appendix = build_document(sample_report)["appendix"]
    assert appendix == [
        {
            "headline": "Images must have alternate text",
            "impact_label": "serious",
            "rule_id": "image-alt",
            "learn_more_link": "https://dequeuniversity.com/rules/axe/4.9/image-alt",
        },
        {
            "headline": "All page content should be contained by landmarks",
            "impact_label": "minor",
            "rule_id": "region",
            "learn_more_link": "https://dequeuniversity.com/rules/axe/4.9/region",
        },
    ]


def test_no_appendix_without_violations(sample_report):
    sample_report["accessibility"]["violations"] = []
    sample_report["accessibility"]["violationCount"] = 0
    assert build_document(sample_report)["appendix"] == []


def test_sparse_report_uses_defaults():
    doc = build_document({"findings": {}})
    assert doc["url"] == "N/A"
    assert [s["polarity"] for s in doc["sections"]] == ["negative", "negative", "positive"]
    assert ("Anzahl der Cookies", "0") in doc["summary"]


def test_scan_failure_appears_in_summary(sample_report):
    sample_report["accessibility"].update(
        {"violations": [], "violationCount": 0, "scanFailed": True, "scanError": "boom"}
    )
    summary = dict(build_document(sample_report)["summary"])
    assert summary["Barrierefreiheitsprüfung"] == "fehlgeschlagen: boom"


def test_build_document_is_idempotent(sample_report):
    assert build_document(sample_report) == build_document(sample_report)


def test_render_pdf_returns_pdf_bytes(sample_report):
    pdf = render_pdf(sample_report)
    assert isinstance(pdf, bytes)
    assert pdf.startswith(b"%PDF-")
    assert pdf.rstrip().endswith(b"%%EOF")


def test_render_pdf_links_appendix_entries_in_order(sample_report):
    pdf = render_pdf(sample_report)
    image_alt = pdf.find(b"/URI (https://dequeuniversity.com/rules/axe/4.9/image-alt)")
    region = pdf.find(b"/URI (https://dequeuniversity.com/rules/axe/4.9/region)")
    assert image_alt != -1
    assert region != -1
    assert image_alt < region
    assert pdf.count(b"/URI (") == 2


def test_render_pdf_handles_unicode(sample_report):
    sample_report["url"] = "https://bücher.example/—☃"
    assert render_pdf(sample_report).startswith(b"%PDF-")


def test_render_pdf_wraps_drawing_errors(sample_report, monkeypatch):
    def broken(doc):
        raise ValueError("font missing")

    monkeypatch.setattr(document, "_draw_document", broken)
    with pytest.raises(RenderingError, match="font missing"):
        render_pdf(sample_report)
