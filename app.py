"""
app.py - Flask web server for the Website Compliance Auditor.

Two stateless endpoints wrap audit.py and document.py:

    GET  /api/audit?url=...   run an audit, return the report JSON
    POST /api/create-pdf      render a previously returned report as PDF

Run:  python app.py
Open: http://localhost:8080/api/audit?url=example.com
"""

import traceback

from flask import Flask, request, jsonify, Response

import audit
import document
from acquisition import get_hostname, validate_url
from config import describe_config, load_config
from errors import AcquisitionError, AuditError, ConfigurationError, RenderingError, redact
from report import validate_report

app = Flask(__name__)

# Loaded on first use and then kept for the lifetime of the process.
_audit_config = None


def get_audit_config():
    """Return the validated configuration. Raises ConfigurationError."""
    global _audit_config
    if _audit_config is None:
        _audit_config = load_config()
        print(f"[*] Configuration loaded: {describe_config(_audit_config)}")
    return _audit_config


def _config_error_response(e):
    print(f"[!] Configuration error: {e}")
    return jsonify({"error": "Server configuration error", "details": str(e)}), 500


# ────────────────────────────────────────────────────────────────────
# ROUTES
# ────────────────────────────────────────────────────────────────────

@app.route("/api/health")
def health():
    return jsonify({"status": "ok"})


@app.route("/api/audit", methods=["GET"])
def run_audit():
    """
    Audit one website.

    Query: ?url=https://example.com
    Returns the report JSON, 400 for a missing/malformed URL, 500 if the
    audit fails or the server is misconfigured.
    """
    url = request.args.get("url", "").strip()
    if not url:
        return jsonify({"error": "URL is required"}), 400

    try:
        url = validate_url(url)
    except AcquisitionError as e:
        return jsonify({"error": "Invalid URL", "kind": e.kind, "details": e.message}), 400

    # Configuration problems are reported before any network activity.
    try:
        config = get_audit_config()
    except ConfigurationError as e:
        return _config_error_response(e)

    print(f"[*] AUDIT START for {url}")
    token = config.get("browserless_token")
    try:
        report = audit.run_audit_isolated(config, url)
    except AcquisitionError as e:
        print(f"[!] Audit failed for {url} ({e.kind}): {redact(e.message, token)}")
        return jsonify({
            "error": "The audit could not load the page.",
            "kind": e.kind,
            "details": redact(e.message, token),
        }), 500
    except AuditError as e:
        print(f"[!] Audit failed for {url}: {redact(e, token)}")
        return jsonify({
            "error": "The audit failed.",
            "details": redact(e, token),
        }), 500

    return jsonify(report)


@app.route("/api/create-pdf", methods=["POST"])
def create_pdf():
    """
    Render an audit report as a PDF download.

    Expects the report JSON returned by /api/audit as the request body.
    """
    report = request.get_json(silent=True)
    if report is None:
        return jsonify({"error": "Invalid or missing audit data (expected JSON)"}), 400

    problems = validate_report(report)
    if problems:
        return jsonify({"error": "Invalid or missing audit data", "details": problems}), 400

    try:
        pdf_bytes = document.render_pdf(report)
    except RenderingError as e:
        traceback.print_exc()
        return jsonify({"error": "Could not create the PDF.", "details": str(e)}), 500

    host = (get_hostname(str(report.get("url", ""))) or "website").replace(":", "_")

    return Response(
        pdf_bytes,
        mimetype="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="audit-report-{host}.pdf"'
        },
    )


# ────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    # Fail at startup, not on the first request, if the config is invalid.
    try:
        get_audit_config()
    except ConfigurationError as e:
        raise SystemExit(f"[!] Configuration error: {e}")
    print("\n  Website Compliance Auditor")
    print("  http://localhost:8080\n")
    app.run(host="0.0.0.0", debug=False, port=8080, threaded=True)
