"""
report.py - Builds and checks the canonical audit report.

The report is a plain JSON-serializable dict. It is the only thing the
PDF renderer ever sees, so it must be complete on its own.
"""

from datetime import datetime, timezone

from detectors import FINDING_KEYS

# Fields each finding must carry, besides "found".
REQUIRED_FINDING_FIELDS = {
    "impressum": [],
    "datenschutz": [],
    "cookies": ["count", "details"],
    "externalServices": [
        "usesGoogleFonts", "usesGoogleAnalytics", "usesFacebookPixel", "otherDomains",
    ],
}


def format_timestamp(moment):
    """ISO-8601 in UTC with millisecond precision, e.g. 2024-05-01T12:00:00.000Z."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def _check_finding(key, finding):
    if not isinstance(finding, dict):
        raise ValueError(f"Finding {key!r} is missing (detector did not run)")
    if finding.get("key", key) != key:
        raise ValueError(f"Finding stored under {key!r} has key {finding['key']!r}")
    for field in ["found"] + REQUIRED_FINDING_FIELDS[key]:
        if field not in finding:
            raise ValueError(f"Finding {key!r} is missing field {field!r}")
    if not isinstance(finding["found"], bool):
        raise ValueError(f"Finding {key!r} has a non-boolean 'found'")


def assemble_report(url, findings, violations, scan_error=None, now=None):
    """
    Merge detector findings and accessibility violations into one report.

    Args:
        url:        The audited URL.
        findings:   {key: finding} for all four detectors.
        violations: Normalized accessibility violations.
        scan_error: Message if the accessibility scan failed, else None.
        now:        Assembly time (defaults to the current time).

    Raises:
        ValueError if a finding is missing or malformed.
    """
    report_findings = {}
    for key in FINDING_KEYS:
        finding = findings.get(key)
        _check_finding(key, finding)
        report_findings[key] = {k: v for k, v in finding.items() if k != "key"}

    violations = list(violations or [])
    if now is None:
        now = datetime.now(timezone.utc)

    return {
        "url": url,
        "timestamp": format_timestamp(now),
        "findings": report_findings,
        "accessibility": {
            "violations": violations,
            "violationCount": len(violations),
            "scanFailed": scan_error is not None,
            "scanError": scan_error,
        },
    }


def validate_report(data):
    """
    Check a report received from a client before rendering it.

    Returns a list of problems (empty if the report is usable).
    """
    if not isinstance(data, dict):
        return ["Report must be a JSON object"]

    problems = []
    findings = data.get("findings")
    if not isinstance(findings, dict):
        problems.append("Report has no 'findings' object")
    else:
        for key in FINDING_KEYS:
            if key in findings and not isinstance(findings[key], dict):
                problems.append(f"findings.{key} must be an object")

    accessibility = data.get("accessibility")
    if accessibility is not None:
        if not isinstance(accessibility, dict):
            problems.append("'accessibility' must be an object")
        elif not isinstance(accessibility.get("violations", []), list):
            problems.append("accessibility.violations must be a list")

    return problems
