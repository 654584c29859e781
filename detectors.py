"""
detectors.py - Compliance checks run against an acquired page.

Each detector is a pure function of the page snapshot (anchors, cookies,
external hostnames) and returns one finding dict with a "key" and a
"found" flag. Detectors never modify the page and never depend on each
other. Malformed entries (non-dict anchors, cookies without a name...)
are skipped instead of failing the whole check.
"""

# ────────────────────────────────────────────────────────────────────
# KEYWORDS & KNOWN SERVICES
# ────────────────────────────────────────────────────────────────────

# Matched case-insensitively against both the link text and the href.
IMPRESSUM_KEYWORDS = ["impressum", "imprint", "legal"]
DATENSCHUTZ_KEYWORDS = ["datenschutz", "privacy"]

GOOGLE_FONTS_HOSTS = frozenset(["fonts.googleapis.com"])
GOOGLE_ANALYTICS_HOSTS = frozenset([
    "www.google-analytics.com",
    "googletagmanager.com",
    "www.googletagmanager.com",
])
FACEBOOK_PIXEL_HOSTS = frozenset(["connect.facebook.net"])

FINDING_KEYS = ["impressum", "datenschutz", "cookies", "externalServices"]


# ────────────────────────────────────────────────────────────────────
# HELPERS
# ────────────────────────────────────────────────────────────────────

def _valid_anchors(anchors):
    """Yield (href, text) for every well-formed anchor entry."""
    for anchor in anchors or []:
        if not isinstance(anchor, dict):
            continue
        href = anchor.get("href") or ""
        text = anchor.get("text") or ""
        if not isinstance(href, str) or not isinstance(text, str):
            continue
        yield href, text


def find_link(anchors, keywords):
    """True if any anchor's text or href contains one of the keywords."""
    for href, text in _valid_anchors(anchors):
        haystack = f"{href}\n{text}".lower()
        if any(keyword in haystack for keyword in keywords):
            return True
    return False


def _valid_cookies(cookies):
    for cookie in cookies or []:
        if not isinstance(cookie, dict):
            continue
        name = cookie.get("name")
        if not isinstance(name, str):
            continue
        domain = cookie.get("domain")
        yield {"name": name, "domain": domain if isinstance(domain, str) else ""}


def _is_googletagmanager(hostname):
    return hostname == "googletagmanager.com" or hostname.endswith(".googletagmanager.com")


# ────────────────────────────────────────────────────────────────────
# DETECTORS
# ────────────────────────────────────────────────────────────────────

def detect_impressum(page):
    """Is there a link to an imprint / legal notice?"""
    return {"key": "impressum", "found": find_link(page.anchors, IMPRESSUM_KEYWORDS)}


def detect_datenschutz(page):
    """Is there a link to a privacy policy?"""
    return {"key": "datenschutz", "found": find_link(page.anchors, DATENSCHUTZ_KEYWORDS)}


def detect_cookies(page):
    """Every cookie set by the end of the load window, in browser order."""
    details = list(_valid_cookies(page.cookies))
    return {
        "key": "cookies",
        "found": len(details) > 0,
        "count": len(details),
        "details": details,
    }


def detect_external_services(page):
    """Known third-party services contacted while the page loaded."""
    own_host = (page.hostname or "").lower()
    hosts = set()
    for hostname in page.external_hosts or ():
        if not isinstance(hostname, str) or not hostname:
            continue
        hostname = hostname.lower()
        if hostname != own_host:
            hosts.add(hostname)

    uses_fonts = bool(hosts & GOOGLE_FONTS_HOSTS)
    uses_analytics = bool(hosts & GOOGLE_ANALYTICS_HOSTS) or any(
        _is_googletagmanager(h) for h in hosts
    )
    uses_pixel = bool(hosts & FACEBOOK_PIXEL_HOSTS)

    return {
        "key": "externalServices",
        "found": uses_fonts or uses_analytics or uses_pixel,
        "usesGoogleFonts": uses_fonts,
        "usesGoogleAnalytics": uses_analytics,
        "usesFacebookPixel": uses_pixel,
        "otherDomains": sorted(hosts),
    }


DETECTORS = [
    detect_impressum,
    detect_datenschutz,
    detect_cookies,
    detect_external_services,
]


def run_detectors(page):
    """Run every detector against the page. Returns {key: finding}."""
    findings = {}
    for detector in DETECTORS:
        finding = detector(page)
        findings[finding["key"]] = finding
    return findings
