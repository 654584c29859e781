"""
Shared fixtures: stand-ins for the browser layer so the pipeline can be
tested without launching Chromium.
"""

import pytest

from acquisition import get_hostname

AXE_STUB = "window.axe = {run: async () => ({violations: []})};"


class FakePage:
    """Behaves like acquisition.AcquiredPage, with canned data."""

    def __init__(self, url="https://example.com/", anchors=None, cookies=None,
                 external_hosts=None, axe_result=None, evaluate_error=None):
        self.url = url
        self.hostname = get_hostname(url)
        self.anchors = anchors or []
        self.cookies = cookies or []
        self.external_hosts = set(external_hosts or [])
        self.axe_result = axe_result if axe_result is not None else {"violations": []}
        self.evaluate_error = evaluate_error
        self.injected = []
        self.close_calls = 0

    def add_script(self, content):
        self.injected.append(content)

    def evaluate(self, script, arg=None):
        if self.evaluate_error is not None:
            raise self.evaluate_error
        return self.axe_result

    def close(self):
        self.close_calls += 1


class FakeAcquirer:
    """Returns a prepared FakePage, or raises a prepared error."""

    def __init__(self, page=None, error=None):
        self.page = page
        self.error = error
        self.requested = []

    def acquire(self, url):
        self.requested.append(url)
        if self.error is not None:
            raise self.error
        return self.page


@pytest.fixture
def config(tmp_path):
    return {
        "browser_mode": "local",
        "browserless_token": None,
        "browserless_endpoint": "wss://chrome.browserless.io",
        "nav_timeout_ms": 30_000,
        "settle_ms": 0,
        "max_audit_time": 90,
        "axe_path": str(tmp_path / "axe.min.js"),
        "axe_url": "https://cdn.example.test/axe.min.js",
    }


@pytest.fixture
def sample_violations():
    return [
        {
            "id": "image-alt",
            "impact": "serious",
            "help": "Images must have alternate text",
            "helpUrl": "https://dequeuniversity.com/rules/axe/4.9/image-alt",
            "description": "Ensures <img> elements have alternate text",
            "affectedNodeCount": 3,
        },
        {
            "id": "region",
            "impact": "minor",
            "help": "All page content should be contained by landmarks",
            "helpUrl": "https://dequeuniversity.com/rules/axe/4.9/region",
            "description": "Ensures all page content is contained by landmarks",
            "affectedNodeCount": 1,
        },
    ]


@pytest.fixture
def sample_report(sample_violations):
    return {
        "url": "https://example.com/",
        "timestamp": "2024-05-01T12:00:00.000Z",
        "findings": {
            "impressum": {"found": True},
            "datenschutz": {"found": False},
            "cookies": {
                "found": True,
                "count": 2,
                "details": [
                    {"name": "_ga", "domain": ".example.com"},
                    {"name": "session", "domain": "example.com"},
                ],
            },
            "externalServices": {
                "found": True,
                "usesGoogleFonts": True,
                "usesGoogleAnalytics": False,
                "usesFacebookPixel": False,
                "otherDomains": ["fonts.googleapis.com", "fonts.gstatic.com"],
            },
        },
        "accessibility": {
            "violations": sample_violations,
            "violationCount": 2,
            "scanFailed": False,
            "scanError": None,
        },
    }
