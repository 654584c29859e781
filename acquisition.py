"""
acquisition.py - Loads the target page in a real browser.

Two interchangeable acquirers share one interface:

    LocalBrowserAcquirer   launches a headless Chromium on this machine
    RemoteBrowserAcquirer  connects to a rendering service (Browserless)

Both return an AcquiredPage: a rendered, script-evaluable page plus a
snapshot of its anchors, its cookies and every external hostname the
browser contacted while loading it. The caller owns the page and MUST
call close() on it; close() is idempotent.
"""

import re
from urllib.parse import urlparse

from playwright.sync_api import (
    sync_playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeout,
)

from errors import AcquisitionError, redact

# Same desktop profile for both acquirers so results don't depend on the path.
VIEWPORT = {"width": 1280, "height": 900}
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# Returns every <a> on the page as {href, text}. a.href is already absolute.
COLLECT_ANCHORS_JS = """() => Array.from(document.querySelectorAll('a')).map(a => ({
    href: a.href || a.getAttribute('href') || '',
    text: (a.innerText || a.textContent || '').trim(),
}))"""

# Substrings of Playwright errors raised when the rendering service
# rejects the token.
_AUTH_FAILURE_MARKERS = ("401", "403", "unauthorized", "forbidden", "invalid token")

# An explicit scheme at the start of the input. "example.com:8080" has none.
_SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*)://")


# ────────────────────────────────────────────────────────────────────
# URL HELPERS
# ────────────────────────────────────────────────────────────────────

def normalize_url(url):
    """Make sure the URL starts with http:// or https://."""
    url = url.strip()
    if not url.lower().startswith(("http://", "https://")):
        return "https://" + url
    return url


def validate_url(url):
    """
    Normalize a user-supplied URL and check it can be audited.

    Returns the normalized URL. Raises AcquisitionError(MALFORMED_URL).
    """
    if not isinstance(url, str) or not url.strip():
        raise AcquisitionError(AcquisitionError.MALFORMED_URL, "URL is empty")
    if any(ch.isspace() for ch in url.strip()):
        raise AcquisitionError(AcquisitionError.MALFORMED_URL,
                               f"URL contains whitespace: {url!r}")
    scheme = _SCHEME_RE.match(url.strip())
    if scheme and scheme.group(1).lower() not in ("http", "https"):
        raise AcquisitionError(AcquisitionError.MALFORMED_URL,
                               f"Only http(s) URLs can be audited: {url!r}")
    normalized = normalize_url(url)
    try:
        parsed = urlparse(normalized)
        hostname = parsed.hostname
        parsed.port  # raises ValueError on a bad port
    except ValueError as e:
        raise AcquisitionError(AcquisitionError.MALFORMED_URL,
                               f"Could not parse URL {url!r}: {e}")
    if parsed.scheme not in ("http", "https") or not hostname:
        raise AcquisitionError(AcquisitionError.MALFORMED_URL,
                               f"Not an absolute http(s) URL: {url!r}")
    return normalized


def get_hostname(url):
    """Lower-case hostname of a URL, or None if it has none or can't be parsed."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


# ────────────────────────────────────────────────────────────────────
# ACQUIRED PAGE
# ────────────────────────────────────────────────────────────────────

class AcquiredPage:
    """
    A loaded page and everything captured while loading it.

    anchors, cookies and external_hosts are snapshots taken at the end of
    the load window and are never modified afterwards.
    """

    def __init__(self, url, playwright=None, browser=None, context=None, page=None,
                 secret=None):
        self.url = url
        self.hostname = get_hostname(url)
        self.anchors = []
        self.cookies = []
        self.external_hosts = set()
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._page = page
        self._secret = secret
        self.closed = False

    def evaluate(self, script, arg=None):
        """Run a script in the page and return its JSON-serializable result."""
        if self.closed:
            raise RuntimeError("Page has already been closed")
        if arg is None:
            return self._page.evaluate(script)
        return self._page.evaluate(script, arg)

    def add_script(self, content):
        """Inject a <script> with the given source into the page."""
        if self.closed:
            raise RuntimeError("Page has already been closed")
        self._page.add_script_tag(content=content)

    def close(self):
        """Release the browser context, the browser/connection and Playwright."""
        if self.closed:
            return
        self.closed = True
        for label, resource, method in [
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright", self._playwright, "stop"),
        ]:
            if resource is None:
                continue
            try:
                getattr(resource, method)()
            except Exception as e:
                # Keep releasing the remaining resources.
                print(f"[!] Failed to release {label}: {redact(e, self._secret)}")
        print(f"[*] Released browser session for {self.url}")


# ────────────────────────────────────────────────────────────────────
# ACQUIRERS
# ────────────────────────────────────────────────────────────────────

class BrowserAcquirer:
    """
    Shared acquisition flow. Subclasses only decide how to get a Browser.
    """

    def __init__(self, config):
        self.config = config
        self.nav_timeout_ms = config["nav_timeout_ms"]
        self.settle_ms = config["settle_ms"]
        self.secret = config.get("browserless_token")

    def _open_browser(self, pw):
        raise NotImplementedError

    def _start_playwright(self):
        return sync_playwright().start()

    def acquire(self, url):
        """
        Load `url` and return an AcquiredPage.

        Raises AcquisitionError. Any browser resources opened before the
        failure are released before the error propagates.
        """
        url = validate_url(url)
        target_host = get_hostname(url)
        page = AcquiredPage(url, secret=self.secret)

        try:
            page._playwright = self._start_playwright()
            page._browser = self._open_browser(page._playwright)
            page._context = page._browser.new_context(
                viewport=VIEWPORT, user_agent=USER_AGENT,
                # Lets axe-core be injected on pages with a strict CSP.
                bypass_csp=True,
            )
            page._page = page._context.new_page()

            captured_hosts = set()

            def on_request(request):
                hostname = get_hostname(request.url)
                # data:, blob: and unparseable URLs have no hostname.
                if hostname and hostname != target_host:
                    captured_hosts.add(hostname)

            page._page.on("request", on_request)

            print(f"[*] Navigating to {url} (timeout {self.nav_timeout_ms // 1000}s)...")
            try:
                page._page.goto(url, timeout=self.nav_timeout_ms, wait_until="networkidle")
            except PlaywrightTimeout:
                raise AcquisitionError(
                    AcquisitionError.TIMEOUT,
                    f"Page did not reach network idle within "
                    f"{self.nav_timeout_ms // 1000}s: {url}",
                )
            except PlaywrightError as e:
                raise AcquisitionError(
                    AcquisitionError.NETWORK_FAILURE,
                    f"Could not load {url}: {redact(_first_line(e), self.secret)}",
                )

            # Late requests fired by scripts after network idle still count.
            if self.settle_ms:
                page._page.wait_for_timeout(self.settle_ms)
            page._page.remove_listener("request", on_request)
            page.external_hosts = set(captured_hosts)

            anchors = page.evaluate(COLLECT_ANCHORS_JS)
            page.anchors = anchors if isinstance(anchors, list) else []
            page.cookies = list(page._context.cookies())

        except AcquisitionError:
            page.close()
            raise
        except PlaywrightTimeout as e:
            page.close()
            raise AcquisitionError(AcquisitionError.TIMEOUT,
                                   redact(_first_line(e), self.secret))
        except PlaywrightError as e:
            page.close()
            raise AcquisitionError(AcquisitionError.NETWORK_FAILURE,
                                   redact(_first_line(e), self.secret))
        except BaseException:
            page.close()
            raise

        print(f"[*] Page loaded: {len(page.anchors)} links, {len(page.cookies)} cookies, "
              f"{len(page.external_hosts)} external hosts")
        return page


class LocalBrowserAcquirer(BrowserAcquirer):
    """Runs a headless Chromium inside this process."""

    def _open_browser(self, pw):
        print("[*] Launching local headless Chromium...")
        try:
            return pw.chromium.launch(headless=True)
        except PlaywrightError as e:
            raise AcquisitionError(AcquisitionError.NETWORK_FAILURE,
                                   f"Could not start local browser: {_first_line(e)}")


class RemoteBrowserAcquirer(BrowserAcquirer):
    """Connects to a Browserless-compatible rendering service over CDP."""

    def __init__(self, config):
        super().__init__(config)
        self.endpoint = config["browserless_endpoint"]

    def _open_browser(self, pw):
        print(f"[*] Connecting to rendering service at {self.endpoint}...")
        ws_url = f"{self.endpoint}?token={self.secret}"
        try:
            return pw.chromium.connect_over_cdp(ws_url, timeout=self.nav_timeout_ms)
        except PlaywrightTimeout:
            raise AcquisitionError(AcquisitionError.TIMEOUT,
                                   f"Rendering service at {self.endpoint} did not respond")
        except PlaywrightError as e:
            message = redact(_first_line(e), self.secret)
            if any(marker in message.lower() for marker in _AUTH_FAILURE_MARKERS):
                raise AcquisitionError(AcquisitionError.AUTH_FAILURE,
                                       f"Rendering service rejected the access token: {message}")
            raise AcquisitionError(AcquisitionError.NETWORK_FAILURE,
                                   f"Could not connect to rendering service: {message}")


def create_acquirer(config):
    """Pick the acquirer implementation named by config['browser_mode']."""
    if config["browser_mode"] == "remote":
        return RemoteBrowserAcquirer(config)
    return LocalBrowserAcquirer(config)


def _first_line(exc):
    # Playwright messages carry a multi-line call log after the first line.
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__
