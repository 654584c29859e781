"""
accessibility.py - Runs the axe-core accessibility engine inside a loaded page.

The engine source is injected into the page through the acquisition
layer, axe.run() is triggered with page.evaluate(), and the raw violation
objects are reduced to the fields the report carries.
"""

import os
import tempfile

import requests

from errors import ScanError

IMPACT_LEVELS = ("minor", "moderate", "serious", "critical")

# How long (seconds) to wait for the axe-core download.
AXE_DOWNLOAD_TIMEOUT = 20

# Runs in the page. Never throws: failures come back as {error: ...}.
RUN_AXE_JS = """async () => {
    if (!window.axe || typeof window.axe.run !== 'function') {
        return {error: 'axe-core is not loaded in the page'};
    }
    try {
        const results = await window.axe.run(document, {resultTypes: ['violations']});
        return {
            violations: results.violations.map(v => ({
                id: v.id,
                impact: v.impact,
                help: v.help,
                helpUrl: v.helpUrl,
                description: v.description,
                nodeCount: (v.nodes || []).length,
            })),
        };
    } catch (e) {
        return {error: String((e && e.message) || e)};
    }
}"""


def _looks_like_axe(source):
    return "axe" in source


def _write_cache(path, source):
    """Write the cache through a temp file so readers never see a partial copy."""
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".axe-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(source)
        os.replace(tmp_path, path)
    except OSError:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def load_axe_source(config):
    """
    Return the axe-core JavaScript source.

    Reads the cached copy at config['axe_path']; downloads it from
    config['axe_url'] and caches it if missing or unusable. Raises ScanError.
    """
    path = config["axe_path"]
    if os.path.exists(path) and os.path.getsize(path) > 0:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            cached = f.read()
        if _looks_like_axe(cached):
            return cached
        print(f"[!] Ignoring unusable axe-core cache at {path}")

    print(f"[*] Downloading axe-core from {config['axe_url']}...")
    try:
        response = requests.get(config["axe_url"], timeout=AXE_DOWNLOAD_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ScanError(f"Could not download axe-core: {e}")

    source = response.text
    if not _looks_like_axe(source):
        raise ScanError("Downloaded axe-core source looks invalid")

    try:
        _write_cache(path, source)
    except OSError as e:
        # Cache is best-effort; the source is already in memory.
        print(f"[!] Could not cache axe-core at {path}: {e}")
    return source


def _text(value):
    return value if isinstance(value, str) else ""


def normalize_violation(raw):
    """Keep only the documented violation fields. Returns None for non-dicts."""
    if not isinstance(raw, dict):
        return None

    impact = raw.get("impact")
    if impact not in IMPACT_LEVELS:
        impact = "unknown"

    node_count = raw.get("nodeCount")
    if not isinstance(node_count, int) or isinstance(node_count, bool):
        nodes = raw.get("nodes")
        node_count = len(nodes) if isinstance(nodes, list) else 0

    return {
        "id": _text(raw.get("id")) or "unknown",
        "impact": impact,
        "help": _text(raw.get("help")),
        "helpUrl": _text(raw.get("helpUrl")),
        "description": _text(raw.get("description")),
        "affectedNodeCount": node_count,
    }


def normalize_violations(raw_violations):
    violations = []
    for raw in raw_violations:
        violation = normalize_violation(raw)
        if violation is not None:
            violations.append(violation)
    return violations


def scan_page(page, axe_source):
    """
    Inject axe-core into `page` and return its normalized violations.

    Raises ScanError if the engine can't be injected, isn't available in
    the page, or reports an error.
    """
    try:
        page.add_script(axe_source)
        result = page.evaluate(RUN_AXE_JS)
    except Exception as e:
        raise ScanError(f"Accessibility scan failed: {e}") from e

    if not isinstance(result, dict):
        raise ScanError(f"Unexpected accessibility result: {type(result).__name__}")
    if result.get("error"):
        raise ScanError(f"Accessibility scan failed: {result['error']}")

    raw_violations = result.get("violations")
    if not isinstance(raw_violations, list):
        raise ScanError("Accessibility result has no violations list")

    violations = normalize_violations(raw_violations)
    print(f"[*] Accessibility scan found {len(violations)} violation(s)")
    return violations
