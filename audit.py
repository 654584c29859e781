"""
audit.py - Runs one website compliance audit end to end.

Pipeline: acquire the page -> run the compliance detectors -> run the
accessibility scan -> assemble the report. The browser session is
released on every exit path.

Usage:
    python audit.py https://example.com
    python audit.py example.com --pdf report.pdf --json report.json
"""

import argparse
import json
import multiprocessing
import sys
import time
from queue import Empty

import document
from accessibility import load_axe_source, scan_page
from acquisition import create_acquirer, validate_url
from config import describe_config, load_config
from detectors import run_detectors
from errors import AcquisitionError, AuditError, ConfigurationError, ScanError
from report import assemble_report

TOTAL_STEPS = 4


def run_audit(config, url, acquirer=None, axe_source=None):
    """
    Audit a single URL and return the report dict.

    Args:
        config:     Dict from config.load_config().
        url:        The URL to audit (bare hostnames get https://).
        acquirer:   Page acquirer; defaults to the one config selects.
        axe_source: axe-core source; loaded via config if omitted.

    Raises:
        AcquisitionError if the page could not be loaded. Accessibility
        scan failures do NOT raise: the report records them instead.
    """
    url = validate_url(url)
    if acquirer is None:
        acquirer = create_acquirer(config)

    print(f"\n{'=' * 60}")
    print(f"  AUDITING: {url}")
    print(f"{'=' * 60}")

    # Load the engine before taking a browser session, so a slow download
    # doesn't hold the session open.
    scan_error = None
    if axe_source is None:
        try:
            axe_source = load_axe_source(config)
        except ScanError as e:
            print(f"[!] {e}")
            scan_error = str(e)

    print(f"[1/{TOTAL_STEPS}] Loading page...")
    page = acquirer.acquire(url)
    violations = []
    try:
        print(f"[2/{TOTAL_STEPS}] Running compliance checks...")
        findings = run_detectors(page)

        if scan_error is None:
            print(f"[3/{TOTAL_STEPS}] Running accessibility scan...")
            try:
                violations = scan_page(page, axe_source)
            except ScanError as e:
                print(f"[!] {e} -- continuing without accessibility results")
                scan_error = str(e)
        else:
            print(f"[3/{TOTAL_STEPS}] Skipping accessibility scan (engine unavailable)")
    finally:
        page.close()

    print(f"[4/{TOTAL_STEPS}] Assembling report...")
    return assemble_report(url, findings, violations, scan_error=scan_error)


# ────────────────────────────────────────────────────────────────────
# PROCESS ISOLATION
#
# Each audit runs in its own process. If it hangs past max_audit_time,
# kill() sends SIGKILL which takes Playwright and Chromium down with it,
# so no browser session outlives the audit.
# ────────────────────────────────────────────────────────────────────

def _audit_worker(config, url, result_queue):
    """Entry point of the audit subprocess. Sends back a report or an error."""
    try:
        result_queue.put({"report": run_audit(config, url)})
    except AcquisitionError as e:
        result_queue.put({"error": {"type": "acquisition", "kind": e.kind,
                                    "message": e.message}})
    except Exception as e:
        result_queue.put({"error": {"type": "audit", "message": str(e)}})


def _raise_worker_error(error):
    if error.get("type") == "acquisition":
        raise AcquisitionError(error["kind"], error["message"])
    raise AuditError(error.get("message") or "Audit failed")


def run_audit_isolated(config, url, poll_interval=0.2, worker=None):
    """
    Run run_audit() in a subprocess with a hard wall-clock limit.

    Raises AcquisitionError(TIMEOUT) if the limit is hit; other errors
    from the subprocess are re-raised here with the same kind.
    """
    url = validate_url(url)
    max_time = config["max_audit_time"]

    result_queue = multiprocessing.Queue()
    proc = multiprocessing.Process(target=worker or _audit_worker,
                                   args=(config, url, result_queue))
    proc.start()
    start_time = time.time()

    result = None
    try:
        # Read the result while the process runs: a large report can't be
        # flushed to the queue until someone consumes it.
        while result is None:
            if time.time() - start_time > max_time:
                print(f"[!] TIMEOUT ({max_time}s) for {url} -- killing audit process")
                raise AcquisitionError(AcquisitionError.TIMEOUT,
                                       f"Audit timed out after {max_time}s")
            try:
                result = result_queue.get(timeout=poll_interval)
            except Empty:
                if not proc.is_alive() and result_queue.empty():
                    break
    finally:
        if proc.is_alive():
            proc.kill()
        proc.join()

    if result is None:
        raise AuditError("Audit process ended without returning results")
    if "error" in result:
        _raise_worker_error(result["error"])
    return result["report"]


# ────────────────────────────────────────────────────────────────────
# COMMAND LINE
# ────────────────────────────────────────────────────────────────────

def print_summary(report):
    """Print a human-readable summary of one report."""
    findings = report["findings"]
    services = findings["externalServices"]
    accessibility = report["accessibility"]
    print(f"\n{'─' * 60}")
    print(f"  SUMMARY FOR: {report['url']}")
    print(f"{'─' * 60}")
    print(f"  Impressum found      : {'yes' if findings['impressum']['found'] else 'no'}")
    print(f"  Privacy policy found : {'yes' if findings['datenschutz']['found'] else 'no'}")
    print(f"  Cookies set          : {findings['cookies']['count']}")
    print(f"  Google Fonts         : {'yes' if services['usesGoogleFonts'] else 'no'}")
    print(f"  Google Analytics     : {'yes' if services['usesGoogleAnalytics'] else 'no'}")
    print(f"  Facebook Pixel       : {'yes' if services['usesFacebookPixel'] else 'no'}")
    print(f"  External domains     : {len(services['otherDomains'])}")
    if accessibility["scanFailed"]:
        print(f"  Accessibility        : scan failed ({accessibility['scanError']})")
    else:
        print(f"  Accessibility issues : {accessibility['violationCount']}")
        for v in accessibility["violations"]:
            print(f"    [{v['impact']:>8}] {v['id']}: {v['help']}")
    print(f"{'─' * 60}\n")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Website Compliance Auditor -- checks a site for imprint and "
                    "privacy links, cookies, third-party trackers and "
                    "accessibility violations."
    )
    parser.add_argument("url", help="The URL to audit.")
    parser.add_argument("--json", "-j", default=None,
                        help="Write the report as JSON to this file.")
    parser.add_argument("--pdf", "-p", default=None,
                        help="Write the PDF report to this file.")
    args = parser.parse_args(argv)

    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"[!] Configuration error: {e}")
        return 2

    print("[*] Website Compliance Auditor")
    print(f"[*] {describe_config(config)}")

    try:
        report = run_audit_isolated(config, args.url)
    except AcquisitionError as e:
        print(f"[!] Audit failed ({e.kind}): {e.message}")
        return 1
    except AuditError as e:
        print(f"[!] Audit failed: {e}")
        return 1

    print_summary(report)

    if args.json:
        with open(args.json, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
        print(f"[*] Report written to {args.json}")

    if args.pdf:
        try:
            pdf_bytes = document.render_pdf(report)
        except AuditError as e:
            print(f"[!] {e}")
            return 1
        with open(args.pdf, "wb") as f:
            f.write(pdf_bytes)
        print(f"[*] PDF written to {args.pdf}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
