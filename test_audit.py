"""
Pipeline tests. The isolation tests start real subprocesses, the same way
the server does, to prove a hanging audit is killed on time.
"""

import json
import time

import pytest

import audit
from audit import run_audit, run_audit_isolated
from conftest import AXE_STUB, FakeAcquirer, FakePage
from errors import AcquisitionError, AuditError


def _audit(config, page):
    acquirer = FakeAcquirer(page=page)
    report = run_audit(config, page.url, acquirer=acquirer, axe_source=AXE_STUB)
    return report, acquirer


def test_scenario_impressum_link(config):
    page = FakePage(anchors=[{"href": "https://example.com/impressum", "text": "Impressum"}])
    report, _ = _audit(config, page)
    assert report["findings"]["impressum"]["found"] is True
    assert page.close_calls == 1


def test_scenario_cookies_without_privacy_link(config):
    page = FakePage(
        anchors=[{"href": "/shop", "text": "Shop"}],
        cookies=[{"name": n, "domain": "example.com"} for n in ("a", "b", "c")],
    )
    report, _ = _audit(config, page)
    assert report["findings"]["datenschutz"]["found"] is False
    assert report["findings"]["cookies"]["count"] == 3


def test_scenario_google_fonts(config):
    page = FakePage(external_hosts=["fonts.googleapis.com", "fonts.gstatic.com"])
    report, _ = _audit(config, page)
    assert report["findings"]["externalServices"]["usesGoogleFonts"] is True


def test_scenario_two_violations(config):
    page = FakePage(axe_result={"violations": [
        {"id": "image-alt", "impact": "serious", "helpUrl": "https://x.test/image-alt"},
        {"id": "region", "impact": "minor", "helpUrl": "https://x.test/region"},
    ]})
    report, _ = _audit(config, page)
    accessibility = report["accessibility"]
    assert accessibility["violationCount"] == 2
    assert [v["impact"] for v in accessibility["violations"]] == ["serious", "minor"]
    assert json.loads(json.dumps(report)) == report


def test_scan_failure_degrades_gracefully(config):
    page = FakePage(
        anchors=[{"href": "/privacy", "text": "Privacy"}],
        axe_result={"error": "axe-core is not loaded in the page"},
    )
    report, _ = _audit(config, page)
    assert report["findings"]["datenschutz"]["found"] is True
    assert report["accessibility"]["violations"] == []
    assert report["accessibility"]["violationCount"] == 0
    assert report["accessibility"]["scanFailed"] is True
    assert page.close_calls == 1


def test_engine_download_failure_skips_scan(config, monkeypatch):
    from errors import ScanError

    def no_engine(cfg):
        raise ScanError("Could not download axe-core: offline")

    monkeypatch.setattr(audit, "load_axe_source", no_engine)
    page = FakePage()
    report = run_audit(config, page.url, acquirer=FakeAcquirer(page=page))
    assert page.injected == []
    assert report["accessibility"]["scanError"] == "Could not download axe-core: offline"


def test_page_is_closed_when_detectors_fail(config, monkeypatch):
    def broken(page):
        raise RuntimeError("detector bug")

    monkeypatch.setattr(audit, "run_detectors", broken)
    page = FakePage()
    with pytest.raises(RuntimeError):
        run_audit(config, page.url, acquirer=FakeAcquirer(page=page), axe_source=AXE_STUB)
    assert page.close_calls == 1


def test_acquisition_timeout_propagates(config):
    acquirer = FakeAcquirer(error=AcquisitionError(AcquisitionError.TIMEOUT, "too slow"))
    with pytest.raises(AcquisitionError) as excinfo:
        run_audit(config, "https://example.com", acquirer=acquirer, axe_source=AXE_STUB)
    assert excinfo.value.kind == "Timeout"


def test_malformed_url_rejected_before_acquisition(config):
    acquirer = FakeAcquirer(page=FakePage())
    with pytest.raises(AcquisitionError) as excinfo:
        run_audit(config, "http://", acquirer=acquirer, axe_source=AXE_STUB)
    assert excinfo.value.kind == "MalformedURL"
    assert acquirer.requested == []


def test_bare_hostname_is_normalized(config):
    page = FakePage()
    acquirer = FakeAcquirer(page=page)
    report = run_audit(config, "example.com", acquirer=acquirer, axe_source=AXE_STUB)
    assert acquirer.requested == ["https://example.com"]
    assert report["url"] == "https://example.com"


# ────────────────────────────────────────────────────────────────────
# Process isolation. Workers must be module-level to be picklable.
# ────────────────────────────────────────────────────────────────────

def _hanging_worker(config, url, result_queue):
    time.sleep(60)


def _report_worker(config, url, result_queue):
    result_queue.put({"report": {"url": url}})


def _failing_worker(config, url, result_queue):
    result_queue.put({"error": {"type": "acquisition", "kind": "NetworkFailure",
                                "message": "net::ERR_NAME_NOT_RESOLVED"}})


def _silent_worker(config, url, result_queue):
    pass


def test_isolated_audit_is_killed_after_max_time(config):
    config["max_audit_time"] = 1
    start = time.time()
    with pytest.raises(AcquisitionError) as excinfo:
        run_audit_isolated(config, "https://example.com", worker=_hanging_worker)
    assert excinfo.value.kind == "Timeout"
    assert time.time() - start < 15


def test_isolated_audit_returns_report(config):
    report = run_audit_isolated(config, "https://example.com", worker=_report_worker)
    assert report == {"url": "https://example.com"}


def test_isolated_audit_reraises_kind(config):
    with pytest.raises(AcquisitionError) as excinfo:
        run_audit_isolated(config, "https://example.com", worker=_failing_worker)
    assert excinfo.value.kind == "NetworkFailure"


def test_isolated_audit_without_result(config):
    with pytest.raises(AuditError, match="without returning results"):
        run_audit_isolated(config, "https://example.com", worker=_silent_worker)


# ────────────────────────────────────────────────────────────────────
# Command line
# ────────────────────────────────────────────────────────────────────

def test_main_writes_json_and_pdf(tmp_path, monkeypatch, sample_report):
    monkeypatch.delenv("BROWSERLESS_TOKEN", raising=False)
    monkeypatch.delenv("BROWSER_MODE", raising=False)
    monkeypatch.setattr(audit, "run_audit_isolated", lambda cfg, url: sample_report)

    json_path = tmp_path / "report.json"
    pdf_path = tmp_path / "report.pdf"
    code = audit.main(["example.com", "--json", str(json_path), "--pdf", str(pdf_path)])

    assert code == 0
    assert json.loads(json_path.read_text(encoding="utf-8")) == sample_report
    assert pdf_path.read_bytes().startswith(b"%PDF-")


def test_main_reports_configuration_error(monkeypatch):
    monkeypatch.setenv("BROWSER_MODE", "remote")
    monkeypatch.delenv("BROWSERLESS_TOKEN", raising=False)
    assert audit.main(["example.com"]) == 2


def test_main_reports_audit_failure(monkeypatch):
    monkeypatch.delenv("BROWSERLESS_TOKEN", raising=False)
    monkeypatch.delenv("BROWSER_MODE", raising=False)

    def timeout(cfg, url):
        raise AcquisitionError(AcquisitionError.TIMEOUT, "too slow")

    monkeypatch.setattr(audit, "run_audit_isolated", timeout)
    assert audit.main(["example.com"]) == 1
