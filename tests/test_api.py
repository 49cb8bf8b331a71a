from fastapi.testclient import TestClient

from check_certs.backend.api import create_app
from check_certs.backend.metrics import FINDINGS_TOTAL, MetricsSink
from check_certs.models import CertificateFindings, ExpiringSoon, HostResult, TargetDescriptor


def test_serves_report_as_csv(tmp_path):
    report = tmp_path / "results.csv"
    report.write_text("host,common_name\nexample.com:443,example.com\n")
    client = TestClient(create_app(str(report)))

    response = client.get("/results.csv")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "example.com:443" in response.text


def test_missing_report_is_a_server_error(tmp_path):
    client = TestClient(create_app(str(tmp_path / "results.csv")))
    response = client.get("/results.csv")
    assert response.status_code == 500
    assert "results.csv file error" in response.text


def test_health(tmp_path):
    client = TestClient(create_app(str(tmp_path / "results.csv")))
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["report"] == "missing"


def test_metrics_include_findings(tmp_path):
    sink = MetricsSink()
    before = FINDINGS_TOTAL.labels(kind="expiring_soon")._value.get()
    target = TargetDescriptor("www.example.com:443")
    sink.on_result(HostResult.with_findings(
        target, [CertificateFindings("www.example.com", 1, (ExpiringSoon(5),))]))
    sink.close()
    assert FINDINGS_TOTAL.labels(kind="expiring_soon")._value.get() == before + 1

    client = TestClient(create_app(str(tmp_path / "results.csv")))
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "check_certs_findings_total" in response.text
    assert "check_certs_last_run_findings" in response.text
