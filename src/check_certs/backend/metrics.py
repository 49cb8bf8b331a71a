import time

from prometheus_client import Counter, Gauge, Histogram, Info, generate_latest, CONTENT_TYPE_LATEST


# --- Counters (scan activity) ---

HOSTS_SCANNED_TOTAL = Counter(
    "check_certs_hosts_scanned_total",
    "Total number of hosts probed",
    ["mode"],
)
CONNECTION_ERRORS_TOTAL = Counter(
    "check_certs_connection_errors_total",
    "Hosts whose TLS connection or handshake failed",
)
CERTIFICATES_CHECKED_TOTAL = Counter(
    "check_certs_certificates_checked_total",
    "Unique certificates evaluated",
)
FINDINGS_TOTAL = Counter(
    "check_certs_findings_total",
    "Policy findings reported",
    ["kind"],
)

# --- Gauges (last run) ---

LAST_RUN_TIMESTAMP = Gauge(
    "check_certs_last_run_timestamp_seconds",
    "Unix time the last scan finished",
)
LAST_RUN_FINDINGS = Gauge(
    "check_certs_last_run_findings",
    "Findings in the last scan by kind",
    ["kind"],
)

# --- Histogram (run duration) ---

SCAN_DURATION = Histogram(
    "check_certs_scan_duration_seconds",
    "Duration of a full scan run in seconds",
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

# --- Info ---

APP_INFO = Info(
    "check_certs",
    "check-certs application info",
)


class MetricsSink:
    """Aggregator sink that records per-host results as Prometheus metrics"""

    def __init__(self):
        self.started = time.time()
        self._run_findings = {}

    def on_result(self, result):
        try:
            HOSTS_SCANNED_TOTAL.labels(mode=result.target.verification_mode.value).inc()
            if result.error is not None:
                CONNECTION_ERRORS_TOTAL.inc()
                return
            CERTIFICATES_CHECKED_TOTAL.inc(len(result.certificates))
            for cert in result.certificates:
                for finding in cert.findings:
                    FINDINGS_TOTAL.labels(kind=finding.kind).inc()
                    self._run_findings[finding.kind] = self._run_findings.get(finding.kind, 0) + 1
        except Exception:
            pass  # Metrics update failure should not break the scan

    def close(self):
        LAST_RUN_TIMESTAMP.set(time.time())
        SCAN_DURATION.observe(time.time() - self.started)
        for kind in ("expiring_shortly", "expiring_soon", "sunset_algorithm"):
            LAST_RUN_FINDINGS.labels(kind=kind).set(self._run_findings.get(kind, 0))


def set_app_info(version: str):
    """Set application info metric."""
    APP_INFO.info({"version": version})


def get_metrics_output() -> bytes:
    """Generate Prometheus text format output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Return the correct content type for Prometheus."""
    return CONTENT_TYPE_LATEST
