from collections import Counter

import requests

from check_certs.notifier import MattermostNotifier
from check_certs.report import CONNECTION_ERROR, ReportLine, ScanSummary


class FakeResponse:
    def __init__(self, status_code=200, text="ok"):
        self.status_code = status_code
        self.text = text


def _summary():
    return ScanSummary(
        hosts=3,
        connection_errors=1,
        certificates=4,
        findings=Counter({"expiring_soon": 1, "expiring_shortly": 1}),
        lines=[
            ReportLine("a:443", "expiring_soon", "a:443: 'a' (S/N 1) expires in roughly 9 days."),
            ReportLine("b:443", CONNECTION_ERROR, "b:443: refused"),
            ReportLine("c:443", "expiring_shortly", "c:443: ** 'c' (S/N 2) expires in 3 hours! **"),
        ],
    )


def test_summary_text_lists_most_urgent_first():
    text = MattermostNotifier("https://chat.example.com/hooks/x").build_summary_text(_summary())
    assert "1 certificates expiring within 48 hours" in text
    assert "1 hosts could not be checked" in text
    assert text.index("expires in 3 hours") < text.index("roughly 9 days") < text.index("refused")


def test_send_posts_payload(monkeypatch):
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json, timeout))
        return FakeResponse()

    monkeypatch.setattr(requests, "post", fake_post)
    notifier = MattermostNotifier("https://chat.example.com/hooks/x", username="bot")
    assert notifier.send_scan_summary(_summary())
    url, payload, timeout = calls[0]
    assert url == "https://chat.example.com/hooks/x"
    assert payload["username"] == "bot"
    assert "Certificate Scan Summary" in payload["text"]
    assert timeout == 10


def test_send_failures_return_false(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **k: FakeResponse(500, "boom"))
    notifier = MattermostNotifier("https://chat.example.com/hooks/x")
    assert notifier.send_scan_summary(_summary()) is False

    def raising(*a, **k):
        raise requests.exceptions.ConnectionError("no route")

    monkeypatch.setattr(requests, "post", raising)
    assert notifier.send_scan_summary(_summary()) is False
