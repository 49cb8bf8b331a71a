import itertools
import threading
import time

from check_certs.dispatcher import ScanDispatcher
from check_certs.models import CertificateFindings, ExpiringSoon, HostResult, TargetDescriptor
from check_certs.policy import WarningPolicy


class FakeScanner:
    def __init__(self, unreachable=(), explode=(), delay=0.0, concurrency=8):
        self.policy = WarningPolicy.resolve(concurrency=concurrency)
        self.unreachable = set(unreachable)
        self.explode = set(explode)
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.calls = 0
        self._lock = threading.Lock()

    def scan_endpoint(self, target):
        with self._lock:
            self.active += 1
            self.calls += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delay)
            if target.address in self.explode:
                raise RuntimeError("protocol went sideways")
            if target.address in self.unreachable:
                return HostResult.connection_error(target, "connection refused")
            cert = CertificateFindings(target.address, 1, (ExpiringSoon(10),))
            return HostResult.with_findings(target, [cert])
        finally:
            with self._lock:
                self.active -= 1


def _targets(*addresses):
    return [TargetDescriptor(a) for a in addresses]


def test_one_unreachable_host_does_not_affect_others():
    scanner = FakeScanner(unreachable={"down.example.com:443"})
    results = list(ScanDispatcher(scanner).run(
        _targets("a.example.com:443", "down.example.com:443", "b.example.com:443")))

    assert len(results) == 3
    by_host = {r.target.address: r for r in results}
    assert by_host["down.example.com:443"].error == "connection refused"
    assert by_host["down.example.com:443"].certificates == ()
    for host in ("a.example.com:443", "b.example.com:443"):
        assert by_host[host].ok
        assert by_host[host].certificates[0].common_name == host


def test_unexpected_exception_becomes_connection_error():
    scanner = FakeScanner(explode={"bad.example.com:443"})
    results = list(ScanDispatcher(scanner, concurrency=2).run(
        _targets("bad.example.com:443", "good.example.com:443")))
    by_host = {r.target.address: r for r in results}
    assert by_host["bad.example.com:443"].error == "protocol went sideways"
    assert by_host["good.example.com:443"].ok


def test_workers_bounded_by_concurrency():
    scanner = FakeScanner(delay=0.02)
    targets = _targets(*[f"h{i}.example.com:443" for i in range(20)])
    results = list(ScanDispatcher(scanner, concurrency=3).run(targets))
    assert len(results) == 20
    assert 1 <= scanner.max_active <= 3


def test_concurrency_defaults_to_policy():
    assert ScanDispatcher(FakeScanner(concurrency=5)).concurrency == 5
    assert ScanDispatcher(FakeScanner(), concurrency=0).concurrency == 8


def test_empty_input_closes_output():
    assert list(ScanDispatcher(FakeScanner()).run([])) == []


def test_cancel_stops_dispatching_new_targets():
    scanner = FakeScanner(delay=0.01)
    dispatcher = ScanDispatcher(scanner, concurrency=2)
    endless = (TargetDescriptor(f"h{i}.example.com:443") for i in itertools.count())

    results = []
    for result in dispatcher.run(endless):
        results.append(result)
        if len(results) == 5:
            dispatcher.cancel()

    assert dispatcher.cancelled
    # Only probes already in flight may complete after cancellation
    assert 5 <= len(results) <= 5 + 2 * 2
    assert scanner.calls == len(results)


def test_abandoning_results_cancels():
    dispatcher = ScanDispatcher(FakeScanner(delay=0.01), concurrency=2)
    endless = (TargetDescriptor(f"h{i}.example.com:443") for i in itertools.count())
    results = dispatcher.run(endless)
    next(results)
    results.close()
    assert dispatcher.cancelled


def test_shared_cancel_event_set_before_run():
    event = threading.Event()
    event.set()
    scanner = FakeScanner()
    results = list(ScanDispatcher(scanner, cancel_event=event).run(_targets("a.example.com:443")))
    assert results == []
    assert scanner.calls == 0
