#!/usr/bin/env python3
"""
Thread pool that fans targets out to TLS probes and fans results back in
"""
import logging
import queue
import threading
from typing import Iterable, Iterator, Optional

from .models import HostResult, TargetDescriptor
from .policy import DEFAULT_CONCURRENCY

logger = logging.getLogger(__name__)

# End of stream marker for both queues
_STOP = object()


class ScanDispatcher:
    """Fixed-size worker pool over a shared target queue and result queue"""

    def __init__(self, scanner, concurrency: Optional[int] = None,
                 cancel_event: Optional[threading.Event] = None,
                 poll_interval: float = 0.1):
        """
        Initialize dispatcher

        Args:
            scanner: Object with scan_endpoint(target) -> HostResult
            concurrency: Number of workers (defaults to the scanner policy's)
            cancel_event: Shared cancellation signal; created if not given
            poll_interval: How often blocked queue operations look at the
                cancellation signal, in seconds
        """
        if concurrency is None:
            policy = getattr(scanner, "policy", None)
            concurrency = getattr(policy, "concurrency", DEFAULT_CONCURRENCY)
        if concurrency is None or concurrency <= 0:
            concurrency = DEFAULT_CONCURRENCY
        self.scanner = scanner
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self._cancel = cancel_event or threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self):
        """Stop reading targets and dispatching new probes; in-flight probes finish"""
        if not self._cancel.is_set():
            logger.info("Scan cancelled, waiting for in-flight probes")
        self._cancel.set()

    def _put(self, q: queue.Queue, item) -> bool:
        while not self._cancel.is_set():
            try:
                q.put(item, timeout=self.poll_interval)
                return True
            except queue.Full:
                continue
        return False

    def _produce(self, targets: Iterator[TargetDescriptor], hosts: queue.Queue):
        try:
            for target in targets:
                if not self._put(hosts, target):
                    return
        except Exception:
            logger.exception("Failed reading targets")
        finally:
            for _ in range(self.concurrency):
                if not self._put(hosts, _STOP):
                    break

    def _check(self, target: TargetDescriptor) -> HostResult:
        try:
            return self.scanner.scan_endpoint(target)
        except Exception as e:
            logger.exception(f"Unexpected error scanning {target.address}")
            return HostResult.connection_error(target, str(e) or e.__class__.__name__)

    def _work(self, hosts: queue.Queue, results: queue.Queue):
        while not self._cancel.is_set():
            try:
                target = hosts.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            if target is _STOP:
                return
            results.put(self._check(target))

    def _close_when_done(self, workers, results: queue.Queue):
        for worker in workers:
            worker.join()
        results.put(_STOP)

    def run(self, targets: Iterable[TargetDescriptor]) -> Iterator[HostResult]:
        """
        Scan all targets and yield results as they complete

        Results arrive in completion order, not submission order. Closing the
        iterator early cancels the remaining work.

        Args:
            targets: Target stream, typically from read_hosts_file()

        Yields:
            One HostResult per dispatched target
        """
        hosts: queue.Queue = queue.Queue(maxsize=self.concurrency)
        results: queue.Queue = queue.Queue()

        logger.info(f"Starting scan with {self.concurrency} workers")
        producer = threading.Thread(
            target=self._produce, args=(iter(targets), hosts),
            name="check-certs-hosts", daemon=True,
        )
        workers = [
            threading.Thread(target=self._work, args=(hosts, results),
                             name=f"check-certs-worker-{i}", daemon=True)
            for i in range(self.concurrency)
        ]
        producer.start()
        for worker in workers:
            worker.start()
        threading.Thread(
            target=self._close_when_done, args=(workers, results),
            name="check-certs-closer", daemon=True,
        ).start()

        scanned = 0
        finished = False
        try:
            while True:
                result = results.get()
                if result is _STOP:
                    finished = True
                    break
                scanned += 1
                yield result
        finally:
            if not finished:
                self.cancel()
        logger.info(f"Scan complete: {scanned} host(s) scanned")
