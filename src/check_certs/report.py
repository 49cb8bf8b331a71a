#!/usr/bin/env python3
"""
Result aggregation and report output (log lines, CSV report file)
"""
import csv
import logging
from collections import Counter
from dataclasses import dataclass, field
from io import StringIO
from typing import Dict, Iterable, List, Optional

from .models import (
    CertificateFindings,
    ExpiringShortly,
    ExpiringSoon,
    Finding,
    HostResult,
    SunsetAlgorithm,
)

logger = logging.getLogger(__name__)

CONNECTION_ERROR = "connection_error"

CSV_COLUMNS = ["host", "common_name", "serial_number", "finding", "detail", "message"]


@dataclass(frozen=True)
class ReportLine:
    """One user-visible line: a finding or a connection error"""
    host: str
    finding: str
    message: str
    common_name: str = ""
    serial_number: str = ""
    detail: str = ""

    @property
    def is_error(self) -> bool:
        return self.finding == CONNECTION_ERROR

    def as_row(self) -> Dict[str, str]:
        return {
            "host": self.host,
            "common_name": self.common_name,
            "serial_number": self.serial_number,
            "finding": self.finding,
            "detail": self.detail,
            "message": self.message,
        }


def format_serial(serial_number: int) -> str:
    return format(serial_number, "X")


def format_finding(host: str, cert: CertificateFindings, finding: Finding) -> str:
    serial = format_serial(cert.serial_number)
    if isinstance(finding, ExpiringShortly):
        return (f"{host}: ** '{cert.common_name}' (S/N {serial}) expires in "
                f"{finding.hours_remaining} hours! **")
    if isinstance(finding, ExpiringSoon):
        return (f"{host}: '{cert.common_name}' (S/N {serial}) expires in roughly "
                f"{finding.days_remaining} days.")
    if isinstance(finding, SunsetAlgorithm):
        return (f"{host}: '{cert.common_name}' (S/N {serial}) expires after the sunset "
                f"date for its signature algorithm '{finding.algorithm_name}'.")
    raise TypeError(f"unknown finding {finding!r}")


def finding_detail(finding: Finding) -> str:
    if isinstance(finding, ExpiringShortly):
        return f"{finding.hours_remaining}h"
    if isinstance(finding, ExpiringSoon):
        return f"{finding.days_remaining}d"
    return f"{finding.algorithm_name} (sunset {finding.sunset_date.date().isoformat()})"


def report_lines(result: HostResult) -> List[ReportLine]:
    """Lines for one host, in certificate then finding order"""
    host = result.target.address
    if result.error is not None:
        return [ReportLine(host=host, finding=CONNECTION_ERROR,
                           message=f"{host}: {result.error}", detail=result.error)]

    lines = []
    for cert in result.certificates:
        for finding in cert.findings:
            lines.append(ReportLine(
                host=host,
                finding=finding.kind,
                message=format_finding(host, cert, finding),
                common_name=cert.common_name,
                serial_number=format_serial(cert.serial_number),
                detail=finding_detail(finding),
            ))
    return lines


@dataclass
class ScanSummary:
    hosts: int = 0
    connection_errors: int = 0
    certificates: int = 0
    findings: Counter = field(default_factory=Counter)
    lines: List[ReportLine] = field(default_factory=list)

    @property
    def total_findings(self) -> int:
        return sum(self.findings.values())


class LogSink:
    """Emit each line through logging, like the classic console output"""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def handle(self, line: ReportLine):
        if line.is_error:
            self.log.error(line.message)
        else:
            self.log.warning(line.message)


class CsvReportWriter:
    """Write report lines to a CSV file, replacing any previous report"""

    def __init__(self, path: str):
        self.path = path
        self._file = None
        self._writer = None

    def open(self):
        self._file = open(self.path, "w", newline="", encoding="utf-8")
        self._writer = csv.DictWriter(self._file, fieldnames=CSV_COLUMNS)
        self._writer.writeheader()
        return self

    def handle(self, line: ReportLine):
        self._writer.writerow(line.as_row())

    def close(self):
        if self._file:
            self._file.close()
            self._file = None
            logger.info(f"Wrote report to {self.path}")

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()


def build_csv(lines: Iterable[ReportLine]) -> str:
    buf = StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    for line in lines:
        writer.writerow(line.as_row())
    return buf.getvalue()


class Aggregator:
    """Consume host results until the stream ends and feed the sinks"""

    def __init__(self, sinks: Optional[List] = None):
        self.sinks = sinks if sinks is not None else [LogSink()]

    def add_sink(self, sink):
        self.sinks.append(sink)

    def close(self):
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                close()

    def consume(self, results: Iterable[HostResult]) -> ScanSummary:
        summary = ScanSummary()
        for result in results:
            summary.hosts += 1
            if result.error is not None:
                summary.connection_errors += 1
            else:
                summary.certificates += len(result.certificates)
                for cert in result.certificates:
                    summary.findings.update(f.kind for f in cert.findings)

            lines = report_lines(result)
            summary.lines.extend(lines)
            for sink in self.sinks:
                handle = getattr(sink, "handle", None)
                if handle is not None:
                    for line in lines:
                        handle(line)

            for sink in self.sinks:
                on_result = getattr(sink, "on_result", None)
                if on_result is not None:
                    on_result(result)

        logger.info(f"{summary.hosts} host(s), {summary.connection_errors} connection error(s), "
                    f"{summary.total_findings} finding(s)")
        return summary
