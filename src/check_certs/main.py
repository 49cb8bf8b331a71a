#!/usr/bin/env python3
"""
check-certs - Main Application
Scan TLS endpoints and warn about expiring certificates and sunset
signature algorithms
"""
import argparse
import itertools
import logging
import os
import sys
from typing import Iterator, List, Optional

from . import __version__
from .backend.metrics import MetricsSink
from .config import AppConfig, ConfigError, load_config, setup_logging
from .dispatcher import ScanDispatcher
from .hosts import parse_host_lines, read_hosts_file
from .models import TargetDescriptor
from .notifier import MattermostNotifier
from .policy import WarningPolicy, build_sunset_table
from .report import Aggregator, CsvReportWriter, LogSink, ScanSummary
from .scanner import TLSScanner, utc_now

logger = logging.getLogger(__name__)


def _pick(cli_value, config_value):
    return config_value if cli_value is None else cli_value


class CertificateChecker:
    def __init__(self, config: AppConfig, policy: WarningPolicy):
        """Wire scanner, dispatcher and output sinks for one run"""
        self.config = config
        self.policy = policy
        self.scanner = TLSScanner(
            policy=policy,
            sunset_table=build_sunset_table(utc_now()),
            timeout=config.scanner.timeout_seconds,
            ca_file=config.scanner.ca_file,
        )
        self.dispatcher = ScanDispatcher(self.scanner, concurrency=policy.concurrency)

        self.notifier = None
        if config.mattermost.configured:
            self.notifier = MattermostNotifier(
                webhook_url=config.mattermost.webhook_url,
                username=config.mattermost.username,
                icon_emoji=config.mattermost.icon_emoji,
            )

    def run_once(self, targets: Iterator[TargetDescriptor], report_path: Optional[str]) -> ScanSummary:
        """Scan every target once and write findings to the sinks"""
        logger.info("=== Starting scan ===")
        sinks = [LogSink(), MetricsSink()]
        if report_path:
            sinks.append(CsvReportWriter(report_path).open())
        aggregator = Aggregator(sinks)
        try:
            summary = aggregator.consume(self.dispatcher.run(targets))
        except KeyboardInterrupt:
            self.dispatcher.cancel()
            raise
        finally:
            aggregator.close()
        logger.info("=== Scan complete ===")
        return summary

    def notify(self, summary: ScanSummary) -> bool:
        if not self.notifier:
            logger.warning("Mattermost webhook not configured - notification skipped")
            return False
        return self.notifier.send_scan_summary(summary)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="check-certs",
        description="Check TLS certificates for upcoming expiry and sunset signature algorithms.",
    )
    parser.add_argument("targets", nargs="*", metavar="HOST",
                        help='Host lines, e.g. "example.com:443" or "i self-signed.lan:443"')
    parser.add_argument("--hosts", help="The path to the file containing a list of hosts to check.")
    parser.add_argument("--config", help="Path to YAML config file (default: config/config.yaml)")
    parser.add_argument("--years", type=int, help="Warn if the certificate will expire within this many years.")
    parser.add_argument("--months", type=int, help="Warn if the certificate will expire within this many months.")
    parser.add_argument("--days", type=int, help="Warn if the certificate will expire within this many days.")
    parser.add_argument("--check-sig-alg", action=argparse.BooleanOptionalAction, default=None,
                        help="Verify that non-root certificates are using a good signature algorithm.")
    parser.add_argument("--concurrency", type=int, help="Maximum number of hosts to check at once.")
    parser.add_argument("--output", "-o", help="CSV report path (default: results.csv)")
    parser.add_argument("--no-report", action="store_true", help="Do not write a CSV report")
    parser.add_argument("--serve", action="store_true", help="Serve the report over HTTP after the scan")
    parser.add_argument("--notify", action="store_true", help="Send a scan summary to Mattermost")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def build_policy(args: argparse.Namespace, config: AppConfig) -> WarningPolicy:
    # The warning window is taken whole, from the CLI if any part is given there
    cli_window = (args.years, args.months, args.days)
    if any(value is not None for value in cli_window):
        years, months, days = (value or 0 for value in cli_window)
    else:
        warn = config.scanner.warn
        years, months, days = warn.years, warn.months, warn.days
    return WarningPolicy.resolve(
        warn_years=years,
        warn_months=months,
        warn_days=days,
        check_signature_algorithm=_pick(args.check_sig_alg, config.scanner.check_signature_algorithm),
        concurrency=_pick(args.concurrency, config.scanner.concurrency),
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    if not args.hosts and not args.targets:
        parser.print_usage(sys.stderr)
        return 2

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    setup_logging(config.logging, verbose=args.verbose)

    if args.hosts and not os.access(args.hosts, os.R_OK):
        logger.error(f"Cannot read hosts file: {args.hosts}")
        return 1

    policy = build_policy(args, config)
    logger.debug(f"Policy: {policy}")

    targets = parse_host_lines(args.targets)
    if args.hosts:
        targets = itertools.chain(read_hosts_file(args.hosts), targets)

    report_path = None
    if not args.no_report and config.report.enabled:
        report_path = args.output or config.report.path

    checker = CertificateChecker(config, policy)
    try:
        summary = checker.run_once(targets, report_path)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return 130
    except OSError as e:
        logger.error(f"Failed to write report: {e}")
        return 1

    if args.notify:
        checker.notify(summary)

    if args.serve:
        if not report_path:
            logger.error("--serve needs a report; drop --no-report")
            return 1
        from .backend.api import serve
        serve(report_path, host=config.server.host, port=config.server.port)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
