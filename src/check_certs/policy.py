#!/usr/bin/env python3
"""
Certificate policy checks: expiration window and sunset signature algorithms
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional

from cryptography.x509 import ObjectIdentifier
from cryptography.x509.oid import SignatureAlgorithmOID

from .models import (
    CertificateFindings,
    CertificateRecord,
    ExpiringShortly,
    ExpiringSoon,
    Finding,
    SunsetAlgorithm,
)

DEFAULT_CONCURRENCY = 8
DEFAULT_WARN_DAYS = 30

# Anything expiring within this many hours is reported in hours, not days
SHORT_HORIZON_HOURS = 48

SHA1_SUNSET = datetime(2017, 1, 1, tzinfo=timezone.utc)

# cryptography has no constants for these two
MD2_WITH_RSA = ObjectIdentifier("1.2.840.113549.1.1.2")
SHA1_WITH_RSA_OIW = ObjectIdentifier("1.3.14.3.2.29")


@dataclass(frozen=True)
class WarningPolicy:
    """Run-wide settings for the policy checks and the worker pool"""
    warn_years: int = 0
    warn_months: int = 0
    warn_days: int = DEFAULT_WARN_DAYS
    check_signature_algorithm: bool = True
    concurrency: int = DEFAULT_CONCURRENCY

    @classmethod
    def resolve(cls, warn_years: int = 0, warn_months: int = 0, warn_days: int = 0,
                check_signature_algorithm: bool = True,
                concurrency: int = DEFAULT_CONCURRENCY) -> "WarningPolicy":
        """
        Build a policy from user supplied values

        Negative warning values count as zero, and when all three are zero
        the window falls back to 30 days. A non-positive concurrency falls
        back to the default of 8.
        """
        warn_years = max(int(warn_years or 0), 0)
        warn_months = max(int(warn_months or 0), 0)
        warn_days = max(int(warn_days or 0), 0)
        if warn_years == 0 and warn_months == 0 and warn_days == 0:
            warn_days = DEFAULT_WARN_DAYS

        concurrency = int(concurrency or 0)
        if concurrency <= 0:
            concurrency = DEFAULT_CONCURRENCY

        return cls(
            warn_years=warn_years,
            warn_months=warn_months,
            warn_days=warn_days,
            check_signature_algorithm=bool(check_signature_algorithm),
            concurrency=concurrency,
        )


@dataclass(frozen=True)
class SunsetEntry:
    name: str
    sunset_date: datetime


def build_sunset_table(now: datetime) -> Mapping[ObjectIdentifier, SunsetEntry]:
    """
    Signature algorithms which have been or are being deprecated

    MD2 and MD5 sunset at `now`, so any certificate still valid at run start
    is reported. The SHA1 family sunset on 2017-01-01.
    """
    now = as_utc(now)
    return MappingProxyType({
        MD2_WITH_RSA: SunsetEntry("MD2 with RSA", now),
        SignatureAlgorithmOID.RSA_WITH_MD5: SunsetEntry("MD5 with RSA", now),
        SignatureAlgorithmOID.RSA_WITH_SHA1: SunsetEntry("SHA1 with RSA", SHA1_SUNSET),
        SHA1_WITH_RSA_OIW: SunsetEntry("SHA1 with RSA", SHA1_SUNSET),
        SignatureAlgorithmOID.DSA_WITH_SHA1: SunsetEntry("DSA with SHA1", SHA1_SUNSET),
        SignatureAlgorithmOID.ECDSA_WITH_SHA1: SunsetEntry("ECDSA with SHA1", SHA1_SUNSET),
    })


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def add_calendar_offset(moment: datetime, years: int = 0, months: int = 0,
                        days: int = 0) -> datetime:
    """
    Shift `moment` by a calendar offset

    Years and months move the calendar fields and the result is normalised,
    so a day past the end of the target month rolls into the next one
    (Jan 31 + 1 month is Mar 3, or Mar 2 in a leap year). Days are added as
    a fixed offset. Time of day and tzinfo are kept.
    """
    total_months = (moment.year + years) * 12 + (moment.month - 1) + months
    year, month_index = divmod(total_months, 12)
    first_of_month = moment.replace(year=year, month=month_index + 1, day=1)
    return first_of_month + timedelta(days=moment.day - 1 + days)


def warning_cutoff(policy: WarningPolicy, now: datetime) -> datetime:
    return add_calendar_offset(now, policy.warn_years, policy.warn_months, policy.warn_days)


def check_expiration(record: CertificateRecord, policy: WarningPolicy,
                     now: datetime) -> List[Finding]:
    now = as_utc(now)
    not_after = as_utc(record.not_after)
    if not warning_cutoff(policy, now) > not_after:
        return []

    # Negative once the certificate has already expired
    hours_remaining = (not_after - now) // timedelta(hours=1)
    if hours_remaining <= SHORT_HORIZON_HOURS:
        return [ExpiringShortly(hours_remaining=hours_remaining)]
    return [ExpiringSoon(days_remaining=hours_remaining // 24)]


def check_signature_algorithm(record: CertificateRecord, policy: WarningPolicy,
                              sunset_table: Mapping[ObjectIdentifier, SunsetEntry]) -> List[Finding]:
    if not policy.check_signature_algorithm or record.signature_algorithm is None:
        return []
    entry = sunset_table.get(record.signature_algorithm)
    # A root's own signature does not matter to chain validity
    if entry is None or record.is_root:
        return []
    if as_utc(record.not_after) >= entry.sunset_date:
        return [SunsetAlgorithm(algorithm_name=entry.name, sunset_date=entry.sunset_date)]
    return []


def evaluate(record: CertificateRecord, policy: WarningPolicy, now: datetime,
             sunset_table: Optional[Mapping[ObjectIdentifier, SunsetEntry]] = None) -> List[Finding]:
    """
    Run all policy checks against one certificate

    Args:
        record: Certificate fields plus its position in the chain
        policy: Active warning policy
        now: Current time (aware, UTC)
        sunset_table: Table from build_sunset_table(); built from `now` if omitted

    Returns:
        Findings, expiration first; empty for a healthy certificate
    """
    if sunset_table is None:
        sunset_table = build_sunset_table(now)
    findings = check_expiration(record, policy, now)
    findings.extend(check_signature_algorithm(record, policy, sunset_table))
    return findings


def evaluate_records(records: Iterable[CertificateRecord], policy: WarningPolicy,
                     now: datetime,
                     sunset_table: Optional[Mapping[ObjectIdentifier, SunsetEntry]] = None) -> List[CertificateFindings]:
    if sunset_table is None:
        sunset_table = build_sunset_table(now)
    results = []
    for record in records:
        findings = evaluate(record, policy, now, sunset_table)
        results.append(CertificateFindings(
            common_name=record.common_name,
            serial_number=record.serial_number,
            findings=tuple(findings),
        ))
    return results
