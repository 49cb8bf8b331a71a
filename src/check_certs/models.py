#!/usr/bin/env python3
"""
Data models shared by the scanning pipeline
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple, Union

from cryptography.x509 import ObjectIdentifier


class VerificationMode(str, Enum):
    VERIFIED = "verified"
    INSECURE = "insecure"


@dataclass(frozen=True)
class TargetDescriptor:
    """One host to probe, as parsed from a hosts file line"""
    address: str
    verification_mode: VerificationMode = VerificationMode.VERIFIED

    @property
    def insecure(self) -> bool:
        return self.verification_mode is VerificationMode.INSECURE

    def split_address(self) -> Tuple[str, int]:
        """
        Split the address into host and port

        Accepts "host:port" and "[v6-literal]:port".

        Raises:
            ValueError: if the port is missing or not a number
        """
        host, sep, port_s = self.address.rpartition(":")
        if not sep or not host:
            raise ValueError(f"address {self.address}: missing port in address")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        if not port_s.isdigit():
            raise ValueError(f"address {self.address}: invalid port {port_s!r}")
        port = int(port_s)
        if not (0 < port <= 65535):
            raise ValueError(f"address {self.address}: port out of range")
        return host, port


@dataclass(frozen=True)
class CertificateRecord:
    """The subset of a presented certificate needed by the policy checks"""
    common_name: str
    serial_number: int
    not_after: datetime  # aware, UTC
    signature_algorithm: Optional[ObjectIdentifier]
    signature: bytes
    chain_position: int
    chain_length: int

    @property
    def is_root(self) -> bool:
        return self.chain_position == self.chain_length - 1


@dataclass(frozen=True)
class ExpiringShortly:
    hours_remaining: int
    kind: str = field(default="expiring_shortly", init=False)


@dataclass(frozen=True)
class ExpiringSoon:
    days_remaining: int
    kind: str = field(default="expiring_soon", init=False)


@dataclass(frozen=True)
class SunsetAlgorithm:
    algorithm_name: str
    sunset_date: datetime
    kind: str = field(default="sunset_algorithm", init=False)


Finding = Union[ExpiringShortly, ExpiringSoon, SunsetAlgorithm]


@dataclass(frozen=True)
class CertificateFindings:
    common_name: str
    serial_number: int
    findings: Tuple[Finding, ...] = ()


@dataclass(frozen=True)
class HostResult:
    """
    Outcome of probing one host.

    Either `error` is set (nothing was examined) or `certificates` holds one
    entry per unique certificate, in chain traversal order.
    """
    target: TargetDescriptor
    error: Optional[str] = None
    certificates: Tuple[CertificateFindings, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def findings_count(self) -> int:
        return sum(len(c.findings) for c in self.certificates)

    @classmethod
    def connection_error(cls, target: TargetDescriptor, reason: str) -> "HostResult":
        return cls(target=target, error=reason)

    @classmethod
    def with_findings(cls, target: TargetDescriptor,
                      certificates: List[CertificateFindings]) -> "HostResult":
        return cls(target=target, certificates=tuple(certificates))
