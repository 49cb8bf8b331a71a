#!/usr/bin/env python3
"""
TLS Certificate Scanner
"""
import logging
import socket
import ssl
from datetime import datetime, timezone
from typing import Callable, List, Mapping, Optional

import certifi
from cryptography import x509

from .chains import dedupe_chains, load_der_chain
from .models import HostResult, TargetDescriptor
from .policy import SunsetEntry, WarningPolicy, build_sunset_table, evaluate_records

logger = logging.getLogger(__name__)

CA_FILE = certifi.where()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def describe_error(error: Exception) -> str:
    """Short, log friendly reason for a failed probe"""
    if isinstance(error, ssl.SSLCertVerificationError) and error.verify_message:
        return f"certificate verify failed: {error.verify_message}"
    if isinstance(error, socket.gaierror):
        return f"DNS resolution failed: {error}"
    if isinstance(error, TimeoutError):
        return "timed out"
    return str(error) or error.__class__.__name__


class TLSScanner:
    def __init__(self, policy: Optional[WarningPolicy] = None,
                 sunset_table: Optional[Mapping[x509.ObjectIdentifier, SunsetEntry]] = None,
                 timeout: Optional[float] = None,
                 ca_file: Optional[str] = None,
                 clock: Callable[[], datetime] = utc_now):
        """
        Initialize scanner

        Args:
            policy: Warning policy (defaults to a 30 day window)
            sunset_table: Signature algorithm sunset table, built once per run
            timeout: Socket timeout in seconds; None blocks indefinitely
            ca_file: Extra PEM bundle trusted in addition to certifi's
            clock: Returns the current aware UTC time
        """
        self.policy = policy or WarningPolicy()
        self.clock = clock
        self.sunset_table = sunset_table if sunset_table is not None else build_sunset_table(clock())
        self.timeout = timeout
        self.ca_file = ca_file
        self._verify_context = None

    def _get_ca_context(self) -> ssl.SSLContext:
        """Create a verifying SSL context with the certifi store (+ extra CAs)"""
        if self._verify_context is None:
            context = ssl.create_default_context(cafile=CA_FILE)
            if self.ca_file:
                context.load_verify_locations(cafile=self.ca_file)
            context.check_hostname = True
            context.verify_mode = ssl.CERT_REQUIRED
            self._verify_context = context
        return self._verify_context

    def _get_insecure_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context

    def fetch_chains(self, target: TargetDescriptor) -> List[List[x509.Certificate]]:
        """
        Connect to a target, complete the TLS handshake and return its chains

        Verified targets return the chain(s) the handshake validated against
        the trust store. Insecure targets return the certificate list exactly
        as the peer sent it. The connection is closed before returning.

        Raises:
            ValueError: malformed address
            OSError: connection or handshake failure (ssl.SSLError included)
        """
        host, port = target.split_address()
        if target.insecure:
            context = self._get_insecure_context()
        else:
            context = self._get_ca_context()

        with socket.create_connection((host, port), timeout=self.timeout) as sock:
            with context.wrap_socket(sock, server_hostname=host) as secure_sock:
                if target.insecure:
                    ders = secure_sock.get_unverified_chain()
                else:
                    ders = secure_sock.get_verified_chain()

        return [load_der_chain(ders or [])]

    def scan_endpoint(self, target: TargetDescriptor) -> HostResult:
        """
        Probe one target and evaluate every unique certificate it presents

        Args:
            target: Address and verification mode

        Returns:
            HostResult holding either the connection error or the findings
        """
        logger.info(f"Scanning {target.address}"
                    + (" (insecure)" if target.insecure else ""))
        try:
            chains = self.fetch_chains(target)
        except (OSError, ValueError) as e:
            reason = describe_error(e)
            logger.debug(f"Probe of {target.address} failed: {reason}")
            return HostResult.connection_error(target, reason)

        records = dedupe_chains(chains)
        certificates = evaluate_records(records, self.policy, self.clock(), self.sunset_table)
        result = HostResult.with_findings(target, certificates)
        logger.info(f"Scanned {target.address}: {len(records)} certificate(s), "
                    f"{result.findings_count} finding(s)")
        return result
