#!/usr/bin/env python3
"""
Certificate chain extraction and deduplication
"""
from typing import Iterable, List, Optional, Sequence

from cryptography import x509
from cryptography.x509.oid import NameOID

from .models import CertificateRecord


def common_name(cert: x509.Certificate) -> str:
    try:
        attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    except ValueError:
        return ""
    if not attrs:
        return ""
    value = attrs[0].value
    return value.decode("utf-8", "replace") if isinstance(value, bytes) else value


def _signature_algorithm(cert: x509.Certificate) -> Optional[x509.ObjectIdentifier]:
    try:
        return cert.signature_algorithm_oid
    except ValueError:
        return None


def certificate_record(cert: x509.Certificate, position: int, length: int) -> CertificateRecord:
    """Extract the fields the policy checks need from one chain entry"""
    return CertificateRecord(
        common_name=common_name(cert),
        serial_number=cert.serial_number,
        not_after=cert.not_valid_after_utc,
        signature_algorithm=_signature_algorithm(cert),
        signature=cert.signature,
        chain_position=position,
        chain_length=length,
    )


def load_der_chain(ders: Iterable[bytes]) -> List[x509.Certificate]:
    return [x509.load_der_x509_certificate(der) for der in ders]


def dedupe_chains(chains: Iterable[Sequence[x509.Certificate]]) -> List[CertificateRecord]:
    """
    Flatten one host's chains into unique certificate records

    The same intermediate or root often shows up in several verified chains.
    Chains are walked in the order given, leaf first, and a certificate whose
    signature bytes were already seen is skipped, so the first occurrence
    decides its chain position and chain length.

    Args:
        chains: Verified chain set, or a single peer certificate list

    Returns:
        CertificateRecord list in traversal order
    """
    seen = set()
    records = []
    for chain in chains:
        for position, cert in enumerate(chain):
            if cert.signature in seen:
                continue
            seen.add(cert.signature)
            records.append(certificate_record(cert, position, len(chain)))
    return records
