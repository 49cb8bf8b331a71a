#!/usr/bin/env python3
"""
Host list parsing
"""
import logging
from typing import Iterable, Iterator, Optional

from .models import TargetDescriptor, VerificationMode

logger = logging.getLogger(__name__)

INSECURE_PREFIX = "i "


def parse_host_line(line: str) -> Optional[TargetDescriptor]:
    """
    Turn one hosts file line into a target

    Blank lines and lines starting with '#' are skipped. A line starting with
    "i " selects insecure mode (no chain verification) for that host.

    Args:
        line: Raw line, e.g. "example.com:443" or "i self-signed.lan:8443"

    Returns:
        TargetDescriptor, or None if the line holds no target
    """
    host = line.strip()
    if not host or host[0] == "#":
        return None
    if host.startswith(INSECURE_PREFIX):
        return TargetDescriptor(host[len(INSECURE_PREFIX):], VerificationMode.INSECURE)
    return TargetDescriptor(host, VerificationMode.VERIFIED)


def parse_host_lines(lines: Iterable[str]) -> Iterator[TargetDescriptor]:
    for line in lines:
        target = parse_host_line(line)
        if target is not None:
            yield target


def read_hosts_file(path: str) -> Iterator[TargetDescriptor]:
    """Stream targets from a hosts file; an unreadable file yields nothing"""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            yield from parse_host_lines(f)
    except OSError as e:
        logger.error(f"Failed to read hosts file {path}: {e}")
