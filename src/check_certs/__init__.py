"""
check-certs - TLS certificate health scanner
"""
__version__ = "1.0.0"
