"""
Security Package

Pattern-based threat detection. ``scanner`` classifies strings, while
``file_signatures`` inspects raw buffers by magic bytes and archive metadata.
"""

from manifest_guard.security.file_signatures import scan_buffer
from manifest_guard.security.scanner import (
    ScanResult,
    ThreatCategory,
    ThreatMatch,
    is_malicious,
    scan_text,
)

__all__ = [
    'ScanResult',
    'ThreatCategory',
    'ThreatMatch',
    'is_malicious',
    'scan_buffer',
    'scan_text',
]
