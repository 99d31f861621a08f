"""
Byte-level checks for uploaded buffers.

Covers magic-byte signatures of executables and archives, polyglot detection
(two or more distinct format signatures in one buffer), decompression-bomb
heuristics for ZIP and gzip containers, and consistency between a declared
MIME type and the type libmagic sniffs from the content. Archives are
inspected through their metadata only; nothing is ever decompressed.
"""

import io
import re
import struct
import zipfile
from dataclasses import dataclass
from typing import List, Optional, Tuple

import magic

from manifest_guard.security.scanner import (
    DEFAULT_SCANNER_CONFIG,
    ScanResult,
    ThreatCategory,
    ThreatMatch,
    scan_text,
)
from manifest_guard.utils.config import ScannerConfig
from manifest_guard.utils.logging import get_logger


logger = get_logger("manifest_guard.file_signatures")


@dataclass(frozen=True)
class FileSignature:
    name: str
    magic: bytes
    executable: bool = False
    archive: bool = False


# Order matters for prefix matching: longer, more specific magics first.
SIGNATURES: Tuple[FileSignature, ...] = (
    FileSignature('png', b'\x89PNG\r\n\x1a\n'),
    FileSignature('ole_document', b'\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1', executable=True),
    FileSignature('7z', b"7z\xbc\xaf'\x1c", archive=True),
    FileSignature('rar', b'Rar!\x1a\x07', archive=True),
    FileSignature('gif', b'GIF87a'),
    FileSignature('gif', b'GIF89a'),
    FileSignature('pdf', b'%PDF-'),
    FileSignature('elf_executable', b'\x7fELF', executable=True),
    FileSignature('zip', b'PK\x03\x04', archive=True),
    FileSignature('zip', b'PK\x05\x06', archive=True),
    FileSignature('java_class', b'\xca\xfe\xba\xbe', executable=True),
    FileSignature('mach_o', b'\xcf\xfa\xed\xfe', executable=True),
    FileSignature('mach_o', b'\xce\xfa\xed\xfe', executable=True),
    FileSignature('gzip', b'\x1f\x8b\x08', archive=True),
    FileSignature('shell_script', b'#!/', executable=True),
    FileSignature('pe_executable', b'MZ', executable=True),
)

# Signatures searched anywhere in the buffer. Short magics such as ``MZ`` are
# only meaningful at offset zero and are excluded here.
_EMBEDDED_SIGNATURES: Tuple[FileSignature, ...] = tuple(
    signature for signature in SIGNATURES if len(signature.magic) >= 4
)
_EMBEDDED_MARKUP_RE = re.compile(rb'<\s*(?:script|html|body|svg|iframe)\b', re.IGNORECASE)
_PE_STUB = b'This program cannot be run in DOS mode'

# Media types libmagic reports for textual content outside the text/ tree.
TEXTUAL_APPLICATION_TYPES = frozenset({
    'application/json',
    'application/javascript',
    'application/xml',
    'application/x-ndjson',
    'application/x-empty',
})

_MIME_ALIASES = {
    'application/x-gzip': 'application/gzip',
    'application/x-zip-compressed': 'application/zip',
    'image/jpg': 'image/jpeg',
    'text/javascript': 'application/javascript',
    'application/x-javascript': 'application/javascript',
    'text/json': 'application/json',
    'text/xml': 'application/xml',
}

MIME_SNIFF_BYTES = 1024 * 1024


def detect_signature(buffer: bytes) -> Optional[FileSignature]:
    """Return the signature whose magic bytes start the buffer."""
    for signature in SIGNATURES:
        if buffer.startswith(signature.magic):
            return signature
    return None


def embedded_formats(buffer: bytes) -> List[str]:
    """List the distinct formats whose signatures appear anywhere in the buffer."""
    formats: List[str] = []
    leading = detect_signature(buffer)
    if leading is not None:
        formats.append(leading.name)
    for signature in _EMBEDDED_SIGNATURES:
        if signature.name not in formats and buffer.find(signature.magic) != -1:
            formats.append(signature.name)
    if 'html' not in formats and _EMBEDDED_MARKUP_RE.search(buffer):
        formats.append('html')
    if 'pe_executable' not in formats and buffer.find(_PE_STUB) != -1:
        formats.append('pe_executable')
    return formats


def is_polyglot(buffer: bytes) -> bool:
    return len(embedded_formats(buffer)) >= 2


def is_decompression_bomb(
    compressed_size: int,
    uncompressed_size: int,
    config: Optional[ScannerConfig] = None,
) -> bool:
    """
    Apply the ratio and absolute-size thresholds.

    A zero compressed size with non-zero content counts as an infinite ratio.
    """
    config = config or DEFAULT_SCANNER_CONFIG
    if uncompressed_size > config.max_uncompressed_bytes:
        return True
    if compressed_size <= 0:
        return uncompressed_size > 0
    return uncompressed_size / compressed_size > config.max_compression_ratio


@dataclass(frozen=True)
class ArchiveInfo:
    format: str
    compressed_size: int
    uncompressed_size: int
    entries: int = 1
    corrupt: bool = False

    @property
    def ratio(self) -> float:
        if self.compressed_size <= 0:
            return float('inf') if self.uncompressed_size else 0.0
        return self.uncompressed_size / self.compressed_size


def inspect_archive(buffer: bytes) -> Optional[ArchiveInfo]:
    """
    Read declared sizes from ZIP central directory or the gzip trailer.

    Returns None when the buffer is not a ZIP or gzip container.
    """
    signature = detect_signature(buffer)
    if signature is None:
        return None
    if signature.name == 'zip':
        try:
            with zipfile.ZipFile(io.BytesIO(buffer)) as archive:
                members = archive.infolist()
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, struct.error, ValueError):
            return ArchiveInfo('zip', len(buffer), 0, entries=0, corrupt=True)
        return ArchiveInfo(
            'zip',
            compressed_size=sum(member.compress_size for member in members),
            uncompressed_size=sum(member.file_size for member in members),
            entries=len(members),
        )
    if signature.name == 'gzip':
        if len(buffer) < 18:
            return ArchiveInfo('gzip', len(buffer), 0, corrupt=True)
        # ISIZE: uncompressed length modulo 2**32, little endian.
        (uncompressed,) = struct.unpack('<I', buffer[-4:])
        return ArchiveInfo('gzip', compressed_size=len(buffer), uncompressed_size=uncompressed)
    return None


def _looks_like_text(buffer: bytes) -> Optional[str]:
    try:
        text = buffer.decode('utf-8')
    except UnicodeDecodeError:
        return None
    if any(ord(ch) < 0x20 and ch not in '\t\n\r' for ch in text[:4096]):
        return None
    return text


def detect_mime(buffer: bytes) -> Optional[str]:
    """
    Content-sniffed MIME type from libmagic, or None when detection fails.

    Only the first ``MIME_SNIFF_BYTES`` are handed to libmagic; its magic
    database never looks further than that.
    """
    try:
        detected = magic.from_buffer(bytes(buffer[:MIME_SNIFF_BYTES]), mime=True)
    except magic.MagicException as error:
        logger.warning("MIME detection failed", error=str(error))
        return None
    return normalize_mime(detected)


def normalize_mime(mime: str) -> str:
    """Lowercase a MIME type, drop its parameters and resolve known aliases."""
    base = mime.split(';', 1)[0].strip().lower()
    return _MIME_ALIASES.get(base, base)


def is_textual_mime(mime: str) -> bool:
    return mime.startswith('text/') or mime in TEXTUAL_APPLICATION_TYPES


def validate_declared_type(buffer: bytes, declared_mime: str) -> bool:
    """
    Check that content matches the MIME type it was declared as.

    The content type is sniffed with libmagic. Textual declarations accept any
    textual detection (libmagic reports small JSON documents as
    ``text/plain``), ``application/octet-stream`` accepts anything that is not
    an executable, and every other declaration must equal the detected type.
    Executables and archives never pass as text.

    Args:
        buffer: Raw content
        declared_mime: MIME type claimed by the uploader

    Returns:
        True when the content is consistent with the declaration
    """
    declared = normalize_mime(declared_mime)
    signature = detect_signature(buffer)
    if declared == 'application/octet-stream':
        return signature is None or not signature.executable

    detected = detect_mime(buffer)
    if detected is None:
        return False
    if is_textual_mime(declared):
        if signature is not None and (signature.executable or signature.archive):
            return False
        return is_textual_mime(detected)
    return detected == declared


def scan_buffer(
    buffer: bytes,
    declared_mime: Optional[str] = None,
    config: Optional[ScannerConfig] = None,
) -> ScanResult:
    """
    Composite pre-screen for a raw uploaded buffer.

    Reports executable signatures, type mismatches, polyglots, decompression
    bombs and, when the buffer is text, the text detector categories.
    """
    config = config or DEFAULT_SCANNER_CONFIG
    buffer = bytes(buffer)
    matches: List[ThreatMatch] = []

    signature = detect_signature(buffer)
    if signature is not None and signature.executable:
        matches.append(ThreatMatch(ThreatCategory.FILE_SIGNATURE, signature.name))
    if declared_mime is not None and not validate_declared_type(buffer, declared_mime):
        matches.append(ThreatMatch(ThreatCategory.FILE_SIGNATURE, 'declared_type_mismatch'))

    formats = embedded_formats(buffer)
    if len(formats) >= 2:
        matches.append(ThreatMatch(ThreatCategory.POLYGLOT, '+'.join(formats)))

    archive = inspect_archive(buffer)
    if archive is not None:
        if archive.corrupt:
            matches.append(ThreatMatch(ThreatCategory.FILE_SIGNATURE, f'corrupt_{archive.format}'))
        elif is_decompression_bomb(archive.compressed_size, archive.uncompressed_size, config):
            matches.append(ThreatMatch(ThreatCategory.DECOMPRESSION_BOMB, f'{archive.format}_ratio'))

    if signature is None:
        text = _looks_like_text(buffer)
        if text is not None:
            matches.extend(scan_text(text, config=config).matches)

    return ScanResult(tuple(matches))


__all__ = [
    'FileSignature',
    'SIGNATURES',
    'ArchiveInfo',
    'detect_signature',
    'embedded_formats',
    'is_polyglot',
    'is_decompression_bomb',
    'inspect_archive',
    'detect_mime',
    'normalize_mime',
    'validate_declared_type',
    'scan_buffer',
]
