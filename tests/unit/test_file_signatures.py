"""
Unit tests for byte-level upload screening.
"""

import gzip
import io
import os
import zipfile
from unittest.mock import patch

import magic
import pytest

from manifest_guard.security.file_signatures import (
    detect_mime,
    detect_signature,
    embedded_formats,
    inspect_archive,
    is_decompression_bomb,
    is_polyglot,
    normalize_mime,
    scan_buffer,
    validate_declared_type,
)
from manifest_guard.security.scanner import ThreatCategory
from manifest_guard.utils.config import ScannerConfig


PNG = b'\x89PNG\r\n\x1a\n' + b'\x00' * 32
PE = b'MZ' + b'\x90' * 64
ELF = b'\x7fELF\x02\x01\x01' + b'\x00' * 32

SNIFF = 'manifest_guard.security.file_signatures.magic.from_buffer'


def make_zip(payload: bytes) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr('content.txt', payload)
    return buffer.getvalue()


@pytest.mark.security
class TestSignatures:

    @pytest.mark.parametrize("buffer,name", [
        (PNG, 'png'),
        (PE, 'pe_executable'),
        (ELF, 'elf_executable'),
        (b'%PDF-1.7\n', 'pdf'),
        (b'#!/bin/sh\necho hi\n', 'shell_script'),
    ])
    def test_detect_signature(self, buffer, name):
        assert detect_signature(buffer).name == name

    def test_text_has_no_signature(self):
        assert detect_signature(b'{"title": "Hej"}') is None

    def test_declared_type_matches_content(self):
        assert validate_declared_type(PNG, 'image/png')
        assert not validate_declared_type(PNG, 'application/pdf')
        assert validate_declared_type(b'{"a": 1}', 'application/json; charset=utf-8')
        assert not validate_declared_type(ELF, 'text/plain')
        assert not validate_declared_type(make_zip(b'hej'), 'image/png')


@pytest.mark.security
class TestMimeDetection:

    def test_libmagic_sniffs_content(self):
        assert detect_mime(PNG) == 'image/png'
        assert detect_mime(b'%PDF-1.7\n%\xe2\xe3\xcf\xd3\n') == 'application/pdf'

    @pytest.mark.parametrize("mime,normalized", [
        ('application/x-gzip', 'application/gzip'),
        ('Text/JavaScript; charset=UTF-8', 'application/javascript'),
        ('image/jpg', 'image/jpeg'),
        ('image/png', 'image/png'),
    ])
    def test_normalize_mime(self, mime, normalized):
        assert normalize_mime(mime) == normalized

    def test_alias_of_detected_type_is_accepted(self):
        with patch(SNIFF, return_value='application/x-gzip'):
            assert validate_declared_type(b'\x1f\x8b\x08\x00', 'application/gzip')

    def test_textual_declaration_accepts_textual_detection(self):
        with patch(SNIFF, return_value='text/plain'):
            assert validate_declared_type(b'{"title": "Hej"}', 'application/json')

    def test_textual_declaration_rejects_binary_detection(self):
        with patch(SNIFF, return_value='image/png'):
            assert not validate_declared_type(b'not really text', 'text/plain')

    def test_octet_stream_rejects_only_executables(self):
        assert validate_declared_type(PNG, 'application/octet-stream')
        assert not validate_declared_type(PE, 'application/octet-stream')

    def test_detection_failure_is_a_mismatch(self):
        with patch(SNIFF, side_effect=magic.MagicException('broken database')):
            assert detect_mime(PNG) is None
            assert not validate_declared_type(PNG, 'image/png')


@pytest.mark.security
class TestPolyglots:

    def test_gif_with_embedded_script_is_polyglot(self):
        buffer = b'GIF89a' + b'\x00' * 16 + b'<script>alert(1)</script>'
        assert embedded_formats(buffer) == ['gif', 'html']
        assert is_polyglot(buffer)

    def test_single_format_is_not_polyglot(self):
        assert not is_polyglot(PNG)
        assert not is_polyglot(PE)

    def test_pe_stub_inside_pdf(self):
        buffer = b'%PDF-1.4\n' + b'This program cannot be run in DOS mode'
        assert is_polyglot(buffer)


@pytest.mark.security
class TestDecompressionBombs:

    def test_ratio_threshold(self):
        assert is_decompression_bomb(1_000, 200_000)
        assert not is_decompression_bomb(1_000, 50_000)

    def test_absolute_size_threshold(self):
        config = ScannerConfig(max_uncompressed_bytes=1_000)
        assert is_decompression_bomb(900, 1_001, config)

    def test_zero_compressed_size(self):
        assert is_decompression_bomb(0, 10)
        assert not is_decompression_bomb(0, 0)

    def test_highly_compressible_zip(self):
        archive = inspect_archive(make_zip(b'\x00' * 2_000_000))
        assert archive.format == 'zip'
        assert archive.uncompressed_size == 2_000_000
        assert archive.ratio > 100

    def test_gzip_size_read_from_trailer(self):
        buffer = gzip.compress(b'\x00' * 2_000_000)
        archive = inspect_archive(buffer)
        assert archive.uncompressed_size == 2_000_000
        result = scan_buffer(buffer)
        assert ThreatCategory.DECOMPRESSION_BOMB in result.categories

    def test_incompressible_gzip_is_fine(self):
        result = scan_buffer(gzip.compress(os.urandom(4096)))
        assert ThreatCategory.DECOMPRESSION_BOMB not in result.categories

    def test_corrupt_zip(self):
        archive = inspect_archive(b'PK\x03\x04' + b'not really a zip file')
        assert archive.corrupt


@pytest.mark.security
class TestScanBuffer:

    def test_executable_is_flagged(self):
        result = scan_buffer(PE)
        assert result.categories == (ThreatCategory.FILE_SIGNATURE,)
        assert result.matches[0].pattern == 'pe_executable'

    def test_declared_type_mismatch(self):
        result = scan_buffer(PNG, declared_mime='application/pdf')
        assert [match.pattern for match in result.matches] == ['declared_type_mismatch']

    def test_zip_bomb(self):
        result = scan_buffer(make_zip(b'\x00' * 2_000_000), declared_mime='application/zip')
        assert ThreatCategory.DECOMPRESSION_BOMB in result.categories

    def test_text_buffer_runs_text_detectors(self):
        result = scan_buffer('<script>alert(1)</script>'.encode('utf-8'))
        assert result.categories == (ThreatCategory.SCRIPT_INJECTION,)

    def test_clean_json_upload(self):
        buffer = '{"title": "Välkommen", "language": "sv"}'.encode('utf-8')
        assert not scan_buffer(buffer, declared_mime='application/json')
