"""
Throughput and large-input tests for the validation pipeline.

Thresholds are generous wall-clock bounds meant to catch pathological
slowdowns such as catastrophic regex backtracking, not to benchmark.
"""

import json
import time

import pytest

from manifest_guard.security.scanner import scan_text

from tests.factories import DialogueSceneFactory, DialogueTurnFactory, ManifestFactory, nested_json


class TestThroughput:

    def test_hundred_manifests_under_one_second(self, pipeline):
        documents = [ManifestFactory() for _ in range(100)]

        start = time.perf_counter()
        results = [pipeline.validate(document) for document in documents]
        elapsed = time.perf_counter() - start

        assert all(result.success for result in results)
        assert elapsed < 1.0

    def test_batch_of_payloads(self, pipeline):
        payloads = [json.dumps(ManifestFactory()).encode('utf-8') for _ in range(200)]

        start = time.perf_counter()
        results = pipeline.validate_batch(payloads)
        elapsed = time.perf_counter() - start

        assert len(results) == 200
        assert all(result.success for result in results)
        assert elapsed < 5.0


class TestLargeInputs:

    def test_five_megabyte_text_is_rejected_in_bounded_time(self, pipeline):
        paragraph = "Personuppgifter ska behandlas lagligt, korrekt och öppet. "
        description = paragraph * (5 * 1024 * 1024 // len(paragraph))
        document = ManifestFactory(description=description, target_audience='Alla')

        start = time.perf_counter()
        result = pipeline.validate(document)
        elapsed = time.perf_counter() - start

        assert not result.success
        assert result.issues[0].path == 'description'
        assert elapsed < 10.0

    def test_large_valid_manifest_is_accepted_in_bounded_time(self, pipeline):
        paragraph = "Personuppgifter ska behandlas lagligt, korrekt och öppet. "
        text = (paragraph * (4900 // len(paragraph))).strip()
        scenes = [
            DialogueSceneFactory(dialogue_turns=[DialogueTurnFactory(text=text) for _ in range(100)])
            for _ in range(12)
        ]
        document = ManifestFactory(scenes=scenes, total_duration=12 * 180)
        payload = json.dumps(document, ensure_ascii=False).encode('utf-8')
        assert len(payload) > 5 * 1024 * 1024

        start = time.perf_counter()
        result = pipeline.validate_payload(payload)
        elapsed = time.perf_counter() - start

        assert result.success, result.errors
        assert result.sanitized_content['scenes'][11]['dialogue_turns'][99]['text'] == text
        assert elapsed < 10.0

    def test_five_megabyte_prose_scan(self):
        paragraph = "Enligt GDPR artikel 6 ska behandlingen vara laglig, korrekt och öppen. "
        text = paragraph * (5 * 1024 * 1024 // len(paragraph))

        start = time.perf_counter()
        result = scan_text(text)
        elapsed = time.perf_counter() - start

        assert not result
        assert elapsed < 10.0

    def test_hostile_markup_is_sanitized_in_bounded_time(self, pipeline):
        chunk = '<p onclick="x()"><script>alert(1)</script>&lt;b&gt;' * 50
        description = chunk * (256 * 1024 // len(chunk))

        start = time.perf_counter()
        report = pipeline.sanitizer.sanitize({'description': description})
        elapsed = time.perf_counter() - start

        assert '<script' not in report.document['description']
        assert elapsed < 10.0

    @pytest.mark.parametrize("depth", [1_000, 100_000])
    def test_deep_payload_rejected_quickly(self, pipeline, depth):
        start = time.perf_counter()
        result = pipeline.validate_payload(nested_json(depth))
        elapsed = time.perf_counter() - start

        assert result.issues[0].code == 'document_too_complex'
        assert elapsed < 1.0
