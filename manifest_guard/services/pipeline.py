"""
Content validation pipeline orchestrator.

Composes the components in a fixed order and returns one ValidationResult
per invocation:

    payload decoding -> complexity guard -> schema validation
    -> business rules (only after structural success)
    -> sanitization of the validated tree -> statistics update

Outcomes of ``validate`` and ``validate_payload`` are cached by content hash when
``config.cache_size`` is positive; a replayed outcome gets a fresh validation
id and ``cached=True`` and is still counted by statistics.

The pipeline never raises for untrusted input. Malformed JSON, oversized or
over-nested documents, cycles and binary garbage all become failed results.
The one exception that escapes is InvariantViolationError, which signals a
defect in this package.
"""

import json
import time
from dataclasses import replace
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import structlog

from manifest_guard.models.manifest import SceneType
from manifest_guard.models.result import ROOT_PATH, FieldError, ValidationResult
from manifest_guard.security.file_signatures import detect_signature, scan_buffer
from manifest_guard.security.scanner import ScanResult, ThreatCategory
from manifest_guard.services.business_rules import BusinessRuleValidator, RuleOutcome
from manifest_guard.services.cache import ResultCache
from manifest_guard.services.sanitizer import ContentSanitizer, SanitizationReport
from manifest_guard.services.schema_validator import SchemaOutcome, SchemaValidator, complexity_error
from manifest_guard.services.statistics import ValidationStatisticsTracker
from manifest_guard.services.suggestions import suggest_first
from manifest_guard.utils.config import PipelineConfig
from manifest_guard.utils.error_handling import (
    DocumentTooComplexError,
    InvariantViolationError,
    MalformedPayloadError,
)
from manifest_guard.utils.logging import (
    SecurityEventType,
    configure_logging,
    get_logger,
    log_operation,
    log_security_event,
)


logger = get_logger("manifest_guard.pipeline")

_SECURITY_EVENT_TYPES = {
    ThreatCategory.SCRIPT_INJECTION: SecurityEventType.SCRIPT_INJECTION_ATTEMPT,
    ThreatCategory.MUTATION_XSS: SecurityEventType.SCRIPT_INJECTION_ATTEMPT,
    ThreatCategory.ENCODED_PAYLOAD: SecurityEventType.SCRIPT_INJECTION_ATTEMPT,
    ThreatCategory.SQL_INJECTION: SecurityEventType.SQL_INJECTION_ATTEMPT,
    ThreatCategory.COMMAND_INJECTION: SecurityEventType.COMMAND_INJECTION_ATTEMPT,
    ThreatCategory.CSS_INJECTION: SecurityEventType.CSS_INJECTION_ATTEMPT,
    ThreatCategory.URL_RISK: SecurityEventType.SUSPICIOUS_URL,
    ThreatCategory.FILE_SIGNATURE: SecurityEventType.MALICIOUS_FILE,
    ThreatCategory.POLYGLOT: SecurityEventType.MALICIOUS_FILE,
    ThreatCategory.DECOMPRESSION_BOMB: SecurityEventType.MALICIOUS_FILE,
}

SAMPLE_MANIFEST: Dict[str, Any] = {
    'game_id': 'health-check',
    'game_version': '1.0.0',
    'title': 'Pipeline health check',
    'description': 'Built-in sample used to verify the validation pipeline',
    'target_audience': 'Operators',
    'learning_objectives': ['Confirm the pipeline accepts a valid manifest'],
    'scenes': [
        {
            'scene_id': 'welcome',
            'scene_type': 'DialogueScene',
            'title': 'Välkommen',
            'scene_duration': 180,
            'characters': [{'character_id': 'guide', 'name': 'Anna', 'role': 'Guide'}],
            'dialogue_turns': [
                {'speaker': 'Anna', 'character_id': 'guide', 'text': 'Hej och välkommen!'},
            ],
        },
        {
            'scene_id': 'check',
            'scene_type': 'QuizScene',
            'title': 'Snabbkoll',
            'scene_duration': 120,
            'passing_score': 50,
            'questions': [
                {
                    'question_id': 'q1',
                    'question_type': 'true_false',
                    'question_text': 'Is this a health check?',
                    'options': [
                        {'option_id': 'yes', 'text': 'Yes', 'is_correct': True},
                        {'option_id': 'no', 'text': 'No', 'is_correct': False},
                    ],
                },
            ],
        },
    ],
    'total_duration': 300,
    'difficulty_level': 'beginner',
    'language': 'sv',
}


def _reject_constant(name: str) -> float:
    raise ValueError(f"non-finite number {name} is not valid JSON")


class ContentValidationPipeline:
    """
    Validates AI-generated manifests end to end.

    The statistics tracker is the only state shared between invocations. Pass
    one in to share it between pipelines; otherwise the pipeline keeps its own.

    Example:
        pipeline = ContentValidationPipeline()
        result = pipeline.validate_payload(raw_json_bytes)
        if result.success:
            store(result.sanitized_content)
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        statistics: Optional[ValidationStatisticsTracker] = None,
    ):
        self.config = config or PipelineConfig()
        self.statistics = statistics if statistics is not None else ValidationStatisticsTracker(
            top_n=self.config.top_errors
        )
        self.schema_validator = SchemaValidator(self.config.limits)
        self.rule_validator = BusinessRuleValidator(self.config.rules)
        self.sanitizer = ContentSanitizer(
            self.config.sanitizer, self.config.limits, self.config.scanner
        )
        self.cache: Optional[ResultCache] = None
        if self.config.cache_size:
            self.cache = ResultCache(self.config.cache_size, self.config.cache_ttl_seconds)

    @classmethod
    def from_env(
        cls,
        statistics: Optional[ValidationStatisticsTracker] = None,
        **kwargs: Any,
    ) -> 'ContentValidationPipeline':
        """
        Build a pipeline from ``MANIFEST_GUARD_*`` environment variables.

        Logging is configured from the loaded level and format before the
        pipeline is created. Keyword arguments go to ``PipelineConfig.from_env``.
        """
        config = PipelineConfig.from_env(**kwargs)
        configure_logging(level=config.log_level, json_output=config.log_json)
        return cls(config, statistics)

    def validate(self, document: Any) -> ValidationResult:
        """
        Validate one parsed manifest document.

        Args:
            document: Untyped document tree

        Returns:
            ValidationResult, with sanitized content only on success

        Raises:
            InvariantViolationError: On an internal defect, never because of input
        """
        return self._execute(
            self._validate_manifest, document, record=True, cache_key=ResultCache.document_key
        )

    def validate_payload(self, payload: Union[bytes, bytearray, memoryview, str]) -> ValidationResult:
        """
        Decode a raw JSON payload and validate the resulting document.

        Size limits, binary signatures, invalid UTF-8, malformed JSON,
        NaN/Infinity and nesting too deep for the decoder all produce a
        failed result.
        """
        return self._execute(
            self._validate_payload, payload, record=True, cache_key=self._payload_cache_key
        )

    def validate_scene(
        self,
        document: Any,
        scene_type: Optional[Union[SceneType, str]] = None,
    ) -> ValidationResult:
        """Validate a standalone scene document, optionally forcing its variant."""
        return self._execute(
            lambda doc, result: self._validate_scene(doc, result, scene_type),
            document,
            record=True,
        )

    def validate_batch(
        self,
        documents: Iterable[Any],
        max_workers: Optional[int] = None,
    ) -> List[ValidationResult]:
        """
        Validate many documents concurrently, preserving input order.

        Args:
            documents: Parsed documents or raw ``bytes``/``str`` payloads
            max_workers: Thread count, defaults to ``config.batch_workers``
        """
        items = list(documents)
        if not items:
            return []
        workers = max_workers or self.config.batch_workers

        def run(item: Any) -> ValidationResult:
            if isinstance(item, (bytes, bytearray, memoryview, str)):
                return self.validate_payload(item)
            return self.validate(item)

        with log_operation(logger, "validate_batch") as extra:
            with ThreadPoolExecutor(max_workers=min(workers, len(items))) as executor:
                results = list(executor.map(run, items))
            extra['batch_size'] = len(items)
            extra['failed'] = sum(1 for result in results if not result.success)
        return results

    def scan_upload(
        self,
        buffer: Union[bytes, bytearray, memoryview],
        declared_mime: Optional[str] = None,
    ) -> ScanResult:
        """Pre-screen a raw uploaded buffer with the byte-level and text scanners."""
        result = scan_buffer(bytes(buffer), declared_mime, self.config.scanner)
        for match in result.matches:
            log_security_event(
                _SECURITY_EVENT_TYPES[match.category],
                'high',
                f"Upload rejected by {match.category.value} scanner",
                indicators=[match.pattern],
            )
        return result

    def health_check(self) -> Dict[str, Any]:
        """
        Validate the built-in sample without touching statistics.

        Returns:
            Status, sample timing, and the current statistics snapshot
        """
        result = self._execute(self._validate_manifest, SAMPLE_MANIFEST, record=False)
        return {
            'status': 'healthy' if result.success else 'unhealthy',
            'sample_processing_time_ms': round(result.processing_time_ms, 3),
            'sample_errors': list(result.errors),
            'statistics': self.statistics.snapshot().to_dict(),
        }

    def _execute(
        self,
        step,
        subject: Any,
        record: bool,
        cache_key: Optional[Callable[[Any], Optional[str]]] = None,
    ) -> ValidationResult:
        start_time = time.perf_counter()
        result = ValidationResult()
        with structlog.contextvars.bound_contextvars(validation_id=result.validation_id):
            key = None
            if self.cache is not None and cache_key is not None:
                key = cache_key(subject)
            cached = self.cache.get(key) if key is not None else None
            if cached is not None:
                result = replace(cached, validation_id=result.validation_id, cached=True)
                logger.debug("Served cached validation result", cache_key=key)
            else:
                result = self._run_step(step, subject, result)
                if key is not None and not self._is_internal_failure(result):
                    self.cache.put(key, result)

            result.processing_time_ms = (time.perf_counter() - start_time) * 1000
            if record:
                self.statistics.record(result)
            logger.debug(
                "Validation finished",
                success=result.success,
                cached=result.cached,
                error_count=len(result.errors),
                warning_count=len(result.warnings),
                processing_time_ms=round(result.processing_time_ms, 3),
            )
        return result

    def _run_step(self, step, subject: Any, result: ValidationResult) -> ValidationResult:
        try:
            step(subject, result)
        except InvariantViolationError:
            logger.critical("Internal invariant violated", exc_info=True)
            raise
        except (DocumentTooComplexError, RecursionError, MemoryError) as e:
            if isinstance(e, DocumentTooComplexError):
                error = e
            else:
                error = DocumentTooComplexError(
                    "document too complex: processing exceeded resource limits"
                )
            logger.warning(
                "Document rejected as too complex",
                limit=error.details.get('limit', type(e).__name__),
                path=error.path,
            )
            result = ValidationResult(validation_id=result.validation_id)
            result.add_error(complexity_error(error))
        except MalformedPayloadError as e:
            result = ValidationResult(validation_id=result.validation_id)
            result.add_error(FieldError(ROOT_PATH, e.message, e.error_code))
        except Exception:
            logger.exception("Unexpected error during validation")
            result = ValidationResult(validation_id=result.validation_id)
            result.add_error(FieldError(ROOT_PATH, "internal validation error", "internal_error"))

        if not result.success:
            result.suggestion = suggest_first(result.issues)
        return result

    def _payload_cache_key(self, payload: Any) -> Optional[str]:
        # Oversized payloads are rejected before decoding; hashing them is wasted work.
        if isinstance(payload, (str, bytes, bytearray, memoryview)):
            if len(payload) > self.config.limits.max_payload_bytes:
                return None
        return ResultCache.payload_key(payload)

    @staticmethod
    def _is_internal_failure(result: ValidationResult) -> bool:
        return any(issue.code == "internal_error" for issue in result.issues)

    def decode_payload(self, payload: Union[bytes, bytearray, memoryview, str]) -> Any:
        """
        Decode a JSON payload into a document tree.

        Raises:
            DocumentTooComplexError: Payload larger than the configured limit, or nested too deep
            MalformedPayloadError: Binary content, invalid UTF-8 or invalid JSON
        """
        limit = self.config.limits.max_payload_bytes
        if isinstance(payload, str):
            if len(payload) > limit:
                raise DocumentTooComplexError(
                    f"document too complex: payload exceeds {limit} bytes", limit="max_payload_bytes"
                )
            text = payload
        elif isinstance(payload, (bytes, bytearray, memoryview)):
            raw = bytes(payload)
            if len(raw) > limit:
                raise DocumentTooComplexError(
                    f"document too complex: payload exceeds {limit} bytes", limit="max_payload_bytes"
                )
            signature = detect_signature(raw)
            if signature is not None and (signature.executable or signature.archive):
                log_security_event(
                    SecurityEventType.MALICIOUS_FILE,
                    'high',
                    'Binary file submitted as manifest payload',
                    indicators=[signature.name],
                )
                raise MalformedPayloadError(f"payload is a binary file ({signature.name}), not JSON text")
            try:
                text = raw.decode('utf-8-sig')
            except UnicodeDecodeError as e:
                raise MalformedPayloadError(f"payload is not valid UTF-8 (byte offset {e.start})")
        else:
            raise MalformedPayloadError(
                f"payload must be bytes or str, got {type(payload).__name__}"
            )

        try:
            return json.loads(text, parse_constant=_reject_constant)
        except RecursionError:
            raise DocumentTooComplexError(
                "document too complex: nesting too deep to decode", limit="max_depth"
            )
        except ValueError as e:
            raise MalformedPayloadError(f"malformed JSON: {e}")

    def _validate_payload(self, payload: Any, result: ValidationResult) -> None:
        document = self.decode_payload(payload)
        self._validate_manifest(document, result)

    def _validate_manifest(self, document: Any, result: ValidationResult) -> None:
        outcome = self.schema_validator.validate(document)
        if not outcome.is_valid:
            self._add_errors(result, outcome.errors)
            return

        rules = self.rule_validator.validate(outcome.value)
        self._apply_rules(result, rules)
        if not result.success:
            return

        report = self.sanitizer.sanitize(self.schema_validator.dump(outcome.value))
        self._apply_sanitization(result, report)
        if not result.success:
            return

        if report.modified:
            recheck = self.schema_validator.validate(report.document)
            if not recheck.is_valid:
                self._add_errors(result, recheck.errors, suffix=" (after sanitization)")
                return
            recheck_rules = self.rule_validator.validate(recheck.value)
            if recheck_rules.errors:
                self._add_errors(result, recheck_rules.errors, suffix=" (after sanitization)")
                return

        result.sanitized_content = report.document

    def _validate_scene(
        self,
        document: Any,
        result: ValidationResult,
        scene_type: Optional[Union[SceneType, str]],
    ) -> None:
        outcome: SchemaOutcome = self.schema_validator.validate_scene(document, scene_type)
        if not outcome.is_valid:
            self._add_errors(result, outcome.errors)
            return

        self._apply_rules(result, self.rule_validator.validate_scene(outcome.value))
        if not result.success:
            return

        report = self.sanitizer.sanitize(self.schema_validator.dump_scene(outcome.value))
        self._apply_sanitization(result, report)
        if not result.success:
            return

        if report.modified:
            recheck = self.schema_validator.validate_scene(report.document, outcome.value.scene_type)
            if not recheck.is_valid:
                self._add_errors(result, recheck.errors, suffix=" (after sanitization)")
                return

        result.sanitized_content = report.document

    @staticmethod
    def _add_errors(result: ValidationResult, errors: List[FieldError], suffix: str = "") -> None:
        if not errors:
            raise InvariantViolationError("validation failed without reporting an error")
        for error in errors:
            if suffix:
                error = FieldError(error.path, error.message + suffix, error.code, error.params)
            result.add_error(error)

    @staticmethod
    def _apply_rules(result: ValidationResult, rules: RuleOutcome) -> None:
        for error in rules.errors:
            result.add_error(error)
        for warning in rules.warnings:
            result.add_warning(warning)

    def _apply_sanitization(self, result: ValidationResult, report: SanitizationReport) -> None:
        for path in report.modified_paths:
            result.add_warning(f"{path}: content was sanitized")

        for threat in report.residual_threats:
            category = threat.match.category
            if threat.is_markup:
                log_security_event(
                    _SECURITY_EVENT_TYPES[category],
                    'high',
                    'Unsafe content remains after sanitization',
                    path=threat.path,
                    indicators=[threat.match.pattern],
                )
                result.add_error(FieldError(
                    threat.path,
                    f"unsafe content remains after sanitization: {threat.match.describe()}",
                    'unsafe_content',
                    {'category': category.value, 'pattern': threat.match.pattern},
                ))
            else:
                log_security_event(
                    _SECURITY_EVENT_TYPES[category],
                    'medium',
                    'Suspicious content flagged for review',
                    path=threat.path,
                    indicators=[threat.match.pattern],
                )
                result.add_warning(
                    f"{threat.path}: possible {category.value.replace('_', ' ')} "
                    f"({threat.match.pattern}), flagged for review"
                )


__all__ = ['ContentValidationPipeline', 'SAMPLE_MANIFEST']
