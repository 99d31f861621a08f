"""
Unit tests for structured logging and the error hierarchy.
"""

import pytest
from structlog.testing import capture_logs

from manifest_guard.utils.error_handling import (
    CyclicReferenceError,
    DocumentTooComplexError,
    ErrorCategory,
    ErrorSeverity,
    InvariantViolationError,
    MalformedPayloadError,
    ManifestGuardError,
)
from manifest_guard.utils.logging import (
    EXCERPT_LIMIT,
    SecurityEventType,
    get_logger,
    log_operation,
    log_security_event,
    truncate_excerpt,
)

from tests.factories import ManifestFactory


class TestErrorHierarchy:

    @pytest.mark.parametrize("error_class,code", [
        (MalformedPayloadError, 'malformed_payload'),
        (DocumentTooComplexError, 'document_too_complex'),
        (CyclicReferenceError, 'cyclic_reference'),
        (InvariantViolationError, 'invariant_violation'),
    ])
    def test_error_codes(self, error_class, code):
        error = error_class("something went wrong")
        assert isinstance(error, ManifestGuardError)
        assert error.error_code == code

    def test_to_dict(self):
        error = DocumentTooComplexError("too deep", limit='max_depth', path='scenes[0]')
        payload = error.to_dict()

        assert payload['error_code'] == 'document_too_complex'
        assert payload['path'] == 'scenes[0]'
        assert payload['details'] == {'limit': 'max_depth'}
        assert payload['category'] == ErrorCategory.COMPLEXITY.value
        assert payload['type'] == 'DocumentTooComplexError'

    def test_invariant_violation_is_critical(self):
        assert InvariantViolationError("broken").severity is ErrorSeverity.CRITICAL


class TestSecurityEvents:

    def test_excerpt_is_truncated(self):
        event = log_security_event(
            SecurityEventType.SCRIPT_INJECTION_ATTEMPT, 'high', 'script found',
            excerpt='x' * 500,
        )
        assert len(event.excerpt) == EXCERPT_LIMIT + 3
        assert event.timestamp is not None

    def test_event_is_logged(self):
        with capture_logs() as entries:
            log_security_event(
                SecurityEventType.SUSPICIOUS_URL, 'high', 'bad link',
                path='description', indicators=['blocked_domain'],
            )

        assert len(entries) == 1
        entry = entries[0]
        assert entry['log_level'] == 'error'
        assert entry['security_event']['event_type'] == 'suspicious_url'
        assert entry['security_event']['indicators'] == ['blocked_domain']

    def test_pipeline_logs_residual_threats(self, pipeline):
        with capture_logs() as entries:
            pipeline.validate(ManifestFactory(title='width: expression(alert(1))'))

        event_types = [
            entry['security_event']['event_type'] for entry in entries if 'security_event' in entry
        ]
        assert 'css_injection_attempt' in event_types

    def test_truncate_non_string(self):
        assert truncate_excerpt({'a': 1}) == "{'a': 1}"


class TestLogOperation:

    def test_extra_fields_are_logged(self):
        logger = get_logger('tests.operation')
        with capture_logs() as entries:
            with log_operation(logger, 'unit-test', threshold_ms=0) as extra:
                extra['items'] = 3

        completed = entries[-1]
        assert completed['operation'] == 'unit-test'
        assert completed['items'] == 3
        assert completed['component'] == 'tests.operation'

    def test_failures_are_logged_and_reraised(self):
        logger = get_logger('tests.operation')
        with capture_logs() as entries:
            with pytest.raises(ValueError):
                with log_operation(logger, 'failing'):
                    raise ValueError('nope')

        assert entries[-1]['event'] == 'Failed operation'
        assert entries[-1]['error_type'] == 'ValueError'
