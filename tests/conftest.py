"""
Pytest Configuration and Fixtures for Manifest Validation Testing

Provides markers for test categorization, isolated pipeline fixtures built
from the testing configuration, and factory_boy manifest documents.

Testing Architecture:
- Unit tests: individual validators, scanners and the sanitizer
- Security tests: injection payloads and raw file buffers
- Performance tests: throughput and large-input limits
"""

import pytest

from manifest_guard.services.pipeline import ContentValidationPipeline
from manifest_guard.services.statistics import ValidationStatisticsTracker
from manifest_guard.utils.config import Environment, PipelineConfig
from manifest_guard.utils.logging import configure_logging

from tests.factories import ManifestFactory, QuizSceneFactory, DialogueSceneFactory


# =============================================================================
# PYTEST CONFIGURATION AND MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "unit: Unit tests for individual components and functions"
    )
    config.addinivalue_line(
        "markers",
        "security: Tests feeding hostile payloads through detectors and sanitizer"
    )
    config.addinivalue_line(
        "markers",
        "performance: Throughput and large-input tests"
    )
    config.addinivalue_line(
        "markers",
        "slow: Slow tests that should be run sparingly"
    )


def pytest_collection_modifyitems(config, items):
    """Apply markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "performance" in str(item.fspath):
            item.add_marker(pytest.mark.performance)
            item.add_marker(pytest.mark.slow)


# =============================================================================
# PIPELINE FIXTURES
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def configure_test_logging():
    """Route structlog through the testing configuration once per session."""
    testing = PipelineConfig.for_environment(Environment.TESTING)
    configure_logging(level=testing.log_level, json_output=testing.log_json)


@pytest.fixture
def config():
    """Testing configuration."""
    return PipelineConfig.for_environment(Environment.TESTING)


@pytest.fixture
def tracker(config):
    """Fresh statistics tracker per test."""
    return ValidationStatisticsTracker(top_n=config.top_errors)


@pytest.fixture
def pipeline(config, tracker):
    """Pipeline with an isolated statistics tracker."""
    return ContentValidationPipeline(config=config, statistics=tracker)


# =============================================================================
# DOCUMENT FIXTURES
# =============================================================================

@pytest.fixture
def manifest_document():
    """A valid manifest: one dialogue scene and one quiz scene totalling 300s."""
    return ManifestFactory()


@pytest.fixture
def quiz_scene_document():
    return QuizSceneFactory()


@pytest.fixture
def dialogue_scene_document():
    return DialogueSceneFactory()
