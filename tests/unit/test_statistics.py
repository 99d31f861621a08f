"""
Unit tests for the thread-safe statistics tracker.
"""

from concurrent.futures import ThreadPoolExecutor

from manifest_guard.models.result import FieldError, ValidationResult
from manifest_guard.services.statistics import ValidationStatisticsTracker


def failed(*messages):
    result = ValidationResult()
    for message in messages:
        result.add_error(FieldError('title', message))
    return result


class TestValidationStatisticsTracker:

    def test_empty_snapshot(self, tracker):
        snapshot = tracker.snapshot()
        assert snapshot.total == 0
        assert snapshot.success_rate == 0.0
        assert snapshot.top_errors == ()

    def test_counts_and_rate(self, tracker):
        tracker.record(ValidationResult())
        tracker.record(failed('bad'))
        tracker.record(ValidationResult())
        tracker.record(failed('worse'))

        snapshot = tracker.snapshot()
        assert (snapshot.total, snapshot.succeeded, snapshot.failed) == (4, 2, 2)
        assert snapshot.success_rate == 50.0

    def test_top_errors_ranked_by_count(self, tracker):
        tracker.record_outcome(False, ['title: a'])
        tracker.record_outcome(False, ['title: b', 'title: c'])
        tracker.record_outcome(False, ['title: c'])

        top = tracker.snapshot().top_errors
        assert [(entry.message, entry.count) for entry in top] == [
            ('title: c', 2), ('title: a', 1), ('title: b', 1),
        ]

    def test_top_n_limit(self):
        tracker = ValidationStatisticsTracker(top_n=2)
        for message in ['x', 'y', 'z']:
            tracker.record_outcome(False, [message])
        assert len(tracker.snapshot().top_errors) == 2
        assert len(tracker.snapshot(top_n=3).top_errors) == 3

    def test_successes_do_not_count_errors(self, tracker):
        tracker.record_outcome(True, ['ignored'])
        assert tracker.snapshot().top_errors == ()

    def test_reset(self, tracker):
        tracker.record(failed('bad'))
        tracker.reset()
        assert tracker.snapshot().total == 0

    def test_to_dict(self, tracker):
        tracker.record(failed('bad'))
        assert tracker.snapshot().to_dict() == {
            'total': 1,
            'success': 0,
            'failure': 1,
            'success_rate': 0.0,
            'average_processing_time_ms': 0.0,
            'cache_hits': 0,
            'top_errors': [{'message': 'title: bad', 'count': 1}],
        }

    def test_average_processing_time(self, tracker):
        for elapsed in (10.0, 20.0, 60.0):
            tracker.record(ValidationResult(processing_time_ms=elapsed))
        assert tracker.snapshot().average_processing_time_ms == 30.0

    def test_cache_hits_counted(self, tracker):
        tracker.record(ValidationResult())
        tracker.record(ValidationResult(cached=True))
        snapshot = tracker.snapshot()
        assert snapshot.cache_hits == 1
        assert snapshot.total == 2

    def test_reset_clears_timing(self, tracker):
        tracker.record(ValidationResult(processing_time_ms=5.0, cached=True))
        tracker.reset()
        snapshot = tracker.snapshot()
        assert snapshot.average_processing_time_ms == 0.0
        assert snapshot.cache_hits == 0

    def test_concurrent_updates_are_not_lost(self, tracker):
        def work(index):
            if index % 2:
                tracker.record(failed('shared'))
            else:
                tracker.record(ValidationResult())

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(work, range(1000)))

        snapshot = tracker.snapshot()
        assert snapshot.total == 1000
        assert snapshot.succeeded == 500
        assert snapshot.top_errors[0].count == 500
