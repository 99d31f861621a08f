"""
Unit tests for bounded tree traversal.
"""

import pytest

from manifest_guard.utils.error_handling import CyclicReferenceError, DocumentTooComplexError
from manifest_guard.utils.traversal import format_path, measure_tree

from tests.factories import nested_list


class TestFormatPath:

    @pytest.mark.parametrize("parts,expected", [
        ((), ''),
        (('title',), 'title'),
        (('scenes', 2, 'questions', 0, 'options'), 'scenes[2].questions[0].options'),
        ((0, 'title'), '[0].title'),
    ])
    def test_rendering(self, parts, expected):
        assert format_path(parts) == expected


class TestMeasureTree:

    def test_scalar_root(self):
        metrics = measure_tree('text', max_depth=1, max_nodes=1)
        assert (metrics.node_count, metrics.max_depth) == (1, 0)

    def test_counts_nodes_and_depth(self):
        metrics = measure_tree({'a': [1, 2, {'b': None}]}, max_depth=10, max_nodes=100)
        assert metrics.node_count == 6
        assert metrics.max_depth == 3

    def test_depth_limit_is_inclusive(self):
        assert measure_tree(nested_list(64), max_depth=64, max_nodes=1000).max_depth == 64
        with pytest.raises(DocumentTooComplexError) as exc_info:
            measure_tree(nested_list(65), max_depth=64, max_nodes=1000)
        assert exc_info.value.details['limit'] == 'max_depth'

    def test_very_deep_input_does_not_recurse(self):
        with pytest.raises(DocumentTooComplexError):
            measure_tree(nested_list(200_000), max_depth=64, max_nodes=10**6)

    def test_node_limit(self):
        with pytest.raises(DocumentTooComplexError) as exc_info:
            measure_tree(list(range(10)), max_depth=5, max_nodes=5)
        assert exc_info.value.details['limit'] == 'max_nodes'

    def test_cycle_detected(self):
        items = []
        items.append({'back': items})
        with pytest.raises(CyclicReferenceError) as exc_info:
            measure_tree(items, max_depth=10, max_nodes=100)
        assert exc_info.value.path == '[0].back'

    def test_repeated_subtree_is_allowed(self):
        shared = {'x': 1}
        metrics = measure_tree([shared, shared, shared], max_depth=10, max_nodes=100)
        assert metrics.node_count == 7
