"""
Bounded, iterative traversal of untyped document trees.

Documents arrive as generic trees of mappings, sequences and scalars. Before
any recursive processing (marshmallow loading, sanitization) the tree is
measured here with an explicit stack so that adversarial nesting, huge node
counts or in-memory reference cycles are turned into exceptions instead of
``RecursionError`` or unbounded work.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Tuple, Union

from manifest_guard.utils.error_handling import CyclicReferenceError, DocumentTooComplexError


CONTAINER_TYPES = (dict, list, tuple)

_EXIT = object()


@dataclass(frozen=True)
class TreeMetrics:
    """Size of a measured document tree."""
    node_count: int
    max_depth: int


def format_path(parts: Tuple[Union[str, int], ...]) -> str:
    """
    Render a key path the way field errors are reported.

    >>> format_path(('scenes', 2, 'questions', 0, 'options'))
    'scenes[2].questions[0].options'
    """
    rendered = []
    for part in parts:
        if isinstance(part, int):
            rendered.append(f"[{part}]")
        elif rendered:
            rendered.append(f".{part}")
        else:
            rendered.append(str(part))
    return ''.join(rendered)


def iter_children(value: Any):
    """Yield ``(key, child)`` pairs of a container value."""
    if isinstance(value, Mapping):
        return iter(value.items())
    if isinstance(value, (list, tuple)):
        return enumerate(value)
    return iter(())


def is_container(value: Any) -> bool:
    return isinstance(value, (Mapping, list, tuple))


def measure_tree(document: Any, max_depth: int, max_nodes: int) -> TreeMetrics:
    """
    Walk a document tree and enforce complexity limits.

    Depth counts containers: a scalar root has depth 0, ``{}`` has depth 1.
    Every value, including scalars and mapping keys' values, counts as one node.

    Args:
        document: Untyped document tree
        max_depth: Maximum container nesting depth
        max_nodes: Maximum number of values in the tree

    Returns:
        TreeMetrics for the document

    Raises:
        DocumentTooComplexError: If a limit is exceeded
        CyclicReferenceError: If a container is reachable from itself
    """
    node_count = 1
    deepest = 0
    if not is_container(document):
        return TreeMetrics(node_count=node_count, max_depth=deepest)

    active = set()
    # Entries are (container, depth, path) or (_EXIT, container_id, None).
    stack: List[Tuple[Any, Any, Any]] = [(document, 1, ())]
    while stack:
        value, depth, path = stack.pop()
        if value is _EXIT:
            active.discard(depth)
            continue

        if depth > max_depth:
            raise DocumentTooComplexError(
                f"document too complex: nesting depth exceeds the maximum of {max_depth}",
                limit="max_depth",
                path=format_path(path),
            )
        deepest = max(deepest, depth)

        marker = id(value)
        if marker in active:
            raise CyclicReferenceError(
                "cyclic reference detected: value refers back to one of its ancestors",
                path=format_path(path),
            )
        active.add(marker)
        stack.append((_EXIT, marker, None))

        for key, child in iter_children(value):
            node_count += 1
            if node_count > max_nodes:
                raise DocumentTooComplexError(
                    f"document too complex: node count exceeds the maximum of {max_nodes}",
                    limit="max_nodes",
                )
            if is_container(child):
                stack.append((child, depth + 1, path + (key,)))

    return TreeMetrics(node_count=node_count, max_depth=deepest)


__all__ = [
    'TreeMetrics',
    'format_path',
    'iter_children',
    'is_container',
    'measure_tree',
]
