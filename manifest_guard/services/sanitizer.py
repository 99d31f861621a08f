"""
Meaning-preserving sanitization of document trees.

Every string in the tree (mapping keys included) is cleaned by removing
script-bearing blocks, event-handler attributes and dangerous URL schemes,
passing remaining markup through bleach with a small formatting allowlist
and stripping invisible control characters. Only attributes inside tags are
touched, and text that merely looks like a tag (``<Ctrl>``) stays text. Code
points are otherwise kept as written; no Unicode normalization is applied.
Entities are decoded until none remain and the clean is repeated until the
string stops changing, which makes sanitization idempotent.

The tree is copied with an explicit worklist bounded by the same depth and
node limits as structural validation. Sanitization never raises for input;
after cleaning, every string is re-scanned and anything the scanner still
recognises is reported as a residual threat.
"""

import html
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import bleach
from bleach.html5lib_shim import HTML_TAGS

from manifest_guard.models.result import ROOT_PATH
from manifest_guard.security.scanner import ScanResult, ThreatCategory, ThreatMatch, scan_text
from manifest_guard.utils.config import LimitsConfig, SanitizerConfig, ScannerConfig
from manifest_guard.utils.logging import SecurityEventType, get_logger, log_security_event
from manifest_guard.utils.traversal import format_path, is_container


logger = get_logger("manifest_guard.sanitizer")

_BLOCK_TAGS = r'script|style|iframe|object|embed|noscript|template|xml|svg|math'
_BLOCK_RE = re.compile(
    rf'<\s*({_BLOCK_TAGS})\b[^>]*>.*?(?:<\s*/\s*\1\s*>|$)',
    re.IGNORECASE | re.DOTALL,
)
_ORPHAN_BLOCK_TAG_RE = re.compile(rf'<\s*/?\s*(?:{_BLOCK_TAGS})\b[^>]*>?', re.IGNORECASE)
_TAG_RE = re.compile(r'<[A-Za-z/!?][^<>]*>?')
_EVENT_HANDLER_RE = re.compile(
    r'\bon[a-z]{3,}\s*=\s*(?:"[^"]*"?|\'[^\']*\'?|`[^`]*`?|[^\s>]+)',
    re.IGNORECASE,
)
_SCHEME_RE = re.compile(
    r'\b(?:java|vb|live)\s*script\s*:\s*[^\s"\'<>]*|\bdata\s*:\s*text/html[^\s"\'>]*',
    re.IGNORECASE,
)
_MARKUP_RE = re.compile(r'<[A-Za-z!/?]')
_TAG_NAME_RE = re.compile(r'<(/?)([A-Za-z][A-Za-z0-9-]*)')
_KNOWN_TAGS = frozenset(HTML_TAGS)

# Zero-width space, word joiner, BOM, bidi embedding/override/isolate controls
# and C0 controls other than tab, newline and carriage return. ZWJ and ZWNJ
# stay: emoji sequences and several scripts depend on them.
_INVISIBLE_RE = re.compile(
    '[\u200b\u2060\ufeff\u202a-\u202e\u2066-\u2069\x00-\x08\x0b\x0c\x0e-\x1f\x7f]'
)

MARKUP_CATEGORIES = frozenset({
    ThreatCategory.SCRIPT_INJECTION,
    ThreatCategory.MUTATION_XSS,
    ThreatCategory.ENCODED_PAYLOAD,
    ThreatCategory.CSS_INJECTION,
})
PROSE_CATEGORIES = frozenset({
    ThreatCategory.SQL_INJECTION,
    ThreatCategory.COMMAND_INJECTION,
    ThreatCategory.URL_RISK,
})


def _unescape_fully(text: str) -> str:
    while '&' in text:
        decoded = html.unescape(text)
        if decoded == text:
            break
        text = decoded
    return text


def _strip_event_handlers(tag: 're.Match') -> str:
    return _EVENT_HANDLER_RE.sub('', tag.group(0))


def _escape_unknown_tag(tag: 're.Match') -> str:
    # bleach would strip <Ctrl> as an unknown element; keep it as text instead.
    if tag.group(2).lower() in _KNOWN_TAGS:
        return tag.group(0)
    return '&lt;' + tag.group(1) + tag.group(2)


@dataclass(frozen=True)
class ResidualThreat:
    """A scanner finding that survived sanitization."""
    path: str
    match: ThreatMatch

    @property
    def is_markup(self) -> bool:
        return self.match.category in MARKUP_CATEGORIES


@dataclass
class SanitizationReport:
    document: Any
    modified_paths: List[str] = field(default_factory=list)
    residual_threats: List[ResidualThreat] = field(default_factory=list)

    @property
    def modified(self) -> bool:
        return bool(self.modified_paths)


class ContentSanitizer:
    """
    Cleans every string of a document tree.

    Example:
        sanitizer = ContentSanitizer()
        report = sanitizer.sanitize({'title': '<b>Hej</b><script>x()</script>'})
        report.document  # {'title': '<b>Hej</b>'}
    """

    def __init__(
        self,
        config: Optional[SanitizerConfig] = None,
        limits: Optional[LimitsConfig] = None,
        scanner_config: Optional[ScannerConfig] = None,
    ):
        self.config = config or SanitizerConfig()
        self.limits = limits or LimitsConfig()
        self.scanner_config = scanner_config or ScannerConfig()
        self._allowed_tags = frozenset(self.config.allowed_tags)

    def _clean_once(self, text: str) -> str:
        text = _unescape_fully(text)
        if '<' in text:
            text = _BLOCK_RE.sub('', text)
            text = _ORPHAN_BLOCK_TAG_RE.sub('', text)
            text = _TAG_RE.sub(_strip_event_handlers, text)
        if ':' in text:
            text = _SCHEME_RE.sub('', text)
        if _MARKUP_RE.search(text):
            text = _TAG_NAME_RE.sub(_escape_unknown_tag, text)
            text = bleach.clean(
                text,
                tags=self._allowed_tags,
                attributes={},
                strip=True,
                strip_comments=True,
            )
            # bleach escapes bare & < > in text nodes; keep them as plain text.
            text = html.unescape(text)
        return _INVISIBLE_RE.sub('', text)

    def clean_text(self, text: str) -> str:
        """
        Clean one string until it reaches a fixed point.

        Decoding runs until no entity is left, so a round normally settles in
        one or two passes. The round count is capped at the string length plus
        ``max_rounds`` to bound pathological input.
        """
        for _ in range(len(text) + self.config.max_rounds):
            cleaned = self._clean_once(text)
            if cleaned == text:
                return cleaned
            text = cleaned
        logger.warning("Sanitizer stopped before reaching a fixed point", length=len(text))
        return text

    def sanitize(self, document: Any) -> SanitizationReport:
        """
        Return a cleaned copy of a document tree with a change report.

        Subtrees beyond the depth or node limits are dropped and reported as
        residual threats instead of being followed, which also stops
        reference cycles.
        """
        report = SanitizationReport(document=None)
        root_holder: List[Any] = [None]
        # (source value, container to write into, key in that container, depth, path)
        stack: List[Tuple[Any, Any, Any, int, Tuple[Any, ...]]] = [(document, root_holder, 0, 0, ())]
        node_count = 0

        while stack:
            value, target, key, depth, path = stack.pop()
            node_count += 1
            container = is_container(value)
            if node_count > self.limits.max_nodes or (container and depth >= self.limits.max_depth):
                self._report_limit(report, path)
                target[key] = None
                continue

            if isinstance(value, str):
                cleaned = self.clean_text(value)
                if cleaned != value:
                    report.modified_paths.append(format_path(path) or ROOT_PATH)
                target[key] = cleaned
                self._post_check(report, cleaned, path)
            elif isinstance(value, Mapping):
                copy: Dict[Any, Any] = {}
                children = []
                for child_key, child in value.items():
                    clean_key = child_key
                    if isinstance(child_key, str):
                        clean_key = self.clean_text(child_key)
                        if clean_key != child_key:
                            report.modified_paths.append(format_path(path + (child_key,)) + ' (key)')
                    copy[clean_key] = None
                    children.append((child, copy, clean_key, depth + 1, path + (clean_key,)))
                target[key] = copy
                stack.extend(reversed(children))
            elif isinstance(value, (list, tuple)):
                items: List[Any] = [None] * len(value)
                target[key] = items
                for index in range(len(value) - 1, -1, -1):
                    stack.append((value[index], items, index, depth + 1, path + (index,)))
            else:
                target[key] = value

        report.document = root_holder[0]
        if report.modified_paths:
            log_security_event(
                SecurityEventType.CONTENT_SANITIZED,
                'low',
                'Content modified during sanitization',
                indicators=report.modified_paths[:20],
            )
        return report

    def _post_check(self, report: SanitizationReport, text: str, path: Tuple[Any, ...]) -> None:
        result: ScanResult = scan_text(text, config=self.scanner_config)
        for match in result.matches:
            report.residual_threats.append(ResidualThreat(format_path(path) or ROOT_PATH, match))

    def _report_limit(self, report: SanitizationReport, path: Tuple[Any, ...]) -> None:
        logger.warning("Sanitizer dropped subtree beyond complexity limits", path=format_path(path))
        report.residual_threats.append(ResidualThreat(
            format_path(path) or ROOT_PATH,
            ThreatMatch(ThreatCategory.ENCODED_PAYLOAD, 'complexity_limit'),
        ))


__all__ = [
    'MARKUP_CATEGORIES',
    'PROSE_CATEGORIES',
    'ResidualThreat',
    'SanitizationReport',
    'ContentSanitizer',
]
