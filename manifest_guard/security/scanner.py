"""
Security pattern scanner for untrusted text.

Stateless detectors that classify a string as carrying a known injection
payload. Every detector keys on syntactic markers (tags, attribute syntax,
statement punctuation, shell metacharacters, URL structure) rather than on
natural-language keywords, so ordinary multilingual prose such as
"What is GDPR compliance?" is clean in every category.

Each pattern is compiled on its own together with the literals any match
must contain. A pattern only runs when its literals occur in the casefolded
text, which keeps multi-megabyte prose scans to a few substring searches.
When several patterns of one category match, the leftmost match names the
pattern reported in the ThreatMatch.
"""

import base64
import binascii
import ipaddress
import itertools
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple
from urllib.parse import urlsplit

from manifest_guard.utils.config import ScannerConfig


class ThreatCategory(Enum):
    """Categories of dangerous content recognised by the scanners."""
    SCRIPT_INJECTION = "script_injection"
    MUTATION_XSS = "mutation_xss"
    ENCODED_PAYLOAD = "encoded_payload"
    SQL_INJECTION = "sql_injection"
    COMMAND_INJECTION = "command_injection"
    CSS_INJECTION = "css_injection"
    URL_RISK = "url_risk"
    FILE_SIGNATURE = "file_signature"
    POLYGLOT = "polyglot"
    DECOMPRESSION_BOMB = "decompression_bomb"


TEXT_CATEGORIES = (
    ThreatCategory.SCRIPT_INJECTION,
    ThreatCategory.MUTATION_XSS,
    ThreatCategory.ENCODED_PAYLOAD,
    ThreatCategory.SQL_INJECTION,
    ThreatCategory.COMMAND_INJECTION,
    ThreatCategory.CSS_INJECTION,
    ThreatCategory.URL_RISK,
)


@dataclass(frozen=True)
class ThreatMatch:
    """One detector hit: the category and the name of the pattern."""
    category: ThreatCategory
    pattern: str

    def describe(self) -> str:
        return f"{self.category.value} ({self.pattern})"


@dataclass(frozen=True)
class ScanResult:
    matches: Tuple[ThreatMatch, ...] = ()

    @property
    def matched(self) -> bool:
        return bool(self.matches)

    @property
    def categories(self) -> Tuple[ThreatCategory, ...]:
        seen = []
        for match in self.matches:
            if match.category not in seen:
                seen.append(match.category)
        return tuple(seen)

    def __bool__(self) -> bool:
        return self.matched

    def merge(self, other: 'ScanResult') -> 'ScanResult':
        return ScanResult(self.matches + other.matches)


@dataclass(frozen=True)
class TextPattern:
    """
    A named regex plus the literals that any match contains.

    ``requires`` holds groups of lowercase literals; every group must have at
    least one member present in the casefolded text before the regex runs.
    """
    name: str
    regex: Pattern
    requires: Tuple[Tuple[str, ...], ...] = ()

    def applies_to(self, folded: str) -> bool:
        return all(any(literal in folded for literal in group) for group in self.requires)


def _compile(patterns: Sequence[tuple], flags: int = re.IGNORECASE) -> Tuple[TextPattern, ...]:
    return tuple(
        TextPattern(name, re.compile(regex, flags), requires)
        for name, regex, requires in patterns
    )


_QUOTES = ("'", '"')

SCRIPT_PATTERNS = [
    ('script_tag', r'<\s*/?\s*script\b', (('<',), ('script',))),
    ('event_handler', r'<[a-z/!?][^<>]*?\bon[a-z]{3,}\s*=\s*["\'`]?[^\s"\'`>]', (('<',), ('on',), ('=',))),
    ('javascript_scheme', r'\b(?:java|vb|live)\s*script\s*:', (('script',), (':',))),
    ('data_html_scheme', r'\bdata\s*:\s*text/html', (('text/html',),)),
    ('eval_call', r'\beval\s*\(', (('eval',), ('(',))),
    ('alert_call', r'\b(?:alert|prompt|confirm)\(\s*["\'\d)]', (('alert(', 'prompt(', 'confirm('),)),
    ('document_access', r'\bdocument\s*\.\s*(?:cookie|write|domain|location)\b', (('document',), ('.',))),
    ('window_location', r'\bwindow\s*\.\s*location\b', (('window',), ('location',))),
    ('function_constructor', r'\bnew\s+function\s*\(', (('function',), ('(',))),
    ('constructor_access', r'\[\s*["\']constructor["\']\s*\]', (('constructor',),)),
    ('function_declaration', r'\bfunction\s+\w*\s*\([^()]*\)\s*\{', (('function',), ('{',))),
    (
        'dangerous_tag',
        r'<\s*(?:iframe|object|embed|applet|base|meta|link|frameset)\b',
        (('<',), ('iframe', 'object', 'embed', 'applet', 'base', 'meta', 'link', 'frameset')),
    ),
]

MUTATION_XSS_PATTERNS = [
    ('svg_handler', r'<\s*svg\b[^>]*?\bon[a-z]+\s*=', (('svg',), ('=',))),
    ('iframe_srcdoc', r'<\s*iframe\b[^>]*?\bsrcdoc\s*=', (('srcdoc',),)),
    (
        'input_autofocus',
        r'<\s*(?:input|select|textarea|keygen)\b[^>]*?\b(?:autofocus|on[a-z]+\s*=)',
        (('<',), ('input', 'select', 'textarea', 'keygen')),
    ),
    (
        'math_href',
        r'<\s*math\b[^>]*?\b(?:xlink:)?href\s*=\s*["\']?\s*(?:java|vb)script:',
        (('math',), ('script:',)),
    ),
    (
        'table_background',
        r'<\s*(?:table|td|body)\b[^>]*?\bbackground\s*=\s*["\']?\s*(?:java|vb)script:',
        (('background',), ('script:',)),
    ),
    ('details_toggle', r'<\s*details\b[^>]*?\bontoggle\s*=', (('ontoggle',),)),
    (
        'noscript_breakout',
        r'<\s*noscript\b[^>]*>[^<]*<\s*/\s*noscript[^>]*>[^<]*<\s*(?:img|svg|script)\b',
        (('noscript',),),
    ),
]

ENCODED_PATTERNS = [
    ('hex_escape', r'(?:\\x[0-9a-f]{2}){2,}', (('\\x',),)),
    ('unicode_escape', r'(?:\\u\{?[0-9a-f]{4}\}?){2,}', (('\\u',),)),
    ('numeric_entities', r'(?:&#(?:x[0-9a-f]{1,6}|\d{1,7});?){3,}', (('&#',),)),
    ('char_code_assembly', r'\bString\s*\.\s*fromCharCode\s*\(', (('fromcharcode',),)),
    (
        'runtime_decoder',
        r'\b(?:atob|unescape|decodeURIComponent)\s*\(\s*["\'`]',
        (('atob', 'unescape', 'decodeuricomponent'), ('(',)),
    ),
    ('base64_data_uri', r'\bdata\s*:[^,;\s]*;\s*base64\s*,', (('base64',),)),
]

SQL_PATTERNS = [
    (
        'stacked_statement',
        r'["\']\s*;\s*(?:drop|delete|update|insert|exec|execute|alter|create|truncate|shutdown)\b',
        (_QUOTES, (';',)),
    ),
    ('union_select', r'\bunion\s+(?:all\s+)?select\b', (('union',), ('select',))),
    (
        'insert_values',
        r'\binsert\s+into\s+[\w.`"\[\]]+\s*(?:\([^)]*\)\s*)?values\s*\(',
        (('insert',), ('values',)),
    ),
    ('drop_object', r'\bdrop\s+(?:table|database|schema|view|index)\s+[\w.`"\[]', (('drop',),)),
    ('delete_from', r'\bdelete\s+from\s+[\w.`"\[\]]+\s*(?:where\b|;|--|$)', (('delete',), ('from',))),
    ('quoted_tautology', r'["\']\s*(?:or|and)\s+["\']?\w+["\']?\s*=\s*["\']?\w+', (_QUOTES, ('=',))),
    ('numeric_tautology', r'\b(?:or|and)\s+(?P<taut>\d+)\s*=\s*(?P=taut)\b', (('=',),)),
    ('comment_termination', r'["\']\s*\)?\s*(?:--|/\*|#\s*$)', (_QUOTES, ('--', '/*', '#'))),
    ('timing_function', r'\b(?:sleep|benchmark|pg_sleep)\s*\(\s*\d', (('sleep', 'benchmark'), ('(',))),
    ('waitfor_delay', r'\bwaitfor\s+delay\b', (('waitfor',),)),
    ('extended_procedure', r'\b(?:xp_cmdshell|sp_executesql|xp_regread)\b', (('xp_', 'sp_executesql'),)),
    ('information_schema', r'\binformation_schema\s*\.', (('information_schema',),)),
]

_SHELL_BINARY = (
    r'(?:rm\s+-|wget\s+\S|curl\s+\S|nc\s+\S+\s+\d|ncat\s|netcat\s|chmod\s+[0-7+]|chown\s'
    r'|whoami\b|format\s+[a-z]:|powershell\b|cmd(?:\.exe)?\s+/|mkfifo\s|telnet\s+\S'
    r'|bash\s+-[ci]|cat\s+/|uname\s+-)'
)

COMMAND_PATTERNS = [
    ('chained_binary', r'(?:;|&&?|\|\|?)\s*' + _SHELL_BINARY, ((';', '&', '|'),)),
    ('destructive_delete', r'\brm\s+-[a-z]*[rf][a-z]*\s+[/~.*]', (('rm',), ('-',))),
    ('pipe_to_shell', r'\|\s*(?:ba|z|k|c|da)?sh\b', (('|',), ('sh',))),
    ('command_substitution', r'\$\(\s*[a-z/]', (('$(',),)),
    ('variable_expansion', r'\$\{[a-z_][a-z0-9_]*(?::[-=?+][^}]*)?\}', (('${',),)),
    (
        'backtick_command',
        r'`[^`\n]*\b(?:cat|ls|id|whoami|uname|rm|wget|curl|nc|bash|sh)\b[^`\n]*`',
        (('`',),),
    ),
    (
        'network_fetch',
        r'\b(?:wget|curl)\s+(?:-\S+\s+)*(?:(?:https?|ftp)://)?[\w-]+(?:\.[\w-]+)+',
        (('wget', 'curl'),),
    ),
    ('system_redirect', r'>>?\s*/(?:etc|bin|sbin|usr|dev|boot|var|tmp)/', (('>',), ('/',))),
    ('sensitive_file', r'/etc/(?:passwd|shadow|hosts|sudoers)\b', (('/etc/',),)),
]

CSS_PATTERNS = [
    ('css_expression', r'(?::\s*expression\s*\(|\bexpression\()', (('expression',), ('(',))),
    ('css_javascript_url', r'\burl\s*\(\s*["\']?\s*(?:java|vb)script:', (('url',), ('script:',))),
    ('css_behavior', r'\bbehavior\s*:\s*url\s*\(', (('behavior',),)),
    ('css_import', r'@import\s+(?:url\s*\(|["\'])', (('@import',),)),
    ('css_binding', r'-moz-binding\s*:', (('-moz-binding',),)),
]

_SCRIPT_PATTERNS = _compile(SCRIPT_PATTERNS)
_MUTATION_XSS_PATTERNS = _compile(MUTATION_XSS_PATTERNS, re.IGNORECASE | re.DOTALL)
_ENCODED_PATTERNS = _compile(ENCODED_PATTERNS)
_SQL_PATTERNS = _compile(SQL_PATTERNS, re.IGNORECASE | re.MULTILINE)
_COMMAND_PATTERNS = _compile(COMMAND_PATTERNS)
_CSS_PATTERNS = _compile(CSS_PATTERNS)

_BASE64_TOKEN_RE = re.compile(r'(?<![A-Za-z0-9+/])[A-Za-z0-9+/]{16,}={0,2}(?![A-Za-z0-9+/=])')
_DECODED_MARKER_RE = re.compile(
    r'<\s*script|(?:java|vb)script\s*:|\bon[a-z]{3,}\s*=|\beval\s*\(|\balert\s*\(|document\s*\.\s*cookie',
    re.IGNORECASE,
)
_BASE64_TOKEN_LIMIT = 64

_URL_RE = re.compile(r'\b[a-z][a-z0-9+.-]*://[^\s"\'<>`]+', re.IGNORECASE)
_DOMAIN_RE = re.compile(r'(?<![\w@.-])(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,}\b', re.IGNORECASE)

DEFAULT_SCANNER_CONFIG = ScannerConfig()


def _first_match(
    patterns: Tuple[TextPattern, ...],
    category: ThreatCategory,
    text: str,
    folded: Optional[str] = None,
) -> List[ThreatMatch]:
    # casefold folds look-alikes such as the long s that IGNORECASE also matches.
    folded = text.casefold() if folded is None else folded
    best: Optional[Tuple[int, str]] = None
    for pattern in patterns:
        if not pattern.applies_to(folded):
            continue
        match = pattern.regex.search(text)
        if match is not None and (best is None or match.start() < best[0]):
            best = (match.start(), pattern.name)
    if best is None:
        return []
    return [ThreatMatch(category, best[1])]


def detect_script_injection(text: str, folded: Optional[str] = None) -> List[ThreatMatch]:
    return _first_match(_SCRIPT_PATTERNS, ThreatCategory.SCRIPT_INJECTION, text, folded)


def detect_mutation_xss(text: str, folded: Optional[str] = None) -> List[ThreatMatch]:
    return _first_match(_MUTATION_XSS_PATTERNS, ThreatCategory.MUTATION_XSS, text, folded)


def detect_encoded_payload(text: str, folded: Optional[str] = None) -> List[ThreatMatch]:
    """Escape sequences, entity runs, runtime decoders and base64-wrapped scripts."""
    found = _first_match(_ENCODED_PATTERNS, ThreatCategory.ENCODED_PAYLOAD, text, folded)
    if found:
        return found
    tokens = itertools.islice(_BASE64_TOKEN_RE.finditer(text), _BASE64_TOKEN_LIMIT)
    for token in tokens:
        if _decodes_to_script(token.group(0)):
            return [ThreatMatch(ThreatCategory.ENCODED_PAYLOAD, 'base64_script')]
    return []


def _decodes_to_script(token: str) -> bool:
    padded = token + '=' * (-len(token) % 4)
    try:
        decoded = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError):
        return False
    return _DECODED_MARKER_RE.search(decoded.decode('latin-1')) is not None


def detect_sql_injection(text: str, folded: Optional[str] = None) -> List[ThreatMatch]:
    return _first_match(_SQL_PATTERNS, ThreatCategory.SQL_INJECTION, text, folded)


def detect_command_injection(text: str, folded: Optional[str] = None) -> List[ThreatMatch]:
    return _first_match(_COMMAND_PATTERNS, ThreatCategory.COMMAND_INJECTION, text, folded)


def detect_css_injection(text: str, folded: Optional[str] = None) -> List[ThreatMatch]:
    return _first_match(_CSS_PATTERNS, ThreatCategory.CSS_INJECTION, text, folded)


def _domain_matches(host: str, domains: Iterable[str]) -> bool:
    return any(host == domain or host.endswith('.' + domain) for domain in domains)


def classify_url(url: str, config: Optional[ScannerConfig] = None) -> Optional[str]:
    """
    Return the name of the risk a URL carries, or None for an acceptable URL.

    Args:
        url: Absolute URL with a ``scheme://`` prefix
        config: Scanner configuration holding the domain lists
    """
    config = config or DEFAULT_SCANNER_CONFIG
    try:
        parts = urlsplit(url)
        host = (parts.hostname or '').rstrip('.').lower()
        username = parts.username
        password = parts.password
    except ValueError:
        return 'malformed_url'

    scheme = parts.scheme.lower()
    if scheme == 'file':
        return 'file_scheme'
    if scheme == 'ftp' and (username or password):
        return 'credentialed_ftp'
    if not host:
        return None
    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        return 'ip_literal_host'
    if _domain_matches(host, config.blocked_domains):
        return 'blocked_domain'
    if _domain_matches(host, config.shortener_domains):
        return 'url_shortener'
    if host.rsplit('.', 1)[-1] in config.free_tlds:
        return 'free_tld'
    return None


def detect_url_risk(
    text: str,
    config: Optional[ScannerConfig] = None,
    folded: Optional[str] = None,
) -> List[ThreatMatch]:
    """Risky URLs, plus bare mentions of blocklisted or shortener domains."""
    config = config or DEFAULT_SCANNER_CONFIG
    if '://' in text:
        for match in _URL_RE.finditer(text):
            risk = classify_url(match.group(0), config)
            if risk is not None:
                return [ThreatMatch(ThreatCategory.URL_RISK, risk)]
    folded = text.casefold() if folded is None else folded
    listed = config.blocked_domains + config.shortener_domains
    if not any(domain in folded for domain in listed):
        return []
    for match in _DOMAIN_RE.finditer(text):
        host = match.group(0).lower()
        if _domain_matches(host, config.blocked_domains):
            return [ThreatMatch(ThreatCategory.URL_RISK, 'blocked_domain')]
        if _domain_matches(host, config.shortener_domains):
            return [ThreatMatch(ThreatCategory.URL_RISK, 'url_shortener')]
    return []


_DETECTORS = {
    ThreatCategory.SCRIPT_INJECTION: detect_script_injection,
    ThreatCategory.MUTATION_XSS: detect_mutation_xss,
    ThreatCategory.ENCODED_PAYLOAD: detect_encoded_payload,
    ThreatCategory.SQL_INJECTION: detect_sql_injection,
    ThreatCategory.COMMAND_INJECTION: detect_command_injection,
    ThreatCategory.CSS_INJECTION: detect_css_injection,
}


def scan_text(
    text: str,
    categories: Optional[Iterable[ThreatCategory]] = None,
    config: Optional[ScannerConfig] = None,
) -> ScanResult:
    """
    Run the text detectors over a string.

    Args:
        text: String to classify
        categories: Restrict scanning to these categories, all text categories by default
        config: Scanner configuration for URL domain lists

    Returns:
        ScanResult with at most one ThreatMatch per category
    """
    if not isinstance(text, str) or not text:
        return ScanResult()
    folded = text.casefold()
    matches: List[ThreatMatch] = []
    for category in (TEXT_CATEGORIES if categories is None else categories):
        if category is ThreatCategory.URL_RISK:
            matches.extend(detect_url_risk(text, config, folded))
        elif category in _DETECTORS:
            matches.extend(_DETECTORS[category](text, folded))
    return ScanResult(tuple(matches))


def is_malicious(text: str, config: Optional[ScannerConfig] = None) -> bool:
    """True if any text detector matches."""
    return scan_text(text, config=config).matched


__all__ = [
    'ThreatCategory',
    'TEXT_CATEGORIES',
    'ThreatMatch',
    'ScanResult',
    'TextPattern',
    'detect_script_injection',
    'detect_mutation_xss',
    'detect_encoded_payload',
    'detect_sql_injection',
    'detect_command_injection',
    'detect_css_injection',
    'detect_url_risk',
    'classify_url',
    'scan_text',
    'is_malicious',
]
