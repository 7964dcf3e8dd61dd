"""Analyzers turning CSV cell values and query terms into index terms.

Composable tokenizer + filter pipelines in the Whoosh style. Index time and
query time always go through the same analyzer for a given column, which is
what keeps ``field:value`` lookups symmetric.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
import re
from typing import Protocol


@dataclass
class Token:
    """A term emitted by an analyzer, with its position in the value."""

    text: str
    position: int
    start_char: int
    end_char: int

    def copy_with(self, **updates) -> Token:
        return replace(self, **updates)


class Analyzer(Protocol):
    """Protocol implemented by analyzers."""

    def __call__(self, text: str) -> list[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    """Protocol implemented by token filters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class RegexTokenizer:
    """Regex tokenizer yielding word tokens.

    The default pattern keeps inner apostrophes and dots together so values
    such as ``o'brien``, ``3.14`` or ``example.com`` stay single terms.
    """

    DEFAULT_PATTERN = r"\w+(?:['.]\w+)*"

    def __init__(self, pattern: str = DEFAULT_PATTERN, flags: int = re.UNICODE) -> None:
        self.pattern = re.compile(pattern, flags)

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            yield Token(
                text=match.group(0),
                position=position,
                start_char=match.start(),
                end_char=match.end(),
            )


class LowercaseFilter:
    """Lowercases token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.islower():
                yield token
            else:
                yield token.copy_with(text=token.text.lower())


DEFAULT_STOPWORDS = (
    "a",
    "an",
    "and",
    "are",
    "as",
    "at",
    "be",
    "but",
    "by",
    "for",
    "if",
    "in",
    "into",
    "is",
    "it",
    "no",
    "not",
    "of",
    "on",
    "or",
    "such",
    "that",
    "the",
    "their",
    "then",
    "there",
    "these",
    "they",
    "this",
    "to",
    "was",
    "will",
    "with",
)

_SUFFIX_RULES: tuple[tuple[str, str], ...] = (
    ("ization", "ize"),
    ("ational", "ate"),
    ("fulness", "ful"),
    ("ousness", "ous"),
    ("iveness", "ive"),
    ("tional", "tion"),
    ("ation", "ate"),
    ("ness", ""),
    ("ment", ""),
)

_SIMPLE_SUFFIXES: tuple[str, ...] = ("ingly", "edly", "ing", "ed", "ly", "es", "s")


class StopFilter:
    """Removes stopwords from the stream."""

    def __init__(self, stopwords: Sequence[str] | None = None) -> None:
        vocab = stopwords if stopwords is not None else DEFAULT_STOPWORDS
        self.stopwords = frozenset(word.lower() for word in vocab)

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.lower() not in self.stopwords:
                yield token


class SuffixStemFilter:
    """Strips common English suffixes (a small Porter-like stemmer)."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            stemmed = stem(token.text)
            yield token if stemmed == token.text else token.copy_with(text=stemmed)


def stem(word: str) -> str:
    lower = word.lower()
    for suffix, replacement in _SUFFIX_RULES:
        if lower.endswith(suffix) and len(lower) - len(suffix) >= 2:
            return lower[: -len(suffix)] + replacement
    for suffix in _SIMPLE_SUFFIXES:
        if lower.endswith(suffix) and len(lower) - len(suffix) >= 2:
            return lower[: -len(suffix)]
    return lower


class AnalyzerPipeline:
    """Tokenizer followed by zero or more filters."""

    def __init__(
        self,
        tokenizer: Callable[[str], Iterable[Token]],
        filters: Sequence[TokenFilter] | None = None,
    ) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters or [])

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        tokens = list(stream)
        for idx, token in enumerate(tokens):  # positions are dense after filtering
            token.position = idx
        return tokens


class KeywordAnalyzer:
    """Treats the whole value as one term, untouched."""

    def __call__(self, text: str) -> list[Token]:
        if not text:
            return []
        return [Token(text=text, position=0, start_char=0, end_char=len(text))]


class StandardAnalyzer:
    """Word tokenizer + lowercase, optionally with stopwords and stemming."""

    def __init__(self, *, stopwords: Sequence[str] | None = (), apply_stemming: bool = False) -> None:
        filters: list[TokenFilter] = [LowercaseFilter()]
        if stopwords is None or stopwords:
            filters.append(StopFilter(stopwords))
        if apply_stemming:
            filters.append(SuffixStemFilter())
        self.pipeline = AnalyzerPipeline(RegexTokenizer(), filters)

    def __call__(self, text: str) -> list[Token]:
        return self.pipeline(text)


_ANALYZER_FACTORIES: dict[str, Callable[[], Analyzer]] = {
    "standard": lambda: StandardAnalyzer(),
    "english": lambda: StandardAnalyzer(stopwords=None, apply_stemming=True),
    "english-nostem": lambda: StandardAnalyzer(stopwords=None),
    "keyword": lambda: KeywordAnalyzer(),
}

_ANALYZER_CACHE: dict[str, Analyzer] = {}


def available_analyzers() -> frozenset[str]:
    return frozenset(_ANALYZER_FACTORIES)


def get_analyzer(name: str | None) -> Analyzer:
    """Return analyzer by name, defaulting to the standard analyzer."""

    normalized = (name or "standard").lower()
    if normalized not in _ANALYZER_FACTORIES:
        msg = f"Unknown analyzer '{name}'. Available: {sorted(_ANALYZER_FACTORIES)}"
        raise ValueError(msg)
    analyzer = _ANALYZER_CACHE.get(normalized)
    if analyzer is None:
        analyzer = _ANALYZER_FACTORIES[normalized]()
        _ANALYZER_CACHE[normalized] = analyzer
    return analyzer
