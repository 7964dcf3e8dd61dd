"""Parser for the classic Lucene query syntax accepted by ``find``.

Supported forms::

    name:smith                 term in one column
    smith                      term in every indexed column
    "john smith"~1             phrase, optional slop
    name:jo*  code:a?c         wildcards
    name:smyth~1               fuzzy term (0-2 edits)
    age:[20 TO 30]  {a TO *}   inclusive / exclusive ranges, open ends
    *:*                        every document
    a AND b, a && b, a OR b, a || b, NOT a, !a, +a, -a, (a b), name:(a b), a^2

Operator precedence is NOT > AND > OR > juxtaposition; juxtaposed clauses
combine like OR. Parsing happens against the index schema so that each
column's analyzer is applied to query terms exactly as it was at index time.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
import re

from csv_indexer.errors import QuerySyntaxError
from csv_indexer.search.analyzers import get_analyzer
from csv_indexer.search.fuzzy import MAX_EDITS
from csv_indexer.search.query import (
    BooleanClause,
    BooleanQuery,
    FuzzyQuery,
    MatchAllQuery,
    MatchNoneQuery,
    Occur,
    PhraseQuery,
    Query,
    RangeQuery,
    TermQuery,
    WildcardQuery,
)
from csv_indexer.search.schema import FieldType, Schema


class TokenKind(str, Enum):
    TERM = "term"
    PHRASE = "phrase"
    LPAREN = "("
    RPAREN = ")"
    COLON = ":"
    PLUS = "+"
    MINUS = "-"
    NOT = "not"
    AND = "and"
    OR = "or"
    TO = "to"
    BOOST = "^"
    TILDE = "~"
    RANGE_OPEN = "range_open"
    RANGE_CLOSE = "range_close"


@dataclass(frozen=True)
class QueryToken:
    kind: TokenKind
    text: str
    position: int
    glob: str | None = None  # set on TERM tokens holding an unescaped * or ?


_SINGLE_CHAR_TOKENS = {
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    ":": TokenKind.COLON,
    "+": TokenKind.PLUS,
    "-": TokenKind.MINUS,
    "!": TokenKind.NOT,
    "[": TokenKind.RANGE_OPEN,
    "{": TokenKind.RANGE_OPEN,
    "]": TokenKind.RANGE_CLOSE,
    "}": TokenKind.RANGE_CLOSE,
}
_KEYWORDS = {
    "AND": TokenKind.AND,
    "OR": TokenKind.OR,
    "NOT": TokenKind.NOT,
    "TO": TokenKind.TO,
}
_TERM_STOP = frozenset('()[]{}:^~"')
_NUMBER = re.compile(r"[0-9]*\.?[0-9]*")


def _glob_literal(char: str) -> str:
    return f"[{char}]" if char in "*?[" else char


def tokenize(text: str) -> list[QueryToken]:
    """Split a query string into tokens, resolving backslash escapes."""
    tokens: list[QueryToken] = []
    i = 0
    n = len(text)
    while i < n:
        char = text[i]
        if char.isspace():
            i += 1
            continue
        start = i
        if char in _SINGLE_CHAR_TOKENS:
            tokens.append(QueryToken(_SINGLE_CHAR_TOKENS[char], char, start))
            i += 1
        elif text.startswith("&&", i):
            tokens.append(QueryToken(TokenKind.AND, "&&", start))
            i += 2
        elif text.startswith("||", i):
            tokens.append(QueryToken(TokenKind.OR, "||", start))
            i += 2
        elif char == '"':
            token, i = _read_quoted(text, start)
            tokens.append(token)
        elif char in "^~":
            match = _NUMBER.match(text, i + 1)
            kind = TokenKind.BOOST if char == "^" else TokenKind.TILDE
            tokens.append(QueryToken(kind, match.group(0), start))
            i = match.end()
        else:
            token, i = _read_term(text, start)
            tokens.append(token)
    return tokens


def _read_quoted(text: str, start: int) -> tuple[QueryToken, int]:
    buffer: list[str] = []
    i = start + 1
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text):
            buffer.append(text[i + 1])
            i += 2
            continue
        if char == '"':
            return QueryToken(TokenKind.PHRASE, "".join(buffer), start), i + 1
        buffer.append(char)
        i += 1
    raise QuerySyntaxError("Unterminated quoted phrase", query=text, position=start)


def _read_term(text: str, start: int) -> tuple[QueryToken, int]:
    chars: list[str] = []
    glob: list[str] = []
    wildcard = False
    escaped = False
    i = start
    while i < len(text):
        char = text[i]
        if char == "\\":
            if i + 1 >= len(text):
                raise QuerySyntaxError("Trailing escape character", query=text, position=i)
            literal = text[i + 1]
            chars.append(literal)
            glob.append(_glob_literal(literal))
            escaped = True
            i += 2
            continue
        if char.isspace() or char in _TERM_STOP:
            break
        if char in "*?":
            wildcard = True
            glob.append(char)
        else:
            glob.append(_glob_literal(char))
        chars.append(char)
        i += 1

    raw = "".join(chars)
    if not escaped and raw in _KEYWORDS:
        return QueryToken(_KEYWORDS[raw], raw, start), i
    return QueryToken(TokenKind.TERM, raw, start, glob="".join(glob) if wildcard else None), i


_Clause = tuple[Occur | None, Query]


def _combine(items: list[_Clause], default: Occur) -> Query:
    if len(items) == 1 and items[0][0] is not Occur.MUST_NOT:
        return items[0][1]
    return BooleanQuery(clauses=tuple(BooleanClause(occur or default, query) for occur, query in items))


class QueryParser:
    """Turns query strings into native query trees for one index schema."""

    def __init__(self, schema: Schema, *, fuzzy_max_edits: int = MAX_EDITS) -> None:
        self.schema = schema
        self.fuzzy_max_edits = fuzzy_max_edits

    def parse(self, text: str) -> Query:
        tokens = tokenize(text)
        if not tokens:
            raise QuerySyntaxError("Query is empty", query=text)
        return _Parser(self, text, tokens).parse()

    # Analysis of leaf values -------------------------------------------------

    def _expand(self, field: str | None, build: Callable[[str], Query]) -> Query:
        """Build the leaf for one field, or OR it across every indexed field."""
        if field is not None:
            return build(field)
        queries = [build(f.name) for f in self.schema.indexed_fields]
        queries = [q for q in queries if not isinstance(q, MatchNoneQuery)]
        if not queries:
            return MatchNoneQuery()
        if len(queries) == 1:
            return queries[0]
        return BooleanQuery(clauses=tuple(BooleanClause(Occur.SHOULD, q) for q in queries))

    def _is_keyword(self, field: str) -> bool:
        schema_field = self.schema.get(field)
        return schema_field is not None and schema_field.field_type is FieldType.KEYWORD

    def _analyzed(self, field: str, text: str, slop: int) -> Query:
        schema_field = self.schema.get(field)
        if schema_field is None or not schema_field.indexed:
            return MatchNoneQuery()
        if schema_field.field_type is FieldType.KEYWORD:
            return TermQuery(field, text)
        terms = tuple(token.text for token in get_analyzer(schema_field.analyzer_name)(text))
        if not terms:
            return MatchNoneQuery()
        if len(terms) == 1:
            return TermQuery(field, terms[0])
        return PhraseQuery(field, terms, slop)

    def term(self, field: str | None, text: str) -> Query:
        return self._expand(field, lambda name: self._analyzed(name, text, 0))

    def phrase(self, field: str | None, text: str, slop: int) -> Query:
        return self._expand(field, lambda name: self._analyzed(name, text, slop))

    def wildcard(self, field: str | None, pattern: str) -> Query:
        def build(name: str) -> Query:
            if name not in self.schema:
                return MatchNoneQuery()
            return WildcardQuery(name, pattern if self._is_keyword(name) else pattern.lower())

        return self._expand(field, build)

    def fuzzy(self, field: str | None, text: str, max_edits: int) -> Query:
        def build(name: str) -> Query:
            if name not in self.schema:
                return MatchNoneQuery()
            return FuzzyQuery(name, text if self._is_keyword(name) else text.lower(), max_edits)

        return self._expand(field, build)

    def range(
        self,
        field: str | None,
        lower: str | None,
        upper: str | None,
        include_lower: bool,
        include_upper: bool,
    ) -> Query:
        def build(name: str) -> Query:
            if name not in self.schema:
                return MatchNoneQuery()
            keyword = self._is_keyword(name)
            low = lower if keyword or lower is None else lower.lower()
            high = upper if keyword or upper is None else upper.lower()
            return RangeQuery(name, low, high, include_lower, include_upper)

        return self._expand(field, build)


class _Parser:
    """Recursive-descent pass over one token list."""

    def __init__(self, owner: QueryParser, text: str, tokens: list[QueryToken]) -> None:
        self.owner = owner
        self.text = text
        self.tokens = tokens
        self.index = 0

    def peek(self) -> QueryToken | None:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def at(self, *kinds: TokenKind) -> bool:
        token = self.peek()
        return token is not None and token.kind in kinds

    def advance(self) -> QueryToken:
        token = self.peek()
        if token is None:
            raise self.error("Unexpected end of query")
        self.index += 1
        return token

    def error(self, message: str, token: QueryToken | None = None) -> QuerySyntaxError:
        position = token.position if token is not None else len(self.text)
        return QuerySyntaxError(message, query=self.text, position=position)

    def parse(self) -> Query:
        query = self.parse_sequence(None)
        token = self.peek()
        if token is not None:
            raise self.error("Unbalanced ')'", token)
        return query

    def parse_sequence(self, field: str | None) -> Query:
        items: list[_Clause] = []
        while self.peek() is not None and not self.at(TokenKind.RPAREN):
            items.append(self.parse_disjunction(field))
        if not items:
            raise self.error("Unbalanced ')'", self.peek())
        return _combine(items, Occur.SHOULD)

    def parse_disjunction(self, field: str | None) -> _Clause:
        items = [self.parse_conjunction(field)]
        while self.at(TokenKind.OR):
            operator = self.advance()
            self._require_operand(operator, prefix_allowed=True)
            items.append(self.parse_conjunction(field))
        if len(items) == 1:
            return items[0]
        return None, _combine(items, Occur.SHOULD)

    def parse_conjunction(self, field: str | None) -> _Clause:
        items = [self.parse_modified(field)]
        while self.at(TokenKind.AND):
            operator = self.advance()
            self._require_operand(operator, prefix_allowed=True)
            items.append(self.parse_modified(field))
        if len(items) == 1:
            return items[0]
        return None, _combine(items, Occur.MUST)

    def parse_modified(self, field: str | None) -> _Clause:
        token = self.peek()
        if token is not None and token.kind in (TokenKind.PLUS, TokenKind.MINUS, TokenKind.NOT):
            self.advance()
            self._require_operand(token)
            occur = Occur.MUST if token.kind is TokenKind.PLUS else Occur.MUST_NOT
            return occur, self.parse_primary(field)
        return None, self.parse_primary(field)

    def _require_operand(self, operator: QueryToken, *, prefix_allowed: bool = False) -> None:
        """Fail unless a clause follows ``operator``.

        ``AND`` and ``OR`` may be followed by a prefixed clause (``a AND NOT b``);
        a prefix operator may not be followed by another one.
        """
        rejected = {TokenKind.RPAREN, TokenKind.AND, TokenKind.OR}
        if not prefix_allowed:
            rejected |= {TokenKind.PLUS, TokenKind.MINUS, TokenKind.NOT}
        following = self.peek()
        if following is None or following.kind in rejected:
            raise self.error(f"Missing operand after '{operator.text}'", following)

    def parse_primary(self, field: str | None) -> Query:
        token = self.advance()
        kind = token.kind
        if kind is TokenKind.LPAREN:
            return self._finish_group(field, token)
        if kind in (TokenKind.TERM, TokenKind.TO) and self.at(TokenKind.COLON):
            self.advance()
            return self._parse_field_value(token)
        if kind is TokenKind.PHRASE:
            return self._finish_phrase(field, token)
        if kind is TokenKind.RANGE_OPEN:
            return self._finish_range(field, token)
        if kind in (TokenKind.TERM, TokenKind.TO):
            return self._finish_term(field, token)
        if kind is TokenKind.RPAREN:
            raise self.error("Unbalanced ')'", token)
        if kind is TokenKind.COLON:
            raise self.error("Missing field name before ':'", token)
        raise self.error(f"Unexpected '{token.text or kind.value}'", token)

    def _parse_field_value(self, name_token: QueryToken) -> Query:
        name = name_token.text
        value = self.peek()
        if value is None or value.kind not in (
            TokenKind.TERM,
            TokenKind.TO,
            TokenKind.PHRASE,
            TokenKind.LPAREN,
            TokenKind.RANGE_OPEN,
        ):
            raise self.error(f"Missing value after '{name}:'", value)
        self.advance()
        if name_token.glob == "*":
            if value.glob == "*":
                return self._finish_boost(MatchAllQuery())
            raise self.error("Only '*:*' may use the '*' field", name_token)
        if value.kind is TokenKind.LPAREN:
            return self._finish_group(name, value)
        if value.kind is TokenKind.PHRASE:
            return self._finish_phrase(name, value)
        if value.kind is TokenKind.RANGE_OPEN:
            return self._finish_range(name, value)
        return self._finish_term(name, value)

    def _finish_group(self, field: str | None, open_token: QueryToken) -> Query:
        if self.at(TokenKind.RPAREN):
            raise self.error("Empty group", self.peek())
        query = self.parse_sequence(field)
        if not self.at(TokenKind.RPAREN):
            raise self.error("Missing ')'", open_token)
        self.advance()
        return self._finish_boost(query)

    def _finish_term(self, field: str | None, token: QueryToken) -> Query:
        max_edits: int | None = None
        if self.at(TokenKind.TILDE):
            tilde = self.advance()
            if token.glob is not None:
                raise self.error("Fuzzy modifier cannot follow a wildcard term", tilde)
            max_edits = self._fuzzy_edits(tilde)
        if token.glob is not None:
            query = self.owner.wildcard(field, token.glob)
        elif max_edits is not None:
            query = self.owner.fuzzy(field, token.text, max_edits)
        else:
            query = self.owner.term(field, token.text)
        return self._finish_boost(query)

    def _fuzzy_edits(self, tilde: QueryToken) -> int:
        if tilde.text == "":
            return self.owner.fuzzy_max_edits
        if not tilde.text.isdigit():
            raise self.error(f"Invalid fuzzy edit distance '{tilde.text}'", tilde)
        edits = int(tilde.text)
        if edits > MAX_EDITS:
            raise self.error(f"Fuzzy edit distance must be between 0 and {MAX_EDITS}", tilde)
        return edits

    def _finish_phrase(self, field: str | None, token: QueryToken) -> Query:
        slop = 0
        if self.at(TokenKind.TILDE):
            tilde = self.advance()
            if not tilde.text.isdigit():
                raise self.error(f"Invalid phrase slop '{tilde.text}'", tilde)
            slop = int(tilde.text)
        return self._finish_boost(self.owner.phrase(field, token.text, slop))

    def _finish_range(self, field: str | None, open_token: QueryToken) -> Query:
        lower = self._range_bound()
        if not self.at(TokenKind.TO):
            raise self.error("Range must use 'TO' between bounds", self.peek())
        self.advance()
        upper = self._range_bound()
        if not self.at(TokenKind.RANGE_CLOSE):
            raise self.error("Missing closing bracket for range", open_token)
        close = self.advance()
        query = self.owner.range(field, lower, upper, open_token.text == "[", close.text == "]")
        return self._finish_boost(query)

    def _range_bound(self) -> str | None:
        token = self.peek()
        if token is None or token.kind not in (TokenKind.TERM, TokenKind.PHRASE):
            raise self.error("Missing range bound", token)
        self.advance()
        if token.glob == "*":
            return None
        return token.text

    def _finish_boost(self, query: Query) -> Query:
        if not self.at(TokenKind.BOOST):
            return query
        caret = self.advance()
        if not caret.text:
            raise self.error("Missing boost value", caret)
        try:
            boost = float(caret.text)
        except ValueError:
            raise self.error(f"Invalid boost '{caret.text}'", caret) from None
        return replace(query, boost=boost)


def parse_query(text: str, schema: Schema, *, fuzzy_max_edits: int = MAX_EDITS) -> Query:
    """Convenience wrapper around ``QueryParser(schema).parse(text)``."""
    return QueryParser(schema, fuzzy_max_edits=fuzzy_max_edits).parse(text)
