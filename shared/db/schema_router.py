"""
Schema routing for raw SQL.

Repositories write their SQL against bare table names (``users``,
``orders``, ``order_items``). The router decides which physical schema a
statement must target and qualifies the table references accordingly.

Rather than substituting text with free-form patterns, the statement is
split into tokens (string literals, bind parameters, dotted identifier
chains, everything else). Table references are the identifier chains that
follow ``FROM``, ``JOIN``, ``INTO`` or ``UPDATE``; column references are
the remaining ``table.column`` chains. Because an existing qualifier that
names a known schema is *replaced* instead of prefixed, rewriting is
idempotent::

    rewrite(rewrite(sql, d), d) == rewrite(sql, d)
"""
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from shared.config.settings import SchemaMapping

TABLE_KEYWORDS = frozenset({"FROM", "JOIN", "INTO", "UPDATE"})

_IDENT = r"[A-Za-z_][A-Za-z0-9_$]*"

_TOKEN_RE = re.compile(
    r"""
      (?P<string>'(?:[^']|'')*')
    | (?P<quoted>"(?:[^"]|"")*")
    | (?P<cast>::)
    | (?P<bind>:{ident}|\$\d+)
    | (?P<chain>{ident}(?:\.{ident})*)
    | (?P<other>\s+|.)
    """.format(ident=_IDENT),
    re.VERBOSE | re.DOTALL,
)


@dataclass(frozen=True)
class TableRef:
    """A table reference found after FROM/JOIN/INTO/UPDATE."""

    table: str
    role: str
    schema: Optional[str]
    start: int
    end: int

    @property
    def qualified(self) -> str:
        return f"{self.schema}.{self.table}" if self.schema else self.table


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    start: int
    end: int


def _tokens(sql: str) -> Iterator[_Token]:
    for match in _TOKEN_RE.finditer(sql):
        kind = match.lastgroup
        yield _Token(kind, match.group(kind), match.start(), match.end())


class SchemaRouter:
    """Resolves domains to schemas and qualifies table references."""

    def __init__(self, mapping: SchemaMapping):
        self.mapping = mapping

    @property
    def enabled(self) -> bool:
        return self.mapping.enabled

    @property
    def default_schema(self) -> str:
        return self.mapping.default_schema

    def resolve_schema(self, domain: Optional[str]) -> str:
        if not self.mapping.enabled or domain is None:
            return self.mapping.default_schema
        return self.mapping.domain_schema(domain)

    # -- parsing -----------------------------------------------------------

    def _walk(self, sql: str) -> Iterator[Tuple[_Token, Optional[str]]]:
        """Yield identifier chains with the table keyword preceding them, if any."""
        previous_word = None
        for token in _tokens(sql):
            if token.kind == "chain":
                role = previous_word if previous_word in TABLE_KEYWORDS else None
                yield token, role
                previous_word = token.text.upper()
            elif token.kind == "other" and token.text.isspace():
                continue
            else:
                previous_word = None

    def table_refs(self, sql: str) -> List[TableRef]:
        refs = []
        for token, role in self._walk(sql):
            if role is None:
                continue
            parts = token.text.split(".")
            if len(parts) == 1:
                refs.append(TableRef(parts[0], role, None, token.start, token.end))
            elif len(parts) == 2:
                refs.append(TableRef(parts[1], role, parts[0], token.start, token.end))
        return refs

    def detect_domain(self, sql: str) -> Optional[str]:
        for ref in self.table_refs(sql):
            domain = self.mapping.domain_of(ref.table)
            if domain is not None:
                return domain
        return None

    # -- rewriting ---------------------------------------------------------

    def _owned(self, table: str, domain: str) -> bool:
        return self.mapping.domain_of(table) == domain

    def _qualify(self, text: str, role: Optional[str], domain: str, schema: str) -> str:
        parts = text.split(".")
        known = self.mapping.known_schemas

        if role is not None:
            # table position: "table" or "schema.table"
            if len(parts) == 1 and self._owned(parts[0], domain):
                return f"{schema}.{parts[0]}"
            if len(parts) == 2 and parts[0] in known and self._owned(parts[1], domain):
                return f"{schema}.{parts[1]}"
            return text

        # column position: "table.column" or "schema.table.column"
        if len(parts) == 2 and self._owned(parts[0], domain):
            return f"{schema}.{text}"
        if len(parts) == 3 and parts[0] in known and self._owned(parts[1], domain):
            return f"{schema}.{parts[1]}.{parts[2]}"
        return text

    def rewrite(self, sql: str, domain: Optional[str] = None, *, schema: Optional[str] = None) -> str:
        """
        Qualify every reference to a table of ``domain`` with its schema.

        ``domain`` is detected from the statement when omitted; a statement
        without a known table comes back unchanged. ``schema`` overrides the
        resolved schema (used to address the primary schema explicitly).
        """
        domain = domain or self.detect_domain(sql)
        if domain is None:
            return sql
        target = schema or self.resolve_schema(domain)

        pieces = []
        cursor = 0
        for token, role in self._walk(sql):
            replacement = self._qualify(token.text, role, domain, target)
            if replacement != token.text:
                pieces.append(sql[cursor:token.start])
                pieces.append(replacement)
                cursor = token.end
        pieces.append(sql[cursor:])
        return "".join(pieces)
