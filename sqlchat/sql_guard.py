from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple

import sqlglot
from sqlglot import expressions as exp
from sqlglot.errors import SqlglotError
from sqlglot.tokens import Token, TokenType

from .config import SQLGuardConfig
from .errors import RejectionReason, SqlRejected

BLOCKED_KEYWORDS: Tuple[str, ...] = (
    "insert", "update", "delete", "drop", "alter", "truncate", "create",
    "grant", "revoke", "copy", "call", "execute", "prepare", "deallocate",
    "refresh", "vacuum", "analyze", "begin", "commit", "rollback", "set",
    "listen", "notify",
)

BLOCKED_FUNCTIONS: Tuple[str, ...] = (
    "pg_read_file", "pg_read_binary_file", "pg_ls_dir", "pg_stat_file",
    "lo_import", "lo_export", "dblink", "postgres_fdw",
)

SENSITIVE_TOKENS: Tuple[str, ...] = (
    "email", "e_mail", "phone", "mobile", "contact", "nid", "ssn",
    "passport", "dob", "address",
)

_FENCE_OPEN_RE = re.compile(r"^```(?:sql)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```$")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"--[^\n]*")
_READ_ONLY_RE = re.compile(r"^(?:select|with)\b")
_FUNCTION_RE = re.compile(r"\b(" + "|".join(BLOCKED_FUNCTIONS) + r")\s*\(", re.IGNORECASE)
_SELECT_STAR_RE = re.compile(r"\bselect\s+(?:(?:distinct|all)\s+)?\*", re.IGNORECASE)
_SENSITIVE_RE = re.compile(r"\b(" + "|".join(SENSITIVE_TOKENS) + r")\b", re.IGNORECASE)

_READ_ONLY_ROOTS = (exp.Select, exp.Union, exp.Intersect, exp.Except)
_WRITE_NODES = (exp.Insert, exp.Update, exp.Delete, exp.Create, exp.Drop, exp.Command)

_MINT = object()


class ValidatedSql(str):
    """SQL text that passed every guard stage. Only SqlGuard.guard() can create one."""

    __slots__ = ()

    def __new__(cls, value: str, _mint: object = None):
        if _mint is not _MINT:
            raise TypeError("ValidatedSql can only be produced by SqlGuard.guard()")
        return super().__new__(cls, value)


def _keyword_pattern(extra: Iterable[str]) -> "re.Pattern[str]":
    words: List[str] = list(BLOCKED_KEYWORDS)
    for word in extra:
        word = word.strip().lower()
        if word and word not in words:
            words.append(word)
    return re.compile(r"\b(" + "|".join(re.escape(w) for w in words) + r")\b", re.IGNORECASE)


def _limit_clauses(sql: str) -> List[Tuple[int, Optional[Token]]]:
    """Parenthesis depth and argument token of every LIMIT keyword in ``sql``.

    Uses the postgres tokenizer so keywords inside quoted, dollar-quoted or
    escape strings are never mistaken for clauses.
    """
    try:
        tokens = sqlglot.tokenize(sql, read="postgres")
    except SqlglotError as exc:
        raise SqlRejected(RejectionReason.UNPARSABLE, "statement could not be tokenized") from exc
    clauses: List[Tuple[int, Optional[Token]]] = []
    depth = 0
    for index, token in enumerate(tokens):
        if token.token_type == TokenType.L_PAREN:
            depth += 1
        elif token.token_type == TokenType.R_PAREN:
            depth = max(0, depth - 1)
        elif token.token_type == TokenType.LIMIT:
            argument = tokens[index + 1] if index + 1 < len(tokens) else None
            clauses.append((depth, argument))
    return clauses


class SqlGuard:
    """Turns an untrusted candidate statement into ValidatedSql or raises SqlRejected.

    Stages run in order and the first failure wins. The guard does no I/O and
    is idempotent: guarding its own output returns the same text.
    """

    def __init__(self, cfg: SQLGuardConfig | None = None):
        self._cfg = cfg or SQLGuardConfig()
        self._keyword_re = _keyword_pattern(self._cfg.extra_blocked_keywords)

    def guard(self, candidate: str) -> ValidatedSql:
        sql = self._strip_fences(candidate or "")
        sql = self._strip_comments(sql)
        if not sql:
            raise SqlRejected(RejectionReason.EMPTY, "statement is empty")
        sql = self._enforce_single_statement(sql)
        self._enforce_read_only(sql)
        self._enforce_blocked_keywords(sql)
        self._enforce_blocked_functions(sql)
        if self._cfg.disallow_select_star:
            self._enforce_no_select_star(sql)
        if self._cfg.block_pii_columns:
            self._enforce_no_sensitive_fields(sql)
        sql = self._enforce_limit(sql)
        if self._cfg.verify_structure:
            self._verify_structure(sql)
        return ValidatedSql(sql, _MINT)

    def _strip_fences(self, sql: str) -> str:
        sql = sql.strip()
        sql = _FENCE_OPEN_RE.sub("", sql, count=1)
        sql = _FENCE_CLOSE_RE.sub("", sql, count=1)
        return sql.strip()

    def _strip_comments(self, sql: str) -> str:
        sql = _BLOCK_COMMENT_RE.sub(" ", sql)
        sql = _LINE_COMMENT_RE.sub("", sql)
        return sql.strip()

    def _enforce_single_statement(self, sql: str) -> str:
        parts = [part.strip() for part in sql.split(";")]
        parts = [part for part in parts if part]
        if not parts:
            raise SqlRejected(RejectionReason.EMPTY, "statement is empty")
        if len(parts) != 1:
            # a smuggled write is reported as such rather than as a plain batch
            self._enforce_blocked_keywords(sql)
            raise SqlRejected(RejectionReason.MULTI_STATEMENT, "only a single statement is allowed")
        return parts[0]

    def _enforce_read_only(self, sql: str) -> None:
        if not _READ_ONLY_RE.match(sql.strip().lower()):
            raise SqlRejected(RejectionReason.NOT_READ_ONLY, "only SELECT/WITH queries are allowed")

    def _enforce_blocked_keywords(self, sql: str) -> None:
        match = self._keyword_re.search(sql)
        if match:
            keyword = match.group(1).lower()
            raise SqlRejected(
                RejectionReason.BLOCKED_KEYWORD,
                f"keyword '{keyword}' is not allowed",
                token=keyword,
            )

    def _enforce_blocked_functions(self, sql: str) -> None:
        match = _FUNCTION_RE.search(sql)
        if match:
            name = match.group(1).lower()
            raise SqlRejected(
                RejectionReason.BLOCKED_FUNCTION,
                f"function '{name}' is not allowed",
                token=name,
            )

    def _enforce_no_select_star(self, sql: str) -> None:
        if _SELECT_STAR_RE.search(sql):
            raise SqlRejected(RejectionReason.SELECT_STAR, "SELECT * is not allowed; list the columns")

    def _enforce_no_sensitive_fields(self, sql: str) -> None:
        match = _SENSITIVE_RE.search(sql)
        if match:
            token = match.group(1).lower()
            raise SqlRejected(
                RejectionReason.SENSITIVE_FIELD,
                f"sensitive field '{token}' is not allowed",
                token=token,
            )

    def _enforce_limit(self, sql: str) -> str:
        clauses = _limit_clauses(sql)
        max_limit = self._cfg.max_limit
        pieces: List[str] = []
        cursor = 0
        for _, argument in clauses:
            if argument is None or argument.token_type != TokenType.NUMBER or not argument.text.isdigit():
                raise SqlRejected(RejectionReason.UNPARSABLE, "LIMIT must be a whole number")
            value = int(argument.text)
            if value > max_limit:
                replacement = str(max_limit)
            elif value < 1:
                replacement = "1"
            else:
                continue
            pieces.append(sql[cursor:argument.start])
            pieces.append(replacement)
            cursor = argument.end + 1
        pieces.append(sql[cursor:])
        sql = "".join(pieces)

        if not any(depth == 0 for depth, _ in clauses):
            sql = f"{sql} LIMIT {self._cfg.default_limit}"
        return sql.strip()

    def _verify_structure(self, sql: str) -> None:
        try:
            statements = [stmt for stmt in sqlglot.parse(sql, read="postgres") if stmt is not None]
        except SqlglotError as exc:
            raise SqlRejected(RejectionReason.UNPARSABLE, "statement could not be parsed") from exc
        if len(statements) != 1:
            raise SqlRejected(RejectionReason.MULTI_STATEMENT, "only a single statement is allowed")
        root = statements[0]
        if not isinstance(root, _READ_ONLY_ROOTS) or root.find(*_WRITE_NODES) is not None:
            raise SqlRejected(RejectionReason.NOT_READ_ONLY, "only SELECT/WITH queries are allowed")
        if isinstance(root, exp.Select) and root.args.get("limit") is None:
            raise SqlRejected(RejectionReason.UNPARSABLE, "statement has no outer LIMIT")


def guard_sql(sql: str, **options) -> ValidatedSql:
    return SqlGuard(SQLGuardConfig(**options)).guard(sql)


__all__ = [
    "SqlGuard",
    "ValidatedSql",
    "guard_sql",
    "BLOCKED_KEYWORDS",
    "BLOCKED_FUNCTIONS",
    "SENSITIVE_TOKENS",
]
