"""Statement classification backed by sqlglot.

Used by drivers to decide between fetching rows and reporting an affected-row
count, and by the agent API to flag risky statements before they run.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlglot import exp, parse_one
from sqlglot.errors import SqlglotError

from ..models import DBType

_SQLGLOT_DIALECTS: dict[DBType, str] = {
    DBType.POSTGRESQL: "postgres",
    DBType.MYSQL: "mysql",
    DBType.SQLITE: "sqlite",
}

_ROW_KEYWORDS = frozenset({"select", "with", "show", "values", "pragma", "describe", "desc", "explain", "table"})
_DESTRUCTIVE_KEYWORDS = frozenset({"drop", "delete", "truncate"})
_ROW_EXPRESSIONS = (exp.Query, exp.Values, exp.Show, exp.Pragma, exp.Describe)


@dataclass(frozen=True, slots=True)
class StatementWarnings:
    """Guardrail findings for a single statement."""

    unbounded: bool = False
    destructive: bool = False

    @property
    def any(self) -> bool:
        return self.unbounded or self.destructive


def returns_rows(sql: str, db_type: DBType) -> bool:
    """True when executing ``sql`` yields a result set."""

    expression = _parse(sql, db_type)
    if expression is None or isinstance(expression, exp.Command):
        return _leading_keyword(sql) in _ROW_KEYWORDS
    if isinstance(expression, _ROW_EXPRESSIONS):
        return True
    return bool(expression.args.get("returning"))


def inspect_statement(sql: str, db_type: DBType) -> StatementWarnings:
    """Flag unbounded reads and destructive writes."""

    expression = _parse(sql, db_type)
    if expression is None or isinstance(expression, exp.Command):
        keyword = _leading_keyword(sql)
        upper = sql.upper()
        unbounded = keyword == "select" and "LIMIT" not in upper and "COUNT(" not in upper and "EXISTS" not in upper
        destructive = keyword in _DESTRUCTIVE_KEYWORDS or (keyword == "update" and "WHERE" not in upper)
        return StatementWarnings(unbounded=unbounded, destructive=destructive)

    unbounded = (
        isinstance(expression, exp.Query)
        and not expression.args.get("limit")
        and expression.find(exp.Count) is None
        and expression.find(exp.Exists) is None
    )
    destructive = isinstance(expression, (exp.Drop, exp.Delete)) or _leading_keyword(sql) == "truncate"
    if isinstance(expression, exp.Update) and not expression.args.get("where"):
        destructive = True
    return StatementWarnings(unbounded=unbounded, destructive=destructive)


def _parse(sql: str, db_type: DBType) -> exp.Expression | None:
    statement = sql.strip().rstrip(";").strip()
    if not statement:
        return None
    try:
        return parse_one(statement, read=_SQLGLOT_DIALECTS[DBType(db_type)])
    except SqlglotError:
        return None


def _leading_keyword(sql: str) -> str:
    token = sql.lstrip().lstrip("(").split(None, 1)
    if not token:
        return ""
    return token[0].lower().rstrip(";")


__all__ = ["StatementWarnings", "inspect_statement", "returns_rows"]
