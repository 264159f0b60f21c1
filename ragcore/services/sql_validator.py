"""
SQL security gate for the database query tool.

Every check runs on the PostgreSQL parse tree produced by pglast (the same
parser PostgreSQL itself uses), never on the raw text, so comments, casing,
whitespace and quoting games cannot hide a forbidden construct. The SQL that
is finally executed is re-serialized from that same tree.
"""

import logging
from typing import FrozenSet, Iterator, List, Optional, Tuple

from pglast import ast, parse_sql
from pglast.parser import ParseError
from pglast.stream import RawStream

from ragcore.core.errors import SQLValidationError

logger = logging.getLogger(__name__)

MIN_SQL_LENGTH = 6
MAX_SQL_LENGTH = 4096

ALLOWED_TABLES: FrozenSet[str] = frozenset(
    {
        "users",
        "knowledge_bases",
        "knowledges",
        "chunks",
        "chunk_tags",
        "chat_sessions",
        "chat_messages",
        "agents",
        "tools",
        "faqs",
        "faq_entries",
        "models",
    }
)

# tables carrying a tenant_id column; chunk_tags is scoped through chunks
TENANT_SCOPED_TABLES: FrozenSet[str] = frozenset(
    {
        "users",
        "knowledge_bases",
        "knowledges",
        "chunks",
        "chat_sessions",
        "chat_messages",
        "agents",
        "tools",
        "faqs",
        "faq_entries",
        "models",
    }
)

ALLOWED_FUNCTIONS: FrozenSet[str] = frozenset(
    {
        # aggregates
        "count", "sum", "avg", "min", "max",
        "array_agg", "string_agg", "json_agg", "jsonb_agg",
        # null handling / comparison
        "coalesce", "nullif", "greatest", "least",
        # math
        "abs", "ceil", "floor", "round",
        # strings (TRIM(...) parses as btrim/ltrim/rtrim)
        "length", "lower", "upper",
        "trim", "btrim", "ltrim", "rtrim",
        "substring", "concat", "concat_ws", "replace", "left", "right",
        # dates
        "now", "current_date", "current_timestamp",
        "date_trunc", "extract", "date_part",
        "to_char", "to_date", "to_timestamp",
    }
)

DANGEROUS_FUNCTION_PREFIXES: Tuple[str, ...] = ("pg_", "lo_", "dblink", "file_", "copy_")

BUILTIN_FUNCTION_SCHEMA = "pg_catalog"
DEFAULT_TABLE_SCHEMA = "public"


def _node_children(node: ast.Node) -> Iterator[object]:
    seen = set()
    for cls in type(node).__mro__:
        for name in getattr(cls, "__slots__", ()):
            if name in seen:
                continue
            seen.add(name)
            yield getattr(node, name, None)


def _quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class SQLSecurityValidator:
    """
    Validates an ad-hoc SELECT and scopes it to a single tenant.

    The whitelists are immutable and shared; the tenant ID belongs to this
    instance. An empty tenant ID disables tenant-filter injection.
    """

    def __init__(
        self,
        tenant_id: str = "",
        *,
        allowed_tables: FrozenSet[str] = ALLOWED_TABLES,
        allowed_functions: FrozenSet[str] = ALLOWED_FUNCTIONS,
        tenant_scoped_tables: FrozenSet[str] = TENANT_SCOPED_TABLES,
    ):
        self.tenant_id = tenant_id or ""
        self.allowed_tables = frozenset(allowed_tables)
        self.allowed_functions = frozenset(allowed_functions)
        self.tenant_scoped_tables = frozenset(tenant_scoped_tables)

    def validate_and_secure(self, sql: str) -> str:
        """Run every gate in order and return the SQL that may be executed."""
        # 1. input sanity
        self._validate_input(sql)

        # 2. parse
        try:
            statements = parse_sql(sql)
        except ParseError as e:
            raise SQLValidationError(f"SQL syntax error: {e}") from e

        # 3. exactly one statement
        if len(statements) == 0:
            raise SQLValidationError("empty query")
        if len(statements) > 1:
            raise SQLValidationError("multiple statements are not allowed")

        # 4. SELECT only
        stmt = statements[0].stmt
        if not isinstance(stmt, ast.SelectStmt):
            raise SQLValidationError(
                f"only SELECT queries are allowed (got {type(stmt).__name__})"
            )

        # 5-8. structure, FROM, expressions, at least one table
        tables = self._validate_select_stmt(stmt)

        # 9. canonical form
        canonical = RawStream()(stmt)

        # 10. tenant scoping
        secured = self._inject_tenant_conditions(stmt, tables, canonical)
        logger.debug(
            "validated sql",
            extra={"tables": [t for t, _ in tables], "tenant_scoped": secured != canonical},
        )
        return secured

    def _validate_input(self, sql: str) -> None:
        if not isinstance(sql, str) or not sql.strip():
            raise SQLValidationError("empty query")
        if "\x00" in sql:
            raise SQLValidationError("SQL contains illegal characters")
        if len(sql) < MIN_SQL_LENGTH:
            raise SQLValidationError("SQL query is too short")
        if len(sql) > MAX_SQL_LENGTH:
            raise SQLValidationError(
                f"SQL query is too long (maximum {MAX_SQL_LENGTH} characters)"
            )

    def _validate_select_stmt(self, stmt: ast.SelectStmt) -> List[Tuple[str, str]]:
        if (stmt.op is not None and int(stmt.op) != 0) or stmt.larg is not None:
            raise SQLValidationError(
                "compound queries (UNION/INTERSECT/EXCEPT) are not allowed"
            )
        if stmt.withClause is not None:
            raise SQLValidationError("WITH clauses (CTE) are not allowed")
        if stmt.intoClause is not None:
            raise SQLValidationError("SELECT INTO is not allowed")
        if stmt.lockingClause:
            raise SQLValidationError("locking clauses (FOR UPDATE etc.) are not allowed")

        tables: List[Tuple[str, str]] = []
        for item in stmt.fromClause or ():
            self._validate_from_item(item, tables)

        for name in (
            "targetList",
            "whereClause",
            "groupClause",
            "havingClause",
            "windowClause",
            "sortClause",
            "distinctClause",
            "limitOffset",
            "limitCount",
            "valuesLists",
        ):
            self._validate_expression(getattr(stmt, name, None))

        if not tables:
            raise SQLValidationError("no valid table found in query")
        return tables

    def _validate_from_item(self, node: ast.Node, tables: List[Tuple[str, str]]) -> None:
        if isinstance(node, ast.RangeVar):
            if node.catalogname:
                raise SQLValidationError(
                    f"cross-database references are not allowed: {node.catalogname}"
                )
            if node.schemaname and node.schemaname != DEFAULT_TABLE_SCHEMA:
                raise SQLValidationError(
                    f"access to schema '{node.schemaname}' is not allowed"
                )
            if node.relname not in self.allowed_tables:
                raise SQLValidationError(f"table is not allowed: {node.relname}")

            alias = node.relname
            if node.alias is not None and node.alias.aliasname:
                alias = node.alias.aliasname
            tables.append((node.relname, alias))
            return

        if isinstance(node, ast.JoinExpr):
            if node.alias is not None:
                raise SQLValidationError("aliased JOIN expressions are not allowed")
            self._validate_from_item(node.larg, tables)
            self._validate_from_item(node.rarg, tables)
            self._validate_expression(node.quals)
            return

        if isinstance(node, ast.RangeSubselect):
            raise SQLValidationError("subqueries are not allowed in the FROM clause")
        if isinstance(node, ast.RangeFunction):
            raise SQLValidationError("functions are not allowed in the FROM clause")
        raise SQLValidationError(f"unsupported FROM item: {type(node).__name__}")

    def _validate_expression(self, node: Optional[object]) -> None:
        if node is None:
            return
        if isinstance(node, (list, tuple)):
            for item in node:
                self._validate_expression(item)
            return
        if not isinstance(node, ast.Node):
            return

        if isinstance(node, (ast.SubLink, ast.SelectStmt, ast.RangeSubselect)):
            raise SQLValidationError("subqueries are not allowed")
        if isinstance(node, ast.FuncCall):
            self._validate_func_call(node)

        for child in _node_children(node):
            self._validate_expression(child)

    def _validate_func_call(self, fc: ast.FuncCall) -> None:
        parts = [p.sval.lower() for p in fc.funcname if isinstance(p, ast.String)]
        if not parts:
            raise SQLValidationError("unnamed function call")
        func_name = parts[-1]

        if len(parts) > 1 and parts[0] != BUILTIN_FUNCTION_SCHEMA:
            raise SQLValidationError(
                f"schema-qualified function calls are not allowed: {'.'.join(parts)}"
            )

        for prefix in DANGEROUS_FUNCTION_PREFIXES:
            if func_name.startswith(prefix):
                raise SQLValidationError(
                    f"function '{func_name}' is not allowed (dangerous prefix)"
                )

        if func_name not in self.allowed_functions:
            raise SQLValidationError(f"function is not allowed: {func_name}")

    def _tenant_predicates(self, tables: List[Tuple[str, str]]) -> List[str]:
        conditions: List[str] = []
        seen = set()
        for table, alias in tables:
            if table not in self.tenant_scoped_tables or alias in seen:
                continue
            seen.add(alias)
            conditions.append(
                f"{_quote_ident(alias)}.tenant_id = {_quote_literal(self.tenant_id)}"
            )
        return conditions

    def _inject_tenant_conditions(
        self, stmt: ast.SelectStmt, tables: List[Tuple[str, str]], canonical: str
    ) -> str:
        if not self.tenant_id:
            return canonical

        conditions = self._tenant_predicates(tables)
        if not conditions:
            return canonical

        tenant_filter = " AND ".join(conditions)
        if stmt.whereClause is not None:
            # keep the original condition grouped so OR cannot escape the filter
            where_sql = f"{tenant_filter} AND ({RawStream()(stmt.whereClause)})"
        else:
            where_sql = tenant_filter

        stmt.whereClause = parse_sql(f"SELECT 1 WHERE {where_sql}")[0].stmt.whereClause
        return RawStream()(stmt)
