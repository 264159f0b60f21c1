import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, List, Sequence, Union
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ragcore.core.config import settings
from ragcore.core.errors import DatabaseQueryError, ToolArgumentError
from ragcore.schemas.tools import DatabaseQueryInput, ToolInfo
from ragcore.services.sql_validator import SQLSecurityValidator

logger = logging.getLogger(__name__)

TOOL_DATABASE_QUERY = "database_query"

NULL_MARKER = "<NULL>"

DATABASE_QUERY_DESCRIPTION = """Execute a SQL query to read information from the application database.

## Safety
- Read only: only SELECT statements are accepted
- Table whitelist: only the tables listed below can be queried
- Tenant scoping: a tenant_id filter is added automatically

## Tables

### users
- id, username, email, role, created_at, updated_at

### knowledge_bases
- id, name, description, tenant_id, created_at, updated_at

### knowledges (documents)
- id, knowledge_base_id, title, description, parse_status, file_name, file_type, created_at, updated_at

### chunks
- id, knowledge_base_id, knowledge_id, content, chunk_type (text/image/table), created_at, updated_at

### chat_sessions
- id, title, agent_id, created_at, updated_at

### chat_messages
- id, session_id, role (user/assistant/system), content, created_at

### agents
- id, name, description, system_prompt, is_active, created_at, updated_at

## Examples

List knowledge bases:
{"sql": "SELECT id, name, description FROM knowledge_bases ORDER BY created_at DESC LIMIT 10"}

Count documents by status:
{"sql": "SELECT parse_status, COUNT(*) AS count FROM knowledges GROUP BY parse_status"}

## Notes
- Only SELECT is allowed; subqueries, CTEs and UNION are rejected
- Add a LIMIT clause to keep results small
- JOINs between whitelisted tables are supported"""


# -------------------------
# Column decoding
# -------------------------
@dataclass(frozen=True)
class NullValue:
    def render(self) -> str:
        return NULL_MARKER


@dataclass(frozen=True)
class TextValue:
    value: str

    def render(self) -> str:
        return self.value


@dataclass(frozen=True)
class NumericValue:
    value: Union[int, float, Decimal]

    def render(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class BinaryValue:
    value: bytes

    def render(self) -> str:
        return self.value.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class StructuredValue:
    """Booleans, temporal values, JSON documents and anything else."""

    value: Any

    def render(self) -> str:
        v = self.value
        if isinstance(v, (datetime, date, time)):
            return v.isoformat()
        if isinstance(v, UUID):
            return str(v)
        try:
            return json.dumps(v, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(v)


ColumnValue = Union[NullValue, TextValue, NumericValue, BinaryValue, StructuredValue]


def decode_column_value(value: Any) -> ColumnValue:
    if value is None:
        return NullValue()
    if isinstance(value, str):
        return TextValue(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BinaryValue(bytes(value))
    # bool is an int subclass; it renders as JSON true/false
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return NumericValue(value)
    return StructuredValue(value)


def format_query_results(
    columns: Sequence[str],
    rows: List[List[ColumnValue]],
    query: str,
    hint_threshold: int = 10,
) -> str:
    out = ["=== Query Results ===", ""]
    out.append(f"Executed SQL: {query}")
    out.append("")
    out.append(f"Returned {len(rows)} rows")
    out.append("")

    if not rows:
        out.append("No matching records found.")
        return "\n".join(out) + "\n"

    out.append("=== Row Details ===")
    out.append("")
    for i, row in enumerate(rows, 1):
        out.append(f"--- Record #{i} ---")
        for col, value in zip(columns, row):
            out.append(f"  {col}: {value.render()}")
        out.append("")

    if len(rows) > hint_threshold:
        out.append(
            f"Note: all {len(rows)} records are shown. "
            "Add a LIMIT clause to restrict the number of results."
        )
        out.append("")

    return "\n".join(out)


class QueryTool:
    """LLM-callable read-only SQL tool bound to one tenant."""

    name = TOOL_DATABASE_QUERY

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    def tool_info(self) -> ToolInfo:
        return ToolInfo(
            name=self.name,
            description=DATABASE_QUERY_DESCRIPTION,
            parameters=DatabaseQueryInput.model_json_schema(),
        )

    def invoke(self, arguments_json: str) -> str:
        try:
            payload = DatabaseQueryInput.model_validate_json(arguments_json)
        except ValidationError as e:
            raise ToolArgumentError(f"invalid arguments for {self.name}: {e}") from e
        if not payload.sql:
            raise ToolArgumentError("missing 'sql' argument")
        return self.run(payload.sql)

    def run(self, sql: str) -> str:
        # a fresh validator per call; SQLValidationError propagates before any DB access
        secured_sql = SQLSecurityValidator(self.tenant_id).validate_and_secure(sql)

        try:
            self._apply_statement_timeout()
            # colons are escaped so literals such as '12:30' are not read as bind params
            result = self.db.execute(text(secured_sql.replace(":", "\\:")))
            columns = list(result.keys())
            rows = [[decode_column_value(v) for v in row] for row in result.fetchall()]
        except SQLAlchemyError as e:
            # leave the session usable for the rest of the request
            self.db.rollback()
            logger.warning(
                "database query failed",
                extra={"tenant_id": self.tenant_id, "error": str(e)},
            )
            raise DatabaseQueryError(f"query execution failed: {e}") from e

        logger.info(
            "database query executed",
            extra={"tenant_id": self.tenant_id, "rows": len(rows)},
        )
        return format_query_results(
            columns, rows, secured_sql, hint_threshold=settings.SQL_TOOL_ROW_HINT_THRESHOLD
        )

    def _apply_statement_timeout(self) -> None:
        timeout_ms = settings.SQL_TOOL_STATEMENT_TIMEOUT_MS
        if timeout_ms <= 0 or self.db.get_bind().dialect.name != "postgresql":
            return
        self.db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))

    def __str__(self) -> str:
        return self.name
