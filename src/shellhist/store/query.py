"""
Lowering of SearchQuery into parameterized SQL.

build_query turns a SearchQuery into statement text plus named parameters.
Filter values are always bound, never formatted into the statement, and
command line / cwd matches are expressed with substr/instr comparisons so
characters such as % or _ in user text match themselves.

Bound semantics (start exclusive, end inclusive, read in scan direction):

    direction   start_*        end_*
    forward     col > :start   col <= :end
    backward    col < :start   col >= :end
"""

from dataclasses import dataclass, field

from shellhist.schema import MatchKind, SearchDirection, SearchQuery, datetime_to_millis

# Values the query builder hands to the driver: integer, real, text or NULL.
SqlValue = int | float | str | None

TABLE_NAME = "history"


@dataclass(frozen=True)
class BuiltQuery:
    """A statement and the named parameters it binds."""

    sql: str
    params: dict[str, SqlValue] = field(default_factory=dict)


def _bound_ops(direction: SearchDirection) -> tuple[str, str]:
    """Comparison operators for (start, end) bounds."""
    if direction == SearchDirection.FORWARD:
        return ">", "<="
    return "<", ">="


def build_where(query: SearchQuery) -> tuple[list[str], dict[str, SqlValue]]:
    """
    Build the WHERE predicates of a query.

    Returns:
        Predicates to be joined with AND, and their bound parameters
    """
    wheres: list[str] = []
    params: dict[str, SqlValue] = {}
    start_op, end_op = _bound_ops(query.direction)

    if query.start_time is not None:
        wheres.append(f"start_timestamp {start_op} :start_time")
        params["start_time"] = datetime_to_millis(query.start_time)
    if query.end_time is not None:
        wheres.append(f"start_timestamp {end_op} :end_time")
        params["end_time"] = datetime_to_millis(query.end_time)
    if query.start_id is not None:
        wheres.append(f"id {start_op} :start_id")
        params["start_id"] = query.start_id._value
    if query.end_id is not None:
        wheres.append(f"id {end_op} :end_id")
        params["end_id"] = query.end_id._value

    flt = query.filter
    if flt.command_line is not None:
        search = flt.command_line
        if search.kind == MatchKind.EXACT:
            wheres.append("command_line = :command_line")
        elif search.kind == MatchKind.PREFIX:
            wheres.append(
                "substr(command_line, 1, length(:command_line)) = :command_line"
            )
        else:
            wheres.append("instr(command_line, :command_line) > 0")
        params["command_line"] = search.text

    if flt.not_command_line is not None:
        wheres.append("command_line != :not_cmd")
        params["not_cmd"] = flt.not_command_line
    if flt.hostname is not None:
        wheres.append("hostname = :hostname")
        params["hostname"] = flt.hostname
    if flt.cwd_exact is not None:
        wheres.append("cwd = :cwd")
        params["cwd"] = flt.cwd_exact
    if flt.cwd_prefix is not None:
        wheres.append("substr(cwd, 1, length(:cwd_prefix)) = :cwd_prefix")
        params["cwd_prefix"] = flt.cwd_prefix
    if flt.exit_successful is not None:
        wheres.append("exit_status = 0" if flt.exit_successful else "exit_status != 0")
    if flt.session_id is not None:
        wheres.append("session_id = :session_id")
        params["session_id"] = flt.session_id._value

    return wheres, params


def build_query(query: SearchQuery, select_expression: str = "*") -> BuiltQuery:
    """
    Lower a search into a SELECT ordered by id in the scan direction.

    Args:
        query: The search to lower
        select_expression: What to select (e.g. "*" or an aggregate)

    Returns:
        BuiltQuery with statement text and bound parameters
    """
    wheres, params = build_where(query)
    order = "ASC" if query.direction == SearchDirection.FORWARD else "DESC"
    where_sql = " AND ".join(wheres) if wheres else "1"

    sql = f"SELECT {select_expression} FROM {TABLE_NAME} WHERE {where_sql} ORDER BY id {order}"
    if query.limit is not None:
        sql += " LIMIT :limit"
        params["limit"] = query.limit
    return BuiltQuery(sql=sql, params=params)


def build_count(query: SearchQuery) -> BuiltQuery:
    """Lower a search into a COUNT over the same predicates, without its limit."""
    wheres, params = build_where(query)
    where_sql = " AND ".join(wheres) if wheres else "1"
    return BuiltQuery(
        sql=f"SELECT coalesce(count(*), 0) FROM {TABLE_NAME} WHERE {where_sql}",
        params=params,
    )
