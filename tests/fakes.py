"""In-memory stand-ins for the Supabase clients used by the services.

FakeSupabase mimics the chained PostgREST builder (table/select/eq/.../execute)
and rpc() over plain dict rows. Failures can be injected per table operation
or procedure. FakeRealtimeClient records channels and lets tests push
postgres_changes payloads.
"""

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError


def api_error(message: str, code: str = "PGRST000") -> APIError:
    return APIError({"message": message, "code": code, "hint": None, "details": None})


def rls_error() -> APIError:
    return api_error('new row violates row-level security policy for table "x"', code="42501")


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


class FakeResponse:
    def __init__(self, data: Any, count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.columns = "*"
        self.count_mode: Optional[str] = None
        self.payload: Any = None
        self.on_conflict = ""
        self.ignore_duplicates = False
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.orders: List[Tuple[str, bool]] = []
        self.limit_to: Optional[int] = None

    # operations

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.op = "select"
        self.columns = columns
        self.count_mode = count
        return self

    def insert(self, rows):
        self.op = "insert"
        self.payload = rows
        return self

    def update(self, values: Dict[str, Any]):
        self.op = "update"
        self.payload = values
        return self

    def upsert(self, rows, on_conflict: str = "", ignore_duplicates: bool = False):
        self.op = "upsert"
        self.payload = rows
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters

    def eq(self, column: str, value: Any):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value: Any):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def gt(self, column: str, value: Any):
        self.filters.append(
            lambda row: row.get(column) is not None and _comparable(row[column]) > _comparable(value)
        )
        return self

    def gte(self, column: str, value: Any):
        self.filters.append(
            lambda row: row.get(column) is not None and _comparable(row[column]) >= _comparable(value)
        )
        return self

    def lte(self, column: str, value: Any):
        self.filters.append(
            lambda row: row.get(column) is not None and _comparable(row[column]) <= _comparable(value)
        )
        return self

    def ilike(self, column: str, pattern: str):
        needle = pattern.strip("%").lower()
        self.filters.append(lambda row: needle in str(row.get(column) or "").lower())
        return self

    def in_(self, column: str, values):
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column: str, desc: bool = False):
        self.orders.append((column, desc))
        return self

    def limit(self, count: int):
        self.limit_to = count
        return self

    # execution

    def _matching(self) -> List[Dict[str, Any]]:
        return [row for row in self.db.tables.setdefault(self.table, []) if all(f(row) for f in self.filters)]

    def execute(self) -> FakeResponse:
        self.db.calls.append(("table", self.table, self.op))
        failure = self.db.failures.get((self.table, self.op))
        if failure is not None:
            raise failure

        handler = getattr(self, f"_execute_{self.op}")
        return handler()

    def _execute_select(self) -> FakeResponse:
        rows = self._matching()
        for column, desc in reversed(self.orders):
            rows.sort(key=lambda row: (row.get(column) is None, _comparable(row.get(column))), reverse=desc)
        count = len(rows) if self.count_mode else None
        if self.limit_to is not None:
            rows = rows[:self.limit_to]
        return FakeResponse([self._project(row) for row in rows], count=count)

    def _project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        if self.columns.strip() == "*":
            return dict(row)
        wanted = [column.strip() for column in self.columns.split(",")]
        return {column: row.get(column) for column in wanted}

    def _rows(self) -> List[Dict[str, Any]]:
        return [dict(row) for row in (self.payload if isinstance(self.payload, list) else [self.payload])]

    def _execute_insert(self) -> FakeResponse:
        stored = []
        for row in self._rows():
            row.setdefault("id", str(uuid.uuid4()))
            self.db.check_unique(self.table, row)
            self.db.tables.setdefault(self.table, []).append(row)
            stored.append(dict(row))
        return FakeResponse(stored)

    def _execute_upsert(self) -> FakeResponse:
        keys = [column.strip() for column in self.on_conflict.split(",") if column.strip()] or ["id"]
        stored = []
        for row in self._rows():
            existing = next(
                (
                    current for current in self.db.tables.setdefault(self.table, [])
                    if all(current.get(key) == row.get(key) for key in keys)
                ),
                None
            )
            if existing is not None:
                if self.ignore_duplicates:
                    continue
                existing.update(row)
                stored.append(dict(existing))
            else:
                row.setdefault("id", str(uuid.uuid4()))
                self.db.tables[self.table].append(row)
                stored.append(dict(row))
        return FakeResponse(stored)

    def _execute_update(self) -> FakeResponse:
        updated = []
        for row in self._matching():
            row.update(self.payload)
            updated.append(dict(row))
        return FakeResponse(updated)

    def _execute_delete(self) -> FakeResponse:
        doomed = self._matching()
        self.db.tables[self.table] = [row for row in self.db.tables[self.table] if row not in doomed]
        return FakeResponse([dict(row) for row in doomed])


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]):
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        self.db.calls.append(("rpc", self.name, None))
        procedure = self.db.procedures.get(self.name)
        if procedure is None:
            raise api_error(f"Could not find the function public.{self.name}", code="PGRST202")
        if isinstance(procedure, Exception):
            raise procedure
        return FakeResponse(procedure(self.params))


class FakeSupabase:
    """Subset of supabase.Client backed by dict rows"""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.procedures: Dict[str, Any] = {}
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.unique: Dict[str, List[Tuple[str, ...]]] = {
            "conversations": [("agent_id", "investor_id")],
        }
        self.calls: List[Tuple[str, str, Optional[str]]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    def seed(self, table: str, *rows: Dict[str, Any]) -> List[Dict[str, Any]]:
        stored = []
        for row in rows:
            row = dict(row)
            row.setdefault("id", str(uuid.uuid4()))
            self.tables.setdefault(table, []).append(row)
            stored.append(row)
        return stored

    def fail(self, table: str, op: str, exc: Exception) -> None:
        self.failures[(table, op)] = exc

    def check_unique(self, table: str, row: Dict[str, Any]) -> None:
        for columns in self.unique.get(table, []):
            for current in self.tables.get(table, []):
                if all(current.get(column) == row.get(column) for column in columns):
                    raise api_error(f"duplicate key value violates unique constraint on {table}", code="23505")

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])


class FakeChannel:
    def __init__(self, name: str):
        self.name = name
        self.bindings: List[Dict[str, Any]] = []
        self.subscribed = False

    def on_postgres_changes(self, event, callback, table="*", schema="public", filter=None):
        self.bindings.append({
            "event": event,
            "schema": schema,
            "table": table,
            "filter": filter,
            "callback": callback,
        })
        return self

    async def subscribe(self, callback=None):
        self.subscribed = True
        return self

    def emit(self, payload: Dict[str, Any]) -> None:
        for binding in self.bindings:
            binding["callback"](payload)


class FakeRealtimeClient:
    def __init__(self):
        self.channels: List[FakeChannel] = []
        self.removed: List[FakeChannel] = []

    def channel(self, name: str) -> FakeChannel:
        channel = FakeChannel(name)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel: FakeChannel) -> None:
        self.removed.append(channel)
