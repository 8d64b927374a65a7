# tests/fake_supabase.py
# In-memory stand-in for the supabase-py query builder used by data_integrator.
import copy
import itertools
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class FakeResponse:
    data: Any
    error: Optional[str] = None


def _same(a, b) -> bool:
    return a == b or (a is not None and b is not None and str(a) == str(b))


def _like(pattern: str) -> re.Pattern:
    parts = []
    escaped = False
    for ch in pattern:
        if escaped:
            parts.append(re.escape(ch))
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


class FakeQuery:
    def __init__(self, client: "FakeClient", table: str):
        self.client = client
        self.table = table
        self.op = "select"
        self.columns = "*"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters = []
        self.order_by = None
        self.limit_n = None

    # -- operations --------------------------------------------------

    def select(self, columns: str = "*"):
        self.op = "select"
        self.columns = columns
        return self

    def insert(self, rows):
        self.op = "insert"
        self.payload = rows
        return self

    def update(self, values: Dict[str, Any]):
        self.op = "update"
        self.payload = values
        return self

    def delete(self):
        self.op = "delete"
        return self

    def upsert(self, rows, on_conflict: Optional[str] = None):
        self.op = "upsert"
        self.payload = rows
        self.on_conflict = on_conflict
        return self

    # -- filters -----------------------------------------------------

    def eq(self, column: str, value):
        self.filters.append(lambda row: _same(row.get(column), value))
        return self

    def gt(self, column: str, value):
        self.filters.append(lambda row: row.get(column) is not None and float(row[column]) > float(value))
        return self

    def ilike(self, column: str, pattern: str):
        regex = _like(pattern)
        self.filters.append(lambda row: row.get(column) is not None and bool(regex.match(str(row[column]))))
        return self

    def in_(self, column: str, values):
        values = list(values)
        self.filters.append(lambda row: any(_same(row.get(column), v) for v in values))
        return self

    def order(self, column: str, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, n: int):
        self.limit_n = n
        return self

    # -- execution ---------------------------------------------------

    def _matches(self, row) -> bool:
        return all(f(row) for f in self.filters)

    def _project(self, row):
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        cols = [c.strip() for c in self.columns.split(",")]
        return {c: copy.deepcopy(row.get(c)) for c in cols}

    def execute(self) -> FakeResponse:
        self.client.calls.append((self.table, self.op))
        error = self.client._take_failure(self.table, self.op)
        if error:
            return FakeResponse(data=[], error=error)

        rows = self.client.tables.setdefault(self.table, [])

        if self.op == "select":
            found = [r for r in rows if self._matches(r)]
            if self.order_by:
                column, desc = self.order_by
                found.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
            if self.limit_n is not None:
                found = found[:self.limit_n]
            return FakeResponse(data=[self._project(r) for r in found])

        if self.op == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for r in new_rows:
                row = copy.deepcopy(r)
                row.setdefault("id", self.client.next_id(self.table))
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return FakeResponse(data=inserted)

        if self.op == "update":
            updated = []
            for r in rows:
                if self._matches(r):
                    r.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(r))
            return FakeResponse(data=updated)

        if self.op == "delete":
            removed = [r for r in rows if self._matches(r)]
            self.client.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResponse(data=removed)

        if self.op == "upsert":
            keys = [c.strip() for c in (self.on_conflict or "id").split(",")]
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            result = []
            for r in new_rows:
                existing = next(
                    (row for row in rows if all(_same(row.get(k), r.get(k)) for k in keys)),
                    None,
                )
                if existing is not None:
                    existing.update(copy.deepcopy(r))
                    result.append(copy.deepcopy(existing))
                else:
                    row = copy.deepcopy(r)
                    row.setdefault("id", self.client.next_id(self.table))
                    rows.append(row)
                    result.append(copy.deepcopy(row))
            return FakeResponse(data=result)

        raise ValueError(f"unsupported op {self.op}")


class FakeClient:
    """
    client.schema(...).table(name) -> FakeQuery over `tables[name]`.

    fail_on(table, op, times=1) makes the next `times` executions of `op`
    on `table` return an error response (times=None: always).
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(tables or {})
        self.calls: List[tuple] = []
        self._failures: Dict[tuple, Optional[int]] = {}
        self._ids = itertools.count(1000)

    def schema(self, name: str) -> "FakeClient":
        return self

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def next_id(self, table: str) -> str:
        return f"{table}-{next(self._ids)}"

    def fail_on(self, table: str, op: str, times: Optional[int] = 1) -> None:
        self._failures[(table, op)] = times

    def _take_failure(self, table: str, op: str) -> Optional[str]:
        key = (table, op)
        if key not in self._failures:
            return None
        remaining = self._failures[key]
        if remaining is not None:
            if remaining <= 1:
                del self._failures[key]
            else:
                self._failures[key] = remaining - 1
        return f"{op} on {table} failed"

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])
