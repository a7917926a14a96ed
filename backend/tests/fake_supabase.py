"""
In-memory stand-in for the supabase-py client.

Unlike a bare MagicMock, queries are actually evaluated: eq / neq / gte /
lte / not_.is_ filters, multi-key order, range and limit are applied to the
rows of the addressed table, so scoping and date windows are observable in
tests.

Tables are keyed "schema.table" (via client.schema(...).table(...)) or by
bare name (via client.table(...)).
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from date_ranges import parse_timestamp


class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def _comparable(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    parsed = parse_timestamp(value)
    return parsed if parsed is not None else value


class FakeQuery:
    def __init__(self, client, table_key: str):
        self.client = client
        self.table_key = table_key
        self.columns = "*"
        self.count_mode = None
        self.filters = []
        self.filter_log = []
        self._negate = False
        self.orders = []
        self._range = None
        self._limit = None
        self._upsert = None

    # --- builders -----------------------------------------------------

    def select(self, columns="*", count=None):
        self.columns = columns
        self.count_mode = count
        return self

    def _add(self, op, column, value, predicate):
        self.filter_log.append((op, column, value))
        self.filters.append(predicate)
        return self

    def eq(self, column, value):
        return self._add("eq", column, value, lambda r: r.get(column) == value)

    def neq(self, column, value):
        return self._add("neq", column, value, lambda r: r.get(column) != value)

    def gte(self, column, value):
        bound = _comparable(value)
        return self._add(
            "gte", column, value,
            lambda r: r.get(column) is not None and _comparable(r.get(column)) >= bound,
        )

    def lte(self, column, value):
        bound = _comparable(value)
        return self._add(
            "lte", column, value,
            lambda r: r.get(column) is not None and _comparable(r.get(column)) <= bound,
        )

    @property
    def not_(self):
        self._negate = True
        return self

    def is_(self, column, value):
        negate, self._negate = self._negate, False
        assert value == "null", "only is_(col, 'null') is supported"
        if negate:
            return self._add("not.is", column, value, lambda r: r.get(column) is not None)
        return self._add("is", column, value, lambda r: r.get(column) is None)

    def order(self, column, desc=False):
        # Repeated calls add sort keys, first call most significant
        self.orders.append((column, desc))
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def upsert(self, row, on_conflict=None):
        self._upsert = (row, on_conflict)
        return self

    # --- execution ----------------------------------------------------

    def execute(self):
        self.client.queries.append(self)
        if self.table_key in self.client.fail_tables:
            raise RuntimeError(f"simulated outage on {self.table_key}")

        rows = self.client.tables.setdefault(self.table_key, [])

        if self._upsert is not None:
            return FakeResult([self._apply_upsert(rows)])

        matched = [r for r in rows if all(f(r) for f in self.filters)]
        count = len(matched) if self.count_mode else None

        for column, desc in reversed(self.orders):
            present = [r for r in matched if r.get(column) is not None]
            missing = [r for r in matched if r.get(column) is None]
            present.sort(key=lambda r, c=column: _comparable(r.get(c)), reverse=desc)
            matched = present + missing

        if self._range is not None:
            start, end = self._range
            matched = matched[start:end + 1]
        if self._limit is not None:
            matched = matched[:self._limit]

        return FakeResult([dict(r) for r in matched], count)

    def _apply_upsert(self, rows):
        row, on_conflict = self._upsert
        keys = [k.strip() for k in (on_conflict or "id").split(",")]
        for existing in rows:
            if all(existing.get(k) == row.get(k) for k in keys):
                existing.update(row)
                return dict(existing)
        rows.append(dict(row))
        return dict(row)


class _SchemaView:
    def __init__(self, client, schema: str):
        self.client = client
        self.schema = schema

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self.client, f"{self.schema}.{name}")


class FakeSupabase:
    def __init__(self, tables: dict = None):
        self.tables = {key: [dict(r) for r in rows] for key, rows in (tables or {}).items()}
        self.queries = []
        self.fail_tables = set()

    def schema(self, name: str) -> _SchemaView:
        return _SchemaView(self, name)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail(self, *table_keys):
        """Every later query against these tables raises."""
        self.fail_tables.update(table_keys)
        return self

    def queries_for(self, table_key: str):
        return [q for q in self.queries if q.table_key == table_key]
