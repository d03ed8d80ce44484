"""Test helper functions: in-memory Supabase stand-in and serverless handler runner."""

import copy
import json
import uuid
from datetime import datetime, timedelta, timezone
from io import BytesIO
from typing import Any, Callable, Dict, Optional
from unittest.mock import MagicMock

_EPOCH = datetime(2024, 12, 9, 12, 0, 0, tzinfo=timezone.utc)

JOINS = {
    # select alias -> (table, local key)
    "property:properties": ("properties", "property_id"),
}


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Chainable query mimicking the postgrest builder surface the services use."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload: Any = None
        self.columns = "*"
        self.filters: list[Callable[[dict], bool]] = []
        self.order_by: Optional[tuple[str, bool]] = None
        self.limit_n: Optional[int] = None

    def select(self, columns: str = "*"):
        self.columns = columns
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc=False, **kwargs):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def _matches(self, rows):
        return [row for row in rows if all(f(row) for f in self.filters)]

    def _with_joins(self, row):
        out = copy.deepcopy(row)
        for alias, (table, key) in JOINS.items():
            if alias in self.columns:
                name = alias.split(":")[0]
                target = next(
                    (r for r in self.db.tables.get(table, []) if r.get("id") == row.get(key)),
                    None,
                )
                out[name] = copy.deepcopy(target)
        return out

    def execute(self):
        self.db.calls.append((self.table, self.op, copy.deepcopy(self.payload)))
        failure = self.db.failures.get((self.table, self.op))
        if isinstance(failure, list):
            # One entry per call; None lets that call through
            failure = failure.pop(0) if failure else None
        if failure is not None:
            raise failure

        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for item in items:
                row = dict(item)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", self.db.next_timestamp())
                rows.append(row)
                created.append(copy.deepcopy(row))
            return FakeResponse(created)

        matched = self._matches(rows)

        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse(copy.deepcopy(matched))

        if self.op == "delete":
            for row in matched:
                rows.remove(row)
            return FakeResponse(copy.deepcopy(matched))

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda r: r.get(column) or "", reverse=desc)
        if self.limit_n is not None:
            matched = matched[: self.limit_n]
        return FakeResponse([self._with_joins(row) for row in matched])


class FakeSupabase:
    """Tables held as lists of dicts.

    ``failures`` maps (table, op) to an exception, or to a list consumed one entry per call.
    """

    def __init__(self, tables: Optional[Dict[str, list]] = None):
        self.tables: Dict[str, list] = copy.deepcopy(tables) if tables else {}
        self.failures: Dict[tuple, Exception] = {}
        self.calls: list[tuple] = []
        self.auth = MagicMock()
        self._clock = 0

    def next_timestamp(self) -> str:
        self._clock += 1
        return (_EPOCH + timedelta(seconds=self._clock)).isoformat()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> list:
        return self.tables.get(name, [])

    def find(self, name: str, **match) -> Optional[dict]:
        for row in self.rows(name):
            if all(row.get(k) == v for k, v in match.items()):
                return row
        return None


class MockSocket:
    """Socket stand-in: serves a raw request and captures everything written back."""

    def __init__(self, raw_request: bytes):
        self.raw_request = raw_request
        self.sent = bytearray()

    def makefile(self, *args, **kwargs):
        return BytesIO(self.raw_request)

    def sendall(self, data):
        self.sent.extend(data)

    def close(self):
        pass


def build_raw_request(
    method: str,
    path: str,
    headers: Optional[Dict[str, str]] = None,
    body: Any = None,
) -> bytes:
    if isinstance(body, (dict, list)):
        body_bytes = json.dumps(body).encode("utf-8")
    elif isinstance(body, str):
        body_bytes = body.encode("utf-8")
    else:
        body_bytes = body or b""

    lines = [f"{method} {path} HTTP/1.1"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    if body_bytes:
        lines.append(f"Content-Length: {len(body_bytes)}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8") + body_bytes


def run_handler(handler_cls, method: str, path: str, headers=None, body=None) -> Dict[str, Any]:
    """Drive a BaseHTTPRequestHandler end to end; return status, headers and body."""
    sock = MockSocket(build_raw_request(method, path, headers, body))
    handler_cls(sock, ("127.0.0.1", 8000), None)

    head, _, payload = bytes(sock.sent).partition(b"\r\n\r\n")
    status_line, *header_lines = head.decode("iso-8859-1").split("\r\n")
    response_headers = {}
    for line in header_lines:
        name, _, value = line.partition(":")
        response_headers[name.strip().lower()] = value.strip()

    return {
        "status": int(status_line.split()[1]),
        "headers": response_headers,
        "body": payload.decode("utf-8"),
    }
