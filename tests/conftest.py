import copy
import itertools
import random
import uuid

import pytest

from blockportal.app import create_app
from blockportal.authz import MAIN_ADMIN, SUB_ADMIN
from blockportal.config import Settings
from blockportal.directory import AdminDirectory


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """
    In-memory stand-in for SupabaseClient with the same table and storage
    methods. ``failures`` maps a method name to an exception raised on the
    next call to it.
    """

    url = "https://project.supabase.test"

    def __init__(self):
        self.tables = {}
        self.objects = {}
        self.failures = {}
        self.calls = []
        self._seq = itertools.count(1)

    def _maybe_fail(self, op: str) -> None:
        self.calls.append(op)
        exc = self.failures.pop(op, None)
        if exc is not None:
            raise exc

    @staticmethod
    def _matches(row: dict, filters) -> bool:
        for col, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                if str(row.get(col)) not in {str(v) for v in value}:
                    return False
            elif row.get(col) != value:
                return False
        return True

    def _embed_author(self, row: dict) -> dict:
        author = next((a for a in self.tables.get("admins", []) if a["id"] == row.get("created_by")), None)
        row["admins"] = {"userid": author["userid"]} if author else None
        return row

    def select(self, table, filters=None, columns="*", order=None, limit=None):
        self._maybe_fail("select")
        rows = [copy.deepcopy(r) for r in self.tables.get(table, []) if self._matches(r, filters)]
        if columns and "admins!" in columns:
            rows = [self._embed_author(r) for r in rows]
        if order:
            col, _, direction = order.partition(".")
            rows.sort(key=lambda r: (r.get(col) is None, r.get(col)), reverse=direction == "desc")
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, table, row):
        self._maybe_fail("insert")
        n = next(self._seq)
        stored = {"id": str(uuid.uuid4()), "created_at": f"2026-01-01T00:00:00.{n:06d}+00:00",
                  "uploaded_at": f"2026-01-01T00:00:00.{n:06d}+00:00"}
        stored.update(copy.deepcopy(row))
        self.tables.setdefault(table, []).append(stored)
        return copy.deepcopy(stored)

    def upsert(self, table, row, on_conflict):
        self._maybe_fail("upsert")
        rows = self.tables.setdefault(table, [])
        for existing in rows:
            if existing.get(on_conflict) == row.get(on_conflict):
                existing.update(copy.deepcopy(row))
                return copy.deepcopy(existing)
        rows.append(copy.deepcopy(row))
        return copy.deepcopy(row)

    def update(self, table, values, filters):
        self._maybe_fail("update")
        changed = []
        for row in self.tables.get(table, []):
            if self._matches(row, filters):
                row.update(copy.deepcopy(values))
                changed.append(copy.deepcopy(row))
        return changed

    def delete(self, table, filters):
        self._maybe_fail("delete")
        rows = self.tables.get(table, [])
        gone = [r for r in rows if self._matches(r, filters)]
        self.tables[table] = [r for r in rows if not self._matches(r, filters)]
        return gone

    def upload(self, bucket, name, data, content_type):
        self._maybe_fail("upload")
        self.objects[(bucket, name)] = (data, content_type)
        return self.public_url(bucket, name)

    def public_url(self, bucket, name):
        return f"{self.url}/storage/v1/object/public/{bucket}/{name}"

    def remove(self, bucket, names):
        self._maybe_fail("remove")
        for name in names:
            self.objects.pop((bucket, name), None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def directory(backend):
    return AdminDirectory(backend, bcrypt_rounds=4)


@pytest.fixture
def make_admin(backend, directory):
    def _make(userid, password="secret-pass", role=SUB_ADMIN, notification_access=True,
              photo_access=True, is_active=True):
        row = backend.insert("admins", {
            "userid": userid,
            "password_hash": directory.hash_password(password),
            "role": role,
            "notification_access": notification_access,
            "photo_access": photo_access,
            "is_active": is_active,
        })
        return row
    return _make


@pytest.fixture
def main_admin(make_admin):
    return make_admin("root", password="root-pass", role=MAIN_ADMIN)


@pytest.fixture
def settings():
    return Settings(
        secret_key="test-secret",
        session_cookie_secure=False,
        csrf_enabled=False,
        ledger_backend="memory",
        log_level="WARNING",
    )


@pytest.fixture
def app(settings, backend, directory, clock):
    app = create_app(settings=settings, backend=backend, directory=directory,
                     rng=random.Random(7), clock=clock)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(userid, password, captcha=None):
        data = {"userid": userid, "password": password}
        if captcha is not None:
            data["captcha"] = captcha
        return client.post("/login", data=data)
    return _login
