"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths, the environment required by
    app.config, and an in-memory stand-in for the motor database patched over
    ``app.database.db``.
"""

from __future__ import annotations

import os
import sys
from itertools import count
from pathlib import Path
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_REPO_ROOT = _THIS_FILE.parents[2]

for candidate in (str(_BACKEND_DIR), str(_REPO_ROOT)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET", "test-secret-with-at-least-32-bytes-of-entropy")


_MISSING = object()


def _nested(doc, path):
    cur = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return _MISSING
        cur = cur[part]
    return cur


def _compare(val, op, expected):
    if val is _MISSING or val is None:
        return False
    try:
        if op == "$gte":
            return val >= expected
        if op == "$lte":
            return val <= expected
        if op == "$gt":
            return val > expected
        if op == "$lt":
            return val < expected
    except TypeError:
        return False
    raise NotImplementedError(op)


def _match(doc, query) -> bool:
    for key, expected in query.items():
        if key == "$or":
            if not any(_match(doc, q) for q in expected):
                return False
            continue
        if key == "$and":
            if not all(_match(doc, q) for q in expected):
                return False
            continue

        val = _nested(doc, key)
        if isinstance(expected, dict) and any(k.startswith("$") for k in expected):
            for op, arg in expected.items():
                if op == "$in":
                    if val is _MISSING or val not in arg:
                        return False
                elif op == "$ne":
                    if val is not _MISSING and val == arg:
                        return False
                elif op == "$exists":
                    if (val is not _MISSING) != bool(arg):
                        return False
                elif not _compare(val, op, arg):
                    return False
            continue

        if val is _MISSING or val != expected:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)
        self._skip = 0
        self._limit = None

    def sort(self, key, direction=1):
        reverse = int(direction) < 0
        # Missing keys sort first ascending, like Mongo's null ordering.
        present = [d for d in self._docs if d.get(key) is not None]
        missing = [d for d in self._docs if d.get(key) is None]
        present.sort(key=lambda d: d[key], reverse=reverse)
        self._docs = present + missing if reverse else missing + present
        return self

    def skip(self, value):
        self._skip = int(value)
        return self

    def limit(self, value):
        self._limit = int(value)
        return self

    async def to_list(self, length=None):
        docs = self._docs[self._skip:]
        if self._limit:
            docs = docs[: self._limit]
        if length is not None:
            docs = docs[:length]
        return [dict(d) for d in docs]


class FakeCollection:
    """Enough of motor's AsyncIOMotorCollection for the services under test."""

    def __init__(self, name: str, unique: tuple = ()):
        self.name = name
        self.docs: list[dict] = []
        self.unique = unique
        self.fail_writes = False

    def _check_unique(self, candidate: dict) -> None:
        for fields in self.unique:
            values = [_nested(candidate, f) for f in fields]
            if any(v is _MISSING for v in values):
                continue
            for doc in self.docs:
                if doc.get("_id") == candidate.get("_id"):
                    continue
                if [_nested(doc, f) for f in fields] == values:
                    raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name}")

    def _guard(self) -> None:
        if self.fail_writes:
            raise PyMongoError(f"{self.name} unavailable")

    def find(self, query=None, _projection=None):
        return FakeCursor([d for d in self.docs if _match(d, query or {})])

    async def find_one(self, query=None, _projection=None):
        for doc in self.docs:
            if _match(doc, query or {}):
                return dict(doc)
        return None

    async def count_documents(self, query):
        return sum(1 for d in self.docs if _match(d, query))

    async def distinct(self, field, query=None):
        values = []
        for doc in self.docs:
            if not _match(doc, query or {}):
                continue
            val = _nested(doc, field)
            if val is not _MISSING and val not in values:
                values.append(val)
        return values

    async def insert_one(self, doc):
        self._guard()
        doc.setdefault("_id", ObjectId())
        if any(d["_id"] == doc["_id"] for d in self.docs):
            raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} _id")
        self._check_unique(doc)
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    def _apply(self, doc: dict, update: dict, inserting: bool) -> dict:
        updated = dict(doc)
        updated.update(update.get("$set") or {})
        if inserting:
            updated.update(update.get("$setOnInsert") or {})
        self._check_unique(updated)
        return updated

    async def update_one(self, query, update, upsert=False):
        self._guard()
        for i, doc in enumerate(self.docs):
            if _match(doc, query):
                self.docs[i] = self._apply(doc, update, inserting=False)
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        seed = {k: v for k, v in query.items() if not k.startswith("$") and not isinstance(v, dict)}
        seed.setdefault("_id", ObjectId())
        new_doc = self._apply(seed, update, inserting=True)
        self.docs.append(new_doc)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=new_doc["_id"])

    async def find_one_and_update(self, query, update, return_document=None):
        self._guard()
        for i, doc in enumerate(self.docs):
            if _match(doc, query):
                self.docs[i] = self._apply(doc, update, inserting=False)
                return dict(self.docs[i]) if return_document else dict(doc)
        return None

    async def delete_one(self, query):
        self._guard()
        for i, doc in enumerate(self.docs):
            if _match(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def delete_many(self, query):
        self._guard()
        before = len(self.docs)
        self.docs = [d for d in self.docs if not _match(d, query)]
        return SimpleNamespace(deleted_count=before - len(self.docs))


_UNIQUE = {
    "auth_users": (("email",),),
    "teams": (("owner_id",),),
    "players": (("team_id", "jersey_number"),),
    "refresh_tokens": (("jti",),),
    "access_blocklist": (("jti",),),
}


class FakeDB:
    def __init__(self):
        self._collections: dict[str, FakeCollection] = {}

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._collections:
            self._collections[name] = FakeCollection(name, _UNIQUE.get(name, ()))
        return self._collections[name]

    async def command(self, name):
        return {"ok": 1.0}


@pytest.fixture
def fake_db(monkeypatch):
    import app.database as database

    db = FakeDB()
    monkeypatch.setattr(database, "db", db, raising=False)
    return db


_seq = count(1)


@pytest.fixture
def make_principal():
    from app.models.principal import Principal

    def _make(role: str, user_id: str | None = None) -> Principal:
        return Principal(
            id=user_id or str(ObjectId()),
            email=f"user{next(_seq)}@example.com",
            role=role,
        )

    return _make
