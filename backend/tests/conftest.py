# shared fixtures for backend api tests
# provides mock db, test users, auth tokens, and httpx test clients per role

import copy
import re
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from unittest.mock import MagicMock
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from httpx import AsyncClient, ASGITransport

from moodflow.main import app
from moodflow.services.db import get_db
from moodflow.services.identity import create_access_token
from moodflow.services.subscriptions import hub
from moodflow.dependencies import get_current_user


# test ids

PATIENT_OID = ObjectId("665f1c2e8b3a4d0012000001")
PATIENT_2_OID = ObjectId("665f1c2e8b3a4d0012000002")
PSYCHOLOGIST_OID = ObjectId("665f1c2e8b3a4d0012000003")
PSYCHIATRIST_OID = ObjectId("665f1c2e8b3a4d0012000004")
PSYCHOLOGIST_2_OID = ObjectId("665f1c2e8b3a4d0012000005")
ADMIN_OID = ObjectId("665f1c2e8b3a4d0012000006")

PATIENT_ID = str(PATIENT_OID)
PATIENT_2_ID = str(PATIENT_2_OID)
PSYCHOLOGIST_ID = str(PSYCHOLOGIST_OID)
PSYCHIATRIST_ID = str(PSYCHIATRIST_OID)
PSYCHOLOGIST_2_ID = str(PSYCHOLOGIST_2_OID)
ADMIN_ID = str(ADMIN_OID)


# test user documents (as they'd appear from mongodb)

PATIENT_DOC = {
    "_id": PATIENT_OID,
    "email": "ana.souza@email.com",
    "name": "Ana Souza",
    "role": "patient",
    "created_at": "2025-05-01T00:00:00+00:00",
}

PATIENT_2_DOC = {
    "_id": PATIENT_2_OID,
    "email": "bruno.lima@email.com",
    "name": "Bruno Lima",
    "role": "patient",
    "created_at": "2025-05-02T00:00:00+00:00",
}

PSYCHOLOGIST_DOC = {
    "_id": PSYCHOLOGIST_OID,
    "email": "dr.costa@moodflow.com",
    "name": "Dr. Helena Costa",
    "role": "psychologist",
    "created_at": "2025-04-01T00:00:00+00:00",
}

PSYCHIATRIST_DOC = {
    "_id": PSYCHIATRIST_OID,
    "email": "dr.rocha@moodflow.com",
    "name": "Dr. Paulo Rocha",
    "role": "psychiatrist",
    "created_at": "2025-04-02T00:00:00+00:00",
}

PSYCHOLOGIST_2_DOC = {
    "_id": PSYCHOLOGIST_2_OID,
    "email": "dr.alves@moodflow.com",
    "name": "Dr. Marta Alves",
    "role": "psychologist",
    "created_at": "2025-04-03T00:00:00+00:00",
}

ADMIN_DOC = {
    "_id": ADMIN_OID,
    "email": "admin@clinic.com",
    "name": "Clinic Admin",
    "role": "clinic_admin",
    "created_at": "2025-04-01T00:00:00+00:00",
}


# sample data: the patient is connected to one psychologist and one psychiatrist

CONNECTION_PSYCHOLOGIST = {
    "patient_id": PATIENT_ID,
    "professional_id": PSYCHOLOGIST_ID,
    "specialty": "psychologist",
    "created_at": "2025-05-10T00:00:00+00:00",
}

CONNECTION_PSYCHIATRIST = {
    "patient_id": PATIENT_ID,
    "professional_id": PSYCHIATRIST_ID,
    "specialty": "psychiatrist",
    "created_at": "2025-05-11T00:00:00+00:00",
}

ENTRY_OPEN = {
    "entry_id": "entryopen001",
    "patient_id": PATIENT_ID,
    "timestamp": "2025-06-10T12:00:00+00:00",
    "mood": 2,
    "mood_label": "low",
    "energy": 3,
    "text": "Hard day at work, could not focus.",
    "tags": ["work"],
    "entry_mode": "mood",
    "locked": False,
    "visible_to_psychologist": None,
    "visible_to_psychiatrist": None,
    "permissions": [],
    "visibility": {"kind": "open_to_all", "specialties": [], "professional_ids": []},
}

ENTRY_PSYCHOLOGIST_ONLY = {
    "entry_id": "entrypsylog1",
    "patient_id": PATIENT_ID,
    "timestamp": "2025-06-12T09:30:00+00:00",
    "mood": 4,
    "mood_label": "good",
    "energy": 6,
    "text": "Therapy homework went well.",
    "tags": ["therapy"],
    "entry_mode": "mood",
    "locked": False,
    "visible_to_psychologist": True,
    "visible_to_psychiatrist": None,
    "permissions": [],
    "visibility": {"kind": "restricted_to", "specialties": ["psychologist"], "professional_ids": []},
}

ENTRY_LOCKED = {
    "entry_id": "entrylocked1",
    "patient_id": PATIENT_ID,
    "timestamp": "2025-06-14T22:00:00+00:00",
    "mood": None,
    "mood_label": None,
    "energy": None,
    "text": "Private diary, nobody reads this.",
    "tags": [],
    "entry_mode": "diary",
    "locked": True,
    "visible_to_psychologist": None,
    "visible_to_psychiatrist": None,
    "permissions": [],
    "visibility": {"kind": "locked", "specialties": [], "professional_ids": []},
}

# legacy row written before the policy value existed: derived on read
ENTRY_LEGACY_PSYCHIATRIST = {
    "entry_id": "entrylegacy1",
    "patient_id": PATIENT_ID,
    "timestamp": "2025-06-08T08:00:00+00:00",
    "mood": 3,
    "text": "Medication side effects are easing.",
    "locked": False,
    "visible_to_psychologist": False,
    "visible_to_psychiatrist": True,
    "permissions": [],
}

ENTRY_PATIENT_2 = {
    "entry_id": "entryother01",
    "patient_id": PATIENT_2_ID,
    "timestamp": "2025-06-11T10:00:00+00:00",
    "mood": 5,
    "text": "Great weekend.",
    "locked": False,
    "visible_to_psychologist": None,
    "visible_to_psychiatrist": None,
    "permissions": [],
    "visibility": {"kind": "open_to_all", "specialties": [], "professional_ids": []},
}


# mongo query and update emulation

_MISSING = object()


def _get_path(doc, path):
    current = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _values_equal(doc_val, value):
    if doc_val is _MISSING:
        return value is None
    if isinstance(doc_val, list) and not isinstance(value, list):
        return value in doc_val
    return doc_val == value


def _match_operator(doc_val, op, arg):
    present = doc_val is not _MISSING
    if op == "$in":
        if isinstance(doc_val, list):
            return any(v in arg for v in doc_val)
        return (doc_val if present else None) in arg
    if op == "$nin":
        return not _match_operator(doc_val, "$in", arg)
    if op == "$ne":
        return not _values_equal(doc_val, arg)
    if op == "$exists":
        return present == bool(arg)
    if op in ("$gte", "$gt", "$lte", "$lt"):
        if not present or doc_val is None:
            return False
        return {
            "$gte": doc_val >= arg,
            "$gt": doc_val > arg,
            "$lte": doc_val <= arg,
            "$lt": doc_val < arg,
        }[op]
    if op == "$regex":
        return present and doc_val is not None and re.search(arg, str(doc_val)) is not None
    raise NotImplementedError(f"mock query operator {op}")


def matches(doc, query):
    """mongodb query matching for the operators the services use"""
    for key, value in (query or {}).items():
        if key == "$or":
            if not any(matches(doc, cond) for cond in value):
                return False
            continue
        doc_val = _get_path(doc, key)
        if isinstance(value, dict) and value and all(k.startswith("$") for k in value):
            ops = dict(value)
            options = ops.pop("$options", "")
            if "$regex" in ops:
                flags = re.IGNORECASE if "i" in options else 0
                pattern = ops.pop("$regex")
                if doc_val is _MISSING or doc_val is None or not re.search(pattern, str(doc_val), flags):
                    return False
            for op, arg in ops.items():
                if not _match_operator(doc_val, op, arg):
                    return False
        elif not _values_equal(doc_val, value):
            return False
    return True


def _set_path(doc, path, value):
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def apply_update(doc, update):
    """apply $set/$pull/$addToSet/$push in place; returns True if doc changed"""
    before = copy.deepcopy(doc)
    for key, value in update.get("$set", {}).items():
        _set_path(doc, key, copy.deepcopy(value))
    for key, cond in update.get("$pull", {}).items():
        current = _get_path(doc, key)
        if isinstance(current, list):
            if isinstance(cond, dict) and "$in" in cond:
                kept = [v for v in current if v not in cond["$in"]]
            else:
                kept = [v for v in current if v != cond]
            _set_path(doc, key, kept)
    for key, value in update.get("$addToSet", {}).items():
        current = _get_path(doc, key)
        current = [] if current is _MISSING else current
        if value not in current:
            current.append(value)
        _set_path(doc, key, current)
    for key, value in update.get("$push", {}).items():
        current = _get_path(doc, key)
        current = [] if current is _MISSING else current
        current.append(value)
        _set_path(doc, key, current)
    return doc != before


def _sort_key(doc, key):
    value = _get_path(doc, key)
    if value is _MISSING or value is None:
        return (0, "")
    return (1, value)


# async cursor mock

class AsyncCursorMock:
    """mock for motor's async cursor: supports async for and chained methods"""

    def __init__(self, data=None):
        self._data = list(data or [])
        self._index = 0

    def sort(self, key_or_list, direction=1):
        keys = [(key_or_list, direction)] if isinstance(key_or_list, str) else list(key_or_list)
        for key, dirn in reversed(keys):
            self._data.sort(key=lambda d: _sort_key(d, key), reverse=dirn == -1)
        return self

    def skip(self, n):
        self._data = self._data[n:]
        return self

    def limit(self, n):
        if n:
            self._data = self._data[:n]
        return self

    def __aiter__(self):
        self._index = 0
        return self

    async def __anext__(self):
        if self._index >= len(self._data):
            raise StopAsyncIteration
        item = self._data[self._index]
        self._index += 1
        return item

    async def to_list(self, length=None):
        if length is not None:
            return self._data[:length]
        return self._data


class MockCollection:
    """mock for a motor collection with async methods and unique indexes"""

    def __init__(self, data=None, unique=None):
        self._data = data or []
        self.inserted = []
        self._unique = [tuple(u) for u in (unique or [])]

    def find(self, query=None, projection=None, **kwargs):
        return AsyncCursorMock([d for d in self._data if matches(d, query)])

    async def find_one(self, query=None, projection=None, **kwargs):
        for doc in self._data:
            if matches(doc, query):
                return doc
        return None

    async def insert_one(self, doc, **kwargs):
        for fields in self._unique:
            key = {f: doc.get(f) for f in fields}
            if any(all(d.get(f) == v for f, v in key.items()) for d in self._data):
                raise DuplicateKeyError(f"E11000 duplicate key error: {key}")
        oid = doc.get("_id", ObjectId())
        doc["_id"] = oid
        self._data.append(doc)
        self.inserted.append(doc)
        result = MagicMock()
        result.inserted_id = oid
        return result

    async def count_documents(self, query=None, **kwargs):
        return len([d for d in self._data if matches(d, query)])

    async def update_one(self, query, update, upsert=False, **kwargs):
        result = MagicMock()
        result.matched_count = 0
        result.modified_count = 0
        for doc in self._data:
            if matches(doc, query):
                result.matched_count = 1
                result.modified_count = int(apply_update(doc, update))
                break
        return result

    async def update_many(self, query, update, upsert=False, **kwargs):
        result = MagicMock()
        targets = [d for d in self._data if matches(d, query)]
        result.matched_count = len(targets)
        result.modified_count = sum(int(apply_update(d, update)) for d in targets)
        return result

    async def delete_one(self, query, **kwargs):
        result = MagicMock()
        result.deleted_count = 0
        for doc in self._data:
            if matches(doc, query):
                self._data.remove(doc)
                result.deleted_count = 1
                break
        return result

    async def delete_many(self, query, **kwargs):
        result = MagicMock()
        kept = [d for d in self._data if not matches(d, query)]
        result.deleted_count = len(self._data) - len(kept)
        self._data[:] = kept
        return result

    async def create_index(self, keys, unique=False, name=None, **kwargs):
        if unique:
            fields = (keys,) if isinstance(keys, str) else tuple(k for k, _ in keys)
            if fields not in self._unique:
                self._unique.append(fields)
        return name or "mock_index"


class MockDatabase:
    """mock database that mimics the Database class"""

    def __init__(self):
        self.users = MockCollection([
            PATIENT_DOC.copy(),
            PATIENT_2_DOC.copy(),
            PSYCHOLOGIST_DOC.copy(),
            PSYCHIATRIST_DOC.copy(),
            PSYCHOLOGIST_2_DOC.copy(),
            ADMIN_DOC.copy(),
        ])
        self.entries = MockCollection(
            [copy.deepcopy(e) for e in (
                ENTRY_OPEN, ENTRY_PSYCHOLOGIST_ONLY, ENTRY_LOCKED,
                ENTRY_LEGACY_PSYCHIATRIST, ENTRY_PATIENT_2,
            )],
            unique=[("entry_id",)],
        )
        self.connections = MockCollection(
            [CONNECTION_PSYCHOLOGIST.copy(), CONNECTION_PSYCHIATRIST.copy()],
            unique=[("patient_id", "professional_id")],
        )
        self.threads = MockCollection([], unique=[("patient_id", "professional_id", "specialty")])
        self.notes = MockCollection([])
        self.notifications = MockCollection([])
        self.audit_logs = MockCollection([])

    @asynccontextmanager
    async def transaction(self):
        yield None

    async def connect(self):
        pass

    async def ensure_indexes(self):
        pass

    async def close(self):
        pass


@pytest.fixture
def mock_db():
    """create a fresh mock database for each test"""
    return MockDatabase()


@pytest.fixture(autouse=True)
def clean_hub():
    """no subscription leaks between tests"""
    yield
    hub._subscribers.clear()


def user_dict(doc):
    """user dict as get_current_user would return it"""
    user = doc.copy()
    user["id"] = str(user.pop("_id"))
    return user


def token_for(doc):
    return create_access_token({"sub": str(doc["_id"]), "role": doc["role"]})


@pytest.fixture
def patient_token():
    return token_for(PATIENT_DOC)


@pytest.fixture
def psychologist_token():
    return token_for(PSYCHOLOGIST_DOC)


@asynccontextmanager
async def _client_as(mock_db, doc=None):
    async def override_get_db():
        return mock_db

    app.dependency_overrides[get_db] = override_get_db
    if doc is not None:
        async def override_get_current_user():
            return user_dict(doc)

        app.dependency_overrides[get_current_user] = override_get_current_user

    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(mock_db):
    """httpx async test client, real token validation"""
    async with _client_as(mock_db) as ac:
        yield ac


@pytest_asyncio.fixture
async def patient_client(mock_db):
    async with _client_as(mock_db, PATIENT_DOC) as ac:
        yield ac


@pytest_asyncio.fixture
async def patient_2_client(mock_db):
    async with _client_as(mock_db, PATIENT_2_DOC) as ac:
        yield ac


@pytest_asyncio.fixture
async def psychologist_client(mock_db):
    async with _client_as(mock_db, PSYCHOLOGIST_DOC) as ac:
        yield ac


@pytest_asyncio.fixture
async def psychiatrist_client(mock_db):
    async with _client_as(mock_db, PSYCHIATRIST_DOC) as ac:
        yield ac


@pytest_asyncio.fixture
async def psychologist_2_client(mock_db):
    async with _client_as(mock_db, PSYCHOLOGIST_2_DOC) as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_client(mock_db):
    async with _client_as(mock_db, ADMIN_DOC) as ac:
        yield ac
