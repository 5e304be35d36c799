import copy
import itertools

import pytest

from election import ElectionEngine

COMMISSIONER = "0x" + "c0" * 20
VOTER1 = "0x" + "a1" * 20
VOTER2 = "0x" + "a2" * 20
VOTER3 = "0x" + "a3" * 20
VOTER4 = "0x" + "a4" * 20
VOTER5 = "0x" + "a5" * 20
OUTSIDER = "0x" + "ee" * 20

START = 1_700_000_000


class FakeClock:
    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class _InsertResult:
    def __init__(self, inserted_id):
        self.inserted_id = inserted_id


class FakeCollection:
    """Just enough of pymongo's Collection for the persistence layer."""

    _ids = itertools.count(1)

    def __init__(self):
        self.docs = []

    @staticmethod
    def _matches(doc, filter_dict):
        return all(doc.get(k) == v for k, v in (filter_dict or {}).items())

    def _sorted(self, docs, sort):
        for key, direction in reversed(sort or []):
            docs = sorted(docs, key=lambda d: d.get(key), reverse=direction < 0)
        return docs

    def insert_one(self, doc):
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", next(self._ids))
        self.docs.append(doc)
        return _InsertResult(doc["_id"])

    def insert_many(self, docs):
        for doc in docs:
            self.insert_one(doc)

    def replace_one(self, filter_dict, doc, upsert=False):
        for i, existing in enumerate(self.docs):
            if self._matches(existing, filter_dict):
                self.docs[i] = copy.deepcopy(doc)
                return
        if upsert:
            self.insert_one(doc)

    def find(self, filter_dict=None, sort=None, limit=0):
        docs = self._sorted([d for d in self.docs if self._matches(d, filter_dict)], sort)
        if limit:
            docs = docs[:limit]
        return [copy.deepcopy(d) for d in docs]

    def find_one(self, filter_dict=None, sort=None):
        docs = self.find(filter_dict, sort=sort, limit=1)
        return docs[0] if docs else None


class FakeDatabase:
    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())

    def list_collection_names(self):
        return list(self.collections)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def engine(clock):
    return ElectionEngine.create("Test Election 2024", 7, COMMISSIONER, clock=clock)


def setup_voting(engine, voters=(VOTER1, VOTER2, VOTER3), candidates=("Alice", "Bob", "Charlie")):
    engine.batch_register_voters(COMMISSIONER, list(voters), [f"ID{i:03d}" for i in range(1, len(voters) + 1)])
    engine.move_to_next_phase(COMMISSIONER)
    for name in candidates:
        engine.nominate_candidate(COMMISSIONER, name, f"Party {name[0]}", f"Manifesto {name[0]}")
    engine.move_to_next_phase(COMMISSIONER)
    return engine


@pytest.fixture
def voting_engine(engine):
    return setup_voting(engine)
