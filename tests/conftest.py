import uuid

import mongomock
import pytest

from skillmine.scripts.config import BatchSettings
from skillmine.scripts.schemas import CollaboratorRecord, SimilarityCandidate, SimilarityMatch
from skillmine.scripts.store import SkillStore
from skillmine.scripts.tenants import create_tenant


@pytest.fixture
def store():
    db = mongomock.MongoClient()[f"skillmine_test_{uuid.uuid4().hex[:8]}"]
    return SkillStore(db)


@pytest.fixture
def tenant_id(store):
    return create_tenant(store, "Acme", "acme.com")


@pytest.fixture
def fast_settings():
    return BatchSettings(page_size=25, inter_batch_delay=0, poll_interval=0, max_wait_polls=3, log_limit=100)


@pytest.fixture
def make_records():
    def _make(n, **fields):
        return [CollaboratorRecord(user_name=f"user{i:03d}", full_name=f"User {i}", **fields) for i in range(n)]
    return _make


class FakeSource:
    def __init__(self, records, url="https://feed.test/collaborators.json"):
        self.records = records
        self.url = url
        self.converted = False

    def fetch(self):
        return list(self.records)


class FakeSimilarity:
    """Returns fixed edges: {required_lower: [(existing_name, similarity), ...]}."""

    def __init__(self, table):
        self.table = {k.lower(): v for k, v in table.items()}
        self.calls = []

    def similar(self, required_names, existing_names):
        self.calls.append((list(required_names), list(existing_names)))
        out = []
        for req in required_names:
            cands = [SimilarityCandidate(existing=name, similarity=sim) for name, sim in self.table.get(req.lower(), [])]
            out.append(SimilarityMatch(required=req, matches=cands))
        return out


@pytest.fixture
def source_for():
    def _factory(records):
        return lambda url: FakeSource(records, url or "https://feed.test/collaborators.json")
    return _factory


@pytest.fixture
def fake_similarity():
    return FakeSimilarity


def give_skill(store, tenant_id, user_name, skill_name, proficiency, email=None):
    user_id, _ = store.get_or_create_user(tenant_id, user_name, user_name.title(), email or f"{user_name}@acme.com")
    skill_id, _ = store.get_or_create_skill(tenant_id, skill_name)
    store.ensure_link(tenant_id, user_id, user_name, skill_id, proficiency)
    return user_id, skill_id


@pytest.fixture
def give():
    return give_skill
