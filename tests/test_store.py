import pytest
from pymongo.errors import DuplicateKeyError

from skillmine.scripts.errors import ConflictError
from skillmine.scripts.schemas import ACTIVE_STATUSES, JobStatus, LogEntry
from skillmine.scripts.store import SkillStore


class _LateCollection:
    """Misses the first lookup, as if a concurrent writer inserted right after it."""

    def __init__(self, coll):
        self._coll = coll
        self.misses = 1

    def find_one(self, *args, **kwargs):
        if self.misses:
            self.misses -= 1
            return None
        return self._coll.find_one(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._coll, name)


class _LateDB:
    def __init__(self, db, names):
        self._db = db
        self._late = {name: _LateCollection(db[name]) for name in names}

    def __getitem__(self, name):
        if name in self._late:
            return self._late[name]
        return self._db[name]


@pytest.fixture
def indexed(store):
    store.create_indexes()
    return store


def test_active_job_index_rejects_second_active_row(indexed, tenant_id):
    indexed.insert_job(tenant_id, "ai", None)
    with pytest.raises(DuplicateKeyError):
        indexed.db["batch_jobs"].insert_one({"tenant_id": tenant_id, "active_tenant": tenant_id, "status": "pending"})


def test_lost_start_race_raises_conflict(indexed, tenant_id, monkeypatch):
    first = indexed.insert_job(tenant_id, "ai", None)
    real = indexed.find_active_job
    calls = []

    def stale_check(tid):
        calls.append(tid)
        # the first check runs before the winner's insert is visible
        return None if len(calls) == 1 else real(tid)

    monkeypatch.setattr(indexed, "find_active_job", stale_check)
    with pytest.raises(ConflictError) as exc:
        indexed.insert_job(tenant_id, "direct", None)
    assert exc.value.job_id == first
    assert indexed.db["batch_jobs"].count_documents({"tenant_id": tenant_id}) == 1


def test_terminal_jobs_release_the_tenant(indexed, tenant_id):
    first = indexed.insert_job(tenant_id, "ai", None)
    assert indexed.transition(first, JobStatus.COMPLETED, allowed_from=ACTIVE_STATUSES)
    assert "active_tenant" not in indexed.db["batch_jobs"].find_one({"tenant_id": tenant_id})

    second = indexed.insert_job(tenant_id, "ai", None)
    assert indexed.transition(second, JobStatus.CANCELLED, allowed_from=ACTIVE_STATUSES)
    third = indexed.insert_job(tenant_id, "direct", None)
    assert str(indexed.find_active_job(tenant_id)["_id"]) == third
    assert indexed.db["batch_jobs"].count_documents({"tenant_id": tenant_id}) == 3


def test_user_insert_race_rereads_winner(indexed, tenant_id):
    winner, created = indexed.get_or_create_user(tenant_id, "ana", "Ana", "ana@acme.com")
    assert created
    late = SkillStore(_LateDB(indexed.db, {"tenant_users"}))
    user_id, created = late.get_or_create_user(tenant_id, "ana", "Ana Lima", "ana@other.com")
    assert (user_id, created) == (winner, False)
    assert indexed.db["tenant_users"].count_documents({"tenant_id": tenant_id}) == 1
    assert indexed.db["tenant_users"].find_one({"user_name": "ana"})["full_name"] == "Ana"


def test_skill_insert_race_rereads_winner(indexed, tenant_id):
    winner, _ = indexed.get_or_create_skill(tenant_id, "Python")
    late = SkillStore(_LateDB(indexed.db, {"skills"}))
    assert late.get_or_create_skill(tenant_id, "Python") == (winner, False)
    assert indexed.db["skills"].count_documents({"tenant_id": tenant_id}) == 1


def test_link_insert_race_keeps_first_proficiency(indexed, tenant_id):
    user_id, _ = indexed.get_or_create_user(tenant_id, "ana", "Ana", "ana@acme.com")
    skill_id, _ = indexed.get_or_create_skill(tenant_id, "Python")
    assert indexed.ensure_link(tenant_id, user_id, "ana", skill_id, 4)
    late = SkillStore(_LateDB(indexed.db, {"user_skills"}))
    assert late.ensure_link(tenant_id, user_id, "ana", skill_id, 1) is False
    assert indexed.get_link(tenant_id, "ana", skill_id)["proficiency"] == 4


def test_append_log_prepends_and_bounds(store, tenant_id):
    job_id = store.insert_job(tenant_id, "ai", None)
    for i in range(7):
        store.append_log(job_id, LogEntry(message=f"entry {i}"), limit=5)
    logs = store.get_job(job_id).logs
    assert [e.message for e in logs] == ["entry 6", "entry 5", "entry 4", "entry 3", "entry 2"]
