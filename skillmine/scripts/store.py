"""Mongo-backed SkillStore.

Collections (all documents carry tenant_id):
- tenants        {name, domain}
- api_keys       {tenant_id, name, key, active}
- skills         {tenant_id, name, validated}              unique (tenant_id, name)
- tenant_users   {tenant_id, user_name, full_name, email}   unique (tenant_id, user_name)
- user_skills    {tenant_id, user_id, user_name, skill_id, proficiency}
                                                            unique (tenant_id, user_name, skill_id)
- batch_jobs     {tenant_id, status, counters..., logs[]}

Writes are check-then-insert. A DuplicateKeyError from a concurrent writer is
resolved by re-reading the winner, never by overwriting it.
"""
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from . import config
from .errors import ConflictError, NotFoundError
from .schemas import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    BatchJob,
    JobStatus,
    LogEntry,
    utcnow_iso,
)


def _oid(value: str) -> ObjectId:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFoundError(f"unknown id: {value}")


class SkillStore:
    def __init__(self, db: Database):
        self.db = db

    # --- setup ---
    def create_indexes(self) -> None:
        """Idempotent index creation (called from the API lifespan)."""
        self.db["skills"].create_index([("tenant_id", ASCENDING), ("name", ASCENDING)], unique=True, name="tenant_skill_name")
        self.db["tenant_users"].create_index([("tenant_id", ASCENDING), ("user_name", ASCENDING)], unique=True, name="tenant_user_name")
        self.db["user_skills"].create_index(
            [("tenant_id", ASCENDING), ("user_name", ASCENDING), ("skill_id", ASCENDING)],
            unique=True,
            name="tenant_user_skill",
        )
        self.db["api_keys"].create_index([("key", ASCENDING)], unique=True, name="api_key")
        self.db["batch_jobs"].create_index([("tenant_id", ASCENDING), ("created_at", DESCENDING)], name="tenant_created")
        # Only non-terminal jobs carry active_tenant, so this admits one active job per tenant
        self.db["batch_jobs"].create_index([("active_tenant", ASCENDING)], unique=True, sparse=True, name="one_active_job")

    # --- tenants ---
    def tenant_domain(self, tenant_id: str) -> str:
        doc = None
        try:
            doc = self.db["tenants"].find_one({"_id": ObjectId(tenant_id)})
        except (InvalidId, TypeError):
            doc = self.db["tenants"].find_one({"name": tenant_id})
        if doc and doc.get("domain"):
            return str(doc["domain"])
        return config.DEFAULT_TENANT_DOMAIN

    # --- users ---
    def get_or_create_user(self, tenant_id: str, user_name: str, full_name: str, email: str) -> Tuple[str, bool]:
        coll = self.db["tenant_users"]
        existing = coll.find_one({"tenant_id": tenant_id, "user_name": user_name}, {"_id": 1})
        if existing:
            return str(existing["_id"]), False
        rec = {
            "tenant_id": tenant_id,
            "user_name": user_name,
            "full_name": full_name or user_name,
            "email": email,
            "created_at": int(time.time()),
        }
        try:
            ins = coll.insert_one(rec)
        except DuplicateKeyError:
            winner = coll.find_one({"tenant_id": tenant_id, "user_name": user_name}, {"_id": 1})
            if not winner:
                raise
            return str(winner["_id"]), False
        return str(ins.inserted_id), True

    def list_users(self, tenant_id: str) -> List[Dict[str, Any]]:
        return list(self.db["tenant_users"].find({"tenant_id": tenant_id}))

    # --- skills ---
    def get_or_create_skill(self, tenant_id: str, name: str) -> Tuple[str, bool]:
        coll = self.db["skills"]
        existing = coll.find_one({"tenant_id": tenant_id, "name": name}, {"_id": 1})
        if existing:
            return str(existing["_id"]), False
        try:
            ins = coll.insert_one({"tenant_id": tenant_id, "name": name, "validated": False, "created_at": int(time.time())})
        except DuplicateKeyError:
            winner = coll.find_one({"tenant_id": tenant_id, "name": name}, {"_id": 1})
            if not winner:
                raise
            return str(winner["_id"]), False
        return str(ins.inserted_id), True

    def list_skills(self, tenant_id: str) -> List[Dict[str, Any]]:
        return list(self.db["skills"].find({"tenant_id": tenant_id}, {"name": 1, "validated": 1}))

    # --- user <-> skill links ---
    def get_link(self, tenant_id: str, user_name: str, skill_id: str) -> Optional[Dict[str, Any]]:
        return self.db["user_skills"].find_one({"tenant_id": tenant_id, "user_name": user_name, "skill_id": skill_id})

    def ensure_link(self, tenant_id: str, user_id: str, user_name: str, skill_id: str, proficiency: int) -> bool:
        """Insert the link when absent. An existing link keeps its proficiency."""
        if self.get_link(tenant_id, user_name, skill_id):
            return False
        try:
            self.db["user_skills"].insert_one({
                "tenant_id": tenant_id,
                "user_id": user_id,
                "user_name": user_name,
                "skill_id": skill_id,
                "proficiency": int(proficiency),
                "created_at": int(time.time()),
            })
        except DuplicateKeyError:
            return False
        return True

    def list_links(self, tenant_id: str) -> Iterable[Dict[str, Any]]:
        return self.db["user_skills"].find({"tenant_id": tenant_id}, {"user_name": 1, "skill_id": 1, "proficiency": 1})

    # --- batch jobs ---
    def find_active_job(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        return self.db["batch_jobs"].find_one(
            {"tenant_id": tenant_id, "status": {"$in": [s.value for s in ACTIVE_STATUSES]}},
            {"_id": 1, "status": 1},
        )

    def insert_job(self, tenant_id: str, mode: str, source_url: Optional[str]) -> str:
        active = self.find_active_job(tenant_id)
        if active:
            raise ConflictError("batch_job_already_active", job_id=str(active["_id"]))
        rec = {
            "tenant_id": tenant_id,
            "active_tenant": tenant_id,
            "status": JobStatus.PENDING.value,
            "mode": mode,
            "source_url": source_url,
            "total_collaborators": 0,
            "total_batches": 0,
            "current_batch": 0,
            "processed_collaborators": 0,
            "skills_extracted": 0,
            "skills_created": 0,
            "users_created": 0,
            "errors": 0,
            "logs": [],
            "created_at": utcnow_iso(),
            "started_at": None,
            "completed_at": None,
        }
        try:
            ins = self.db["batch_jobs"].insert_one(rec)
        except DuplicateKeyError:
            active = self.find_active_job(tenant_id)
            raise ConflictError("batch_job_already_active", job_id=str(active["_id"]) if active else None)
        return str(ins.inserted_id)

    def get_job(self, job_id: str, tenant_id: Optional[str] = None) -> BatchJob:
        q: Dict[str, Any] = {"_id": _oid(job_id)}
        if tenant_id is not None:
            q["tenant_id"] = tenant_id
        doc = self.db["batch_jobs"].find_one(q)
        if not doc:
            raise NotFoundError(f"batch job not found: {job_id}")
        return BatchJob.from_doc(doc)

    def job_status(self, job_id: str) -> Optional[JobStatus]:
        doc = self.db["batch_jobs"].find_one({"_id": _oid(job_id)}, {"status": 1})
        if not doc:
            return None
        return JobStatus(doc["status"])

    def latest_job(self, tenant_id: str) -> Optional[BatchJob]:
        cur = self.db["batch_jobs"].find({"tenant_id": tenant_id}).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(1)
        for doc in cur:
            return BatchJob.from_doc(doc)
        return None

    def set_job_fields(self, job_id: str, **fields: Any) -> None:
        self.db["batch_jobs"].update_one({"_id": _oid(job_id)}, {"$set": fields})

    def transition(self, job_id: str, status: JobStatus, allowed_from: Optional[Iterable[JobStatus]] = None, **fields: Any) -> bool:
        """Move a job to `status` if it is currently in one of `allowed_from`. Returns True on success."""
        q: Dict[str, Any] = {"_id": _oid(job_id)}
        if allowed_from is not None:
            q["status"] = {"$in": [s.value for s in allowed_from]}
        update: Dict[str, Any] = {"$set": {"status": status.value, **fields}}
        if status in TERMINAL_STATUSES:
            update["$unset"] = {"active_tenant": ""}
        res = self.db["batch_jobs"].update_one(q, update)
        if res.matched_count != 1:
            logging.info(f"BATCH transition_rejected job={job_id} to={status.value}")
            return False
        return True

    def inc_counters(self, job_id: str, **deltas: int) -> None:
        inc = {k: int(v) for k, v in deltas.items() if v}
        if inc:
            self.db["batch_jobs"].update_one({"_id": _oid(job_id)}, {"$inc": inc})

    def append_log(self, job_id: str, entry: LogEntry, limit: int = 100) -> None:
        """Prepend one entry and keep the newest `limit` entries."""
        self.db["batch_jobs"].update_one(
            {"_id": _oid(job_id)},
            {"$push": {"logs": {"$each": [entry.model_dump(mode="json")], "$position": 0, "$slice": limit}}},
        )


def get_store() -> SkillStore:
    """FastAPI dependency; tests override it with a store over an in-memory database."""
    from .db import get_db
    return SkillStore(get_db())
