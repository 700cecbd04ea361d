"""Idempotent ingestion of one page of extraction results.

For every collaborator with extracted skills: create the tenant user if absent,
create each skill if absent (validated=False) and link user to skill if the
link is absent. An existing link is never overwritten, so re-running a page
keeps any proficiency edited since the first run.
"""
import logging
import re
from typing import Dict, List, Sequence

from pymongo.errors import PyMongoError

from .errors import MergeError
from .schemas import CollaboratorRecord, ExtractedSkill, MergeStats
from .store import SkillStore

MAX_SKILL_NAME = 120


def normalize_skill_name(name: str) -> str:
    norm = re.sub(r"\s+", " ", (name or "").strip())
    if not norm:
        raise MergeError("empty skill name")
    if len(norm) > MAX_SKILL_NAME:
        raise MergeError(f"skill name too long ({len(norm)} chars)")
    return norm


class ResultMerger:
    def __init__(self, store: SkillStore, tenant_id: str, domain: str = None):
        self.store = store
        self.tenant_id = tenant_id
        self.domain = domain or store.tenant_domain(tenant_id)

    def merge(self, results: Dict[str, List[ExtractedSkill]], records: Sequence[CollaboratorRecord]) -> MergeStats:
        stats = MergeStats()
        for rec in records:
            skills = results.get(rec.user_name) if rec.user_name else None
            if not skills:
                continue
            try:
                user_id, created = self.store.get_or_create_user(
                    self.tenant_id, rec.user_name, rec.full_name, f"{rec.user_name}@{self.domain}"
                )
            except PyMongoError as e:
                stats.errors += 1
                logging.warning(f"MERGE user upsert failed tenant={self.tenant_id} user={rec.user_name}: {e}")
                continue
            if created:
                stats.users_created += 1
            for skill in skills:
                stats.skills_extracted += 1
                try:
                    self._merge_skill(user_id, rec.user_name, skill, stats)
                except (MergeError, PyMongoError) as e:
                    stats.errors += 1
                    logging.warning(f"MERGE skill failed tenant={self.tenant_id} user={rec.user_name} skill={skill.name!r}: {e}")
        return stats

    def _merge_skill(self, user_id: str, user_name: str, skill: ExtractedSkill, stats: MergeStats) -> None:
        name = normalize_skill_name(skill.name)
        skill_id, created = self.store.get_or_create_skill(self.tenant_id, name)
        if created:
            stats.skills_created += 1
        self.store.ensure_link(self.tenant_id, user_id, user_name, skill_id, skill.proficiency)
