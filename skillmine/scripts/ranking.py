"""Talent Mining: rank a tenant's users against a required-skill profile.

The similarity service is called once per ranking with every required name and
every catalog skill name; the resulting edges are reused for the whole user
population. Per user, each owned skill can satisfy at most one requirement.
When two requirements compete for the same owned skill, the pair with the
higher similarity x user proficiency claims it.

    match_score = 100 * sum(similarity * user_prof * required_prof)
                        / sum(required_prof * 5)

Unmatched requirements still count in the denominator. Users without any
matched requirement are left out of the ranking.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from . import config
from .errors import InvalidArgumentError, LLMError
from .schemas import (
    MAX_PROFICIENCY,
    RankedUser,
    RequiredSkill,
    SimilarityEdge,
    SimilarityMatch,
    UserSkillMatch,
)
from .store import SkillStore

EdgeIndex = Dict[str, List[SimilarityEdge]]


def normalize_profile(required: Sequence[Union[RequiredSkill, dict]]) -> List[RequiredSkill]:
    """Validate and de-duplicate (case-insensitive, first occurrence wins)."""
    out: List[RequiredSkill] = []
    seen = set()
    for item in required or []:
        try:
            skill = item if isinstance(item, RequiredSkill) else RequiredSkill.model_validate(item)
        except ValueError as e:
            raise InvalidArgumentError(f"invalid required skill {item!r}: {e}") from e
        key = skill.name.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(skill)
    if not out:
        raise InvalidArgumentError("required skill profile must not be empty")
    return out


def build_edge_index(matches: Iterable[SimilarityMatch], catalog: Sequence[dict]) -> EdgeIndex:
    """Map lowercased required name -> edges to catalog skills (one per skill id, best similarity)."""
    by_lower: Dict[str, List[dict]] = {}
    for skill in catalog:
        by_lower.setdefault(str(skill.get("name") or "").lower(), []).append(skill)
    index: EdgeIndex = {}
    for match in matches:
        req_key = match.required.lower()
        edges = {e.existing_skill_id: e for e in index.get(req_key, [])}
        for cand in match.matches:
            for skill in by_lower.get(cand.existing.lower(), []):
                sid = str(skill["_id"])
                prev = edges.get(sid)
                if prev is None or cand.similarity > prev.similarity:
                    edges[sid] = SimilarityEdge(
                        required_name=match.required,
                        existing_skill_id=sid,
                        existing_skill_name=skill["name"],
                        similarity=cand.similarity,
                    )
        index[req_key] = list(edges.values())
    return index


def score_user(profile: Sequence[RequiredSkill], edges: EdgeIndex, owned: Dict[str, int]) -> Tuple[float, List[UserSkillMatch]]:
    """Score one user. `owned` maps skill id -> proficiency. Returns (score, matches in profile order)."""
    candidates = []
    for pos, req in enumerate(profile):
        for order, edge in enumerate(edges.get(req.name.lower(), [])):
            prof = owned.get(edge.existing_skill_id)
            if prof is None:
                continue
            candidates.append((edge.similarity * prof, pos, order, edge, prof))
    # highest similarity x proficiency first; ties keep profile order, then service order
    candidates.sort(key=lambda c: (-c[0], c[1], c[2]))

    consumed = set()
    chosen: Dict[int, Tuple[SimilarityEdge, int]] = {}
    for _, pos, _, edge, prof in candidates:
        if pos in chosen or edge.existing_skill_id in consumed:
            continue
        consumed.add(edge.existing_skill_id)
        chosen[pos] = (edge, prof)

    numerator = 0.0
    denominator = 0.0
    matches: List[UserSkillMatch] = []
    for pos, req in enumerate(profile):
        denominator += req.proficiency * MAX_PROFICIENCY
        if pos not in chosen:
            continue
        edge, prof = chosen[pos]
        numerator += edge.similarity * prof * req.proficiency
        matches.append(UserSkillMatch(
            skill_name=req.name,
            required_proficiency=req.proficiency,
            user_proficiency=prof,
            similarity=edge.similarity,
        ))
    if not matches or denominator <= 0:
        return 0.0, []
    return 100.0 * numerator / denominator, matches


class TalentRankingEngine:
    def __init__(self, store: SkillStore, similarity=None, advisor=None, top_n: Optional[int] = None, justify_top: Optional[int] = None):
        self.store = store
        self._similarity = similarity
        self._advisor = advisor
        self.top_n = top_n if top_n is not None else config.RANK_TOP_N
        self.justify_top = justify_top if justify_top is not None else config.RANK_JUSTIFY_TOP

    @property
    def similarity(self):
        if self._similarity is None:
            from .similarity import get_similarity_service
            self._similarity = get_similarity_service()
        return self._similarity

    def _links_by_user(self, tenant_id: str) -> Dict[str, Dict[str, int]]:
        out: Dict[str, Dict[str, int]] = {}
        for link in self.store.list_links(tenant_id):
            out.setdefault(link["user_name"], {})[str(link["skill_id"])] = int(link.get("proficiency") or 0)
        return out

    def rank(self, tenant_id: str, required: Sequence[Union[RequiredSkill, dict]], justify: bool = True) -> List[RankedUser]:
        if not tenant_id:
            raise InvalidArgumentError("tenant_id is required")
        profile = normalize_profile(required)
        catalog = self.store.list_skills(tenant_id)
        users = self.store.list_users(tenant_id)
        if not catalog or not users:
            logging.info(f"RANK tenant={tenant_id} empty catalog or population (skills={len(catalog)} users={len(users)})")
            return []

        matches = self.similarity.similar([r.name for r in profile], [s["name"] for s in catalog])
        edges = build_edge_index(matches, catalog)
        links = self._links_by_user(tenant_id)

        ranked: List[RankedUser] = []
        for user in users:
            user_name = user["user_name"]
            score, matched = score_user(profile, edges, links.get(user_name, {}))
            if not matched:
                continue
            ranked.append(RankedUser(
                user_id=str(user["_id"]),
                user_name=user_name,
                full_name=user.get("full_name") or user_name,
                email=user.get("email"),
                match_score=score,
                matched_skills=matched,
            ))
        ranked.sort(key=lambda r: r.match_score, reverse=True)
        ranked = ranked[: self.top_n]
        logging.info(f"RANK tenant={tenant_id} required={len(profile)} users={len(users)} ranked={len(ranked)}")

        if justify and ranked and self.justify_top > 0:
            self._justify(profile, ranked[: self.justify_top])
        return ranked

    def _justify(self, profile: Sequence[RequiredSkill], top: List[RankedUser]) -> None:
        advisor = self._advisor
        if advisor is None:
            if not config.llm_configured():
                return
            from .skill_advisor import SkillAdvisor
            advisor = SkillAdvisor()
        try:
            texts = advisor.justify([r.name for r in profile], top)
        except (LLMError, TypeError, ValueError) as e:
            logging.warning(f"RANK justification unavailable: {e}")
            return
        for user in top:
            if user.user_name in texts:
                user.justification = texts[user.user_name]
