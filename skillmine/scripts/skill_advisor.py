"""LLM helpers around the ranking flow: candidate justifications, required
skills for a job position, and related-skill suggestions for a search term."""
import json
import logging
from typing import Dict, List, Sequence

from . import config
from .errors import LLMError
from .schemas import RankedUser


def _clean_names(values, limit: int) -> List[str]:
    if values is None:
        values = []
    if not isinstance(values, list):
        raise LLMError(f"expected a list of names, got {type(values).__name__}")
    out: List[str] = []
    seen = set()
    for v in values:
        name = str(v or "").strip().strip('"').strip()
        if not name or len(name) > 100 or name.lower() in seen:
            continue
        seen.add(name.lower())
        out.append(name)
    return out[:limit]


class SkillAdvisor:
    def __init__(self, llm=None):
        self._llm = llm

    def _client(self):
        if self._llm is None:
            from .llm import get_llm_client
            self._llm = get_llm_client(config.OPENAI_MODEL_RANK)
        return self._llm

    def justify(self, required_names: Sequence[str], users: Sequence[RankedUser]) -> Dict[str, str]:
        """Short justification per user_name. Raises LLMError on gateway failure."""
        if not users:
            return {}
        lines = []
        for i, u in enumerate(users, 1):
            skills = ", ".join(f"{m.skill_name} ({m.user_proficiency}/5)" for m in u.matched_skills)
            lines.append(f"{i}. user_name={u.user_name} name={u.full_name} match={round(u.match_score)}% skills: {skills}")
        system = (
            "You are a recruiting specialist. For each candidate write a justification of at most two "
            "sentences naming the skills that make them a fit. "
            'Return only JSON: {"justifications": [{"user_name": str, "text": str}]}'
        )
        user = f"Required skills: {', '.join(required_names)}\n\nCandidates:\n" + "\n".join(lines)
        data = self._client().complete_json(system, user, name="ranking_justification", temperature=0.5)
        rows = data.get("justifications")
        if not isinstance(rows, list):
            raise LLMError(f"justifications must be a list, got {type(rows).__name__}")
        out: Dict[str, str] = {}
        for row in rows:
            if isinstance(row, dict) and row.get("user_name") and row.get("text"):
                out[str(row["user_name"])] = str(row["text"]).strip()
        return out

    def identify_job_skills(self, job_position_name: str, job_position_description: str) -> List[str]:
        system = (
            "You are an HR competency specialist. List between 5 and 15 specific, measurable skills "
            "(hard and soft) required for the given job position. "
            'Return only JSON: {"skills": [str]}'
        )
        user = f"Position: {job_position_name}\n\nDescription: {job_position_description}"
        data = self._client().complete_json(system, user, name="job_skills")
        skills = _clean_names(data.get("skills"), 15)
        logging.info(f"RANK identified {len(skills)} skills for position {job_position_name!r}")
        return skills

    def suggest_skills(self, search_term: str, existing_skill_names: Sequence[str]) -> List[str]:
        """5-8 related skills, search term first. Falls back to [search_term] when the LLM fails."""
        term = (search_term or "").strip()
        if not term:
            return []
        system = (
            "You are an HR assistant. Suggest 5 to 8 professional skills related to the search term: "
            "the term itself if it is a valid skill, synonyms and variations, and related skills. "
            'Return only JSON: {"suggestions": [str]}'
        )
        user = json.dumps({"search_term": term, "existing_skills": list(existing_skill_names)}, ensure_ascii=False)
        try:
            data = self._client().complete_json(system, user, name="skill_suggestions")
            suggestions = _clean_names(data.get("suggestions"), 8)
        except LLMError as e:
            logging.warning(f"RANK suggestions unavailable for {term!r}: {e}")
            return [term]
        if not any(s.lower() == term.lower() for s in suggestions):
            suggestions.insert(0, term)
        return suggestions
