"""Similarity services: required-skill names vs. the tenant's skill catalog.

Both backends return one SimilarityMatch per required name, holding only
existing names scored at or above SIMILARITY_THRESHOLD.
"""
import json
import logging
from typing import Dict, List, Optional, Sequence

from rapidfuzz import fuzz

from . import config
from .schemas import SimilarityCandidate, SimilarityMatch

SIMILARITY_THRESHOLD = 0.5

_SYSTEM_PROMPT = (
    "You compare professional skill names. For every required skill list the existing skills that "
    "mean the same thing or are directly related, with a similarity between 0 and 1 "
    "(1 = identical or perfect synonym, across languages; 0.8+ = very similar; 0.5-0.8 = related). "
    "Only include similarity >= 0.5 and use the existing names exactly as given. "
    'Return only JSON: {"matches": [{"required": str, "matches": [{"existing": str, "similarity": number}]}]}'
)

SIMILARITY_SCHEMA = {
    "type": "object",
    "properties": {
        "matches": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "required": {"type": "string"},
                    "matches": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {"existing": {"type": "string"}, "similarity": {"type": "number"}},
                            "required": ["existing", "similarity"],
                        },
                    },
                },
                "required": ["required", "matches"],
            },
        }
    },
    "required": ["matches"],
}


def parse_similarity_matches(data: dict, threshold: float = SIMILARITY_THRESHOLD) -> List[SimilarityMatch]:
    out: List[SimilarityMatch] = []
    for row in (data.get("matches") or []) if isinstance(data, dict) else []:
        if not isinstance(row, dict) or not str(row.get("required") or "").strip():
            continue
        cands: List[SimilarityCandidate] = []
        for m in row.get("matches") or []:
            if not isinstance(m, dict):
                continue
            try:
                sim = float(m.get("similarity"))
            except (TypeError, ValueError):
                continue
            name = str(m.get("existing") or "").strip()
            if name and sim >= threshold:
                cands.append(SimilarityCandidate(existing=name, similarity=min(sim, 1.0)))
        out.append(SimilarityMatch(required=str(row["required"]).strip(), matches=cands))
    return out


class LLMSimilarityService:
    def __init__(self, llm=None):
        self._llm = llm

    def _client(self):
        if self._llm is None:
            from .llm import get_llm_client
            self._llm = get_llm_client(config.OPENAI_MODEL_RANK)
        return self._llm

    def similar(self, required_names: Sequence[str], existing_names: Sequence[str]) -> List[SimilarityMatch]:
        user = json.dumps({"required_skills": list(required_names), "existing_skills": list(existing_names)}, ensure_ascii=False)
        data = self._client().complete_json(_SYSTEM_PROMPT, user, schema=SIMILARITY_SCHEMA, name="skill_similarity")
        matches = parse_similarity_matches(data)
        logging.info(f"RANK similarity matrix built for {len(matches)}/{len(required_names)} required skills")
        return matches


class FuzzySimilarityService:
    """Offline backend: token-set ratio on lowercased names."""

    def __init__(self, threshold: float = SIMILARITY_THRESHOLD):
        self.threshold = threshold

    def score(self, a: str, b: str) -> float:
        a, b = a.strip().lower(), b.strip().lower()
        if a == b:
            return 1.0
        return fuzz.token_set_ratio(a, b) / 100.0

    def similar(self, required_names: Sequence[str], existing_names: Sequence[str]) -> List[SimilarityMatch]:
        out: List[SimilarityMatch] = []
        for req in required_names:
            cands = []
            for name in existing_names:
                s = self.score(req, name)
                if s >= self.threshold:
                    cands.append(SimilarityCandidate(existing=name, similarity=round(s, 4)))
            cands.sort(key=lambda c: c.similarity, reverse=True)
            out.append(SimilarityMatch(required=req, matches=cands))
        return out


def get_similarity_service(backend: Optional[str] = None):
    backend = (backend or config.SIMILARITY_BACKEND or "auto").lower()
    if backend == "openai" or (backend == "auto" and config.llm_configured()):
        return LLMSimilarityService()
    return FuzzySimilarityService()
