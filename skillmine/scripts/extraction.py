"""Skill extraction services.

Both extractors take one page of CollaboratorRecord and return
{user_name: [ExtractedSkill, ...]}:
- LLMSkillExtractor asks the LLM gateway (mode "ai").
- HardSkillsExtractor splits the pipe-delimited hard_skills column (mode "direct").
"""
import json
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .errors import ExtractionError, LLMError
from .schemas import MAX_SKILLS_PER_USER, CollaboratorRecord, ExtractedSkill, Origin

_JUNIOR = ("junior", "júnior", "trainee", "estagiário", "estagiario", "intern")
_MID = ("pleno", "mid")
_SENIOR = ("senior", "sênior", "especialista", "specialist", "lead", "líder", "lider", "gerente", "manager", "diretor", "director")


def seniority_range(seniority: str) -> Tuple[int, int]:
    """Suggested proficiency range for the extraction prompt."""
    s = (seniority or "").lower()
    if any(k in s for k in _SENIOR):
        return 4, 5
    if any(k in s for k in _MID):
        return 3, 4
    if any(k in s for k in _JUNIOR):
        return 2, 3
    return 3, 4


def seniority_proficiency(seniority: str) -> int:
    """Single proficiency used by the direct import."""
    s = (seniority or "").lower()
    if any(k in s for k in _JUNIOR):
        return 2
    if any(k in s for k in _MID):
        return 3
    if any(k in s for k in _SENIOR):
        return 4
    return 3


_SYSTEM_PROMPT = (
    "You extract technical hard skills (technologies, tools, methods, languages, certifications) "
    "from HR records. Ignore soft skills. Normalize skill names. For every skill give a proficiency "
    "inside the collaborator's proficiency_range and an origin, one of: responsibilities, "
    "certifications, education, experience, position, inferred. "
    f"At most {MAX_SKILLS_PER_USER} skills per collaborator. "
    'Return only JSON: {"results": {"<user_name>": [{"name": str, "proficiency": int, "origin": str}]}}'
)

EXTRACTION_SCHEMA = {
    "type": "object",
    "properties": {
        "results": {
            "type": "object",
            "additionalProperties": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "proficiency": {"type": "integer"},
                        "origin": {"type": "string"},
                    },
                    "required": ["name", "proficiency", "origin"],
                },
            },
        }
    },
    "required": ["results"],
}


def build_extraction_request(records: Sequence[CollaboratorRecord]) -> List[dict]:
    """Prompt payload: one entry per collaborator with a user name and at least one text field."""
    out = []
    for rec in records:
        fields = rec.text_fields()
        if not rec.user_name or not fields:
            continue
        lo, hi = seniority_range(rec.seniority)
        out.append({
            "user_name": rec.user_name,
            "seniority": rec.seniority or "unknown",
            "job_position": rec.job_position or "unknown",
            "proficiency_range": f"{lo}-{hi}",
            "data": fields,
        })
    return out


def parse_extraction_results(data: dict) -> Dict[str, List[ExtractedSkill]]:
    results = data.get("results") if isinstance(data, dict) else None
    if not isinstance(results, dict):
        raise ExtractionError("extraction response has no 'results' object")
    cleaned: Dict[str, List[ExtractedSkill]] = {}
    for user_name, skills in results.items():
        if not isinstance(skills, list):
            continue
        parsed: List[ExtractedSkill] = []
        for raw in skills:
            if not isinstance(raw, dict):
                continue
            try:
                skill = ExtractedSkill.model_validate(raw)
            except ValidationError:
                continue
            if skill.name:
                parsed.append(skill)
        cleaned[str(user_name).strip()] = parsed[:MAX_SKILLS_PER_USER]
    return cleaned


class LLMSkillExtractor:
    def __init__(self, llm=None):
        self._llm = llm

    def _client(self):
        if self._llm is None:
            from .llm import get_llm_client
            from . import config
            self._llm = get_llm_client(config.OPENAI_MODEL_EXTRACT)
        return self._llm

    def extract(self, records: Sequence[CollaboratorRecord]) -> Dict[str, List[ExtractedSkill]]:
        payload = build_extraction_request(records)
        if not payload:
            logging.info(f"MERGE no extractable collaborators in page of {len(records)}")
            return {}
        user = "Extract the hard skills of these collaborators:\n" + json.dumps(payload, ensure_ascii=False, indent=2)
        try:
            data = self._client().complete_json(_SYSTEM_PROMPT, user, schema=EXTRACTION_SCHEMA, name="skill_extraction")
        except LLMError as e:
            raise ExtractionError(str(e)) from e
        results = parse_extraction_results(data)
        logging.info(f"LLM: extracted skills for {len(results)}/{len(payload)} collaborators")
        return results


class HardSkillsExtractor:
    """Direct import: no LLM, proficiency from seniority."""

    def extract(self, records: Sequence[CollaboratorRecord]) -> Dict[str, List[ExtractedSkill]]:
        out: Dict[str, List[ExtractedSkill]] = {}
        for rec in records:
            names = rec.hard_skill_names()
            if not rec.user_name or not names:
                logging.info(f"MERGE skipping collaborator without user_name or hard_skills: {rec.full_name or rec.employee_id}")
                continue
            prof = seniority_proficiency(rec.seniority)
            out[rec.user_name] = [ExtractedSkill(name=n, proficiency=prof, origin=Origin.EXPERIENCE) for n in names]
        return out


def extractor_for_mode(mode: str, llm: Optional[object] = None):
    if mode == "direct":
        return HardSkillsExtractor()
    return LLMSkillExtractor(llm=llm)
