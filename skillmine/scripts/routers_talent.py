from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import List
from .auth import require_tenant
from .errors import InvalidArgumentError, LLMError
from .ranking import TalentRankingEngine
from .schemas import RequiredSkill
from .skill_advisor import SkillAdvisor
from .store import SkillStore, get_store


router = APIRouter(prefix="/talent", tags=["talent"])


def get_ranking_engine(store: SkillStore = Depends(get_store)) -> TalentRankingEngine:
    return TalentRankingEngine(store)


def get_advisor() -> SkillAdvisor:
    return SkillAdvisor()


class RankReq(BaseModel):
    required_skills: List[RequiredSkill] = Field(default_factory=list)
    justify: bool = True


@router.post("/rank")
def rank_talents(req: RankReq, tenant_id: str = Depends(require_tenant), engine: TalentRankingEngine = Depends(get_ranking_engine)):
    try:
        ranked = engine.rank(tenant_id, req.required_skills, justify=req.justify)
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LLMError as e:
        raise HTTPException(status_code=502, detail=f"similarity_unavailable: {e}")
    return {"ranked_users": [r.model_dump(mode="json") for r in ranked]}


class JobSkillsReq(BaseModel):
    job_position_name: str
    job_position_description: str


@router.post("/job-skills")
def job_skills(req: JobSkillsReq, tenant_id: str = Depends(require_tenant), advisor: SkillAdvisor = Depends(get_advisor)):
    if not req.job_position_name.strip() or not req.job_position_description.strip():
        raise HTTPException(status_code=400, detail="job_position_name and job_position_description are required")
    try:
        skills = advisor.identify_job_skills(req.job_position_name.strip(), req.job_position_description.strip())
    except LLMError as e:
        raise HTTPException(status_code=502, detail=f"llm_unavailable: {e}")
    return {"skills": skills}


class SuggestReq(BaseModel):
    search_term: str
    existing_skill_names: List[str] = Field(default_factory=list)


@router.post("/suggest")
def suggest(req: SuggestReq, tenant_id: str = Depends(require_tenant), advisor: SkillAdvisor = Depends(get_advisor)):
    return {"suggestions": advisor.suggest_skills(req.search_term, req.existing_skill_names)}
