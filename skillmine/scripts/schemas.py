"""Data model shared by the batch pipeline, the ranking engine and the HTTP layer."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

MIN_PROFICIENCY = 1
MAX_PROFICIENCY = 5
DEFAULT_PROFICIENCY = 3
MAX_SKILLS_PER_USER = 15

# Feed placeholders that mean "no value"
_EMPTY_MARKERS = {"", "nan", "null", "undefined", "n/a", "none"}


def clean_value(value: Any) -> str:
    """Return the trimmed string form of a feed value, or '' for empty/placeholder values."""
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    text = str(value).strip()
    if text.lower() in _EMPTY_MARKERS:
        return ""
    return text


def clamp_proficiency(value: Any) -> int:
    try:
        n = int(round(float(value)))
    except (TypeError, ValueError):
        return DEFAULT_PROFICIENCY
    if n == 0:
        return DEFAULT_PROFICIENCY
    return min(MAX_PROFICIENCY, max(MIN_PROFICIENCY, n))


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Origin(str, Enum):
    RESPONSIBILITIES = "responsibilities"
    CERTIFICATIONS = "certifications"
    EDUCATION = "education"
    EXPERIENCE = "experience"
    POSITION = "position"
    INFERRED = "inferred"

    @classmethod
    def parse(cls, raw: Any) -> "Origin":
        key = clean_value(raw).lower()
        return _ORIGIN_ALIASES.get(key, cls.INFERRED)


_ORIGIN_ALIASES = {o.value: o for o in Origin}
_ORIGIN_ALIASES.update({
    "responsabilidades": Origin.RESPONSIBILITIES,
    "responsability": Origin.RESPONSIBILITIES,
    "responsibility": Origin.RESPONSIBILITIES,
    "certificacoes": Origin.CERTIFICATIONS,
    "certificações": Origin.CERTIFICATIONS,
    "certification": Origin.CERTIFICATIONS,
    "formacao": Origin.EDUCATION,
    "formação": Origin.EDUCATION,
    "graduation": Origin.EDUCATION,
    "postgraduation": Origin.EDUCATION,
    "experiencia": Origin.EXPERIENCE,
    "experiência": Origin.EXPERIENCE,
    "hard_skills": Origin.EXPERIENCE,
    "cargo": Origin.POSITION,
    "job_position": Origin.POSITION,
    "inferido": Origin.INFERRED,
})


class CollaboratorRecord(BaseModel):
    """One row of the HR export. Read-only input to a batch run."""

    employee_id: str = ""
    user_name: str = ""
    full_name: str = ""
    job_position: str = ""
    seniority: str = ""
    responsibilities: str = ""
    certifications: str = ""
    education: str = ""
    language_proficiency: str = ""
    development_plan: str = ""
    feedback: str = ""
    hard_skills: str = ""

    @classmethod
    def from_feed(cls, row: Dict[str, Any]) -> "CollaboratorRecord":
        # The HR export keeps its historical column names (and typos)
        graduation = clean_value(row.get("graduation"))
        postgraduation = clean_value(row.get("postgraduation"))
        education = clean_value(row.get("education")) or "; ".join(p for p in (graduation, postgraduation) if p)
        return cls(
            employee_id=clean_value(row.get("employee_id")),
            user_name=clean_value(row.get("user_name")),
            full_name=clean_value(row.get("employee_name") or row.get("full_name")),
            job_position=clean_value(row.get("job_position") or row.get("joposition")),
            seniority=clean_value(row.get("seniority")),
            responsibilities=clean_value(row.get("responsabilities") or row.get("responsibilities")),
            certifications=clean_value(row.get("certifications")),
            education=education,
            language_proficiency=clean_value(row.get("language_proficiency")),
            development_plan=clean_value(row.get("PDI") or row.get("development_plan")),
            feedback=clean_value(row.get("feedbacks") or row.get("feedback")),
            hard_skills=clean_value(row.get("hard_skills")),
        )

    def text_fields(self) -> Dict[str, str]:
        """Non-empty free-text fields sent to the extraction service."""
        fields = {
            "responsibilities": self.responsibilities,
            "certifications": self.certifications,
            "education": self.education,
            "language_proficiency": self.language_proficiency,
            "development_plan": self.development_plan,
        }
        return {k: v for k, v in fields.items() if v}

    def hard_skill_names(self) -> List[str]:
        return [s.strip() for s in self.hard_skills.split("|") if s.strip()]


class ExtractedSkill(BaseModel):
    name: str
    proficiency: int = DEFAULT_PROFICIENCY
    origin: Origin = Origin.INFERRED

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v):
        return clean_value(v)

    @field_validator("proficiency", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_proficiency(v)

    @field_validator("origin", mode="before")
    @classmethod
    def _origin(cls, v):
        if isinstance(v, Origin):
            return v
        return Origin.parse(v)


class RequiredSkill(BaseModel):
    name: str
    proficiency: int = Field(DEFAULT_PROFICIENCY, ge=MIN_PROFICIENCY, le=MAX_PROFICIENCY)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("skill name must not be empty")
        return v


class SimilarityCandidate(BaseModel):
    existing: str
    similarity: float


class SimilarityMatch(BaseModel):
    """Service output: existing-skill names similar to one required skill."""

    required: str
    matches: List[SimilarityCandidate] = Field(default_factory=list)


class SimilarityEdge(BaseModel):
    required_name: str
    existing_skill_id: str
    existing_skill_name: str
    similarity: float


class UserSkillMatch(BaseModel):
    skill_name: str
    required_proficiency: int
    user_proficiency: int
    similarity: float


class RankedUser(BaseModel):
    user_id: str
    user_name: str
    full_name: str
    email: Optional[str] = None
    match_score: float
    matched_skills: List[UserSkillMatch] = Field(default_factory=list)
    justification: Optional[str] = None


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.RUNNING, JobStatus.PAUSED)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.ERROR)


class LogSeverity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class LogEntry(BaseModel):
    timestamp: str = Field(default_factory=utcnow_iso)
    message: str
    severity: LogSeverity = LogSeverity.INFO


class MergeStats(BaseModel):
    skills_extracted: int = 0
    skills_created: int = 0
    users_created: int = 0
    errors: int = 0


class BatchJob(BaseModel):
    id: str
    tenant_id: str
    status: JobStatus
    mode: str = "ai"
    source_url: Optional[str] = None
    total_collaborators: int = 0
    total_batches: int = 0
    current_batch: int = 0
    processed_collaborators: int = 0
    skills_extracted: int = 0
    skills_created: int = 0
    users_created: int = 0
    errors: int = 0
    logs: List[LogEntry] = Field(default_factory=list)
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "BatchJob":
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["id"] = str(doc.get("_id"))
        return cls(**data)
