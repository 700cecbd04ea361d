"""Exception taxonomy shared by the batch pipeline, the ranking engine and the routers."""
from typing import Optional


class SkillMineError(Exception):
    """Base class for every error raised by skillmine code."""


class ConflictError(SkillMineError):
    """A batch job is already active for the tenant, or a transition is not allowed."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id


class FeedError(SkillMineError):
    """Collaborator feed unreachable or unparseable. Fatal to the job."""


class ExtractionError(SkillMineError):
    """One page's skill extraction failed or came back malformed. Not fatal."""


class MergeError(SkillMineError):
    """A single user/skill/link write failed during ingestion."""


class ResumeTimeoutError(SkillMineError, TimeoutError):
    """A paused job waited longer than the configured poll budget."""


class InvalidArgumentError(SkillMineError, ValueError):
    pass


class NotFoundError(SkillMineError):
    pass


class LLMError(SkillMineError):
    """The LLM gateway failed after all retry attempts."""
