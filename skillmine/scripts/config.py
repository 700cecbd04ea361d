"""Runtime configuration read from the environment (.env supported)."""
import os
from typing import Optional
from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


COLLABORATORS_URL = os.getenv("COLLABORATORS_URL", "")
FEED_TIMEOUT = _float_env("FEED_TIMEOUT", 30.0)
DEFAULT_TENANT_DOMAIN = os.getenv("DEFAULT_TENANT_DOMAIN", "example.com")

OPENAI_MODEL_EXTRACT = os.getenv("OPENAI_MODEL_EXTRACT", "gpt-4o-mini")
OPENAI_MODEL_RANK = os.getenv("OPENAI_MODEL_RANK", "gpt-4o-mini")
OPENAI_REQUEST_TIMEOUT = _float_env("OPENAI_REQUEST_TIMEOUT", 120.0)
OPENAI_MAX_ATTEMPTS = _int_env("OPENAI_MAX_ATTEMPTS", 3)

SIMILARITY_BACKEND = os.getenv("SIMILARITY_BACKEND", "auto").lower()
RANK_TOP_N = _int_env("RANK_TOP_N", 20)
RANK_JUSTIFY_TOP = _int_env("RANK_JUSTIFY_TOP", 3)


def llm_configured() -> bool:
    return bool(os.getenv("OPENAI_API_KEY"))


class BatchSettings(BaseModel):
    """Paging, pacing and wait-loop policy for one batch job."""

    page_size: int = 25
    inter_batch_delay: float = 1.5
    poll_interval: float = 2.0
    max_wait_polls: int = 300
    log_limit: int = 100

    @classmethod
    def from_env(cls, mode: str = "ai") -> "BatchSettings":
        if mode == "direct":
            page_size = _int_env("BATCH_SIZE_DIRECT", 50)
            delay_ms = _int_env("BATCH_DELAY_DIRECT_MS", 500)
        else:
            page_size = _int_env("BATCH_SIZE_AI", 25)
            delay_ms = _int_env("BATCH_DELAY_AI_MS", 1500)
        return cls(
            page_size=max(1, page_size),
            inter_batch_delay=max(0, delay_ms) / 1000.0,
            poll_interval=_float_env("BATCH_POLL_INTERVAL", 2.0),
            max_wait_polls=_int_env("BATCH_MAX_WAIT_POLLS", 300),
            log_limit=_int_env("BATCH_LOG_LIMIT", 100),
        )


def default_feed_url(override: Optional[str] = None) -> str:
    return (override or COLLABORATORS_URL or "").strip()
