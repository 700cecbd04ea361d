"""LLM gateway client (OpenAI-compatible chat completions).

Prompts go out with a JSON schema response format; models that reject
structured output fall back to free-form completion and the first JSON object
in the reply is parsed. Any failure after the retry budget raises LLMError,
so callers only ever see a parsed dict or an exception.
"""
import json
import logging
import re
import threading
import time
from typing import Any, Callable, Dict, Optional

from . import config
from .errors import LLMError


def _safe_json_parse(raw: Optional[str]) -> Dict[str, Any]:
    # Attempt to extract first JSON object
    m = re.search(r"\{.*\}", raw or "", re.S)
    if not m:
        return {}
    try:
        data = json.loads(m.group(0))
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class LLMClient:
    def __init__(
        self,
        client: Any = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if client is None:
            if not config.llm_configured():
                raise LLMError("client_unavailable")
            from openai import OpenAI
            client = OpenAI()
        self._client = client
        self.model = model or config.OPENAI_MODEL_EXTRACT
        self.timeout = timeout if timeout is not None else config.OPENAI_REQUEST_TIMEOUT
        self.max_attempts = max(1, max_attempts if max_attempts is not None else config.OPENAI_MAX_ATTEMPTS)
        self._sleep = sleep
        self._lock = threading.Lock()
        self.calls = 0
        self.successes = 0
        self.last_error: Optional[str] = None

    def status(self) -> Dict[str, Any]:
        return {"model": self.model, "calls": self.calls, "successes": self.successes, "last_error": self.last_error}

    def _create(self, messages: list, schema: Optional[dict], name: str, temperature: float):
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "timeout": self.timeout,
        }
        if schema is not None:
            kwargs["response_format"] = {"type": "json_schema", "json_schema": {"name": name, "schema": schema}}
        resp = self._client.chat.completions.create(**kwargs)
        return resp.choices[0].message.content

    def complete_json(
        self,
        system: str,
        user: str,
        schema: Optional[dict] = None,
        name: str = "result",
        temperature: float = 0.3,
    ) -> Dict[str, Any]:
        messages = [{"role": "system", "content": system}, {"role": "user", "content": user}]
        last_err: Optional[Exception] = None
        for attempt in range(self.max_attempts):
            with self._lock:
                self.calls += 1
            try:
                logging.info(f"LLM: attempt {attempt + 1}/{self.max_attempts} {name} model={self.model}")
                try:
                    content = self._create(messages, schema, name, temperature)
                    data = json.loads(content) if content else {}
                except Exception as schema_err:
                    if schema is None:
                        raise
                    logging.warning(f"LLM: structured output failed for {name}, retrying free-form: {schema_err}")
                    content = self._create(messages, None, name, temperature)
                    data = _safe_json_parse(content)
                if isinstance(data, dict) and data:
                    with self._lock:
                        self.successes += 1
                        self.last_error = None
                    return data
                raise LLMError(f"empty or non-object JSON response for {name}")
            except Exception as e:
                last_err = e
                self.last_error = f"{type(e).__name__}: {e}"[:300]
                logging.error(f"LLM: attempt {attempt + 1} failed for {name}: {self.last_error}")
                if attempt + 1 < self.max_attempts:
                    self._sleep(0.7 * (attempt + 1))
        raise LLMError(f"all attempts failed for {name}: {self.last_error}") from last_err


_CLIENTS: Dict[str, LLMClient] = {}
_CLIENTS_LOCK = threading.Lock()


def get_llm_client(model: Optional[str] = None) -> LLMClient:
    """Shared client per model. Raises LLMError when no API key is configured."""
    key = model or config.OPENAI_MODEL_EXTRACT
    with _CLIENTS_LOCK:
        if key not in _CLIENTS:
            _CLIENTS[key] = LLMClient(model=key)
        return _CLIENTS[key]
