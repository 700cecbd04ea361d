"""Collaborator feed (HR export) reader.

The feed is a JSON array of collaborator objects served over HTTP, typically a
GitHub gist. Gist page URLs are rewritten to their raw form.
"""
import logging
import re
from typing import List, Optional

import requests

from . import config
from .errors import FeedError
from .schemas import CollaboratorRecord


def normalize_source_url(url: str) -> str:
    url = (url or "").strip()
    if "gist.github.com" in url and "gist.githubusercontent.com" not in url:
        url = url.replace("gist.github.com", "gist.githubusercontent.com")
        url = re.sub(r"/?$", "/raw", url, count=1)
    return url


class HttpCollaboratorSource:
    def __init__(self, url: str, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        if not url:
            raise FeedError("no collaborator feed URL configured")
        self.url = normalize_source_url(url)
        self.converted = self.url != url.strip()
        self.timeout = timeout if timeout is not None else config.FEED_TIMEOUT
        self._session = session or requests.Session()

    def fetch(self) -> List[CollaboratorRecord]:
        try:
            resp = self._session.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
            rows = resp.json()
        except requests.RequestException as e:
            raise FeedError(f"failed to fetch collaborators: {e}") from e
        except ValueError as e:
            raise FeedError(f"collaborator feed is not valid JSON: {e}") from e
        if not isinstance(rows, list):
            raise FeedError("collaborator feed must be a JSON array")
        out: List[CollaboratorRecord] = []
        for row in rows:
            if isinstance(row, dict):
                out.append(CollaboratorRecord.from_feed(row))
        skipped = len(rows) - len(out)
        if skipped:
            logging.warning(f"BATCH feed skipped {skipped} non-object rows from {self.url}")
        return out
