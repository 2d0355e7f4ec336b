"""
Reference URL liveness checks.

Links in references.md are HEAD-requested. Checks are independent, so
they run on a small thread pool; results always come back in input
order so every broken link is reported deterministically.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

import requests


logger = logging.getLogger(__name__)

# [text](https://...)
MARKDOWN_LINK_RE = re.compile(r"\[.+?\]\((https?://[^)\s]+)\)")


def extract_markdown_urls(content: str) -> List[str]:
    """http(s) URLs of all markdown links, deduplicated, in document order."""
    seen = set()
    urls = []
    for match in MARKDOWN_LINK_RE.finditer(content):
        url = match.group(1)
        if url not in seen:
            seen.add(url)
            urls.append(url)
    return urls


@dataclass
class UrlCheckResult:
    """Outcome of one HEAD request."""
    url: str
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_broken(self) -> bool:
        return self.error is not None or self.is_not_found


class UrlChecker:
    """HEAD-request based URL checker."""

    def __init__(
        self,
        timeout: float = 10.0,
        max_workers: int = 4,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.max_workers = max(1, max_workers)
        # None: every HEAD goes through requests.head, not a shared Session
        self.session = session

    def head_request(self, url: str) -> int:
        """Status code of a HEAD request.

        Raises:
            requests.RequestException: On connection errors or timeouts
        """
        head = self.session.head if self.session is not None else requests.head
        response = head(url, timeout=self.timeout, allow_redirects=True)
        return response.status_code

    def check(self, url: str) -> UrlCheckResult:
        try:
            status = self.head_request(url)
        except requests.RequestException as e:
            logger.debug(f"HEAD {url} failed: {e}")
            return UrlCheckResult(url=url, error=str(e))
        logger.debug(f"HEAD {url} -> {status}")
        return UrlCheckResult(url=url, status_code=status)

    def check_all(self, urls: List[str]) -> List[UrlCheckResult]:
        """Check every URL; results are in the same order as urls."""
        if not urls:
            return []
        if len(urls) == 1 or self.max_workers == 1:
            return [self.check(url) for url in urls]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(urls))) as executor:
            return list(executor.map(self.check, urls))
