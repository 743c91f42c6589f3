"""Value objects for contest identification."""

import re
from dataclasses import dataclass

from balloon_tracker.errors import InvalidContestUrlError

CONTEST_ID_PATTERN = re.compile(r"/c/([^/]+)")
CODEROJ_CONTEST_MARKER = "coderoj.com/c/"
DEFAULT_CONTEST_ID = "default"


def extract_contest_id(url: str) -> str:
    """
    Extract the contest id from a contest URL.

    Example: https://www.coderoj.com/c/MCQBt7n/ -> MCQBt7n
    """
    match = CONTEST_ID_PATTERN.search(url)
    return match.group(1) if match else DEFAULT_CONTEST_ID


def build_standings_url(url: str) -> str:
    """Point a contest URL at its standings page."""
    if "/standings" in url:
        return url
    return url.rstrip("/") + "/standings"


@dataclass(frozen=True)
class ContestTarget:
    """The contest the poller is currently scraping."""

    url: str
    contest_id: str
    standings_url: str

    @classmethod
    def from_url(cls, url: str, strict: bool = False) -> "ContestTarget":
        """
        Build a target from a contest URL.

        Args:
            url: Contest URL, with or without the trailing /standings
            strict: Reject URLs that are not CoderOJ contest URLs

        Raises:
            InvalidContestUrlError: If ``strict`` and the URL is not a CoderOJ contest URL
        """
        url = (url or "").strip()
        if strict and CODEROJ_CONTEST_MARKER not in url:
            raise InvalidContestUrlError(
                f"Invalid contest URL {url!r}. Must be a CoderOJ contest URL."
            )
        return cls(url=url, contest_id=extract_contest_id(url), standings_url=build_standings_url(url))

    def __str__(self) -> str:
        return f"{self.contest_id} ({self.url})"
