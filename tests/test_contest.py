"""Tests for contest URL handling."""

import pytest

from balloon_tracker.errors import InvalidContestUrlError
from balloon_tracker.models.contest import ContestTarget, build_standings_url, extract_contest_id


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://www.coderoj.com/c/MCQBt7n", "MCQBt7n"),
        ("https://www.coderoj.com/c/MCQBt7n/", "MCQBt7n"),
        ("https://www.coderoj.com/c/MCQBt7n/standings", "MCQBt7n"),
        ("https://example.com/contest/1", "default"),
        ("", "default"),
    ],
)
def test_extract_contest_id(url, expected):
    assert extract_contest_id(url) == expected


def test_build_standings_url():
    assert build_standings_url("https://www.coderoj.com/c/x") == "https://www.coderoj.com/c/x/standings"
    assert build_standings_url("https://www.coderoj.com/c/x/") == "https://www.coderoj.com/c/x/standings"
    assert build_standings_url("https://www.coderoj.com/c/x/standings") == "https://www.coderoj.com/c/x/standings"


def test_contest_target_from_url():
    target = ContestTarget.from_url("  https://www.coderoj.com/c/4dBXruM  ")

    assert target.url == "https://www.coderoj.com/c/4dBXruM"
    assert target.contest_id == "4dBXruM"
    assert target.standings_url == "https://www.coderoj.com/c/4dBXruM/standings"


def test_lenient_target_accepts_any_url():
    assert ContestTarget.from_url("https://example.com/other").contest_id == "default"


@pytest.mark.parametrize("url", ["https://example.com/c/abc", "coderoj.com/contest/abc", ""])
def test_strict_target_rejects_non_coderoj_urls(url):
    with pytest.raises(InvalidContestUrlError):
        ContestTarget.from_url(url, strict=True)


def test_invalid_contest_url_is_value_error():
    assert issubclass(InvalidContestUrlError, ValueError)
