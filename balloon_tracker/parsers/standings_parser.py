"""Parser for extracting accepted submissions from CoderOJ standings pages."""

import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup, Tag

from balloon_tracker.models.submission import SubmissionCandidate

logger = logging.getLogger(__name__)

# Body rows lead with rank, team, score and a spacer cell before the problem cells.
# The page is not self-describing, so the offset is fixed rather than inferred.
PROBLEM_CELL_OFFSET = 4

PROBLEM_CODE_PATTERN = re.compile(r"^([A-Z])\s")
ACCEPTED_LABEL_PATTERN = re.compile(r"\d+\s*\(\d+\)")
ACCEPTED_TIME_PATTERN = re.compile(r"\((\d+)\)")

TEAM_NAME_SELECTOR = ".teamName"
ACCEPTED_LABEL_SELECTOR = ".label-default"
UNKNOWN_TIME = "N/A"


class StandingsParser:
    """Parser for the standings table of a CoderOJ contest page."""

    def __init__(self, features: str = "lxml"):
        """
        Initialize parser.

        Args:
            features: BeautifulSoup tree builder to use
        """
        self.features = features

    def parse(self, markup: Optional[str]) -> List[SubmissionCandidate]:
        """
        Extract accepted submissions from standings markup.

        Never raises: missing or unrecognisable structure yields an empty list.
        """
        if not markup:
            logger.warning("Empty standings page")
            return []

        try:
            soup = BeautifulSoup(markup, self.features)

            table = soup.find("table")
            if not isinstance(table, Tag):
                logger.warning("No table found on the page")
                return []

            problem_codes = self._extract_problem_codes(table)
            logger.info(f"Found problem codes: {', '.join(problem_codes)}")

            if not problem_codes:
                logger.warning("No problem codes found in table headers")
                return []

            candidates = []
            for row in self._body_rows(table):
                candidates.extend(self._parse_row(row, problem_codes))

            logger.info(f"Scraped {len(candidates)} accepted submissions")
            return candidates

        except Exception as e:
            logger.error(f"Failed to parse standings page: {e}", exc_info=True)
            return []

    def _extract_problem_codes(self, table: Tag) -> List[str]:
        """Read problem codes from the header row, in column order."""
        header_cells = table.select("thead tr th")
        if not header_cells:
            first_row = table.find("tr")
            header_cells = first_row.find_all("th") if isinstance(first_row, Tag) else []

        problem_codes = []
        for cell in header_cells:
            match = PROBLEM_CODE_PATTERN.match(cell.get_text().strip())
            if match:
                problem_codes.append(match.group(1))
        return problem_codes

    def _body_rows(self, table: Tag) -> List[Tag]:
        rows = table.select("tbody tr")
        if rows:
            return rows
        return [row for row in table.find_all("tr") if row.find("td")]

    def _parse_row(self, row: Tag, problem_codes: List[str]) -> List[SubmissionCandidate]:
        """Emit a candidate for every problem cell carrying an accepted label."""
        cells = row.find_all("td")
        if not cells:
            return []

        team_name_elem = row.select_one(TEAM_NAME_SELECTOR)
        team_name = team_name_elem.get_text().strip() if team_name_elem else ""
        if not team_name:
            return []

        candidates = []
        for problem_index, cell in enumerate(cells[PROBLEM_CELL_OFFSET:]):
            if problem_index >= len(problem_codes):
                break

            label_text = "".join(
                label.get_text() for label in cell.select(ACCEPTED_LABEL_SELECTOR)
            ).strip()
            if not label_text or not ACCEPTED_LABEL_PATTERN.search(label_text):
                continue

            time_match = ACCEPTED_TIME_PATTERN.search(label_text)
            candidates.append(
                SubmissionCandidate(
                    team_name=team_name,
                    problem_code=problem_codes[problem_index],
                    time=time_match.group(1) if time_match else UNKNOWN_TIME,
                )
            )
        return candidates


def parse_standings(markup: Optional[str]) -> List[SubmissionCandidate]:
    """Convenience function to parse standings markup with the default parser."""
    return StandingsParser().parse(markup)
