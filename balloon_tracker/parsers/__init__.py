"""Parsers for extracting data from judge pages."""

from .standings_parser import PROBLEM_CELL_OFFSET, StandingsParser, parse_standings

__all__ = [
    "PROBLEM_CELL_OFFSET",
    "StandingsParser",
    "parse_standings",
]
