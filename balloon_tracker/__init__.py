"""
Balloon tracker for CoderOJ contests.

Polls a contest's standings page, records the first accepted submission of
every (team, problem) pair and tracks whether its balloon was delivered.
"""

__version__ = "0.1.0"
