"""
Shared fixtures for roster graph tests.
"""

from __future__ import annotations

import logging

import pytest

HEADER = "key,name,email,role,job_title,country_code,phone,sms,team"


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("roster_graph.tests")


@pytest.fixture
def make_roster():
    """
    Factory for roster text: a header line followed by one CSV line per row.
    Rows are tuples of fields and are joined with commas as written.
    """

    def _make(*rows, header: str = HEADER) -> str:
        lines = [header] + [",".join(row) for row in rows]
        return "\n".join(lines) + "\n"

    return _make


@pytest.fixture
def two_person_roster(make_roster) -> str:
    return make_roster(
        ("k1", "Alice", "a@x.com", "admin", "Eng", "US", "555", "555", "Ops"),
        ("k2", "Bob", "b@x.com", "user", "Eng", "US", "555", "555", "Ops"),
    )
