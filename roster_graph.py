#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
roster_graph.py

Deterministic roster -> PagerDuty resource graph generator.

Input:
- One roster table (default: ./users.csv). CSV, or .xlsx/.xlsm (first sheet).
- The first row is a header and is always discarded (no header-name checks).
- Columns are positional (see ROSTER_SCHEMA).

Output:
- cdktf.out/stacks/<stack>/cdk.tf.json  (users, teams, team memberships)
- _roster_graph_report.csv

Logs:
- Console + logs/roster_graph.log

Graph rules:
- one user per email; repeated emails follow --duplicate-policy (default: later row wins)
- one team per distinct team name, in first-seen order
- one membership per row, keyed "<team>_<key>"
- a membership whose team or user cannot be resolved is reported, never fatal
- resource identifiers are Terraform-safe and unique per resource type;
  repeats get __dupN suffixes in input order

Dependencies:
- pandas
- openpyxl (.xlsx/.xlsm rosters only)

Notes:
- The role a person holds inside a team is not part of the roster. Memberships
  carry team affiliation only.
"""

from __future__ import annotations

import argparse
import io
import logging
import os
import re
import sys
import warnings
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, TextIO, Tuple, Union

import pandas as pd
from pandas.api.types import is_scalar

import synth


# ---------------------
# Roster schema (fixed)
# ---------------------

# Column position -> PersonRecord field
ROSTER_SCHEMA: Tuple[str, ...] = (
    "key",
    "name",
    "email",
    "role",
    "job_title",
    "country_code",
    "phone",
    "sms",
    "team",
)

EXPECTED_WIDTH = len(ROSTER_SCHEMA)

# Ragged rows are parsed up to this many columns; anything wider is a read error
MAX_COLUMNS_DEFAULT = 64

# Header counts as row 1; used when rows carry no source line numbers
FIRST_DATA_ROW_NUMBER = 2

CSV_SUFFIXES = (".csv", ".txt")
EXCEL_SUFFIXES = (".xlsx", ".xlsm")

# Terraform resource names: letters, digits, underscores, dashes; must not start with a digit/dash
RESOURCE_ID_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_-]")
RESOURCE_ID_VALID_START = re.compile(r"^[A-Za-z_]")
RESOURCE_ID_EMPTY = "unnamed"

# CLI defaults
DEFAULT_ROSTER = "users.csv"
DEFAULT_OUT_FOLDER = "cdktf.out"
DEFAULT_STACK_NAME = "pagerduty-roster"
DEFAULT_REPORT = "_roster_graph_report.csv"
TOKEN_ENV_VAR = "PAGERDUTY_TOKEN"

REPORT_COLUMNS = ["severity", "kind", "row_number", "detail"]

# (1-based source row number, fields)
NumberedRow = Tuple[int, List[str]]


# ------
# Errors
# ------

class RosterGraphError(Exception):
    """Base class for roster graph failures."""


class SourceReadError(RosterGraphError):
    """The roster could not be obtained or tokenized as tabular text."""


class DuplicateKeyError(RosterGraphError):
    def __init__(self, kind: str, key: str, row_number: Optional[int] = None):
        self.kind = kind
        self.key = key
        self.row_number = row_number
        where = f" at row {row_number}" if row_number is not None else ""
        super().__init__(f"Duplicate {kind} key '{key}'{where}")


class DanglingReferenceError(RosterGraphError):
    """
    A membership edge could not resolve its team or user.
    `missing` is "team" or "user"; `reference` is the team name or email looked up.
    """

    def __init__(self, membership_key: str, missing: str, reference: str, row_number: Optional[int] = None):
        self.membership_key = membership_key
        self.missing = missing
        self.reference = reference
        self.row_number = row_number
        super().__init__(f"Membership '{membership_key}' references unknown {missing} '{reference}'")


class MembershipBuildError(RosterGraphError):
    def __init__(self, errors: Sequence[RosterGraphError]):
        self.errors = list(errors)
        preview = "; ".join(str(e) for e in self.errors[:5])
        more = f" (+{len(self.errors) - 5} more)" if len(self.errors) > 5 else ""
        super().__init__(f"{len(self.errors)} membership reference(s) unresolved: {preview}{more}")


class FieldRangeWarning(UserWarning):
    def __init__(self, row_number: int, width: int, extra: Sequence[str]):
        self.row_number = row_number
        self.width = width
        self.extra = list(extra)
        super().__init__(
            f"Row {row_number}: {width} fields, expected {EXPECTED_WIDTH}; "
            f"ignoring {len(self.extra)} extra field(s) {self.extra}"
        )


class IdentifierCollisionWarning(UserWarning):
    def __init__(self, resource_type: str, value: str, assigned: str, row_number: Optional[int] = None):
        self.resource_type = resource_type
        self.value = value
        self.assigned = assigned
        self.row_number = row_number
        super().__init__(f"{resource_type}: identifier for '{value}' already taken; using '{assigned}'")


# -------------
# Configuration
# -------------

class DuplicatePolicy(str, Enum):
    LAST_WRITE_WINS = "last"
    REJECT = "reject"
    MERGE = "merge"


@dataclass
class GraphConfig:
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.LAST_WRITE_WINS
    include_blank_team: bool = True
    max_columns: int = MAX_COLUMNS_DEFAULT


# -------------
# Data classes
# -------------

@dataclass(frozen=True)
class PersonRecord:
    key: str = ""
    name: str = ""
    email: str = ""
    role: str = ""
    job_title: str = ""
    country_code: str = ""
    phone: str = ""
    sms: str = ""
    team: str = ""
    row_number: int = field(default=0, compare=False)


@dataclass(frozen=True)
class UserResource:
    resource_id: str
    name: str
    email: str
    role: str
    job_title: str


@dataclass(frozen=True)
class TeamResource:
    resource_id: str
    name: str


@dataclass(frozen=True)
class MembershipEdge:
    """
    User -> team affiliation.

    Known limitation: the roster has no column for the role a user holds inside
    the team, so an edge records membership only and the platform default role
    applies.
    """

    key: str
    resource_id: str
    team_name: str
    team_id: str
    user_email: str
    user_id: str


@dataclass(frozen=True)
class ResourceGraph:
    users: Mapping[str, UserResource]
    teams: Mapping[str, TeamResource]
    memberships: Mapping[str, MembershipEdge]


@dataclass
class BuildReport:
    rows_in: int = 0
    records_out: int = 0
    users: int = 0
    teams: int = 0
    memberships: int = 0
    warnings: List[UserWarning] = field(default_factory=list)
    errors: List[RosterGraphError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise MembershipBuildError(self.errors)

    def summary(self) -> str:
        return (
            f"rows_in={self.rows_in} records={self.records_out} users={self.users} "
            f"teams={self.teams} memberships={self.memberships} "
            f"warnings={len(self.warnings)} errors={len(self.errors)}"
        )

    def to_rows(self) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = [
            dict(severity="info", kind="summary", row_number=None, detail=self.summary())
        ]
        for w in self.warnings:
            rows.append(
                dict(severity="warning", kind=type(w).__name__, row_number=getattr(w, "row_number", None), detail=str(w))
            )
        for e in self.errors:
            rows.append(
                dict(severity="error", kind=type(e).__name__, row_number=getattr(e, "row_number", None), detail=str(e))
            )
        return rows


# ----------
# Logging
# ----------

def setup_logging(debug: bool, log_dir: str = "logs") -> logging.Logger:
    logger = logging.getLogger("roster_graph")
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    os.makedirs(log_dir, exist_ok=True)
    log_path = Path(log_dir) / "roster_graph.log"

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(logging.DEBUG if debug else logging.INFO)
    fh.setFormatter(fmt)

    sh = logging.StreamHandler(sys.stdout)
    sh.setLevel(logging.DEBUG if debug else logging.INFO)
    sh.setFormatter(fmt)

    logger.addHandler(fh)
    logger.addHandler(sh)
    return logger


# ----------
# Row parser
# ----------

def is_na_scalar(v: Any) -> bool:
    """
    Safe NA check that never returns an array/Series.
    """
    if v is None:
        return True
    if is_scalar(v):
        return bool(pd.isna(v))
    return False


def trim_row(values: Sequence[Any]) -> List[str]:
    """
    Drop trailing absent (NaN) cells; absent cells inside the row become "".
    Explicit empty fields ("") are kept and count toward the row's width.
    """
    last = -1
    for i, v in enumerate(values):
        if not is_na_scalar(v):
            last = i
    return ["" if is_na_scalar(v) else str(v) for v in values[: last + 1]]


def frame_to_numbered_rows(raw: pd.DataFrame, logger: logging.Logger) -> List[NumberedRow]:
    """
    Data rows of a header=None frame, tagged with 1-based source row numbers.

    Blank lines (no cell, or a single empty cell) are skipped. The first
    remaining row is the header and is discarded whatever it holds, even a
    row of empty fields such as ",,,,". Data rows whose cells are all empty
    are skipped.
    """
    rows: List[NumberedRow] = []
    header_seen = False
    for pos, values in enumerate(raw.itertuples(index=False, name=None), start=1):
        fields = trim_row(values)
        if fields in ([], [""]):
            continue
        if not header_seen:
            header_seen = True
            logger.debug(f"Discarding header row {pos}: {fields}")
            continue
        if not any(fields):
            logger.debug(f"Row {pos}: all fields empty; skipped")
            continue
        rows.append((pos, fields))
    return rows


def parse_numbered_rows(
    source: Union[str, TextIO],
    logger: logging.Logger,
    max_columns: int = MAX_COLUMNS_DEFAULT,
) -> List[NumberedRow]:
    """
    Tokenize roster text into (line number, fields) pairs, header row removed.

    Every cell is kept as text ("NA", "0012" stay as written). Rows may be
    ragged; an explicit empty field counts toward a row's width, a missing
    one does not. A row wider than max_columns is a SourceReadError.
    """
    buf = io.StringIO(source) if isinstance(source, str) else source

    # One spare column detects rows that would otherwise be cut at the ceiling
    names = list(range(max_columns + 1))
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", pd.errors.ParserWarning)
            raw = pd.read_csv(
                buf,
                header=None,
                names=names,
                index_col=False,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
            )
    except pd.errors.EmptyDataError:
        logger.warning("Roster is empty; nothing to parse.")
        return []
    except (ValueError, OSError, pd.errors.ParserWarning) as e:
        raise SourceReadError(f"Roster is not well-formed tabular text: {e}") from e

    overflow = raw[max_columns].notna().tolist()
    if any(overflow):
        line = overflow.index(True) + 1
        raise SourceReadError(
            f"Row {line} has more than {max_columns} columns; raise --max-columns to read it."
        )

    rows = frame_to_numbered_rows(raw.iloc[:, :max_columns], logger)
    if not rows:
        logger.warning("Roster has no data rows.")
    return rows


def parse_rows(
    source: Union[str, TextIO],
    logger: logging.Logger,
    max_columns: int = MAX_COLUMNS_DEFAULT,
) -> List[List[str]]:
    """
    Roster text -> rows of string fields, header row removed.
    """
    return [fields for _, fields in parse_numbered_rows(source, logger, max_columns)]


def read_numbered_roster(
    path: Union[str, Path],
    logger: logging.Logger,
    max_columns: int = MAX_COLUMNS_DEFAULT,
) -> List[NumberedRow]:
    """
    Read one roster file (CSV, or first sheet of .xlsx/.xlsm) into numbered data rows.
    Sheet row numbers count the rows pandas returns; pandas drops empty sheet rows.
    """
    path = Path(path)
    if not path.is_file():
        raise SourceReadError(f"Roster file not found: {path.resolve()}")

    suffix = path.suffix.lower()

    if suffix in EXCEL_SUFFIXES:
        try:
            raw = pd.read_excel(path, sheet_name=0, header=None, dtype=str, engine="openpyxl")
        except Exception as e:
            raise SourceReadError(f"{path.name}: failed to open workbook: {e}") from e
        rows = frame_to_numbered_rows(raw, logger)
        logger.info(f"{path.name}: read {len(rows)} data row(s) from first sheet")
        return rows

    if suffix not in CSV_SUFFIXES:
        raise SourceReadError(f"{path.name}: unsupported roster extension '{suffix}'")

    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise SourceReadError(f"{path.name}: failed to read roster: {e}") from e

    rows = parse_numbered_rows(text, logger, max_columns)
    logger.info(f"{path.name}: read {len(rows)} data row(s)")
    return rows


def read_roster_file(
    path: Union[str, Path],
    logger: logging.Logger,
    max_columns: int = MAX_COLUMNS_DEFAULT,
) -> List[List[str]]:
    return [fields for _, fields in read_numbered_roster(path, logger, max_columns)]


# -----------------
# Record normalizer
# -----------------

def normalize_record(
    row: Sequence[Any],
    row_number: int,
    logger: logging.Logger,
) -> Tuple[PersonRecord, Optional[FieldRangeWarning]]:
    values = {name: "" for name in ROSTER_SCHEMA}
    for name, value in zip(ROSTER_SCHEMA, row):
        values[name] = "" if is_na_scalar(value) else str(value)

    warning: Optional[FieldRangeWarning] = None
    if len(row) > EXPECTED_WIDTH:
        warning = FieldRangeWarning(row_number, len(row), [str(v) for v in row[EXPECTED_WIDTH:]])
        logger.warning(str(warning))
    elif len(row) < EXPECTED_WIDTH:
        logger.debug(f"Row {row_number}: only {len(row)} field(s); missing fields left blank")

    return PersonRecord(row_number=row_number, **values), warning


def normalize_records(
    rows: Iterable[Sequence[Any]],
    logger: logging.Logger,
    row_numbers: Optional[Sequence[int]] = None,
) -> Tuple[List[PersonRecord], List[FieldRangeWarning]]:
    """
    Rows -> records in input order. `row_numbers` are the source positions of
    `rows`; without them rows are numbered from FIRST_DATA_ROW_NUMBER.
    """
    records: List[PersonRecord] = []
    range_warnings: List[FieldRangeWarning] = []

    for offset, row in enumerate(rows):
        row_number = row_numbers[offset] if row_numbers is not None else FIRST_DATA_ROW_NUMBER + offset
        rec, warning = normalize_record(row, row_number, logger)
        records.append(rec)
        if warning is not None:
            range_warnings.append(warning)

    logger.info(f"Normalized {len(records)} record(s); out-of-range rows={len(range_warnings)}")
    return records, range_warnings


# -----------------
# Team deduplicator
# -----------------

def dedupe_team_names(records: Iterable[PersonRecord], include_blank: bool = True) -> List[str]:
    """
    Distinct team names in first-seen order.
    """
    seen: Set[str] = set()
    names: List[str] = []
    for rec in records:
        name = rec.team
        if not include_blank and not name.strip():
            continue
        if name in seen:
            continue
        seen.add(name)
        names.append(name)
    return names


# -----------
# Identifiers
# -----------

def resource_id_base(value: str) -> str:
    s = RESOURCE_ID_INVALID_CHARS.sub("_", value or "")
    if not s:
        return RESOURCE_ID_EMPTY
    if not RESOURCE_ID_VALID_START.match(s):
        s = f"_{s}"
    return s


def make_unique_ids(values: Sequence[str]) -> Tuple[List[str], List[Tuple[int, str]]]:
    """
    Terraform-safe identifiers, unique within `values`, by appending __dupN.
    Example: ["ops", "ops"] -> ["ops", "ops__dup2"]
    Returns (ids, collisions) where collisions are (position, assigned id).
    """
    used: Set[str] = set()
    seen: Dict[str, int] = {}
    out: List[str] = []
    collisions: List[Tuple[int, str]] = []

    for pos, value in enumerate(values):
        base = resource_id_base(value)
        candidate = base
        n = seen.get(base, 1)
        while candidate in used:
            n += 1
            candidate = f"{base}__dup{n}"
        seen[base] = n
        used.add(candidate)
        out.append(candidate)
        if candidate != base:
            collisions.append((pos, candidate))

    return out, collisions


def membership_key(team: str, key: str) -> str:
    return f"{team}_{key}"


# ----------------------
# Resource graph builder
# ----------------------

def _merge_records(earlier: PersonRecord, later: PersonRecord) -> PersonRecord:
    updates = {name: getattr(later, name) for name in ROSTER_SCHEMA if getattr(later, name) != ""}
    return replace(earlier, row_number=later.row_number, **updates)


def _collision_warnings(
    resource_type: str,
    values: Sequence[str],
    rows: Sequence[Optional[int]],
    collisions: List[Tuple[int, str]],
    logger: logging.Logger,
) -> List[IdentifierCollisionWarning]:
    out: List[IdentifierCollisionWarning] = []
    for pos, assigned in collisions:
        w = IdentifierCollisionWarning(resource_type, values[pos], assigned, rows[pos])
        logger.warning(str(w))
        out.append(w)
    return out


def build_users(
    records: Sequence[PersonRecord],
    logger: logging.Logger,
    policy: Union[DuplicatePolicy, str] = DuplicatePolicy.LAST_WRITE_WINS,
) -> Tuple[Dict[str, UserResource], List[IdentifierCollisionWarning]]:
    """
    One user per email. Identifiers come from the record key.

    A repeated email replaces the earlier record (last), raises
    DuplicateKeyError (reject), or overlays its non-empty fields (merge).
    The email keeps its first-seen position either way.
    """
    policy = DuplicatePolicy(policy)
    winners: Dict[str, PersonRecord] = {}
    for rec in records:
        prev = winners.get(rec.email)
        if prev is None:
            winners[rec.email] = rec
            continue
        if policy == DuplicatePolicy.REJECT:
            raise DuplicateKeyError("user", rec.email, rec.row_number)
        if policy == DuplicatePolicy.MERGE:
            winners[rec.email] = _merge_records(prev, rec)
            logger.info(f"Duplicate email '{rec.email}': row {rec.row_number} merged into row {prev.row_number}")
        else:
            winners[rec.email] = rec
            logger.info(f"Duplicate email '{rec.email}': row {rec.row_number} replaces row {prev.row_number}")

    chosen = list(winners.values())
    keys = [rec.key for rec in chosen]
    ids, collisions = make_unique_ids(keys)
    collision_warnings = _collision_warnings(
        synth.USER_RESOURCE, keys, [rec.row_number for rec in chosen], collisions, logger
    )

    users: Dict[str, UserResource] = {}
    for rec, rid in zip(chosen, ids):
        users[rec.email] = UserResource(
            resource_id=rid,
            name=rec.name,
            email=rec.email,
            role=rec.role,
            job_title=rec.job_title,
        )

    logger.debug(f"Built {len(users)} user(s) from {len(records)} record(s)")
    return users, collision_warnings


def build_teams(
    team_names: Sequence[str],
    logger: logging.Logger,
) -> Tuple[Dict[str, TeamResource], List[IdentifierCollisionWarning]]:
    ids, collisions = make_unique_ids(team_names)
    collision_warnings = _collision_warnings(
        synth.TEAM_RESOURCE, team_names, [None] * len(team_names), collisions, logger
    )

    teams = {name: TeamResource(resource_id=rid, name=name) for name, rid in zip(team_names, ids)}
    logger.debug(f"Built {len(teams)} team(s): {list(teams.keys())}")
    return teams, collision_warnings


def build_memberships(
    records: Sequence[PersonRecord],
    users: Mapping[str, UserResource],
    teams: Mapping[str, TeamResource],
    logger: logging.Logger,
    policy: Union[DuplicatePolicy, str] = DuplicatePolicy.LAST_WRITE_WINS,
    include_blank_team: bool = True,
) -> Tuple[Dict[str, MembershipEdge], List[IdentifierCollisionWarning], List[DanglingReferenceError]]:
    """
    One edge per record, keyed "<team>_<key>", pointing at existing team/user ids.

    Unresolvable references are collected, not raised, so every record is
    attempted. A repeated membership key follows `policy` (merge acts as last).
    """
    policy = DuplicatePolicy(policy)
    resolved: Dict[str, Tuple[PersonRecord, TeamResource, UserResource]] = {}
    errors: List[DanglingReferenceError] = []

    for rec in records:
        if not include_blank_team and not rec.team.strip():
            logger.debug(f"Row {rec.row_number}: blank team excluded; no membership")
            continue

        mkey = membership_key(rec.team, rec.key)
        team = teams.get(rec.team)
        user = users.get(rec.email)

        if team is None:
            errors.append(DanglingReferenceError(mkey, "team", rec.team, rec.row_number))
        if user is None:
            errors.append(DanglingReferenceError(mkey, "user", rec.email, rec.row_number))
        if team is None or user is None:
            continue

        prev = resolved.get(mkey)
        if prev is not None:
            if policy == DuplicatePolicy.REJECT:
                raise DuplicateKeyError("membership", mkey, rec.row_number)
            logger.info(f"Duplicate membership '{mkey}': row {rec.row_number} replaces row {prev[0].row_number}")
        resolved[mkey] = (rec, team, user)

    for e in errors:
        logger.warning(f"Row {e.row_number}: {e}")

    keys = list(resolved.keys())
    ids, collisions = make_unique_ids(keys)
    collision_warnings = _collision_warnings(
        synth.MEMBERSHIP_RESOURCE, keys, [resolved[k][0].row_number for k in keys], collisions, logger
    )

    memberships: Dict[str, MembershipEdge] = {}
    for mkey, rid in zip(keys, ids):
        _, team, user = resolved[mkey]
        memberships[mkey] = MembershipEdge(
            key=mkey,
            resource_id=rid,
            team_name=team.name,
            team_id=team.resource_id,
            user_email=user.email,
            user_id=user.resource_id,
        )

    return memberships, collision_warnings, errors


def build_graph(
    records: Sequence[PersonRecord],
    logger: logging.Logger,
    config: Optional[GraphConfig] = None,
) -> Tuple[ResourceGraph, BuildReport]:
    config = config or GraphConfig()
    report = BuildReport(rows_in=len(records), records_out=len(records))

    users, user_warnings = build_users(records, logger, config.duplicate_policy)
    report.warnings.extend(user_warnings)

    team_names = dedupe_team_names(records, include_blank=config.include_blank_team)
    teams, team_warnings = build_teams(team_names, logger)
    report.warnings.extend(team_warnings)

    memberships, edge_warnings, errors = build_memberships(
        records,
        users,
        teams,
        logger,
        policy=config.duplicate_policy,
        include_blank_team=config.include_blank_team,
    )
    report.warnings.extend(edge_warnings)
    report.errors.extend(errors)

    report.users = len(users)
    report.teams = len(teams)
    report.memberships = len(memberships)

    graph = ResourceGraph(
        users=MappingProxyType(users),
        teams=MappingProxyType(teams),
        memberships=MappingProxyType(memberships),
    )
    logger.info(f"Built resource graph: {report.summary()}")
    return graph, report


# --------
# Pipeline
# --------

def graph_from_rows(
    rows: Sequence[Sequence[Any]],
    logger: logging.Logger,
    config: Optional[GraphConfig] = None,
    row_numbers: Optional[Sequence[int]] = None,
) -> Tuple[ResourceGraph, BuildReport]:
    records, range_warnings = normalize_records(rows, logger, row_numbers)
    graph, report = build_graph(records, logger, config)
    report.rows_in = len(rows)
    report.warnings[:0] = range_warnings
    return graph, report


def graph_from_numbered_rows(
    numbered: Sequence[NumberedRow],
    logger: logging.Logger,
    config: Optional[GraphConfig] = None,
) -> Tuple[ResourceGraph, BuildReport]:
    rows = [fields for _, fields in numbered]
    row_numbers = [pos for pos, _ in numbered]
    return graph_from_rows(rows, logger, config, row_numbers)


def roster_to_graph(
    source: Union[str, TextIO],
    logger: logging.Logger,
    config: Optional[GraphConfig] = None,
) -> Tuple[ResourceGraph, BuildReport]:
    """
    Roster text -> (ResourceGraph, BuildReport).
    SourceReadError and DuplicateKeyError propagate; nothing else aborts.
    """
    config = config or GraphConfig()
    numbered = parse_numbered_rows(source, logger, config.max_columns)
    return graph_from_numbered_rows(numbered, logger, config)


# -----
# Main
# -----

def config_from_args(args: argparse.Namespace) -> GraphConfig:
    return GraphConfig(
        duplicate_policy=DuplicatePolicy(args.duplicate_policy),
        include_blank_team=not args.exclude_blank_team,
        max_columns=args.max_columns,
    )


def write_report(report: BuildReport, out_path: Path, logger: logging.Logger) -> None:
    rep_df = pd.DataFrame(report.to_rows(), columns=REPORT_COLUMNS)
    rep_df.to_csv(out_path, index=False, encoding="utf-8-sig")
    logger.info(f"Wrote build report: {out_path.resolve()} rows={len(rep_df)}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Generate a PagerDuty users/teams/memberships stack from a roster.")
    parser.add_argument("--roster", default=DEFAULT_ROSTER, help=f"Roster CSV or .xlsx/.xlsm (default: {DEFAULT_ROSTER})")
    parser.add_argument("--out-folder", default=DEFAULT_OUT_FOLDER, help=f"Stack output folder (default: {DEFAULT_OUT_FOLDER})")
    parser.add_argument("--stack-name", default=DEFAULT_STACK_NAME, help=f"Stack name (default: {DEFAULT_STACK_NAME})")
    parser.add_argument("--out-report", default=DEFAULT_REPORT, help="Output build report CSV")
    parser.add_argument(
        "--duplicate-policy",
        choices=[p.value for p in DuplicatePolicy],
        default=DuplicatePolicy.LAST_WRITE_WINS.value,
        help="Repeated email / membership key handling (default: last)",
    )
    parser.add_argument("--exclude-blank-team", action="store_true", help="Do not create a team for blank team names")
    parser.add_argument("--max-columns", type=int, default=MAX_COLUMNS_DEFAULT, help="Widest row accepted")
    parser.add_argument("--embed-token", action="store_true", help=f"Write ${TOKEN_ENV_VAR} into the provider block")
    parser.add_argument("--strict", action="store_true", help="Exit 1 if any membership is unresolved; the report is still written, the stack is not")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging")
    args = parser.parse_args(argv)

    logger = setup_logging(args.debug)
    config = config_from_args(args)

    try:
        numbered = read_numbered_roster(Path(args.roster), logger, config.max_columns)
        graph, report = graph_from_numbered_rows(numbered, logger, config)
    except RosterGraphError as e:
        logger.error(str(e))
        sys.exit(2)

    write_report(report, Path(args.out_report), logger)

    if report.errors:
        logger.warning(f"{len(report.errors)} membership reference(s) unresolved; see {args.out_report}")
        if args.strict:
            sys.exit(1)

    token: Optional[str] = None
    if args.embed_token:
        token = os.environ.get(TOKEN_ENV_VAR)
        if not token:
            logger.warning(f"{TOKEN_ENV_VAR} is not set; provider will read var.{synth.TOKEN_VARIABLE}")

    synth.write_stack(graph, Path(args.out_folder), args.stack_name, logger, token=token)


if __name__ == "__main__":
    main()
