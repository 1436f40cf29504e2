import io

import pandas as pd
import pytest

from roster_graph import (
    EXPECTED_WIDTH,
    FieldRangeWarning,
    SourceReadError,
    normalize_record,
    normalize_records,
    parse_numbered_rows,
    parse_rows,
    read_roster_file,
)


def test_header_row_is_discarded(two_person_roster, logger):
    rows = parse_rows(two_person_roster, logger)

    assert len(rows) == 2
    assert rows[0][0] == "k1"
    assert rows[1][0] == "k2"


def test_header_is_dropped_without_checking_names(make_roster, logger):
    text = make_roster(("k1", "Alice", "a@x.com"), header="whatever,goes,here")

    assert parse_rows(text, logger) == [["k1", "Alice", "a@x.com"]]


def test_cells_stay_as_written(make_roster, logger):
    text = make_roster(("0012", "NA", "n/a@x.com", "", "", "US", "007", "", "Ops"))

    rows = parse_rows(text, logger)

    assert rows[0][0] == "0012"
    assert rows[0][1] == "NA"
    assert rows[0][6] == "007"
    assert rows[0][8] == "Ops"


def test_quoted_fields_keep_commas(logger):
    text = 'h\n"k1","Doe, Jane",j@x.com\n'

    assert parse_rows(text, logger) == [["k1", "Doe, Jane", "j@x.com"]]


def test_blank_lines_are_skipped(logger):
    text = "h1,h2\n\nk1,Alice\n\nk2,Bob\n"

    assert parse_rows(text, logger) == [["k1", "Alice"], ["k2", "Bob"]]


def test_ragged_rows_are_read(logger):
    text = "h1,h2,h3\nk1\nk2,Bob,b@x.com,extra\n"

    rows = parse_rows(text, logger)

    assert rows == [["k1"], ["k2", "Bob", "b@x.com", "extra"]]


def test_file_like_source(two_person_roster, logger):
    rows = parse_rows(io.StringIO(two_person_roster), logger)

    assert [r[2] for r in rows] == ["a@x.com", "b@x.com"]


def test_empty_and_header_only_input(logger):
    assert parse_rows("", logger) == []
    assert parse_rows("key,name,email\n", logger) == []


def test_row_wider_than_ceiling_is_a_read_error(logger):
    text = "h\n" + ",".join(["x"] * 6) + "\n"

    with pytest.raises(SourceReadError):
        parse_rows(text, logger, max_columns=4)


def test_unterminated_quote_is_a_read_error(logger):
    text = 'h1,h2\n"k1,Alice\n'

    with pytest.raises(SourceReadError):
        parse_rows(text, logger)


# ------------
# Normalizer
# ------------

def test_positional_mapping(logger):
    row = ["k1", "Alice", "a@x.com", "admin", "Eng", "US", "1", "555", "Ops"]

    rec, warning = normalize_record(row, 2, logger)

    assert warning is None
    assert rec.key == "k1"
    assert rec.name == "Alice"
    assert rec.email == "a@x.com"
    assert rec.role == "admin"
    assert rec.job_title == "Eng"
    assert rec.country_code == "US"
    assert rec.phone == "1"
    assert rec.sms == "555"
    assert rec.team == "Ops"
    assert rec.row_number == 2


def test_extra_field_is_flagged_and_ignored(logger):
    row = ["k1", "Alice", "a@x.com", "admin", "Eng", "US", "555", "555", "Ops", "surplus"]

    rec, warning = normalize_record(row, 5, logger)

    assert isinstance(warning, FieldRangeWarning)
    assert warning.row_number == 5
    assert warning.width == EXPECTED_WIDTH + 1
    assert warning.extra == ["surplus"]
    assert rec.team == "Ops"
    assert rec.key == "k1"


def test_short_row_leaves_fields_blank(logger):
    rec, warning = normalize_record(["k1", "Alice", "a@x.com"], 2, logger)

    assert warning is None
    assert rec.email == "a@x.com"
    assert rec.role == ""
    assert rec.team == ""


def test_records_keep_input_order_and_collect_warnings(logger):
    rows = [
        ["k1", "A", "a@x.com", "", "", "", "", "", "Ops"],
        ["k2", "B", "b@x.com", "", "", "", "", "", "Ops", "x", "y"],
        ["k3", "C", "c@x.com", "", "", "", "", "", "Dev"],
    ]

    records, range_warnings = normalize_records(rows, logger)

    assert [r.key for r in records] == ["k1", "k2", "k3"]
    assert [r.row_number for r in records] == [2, 3, 4]
    assert len(range_warnings) == 1
    assert range_warnings[0].row_number == 3
    assert range_warnings[0].extra == ["x", "y"]


# -------------
# Roster files
# -------------

def test_read_csv_file_with_bom(tmp_path, two_person_roster, logger):
    path = tmp_path / "users.csv"
    path.write_text(two_person_roster, encoding="utf-8-sig")

    rows = read_roster_file(path, logger)

    assert [r[0] for r in rows] == ["k1", "k2"]


def test_read_excel_file(tmp_path, logger):
    path = tmp_path / "users.xlsx"
    pd.DataFrame(
        [
            ["key", "name", "email", "role", "job_title", "country_code", "phone", "sms", "team"],
            ["k1", "Alice", "a@x.com", "admin", "Eng", "US", "555", "555", "Ops"],
            ["k2", "Bob", "b@x.com", "user", None, "US", "555", "555", "Ops"],
        ]
    ).to_excel(path, header=False, index=False, engine="openpyxl")

    rows = read_roster_file(path, logger)

    assert rows[0] == ["k1", "Alice", "a@x.com", "admin", "Eng", "US", "555", "555", "Ops"]
    assert rows[1][4] == ""
    assert rows[1][8] == "Ops"


def test_missing_file_is_a_read_error(tmp_path, logger):
    with pytest.raises(SourceReadError):
        read_roster_file(tmp_path / "nope.csv", logger)


def test_unsupported_extension_is_a_read_error(tmp_path, logger):
    path = tmp_path / "users.json"
    path.write_text("[]", encoding="utf-8")

    with pytest.raises(SourceReadError):
        read_roster_file(path, logger)


# ---------------------------
# Header, width, row numbers
# ---------------------------

def test_empty_fields_header_is_still_discarded(logger):
    text = (
        ",,,,,,,,\n"
        "k1,Alice,a@x.com,admin,Eng,US,555,555,Ops\n"
        "k2,Bob,b@x.com,user,Eng,US,555,555,Ops\n"
    )

    rows = parse_rows(text, logger)

    assert [r[0] for r in rows] == ["k1", "k2"]


def test_trailing_empty_field_counts_toward_width(logger):
    text = "h\nk1,Alice,a@x.com,admin,Eng,US,555,555,Ops,\n"

    rows = parse_rows(text, logger)
    rec, warning = normalize_record(rows[0], 2, logger)

    assert len(rows[0]) == EXPECTED_WIDTH + 1
    assert isinstance(warning, FieldRangeWarning)
    assert warning.extra == [""]
    assert rec.team == "Ops"


def test_numbered_rows_follow_source_lines(logger):
    text = "\nh\n\n\nk1,Alice,a@x.com\n\nk2,Bob,b@x.com\n"

    numbered = parse_numbered_rows(text, logger)

    assert [pos for pos, _ in numbered] == [5, 7]
    assert [fields[0] for _, fields in numbered] == ["k1", "k2"]


def test_row_numbers_passed_to_records(logger):
    rows = [["k1", "A", "a@x.com"], ["k2", "B", "b@x.com", "", "", "", "", "", "Ops", "x"]]

    records, range_warnings = normalize_records(rows, logger, row_numbers=[4, 9])

    assert [r.row_number for r in records] == [4, 9]
    assert range_warnings[0].row_number == 9
