from datetime import datetime

import pytest

from transition_ai.services.date_normalizer import normalize_date, numeric_date_readings

NOW = datetime(2024, 5, 31, 12, 0, 0)


@pytest.mark.parametrize("raw, expected", [
    ("2023-04-07", "2023-04-07"),
    ("2023/4/7", "2023-04-07"),
    ("Posted 2022-11-30 on Reddit", "2022-11-30"),
    ("March 3, 2024", "2024-03-03"),
    ("Mar 3 2024", "2024-03-03"),
    ("Sept 14, 2021", "2021-09-14"),
    ("December 1st, 2020", "2020-12-01"),
])
def test_absolute_dates(raw, expected):
    assert normalize_date(raw, now=NOW) == expected


def test_invalid_iso_date_is_left_alone():
    assert normalize_date("2023-02-30", now=NOW) == "2023-02-30"


def test_relative_months_clamp_day_to_month_length():
    # May 31 minus 3 months -> February, which has 29 days in 2024
    assert normalize_date("3 months ago", now=NOW) == "2024-02-29"
    assert normalize_date("2 months ago", now=NOW) == "2024-03-31"


def test_relative_days_and_years():
    assert normalize_date("5 days ago", now=NOW) == "2024-05-26"
    assert normalize_date("a year ago", now=NOW) == "2023-05-31"
    assert normalize_date("About 2 Years ago", now=NOW) == "2022-05-31"


def test_unambiguous_numeric_date():
    # 25 can't be a month
    assert normalize_date("04-25-2023", now=NOW) == "2023-04-25"
    assert normalize_date("25/04/2023", now=NOW) == "2023-04-25"


def test_ambiguous_numeric_date_is_not_guessed():
    assert normalize_date("04-07-2023", now=NOW) == "04-07-2023"
    assert numeric_date_readings("04-07-2023") == ["2023-04-07", "2023-07-04"]


def test_order_hint_settles_ambiguous_numeric_date():
    assert normalize_date("04-07-2023", now=NOW, order_hint="MDY") == "2023-04-07"
    assert normalize_date("04-07-2023", now=NOW, order_hint="DMY") == "2023-07-04"


def test_same_day_and_month_is_not_ambiguous():
    assert numeric_date_readings("05-05-2023") == ["2023-05-05"]
    assert normalize_date("05-05-2023", now=NOW) == "2023-05-05"


@pytest.mark.parametrize("raw", ["gibberish", "last summer", "", "   "])
def test_unrecognised_input_is_returned_unchanged(raw):
    assert normalize_date(raw, now=NOW) == raw
