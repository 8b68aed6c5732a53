"""Four-pillar resolution."""

from datetime import date, datetime, timedelta, timezone

import pytest

from qimen.errors import InputValidationError
from qimen.pillars import (
    annual_pillar,
    day_pillar,
    hour_branch_index,
    hour_pillar,
    month_pillar,
    pillar_date,
    pillar_year,
    resolve_pillars,
)
from qimen.sexagenary import StemBranch

CST = timezone(timedelta(hours=8))

CASES = [
    {"ts": "2024-02-10 12:00", "pillars": ("甲辰", "丙寅", "甲辰", "庚午")},
    {"ts": "2024-02-04 16:00", "pillars": ("癸卯", "乙丑", "戊戌", "庚申")},
    {"ts": "2024-02-04 16:30", "pillars": ("甲辰", "丙寅", "戊戌", "庚申")},
    {"ts": "2024-01-03 12:00", "pillars": ("癸卯", "甲子", "丙寅", "甲午")},
    {"ts": "2024-07-10 12:00", "pillars": ("甲辰", "辛未", "乙亥", "壬午")},
]


def as_strings(pillars):
    return tuple(str(p) for _, p in pillars.items())


class TestPrimitives:
    @pytest.mark.parametrize("d,expected", [
        (date(2000, 1, 1), "戊午"),
        (date(1949, 10, 1), "甲子"),
        (date(1987, 1, 7), "丙辰"),
        (date(1984, 3, 8), "辛丑"),
        (date(2024, 2, 10), "甲辰"),
    ])
    def test_day_pillar_anchors(self, d, expected):
        assert str(day_pillar(d)) == expected

    def test_day_pillar_period(self):
        d = date(1987, 1, 7)
        assert day_pillar(d) == day_pillar(d + timedelta(days=60))
        assert day_pillar(d + timedelta(days=1)) == day_pillar(d).shift(1)

    def test_annual_pillar(self):
        assert str(annual_pillar(2024)) == "甲辰"
        assert str(annual_pillar(1984)) == "甲子"

    def test_month_pillar_five_tigers(self):
        # 甲/己 years open 寅 with 丙, 乙/庚 with 戊
        assert str(month_pillar(0, 2)) == "丙寅"
        assert str(month_pillar(5, 2)) == "丙寅"
        assert str(month_pillar(1, 2)) == "戊寅"
        assert str(month_pillar(9, 0)) == "甲子"

    @pytest.mark.parametrize("hour,branch", [(23, 0), (0, 0), (1, 1), (11, 6), (12, 6), (22, 11)])
    def test_hour_branch(self, hour, branch):
        assert hour_branch_index(hour) == branch

    def test_hour_pillar_five_rats(self):
        assert str(hour_pillar(0, 0)) == "甲子"
        assert str(hour_pillar(1, 0)) == "丙子"
        assert str(hour_pillar(0, 12)) == "庚午"

    def test_pillar_date_rollover(self):
        assert pillar_date(datetime(2024, 2, 10, 23, 0)) == date(2024, 2, 11)
        assert pillar_date(datetime(2024, 2, 10, 22, 59)) == date(2024, 2, 10)


class TestResolvePillars:
    @pytest.mark.parametrize("case", CASES, ids=[c["ts"] for c in CASES])
    def test_pillars(self, case, term_table):
        pillars = resolve_pillars(case["ts"], term_table)
        assert as_strings(pillars) == case["pillars"]
        assert pillars.exact

    def test_late_zi_hour_opens_next_day(self, term_table):
        late = resolve_pillars("2024-02-10 23:30", term_table)
        before = resolve_pillars("2024-02-10 22:59", term_table)
        assert (str(late.day), str(late.hour)) == ("乙巳", "丙子")
        assert (str(before.day), str(before.hour)) == ("甲辰", "乙亥")

    def test_same_segment_changes_nothing(self, term_table):
        a = resolve_pillars("2024-03-12 13:05", term_table)
        b = resolve_pillars("2024-03-12 14:55", term_table)
        assert a == b

    def test_crossing_segment_changes_only_hour(self, term_table):
        a = resolve_pillars("2024-03-12 14:30", term_table)
        b = resolve_pillars("2024-03-12 15:30", term_table)
        assert (a.year, a.month, a.day) == (b.year, b.month, b.day)
        assert b.hour == a.hour.shift(1)

    def test_day_master(self, term_table):
        assert resolve_pillars("2024-02-10 12:00", term_table).day_master.chinese == "甲"

    def test_approximate_when_uncovered(self, empty_table):
        pillars = resolve_pillars("2024-02-10 12:00", empty_table)
        assert as_strings(pillars) == ("甲辰", "丙寅", "甲辰", "庚午")
        assert not pillars.exact

    def test_invalid_timestamp(self, term_table):
        with pytest.raises(InputValidationError):
            resolve_pillars("tomorrow", term_table)

    def test_pillar_year(self, term_table):
        assert pillar_year("2024-02-04 16:00", term_table) == (2023, True)
        assert pillar_year("2024-02-04 16:30", term_table) == (2024, True)
        assert pillar_year(datetime(2030, 6, 1, tzinfo=CST), term_table) == (2030, False)

    def test_to_dict(self, term_table):
        d = resolve_pillars("2024-02-10 12:00", term_table).to_dict()
        assert d == {"year": "甲辰", "month": "丙寅", "day": "甲辰", "hour": "庚午", "exact": True}


def test_pillar_set_rejects_bad_pair():
    with pytest.raises(InputValidationError):
        StemBranch("乙", "子")
