"""
Decade (大运) and year (流年) timeline of a birth chart.

Handles:
- Direction of the decades from year-stem polarity and gender
- Start age from the distance to the neighbouring section term
  (3 days = 1 year, 1 day = 4 months, 1 month = 7.5 days)
- Nine decade periods stepping from the month pillar
- Fifteen year periods around the reference year with 本命年 / 冲太岁 flags

The reference "now" is always supplied by the caller.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from qimen.astro_calendar import SolarTermTable, resolve_term_after, resolve_term_before
from qimen.config import DEFAULT_CONFIG, EngineConfig
from qimen.errors import InputValidationError
from qimen.pillars import annual_pillar, pillar_year
from qimen.sexagenary import PillarSet, Polarity, StemBranch, clashing_branch, ten_relation

logger = logging.getLogger(__name__)

DAYS_PER_YEAR_OF_LUCK = 3
MONTHS_PER_DAY = 4
DAYS_PER_MONTH_OF_LUCK = 7.5


class Gender(Enum):
    MALE = "男"
    FEMALE = "女"


GENDER_ALIASES = {
    "male": Gender.MALE,
    "m": Gender.MALE,
    "男": Gender.MALE,
    "female": Gender.FEMALE,
    "f": Gender.FEMALE,
    "女": Gender.FEMALE,
}


def parse_gender(value) -> Gender:
    if isinstance(value, Gender):
        return value
    key = value.strip().lower() if isinstance(value, str) else value
    try:
        return GENDER_ALIASES[key]
    except (KeyError, TypeError):
        raise InputValidationError(f"unknown gender tag: {value!r}") from None


@dataclass(frozen=True)
class StartOffset:
    """Time from birth to the first decade, in luck-years/months/days/hours."""
    years: int
    months: int
    days: int
    hours: int

    @property
    def start_age(self) -> int:
        # Nominal age: the first decade starts in the year after the full years
        return self.years + 1

    def __str__(self):
        if self.years > 0:
            return f"{self.years}年{self.months}月{self.days}天{self.hours}时"
        return f"{self.months}月{self.days}天{self.hours}时"


def start_offset(days_to_term: float) -> StartOffset:
    years = math.floor(days_to_term / DAYS_PER_YEAR_OF_LUCK)
    remaining_days = days_to_term - years * DAYS_PER_YEAR_OF_LUCK
    months_exact = remaining_days * MONTHS_PER_DAY
    months = math.floor(months_exact)
    days_exact = (months_exact - months) * DAYS_PER_MONTH_OF_LUCK
    days = math.floor(days_exact)
    hours = round((days_exact - days) * 24)
    return StartOffset(years, months, days, hours)


def nominal_age(birth: datetime, now: datetime) -> int:
    """虚岁: counts the birth year as 1, drops one until the birthday has passed."""
    age = now.year - birth.year + 1
    if (now.month, now.day) < (birth.month, birth.day):
        age -= 1
    return max(1, age)


@dataclass(frozen=True)
class DecadePeriod:
    number: int
    pillar: StemBranch
    start_age: int
    end_age: int
    start_year: int
    end_year: int
    ten_relation: str
    is_current: bool
    status: str

    def to_dict(self):
        return {
            "number": self.number,
            "label": f"{self.number}运",
            "pillar": str(self.pillar),
            "element": self.pillar.stem_info.element.value,
            "ten_relation": self.ten_relation,
            "age_range": [self.start_age, self.end_age],
            "year_range": [self.start_year, self.end_year],
            "is_current": self.is_current,
            "status": self.status,
        }


@dataclass(frozen=True)
class YearPeriod:
    year: int
    pillar: StemBranch
    age: int
    ten_relation: str
    is_current: bool
    is_birth_branch_year: bool  # 本命年
    clashes_birth_year: bool  # 冲太岁

    @property
    def special(self) -> list:
        labels = []
        if self.is_birth_branch_year:
            labels.append("本命年")
        if self.clashes_birth_year:
            labels.append("冲太岁")
        return labels

    def to_dict(self):
        return {
            "year": self.year,
            "pillar": str(self.pillar),
            "age": self.age,
            "element": self.pillar.stem_info.element.value,
            "ten_relation": self.ten_relation,
            "is_current": self.is_current,
            "special": self.special,
        }


@dataclass(frozen=True)
class Timeline:
    forward: bool
    days_to_term: float
    offset: StartOffset
    current_age: int
    decades: tuple
    years: tuple
    exact: bool

    @property
    def direction(self) -> str:
        return "顺" if self.forward else "逆"

    @property
    def start_age(self) -> int:
        return self.offset.start_age

    def current_decade(self) -> Optional[DecadePeriod]:
        return next((d for d in self.decades if d.is_current), None)

    def to_dict(self):
        return {
            "direction": self.direction,
            "start_age": self.start_age,
            "start_offset": str(self.offset),
            "days_to_term": round(self.days_to_term, 4),
            "current_age": self.current_age,
            "decades": [d.to_dict() for d in self.decades],
            "years": [y.to_dict() for y in self.years],
            "exact": self.exact,
        }


def _decades(month: StemBranch, forward: bool, start_age: int, current_age: int,
             day_master: str, birth_year: int, count: int) -> tuple:
    step = 1 if forward else -1
    current_step = math.floor(max(0, current_age - start_age) / 10)
    decades = []
    for i in range(count):
        pillar = month.shift(step * (i + 1))
        age_from = start_age + i * 10
        age_to = age_from + 9
        year_from = birth_year + age_from - 1
        is_current = i == current_step
        if is_current:
            status = "当前大运"
        elif age_to < current_age:
            status = "过去大运"
        elif age_from > current_age:
            status = "未来大运"
        else:
            status = ""
        decades.append(DecadePeriod(
            number=i + 1,
            pillar=pillar,
            start_age=age_from,
            end_age=age_to,
            start_year=year_from,
            end_year=year_from + 9,
            ten_relation=ten_relation(day_master, pillar.stem).value,
            is_current=is_current,
            status=status,
        ))
    return tuple(decades)


def _years(reference_year: int, current_age: int, birth_year_branch: str,
           day_master: str, before: int, after: int) -> tuple:
    clash = clashing_branch(birth_year_branch)
    periods = []
    for offset in range(-before, after + 1):
        age = current_age + offset
        if age < 1:
            continue
        pillar = annual_pillar(reference_year + offset)
        periods.append(YearPeriod(
            year=reference_year + offset,
            pillar=pillar,
            age=age,
            ten_relation=ten_relation(day_master, pillar.stem).value,
            is_current=offset == 0,
            is_birth_branch_year=pillar.branch == birth_year_branch,
            clashes_birth_year=pillar.branch == clash,
        ))
    return tuple(periods)


def project_timeline(birth_pillars: PillarSet, birth_ts, gender, now,
                     table: SolarTermTable, config: EngineConfig = DEFAULT_CONFIG) -> Timeline:
    """
    Project the decade and year periods of a birth chart.

    Args:
        birth_pillars: pillars of the birth timestamp
        birth_ts: birth timestamp (datetime or ISO string)
        gender: "male"/"female" or "男"/"女"
        now: reference timestamp supplied by the caller
        table: solar term table
        config: engine configuration (decade and year counts)
    """
    birth = config.civil.localize(birth_ts)
    now = config.civil.localize(now)
    gender = parse_gender(gender)

    yang_year = birth_pillars.year.stem_info.polarity is Polarity.YANG
    forward = yang_year == (gender is Gender.MALE)

    if forward:
        term, term_exact = resolve_term_after(table, birth, config.civil, sections_only=True)
        delta = term.timestamp - birth
    else:
        term, term_exact = resolve_term_before(table, birth, config.civil, sections_only=True)
        delta = birth - term.timestamp
    days_to_term = delta.total_seconds() / 86400
    offset = start_offset(days_to_term)

    current_age = nominal_age(birth, now)
    day_master = birth_pillars.day.stem
    decades = _decades(birth_pillars.month, forward, offset.start_age, current_age,
                       day_master, birth.year, config.decade_count)

    reference_year, year_exact = pillar_year(now, table, config)
    years = _years(reference_year, current_age, birth_pillars.year.branch, day_master,
                   config.years_before, config.years_after)

    logger.debug("Timeline %s from %s: %.4f days to %s, start age %d, current age %d",
                 "forward" if forward else "backward", birth.isoformat(), days_to_term,
                 term.name, offset.start_age, current_age)

    return Timeline(
        forward=forward,
        days_to_term=days_to_term,
        offset=offset,
        current_age=current_age,
        decades=decades,
        years=years,
        exact=term_exact and year_exact and birth_pillars.exact,
    )
