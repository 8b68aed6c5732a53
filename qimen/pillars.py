"""
Four-pillar resolver.

Handles:
- Day rollover at 23:00 (the late Zi hour opens the next day)
- Year pillar with the 立春 boundary
- Month pillar from the last section term (Five Tigers rule for the stem)
- Day pillar from a fixed epoch anchor
- Hour pillar (Five Rats rule for the stem)
"""

import logging
from datetime import date, datetime, timedelta

from qimen.astro_calendar import YEAR_START_INDEX, SolarTermTable, resolve_term_before
from qimen.config import DEFAULT_CONFIG, EngineConfig
from qimen.sexagenary import PillarSet, StemBranch

logger = logging.getLogger(__name__)

# 2000-01-01 is 戊午, position 54 of the cycle
DAY_EPOCH = date(2000, 1, 1)
DAY_EPOCH_INDEX = 54

ROLLOVER_HOUR = 23


def pillar_date(ts: datetime) -> date:
    """Civil date used for the day pillar: hours from 23:00 belong to the next day."""
    if ts.hour >= ROLLOVER_HOUR:
        return ts.date() + timedelta(days=1)
    return ts.date()


def annual_pillar(year: int) -> StemBranch:
    """Pillar of a pillar-year (not a civil year: the caller applies 立春)."""
    return StemBranch.from_index(year - 4)


def month_pillar(year_stem_index: int, month_branch_index: int) -> StemBranch:
    """
    Month pillar by the Five Tigers rule: a 甲/己 year opens its 寅 month
    with 丙, 乙/庚 with 戊, and so on.
    """
    stem_index = ((year_stem_index % 5) * 2 + 2 + (month_branch_index - 2 + 12) % 12) % 10
    return StemBranch.from_index(_cycle_index(stem_index, month_branch_index))


def day_pillar(civil_date: date) -> StemBranch:
    return StemBranch.from_index((civil_date - DAY_EPOCH).days + DAY_EPOCH_INDEX)


def hour_branch_index(hour: int) -> int:
    """Two-hour segments, segment 0 (子) begins at 23:00."""
    return ((hour + 1) % 24) // 2


def hour_pillar(day_stem_index: int, hour: int) -> StemBranch:
    """Hour pillar by the Five Rats rule: 甲/己 days open with 甲子."""
    branch_index = hour_branch_index(hour)
    stem_index = ((day_stem_index % 5) * 2 + branch_index) % 10
    return StemBranch.from_index(_cycle_index(stem_index, branch_index))


def _cycle_index(stem_index: int, branch_index: int) -> int:
    return (6 * stem_index - 5 * branch_index) % 60


def _year_of_section(section) -> int:
    """Sections before 立春 (小寒) still belong to the previous pillar year."""
    if section.index >= YEAR_START_INDEX:
        return section.timestamp.year
    return section.timestamp.year - 1


def pillar_year(ts, table: SolarTermTable, config: EngineConfig = DEFAULT_CONFIG) -> tuple:
    """
    Pillar year of a timestamp (the civil year, minus one before 立春).

    Returns:
        (year, exact)
    """
    ts = config.civil.localize(ts)
    section, exact = resolve_term_before(table, ts, config.civil, sections_only=True)
    return _year_of_section(section), exact


def resolve_pillars(ts, table: SolarTermTable, config: EngineConfig = DEFAULT_CONFIG) -> PillarSet:
    """
    Convert a timestamp into its four pillars.

    Year and month boundaries compare the true instant against the section
    terms; the day and hour pillars use the rolled-over civil date. When no
    term data covers the instant the approximate estimator is used and the
    result is tagged exact=False.

    Args:
        ts: datetime or ISO string, interpreted in config.civil
        table: loaded solar term table (may be empty)
        config: engine configuration
    """
    ts = config.civil.localize(ts)

    section, exact = resolve_term_before(table, ts, config.civil, sections_only=True)

    year = annual_pillar(_year_of_section(section))
    month = month_pillar(year.stem_info.index, section.month_branch_index)
    day = day_pillar(pillar_date(ts))
    hour = hour_pillar(day.stem_info.index, ts.hour)

    logger.debug("Pillars for %s: %s %s %s %s (section %s)",
                 ts.isoformat(), year, month, day, hour, section.name)
    return PillarSet(year=year, month=month, day=day, hour=hour, exact=exact)
