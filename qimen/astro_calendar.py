"""
Calendar utilities: civil time and the 24 solar terms.

Handles:
- The single civil time convention (fixed UTC offset) used by the engine
- Section term instants computed with Swiss Ephemeris
- Loading a raw section feed (12 instants per year) and interpolating
  the 12 mid-point terms
- "Which term precedes / follows this instant" lookups that fail closed
- An approximate month/day term estimator for when no data covers an instant
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Optional, Union

import swisseph as swe

from qimen.errors import InputValidationError, InvariantViolation, TermDataUnavailable

logger = logging.getLogger(__name__)

MIN_YEAR = 1900
MAX_YEAR = 2100


# ============================================================
# CIVIL TIME
# ============================================================

@dataclass(frozen=True)
class CivilTime:
    """
    The one civil time convention every entry point runs in.

    All day and two-hour boundaries are evaluated in this fixed offset
    (default UTC+8, China Standard Time).
    """
    utc_offset_hours: float = 8.0

    @property
    def tzinfo(self) -> timezone:
        return timezone(timedelta(hours=self.utc_offset_hours))

    def localize(self, value: Union[datetime, str]) -> datetime:
        """
        Convert a timestamp into an aware datetime in this offset.

        Args:
            value: aware datetime (converted), naive datetime (taken as
                civil time) or an ISO string such as "2024-02-10 12:00"

        Raises:
            InputValidationError: unparseable value or year outside 1900-2100
        """
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.strip())
            except ValueError:
                raise InputValidationError(f"unparseable timestamp: {value!r}") from None
        elif isinstance(value, date) and not isinstance(value, datetime):
            value = datetime(value.year, value.month, value.day)
        if not isinstance(value, datetime):
            raise InputValidationError(f"not a timestamp: {value!r}")

        if value.tzinfo is None:
            localized = value.replace(tzinfo=self.tzinfo)
        else:
            localized = value.astimezone(self.tzinfo)
        if not MIN_YEAR <= localized.year <= MAX_YEAR:
            raise InputValidationError(
                f"year {localized.year} outside supported range {MIN_YEAR}-{MAX_YEAR}")
        return localized


# ============================================================
# SOLAR TERM DEFINITIONS
# ============================================================
#
# Index 0 is the winter solstice that opens the year's cycle. Odd indices
# are sections (节), which mark month pillar boundaries; even indices are
# mid-points (气). Index 3 (立春) starts the pillar year.

SOLAR_TERMS = [
    "冬至", "小寒", "大寒", "立春", "雨水", "惊蛰",
    "春分", "清明", "谷雨", "立夏", "小满", "芒种",
    "夏至", "小暑", "大暑", "立秋", "处暑", "白露",
    "秋分", "寒露", "霜降", "立冬", "小雪", "大雪",
]
TERM_INDEX = {name: i for i, name in enumerate(SOLAR_TERMS)}
YEAR_START_INDEX = 3

# Sun longitude of each section, in calendar order (小寒 ... 大雪)
SECTION_LONGITUDES = [285, 315, 345, 15, 45, 75, 105, 135, 165, 195, 225, 255]

# Approximate civil (month, day) of every term, by index. Index 0 falls in
# December of the previous calendar year.
APPROXIMATE_TERM_DAYS = [
    (12, 22), (1, 5), (1, 20), (2, 4), (2, 19), (3, 5),
    (3, 20), (4, 4), (4, 20), (5, 5), (5, 21), (6, 5),
    (6, 21), (7, 7), (7, 23), (8, 7), (8, 23), (9, 7),
    (9, 23), (10, 8), (10, 23), (11, 7), (11, 22), (12, 7),
]

MEAN_TERM_LENGTH = timedelta(days=365.2422 / 24)

# Longest real gap between an instant and its neighbouring term; anything
# farther means the table is missing data around that instant.
MAX_TERM_GAP = timedelta(days=16.5)
MAX_SECTION_GAP = timedelta(days=32)


@dataclass(frozen=True)
class SolarTermEntry:
    index: int  # 0-23, odd = section
    name: str
    timestamp: datetime
    exact: bool = True

    @property
    def is_section(self) -> bool:
        return self.index % 2 == 1

    @property
    def kind(self) -> str:
        return "节" if self.is_section else "气"

    @property
    def month_branch_index(self) -> int:
        """Branch index of the month this section opens (立春 -> 寅 = 2)."""
        if not self.is_section:
            raise InvariantViolation(f"{self.name} is not a section term")
        return ((self.index + 1) // 2) % 12

    def to_dict(self):
        return {
            "index": self.index,
            "name": self.name,
            "kind": self.kind,
            "timestamp": self.timestamp.isoformat(),
            "exact": self.exact,
        }


# ============================================================
# SOLAR TERM TABLE
# ============================================================

class SolarTermTable:
    """
    Immutable mapping from calendar year to its 24 ordered term entries.

    Build it once (from_instants / from_file / from_ephemeris) and pass it
    into the resolvers. An empty table is valid and reports loaded=False.
    """

    def __init__(self, years: Optional[dict] = None, exact: bool = True):
        frozen = {}
        for year, entries in sorted((years or {}).items()):
            entries = tuple(entries)
            if [e.index for e in entries] != list(range(24)):
                raise InvariantViolation(f"year {year} does not hold 24 indexed terms")
            for earlier, later in zip(entries, entries[1:]):
                if not earlier.timestamp < later.timestamp:
                    raise InvariantViolation(
                        f"year {year}: {earlier.name} is not before {later.name}")
            frozen[year] = entries
        self._years = MappingProxyType(frozen)
        self._exact = exact

    @property
    def loaded(self) -> bool:
        return bool(self._years)

    @property
    def exact(self) -> bool:
        return self._exact

    @property
    def years(self) -> tuple:
        return tuple(self._years)

    def year(self, year: int) -> tuple:
        try:
            return self._years[year]
        except KeyError:
            raise TermDataUnavailable(f"no solar terms loaded for {year}") from None

    def _window(self, ts: datetime, sections_only: bool) -> list:
        entries = []
        for year in (ts.year - 1, ts.year, ts.year + 1):
            entries.extend(self._years.get(year, ()))
        if sections_only:
            entries = [e for e in entries if e.is_section]
        return entries

    def _bracket(self, ts: datetime, sections_only: bool) -> tuple:
        """
        The loaded terms on either side of `ts`: latest at or before it and
        earliest strictly after it.

        Both must be loaded and be consecutive terms (or sections), so a
        missing neighbouring year can never pass an older term off as the
        one in effect.

        Raises:
            TermDataUnavailable: either side is not covered by loaded data
        """
        entries = self._window(ts, sections_only)
        before = [e for e in entries if e.timestamp <= ts]
        after = [e for e in entries if e.timestamp > ts]
        if not before:
            raise TermDataUnavailable(f"no solar term before {ts.isoformat()}")
        if not after:
            raise TermDataUnavailable(f"no solar term after {ts.isoformat()}")
        earlier = max(before, key=lambda e: e.timestamp)
        later = min(after, key=lambda e: e.timestamp)

        step = 2 if sections_only else 1
        limit = MAX_SECTION_GAP if sections_only else MAX_TERM_GAP
        if later.index != (earlier.index + step) % 24 or later.timestamp - earlier.timestamp > limit:
            raise TermDataUnavailable(f"term data missing around {ts.isoformat()}")
        return earlier, later

    def term_before(self, ts: datetime, sections_only: bool = False) -> SolarTermEntry:
        """
        Latest term at or before `ts`.

        Raises:
            TermDataUnavailable: the term or its successor is not loaded
        """
        return self._bracket(ts, sections_only)[0]

    def term_after(self, ts: datetime, sections_only: bool = False) -> SolarTermEntry:
        """
        Earliest term strictly after `ts`.

        Raises:
            TermDataUnavailable: the term or its predecessor is not loaded
        """
        return self._bracket(ts, sections_only)[1]

    # --------------------------------------------------------
    # Builders
    # --------------------------------------------------------

    @classmethod
    def from_instants(cls, instants: Iterable, civil: CivilTime = CivilTime()) -> "SolarTermTable":
        """
        Build a table from raw section instants, 12 per calendar year
        (小寒 through 大雪).

        Unparseable instants and incomplete or out-of-order years are
        dropped with a warning; a feed with nothing usable yields an
        empty table rather than an error.
        """
        by_year = {}
        for raw in instants:
            try:
                ts = civil.localize(raw)
            except InputValidationError as exc:
                logger.warning("Skipping solar term instant: %s", exc)
                continue
            by_year.setdefault(ts.year, []).append(ts)

        sections = {}
        for year, stamps in sorted(by_year.items()):
            stamps.sort()
            if len(stamps) != 12 or [ts.month for ts in stamps] != list(range(1, 13)):
                logger.warning("Dropping solar term year %s: expected one section per month, got %d instants",
                               year, len(stamps))
                continue
            sections[year] = stamps

        years = {}
        for year, stamps in sections.items():
            previous_da_xue = sections[year - 1][-1] if year - 1 in sections else None
            years[year] = _interpolate_year(stamps, previous_da_xue)

        if not years:
            logger.warning("Solar term feed contained no complete year")
        else:
            logger.debug("Loaded solar terms for %d-%d", min(years), max(years))
        return cls(years)

    @classmethod
    def from_file(cls, path: Union[str, Path], civil: CivilTime = CivilTime()) -> "SolarTermTable":
        """Load a feed file with one "YYYY-MM-DD HH:MM:SS" civil instant per line."""
        path = Path(path)
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            logger.warning("Solar term file %s unavailable: %s", path, exc)
            return cls()
        return cls.from_instants([line for line in lines if line.strip()], civil)

    @classmethod
    def from_ephemeris(cls, years: Iterable[int], civil: CivilTime = CivilTime(),
                       ephe_path: Optional[str] = None) -> "SolarTermTable":
        """Compute the section feed with Swiss Ephemeris for each year."""
        instants = []
        for year in sorted(set(years)):
            instants.extend(compute_section_instants(year, civil, ephe_path))
        return cls.from_instants(instants, civil)


def _interpolate_year(sections: list, previous_da_xue: Optional[datetime]) -> tuple:
    """Expand 12 section instants into the 24 ordered entries of one year."""
    stamps = [None] * 24
    for k, ts in enumerate(sections):
        stamps[2 * k + 1] = ts
    for i in range(2, 24, 2):
        stamps[i] = stamps[i - 1] + (stamps[i + 1] - stamps[i - 1]) / 2
    if previous_da_xue is not None:
        stamps[0] = previous_da_xue + (stamps[1] - previous_da_xue) / 2
    else:
        stamps[0] = stamps[1] - MEAN_TERM_LENGTH
    return tuple(SolarTermEntry(i, SOLAR_TERMS[i], ts, exact=i > 0 or previous_da_xue is not None)
                 for i, ts in enumerate(stamps))


def _julian_to_datetime(jd: float, civil: CivilTime) -> datetime:
    y, m, d, h = swe.revjul(jd)
    utc = datetime(y, m, d, tzinfo=timezone.utc) + timedelta(hours=h)
    return utc.astimezone(civil.tzinfo)


def compute_section_instants(year: int, civil: CivilTime = CivilTime(),
                             ephe_path: Optional[str] = None) -> list:
    """
    Compute the 12 section term instants of a calendar year.

    Uses Swiss Ephemeris to find the moment the Sun crosses each section
    longitude, starting from January 1st.

    Returns:
        12 aware datetimes in civil time, 小寒 first
    """
    if ephe_path:
        swe.set_ephe_path(ephe_path)
    jd_year_start = swe.julday(year, 1, 1, 0)
    instants = []
    for lon in SECTION_LONGITUDES:
        jd_cross = swe.solcross_ut(float(lon), jd_year_start, 0)
        instants.append(_julian_to_datetime(jd_cross, civil))
    return instants


# ============================================================
# APPROXIMATE ESTIMATOR
# ============================================================

def approximate_table(years: Iterable[int], civil: CivilTime = CivilTime()) -> SolarTermTable:
    """Month/day estimate of all terms at civil midnight, tagged non-exact."""
    table = {}
    for year in sorted(set(years)):
        entries = []
        for i, (month, day) in enumerate(APPROXIMATE_TERM_DAYS):
            ts = datetime(year - 1 if i == 0 else year, month, day, tzinfo=civil.tzinfo)
            entries.append(SolarTermEntry(i, SOLAR_TERMS[i], ts, exact=False))
        table[year] = entries
    return SolarTermTable(table, exact=False)


def _estimate(ts: datetime, civil: CivilTime) -> SolarTermTable:
    return approximate_table((ts.year - 1, ts.year, ts.year + 1), civil)


def resolve_term_before(table: SolarTermTable, ts: datetime, civil: CivilTime,
                        sections_only: bool = False) -> tuple:
    """
    term_before with the approximate fallback.

    Returns:
        (entry, exact) where exact is False when the estimator was used or
        the entry itself is an estimate
    """
    try:
        entry = table.term_before(ts, sections_only)
        return entry, table.exact and entry.exact
    except TermDataUnavailable as exc:
        logger.warning("%s; using approximate solar terms", exc)
    return _estimate(ts, civil).term_before(ts, sections_only), False


def resolve_term_after(table: SolarTermTable, ts: datetime, civil: CivilTime,
                       sections_only: bool = False) -> tuple:
    """term_after with the approximate fallback, see resolve_term_before."""
    try:
        entry = table.term_after(ts, sections_only)
        return entry, table.exact and entry.exact
    except TermDataUnavailable as exc:
        logger.warning("%s; using approximate solar terms", exc)
    return _estimate(ts, civil).term_after(ts, sections_only), False


# ============================================================
# TERM DISPLAY INFO
# ============================================================

@dataclass(frozen=True)
class TermInfo:
    current: SolarTermEntry
    next_term: SolarTermEntry
    until_next: timedelta
    exact: bool = True

    @property
    def is_transition(self) -> bool:
        return self.until_next <= timedelta(days=3)

    def to_dict(self):
        seconds = int(self.until_next.total_seconds())
        days, rest = divmod(seconds, 86400)
        return {
            "current": self.current.to_dict(),
            "next": self.next_term.to_dict(),
            "days_to_next": days,
            "hours_to_next": rest // 3600,
            "minutes_to_next": (rest % 3600) // 60,
            "is_transition": self.is_transition,
            "exact": self.exact,
        }


def term_info(table: SolarTermTable, ts: datetime, civil: CivilTime) -> TermInfo:
    current, exact_before = resolve_term_before(table, ts, civil)
    next_term, exact_after = resolve_term_after(table, ts, civil)
    return TermInfo(current, next_term, next_term.timestamp - ts, exact_before and exact_after)


# Quick verification
if __name__ == "__main__":
    civil = CivilTime()
    table = SolarTermTable.from_ephemeris([2025, 2026], civil)
    print("2026 solar terms:")
    for entry in table.year(2026):
        print(f"  {entry.index:2d} {entry.name} {entry.kind} {entry.timestamp:%Y-%m-%d %H:%M}")
