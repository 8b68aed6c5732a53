"""
Dun-Ju (遁局) resolver.

Maps the solar term in effect and the time elapsed since it to the board
regime: yang or yin polarity, configuration 1-9 and the five-day
sub-period (上元 / 中元 / 下元), plus a verification status.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from qimen.astro_calendar import SOLAR_TERMS, TERM_INDEX, SolarTermEntry, SolarTermTable, resolve_term_before
from qimen.config import DEFAULT_CONFIG, EngineConfig
from qimen.errors import strict_lookup
from qimen.sexagenary import Polarity

logger = logging.getLogger(__name__)

# term -> (polarity, configuration for 上元, 中元, 下元)
TERM_DUN_MAP = {
    "冬至": (Polarity.YANG, (1, 7, 4)),
    "小寒": (Polarity.YANG, (2, 8, 5)),
    "大寒": (Polarity.YANG, (3, 9, 6)),
    "立春": (Polarity.YANG, (8, 5, 2)),
    "雨水": (Polarity.YANG, (9, 6, 3)),
    "惊蛰": (Polarity.YANG, (1, 7, 4)),
    "春分": (Polarity.YANG, (3, 9, 6)),
    "清明": (Polarity.YANG, (4, 1, 7)),
    "谷雨": (Polarity.YANG, (5, 2, 8)),
    "立夏": (Polarity.YANG, (4, 1, 7)),
    "小满": (Polarity.YANG, (5, 2, 8)),
    "芒种": (Polarity.YANG, (6, 3, 9)),
    "夏至": (Polarity.YIN, (9, 3, 6)),
    "小暑": (Polarity.YIN, (8, 2, 5)),
    "大暑": (Polarity.YIN, (7, 1, 4)),
    "立秋": (Polarity.YIN, (2, 5, 8)),
    "处暑": (Polarity.YIN, (1, 4, 7)),
    "白露": (Polarity.YIN, (9, 3, 6)),
    "秋分": (Polarity.YIN, (7, 1, 4)),
    "寒露": (Polarity.YIN, (6, 9, 3)),
    "霜降": (Polarity.YIN, (5, 8, 2)),
    "立冬": (Polarity.YIN, (6, 9, 3)),
    "小雪": (Polarity.YIN, (5, 8, 2)),
    "大雪": (Polarity.YIN, (4, 7, 1)),
}

# Winter solstice opens the yang half, summer solstice the yin half
YANG_TERMS = frozenset(SOLAR_TERMS[:12])
YIN_TERMS = frozenset(SOLAR_TERMS[12:])
# Mid-point terms that still anchor a board without a warning
SOLSTICES = frozenset({"冬至", "夏至"})

SUB_PERIOD_DAYS = 5
CYCLE_DAYS = 15
EPSILON = 1e-4  # days

CHINESE_NUMERALS = "一二三四五六七八九"


class YuanPeriod(Enum):
    UPPER = "上元"
    MIDDLE = "中元"
    LOWER = "下元"

    @property
    def index(self) -> int:
        return list(YuanPeriod).index(self)


class VerificationStatus(Enum):
    EXACT = "精确"
    APPROXIMATE = "近似"
    ERROR = "错误"


@dataclass(frozen=True)
class Verification:
    status: VerificationStatus
    message: str

    def to_dict(self):
        return {"status": self.status.value, "message": self.message}


def sub_period_for(elapsed_days: float) -> YuanPeriod:
    """Five-day sub-period of the 15-day cycle, boundaries at 5 and 10 days."""
    day_in_cycle = elapsed_days % CYCLE_DAYS
    if day_in_cycle < 0:
        day_in_cycle += CYCLE_DAYS
    if day_in_cycle < SUB_PERIOD_DAYS - EPSILON:
        return YuanPeriod.UPPER
    if day_in_cycle < 2 * SUB_PERIOD_DAYS - EPSILON:
        return YuanPeriod.MIDDLE
    return YuanPeriod.LOWER


def verify(term_name: str, polarity: Polarity, configuration: int,
           elapsed_days: float, exact: bool = True) -> Verification:
    """
    Sanity-check a resolved Dun-Ju.

    Errors: configuration outside 1-9, polarity not matching the term's
    half of the year, negative elapsed time, unmapped term.
    Approximate: estimated term data, more than 15 days since the term,
    or a mid-point term other than the solstices (mid-points are interpolated
    between sections).
    """
    errors = []
    warnings = []

    if not 1 <= configuration <= 9:
        errors.append(f"configuration {configuration} outside 1-9")
    if elapsed_days < 0:
        errors.append(f"negative time since term: {elapsed_days:.2f} days")
    if term_name not in TERM_DUN_MAP:
        errors.append(f"no dun-ju mapping for term {term_name}")
    if polarity is Polarity.YANG and term_name not in YANG_TERMS:
        errors.append(f"{term_name} is not a yang term")
    if polarity is Polarity.YIN and term_name not in YIN_TERMS:
        errors.append(f"{term_name} is not a yin term")

    if not exact:
        warnings.append("solar term estimated from month/day table")
    if elapsed_days > CYCLE_DAYS:
        warnings.append(f"{elapsed_days:.2f} days since {term_name}, term data may be incomplete")
    if term_name in TERM_INDEX and TERM_INDEX[term_name] % 2 == 0 and term_name not in SOLSTICES:
        warnings.append(f"{term_name} is a mid-point term, its instant is interpolated")

    if errors:
        return Verification(VerificationStatus.ERROR, "; ".join(errors))
    if warnings:
        return Verification(VerificationStatus.APPROXIMATE, "; ".join(warnings))
    return Verification(VerificationStatus.EXACT, "all checks passed")


@dataclass(frozen=True)
class DunJu:
    polarity: Polarity
    configuration: int
    sub_period: YuanPeriod
    term: SolarTermEntry
    elapsed: timedelta
    exact: bool
    verification: Verification

    @property
    def elapsed_days(self) -> float:
        return self.elapsed.total_seconds() / 86400

    @property
    def term_name(self) -> str:
        return self.term.name

    @property
    def label(self) -> str:
        """e.g. 阳遁五局"""
        half = "阳" if self.polarity is Polarity.YANG else "阴"
        numeral = CHINESE_NUMERALS[self.configuration - 1] if 1 <= self.configuration <= 9 else str(self.configuration)
        return f"{half}遁{numeral}局"

    def to_dict(self):
        seconds = int(self.elapsed.total_seconds())
        days, rest = divmod(seconds, 86400)
        return {
            "label": self.label,
            "polarity": self.polarity.value,
            "configuration": self.configuration,
            "sub_period": self.sub_period.value,
            "term": self.term.to_dict(),
            "term_kind": self.term.kind,
            "elapsed_days": round(self.elapsed_days, 6),
            "elapsed": {
                "days": days,
                "hours": rest // 3600,
                "minutes": (rest % 3600) // 60,
                "seconds": rest % 60,
            },
            "exact": self.exact,
            "verification": self.verification.to_dict(),
        }


def dun_ju_for_term(term: SolarTermEntry, ts: datetime, exact: bool = True) -> DunJu:
    polarity, configurations = strict_lookup(TERM_DUN_MAP, term.name, "solar term")
    elapsed = ts - term.timestamp
    elapsed_days = elapsed.total_seconds() / 86400
    sub_period = sub_period_for(elapsed_days)
    configuration = configurations[sub_period.index]
    verification = verify(term.name, polarity, configuration, elapsed_days, exact)
    return DunJu(polarity, configuration, sub_period, term, elapsed, exact, verification)


def resolve_dun_ju(ts, table: SolarTermTable, config: EngineConfig = DEFAULT_CONFIG) -> DunJu:
    """
    Resolve the Dun-Ju in effect at a timestamp.

    Args:
        ts: datetime or ISO string, interpreted in config.civil
        table: loaded solar term table (may be empty)
        config: engine configuration
    """
    ts = config.civil.localize(ts)
    term, exact = resolve_term_before(table, ts, config.civil)
    dun_ju = dun_ju_for_term(term, ts, exact)

    if dun_ju.verification.status is not VerificationStatus.EXACT:
        logger.warning("Dun-ju %s at %s is %s: %s", dun_ju.label, ts.isoformat(),
                       dun_ju.verification.status.value, dun_ju.verification.message)
    logger.debug("Dun-ju %s: %s + %.4f days, %s",
                 dun_ju.label, term.name, dun_ju.elapsed_days, dun_ju.sub_period.value)
    return dun_ju
