"""
Chart creation library.
Computes the Qi Men board for an event and the energy analysis (plus an
optional decade/year timeline) for a birth, as one serializable result.

Usage from Python:
    from qimen.astro_calendar import SolarTermTable
    from qimen.create_chart import compute_chart
    table = SolarTermTable.from_ephemeris(range(2023, 2027))
    chart = compute_chart(
        event_ts="2024-02-10 12:00", display_name="Alex", gender="male",
        birth_ts="1990-03-15 10:30", table=table,
        now="2024-02-10 12:00",  # optional: enables the timeline
    )
    print(chart.to_json())

Input validation errors are raised to the caller. Invariant violations
inside the engine are the only errors converted, here and nowhere else,
into a FallbackChart.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from qimen.astro_calendar import SolarTermEntry, SolarTermTable, TermInfo, term_info
from qimen.board import (
    CENTER_PALACE,
    LUOSHU_ORDER,
    PALACE_NAMES,
    Board,
    PalaceContent,
    resolve_board,
)
from qimen.config import DEFAULT_CONFIG, EngineConfig
from qimen.dunju import DunJu, Verification, VerificationStatus, YuanPeriod
from qimen.energy import BirthAnalysis, analyze_birth
from qimen.errors import InputValidationError, InvariantViolation
from qimen.pillars import resolve_pillars
from qimen.sexagenary import PillarSet, Polarity, StemBranch
from qimen.timeline import Gender, Timeline, parse_gender, project_timeline

logger = logging.getLogger(__name__)

PLACEHOLDER = "--"


@dataclass(frozen=True)
class ChartResult:
    display_name: str
    gender: Gender
    event_time: datetime
    birth_time: datetime
    board: Board
    birth: BirthAnalysis
    term: TermInfo
    timeline: Optional[Timeline] = None

    @property
    def is_fallback(self) -> bool:
        return False

    @property
    def exact(self) -> bool:
        exact = self.board.exact and self.birth.exact and self.term.exact
        if self.timeline is not None:
            exact = exact and self.timeline.exact
        return exact

    def to_dict(self):
        return {
            "display_name": self.display_name,
            "gender": self.gender.value,
            "event_time": self.event_time.isoformat(),
            "birth_time": self.birth_time.isoformat(),
            "is_fallback": self.is_fallback,
            "reason": getattr(self, "reason", None),
            "exact": self.exact,
            "board": self.board.to_dict(),
            "term": self.term.to_dict(),
            "birth": self.birth.to_dict(),
            "timeline": self.timeline.to_dict() if self.timeline is not None else None,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)


@dataclass(frozen=True)
class FallbackChart(ChartResult):
    """A structurally complete placeholder chart; every palace shows "--"."""
    reason: str = ""

    @property
    def is_fallback(self) -> bool:
        return True

    @property
    def exact(self) -> bool:
        return False


def fallback_chart(reason: str, display_name: str, gender: Gender, event: datetime,
                   birth: datetime, config: EngineConfig = DEFAULT_CONFIG) -> FallbackChart:
    """
    Build the display-safe fallback: 甲子 pillars, 阳遁一局 at 立春 and
    placeholder palaces.
    """
    jia_zi = StemBranch("甲", "子")
    pillars = PillarSet(jia_zi, jia_zi, jia_zi, jia_zi, exact=False)
    term = SolarTermEntry(3, "立春", event, exact=False)
    dun_ju = DunJu(
        polarity=Polarity.YANG,
        configuration=1,
        sub_period=YuanPeriod.UPPER,
        term=term,
        elapsed=timedelta(0),
        exact=False,
        verification=Verification(VerificationStatus.ERROR, reason),
    )
    palaces = []
    for palace in range(1, 10):
        if palace == CENTER_PALACE:
            palaces.append(PalaceContent(palace, PALACE_NAMES[palace], (), (), None, None, None, None))
        else:
            palaces.append(PalaceContent(palace, PALACE_NAMES[palace], (PLACEHOLDER,), (PLACEHOLDER,),
                                         PLACEHOLDER, None, PLACEHOLDER, PLACEHOLDER))
    board = Board(
        dun_ju=dun_ju,
        pillars=pillars,
        decade_head=jia_zi,
        hiding_stem="戊",
        anchor_palace=LUOSHU_ORDER[0],
        hour_palace=LUOSHU_ORDER[0],
        value_marker=PLACEHOLDER,
        value_gate=PLACEHOLDER,
        gate_steps=0,
        attachment_palace=config.attachment_palace,
        palaces=tuple(palaces),
    )
    next_term = SolarTermEntry(4, "雨水", event, exact=False)
    return FallbackChart(
        display_name=display_name,
        gender=gender,
        event_time=event,
        birth_time=birth,
        board=board,
        birth=analyze_birth(pillars),
        term=TermInfo(term, next_term, timedelta(0), exact=False),
        timeline=None,
        reason=reason,
    )


def compute_chart(event_ts, display_name: str, gender, birth_ts,
                  table: SolarTermTable, config: EngineConfig = DEFAULT_CONFIG,
                  now=None) -> ChartResult:
    """
    Compute a full chart.

    Args:
        event_ts: timestamp the board is cast for (datetime or ISO string)
        display_name: name carried through to the result
        gender: "male"/"female" or "男"/"女"
        birth_ts: birth timestamp
        table: solar term table built at startup (may be empty)
        config: engine configuration
        now: reference timestamp for the timeline; no timeline when None

    Returns:
        ChartResult, or FallbackChart when an engine invariant failed

    Raises:
        InputValidationError: malformed timestamps, name or gender
    """
    if not isinstance(display_name, str):
        raise InputValidationError(f"display name must be a string: {display_name!r}")
    event = config.civil.localize(event_ts)
    birth = config.civil.localize(birth_ts)
    gender = parse_gender(gender)
    reference = config.civil.localize(now) if now is not None else None

    try:
        board = resolve_board(event, table, config)
        birth_pillars = resolve_pillars(birth, table, config)
        analysis = analyze_birth(birth_pillars)
        term = term_info(table, event, config.civil)
        timeline = None
        if reference is not None:
            timeline = project_timeline(birth_pillars, birth, gender, reference, table, config)
    except InvariantViolation as exc:
        logger.exception("Chart for %s degraded to fallback", display_name)
        return fallback_chart(str(exc), display_name, gender, event, birth, config)

    if not (board.exact and analysis.exact):
        logger.warning("Chart for %s uses approximate solar terms", display_name)

    return ChartResult(
        display_name=display_name,
        gender=gender,
        event_time=event,
        birth_time=birth,
        board=board,
        birth=analysis,
        term=term,
        timeline=timeline,
    )
