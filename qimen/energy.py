"""
Five-element energy analysis of a birth chart.

Handles:
- Raw element scores from stems (100 each) and hidden stems (branch weights)
- Void branch attenuation (hidden stems of a void branch count half)
- Month-dependent strength states (旺相休囚死 plus 余气) and coefficients
- Strength class of the day master
- Useful / favorable / unfavorable element selection with seasonal
  adjustment (调候) tie-breaking
- Ten-relation category distribution, per-pillar detail, chart pattern

Design principle: This module COMPUTES and FLAGS. It does not interpret.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from qimen.errors import strict_lookup
from qimen.sexagenary import (
    Element,
    PillarSet,
    RelationCategory,
    element_of,
    hidden_stems,
    related_element,
    ten_relation,
    void_branches,
)

logger = logging.getLogger(__name__)

STEM_SCORE = 100
VOID_FACTOR = 0.5

STRONG_THRESHOLD = 0.55
WEAK_THRESHOLD = 0.35
# Balanced charts at or above this ratio are treated like strong ones
BALANCED_STRONG_RATIO = 0.5


# ============================================================
# STRENGTH STATES (旺相休囚死)
# ============================================================

class StrengthState(Enum):
    PEAK = "旺"
    SURPLUS = "余气"
    SUPPORTIVE = "相"
    RESTING = "休"
    TRAPPED = "囚"
    DEAD = "死"

    @property
    def coefficient(self) -> float:
        return STATE_COEFFICIENTS[self]


STATE_COEFFICIENTS = {
    StrengthState.PEAK: 2.0,
    StrengthState.SURPLUS: 1.6,
    StrengthState.SUPPORTIVE: 1.5,
    StrengthState.RESTING: 0.8,
    StrengthState.TRAPPED: 0.7,
    StrengthState.DEAD: 0.5,
}

_PEAK = StrengthState.PEAK
_SUPP = StrengthState.SUPPORTIVE
_REST = StrengthState.RESTING
_TRAP = StrengthState.TRAPPED
_DEAD = StrengthState.DEAD

# Month branch -> state of (wood, fire, earth, metal, water)
BASE_STATES = {
    "寅": (_PEAK, _SUPP, _DEAD, _TRAP, _REST),
    "卯": (_PEAK, _SUPP, _DEAD, _TRAP, _REST),
    "辰": (_TRAP, _REST, _PEAK, _SUPP, _DEAD),
    "巳": (_REST, _PEAK, _SUPP, _DEAD, _TRAP),
    "午": (_REST, _PEAK, _SUPP, _DEAD, _TRAP),
    "未": (_TRAP, _REST, _PEAK, _SUPP, _DEAD),
    "申": (_DEAD, _TRAP, _REST, _PEAK, _SUPP),
    "酉": (_DEAD, _TRAP, _REST, _PEAK, _SUPP),
    "戌": (_TRAP, _REST, _PEAK, _SUPP, _DEAD),
    "亥": (_SUPP, _DEAD, _TRAP, _REST, _PEAK),
    "子": (_SUPP, _DEAD, _TRAP, _REST, _PEAK),
    "丑": (_TRAP, _DEAD, _PEAK, _SUPP, _DEAD),
}

ELEMENT_ORDER = list(Element)


def strength_state(month_branch: str, element: Element, raw_scores: dict) -> StrengthState:
    """
    State of `element` in a month, including the documented exceptions.

    Args:
        month_branch: branch of the month pillar
        element: element being evaluated
        raw_scores: Element -> raw (pre-coefficient) score of the chart
    """
    base = strict_lookup(BASE_STATES, month_branch, "month branch")[ELEMENT_ORDER.index(element)]
    total = sum(raw_scores.values())
    earth = raw_scores.get(Element.EARTH, 0)
    water = raw_scores.get(Element.WATER, 0)

    if month_branch == "辰":
        if element is Element.WOOD:
            return StrengthState.SURPLUS
        if element is Element.WATER:
            share = water / total if total > 0 else 0
            return StrengthState.SUPPORTIVE if share > 0.15 else StrengthState.DEAD
    elif month_branch == "未":
        if element is Element.FIRE:
            return StrengthState.SURPLUS
        if element is Element.METAL:
            return StrengthState.DEAD
    elif month_branch == "戌":
        # Dry earth: earth more than twice water
        dry = earth > water * 2
        if element is Element.FIRE:
            return StrengthState.SUPPORTIVE if dry else StrengthState.RESTING
        if element is Element.METAL:
            return StrengthState.DEAD if dry else StrengthState.SUPPORTIVE
    elif month_branch == "丑":
        if element is Element.WATER:
            return StrengthState.SURPLUS
        if element is Element.EARTH:
            return StrengthState.PEAK
    return base


# ============================================================
# SEASONAL ADJUSTMENT (调候)
# ============================================================

# Day master element -> month branch -> adjusting stems, most important first
SEASONAL_STEMS = {
    Element.WOOD: {
        "寅": "丙癸", "卯": "丙癸", "辰": "丙癸庚",
        "巳": "癸庚", "午": "癸庚", "未": "癸庚",
        "申": "庚丁壬", "酉": "庚丁壬", "戌": "庚甲丁壬",
        "亥": "庚丁丙", "子": "庚丁丙", "丑": "庚丁丙",
    },
    Element.FIRE: {
        "寅": "壬庚", "卯": "壬庚", "辰": "壬庚",
        "巳": "壬庚", "午": "壬庚", "未": "壬庚",
        "申": "壬庚", "酉": "壬庚", "戌": "甲壬",
        "亥": "甲戊庚壬", "子": "甲戊庚壬", "丑": "甲戊庚壬",
    },
    Element.EARTH: {
        "寅": "丙癸", "卯": "丙癸", "辰": "丙癸甲",
        "巳": "癸丙", "午": "癸丙", "未": "癸丙",
        "申": "丙癸", "酉": "丙癸", "戌": "丙癸甲",
        "亥": "丙甲", "子": "丙甲", "丑": "丙甲",
    },
    Element.METAL: {
        "寅": "丙庚甲", "卯": "丙庚甲", "辰": "丁甲庚",
        "巳": "壬庚", "午": "壬庚", "未": "壬庚",
        "申": "丁甲", "酉": "丁甲", "戌": "甲壬",
        "亥": "丙丁", "子": "丙丁", "丑": "丙丁",
    },
    Element.WATER: {
        "寅": "庚丙戊", "卯": "庚丙戊", "辰": "庚丙",
        "巳": "壬庚", "午": "壬庚", "未": "壬庚",
        "申": "戊丁", "酉": "戊丁", "戌": "甲壬",
        "亥": "戊丙", "子": "戊丙", "丑": "丙",
    },
}


def seasonal_stems(day_master_element: Element, month_branch: str) -> tuple:
    by_branch = strict_lookup(SEASONAL_STEMS, day_master_element, "day master element")
    return tuple(strict_lookup(by_branch, month_branch, "month branch"))


# ============================================================
# RESULT TYPES
# ============================================================

class StrengthClass(Enum):
    STRONG = "身强"
    WEAK = "身弱"
    BALANCED = "中和"


@dataclass(frozen=True)
class ElementTally:
    element: Element
    stem_score: float
    hidden_score: float
    state: StrengthState
    adjusted: float
    percentage: float

    @property
    def raw(self) -> float:
        return self.stem_score + self.hidden_score

    @property
    def coefficient(self) -> float:
        return self.state.coefficient

    def to_dict(self):
        return {
            "element": self.element.value,
            "chinese": self.element.chinese,
            "stem_score": self.stem_score,
            "hidden_score": self.hidden_score,
            "raw": self.raw,
            "state": self.state.value,
            "coefficient": self.coefficient,
            "adjusted": round(self.adjusted, 4),
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class PillarDetail:
    position: str
    pillar: str
    ten_relation: str  # "日主" for the day pillar
    hidden_stems: tuple
    is_void: bool

    def to_dict(self):
        return {
            "position": self.position,
            "pillar": self.pillar,
            "ten_relation": self.ten_relation,
            "hidden_stems": list(self.hidden_stems),
            "is_void": self.is_void,
        }


@dataclass(frozen=True)
class BirthAnalysis:
    pillars: PillarSet
    tallies: tuple  # ElementTally in wood, fire, earth, metal, water order
    strength_ratio: float
    strength_class: StrengthClass
    useful_elements: tuple
    favorable_elements: tuple
    unfavorable_elements: tuple
    seasonal_stems: tuple
    seasonal_elements: tuple
    void_branches: tuple
    relation_distribution: dict  # RelationCategory -> percentage
    pillar_details: tuple
    pattern: str

    @property
    def exact(self) -> bool:
        return self.pillars.exact

    @property
    def day_master(self) -> str:
        return self.pillars.day.stem

    @property
    def day_master_element(self) -> Element:
        return element_of(self.pillars.day.stem)

    def tally(self, element: Element) -> ElementTally:
        return self.tallies[ELEMENT_ORDER.index(element)]

    def to_dict(self):
        return {
            "pillars": self.pillars.to_dict(),
            "day_master": self.day_master,
            "day_master_element": self.day_master_element.value,
            "elements": [t.to_dict() for t in self.tallies],
            "energy": {t.element.value: t.percentage for t in self.tallies},
            "strength_ratio": round(self.strength_ratio, 4),
            "strength": self.strength_class.value,
            "useful_elements": [e.value for e in self.useful_elements],
            "favorable_elements": [e.value for e in self.favorable_elements],
            "unfavorable_elements": [e.value for e in self.unfavorable_elements],
            "seasonal_stems": list(self.seasonal_stems),
            "seasonal_elements": [e.value for e in self.seasonal_elements],
            "void_branches": list(self.void_branches),
            "relation_distribution": {c.value: pct for c, pct in self.relation_distribution.items()},
            "pillar_details": [d.to_dict() for d in self.pillar_details],
            "pattern": self.pattern,
            "exact": self.exact,
        }


# ============================================================
# ANALYSIS
# ============================================================

def _percentages(scores: dict) -> dict:
    total = sum(scores.values())
    if total <= 0:
        return {key: 0.0 for key in scores}
    return {key: round(value / total * 100, 2) for key, value in scores.items()}


def classify_strength(ratio: float) -> StrengthClass:
    if ratio > STRONG_THRESHOLD:
        return StrengthClass.STRONG
    if ratio < WEAK_THRESHOLD:
        return StrengthClass.WEAK
    return StrengthClass.BALANCED


def select_elements(day_master_element: Element, adjusted: dict, strength: StrengthClass,
                    ratio: float, seasonal: tuple) -> tuple:
    """
    Choose useful, favorable and unfavorable elements.

    Strong charts (and balanced ones with ratio >= 0.5) want the weakest
    drainer; weak charts want the strongest supporter. In both branches a
    candidate from the seasonal adjustment set wins over rank alone.

    Returns:
        (useful, favorable, unfavorable) tuples of Element
    """
    supporters = [
        day_master_element,
        related_element(day_master_element, RelationCategory.RESOURCE),
    ]
    drainers = [
        related_element(day_master_element, RelationCategory.AUTHORITY),
        related_element(day_master_element, RelationCategory.OUTPUT),
        related_element(day_master_element, RelationCategory.WEALTH),
    ]

    if strength is StrengthClass.STRONG or (strength is StrengthClass.BALANCED and ratio >= BALANCED_STRONG_RATIO):
        candidates = sorted((e for e in seasonal if e in drainers), key=lambda e: adjusted[e])
        ranked = sorted(drainers, key=lambda e: adjusted[e])
        useful = candidates[0] if candidates else ranked[0]
        favorable = [e for e in drainers if e != useful]
        unfavorable = supporters
    else:
        candidates = sorted((e for e in seasonal if e in supporters), key=lambda e: -adjusted[e])
        ranked = sorted(supporters, key=lambda e: -adjusted[e])
        useful = candidates[0] if candidates else ranked[0]
        favorable = [e for e in supporters if e != useful]
        unfavorable = [sorted(drainers, key=lambda e: -adjusted[e])[0]]

    return (useful,), tuple(favorable), tuple(unfavorable)


def determine_pattern(day_master_element: Element, tallies: dict, strength: StrengthClass,
                      useful: Element) -> str:
    """
    Chart pattern label: 正格, 从格, 假从格, 化格为X格 or 普通格.

    Args:
        tallies: Element -> ElementTally
    """
    dm = tallies[day_master_element]
    if dm.state is StrengthState.PEAK and dm.percentage > 60:
        return "正格"
    if strength is StrengthClass.WEAK:
        if tallies[useful].state is StrengthState.PEAK and tallies[useful].percentage > 50:
            return "从格"
        if tallies[useful].percentage > 30:
            return "假从格"

    strongest = None
    for element in ELEMENT_ORDER:
        if element == day_master_element:
            continue
        pct = tallies[element].percentage
        if pct > 40 and (strongest is None or pct > tallies[strongest].percentage):
            strongest = element
    if strongest is not None:
        return f"化格为{strongest.chinese}格"
    return "普通格"


def analyze_birth(pillars: PillarSet) -> BirthAnalysis:
    """
    Score a birth chart into five-element energies and select its elements.

    Args:
        pillars: birth pillars

    Returns:
        BirthAnalysis with per-element tallies, strength class, element
        selection, seasonal adjustment, ten-relation distribution,
        per-pillar detail and pattern label.
    """
    day_master = pillars.day.stem
    dm_element = element_of(day_master)
    voids = void_branches(pillars.day)

    stem_scores = {e: 0.0 for e in ELEMENT_ORDER}
    hidden_scores = {e: 0.0 for e in ELEMENT_ORDER}
    relation_scores = {c: 0.0 for c in RelationCategory}
    details = []

    for position, pillar in pillars.items():
        stem_scores[element_of(pillar.stem)] += STEM_SCORE
        relation_scores[ten_relation(day_master, pillar.stem).category] += STEM_SCORE

        void = pillar.branch in voids
        factor = VOID_FACTOR if void else 1.0
        for hidden, weight in hidden_stems(pillar.branch):
            score = weight * factor
            hidden_scores[element_of(hidden)] += score
            relation_scores[ten_relation(day_master, hidden).category] += score

        details.append(PillarDetail(
            position=position,
            pillar=str(pillar),
            ten_relation="日主" if position == "day" else ten_relation(day_master, pillar.stem).value,
            hidden_stems=tuple(s for s, _ in hidden_stems(pillar.branch)),
            is_void=void,
        ))

    raw = {e: stem_scores[e] + hidden_scores[e] for e in ELEMENT_ORDER}
    month_branch = pillars.month.branch
    states = {e: strength_state(month_branch, e, raw) for e in ELEMENT_ORDER}
    adjusted = {e: max(0.0, raw[e] * states[e].coefficient) for e in ELEMENT_ORDER}
    percentages = _percentages(adjusted)

    tallies = {
        e: ElementTally(e, stem_scores[e], hidden_scores[e], states[e], adjusted[e], percentages[e])
        for e in ELEMENT_ORDER
    }

    total = sum(adjusted.values())
    resource = related_element(dm_element, RelationCategory.RESOURCE)
    ratio = (adjusted[dm_element] + adjusted[resource]) / total if total > 0 else 0.5
    strength = classify_strength(ratio)

    season_stems = seasonal_stems(dm_element, month_branch)
    season_elements = tuple(dict.fromkeys(element_of(s) for s in season_stems))
    useful, favorable, unfavorable = select_elements(dm_element, adjusted, strength, ratio, season_elements)
    pattern = determine_pattern(dm_element, tallies, strength, useful[0])

    logger.debug("Birth %s: ratio %.4f %s, useful %s, pattern %s",
                 " ".join(str(p) for _, p in pillars.items()), ratio, strength.value,
                 useful[0].value, pattern)

    return BirthAnalysis(
        pillars=pillars,
        tallies=tuple(tallies[e] for e in ELEMENT_ORDER),
        strength_ratio=ratio,
        strength_class=strength,
        useful_elements=useful,
        favorable_elements=favorable,
        unfavorable_elements=unfavorable,
        seasonal_stems=season_stems,
        seasonal_elements=season_elements,
        void_branches=voids,
        relation_distribution=_percentages(relation_scores),
        pillar_details=tuple(details),
        pattern=pattern,
    )
