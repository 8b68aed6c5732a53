"""
Sexagenary primitives shared by every other engine module.

Handles:
- The 10 heavenly stems and 12 earthly branches (element, polarity, index)
- Hidden stems per branch with their score weights
- Ten Relations (十神) between the day master and any stem or branch
- The 60-pillar cycle, decade heads (旬首) and void branches (空亡)

Every table here is closed: a symbol that is not a stem or branch raises
InputValidationError, a table that fails to resolve raises InvariantViolation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from qimen.errors import InputValidationError, strict_lookup


# ============================================================
# FUNDAMENTAL DATA STRUCTURES
# ============================================================

class Polarity(Enum):
    YANG = "yang"
    YIN = "yin"


class Element(Enum):
    WOOD = "wood"
    FIRE = "fire"
    EARTH = "earth"
    METAL = "metal"
    WATER = "water"

    @property
    def chinese(self) -> str:
        return ELEMENT_CHINESE[self]


ELEMENT_CHINESE = {
    Element.WOOD: "木",
    Element.FIRE: "火",
    Element.EARTH: "土",
    Element.METAL: "金",
    Element.WATER: "水",
}


@dataclass(frozen=True)
class HeavenlyStem:
    chinese: str
    pinyin: str
    element: Element
    polarity: Polarity
    index: int  # 0-9 in the cycle

    def __str__(self):
        return self.chinese


@dataclass(frozen=True)
class EarthlyBranch:
    chinese: str
    pinyin: str
    animal: str
    element: Element  # primary/season element
    polarity: Polarity
    index: int  # 0-11 in the cycle
    hidden_stems: tuple  # ((stem, weight), ...), main qi first, weights sum to 100

    def __str__(self):
        return self.chinese


# ============================================================
# STEM AND BRANCH DEFINITIONS
# ============================================================

HEAVENLY_STEMS = [
    HeavenlyStem("甲", "Jia", Element.WOOD, Polarity.YANG, 0),
    HeavenlyStem("乙", "Yi", Element.WOOD, Polarity.YIN, 1),
    HeavenlyStem("丙", "Bing", Element.FIRE, Polarity.YANG, 2),
    HeavenlyStem("丁", "Ding", Element.FIRE, Polarity.YIN, 3),
    HeavenlyStem("戊", "Wu", Element.EARTH, Polarity.YANG, 4),
    HeavenlyStem("己", "Ji", Element.EARTH, Polarity.YIN, 5),
    HeavenlyStem("庚", "Geng", Element.METAL, Polarity.YANG, 6),
    HeavenlyStem("辛", "Xin", Element.METAL, Polarity.YIN, 7),
    HeavenlyStem("壬", "Ren", Element.WATER, Polarity.YANG, 8),
    HeavenlyStem("癸", "Gui", Element.WATER, Polarity.YIN, 9),
]

EARTHLY_BRANCHES = [
    EarthlyBranch("子", "Zi", "Rat", Element.WATER, Polarity.YANG, 0,
                  (("癸", 100),)),
    EarthlyBranch("丑", "Chou", "Ox", Element.EARTH, Polarity.YIN, 1,
                  (("己", 60), ("癸", 30), ("辛", 10))),
    EarthlyBranch("寅", "Yin", "Tiger", Element.WOOD, Polarity.YANG, 2,
                  (("甲", 60), ("丙", 30), ("戊", 10))),
    EarthlyBranch("卯", "Mao", "Rabbit", Element.WOOD, Polarity.YIN, 3,
                  (("乙", 100),)),
    EarthlyBranch("辰", "Chen", "Dragon", Element.EARTH, Polarity.YANG, 4,
                  (("戊", 60), ("乙", 30), ("癸", 10))),
    EarthlyBranch("巳", "Si", "Snake", Element.FIRE, Polarity.YIN, 5,
                  (("丙", 60), ("戊", 30), ("庚", 10))),
    EarthlyBranch("午", "Wu", "Horse", Element.FIRE, Polarity.YANG, 6,
                  (("丁", 70), ("己", 30))),
    EarthlyBranch("未", "Wei", "Goat", Element.EARTH, Polarity.YIN, 7,
                  (("己", 60), ("丁", 30), ("乙", 10))),
    EarthlyBranch("申", "Shen", "Monkey", Element.METAL, Polarity.YANG, 8,
                  (("庚", 60), ("壬", 30), ("戊", 10))),
    EarthlyBranch("酉", "You", "Rooster", Element.METAL, Polarity.YIN, 9,
                  (("辛", 100),)),
    EarthlyBranch("戌", "Xu", "Dog", Element.EARTH, Polarity.YANG, 10,
                  (("戊", 60), ("辛", 30), ("丁", 10))),
    EarthlyBranch("亥", "Hai", "Pig", Element.WATER, Polarity.YIN, 11,
                  (("壬", 70), ("甲", 30))),
]

# Lookup helpers
STEM_BY_CHINESE = {s.chinese: s for s in HEAVENLY_STEMS}
BRANCH_BY_CHINESE = {b.chinese: b for b in EARTHLY_BRANCHES}

Symbol = Union[str, HeavenlyStem, EarthlyBranch]


def stem(symbol: Union[str, HeavenlyStem]) -> HeavenlyStem:
    """Resolve a stem from its character (or pass a HeavenlyStem through)."""
    if isinstance(symbol, HeavenlyStem):
        return symbol
    try:
        return STEM_BY_CHINESE[symbol]
    except (KeyError, TypeError):
        raise InputValidationError(f"not a heavenly stem: {symbol!r}") from None


def branch(symbol: Union[str, EarthlyBranch]) -> EarthlyBranch:
    """Resolve a branch from its character (or pass an EarthlyBranch through)."""
    if isinstance(symbol, EarthlyBranch):
        return symbol
    try:
        return BRANCH_BY_CHINESE[symbol]
    except (KeyError, TypeError):
        raise InputValidationError(f"not an earthly branch: {symbol!r}") from None


def _resolve(symbol: Symbol):
    if isinstance(symbol, (HeavenlyStem, EarthlyBranch)):
        return symbol
    if symbol in STEM_BY_CHINESE:
        return STEM_BY_CHINESE[symbol]
    if symbol in BRANCH_BY_CHINESE:
        return BRANCH_BY_CHINESE[symbol]
    raise InputValidationError(f"not a stem or branch: {symbol!r}")


def element_of(symbol: Symbol) -> Element:
    return _resolve(symbol).element


def polarity_of(symbol: Symbol) -> Polarity:
    return _resolve(symbol).polarity


def hidden_stems(symbol: Union[str, EarthlyBranch]) -> tuple:
    """Ordered (stem, weight) pairs for a branch; weights sum to 100."""
    return branch(symbol).hidden_stems


def clashing_branch(symbol: Union[str, EarthlyBranch]) -> str:
    """The branch six positions away (六冲)."""
    return EARTHLY_BRANCHES[(branch(symbol).index + 6) % 12].chinese


# ============================================================
# FIVE ELEMENT CYCLES
# ============================================================

# Production cycle: Wood → Fire → Earth → Metal → Water → Wood
PRODUCTION_CYCLE = {
    Element.WOOD: Element.FIRE,
    Element.FIRE: Element.EARTH,
    Element.EARTH: Element.METAL,
    Element.METAL: Element.WATER,
    Element.WATER: Element.WOOD,
}

# Control cycle: Wood → Earth → Water → Fire → Metal → Wood
CONTROL_CYCLE = {
    Element.WOOD: Element.EARTH,
    Element.EARTH: Element.WATER,
    Element.WATER: Element.FIRE,
    Element.FIRE: Element.METAL,
    Element.METAL: Element.WOOD,
}

PRODUCED_BY = {v: k for k, v in PRODUCTION_CYCLE.items()}
CONTROLLED_BY = {v: k for k, v in CONTROL_CYCLE.items()}


class RelationCategory(Enum):
    """The five relation groups seen from the day master."""
    PEER = "比劫"
    RESOURCE = "印绶"
    OUTPUT = "食伤"
    WEALTH = "财才"
    AUTHORITY = "官杀"


def element_relationship(day_master_element: Element, other_element: Element) -> RelationCategory:
    """Determine the elemental relationship from the day master's perspective."""
    if day_master_element == other_element:
        return RelationCategory.PEER
    elif PRODUCTION_CYCLE[other_element] == day_master_element:
        return RelationCategory.RESOURCE
    elif PRODUCTION_CYCLE[day_master_element] == other_element:
        return RelationCategory.OUTPUT
    elif CONTROL_CYCLE[day_master_element] == other_element:
        return RelationCategory.WEALTH
    elif CONTROL_CYCLE[other_element] == day_master_element:
        return RelationCategory.AUTHORITY
    else:
        raise ValueError(f"No valid relationship between {day_master_element} and {other_element}")


def related_element(day_master_element: Element, category: RelationCategory) -> Element:
    """Inverse of element_relationship: the element standing in `category`."""
    table = {
        RelationCategory.PEER: day_master_element,
        RelationCategory.RESOURCE: PRODUCED_BY[day_master_element],
        RelationCategory.OUTPUT: PRODUCTION_CYCLE[day_master_element],
        RelationCategory.WEALTH: CONTROL_CYCLE[day_master_element],
        RelationCategory.AUTHORITY: CONTROLLED_BY[day_master_element],
    }
    return table[category]


# ============================================================
# TEN RELATIONS (十神)
# ============================================================

class TenRelation(Enum):
    PEER_SAME = "比肩"
    PEER_DIFF = "劫财"
    RESOURCE_SAME = "偏印"
    RESOURCE_DIFF = "正印"
    OUTPUT_SAME = "食神"
    OUTPUT_DIFF = "伤官"
    WEALTH_SAME = "偏财"
    WEALTH_DIFF = "正财"
    AUTHORITY_SAME = "七杀"
    AUTHORITY_DIFF = "正官"

    @property
    def category(self) -> RelationCategory:
        return RelationCategory[self.name.rsplit("_", 1)[0]]


TEN_RELATIONS = {
    # (category, same_polarity): relation
    (RelationCategory.PEER, True): TenRelation.PEER_SAME,
    (RelationCategory.PEER, False): TenRelation.PEER_DIFF,
    (RelationCategory.RESOURCE, True): TenRelation.RESOURCE_SAME,
    (RelationCategory.RESOURCE, False): TenRelation.RESOURCE_DIFF,
    (RelationCategory.OUTPUT, True): TenRelation.OUTPUT_SAME,
    (RelationCategory.OUTPUT, False): TenRelation.OUTPUT_DIFF,
    (RelationCategory.WEALTH, True): TenRelation.WEALTH_SAME,
    (RelationCategory.WEALTH, False): TenRelation.WEALTH_DIFF,
    (RelationCategory.AUTHORITY, True): TenRelation.AUTHORITY_SAME,
    (RelationCategory.AUTHORITY, False): TenRelation.AUTHORITY_DIFF,
}


def ten_relation(day_stem: Union[str, HeavenlyStem], target: Symbol) -> TenRelation:
    """
    Ten Relation of `target` (a stem or a branch) to the day master.

    Branches use their primary element and their own polarity
    (子寅辰午申戌 are yang).
    """
    day_master = stem(day_stem)
    other = _resolve(target)
    category = element_relationship(day_master.element, other.element)
    same_polarity = day_master.polarity == other.polarity
    return strict_lookup(TEN_RELATIONS, (category, same_polarity), "ten relation")


# ============================================================
# THE SIXTY CYCLE
# ============================================================

@dataclass(frozen=True)
class StemBranch:
    """One pillar: a stem and a branch of matching polarity."""
    stem: str
    branch: str

    def __post_init__(self):
        s = stem(self.stem)
        b = branch(self.branch)
        if s.index % 2 != b.index % 2:
            raise InputValidationError(f"{self.stem}{self.branch} is not a sexagenary pair")

    @property
    def stem_info(self) -> HeavenlyStem:
        return STEM_BY_CHINESE[self.stem]

    @property
    def branch_info(self) -> EarthlyBranch:
        return BRANCH_BY_CHINESE[self.branch]

    @property
    def index(self) -> int:
        """Position 0-59 in the cycle (甲子 = 0)."""
        return (6 * self.stem_info.index - 5 * self.branch_info.index) % 60

    @classmethod
    def from_index(cls, index: int) -> "StemBranch":
        index %= 60
        return cls(HEAVENLY_STEMS[index % 10].chinese, EARTHLY_BRANCHES[index % 12].chinese)

    @classmethod
    def parse(cls, text: str) -> "StemBranch":
        if not isinstance(text, str) or len(text) != 2:
            raise InputValidationError(f"pillar must be two characters: {text!r}")
        return cls(text[0], text[1])

    def shift(self, steps: int) -> "StemBranch":
        return StemBranch.from_index(self.index + steps)

    def __str__(self):
        return self.stem + self.branch

    def to_dict(self):
        return {
            "stem": self.stem,
            "branch": self.branch,
            "combined": str(self),
            "stem_element": self.stem_info.element.value,
            "branch_element": self.branch_info.element.value,
            "animal": self.branch_info.animal,
        }


SEXAGENARY_CYCLE = [StemBranch.from_index(i) for i in range(60)]


@dataclass(frozen=True)
class PillarSet:
    """Year, month, day and hour pillars, always produced together."""
    year: StemBranch
    month: StemBranch
    day: StemBranch
    hour: StemBranch
    exact: bool = True  # False when an approximate solar term was used

    @property
    def day_master(self) -> HeavenlyStem:
        return self.day.stem_info

    def items(self):
        return [("year", self.year), ("month", self.month),
                ("day", self.day), ("hour", self.hour)]

    def to_dict(self):
        result = {position: str(pillar) for position, pillar in self.items()}
        result["exact"] = self.exact
        return result


def decade_head(pillar: StemBranch) -> StemBranch:
    """The 甲 pillar that opens the ten-day decade containing `pillar`."""
    return StemBranch.from_index(pillar.index - pillar.stem_info.index)


# Void branches of each decade, keyed by its head
XUN_VOIDS = {
    "甲子": ("戌", "亥"),
    "甲戌": ("申", "酉"),
    "甲申": ("午", "未"),
    "甲午": ("辰", "巳"),
    "甲辰": ("寅", "卯"),
    "甲寅": ("子", "丑"),
}

# Closed 60-entry table: day pillar -> void branches
VOID_BRANCHES = {
    str(sb): XUN_VOIDS[str(decade_head(sb))] for sb in SEXAGENARY_CYCLE
}


def void_branches(day: StemBranch) -> tuple:
    return strict_lookup(VOID_BRANCHES, str(day), "day pillar")


def is_void(branch_symbol: Union[str, EarthlyBranch], day: StemBranch) -> bool:
    return branch(branch_symbol).chinese in void_branches(day)
