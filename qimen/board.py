"""
Qi Men nine-palace board engine.

Handles:
- Earth layer: fixed stem placement per (polarity, configuration)
- Decade head (旬首) and its hiding stem
- Nine markers (九星) rotated onto the hour palace
- Eight gates (八门) advanced by the branch steps of the hour
- Eight guardians (八神) walked from the hour palace
- Heaven layer: stems flying with their markers

Palaces never move; only their content rotates. Every rotation is the
same walk around the Luoshu visiting order, so one primitive (rotate_ring)
serves markers, gates and guardians alike. Any table that fails to
resolve raises InvariantViolation; placeholders are never substituted.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from qimen.config import DEFAULT_CONFIG, EngineConfig
from qimen.dunju import DunJu, resolve_dun_ju
from qimen.errors import InvariantViolation, strict_lookup
from qimen.pillars import resolve_pillars
from qimen.sexagenary import PillarSet, Polarity, StemBranch, decade_head

logger = logging.getLogger(__name__)


# ============================================================
# PALACES AND VISITING ORDER
# ============================================================

PALACE_NAMES = {
    1: "坎一宫",
    2: "坤二宫",
    3: "震三宫",
    4: "巽四宫",
    5: "中五宫",
    6: "乾六宫",
    7: "兑七宫",
    8: "艮八宫",
    9: "离九宫",
}
CENTER_PALACE = 5

# Clockwise Luoshu walk over the outer palaces, starting at 坎
LUOSHU_ORDER = (1, 8, 3, 4, 9, 2, 7, 6)
ORDER_POSITION = {palace: pos for pos, palace in enumerate(LUOSHU_ORDER)}

FORWARD = 1
BACKWARD = -1

# The nine stems that cycle through the earth layer (甲 always hides)
STEM_ORDER = "戊己庚辛壬癸丁丙乙"


def direction_for(polarity: Polarity) -> int:
    return FORWARD if polarity is Polarity.YANG else BACKWARD


# ============================================================
# EARTH LAYER (地盘)
# ============================================================
#
# (polarity, configuration) -> stems of palaces 1..9. Yang boards lay
# 戊己庚辛壬癸丁丙乙 ascending from the configuration palace, yin boards
# descending.

EARTH_LAYER = {
    (Polarity.YANG, 1): "戊己庚辛壬癸丁丙乙",
    (Polarity.YANG, 2): "乙戊己庚辛壬癸丁丙",
    (Polarity.YANG, 3): "丙乙戊己庚辛壬癸丁",
    (Polarity.YANG, 4): "丁丙乙戊己庚辛壬癸",
    (Polarity.YANG, 5): "癸丁丙乙戊己庚辛壬",
    (Polarity.YANG, 6): "壬癸丁丙乙戊己庚辛",
    (Polarity.YANG, 7): "辛壬癸丁丙乙戊己庚",
    (Polarity.YANG, 8): "庚辛壬癸丁丙乙戊己",
    (Polarity.YANG, 9): "己庚辛壬癸丁丙乙戊",
    (Polarity.YIN, 1): "戊乙丙丁癸壬辛庚己",
    (Polarity.YIN, 2): "己戊乙丙丁癸壬辛庚",
    (Polarity.YIN, 3): "庚己戊乙丙丁癸壬辛",
    (Polarity.YIN, 4): "辛庚己戊乙丙丁癸壬",
    (Polarity.YIN, 5): "壬辛庚己戊乙丙丁癸",
    (Polarity.YIN, 6): "癸壬辛庚己戊乙丙丁",
    (Polarity.YIN, 7): "丁癸壬辛庚己戊乙丙",
    (Polarity.YIN, 8): "丙丁癸壬辛庚己戊乙",
    (Polarity.YIN, 9): "乙丙丁癸壬辛庚己戊",
}


def earth_layer(polarity: Polarity, configuration: int) -> dict:
    """Palace -> earth stem for all nine palaces, center included."""
    stems = strict_lookup(EARTH_LAYER, (polarity, configuration), "dun-ju configuration")
    return {palace: stems[palace - 1] for palace in range(1, 10)}


# ============================================================
# MARKERS, GATES, GUARDIANS
# ============================================================

# Markers in visiting order, i.e. each sits on its origin palace
MARKER_RING = ("天蓬", "天任", "天冲", "天辅", "天英", "天芮", "天柱", "天心")
CENTER_MARKER = "天禽"
MARKER_ORIGIN = {
    "天蓬": 1,
    "天芮": 2,
    "天冲": 3,
    "天辅": 4,
    "天禽": 5,
    "天心": 6,
    "天柱": 7,
    "天任": 8,
    "天英": 9,
}
MARKER_AT_ORIGIN = {palace: marker for marker, palace in MARKER_ORIGIN.items()}

GATE_RING = ("休门", "生门", "伤门", "杜门", "景门", "死门", "惊门", "开门")
PALACE_GATE = {
    1: "休门",
    2: "死门",
    3: "伤门",
    4: "杜门",
    6: "开门",
    7: "惊门",
    8: "生门",
    9: "景门",
}

GUARDIANS = {
    Polarity.YANG: ("值符", "螣蛇", "太阴", "六合", "白虎", "玄武", "九地", "九天"),
    Polarity.YIN: ("值符", "九天", "九地", "玄武", "白虎", "六合", "太阴", "螣蛇"),
}

# Decade head branch -> the stem 甲 hides under (六仪)
HIDING_STEMS = {
    "子": "戊",
    "戌": "己",
    "申": "庚",
    "午": "辛",
    "辰": "壬",
    "寅": "癸",
}


# ============================================================
# ROTATION PRIMITIVES
# ============================================================

def order_position(palace: int) -> int:
    return strict_lookup(ORDER_POSITION, palace, "outer palace")


def walk(palace: int, steps: int, direction: int = FORWARD) -> int:
    """Palace reached after `steps` moves around the visiting order."""
    return LUOSHU_ORDER[(order_position(palace) + direction * steps) % 8]


def rotate_ring(ring: tuple, source: int, target_palace: int, direction: int = FORWARD) -> dict:
    """
    Lay an 8-item ring onto the outer palaces.

    The item at ring position `source` lands on `target_palace`; every
    following item lands one step further in `direction`.

    Returns:
        palace -> ring item for the 8 outer palaces
    """
    if len(ring) != 8:
        raise InvariantViolation(f"ring must hold 8 items, got {len(ring)}")
    start = order_position(target_palace)
    return {
        LUOSHU_ORDER[(start + direction * k) % 8]: ring[(source + direction * k) % 8]
        for k in range(8)
    }


def stem_palace(earth: dict, stem: str, attachment_palace: int) -> int:
    """Outer palace holding `stem` on the earth layer (center redirects)."""
    for palace, earth_stem in earth.items():
        if earth_stem == stem:
            return attachment_palace if palace == CENTER_PALACE else palace
    raise InvariantViolation(f"stem {stem} not on the earth layer")


def hiding_stem(head: StemBranch) -> str:
    return strict_lookup(HIDING_STEMS, head.branch, "decade head")


# ============================================================
# BOARD
# ============================================================

@dataclass(frozen=True)
class PalaceContent:
    palace: int
    name: str
    earth_stems: tuple
    heaven_stems: tuple
    marker: Optional[str]
    merged_marker: Optional[str]
    gate: Optional[str]
    guardian: Optional[str]

    def to_dict(self):
        return {
            "id": self.palace,
            "name": self.name,
            "earth": "".join(self.earth_stems),
            "heaven": "".join(self.heaven_stems),
            "marker": self.marker,
            "merged_marker": self.merged_marker,
            "gate": self.gate,
            "guardian": self.guardian,
        }


@dataclass(frozen=True)
class Board:
    dun_ju: DunJu
    pillars: PillarSet
    decade_head: StemBranch
    hiding_stem: str
    anchor_palace: int
    hour_palace: int
    value_marker: str
    value_gate: str
    gate_steps: int
    attachment_palace: int
    palaces: tuple  # PalaceContent for palaces 1..9

    @property
    def exact(self) -> bool:
        return self.dun_ju.exact and self.pillars.exact

    def palace(self, palace: int) -> PalaceContent:
        return self.palaces[palace - 1]

    def to_dict(self):
        return {
            "dun_ju": self.dun_ju.to_dict(),
            "pillars": self.pillars.to_dict(),
            "decade_head": str(self.decade_head),
            "hiding_stem": self.hiding_stem,
            "value_marker": self.value_marker,
            "value_gate": self.value_gate,
            "anchor_palace": self.anchor_palace,
            "hour_palace": self.hour_palace,
            "attachment_palace": self.attachment_palace,
            "palaces": [p.to_dict() for p in self.palaces],
            "exact": self.exact,
        }


def _hour_stem_for_lookup(pillars: PillarSet, board_hiding_stem: str, config: EngineConfig) -> str:
    """The hour stem as found on the earth layer; a 甲 hour uses its hiding stem."""
    if pillars.hour.stem != "甲":
        return pillars.hour.stem
    if config.hidden_hour_stem_rule == "decade_head":
        return board_hiding_stem
    return hiding_stem(decade_head(pillars.hour))


def build_board(pillars: PillarSet, dun_ju: DunJu, config: EngineConfig = DEFAULT_CONFIG) -> Board:
    """
    Populate the nine palaces for an event's pillars and Dun-Ju.

    Args:
        pillars: event pillars
        dun_ju: resolved Dun-Ju for the same instant
        config: engine configuration (attachment palace, decade head
            source, hidden hour stem rule)
    """
    attachment = config.attachment_palace
    direction = direction_for(dun_ju.polarity)
    earth = earth_layer(dun_ju.polarity, dun_ju.configuration)

    source_pillar = pillars.day if config.decade_head_source == "day" else pillars.hour
    head = decade_head(source_pillar)
    head_stem = hiding_stem(head)

    anchor_palace = stem_palace(earth, head_stem, attachment)
    value_marker = strict_lookup(MARKER_AT_ORIGIN, anchor_palace, "marker origin")
    value_gate = strict_lookup(PALACE_GATE, anchor_palace, "palace gate")

    hour_stem = _hour_stem_for_lookup(pillars, head_stem, config)
    hour_palace = stem_palace(earth, hour_stem, attachment)

    # Markers: the value marker moves onto the hour palace
    markers = rotate_ring(MARKER_RING, MARKER_RING.index(value_marker), hour_palace, direction)
    merge_partner = strict_lookup(MARKER_AT_ORIGIN, attachment, "marker origin")

    # Gates: the value gate moves by the hour's branch steps from the anchor
    gate_steps = (pillars.hour.branch_info.index - head.branch_info.index) % 12
    gate_palace = walk(anchor_palace, gate_steps, direction)
    gates = rotate_ring(GATE_RING, GATE_RING.index(value_gate), gate_palace, direction)

    # Guardians: 值符 sits with the value marker
    guardians = rotate_ring(strict_lookup(GUARDIANS, dun_ju.polarity, "polarity"), 0, hour_palace, FORWARD)

    earth_stems = {p: (earth[p],) for p in LUOSHU_ORDER}
    earth_stems[attachment] = (earth[attachment], earth[CENTER_PALACE])

    contents = []
    for palace in range(1, 10):
        if palace == CENTER_PALACE:
            contents.append(PalaceContent(palace, PALACE_NAMES[palace], (), (), None, None, None, None))
            continue
        marker = markers[palace]
        origin = strict_lookup(MARKER_ORIGIN, marker, "marker")
        contents.append(PalaceContent(
            palace=palace,
            name=PALACE_NAMES[palace],
            earth_stems=earth_stems[palace],
            heaven_stems=earth_stems[origin],
            marker=marker,
            merged_marker=CENTER_MARKER if marker == merge_partner else None,
            gate=gates[palace],
            guardian=guardians[palace],
        ))

    _check_overlays(contents)
    logger.debug("Board %s: head %s (%s) anchor %d, hour palace %d, %s/%s, gate steps %d",
                 dun_ju.label, head, head_stem, anchor_palace, hour_palace,
                 value_marker, value_gate, gate_steps)

    return Board(
        dun_ju=dun_ju,
        pillars=pillars,
        decade_head=head,
        hiding_stem=head_stem,
        anchor_palace=anchor_palace,
        hour_palace=hour_palace,
        value_marker=value_marker,
        value_gate=value_gate,
        gate_steps=gate_steps,
        attachment_palace=attachment,
        palaces=tuple(contents),
    )


def _check_overlays(contents: list):
    outer = [c for c in contents if c.palace != CENTER_PALACE]
    for overlay in ("marker", "gate", "guardian"):
        symbols = [getattr(c, overlay) for c in outer]
        if len(set(symbols)) != 8 or None in symbols:
            raise InvariantViolation(f"{overlay} overlay is not a permutation: {symbols}")
    merged = [c for c in outer if c.merged_marker]
    if len(merged) != 1:
        raise InvariantViolation(f"center marker placed {len(merged)} times")


def resolve_board(ts, table, config: EngineConfig = DEFAULT_CONFIG) -> Board:
    """Resolve pillars and Dun-Ju for a timestamp and build its board."""
    ts = config.civil.localize(ts)
    pillars = resolve_pillars(ts, table, config)
    dun_ju = resolve_dun_ju(ts, table, config)
    return build_board(pillars, dun_ju, config)
