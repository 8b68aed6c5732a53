"""Nine-palace board construction."""

from datetime import datetime, timedelta, timezone

import pytest

from qimen.board import (
    BACKWARD,
    CENTER_MARKER,
    EARTH_LAYER,
    GATE_RING,
    LUOSHU_ORDER,
    MARKER_RING,
    STEM_ORDER,
    build_board,
    earth_layer,
    resolve_board,
    rotate_ring,
    stem_palace,
    walk,
)
from qimen.config import EngineConfig
from qimen.errors import InvariantViolation
from qimen.sexagenary import Polarity

CST = timezone(timedelta(hours=8))

SPRING = {
    "ts": "2024-02-10 12:00",
    "decade_head": "甲辰",
    "hiding_stem": "壬",
    "anchor_palace": 9,
    "hour_palace": 7,
    "value_marker": "天英",
    "value_gate": "景门",
    "gate_steps": 2,
    "markers": {7: "天英", 6: "天芮", 1: "天柱", 8: "天心", 3: "天蓬", 4: "天任", 9: "天冲", 2: "天辅"},
    "heaven": {7: "壬", 6: "丁戊", 1: "庚", 8: "己", 3: "癸", 4: "辛", 9: "丙", 2: "乙"},
    "gates": {7: "景门", 6: "死门", 1: "惊门", 8: "开门", 3: "休门", 4: "生门", 9: "伤门", 2: "杜门"},
    "guardians": {7: "值符", 6: "螣蛇", 1: "太阴", 8: "六合", 3: "白虎", 4: "玄武", 9: "九地", 2: "九天"},
    "merged_at": 6,
}

SUMMER = {
    "ts": "2024-07-10 12:00",
    "decade_head": "甲戌",
    "hiding_stem": "己",
    "anchor_palace": 7,
    "hour_palace": 4,
    "value_marker": "天柱",
    "value_gate": "惊门",
    "gate_steps": 8,
    "markers": {4: "天柱", 9: "天心", 2: "天蓬", 7: "天任", 6: "天冲", 1: "天辅", 8: "天英", 3: "天芮"},
    "heaven": {4: "己", 9: "庚", 2: "丙", 7: "戊", 6: "癸", 1: "壬", 8: "乙", 3: "丁辛"},
    "gates": {1: "休门", 8: "生门", 3: "伤门", 4: "杜门", 9: "景门", 2: "死门", 7: "惊门", 6: "开门"},
    "guardians": {4: "值符", 9: "九天", 2: "九地", 7: "玄武", 6: "白虎", 1: "六合", 8: "太阴", 3: "螣蛇"},
    "merged_at": 3,
}

BOARDS = [SPRING, SUMMER]


class TestEarthLayer:
    def test_all_configurations_present(self):
        assert len(EARTH_LAYER) == 18

    @pytest.mark.parametrize("key", sorted(EARTH_LAYER, key=lambda k: (k[0].value, k[1])))
    def test_each_layer_is_a_permutation(self, key):
        layer = earth_layer(*key)
        assert sorted(layer.values()) == sorted(STEM_ORDER)
        assert "甲" not in layer.values()

    def test_configuration_palace_holds_wu(self):
        for (polarity, configuration) in EARTH_LAYER:
            assert earth_layer(polarity, configuration)[configuration] == "戊"

    def test_unknown_configuration(self):
        with pytest.raises(InvariantViolation):
            earth_layer(Polarity.YANG, 10)


class TestRotation:
    def test_walk(self):
        assert walk(1, 1) == 8
        assert walk(1, 1, BACKWARD) == 6
        assert walk(9, 2) == 7
        assert walk(7, 8, BACKWARD) == 7

    def test_walk_rejects_center(self):
        with pytest.raises(InvariantViolation):
            walk(5, 1)

    def test_identity_rotation(self):
        assert rotate_ring(MARKER_RING, 0, 1) == dict(zip(LUOSHU_ORDER, MARKER_RING))

    def test_rotation_is_a_permutation(self):
        for target in LUOSHU_ORDER:
            for direction in (1, -1):
                placed = rotate_ring(GATE_RING, 3, target, direction)
                assert sorted(placed) == sorted(LUOSHU_ORDER)
                assert sorted(placed.values()) == sorted(GATE_RING)
                assert placed[target] == GATE_RING[3]

    def test_stem_palace_redirects_center(self):
        earth = earth_layer(Polarity.YANG, 5)
        assert stem_palace(earth, "戊", 2) == 2
        assert stem_palace(earth, "戊", 8) == 8
        assert stem_palace(earth, "壬", 2) == 9

    def test_stem_palace_missing_stem(self):
        with pytest.raises(InvariantViolation):
            stem_palace(earth_layer(Polarity.YANG, 5), "甲", 2)


class TestBoard:
    @pytest.mark.parametrize("case", BOARDS, ids=[c["ts"] for c in BOARDS])
    def test_header(self, case, term_table):
        board = resolve_board(case["ts"], term_table)
        assert str(board.decade_head) == case["decade_head"]
        assert board.hiding_stem == case["hiding_stem"]
        assert board.anchor_palace == case["anchor_palace"]
        assert board.hour_palace == case["hour_palace"]
        assert board.value_marker == case["value_marker"]
        assert board.value_gate == case["value_gate"]
        assert board.gate_steps == case["gate_steps"]
        assert board.exact

    @pytest.mark.parametrize("case", BOARDS, ids=[c["ts"] for c in BOARDS])
    def test_overlays(self, case, term_table):
        board = resolve_board(case["ts"], term_table)
        for palace in LUOSHU_ORDER:
            content = board.palace(palace)
            assert content.marker == case["markers"][palace]
            assert "".join(content.heaven_stems) == case["heaven"][palace]
            assert content.gate == case["gates"][palace]
            assert content.guardian == case["guardians"][palace]

    @pytest.mark.parametrize("case", BOARDS, ids=[c["ts"] for c in BOARDS])
    def test_center_marker_merged_once(self, case, term_table):
        board = resolve_board(case["ts"], term_table)
        merged = [p.palace for p in board.palaces if p.merged_marker]
        assert merged == [case["merged_at"]]
        assert board.palace(case["merged_at"]).merged_marker == CENTER_MARKER

    def test_center_palace_is_empty(self, term_table):
        center = resolve_board("2024-02-10 12:00", term_table).palace(5)
        assert center.marker is None
        assert center.gate is None
        assert center.earth_stems == ()

    def test_attachment_palace_carries_center_stem(self, term_table):
        board = resolve_board("2024-02-10 12:00", term_table)
        assert board.palace(2).earth_stems == ("丁", "戊")

    def test_other_attachment_palace(self, term_table):
        board = resolve_board("2024-02-10 12:00", term_table, EngineConfig(attachment_palace=8))
        assert board.palace(8).earth_stems == ("辛", "戊")
        assert board.palace(4).marker == "天任"
        assert board.palace(4).merged_marker == CENTER_MARKER
        assert board.palace(4).heaven_stems == ("辛", "戊")

    def test_jia_hour_uses_hour_decade(self, term_table):
        board = resolve_board("2024-02-10 00:30", term_table)
        assert str(board.pillars.hour) == "甲子"
        assert board.hour_palace == 2

    def test_jia_hour_uses_decade_head(self, term_table):
        config = EngineConfig(hidden_hour_stem_rule="decade_head")
        board = resolve_board("2024-02-10 00:30", term_table, config)
        assert board.hour_palace == 9

    def test_decade_head_from_hour(self, term_table):
        board = resolve_board("2024-02-10 12:00", term_table, EngineConfig(decade_head_source="hour"))
        assert str(board.decade_head) == "甲子"
        assert board.anchor_palace == 2
        assert board.value_marker == "天芮"
        assert board.value_gate == "死门"

    def test_overlays_always_permutations(self, term_table):
        start = datetime(2024, 1, 1, 0, 30, tzinfo=CST)
        for step in range(0, 24 * 40, 7):
            board = resolve_board(start + timedelta(hours=step * 11), term_table)
            outer = [board.palace(p) for p in LUOSHU_ORDER]
            assert len({c.marker for c in outer}) == 8
            assert len({c.gate for c in outer}) == 8
            assert len({c.guardian for c in outer}) == 8
            assert sum(1 for c in outer if c.merged_marker) == 1

    def test_build_board_from_parts(self, term_table):
        spring = resolve_board("2024-02-10 12:00", term_table)
        rebuilt = build_board(spring.pillars, spring.dun_ju)
        assert rebuilt == spring

    def test_to_dict(self, term_table):
        d = resolve_board("2024-02-10 12:00", term_table).to_dict()
        assert d["dun_ju"]["label"] == "阳遁五局"
        assert len(d["palaces"]) == 9
        assert d["palaces"][1]["earth"] == "丁戊"
        assert d["palaces"][5]["merged_marker"] == CENTER_MARKER
