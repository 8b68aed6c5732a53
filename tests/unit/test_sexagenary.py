"""Stems, branches, ten relations and the sixty cycle."""

import pytest

from qimen.errors import InputValidationError
from qimen.sexagenary import (
    EARTHLY_BRANCHES,
    HEAVENLY_STEMS,
    SEXAGENARY_CYCLE,
    Element,
    Polarity,
    RelationCategory,
    StemBranch,
    TenRelation,
    clashing_branch,
    decade_head,
    element_of,
    hidden_stems,
    is_void,
    polarity_of,
    ten_relation,
    void_branches,
)

RELATION_CASES = [
    ("甲", "甲", TenRelation.PEER_SAME),
    ("甲", "乙", TenRelation.PEER_DIFF),
    ("甲", "壬", TenRelation.RESOURCE_SAME),
    ("甲", "癸", TenRelation.RESOURCE_DIFF),
    ("甲", "丙", TenRelation.OUTPUT_SAME),
    ("甲", "丁", TenRelation.OUTPUT_DIFF),
    ("甲", "戊", TenRelation.WEALTH_SAME),
    ("甲", "己", TenRelation.WEALTH_DIFF),
    ("甲", "庚", TenRelation.AUTHORITY_SAME),
    ("甲", "辛", TenRelation.AUTHORITY_DIFF),
    ("甲", "子", TenRelation.RESOURCE_SAME),
    ("甲", "亥", TenRelation.RESOURCE_DIFF),
    ("癸", "戊", TenRelation.AUTHORITY_DIFF),
]


class TestSymbols:
    def test_element_and_polarity(self):
        assert element_of("子") is Element.WATER
        assert element_of("庚") is Element.METAL
        assert polarity_of("乙") is Polarity.YIN
        assert polarity_of("寅") is Polarity.YANG

    def test_unknown_symbol_raises(self):
        with pytest.raises(InputValidationError):
            element_of("X")

    def test_element_chinese(self):
        assert Element.METAL.chinese == "金"

    @pytest.mark.parametrize("branch", EARTHLY_BRANCHES, ids=[b.chinese for b in EARTHLY_BRANCHES])
    def test_hidden_stem_weights_sum_to_100(self, branch):
        stems = hidden_stems(branch.chinese)
        assert sum(weight for _, weight in stems) == 100
        assert stems[0][0] in {s.chinese for s in HEAVENLY_STEMS}

    def test_clash(self):
        assert clashing_branch("辰") == "戌"
        assert clashing_branch("子") == "午"


class TestTenRelation:
    @pytest.mark.parametrize("day,target,expected", RELATION_CASES)
    def test_known_relations(self, day, target, expected):
        assert ten_relation(day, target) is expected

    def test_total_over_stems_and_branches(self):
        targets = [s.chinese for s in HEAVENLY_STEMS] + [b.chinese for b in EARTHLY_BRANCHES]
        for day in HEAVENLY_STEMS:
            for target in targets:
                assert isinstance(ten_relation(day.chinese, target), TenRelation)

    def test_category(self):
        assert TenRelation.AUTHORITY_SAME.category is RelationCategory.AUTHORITY
        assert TenRelation.PEER_DIFF.category is RelationCategory.PEER


class TestStemBranch:
    def test_index(self):
        assert StemBranch("甲", "子").index == 0
        assert StemBranch("戊", "午").index == 54
        assert StemBranch("癸", "亥").index == 59

    def test_from_index_wraps(self):
        assert StemBranch.from_index(54) == StemBranch("戊", "午")
        assert StemBranch.from_index(60) == StemBranch("甲", "子")
        assert StemBranch.from_index(-1) == StemBranch("癸", "亥")

    def test_cycle_is_complete(self):
        assert len(set(SEXAGENARY_CYCLE)) == 60
        assert [p.index for p in SEXAGENARY_CYCLE] == list(range(60))

    def test_parity_mismatch_rejected(self):
        with pytest.raises(InputValidationError):
            StemBranch("甲", "丑")

    def test_parse(self):
        assert StemBranch.parse("庚午") == StemBranch("庚", "午")
        with pytest.raises(InputValidationError):
            StemBranch.parse("庚")

    def test_shift(self):
        assert StemBranch("丁", "卯").shift(1) == StemBranch("戊", "辰")
        assert StemBranch("丁", "卯").shift(-1) == StemBranch("丙", "寅")

    def test_to_dict(self):
        d = StemBranch("甲", "辰").to_dict()
        assert d["combined"] == "甲辰"
        assert d["animal"] == "Dragon"


class TestVoidBranches:
    @pytest.mark.parametrize("pillar,expected", [
        ("甲子", ("戌", "亥")),
        ("戊午", ("子", "丑")),
        ("甲申", ("午", "未")),
        ("乙亥", ("申", "酉")),
    ])
    def test_known_voids(self, pillar, expected):
        assert void_branches(StemBranch.parse(pillar)) == expected

    def test_every_pillar_has_two_foreign_voids(self):
        for pillar in SEXAGENARY_CYCLE:
            voids = void_branches(pillar)
            assert len(set(voids)) == 2
            assert pillar.branch not in voids

    def test_decade_head(self):
        assert decade_head(StemBranch("乙", "亥")) == StemBranch("甲", "戌")
        assert decade_head(StemBranch("庚", "午")) == StemBranch("甲", "子")

    def test_is_void(self):
        assert is_void("午", StemBranch("甲", "申"))
        assert not is_void("申", StemBranch("甲", "申"))
