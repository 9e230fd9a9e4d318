"""
Tests for CostCode and the cost code hierarchy.
"""
import pytest

from costcontrol.domain.entities import CostCode, CostCodeHierarchy


class TestCostCode:
    """Tests for flat cost codes."""

    def test_create_normalizes_case(self):
        code = CostCode.create(" conc-0310 ", "Concrete").unwrap()
        assert code.value == "CONC-0310"
        assert str(code) == "CONC-0310"

    @pytest.mark.parametrize("value", ["C-01", "CONCRE-01", "CONC-1", "CONC-12345", "CONC0310", ""])
    def test_invalid_codes(self, value):
        result = CostCode.create(value)
        assert result.is_failure
        assert result.code == "VALIDATION_ERROR"

    def test_pattern_message(self):
        result = CostCode.create("BAD")
        assert "AA-##" in result.message


class TestCostCodeHierarchy:
    """Tests for hierarchy node validation."""

    def test_division(self):
        node = CostCodeHierarchy.create("01", "General Requirements", 1).unwrap()
        assert node.is_division
        assert node.level_name == "Division"
        assert node.is_active

    def test_level_must_match_segments(self):
        result = CostCodeHierarchy.create("01.02", "Temporary Facilities", 1)
        assert result.is_failure
        assert "level" in result.message

    def test_subdivision_with_parent(self):
        node = CostCodeHierarchy.create("01.02", "Temporary Facilities", 2, parent_code="01").unwrap()
        assert node.is_subdivision
        assert node.parent_code == "01"

    def test_parent_required_below_division(self):
        result = CostCodeHierarchy.create("01.02", "Temporary Facilities", 2)
        assert result.is_failure
        assert "parent" in result.message

    def test_detail_code_format(self):
        assert CostCodeHierarchy.create("01.02.03.001", "Fencing", 4, parent_code="01.02.03").unwrap().is_detail
        assert CostCodeHierarchy.create("01.02.03.1", "Fencing", 4, parent_code="01.02.03").is_failure

    def test_name_too_short(self):
        result = CostCodeHierarchy.create("03", "C", 1)
        assert result.is_failure
        assert "name" in result.message

    def test_soft_delete_and_edits(self):
        node = CostCodeHierarchy.create("03", "Concrete", 1).unwrap()
        node.deactivate()
        assert not node.is_active
        node.activate()
        node.update_description("  Cast in place  ")
        node.update_sort_order(4)
        assert node.is_active
        assert node.sort_order == 4
        assert node.to_dict()["code"] == "03"
