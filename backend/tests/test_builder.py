"""Tests for the stateful form builder controller."""

from itertools import product

import pytest

from app.services.form_structure import (
    BuilderController,
    FieldType,
    FieldWidth,
    FormStructure,
    RuleAction,
    validate_structure,
)


@pytest.fixture
def builder(sample_structure) -> BuilderController:
    return BuilderController(sample_structure)


class TestAddField:

    def test_select_on_empty_structure_creates_section(self):
        builder = BuilderController()
        new_field = builder.add_field("select")

        structure = builder.snapshot()
        assert len(structure.sections) == 1
        assert structure.sections[0].title == "Section 1"
        assert new_field.type == FieldType.SELECT
        assert new_field.options == ["Option 1", "Option 2"]
        assert new_field.label == "Select Field"
        assert builder.selected_field_id == new_field.id
        assert builder.active_section_id == structure.sections[0].id
        assert validate_structure(structure) == []

    def test_per_type_defaults(self):
        builder = BuilderController()
        textarea = builder.add_field("textarea")
        phone = builder.add_field("tel")

        assert textarea.label == "Text Area"
        assert textarea.width == FieldWidth.FULL
        assert phone.label == "Phone"
        assert phone.width == FieldWidth.HALF

    def test_unknown_type_is_ignored(self, builder):
        before = builder.snapshot()
        assert builder.add_field("hologram") is None
        assert builder.snapshot() == before

    def test_targets_explicit_then_active_section(self, builder):
        builder.set_active_section("section_lender")
        in_active = builder.add_field("text")
        in_target = builder.add_field("text", "section_sign")

        structure = builder.snapshot()
        assert structure.section_of(in_active.id).id == "section_lender"
        assert structure.section_of(in_target.id).id == "section_sign"

    def test_field_ids_are_unique(self):
        builder = BuilderController()
        ids = {builder.add_field("text").id for _ in range(20)}
        assert len(ids) == 20


class TestSections:

    def test_add_section_becomes_active(self, builder):
        section = builder.add_section()
        assert section.title == "Section 4"
        assert builder.active_section_id == section.id

    def test_update_section_with_dotted_path(self, builder):
        assert builder.update_section("section_sign", {
            "title": "Sign Here",
            "conditionalVisibility.sourceFieldId": "has_lender",
        }) is True

        section = builder.structure.find_section("section_sign")
        assert section.title == "Sign Here"
        assert section.conditional_visibility.source_field_id == "has_lender"
        assert [f.id for f in section.fields] == ["signature"]

    def test_update_section_rejects_unknown_property(self, builder):
        assert builder.update_section("section_sign", {"colour": "red"}) is False
        assert builder.structure.find_section("section_sign").title == "Signature"

    def test_delete_section_removes_its_fields(self, builder):
        builder.select_field("lender_name")
        assert builder.delete_section("section_lender") is True

        assert builder.structure.find_field("lender_name") is None
        assert builder.selected_field_id is None

    def test_delete_active_section_moves_active_to_first(self, builder):
        builder.set_active_section("section_sign")
        builder.delete_section("section_sign")
        assert builder.active_section_id == "section_buyer"


class TestUpdateField:

    def test_patch_merges_nested_rule(self, builder):
        assert builder.update_field("has_lender", {"conditionalLogic": {"action": "hide"}}) is True

        rule = builder.structure.find_field("has_lender").conditional_logic
        assert rule.action == RuleAction.HIDE
        assert rule.target_id == "section_lender"

    def test_id_is_immutable(self, builder):
        assert builder.update_field("buyer_name", {"id": "purchaser"}) is False
        assert builder.update_field("buyer_name", {"label": "Purchaser", "key": "purchaser"}) is True

        f = builder.structure.find_field("buyer_name")
        assert f.label == "Purchaser"
        assert f.key == "purchaser"

    def test_unknown_property_is_rejected(self, builder):
        assert builder.update_field("buyer_name", {"lable": "typo"}) is False
        assert builder.structure.find_field("buyer_name").label == "Buyer Name"

    def test_switching_to_select_adds_default_options(self, builder):
        builder.update_field("buyer_email", {"type": "radio"})
        assert builder.structure.find_field("buyer_email").options == ["Option 1", "Option 2"]

    def test_switching_away_from_select_drops_options(self, builder):
        builder.update_field("loan_type", {"type": "text"})
        assert builder.structure.find_field("loan_type").options == []

    def test_computation_must_reference_existing_fields(self, builder):
        assert builder.update_field("total", {"computation": "price + missing_field"}) is False
        assert builder.structure.find_field("total").computation == "price + fees"

    def test_unknown_field(self, builder):
        assert builder.update_field("nope", {"label": "x"}) is False


class TestDeleteField:

    def test_delete_clears_dependent_computations(self, builder):
        assert builder.delete_field("fees") is True

        structure = builder.snapshot()
        assert structure.find_field("fees") is None
        assert structure.find_field("total").computation is None
        assert validate_structure(structure) == []

    def test_delete_selected_field_clears_selection(self, builder):
        builder.select_field("buyer_email")
        builder.delete_field("buyer_email")
        assert builder.selected_field_id is None

    def test_delete_unknown_field(self, builder):
        assert builder.delete_field("nope") is False


class TestReorderAndMove:

    def _ids(self, builder, section_id):
        return [f.id for f in builder.structure.find_section(section_id).fields]

    def test_reorder_within_section(self, builder):
        assert builder.reorder_field("section_buyer", 0, 2) is True
        assert self._ids(builder, "section_buyer")[:3] == ["buyer_email", "has_lender", "buyer_name"]

    @pytest.mark.parametrize("from_index, to_index", [(-1, 0), (0, 6), (9, 1)])
    def test_out_of_range_is_noop(self, builder, from_index, to_index):
        before = self._ids(builder, "section_buyer")
        assert builder.reorder_field("section_buyer", from_index, to_index) is False
        assert self._ids(builder, "section_buyer") == before

    @pytest.mark.parametrize("index", [0, 3, 5])
    def test_same_index_is_noop(self, builder, index):
        before = self._ids(builder, "section_buyer")
        assert builder.reorder_field("section_buyer", index, index) is True
        assert self._ids(builder, "section_buyer") == before

    def test_reorder_is_a_permutation(self, sample_structure):
        ids = [f.id for f in sample_structure.find_section("section_buyer").fields]
        for from_index, to_index in product(range(len(ids)), repeat=2):
            builder = BuilderController(sample_structure)
            assert builder.reorder_field("section_buyer", from_index, to_index) is True

            after = self._ids(builder, "section_buyer")
            assert sorted(after) == sorted(ids)
            assert after[to_index] == ids[from_index]

    def test_move_within_own_section(self, builder):
        assert builder.move_field("loan_type", "section_lender", 0) is True
        assert self._ids(builder, "section_lender") == ["loan_type", "lender_name"]

    def test_move_to_other_section_is_rejected(self, builder):
        assert builder.move_field("buyer_name", "section_lender", 0) is False
        assert "buyer_name" in self._ids(builder, "section_buyer")
        assert "buyer_name" not in self._ids(builder, "section_lender")


class TestSessionState:

    def test_view_state_is_shared_between_viewports(self, builder):
        builder.select_field("price")
        desktop = builder.view_state("desktop")
        mobile = builder.view_state("mobile")

        assert desktop["structure"] == mobile["structure"]
        assert desktop["selectedFieldId"] == mobile["selectedFieldId"] == "price"

    def test_unknown_viewport(self, builder):
        with pytest.raises(ValueError):
            builder.view_state("watch")

    def test_select_unknown_field(self, builder):
        assert builder.select_field("nope") is False
        assert builder.select_field(None) is True

    def test_snapshot_is_a_copy(self, builder):
        snapshot = builder.snapshot()
        snapshot.sections.clear()
        assert len(builder.structure.sections) == 3

    def test_load_replaces_structure(self, builder):
        builder.load(FormStructure())
        assert builder.structure.sections == []
        assert builder.active_section_id is None


class TestExportTemplate:

    def test_template_record(self, builder):
        builder.update_field("buyer_name", {"pdfMapping": "BUYERNAME"})
        record = builder.export_template("  Resale Certificate  ", application_types=["standard"])

        assert record["name"] == "Resale Certificate"
        assert record["creation_method"] == "visual_builder"
        assert record["data_source_mappings"] == {
            "buyer_name": "application.buyer_name",
            "price": "application.sale_price",
        }
        assert record["pdf_field_mappings"] == {"buyer_name": "BUYERNAME"}
        assert record["application_types"] == ["standard"]
        assert record["form_structure"]["sections"][0]["id"] == "section_buyer"

    def test_blank_name_rejected(self, builder):
        with pytest.raises(ValueError):
            builder.export_template("  ")
