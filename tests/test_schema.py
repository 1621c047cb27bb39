"""
Tests for field definitions and the table schema.
"""

from tabular_formats.schema import Alignment, FieldDef, SchemaMode, TableSchema


class TestSchemaAppend:
    """Test adding fields."""

    def test_names_have_reserved_slot(self):
        schema = TableSchema()
        schema.append("Id")
        schema.append("Name")
        assert schema.names() == ["", "Id", "Name"]
        assert schema.count() == 2
        assert schema.position_of("Name") == 2

    def test_append_is_idempotent(self):
        """Test that appending an existing name returns it and reports a duplicate."""
        schema = TableSchema()
        first = schema.append("Id", datatype="ID")
        again = schema.append("Id", datatype="int")
        assert again is first
        assert again.datatype == "ID"
        assert schema.count() == 1
        assert len(schema.errors) == 1
        assert "already defined" in schema.errors[0].message

    def test_empty_name_gets_placeholder(self):
        schema = TableSchema()
        schema.append("a")
        fdef = schema.append("")
        assert fdef.name == "F_2"

    def test_insert_shifts_positions(self):
        schema = TableSchema()
        schema.append("a")
        schema.append("c")
        schema.insert("b", 2)
        assert schema.names() == ["", "a", "b", "c"]
        assert schema.position_of("c") == 3

    def test_insert_out_of_range(self):
        schema = TableSchema()
        assert schema.insert("x", 5) is None
        assert len(schema.errors) == 1


class TestSchemaModes:
    """Test open (auto-create) and closed (validate-only) modes."""

    def test_open_mode_creates_named_fields(self):
        schema = TableSchema()
        fdef = schema.get("State")
        assert fdef is not None
        assert fdef.position == 1
        assert schema.errors == []

    def test_open_mode_creates_placeholders_up_to_ordinal(self):
        schema = TableSchema()
        schema.append("Id")
        fdef = schema.get(4)
        assert fdef.name == "F_4"
        assert schema.names() == ["", "Id", "F_2", "F_3", "F_4"]
        assert all(f.ersatz for f in schema.field_defs()[1:])

    def test_closed_mode_reports_unknown_name(self):
        schema = TableSchema()
        schema.append("Id")
        schema.close()
        assert schema.get("Other") is None
        assert schema.count() == 1
        assert "Unknown field 'Other'" in schema.errors[0].message

    def test_closed_mode_reports_ordinal_past_end(self):
        schema = TableSchema(closed=True)
        assert schema.get(1) is None
        assert len(schema.errors) == 1

    def test_lookup_never_creates(self):
        schema = TableSchema()
        assert schema.lookup("x") is None
        assert schema.lookup(3) is None
        assert schema.count() == 0
        assert schema.errors == []

    def test_reset_reopens(self):
        schema = TableSchema()
        schema.append("a")
        schema.close()
        schema.reset()
        assert schema.mode == SchemaMode.OPEN
        assert schema.names() == [""]


class TestSchemaNaming:
    """Test renaming and naming from arrays."""

    def test_set_names_renames_and_appends(self):
        schema = TableSchema()
        schema.get(2)
        count = schema.set_names(["", "Id", "", "State"])
        assert count == 3
        assert schema.names() == ["", "Id", "F_2", "State"]

    def test_rename_to_existing_fails(self):
        schema = TableSchema()
        schema.append("a")
        schema.append("b")
        assert not schema.rename("a", "b")
        assert schema.names() == ["", "a", "b"]

    def test_rename_by_ordinal(self):
        schema = TableSchema()
        schema.append("a")
        assert schema.rename(1, "z")
        assert "z" in schema
        assert "a" not in schema
        assert schema.get_name(1) == "z"

    def test_set_field_number(self):
        schema = TableSchema()
        for name in ("a", "b", "c"):
            schema.append(name)
        assert schema.set_field_number("c", 1) == 1
        assert schema.names() == ["", "c", "a", "b"]


class TestFieldPositions:
    """Test column layout."""

    def test_set_field_positions_infers_widths(self):
        schema = TableSchema()
        schema.set_field_positions([0, 0, 10, 20])
        widths = [f.width for f in schema.field_defs()]
        starts = [f.start for f in schema.field_defs()]
        assert starts == [0, 10, 20]
        assert widths == [10, 10, 0]

    def test_overlap_rejected(self):
        schema = TableSchema()
        assert schema.set_field_position("a", 0, 10)
        assert not schema.set_field_position("b", 5, 10)
        assert "overlaps" in schema.errors[-1].message

    def test_bad_alignment_rejected(self):
        schema = TableSchema()
        assert not schema.set_field_position("a", 0, 5, align="X")

    def test_numbers_follow_positions(self):
        schema = TableSchema()
        schema.set_field_position("late", 20, 5)
        schema.set_field_position("early", 0, 5)
        schema.set_field_numbers_by_position()
        assert schema.names() == ["", "early", "late"]


class TestFieldDef:
    """Test per-field value handling."""

    def test_align_right(self):
        fdef = FieldDef("n", width=5, align=Alignment.RIGHT)
        assert fdef.align_value("ab") == "   ab"

    def test_align_center(self):
        fdef = FieldDef("n", width=6, align=Alignment.CENTER)
        assert fdef.align_value("ab") == "  ab  "

    def test_align_auto(self):
        fdef = FieldDef("n", width=4, align=Alignment.AUTO)
        assert fdef.align_value("12") == "  12"
        assert fdef.align_value("ab") == "ab  "

    def test_align_decimal(self):
        fdef = FieldDef("n", width=8, align=Alignment.DECIMAL)
        assert fdef.align_value("3.25") == "   3.25 "

    def test_truncate(self):
        fdef = FieldDef("n", width=3, align=Alignment.LEFT)
        assert fdef.align_value("abcdef") == "abcdef"
        fdef.truncate = True
        assert fdef.align_value("abcdef") == "abc"

    def test_split_and_join(self):
        fdef = FieldDef("tags", splitter=r"\s*;\s*", joiner="; ")
        parts = fdef.split_value("a; b ;c")
        assert parts == ["a", "b", "c"]
        assert fdef.join_value(parts) == "a; b; c"

    def test_nil_out(self):
        fdef = FieldDef("n", nil_out="-")
        assert fdef.join_value(None) == "-"

    def test_schema_setters(self):
        schema = TableSchema()
        schema.set_datatype("age", "int")
        schema.set_default("age", "0")
        assert schema.set_splitter("age", "(") is None
        schema.set_callback("age", str.upper)
        fdef = schema.lookup("age")
        assert fdef.datatype == "int"
        assert fdef.default == "0"
        assert fdef.splitter is None
        assert fdef.callback is str.upper
