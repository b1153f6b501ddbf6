"""
Tests for Arduino code generation.
"""

import pytest
from hypothesis import given, settings, strategies as st

from sketch_editor_core.block_registry import create_default_registry
from sketch_editor_core.code_generator import (
    CodeGenerator, DefinitionsTable, DefinitionSection, ExpressionHandler,
    GeneratorState, Order, StatementHandler, EMPTY_PLACEHOLDER, ERROR_PLACEHOLDER
)
from sketch_editor_core.models import (
    Block, BlockType, BlockShape, Workspace, create_empty_workspace
)


EMPTY_PROGRAM = "void setup() {\n}\n\nvoid loop() {\n}\n"


def make_generator():
    return CodeGenerator(create_default_registry())


def with_setup(*blocks):
    """Build a workspace whose SETUP chain is the given blocks."""
    workspace = create_empty_workspace("entry")
    chain(workspace.entry_point, "SETUP", blocks)
    return workspace


def with_loop(*blocks):
    workspace = create_empty_workspace("entry")
    chain(workspace.entry_point, "LOOP", blocks)
    return workspace


def chain(parent, socket, blocks):
    previous = None
    for block in blocks:
        if previous is None:
            parent.inputs[socket] = block
        else:
            previous.next = block
        previous = block


class FailingHandler(StatementHandler):
    def generate(self, block, ctx):
        raise RuntimeError("boom")


class TestDefinitionsTable:
    """Test cases for DefinitionsTable."""

    def test_same_key_overwrites(self):
        table = DefinitionsTable()
        table.add("include_x", "#include <x.h>\n")
        table.add("other", "int y;\n")
        table.add("include_x", "#include <x.h>\n")
        assert table.keys() == ["include_x", "other"]
        assert len(table) == 2

    def test_sections(self):
        table = DefinitionsTable()
        table.add("g", "int g;\n")
        table.add("s", "init();\n", DefinitionSection.SETUP)
        assert table.values(DefinitionSection.GLOBAL) == ["int g;\n"]
        assert table.values(DefinitionSection.SETUP) == ["init();\n"]
        assert "s" in table
        table.clear()
        assert len(table) == 0


class TestProgramStructure:
    """Test cases for the setup/loop wrappers."""

    def test_empty_entry_point(self):
        result = make_generator().generate(create_empty_workspace())
        assert result.success
        assert result.text == EMPTY_PROGRAM

    @settings(max_examples=25)
    @given(st.lists(st.sampled_from(["text", "math_number", "logic_boolean"]), max_size=4))
    def test_loose_expressions_leave_wrappers_empty(self, types):
        """Blocks not attached to the entry point never reach the output."""
        workspace = create_empty_workspace()
        for type_id in types:
            workspace.add_top_block(Block(type=type_id))
        result = make_generator().generate(workspace)
        assert result.text == EMPTY_PROGRAM
        assert len(result.warnings) == len(types)

    def test_no_entry_point(self):
        workspace = Workspace(top_blocks=[Block(type="arduino_delay")])
        result = make_generator().generate(workspace)
        assert result.success
        assert result.text == EMPTY_PLACEHOLDER

    def test_set_pin_in_setup(self):
        workspace = with_setup(Block(type="arduino_digital_write", fields={"PIN": 13, "STATE": "HIGH"}))
        result = make_generator().generate(workspace)
        assert result.text == (
            "void setup() {\n"
            "  pinMode(13, OUTPUT);\n"
            "  digitalWrite(13, HIGH);\n"
            "}\n"
            "\n"
            "void loop() {\n"
            "}\n"
        )
        assert result.text.count("pinMode(13, OUTPUT);") == 1

    def test_chain_order(self):
        workspace = with_loop(
            Block(type="arduino_led_builtin", fields={"STATE": "HIGH"}),
            Block(type="arduino_delay", fields={"TIME": 500}),
            Block(type="arduino_led_builtin", fields={"STATE": "LOW"}),
            Block(type="arduino_delay", fields={"TIME": 500}),
        )
        text = make_generator().generate(workspace).text
        assert (
            "void loop() {\n"
            "  digitalWrite(LED_BUILTIN, HIGH);\n"
            "  delay(500);\n"
            "  digitalWrite(LED_BUILTIN, LOW);\n"
            "  delay(500);\n"
            "}\n"
        ) in text
        assert text.count("pinMode(LED_BUILTIN, OUTPUT);") == 1

    def test_variables_are_declared(self):
        workspace = with_loop(
            Block(type="variables_set", fields={"VAR": "count"},
                  inputs={"VALUE": Block(type="math_number", fields={"NUM": 5})}),
        )
        workspace.add_variable("count")
        text = make_generator().generate(workspace).text
        assert text.startswith("float count = 0;\n\nvoid setup() {\n")
        assert "  count = 5;\n" in text

    def test_custom_indent(self):
        generator = CodeGenerator(create_default_registry(), indent="    ")
        text = generator.generate(with_loop(Block(type="arduino_delay"))).text
        assert "    delay(1000);\n" in text


class TestDefinitions:
    """Test cases for shared declarations."""

    def test_declarations_are_emitted_once(self):
        workspace = with_loop(
            Block(type="arduino_digital_write", fields={"PIN": 13, "STATE": "HIGH"}),
            Block(type="arduino_digital_write", fields={"PIN": 13, "STATE": "LOW"}),
        )
        text = make_generator().generate(workspace).text
        assert text.count("pinMode(13, OUTPUT);") == 1
        assert text.count("digitalWrite(13, ") == 2

    def test_sensor_scaffolding_once(self):
        workspace = with_loop(
            Block(type="arduino_serial_print",
                  inputs={"TEXT": Block(type="arduino_temperature_read")}),
            Block(type="arduino_serial_print",
                  inputs={"TEXT": Block(type="arduino_humidity_read")}),
        )
        text = make_generator().generate(workspace).text
        assert text.startswith("#include <Arduino_HTS221.h>\n")
        assert text.count("void initHTS()") == 1
        assert text.count("  initHTS();\n") == 1
        assert "Serial.println(HTS.readTemperature());" in text
        assert "Serial.println(HTS.readHumidity());" in text

    def test_begin_blocks_only_contribute_definitions(self):
        workspace = with_setup(Block(type="arduino_imu_begin"), Block(type="arduino_imu_begin"))
        text = make_generator().generate(workspace).text
        assert text.count("initIMU();") == 1
        assert "float imuAcceleration(int axis)" in text

    def test_table_does_not_leak_between_runs(self):
        generator = make_generator()
        generator.generate(with_loop(Block(type="arduino_digital_write")))
        assert generator.generate(create_empty_workspace()).text == EMPTY_PROGRAM


class TestExpressions:
    """Test cases for expressions and precedence."""

    def generate_print(self, expression):
        workspace = with_loop(Block(type="arduino_serial_print", inputs={"TEXT": expression}))
        text = make_generator().generate(workspace).text
        line = [l for l in text.splitlines() if "Serial.println" in l][0]
        return line.strip()[len("Serial.println("):-len(");")]

    def number(self, value):
        return Block(type="math_number", fields={"NUM": value})

    def arithmetic(self, op, a, b):
        return Block(type="math_arithmetic", fields={"OP": op}, inputs={"A": a, "B": b})

    def test_lower_precedence_child_is_parenthesised(self):
        expr = self.arithmetic("MULTIPLY", self.arithmetic("ADD", self.number(1), self.number(2)),
                               self.number(3))
        assert self.generate_print(expr) == "(1 + 2) * 3"

    def test_higher_precedence_child_is_bare(self):
        expr = self.arithmetic("ADD", self.arithmetic("MULTIPLY", self.number(1), self.number(2)),
                               self.number(3))
        assert self.generate_print(expr) == "1 * 2 + 3"

    def test_equal_precedence_is_parenthesised(self):
        expr = self.arithmetic("MINUS", self.number(1),
                               self.arithmetic("MINUS", self.number(2), self.number(3)))
        assert self.generate_print(expr) == "1 - (2 - 3)"

    def test_empty_socket_uses_default(self):
        assert self.generate_print(self.arithmetic("ADD", None, self.number(4))) == "0 + 4"

    def test_empty_print_uses_empty_string(self):
        workspace = with_loop(Block(type="arduino_serial_print"))
        assert 'Serial.println("");' in make_generator().generate(workspace).text

    def test_text_is_escaped(self):
        assert self.generate_print(Block(type="text", fields={"TEXT": 'say "hi"'})) == '"say \\"hi\\""'

    def test_negation(self):
        compare = Block(type="logic_compare", fields={"OP": "LT"},
                        inputs={"A": self.number(1), "B": self.number(2)})
        assert self.generate_print(Block(type="logic_negate", inputs={"BOOL": compare})) == "!(1 < 2)"


class TestControl:
    """Test cases for control blocks."""

    def test_if_else(self):
        block = Block(type="controls_if", inputs={
            "IF0": Block(type="logic_boolean", fields={"BOOL": "TRUE"}),
            "DO0": Block(type="arduino_delay", fields={"TIME": 1}),
            "ELSE": Block(type="arduino_delay", fields={"TIME": 2}),
        })
        text = make_generator().generate(with_loop(block)).text
        assert (
            "  if (true) {\n"
            "    delay(1);\n"
            "  } else {\n"
            "    delay(2);\n"
            "  }\n"
        ) in text

    def test_repeat_with_literal(self):
        block = Block(type="controls_repeat_ext", inputs={
            "TIMES": Block(type="math_number", fields={"NUM": 3}),
            "DO": Block(type="arduino_delay", fields={"TIME": 10}),
        })
        text = make_generator().generate(with_loop(block)).text
        assert "  for (int count = 0; count < 3; count++) {\n    delay(10);\n  }\n" in text

    def test_nested_repeat_gets_unique_counters(self):
        inner = Block(type="controls_repeat_ext", inputs={"TIMES": Block(type="math_number", fields={"NUM": 2})})
        outer = Block(type="controls_repeat_ext", inputs={
            "TIMES": Block(type="math_number", fields={"NUM": 2}), "DO": inner,
        })
        text = make_generator().generate(with_loop(outer)).text
        assert "int count = 0" in text
        assert "int count2 = 0" in text

    def test_repeat_counter_avoids_workspace_variable(self):
        setter = Block(type="variables_set", fields={"VAR": "count"},
                       inputs={"VALUE": Block(type="math_number", fields={"NUM": 0})})
        block = Block(type="controls_repeat_ext", inputs={
            "TIMES": Block(type="math_number", fields={"NUM": 10}), "DO": setter,
        })
        workspace = with_loop(block)
        workspace.add_variable("count")
        text = make_generator().generate(workspace).text
        assert "  for (int count2 = 0; count2 < 10; count2++) {\n    count = 0;\n  }\n" in text

    def test_repeat_with_computed_bound_is_one_statement(self):
        block = Block(type="controls_repeat_ext", inputs={
            "TIMES": Block(type="arduino_analog_read", fields={"PIN": "A0"}),
        })
        text = make_generator().generate(with_loop(block)).text
        assert (
            "void loop() {\n"
            "  for (int count = 0, repeat_end = analogRead(A0); count < repeat_end; count++) {\n"
            "  }\n"
            "}\n"
        ) in text

    def test_repeat_until(self):
        block = Block(type="controls_whileUntil", fields={"MODE": "UNTIL"}, inputs={
            "BOOL": Block(type="arduino_digital_read", fields={"PIN": 2}),
        })
        text = make_generator().generate(with_loop(block)).text
        assert "while (!digitalRead(2)) {\n" in text
        assert "pinMode(2, INPUT);" in text


class TestFailures:
    """Test cases for all-or-nothing failure."""

    def test_handler_failure_gives_diagnostic(self):
        generator = make_generator()
        generator.register_handler("arduino_delay", FailingHandler())
        workspace = with_loop(
            Block(type="arduino_led_builtin"),
            Block(type="arduino_delay", id="bad"),
        )
        result = generator.generate(workspace)
        assert not result.success
        assert result.text is None
        assert result.display_text == ERROR_PLACEHOLDER
        assert result.error.kind == "HandlerFailure"
        assert result.error.block_id == "bad"
        assert generator.last_outcome == GeneratorState.FAILED
        assert generator.state == GeneratorState.IDLE

    def test_failure_in_loose_root_aborts_run(self):
        generator = make_generator()
        generator.register_handler("arduino_delay", FailingHandler())
        workspace = create_empty_workspace()
        workspace.add_top_block(Block(type="arduino_delay"))
        assert not generator.generate(workspace).success

    def test_unknown_type(self):
        workspace = with_loop(Block(type="no_such_block", id="ghost"))
        result = make_generator().generate(workspace)
        assert result.error.kind == "UnknownType"
        assert result.error.block_id == "ghost"
        assert result.error.type_id == "no_such_block"

    def test_missing_handler(self):
        registry = create_default_registry()
        registry.register(BlockType(type_id="orphan", shape=BlockShape.STATEMENT))
        result = CodeGenerator(registry).generate(with_loop(Block(type="orphan")))
        assert result.error.kind == "HandlerFailure"
        assert result.error.type_id == "orphan"

    def test_undeclared_variable_fails(self):
        result = make_generator().generate(with_loop(Block(type="variables_set", fields={"VAR": "x"})))
        assert not result.success

    def test_out_of_domain_field_fails(self):
        result = make_generator().generate(with_loop(Block(type="arduino_delay", fields={"TIME": 0})))
        assert not result.success

    def test_bad_return_type(self):
        class WrongShape(ExpressionHandler):
            def generate(self, block, ctx):
                return "1"

        generator = make_generator()
        generator.register_handler("math_number", WrongShape())
        workspace = with_loop(Block(type="arduino_serial_print",
                                    inputs={"TEXT": Block(type="math_number")}))
        assert not generator.generate(workspace).success

    def test_register_handler_type_check(self):
        with pytest.raises(TypeError):
            make_generator().register_handler("x", lambda block, ctx: "")

    def test_success_after_failure(self):
        generator = make_generator()
        assert not generator.generate(with_loop(Block(type="nope"))).success
        result = generator.generate(create_empty_workspace())
        assert result.success
        assert generator.last_outcome == GeneratorState.SUCCESS

    def test_to_dict(self):
        data = make_generator().generate(create_empty_workspace()).to_dict()
        assert data == {'success': True, 'code': EMPTY_PROGRAM, 'error': None, 'warnings': []}


class TestOrder:
    """Sanity checks on the precedence scale."""

    def test_scale(self):
        assert Order.ATOMIC < Order.MULTIPLICATIVE < Order.ADDITIVE < Order.RELATIONAL
        assert Order.LOGICAL_AND < Order.LOGICAL_OR < Order.NONE
