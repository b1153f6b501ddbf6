"""
Arduino code-generation handlers, one per built-in block type.

Statement handlers return the text of exactly one statement (with its
trailing newline); chaining to the next block is done by the generator.
Expression handlers return ``(code, order)``.
"""

import re
from typing import Any, Dict

from .code_generator import (
    DefinitionSection, FunctionExpressionHandler, FunctionStatementHandler,
    GenerationContext, Handler, Order, prefix_lines
)
from .models import Block, ENTRY_POINT_TYPE


ARDUINO_HANDLERS: Dict[str, Handler] = {}

IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

# C++ keywords and Arduino core names a variable must not take
RESERVED_NAMES = frozenset("""
    alignas alignof and and_eq asm auto bitand bitor bool break case catch char
    class compl const constexpr const_cast continue decltype default delete do
    double dynamic_cast else enum explicit export extern false float for friend
    goto if inline int long mutable namespace new noexcept not not_eq nullptr
    operator or or_eq private protected public register reinterpret_cast return
    short signed sizeof static static_assert static_cast struct switch template
    this thread_local throw true try typedef typeid typename union unsigned using
    virtual void volatile wchar_t while xor xor_eq
    boolean byte word String HIGH LOW INPUT OUTPUT INPUT_PULLUP LED_BUILTIN
    setup loop delay delayMicroseconds millis micros pinMode digitalWrite
    digitalRead analogRead analogWrite Serial random map constrain min max abs
    HTS IMU PDM initHTS initIMU initMicrophone imuAcceleration onPDMdata
    sampleBuffer samplesRead
""".split())


def is_valid_identifier(name) -> bool:
    """True for a C identifier that is not a keyword or Arduino builtin."""
    return isinstance(name, str) and bool(IDENTIFIER_RE.match(name)) and name not in RESERVED_NAMES


def statement_handler(type_id: str):
    """Register a function as the statement handler of a block type."""
    def decorator(func):
        ARDUINO_HANDLERS[type_id] = FunctionStatementHandler(func)
        return func
    return decorator


def expression_handler(type_id: str):
    """Register a function as the expression handler of a block type."""
    def decorator(func):
        ARDUINO_HANDLERS[type_id] = FunctionExpressionHandler(func)
        return func
    return decorator


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def field_value(block: Block, ctx: GenerationContext, name: str) -> Any:
    """Read a field, falling back to its default, and check it is in domain."""
    spec = ctx.describe(block).fields[name]
    value = block.fields.get(name, spec.default)
    return spec.validate_value(value)


def number_literal(value) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def c_string(text: str) -> str:
    escaped = (
        text.replace('\\', '\\\\')
            .replace('"', '\\"')
            .replace('\n', '\\n')
            .replace('\r', '\\r')
            .replace('\t', '\\t')
    )
    return f'"{escaped}"'


def variable_name(block: Block, ctx: GenerationContext) -> str:
    name = field_value(block, ctx, "VAR")
    if name not in ctx.workspace.variables:
        raise ValueError(f"Variable '{name}' is not declared")
    if not is_valid_identifier(name):
        raise ValueError(f"'{name}' is not a valid variable name")
    return name


def declare_pin(ctx: GenerationContext, pin, mode: str):
    pin = number_literal(pin)
    ctx.add_definition(f"pinMode_{pin}", f"pinMode({pin}, {mode});\n", DefinitionSection.SETUP)


def require_hts(ctx: GenerationContext):
    ctx.add_definition("include_HTS221", "#include <Arduino_HTS221.h>\n")
    ctx.add_definition(
        "hts_setup",
        "void initHTS() {\n"
        "  if (!HTS.begin()) {\n"
        "    while (1);\n"
        "  }\n"
        "}\n",
    )
    ctx.add_definition("hts_call_setup", "initHTS();\n", DefinitionSection.SETUP)


def require_imu(ctx: GenerationContext):
    ctx.add_definition("include_LSM6DS3", "#include <Arduino_LSM6DS3.h>\n")
    ctx.add_definition(
        "imu_setup",
        "void initIMU() {\n"
        "  if (!IMU.begin()) {\n"
        "    while (1);\n"
        "  }\n"
        "}\n"
        "\n"
        "float imuAcceleration(int axis) {\n"
        "  float x = 0, y = 0, z = 0;\n"
        "  if (IMU.accelerationAvailable()) {\n"
        "    IMU.readAcceleration(x, y, z);\n"
        "  }\n"
        "  return axis == 0 ? x : (axis == 1 ? y : z);\n"
        "}\n",
    )
    ctx.add_definition("imu_call_setup", "initIMU();\n", DefinitionSection.SETUP)


def require_microphone(ctx: GenerationContext):
    ctx.add_definition("include_PDM", "#include <PDM.h>\n")
    ctx.add_definition("mic_buffer", "short sampleBuffer[256];\nvolatile int samplesRead;\n")
    ctx.add_definition(
        "mic_setup",
        "void onPDMdata() {\n"
        "  int bytesAvailable = PDM.available();\n"
        "  PDM.read(sampleBuffer, bytesAvailable);\n"
        "  samplesRead = bytesAvailable / 2;\n"
        "}\n"
        "\n"
        "void initMicrophone() {\n"
        "  PDM.onReceive(onPDMdata);\n"
        "  if (!PDM.begin(1, 16000)) {\n"
        "    while (1);\n"
        "  }\n"
        "}\n",
    )
    ctx.add_definition("mic_call_setup", "initMicrophone();\n", DefinitionSection.SETUP)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

@statement_handler(ENTRY_POINT_TYPE)
def setup_loop(block: Block, ctx: GenerationContext) -> str:
    setup_code = ctx.statement_to_code(block, "SETUP")
    loop_code = ctx.statement_to_code(block, "LOOP")

    for name in ctx.workspace.variables:
        if not is_valid_identifier(name):
            raise ValueError(f"'{name}' is not a valid variable name")
        ctx.add_definition(f"variable_{name}", f"float {name} = 0;\n")

    globals_code = ''.join(ctx.definitions.values(DefinitionSection.GLOBAL))
    if globals_code:
        globals_code += "\n"
    setup_calls = prefix_lines(
        ''.join(ctx.definitions.values(DefinitionSection.SETUP)), ctx.indent
    )
    return (
        f"{globals_code}"
        f"void setup() {{\n{setup_calls}{setup_code}}}\n"
        f"\n"
        f"void loop() {{\n{loop_code}}}\n"
    )


# ---------------------------------------------------------------------------
# Arduino basics
# ---------------------------------------------------------------------------

@statement_handler("arduino_delay")
def delay(block: Block, ctx: GenerationContext) -> str:
    return f"delay({number_literal(field_value(block, ctx, 'TIME'))});\n"


@statement_handler("arduino_serial_begin")
def serial_begin(block: Block, ctx: GenerationContext) -> str:
    return f"Serial.begin({field_value(block, ctx, 'BAUD')});\n"


@statement_handler("arduino_serial_print")
def serial_print(block: Block, ctx: GenerationContext) -> str:
    return f"Serial.println({ctx.value_to_code(block, 'TEXT', Order.NONE)});\n"


@statement_handler("arduino_led_builtin")
def led_builtin(block: Block, ctx: GenerationContext) -> str:
    ctx.add_definition(
        "pinMode_LED_BUILTIN", "pinMode(LED_BUILTIN, OUTPUT);\n", DefinitionSection.SETUP
    )
    return f"digitalWrite(LED_BUILTIN, {field_value(block, ctx, 'STATE')});\n"


@expression_handler("arduino_analog_read")
def analog_read(block: Block, ctx: GenerationContext):
    return f"analogRead({field_value(block, ctx, 'PIN')})", Order.UNARY_POSTFIX


# ---------------------------------------------------------------------------
# Pins
# ---------------------------------------------------------------------------

@statement_handler("arduino_pin_mode")
def pin_mode(block: Block, ctx: GenerationContext) -> str:
    pin = number_literal(field_value(block, ctx, 'PIN'))
    return f"pinMode({pin}, {field_value(block, ctx, 'MODE')});\n"


@statement_handler("arduino_digital_write")
def digital_write(block: Block, ctx: GenerationContext) -> str:
    pin = field_value(block, ctx, 'PIN')
    declare_pin(ctx, pin, "OUTPUT")
    return f"digitalWrite({number_literal(pin)}, {field_value(block, ctx, 'STATE')});\n"


@statement_handler("arduino_analog_write")
def analog_write(block: Block, ctx: GenerationContext) -> str:
    pin = field_value(block, ctx, 'PIN')
    declare_pin(ctx, pin, "OUTPUT")
    value = number_literal(field_value(block, ctx, 'VALUE'))
    return f"analogWrite({number_literal(pin)}, {value});\n"


@expression_handler("arduino_digital_read")
def digital_read(block: Block, ctx: GenerationContext):
    pin = field_value(block, ctx, 'PIN')
    declare_pin(ctx, pin, "INPUT")
    return f"digitalRead({number_literal(pin)})", Order.UNARY_POSTFIX


# ---------------------------------------------------------------------------
# On-board sensors
# ---------------------------------------------------------------------------

@expression_handler("arduino_temperature_read")
def temperature_read(block: Block, ctx: GenerationContext):
    require_hts(ctx)
    return "HTS.readTemperature()", Order.UNARY_POSTFIX


@expression_handler("arduino_humidity_read")
def humidity_read(block: Block, ctx: GenerationContext):
    require_hts(ctx)
    return "HTS.readHumidity()", Order.UNARY_POSTFIX


@statement_handler("arduino_sensor_begin")
def sensor_begin(block: Block, ctx: GenerationContext) -> str:
    # Initialisation goes through the definitions table so it runs once
    if field_value(block, ctx, 'SENSOR') == "PDM":
        require_microphone(ctx)
    else:
        require_hts(ctx)
    return ""


@expression_handler("arduino_imu_read")
def imu_read(block: Block, ctx: GenerationContext):
    require_imu(ctx)
    axis = "xyz".index(field_value(block, ctx, 'AXIS'))
    return f"imuAcceleration({axis})", Order.UNARY_POSTFIX


@statement_handler("arduino_imu_begin")
def imu_begin(block: Block, ctx: GenerationContext) -> str:
    require_imu(ctx)
    return ""


@expression_handler("arduino_microphone_read")
def microphone_read(block: Block, ctx: GenerationContext):
    require_microphone(ctx)
    return "samplesRead > 0 ? sampleBuffer[0] : 0", Order.CONDITIONAL


# ---------------------------------------------------------------------------
# Values and logic
# ---------------------------------------------------------------------------

@expression_handler("text")
def text(block: Block, ctx: GenerationContext):
    return c_string(field_value(block, ctx, 'TEXT')), Order.ATOMIC


@expression_handler("math_number")
def math_number(block: Block, ctx: GenerationContext):
    value = field_value(block, ctx, 'NUM')
    order = Order.UNARY_PREFIX if value < 0 else Order.ATOMIC
    return number_literal(value), order


ARITHMETIC_OPERATORS = {
    "ADD": (" + ", Order.ADDITIVE),
    "MINUS": (" - ", Order.ADDITIVE),
    "MULTIPLY": (" * ", Order.MULTIPLICATIVE),
    "DIVIDE": (" / ", Order.MULTIPLICATIVE),
}


@expression_handler("math_arithmetic")
def math_arithmetic(block: Block, ctx: GenerationContext):
    operator, order = ARITHMETIC_OPERATORS[field_value(block, ctx, 'OP')]
    left = ctx.value_to_code(block, 'A', order)
    right = ctx.value_to_code(block, 'B', order)
    return f"{left}{operator}{right}", order


@expression_handler("logic_boolean")
def logic_boolean(block: Block, ctx: GenerationContext):
    return ("true" if field_value(block, ctx, 'BOOL') == "TRUE" else "false"), Order.ATOMIC


COMPARISON_OPERATORS = {
    "EQ": ("==", Order.EQUALITY),
    "NEQ": ("!=", Order.EQUALITY),
    "LT": ("<", Order.RELATIONAL),
    "LTE": ("<=", Order.RELATIONAL),
    "GT": (">", Order.RELATIONAL),
    "GTE": (">=", Order.RELATIONAL),
}


@expression_handler("logic_compare")
def logic_compare(block: Block, ctx: GenerationContext):
    operator, order = COMPARISON_OPERATORS[field_value(block, ctx, 'OP')]
    left = ctx.value_to_code(block, 'A', order)
    right = ctx.value_to_code(block, 'B', order)
    return f"{left} {operator} {right}", order


@expression_handler("logic_operation")
def logic_operation(block: Block, ctx: GenerationContext):
    if field_value(block, ctx, 'OP') == "AND":
        operator, order = "&&", Order.LOGICAL_AND
    else:
        operator, order = "||", Order.LOGICAL_OR
    left = ctx.value_to_code(block, 'A', order)
    right = ctx.value_to_code(block, 'B', order)
    return f"{left} {operator} {right}", order


@expression_handler("logic_negate")
def logic_negate(block: Block, ctx: GenerationContext):
    return f"!{ctx.value_to_code(block, 'BOOL', Order.UNARY_PREFIX)}", Order.UNARY_PREFIX


# ---------------------------------------------------------------------------
# Control
# ---------------------------------------------------------------------------

@statement_handler("controls_if")
def controls_if(block: Block, ctx: GenerationContext) -> str:
    condition = ctx.value_to_code(block, 'IF0', Order.NONE)
    code = f"if ({condition}) {{\n{ctx.statement_to_code(block, 'DO0')}}}"
    if block.inputs.get('ELSE') is not None:
        code += f" else {{\n{ctx.statement_to_code(block, 'ELSE')}}}"
    return code + "\n"


@statement_handler("controls_repeat_ext")
def controls_repeat(block: Block, ctx: GenerationContext) -> str:
    times = ctx.value_to_code(block, 'TIMES', Order.ASSIGNMENT)
    branch = ctx.statement_to_code(block, 'DO')
    counter = ctx.unique_name("count")
    init = f"{counter} = 0"
    if not re.match(r'^\d+$', times):
        # Evaluate the bound once, inside the for-init
        limit = ctx.unique_name("repeat_end")
        init += f", {limit} = {times}"
        times = limit
    return f"for (int {init}; {counter} < {times}; {counter}++) {{\n{branch}}}\n"


@statement_handler("controls_whileUntil")
def controls_while_until(block: Block, ctx: GenerationContext) -> str:
    until = field_value(block, ctx, 'MODE') == "UNTIL"
    condition = ctx.value_to_code(block, 'BOOL', Order.UNARY_PREFIX if until else Order.NONE)
    if until:
        condition = f"!{condition}"
    return f"while ({condition}) {{\n{ctx.statement_to_code(block, 'DO')}}}\n"


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------

@expression_handler("variables_get")
def variables_get(block: Block, ctx: GenerationContext):
    return variable_name(block, ctx), Order.ATOMIC


@statement_handler("variables_set")
def variables_set(block: Block, ctx: GenerationContext) -> str:
    name = variable_name(block, ctx)
    return f"{name} = {ctx.value_to_code(block, 'VALUE', Order.ASSIGNMENT)};\n"
