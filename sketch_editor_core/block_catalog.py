"""
Built-in Arduino block types.

Each entry declares the semantic shape of a block: statement or expression,
its sockets and fields, and the component kinds that unlock it.
"""

from typing import List

from .models import (
    BlockType, BlockShape, FieldSpec, FieldKind, ValueSocket, StatementSocket,
    ShadowSpec, ComponentKind, BASE_CAPABILITY, ENTRY_POINT_TYPE
)


BASICS_COLOUR = "#3b82f6"
IO_COLOUR = "#10b981"
ANALOG_COLOUR = "#f59e0b"
VALUES_COLOUR = "#84cc16"
LOGIC_COLOUR = "#06b6d4"
CONTROL_COLOUR = "#8b5cf6"
VARIABLES_COLOUR = "#f97316"

BASE = frozenset({BASE_CAPABILITY})


def _unlocked_by(*kinds: ComponentKind) -> frozenset:
    return frozenset(kind.value for kind in kinds)


def _dropdown(*values: str, default: str = None, labels: tuple = None) -> FieldSpec:
    labels = labels or values
    return FieldSpec(
        kind=FieldKind.DROPDOWN,
        default=default if default is not None else values[0],
        options=tuple(zip(labels, values)),
    )


def _number(default, minimum=None, maximum=None) -> FieldSpec:
    return FieldSpec(kind=FieldKind.NUMBER, default=default, minimum=minimum, maximum=maximum)


PIN_FIELD = _number(13, 0, 53)
STATE_FIELD = _dropdown("HIGH", "LOW")


BUILTIN_BLOCK_TYPES: List[BlockType] = [
    # Entry point
    BlockType(
        type_id=ENTRY_POINT_TYPE,
        shape=BlockShape.STATEMENT,
        sockets=[StatementSocket("SETUP"), StatementSocket("LOOP")],
        deletable=False,
        chainable=False,
        category="Arduino Basics",
        colour=BASICS_COLOUR,
        tooltip="Setup runs once when the program starts, loop runs continuously",
    ),

    # Arduino basics
    BlockType(
        type_id="arduino_delay",
        shape=BlockShape.STATEMENT,
        fields={"TIME": _number(1000, 1)},
        category="Arduino Basics",
        colour=BASICS_COLOUR,
        tooltip="Pause the program for specified milliseconds",
    ),
    BlockType(
        type_id="arduino_serial_begin",
        shape=BlockShape.STATEMENT,
        fields={"BAUD": _dropdown("9600", "19200", "38400", "57600", "115200")},
        category="Arduino Basics",
        colour=BASICS_COLOUR,
        tooltip="Initialize serial communication",
    ),
    BlockType(
        type_id="arduino_serial_print",
        shape=BlockShape.STATEMENT,
        sockets=[
            ValueSocket("TEXT", check=("String", "Number", "Boolean"), default_literal='""',
                        shadow=ShadowSpec("text", {"TEXT": "Hello World"})),
        ],
        category="Arduino Basics",
        colour=BASICS_COLOUR,
        tooltip="Print text or number to serial monitor",
    ),
    BlockType(
        type_id="arduino_led_builtin",
        shape=BlockShape.STATEMENT,
        fields={"STATE": _dropdown("HIGH", "LOW", labels=("ON", "OFF"))},
        category="Digital I/O",
        colour=IO_COLOUR,
        tooltip="Control the built-in LED",
    ),
    BlockType(
        type_id="arduino_analog_read",
        shape=BlockShape.EXPRESSION,
        output="Number",
        fields={"PIN": _dropdown("A0", "A1", "A2", "A3", "A4", "A5")},
        category="Analog I/O",
        colour=ANALOG_COLOUR,
        tooltip="Read analog value from pin (0-1023)",
    ),

    # Component blocks
    BlockType(
        type_id="arduino_pin_mode",
        shape=BlockShape.STATEMENT,
        fields={"PIN": PIN_FIELD, "MODE": _dropdown("OUTPUT", "INPUT", "INPUT_PULLUP")},
        capabilities=_unlocked_by(ComponentKind.LED, ComponentKind.BUTTON),
        category="Digital I/O",
        colour=IO_COLOUR,
        tooltip="Set pin mode (INPUT, OUTPUT, INPUT_PULLUP)",
    ),
    BlockType(
        type_id="arduino_digital_write",
        shape=BlockShape.STATEMENT,
        fields={"PIN": PIN_FIELD, "STATE": STATE_FIELD},
        capabilities=_unlocked_by(ComponentKind.LED),
        category="Digital I/O",
        colour=IO_COLOUR,
        tooltip="Write HIGH or LOW to a digital pin",
    ),
    BlockType(
        type_id="arduino_analog_write",
        shape=BlockShape.STATEMENT,
        fields={"PIN": _number(9, 0, 13), "VALUE": _number(255, 0, 255)},
        capabilities=_unlocked_by(ComponentKind.LED),
        category="Analog I/O",
        colour=ANALOG_COLOUR,
        tooltip="Write PWM value to pin (0-255)",
    ),
    BlockType(
        type_id="arduino_digital_read",
        shape=BlockShape.EXPRESSION,
        output="Boolean",
        fields={"PIN": _number(2, 0, 53)},
        capabilities=_unlocked_by(ComponentKind.BUTTON),
        category="Digital I/O",
        colour=IO_COLOUR,
        tooltip="Read the value of a digital pin",
    ),
    BlockType(
        type_id="arduino_temperature_read",
        shape=BlockShape.EXPRESSION,
        output="Number",
        capabilities=_unlocked_by(ComponentKind.TEMPERATURE),
        category="Sensors",
        colour=IO_COLOUR,
        tooltip="Read temperature from HTS221 sensor",
    ),
    BlockType(
        type_id="arduino_humidity_read",
        shape=BlockShape.EXPRESSION,
        output="Number",
        capabilities=_unlocked_by(ComponentKind.HUMIDITY),
        category="Sensors",
        colour=IO_COLOUR,
        tooltip="Read humidity from HTS221 sensor",
    ),
    BlockType(
        type_id="arduino_sensor_begin",
        shape=BlockShape.STATEMENT,
        fields={"SENSOR": _dropdown("HTS221", "PDM", labels=("temperature/humidity", "microphone"))},
        capabilities=_unlocked_by(
            ComponentKind.TEMPERATURE, ComponentKind.HUMIDITY, ComponentKind.MICROPHONE
        ),
        category="Sensors",
        colour=IO_COLOUR,
        tooltip="Initialize sensor components",
    ),
    BlockType(
        type_id="arduino_imu_read",
        shape=BlockShape.EXPRESSION,
        output="Number",
        fields={"AXIS": _dropdown("x", "y", "z", labels=("X", "Y", "Z"))},
        capabilities=_unlocked_by(ComponentKind.IMU),
        category="Sensors",
        colour=IO_COLOUR,
        tooltip="Read acceleration data from IMU sensor",
    ),
    BlockType(
        type_id="arduino_imu_begin",
        shape=BlockShape.STATEMENT,
        capabilities=_unlocked_by(ComponentKind.IMU),
        category="Sensors",
        colour=IO_COLOUR,
        tooltip="Initialize IMU motion sensor",
    ),
    BlockType(
        type_id="arduino_microphone_read",
        shape=BlockShape.EXPRESSION,
        output="Number",
        capabilities=_unlocked_by(ComponentKind.MICROPHONE),
        category="Sensors",
        colour=IO_COLOUR,
        tooltip="Read microphone sound level",
    ),

    # Values
    BlockType(
        type_id="text",
        shape=BlockShape.EXPRESSION,
        output="String",
        fields={"TEXT": FieldSpec(kind=FieldKind.TEXT, default="")},
        category="Values",
        colour=VALUES_COLOUR,
    ),
    BlockType(
        type_id="math_number",
        shape=BlockShape.EXPRESSION,
        output="Number",
        fields={"NUM": _number(0)},
        category="Values",
        colour=VALUES_COLOUR,
    ),
    BlockType(
        type_id="math_arithmetic",
        shape=BlockShape.EXPRESSION,
        output="Number",
        sockets=[ValueSocket("A", check=("Number",)), ValueSocket("B", check=("Number",))],
        fields={"OP": _dropdown("ADD", "MINUS", "MULTIPLY", "DIVIDE",
                                labels=("+", "-", "*", "/"))},
        category="Values",
        colour=VALUES_COLOUR,
    ),

    # Logic
    BlockType(
        type_id="logic_boolean",
        shape=BlockShape.EXPRESSION,
        output="Boolean",
        fields={"BOOL": _dropdown("TRUE", "FALSE", labels=("true", "false"))},
        category="Logic",
        colour=LOGIC_COLOUR,
    ),
    BlockType(
        type_id="logic_compare",
        shape=BlockShape.EXPRESSION,
        output="Boolean",
        sockets=[ValueSocket("A"), ValueSocket("B")],
        fields={"OP": _dropdown("EQ", "NEQ", "LT", "LTE", "GT", "GTE",
                                labels=("=", "≠", "<", "≤", ">", "≥"))},
        category="Logic",
        colour=LOGIC_COLOUR,
    ),
    BlockType(
        type_id="logic_operation",
        shape=BlockShape.EXPRESSION,
        output="Boolean",
        sockets=[
            ValueSocket("A", check=("Boolean",), default_literal="false"),
            ValueSocket("B", check=("Boolean",), default_literal="false"),
        ],
        fields={"OP": _dropdown("AND", "OR", labels=("and", "or"))},
        category="Logic",
        colour=LOGIC_COLOUR,
    ),
    BlockType(
        type_id="logic_negate",
        shape=BlockShape.EXPRESSION,
        output="Boolean",
        sockets=[ValueSocket("BOOL", check=("Boolean",), default_literal="true")],
        category="Logic",
        colour=LOGIC_COLOUR,
    ),

    # Control
    BlockType(
        type_id="controls_if",
        shape=BlockShape.STATEMENT,
        sockets=[
            ValueSocket("IF0", check=("Boolean",), default_literal="false"),
            StatementSocket("DO0"),
            StatementSocket("ELSE"),
        ],
        category="Control",
        colour=CONTROL_COLOUR,
    ),
    BlockType(
        type_id="controls_repeat_ext",
        shape=BlockShape.STATEMENT,
        sockets=[
            ValueSocket("TIMES", check=("Number",), shadow=ShadowSpec("math_number", {"NUM": 10})),
            StatementSocket("DO"),
        ],
        category="Control",
        colour=CONTROL_COLOUR,
    ),
    BlockType(
        type_id="controls_whileUntil",
        shape=BlockShape.STATEMENT,
        sockets=[ValueSocket("BOOL", check=("Boolean",), default_literal="false"),
                 StatementSocket("DO")],
        fields={"MODE": _dropdown("WHILE", "UNTIL", labels=("repeat while", "repeat until"))},
        category="Control",
        colour=CONTROL_COLOUR,
    ),

    # Variables
    BlockType(
        type_id="variables_get",
        shape=BlockShape.EXPRESSION,
        fields={"VAR": FieldSpec(kind=FieldKind.VARIABLE, default="item")},
        category="Variables",
        colour=VARIABLES_COLOUR,
    ),
    BlockType(
        type_id="variables_set",
        shape=BlockShape.STATEMENT,
        sockets=[ValueSocket("VALUE")],
        fields={"VAR": FieldSpec(kind=FieldKind.VARIABLE, default="item")},
        category="Variables",
        colour=VARIABLES_COLOUR,
    ),
]
