"""
Block Vocabulary: the closed set of block types a workspace may contain.

Each block type declares:
    kind      one of NodeKind (statement | expression | value | container)
    fields    literal slots (number | string | boolean | enum), some of which
              are mutations that reshape the block (item counts, else-if
              counts, procedure parameters)
    slots     named child positions, either a value input (expression/value
              nodes) or a statement input (a statement chain)
    labels    display text per display language; never affects semantics
    doc       the evaluation semantics every emitter must honour

Type names follow Blockly so that workspaces exported from a Blockly editor
load without translation.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .exceptions import ValidationError


class NodeKind(Enum):
    """Closed enumeration of node categories."""
    STATEMENT = "statement"
    EXPRESSION = "expression"
    VALUE = "value"
    CONTAINER = "container"


class FieldType(Enum):
    """Primitive type of a block field."""
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    ENUM = "enum"


class SlotType(Enum):
    """Kind of child position a block declares."""
    VALUE = "value"
    STATEMENT = "statement"


DISPLAY_LANGUAGES = ("en", "id")
DEFAULT_DISPLAY_LANGUAGE = "en"

# Category names shown in the toolbox, per display language
CATEGORY_NAMES: Dict[str, Dict[str, str]] = {
    "en": {
        "logic": "Logic",
        "loops": "Loops",
        "math": "Math",
        "text": "Text",
        "lists": "Lists",
        "variables": "Variables",
        "functions": "Functions",
    },
    "id": {
        "logic": "Logika",
        "loops": "Perulangan",
        "math": "Matematika",
        "text": "Teks",
        "lists": "Array",
        "variables": "Variabel",
        "functions": "Fungsi",
    },
}


@dataclass(frozen=True)
class FieldSpec:
    """Declaration of one literal field on a block."""
    name: str
    type: FieldType
    default: Any = None
    options: Tuple[str, ...] = ()
    mutation: bool = False      # serialized inside <mutation> rather than <field>
    attribute: str = ""         # mutation attribute name
    integer: bool = False
    minimum: Optional[int] = None

    def validate(self, value: Any, node_id: Optional[str] = None) -> Any:
        """Check ``value`` against this field's primitive type and return it normalized."""
        if self.type is FieldType.NUMBER:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(
                    f"Field {self.name} expects a number, got {type(value).__name__}", node_id)
            if isinstance(value, float) and not math.isfinite(value):
                raise ValidationError(f"Field {self.name} must be finite", node_id)
            if self.integer:
                if isinstance(value, float):
                    if not value.is_integer():
                        raise ValidationError(f"Field {self.name} expects an integer", node_id)
                    value = int(value)
                if self.minimum is not None and value < self.minimum:
                    raise ValidationError(
                        f"Field {self.name} must be >= {self.minimum}", node_id)
            return value
        if self.type is FieldType.BOOLEAN:
            if not isinstance(value, bool):
                raise ValidationError(
                    f"Field {self.name} expects a boolean, got {type(value).__name__}", node_id)
            return value
        if self.type is FieldType.ENUM:
            if value not in self.options:
                raise ValidationError(
                    f"Field {self.name} must be one of {', '.join(self.options)}, got {value!r}",
                    node_id)
            return value
        if not isinstance(value, str):
            raise ValidationError(
                f"Field {self.name} expects a string, got {type(value).__name__}", node_id)
        value = value.replace("\r\n", "\n").replace("\r", "\n")
        for ch in value:
            if not _xml_safe(ch):
                raise ValidationError(
                    f"Field {self.name} contains unsupported character {ch!r}", node_id)
        return value


def _xml_safe(ch: str) -> bool:
    code = ord(ch)
    if code in (0x9, 0xA):
        return True
    if code < 0x20 or code in (0xFFFE, 0xFFFF):
        return False
    return not 0xD800 <= code <= 0xDFFF


@dataclass(frozen=True)
class SlotSpec:
    """Declaration of one named child position."""
    name: str
    type: SlotType
    required: bool = True
    when: Optional[Callable[[Mapping[str, Any]], bool]] = None


@dataclass(frozen=True)
class RepeatGroup:
    """A run of fields/slots whose length is set by a count field.

    Templates contain ``{}`` which is replaced by the index. When
    ``as_args`` is set, the group's string fields travel as
    ``<arg name="...">`` entries in the mutation and the count is implied
    by how many there are.
    """
    count_field: str
    slots: Tuple[Tuple[str, SlotType, bool], ...] = ()
    fields: Tuple[str, ...] = ()
    start: int = 0
    as_args: bool = False

    def indices(self, values: Mapping[str, Any]) -> range:
        count = int(values.get(self.count_field, 0) or 0)
        return range(self.start, self.start + count)


FieldEntry = Union[FieldSpec, RepeatGroup]
SlotEntry = Union[SlotSpec, RepeatGroup]


@dataclass(frozen=True)
class BlockSpec:
    """Static description of a block type."""
    type: str
    kind: NodeKind
    category: str
    fields: Tuple[FieldEntry, ...] = ()
    slots: Tuple[SlotEntry, ...] = ()
    labels: Dict[str, str] = field(default_factory=dict)
    doc: str = ""

    @property
    def args_group(self) -> Optional[RepeatGroup]:
        for entry in self.fields:
            if isinstance(entry, RepeatGroup) and entry.as_args:
                return entry
        return None

    def static_fields(self) -> List[FieldSpec]:
        return [entry for entry in self.fields if isinstance(entry, FieldSpec)]

    def declared_fields(self, values: Mapping[str, Any]) -> List[FieldSpec]:
        """Expand repeat groups against ``values`` and return every field in order."""
        result: List[FieldSpec] = []
        for entry in self.fields:
            if isinstance(entry, FieldSpec):
                result.append(entry)
                continue
            for index in entry.indices(values):
                for template in entry.fields:
                    result.append(FieldSpec(template.format(index), FieldType.STRING, default=""))
        return result

    def declared_slots(self, values: Mapping[str, Any]) -> List[SlotSpec]:
        """Expand repeat groups and conditional slots against ``values``."""
        result: List[SlotSpec] = []
        for entry in self.slots:
            if isinstance(entry, SlotSpec):
                if entry.when is None or entry.when(values):
                    result.append(entry)
                continue
            for index in entry.indices(values):
                for template, slot_type, required in entry.slots:
                    result.append(SlotSpec(template.format(index), slot_type, required))
        return result

    def slot_names(self, values: Mapping[str, Any]) -> List[str]:
        return [slot.name for slot in self.declared_slots(values)]

    def slot_spec(self, name: str, values: Mapping[str, Any]) -> Optional[SlotSpec]:
        for slot in self.declared_slots(values):
            if slot.name == name:
                return slot
        return None

    def normalize_fields(self, values: Mapping[str, Any],
                         node_id: Optional[str] = None) -> Dict[str, Any]:
        """Validate ``values`` and fill defaults, returning fields in declaration order."""
        result: Dict[str, Any] = {}
        for spec in self.static_fields():
            raw = values.get(spec.name, spec.default)
            result[spec.name] = spec.validate(raw, node_id)
        for spec in self.declared_fields(result):
            if spec.name in result:
                continue
            raw = values.get(spec.name, spec.default)
            result[spec.name] = spec.validate(raw, node_id)
        unknown = [name for name in values if name not in result]
        if unknown:
            raise ValidationError(
                f"Block {self.type} does not declare field(s): {', '.join(sorted(unknown))}",
                node_id)
        return result

    def label(self, language: str = DEFAULT_DISPLAY_LANGUAGE) -> str:
        return self.labels.get(language) or self.labels.get(DEFAULT_DISPLAY_LANGUAGE, self.type)


# ---------------------------------------------------------------------------
# Declaration helpers
# ---------------------------------------------------------------------------

def _enum(name: str, *options: str) -> FieldSpec:
    return FieldSpec(name, FieldType.ENUM, default=options[0], options=tuple(options))


def _string(name: str, default: str = "") -> FieldSpec:
    return FieldSpec(name, FieldType.STRING, default=default)


def _count(name: str, attribute: str, default: int = 0) -> FieldSpec:
    return FieldSpec(name, FieldType.NUMBER, default=default, mutation=True,
                     attribute=attribute, integer=True, minimum=0)


def _flag(name: str, attribute: str, default: bool = False) -> FieldSpec:
    return FieldSpec(name, FieldType.BOOLEAN, default=default, mutation=True,
                     attribute=attribute)


def _value(name: str, required: bool = True, when=None) -> SlotSpec:
    return SlotSpec(name, SlotType.VALUE, required, when)


def _statement(name: str, when=None) -> SlotSpec:
    return SlotSpec(name, SlotType.STATEMENT, False, when)


def _labels(en: str, id_: str) -> Dict[str, str]:
    return {"en": en, "id": id_}


# ---------------------------------------------------------------------------
# The vocabulary
# ---------------------------------------------------------------------------

_SPECS: List[BlockSpec] = [
    # -- values -------------------------------------------------------------
    BlockSpec(
        "math_number", NodeKind.VALUE, "math",
        fields=(FieldSpec("NUM", FieldType.NUMBER, default=0),),
        labels=_labels("number", "angka"),
        doc="Numeric literal. Integers stay integers; floats keep their exact value.",
    ),
    BlockSpec(
        "text", NodeKind.VALUE, "text",
        fields=(_string("TEXT"),),
        labels=_labels("text", "teks"),
        doc="String literal.",
    ),
    BlockSpec(
        "logic_boolean", NodeKind.VALUE, "logic",
        fields=(_enum("BOOL", "TRUE", "FALSE"),),
        labels=_labels("true / false", "benar / salah"),
        doc="Boolean literal.",
    ),
    BlockSpec(
        "logic_null", NodeKind.VALUE, "logic",
        labels=_labels("null", "null"),
        doc="The absent value (None / null).",
    ),

    # -- expressions --------------------------------------------------------
    BlockSpec(
        "variables_get", NodeKind.EXPRESSION, "variables",
        fields=(_string("VAR", "item"),),
        labels=_labels("get %1", "ambil %1"),
        doc="Reads a variable local to the enclosing procedure (or the script).",
    ),
    BlockSpec(
        "math_arithmetic", NodeKind.EXPRESSION, "math",
        fields=(_enum("OP", "ADD", "MINUS", "MULTIPLY", "DIVIDE", "POWER"),),
        slots=(_value("A"), _value("B")),
        labels=_labels("%1 %2 %3", "%1 %2 %3"),
        doc="Evaluates A then B and combines them. DIVIDE is true (non-integer) "
            "division; POWER raises A to B.",
    ),
    BlockSpec(
        "math_single", NodeKind.EXPRESSION, "math",
        fields=(_enum("OP", "ROOT", "ABS", "NEG", "LN", "LOG10", "EXP", "POW10"),),
        slots=(_value("NUM"),),
        labels=_labels("%1 %2", "%1 %2"),
        doc="Applies one unary numeric function to NUM.",
    ),
    BlockSpec(
        "math_round", NodeKind.EXPRESSION, "math",
        fields=(_enum("OP", "ROUND", "ROUNDUP", "ROUNDDOWN"),),
        slots=(_value("NUM"),),
        labels=_labels("round %1", "bulatkan %1"),
        doc="ROUND goes to the nearest integer (ties follow the target language's "
            "native rounding); ROUNDUP is ceiling, ROUNDDOWN is floor.",
    ),
    BlockSpec(
        "math_modulo", NodeKind.EXPRESSION, "math",
        slots=(_value("DIVIDEND"), _value("DIVISOR")),
        labels=_labels("remainder of %1 ÷ %2", "sisa bagi %1 ÷ %2"),
        doc="Remainder of DIVIDEND by DIVISOR using the target's native sign rules.",
    ),
    BlockSpec(
        "math_number_property", NodeKind.EXPRESSION, "math",
        fields=(_enum("PROPERTY", "EVEN", "ODD", "WHOLE", "POSITIVE", "NEGATIVE",
                      "DIVISIBLE_BY"),),
        slots=(
            _value("NUMBER_TO_CHECK"),
            _value("DIVISOR", when=lambda f: f.get("PROPERTY") == "DIVISIBLE_BY"),
        ),
        labels=_labels("%1 is %2", "%1 adalah %2"),
        doc="Tests a property of NUMBER_TO_CHECK; ODD means a remainder of 1 by 2, sign ignored. "
            "DIVISOR exists only for DIVISIBLE_BY.",
    ),
    BlockSpec(
        "math_on_list", NodeKind.EXPRESSION, "math",
        fields=(_enum("OP", "SUM", "MIN", "MAX", "AVERAGE"),),
        slots=(_value("LIST"),),
        labels=_labels("%1 of list %2", "%1 dari list %2"),
        doc="Aggregates a list of numbers; LIST is evaluated exactly once.",
    ),
    BlockSpec(
        "logic_compare", NodeKind.EXPRESSION, "logic",
        fields=(_enum("OP", "EQ", "NEQ", "LT", "LTE", "GT", "GTE"),),
        slots=(_value("A"), _value("B")),
        labels=_labels("%1 %2 %3", "%1 %2 %3"),
        doc="Evaluates A then B and compares them.",
    ),
    BlockSpec(
        "logic_operation", NodeKind.EXPRESSION, "logic",
        fields=(_enum("OP", "AND", "OR"),),
        slots=(_value("A"), _value("B")),
        labels=_labels("%1 %2 %3", "%1 %2 %3"),
        doc="Short-circuit: A is evaluated first and B only when A does not decide "
            "the result.",
    ),
    BlockSpec(
        "logic_negate", NodeKind.EXPRESSION, "logic",
        slots=(_value("BOOL"),),
        labels=_labels("not %1", "bukan %1"),
        doc="Logical negation.",
    ),
    BlockSpec(
        "logic_ternary", NodeKind.EXPRESSION, "logic",
        slots=(_value("IF"), _value("THEN"), _value("ELSE")),
        labels=_labels("test %1 if true %2 if false %3",
                       "uji %1 jika benar %2 jika salah %3"),
        doc="IF is evaluated first; only the chosen branch is evaluated afterwards.",
    ),
    BlockSpec(
        "text_join", NodeKind.EXPRESSION, "text",
        fields=(_count("ITEMS", "items", 2),),
        slots=(RepeatGroup("ITEMS", slots=(("ADD{}", SlotType.VALUE, False),)),),
        labels=_labels("create text with", "buat teks dengan"),
        doc="Converts each item to text and concatenates them left to right; an "
            "empty item contributes nothing.",
    ),
    BlockSpec(
        "text_length", NodeKind.EXPRESSION, "text",
        slots=(_value("VALUE"),),
        labels=_labels("length of %1", "panjang %1"),
        doc="Number of characters in VALUE.",
    ),
    BlockSpec(
        "text_isEmpty", NodeKind.EXPRESSION, "text",
        slots=(_value("VALUE"),),
        labels=_labels("%1 is empty", "%1 kosong"),
        doc="True when VALUE has no characters.",
    ),
    BlockSpec(
        "text_changeCase", NodeKind.EXPRESSION, "text",
        fields=(_enum("CASE", "UPPERCASE", "LOWERCASE", "TITLECASE"),),
        slots=(_value("TEXT"),),
        labels=_labels("to %1 %2", "ubah ke %1 %2"),
        doc="Changes the letter case of TEXT.",
    ),
    BlockSpec(
        "lists_create_with", NodeKind.EXPRESSION, "lists",
        fields=(_count("ITEMS", "items", 3),),
        slots=(RepeatGroup("ITEMS", slots=(("ADD{}", SlotType.VALUE, False),)),),
        labels=_labels("create list with", "buat list dengan"),
        doc="Builds a list from the items in order; an empty item is null.",
    ),
    BlockSpec(
        "lists_length", NodeKind.EXPRESSION, "lists",
        slots=(_value("VALUE"),),
        labels=_labels("length of %1", "panjang %1"),
        doc="Number of items in VALUE.",
    ),
    BlockSpec(
        "lists_isEmpty", NodeKind.EXPRESSION, "lists",
        slots=(_value("VALUE"),),
        labels=_labels("%1 is empty", "%1 kosong"),
        doc="True when VALUE has no items.",
    ),
    BlockSpec(
        "lists_getIndex", NodeKind.EXPRESSION, "lists",
        fields=(_enum("MODE", "GET"), _enum("WHERE", "FROM_START", "FROM_END", "FIRST", "LAST")),
        slots=(
            _value("VALUE"),
            _value("AT", when=lambda f: f.get("WHERE") in ("FROM_START", "FROM_END")),
        ),
        labels=_labels("in list %1 get %2", "dalam list %1 ambil %2"),
        doc="Reads one item. Positions are 1-based; FROM_END counts 1 as the last item.",
    ),
    BlockSpec(
        "procedures_callreturn", NodeKind.EXPRESSION, "functions",
        fields=(
            FieldSpec("NAME", FieldType.STRING, default="do_something", mutation=True,
                      attribute="name"),
            _count("ARGS", ""),
            RepeatGroup("ARGS", fields=("ARGNAME{}",), as_args=True),
        ),
        slots=(RepeatGroup("ARGS", slots=(("ARG{}", SlotType.VALUE, True),)),),
        labels=_labels("call %1", "panggil %1"),
        doc="Evaluates arguments left to right, then calls the named procedure and "
            "yields its return value.",
    ),

    # -- statements ---------------------------------------------------------
    BlockSpec(
        "variables_set", NodeKind.STATEMENT, "variables",
        fields=(_string("VAR", "item"),),
        slots=(_value("VALUE"),),
        labels=_labels("set %1 to %2", "atur %1 menjadi %2"),
        doc="Assigns VALUE to a variable local to the enclosing procedure.",
    ),
    BlockSpec(
        "math_change", NodeKind.STATEMENT, "variables",
        fields=(_string("VAR", "item"),),
        slots=(_value("DELTA"),),
        labels=_labels("change %1 by %2", "ubah %1 sebesar %2"),
        doc="Adds DELTA to a variable that already holds a number.",
    ),
    BlockSpec(
        "text_print", NodeKind.STATEMENT, "text",
        slots=(_value("TEXT"),),
        labels=_labels("print %1", "cetak %1"),
        doc="Writes TEXT followed by a newline to the program's console.",
    ),
    BlockSpec(
        "text_append", NodeKind.STATEMENT, "text",
        fields=(_string("VAR", "item"),),
        slots=(_value("TEXT"),),
        labels=_labels("to %1 append text %2", "ke %1 tambahkan teks %2"),
        doc="Appends the text form of TEXT to a variable holding text.",
    ),
    BlockSpec(
        "controls_if", NodeKind.STATEMENT, "logic",
        fields=(_count("ELSEIF", "elseif"), _flag("ELSE", "else")),
        slots=(
            _value("IF0"), _statement("DO0"),
            RepeatGroup("ELSEIF", slots=(("IF{}", SlotType.VALUE, True),
                                         ("DO{}", SlotType.STATEMENT, False)), start=1),
            _statement("ELSE", when=lambda f: bool(f.get("ELSE"))),
        ),
        labels=_labels("if %1 do %2", "jika %1 lakukan %2"),
        doc="Conditions are tested top to bottom; the first true branch runs, "
            "otherwise ELSE when present.",
    ),
    BlockSpec(
        "controls_repeat_ext", NodeKind.STATEMENT, "loops",
        slots=(_value("TIMES"), _statement("DO")),
        labels=_labels("repeat %1 times", "ulangi %1 kali"),
        doc="TIMES is evaluated once and truncated to an integer; DO runs that many times.",
    ),
    BlockSpec(
        "controls_whileUntil", NodeKind.STATEMENT, "loops",
        fields=(_enum("MODE", "WHILE", "UNTIL"),),
        slots=(_value("BOOL"), _statement("DO")),
        labels=_labels("repeat %1 %2", "ulangi %1 %2"),
        doc="WHILE loops as long as BOOL holds; UNTIL loops until it holds. BOOL is "
            "re-evaluated before every iteration.",
    ),
    BlockSpec(
        "controls_for", NodeKind.STATEMENT, "loops",
        fields=(_string("VAR", "i"),),
        slots=(_value("FROM"), _value("TO"), _value("BY"), _statement("DO")),
        labels=_labels("count with %1 from %2 to %3 by %4",
                       "hitung dengan %1 dari %2 sampai %3 setiap %4"),
        doc="FROM, TO and BY are evaluated once, in that order. VAR walks from FROM to "
            "TO inclusive in steps of |BY|, counting down when FROM > TO.",
    ),
    BlockSpec(
        "controls_forEach", NodeKind.STATEMENT, "loops",
        fields=(_string("VAR", "j"),),
        slots=(_value("LIST"), _statement("DO")),
        labels=_labels("for each item %1 in list %2",
                       "untuk setiap item %1 dalam list %2"),
        doc="LIST is evaluated once; VAR takes each item in order.",
    ),
    BlockSpec(
        "controls_flow_statements", NodeKind.STATEMENT, "loops",
        fields=(_enum("FLOW", "BREAK", "CONTINUE"),),
        labels=_labels("%1 of loop", "%1 dari perulangan"),
        doc="Leaves the innermost loop (BREAK) or skips to its next iteration "
            "(CONTINUE). Only valid inside a loop.",
    ),
    BlockSpec(
        "procedures_ifreturn", NodeKind.STATEMENT, "functions",
        fields=(_flag("HAS_VALUE", "value", True),),
        slots=(_value("CONDITION"),
               _value("VALUE", when=lambda f: bool(f.get("HAS_VALUE")))),
        labels=_labels("if %1 return %2", "jika %1 kembalikan %2"),
        doc="Returns from the enclosing procedure when CONDITION holds. Only valid "
            "inside a procedure.",
    ),
    BlockSpec(
        "procedures_callnoreturn", NodeKind.STATEMENT, "functions",
        fields=(
            FieldSpec("NAME", FieldType.STRING, default="do_something", mutation=True,
                      attribute="name"),
            _count("ARGS", ""),
            RepeatGroup("ARGS", fields=("ARGNAME{}",), as_args=True),
        ),
        slots=(RepeatGroup("ARGS", slots=(("ARG{}", SlotType.VALUE, True),)),),
        labels=_labels("call %1", "panggil %1"),
        doc="Evaluates arguments left to right and calls the named procedure, "
            "discarding any result.",
    ),

    # -- containers ---------------------------------------------------------
    BlockSpec(
        "procedures_defreturn", NodeKind.CONTAINER, "functions",
        fields=(
            _string("NAME", "do_something"),
            _count("PARAMS", ""),
            RepeatGroup("PARAMS", fields=("ARG{}",), as_args=True),
        ),
        slots=(_statement("STACK"), _value("RETURN")),
        labels=_labels("to %1 with %2 return %3", "untuk %1 dengan %2 kembalikan %3"),
        doc="Defines a procedure. STACK runs first, then RETURN is evaluated and returned.",
    ),
    BlockSpec(
        "procedures_defnoreturn", NodeKind.CONTAINER, "functions",
        fields=(
            _string("NAME", "do_something"),
            _count("PARAMS", ""),
            RepeatGroup("PARAMS", fields=("ARG{}",), as_args=True),
        ),
        slots=(_statement("STACK"),),
        labels=_labels("to %1 with %2", "untuk %1 dengan %2"),
        doc="Defines a procedure without a result.",
    ),
]

BLOCK_SPECS: Dict[str, BlockSpec] = {spec.type: spec for spec in _SPECS}

LOOP_BLOCKS = frozenset({"controls_repeat_ext", "controls_whileUntil",
                         "controls_for", "controls_forEach"})
PROCEDURE_BLOCKS = frozenset({"procedures_defreturn", "procedures_defnoreturn"})


def get_block_spec(block_type: str) -> BlockSpec:
    """Look up a block type, raising ValidationError when it is not in the vocabulary."""
    spec = BLOCK_SPECS.get(block_type)
    if spec is None:
        raise ValidationError(f"Unknown block type: {block_type!r}")
    return spec


def block_types() -> List[str]:
    return list(BLOCK_SPECS)


def block_label(block_type: str, language: str = DEFAULT_DISPLAY_LANGUAGE) -> str:
    return get_block_spec(block_type).label(language)


def category_name(category: str, language: str = DEFAULT_DISPLAY_LANGUAGE) -> str:
    names = CATEGORY_NAMES.get(language, CATEGORY_NAMES[DEFAULT_DISPLAY_LANGUAGE])
    return names.get(category, category)


def describe_vocabulary(language: str = DEFAULT_DISPLAY_LANGUAGE) -> List[Dict[str, Any]]:
    """Toolbox-style description of every block, grouped order preserved."""
    entries = []
    for spec in _SPECS:
        entries.append({
            "type": spec.type,
            "kind": spec.kind.value,
            "category": spec.category,
            "category_name": category_name(spec.category, language),
            "label": spec.label(language),
            "fields": [
                {"name": f.name, "type": f.type.value, "default": f.default,
                 "options": list(f.options)}
                for f in spec.static_fields()
            ],
            "doc": spec.doc,
        })
    return entries
