"""
Shared graph builders and hypothesis strategies for the test suite.
"""

from hypothesis import strategies as st

from block_grader_core.block_vocabulary import FieldSpec, FieldType
from block_grader_core.exceptions import ValidationError
from block_grader_core.models import BlockGraph, BlockNode


def number(value):
    return BlockNode("math_number", {"NUM": value})


def text(value):
    return BlockNode("text", {"TEXT": value})


def get(name):
    return BlockNode("variables_get", {"VAR": name})


def arithmetic(op, a, b):
    return BlockNode("math_arithmetic", {"OP": op}, children={"A": a, "B": b})


def set_var(name, value):
    return BlockNode("variables_set", {"VAR": name}, children={"VALUE": value})


def print_block(value):
    return BlockNode("text_print", children={"TEXT": value})


def chain(*nodes):
    for current, successor in zip(nodes, nodes[1:]):
        current.set_next(successor)
    return nodes[0]


def function(name, params, body=None, returns=None):
    """A procedure definition; ``returns`` makes it a defreturn."""
    fields = {"NAME": name, "PARAMS": len(params)}
    for index, param in enumerate(params):
        fields[f"ARG{index}"] = param
    children = {}
    if body is not None:
        children["STACK"] = body
    if returns is not None:
        children["RETURN"] = returns
        return BlockNode("procedures_defreturn", fields, children=children)
    return BlockNode("procedures_defnoreturn", fields, children=children)


def doubled_sum_graph(name="solution"):
    """solution(a, b) returns 2 * (a + b)."""
    body = arithmetic("MULTIPLY", number(2), arithmetic("ADD", get("a"), get("b")))
    return BlockGraph([function(name, ["a", "b"], returns=body)])


def plain_sum_graph(name="solution"):
    """solution(a, b) returns a + b."""
    return BlockGraph([function(name, ["a", "b"], returns=arithmetic("ADD", get("a"), get("b")))])


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

_STRING_FIELD = FieldSpec("TEXT", FieldType.STRING)


def _storable(value):
    try:
        _STRING_FIELD.validate(value)
    except ValidationError:
        return False
    return True


# Any text a string field accepts, in its normalized form: whitespace,
# newlines, tabs and astral characters included.
FIELD_TEXT = st.text(max_size=8).filter(_storable).map(_STRING_FIELD.validate)

VARIABLE_NAMES = st.one_of(
    st.sampled_from(["x", "y", "total", "Item", "item", "my var", "2nd", "print"]),
    FIELD_TEXT,
)
PROCEDURE_NAMES = st.one_of(
    st.sampled_from(["do_something", "helper", "compute", "my proc"]),
    FIELD_TEXT,
)
NUMBERS = st.one_of(
    st.integers(min_value=-1000, max_value=1000),
    st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False),
)

MAX_DEPTH = 2


def _leaf(draw):
    kind = draw(st.sampled_from(["math_number", "text", "logic_boolean", "logic_null",
                                 "variables_get"]))
    if kind == "math_number":
        return BlockNode(kind, {"NUM": draw(NUMBERS)})
    if kind == "text":
        return BlockNode(kind, {"TEXT": draw(FIELD_TEXT)})
    if kind == "logic_boolean":
        return BlockNode(kind, {"BOOL": draw(st.sampled_from(["TRUE", "FALSE"]))})
    if kind == "variables_get":
        return BlockNode(kind, {"VAR": draw(VARIABLE_NAMES)})
    return BlockNode(kind)


def _expression(draw, depth):
    if depth >= MAX_DEPTH or draw(st.booleans()):
        return _leaf(draw)
    sub = lambda: _expression(draw, depth + 1)  # noqa: E731
    kind = draw(st.sampled_from([
        "math_arithmetic", "logic_compare", "logic_operation", "logic_negate", "logic_ternary",
        "text_join", "lists_create_with", "math_number_property", "lists_getIndex",
        "procedures_callreturn", "math_single", "math_round", "math_modulo", "math_on_list",
        "text_length", "text_changeCase", "lists_length", "text_isEmpty", "lists_isEmpty",
    ]))
    if kind == "math_arithmetic":
        op = draw(st.sampled_from(["ADD", "MINUS", "MULTIPLY", "DIVIDE", "POWER"]))
        return BlockNode(kind, {"OP": op}, children={"A": sub(), "B": sub()})
    if kind == "logic_compare":
        op = draw(st.sampled_from(["EQ", "NEQ", "LT", "LTE", "GT", "GTE"]))
        return BlockNode(kind, {"OP": op}, children={"A": sub(), "B": sub()})
    if kind == "logic_operation":
        op = draw(st.sampled_from(["AND", "OR"]))
        return BlockNode(kind, {"OP": op}, children={"A": sub(), "B": sub()})
    if kind == "logic_negate":
        return BlockNode(kind, children={"BOOL": sub()})
    if kind == "logic_ternary":
        return BlockNode(kind, children={"IF": sub(), "THEN": sub(), "ELSE": sub()})
    if kind in ("text_join", "lists_create_with"):
        count = draw(st.integers(min_value=0, max_value=3))
        children = {f"ADD{i}": sub() for i in range(count) if draw(st.booleans())}
        return BlockNode(kind, {"ITEMS": count}, children=children)
    if kind == "math_number_property":
        prop = draw(st.sampled_from(["EVEN", "ODD", "WHOLE", "POSITIVE", "NEGATIVE",
                                     "DIVISIBLE_BY"]))
        children = {"NUMBER_TO_CHECK": sub()}
        if prop == "DIVISIBLE_BY":
            children["DIVISOR"] = sub()
        return BlockNode(kind, {"PROPERTY": prop}, children=children)
    if kind == "lists_getIndex":
        where = draw(st.sampled_from(["FROM_START", "FROM_END", "FIRST", "LAST"]))
        children = {"VALUE": sub()}
        if where in ("FROM_START", "FROM_END"):
            children["AT"] = sub()
        return BlockNode(kind, {"MODE": "GET", "WHERE": where}, children=children)
    if kind == "procedures_callreturn":
        return _call(draw, kind, depth)
    if kind == "math_single":
        op = draw(st.sampled_from(["ROOT", "ABS", "NEG", "LN", "LOG10", "EXP", "POW10"]))
        return BlockNode(kind, {"OP": op}, children={"NUM": sub()})
    if kind == "math_round":
        op = draw(st.sampled_from(["ROUND", "ROUNDUP", "ROUNDDOWN"]))
        return BlockNode(kind, {"OP": op}, children={"NUM": sub()})
    if kind == "math_modulo":
        return BlockNode(kind, children={"DIVIDEND": sub(), "DIVISOR": sub()})
    if kind == "math_on_list":
        op = draw(st.sampled_from(["SUM", "MIN", "MAX", "AVERAGE"]))
        return BlockNode(kind, {"OP": op}, children={"LIST": sub()})
    if kind == "text_changeCase":
        case = draw(st.sampled_from(["UPPERCASE", "LOWERCASE", "TITLECASE"]))
        return BlockNode(kind, {"CASE": case}, children={"TEXT": sub()})
    return BlockNode(kind, children={"VALUE": sub()})


def _call(draw, kind, depth):
    count = draw(st.integers(min_value=0, max_value=2))
    fields = {"NAME": draw(PROCEDURE_NAMES), "ARGS": count}
    children = {}
    for index in range(count):
        fields[f"ARGNAME{index}"] = draw(VARIABLE_NAMES)
        children[f"ARG{index}"] = _expression(draw, depth + 1)
    return BlockNode(kind, fields, children=children)


def _statement(draw, depth, in_loop, procedure):
    kinds = ["variables_set", "math_change", "text_print", "text_append",
             "procedures_callnoreturn"]
    if depth < MAX_DEPTH:
        kinds += ["controls_if", "controls_repeat_ext", "controls_whileUntil", "controls_for",
                  "controls_forEach"]
    if in_loop:
        kinds.append("controls_flow_statements")
    if procedure is not None:
        kinds.append("procedures_ifreturn")
    kind = draw(st.sampled_from(kinds))
    expr = lambda: _expression(draw, depth + 1)  # noqa: E731

    def body(loop):
        return _chain(draw, depth + 1, loop, procedure)

    if kind in ("variables_set", "math_change", "text_append"):
        slot = {"variables_set": "VALUE", "math_change": "DELTA", "text_append": "TEXT"}[kind]
        return BlockNode(kind, {"VAR": draw(VARIABLE_NAMES)}, children={slot: expr()})
    if kind == "text_print":
        return BlockNode(kind, children={"TEXT": expr()})
    if kind == "procedures_callnoreturn":
        return _call(draw, kind, depth)
    if kind == "controls_flow_statements":
        return BlockNode(kind, {"FLOW": draw(st.sampled_from(["BREAK", "CONTINUE"]))})
    if kind == "procedures_ifreturn":
        has_value = procedure == "procedures_defreturn" and draw(st.booleans())
        children = {"CONDITION": expr()}
        if has_value:
            children["VALUE"] = expr()
        return BlockNode(kind, {"HAS_VALUE": has_value}, children=children)
    if kind == "controls_if":
        elseifs = draw(st.integers(min_value=0, max_value=2))
        has_else = draw(st.booleans())
        children = {}
        for index in range(elseifs + 1):
            children[f"IF{index}"] = expr()
            branch = body(in_loop)
            if branch is not None:
                children[f"DO{index}"] = branch
        if has_else:
            branch = body(in_loop)
            if branch is not None:
                children["ELSE"] = branch
        return BlockNode(kind, {"ELSEIF": elseifs, "ELSE": has_else}, children=children)

    children = {}
    if kind == "controls_repeat_ext":
        children["TIMES"] = expr()
        fields = {}
    elif kind == "controls_whileUntil":
        children["BOOL"] = expr()
        fields = {"MODE": draw(st.sampled_from(["WHILE", "UNTIL"]))}
    elif kind == "controls_for":
        children.update({"FROM": expr(), "TO": expr(), "BY": expr()})
        fields = {"VAR": draw(VARIABLE_NAMES)}
    else:
        children["LIST"] = expr()
        fields = {"VAR": draw(VARIABLE_NAMES)}
    loop_body = body(True)
    if loop_body is not None:
        children["DO"] = loop_body
    return BlockNode(kind, fields, children=children)


def _chain(draw, depth, in_loop=False, procedure=None):
    length = draw(st.integers(min_value=0 if depth else 1, max_value=3))
    if length == 0:
        return None
    nodes = [_statement(draw, depth, in_loop, procedure) for _ in range(length)]
    return chain(*nodes)


def _procedure(draw, name):
    kind = draw(st.sampled_from(["procedures_defreturn", "procedures_defnoreturn"]))
    params = draw(st.lists(VARIABLE_NAMES, max_size=2, unique=True))
    fields = {"NAME": name, "PARAMS": len(params)}
    for index, param in enumerate(params):
        fields[f"ARG{index}"] = param
    children = {}
    stack = _chain(draw, 1, False, kind)
    if stack is not None:
        children["STACK"] = stack
    if kind == "procedures_defreturn":
        children["RETURN"] = _expression(draw, 1)
    return BlockNode(kind, fields, children=children)


@st.composite
def block_graphs(draw):
    """Structurally valid graphs that every generator accepts."""
    graph = BlockGraph()
    used_names = set()
    for _ in range(draw(st.integers(min_value=0, max_value=3))):
        shape = draw(st.sampled_from(["procedure", "statements", "expression"]))
        if shape == "procedure":
            name = draw(PROCEDURE_NAMES.filter(lambda n: n not in used_names))
            used_names.add(name)
            root = _procedure(draw, name)
        elif shape == "expression":
            root = _expression(draw, 0)
        else:
            root = _chain(draw, 0)
        position = draw(st.one_of(
            st.none(),
            st.tuples(st.integers(-500, 500), st.integers(-500, 500)),
        ))
        graph.add_root(root, position)
    return graph
