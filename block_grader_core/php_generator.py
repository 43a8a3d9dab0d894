"""
PHP Code Generator for Block Graphs.

PHP functions cannot see variables from the enclosing script, which gives
every procedure its own locals without any declarations.
"""

from typing import List, Optional

from .code_generator import BlockCodeGenerator
from .models import BlockNode

PHP_RESERVED = (
    "__halt_compiler", "abstract", "and", "array", "as", "break", "callable", "case",
    "catch", "class", "clone", "const", "continue", "declare", "default", "die", "do",
    "echo", "else", "elseif", "empty", "enddeclare", "endfor", "endforeach", "endif",
    "endswitch", "endwhile", "eval", "exit", "extends", "final", "finally", "fn", "for",
    "foreach", "function", "global", "goto", "if", "implements", "include",
    "include_once", "instanceof", "insteadof", "interface", "isset", "list", "match",
    "namespace", "new", "or", "print", "private", "protected", "public", "readonly",
    "require", "require_once", "return", "static", "switch", "throw", "trait", "try",
    "unset", "use", "var", "while", "xor", "yield", "this",
    # builtins the generated code calls
    "abs", "array_slice", "array_sum", "ceil", "count", "exp", "floor", "fmod", "intval", "log",
    "log10", "max", "mb_convert_case", "mb_strlen", "mb_strtolower", "mb_strtoupper",
    "min", "pow", "round", "sqrt", "strval",
)

_PHP_ESCAPES = {"\\": "\\\\", '"': '\\"', "$": "\\$", "\n": "\\n", "\t": "\\t"}


def php_string(value: str) -> str:
    return '"' + "".join(_PHP_ESCAPES.get(ch, ch) for ch in value) + '"'


class PHPGenerator(BlockCodeGenerator):
    """Generates PHP code from a Block Graph."""

    language = "php"
    file_extension = ".php"
    indent_size = 4
    reserved_words = PHP_RESERVED
    case_insensitive_names = True
    statement_terminator = ";"

    ORDER_ATOMIC = 0
    ORDER_MEMBER = 2.1
    ORDER_FUNCTION_CALL = 2.2
    ORDER_UNARY_NEGATION = 4
    ORDER_LOGICAL_NOT = 6
    ORDER_MULTIPLICATIVE = 8
    ORDER_ADDITIVE = 9
    ORDER_STRING_CONCAT = 9.5
    ORDER_RELATIONAL = 11
    ORDER_EQUALITY = 12
    ORDER_LOGICAL_AND = 16
    ORDER_LOGICAL_OR = 17
    ORDER_CONDITIONAL = 19
    ORDER_ASSIGNMENT = 20
    ORDER_NONE = 99

    def format_variable(self, identifier: str) -> str:
        return "$" + identifier

    def null_literal(self) -> str:
        return "null"

    def _block(self, header: str, node: BlockNode, slot: str) -> List[str]:
        return [self._indent(header + " {")] + self.statement_to_lines(node, slot) + \
            [self._indent("}")]

    def define_function(self, name: str, params: List[str], body: List[str],
                        declared: List[str]) -> List[str]:
        return [self._indent(f"function {name}({', '.join(params)}) {{")] + body + \
            [self._indent("}")]

    def return_statement(self, code: Optional[str]) -> List[str]:
        return [self._indent(f"return {code};" if code is not None else "return;")]

    def file_header(self) -> List[str]:
        return ["<?php"]

    # -- values -------------------------------------------------------------

    def emit_math_number(self, node: BlockNode):
        value = node.fields["NUM"]
        code = str(value) if isinstance(value, int) else repr(value)
        return code, self.ORDER_UNARY_NEGATION if code.startswith("-") else self.ORDER_ATOMIC

    def emit_text(self, node: BlockNode):
        return php_string(node.fields["TEXT"]), self.ORDER_ATOMIC

    def emit_logic_boolean(self, node: BlockNode):
        return ("true" if node.fields["BOOL"] == "TRUE" else "false"), self.ORDER_ATOMIC

    def emit_logic_null(self, node: BlockNode):
        return "null", self.ORDER_ATOMIC

    # -- expressions --------------------------------------------------------

    def emit_variables_get(self, node: BlockNode):
        return self.variable(node.fields["VAR"]), self.ORDER_ATOMIC

    def emit_math_arithmetic(self, node: BlockNode):
        op = node.fields["OP"]
        if op == "POWER":
            a = self.value_to_code(node, "A", self.ORDER_NONE)
            b = self.value_to_code(node, "B", self.ORDER_NONE)
            return f"pow({a}, {b})", self.ORDER_FUNCTION_CALL
        operator, order = {
            "ADD": (" + ", self.ORDER_ADDITIVE),
            "MINUS": (" - ", self.ORDER_ADDITIVE),
            "MULTIPLY": (" * ", self.ORDER_MULTIPLICATIVE),
            "DIVIDE": (" / ", self.ORDER_MULTIPLICATIVE),
        }[op]
        a = self.value_to_code(node, "A", order)
        b = self.value_to_code(node, "B", order)
        return a + operator + b, order

    def emit_math_single(self, node: BlockNode):
        op = node.fields["OP"]
        if op == "NEG":
            return "-" + self.value_to_code(node, "NUM", self.ORDER_UNARY_NEGATION), \
                self.ORDER_UNARY_NEGATION
        arg = self.value_to_code(node, "NUM", self.ORDER_NONE)
        if op == "POW10":
            return f"pow(10, {arg})", self.ORDER_FUNCTION_CALL
        function = {"ROOT": "sqrt", "ABS": "abs", "LN": "log", "LOG10": "log10",
                    "EXP": "exp"}[op]
        return f"{function}({arg})", self.ORDER_FUNCTION_CALL

    def emit_math_round(self, node: BlockNode):
        function = {"ROUND": "round", "ROUNDUP": "ceil", "ROUNDDOWN": "floor"}[node.fields["OP"]]
        return f"{function}({self.value_to_code(node, 'NUM', self.ORDER_NONE)})", \
            self.ORDER_FUNCTION_CALL

    def emit_math_modulo(self, node: BlockNode):
        a = self.value_to_code(node, "DIVIDEND", self.ORDER_MULTIPLICATIVE)
        b = self.value_to_code(node, "DIVISOR", self.ORDER_MULTIPLICATIVE)
        return f"{a} % {b}", self.ORDER_MULTIPLICATIVE

    def emit_math_number_property(self, node: BlockNode):
        prop = node.fields["PROPERTY"]
        if prop in ("POSITIVE", "NEGATIVE"):
            number = self.value_to_code(node, "NUMBER_TO_CHECK", self.ORDER_RELATIONAL)
            return f"{number} {'>' if prop == 'POSITIVE' else '<'} 0", self.ORDER_RELATIONAL
        number = self.value_to_code(node, "NUMBER_TO_CHECK", self.ORDER_MULTIPLICATIVE)
        if prop == "ODD":
            return f"abs({number} % 2) == 1", self.ORDER_EQUALITY
        if prop == "WHOLE":
            return f"fmod({number}, 1) == 0", self.ORDER_EQUALITY
        if prop == "DIVISIBLE_BY":
            divisor = self.value_to_code(node, "DIVISOR", self.ORDER_MULTIPLICATIVE)
            return f"{number} % {divisor} == 0", self.ORDER_EQUALITY
        return f"{number} % 2 == 0", self.ORDER_EQUALITY

    def emit_math_on_list(self, node: BlockNode):
        values = self.value_to_code(node, "LIST", self.ORDER_NONE)
        op = node.fields["OP"]
        if op == "AVERAGE":
            helper = self.provide_function("math_mean", [
                "function {name}($myList) {",
                "    return array_sum($myList) / count($myList);",
                "}",
            ])
            return f"{helper}({values})", self.ORDER_FUNCTION_CALL
        function = {"SUM": "array_sum", "MIN": "min", "MAX": "max"}[op]
        return f"{function}({values})", self.ORDER_FUNCTION_CALL

    def emit_logic_compare(self, node: BlockNode):
        op = node.fields["OP"]
        operator = {"EQ": "==", "NEQ": "!=", "LT": "<", "LTE": "<=", "GT": ">",
                    "GTE": ">="}[op]
        order = self.ORDER_EQUALITY if op in ("EQ", "NEQ") else self.ORDER_RELATIONAL
        a = self.value_to_code(node, "A", order)
        b = self.value_to_code(node, "B", order)
        return f"{a} {operator} {b}", order

    def emit_logic_operation(self, node: BlockNode):
        if node.fields["OP"] == "AND":
            operator, order = "&&", self.ORDER_LOGICAL_AND
        else:
            operator, order = "||", self.ORDER_LOGICAL_OR
        a = self.value_to_code(node, "A", order)
        b = self.value_to_code(node, "B", order)
        return f"{a} {operator} {b}", order

    def emit_logic_negate(self, node: BlockNode):
        return "!" + self.value_to_code(node, "BOOL", self.ORDER_LOGICAL_NOT), self.ORDER_LOGICAL_NOT

    def emit_logic_ternary(self, node: BlockNode):
        condition = self.value_to_code(node, "IF", self.ORDER_CONDITIONAL)
        then = self.value_to_code(node, "THEN", self.ORDER_CONDITIONAL)
        otherwise = self.value_to_code(node, "ELSE", self.ORDER_CONDITIONAL)
        return f"{condition} ? {then} : {otherwise}", self.ORDER_CONDITIONAL

    def emit_text_join(self, node: BlockNode):
        present = [f"ADD{i}" for i in range(node.fields["ITEMS"]) if f"ADD{i}" in node.children]
        if not present:
            return "''", self.ORDER_ATOMIC
        if len(present) == 1:
            return f"strval({self.value_to_code(node, present[0], self.ORDER_NONE)})", \
                self.ORDER_FUNCTION_CALL
        parts = [self.value_to_code(node, slot, self.ORDER_STRING_CONCAT) for slot in present]
        return " . ".join(parts), self.ORDER_STRING_CONCAT

    def emit_text_length(self, node: BlockNode):
        return f"mb_strlen({self.value_to_code(node, 'VALUE', self.ORDER_NONE)})", \
            self.ORDER_FUNCTION_CALL

    def emit_text_isEmpty(self, node: BlockNode):
        return f"mb_strlen({self.value_to_code(node, 'VALUE', self.ORDER_NONE)}) == 0", \
            self.ORDER_EQUALITY

    def emit_text_changeCase(self, node: BlockNode):
        text = self.value_to_code(node, "TEXT", self.ORDER_NONE)
        case = node.fields["CASE"]
        if case == "TITLECASE":
            return f'mb_convert_case({text}, MB_CASE_TITLE, "UTF-8")', self.ORDER_FUNCTION_CALL
        function = "mb_strtoupper" if case == "UPPERCASE" else "mb_strtolower"
        return f"{function}({text})", self.ORDER_FUNCTION_CALL

    def emit_lists_create_with(self, node: BlockNode):
        items = [self.value_to_code(node, f"ADD{i}", self.ORDER_NONE)
                 for i in range(node.fields["ITEMS"])]
        return f"[{', '.join(items)}]", self.ORDER_ATOMIC

    def emit_lists_length(self, node: BlockNode):
        return f"count({self.value_to_code(node, 'VALUE', self.ORDER_NONE)})", \
            self.ORDER_FUNCTION_CALL

    def emit_lists_isEmpty(self, node: BlockNode):
        return f"empty({self.value_to_code(node, 'VALUE', self.ORDER_NONE)})", \
            self.ORDER_FUNCTION_CALL

    def emit_lists_getIndex(self, node: BlockNode):
        where = node.fields["WHERE"]
        literal = self.int_literal(node.children.get("AT"))
        if where == "FIRST":
            return f"{self.member_target(node, 'VALUE', self.ORDER_MEMBER)}[0]", self.ORDER_MEMBER
        if where == "FROM_START" and literal is not None and literal >= 1:
            values = self.member_target(node, "VALUE", self.ORDER_MEMBER)
            return f"{values}[{literal - 1}]", self.ORDER_MEMBER
        values = self.value_to_code(node, "VALUE", self.ORDER_NONE)
        if where == "LAST":
            return f"array_slice({values}, -1, 1)[0]", self.ORDER_MEMBER
        if where == "FROM_END" and literal is not None and literal >= 1:
            return f"array_slice({values}, {-literal}, 1)[0]", self.ORDER_MEMBER
        helper = self.provide_function("lists_get_index", [
            "function {name}($values, $at, $fromEnd) {",
            "    $at = (int) $at;",
            "    if ($at < 1 || $at > count($values)) {",
            "        throw new OutOfRangeException(\"List index $at is out of range\");",
            "    }",
            "    return $fromEnd ? $values[count($values) - $at] : $values[$at - 1];",
            "}",
        ])
        at = self.value_to_code(node, "AT", self.ORDER_NONE)
        from_end = "true" if where == "FROM_END" else "false"
        return f"{helper}({values}, {at}, {from_end})", self.ORDER_FUNCTION_CALL

    def _call(self, node: BlockNode) -> str:
        args = [self.value_to_code(node, f"ARG{i}", self.ORDER_NONE)
                for i in range(node.fields["ARGS"])]
        return f"{self.procedure_name(node.fields['NAME'])}({', '.join(args)})"

    def emit_procedures_callreturn(self, node: BlockNode):
        return self._call(node), self.ORDER_FUNCTION_CALL

    # -- statements ---------------------------------------------------------

    def emit_variables_set(self, node: BlockNode) -> List[str]:
        value = self.value_to_code(node, "VALUE", self.ORDER_ASSIGNMENT)
        return [self._indent(f"{self.variable(node.fields['VAR'])} = {value};")]

    def emit_math_change(self, node: BlockNode) -> List[str]:
        delta = self.value_to_code(node, "DELTA", self.ORDER_ASSIGNMENT)
        return [self._indent(f"{self.variable(node.fields['VAR'])} += {delta};")]

    def emit_text_print(self, node: BlockNode) -> List[str]:
        return [self._indent(f'echo {self.value_to_code(node, "TEXT", self.ORDER_NONE)}, "\\n";')]

    def emit_text_append(self, node: BlockNode) -> List[str]:
        name = self.variable(node.fields["VAR"])
        text = self.value_to_code(node, "TEXT", self.ORDER_ASSIGNMENT)
        return [self._indent(f"{name} .= {text};")]

    def emit_controls_if(self, node: BlockNode) -> List[str]:
        lines = []
        for i in range(node.fields["ELSEIF"] + 1):
            condition = self.value_to_code(node, f"IF{i}", self.ORDER_NONE)
            header = f"if ({condition}) {{" if i == 0 else f"}} elseif ({condition}) {{"
            lines.append(self._indent(header))
            lines.extend(self.statement_to_lines(node, f"DO{i}"))
        if node.fields["ELSE"]:
            lines.append(self._indent("} else {"))
            lines.extend(self.statement_to_lines(node, "ELSE"))
        lines.append(self._indent("}"))
        return lines

    def emit_controls_repeat_ext(self, node: BlockNode) -> List[str]:
        lines = []
        literal = self.int_literal(node.children.get("TIMES"))
        if literal is not None:
            limit = str(literal)
        else:
            limit = self.temp("repeat_end")
            times = self.value_to_code(node, "TIMES", self.ORDER_NONE)
            lines.append(self._indent(f"{limit} = intval({times});"))
        counter = self.temp("count")
        return lines + self._block(
            f"for ({counter} = 0; {counter} < {limit}; {counter}++)", node, "DO")

    def emit_controls_whileUntil(self, node: BlockNode) -> List[str]:
        if node.fields["MODE"] == "UNTIL":
            condition = "!" + self.value_to_code(node, "BOOL", self.ORDER_LOGICAL_NOT)
        else:
            condition = self.value_to_code(node, "BOOL", self.ORDER_NONE)
        return self._block(f"while ({condition})", node, "DO")

    def emit_controls_for(self, node: BlockNode) -> List[str]:
        name = self.variable(node.fields["VAR"])
        start, stop, step = (self.int_literal(node.children.get(slot))
                             for slot in ("FROM", "TO", "BY"))
        if None not in (start, stop, step) and step != 0:
            step = abs(step)
            up = start <= stop
            if step == 1:
                increment = f"{name}++" if up else f"{name}--"
            else:
                increment = f"{name} {'+=' if up else '-='} {step}"
            header = f"for ({name} = {start}; {name} {'<=' if up else '>='} {stop}; {increment})"
            return self._block(header, node, "DO")

        bare = name.lstrip("$")
        first = self.temp(f"{bare}_start")
        last = self.temp(f"{bare}_end")
        inc = self.temp(f"{bare}_inc")
        lines = [
            self._indent(f"{first} = {self.value_to_code(node, 'FROM', self.ORDER_ASSIGNMENT)};"),
            self._indent(f"{last} = {self.value_to_code(node, 'TO', self.ORDER_ASSIGNMENT)};"),
            self._indent(f"{inc} = abs({self.value_to_code(node, 'BY', self.ORDER_NONE)});"),
            self._indent(f"if ({first} > {last}) {{"),
        ]
        self.indent_level += 1
        lines.append(self._indent(f"{inc} = -{inc};"))
        self.indent_level -= 1
        lines.append(self._indent("}"))
        header = (f"for ({name} = {first}; {inc} >= 0 ? {name} <= {last} : {name} >= {last}; "
                  f"{name} += {inc})")
        return lines + self._block(header, node, "DO")

    def emit_controls_forEach(self, node: BlockNode) -> List[str]:
        name = self.variable(node.fields["VAR"])
        values = self.value_to_code(node, "LIST", self.ORDER_NONE)
        return self._block(f"foreach ({values} as {name})", node, "DO")

    def emit_controls_flow_statements(self, node: BlockNode) -> List[str]:
        return [self._indent("break;" if node.fields["FLOW"] == "BREAK" else "continue;")]

    def emit_procedures_ifreturn(self, node: BlockNode) -> List[str]:
        condition = self.value_to_code(node, "CONDITION", self.ORDER_NONE)
        lines = [self._indent(f"if ({condition}) {{")]
        self.indent_level += 1
        if node.fields["HAS_VALUE"]:
            lines.extend(self.return_statement(self.value_to_code(node, "VALUE", self.ORDER_NONE)))
        else:
            lines.extend(self.return_statement(None))
        self.indent_level -= 1
        lines.append(self._indent("}"))
        return lines

    def emit_procedures_callnoreturn(self, node: BlockNode) -> List[str]:
        return [self._indent(self._call(node) + ";")]

    # -- containers ---------------------------------------------------------

    def emit_procedures_defreturn(self, node: BlockNode) -> List[str]:
        return self.emit_procedure(node, returns=True)

    def emit_procedures_defnoreturn(self, node: BlockNode) -> List[str]:
        return self.emit_procedure(node, returns=False)
