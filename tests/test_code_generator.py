"""
Tests for the code generators.
"""

import pytest
from hypothesis import given, settings

from block_grader_core.code_generator import (
    NameResolver, check_emittable, emit, emit_all, get_generator, supported_languages,
)
from block_grader_core.exceptions import CodegenError
from block_grader_core.models import BlockGraph, BlockNode
from block_grader_core.python_generator import PythonGenerator

from graph_builders import (
    arithmetic, block_graphs, chain, doubled_sum_graph, function, get, number, print_block,
    set_var, text,
)


class TestNameResolver:

    def test_sanitize(self):
        assert NameResolver.sanitize("my var") == "my_var"
        assert NameResolver.sanitize("2nd") == "my_2nd"
        assert NameResolver.sanitize("") == "unnamed"

    def test_reserved_words_are_renamed(self):
        names = NameResolver(["print"])
        assert names.get("variable", "print") == "print2"

    def test_categories_do_not_collide(self):
        names = NameResolver([])
        assert names.get("variable", "total") == "total"
        assert names.get("procedure", "total") == "total2"
        assert names.get("variable", "total") == "total"

    def test_case_insensitive_folding(self):
        names = NameResolver(["echo"], case_insensitive=True)
        assert names.get("procedure", "Echo") == "Echo2"
        assert names.get("variable", "item") == "item"
        assert names.get("variable", "Item") == "Item2"

    def test_claim_exact_rejects_taken_names(self):
        names = NameResolver(["print"])
        with pytest.raises(CodegenError):
            names.claim_exact("procedure", "print")
        with pytest.raises(CodegenError):
            names.claim_exact("procedure", "not valid")


class TestPythonGenerator:

    def test_doubled_sum(self):
        assert emit(doubled_sum_graph(), "python") == \
            "def solution(a, b):\n    return 2 * (a + b)\n"

    def test_empty_graph_is_empty_text(self):
        assert emit(BlockGraph(), "python") == ""

    def test_loose_statements(self):
        graph = BlockGraph([chain(set_var("x", number(3)), print_block(get("x")))])
        assert emit(graph, "python") == "x = 3\nprint(x)\n"

    def test_entry_point_wraps_loose_code(self):
        graph = BlockGraph([arithmetic("ADD", get("a"), number(1))])
        code = emit(graph, "python", entry_point="solution", parameters=["a"])
        assert code == "def solution(a):\n    return a + 1\n"

    def test_entry_point_already_defined(self):
        code = emit(doubled_sum_graph(), "python", entry_point="solution", parameters=["a", "b"])
        assert code.count("def solution") == 1

    def test_reserved_variable_name(self):
        graph = BlockGraph([set_var("print", text("x"))])
        assert emit(graph, "python") == "print2 = 'x'\n"

    def test_number_literal_member_access_is_parenthesized(self):
        node = BlockNode("text_changeCase", {"CASE": "UPPERCASE"}, children={"TEXT": number(5)})
        assert emit(BlockGraph([node]), "python") == "(5).upper()\n"

    def test_negative_operand_of_power(self):
        graph = BlockGraph([arithmetic("POWER", number(-2), number(2))])
        assert emit(graph, "python") == "(-2) ** 2\n"

    def test_math_import_in_prologue(self):
        node = BlockNode("math_single", {"OP": "ROOT"}, children={"NUM": number(9)})
        code = emit(BlockGraph([node]), "python")
        assert code.startswith("import math\n")
        assert "math.sqrt(9)" in code

    def test_empty_bodies_get_pass(self):
        loop = BlockNode("controls_whileUntil", children={"BOOL": BlockNode("logic_boolean")})
        graph = BlockGraph([function("noop", []), loop])
        code = emit(graph, "python")
        assert "def noop():\n    pass" in code
        assert "while True:\n    pass" in code

    def test_variables_are_function_local(self):
        body = set_var("total", get("a"))
        graph = BlockGraph([function("f", ["a"], body=body, returns=get("total"))])
        code = emit(graph, "python")
        assert "global" not in code
        assert "    total = a\n    return total" in code

    def test_count_loop_with_literals_uses_range(self):
        loop = BlockNode("controls_for", {"VAR": "i"}, children={
            "FROM": number(5), "TO": number(1), "BY": number(2),
            "DO": print_block(get("i")),
        })
        assert "for i in range(5, 0, -2):" in emit(BlockGraph([loop]), "python")

    def test_count_loop_with_expressions_uses_helper(self):
        loop = BlockNode("controls_for", {"VAR": "i"}, children={
            "FROM": get("a"), "TO": number(1), "BY": number(1),
        })
        code = emit(BlockGraph([loop]), "python")
        assert "def block_range(start, stop, step):" in code
        assert "for i in block_range(a, 1, 1):" in code

    @pytest.mark.parametrize("where, at, expected", [
        ("FROM_START", 1, "xs[0]\n"),
        ("FROM_END", 2, "xs[-2]\n"),
        ("FIRST", None, "xs[0]\n"),
        ("LAST", None, "xs[-1]\n"),
    ])
    def test_list_index_literal_positions(self, where, at, expected):
        assert emit(BlockGraph([list_item(where, at)]), "python") == expected

    @pytest.mark.parametrize("where, at, call", [
        ("FROM_START", number(0), "lists_get_index(xs, 0, False)"),
        ("FROM_END", number(0), "lists_get_index(xs, 0, True)"),
        ("FROM_START", number(-1), "lists_get_index(xs, -1, False)"),
        ("FROM_END", get("k"), "lists_get_index(xs, k, True)"),
    ])
    def test_list_index_outside_literal_range_uses_helper(self, where, at, call):
        code = emit(BlockGraph([list_item(where, at)]), "python")
        assert "def lists_get_index(values, at, from_end):" in code
        assert "raise IndexError" in code
        assert code.endswith(call + "\n")


def list_item(where, at):
    if isinstance(at, int):
        at = number(at)
    children = {"VALUE": get("xs")}
    if at is not None:
        children["AT"] = at
    return BlockNode("lists_getIndex", {"MODE": "GET", "WHERE": where}, children=children)


class TestOtherTargets:

    def test_javascript_doubled_sum(self):
        assert emit(doubled_sum_graph(), "javascript") == \
            "function solution(a, b) {\n  return 2 * (a + b);\n}\n"

    def test_php_doubled_sum(self):
        assert emit(doubled_sum_graph(), "php") == \
            "<?php\n\nfunction solution($a, $b) {\n    return 2 * ($a + $b);\n}\n"

    def test_javascript_declares_locals(self):
        body = set_var("total", get("a"))
        graph = BlockGraph([function("f", ["a"], body=body, returns=get("total"))])
        code = emit(graph, "javascript")
        assert "  var total;" in code

    def test_php_prints_with_echo(self):
        code = emit(BlockGraph([print_block(text("hi $x"))]), "php")
        assert code == '<?php\n\necho "hi \\$x", "\\n";\n'

    def test_php_opens_with_tag(self):
        assert emit(BlockGraph([number(1)]), "php") == "<?php\n\n1;\n"
        assert emit(BlockGraph(), "php") == ""

    def test_list_index_zero_goes_through_helper(self):
        graph = BlockGraph([list_item("FROM_END", 0)])
        js = emit(graph, "javascript")
        assert "throw new RangeError" in js
        assert js.endswith("listsGetIndex(xs, 0, true);\n")
        php = emit(graph, "php")
        assert "throw new OutOfRangeException" in php
        assert php.endswith("lists_get_index($xs, 0, true);\n")

    def test_list_index_literal_is_direct(self):
        graph = BlockGraph([list_item("FROM_START", 2), list_item("FROM_END", 1)])
        assert emit(graph, "javascript").endswith("xs[1];\nxs.slice(-1)[0];\n")
        assert emit(graph, "php").endswith("$xs[1];\narray_slice($xs, -1, 1)[0];\n")

    def test_javascript_print(self):
        assert emit(BlockGraph([print_block(text("hi"))]), "javascript") == 'console.log("hi");\n'


class TestStructuralChecks:

    def test_missing_required_input(self):
        node = BlockNode("math_arithmetic", {"OP": "ADD"}, children={"A": number(1)})
        with pytest.raises(CodegenError) as info:
            emit(BlockGraph([node]), "python")
        assert info.value.node_id == node.id

    def test_break_outside_loop(self):
        flow = BlockNode("controls_flow_statements")
        with pytest.raises(CodegenError):
            check_emittable(BlockGraph([flow]))

    def test_break_inside_loop_inside_procedure(self):
        loop = BlockNode("controls_whileUntil", children={
            "BOOL": BlockNode("logic_boolean"), "DO": BlockNode("controls_flow_statements")})
        check_emittable(BlockGraph([function("f", [], body=loop)]))

    def test_return_outside_procedure(self):
        node = BlockNode("procedures_ifreturn", {"HAS_VALUE": False},
                         children={"CONDITION": BlockNode("logic_boolean")})
        with pytest.raises(CodegenError):
            check_emittable(BlockGraph([node]))

    def test_return_value_in_procedure_without_result(self):
        node = BlockNode("procedures_ifreturn", children={
            "CONDITION": BlockNode("logic_boolean"), "VALUE": number(1)})
        with pytest.raises(CodegenError):
            check_emittable(BlockGraph([function("f", [], body=node)]))

    def test_duplicate_procedure_names(self):
        graph = BlockGraph([function("f", []), function("f", ["a"])])
        with pytest.raises(CodegenError):
            emit(graph, "python")

    def test_duplicate_parameter_names(self):
        with pytest.raises(CodegenError):
            emit(BlockGraph([function("f", ["a", "a"])]), "python")

    def test_defreturn_needs_return_value(self):
        node = BlockNode("procedures_defreturn", {"NAME": "f"},
                         children={"STACK": print_block(text("x"))})
        with pytest.raises(CodegenError) as info:
            emit(BlockGraph([node]), "python")
        assert info.value.node_id == node.id

    def test_unsupported_language(self):
        with pytest.raises(CodegenError):
            emit(BlockGraph(), "cobol")

    def test_emit_all_raises_once(self):
        with pytest.raises(CodegenError):
            emit_all(BlockGraph([BlockNode("controls_flow_statements")]))


class TestRegistry:

    def test_supported_languages(self):
        assert supported_languages() == ["python", "javascript", "php"]

    def test_generators_are_fresh(self):
        assert isinstance(get_generator("python"), PythonGenerator)
        assert get_generator("python") is not get_generator("python")

    def test_generator_missing_handlers_is_rejected(self):
        from block_grader_core.code_generator import BlockCodeGenerator

        with pytest.raises(TypeError):
            class Incomplete(BlockCodeGenerator):
                language = "incomplete"


@settings(max_examples=60, deadline=None)
@given(block_graphs())
def test_generation_is_total_and_deterministic(graph):
    """Property test: every valid graph emits in every language, identically each time."""
    first = emit_all(graph)
    assert first == emit_all(graph)
    assert set(first) == set(supported_languages())


@settings(max_examples=60, deadline=None)
@given(block_graphs())
def test_python_output_compiles(graph):
    """Property test: emitted Python is always syntactically valid."""
    compile(emit(graph, "python"), "<generated>", "exec")


@settings(max_examples=30, deadline=None)
@given(block_graphs())
def test_python_entry_wrapper_compiles(graph):
    """Property test: wrapping loose code in an entry point stays valid."""
    code = emit(graph, "python", entry_point="solution", parameters=["a", "b"])
    compile(code, "<generated>", "exec")
    assert "def solution(" in code
