"""
Code Generator for producing program text from a Block Graph.

Every target language has one generator class deriving from
``BlockCodeGenerator``. The base class owns everything language
independent:

* the structural check that runs before any text is produced,
* per-kind dispatch (statement / expression / value / container) to the
  per-block ``emit_<block_type>`` handlers of the concrete generator,
* identifier sanitizing,
* precedence-driven parenthesization,
* assembly of prologue, helpers, procedure definitions and loose code.

Generators hold no state between calls to ``generate``; the same graph
always yields the same text.
"""

import importlib
import logging
import re
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .block_vocabulary import (
    BLOCK_SPECS, LOOP_BLOCKS, PROCEDURE_BLOCKS, NodeKind, block_types,
)
from .exceptions import CodegenError
from .models import BlockGraph, BlockNode

logger = logging.getLogger(__name__)

# language name -> module holding its generator
LANGUAGE_MODULES = {
    "python": "python_generator",
    "javascript": "js_generator",
    "php": "php_generator",
}

_GENERATORS: Dict[str, type] = {}

_IDENTIFIER_CHARS = re.compile(r"[^A-Za-z0-9_]")


class NameResolver:
    """Maps user-chosen names onto safe, unique identifiers.

    Names are keyed by (category, original) so a variable and a procedure
    with the same spelling still receive distinct identifiers.
    """

    def __init__(self, reserved: Iterable[str], case_insensitive: bool = False):
        self.case_insensitive = case_insensitive
        self._taken = set()
        self._names: Dict[Tuple[str, str], str] = {}
        for word in reserved:
            self._taken.add(self._fold(word))

    def _fold(self, name: str) -> str:
        return name.lower() if self.case_insensitive else name

    @staticmethod
    def sanitize(name: str) -> str:
        cleaned = _IDENTIFIER_CHARS.sub("_", name)
        if not cleaned:
            return "unnamed"
        if cleaned[0].isdigit():
            return "my_" + cleaned
        return cleaned

    def _claim(self, base: str) -> str:
        candidate = base
        suffix = 2
        while self._fold(candidate) in self._taken:
            candidate = f"{base}{suffix}"
            suffix += 1
        self._taken.add(self._fold(candidate))
        return candidate

    def claim_exact(self, category: str, name: str) -> str:
        """Register ``name`` verbatim; fails if it is not available."""
        if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name) or self._fold(name) in self._taken:
            raise CodegenError(f"Entry point name {name!r} cannot be used in generated code")
        self._taken.add(self._fold(name))
        self._names[(category, name)] = name
        return name

    def get(self, category: str, name: str) -> str:
        key = (category, name)
        if key not in self._names:
            self._names[key] = self._claim(self.sanitize(name))
        return self._names[key]

    def distinct(self, base: str) -> str:
        """A fresh identifier that collides with nothing else."""
        return self._claim(self.sanitize(base))


def _procedure_params(node: BlockNode) -> List[str]:
    return [node.fields[f"ARG{i}"] for i in range(node.fields.get("PARAMS", 0))]


def check_emittable(graph: BlockGraph):
    """Reject graphs no generator can translate faithfully.

    Raises CodegenError naming the first offending block.
    """
    procedure_names = {}
    for root in graph.roots:
        if root.type in PROCEDURE_BLOCKS:
            name = root.fields["NAME"]
            if name in procedure_names:
                raise CodegenError(f"Procedure {name!r} is defined more than once", root.id)
            procedure_names[name] = root
            params = _procedure_params(root)
            if len(set(params)) != len(params):
                raise CodegenError(f"Procedure {name!r} repeats a parameter name", root.id)

    for node in graph.walk():
        for slot in node.declared_slots():
            if slot.required and slot.name not in node.children:
                raise CodegenError(
                    f"Block {node.type} is missing its required input {slot.name}", node.id)

        if node.type == "controls_flow_statements":
            in_loop = False
            for ancestor, _ in node.enclosing():
                if ancestor.type in LOOP_BLOCKS:
                    in_loop = True
                    break
                if ancestor.type in PROCEDURE_BLOCKS:
                    break
            if not in_loop:
                raise CodegenError("Break/continue block is not inside a loop", node.id)

        if node.type == "procedures_ifreturn":
            owner = next((a for a, _ in node.enclosing() if a.type in PROCEDURE_BLOCKS), None)
            if owner is None:
                raise CodegenError("Return block is not inside a procedure", node.id)
            if owner.type == "procedures_defnoreturn" and node.fields["HAS_VALUE"]:
                raise CodegenError(
                    "Return block carries a value inside a procedure without a result", node.id)


class BlockCodeGenerator:
    """Base class for per-language generators.

    Subclasses set ``language`` and define one ``emit_<block_type>`` method
    for every block type in the vocabulary. Statement and container
    handlers return a list of lines at the current indent level; expression
    and value handlers return ``(code, order)``.
    """

    language = ""
    file_extension = ""
    indent_size = 4
    reserved_words: Sequence[str] = ()
    case_insensitive_names = False
    statement_terminator = ""
    definition_gap = 1

    ORDER_ATOMIC = 0
    ORDER_NONE = 99

    _handlers: Dict[NodeKind, Dict[str, Callable]] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if not cls.language:
            return
        table: Dict[NodeKind, Dict[str, Callable]] = {kind: {} for kind in NodeKind}
        missing = []
        for block_type in block_types():
            handler = getattr(cls, f"emit_{block_type}", None)
            if handler is None:
                missing.append(block_type)
                continue
            table[BLOCK_SPECS[block_type].kind][block_type] = handler
        if missing:
            raise TypeError(f"{cls.__name__} has no handler for: {', '.join(missing)}")
        cls._handlers = table
        _GENERATORS[cls.language] = cls

    def __init__(self):
        self.indent_level = 0
        self._reset()

    def _reset(self):
        self.names = NameResolver(self.reserved_words, self.case_insensitive_names)
        self.prologue: List[str] = []
        self.helpers: Dict[str, List[str]] = {}
        self.scope_vars: List[str] = []
        self.scope_params: List[str] = []
        self._helper_names: Dict[str, str] = {}
        self.indent_level = 0

    # -- dispatch -----------------------------------------------------------

    def visit(self, node: BlockNode):
        visitors = {
            NodeKind.STATEMENT: self.visit_statement,
            NodeKind.EXPRESSION: self.visit_expression,
            NodeKind.VALUE: self.visit_value,
            NodeKind.CONTAINER: self.visit_container,
        }
        return visitors[node.kind](node)

    def visit_statement(self, node: BlockNode) -> List[str]:
        return self._handlers[NodeKind.STATEMENT][node.type](self, node)

    def visit_expression(self, node: BlockNode) -> Tuple[str, int]:
        return self._handlers[NodeKind.EXPRESSION][node.type](self, node)

    def visit_value(self, node: BlockNode) -> Tuple[str, int]:
        return self._handlers[NodeKind.VALUE][node.type](self, node)

    def visit_container(self, node: BlockNode) -> List[str]:
        return self._handlers[NodeKind.CONTAINER][node.type](self, node)

    # -- helpers for handlers -----------------------------------------------

    def _indent(self, text: str = "") -> str:
        return " " * (self.indent_level * self.indent_size) + text

    def wrap(self, code: str, inner: int, outer: int) -> str:
        if inner >= outer and not (inner == outer and outer in (self.ORDER_ATOMIC, self.ORDER_NONE)):
            return f"({code})"
        return code

    def value_to_code(self, node: BlockNode, slot: str, outer: int,
                      default: Optional[str] = None) -> str:
        child = node.children.get(slot)
        if child is None:
            return default if default is not None else self.null_literal()
        code, inner = self.visit(child)
        return self.wrap(code, inner, outer)

    def member_target(self, node: BlockNode, slot: str, outer: int) -> str:
        """Operand of a member access or subscript; bare number literals get parentheses."""
        code = self.value_to_code(node, slot, outer)
        if code[:1].isdigit():
            return f"({code})"
        return code

    def statement_to_lines(self, node: BlockNode, slot: str) -> List[str]:
        """Lines for a statement slot, one indent level deeper than now."""
        self.indent_level += 1
        try:
            return self.chain_to_lines(node.children.get(slot))
        finally:
            self.indent_level -= 1

    def chain_to_lines(self, head: Optional[BlockNode]) -> List[str]:
        lines: List[str] = []
        if head is None:
            return lines
        for statement in head.chain():
            lines.extend(self.visit_statement(statement))
        return lines

    def variable(self, name: str) -> str:
        identifier = self.names.get("variable", name)
        if identifier not in self.scope_params and identifier not in self.scope_vars:
            self.scope_vars.append(identifier)
        return self.format_variable(identifier)

    def temp(self, base: str) -> str:
        identifier = self.names.distinct(base)
        self.scope_vars.append(identifier)
        return self.format_variable(identifier)

    def procedure_name(self, name: str) -> str:
        return self.names.get("procedure", name)

    def provide_function(self, desired: str, template: List[str]) -> str:
        """Register a helper once and return its identifier.

        ``template`` lines may use ``{name}`` for the helper's own name.
        """
        if desired not in self.helpers:
            identifier = self.names.distinct(desired)
            self.helpers[desired] = [line.replace("{name}", identifier) for line in template]
            self._helper_names[desired] = identifier
        return self._helper_names[desired]

    def require_import(self, line: str):
        if line not in self.prologue:
            self.prologue.append(line)

    def int_literal(self, node: Optional[BlockNode]) -> Optional[int]:
        """The integer carried by a literal number block, else None."""
        if node is not None and node.type == "math_number":
            value = node.fields["NUM"]
            if isinstance(value, int):
                return value
        return None

    # -- language hooks -----------------------------------------------------

    def format_variable(self, identifier: str) -> str:
        return identifier

    def null_literal(self) -> str:
        raise NotImplementedError

    def expression_statement(self, code: str) -> List[str]:
        return [self._indent(code + self.statement_terminator)]

    def define_function(self, name: str, params: List[str], body: List[str],
                        declared: List[str]) -> List[str]:
        raise NotImplementedError

    def return_statement(self, code: Optional[str]) -> List[str]:
        raise NotImplementedError

    def module_preamble(self, declared: List[str]) -> List[str]:
        return []

    def file_header(self) -> List[str]:
        """Lines that open every non-empty program."""
        return []

    # -- assembly -----------------------------------------------------------

    def _register_names(self, graph: BlockGraph, entry_point: Optional[str],
                        parameters: Sequence[str]):
        procedures = [r for r in graph.roots if r.type in PROCEDURE_BLOCKS]
        if entry_point is not None:
            self.names.claim_exact("procedure", entry_point)
        for param in parameters:
            self.names.get("variable", param)
        for proc in procedures:
            self.procedure_name(proc.fields["NAME"])
        for node in graph.walk():
            if node.type in PROCEDURE_BLOCKS:
                for param in _procedure_params(node):
                    self.names.get("variable", param)
            elif "VAR" in node.fields:
                self.names.get("variable", node.fields["VAR"])
            elif node.type in ("procedures_callreturn", "procedures_callnoreturn"):
                self.procedure_name(node.fields["NAME"])

    def _callable(self, name: str, params: List[str], build: Callable[[], List[str]]) -> List[str]:
        outer = (self.scope_vars, self.scope_params)
        self.scope_params = [self.names.get("variable", p) for p in params]
        self.scope_vars = []
        self.indent_level += 1
        try:
            body = build()
        finally:
            self.indent_level -= 1
        declared = list(self.scope_vars)
        formatted = [self.format_variable(p) for p in self.scope_params]
        self.scope_vars, self.scope_params = outer
        return self.define_function(name, formatted, body, declared)

    def emit_procedure(self, node: BlockNode, returns: bool) -> List[str]:
        def build():
            lines = self.chain_to_lines(node.children.get("STACK"))
            if returns:
                code = self.value_to_code(node, "RETURN", self.ORDER_NONE)
                lines.extend(self.return_statement(code))
            return lines
        return self._callable(self.procedure_name(node.fields["NAME"]),
                              _procedure_params(node), build)

    def _loose_lines(self, loose: List[BlockNode], trailing_return: bool) -> List[str]:
        lines: List[str] = []
        for position, root in enumerate(loose):
            if root.kind is NodeKind.STATEMENT:
                lines.extend(self.chain_to_lines(root))
                continue
            code, _ = self.visit(root)
            if trailing_return and position == len(loose) - 1:
                lines.extend(self.return_statement(code))
            else:
                lines.extend(self.expression_statement(code))
        return lines

    def generate(self, graph: BlockGraph, entry_point: Optional[str] = None,
                 parameters: Sequence[str] = ()) -> str:
        """Translate ``graph`` into program text."""
        check_emittable(graph)
        self._reset()
        self._register_names(graph, entry_point, parameters)

        procedures = [r for r in graph.roots if r.kind is NodeKind.CONTAINER]
        loose = [r for r in graph.roots if r.kind is not NodeKind.CONTAINER]
        has_entry = entry_point is not None and any(
            p.fields["NAME"] == entry_point for p in procedures)

        definitions: List[List[str]] = []
        for proc in procedures:
            definitions.append(self.visit_container(proc))

        body: List[str] = []
        if entry_point is not None and not has_entry:
            wrapped = self._callable(
                entry_point, list(parameters),
                lambda: self._loose_lines(loose, trailing_return=True))
            definitions.append(wrapped)
            module_vars: List[str] = []
        else:
            self.scope_vars, self.scope_params = [], []
            body = self._loose_lines(loose, trailing_return=False)
            module_vars = list(self.scope_vars)

        sections: List[List[str]] = []
        if self.prologue:
            sections.append(list(self.prologue))
        for helper in self.helpers.values():
            sections.append(helper)
        sections.extend(definitions)
        preamble = self.module_preamble(module_vars)
        if preamble or body:
            sections.append(preamble + body)

        lines: List[str] = []
        for section in sections:
            if lines:
                lines.extend([""] * self.definition_gap)
            lines.extend(section)
        if lines and self.file_header():
            lines = self.file_header() + [""] + lines
        logger.debug("Generated %d line(s) of %s", len(lines), self.language)
        return "\n".join(lines) + ("\n" if lines else "")


def get_generator(language: str) -> BlockCodeGenerator:
    """Instantiate the generator registered for ``language``."""
    module = LANGUAGE_MODULES.get(language)
    if module is None:
        raise CodegenError(f"Unsupported target language: {language!r}")
    importlib.import_module(f".{module}", __package__)
    return _GENERATORS[language]()


def supported_languages() -> List[str]:
    return list(LANGUAGE_MODULES)


def emit(graph: BlockGraph, language: str, entry_point: Optional[str] = None,
         parameters: Sequence[str] = ()) -> str:
    """Translate ``graph`` into ``language`` source text."""
    return get_generator(language).generate(graph, entry_point, parameters)


def emit_all(graph: BlockGraph, entry_point: Optional[str] = None,
             parameters: Sequence[str] = ()) -> Dict[str, str]:
    """Translate ``graph`` into every supported language.

    Raises CodegenError once, from the structural check, when the graph
    cannot be translated at all.
    """
    check_emittable(graph)
    return {language: emit(graph, language, entry_point, parameters)
            for language in supported_languages()}
