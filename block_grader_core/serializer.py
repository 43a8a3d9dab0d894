"""
Serializer: loss-free conversion between a BlockGraph and Blockly-style XML.

The text form is ordered: top-level blocks appear in root order, statement
chains nest through ``<next>``, and slot children are written in the order
they were connected. Re-parsing therefore reproduces the same graph and the
same evaluation order.
"""

import logging
import math
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, Optional

from .block_vocabulary import BlockSpec, FieldSpec, FieldType, SlotType, get_block_spec
from .exceptions import ParseError, ValidationError
from .models import BlockGraph, BlockNode, new_block_id

logger = logging.getLogger(__name__)

XML_NAMESPACE = "https://developers.google.com/blockly/xml"
EMPTY_DOCUMENT = f'<xml xmlns="{XML_NAMESPACE}"></xml>'

_INT_PATTERN = re.compile(r"^[+-]?\d+$")


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------

def _format_number(value) -> str:
    if isinstance(value, int):
        return str(value)
    return repr(float(value))


def _format_coordinate(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _write_mutation(element: ET.Element, node: BlockNode):
    spec = node.spec
    mutation_fields = [f for f in spec.static_fields() if f.mutation and f.attribute]
    group = spec.args_group
    if not mutation_fields and group is None:
        return
    mutation = ET.SubElement(element, "mutation")
    for field_spec in mutation_fields:
        value = node.fields[field_spec.name]
        if field_spec.type is FieldType.BOOLEAN:
            mutation.set(field_spec.attribute, "1" if value else "0")
        elif field_spec.type is FieldType.NUMBER:
            mutation.set(field_spec.attribute, _format_number(value))
        else:
            mutation.set(field_spec.attribute, value)
    if group is not None:
        template = group.fields[0]
        for index in group.indices(node.fields):
            arg = ET.SubElement(mutation, "arg")
            arg.set("name", node.fields[template.format(index)])


def _write_fields(element: ET.Element, node: BlockNode):
    spec = node.spec
    args_fields = set()
    group = spec.args_group
    if group is not None:
        args_fields = {t.format(i) for i in group.indices(node.fields) for t in group.fields}
    for field_spec in spec.declared_fields(node.fields):
        if field_spec.mutation or field_spec.name in args_fields:
            continue
        value = node.fields[field_spec.name]
        field_el = ET.SubElement(element, "field")
        field_el.set("name", field_spec.name)
        if field_spec.type is FieldType.NUMBER:
            field_el.text = _format_number(value)
        elif field_spec.type is FieldType.BOOLEAN:
            field_el.text = "TRUE" if value else "FALSE"
        else:
            field_el.text = value


def _write_chain(parent: ET.Element, head: BlockNode, top_level: bool = False):
    """Write ``head`` and its successors, nesting each successor in ``<next>``."""
    container = parent
    node: Optional[BlockNode] = head
    first = True
    while node is not None:
        element = ET.SubElement(container, "block")
        element.set("type", node.type)
        element.set("id", node.id)
        if first and top_level and node.position is not None:
            element.set("x", _format_coordinate(node.position[0]))
            element.set("y", _format_coordinate(node.position[1]))
        _write_mutation(element, node)
        _write_fields(element, node)
        slot_types = {slot.name: slot.type for slot in node.declared_slots()}
        for slot, child in node.children.items():
            tag = "statement" if slot_types.get(slot) is SlotType.STATEMENT else "value"
            slot_el = ET.SubElement(element, tag)
            slot_el.set("name", slot)
            _write_chain(slot_el, child)
        node = node.next
        first = False
        if node is not None:
            container = ET.SubElement(element, "next")


def serialize(graph: BlockGraph) -> str:
    """Encode ``graph`` as Blockly XML text."""
    root = ET.Element("xml")
    root.set("xmlns", XML_NAMESPACE)
    for block in graph.roots:
        _write_chain(root, block, top_level=True)
    return ET.tostring(root, encoding="unicode", short_empty_elements=False)


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _fragment(element: ET.Element) -> str:
    try:
        return ET.tostring(element, encoding="unicode")[:200]
    except (TypeError, ValueError):
        return f"<{_local(element.tag)}>"


def _parse_number(text: str, field_name: str, element: ET.Element):
    text = (text or "").strip()
    try:
        if _INT_PATTERN.match(text):
            return int(text)
        value = float(text)
    except ValueError:
        raise ParseError(f"Field {field_name} is not a number: {text!r}", _fragment(element))
    if not math.isfinite(value):
        raise ParseError(f"Field {field_name} must be finite", _fragment(element))
    return value


def _parse_literal(field_spec: FieldSpec, text: Optional[str], element: ET.Element) -> Any:
    if field_spec.type is FieldType.NUMBER:
        return _parse_number(text, field_spec.name, element)
    if field_spec.type is FieldType.BOOLEAN:
        value = (text or "").strip().upper()
        if value not in ("TRUE", "FALSE"):
            raise ParseError(f"Field {field_spec.name} is not a boolean: {text!r}",
                             _fragment(element))
        return value == "TRUE"
    return text or ""


def _parse_mutation(spec: BlockSpec, mutation: ET.Element, fields: Dict[str, Any]):
    for field_spec in spec.static_fields():
        if not (field_spec.mutation and field_spec.attribute):
            continue
        raw = mutation.get(field_spec.attribute)
        if raw is None:
            continue
        if field_spec.type is FieldType.BOOLEAN:
            fields[field_spec.name] = raw.strip().lower() in ("1", "true")
        elif field_spec.type is FieldType.NUMBER:
            fields[field_spec.name] = _parse_number(raw, field_spec.name, mutation)
        else:
            fields[field_spec.name] = raw
    group = spec.args_group
    if group is not None:
        names = [arg.get("name", "") for arg in mutation if _local(arg.tag) == "arg"]
        fields[group.count_field] = len(names)
        template = group.fields[0]
        for offset, name in enumerate(names):
            fields[template.format(group.start + offset)] = name


def _field_spec_for(spec: BlockSpec, name: str, fields: Dict[str, Any]) -> Optional[FieldSpec]:
    for field_spec in spec.declared_fields(fields):
        if field_spec.name == name:
            return field_spec
    return None


def _slot_block(slot_el: ET.Element) -> Optional[ET.Element]:
    shadow = None
    for child in slot_el:
        tag = _local(child.tag)
        if tag == "block":
            return child
        if tag == "shadow" and shadow is None:
            shadow = child
    return shadow


def _parse_block(element: ET.Element, top_level: bool = False) -> BlockNode:
    block_type = element.get("type")
    if not block_type:
        raise ParseError("Block is missing its type attribute", _fragment(element))
    try:
        spec = get_block_spec(block_type)
    except ValidationError as e:
        raise ParseError(str(e), _fragment(element))

    fields: Dict[str, Any] = {}
    mutation = next((c for c in element if _local(c.tag) == "mutation"), None)
    if mutation is not None:
        _parse_mutation(spec, mutation, fields)

    for child in element:
        if _local(child.tag) != "field":
            continue
        name = child.get("name", "")
        field_spec = _field_spec_for(spec, name, fields)
        if field_spec is None or field_spec.mutation:
            raise ParseError(f"Block {block_type} does not declare field {name!r}",
                             _fragment(child))
        fields[name] = _parse_literal(field_spec, child.text, child)

    position = None
    if top_level and element.get("x") is not None and element.get("y") is not None:
        try:
            position = (float(element.get("x")), float(element.get("y")))
        except ValueError:
            raise ParseError("Block position is not numeric", _fragment(element))

    try:
        node = BlockNode(block_type, fields, id=element.get("id") or new_block_id(),
                         position=position)
    except ValidationError as e:
        raise ParseError(str(e), _fragment(element))

    for child in element:
        tag = _local(child.tag)
        if tag not in ("value", "statement"):
            continue
        slot = child.get("name", "")
        inner = _slot_block(child)
        if inner is None:
            continue
        slot_spec = spec.slot_spec(slot, node.fields)
        expected = SlotType.STATEMENT if tag == "statement" else SlotType.VALUE
        if slot_spec is None or slot_spec.type is not expected:
            raise ParseError(f"Block {block_type} has no {tag} slot {slot!r}", _fragment(child))
        try:
            node.attach(slot, _parse_chain(inner))
        except ValidationError as e:
            raise ParseError(str(e), _fragment(child))
    return node


def _parse_chain(element: ET.Element, top_level: bool = False) -> BlockNode:
    head = _parse_block(element, top_level)
    tail = head
    current = element
    while True:
        next_el = next((c for c in current if _local(c.tag) == "next"), None)
        if next_el is None:
            return head
        current = _slot_block(next_el)
        if current is None:
            return head
        successor = _parse_block(current)
        try:
            tail.set_next(successor)
        except ValidationError as e:
            raise ParseError(str(e), _fragment(current))
        tail = successor


def deserialize(text: str) -> BlockGraph:
    """Decode Blockly XML text into a new BlockGraph.

    Raises ParseError for any malformed input; no other exception escapes.
    """
    if not isinstance(text, str):
        raise ParseError(f"Expected text, got {type(text).__name__}")
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        line, column = getattr(e, "position", (1, 0))
        lines = text.splitlines() or [""]
        fragment = lines[min(max(line, 1), len(lines)) - 1][max(column - 40, 0):column + 40]
        raise ParseError(f"Malformed XML: {e}", fragment)

    if _local(root.tag) != "xml":
        raise ParseError(f"Expected <xml> document root, got <{_local(root.tag)}>",
                         _fragment(root))

    graph = BlockGraph()
    try:
        for child in root:
            if _local(child.tag) != "block":
                continue
            graph.add_root(_parse_chain(child, top_level=True))
        errors = graph.validate()
    except ParseError:
        raise
    except (ValidationError, RecursionError, TypeError, ValueError) as e:
        raise ParseError(f"Invalid workspace: {e}", text[:200])
    if errors:
        raise ParseError(str(errors[0]), errors[0].node_id or text[:200])
    return graph


def is_empty_document(text: Optional[str]) -> bool:
    """True when ``text`` is absent, blank or holds no blocks."""
    if not text or not text.strip():
        return True
    try:
        return deserialize(text).is_empty()
    except ParseError:
        return False

