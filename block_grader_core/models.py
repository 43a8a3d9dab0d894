"""
Core data models for the Block Grader.

This module defines the Block Graph: typed block nodes arranged as a forest
of trees, where each node owns its slot children and optionally a "next"
statement in its chain. The graph is the single source of truth for what
the learner has built; serialized text and generated code are derived
from it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple
import math
import uuid

from .block_vocabulary import BlockSpec, NodeKind, SlotType, get_block_spec
from .exceptions import ValidationError

__all__ = ["NodeKind", "BlockNode", "BlockGraph", "new_block_id"]

# Link name used for the chain successor when recording where a node hangs
NEXT_LINK = "__next__"


def new_block_id() -> str:
    return str(uuid.uuid4())


def _position(value, node_id: Optional[str] = None) -> Tuple[float, float]:
    try:
        x, y = float(value[0]), float(value[1])
    except (TypeError, ValueError, IndexError):
        raise ValidationError(f"Block position must be a pair of numbers, got {value!r}", node_id)
    if not (math.isfinite(x) and math.isfinite(y)):
        raise ValidationError(f"Block position must be finite, got {value!r}", node_id)
    return x, y


@dataclass(eq=False)
class BlockNode:
    """One block in the workspace."""
    type: str
    fields: Dict[str, Any] = field(default_factory=dict)
    children: Dict[str, "BlockNode"] = field(default_factory=dict)
    next: Optional["BlockNode"] = None
    id: str = field(default_factory=new_block_id)
    position: Optional[Tuple[float, float]] = None

    _parent: Optional["BlockNode"] = field(default=None, init=False, repr=False)
    _link: Optional[str] = field(default=None, init=False, repr=False)
    _graph: Optional["BlockGraph"] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise ValidationError("Block id must be a non-empty string")
        self._spec = get_block_spec(self.type)
        self.fields = self._spec.normalize_fields(self.fields, self.id)
        if self.position is not None:
            self.position = _position(self.position, self.id)

        pending_children = self.children
        pending_next = self.next
        self.children = {}
        self.next = None
        for slot, child in pending_children.items():
            self.attach(slot, child)
        if pending_next is not None:
            self.set_next(pending_next)

    # -- introspection ------------------------------------------------------

    @property
    def spec(self) -> BlockSpec:
        return self._spec

    @property
    def kind(self) -> NodeKind:
        return self._spec.kind

    @property
    def parent(self) -> Optional["BlockNode"]:
        return self._parent

    @property
    def graph(self) -> Optional["BlockGraph"]:
        """The graph this node's tree belongs to, if any."""
        node = self
        while node._parent is not None:
            node = node._parent
        return node._graph

    @property
    def is_free(self) -> bool:
        return self._parent is None and self._graph is None

    def ancestors(self) -> Iterator["BlockNode"]:
        node = self._parent
        while node is not None:
            yield node
            node = node._parent

    def enclosing(self) -> Iterator[Tuple["BlockNode", Optional[str]]]:
        """Yield (ancestor, slot) pairs for the slots this node is nested in.

        Chain predecessors are skipped, so the pairs describe real nesting
        rather than sequencing.
        """
        node = self
        while node._parent is not None:
            parent, link = node._parent, node._link
            if link != NEXT_LINK:
                yield parent, link
            node = parent

    def declared_slots(self):
        return self._spec.declared_slots(self.fields)

    def chain(self) -> Iterator["BlockNode"]:
        """This node followed by every successor in its statement chain."""
        node: Optional[BlockNode] = self
        while node is not None:
            yield node
            node = node.next

    def walk(self) -> Iterator["BlockNode"]:
        """Pre-order traversal: node, its slot children, then its successor."""
        stack: List[BlockNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            if node.next is not None:
                stack.append(node.next)
            stack.extend(reversed(list(node.children.values())))

    # -- mutation -----------------------------------------------------------

    def set_field(self, name: str, value: Any) -> List["BlockNode"]:
        """Change one field. Returns children orphaned by a shrinking mutation."""
        values = dict(self.fields)
        values[name] = value
        if name not in {spec.name for spec in self._spec.declared_fields(values)}:
            raise ValidationError(f"Block {self.type} does not declare field {name}", self.id)
        # Drop repeat-group entries that no longer exist after a count change
        declared = {spec.name for spec in self._spec.declared_fields(values)}
        for key in list(values):
            if key not in declared:
                del values[key]
        self.fields = self._spec.normalize_fields(values, self.id)

        remaining = set(self._spec.slot_names(self.fields))
        orphans = []
        for slot in list(self.children):
            if slot not in remaining:
                orphans.append(self.detach_child(slot))
        return orphans

    def _check_free(self, node: "BlockNode"):
        if not isinstance(node, BlockNode):
            raise ValidationError(f"Expected a BlockNode, got {type(node).__name__}", self.id)
        if not node.is_free:
            raise ValidationError(f"Block {node.id} already has a parent", node.id)
        if node is self or any(a is node for a in self.ancestors()):
            raise ValidationError(f"Block {node.id} is an ancestor of {self.id}", node.id)

    def attach(self, slot: str, child: "BlockNode") -> Optional["BlockNode"]:
        """Put ``child`` into ``slot``; returns whatever was there before."""
        slot_spec = self._spec.slot_spec(slot, self.fields)
        if slot_spec is None:
            raise ValidationError(f"Block {self.type} has no slot {slot}", self.id)
        self._check_free(child)
        if slot_spec.type is SlotType.VALUE:
            if child.kind not in (NodeKind.EXPRESSION, NodeKind.VALUE):
                raise ValidationError(
                    f"Slot {slot} of {self.type} takes a value, got a {child.kind.value}",
                    child.id)
        elif child.kind is not NodeKind.STATEMENT:
            raise ValidationError(
                f"Slot {slot} of {self.type} takes statements, got a {child.kind.value}",
                child.id)

        previous = self.detach_child(slot) if slot in self.children else None
        self.children[slot] = child
        child._parent = self
        child._link = slot
        child.position = None
        return previous

    def detach_child(self, slot: str) -> Optional["BlockNode"]:
        child = self.children.pop(slot, None)
        if child is not None:
            child._parent = None
            child._link = None
        return child

    def set_next(self, node: Optional["BlockNode"]) -> Optional["BlockNode"]:
        """Link ``node`` as this statement's successor; returns the old successor."""
        if self.kind is not NodeKind.STATEMENT:
            raise ValidationError(f"Only statements can have a next block ({self.type})", self.id)
        if node is not None:
            self._check_free(node)
            if node.kind is not NodeKind.STATEMENT:
                raise ValidationError(
                    f"Only statements can follow a statement, got {node.type}", node.id)

        previous = self.next
        if previous is not None:
            previous._parent = None
            previous._link = None
        self.next = node
        if node is not None:
            node._parent = self
            node._link = NEXT_LINK
            node.position = None
        return previous

    def detach(self) -> "BlockNode":
        """Remove this node (with its subtree and successors) from wherever it hangs."""
        if self._parent is not None:
            if self._link == NEXT_LINK:
                self._parent.set_next(None)
            else:
                self._parent.detach_child(self._link)
        elif self._graph is not None:
            self._graph._remove_root(self)
        return self

    # -- comparison ---------------------------------------------------------

    def __eq__(self, other):
        if not isinstance(other, BlockNode):
            return NotImplemented
        return _nodes_equal(self, other)

    __hash__ = None


def _nodes_equal(a: BlockNode, b: BlockNode) -> bool:
    pairs = [(a, b)]
    while pairs:
        x, y = pairs.pop()
        if x is y:
            continue
        if (x.id, x.type, x.position) != (y.id, y.type, y.position):
            return False
        if list(x.fields.items()) != list(y.fields.items()):
            return False
        # Booleans and numbers compare equal in Python; keep literals typed
        for key, value in x.fields.items():
            if type(value) is not type(y.fields[key]):
                return False
        if list(x.children) != list(y.children):
            return False
        pairs.extend((x.children[k], y.children[k]) for k in x.children)
        if (x.next is None) != (y.next is None):
            return False
        if x.next is not None:
            pairs.append((x.next, y.next))
    return True


@dataclass(eq=False)
class BlockGraph:
    """An ordered forest of top-level blocks."""
    roots: List[BlockNode] = field(default_factory=list)

    def __post_init__(self):
        pending = self.roots
        self.roots = []
        for node in pending:
            self.add_root(node)

    def add_root(self, node: BlockNode, position: Optional[Tuple[float, float]] = None,
                 index: Optional[int] = None) -> BlockNode:
        """Place a free node at top level."""
        if not isinstance(node, BlockNode):
            raise ValidationError(f"Expected a BlockNode, got {type(node).__name__}")
        if not node.is_free:
            raise ValidationError(f"Block {node.id} already has a parent", node.id)
        if position is not None:
            node.position = _position(position, node.id)
        if index is None:
            self.roots.append(node)
        else:
            self.roots.insert(index, node)
        node._graph = self
        return node

    def _remove_root(self, node: BlockNode):
        self.roots = [root for root in self.roots if root is not node]
        node._graph = None

    def detach(self, node: BlockNode) -> BlockNode:
        """Detach ``node`` from the graph, keeping it as a free subtree."""
        if node.graph is not self:
            raise ValidationError(f"Block {node.id} is not part of this graph", node.id)
        return node.detach()

    def find(self, node_id: str) -> Optional[BlockNode]:
        for node in self.walk():
            if node.id == node_id:
                return node
        return None

    def walk(self) -> Iterator[BlockNode]:
        for root in list(self.roots):
            yield from root.walk()

    def clear(self):
        for root in list(self.roots):
            root._graph = None
        self.roots = []

    def is_empty(self) -> bool:
        return not self.roots

    def __len__(self) -> int:
        return sum(1 for _ in self.walk())

    def validate(self) -> List[ValidationError]:
        """Validate the whole graph and return any errors."""
        errors = []
        seen: Dict[str, BlockNode] = {}
        for node in self.walk():
            if node.id in seen:
                if seen[node.id] is node:
                    errors.append(ValidationError(f"Block {node.id} is reachable twice", node.id))
                else:
                    errors.append(ValidationError(f"Duplicate block id {node.id}", node.id))
                continue
            seen[node.id] = node

            if node.kind is NodeKind.CONTAINER and node.parent is not None:
                errors.append(ValidationError(
                    f"Container {node.type} must be at top level", node.id))
            declared = set(node.spec.slot_names(node.fields))
            for slot in node.children:
                if slot not in declared:
                    errors.append(ValidationError(
                        f"Block {node.type} has no slot {slot}", node.id))
        return errors

    def ensure_valid(self):
        errors = self.validate()
        if errors:
            raise errors[0]

    def __eq__(self, other):
        if not isinstance(other, BlockGraph):
            return NotImplemented
        if len(self.roots) != len(other.roots):
            return False
        return all(_nodes_equal(a, b) for a, b in zip(self.roots, other.roots))

    __hash__ = None
