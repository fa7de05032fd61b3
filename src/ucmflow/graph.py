""" Use Case Map graph model

A use case map is a list of spec diagrams. Each diagram holds nodes and the
connections between them. Nodes and connections address each other with refs,
small value types that mirror jUCMNav's xmi reference strings, e.g.
//@urndef/@specDiagrams.0/@nodes.5

Stubs call into other diagrams: entering a stub binds the connection crossed
to a start point in the plugin diagram and reaching an end point there binds
back out to a connection leaving the stub.
"""

from __future__ import annotations

import re
import enum
import logging
import dataclasses
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

from ucmflow import util, expressions
from ucmflow.gamedata import GameData

if TYPE_CHECKING:
    from ucmflow.events import EventRegistry

RE_NODE_REF = re.compile(r"@specDiagrams\.(\d+)/@nodes\.(\d+)$")
RE_CONNECTION_REF = re.compile(r"@specDiagrams\.(\d+)/@connections\.(\d+)$")
RE_OUT_BINDING_REF = re.compile(r"@specDiagrams\.(\d+)/@nodes\.(\d+)/@bindings\.(\d+)/@out\.(\d+)$")
RE_RESPONSIBILITY_REF = re.compile(r"@responsibilities\.(\d+)$")

@dataclasses.dataclass(frozen=True)
class NodeRef:
    diagram:int = -1
    node:int = -1

    @classmethod
    def parse(cls, raw:Optional[str]) -> NodeRef:
        m = RE_NODE_REF.search(raw.strip()) if raw else None
        if m is None:
            return cls()
        return cls(int(m.group(1)), int(m.group(2)))

    def is_valid(self) -> bool:
        return self.diagram >= 0 and self.node >= 0

    def __str__(self) -> str:
        return f'//@urndef/@specDiagrams.{self.diagram}/@nodes.{self.node}'

@dataclasses.dataclass(frozen=True)
class ConnectionRef:
    diagram:int = -1
    connection:int = -1

    @classmethod
    def parse(cls, raw:Optional[str]) -> ConnectionRef:
        m = RE_CONNECTION_REF.search(raw.strip()) if raw else None
        if m is None:
            return cls()
        return cls(int(m.group(1)), int(m.group(2)))

    def is_valid(self) -> bool:
        return self.diagram >= 0 and self.connection >= 0

    def __str__(self) -> str:
        return f'//@urndef/@specDiagrams.{self.diagram}/@connections.{self.connection}'

@dataclasses.dataclass(frozen=True)
class OutBindingRef:
    """ addresses one out binding of one binding group on a stub node """
    diagram:int = -1
    node:int = -1
    bindings:int = -1
    out:int = -1

    @classmethod
    def parse(cls, raw:Optional[str]) -> OutBindingRef:
        m = RE_OUT_BINDING_REF.search(raw.strip()) if raw else None
        if m is None:
            return cls()
        return cls(*(int(g) for g in m.groups()))

    @property
    def stub_ref(self) -> NodeRef:
        return NodeRef(self.diagram, self.node)

    def is_valid(self) -> bool:
        return min(self.diagram, self.node, self.bindings, self.out) >= 0

    def __str__(self) -> str:
        return f'//@urndef/@specDiagrams.{self.diagram}/@nodes.{self.node}/@bindings.{self.bindings}/@out.{self.out}'

def parse_responsibility_ref(raw:Any) -> int:
    """ index of a responsibility from a ref string or an int, -1 if neither """
    if isinstance(raw, int):
        return raw
    m = RE_RESPONSIBILITY_REF.search(raw.strip()) if isinstance(raw, str) else None
    return int(m.group(1)) if m else -1

@dataclasses.dataclass(frozen=True)
class InBinding:
    start_point:NodeRef
    stub_entry:ConnectionRef

@dataclasses.dataclass(frozen=True)
class OutBinding:
    end_point:NodeRef
    stub_exit:ConnectionRef

class NodeKind(enum.Enum):
    START = "start_point"
    END = "end_point"
    EVENT = "resp_ref"
    OR_FORK = "or_fork"
    AND_FORK = "and_fork"
    AND_JOIN = "and_join"
    STUB = "stub"
    GENERIC = "generic"

    @classmethod
    def from_type(cls, type_name:str) -> NodeKind:
        """ maps a jUCMNav xsi:type like ucm.map:AndFork to a kind

        anything without special traversal behavior (OrJoin, EmptyPoint,
        WaitingPlace, ...) is GENERIC """
        name = util.camel_to_snake(type_name.rpartition(":")[2].strip())
        name = NODE_KIND_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            return cls.GENERIC

NODE_KIND_ALIASES = {
    "start": "start_point",
    "end": "end_point",
    "event": "resp_ref",
    "responsibility": "resp_ref",
    "dynamic_stub": "stub",
}

@dataclasses.dataclass
class Connection:
    ref:ConnectionRef
    source:NodeRef
    target:NodeRef
    condition:str = "true"

@dataclasses.dataclass
class Node:
    """ A node in a spec diagram.

    A single class for every kind; only the fields relevant to the kind are
    populated. event_id for EVENT, in/out bindings for STUB and out binding
    refs for END. A stub may carry several binding groups (one per plugin),
    so out_bindings is indexed [group][out]. """

    kind:NodeKind
    ref:NodeRef
    incoming:List[ConnectionRef] = dataclasses.field(default_factory=list)
    outgoing:List[ConnectionRef] = dataclasses.field(default_factory=list)
    event_id:int = -1
    in_bindings:List[InBinding] = dataclasses.field(default_factory=list)
    out_bindings:List[List[OutBinding]] = dataclasses.field(default_factory=list)
    out_binding_refs:List[OutBindingRef] = dataclasses.field(default_factory=list)

    def next_connection_refs(self, ucm:UseCaseMap, speculative:bool=False) -> List[ConnectionRef]:
        """ the outgoing connections that may be crossed right now

        speculative selects the AndJoin rule: a Guard may only pass once every
        incoming connection holds a Guard, a Speculative cursor once every
        incoming connection holds any cursor. """

        if self.kind == NodeKind.EVENT:
            event = ucm.events.get(self.event_id)
            if event is not None and event.passable:
                return list(self.outgoing)
            return []
        elif self.kind == NodeKind.AND_JOIN:
            state = ucm.join_state(self.ref)
            if state is not None and state.is_covered(speculative):
                return list(self.outgoing)
            return []

        legal = []
        for connection_ref in self.outgoing:
            connection = ucm.connection(connection_ref)
            if connection is not None and ucm.is_crossable(connection):
                legal.append(connection_ref)
        return legal

class AndJoinState:
    """ Tracks which cursors wait at an AndJoin and which connections they cover

    Guard and Speculative visits are counted separately per incoming
    connection so both coverage counts stay O(1) to maintain. """

    def __init__(self, incoming:Sequence[ConnectionRef]) -> None:
        self.incoming = list(incoming)
        self.guard_visits:Dict[ConnectionRef, int] = {ref: 0 for ref in self.incoming}
        self.speculative_visits:Dict[ConnectionRef, int] = {ref: 0 for ref in self.incoming}
        # insertion ordered, cursor id -> (connection, speculative)
        self.attendees:Dict[int, Tuple[ConnectionRef, bool]] = {}
        self.covered = 0
        self.covered_by_guards = 0

    def _visits(self, ref:ConnectionRef) -> int:
        return self.guard_visits[ref] + self.speculative_visits[ref]

    def add(self, cursor_id:int, ref:Optional[ConnectionRef], speculative:bool) -> bool:
        if cursor_id in self.attendees or ref is None or ref not in self.guard_visits:
            return False

        if self._visits(ref) == 0:
            self.covered += 1
        if speculative:
            self.speculative_visits[ref] += 1
        else:
            if self.guard_visits[ref] == 0:
                self.covered_by_guards += 1
            self.guard_visits[ref] += 1
        self.attendees[cursor_id] = (ref, speculative)
        return True

    def remove(self, cursor_id:int) -> bool:
        if cursor_id not in self.attendees:
            return False

        ref, speculative = self.attendees.pop(cursor_id)
        if speculative:
            self.speculative_visits[ref] -= 1
        else:
            self.guard_visits[ref] -= 1
            if self.guard_visits[ref] == 0:
                self.covered_by_guards -= 1
        if self._visits(ref) == 0:
            self.covered -= 1
        return True

    def is_covered(self, speculative:bool) -> bool:
        if speculative:
            return self.covered == len(self.incoming)
        return self.covered_by_guards == len(self.incoming)

class SpecDiagram:
    def __init__(self, index:int, nodes:List[Node], connections:List[Connection]) -> None:
        self.index = index
        self.nodes = nodes
        self.connections = connections

class UseCaseMap:
    """ All spec diagrams plus the state traversal needs to query them

    Lookups never raise: anything that does not resolve comes back as None. """

    def __init__(self, events:EventRegistry, game_data:GameData) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.events = events
        self.game_data = game_data
        self.variables = expressions.Variables(game_data)
        self.diagrams:List[SpecDiagram] = []
        self.join_states:Dict[NodeRef, AndJoinState] = {}

    def reset(self, diagrams:Optional[List[SpecDiagram]]=None) -> None:
        self.diagrams = diagrams or []
        self.join_states = {}
        for diagram in self.diagrams:
            for node in diagram.nodes:
                if node.kind == NodeKind.AND_JOIN:
                    self.join_states[node.ref] = AndJoinState(node.incoming)

    def node(self, ref:Optional[NodeRef]) -> Optional[Node]:
        if ref is None or not (0 <= ref.diagram < len(self.diagrams)):
            return None
        nodes = self.diagrams[ref.diagram].nodes
        if not (0 <= ref.node < len(nodes)):
            return None
        return nodes[ref.node]

    def connection(self, ref:Optional[ConnectionRef]) -> Optional[Connection]:
        if ref is None or not (0 <= ref.diagram < len(self.diagrams)):
            return None
        connections = self.diagrams[ref.diagram].connections
        if not (0 <= ref.connection < len(connections)):
            return None
        return connections[ref.connection]

    def out_binding(self, ref:OutBindingRef) -> Optional[OutBinding]:
        stub = self.node(ref.stub_ref)
        if stub is None or stub.kind != NodeKind.STUB:
            return None
        if not (0 <= ref.bindings < len(stub.out_bindings)):
            return None
        group = stub.out_bindings[ref.bindings]
        if not (0 <= ref.out < len(group)):
            return None
        return group[ref.out]

    def join_state(self, ref:NodeRef) -> Optional[AndJoinState]:
        return self.join_states.get(ref)

    def is_crossable(self, connection:Connection) -> bool:
        return expressions.evaluate_comparison(connection.condition, self.variables)

    def stub_start_point(self, stub:Node, entry:Optional[ConnectionRef]) -> Optional[NodeRef]:
        """ the plugin start point bound to the connection used to enter stub """
        for binding in stub.in_bindings:
            if binding.stub_entry == entry and self.node(binding.start_point) is not None:
                return binding.start_point
        return None

    def stub_exit_connection_ref(self, end_node:Node, stub_ref:NodeRef) -> Optional[ConnectionRef]:
        """ the connection out of stub_ref bound to end_node, if any """
        for out_ref in end_node.out_binding_refs:
            if out_ref.stub_ref != stub_ref:
                continue
            binding = self.out_binding(out_ref)
            if binding is None or self.connection(binding.stub_exit) is None:
                return None
            return binding.stub_exit
        return None

def _refs(raw:Sequence[str], parse:Any) -> List[Any]:
    return [parse(r) for r in raw]

def build_node(diagram_index:int, node_index:int, raw:Mapping[str, Any]) -> Node:
    """ creates a node from the normalized description produced by the loader """
    kind = NodeKind.from_type(raw["type"])
    node = Node(
        kind,
        NodeRef(diagram_index, node_index),
        incoming=_refs(raw.get("pred", []), ConnectionRef.parse),
        outgoing=_refs(raw.get("succ", []), ConnectionRef.parse),
    )
    if kind == NodeKind.EVENT:
        node.event_id = parse_responsibility_ref(raw.get("resp_def", -1))
    elif kind == NodeKind.END:
        node.out_binding_refs = _refs(raw.get("out_bindings", []), OutBindingRef.parse)
    elif kind == NodeKind.STUB:
        for group in raw.get("bindings", []):
            node.in_bindings.extend(
                InBinding(NodeRef.parse(b["start_point"]), ConnectionRef.parse(b["stub_entry"]))
                for b in group.get("in", [])
            )
            node.out_bindings.append([
                OutBinding(NodeRef.parse(b["end_point"]), ConnectionRef.parse(b["stub_exit"]))
                for b in group.get("out", [])
            ])
    return node

def build_diagrams(raw_diagrams:Sequence[Mapping[str, Any]], game_data:GameData) -> List[SpecDiagram]:
    """ builds every spec diagram, qualifying guard expressions once """
    diagrams = []
    for d, raw_diagram in enumerate(raw_diagrams):
        nodes = [build_node(d, n, raw_node) for n, raw_node in enumerate(raw_diagram.get("nodes", []))]
        connections = []
        for c, raw_connection in enumerate(raw_diagram.get("connections", [])):
            condition = raw_connection.get("condition") or "true"
            connections.append(Connection(
                ConnectionRef(d, c),
                NodeRef.parse(raw_connection.get("source")),
                NodeRef.parse(raw_connection.get("target")),
                expressions.rewrite_guard_expression(condition, game_data),
            ))
        diagrams.append(SpecDiagram(d, nodes, connections))
    return diagrams
