""" graphviz renderings of use case maps and live cursor state """

from typing import Dict, List, Optional

import graphviz # type: ignore

from ucmflow.engine import NarrativeEngine
from ucmflow.graph import Node, NodeKind, UseCaseMap

NODE_SHAPES = {
    NodeKind.START: "circle",
    NodeKind.END: "doublecircle",
    NodeKind.EVENT: "box",
    NodeKind.OR_FORK: "diamond",
    NodeKind.AND_FORK: "triangle",
    NodeKind.AND_JOIN: "invtriangle",
    NodeKind.STUB: "hexagon",
    NodeKind.GENERIC: "point",
}

def _node_id(node:Node) -> str:
    return f'd{node.ref.diagram}n{node.ref.node}'

def _node_label(ucm:UseCaseMap, node:Node) -> str:
    if node.kind == NodeKind.EVENT:
        event = ucm.events.get(node.event_id)
        return event.name if event else f'? ({node.event_id})'
    elif node.kind == NodeKind.GENERIC:
        return ""
    return f'{node.kind.name.lower()} {node.ref.node}'

def viz(ucm:UseCaseMap, highlight:Optional[Dict[str, List[str]]]=None) -> graphviz.Digraph:
    """ one cluster per spec diagram

    highlight maps graphviz node ids to annotations (e.g. cursor ids) that
    are appended to the label and drawn in red. """

    highlight = highlight or {}
    g = graphviz.Digraph("use_case_map", graph_attr={"rankdir": "LR"})
    g.attr(compound="true")

    for diagram in ucm.diagrams:
        with g.subgraph(name=f'cluster_{diagram.index}') as c:
            c.attr(label=f'diagram {diagram.index}')
            for node in diagram.nodes:
                node_id = _node_id(node)
                label = _node_label(ucm, node)
                attrs = {"shape": NODE_SHAPES[node.kind]}
                if node_id in highlight:
                    label = f'{label}\n[{", ".join(highlight[node_id])}]'
                    attrs.update(color="red", fontcolor="red")
                    if node.kind == NodeKind.GENERIC:
                        attrs["shape"] = "circle"
                c.node(node_id, label=label, **attrs)

        for connection in diagram.connections:
            source = ucm.node(connection.source)
            target = ucm.node(connection.target)
            if source is None or target is None:
                continue
            label = "" if connection.condition == "true" else connection.condition
            g.edge(_node_id(source), _node_id(target), label=label)

    # stub bindings link diagrams together
    for diagram in ucm.diagrams:
        for node in diagram.nodes:
            if node.kind != NodeKind.STUB:
                continue
            for in_binding in node.in_bindings:
                start = ucm.node(in_binding.start_point)
                if start is not None:
                    g.edge(_node_id(node), _node_id(start), style="dashed")

    return g

def engine_viz(engine:NarrativeEngine) -> graphviz.Digraph:
    """ the engine's map with every cursor marked where it stands

    Guards are written G<id>, Speculative cursors S<id>. """

    highlight:Dict[str, List[str]] = {}
    for cursor in engine.traversal.cursors.values():
        node = engine.ucm.node(cursor.node_ref)
        if node is None:
            continue
        prefix = "S" if cursor.is_speculative else "G"
        highlight.setdefault(_node_id(node), []).append(f'{prefix}{cursor.id}')
    return viz(engine.ucm, highlight)
