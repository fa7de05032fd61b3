""" Scenario description loading

Descriptions come from jUCMNav .jucm files (xml), toml, json or plain dicts.
Every source is normalized by loadd into one schema:

    enums:            [{name, values: [str]}]
    variables:        [{name, type}]            type is Bool, Int or an enum name
    scenarios:        [{name, initializations: {variable: literal}, start_points: [node ref]}]
    responsibilities: [{name, expression}]
    spec_diagrams:    [{nodes: [...], connections: [...]}]

    node:       {type, pred: [connection ref], succ: [connection ref],
                 resp_def: int, out_bindings: [out binding ref],
                 bindings: [{in: [{start_point, stub_entry}], out: [{end_point, stub_exit}]}]}
    connection: {source: node ref, target: node ref, condition: str}

Refs are normalized to jUCMNav reference strings. Hand written descriptions
may use an int for a node or connection in the same diagram, a [diagram,
index] pair for any other, a responsibility name for resp_def and an enum
name or index for enumeration_type.

Event scripts map event names to script text.
"""

import os
import re
import json
import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Mapping, Optional

import toml # type: ignore

from ucmflow import graph
from ucmflow.gamedata import BOOL, INT, ScenarioError
from ucmflow.engine import NarrativeEngine

logger = logging.getLogger(__name__)

RE_TRAILING_INDEX = re.compile(r"\.([0-9]+)$")

def _local(tag:str) -> str:
    return tag.rpartition("}")[2].rpartition(":")[2]

def _attr(element:ET.Element, name:str, default:Optional[str]=None) -> Optional[str]:
    """ attribute by local name, ignoring any namespace """
    for key, value in element.attrib.items():
        if _local(key) == name:
            return value
    return default

def _children(element:ET.Element, name:str) -> List[ET.Element]:
    return [child for child in element if _local(child.tag) == name]

def _find(element:ET.Element, name:str) -> Optional[ET.Element]:
    for descendant in element.iter():
        if _local(descendant.tag) == name:
            return descendant
    return None

def _split(raw:Optional[str]) -> List[str]:
    return raw.split() if raw else []

def _trailing_index(raw:Optional[str]) -> int:
    m = RE_TRAILING_INDEX.search(raw or "")
    return int(m.group(1)) if m else -1

def load_jucm(xml_text:str) -> Dict[str, Any]:
    """ reads a jUCMNav .jucm document """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ScenarioError(f'malformed jucm xml: {e}') from e

    ucmspec = _find(root, "ucmspec")
    urndef = _find(root, "urndef")
    if ucmspec is None or urndef is None:
        raise ScenarioError("jucm document needs both ucmspec and urndef")

    enums = [
        {"name": _attr(e, "name"), "values": [v.strip() for v in (_attr(e, "values") or "").split(",") if v.strip()]}
        for e in _children(ucmspec, "enumerationTypes")
    ]

    variables = []
    for v in _children(ucmspec, "variables"):
        variable:Dict[str, Any] = {"name": _attr(v, "name"), "type": _attr(v, "type") or BOOL}
        if _attr(v, "enumerationType") is not None:
            variable["enumeration_type"] = _trailing_index(_attr(v, "enumerationType"))
        variables.append(variable)

    scenarios = []
    for s in ucmspec.iter():
        if _local(s.tag) != "scenarios":
            continue
        initializations = {}
        for i in _children(s, "initializations"):
            index = _trailing_index(_attr(i, "variable"))
            if 0 <= index < len(variables):
                initializations[variables[index]["name"]] = _attr(i, "value", "")
        scenarios.append({
            "name": _attr(s, "name"),
            "initializations": initializations,
            "start_points": [_attr(p, "startPoint") for p in _children(s, "startPoints")],
        })

    responsibilities = [
        {"name": _attr(r, "name"), "expression": _attr(r, "expression", "")}
        for r in _children(urndef, "responsibilities")
    ]

    spec_diagrams = []
    for d in _children(urndef, "specDiagrams"):
        nodes = []
        for n in _children(d, "nodes"):
            node:Dict[str, Any] = {
                "type": _attr(n, "type", ""),
                "pred": _split(_attr(n, "pred")),
                "succ": _split(_attr(n, "succ")),
            }
            if _attr(n, "respDef") is not None:
                node["resp_def"] = _attr(n, "respDef")
            if _attr(n, "outBindings") is not None:
                node["out_bindings"] = _split(_attr(n, "outBindings"))
            groups = _children(n, "bindings")
            if groups:
                node["bindings"] = [{
                    "in": [{"start_point": _attr(b, "startPoint"), "stub_entry": _attr(b, "stubEntry")} for b in _children(g, "in")],
                    "out": [{"end_point": _attr(b, "endPoint"), "stub_exit": _attr(b, "stubExit")} for b in _children(g, "out")],
                } for g in groups]
            nodes.append(node)

        connections = []
        for c in _children(d, "connections"):
            condition = _find(c, "condition")
            connections.append({
                "source": _attr(c, "source"),
                "target": _attr(c, "target"),
                "condition": _attr(condition, "expression", "") if condition is not None else "",
            })
        spec_diagrams.append({"nodes": nodes, "connections": connections})

    return loadd({
        "enums": enums,
        "variables": variables,
        "scenarios": scenarios,
        "responsibilities": responsibilities,
        "spec_diagrams": spec_diagrams,
    })

def _node_ref(raw:Any, diagram:int) -> str:
    if isinstance(raw, int):
        return str(graph.NodeRef(diagram, raw))
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        return str(graph.NodeRef(int(raw[0]), int(raw[1])))
    if isinstance(raw, str) and graph.NodeRef.parse(raw).is_valid():
        return str(graph.NodeRef.parse(raw))
    raise ScenarioError(f'bad node reference {raw!r}')

def _connection_ref(raw:Any, diagram:int) -> str:
    if isinstance(raw, int):
        return str(graph.ConnectionRef(diagram, raw))
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        return str(graph.ConnectionRef(int(raw[0]), int(raw[1])))
    if isinstance(raw, str) and graph.ConnectionRef.parse(raw).is_valid():
        return str(graph.ConnectionRef.parse(raw))
    raise ScenarioError(f'bad connection reference {raw!r}')

def _ref_list(raw:Any) -> List[Any]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return raw.split()
    if isinstance(raw, (int, tuple)):
        return [raw]
    return list(raw)

def _literal(value:Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)

def _variable_type(raw:Mapping[str, Any], enum_names:List[str]) -> str:
    type_name = str(raw.get("type") or BOOL)
    lowered = type_name.lower()
    if lowered.startswith("bool"):
        return BOOL
    elif lowered.startswith("int"):
        return INT
    elif lowered.startswith("enum"):
        enumeration_type = raw.get("enumeration_type")
        if isinstance(enumeration_type, int) and 0 <= enumeration_type < len(enum_names):
            return enum_names[enumeration_type]
        if isinstance(enumeration_type, str) and enumeration_type in enum_names:
            return enumeration_type
        raise ScenarioError(f'variable {raw.get("name")} has unknown enumeration type {enumeration_type!r}')
    elif type_name in enum_names:
        return type_name
    raise ScenarioError(f'variable {raw.get("name")} has unknown type {type_name}')

def _normalize_node(raw:Mapping[str, Any], diagram:int, responsibility_names:List[str]) -> Dict[str, Any]:
    if "type" not in raw:
        raise ScenarioError(f'node in diagram {diagram} has no type')
    node:Dict[str, Any] = {
        "type": str(raw["type"]),
        "pred": [_connection_ref(r, diagram) for r in _ref_list(raw.get("pred"))],
        "succ": [_connection_ref(r, diagram) for r in _ref_list(raw.get("succ"))],
    }

    if "resp_def" in raw:
        resp_def = raw["resp_def"]
        if isinstance(resp_def, str) and resp_def in responsibility_names:
            node["resp_def"] = responsibility_names.index(resp_def)
        else:
            index = graph.parse_responsibility_ref(resp_def)
            if not (0 <= index < len(responsibility_names)):
                raise ScenarioError(f'node in diagram {diagram} refers to unknown responsibility {resp_def!r}')
            node["resp_def"] = index

    if "out_bindings" in raw:
        out_bindings = []
        for r in _ref_list(raw["out_bindings"]):
            ref = graph.OutBindingRef.parse(r) if isinstance(r, str) else graph.OutBindingRef(*r)
            if not ref.is_valid():
                raise ScenarioError(f'bad out binding reference {r!r}')
            out_bindings.append(str(ref))
        node["out_bindings"] = out_bindings

    if "bindings" in raw:
        groups = raw["bindings"]
        if isinstance(groups, Mapping):
            groups = [groups]
        node["bindings"] = [{
            "in": [{
                "start_point": _node_ref(b["start_point"], diagram),
                "stub_entry": _connection_ref(b["stub_entry"], diagram),
            } for b in g.get("in", [])],
            "out": [{
                "end_point": _node_ref(b["end_point"], diagram),
                "stub_exit": _connection_ref(b["stub_exit"], diagram),
            } for b in g.get("out", [])],
        } for g in groups]

    return node

def loadd(data:Mapping[str, Any]) -> Dict[str, Any]:
    """ validates and normalizes a description, raising ScenarioError """
    try:
        enums = []
        for e in data.get("enums", []):
            values = e["values"]
            if isinstance(values, str):
                values = [v.strip() for v in values.split(",") if v.strip()]
            if not values:
                raise ScenarioError(f'enum {e["name"]} has no values')
            enums.append({"name": str(e["name"]), "values": [str(v) for v in values]})
        enum_names = [e["name"] for e in enums]

        variables = [
            {"name": str(v["name"]), "type": _variable_type(v, enum_names)}
            for v in data.get("variables", [])
        ]

        responsibilities = []
        for r in data.get("responsibilities", []):
            if isinstance(r, str):
                r = {"name": r}
            responsibilities.append({"name": str(r["name"]), "expression": r.get("expression") or ""})
        responsibility_names = [r["name"] for r in responsibilities]

        scenarios = []
        for s in data.get("scenarios", []):
            scenarios.append({
                "name": str(s["name"]),
                "initializations": {str(k): _literal(v) for k, v in s.get("initializations", {}).items()},
                "start_points": [_node_ref(p, 0) for p in _ref_list(s.get("start_points"))],
            })

        spec_diagrams = []
        for d, raw_diagram in enumerate(data.get("spec_diagrams", [])):
            nodes = [_normalize_node(n, d, responsibility_names) for n in raw_diagram.get("nodes", [])]
            connections = [{
                "source": _node_ref(c["source"], d),
                "target": _node_ref(c["target"], d),
                "condition": c.get("condition") or "true",
            } for c in raw_diagram.get("connections", [])]
            spec_diagrams.append({"nodes": nodes, "connections": connections})
    except KeyError as e:
        raise ScenarioError(f'description is missing {e}') from e

    return {
        "enums": enums,
        "variables": variables,
        "scenarios": scenarios,
        "responsibilities": responsibilities,
        "spec_diagrams": spec_diagrams,
    }

def loads(toml_text:str) -> Dict[str, Any]:
    return loadd(toml.loads(toml_text))

def load_event_scripts_xml(xml_text:str) -> Dict[str, str]:
    """ reads <eventscripts><eventscript event="name">script</eventscript></eventscripts> """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ScenarioError(f'malformed event scripts xml: {e}') from e
    container = root if _local(root.tag) == "eventscripts" else _find(root, "eventscripts")
    if container is None:
        raise ScenarioError("no eventscripts element")
    scripts = {}
    for element in _children(container, "eventscript"):
        name = _attr(element, "event")
        if name is None:
            raise ScenarioError("eventscript without an event attribute")
        scripts[name] = element.text or ""
    return scripts

def load_event_scripts(data:Mapping[str, Any]) -> Dict[str, str]:
    """ event scripts from {"events": {name: script}} or a flat mapping """
    scripts = data.get("events", data)
    if not isinstance(scripts, Mapping) or not all(isinstance(v, str) for v in scripts.values()):
        raise ScenarioError("event scripts must map event names to script text")
    return {str(k): v for k, v in scripts.items()}

def _read_description(path:str) -> Dict[str, Any]:
    ext = os.path.splitext(path)[1].lower()
    with open(path, "rt") as f:
        text = f.read()
    if ext in (".jucm", ".xml"):
        return load_jucm(text)
    elif ext == ".toml":
        return loads(text)
    elif ext == ".json":
        return loadd(json.loads(text))
    raise ScenarioError(f'unknown scenario file type {path}')

def _read_event_scripts(path:str) -> Dict[str, str]:
    ext = os.path.splitext(path)[1].lower()
    with open(path, "rt") as f:
        text = f.read()
    if ext == ".xml":
        return load_event_scripts_xml(text)
    elif ext == ".toml":
        return load_event_scripts(toml.loads(text))
    elif ext == ".json":
        return load_event_scripts(json.loads(text))
    raise ScenarioError(f'unknown event scripts file type {path}')

def load_scenario_file(
        engine:NarrativeEngine,
        path:str,
        scenario_name:Optional[str]=None,
        events_path:Optional[str]=None,
        settings:Optional[Mapping[str, Any]]=None,
) -> Dict[str, Any]:
    """ loads a scenario file into engine, returning the description

    with no scenario_name the first scenario is used. a toml description may
    carry its event scripts in an [events] table. """

    description = _read_description(path)
    if scenario_name is None:
        if not description["scenarios"]:
            raise ScenarioError(f'{path} has no scenarios')
        scenario_name = description["scenarios"][0]["name"]

    event_scripts:Dict[str, str] = {}
    if path.lower().endswith(".toml"):
        with open(path, "rt") as f:
            embedded = toml.load(f).get("events")
        if embedded:
            event_scripts.update(load_event_scripts(embedded))
    if events_path:
        event_scripts.update(_read_event_scripts(events_path))

    logger.info(f'loading scenario {scenario_name} from {path}')
    engine.load_scenario(description, scenario_name, event_scripts, settings)
    return description
