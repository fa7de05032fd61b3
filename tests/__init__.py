import os
from typing import Any, Dict, List, Optional, Sequence

import ucmflow
from ucmflow import engine, events, loader

def example_path(name:str) -> str:
    return os.path.join(os.path.dirname(ucmflow.__file__), "data", "examples", name)

class DiagramBuilder:
    """ Builds one spec diagram of a description using local int refs.

    node() and connect() return the index of what they added, and connect()
    fills in pred and succ on both ends. """

    def __init__(self) -> None:
        self.nodes:List[Dict[str, Any]] = []
        self.connections:List[Dict[str, Any]] = []

    def node(self, node_type:str, **kwargs:Any) -> int:
        self.nodes.append({"type": node_type, "pred": [], "succ": [], **kwargs})
        return len(self.nodes) - 1

    def event(self, name:str) -> int:
        return self.node("RespRef", resp_def=name)

    def connect(self, source:int, target:int, condition:Optional[str]=None) -> int:
        self.connections.append({"source": source, "target": target, "condition": condition or "true"})
        index = len(self.connections) - 1
        self.nodes[source]["succ"].append(index)
        self.nodes[target]["pred"].append(index)
        return index

    def chain(self, *nodes:int) -> List[int]:
        return [self.connect(a, b) for a, b in zip(nodes, nodes[1:])]

    def raw(self) -> Dict[str, Any]:
        return {"nodes": self.nodes, "connections": self.connections}

def description(
        diagrams:Sequence[DiagramBuilder],
        responsibilities:Sequence[str],
        variables:Sequence[Dict[str, Any]]=(),
        enums:Sequence[Dict[str, Any]]=(),
        start_points:Sequence[Sequence[int]]=((0, 0),),
        initializations:Optional[Dict[str, Any]]=None,
        scenario:str="test",
) -> Dict[str, Any]:
    return loader.loadd({
        "enums": list(enums),
        "variables": list(variables),
        "scenarios": [{
            "name": scenario,
            "initializations": initializations or {},
            "start_points": [list(p) for p in start_points],
        }],
        "responsibilities": list(responsibilities),
        "spec_diagrams": [d.raw() for d in diagrams],
    })

def linear(*names:str) -> DiagramBuilder:
    """ Start -> names... -> End """
    d = DiagramBuilder()
    nodes = [d.node("StartPoint")] + [d.event(n) for n in names] + [d.node("EndPoint")]
    d.chain(*nodes)
    return d

class RecordingObserver(events.NarrativeObserver):
    def __init__(self) -> None:
        self.loads = 0
        self.preloaded:List[str] = []
        self.unloaded:List[str] = []
        self.errors:List[str] = []

    def on_load(self) -> None:
        self.loads += 1

    def on_preload_event(self, name:str) -> None:
        self.preloaded.append(name)

    def on_unload_event(self, name:str) -> None:
        self.unloaded.append(name)

    def on_script_error(self, message:str) -> None:
        self.errors.append(message)

def run_script(e:engine.NarrativeEngine, dt:float=0.1, max_ticks:int=1000, choice:Optional[int]=None) -> int:
    """ ticks with the action held down until the running script finishes,
    returns the number of ticks it took """
    input_state = e.script_manager.input_state
    for ticks in range(max_ticks):
        if not e.script_manager.is_running:
            return ticks
        input_state.press_action()
        if choice is not None:
            input_state.choose(choice)
        e.update(dt)
        input_state.end_tick()
    raise AssertionError(f'script still running after {max_ticks} ticks')

def legal(e:engine.NarrativeEngine) -> List[str]:
    return sorted(e.fetch_all_legal_event_names())
