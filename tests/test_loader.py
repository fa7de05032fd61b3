""" Tests for loading descriptions and event scripts """

import json

import pytest
import numpy as np

from ucmflow import loader
from ucmflow.engine import NarrativeEngine
from ucmflow.gamedata import ScenarioError
from . import RecordingObserver, example_path, legal, run_script

def read(name):
    with open(example_path(name), "rt") as f:
        return f.read()

def test_load_jucm():
    description = loader.load_jucm(read("door.jucm"))

    assert description["enums"] == [{"name": "Mood", "values": ["Calm", "Angry"]}]
    assert description["variables"] == [{"name": "has_key", "type": "Bool"}, {"name": "mood", "type": "Mood"}]
    assert [s["name"] for s in description["scenarios"]] == ["locked", "unlocked"]
    assert description["scenarios"][0]["initializations"] == {"has_key": "false", "mood": "Calm"}
    assert description["scenarios"][0]["start_points"] == ["//@urndef/@specDiagrams.0/@nodes.0"]
    assert [r["name"] for r in description["responsibilities"]] == ["FindKey", "UnlockDoor", "OpenDoor"]

    root, plugin = description["spec_diagrams"]
    assert [n["type"] for n in root["nodes"]] == [
        "ucm.map:StartPoint", "ucm.map:RespRef", "ucm.map:Stub", "ucm.map:RespRef", "ucm.map:EndPoint",
    ]
    assert root["nodes"][3]["resp_def"] == 2
    assert root["nodes"][2]["bindings"] == [{
        "in": [{
            "start_point": "//@urndef/@specDiagrams.1/@nodes.0",
            "stub_entry": "//@urndef/@specDiagrams.0/@connections.1",
        }],
        "out": [{
            "end_point": "//@urndef/@specDiagrams.1/@nodes.2",
            "stub_exit": "//@urndef/@specDiagrams.0/@connections.2",
        }],
    }]
    assert plugin["nodes"][2]["out_bindings"] == ["//@urndef/@specDiagrams.0/@nodes.2/@bindings.0/@out.0"]
    assert plugin["connections"][0]["condition"] == "has_key"
    assert root["connections"][0]["condition"] == "true"

def test_load_event_scripts_xml():
    scripts = loader.load_event_scripts_xml(read("door_events.xml"))
    assert sorted(scripts) == ["FindKey", "OpenDoor", "UnlockDoor"]
    assert "$global.has_key = true" in scripts["FindKey"]

def test_door_without_key(narrative):
    loader.load_scenario_file(narrative, example_path("door.jucm"), "locked")

    assert legal(narrative) == ["FindKey"]
    assert narrative.try_to_call_event_by_name("FindKey")
    # nothing set has_key, so the guard waits inside the lock
    assert legal(narrative) == []
    guard = narrative.traversal.guards[0]
    assert guard.node_ref.diagram == 1
    assert len(guard.stub_stack) == 1

def test_door_unlocked(narrative):
    loader.load_scenario_file(narrative, example_path("door.jucm"), "unlocked")
    narrative.try_to_call_event_by_name("FindKey")
    assert legal(narrative) == ["UnlockDoor"]

def test_door_with_scripts(narrative, observer):
    description = loader.load_scenario_file(
        narrative, example_path("door.jucm"), events_path=example_path("door_events.xml"),
    )
    assert narrative.scenario_name == description["scenarios"][0]["name"] == "locked"

    for name in ("FindKey", "UnlockDoor", "OpenDoor"):
        assert legal(narrative) == [name]
        assert narrative.try_to_call_event_by_name(name)
        run_script(narrative)

    assert legal(narrative) == []
    assert narrative.traversal.cursors == {}
    assert narrative.game_data.globals["has_key"].value is True
    assert observer.errors == []

def test_tavern(narrative, observer):
    loader.load_scenario_file(narrative, example_path("tavern.toml"))
    gold = narrative.game_data.globals["gold"]
    assert gold.value == 12

    assert legal(narrative) == ["TalkToBarkeep"]
    narrative.try_to_call_event_by_name("TalkToBarkeep")
    run_script(narrative)
    assert narrative.game_data.globals["barkeep_mood"].value == "Mood.Friendly"
    assert legal(narrative) == ["PayForRoom"]

    narrative.try_to_call_event_by_name("PayForRoom")
    run_script(narrative)
    assert gold.value == 2
    assert legal(narrative) == ["Sleep"]

    narrative.try_to_call_event_by_name("Sleep")
    run_script(narrative)
    assert narrative.game_data.globals["rested"].value is True
    assert legal(narrative) == []
    assert observer.errors == []

def play_tavern():
    narrative = NarrativeEngine(r=np.random.default_rng(99))
    observer = RecordingObserver()
    narrative.observe(observer)
    loader.load_scenario_file(narrative, example_path("tavern.toml"))

    calls = []
    for name in ("TalkToBarkeep", "PayForRoom", "Sleep"):
        calls.append(narrative.try_to_call_event_by_name(name))
        for tick in range(200):
            if tick % 3 == 0:
                narrative.script_manager.input_state.press_action()
            narrative.update(0.05)
            narrative.script_manager.input_state.end_tick()

    variables = {name: v.value for name, v in narrative.game_data.globals.items()}
    return calls, variables, (observer.loads, observer.preloaded, observer.unloaded, observer.errors)

def test_same_ticks_same_outcome():
    first = play_tavern()
    assert first[0] == [True, True, True]
    assert first[1]["rested"] is True
    assert play_tavern() == first

def test_tavern_without_coin(narrative):
    loader.load_scenario_file(narrative, example_path("tavern.toml"), "evening")
    narrative.game_data.globals["gold"].value = 5

    narrative.try_to_call_event_by_name("TalkToBarkeep")
    run_script(narrative)
    assert narrative.game_data.globals["barkeep_mood"].value == "Mood.Grumpy"
    assert legal(narrative) == ["SneakUpstairs"]

def test_separate_event_scripts(narrative, tmp_path):
    events_file = tmp_path / "events.json"
    events_file.write_text(json.dumps({"events": {"Sleep": "$global.rested = true\n$global.gold = 0"}}))
    loader.load_scenario_file(narrative, example_path("tavern.toml"), events_path=str(events_file))

    # scripts from the events file win over the embedded ones
    assert narrative.events.by_name("Sleep").script.startswith("$global.rested = true\n$global.gold")
    assert narrative.events.by_name("PayForRoom").script is not None

def test_json_description(narrative, tmp_path):
    path = tmp_path / "tiny.json"
    path.write_text(json.dumps({
        "scenarios": [{"name": "only", "start_points": [[0, 0]]}],
        "responsibilities": ["Wave"],
        "spec_diagrams": [{
            "nodes": [
                {"type": "StartPoint", "succ": 0},
                {"type": "RespRef", "pred": 0, "resp_def": "Wave"},
            ],
            "connections": [{"source": 0, "target": 1}],
        }],
    }))
    loader.load_scenario_file(narrative, str(path))
    assert legal(narrative) == ["Wave"]

def test_loadd_normalizes_refs():
    description = loader.loadd({
        "enums": [{"name": "Light", "values": "Red, Green"}],
        "variables": [
            {"name": "light", "type": "enumeration", "enumeration_type": 0},
            {"name": "count", "type": "integer"},
            {"name": "flag"},
        ],
        "scenarios": [{"name": "s", "start_points": [[1, 0]], "initializations": {"flag": True, "count": 3}}],
        "responsibilities": [{"name": "A"}],
        "spec_diagrams": [{"nodes": [], "connections": []}, {
            "nodes": [{"type": "RespRef", "pred": "//@urndef/@specDiagrams.1/@connections.0", "resp_def": 0}],
            "connections": [{"source": [0, 1], "target": 0}],
        }],
    })
    assert description["enums"] == [{"name": "Light", "values": ["Red", "Green"]}]
    assert [v["type"] for v in description["variables"]] == ["Light", "Int", "Bool"]
    assert description["scenarios"][0]["initializations"] == {"flag": "true", "count": "3"}
    assert description["scenarios"][0]["start_points"] == ["//@urndef/@specDiagrams.1/@nodes.0"]
    node = description["spec_diagrams"][1]["nodes"][0]
    assert node["pred"] == ["//@urndef/@specDiagrams.1/@connections.0"]
    assert node["resp_def"] == 0
    connection = description["spec_diagrams"][1]["connections"][0]
    assert connection["source"] == "//@urndef/@specDiagrams.0/@nodes.1"
    assert connection["target"] == "//@urndef/@specDiagrams.1/@nodes.0"
    assert connection["condition"] == "true"

@pytest.mark.parametrize("data", [
    {"enums": [{"name": "Empty", "values": []}]},
    {"variables": [{"name": "x", "type": "Float"}]},
    {"variables": [{"name": "x", "type": "enumeration", "enumeration_type": 3}]},
    {"scenarios": [{"start_points": []}]},
    {"spec_diagrams": [{"nodes": [{"pred": []}]}]},
    {"spec_diagrams": [{"nodes": [{"type": "RespRef", "resp_def": "Nobody"}]}]},
    {"spec_diagrams": [{"connections": [{"source": "nowhere", "target": 0}]}]},
])
def test_loadd_rejects(data):
    with pytest.raises(ScenarioError):
        loader.loadd(data)

def test_malformed_xml():
    with pytest.raises(ScenarioError):
        loader.load_jucm("<urn:URNspec")
    with pytest.raises(ScenarioError):
        loader.load_jucm("<nothing/>")
    with pytest.raises(ScenarioError):
        loader.load_event_scripts_xml("<eventscripts><eventscript>SLEEP 1</eventscript></eventscripts>")

def test_load_event_scripts():
    assert loader.load_event_scripts({"A": "SLEEP 1"}) == {"A": "SLEEP 1"}
    assert loader.load_event_scripts({"events": {"A": "SLEEP 1"}}) == {"A": "SLEEP 1"}
    with pytest.raises(ScenarioError):
        loader.load_event_scripts({"A": 3})

def test_unknown_file_type(narrative, tmp_path):
    path = tmp_path / "scenario.yaml"
    path.write_text("")
    with pytest.raises(ScenarioError):
        loader.load_scenario_file(narrative, str(path))
