""" The narrative engine: the host's single entry point

The engine owns all narrative state (variables, events, diagrams, cursors and
the script manager) and rebuilds all of it on every load. The host calls
events by name or id, drives update(dt) once per tick and observes legality
changes through a NarrativeObserver.
"""

import enum
import logging
from typing import Any, List, Mapping, Optional

import numpy as np

from ucmflow import config, graph, util
from ucmflow.cursors import Traversal
from ucmflow.events import CallbackObserver, Event, EventRegistry, NarrativeObserver
from ucmflow.gamedata import EnumType, GameData, ScenarioError
from ucmflow.script import InputState, ScriptManager
from ucmflow.script.commands import MoveHandler

class MoverPolicy(enum.Enum):
    """ which attendees move past an event once it is called """
    FIRST = enum.auto()
    LAST = enum.auto()
    RANDOM = enum.auto()
    ALL = enum.auto()

    @classmethod
    def parse(cls, value:Any) -> "MoverPolicy":
        if isinstance(value, MoverPolicy):
            return value
        name = str(value).upper()
        if name.startswith("MOVE_"):
            name = name[len("MOVE_"):]
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f'unknown mover policy {value}')

SETTING_ALIASES = {
    "onEventCall": "on_event_call",
    "onLoadCallback": "on_load_callback",
    "onPreloadEventCallback": "on_preload_event_callback",
    "onUnloadEventCallback": "on_unload_event_callback",
}

class NarrativeEngine:
    def __init__(
            self,
            r:Optional[np.random.Generator]=None,
            input_state:Optional[InputState]=None,
            move_handler:Optional[MoveHandler]=None,
    ) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.r = r if r is not None else np.random.default_rng()

        self.game_data = GameData()
        self.events = EventRegistry()
        self.ucm = graph.UseCaseMap(self.events, self.game_data)
        self.traversal = Traversal(self.ucm, self.events)
        self.script_manager = ScriptManager(self.game_data, input_state, move_handler)
        self.script_manager.on_error = self._on_script_error

        self.mover_policy = MoverPolicy.parse(config.Settings.narrative.on_event_call)
        self.scenario_name:Optional[str] = None
        # the event whose script is running, if any
        self.calling:Optional[Event] = None
        self._completing = False
        self._settings_observer:Optional[NarrativeObserver] = None

    def observe(self, observer:NarrativeObserver) -> None:
        self.events.observe(observer)

    def unobserve(self, observer:NarrativeObserver) -> None:
        self.events.unobserve(observer)

    def _apply_settings(self, settings:Optional[Mapping[str, Any]]) -> None:
        self.mover_policy = MoverPolicy.parse(config.Settings.narrative.on_event_call)
        if self._settings_observer is not None:
            self.unobserve(self._settings_observer)
            self._settings_observer = None
        if not settings:
            return

        known = {}
        for key, value in settings.items():
            key = SETTING_ALIASES.get(key, key)
            if key not in SETTING_ALIASES.values():
                self.logger.debug(f'ignoring unknown setting {key}')
                continue
            known[key] = value

        if "on_event_call" in known:
            self.mover_policy = MoverPolicy.parse(known["on_event_call"])
        callbacks = [known.get(f'on_{k}_callback') for k in ("load", "preload_event", "unload_event")]
        if any(callbacks):
            self._settings_observer = CallbackObserver(*callbacks)
            self.observe(self._settings_observer)

    def load_scenario(
            self,
            description:Mapping[str, Any],
            scenario_name:str,
            event_scripts:Optional[Mapping[str, str]]=None,
            settings:Optional[Mapping[str, Any]]=None,
    ) -> None:
        """ rebuilds all narrative state from a normalized description (see
        ucmflow.loader) and places a Guard at each of the scenario's start
        points """

        self.traversal.reset()
        self.events.reset()
        self.game_data.reset()
        self.script_manager.reset()
        self.ucm.reset()
        self.calling = None
        self._completing = False
        self.scenario_name = None
        self._apply_settings(settings)

        scenario = next((s for s in description.get("scenarios", []) if s["name"] == scenario_name), None)
        if scenario is None:
            raise ScenarioError(f'unknown scenario {scenario_name}')

        for enum_type in description.get("enums", []):
            self.game_data.create_enum_type(enum_type["name"], enum_type["values"])

        initializations = scenario.get("initializations", {})
        for variable in description.get("variables", []):
            variable_type = self.game_data.resolve_type(variable["type"])
            if variable_type is None:
                raise ScenarioError(f'variable {variable["name"]} has unknown type {variable["type"]}')
            literal = initializations.get(variable["name"])
            if literal is not None and isinstance(variable_type, EnumType) and "." not in literal:
                literal = variable_type.qualify(literal)
            if not self.game_data.create_global_variable(variable["name"], variable_type.name, literal):
                raise ScenarioError(f'duplicate variable {variable["name"]}')

        ambiguous = self.game_data.ambiguous_names()
        if ambiguous:
            raise ScenarioError(f'names are ambiguous between enums and variables: {", ".join(ambiguous)}')

        for responsibility in description.get("responsibilities", []):
            self.events.create_event(responsibility["name"], responsibility.get("expression", ""))

        for name, script in (event_scripts or {}).items():
            event = self.events.by_name(name)
            if event is None:
                self.logger.warning(f'script for unknown event {name}')
                continue
            event.script = script

        self.ucm.reset(graph.build_diagrams(description.get("spec_diagrams", []), self.game_data))

        self.scenario_name = scenario_name
        for start_point in scenario.get("start_points", []):
            self.traversal.start(graph.NodeRef.parse(start_point))
        self.traversal.sweep()

        self.logger.info(f'loaded scenario {scenario_name} with {len(self.events)} events and {len(self.ucm.diagrams)} diagrams')
        for observer in list(self.events.observers):
            observer.on_load()

    def fetch_all_legal_event_names(self) -> List[str]:
        return self.events.legal_event_names()

    def try_to_call_event_by_name(self, name:str) -> bool:
        event = self.events.by_name(name)
        if event is None:
            self.logger.debug(f'no event named {name}')
            return False
        return self.try_to_call_event_by_id(event.event_id)

    def try_to_call_event_by_id(self, event_id:int) -> bool:
        """ calls an event if it is legal right now

        the event's script, if any, runs over the following updates and the
        narrative advances once it completes. Calling an event while another
        script runs replaces that script and abandons its call, so the event
        it belonged to stays legal. """

        event = self.events.get(event_id)
        if event is None:
            return False
        if self._completing:
            self.logger.debug(f'rejecting {event.name} called while an event completes')
            return False
        if not event.is_legal_to_call():
            self.logger.debug(f'{event.name} is not legal to call')
            return False
        if self.calling is not None:
            self.logger.info(f'abandoning call of {self.calling.name} for {event.name}')
            self.script_manager.reset()
            self.calling = None

        self.logger.info(f'calling event {event.name}')
        self.calling = event
        if event.script is None:
            self._complete_event(event)
        else:
            self.script_manager.run(event.script, lambda: self._complete_event(event))
        return True

    def _select_movers(self, event:Event) -> List[int]:
        attendees = list(event.attendees)
        if not attendees:
            return []
        if self.mover_policy == MoverPolicy.FIRST:
            return attendees[:1]
        elif self.mover_policy == MoverPolicy.LAST:
            return attendees[-1:]
        elif self.mover_policy == MoverPolicy.RANDOM:
            return [attendees[int(self.r.integers(len(attendees)))]]
        return attendees

    def _complete_event(self, event:Event) -> None:
        self._completing = True
        try:
            movers = self._select_movers(event)
            event.passable = True
            for cursor_id in movers:
                cursor = self.traversal.cursors.get(cursor_id)
                # an earlier mover may have moved or destroyed this one
                if cursor is None or cursor_id not in event.attendees:
                    continue
                self.traversal.on_event_call(cursor)
            event.passable = False
            self.traversal.advance_all_guards()
        finally:
            event.passable = False
            self.calling = None
            self._completing = False
        self.logger.debug(f'event {event.name} complete, legal: {self.events.legal_event_names()}')

    def update(self, dt:float) -> bool:
        return self.script_manager.update(dt)

    def _on_script_error(self, message:str) -> None:
        if not config.Settings.script.complete_on_error and self.calling is not None:
            # the event never completes, so it stays legal to call again
            self.logger.info(f'abandoning call of {self.calling.name}')
            self.calling = None
        for observer in list(self.events.observers):
            observer.on_script_error(message)
