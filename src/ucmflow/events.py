""" Narrative events and their legality

Every responsibility in a use case map is an event. An event is legal to call
while at least one cursor attends it. Becoming legal (preload) and ceasing to
be legal (unload) are edge triggered and reported to observers exactly once
per transition.
"""

import logging
import weakref
from typing import Callable, Collection, Dict, List, Optional

from ucmflow import util
from ucmflow.gamedata import ScenarioError

class NarrativeObserver:
    def on_load(self) -> None:
        pass

    def on_preload_event(self, name:str) -> None:
        pass

    def on_unload_event(self, name:str) -> None:
        pass

    def on_script_error(self, message:str) -> None:
        pass

class CallbackObserver(NarrativeObserver):
    """ Adapts plain callables, as passed in load settings, to an observer """

    def __init__(
            self,
            on_load:Optional[Callable[[], None]]=None,
            on_preload_event:Optional[Callable[[str], None]]=None,
            on_unload_event:Optional[Callable[[str], None]]=None,
    ) -> None:
        self._on_load = on_load
        self._on_preload_event = on_preload_event
        self._on_unload_event = on_unload_event

    def on_load(self) -> None:
        if self._on_load:
            self._on_load()

    def on_preload_event(self, name:str) -> None:
        if self._on_preload_event:
            self._on_preload_event(name)

    def on_unload_event(self, name:str) -> None:
        if self._on_unload_event:
            self._on_unload_event(name)

class Event:
    def __init__(self, event_id:int, name:str, expression:str="", script:Optional[str]=None) -> None:
        self.event_id = event_id
        self.name = name
        self.expression = expression
        self.script = script
        # cursor ids in arrival order
        self.attendees:List[int] = []
        self.passable = False

    def is_legal_to_call(self) -> bool:
        return len(self.attendees) > 0

    def __repr__(self) -> str:
        return f'Event({self.event_id}, {self.name!r}, attendees={self.attendees})'

class EventRegistry:
    """ The flat table of events, looked up by id or by unique name """

    def __init__(self) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.events:List[Event] = []
        self.ids_by_name:Dict[str, int] = {}
        self.legal_names:List[str] = []
        self._observers:weakref.WeakSet[NarrativeObserver] = weakref.WeakSet()

    @property
    def observers(self) -> Collection[NarrativeObserver]:
        return self._observers

    def observe(self, observer:NarrativeObserver) -> None:
        self._observers.add(observer)

    def unobserve(self, observer:NarrativeObserver) -> None:
        self._observers.discard(observer)

    def reset(self) -> None:
        self.events = []
        self.ids_by_name = {}
        self.legal_names = []

    def __len__(self) -> int:
        return len(self.events)

    def create_event(self, name:str, expression:str="") -> Event:
        if name in self.ids_by_name:
            raise ScenarioError(f'duplicate event name {name}')
        event = Event(len(self.events), name, expression)
        self.events.append(event)
        self.ids_by_name[name] = event.event_id
        return event

    def get(self, event_id:int) -> Optional[Event]:
        if 0 <= event_id < len(self.events):
            return self.events[event_id]
        return None

    def by_name(self, name:str) -> Optional[Event]:
        event_id = self.ids_by_name.get(name)
        return None if event_id is None else self.events[event_id]

    def preload_maybe(self, event:Event, cursor_id:int) -> None:
        """ adds an attendee, firing preload if the event just became legal """
        if cursor_id in event.attendees:
            return
        event.attendees.append(cursor_id)
        if len(event.attendees) == 1:
            self.logger.debug(f'preloading event {event.name}')
            self.legal_names.append(event.name)
            for observer in self._observers.copy():
                observer.on_preload_event(event.name)

    def unload_maybe(self, event:Event, cursor_id:int) -> None:
        """ removes an attendee, firing unload if the event just became illegal """
        if cursor_id not in event.attendees:
            return
        event.attendees.remove(cursor_id)
        if len(event.attendees) == 0:
            self.logger.debug(f'unloading event {event.name}')
            self.legal_names.remove(event.name)
            for observer in self._observers.copy():
                observer.on_unload_event(event.name)

    def legal_event_names(self) -> List[str]:
        return list(self.legal_names)
