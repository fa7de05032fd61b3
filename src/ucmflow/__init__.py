""" Narrative flow enforcement over Use Case Maps

A use case map describes the legal orderings of a game's events. The engine
keeps cursors on the map: Guards at the player's confirmed position(s) and
Speculative cursors exploring ahead of forks and joins. An event is legal to
call while any cursor waits at it. Calling a legal event runs its script (see
ucmflow.script) over the following ticks and then moves the narrative on.

The host game is expected to:
 * load a scenario (ucmflow.loader) into a NarrativeEngine
 * call events by name or id when the player does something narrative
 * drive NarrativeEngine.update(dt) once per tick, setting InputState
 * listen for events becoming legal or illegal with a NarrativeObserver

Attempting an event that is not legal is how a host detects sequence breaking.
"""

from .gamedata import ScriptError, ScenarioError
from .events import NarrativeObserver, Event
from .engine import NarrativeEngine, MoverPolicy
from .script import ScriptManager, InputState
