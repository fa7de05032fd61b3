""" Built in script commands

A command is constructed from the arguments matched by its argument pattern
and then updated once per tick until it reports finished. Commands that
finish in their constructor never block.
"""

from __future__ import annotations

import re
import abc
import logging
from typing import Callable, ClassVar, Dict, List, Optional, Sequence, Type, TYPE_CHECKING

from ucmflow import config, gamedata, util
from ucmflow.gamedata import ScriptError

if TYPE_CHECKING:
    from ucmflow.script.manager import ScriptManager

class InputState:
    """ What the host observed from the player this tick

    The host sets these and clears them with end_tick after each update. """

    def __init__(self) -> None:
        self.action_pressed = False
        self.choice:Optional[int] = None

    def press_action(self) -> None:
        self.action_pressed = True

    def choose(self, index:int) -> None:
        self.choice = index

    def end_tick(self) -> None:
        self.action_pressed = False
        self.choice = None

# host hook for MOVE_ENTITY, returns True once the step is complete
MoveHandler = Callable[[str, str], bool]

class ScriptCommand(abc.ABC):
    name:ClassVar[str]
    argument_pattern:ClassVar[re.Pattern]
    # indices of arguments passed through without variable substitution
    raw_arguments:ClassVar[Sequence[int]] = ()

    def __init__(self, manager:ScriptManager, args:Sequence[str]) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.manager = manager
        self.finished = False

    def is_finished(self) -> bool:
        return self.finished

    def update(self, dt:float) -> None:
        pass

    def __str__(self) -> str:
        return self.name

class SetSpeaker(ScriptCommand):
    name = "SET_SPEAKER"
    argument_pattern = re.compile(r'"(.*)"')

    def __init__(self, manager:ScriptManager, args:Sequence[str]) -> None:
        super().__init__(manager, args)
        manager.game_data.speaker = args[0]
        self.finished = True

class ClearSpeaker(ScriptCommand):
    name = "CLEAR_SPEAKER"
    argument_pattern = re.compile(r"")

    def __init__(self, manager:ScriptManager, args:Sequence[str]) -> None:
        super().__init__(manager, args)
        manager.game_data.speaker = ""
        self.finished = True

class ShowMessage(ScriptCommand):
    """ Reveals a message and waits for the player to acknowledge it.

    With script.message_chars_per_sec at 0 one character is revealed per
    update, otherwise the reveal follows elapsed time. """

    name = "SHOW_MESSAGE"
    argument_pattern = re.compile(r'"(.*)"')

    def __init__(self, manager:ScriptManager, args:Sequence[str]) -> None:
        super().__init__(manager, args)
        self.message = args[0].replace("\t", " ").replace("\\n", "\n").replace('\\"', '"')
        self.speaker = manager.game_data.speaker
        self.revealed = 0.0
        self.chars_per_sec = config.Settings.script.message_chars_per_sec

    @property
    def is_revealed(self) -> bool:
        return int(self.revealed) >= len(self.message)

    @property
    def visible_text(self) -> str:
        return self.message[:int(self.revealed)]

    def update(self, dt:float) -> None:
        if self.chars_per_sec > 0:
            self.revealed += self.chars_per_sec * dt
        else:
            self.revealed += 1
        self.revealed = min(self.revealed, float(len(self.message)))

        if self.is_revealed and self.manager.input_state.action_pressed:
            self.finished = True

    def __str__(self) -> str:
        prefix = f'[{self.speaker}] ' if self.speaker else ""
        return f'{prefix}{self.visible_text}'

class Sleep(ScriptCommand):
    name = "SLEEP"
    argument_pattern = re.compile(r"([\d]+\.?[\d]*)")

    def __init__(self, manager:ScriptManager, args:Sequence[str]) -> None:
        super().__init__(manager, args)
        self.duration = float(args[0])
        self.elapsed = 0.0

    def update(self, dt:float) -> None:
        self.elapsed += dt
        self.finished = self.elapsed >= self.duration

class AskChoice(ScriptCommand):
    """ Offers choices and stores the index the player picks in an Int """

    name = "ASK_CHOICE"
    argument_pattern = re.compile(r'(\$(?:global\.)?[A-Za-z_][A-Za-z0-9_]*)\s*\{(.*)\}')
    raw_arguments = (0,)

    RE_CHOICE = re.compile(r'"([^"]*)"')

    def __init__(self, manager:ScriptManager, args:Sequence[str]) -> None:
        super().__init__(manager, args)
        self.target_ref = args[0]
        self.target = manager.variables.lookup(self.target_ref)
        if self.target is None:
            raise ScriptError(f'unknown variable {self.target_ref} for {self.name}')
        if self.target.type != gamedata.INT:
            raise ScriptError(f'{self.name} needs an Int variable, {self.target_ref} is {self.target.type}')
        self.choices:List[str] = self.RE_CHOICE.findall(args[1])
        if not self.choices:
            raise ScriptError(f'{self.name} needs at least one choice')

    def update(self, dt:float) -> None:
        choice = self.manager.input_state.choice
        if choice is not None and 0 <= choice < len(self.choices):
            assert self.target is not None
            self.target.value = choice
            self.finished = True

    def __str__(self) -> str:
        return " / ".join(f'{i}: {c}' for i, c in enumerate(self.choices))

class MoveEntity(ScriptCommand):
    """ Hands movement steps for an entity to the host, one per update """

    name = "MOVE_ENTITY"
    argument_pattern = re.compile(r'"([^"]+)"\s*\{(.*)\}')

    def __init__(self, manager:ScriptManager, args:Sequence[str]) -> None:
        super().__init__(manager, args)
        self.entity_id = args[0]
        self.steps = [s.strip() for s in args[1].split(",") if s.strip()]
        self.step_index = 0
        self.finished = len(self.steps) == 0

    def update(self, dt:float) -> None:
        if self.finished:
            return
        handler = self.manager.move_handler
        if handler is None:
            self.logger.debug(f'no move handler, skipping {len(self.steps)} steps for {self.entity_id}')
            self.step_index = len(self.steps)
        elif handler(self.entity_id, self.steps[self.step_index]):
            self.step_index += 1
        self.finished = self.step_index >= len(self.steps)

    def __str__(self) -> str:
        return f'{self.entity_id}: {", ".join(self.steps)}'

BUILTIN_COMMANDS:Dict[str, Type[ScriptCommand]] = {
    c.name: c for c in (SetSpeaker, ClearSpeaker, ShowMessage, Sleep, AskChoice, MoveEntity)
}
