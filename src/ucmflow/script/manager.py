""" A tick driven interpreter for event scripts

One script runs at a time. Each update processes lines until a command needs
more ticks, the per-update line budget runs out, or the script ends. Lines are
matched in this order:

    LABEL name
    GOTO name
    IF expr: / ELSE_IF expr: / ELSE:      (scoped by indentation)
    Type $name [= value]                  (declares a script temporary)
    $var OP value                         (assignment)
    COMMAND args                          (see ucmflow.script.commands)
"""

from __future__ import annotations

import re
import logging
from typing import Callable, Dict, List, Optional, Type

from ucmflow import config, expressions, util
from ucmflow.gamedata import GameData, GameVariable, ScriptError
from ucmflow.script import preprocess
from ucmflow.script.commands import BUILTIN_COMMANDS, InputState, MoveHandler, ScriptCommand

RE_LABEL = re.compile(r"\s*LABEL\s+.*")
RE_GOTO = re.compile(r"\s*GOTO\s+(\S+)")
RE_IF = re.compile(r"(\s*)IF\s+(.+):")
RE_ANY_ELSE = re.compile(r"(\s*)ELSE(?:_IF\s+.+)?:")
RE_DECLARATION = re.compile(r"\s*(?:ASSIGN\s+)?(\S+)\s+\$?([A-Za-z_][A-Za-z0-9_]*)(?:\s*=\s*(.+?))?\s*")
RE_COMMAND_NAME = re.compile(r"[A-Z][A-Z0-9_]*")

class ScriptManager:
    def __init__(
            self,
            game_data:GameData,
            input_state:Optional[InputState]=None,
            move_handler:Optional[MoveHandler]=None,
    ) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.game_data = game_data
        self.input_state = input_state or InputState()
        self.move_handler = move_handler
        self.commands:Dict[str, Type[ScriptCommand]] = dict(BUILTIN_COMMANDS)
        self.variables = expressions.Variables(game_data)
        self.on_error:Optional[Callable[[str], None]] = None

        self.lines:List[str] = []
        self.labels:Dict[str, int] = {}
        self.index = 0
        self.current_command:Optional[ScriptCommand] = None
        self.on_complete:Optional[Callable[[], None]] = None
        self.can_execute = False

    @property
    def is_running(self) -> bool:
        return self.can_execute

    def register_command(self, command_class:Type[ScriptCommand]) -> None:
        self.commands[command_class.name] = command_class

    def reset(self) -> None:
        self.lines = []
        self.labels = {}
        self.index = 0
        self.current_command = None
        self.on_complete = None
        self.can_execute = False
        self.variables.temporaries.clear()

    def run(self, script:str, on_complete:Optional[Callable[[], None]]=None) -> None:
        """ starts script, discarding any script still running """
        if self.can_execute:
            self.logger.info("starting a new script before the previous one finished")
        self.reset()

        self.lines = preprocess.clean_script(script)
        if not self.lines:
            # a blank script still completes, on the next update
            self.lines = [""]
            self.index = 1
        else:
            self.labels = preprocess.find_labels(self.lines)
        self.on_complete = on_complete
        self.can_execute = True

    def update(self, dt:float) -> bool:
        """ runs the script for one tick, returns True if anything ran """
        if not self.lines or not self.can_execute:
            return False

        budget = config.Settings.script.max_lines_per_update
        try:
            while self.index < len(self.lines):
                if self.current_command is not None:
                    self.current_command.update(dt)
                    if not self.current_command.is_finished():
                        break
                    self.current_command = None
                    self.index += 1
                    continue

                if budget <= 0:
                    self.logger.debug(f'line budget exhausted at line {self.index}, yielding')
                    break
                budget -= 1
                self._step(self.lines[self.index])
        except ScriptError as e:
            self._fail(e)
            return True

        if self.index >= len(self.lines):
            self._finish()
        return True

    def _finish(self) -> None:
        on_complete = self.on_complete
        self.reset()
        if on_complete is not None:
            on_complete()

    def _fail(self, error:ScriptError) -> None:
        line = self.lines[self.index] if self.index < len(self.lines) else ""
        message = f'script error at line {self.index} "{line.strip()}": {error}'
        self.logger.error(message)
        if self.on_error is not None:
            self.on_error(message)

        on_complete = self.on_complete
        self.reset()
        if on_complete is not None and config.Settings.script.complete_on_error:
            on_complete()

    def _step(self, line:str) -> None:
        if RE_LABEL.fullmatch(line):
            self.index += 1
            return

        goto = RE_GOTO.fullmatch(line)
        if goto:
            label = goto.group(1)
            if label not in self.labels:
                raise ScriptError(f'unknown label in GOTO: {label}')
            self.index = self.labels[label]
            return

        if_match = RE_IF.fullmatch(line)
        if if_match:
            self._branch(if_match.group(1), if_match.group(2))
            return

        else_match = RE_ANY_ELSE.fullmatch(line)
        if else_match:
            self._skip_remaining_branches(else_match.group(1))
            return

        if self._declare(line):
            self.index += 1
            return

        if expressions.evaluate_assignment(line, self.variables):
            self.index += 1
            return

        self.current_command = self._create_command(line)

    def _within_scope(self, line:str, indent:str) -> bool:
        whitespace = util.leading_whitespace(line)
        return whitespace.startswith(indent) and len(whitespace) > len(indent)

    def _branch(self, indent:str, expr:str) -> None:
        if expressions.evaluate_comparison(expr, self.variables):
            self.index += 1
            return

        else_if = re.compile(re.escape(indent) + r"ELSE_IF\s+(.+):")
        while True:
            self.index += 1
            if self.index >= len(self.lines):
                return
            line = self.lines[self.index]
            m = else_if.fullmatch(line)
            if m:
                if expressions.evaluate_comparison(m.group(1), self.variables):
                    self.index += 1
                    return
            elif line == f'{indent}ELSE:':
                self.index += 1
                return
            elif not self._within_scope(line, indent):
                return

    def _skip_remaining_branches(self, indent:str) -> None:
        """ a taken branch ran into its siblings, skip past all of them """
        sibling = re.compile(re.escape(indent) + r"ELSE(?:_IF\s+.+)?:")
        while self.index < len(self.lines):
            line = self.lines[self.index]
            if sibling.fullmatch(line) or self._within_scope(line, indent):
                self.index += 1
            else:
                return

    def _declare(self, line:str) -> bool:
        """ creates a script temporary, returns False if line is no declaration """
        m = RE_DECLARATION.fullmatch(line)
        if m is None:
            return False
        type_name, name, literal = m.groups()
        if type_name in self.commands or type_name.startswith("$"):
            return False

        variable_type = self.game_data.resolve_type(type_name)
        if variable_type is None:
            if RE_COMMAND_NAME.fullmatch(type_name):
                # most likely an unknown command, reported as such
                return False
            raise ScriptError(f'invalid type {type_name} for ${name}')
        if name in self.variables.temporaries:
            raise ScriptError(f'variable ${name} is already declared')

        if literal is not None:
            literal = expressions.substitute_variables(literal, self.variables)
        self.variables.temporaries[name] = GameVariable(variable_type, literal)
        return True

    def _create_command(self, line:str) -> ScriptCommand:
        name, _, arguments = line.strip().partition(" ")
        command_class = self.commands.get(name)
        if command_class is None:
            raise ScriptError(f'unknown command {name}')

        m = command_class.argument_pattern.fullmatch(arguments.strip())
        if m is None:
            raise ScriptError(f'invalid arguments for {name}: {arguments.strip()}')

        args = [
            a if i in command_class.raw_arguments else expressions.substitute_variables(a, self.variables)
            for i, a in enumerate(m.groups())
        ]
        return command_class(self, args)
