""" Interactive testing tool for use case maps

Loads a scenario and lets you call events, tick scripts and inspect state
from a prompt:

    legal               list the events that are legal to call
    call NAME           call an event, then run its script until it waits
    ack                 acknowledge the message being shown
    choose N            pick choice N of the question being asked
    tick [N]            run N updates
    vars                show global variables
    cursors             show every cursor
    viz FILE            write the map with cursors as graphviz source
    reload              load the scenario again
    quit
"""

import sys
import argparse
import contextlib
import logging
from typing import Callable, Optional, TextIO

from ucmflow import config, loader, util, viz
from ucmflow.engine import MoverPolicy, NarrativeEngine
from ucmflow.events import NarrativeObserver
from ucmflow.script.commands import AskChoice, ShowMessage

class ConsoleObserver(NarrativeObserver):
    def __init__(self, fout:TextIO) -> None:
        self.fout = fout

    def on_load(self) -> None:
        print("scenario loaded", file=self.fout)

    def on_preload_event(self, name:str) -> None:
        print(f'+ {name}', file=self.fout)

    def on_unload_event(self, name:str) -> None:
        print(f'- {name}', file=self.fout)

    def on_script_error(self, message:str) -> None:
        print(f'! {message}', file=self.fout)

class Session:
    def __init__(self, engine:NarrativeEngine, fout:TextIO, dt:float, reload:Optional[Callable[[], None]]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.engine = engine
        self.fout = fout
        self.dt = dt
        self.reload = reload
        self.max_ticks = config.Settings.cli.max_ticks
        self._shown:Optional[object] = None

    def tick(self) -> bool:
        ran = self.engine.update(self.dt)
        self.engine.script_manager.input_state.end_tick()
        return ran

    def run_script(self) -> None:
        """ ticks until the script ends or waits on the player """
        manager = self.engine.script_manager
        for _ in range(self.max_ticks):
            if not manager.is_running:
                return
            command = manager.current_command
            if isinstance(command, ShowMessage) and command.is_revealed:
                self._show(command, "(ack to continue)")
                return
            elif isinstance(command, AskChoice):
                self._show(command, "(choose N)")
                return
            self.tick()
        self.logger.warning(f'script still running after {self.max_ticks} ticks')
        print(f'script still running after {self.max_ticks} ticks', file=self.fout)

    def _show(self, command:object, prompt:str) -> None:
        if self._shown is command:
            return
        self._shown = command
        print(f'{command} {prompt}', file=self.fout)

    def handle(self, line:str) -> bool:
        """ runs one command line, returns False to quit """
        verb, _, argument = line.strip().partition(" ")
        argument = argument.strip()

        if verb == "":
            pass
        elif verb in ("quit", "exit", "q"):
            return False
        elif verb in ("legal", "l"):
            print(", ".join(self.engine.fetch_all_legal_event_names()) or "(none)", file=self.fout)
        elif verb in ("call", "c"):
            if self.engine.try_to_call_event_by_name(argument):
                self.run_script()
            else:
                print(f'cannot call {argument}', file=self.fout)
        elif verb == "ack":
            self.engine.script_manager.input_state.press_action()
            self.tick()
            self.run_script()
        elif verb == "choose":
            try:
                self.engine.script_manager.input_state.choose(int(argument))
            except ValueError:
                print(f'not a choice: {argument}', file=self.fout)
                return True
            self.tick()
            self.run_script()
        elif verb == "tick":
            count = int(argument) if argument.isdigit() else 1
            for _ in range(count):
                self.tick()
        elif verb == "vars":
            for name, variable in self.engine.game_data.globals.items():
                print(f'{name} = {variable.format()}', file=self.fout)
        elif verb == "cursors":
            for cursor in self.engine.traversal.cursors.values():
                print(repr(cursor), file=self.fout)
        elif verb == "viz":
            viz.engine_viz(self.engine).save(argument or "ucmflow.gv")
        elif verb == "reload" and self.reload is not None:
            self.reload()
        else:
            print(f'unknown command {verb}', file=self.fout)
        return True

def run_session(engine:NarrativeEngine, fin:TextIO, fout:TextIO, dt:float, reload:Optional[Callable[[], None]]=None) -> None:
    session = Session(engine, fout, dt, reload)
    for line in fin:
        if not session.handle(line):
            break

def main() -> None:
    with contextlib.ExitStack() as context_stack:
        parser = argparse.ArgumentParser(description="step through a use case map narrative")
        parser.add_argument("scenario_file", type=str,
                help="scenario description (.jucm, .xml, .toml or .json)")
        parser.add_argument("-s", "--scenario", type=str, default=None,
                help="scenario to start, defaults to the first one")
        parser.add_argument("-e", "--events", type=str, default=None,
                help="event scripts (.xml, .toml or .json)")
        parser.add_argument("--on-event-call", type=str, default=None,
                choices=[p.name for p in MoverPolicy],
                help="which attendees move when an event is called")
        parser.add_argument("--dt", type=float, default=None,
                help="seconds per tick")
        parser.add_argument("--config", type=argparse.FileType("r"), default=None,
                help="toml file merged over the built in config")
        parser.add_argument("-v", "--verbose", action="store_true")
        parser.add_argument("--pdb", action="store_true")

        args = parser.parse_args()

        if args.config:
            config.load_config(args.config)

        logging.basicConfig(
                format="%(asctime)s %(name)-12s %(levelname)-8s %(message)s",
                filename=config.Settings.cli.log_file,
                filemode="w",
                level=logging.DEBUG if args.verbose else logging.INFO
        )

        if args.pdb:
            context_stack.enter_context(util.PDBManager())

        engine = NarrativeEngine()
        observer = ConsoleObserver(sys.stdout)
        engine.observe(observer)
        settings = {"on_event_call": args.on_event_call} if args.on_event_call else None

        def reload() -> None:
            loader.load_scenario_file(engine, args.scenario_file, args.scenario, args.events, settings)

        reload()
        dt = args.dt if args.dt is not None else config.Settings.cli.tick_dt
        run_session(engine, sys.stdin, sys.stdout, dt, reload)

if __name__ == "__main__":
    main()
