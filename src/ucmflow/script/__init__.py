""" Event script interpreter """

from ucmflow.script.commands import InputState, ScriptCommand, BUILTIN_COMMANDS
from ucmflow.script.manager import ScriptManager
