""" Typed variables shared by narrative guards and event scripts

Three kinds of variable types exist: Bool, Int and named enums. Each type knows
the literal pattern for its values, so a bare literal in an expression can be
matched against every registered type to infer its type.

Values are stored as python values: bool for Bool, int for Int and the fully
qualified "Enum.Value" string for enums.
"""

import re
import abc
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ucmflow import util

BOOL = "Bool"
INT = "Int"

class ScriptError(Exception):
    """ A malformed or invalid script statement.

    Fatal to the script run that raised it and nothing else. """
    pass

class ScenarioError(ValueError):
    """ A scenario description that cannot be loaded. """
    pass

class VariableType(abc.ABC):
    def __init__(self, name:str, pattern:re.Pattern, default:Any) -> None:
        self.name = name
        self.pattern = pattern
        self.default = default

    def matches(self, literal:str) -> bool:
        return self.pattern.fullmatch(literal) is not None

    @abc.abstractmethod
    def parse(self, literal:str) -> Any: ...

    def format(self, value:Any) -> str:
        return str(value)

class BoolType(VariableType):
    def __init__(self) -> None:
        super().__init__(BOOL, re.compile("true|false"), False)

    def parse(self, literal:str) -> bool:
        return literal == "true"

    def format(self, value:Any) -> str:
        return "true" if value else "false"

class IntType(VariableType):
    def __init__(self) -> None:
        super().__init__(INT, re.compile("[-+]?[0-9]+"), 0)

    def parse(self, literal:str) -> int:
        return int(literal)

class EnumType(VariableType):
    """ A closed set of named values, written as EnumName.Value

    The first value is the default. """

    def __init__(self, name:str, values:Sequence[str]) -> None:
        if len(values) == 0:
            raise ValueError(f'enum {name} must have at least one value')
        self.values = list(values)
        pattern = re.compile(re.escape(name) + r"\.(" + "|".join(re.escape(v) for v in self.values) + ")")
        super().__init__(name, pattern, f'{name}.{self.values[0]}')

    def parse(self, literal:str) -> str:
        return literal

    def qualify(self, value:str) -> str:
        return f'{self.name}.{value}'

class GameVariable:
    """ A typed value. Falls back to the type default on a bad literal. """

    def __init__(self, variable_type:VariableType, literal:Optional[str]=None) -> None:
        self.variable_type = variable_type
        if literal is not None and variable_type.matches(literal):
            self.value = variable_type.parse(literal)
        else:
            self.value = variable_type.default

    @property
    def type(self) -> str:
        return self.variable_type.name

    def format(self) -> str:
        return self.variable_type.format(self.value)

    def __repr__(self) -> str:
        return f'GameVariable({self.type}, {self.format()})'

class GameData:
    """ Process wide variable state: types, global variables and the speaker

    Fully reset on every scenario load. """

    def __init__(self) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.types:Dict[str, VariableType] = {}
        self.globals:Dict[str, GameVariable] = {}
        self.speaker = ""
        self.reset()

    def reset(self) -> None:
        self.types = {BOOL: BoolType(), INT: IntType()}
        self.globals = {}
        self.speaker = ""

    def enum_types(self) -> Iterable[EnumType]:
        return (t for t in self.types.values() if isinstance(t, EnumType))

    def create_enum_type(self, name:str, values:Sequence[str]) -> bool:
        if name in self.types:
            self.logger.warning(f'type {name} already exists, ignoring redefinition')
            return False
        self.types[name] = EnumType(name, values)
        return True

    def resolve_type(self, type_name:str) -> Optional[VariableType]:
        return self.types.get(type_name)

    def new_variable(self, type_name:str, literal:Optional[str]=None) -> GameVariable:
        variable_type = self.types.get(type_name)
        if variable_type is None:
            raise ScenarioError(f'unknown type {type_name}')
        return GameVariable(variable_type, literal)

    def create_global_variable(self, name:str, type_name:str, literal:Optional[str]=None) -> bool:
        if name in self.globals:
            return False
        self.globals[name] = self.new_variable(type_name, literal)
        return True

    def ambiguous_names(self) -> List[str]:
        """ Names that would rewrite to more than one thing in a guard.

        Enum literals must be unique across every enum, and must not collide
        with a global variable name. """
        seen:Dict[str, str] = {}
        ambiguous:List[str] = []
        for name in self.globals:
            seen[name] = "$global"
        for enum_type in self.enum_types():
            for value in enum_type.values:
                if value in seen and value not in ambiguous:
                    ambiguous.append(value)
                seen[value] = enum_type.name
        return ambiguous

    def infer_type(self, literal:str) -> Optional[VariableType]:
        """ Finds the registered type whose pattern matches a bare literal. """
        inferred = None
        for variable_type in self.types.values():
            if variable_type.matches(literal):
                inferred = variable_type
        return inferred
