""" Evaluation of guard comparisons and script assignments

Variable references look like $global.name (a global variable) or $name (a
temporary belonging to the running script). Bare literals are typed by
testing them against every registered type's pattern.
"""

import re
import math
import logging
import functools
from typing import Dict, List, Optional, Tuple

from ucmflow import gamedata, predicates
from ucmflow.gamedata import ScriptError, GameData, GameVariable

logger = logging.getLogger(__name__)

VARIABLE_FORMAT = r"\$(?:(global)\.)?([A-Za-z_][A-Za-z0-9_]*)"
RE_VARIABLE = re.compile(VARIABLE_FORMAT)
RE_BOOL_TEST = re.compile(r"\s*(!?)\s*(" + VARIABLE_FORMAT + r")\s*")
RE_COMPARISON = re.compile(r"\s*([^\s!=<>]+)\s*(==|!=|>=|<=|>|<)\s*(.+?)\s*")
RE_ASSIGNMENT = re.compile(r"\s*(\$(?:global\.)?[A-Za-z_][A-Za-z0-9_]*)\s*(not=|[+\-*/%]?=)(?!=)\s*(.+?)\s*")
RE_COMPOUND_TOKEN = re.compile(r"(&&|\|\||\(|\)|(?<=\s)and(?=\s)|(?<=\s)or(?=\s))")

ASSIGNMENT_OPERATORS:Dict[str, Tuple[str, ...]] = {
    gamedata.BOOL: ("=", "not="),
    gamedata.INT: ("=", "+=", "-=", "*=", "/=", "%="),
}
ENUM_ASSIGNMENT_OPERATORS = ("=",)

class Variables:
    """ The variables visible to an expression: globals plus script temporaries """

    def __init__(self, game_data:GameData, temporaries:Optional[Dict[str, GameVariable]]=None) -> None:
        self.game_data = game_data
        self.temporaries:Dict[str, GameVariable] = temporaries if temporaries is not None else {}

    def lookup(self, reference:str) -> Optional[GameVariable]:
        match = RE_VARIABLE.fullmatch(reference.strip())
        if match is None:
            return None
        scope, name = match.groups()
        if scope:
            return self.game_data.globals.get(name)
        return self.temporaries.get(name)

    def resolve(self, token:str) -> Optional[predicates.Resolved]:
        variable = self.lookup(token)
        if variable is not None:
            return (variable.variable_type, variable.value)
        if token.startswith("$"):
            return None
        variable_type = self.game_data.infer_type(token)
        if variable_type is None:
            return None
        return (variable_type, variable_type.parse(token))

def _parse_atom(token:str) -> predicates.Criteria:
    token = token.strip()
    if token == "true":
        return predicates.Literal(True)
    elif token == "false":
        return predicates.Literal(False)

    bool_match = RE_BOOL_TEST.fullmatch(token)
    if bool_match:
        return predicates.BoolTest(bool_match.group(2), negated=bool_match.group(1) == "!")

    comparison_match = RE_COMPARISON.fullmatch(token)
    if comparison_match:
        return predicates.Comparison(*comparison_match.groups())

    raise ValueError(f'malformed expression "{token}"')

class _CompoundParser:
    """ recursive descent over && || ! and parentheses

    or_expr := and_expr (|| and_expr)*
    and_expr := unary (&& unary)*
    unary := ! unary | ( or_expr ) | atom
    """

    def __init__(self, tokens:List[str]) -> None:
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> str:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def parse(self) -> predicates.Criteria:
        criteria = self.or_expr()
        if self.peek() is not None:
            raise ValueError(f'unexpected "{self.peek()}"')
        return criteria

    def or_expr(self) -> predicates.Criteria:
        criteria = self.and_expr()
        while self.peek() in ("||", "or"):
            self.take()
            criteria = predicates.Disjunction(criteria, self.and_expr())
        return criteria

    def and_expr(self) -> predicates.Criteria:
        criteria = self.unary()
        while self.peek() in ("&&", "and"):
            self.take()
            criteria = predicates.Conjunction(criteria, self.unary())
        return criteria

    def unary(self) -> predicates.Criteria:
        token = self.peek()
        if token is None:
            raise ValueError("unexpected end of expression")
        elif token == "!":
            self.take()
            return predicates.Negation(self.unary())
        elif token == "(":
            self.take()
            criteria = self.or_expr()
            if self.peek() != ")":
                raise ValueError("unbalanced parentheses")
            self.take()
            return criteria
        elif token in ("&&", "||", "and", "or", ")"):
            raise ValueError(f'unexpected "{token}"')
        return _parse_atom(self.take())

@functools.lru_cache(maxsize=1024)
def parse_comparison(expr:str) -> predicates.Criteria:
    """ Compiles a comparison expression, raising ValueError if malformed. """
    if RE_COMPOUND_TOKEN.search(expr) is None:
        return _parse_atom(expr)
    tokens = [t.strip() for t in RE_COMPOUND_TOKEN.split(expr)]
    return _CompoundParser([t for t in tokens if t]).parse()

def evaluate_comparison(expr:str, variables:Variables) -> bool:
    try:
        criteria = parse_comparison(expr)
    except ValueError as e:
        logger.warning(f'could not evaluate "{expr}": {e}')
        return False
    return criteria.evaluate(variables)

def _assignment_operators(variable_type:gamedata.VariableType) -> Tuple[str, ...]:
    return ASSIGNMENT_OPERATORS.get(variable_type.name, ENUM_ASSIGNMENT_OPERATORS)

def evaluate_assignment(expr:str, variables:Variables) -> bool:
    """ Applies an assignment like $x += 3

    returns False if expr is not an assignment at all. raises ScriptError if
    it is an assignment that cannot be carried out, leaving the target
    unchanged. """

    match = RE_ASSIGNMENT.fullmatch(expr)
    if match is None:
        return False
    lhs, op, rhs = match.groups()

    target = variables.lookup(lhs)
    if target is None:
        raise ScriptError(f'unknown variable {lhs} in "{expr.strip()}"')
    if op not in _assignment_operators(target.variable_type):
        raise ScriptError(f'operator {op} is not valid for {target.type} variable {lhs}')

    if RE_VARIABLE.fullmatch(rhs):
        source = variables.lookup(rhs)
        if source is None:
            raise ScriptError(f'unknown variable {rhs} in "{expr.strip()}"')
        if source.type != target.type:
            raise ScriptError(f'cannot assign {source.type} {rhs} to {target.type} {lhs}')
        value = source.value
    elif target.variable_type.matches(rhs):
        value = target.variable_type.parse(rhs)
    else:
        raise ScriptError(f'{rhs} is not a valid {target.type} value for {lhs}')

    if op == "=":
        target.value = value
    elif op == "not=":
        target.value = not value
    elif op == "+=":
        target.value = target.value + value
    elif op == "-=":
        target.value = target.value - value
    elif op == "*=":
        target.value = target.value * value
    elif op == "/=":
        if value == 0:
            raise ScriptError(f'divide by zero in "{expr.strip()}"')
        target.value = math.trunc(target.value / value)
    elif op == "%=":
        if value == 0:
            raise ScriptError(f'modulo by zero in "{expr.strip()}"')
        target.value = math.trunc(math.fmod(target.value, value))
    return True

def rewrite_guard_expression(expr:str, game_data:GameData) -> str:
    """ Qualifies bare names in a guard expression

    Global variable names, bare or written $name, become $global.name and
    enum literals become Enum.Value. Matches whole words only, in a single
    pass, so a replacement is never itself rewritten. """

    replacements:Dict[str, str] = {}
    for enum_type in game_data.enum_types():
        for value in enum_type.values:
            replacements[value] = enum_type.qualify(value)
    for name in game_data.globals:
        replacements[name] = f'$global.{name}'
    if not replacements:
        return expr

    alternatives = "|".join(re.escape(n) for n in sorted(replacements, key=len, reverse=True))
    pattern = re.compile(r"(?<![\w$.])(\$)?(" + alternatives + r")(?![\w.])")

    def replace(match:re.Match) -> str:
        dollar, name = match.groups()
        if dollar and name not in game_data.globals:
            return match.group(0)
        return replacements[name]
    return pattern.sub(replace, expr)

def substitute_variables(text:str, variables:Variables) -> str:
    """ Replaces variable references with their formatted values. Unknown
    references are left as written. """
    def replace(match:re.Match) -> str:
        variable = variables.lookup(match.group(0))
        return match.group(0) if variable is None else variable.format()
    return RE_VARIABLE.sub(replace, text)
