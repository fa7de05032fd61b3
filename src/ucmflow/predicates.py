""" A boolean logic predicate library over typed variable scopes

Connection guards and script IF lines compile into a tree of these criteria.
Leaves resolve operands through a Scope, which maps a token (a variable
reference or a bare literal) to its type and python value.
"""

import abc
import operator
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from ucmflow import gamedata

Resolved = Tuple[gamedata.VariableType, Any]

class Scope(Protocol):
    def resolve(self, token:str) -> Optional[Resolved]: ...

EQUALITY_OPERATORS:Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
}

ORDERING_OPERATORS:Dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

class Criteria(abc.ABC):
    @abc.abstractmethod
    def evaluate(self, scope:Scope) -> bool: ...

class Literal(Criteria):
    def __init__(self, value:bool) -> None:
        self.value = value

    def evaluate(self, scope:Scope) -> bool:
        return self.value

    def __str__(self) -> str:
        return "true" if self.value else "false"

class Negation(Criteria):
    def __init__(self, inner:Criteria) -> None:
        self.inner = inner

    def evaluate(self, scope:Scope) -> bool:
        return not self.inner.evaluate(scope)

    def __str__(self) -> str:
        return f'!({self.inner})'

class Disjunction(Criteria):
    def __init__(self, a:Criteria, b:Criteria) -> None:
        self.a = a
        self.b = b

    def evaluate(self, scope:Scope) -> bool:
        return self.a.evaluate(scope) or self.b.evaluate(scope)

    def __str__(self) -> str:
        return f'({self.a} || {self.b})'

class Conjunction(Criteria):
    def __init__(self, a:Criteria, b:Criteria) -> None:
        self.a = a
        self.b = b

    def evaluate(self, scope:Scope) -> bool:
        return self.a.evaluate(scope) and self.b.evaluate(scope)

    def __str__(self) -> str:
        return f'({self.a} && {self.b})'

class BoolTest(Criteria):
    """ $flag or !$flag, only meaningful for a Bool variable. """

    def __init__(self, reference:str, negated:bool=False) -> None:
        self.reference = reference
        self.negated = negated

    def evaluate(self, scope:Scope) -> bool:
        resolved = scope.resolve(self.reference)
        if resolved is None or resolved[0].name != gamedata.BOOL:
            return False
        return bool(resolved[1]) != self.negated

    def __str__(self) -> str:
        return f'{"!" if self.negated else ""}{self.reference}'

class Comparison(Criteria):
    """ lhs OP rhs where both sides must resolve to the same type.

    Ordering operators only apply to Int operands. Anything unresolvable or
    mismatched is simply false. """

    def __init__(self, lhs:str, op:str, rhs:str) -> None:
        if op not in EQUALITY_OPERATORS and op not in ORDERING_OPERATORS:
            raise ValueError(f'unknown comparison operator {op}')
        self.lhs = lhs
        self.op = op
        self.rhs = rhs

    def evaluate(self, scope:Scope) -> bool:
        left = scope.resolve(self.lhs)
        right = scope.resolve(self.rhs)
        if left is None or right is None:
            return False
        if left[0].name != right[0].name:
            return False

        if self.op in EQUALITY_OPERATORS:
            return EQUALITY_OPERATORS[self.op](left[1], right[1])
        if left[0].name != gamedata.INT:
            return False
        return ORDERING_OPERATORS[self.op](left[1], right[1])

    def __str__(self) -> str:
        return f'{self.lhs} {self.op} {self.rhs}'
