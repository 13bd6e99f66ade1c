"""
Variable scopes for the Kestrel interpreter.

Environments form a chain via ``parent`` for lexical scoping. Closures keep
a reference to the environment they were declared in, so a scope lives as
long as any function that can still see it.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

from .values import (
    RuntimeVal, NumberVal, StringVal, ArrayVal, ObjectVal,
    StaticClassVal, ClassVal, StaticEnumVal, EnumVal,
    null_val, bool_val, string_val, array_val, native_fn, format_value,
)
from .builtins import BuiltinRegistry, get_builtin_registry
from ..ast import Expression, Identifier, MemberExpr
from ..errors import (
    error_undefined_variable,
    error_constant_reassignment,
    error_invalid_member,
    error_index_out_of_bounds,
)


Evaluator = Callable[[Expression, "Environment"], RuntimeVal]

_MISSING = object()


@dataclass
class Binding:
    value: RuntimeVal
    constant: bool = False


class Environment:
    """
    A single scope containing variable bindings.

    ``loop_permitted`` says whether ``break``/``continue`` are legal here.
    It is inherited from the parent unless given explicitly: loop bodies
    pass True, function bodies pass False.
    """

    def __init__(self, parent: Optional["Environment"] = None,
                 loop_permitted: Optional[bool] = None, name: str = "block"):
        self.parent = parent
        self.name = name  # For debugging
        self.bindings: Dict[str, Binding] = {}
        if loop_permitted is None:
            loop_permitted = parent.loop_permitted if parent is not None else False
        self.loop_permitted = loop_permitted

    def __repr__(self) -> str:
        return f"Environment({self.name!r}, {sorted(self.bindings)})"

    def declare(self, name: str, value: RuntimeVal, constant: bool = False) -> RuntimeVal:
        """Define ``name`` in this scope, replacing any existing binding here."""
        self.bindings[name] = Binding(value, constant)
        return value

    def resolve(self, name: str, span=None) -> "Environment":
        """Find the scope that binds ``name``."""
        env = self
        while env is not None:
            if name in env.bindings:
                return env
            env = env.parent
        raise error_undefined_variable(name, span)

    def assign(self, name: str, value: RuntimeVal, span=None) -> RuntimeVal:
        """Update an existing binding in the nearest scope that has it."""
        binding = self.resolve(name, span).bindings[name]
        if binding.constant:
            raise error_constant_reassignment(name, span)
        binding.value = value
        return value

    def lookup(self, name: str, span=None) -> RuntimeVal:
        """Look up a variable in this scope or parent scopes."""
        return self.resolve(name, span).bindings[name].value

    def contains(self, name: str) -> bool:
        env = self
        while env is not None:
            if name in env.bindings:
                return True
            env = env.parent
        return False

    def is_constant(self, name: str) -> bool:
        return self.resolve(name).bindings[name].constant

    # =========================================================================
    # Member paths
    # =========================================================================

    def resolve_member(self, expr: MemberExpr, evaluate: Evaluator,
                       new_value=_MISSING) -> RuntimeVal:
        """
        Read, or with ``new_value`` mutate, the member that ``expr`` names.

        The path root may be any expression; it and computed keys are
        evaluated in this environment through ``evaluate``. Mutation writes
        to the live container, so every alias observes it.
        """
        container = evaluate(expr.object, self)
        key = self._member_key(expr, evaluate)
        if new_value is _MISSING:
            return self._read_member(container, key, expr)
        return self._write_member(container, key, new_value, expr)

    def _member_key(self, expr: MemberExpr, evaluate: Evaluator) -> RuntimeVal:
        if not expr.computed and isinstance(expr.property, Identifier):
            return string_val(expr.property.symbol)
        return evaluate(expr.property, self)

    @staticmethod
    def _index(key: RuntimeVal, expr: MemberExpr) -> int:
        number = key.value if isinstance(key, NumberVal) else None
        if number is None or (isinstance(number, float) and not number.is_integer()):
            raise error_invalid_member(
                f"array index must be a whole number, got {format_value(key, True)}", expr.span
            )
        return int(key.value)

    @staticmethod
    def _key_name(key: RuntimeVal, expr: MemberExpr) -> str:
        if isinstance(key, StringVal):
            return key.value
        if isinstance(key, NumberVal):
            return format_value(key)
        raise error_invalid_member(
            f"member key must be a string or number, got {key.type_name}", expr.span
        )

    def _read_member(self, container: RuntimeVal, key: RuntimeVal, expr: MemberExpr) -> RuntimeVal:
        if isinstance(container, ArrayVal):
            index = self._index(key, expr)
            if not 0 <= index < len(container.elements):
                raise error_index_out_of_bounds(index, len(container.elements), expr.span)
            return container.elements[index]

        name = self._key_name(key, expr)
        if isinstance(container, ObjectVal):
            return container.properties.get(name, null_val())
        if isinstance(container, ClassVal):
            if name in container.fields:
                return container.fields[name]
            if name in container.methods:
                return container.methods[name]
            raise error_invalid_member(
                f"'{container.parent.name}' instance has no member '{name}'", expr.span
            )
        if isinstance(container, StaticClassVal):
            if name in container.static_fields:
                return container.static_fields[name]
            if name in container.static_methods:
                return container.static_methods[name]
            raise error_invalid_member(
                f"class '{container.name}' has no static member '{name}'", expr.span
            )
        if isinstance(container, StaticEnumVal):
            if name in container.members:
                return EnumVal(name, container)
            raise error_invalid_member(
                f"enum '{container.name}' has no member '{name}'", expr.span
            )
        raise error_invalid_member(
            f"cannot read member '{name}' of {container.type_name}", expr.span
        )

    def _write_member(self, container: RuntimeVal, key: RuntimeVal,
                      value: RuntimeVal, expr: MemberExpr) -> RuntimeVal:
        if isinstance(container, ArrayVal):
            index = self._index(key, expr)
            if index < 0:
                raise error_index_out_of_bounds(index, len(container.elements), expr.span)
            while len(container.elements) <= index:
                container.elements.append(null_val())
            container.elements[index] = value
            return value

        name = self._key_name(key, expr)
        if isinstance(container, ObjectVal):
            container.properties[name] = value
            return value
        if isinstance(container, ClassVal):
            if name not in container.fields:
                raise error_invalid_member(
                    f"'{container.parent.name}' has no field '{name}'", expr.span
                )
            container.fields[name] = value
            return value
        if isinstance(container, StaticClassVal):
            container.static_fields[name] = value
            return value
        raise error_invalid_member(
            f"cannot set member '{name}' on {container.type_name}", expr.span
        )


def create_global_env(args: Sequence[str] = None,
                      registry: Optional[BuiltinRegistry] = None) -> Environment:
    """
    Create a root environment.

    Declares the constants ``null``, ``true`` and ``false``, the ``args``
    array of script arguments, and every native function in ``registry``
    (the shared built-in registry by default).
    """
    env = Environment(name="global", loop_permitted=False)
    env.declare("null", null_val(), constant=True)
    env.declare("true", bool_val(True), constant=True)
    env.declare("false", bool_val(False), constant=True)
    env.declare("args", array_val([string_val(a) for a in (args or [])]), constant=True)

    registry = registry or get_builtin_registry()
    for builtin in registry.functions():
        env.declare(builtin.name, native_fn(builtin.implementation, builtin.name), constant=True)
    return env
