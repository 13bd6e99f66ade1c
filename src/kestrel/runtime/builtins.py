"""
Built-in function registry for the Kestrel interpreter.

Every built-in follows the native-function contract: it receives the
evaluated argument list and the calling environment, returns a runtime
value, and reports failures by raising EvaluationError so scripts can
catch them with try/catch.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
import math

from .values import (
    RuntimeVal, NumberVal, StringVal, ArrayVal, ObjectVal,
    null_val, number_val, string_val, array_val,
    format_value, type_name,
)
from ..errors import error_builtin_argument


@dataclass
class BuiltinFunction:
    """A built-in function with its implementation."""
    name: str
    implementation: Callable[..., RuntimeVal]
    doc: str = ""


class BuiltinRegistry:
    """
    Registry of all built-in functions.

    Functions are registered by name; ``create_global_env`` declares each
    one as a constant in the root scope.
    """

    def __init__(self):
        self._functions: Dict[str, BuiltinFunction] = {}
        self._register_all()

    def get_function(self, name: str) -> Optional[BuiltinFunction]:
        """Look up a function by name."""
        return self._functions.get(name)

    def functions(self) -> List[BuiltinFunction]:
        return list(self._functions.values())

    def register(self, func: BuiltinFunction) -> None:
        """Register a function, replacing any previous one of the same name."""
        self._functions[func.name] = func

    def _register_all(self) -> None:
        self._register_io_functions()
        self._register_collection_functions()
        self._register_math_functions()

    # --- Argument helpers ---

    @staticmethod
    def _expect_count(name: str, args: List[RuntimeVal], count: int) -> None:
        if len(args) != count:
            raise error_builtin_argument(
                name, f"expected {count} argument(s), got {len(args)}"
            )

    @staticmethod
    def _number(name: str, value: RuntimeVal) -> float:
        if not isinstance(value, NumberVal):
            raise error_builtin_argument(name, f"expected a number, got {type_name(value)}")
        return value.value

    @staticmethod
    def _array(name: str, value: RuntimeVal) -> ArrayVal:
        if not isinstance(value, ArrayVal):
            raise error_builtin_argument(name, f"expected an array, got {type_name(value)}")
        return value

    # --- I/O and conversion ---

    def _register_io_functions(self) -> None:

        def builtin_print(args, env):
            print(" ".join(format_value(a) for a in args))
            return null_val()

        def builtin_str(args, env):
            self._expect_count("str", args, 1)
            return string_val(format_value(args[0]))

        def builtin_typeof(args, env):
            self._expect_count("typeof", args, 1)
            return string_val(type_name(args[0]))

        def builtin_num(args, env):
            self._expect_count("num", args, 1)
            value = args[0]
            if isinstance(value, NumberVal):
                return value
            if not isinstance(value, StringVal):
                raise error_builtin_argument("num", f"expected a string, got {type_name(value)}")
            text = value.value.strip()
            try:
                return number_val(int(text))
            except ValueError:
                pass
            try:
                return number_val(float(text))
            except ValueError:
                raise error_builtin_argument("num", f"cannot convert {text!r} to a number") from None

        self.register(BuiltinFunction("print", builtin_print, "Print values separated by spaces"))
        self.register(BuiltinFunction("str", builtin_str, "Display form of a value as a string"))
        self.register(BuiltinFunction("typeof", builtin_typeof, "Name of a value's kind"))
        self.register(BuiltinFunction("num", builtin_num, "Parse a string as a number"))

    # --- Collections ---

    def _register_collection_functions(self) -> None:

        def builtin_len(args, env):
            self._expect_count("len", args, 1)
            value = args[0]
            if isinstance(value, StringVal):
                return number_val(len(value.value))
            if isinstance(value, ArrayVal):
                return number_val(len(value.elements))
            if isinstance(value, ObjectVal):
                return number_val(len(value.properties))
            raise error_builtin_argument("len", f"{type_name(value)} has no length")

        def builtin_push(args, env):
            self._expect_count("push", args, 2)
            array = self._array("push", args[0])
            array.elements.append(args[1])
            return array

        def builtin_pop(args, env):
            self._expect_count("pop", args, 1)
            array = self._array("pop", args[0])
            if not array.elements:
                raise error_builtin_argument("pop", "cannot pop from an empty array")
            return array.elements.pop()

        def builtin_keys(args, env):
            self._expect_count("keys", args, 1)
            value = args[0]
            if not isinstance(value, ObjectVal):
                raise error_builtin_argument("keys", f"expected an object, got {type_name(value)}")
            return array_val([string_val(k) for k in value.properties])

        self.register(BuiltinFunction("len", builtin_len, "Length of a string, array or object"))
        self.register(BuiltinFunction("push", builtin_push, "Append to an array, returning the array"))
        self.register(BuiltinFunction("pop", builtin_pop, "Remove and return the last array element"))
        self.register(BuiltinFunction("keys", builtin_keys, "Array of an object's keys"))

    # --- Math ---

    def _register_math_functions(self) -> None:

        def builtin_floor(args, env):
            self._expect_count("floor", args, 1)
            n = self._number("floor", args[0])
            if not math.isfinite(n):
                raise error_builtin_argument("floor", f"expected a finite number, got {format_value(args[0])}")
            return number_val(math.floor(n))

        def builtin_sqrt(args, env):
            self._expect_count("sqrt", args, 1)
            n = self._number("sqrt", args[0])
            if n < 0:
                raise error_builtin_argument("sqrt", "math domain error")
            return number_val(math.sqrt(n))

        def builtin_abs(args, env):
            self._expect_count("abs", args, 1)
            return number_val(abs(self._number("abs", args[0])))

        self.register(BuiltinFunction("floor", builtin_floor, "Largest integer not above n"))
        self.register(BuiltinFunction("sqrt", builtin_sqrt, "Square root"))
        self.register(BuiltinFunction("abs", builtin_abs, "Absolute value"))


# Global registry instance
_registry: Optional[BuiltinRegistry] = None


def get_builtin_registry() -> BuiltinRegistry:
    """Get the global built-in function registry."""
    global _registry
    if _registry is None:
        _registry = BuiltinRegistry()
    return _registry


def call_builtin(name: str, args: List[RuntimeVal], env=None) -> RuntimeVal:
    """
    Call a built-in function by name.

    Raises KeyError if no such function is registered.
    """
    func = get_builtin_registry().get_function(name)
    if func is None:
        raise KeyError(f"Unknown built-in function: {name}")
    return func.implementation(args, env)
