"""
Runtime values for the Kestrel interpreter.

Every value the evaluator produces is one of the dataclasses below. The set
is closed: code that dispatches on values handles each variant explicitly.

Arrays, objects, classes and instances are mutable and shared by reference,
so all value classes compare by identity in Python. Language-level equality
(``==`` in Kestrel and match patterns) is ``values_equal``.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, ClassVar, Dict, List, Optional, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from .environment import Environment
    from ..ast import Statement


@dataclass(eq=False)
class RuntimeVal:
    """Base class for runtime values."""
    type_name: ClassVar[str] = "value"


@dataclass(eq=False)
class NullVal(RuntimeVal):
    type_name: ClassVar[str] = "null"


@dataclass(eq=False)
class BooleanVal(RuntimeVal):
    value: bool
    type_name: ClassVar[str] = "boolean"


@dataclass(eq=False)
class NumberVal(RuntimeVal):
    value: Union[int, float]
    type_name: ClassVar[str] = "number"


@dataclass(eq=False)
class StringVal(RuntimeVal):
    value: str
    type_name: ClassVar[str] = "string"


@dataclass(eq=False)
class ArrayVal(RuntimeVal):
    elements: List[RuntimeVal] = field(default_factory=list)
    type_name: ClassVar[str] = "array"


@dataclass(eq=False)
class ObjectVal(RuntimeVal):
    properties: Dict[str, RuntimeVal] = field(default_factory=dict)
    type_name: ClassVar[str] = "object"


@dataclass(eq=False)
class FunctionVal(RuntimeVal):
    """A user function closing over the scope it was declared in."""
    name: str
    parameters: List[str]
    body: List["Statement"]
    declaration_env: "Environment"
    type_name: ClassVar[str] = "function"


@dataclass(eq=False)
class ClassFunctionVal(FunctionVal):
    """
    A method. ``bound`` is what ``this`` refers to inside the body: the
    instance for instance methods, the class itself for static methods.
    """
    bound: Optional[RuntimeVal] = None
    type_name: ClassVar[str] = "method"

    def bind(self, target: RuntimeVal) -> "ClassFunctionVal":
        """Return a copy of this method with ``this`` bound to ``target``."""
        return replace(self, bound=target)


NativeCall = Callable[[List[RuntimeVal], "Environment"], RuntimeVal]


@dataclass(eq=False)
class NativeFunctionVal(RuntimeVal):
    """A host function. Failures are reported by raising EvaluationError."""
    name: str
    call: NativeCall
    type_name: ClassVar[str] = "native-function"


@dataclass(eq=False)
class StaticClassVal(RuntimeVal):
    """A declared class: the template for instances plus its static members."""
    name: str
    fields: List[str] = field(default_factory=list)
    static_fields: Dict[str, RuntimeVal] = field(default_factory=dict)
    methods: Dict[str, ClassFunctionVal] = field(default_factory=dict)
    static_methods: Dict[str, ClassFunctionVal] = field(default_factory=dict)
    type_name: ClassVar[str] = "class"


@dataclass(eq=False)
class ClassVal(RuntimeVal):
    """An instance created with ``new``."""
    parent: StaticClassVal
    fields: Dict[str, RuntimeVal] = field(default_factory=dict)
    methods: Dict[str, ClassFunctionVal] = field(default_factory=dict)
    type_name: ClassVar[str] = "instance"


@dataclass(eq=False)
class StaticEnumVal(RuntimeVal):
    name: str
    members: List[str] = field(default_factory=list)
    type_name: ClassVar[str] = "enum"


@dataclass(eq=False)
class EnumVal(RuntimeVal):
    """An enum member, optionally carrying a tagged payload."""
    name: str
    parent: StaticEnumVal
    tagged: Optional[RuntimeVal] = None
    type_name: ClassVar[str] = "enum-member"

    def tag(self, payload: RuntimeVal) -> "EnumVal":
        """Return a new member value carrying ``payload``."""
        return EnumVal(self.name, self.parent, payload)


# Convenience constructors

def null_val() -> NullVal:
    return NullVal()


def bool_val(b: bool) -> BooleanVal:
    return BooleanVal(bool(b))


def number_val(n: Union[int, float]) -> NumberVal:
    return NumberVal(n)


def string_val(s: str) -> StringVal:
    return StringVal(str(s))


def array_val(items: List[RuntimeVal] = None) -> ArrayVal:
    return ArrayVal(list(items) if items is not None else [])


def object_val(properties: Dict[str, RuntimeVal] = None) -> ObjectVal:
    return ObjectVal(dict(properties) if properties is not None else {})


def native_fn(call: NativeCall, name: str = "<native>") -> NativeFunctionVal:
    return NativeFunctionVal(name, call)


def is_true(value: RuntimeVal) -> bool:
    """Conditions only pass on boolean true; every other value counts as false."""
    return isinstance(value, BooleanVal) and value.value


def type_name(value: RuntimeVal) -> str:
    return value.type_name


def values_equal(a: RuntimeVal, b: RuntimeVal) -> bool:
    """
    Structural equality.

    Primitives compare by value, arrays and objects element-wise, instances
    by class and fields, enum members by enum, member and payload. Functions
    compare by the body they close over, classes and enums by identity.
    """
    if a is b:
        return True
    if isinstance(a, NullVal):
        return isinstance(b, NullVal)
    if isinstance(a, (BooleanVal, StringVal)):
        return type(a) is type(b) and a.value == b.value
    if isinstance(a, NumberVal):
        return isinstance(b, NumberVal) and a.value == b.value
    if isinstance(a, ArrayVal):
        if not isinstance(b, ArrayVal) or len(a.elements) != len(b.elements):
            return False
        return all(values_equal(x, y) for x, y in zip(a.elements, b.elements))
    if isinstance(a, ObjectVal):
        if not isinstance(b, ObjectVal) or a.properties.keys() != b.properties.keys():
            return False
        return all(values_equal(v, b.properties[k]) for k, v in a.properties.items())
    if isinstance(a, FunctionVal):
        return isinstance(b, FunctionVal) and a.body is b.body
    if isinstance(a, NativeFunctionVal):
        return isinstance(b, NativeFunctionVal) and a.call is b.call
    if isinstance(a, ClassVal):
        if not isinstance(b, ClassVal) or a.parent is not b.parent:
            return False
        return all(values_equal(v, b.fields[k]) for k, v in a.fields.items())
    if isinstance(a, EnumVal):
        if not isinstance(b, EnumVal) or a.parent is not b.parent or a.name != b.name:
            return False
        if a.tagged is None or b.tagged is None:
            return a.tagged is None and b.tagged is None
        return values_equal(a.tagged, b.tagged)
    # StaticClassVal and StaticEnumVal: identity, checked above
    return False


def format_number(n: Union[int, float]) -> str:
    """Render a number without a trailing '.0' for whole floats."""
    if isinstance(n, float) and n.is_integer():
        return str(int(n))
    return str(n)


def format_value(value: RuntimeVal, nested: bool = False) -> str:
    """
    Render a value for display.

    Strings are shown raw at the top level and quoted inside containers.
    """
    if isinstance(value, NullVal):
        return "null"
    if isinstance(value, BooleanVal):
        return "true" if value.value else "false"
    if isinstance(value, NumberVal):
        return format_number(value.value)
    if isinstance(value, StringVal):
        return repr(value.value) if nested else value.value
    if isinstance(value, ArrayVal):
        return "[" + ", ".join(format_value(v, True) for v in value.elements) + "]"
    if isinstance(value, ObjectVal):
        if not value.properties:
            return "{}"
        body = ", ".join(f"{k}: {format_value(v, True)}" for k, v in value.properties.items())
        return "{ " + body + " }"
    if isinstance(value, ClassFunctionVal):
        return f"<method {value.name}>"
    if isinstance(value, FunctionVal):
        return f"<fn {value.name}>"
    if isinstance(value, NativeFunctionVal):
        return f"<native fn {value.name}>"
    if isinstance(value, StaticClassVal):
        return f"<class {value.name}>"
    if isinstance(value, ClassVal):
        body = ", ".join(f"{k}: {format_value(v, True)}" for k, v in value.fields.items())
        return f"{value.parent.name} {{ {body} }}" if body else f"{value.parent.name} {{}}"
    if isinstance(value, StaticEnumVal):
        return f"<enum {value.name}>"
    if isinstance(value, EnumVal):
        text = f"{value.parent.name}.{value.name}"
        if value.tagged is not None:
            text += f"({format_value(value.tagged, True)})"
        return text
    raise TypeError(f"Unknown runtime value: {type(value).__name__}")


def to_python(value: RuntimeVal) -> Any:
    """
    Convert a runtime value to plain Python data.

    Null, booleans, numbers, strings, arrays, objects and instances map to
    None, bool, int/float, str, list and dict. Functions, classes and enum
    values become their display string.
    """
    if isinstance(value, NullVal):
        return None
    if isinstance(value, (BooleanVal, NumberVal, StringVal)):
        return value.value
    if isinstance(value, ArrayVal):
        return [to_python(v) for v in value.elements]
    if isinstance(value, ObjectVal):
        return {k: to_python(v) for k, v in value.properties.items()}
    if isinstance(value, ClassVal):
        return {k: to_python(v) for k, v in value.fields.items()}
    return format_value(value)


def from_python(data: Any) -> RuntimeVal:
    """Wrap plain Python data (None, bool, numbers, str, list, dict) as a runtime value."""
    if isinstance(data, RuntimeVal):
        return data
    if data is None:
        return null_val()
    if isinstance(data, bool):
        return bool_val(data)
    if isinstance(data, (int, float)):
        return number_val(data)
    if isinstance(data, str):
        return string_val(data)
    if isinstance(data, (list, tuple)):
        return array_val([from_python(item) for item in data])
    if isinstance(data, dict):
        return object_val({str(k): from_python(v) for k, v in data.items()})
    raise TypeError(f"Cannot convert {type(data).__name__} to a runtime value")
