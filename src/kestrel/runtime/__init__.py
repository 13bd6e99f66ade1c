"""
Kestrel runtime - tree-walking interpreter.

This module provides:
- Interpreter: Evaluates programs, threading control flow as Completions
- Runtime values: the closed family of values programs compute with
- Environment: Variable scopes and member path resolution
- BuiltinRegistry: Native functions available to every program
"""

from .values import (
    RuntimeVal,
    NullVal,
    BooleanVal,
    NumberVal,
    StringVal,
    ArrayVal,
    ObjectVal,
    FunctionVal,
    ClassFunctionVal,
    NativeFunctionVal,
    StaticClassVal,
    ClassVal,
    StaticEnumVal,
    EnumVal,
    null_val,
    bool_val,
    number_val,
    string_val,
    array_val,
    object_val,
    native_fn,
    is_true,
    type_name,
    values_equal,
    format_value,
    to_python,
    from_python,
)

from .environment import (
    Binding,
    Environment,
    create_global_env,
)

from .builtins import (
    BuiltinFunction,
    BuiltinRegistry,
    get_builtin_registry,
    call_builtin,
)

from .interpreter import (
    Interpreter,
    Completion,
    CompletionType,
    ExecutionResult,
    evaluate,
    execute,
    run,
)

__all__ = [
    # Values
    'RuntimeVal',
    'NullVal',
    'BooleanVal',
    'NumberVal',
    'StringVal',
    'ArrayVal',
    'ObjectVal',
    'FunctionVal',
    'ClassFunctionVal',
    'NativeFunctionVal',
    'StaticClassVal',
    'ClassVal',
    'StaticEnumVal',
    'EnumVal',
    'null_val',
    'bool_val',
    'number_val',
    'string_val',
    'array_val',
    'object_val',
    'native_fn',
    'is_true',
    'type_name',
    'values_equal',
    'format_value',
    'to_python',
    'from_python',

    # Environment
    'Binding',
    'Environment',
    'create_global_env',

    # Builtins
    'BuiltinFunction',
    'BuiltinRegistry',
    'get_builtin_registry',
    'call_builtin',

    # Interpreter
    'Interpreter',
    'Completion',
    'CompletionType',
    'ExecutionResult',
    'evaluate',
    'execute',
    'run',
]
