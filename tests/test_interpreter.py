"""
End-to-end tests for the Kestrel interpreter.
"""

import textwrap

import pytest

from kestrel import (
    run, execute, tokenize, parse,
    Interpreter, Completion, CompletionType, ExecutionResult,
    EvaluationError, ParserError,
    create_global_env, format_value, to_python,
)
from kestrel.runtime import NullVal, ClassVal, EnumVal, FunctionVal, native_fn


def run_source(source: str):
    """Run source and return the result as plain Python data."""
    return to_python(run(textwrap.dedent(source)))


def run_error(source: str) -> EvaluationError:
    """Run source that must fail at runtime and return the error."""
    with pytest.raises(EvaluationError) as exc_info:
        run(textwrap.dedent(source))
    return exc_info.value


class TestLiteralsAndOperators:
    """Test expression evaluation."""

    def test_program_value_is_last_statement(self):
        assert run_source("1 2 3") == 3

    def test_empty_program_is_null(self):
        assert isinstance(run(""), NullVal)

    def test_arithmetic_precedence(self):
        assert run_source("1 + 2 * 3") == 7
        assert run_source("(1 + 2) * 3") == 9
        assert run_source("10 - 4 - 3") == 3

    def test_division_produces_fraction(self):
        assert run_source("7 / 2") == 3.5
        assert format_value(run("6 / 2")) == "3"

    def test_modulo(self):
        assert run_source("7 % 3") == 1
        assert run_source("(0 - 7) % 3") == 2

    def test_division_by_zero(self):
        assert run_error("1 / 0").code == "E409"
        assert run_error("1 % 0").code == "E409"

    def test_string_concatenation(self):
        assert run_source("'kes' + \"trel\"") == "kestrel"

    def test_mixed_operands_are_false(self):
        """Operators on mismatched types produce false instead of failing."""
        assert run_source("1 + 'a'") is False
        assert run_source("'a' < 'b'") is False
        assert run_source("'a' - 'b'") is False

    def test_comparisons(self):
        assert run_source("1 < 2") is True
        assert run_source("2 > 3") is False
        assert run_source("1 == 1.0") is True
        assert run_source("'a' != 'b'") is True
        assert run_source("null == null") is True

    def test_structural_equality(self):
        source = """
        let a = [1, { x: 2 }]
        let b = [1, { x: 2 }]
        a == b
        """
        assert run_source(source) is True

    def test_logical_operators(self):
        assert run_source("true && false") is False
        assert run_source("false | true") is True
        assert run_source("1 < 2 && 3 > 2") is True

    def test_logical_needs_booleans(self):
        assert run_source("1 && true") is False
        assert run_source("null | true") is False

    def test_both_operands_evaluated(self):
        source = """
        let calls = 0
        fn touch() {
            calls = calls + 1
            true
        }
        false && touch()
        calls
        """
        assert run_source(source) == 1

    def test_string_escapes(self):
        assert run_source(r'"a\tb"') == "a\tb"


class TestVariables:
    """Test declarations, assignment and scoping."""

    def test_let_and_assign(self):
        assert run_source("let x = 1 x = x + 41 x") == 42

    def test_assignment_value(self):
        assert run_source("let x = 0 let y = x = 5 y") == 5

    def test_declaration_without_value(self):
        assert run_source("let x x") is None

    def test_const_reassignment(self):
        error = run_error("""
            const limit = 10
            limit = 11
        """)
        assert error.code == "E402"

    def test_undefined_variable(self):
        error = run_error("missing + 1")
        assert error.code == "E401"
        assert "missing" in error.diagnostic.message

    def test_literal_names_are_constant(self):
        assert run_error("true = false").code == "E402"

    def test_block_scope(self):
        source = """
        let x = 1
        if (true) {
            let x = 2
            x = 3
        }
        x
        """
        assert run_source(source) == 1

    def test_assignment_reaches_outer_scope(self):
        source = """
        let x = 1
        if (true) { x = 2 }
        x
        """
        assert run_source(source) == 2

    def test_invalid_assignment_target(self):
        assert run_error("1 = 2").code == "E410"

    def test_args_visible(self):
        env = create_global_env(["first", "second"])
        assert to_python(run("args[1]", env)) == "second"


class TestControlFlow:
    """Test if, loops, break and continue."""

    def test_if_else_value(self):
        assert run_source("if (1 < 2) { 'yes' } else { 'no' }") == "yes"
        assert run_source("if (1 > 2) { 'yes' } else { 'no' }") == "no"

    def test_if_without_else_is_null(self):
        assert run_source("if (false) { 1 }") is None

    def test_non_boolean_condition_is_false(self):
        """Only boolean true passes a condition."""
        assert run_source("if (1) { 'yes' } else { 'no' }") == "no"

    def test_else_if_chain(self):
        source = """
        fn grade(n) {
            if (n > 89) { 'A' } else if (n > 79) { 'B' } else { 'C' }
        }
        [grade(95), grade(85), grade(10)]
        """
        assert run_source(source) == ["A", "B", "C"]

    def test_while_loop(self):
        source = """
        let i = 0
        let total = 0
        while (i < 5) {
            total = total + i
            i = i + 1
        }
        total
        """
        assert run_source(source) == 10

    def test_while_value_is_last_body_value(self):
        assert run_source("let n = 0 while (n < 3) { n = n + 1 }") == 3

    def test_for_loop(self):
        source = """
        let items = []
        for (let i = 0; i < 3; i = i + 1) {
            push(items, i * 10)
        }
        items
        """
        assert run_source(source) == [0, 10, 20]

    def test_for_variable_scoped_to_loop(self):
        error = run_error("""
            for (let i = 0 i < 2 i = i + 1) { }
            i
        """)
        assert error.code == "E401"

    def test_break_and_continue(self):
        source = """
        let total = 0
        for (let i = 0; i < 10; i = i + 1) {
            if (i == 5) { break }
            if (i % 2 == 0) { continue }
            total = total + i
        }
        total
        """
        assert run_source(source) == 4

    def test_continue_in_while(self):
        source = """
        let i = 0
        let seen = []
        while (i < 5) {
            i = i + 1
            if (i == 3) { continue }
            push(seen, i)
        }
        seen
        """
        assert run_source(source) == [1, 2, 4, 5]

    def test_break_only_exits_inner_loop(self):
        source = """
        let count = 0
        for (let i = 0; i < 3; i = i + 1) {
            while (true) {
                count = count + 1
                break
            }
        }
        count
        """
        assert run_source(source) == 3

    def test_break_outside_loop(self):
        error = run_error("break")
        assert error.code == "E405"
        assert "break" in error.diagnostic.message

    def test_continue_outside_loop(self):
        assert run_error("if (true) { continue }").code == "E405"

    def test_break_does_not_cross_function_boundary(self):
        error = run_error("""
            while (true) {
                fn escape() { break }
                escape()
            }
        """)
        assert error.code == "E405"

    def test_return_exits_loop(self):
        source = """
        fn find(items, target) {
            for (let i = 0; i < len(items); i = i + 1) {
                if (items[i] == target) { return i }
            }
            0 - 1
        }
        [find([4, 5, 6], 5), find([4], 9)]
        """
        assert run_source(source) == [1, -1]


class TestFunctions:
    """Test functions, closures and recursion."""

    def test_named_function(self):
        source = """
        fn add(a, b) { a + b }
        add(2, 3)
        """
        assert run_source(source) == 5

    def test_implicit_return_of_last_value(self):
        assert run_source("fn f() { 1 2 } f()") == 2

    def test_explicit_return(self):
        source = """
        fn sign(n) {
            if (n < 0) { return 'negative' }
            'non-negative'
        }
        [sign(0 - 1), sign(1)]
        """
        assert run_source(source) == ["negative", "non-negative"]

    def test_bare_return_is_null(self):
        assert run_source("fn f() { return } f()") is None

    def test_empty_body_is_null(self):
        assert run_source("fn f() { } f()") is None

    def test_recursion(self):
        source = """
        fn fib(n) {
            if (n < 2) { return n }
            fib(n - 1) + fib(n - 2)
        }
        fib(15)
        """
        assert run_source(source) == 610

    def test_closure_counter(self):
        source = """
        fn makeCounter() {
            let count = 0
            fn inc() {
                count = count + 1
                count
            }
            inc
        }
        let a = makeCounter()
        let b = makeCounter()
        a()
        a()
        b()
        let result = [a(), b()]
        result
        """
        assert run_source(source) == [3, 2]

    def test_anonymous_function_value(self):
        source = """
        let twice = fn(f, x) { f(f(x)) }
        twice(fn(n) { n * 3 }, 2)
        """
        assert run_source(source) == 18

    def test_named_function_is_constant(self):
        assert run_error("fn f() { 1 } f = 2").code == "E402"

    def test_extra_arguments_ignored(self):
        assert run_source("fn f(a) { a } f(1, 2, 3)") == 1

    def test_missing_parameters_unbound(self):
        """Reading a parameter that received no argument fails."""
        error = run_error("fn f(a, b) { b } f(1)")
        assert error.code == "E401"

    def test_missing_parameter_unused_is_fine(self):
        assert run_source("fn f(a, b) { a } f(1)") == 1

    def test_arguments_evaluated_before_callee(self):
        source = """
        let log = []
        fn pick() {
            push(log, 'callee')
            fn(x) { x }
        }
        fn value() {
            push(log, 'argument')
            1
        }
        pick()(value())
        log
        """
        assert run_source(source) == ["argument", "callee"]

    def test_call_non_function(self):
        assert run_error("let x = 5 x()").code == "E407"

    def test_function_value_display(self):
        value = run("fn area() { 1 } area")
        assert isinstance(value, FunctionVal)
        assert format_value(value) == "<fn area>"

    def test_ternary(self):
        source = """
        let x = 5
        let size = x > 3 -> 'big' | 'small'
        let flag = false
        let other = flag -> 1 | 2
        size + ' ' + str(other)
        """
        assert run_source(source) == "big 2"


class TestCollections:
    """Test arrays and objects."""

    def test_array_index(self):
        assert run_source("let a = [10, 20, 30] a[1]") == 20

    def test_array_out_of_bounds(self):
        error = run_error("let a = [1] a[5]")
        assert error.code == "E404"

    def test_array_write_extends(self):
        assert run_source("let a = [] a[2] = 7 a") == [None, None, 7]

    def test_arrays_shared_by_reference(self):
        source = """
        let a = [1]
        let b = a
        push(b, 2)
        len(a)
        """
        assert run_source(source) == 2

    def test_object_access(self):
        source = """
        let point = { x: 1, y: 2 }
        point.x + point['y']
        """
        assert run_source(source) == 3

    def test_object_shorthand(self):
        source = """
        let name = 'k'
        let o = { name, size: 2 }
        o
        """
        assert run_source(source) == {"name": "k", "size": 2}

    def test_missing_key_is_null(self):
        assert run_source("let o = { a: 1 } o.b") is None

    def test_nested_member_assignment(self):
        source = """
        let config = { server: { ports: [80] } }
        let alias = config.server
        config.server.ports[1] = 443
        alias.ports
        """
        assert run_source(source) == [80, 443]

    def test_object_grows_on_assignment(self):
        assert run_source("let o = {} o.k = 1 keys(o)") == ["k"]

    def test_member_of_non_container(self):
        assert run_error("let n = 1 n.x").code == "E403"


class TestClasses:
    """Test classes, instances and static members."""

    COUNTER = """
    class Counter {
        count;
        static created = 0;

        constructor(start) {
            this.count = start
            Counter.created = Counter.created + 1
        }
        bump() { this.count = this.count + 1 }
        static total() { this.created }
    }
    """

    def test_constructor_and_methods(self):
        source = self.COUNTER + """
        let a = new Counter(5)
        a.bump()
        a.bump()
        a.count
        """
        assert run_source(source) == 7

    def test_static_members(self):
        source = self.COUNTER + """
        let a = new Counter(1)
        let b = new Counter(2)
        let result = [Counter.created, Counter.total()]
        result
        """
        assert run_source(source) == [2, 2]

    def test_instances_are_independent(self):
        source = self.COUNTER + """
        let a = new Counter(1)
        let b = new Counter(10)
        a.bump()
        let result = [a.count, b.count]
        result
        """
        assert run_source(source) == [2, 10]

    def test_fields_start_null(self):
        source = """
        class Box { value; }
        let b = new Box()
        b.value
        """
        assert run_source(source) is None

    def test_instance_value(self):
        value = run("class P { x; constructor(x) { this.x = x } } new P(3)")
        assert isinstance(value, ClassVal)
        assert format_value(value) == "P { x: 3 }"
        assert to_python(value) == {"x": 3}

    def test_member_after_new(self):
        assert run_source("class B { v; constructor(v) { this.v = v } } new B(5).v") == 5

    def test_undeclared_field_write(self):
        error = run_error("""
            class P { x; }
            let p = new P()
            p.y = 1
        """)
        assert error.code == "E403"

    def test_unknown_member_read(self):
        assert run_error("class P { x; } new P().nope").code == "E403"

    def test_bound_method_keeps_instance(self):
        source = """
        class Greeter {
            name;
            constructor(name) { this.name = name }
            greet() { 'hi ' + this.name }
        }
        let g = new Greeter('ada')
        let greet = g.greet
        greet()
        """
        assert run_source(source) == "hi ada"

    def test_new_on_non_class(self):
        assert run_error("let x = 1 new x()").code == "E408"

    def test_instance_equality(self):
        source = """
        class P { x; constructor(x) { this.x = x } }
        let a = new P(1)
        let b = new P(1)
        let c = new P(2)
        let result = [a == b, a == c]
        result
        """
        assert run_source(source) == [True, False]


class TestEnumsAndMatch:
    """Test enums and match expressions."""

    def test_enum_members(self):
        source = """
        enum Color { Red, Green }
        [Color.Red == Color.Red, Color.Red == Color.Green]
        """
        assert run_source(source) == [True, False]

    def test_enum_value_display(self):
        value = run("enum Color { Red } Color.Red")
        assert isinstance(value, EnumVal)
        assert format_value(value) == "Color.Red"

    def test_unknown_enum_member(self):
        assert run_error("enum Color { Red } Color.Blue").code == "E403"

    def test_tagged_enum_arity(self):
        error = run_error("enum Shape { Circle } Shape.Circle(1, 2)")
        assert error.code == "E406"

    def test_match_literals(self):
        source = """
        fn describe(n) {
            match n {
                1, 2 => { 'small' }
                3 => { 'three' }
                default => { 'other' }
            }
        }
        [describe(2), describe(3), describe(9)]
        """
        assert run_source(source) == ["small", "three", "other"]

    def test_match_without_default_is_null(self):
        assert run_source("match 5 { 1 => { 'one' } }") is None

    def test_first_matching_case_wins(self):
        assert run_source("match 1 { 1 => { 'a' } 1 => { 'b' } }") == "a"

    def test_match_enum(self):
        source = """
        enum Light { Red, Green }
        let light = Light.Green
        match light {
            Light.Red => { 'stop' }
            Light.Green => { 'go' }
        }
        """
        assert run_source(source) == "go"

    def test_match_destructures_tagged_enum(self):
        source = """
        enum Shape { Circle, Square }
        fn area(s) {
            match s {
                Shape.Circle(r) => { 3 * r * r }
                Shape.Square(side) => { side * side }
                default => { 0 }
            }
        }
        let result = [area(Shape.Circle(2)), area(Shape.Square(3)), area(Shape.Circle)]
        result
        """
        assert run_source(source) == [12, 9, 0]

    def test_default_with_patterns_runs_once(self):
        source = """
        let hits = 0
        fn check(n) {
            match n {
                default, 3 => { hits = hits + 1 }
            }
        }
        check(3)
        check(4)
        hits
        """
        assert run_source(source) == 2

    def test_call_pattern_evaluates_callee_once(self):
        source = """
        let lookups = 0
        fn double(n) { n * 2 }
        fn pick() {
            lookups = lookups + 1
            double
        }
        let k = 3
        let label = match 6 {
            pick()(k) => { 'six' }
            default => { 'other' }
        }
        let result = [label, lookups]
        result
        """
        assert run_source(source) == ["six", 1]

    def test_return_from_match_expression(self):
        source = """
        fn classify(n) {
            let label = match n {
                0 => { return 'zero' }
                default => { 'other' }
            }
            'got ' + label
        }
        [classify(0), classify(5)]
        """
        assert run_source(source) == ["zero", "got other"]

    def test_match_scrutinee_evaluated_once(self):
        source = """
        let calls = 0
        fn next() {
            calls = calls + 1
            calls
        }
        match next() {
            5 => { 'five' }
            6 => { 'six' }
        }
        calls
        """
        assert run_source(source) == 1


class TestErrors:
    """Test throw and try/catch."""

    def test_catch_thrown_value(self):
        source = """
        let result = try {
            throw 'boom'
        } catch {
            'caught ' + error
        }
        result
        """
        assert run_source(source) == "caught boom"

    def test_catch_thrown_object(self):
        source = """
        try { throw { code: 42 } } catch { error.code }
        """
        assert run_source(source) == 42

    def test_catch_runtime_error(self):
        assert run_source("try { 1 / 0 } catch { error }") == "division by zero"

    def test_catch_undefined_variable(self):
        message = run_source("try { nope } catch { error }")
        assert "nope" in message

    def test_catch_builtin_error(self):
        message = run_source("try { pop([]) } catch { error }")
        assert message == "pop(): cannot pop from an empty array"

    def test_catch_non_finite_floor(self):
        message = run_source('try { floor(num("inf")) } catch { error }')
        assert message.startswith("floor(): expected a finite number")

    def test_catch_host_exception(self):
        """A Python exception raised by a host function is catchable."""
        def boom(args, env):
            raise ValueError("host failure")

        env = create_global_env()
        env.declare("boom", native_fn(boom, "boom"), constant=True)
        value = run("try { boom() } catch { error }", env)
        assert to_python(value) == "boom() failed: host failure"

    def test_uncaught_host_exception(self):
        def boom(args, env):
            raise KeyError("slot")

        env = create_global_env()
        env.declare("boom", native_fn(boom, "boom"), constant=True)
        with pytest.raises(EvaluationError) as exc_info:
            run("let x = 1\nboom()", env)
        assert exc_info.value.code == "E412"
        assert exc_info.value.diagnostic.span.start.line == 2
        assert isinstance(exc_info.value.__cause__, KeyError)

    def test_execute_reports_non_finite_floor(self):
        result = execute('floor(num("nan"))')
        assert not result.success
        assert result.diagnostic.code == "E411"

    def test_try_value_without_error(self):
        assert run_source("try { 1 + 1 } catch { 0 }") == 2

    def test_error_visible_after_catch(self):
        assert run_source("try { throw 7 } catch { } error") == 7

    def test_throw_through_functions(self):
        source = """
        fn inner() { throw 'deep' }
        fn outer() { inner() 'unreachable' }
        try { outer() } catch { error }
        """
        assert run_source(source) == "deep"

    def test_rethrow(self):
        error = run_error("try { throw 1 } catch { throw error + 1 }")
        assert error.code == "E400"
        assert to_python(error.value) == 2

    def test_uncaught_throw(self):
        error = run_error("throw 'bad'")
        assert error.code == "E400"
        assert to_python(error.value) == "bad"
        assert "bad" in error.diagnostic.message

    def test_return_through_try(self):
        source = """
        fn f() {
            try { return 1 } catch { 2 }
            3
        }
        f()
        """
        assert run_source(source) == 1

    def test_break_through_try(self):
        source = """
        let i = 0
        while (true) {
            i = i + 1
            try { if (i == 3) { break } } catch { }
        }
        i
        """
        assert run_source(source) == 3

    def test_loop_control_error_is_catchable(self):
        assert "break" in run_source("try { break } catch { error }")


class TestBuiltinsFromScripts:
    """Test native functions called from scripts."""

    def test_print(self, capsys):
        run("print('total:', 1 + 2)")
        assert capsys.readouterr().out == "total: 3\n"

    def test_print_returns_null(self, capsys):
        assert run_source("print()") is None
        assert capsys.readouterr().out == "\n"

    def test_len_and_str(self):
        assert run_source("len('hello') + len([1, 2])") == 7
        assert run_source("str(1.5) + '!'") == "1.5!"

    def test_typeof(self):
        source = """
        class A { }
        [typeof(1), typeof('s'), typeof(null), typeof(fn() { }), typeof(A), typeof(new A())]
        """
        assert run_source(source) == ["number", "string", "null", "function", "class", "instance"]

    def test_math(self):
        assert run_source("floor(7 / 2) + sqrt(16) + abs(0 - 1)") == 8


class TestExecutionApi:
    """Test the run/execute entry points."""

    def test_execute_success(self):
        result = execute("let x = [1, 2] x")
        assert isinstance(result, ExecutionResult)
        assert result.success
        assert result.data == [1, 2]

    def test_execute_parse_failure(self):
        result = execute("let x = ")
        assert not result.success
        assert result.diagnostic.code == "E102"
        assert "E102" in result.error_message
        assert result.data is None

    def test_execute_runtime_failure(self):
        result = execute("let x = 1\nmissing")
        assert not result.success
        assert result.diagnostic.code == "E401"

    def test_runtime_error_has_location(self):
        with pytest.raises(EvaluationError) as exc_info:
            run("let x = 1\nmissing", filename="demo.ks")
        diag = exc_info.value.diagnostic
        assert diag.span.start.line == 2
        assert diag.source_line == "missing"
        assert "demo.ks:2:1" in str(exc_info.value)

    def test_run_parse_error(self):
        with pytest.raises(ParserError):
            run("let = 1")

    def test_shared_environment(self):
        env = create_global_env()
        run("let total = 1", env)
        run("total = total + 1", env)
        assert to_python(run("total", env)) == 2

    def test_interpreter_on_parsed_program(self):
        program = parse(tokenize("let x = 2 x * 21"))
        value = Interpreter().evaluate(program, create_global_env())
        assert to_python(value) == 42

    def test_completion(self):
        completion = Completion.normal(run("1"))
        assert completion.kind is CompletionType.NORMAL
        assert not completion.is_abrupt
        assert Completion(CompletionType.BREAK, completion.value).is_abrupt


class TestLanguageProperties:
    """Reference programs with known results."""

    def test_while_counts_to_four(self):
        assert run_source("let x = 1; while (x < 4) { x = x + 1; } x;") == 4

    def test_constructor_field(self):
        source = "class C { v; constructor(a) { this.v = a; } } new C(5).v;"
        assert run_source(source) == 5

    def test_match_enum_member(self):
        source = 'enum E { A, B } match E.A { E.A => { "got A" } default => { "other" } }'
        assert run_source(source) == "got A"

    def test_nothing_runs_after_return(self):
        source = """
        let ran = false
        fn f() { return 1 ran = true }
        f()
        ran
        """
        assert run_source(source) is False

    def test_array_and_object_equality(self):
        source = """
        let a = [1, 2]
        let b = [1, 2]
        let c = [1, 3]
        let e1 = {}
        let e2 = {}
        let result = [a == b, a == c, c == a, e1 == e2]
        result
        """
        assert run_source(source) == [True, False, False, True]

    def test_tagging_gives_independent_values(self):
        source = """
        enum Box { Item }
        let a = Box.Item(1)
        let b = Box.Item(2)
        let result = [a == b, str(a), str(b), str(Box.Item)]
        result
        """
        assert run_source(source) == [False, "Box.Item(1)", "Box.Item(2)", "Box.Item"]

    def test_catch_thrown_number(self):
        assert run_source("try { throw 42 } catch { error }") == 42

    def test_constructor_sets_fields_in_order(self):
        source = """
        class Pair {
            first; second;
            constructor(a, b) { this.first = a this.second = b }
        }
        let p = new Pair(1, 2)
        let result = [p.first, p.second]
        result
        """
        assert run_source(source) == [1, 2]
