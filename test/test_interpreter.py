"""
Evaluator tests for cfquery
Grammar, precedence, local names, builtins and error reporting
"""

import math
import numpy as np
import pytest

from error_handling import (
    OperandLengthError,
    QueryNameError,
    QuerySyntaxError,
    UnsupportedOperandError
)
from interpreter import LiteralExpression, create_debug_evaluator, create_evaluator, evaluate


class FakeProxy:
    """Variable source returning fixed arrays"""

    def __init__(self, **variables):
        self.variables = {name: np.asarray(values, dtype=float) for name, values in variables.items()}
        self.loaded = []

    def load_variable(self, name):
        self.loaded.append(name)
        if name not in self.variables:
            raise QueryNameError(name, f"{name}: no such variable")
        return self.variables[name]


def value_of(text, proxy=None):
    result = evaluate(text, proxy)
    assert result.is_scalar
    return result.payload


class TestLiterals:
    """Test numbers, signs and constants"""

    @pytest.mark.parametrize("text,expected", [
        ("42", 42.0), ("-2", -2.0), ("+2", 2.0), ("+4.", 4.0), ("0.125", 0.125), ("1e-3", 0.001),
    ])
    def test_numbers(self, text, expected):
        assert value_of(text) == expected

    @pytest.mark.parametrize("name,expected", [
        ("e", math.e),
        ("log2e", 1 / math.log(2)),
        ("ln2", math.log(2)),
        ("ln10", math.log(10)),
        ("pi", math.pi),
        ("pi_2", math.pi / 2),
        ("pi_4", math.pi / 4),
        ("1_pi", 1 / math.pi),
        ("2_pi", 2 / math.pi),
        ("sqrt2", math.sqrt(2)),
        ("sqrt1_2", math.sqrt(0.5)),
    ])
    def test_constants(self, name, expected):
        assert value_of(name) == pytest.approx(expected, rel=1e-15)

    def test_pi_is_exact(self):
        assert value_of("pi") == math.pi

    def test_sign_applies_to_the_following_or(self):
        assert value_of("-2+3") == -5.0
        assert value_of("2*-3") == -6.0


class TestLocalNames:
    """Test assignment and lookup of local names"""

    def test_assign_and_use(self):
        assert value_of("x=1; 1/x") == 1.0
        assert value_of("a_01=1; 1/a_01") == 1.0

    def test_scoping(self):
        assert value_of("a=1; aa=2; aaa=3; a+2*aa+3*(aaa*aaa)") == 32.0

    def test_names_are_case_sensitive(self):
        assert value_of("a=1; A=2; a+A") == 3.0

    def test_reassignment(self):
        assert value_of("x = 1; x = x + 1; x") == 2.0

    def test_assignment_is_an_expression(self):
        assert value_of("y = (x = 2) * 3; x + y") == 8.0

    def test_variables_exposed_read_only(self):
        evaluator = create_evaluator(None, "a = 1; b = a + 1")
        evaluator.evaluate()
        assert set(evaluator.variables) == {"a", "b"}
        assert evaluator.variables["b"].payload == 2.0
        with pytest.raises(TypeError):
            evaluator.variables["c"] = None

    def test_bindings_reset_between_evaluations(self):
        evaluator = create_evaluator(None, "a = 1; a")
        assert evaluator.evaluate().payload == 1.0
        assert evaluator.evaluate().payload == 1.0
        assert len(evaluator.variables) == 1

    def test_undefined_name(self):
        with pytest.raises(QueryNameError, match="name 'q' is not defined"):
            evaluate("q")


class TestFunctions:
    """Test builtin calls against direct floating-point computation"""

    @pytest.mark.parametrize("text,expected", [
        ("sin(pi_2)", math.sin(math.pi / 2)),
        ("cos(pi_2)", math.cos(math.pi / 2)),
        ("tan(pi_2)", math.tan(math.pi / 2)),
        ("asin(pi_4)", math.asin(math.pi / 4)),
        ("acos(pi_4)", math.acos(math.pi / 4)),
        ("atan(pi_4)", math.atan(math.pi / 4)),
        ("sinh(pi_2)", math.sinh(math.pi / 2)),
        ("cosh(pi_2)", math.cosh(math.pi / 2)),
        ("tanh(pi_2)", math.tanh(math.pi / 2)),
        ("atan2(pi_4, pi_2)", math.atan2(math.pi / 4, math.pi / 2)),
        ("abs(-pi_2)", math.pi / 2),
        ("exp(1)", math.e),
        ("log(1)", 0.0),
        ("log10(0.1)", -1.0),
        ("sqrt(16)", 4.0),
        ("pow(4, 4)", 256.0),
        ("iif(1, 2, 3)", 2.0),
        ("iif(0, 2, 3)", 3.0),
    ])
    def test_builtin(self, text, expected):
        assert value_of(text) == expected

    def test_nested_calls(self):
        assert value_of("pow(sin(0.7), 3)") == math.pow(math.sin(0.7), 3)

    def test_function_names_cannot_be_assigned(self):
        with pytest.raises(QuerySyntaxError, match="'\\(' expected"):
            evaluate("sin = 2")

    def test_constants_cannot_be_assigned(self):
        with pytest.raises(QuerySyntaxError, match="';' expected"):
            evaluate("pi = 3")


class TestOperators:
    """Test operators, precedence and truth values"""

    @pytest.mark.parametrize("text,expected", [
        ("2 + 2", 4.0), ("2 - 2", 0.0), ("2 * 3", 6.0), ("2 / 3", 2.0 / 3.0), ("3 % 2", 1.0),
    ])
    def test_arithmetic(self, text, expected):
        assert value_of(text) == expected

    @pytest.mark.parametrize("text,expected", [
        ("1 > 1", 0.0), ("1 >= 1", 1.0), ("1 < 1", 0.0), ("1 <= 1", 1.0), ("1 == 1", 1.0), ("1 != 1", 0.0),
    ])
    def test_comparison(self, text, expected):
        assert value_of(text) == expected

    @pytest.mark.parametrize("text,expected", [
        ("1 && 1", 1.0), ("1 && 0", 0.0), ("0 && 1", 0.0), ("0 && 0", 0.0),
        ("1 || 1", 1.0), ("1 || 0", 1.0), ("0 || 1", 1.0), ("0 || 0", 0.0),
    ])
    def test_logic(self, text, expected):
        assert value_of(text) == expected

    def test_precedence(self):
        assert value_of("2+2*3") == 8.0
        assert value_of("(2+2)*3") == 12.0
        assert value_of("1 + 1 == 2 && 3 > 2") == 1.0
        assert value_of("0 && 0 || 1") == 1.0

    def test_left_associativity(self):
        assert value_of("8 - 4 - 2") == 2.0
        assert value_of("8 / 4 / 2") == 1.0

    def test_division_by_zero(self):
        assert value_of("1/0") == math.inf
        assert math.isnan(value_of("0/0"))

    def test_end_to_end(self):
        assert value_of("pow(1,3)-4*1+4") == 1.0
        assert value_of("11.2*sin(0.41)+0.6*tan(-0.66)") == 11.2 * math.sin(0.41) + 0.6 * math.tan(-0.66)

    def test_derivative_expression(self):
        x = math.pi / 4
        expected = ((((1 / (math.pow(math.cos(x), 2))) * math.cos(x))
                     - (math.tan(x) * (-math.sin(x)))) / (math.pow(math.cos(x), 2)))
        text = "x=pi_4; ((((1/(pow(cos(x), 2)))*cos(x))-(tan(x)*(-sin(x))))/(pow(cos(x),2)))"
        assert value_of(text) == expected


class TestStatements:
    """Test statement sequencing"""

    def test_last_statement_wins(self):
        assert value_of("1; 2; 3") == 3.0

    def test_empty_statements_are_skipped(self):
        assert value_of(";; 1 ;; ;") == 1.0

    def test_empty_query(self):
        assert evaluate("").is_empty
        assert evaluate(" ; ; ").is_empty

    def test_missing_separator(self):
        with pytest.raises(QuerySyntaxError, match="';' expected"):
            evaluate("1 2")


class TestDatasetVariables:
    """Test ${name} references through the proxy"""

    def test_load_array(self):
        proxy = FakeProxy(x=[1, 2, 3])
        result = evaluate("${x} * 2 + 1", proxy)
        assert result.is_array
        assert list(result.payload) == [3.0, 5.0, 7.0]
        assert proxy.loaded == ["x"]

    def test_single_sample_stays_an_array(self):
        result = evaluate("${x}", FakeProxy(x=[5]))
        assert result.is_array
        assert len(result) == 1

    def test_array_functions_and_iif(self):
        proxy = FakeProxy(t=[-1, 0, 4])
        result = evaluate("X = ${t}; iif(X > 0, sqrt(X), 0)", proxy)
        assert list(result.payload) == [0.0, 0.0, 2.0]

    def test_array_length_mismatch(self):
        proxy = FakeProxy(a=[1, 2], b=[1, 2, 3])
        with pytest.raises(OperandLengthError):
            evaluate("${a} + ${b}", proxy)

    def test_unknown_variable(self):
        with pytest.raises(QueryNameError, match="nope: no such variable"):
            evaluate("${nope}", FakeProxy())

    def test_no_proxy(self):
        with pytest.raises(QueryNameError, match="x: no such variable"):
            evaluate("${x}")


class TestSyntaxErrors:
    """Test syntax error messages and the consumed prefix"""

    @pytest.mark.parametrize("text,message", [
        ("pow(1,2", "')' expected"),
        ("pow(1 2)", "',' expected"),
        ("sin 1", "'(' expected"),
        ("(1 + 2", "')' expected"),
        ("1 +", "primary expected"),
        ("*2", "primary expected"),
        ("$x", "'{' expected"),
        ("${1}", "identifier expected"),
        ("${x", "'}' expected"),
    ])
    def test_messages(self, text, message):
        with pytest.raises(QuerySyntaxError) as exc_info:
            evaluate(text, FakeProxy(x=[1]))
        assert exc_info.value.message == message

    def test_consumed_prefix(self):
        with pytest.raises(QuerySyntaxError) as exc_info:
            evaluate("pow(1,2")
        assert exc_info.value.consumed == "pow(1,2"
        assert str(exc_info.value) == "')' expected: pow(1,2<-- here"

    def test_bad_token(self):
        with pytest.raises(QuerySyntaxError, match="bad token '&'"):
            evaluate("1 & 2")

    def test_unsupported_operand_message(self):
        evaluator = LiteralExpression(None, "1")
        with pytest.raises(UnsupportedOperandError, match=r"unsupported operand type\(s\) for \*"):
            evaluator.evaluate() * evaluate("")


class TestDebugMode:
    """Test the traces printed by the debug evaluator"""

    def test_debug_output(self, capsys):
        create_debug_evaluator(FakeProxy(x=[1]), "a = ${x}; pow(a, 2)").evaluate()
        out = capsys.readouterr().out
        assert "Loading: ${x}" in out
        assert "Bound: a" in out
        assert "Calling: pow/2" in out
        assert "Evaluating: Primary VARIABLE" in out
        assert "Result:" in out
