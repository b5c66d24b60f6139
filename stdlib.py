"""
cfquery Standard Library
Built-in constants and numeric functions of the expression language
Immutable tables, built once at import time
"""

from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping
import math
import numpy as np

from utilities import (
  binary_dispatch_op,
  check_same_length,
  ieee_scalar,
  operand_error,
  truth,
  unary_dispatch_op
)
from values import TaggedValue, make_value


class IdentifierType(Enum):
  """What a bare name refers to"""
  NOT_A_FUNCTION = 0
  CONSTANT = 1
  UNARY = 2
  BINARY = 3
  TERNARY = 4


# ============================================================================
# CONSTANTS
# ============================================================================

# Same values as the C <math.h> M_* macros
CONSTANTS: Mapping[str, float] = MappingProxyType({
    "e": 2.71828182845904523536,
    "log2e": 1.44269504088896340736,
    "log10e": 0.434294481903251827651,
    "ln2": 0.693147180559945309417,
    "ln10": 2.30258509299404568402,
    "pi": 3.14159265358979323846,
    "pi_2": 1.57079632679489661923,
    "pi_4": 0.785398163397448309616,
    "1_pi": 0.318309886183790671538,
    "2_pi": 0.636619772367581343076,
    "2_sqrtpi": 1.12837916709551257390,
    "sqrt2": 1.41421356237309504880,
    "sqrt1_2": 0.707106781186547524401,
})


# ============================================================================
# UNARY FUNCTIONS
# ============================================================================

def _unary(name: str, scalar_func: Callable[[float], float], ufunc: np.ufunc) -> Callable[[TaggedValue], TaggedValue]:
  impl = unary_dispatch_op(name, ieee_scalar(scalar_func, ufunc), ufunc)

  def function(x: TaggedValue) -> TaggedValue:
    return impl(x, make_value)

  function.__name__ = f"query_{name}"
  function.__doc__ = f"{name}(x), element-wise on arrays"
  return function


query_abs = _unary("abs", math.fabs, np.fabs)
query_exp = _unary("exp", math.exp, np.exp)
query_log = _unary("log", math.log, np.log)
query_log10 = _unary("log10", math.log10, np.log10)
query_sqrt = _unary("sqrt", math.sqrt, np.sqrt)
query_sin = _unary("sin", math.sin, np.sin)
query_cos = _unary("cos", math.cos, np.cos)
query_tan = _unary("tan", math.tan, np.tan)
query_asin = _unary("asin", math.asin, np.arcsin)
query_acos = _unary("acos", math.acos, np.arccos)
query_atan = _unary("atan", math.atan, np.arctan)
query_sinh = _unary("sinh", math.sinh, np.sinh)
query_cosh = _unary("cosh", math.cosh, np.cosh)
query_tanh = _unary("tanh", math.tanh, np.tanh)


# ============================================================================
# BINARY FUNCTIONS
# ============================================================================

_pow_impl = binary_dispatch_op("pow", ieee_scalar(math.pow, np.power), np.power)
_atan2_impl = binary_dispatch_op("atan2", ieee_scalar(math.atan2, np.arctan2), np.arctan2)


def query_pow(x: TaggedValue, y: TaggedValue) -> TaggedValue:
  """x raised to the power y"""
  return _pow_impl(x, y, make_value)


def query_atan2(y: TaggedValue, x: TaggedValue) -> TaggedValue:
  """Arc tangent of y/x using the signs of both to pick the quadrant"""
  return _atan2_impl(y, x, make_value)


# ============================================================================
# TERNARY FUNCTIONS
# ============================================================================

def query_iif(condition: TaggedValue, if_true: TaggedValue, if_false: TaggedValue) -> TaggedValue:
  """Inline if

  A scalar condition returns one of the branches unmodified. An array
  condition selects element by element, scalar branches being broadcast
  over the condition's length.
  """
  if condition.is_scalar:
    if if_true.is_empty or if_false.is_empty:
      raise operand_error("iif", condition, if_true, if_false)
    return if_true if truth(condition.payload) else if_false

  if not condition.is_array or if_true.is_empty or if_false.is_empty:
    raise operand_error("iif", condition, if_true, if_false)

  for branch in (if_true, if_false):
    if branch.is_array:
      check_same_length("iif", condition.payload, branch.payload)
  mask = condition.payload != 0.0
  return make_value(np.where(mask, if_true.payload, if_false.payload))


# ============================================================================
# BUILT-IN FUNCTION REGISTRY
# ============================================================================

UNARY_FUNCTIONS: Mapping[str, Callable[[TaggedValue], TaggedValue]] = MappingProxyType({
    "abs": query_abs,
    "exp": query_exp,
    "log": query_log,
    "log10": query_log10,
    "sqrt": query_sqrt,
    "sin": query_sin,
    "cos": query_cos,
    "tan": query_tan,
    "asin": query_asin,
    "acos": query_acos,
    "atan": query_atan,
    "sinh": query_sinh,
    "cosh": query_cosh,
    "tanh": query_tanh,
})

BINARY_FUNCTIONS: Mapping[str, Callable[[TaggedValue, TaggedValue], TaggedValue]] = MappingProxyType({
    "pow": query_pow,
    "atan2": query_atan2,
})

TERNARY_FUNCTIONS: Mapping[str, Callable[[TaggedValue, TaggedValue, TaggedValue], TaggedValue]] = MappingProxyType({
    "iif": query_iif,
})

_ARITY: Dict[IdentifierType, int] = {
    IdentifierType.UNARY: 1,
    IdentifierType.BINARY: 2,
    IdentifierType.TERNARY: 3,
}


def get_identifier_type(identifier: str) -> IdentifierType:
  """Classify a bare name; functions win over constants"""
  if identifier in UNARY_FUNCTIONS:
    return IdentifierType.UNARY
  if identifier in BINARY_FUNCTIONS:
    return IdentifierType.BINARY
  if identifier in TERNARY_FUNCTIONS:
    return IdentifierType.TERNARY
  if identifier in CONSTANTS:
    return IdentifierType.CONSTANT
  return IdentifierType.NOT_A_FUNCTION


def arity_of(identifier: str) -> int:
  """Number of arguments of a builtin function, 0 for anything else"""
  return _ARITY.get(get_identifier_type(identifier), 0)


def get_constant(name: str) -> TaggedValue:
  """Scalar value of a builtin constant"""
  return TaggedValue.scalar(CONSTANTS[name])


def call_builtin(identifier: str, args: List[TaggedValue]) -> TaggedValue:
  """Call the builtin function `identifier` with already-evaluated arguments"""
  identifier_type = get_identifier_type(identifier)
  if identifier_type is IdentifierType.TERNARY:
    return TERNARY_FUNCTIONS[identifier](*args)
  if identifier_type is IdentifierType.BINARY:
    return BINARY_FUNCTIONS[identifier](*args)
  return UNARY_FUNCTIONS[identifier](*args)


def list_builtin_functions() -> List[str]:
  """List all available built-in functions"""
  return list(UNARY_FUNCTIONS) + list(BINARY_FUNCTIONS) + list(TERNARY_FUNCTIONS)


def list_constants() -> List[str]:
  """List all available built-in constants"""
  return list(CONSTANTS)


if __name__ == "__main__":
  print("cfquery Standard Library")
  print("=" * 30)
  print(f"Constants: {', '.join(list_constants())}")
  for name in list_builtin_functions():
    print(f"  {name}/{arity_of(name)}")
