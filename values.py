"""
Tagged values handled by the cfquery evaluator
A value is either a scalar double or a one-dimensional array of doubles
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict
import math
import operator
import numpy as np

from error_handling import QueryRuntimeError
from utilities import (
  as_float_array,
  binary_dispatch_op,
  ieee_scalar,
  is_real_scalar,
  operand_error,
  truth
)


class ValueKind(Enum):
  """Kinds a tagged value can hold; the enum value is the name shown in errors"""
  SCALAR = "float"
  ARRAY = "ndarray"
  EMPTY = "empty"


@dataclass(frozen=True, eq=False)
class TaggedValue:
  """Immutable scalar-or-array value with arithmetic dispatching on both kinds"""
  kind: ValueKind = ValueKind.EMPTY
  payload: Any = None

  # ------------------------------------------------------------------ build

  @classmethod
  def scalar(cls, value: float) -> 'TaggedValue':
    return cls(ValueKind.SCALAR, float(value))

  @classmethod
  def array(cls, values: Any) -> 'TaggedValue':
    return cls(ValueKind.ARRAY, as_float_array(values))

  @classmethod
  def empty(cls) -> 'TaggedValue':
    return cls()

  # ---------------------------------------------------------------- inspect

  def is_of_kind(self, kind: ValueKind) -> bool:
    return self.kind is kind

  @property
  def is_scalar(self) -> bool:
    return self.kind is ValueKind.SCALAR

  @property
  def is_array(self) -> bool:
    return self.kind is ValueKind.ARRAY

  @property
  def is_empty(self) -> bool:
    return self.kind is ValueKind.EMPTY

  @property
  def kind_name(self) -> str:
    return self.kind.value

  def __len__(self) -> int:
    if self.is_array:
      return int(self.payload.shape[0])
    return 0 if self.is_empty else 1

  def __float__(self) -> float:
    if self.is_scalar:
      return self.payload
    if self.is_array and len(self) == 1:
      return float(self.payload[0])
    raise QueryRuntimeError(f"cannot convert {self!r} to a scalar")

  def to_array(self) -> np.ndarray:
    """Result array: a scalar becomes one element, an empty value none"""
    if self.is_array:
      return self.payload.copy()
    if self.is_scalar:
      return np.array([self.payload], dtype=np.float64)
    return np.empty(0, dtype=np.float64)

  def __repr__(self) -> str:
    if self.is_array:
      return f"TaggedValue(ndarray[{len(self)}]={np.array2string(self.payload, threshold=6)})"
    if self.is_scalar:
      return f"TaggedValue(float={self.payload!r})"
    return "TaggedValue(empty)"

  # ------------------------------------------------------------- arithmetic

  def __add__(self, other: Any) -> 'TaggedValue':
    return _ADD(self, _coerce(other), make_value)

  def __radd__(self, other: Any) -> 'TaggedValue':
    return _ADD(_coerce(other), self, make_value)

  def __sub__(self, other: Any) -> 'TaggedValue':
    return _SUB(self, _coerce(other), make_value)

  def __rsub__(self, other: Any) -> 'TaggedValue':
    return _SUB(_coerce(other), self, make_value)

  def __mul__(self, other: Any) -> 'TaggedValue':
    return _MUL(self, _coerce(other), make_value)

  def __rmul__(self, other: Any) -> 'TaggedValue':
    return _MUL(_coerce(other), self, make_value)

  def __truediv__(self, other: Any) -> 'TaggedValue':
    return _DIV(self, _coerce(other), make_value)

  def __rtruediv__(self, other: Any) -> 'TaggedValue':
    return _DIV(_coerce(other), self, make_value)

  def __mod__(self, other: Any) -> 'TaggedValue':
    return _MOD(self, _coerce(other), make_value)

  def __rmod__(self, other: Any) -> 'TaggedValue':
    return _MOD(_coerce(other), self, make_value)

  def __neg__(self) -> 'TaggedValue':
    return self * MINUS_ONE

  def __pos__(self) -> 'TaggedValue':
    if self.is_empty:
      raise operand_error("unary +", self)
    return self

  # ------------------------------------------------- comparison and logic

  def equal(self, other: Any) -> 'TaggedValue':
    return _EQ(self, _coerce(other), make_value)

  def not_equal(self, other: Any) -> 'TaggedValue':
    return _NE(self, _coerce(other), make_value)

  def less(self, other: Any) -> 'TaggedValue':
    return _LT(self, _coerce(other), make_value)

  def less_equal(self, other: Any) -> 'TaggedValue':
    return _LE(self, _coerce(other), make_value)

  def greater(self, other: Any) -> 'TaggedValue':
    return _GT(self, _coerce(other), make_value)

  def greater_equal(self, other: Any) -> 'TaggedValue':
    return _GE(self, _coerce(other), make_value)

  def logical_and(self, other: Any) -> 'TaggedValue':
    return _AND(self, _coerce(other), make_value)

  def logical_or(self, other: Any) -> 'TaggedValue':
    return _OR(self, _coerce(other), make_value)


def make_value(data: Any) -> TaggedValue:
  """Wrap a number, a numpy scalar or a sequence in the matching kind"""
  if isinstance(data, TaggedValue):
    return data
  if is_real_scalar(data):
    return TaggedValue.scalar(float(data))
  if data is None:
    return TaggedValue.empty()
  return TaggedValue.array(data)


def _coerce(other: Any) -> TaggedValue:
  return other if isinstance(other, TaggedValue) else make_value(other)


MINUS_ONE = TaggedValue.scalar(-1.0)


# ============================================================================
# OPERATOR TABLE
# ============================================================================

def _as_double(func: Callable[[float, float], bool]) -> Callable[[float, float], float]:
  return lambda a, b: 1.0 if func(a, b) else 0.0


def _as_double_array(ufunc: Callable[[Any, Any], Any]) -> Callable[[Any, Any], np.ndarray]:
  return lambda a, b: ufunc(a, b).astype(np.float64)


_ADD = binary_dispatch_op("+", ieee_scalar(operator.add, np.add), np.add)
_SUB = binary_dispatch_op("-", ieee_scalar(operator.sub, np.subtract), np.subtract)
_MUL = binary_dispatch_op("*", ieee_scalar(operator.mul, np.multiply), np.multiply)
_DIV = binary_dispatch_op("/", ieee_scalar(operator.truediv, np.true_divide), np.true_divide)
_MOD = binary_dispatch_op("%", ieee_scalar(math.fmod, np.fmod), np.fmod)

_EQ = binary_dispatch_op("==", _as_double(operator.eq), _as_double_array(np.equal))
_NE = binary_dispatch_op("!=", _as_double(operator.ne), _as_double_array(np.not_equal))
_LT = binary_dispatch_op("<", _as_double(operator.lt), _as_double_array(np.less))
_LE = binary_dispatch_op("<=", _as_double(operator.le), _as_double_array(np.less_equal))
_GT = binary_dispatch_op(">", _as_double(operator.gt), _as_double_array(np.greater))
_GE = binary_dispatch_op(">=", _as_double(operator.ge), _as_double_array(np.greater_equal))

_AND = binary_dispatch_op(
  "&&", _as_double(lambda a, b: truth(a) and truth(b)), _as_double_array(np.logical_and))
_OR = binary_dispatch_op(
  "||", _as_double(lambda a, b: truth(a) or truth(b)), _as_double_array(np.logical_or))


# Grammar symbol -> operation
BINARY_OPERATORS: Dict[str, Callable[[TaggedValue, TaggedValue], TaggedValue]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
    "==": TaggedValue.equal,
    "!=": TaggedValue.not_equal,
    "<": TaggedValue.less,
    "<=": TaggedValue.less_equal,
    ">": TaggedValue.greater,
    ">=": TaggedValue.greater_equal,
    "&&": TaggedValue.logical_and,
    "||": TaggedValue.logical_or,
}


def apply_operator(symbol: str, lhs: TaggedValue, rhs: TaggedValue) -> TaggedValue:
  """Apply the binary operator spelled `symbol` in the expression language"""
  try:
    func = BINARY_OPERATORS[symbol]
  except KeyError:
    raise QueryRuntimeError(f"unknown binary operator '{symbol}'") from None
  return func(lhs, rhs)
