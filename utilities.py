"""
Utilities module for the cfquery evaluator
Kind-dispatch factories shared by the value operators and the builtin functions
"""

from typing import Any, Callable
import numpy as np

from error_handling import (
  QueryRuntimeError,
  UnsupportedOperandError,
  OperandLengthError
)


# ==================== ARRAY COERCION ====================

def as_float_array(data: Any) -> np.ndarray:
  """
  Copy data into a read-only, one-dimensional float64 array

  Args:
    data: Sequence, numpy array or scalar

  Returns:
    Flattened float64 array that callers cannot modify in place

  Examples:
    as_float_array([1, 2]) -> array([1., 2.])
    as_float_array([[1, 2], [3, 4]]) -> array([1., 2., 3., 4.])
  """
  try:
    values = np.array(data, dtype=np.float64).ravel()
  except (TypeError, ValueError) as e:
    raise QueryRuntimeError(f"cannot convert {type(data).__name__} to an array of double: {e}")
  values.setflags(write=False)
  return values


def is_real_scalar(data: Any) -> bool:
  """True for Python/numpy real numbers and 0-d numeric arrays"""
  if isinstance(data, bool):
    return True
  if isinstance(data, (int, float, np.integer, np.floating, np.bool_)):
    return True
  return isinstance(data, np.ndarray) and data.ndim == 0


# ==================== IEEE SCALAR WRAPPER ====================

def ieee_scalar(func: Callable[..., float], fallback: Callable[..., Any]) -> Callable[..., float]:
  """
  Wrap a math-module function so domain errors give IEEE results

  The math module raises where C returns inf or nan (log(0), sqrt(-1),
  1/0); in that case the numpy ufunc is used on the same arguments.

  Args:
    func: Scalar implementation (math.log, operator.truediv, ...)
    fallback: numpy ufunc with the same meaning

  Returns:
    Function returning a Python float
  """
  def scalar(*args: float) -> float:
    try:
      return float(func(*args))
    except (ValueError, OverflowError, ZeroDivisionError):
      with np.errstate(all='ignore'):
        return float(fallback(*args))

  scalar.__name__ = getattr(func, '__name__', 'scalar')
  return scalar


# ==================== ERROR MESSAGE BUILDERS ====================

def operand_error(op: str, *values: Any) -> UnsupportedOperandError:
  """
  Generate the unsupported operand error for values of the given kinds

  Args:
    op: Operator symbol or function name
    values: Offending operands

  Returns:
    UnsupportedOperandError naming every operand kind
  """
  return UnsupportedOperandError(op, *(kind_name_of(value) for value in values))


def kind_name_of(value: Any) -> str:
  """Kind name of a tagged value, or the Python type name of anything else"""
  name = getattr(value, 'kind_name', None)
  return name if name is not None else type(value).__name__


def check_same_length(op: str, left: np.ndarray, right: np.ndarray) -> None:
  """Raise OperandLengthError unless both arrays have the same length"""
  if left.shape[0] != right.shape[0]:
    raise OperandLengthError(op, left.shape[0], right.shape[0])


# ==================== KIND DISPATCH FACTORIES ====================

def binary_dispatch_op(
  op: str,
  scalar_func: Callable[[float, float], float],
  array_func: Callable[[Any, Any], np.ndarray]
) -> Callable[[Any, Any, Callable], Any]:
  """
  Factory for binary operations over the scalar/array kind combinations

  Args:
    op: Symbol or function name used in error messages
    scalar_func: Applied when both operands are scalars
    array_func: Applied element-wise when at least one operand is an array,
      the scalar side being broadcast

  Returns:
    Function (x, y, make_value) -> tagged value

  Examples:
    add = binary_dispatch_op("+", operator.add, np.add)
    result = add(TaggedValue.scalar(1), TaggedValue.scalar(2), make_value)
  """
  def dispatch(x: Any, y: Any, make_value: Callable) -> Any:
    if x.is_scalar and y.is_scalar:
      return make_value(scalar_func(x.payload, y.payload))
    if x.is_scalar and y.is_array:
      return make_value(_elementwise(array_func, x.payload, y.payload))
    if x.is_array and y.is_scalar:
      return make_value(_elementwise(array_func, x.payload, y.payload))
    if x.is_array and y.is_array:
      check_same_length(op, x.payload, y.payload)
      return make_value(_elementwise(array_func, x.payload, y.payload))
    raise operand_error(op, x, y)

  return dispatch


def unary_dispatch_op(
  name: str,
  scalar_func: Callable[[float], float],
  array_func: Callable[[np.ndarray], np.ndarray]
) -> Callable[[Any, Callable], Any]:
  """
  Factory for one-argument functions over either kind

  Args:
    name: Function name used in error messages
    scalar_func: Applied to a scalar operand
    array_func: Applied element-wise to an array operand

  Returns:
    Function (x, make_value) -> tagged value
  """
  def dispatch(x: Any, make_value: Callable) -> Any:
    if x.is_scalar:
      return make_value(scalar_func(x.payload))
    if x.is_array:
      return make_value(_elementwise(array_func, x.payload))
    raise operand_error(name, x)

  return dispatch


def _elementwise(func: Callable[..., Any], *args: Any) -> np.ndarray:
  with np.errstate(all='ignore'):
    return np.asarray(func(*args), dtype=np.float64)


def truth(value: float) -> bool:
  """C truth of a double: anything but zero, NaN included"""
  return value != 0.0

