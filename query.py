"""
cfquery entry point
Evaluates an expression against a dataset and returns the samples in the requested unit
"""

from typing import Any, Optional
import numpy as np

from dataset import DEFAULT_UNITS, UNITS, Dataset
from error_handling import QueryNameError
from interpreter import create_debug_evaluator, create_evaluator
from units import UnitParser


class Query:
  """Evaluates query strings; owns the unit system used for conversions"""

  def __init__(self, units_path: Optional[str] = None):
    self.parser = UnitParser(units_path)

  def evaluate(self, dataset: Optional[Dataset], text: str, unit: str = "",
               debug: bool = False) -> np.ndarray:
    """
    Evaluate `text` and return the result as an array

    Args:
      dataset: Source of the ${name} variables
      text: Expression, statements separated by ';'
      unit: Unit of the result; variables are converted to it when not empty
      debug: Trace the evaluation on stdout

    Returns:
      float64 array: one element for a scalar result, none for an empty query
    """
    proxy = QueryProxy(self, dataset, unit)
    evaluator = create_debug_evaluator(proxy, text) if debug else create_evaluator(proxy, text)
    return evaluator.evaluate().to_array()

  def convert_to_same_physical_unit(self, from_unit: str, to_unit: str, values: Any) -> np.ndarray:
    return self.parser.parse(from_unit, to_unit).convert(values)


class QueryProxy:
  """Variable resolution for one evaluation"""

  def __init__(self, query: Query, dataset: Optional[Dataset], unit: str = ""):
    self.query = query
    self.dataset = dataset
    self.unit = unit

  def load_variable(self, name: str) -> np.ndarray:
    variable = self.dataset.find_variable(name) if self.dataset is not None else None
    if variable is None:
      raise QueryNameError(name, f"{name}: no such variable")
    values = variable.read_mask_and_scale()
    if self.unit:
      values = self.convert(self.get_units(name), self.unit, values)
    return values

  def get_units(self, name: str) -> str:
    variable = self.dataset.find_variable(name) if self.dataset is not None else None
    if variable is None:
      return DEFAULT_UNITS
    return str(variable.find_attribute(UNITS) or DEFAULT_UNITS)

  def convert(self, from_unit: str, to_unit: str, values: Any) -> np.ndarray:
    return self.query.convert_to_same_physical_unit(from_unit, to_unit, values)


_default_query: Optional[Query] = None


def evaluate(text: str, dataset: Optional[Dataset] = None, unit: str = "") -> np.ndarray:
  """Evaluate `text` with a shared default Query"""
  global _default_query
  if _default_query is None:
    _default_query = Query()
  return _default_query.evaluate(dataset, text, unit)
