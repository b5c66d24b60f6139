"""
In-memory dataset read by cfquery
Variables carry their samples and CF attributes; packed data and missing
values are resolved when the samples are read
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional
import numpy as np

from error_handling import QueryRuntimeError


# CF attribute names
SCALE_FACTOR = "scale_factor"
ADD_OFFSET = "add_offset"
VALID_RANGE = "valid_range"
VALID_MIN = "valid_min"
VALID_MAX = "valid_max"
FILL_VALUE = "_FillValue"
MISSING_VALUE = "missing_value"
UNITS = "units"

# Unit of a variable without a units attribute
DEFAULT_UNITS = "1"


def _scalar_attribute(attributes: Mapping[str, Any], name: str) -> Optional[float]:
  value = attributes.get(name)
  if value is None:
    return None
  values = np.ravel(np.asarray(value, dtype=np.float64))
  if values.size == 0:
    raise QueryRuntimeError(f"attribute '{name}' is empty")
  return float(values[0])


# ============================================================================
# SCALE / MISSING
# ============================================================================

@dataclass(frozen=True)
class ScaleMissing:
  """Packing and missing-data description of a variable

  Handles data packed with scale_factor/add_offset and samples flagged
  invalid by valid_min, valid_max, valid_range, missing_value or
  _FillValue.
  """
  scale: float = 1.0
  offset: float = 0.0
  valid_min: Optional[float] = None
  valid_max: Optional[float] = None
  fill_value: Optional[float] = None
  missing_value: Optional[float] = None

  @classmethod
  def from_attributes(cls, attributes: Mapping[str, Any]) -> 'ScaleMissing':
    scale = _scalar_attribute(attributes, SCALE_FACTOR)
    offset = _scalar_attribute(attributes, ADD_OFFSET)

    valid_min = valid_max = None
    if attributes.get(VALID_RANGE) is not None:
      bounds = np.ravel(np.asarray(attributes[VALID_RANGE], dtype=np.float64))
      if bounds.size < 2:
        raise QueryRuntimeError(f"attribute '{VALID_RANGE}' needs two values")
      valid_min, valid_max = float(bounds[0]), float(bounds[1])
    # valid_min/valid_max take precedence over valid_range
    minimum = _scalar_attribute(attributes, VALID_MIN)
    maximum = _scalar_attribute(attributes, VALID_MAX)

    return cls(
      scale=1.0 if scale is None else scale,
      offset=0.0 if offset is None else offset,
      valid_min=valid_min if minimum is None else minimum,
      valid_max=valid_max if maximum is None else maximum,
      fill_value=_scalar_attribute(attributes, FILL_VALUE),
      missing_value=_scalar_attribute(attributes, MISSING_VALUE),
    )

  @property
  def has_scale_offset(self) -> bool:
    return self.scale != 1.0 or self.offset != 0.0

  @property
  def has_invalid_data(self) -> bool:
    return self.valid_min is not None or self.valid_max is not None

  @property
  def has_missing(self) -> bool:
    return self.has_invalid_data or self.fill_value is not None or self.missing_value is not None

  def is_invalid_data(self, values: Any) -> np.ndarray:
    """Mask of the samples outside the valid range"""
    values = np.asarray(values, dtype=np.float64)
    mask = np.zeros(values.shape, dtype=bool)
    with np.errstate(invalid='ignore'):
      if self.valid_min is not None:
        mask |= values < self.valid_min
      if self.valid_max is not None:
        mask |= values > self.valid_max
    return mask

  def is_missing(self, values: Any) -> np.ndarray:
    """Mask of the samples equal to NaN, missing_value or _FillValue"""
    values = np.asarray(values, dtype=np.float64)
    mask = np.isnan(values)
    if self.missing_value is not None:
      mask |= values == self.missing_value
    if self.fill_value is not None:
      mask |= values == self.fill_value
    return mask

  def inflate_scale_offset(self, values: Any) -> np.ndarray:
    """Unpack: value * scale + offset, missing samples untouched"""
    values = np.array(values, dtype=np.float64)
    if self.has_scale_offset:
      keep = ~self.is_missing(values)
      values[keep] = values[keep] * self.scale + self.offset
    return values

  def deflate_scale_offset(self, values: Any) -> np.ndarray:
    """Pack: (value - offset) / scale, missing samples untouched"""
    values = np.array(values, dtype=np.float64)
    if self.has_scale_offset:
      keep = ~self.is_missing(values)
      values[keep] = (values[keep] - self.offset) / self.scale
    return values

  def set_missing_to_nan(self, values: Any) -> np.ndarray:
    """Replace missing and out-of-range samples with NaN"""
    values = np.array(values, dtype=np.float64)
    values[self.is_missing(values) | self.is_invalid_data(values)] = np.nan
    return values


# ============================================================================
# VARIABLES AND DATASET
# ============================================================================

@dataclass
class Variable:
  """Named array of samples with its attributes"""
  name: str
  data: Any
  attributes: Dict[str, Any] = field(default_factory=dict)

  def find_attribute(self, name: str) -> Optional[Any]:
    return self.attributes.get(name)

  @property
  def units(self) -> str:
    units = self.find_attribute(UNITS)
    return str(units) if units else DEFAULT_UNITS

  @property
  def scale_missing(self) -> ScaleMissing:
    return ScaleMissing.from_attributes(self.attributes)

  def read(self) -> np.ndarray:
    """Raw samples, flattened to float64"""
    try:
      return np.array(self.data, dtype=np.float64).ravel()
    except (TypeError, ValueError) as e:
      raise QueryRuntimeError(f"{self.name}: cannot read as double: {e}") from e

  def read_mask_and_scale(self) -> np.ndarray:
    """Samples with missing data set to NaN and packing undone"""
    scale_missing = self.scale_missing
    values = scale_missing.set_missing_to_nan(self.read())
    return scale_missing.inflate_scale_offset(values)


class Dataset:
  """Collection of variables looked up by name"""

  def __init__(self):
    self._variables: Dict[str, Variable] = {}

  @classmethod
  def from_mapping(cls, mapping: Mapping[str, Any]) -> 'Dataset':
    """Build from {name: samples} or {name: (samples, attributes)}"""
    dataset = cls()
    for name, item in mapping.items():
      if isinstance(item, Variable):
        dataset.add_variable(item)
      elif isinstance(item, tuple) and len(item) == 2 and isinstance(item[1], Mapping):
        dataset.add_variable(Variable(name, item[0], dict(item[1])))
      else:
        dataset.add_variable(Variable(name, item))
    return dataset

  def add_variable(self, variable: Variable) -> Variable:
    self._variables[variable.name] = variable
    return variable

  def find_variable(self, name: str) -> Optional[Variable]:
    return self._variables.get(name)

  @property
  def variables(self) -> Mapping[str, Variable]:
    return MappingProxyType(self._variables)

  def __contains__(self, name: str) -> bool:
    return name in self._variables

  def __iter__(self) -> Iterator[str]:
    return iter(self._variables)

  def __len__(self) -> int:
    return len(self._variables)
