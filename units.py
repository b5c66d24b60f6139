"""
Physical units for cfquery
Parses unit strings with pint and turns a (from, to) pair into an affine converter
"""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Tuple
import re

import numpy as np
import pint

from error_handling import UnitError


# udunits writes exponents right after the symbol: "m2", "s-1", "kg m-3"
_UDUNITS_EXPONENT = re.compile(r"(?<=[A-Za-z_])(-?\d+)(?![\d.]*[A-Za-z_(])")

# Strings meaning "no unit"
DIMENSIONLESS = ("", "1")

# Reference-time units: "<unit> since <origin>"
_REFERENCE_TIME = re.compile(r"^\s*(?P<unit>\S.*?)\s+(?:since|after|from)\s+(?P<origin>.+?)\s*$",
                             re.IGNORECASE)

# Origin: date, optional clock time, optional time zone
_ORIGIN = re.compile(
    r"^(?P<year>[0-9]{1,4})-(?P<month>[0-9]{1,2})(?:-(?P<day>[0-9]{1,2}))?"
    r"(?:[T ]+(?P<hour>[0-9]{1,2})(?::(?P<minute>[0-9]{1,2})(?::(?P<second>[0-9]{1,2}(?:\.[0-9]*)?))?)?)?"
    r"\s*(?:(?P<utc>Z|UTC|GMT)|(?P<sign>[+-])(?P<tz_hour>[0-9]{1,2})(?::?(?P<tz_minute>[0-9]{2}))?)?$",
    re.IGNORECASE)


class Converter:
    """Affine transform value * scale + offset between two units"""

    def __init__(self, offset: float = 0.0, scale: float = 1.0):
        self._offset = float(offset)
        self._scale = float(scale)

    @property
    def offset(self) -> float:
        return self._offset

    @property
    def scale(self) -> float:
        return self._scale

    def is_null(self) -> bool:
        """True when the conversion does nothing"""
        return self._offset == 0.0 and self._scale == 1.0

    def convert(self, values: Any) -> Any:
        """Convert a scalar or an array; arrays are returned as new float64 arrays"""
        if isinstance(values, (int, float)):
            return float(values) if self.is_null() else values * self._scale + self._offset
        values = np.asarray(values, dtype=np.float64)
        if self.is_null():
            return values.copy()
        return values * self._scale + self._offset

    def __str__(self) -> str:
        return f"x * {self._scale:f} + {self._offset:f}"

    def __repr__(self) -> str:
        return f"Converter(offset={self._offset!r}, scale={self._scale!r})"


def udunits_to_pint(unit: str) -> str:
    """Rewrite the udunits spellings pint does not understand"""
    unit = unit.strip()
    if unit in DIMENSIONLESS:
        return "dimensionless"
    return _UDUNITS_EXPONENT.sub(r"**\1", unit)


def parse_origin(unit: str, origin: str) -> datetime:
    """UTC datetime of the origin of a reference-time unit"""
    match = _ORIGIN.match(origin.strip())
    if match is None:
        raise UnitError(f"'{unit}' contained a syntax error")
    fields = match.groupdict()
    seconds = float(fields['second'] or 0)
    try:
        moment = datetime(int(fields['year']), int(fields['month']), int(fields['day'] or 1),
                          int(fields['hour'] or 0), int(fields['minute'] or 0),
                          tzinfo=timezone.utc)
    except ValueError as e:
        raise UnitError(f"'{unit}' contained a syntax error") from e
    moment += timedelta(seconds=seconds)
    if fields['sign']:
        shift = timedelta(hours=int(fields['tz_hour']), minutes=int(fields['tz_minute'] or 0))
        # Local time ahead of UTC: subtract the shift to get UTC
        moment = moment - shift if fields['sign'] == '+' else moment + shift
    return moment


def split_reference_time(unit: str) -> Optional[Tuple[str, datetime]]:
    """("days", origin) for "days since 1970-01-01", None for other units"""
    match = _REFERENCE_TIME.match(unit)
    if match is None:
        return None
    return match.group('unit'), parse_origin(unit, match.group('origin'))


@lru_cache(maxsize=None)
def _registry(path: Optional[str]) -> pint.UnitRegistry:
    if path is None:
        return pint.UnitRegistry(autoconvert_offset_to_baseunit=True)
    if not Path(path).is_file():
        raise UnitError(f"Couldn't initialize unit-system from database '{path}': no such file")
    try:
        return pint.UnitRegistry(path, autoconvert_offset_to_baseunit=True)
    except (OSError, ValueError, pint.errors.PintError) as e:
        raise UnitError(f"Couldn't initialize unit-system from database '{path}': {e}") from e


class UnitParser:
    """Unit system used to build converters

    Registries are shared between parsers built from the same definition
    file, the default pint definitions being used when no path is given.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or None
        self.registry = _registry(self.path)

    def parse_unit(self, unit: str) -> Any:
        """Parse a unit string, raising UnitError on failure

        A reference-time unit parses to its time unit, the origin is dropped.
        """
        reference = split_reference_time(unit)
        text = udunits_to_pint(reference[0] if reference else unit)
        try:
            return self.registry.parse_units(text)
        except pint.UndefinedUnitError as e:
            raise UnitError(f"'{unit}' string contained an unknown identifier") from e
        except (pint.errors.PintError, SyntaxError, TypeError, ValueError, AttributeError) as e:
            raise UnitError(f"'{unit}' contained a syntax error") from e

    def parse(self, from_unit: str, to_unit: str) -> Converter:
        """Converter taking values expressed in from_unit to to_unit"""
        if from_unit == to_unit:
            return Converter()

        from_reference = split_reference_time(from_unit)
        to_reference = split_reference_time(to_unit)
        if from_reference or to_reference:
            return self._parse_reference_time(from_unit, to_unit, from_reference, to_reference)

        source = self.parse_unit(from_unit)
        target = self.parse_unit(to_unit)
        try:
            offset = self._convert(0.0, source, target)
            scale = self._convert(1.0, source, target) - offset
        except pint.DimensionalityError as e:
            raise UnitError(
                f"the units '{from_unit}' and '{to_unit}' don't belong to the same unit-system"
            ) from e
        return Converter(offset, scale)

    def are_convertible(self, unit1: str, unit2: str) -> bool:
        """True if values in unit1 can be expressed in unit2"""
        first = self.parse_unit(unit1)
        second = self.parse_unit(unit2)
        return first.dimensionality == second.dimensionality

    def _parse_reference_time(self, from_unit: str, to_unit: str,
                              from_reference: Optional[Tuple[str, datetime]],
                              to_reference: Optional[Tuple[str, datetime]]) -> Converter:
        if from_reference is None or to_reference is None:
            raise UnitError(
                f"the units '{from_unit}' and '{to_unit}' don't belong to the same unit-system"
            )
        source = self.parse_unit(from_unit)
        target = self.parse_unit(to_unit)
        if source.dimensionality != self.registry.parse_units("second").dimensionality:
            raise UnitError(f"'{from_unit}' is not a time unit")
        try:
            scale = self._convert(1.0, source, target)
        except pint.DimensionalityError as e:
            raise UnitError(
                f"the units '{from_unit}' and '{to_unit}' don't belong to the same unit-system"
            ) from e
        # Time elapsed between the two origins, in the target unit
        shift = (from_reference[1] - to_reference[1]).total_seconds()
        offset = self._convert(shift, self.registry.parse_units("second"), target)
        return Converter(offset, scale)

    def _convert(self, value: float, source: Any, target: Any) -> float:
        quantity = self.registry.Quantity(value, source)
        return float(quantity.to(target).magnitude)
