"""
Test configuration for cfquery tests
"""

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dataset import Dataset, Variable
from query import Query


@pytest.fixture
def query():
  """Query with the default unit definitions"""
  return Query()


@pytest.fixture
def dataset():
  """Small dataset covering units, packing and missing values"""
  data = Dataset()
  data.add_variable(Variable("x", [1.0, 2.0, 3.0]))
  data.add_variable(Variable("temperature", [273.15, 283.15, 293.15], {"units": "K"}))
  data.add_variable(Variable("distance", [1.0, 2.5], {"units": "km"}))
  data.add_variable(Variable(
    "packed", [10, 20, -1],
    {"scale_factor": 0.5, "add_offset": 1.0, "_FillValue": -1, "units": "m"}))
  return data
