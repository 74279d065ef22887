"""
Test configuration for the Monkey interpreter tests
"""

import sys
from pathlib import Path

import pytest

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from interpreter import Interpreter


@pytest.fixture
def run_source():
  """Run source text and return (result, captured puts output)"""
  def _run(source, **kwargs):
    output = []
    interpreter = Interpreter(source=source, output_sink=output.append, **kwargs)
    return interpreter.run(), output
  return _run


@pytest.fixture
def ext_dir():
  return project_root / "ext"
