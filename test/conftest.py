"""
Test configuration for Splice tests
"""

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from parsing import create_parser
from interpreter import evaluate_block


@pytest.fixture
def reader():
  """Provide a fresh reader for each test"""
  return create_parser()


@pytest.fixture
def run(reader):
  """Evaluate source text and return the block result"""
  def evaluate(source, **options):
    return evaluate_block(reader.parse_string(source), **options)
  return evaluate


@pytest.fixture
def value_of(run):
  """Evaluate source text and return the block value rendered as text"""
  from fragments import render_fragment

  def evaluate(source, **options):
    return render_fragment(run(source, **options)['value'])
  return evaluate
