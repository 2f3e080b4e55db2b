"""
Static check tests for Splice
Tests statement shapes and exhaustive conditional expressions
"""

import pytest
from semantics import create_analyzer, create_debug_analyzer
from error_handling import MissingElseError, UnexpectedTokenError


@pytest.fixture
def analyze(reader):
  """Analyze source text and return the statement summaries"""
  analyzer = create_analyzer()
  return lambda source: analyzer.analyze(reader.parse_string(source))


class TestStatements:
  """Test statement summaries"""

  def test_statement_kinds(self, analyze):
    """Test every statement form is recognised"""
    statements = analyze("""
      let x = 1;
      fn f($y:tt) { y }
      use builtins::parse;
      emit { $x }
      if true { 1 }
      f(2)
    """)
    assert [s['kind'] for s in statements] == ['let', 'fn', 'use', 'emit', 'if', 'expression']

  def test_exported_items(self, analyze):
    """Test visibility is recorded"""
    statements = analyze("pub let a = 1; pub(crate) fn b() {} pub(self) let c = 2;")
    assert [s['visibility'] for s in statements] == ['public', 'unit', 'module']

  def test_format(self, reader):
    """Test the summary rendering"""
    analyzer = create_analyzer()
    text = analyzer.format(analyzer.analyze(reader.parse_string("pub let x = 1; use a::b as c;")))
    assert text == "LET [public] x: 1\nUSE c: a::b"

  def test_nested_function_body(self, analyze):
    """Test function bodies are checked"""
    statements = analyze("fn f() { let y = 2; }")
    assert statements[0]['children'][0]['kind'] == 'let'

  def test_debug_analyzer(self, reader, capsys):
    """Test the debug analyzer traces statements"""
    create_debug_analyzer().analyze(reader.parse_string("let x = 1;"))
    assert "[analyze] let x 1" in capsys.readouterr().out


class TestConditionals:
  """Test exhaustive if expressions"""

  def test_statement_if_without_else(self, analyze):
    """Test a statement-form if may omit else"""
    assert analyze("if true { emit { a } }")[0]['kind'] == 'if'

  def test_expression_if_without_else(self, analyze):
    """Test an if producing a value must have else"""
    with pytest.raises(MissingElseError):
      analyze("let x = if true { 1 };")

  def test_nested_expression_if(self, analyze):
    """Test the rule applies inside closures"""
    with pytest.raises(MissingElseError):
      analyze("let f = fn() { let y = if true { 1 } else if false { 2 }; };")

  def test_complete_chain(self, analyze):
    """Test a chain ending in else is accepted"""
    statements = analyze("let x = if false { 1 } else if true { 2 } else { 3 };")
    chain = statements[0]['children'][0]
    assert chain['kind'] == 'if-expression'
    assert chain['detail'] == "2 clause(s)"


class TestMalformedStatements:
  """Test statement shape errors"""

  @pytest.mark.parametrize("source", [
    "let = 1;",
    "let x 1;",
    "let x = ;",
    "pub emit { a }",
    "pub(super) let x = 1;",
    "pub let [$a:tt] = [1];",
    "fn f { }",
    "emit x",
    "use ;",
    "use a::b c;",
  ])
  def test_rejected(self, analyze, source):
    """Test malformed statements are rejected before evaluation"""
    with pytest.raises(UnexpectedTokenError):
      analyze(source)
