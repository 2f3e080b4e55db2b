"""
Interpreter tests for Splice
Tests blocks, expressions, operators, closures and emission end to end
"""

import pytest
from fragments import UNIT
from error_handling import (
  DuplicateBindingError, MissingElseError, NameResolutionError, PatternMismatchError,
  RecursionLimitExceeded, UnexpectedTokenError, UnsupportedOperandError
)


class TestBooleanOperators:
  """Test `&&`, `||` and `!`"""

  @pytest.mark.parametrize("left, right, expected", [
    ("true", "true", "true"),
    ("true", "false", "false"),
    ("false", "true", "false"),
    ("false", "false", "false"),
  ])
  def test_and_truth_table(self, value_of, left, right, expected):
    """Test logical and"""
    assert value_of(f"{left} && {right}") == expected

  @pytest.mark.parametrize("left, right, expected", [
    ("true", "true", "true"),
    ("true", "false", "true"),
    ("false", "true", "true"),
    ("false", "false", "false"),
  ])
  def test_or_truth_table(self, value_of, left, right, expected):
    """Test logical or"""
    assert value_of(f"{left} || {right}") == expected

  def test_not(self, value_of):
    """Test negation"""
    assert value_of("!true") == "false"
    assert value_of("!false") == "true"
    assert value_of("!!false") == "false"

  def test_and_binds_tighter_than_or(self, value_of):
    """Test precedence between `&&` and `||`"""
    assert value_of("false && true || true") == "true"
    assert value_of("true || true && false") == "true"
    assert value_of("false || true && false") == "false"

  def test_not_binds_tighter_than_binary(self, value_of):
    """Test `!` applies to the nearest operand only"""
    assert value_of("!true == false") == "true"
    assert value_of("!false && false") == "false"

  def test_equality_is_left_associative(self, value_of):
    """Test chained equality"""
    assert value_of("true == false == false") == "true"

  def test_equality_binds_tighter_than_and_or(self, value_of):
    """Test `==` groups before `&&` and `||`"""
    assert value_of("true == true && false") == "false"
    assert value_of("false == true || true") == "true"
    assert value_of("true || true == false") == "true"

  def test_operands_are_always_evaluated(self, run):
    """Test `&&` and `||` evaluate the right operand even when the left decides"""
    result = run("""
      let f = fn() { emit { ran } true };
      let a = false && f();
      let b = true || f();
      emit { $a $b }
    """)
    assert result['output'] == ["ran", "ran", "false true"]

  def test_non_boolean_operand(self, run):
    """Test boolean operators reject other fragments"""
    with pytest.raises(UnsupportedOperandError):
      run("1 && true")
    with pytest.raises(UnsupportedOperandError):
      run("!1")
    with pytest.raises(UnsupportedOperandError):
      run('!"text"')


class TestEquality:
  """Test literal fragment equality"""

  def test_literals(self, value_of):
    """Test comparing atomic fragments"""
    assert value_of('"foo" == "bar"') == "false"
    assert value_of('"foo" == "foo"') == "true"
    assert value_of('"foo" != "bar"') == "true"

  def test_groups(self, value_of):
    """Test comparing groups structurally"""
    assert value_of("[a b] == [a b]") == "true"
    assert value_of("[a b] != [a c]") == "true"
    assert value_of("[a b] == (a b)") == "false"

  def test_matcher_syntax_is_compared_literally(self, value_of):
    """Test that `$` inside an operand is not read as a capture"""
    assert value_of("($dummy:tt) == (anything)") == "false"
    assert value_of("($dummy:tt) == ($dummy:tt)") == "true"
    assert value_of("(anything) == ($dummy:tt)") == "false"

  def test_bound_dollar(self, value_of):
    """Test values holding a `$` token compare literally"""
    assert value_of("let D = $; [$D x] == [$D x]") == "true"
    assert value_of("let D = $; [$D x] == [x]") == "false"

  def test_large_groups(self, value_of):
    """Test equality over groups wider than the Python call stack"""
    items = ' '.join(str(i) for i in range(1500))
    assert value_of(f"let x = [{items}]; x == [{items}]") == "true"
    assert value_of(f"let x = [{items}]; x == [{items} 0]") == "false"

  def test_value_round_trip(self, value_of):
    """Test a bound value equals the literal it was bound from"""
    assert value_of("let x = [a $ b (c)]; x == [a $ b (c)]") == "true"


class TestBlocks:
  """Test statements and block values"""

  def test_block_value(self, value_of):
    """Test a trailing expression is the block value"""
    assert value_of("let x = 1; x") == "1"

  def test_terminated_block_is_unit(self, run):
    """Test a block ending in `;` has the unit value"""
    assert run("let x = 1; x;")['value'] == UNIT
    assert run("")['value'] == UNIT

  def test_keep_result_flag(self, run):
    """Test the value can be dropped by the host"""
    assert run("1", keep_result=False)['value'] == UNIT

  def test_duplicate_binding(self, run):
    """Test rebinding a name in the same block"""
    with pytest.raises(DuplicateBindingError):
      run("let x = 1; let x = 2;")

  def test_unknown_name(self, run):
    """Test an identifier with no binding, builtin or export"""
    with pytest.raises(NameResolutionError):
      run("let y = missing;")

  def test_missing_terminator(self, run):
    """Test statements must be separated by `;`"""
    with pytest.raises(UnexpectedTokenError):
      run("let x = 1 2;")

  def test_keyword_is_not_an_expression(self, run):
    """Test keywords in expression position"""
    with pytest.raises(UnexpectedTokenError):
      run("let x = let;")

  def test_destructuring_let(self, run):
    """Test group patterns on the left of `let`"""
    result = run("let [$a:tt $b:tt] = [1 2]; emit { $b $a }")
    assert result['output'] == ["2 1"]

  def test_destructuring_mismatch(self, run):
    """Test a let pattern that does not fit"""
    with pytest.raises(PatternMismatchError):
      run("let [$a:ident] = [1];")

  def test_destructure_then_discard_rest(self, run):
    """Test a leading group followed by ignored trailing fragments"""
    result = run("""
      let b = {[ARBITRARY SYNTAX] 1 2};
      let {[$($c:ident)*] $($_:tt)*} = b;
      emit { $($c)* }
    """)
    assert result['output'] == ["ARBITRARY SYNTAX"]

  def test_underscore_pattern(self, run):
    """Test `_` evaluates and discards"""
    assert run("let _ = [anything]; 1")['value'].text == '1'


class TestEmit:
  """Test emission of generated code"""

  def test_emit_substitutes(self, run):
    """Test bindings are substituted into emitted code"""
    result = run('let name = "foo"; emit { fn $name() {} }')
    assert result['output'] == ['fn "foo" () {}']

  def test_emit_repetition(self, run):
    """Test expanding a repetition binding"""
    result = run("""
      let [$($number:tt),*] = [1, 2, 3];
      emit { 0 $(+ $number)* }
    """)
    assert result['output'] == ["0 + 1 + 2 + 3"]

  def test_emit_order(self, run):
    """Test chunks are collected in evaluation order"""
    result = run("emit { a } emit { b }")
    assert result['output'] == ["a", "b"]
    assert result['text'] == "a\nb"
    assert len(result['chunks']) == 2

  def test_emit_debug_output(self, run, capsys):
    """Test debug mode traces emission and steps"""
    run("emit { hi }", debug=True)
    out = capsys.readouterr().out
    assert "[emit] hi" in out
    assert "[step 1]" in out


class TestConditionals:
  """Test if chains"""

  def test_if_expression(self, value_of):
    """Test an if chain producing a value"""
    source = "let x = if false { 1 } else if true { 2 } else { 3 }; x"
    assert value_of(source) == "2"

  def test_else_branch(self, value_of):
    """Test falling through to else"""
    assert value_of("if false { 1 } else { 2 }") == "2"

  def test_if_statement(self, run):
    """Test a statement-form if continues with the rest of the block"""
    result = run("if true { emit { yes } } if false { emit { no } } emit { after }")
    assert result['output'] == ["yes", "after"]

  def test_condition_with_operators(self, run):
    """Test conditions ending in a braced group"""
    result = run("if {a} == {a} { emit { same } }")
    assert result['output'] == ["same"]

  def test_branch_bindings_do_not_leak(self, run):
    """Test a branch has its own scope"""
    with pytest.raises(NameResolutionError):
      run("if true { let y = 1; } y")

  def test_branch_may_shadow(self, value_of):
    """Test a branch may rebind an outer name"""
    assert value_of("let x = 1; if true { let x = 2; x } else { x }") == "2"

  def test_missing_else(self, run):
    """Test an if expression without else is rejected before evaluation"""
    with pytest.raises(MissingElseError):
      run('emit { never } let x = if true { 1 };')

  def test_non_boolean_condition(self, run):
    """Test the condition must be a boolean"""
    with pytest.raises(UnsupportedOperandError):
      run("if 1 { }")


class TestClosures:
  """Test function values"""

  def test_named_function(self, value_of):
    """Test defining and calling a function"""
    assert value_of("fn first($a:tt $b:tt) { a } first(1 2)") == "1"

  def test_anonymous_function(self, value_of):
    """Test calling an anonymous function directly"""
    assert value_of("fn($x:tt) { [$x $x] }(5)") == "[5 5]"

  def test_arguments_are_not_evaluated(self, value_of):
    """Test arguments are passed as syntax"""
    assert value_of("fn($x:tt) { stringify($x) }(a)") == '"a"'

  def test_lexical_capture(self, value_of):
    """Test a closure sees the bindings where it was defined"""
    source = """
      let x = "outer";
      let f = fn() { x };
      let g = fn($x:tt) { f() };
      g("inner")
    """
    assert value_of(source) == '"outer"'

  def test_call_site_bindings_are_invisible(self, value_of):
    """Test a closure ignores a same-named binding at the call site"""
    source = "let a = 1; let f = fn() { a }; if true { let a = 2; f() } else { a }"
    assert value_of(source) == "1"

  def test_argument_mismatch(self, run):
    """Test arguments that do not fit the parameter pattern"""
    with pytest.raises(PatternMismatchError):
      run("fn one($x:ident) { x } one(1)")

  def test_function_cannot_see_itself(self, run):
    """Test a plain fn has no binding to its own name inside the body"""
    with pytest.raises(NameResolutionError):
      run("fn f($x:tt) { f($x) } f(1)")

  def test_recursion_through_export(self, value_of):
    """Test recursion via a module-private export"""
    source = """
      pub(self) fn last($head:tt $($tail:tt)*) {
        if [$($tail)*] == [] { head } else { last($($tail)*) }
      }
      last(1 2 3)
    """
    assert value_of(source) == "3"

  def test_right_fold(self, value_of):
    """Test a recursive fold nests to the right"""
    source = """
      pub(self) fn fold($head:tt $($tail:tt)*) {
        if [$($tail)*] == [] { head } else { let r = fold($($tail)*); [$head $r] }
      }
      fold(1 2 3)
    """
    assert value_of(source) == "[1 [2 3]]"

  def test_self_passing(self, value_of):
    """Test recursion by passing the closure to itself"""
    source = """
      let last = fn($me:tt $head:tt $($tail:tt)*) {
        if [$($tail)*] == [] { head } else { me($me $($tail)*) }
      };
      last($last 1 2 3)
    """
    assert value_of(source) == "3"

  def test_higher_order(self, value_of):
    """Test passing a closure through a substituted argument"""
    source = """
      let id = fn($x:tt) { x };
      let apply = fn($f:tt $y:tt) { f($y) };
      apply($id 5)
    """
    assert value_of(source) == "5"

  def test_call_non_function(self, run):
    """Test applying arguments to a plain fragment"""
    with pytest.raises(UnsupportedOperandError):
      run("1 (2)")

  def test_recursion_limit(self, run):
    """Test unbounded recursion is cut off"""
    source = "pub(self) fn spin($x:tt) { spin($x) } spin(1)"
    with pytest.raises(RecursionLimitExceeded) as info:
      run(source, recursion_limit=50)
    assert "limit of 50" in str(info.value)
    assert "next:" in info.value.state_snapshot


class TestErrorState:
  """Test error snapshots"""

  def test_snapshot_attached(self, run):
    """Test runtime errors carry the evaluator state"""
    with pytest.raises(NameResolutionError) as info:
      run("let x = 1; missing")
    assert "x = 1" in info.value.state_snapshot
