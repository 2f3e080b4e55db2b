"""
Builtin tests for Splice
Tests the example builtins and the continuation call protocol
"""

import pytest
from fragments import TRUE, UNIT, ident, make_group
from continuations import call_continuation, call_expression, make_native_continuation
from stdlib import (
  BUILTIN_FUNCTIONS, create_builtin_registry, list_builtin_functions, register_builtin
)
from interpreter import create_interpreter
from error_handling import (
  BreakpointError, BuiltinContractViolation, DuplicateBindingError, NameResolutionError,
  PatternMismatchError, UnexpectedTokenError
)


@pytest.fixture
def with_builtin(run):
  """Evaluate source with one extra builtin registered"""
  def evaluate(path, func, source):
    registry = register_builtin(create_builtin_registry(), path, func)
    return run(source, registry=registry)
  return evaluate


class TestStartsWith:
  """Test the starts_with method"""

  def test_prefixes(self, run):
    """Test plain prefixes"""
    result = run("""
      let a = [1 2 3].starts_with(1 2);
      let b = [1 2 3].starts_with(2 2);
      let c = [1 2 3].starts_with(1 2 3 4);
      emit { $a $b $c }
    """)
    assert result['output'] == ["true false false"]

  def test_dollar_in_prefix_is_literal(self, run):
    """Test matcher syntax in the prefix only matches itself"""
    result = run("""
      let D = $;
      let a = [1 2 $D($_:tt)*].starts_with($D($_:tt)*);
      let b = [1 2 $D($_:tt)*].starts_with(1 2);
      let c = [1 2 $D($_:tt)*].starts_with(2 2);
      let d = [1 2 $D($_:tt)*].starts_with(1 2 $D($T:tt)*);
      let e = [1 2 $D($_:tt)*].starts_with(1 2 $D($_:tt)*);
      let f = [1 2 $D($_:tt)*].starts_with(1 2 3 4);
      emit { $a $b $c $d $e $f }
    """)
    assert result['output'] == ["false true false false true false"]

  def test_wide_prefix(self, value_of):
    """Test a prefix wider than the Python call stack"""
    items = ' '.join(str(i) for i in range(1500))
    assert value_of(f"[{items} end].starts_with({items})") == "true"
    assert value_of(f"[{items}].starts_with({items} end)") == "false"

  def test_combined_with_operators(self, value_of):
    """Test a method call binds tighter than binary operators"""
    assert value_of("[1 2].starts_with(1) && [1 2].starts_with(2)") == "false"
    assert value_of("![1 2].starts_with(2)") == "true"

  def test_substitutes_arguments(self, value_of):
    """Test bindings are substituted into the prefix"""
    assert value_of("let p = 1; [1 2].starts_with($p)") == "true"

  def test_requires_argument_list(self, run):
    """Test a method call without parentheses"""
    with pytest.raises(UnexpectedTokenError):
      run("[1].starts_with")

  def test_unknown_method(self, run):
    """Test calling a method that is not registered"""
    with pytest.raises(NameResolutionError):
      run("[1].ends_with(1)")


class TestParseAndStringify:
  """Test parse and stringify"""

  def test_parse_kinds(self, value_of):
    """Test parsing one fragment of each kind"""
    assert value_of("parse::<ident>(foo)") == "foo"
    assert value_of("parse::<literal>(-5)") == "- 5"
    assert value_of("parse::<path>(a::b::c)") == "a :: b :: c"
    assert value_of("parse::<expr>(x && y)") == "x && y"
    assert value_of("builtins::parse::<block>({ z })") == "{ z }"

  def test_parse_mismatch(self, run):
    """Test tokens that are not one fragment of the kind"""
    with pytest.raises(PatternMismatchError):
      run("parse::<literal>(foo)")
    with pytest.raises(PatternMismatchError):
      run("parse::<ident>(a b)")

  def test_parse_unknown_kind(self, run):
    """Test an unknown fragment kind"""
    with pytest.raises(UnexpectedTokenError):
      run("parse::<bogus>(x)")

  def test_parse_without_kind(self, run):
    """Test parse called without a kind"""
    with pytest.raises(UnexpectedTokenError):
      run("parse(x)")

  def test_stringify(self, value_of):
    """Test stringify renders its arguments"""
    assert value_of("stringify(a b [c])") == '"a b [c]"'
    assert value_of('let q = "x"; stringify($q)') == '"\\"x\\""'


class TestBreakpoint:
  """Test the breakpoint builtin"""

  def test_breakpoint_dumps_state(self, run):
    """Test breakpoint aborts with bindings and continuation chain"""
    with pytest.raises(BreakpointError) as info:
      run("let x = 1; breakpoint()")
    snapshot = info.value.state_snapshot
    assert "x = 1" in snapshot
    assert "STOP" in snapshot


class TestProtocol:
  """Test the builtin call protocol"""

  def test_returning_none(self, with_builtin):
    """Test a builtin that never invokes a continuation"""
    with pytest.raises(BuiltinContractViolation):
      with_builtin('nothing', lambda tokens, subject, k, patterns, values: None, "nothing()")

  def test_malformed_result(self, with_builtin):
    """Test a builtin returning something other than an invocation"""
    with pytest.raises(BuiltinContractViolation):
      with_builtin('junk', lambda tokens, subject, k, patterns, values: {'state': 'RESUME'}, "junk()")

  def test_shrinking_environment(self, with_builtin):
    """Test a builtin may not drop bindings"""
    def forget(tokens, subject, k, patterns, values):
      return call_continuation(k, tokens[1:], UNIT, (), ())
    with pytest.raises(BuiltinContractViolation):
      with_builtin('forget', forget, "let x = 1; forget()")

  def test_non_fragment_subject(self, with_builtin):
    """Test a builtin must produce a fragment"""
    def number(tokens, subject, k, patterns, values):
      return call_continuation(k, tokens[1:], 42, patterns, values)
    with pytest.raises(BuiltinContractViolation):
      with_builtin('number', number, "number()")

  def test_extending_environment(self, with_builtin):
    """Test a builtin may add bindings"""
    def define_flag(tokens, subject, k, patterns, values):
      return call_continuation(k, tokens[1:], UNIT, patterns + (ident('flag'),), values + (TRUE,))
    result = with_builtin('define_flag', define_flag, "define_flag(); flag")
    assert result['value'] == TRUE

  def test_method_subject(self, with_builtin):
    """Test a method call passes the receiver as subject"""
    def wrap(tokens, subject, k, patterns, values):
      return call_continuation(k, tokens[1:], make_group('[', (subject,)), patterns, values)
    result = with_builtin('wrap', wrap, "(a).wrap()")
    assert str(result['value']) == "[(a)]"

  def test_call_expression_with_native_continuation(self, with_builtin):
    """Test a builtin evaluating its arguments as an expression"""
    def evaluated(tokens, subject, k, patterns, values):
      rest = tokens[1:]

      def finish(remaining, value, k_next, patterns, values):
        return call_continuation(k_next, rest, make_group('[', (value,)), patterns, values)

      return call_expression(tokens[0].children, make_native_continuation(finish, k),
                             patterns, values)

    result = with_builtin('evaluated', evaluated, "evaluated(true && false) == [false]")
    assert result['value'] == TRUE


class TestRegistry:
  """Test the builtin registry"""

  def test_default_registry(self):
    """Test every builtin is registered bare and under builtins::"""
    paths = list_builtin_functions(create_builtin_registry())
    for name in BUILTIN_FUNCTIONS:
      assert name in paths
      assert f"builtins::{name}" in paths

  def test_register_is_persistent(self):
    """Test registering returns a new registry"""
    registry = create_builtin_registry()
    extended = register_builtin(registry, 'extra', lambda *args: None)
    assert 'extra' in extended
    assert 'extra' not in registry

  def test_register_requires_callable(self):
    """Test registering a non-callable"""
    with pytest.raises(TypeError):
      register_builtin({}, 'bad', 42)

  def test_use_aliases_builtin(self, value_of):
    """Test `use` makes a builtin reachable under another name"""
    assert value_of("use builtins::starts_with as sw; [1 2].sw(1)") == "true"


class TestImportedBuiltins:
  """Test builtins brought into a scope with `use`"""

  def test_call_by_alias(self, value_of):
    """Test calling an imported builtin under its alias"""
    assert value_of("use builtins::stringify as s; s(x)") == '"x"'

  def test_alias_is_scoped_to_branch(self, run):
    """Test an import inside a branch is gone after it"""
    with pytest.raises(NameResolutionError):
      run("if true { use builtins::stringify as s; } s(x)")

  def test_alias_does_not_outlive_block(self):
    """Test a later block does not see an earlier block's imports"""
    interpreter = create_interpreter()
    interpreter.interpret_source("use builtins::stringify as s;")
    with pytest.raises(NameResolutionError):
      interpreter.interpret_source("s(x)")
    assert 's' not in interpreter.registry

  def test_alias_clashes_with_binding(self, run):
    """Test importing over a name bound in the same scope"""
    with pytest.raises(DuplicateBindingError):
      run("let s = 1; use builtins::stringify as s;")

  def test_alias_may_shadow_in_branch(self, value_of):
    """Test a branch may import over an outer name"""
    source = "let s = 1; if true { use builtins::stringify as s; s(x) } else { s }"
    assert value_of(source) == '"x"'

  def test_alias_passed_to_closure(self, value_of):
    """Test an imported builtin travels through a substituted argument"""
    source = "use builtins::stringify as s; let apply = fn($f:tt) { f(y) }; apply($s)"
    assert value_of(source) == '"y"'
