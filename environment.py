"""
Splice Environment
Append-only chain of (pattern, value) bindings with structural substitution
"""

from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from fragments import fragment_span, render_fragment
from patterns import capture_pattern_fragment, compile_pattern, match_pattern, transcribe, transcribe_sequence
from error_handling import DuplicateBindingError, NameResolutionError


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_environment(
    patterns: Iterable[Any] = (),
    values: Iterable[Any] = (),
    bindings: Optional[Dict[str, Tuple[int, Any]]] = None,
    scope: Iterable[str] = ()
) -> Dict:
  """Create an environment

  `patterns` and `values` are the parallel binding lists; `bindings` is the
  resolved name -> (depth, value) map where later bindings win; `scope` holds
  the names declared in the innermost scope.
  """
  return {
      'patterns': tuple(patterns),
      'values': tuple(values),
      'bindings': dict(bindings or {}),
      'scope': frozenset(scope)
  }


def empty_environment() -> Dict:
  return make_environment()


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def env_extend(env: Dict, pattern_fragment: Any, value: Any) -> Dict:
  """Destructure `value` against `pattern_fragment` and return the extended environment"""
  pattern = compile_pattern(pattern_fragment)
  new_bindings = match_pattern(pattern, value)

  for name in new_bindings:
    if name in env['scope']:
      raise DuplicateBindingError(f"`{name}` is already bound in this scope",
                                  fragment_span(pattern_fragment))

  return make_environment(
      env['patterns'] + (pattern_fragment,),
      env['values'] + (value,),
      {**env['bindings'], **new_bindings},
      env['scope'] | frozenset(new_bindings)
  )


def env_bind(env: Dict, name: str, value: Any) -> Dict:
  """Bind a single name to a whole value"""
  return env_extend(env, capture_pattern_fragment(name), value)


def env_child(env: Dict) -> Dict:
  """Open a nested scope: every binding stays visible, shadowing is allowed"""
  return make_environment(env['patterns'], env['values'], env['bindings'], ())


def env_lookup(env: Dict, name: str) -> Optional[Tuple[int, Any]]:
  return env['bindings'].get(name)


def env_value(env: Dict, name: str) -> Any:
  """Value of a plain (non-repeating) binding"""
  capture = env_lookup(env, name)
  if capture is None:
    raise NameResolutionError(f"cannot find `{name}` in this scope")
  depth, value = capture
  if depth > 0:
    raise NameResolutionError(f"variable `{name}` is still repeating at this depth")
  return value


def env_substitute(fragment: Any, env: Dict) -> Any:
  """Replace every bound `$name` inside `fragment` in one pass"""
  return transcribe(fragment, env['bindings'])


def env_substitute_sequence(fragments: Sequence[Any], env: Dict) -> Tuple[Any, ...]:
  return transcribe_sequence(fragments, env['bindings'])


def env_from_protocol(patterns: Sequence[Any], values: Sequence[Any], base: Dict) -> Optional[Dict]:
  """Rebuild an environment from the builtin protocol lists

  The lists must extend the ones in `base`; extra pairs are replayed onto it.
  Returns None when they are not an extension.
  """
  patterns = tuple(patterns)
  values = tuple(values)
  size = len(base['patterns'])
  if (len(patterns) != len(values) or len(patterns) < size
      or patterns[:size] != base['patterns']
      or any(a is not b and a != b for a, b in zip(values[:size], base['values']))):
    return None

  env = base
  for pattern_fragment, value in zip(patterns[size:], values[size:]):
    env = env_extend(env, pattern_fragment, value)
  return env


def env_from_lists(patterns: Sequence[Any], values: Sequence[Any]) -> Dict:
  """Environment for substitution over bare parallel lists

  Used by builtins, which only see the lists. Scope information is not
  recoverable from them, so later pairs simply shadow earlier ones.
  """
  bindings: Dict[str, Tuple[int, Any]] = {}
  for pattern_fragment, value in zip(patterns, values):
    bindings.update(match_pattern(compile_pattern(pattern_fragment), value))
  return make_environment(patterns, values, bindings, ())


def env_names(env: Dict) -> Tuple[str, ...]:
  return tuple(env['bindings'])


def render_environment(env: Dict) -> str:
  """One `name = value` entry per binding, for state dumps"""
  parts = []
  for name, (depth, value) in env['bindings'].items():
    if depth:
      parts.append(f"{name} = <repeating depth {depth}>")
    else:
      parts.append(f"{name} = {render_fragment(value)}")
  return ', '.join(parts) if parts else '<empty>'
