"""
Splice Standard Library
Builtins implementing the continuation call protocol, and their registry

Every builtin has the signature

  builtin(tokens, subject, continuation, patterns, values) -> invocation

where `tokens` is the input after the builtin's path (or method name),
`subject` the receiver of a method call (unit otherwise) and `patterns` /
`values` the caller's environment lists. It must return exactly one
invocation built with `call_continuation` or `call_expression`.
"""

from typing import Any, Callable, Dict, List, Sequence, Tuple

from fragments import (
  DOLLAR, IDENT, LITERAL, PAREN, PUNCT, Group, Token, fragment_span, is_group,
  is_ident, is_punct, make_bool, make_group, render_fragment, render_fragments
)
from escaping import escape_sequence
from patterns import FRAGMENT_KINDS, compile_matcher, try_match_sequence
from environment import env_from_lists, env_substitute, render_environment
from continuations import call_continuation, continuation_chain
from utilities import peek, preview_tokens
from error_handling import BreakpointError, PatternMismatchError, UnexpectedTokenError


BUILTIN_PREFIX = 'builtins'

# `$($_:tt)*`: accepts whatever follows a prefix
ANY_REST = (
    DOLLAR,
    make_group(PAREN, (DOLLAR, Token(IDENT, '_'), Token(PUNCT, ':'), Token(IDENT, 'tt'))),
    Token(PUNCT, '*')
)


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def builtin_arguments(name: str, tokens: Sequence[Any], patterns: Sequence[Any],
                      values: Sequence[Any]) -> Tuple[Tuple[Any, ...], Tuple[Any, ...]]:
  """Substituted contents of the `( ... )` argument group and the input after it"""
  arguments = peek(tokens)
  if not is_group(arguments, PAREN):
    raise UnexpectedTokenError(
        f"`{name}` expects a parenthesized argument list, found `{preview_tokens(tokens, 1)}`",
        fragment_span(arguments))
  env = env_from_lists(patterns, values)
  return env_substitute(arguments, env).children, tuple(tokens[1:])


def subject_fragments(subject: Any) -> Tuple[Any, ...]:
  """A group's children, or the subject itself for atomic fragments"""
  if isinstance(subject, Group):
    return subject.children
  return (subject,)


def make_string_literal(text: str) -> Token:
  escaped = text.replace('\\', '\\\\').replace('"', '\\"')
  return Token(LITERAL, f'"{escaped}"')


# ============================================================================
# EXAMPLE BUILTINS
# ============================================================================

def splice_starts_with(tokens: Sequence[Any], subject: Any, continuation: Dict,
                       patterns: Sequence[Any], values: Sequence[Any]) -> Dict:
  """`subject.starts_with(prefix...)`: literal prefix test

  The prefix is escaped and spliced into a generated matcher followed by
  `$($_:tt)*`, so a `$` inside the prefix only ever matches a literal `$`.
  """
  prefix, rest = builtin_arguments('starts_with', tokens, patterns, values)
  matcher = compile_matcher(escape_sequence(prefix) + ANY_REST)
  found = try_match_sequence(matcher, subject_fragments(subject)) is not None
  return call_continuation(continuation, rest, make_bool(found), patterns, values)


def splice_parse(tokens: Sequence[Any], subject: Any, continuation: Dict,
                 patterns: Sequence[Any], values: Sequence[Any]) -> Dict:
  """`parse::<kind>(tokens...)`: the tokens must form exactly one `kind` fragment"""
  if not (is_punct(peek(tokens), '::') and is_punct(peek(tokens, 1), '<')
          and is_ident(peek(tokens, 2)) and is_punct(peek(tokens, 3), '>')):
    raise UnexpectedTokenError(
        f"`parse` expects a fragment kind as `parse::<kind>`, found `{preview_tokens(tokens, 4)}`",
        fragment_span(peek(tokens)))

  kind = tokens[2].text
  if kind not in FRAGMENT_KINDS:
    raise UnexpectedTokenError(f"unknown fragment kind `{kind}`", fragment_span(tokens[2]))

  arguments, rest = builtin_arguments('parse', tokens[4:], patterns, values)
  matcher = compile_matcher((DOLLAR, Token(IDENT, 'value'), Token(PUNCT, ':'), Token(IDENT, kind)))
  bindings = try_match_sequence(matcher, arguments)
  if bindings is None:
    raise PatternMismatchError(
        f"`{render_fragments(arguments)}` is not a single `{kind}` fragment",
        fragment_span(tokens[2]))
  return call_continuation(continuation, rest, bindings['value'][1], patterns, values)


def splice_stringify(tokens: Sequence[Any], subject: Any, continuation: Dict,
                     patterns: Sequence[Any], values: Sequence[Any]) -> Dict:
  """`stringify(tokens...)`: string literal of the rendered tokens"""
  arguments, rest = builtin_arguments('stringify', tokens, patterns, values)
  return call_continuation(continuation, rest, make_string_literal(render_fragments(arguments)),
                           patterns, values)


def splice_breakpoint(tokens: Sequence[Any], subject: Any, continuation: Dict,
                      patterns: Sequence[Any], values: Sequence[Any]) -> Dict:
  """Abort with a dump of the evaluator state"""
  env = env_from_lists(patterns, values)
  snapshot = '\n'.join([
      f"tokens:   {render_fragments(tokens) or '<empty>'}",
      f"subject:  {render_fragment(subject)}",
      f"patterns: {render_fragments(patterns) or '<empty>'}",
      f"values:   {render_fragments(values) or '<empty>'}",
      f"bindings: {render_environment(env)}",
      f"next:     {' -> '.join(continuation_chain(continuation))}",
  ])
  error = BreakpointError("breakpoint reached\n" + snapshot, fragment_span(peek(tokens)))
  error.state_snapshot = snapshot
  raise error


# ============================================================================
# BUILT-IN FUNCTION REGISTRY
# ============================================================================

BUILTIN_FUNCTIONS: Dict[str, Callable] = {
    'starts_with': splice_starts_with,
    'parse': splice_parse,
    'stringify': splice_stringify,
    'breakpoint': splice_breakpoint,
}


def register_builtin(registry: Dict[str, Callable], path: str, func: Callable) -> Dict[str, Callable]:
  """Return a new registry with `func` reachable under `path`"""
  if not callable(func):
    raise TypeError(f"Builtin {path!r} must be callable, got {type(func).__name__}")
  return {**registry, path: func}


def create_builtin_registry() -> Dict[str, Callable]:
  """Registry with every example builtin under `builtins::name` and `name`"""
  registry: Dict[str, Callable] = {}
  for name, func in BUILTIN_FUNCTIONS.items():
    registry = register_builtin(registry, f"{BUILTIN_PREFIX}::{name}", func)
    registry = register_builtin(registry, name, func)
  return registry


def list_builtin_functions(registry: Dict[str, Callable]) -> List[str]:
  """List all registered builtin paths"""
  return sorted(registry)


if __name__ == "__main__":
  print("Splice Standard Library")
  print("=" * 30)
  for path in list_builtin_functions(create_builtin_registry()):
    print(f"  {path}")
