"""
Splice Closures
Function values with lexically captured environments
"""

from typing import Any, Dict, Optional, Sequence

from fragments import BRACE, PAREN, Closure, Group, fragment_span, is_group
from patterns import compile_pattern
from environment import env_child, env_extend, env_substitute
from continuations import block_invocation, make_parent_continuation
from error_handling import UnexpectedTokenError


def make_closure(name: Optional[str], parameters: Any, body: Any, env: Dict) -> Closure:
  """Create a closure over `env`

  `parameters` is the parenthesized parameter pattern and `body` the braced
  block. The pattern is compiled up front so malformed matchers fail at
  definition time.
  """
  if not is_group(parameters, PAREN):
    raise UnexpectedTokenError("expected a parenthesized parameter pattern after `fn`",
                               fragment_span(parameters))
  if not is_group(body, BRACE):
    raise UnexpectedTokenError("expected a braced function body", fragment_span(body))
  return Closure(name, parameters, compile_pattern(parameters), env, body.children)


def call_closure(closure: Closure, arguments: Group, tokens: Sequence[Any], env: Dict, k: Dict) -> Dict:
  """Invocation running the closure body

  Arguments are substituted in the caller's environment and destructured
  against the parameter pattern inside a child of the captured environment.
  The caller's remaining input and environment come back through a PARENT
  frame.
  """
  values = env_substitute(arguments, env)
  callee_env = env_extend(env_child(closure.env), closure.parameters, values)
  return block_invocation(closure.body, callee_env, make_parent_continuation(tokens, env, k))
