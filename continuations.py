"""
Splice Continuations
Tagged continuation frames and the invocations passed through the trampoline
"""

from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from fragments import UNIT, render_fragment, render_fragments


# Continuation kinds
STOP = 'STOP'
OPERATOR = 'OPERATOR'
LET_BINDING = 'LET_BINDING'
EXPRESSION_STATEMENT = 'EXPRESSION_STATEMENT'
IF_CONDITION = 'IF_CONDITION'
PARENT = 'PARENT'
BLOCK = 'BLOCK'
USE_IMPORT = 'USE_IMPORT'
NATIVE = 'NATIVE'

CONTINUATION_KINDS = (
    STOP, OPERATOR, LET_BINDING, EXPRESSION_STATEMENT, IF_CONDITION,
    PARENT, BLOCK, USE_IMPORT, NATIVE
)

# Invocation states
STATE_BLOCK = 'BLOCK'
STATE_EXPRESSION = 'EXPRESSION'
STATE_RESUME = 'RESUME'

INVOCATION_STATES = (STATE_BLOCK, STATE_EXPRESSION, STATE_RESUME)


# ============================================================================
# CONTINUATIONS (Immutable Dictionaries)
# ============================================================================

def make_continuation(kind: str, next_k: Optional[Dict], **saved) -> Dict:
  """Create a continuation frame on top of `next_k`"""
  return {
      'type': kind,
      'next': next_k,
      'depth': 0 if next_k is None else next_k['depth'] + 1,
      **saved
  }


def make_stop(keep: bool = True) -> Dict:
  """Terminal frame; `keep` stores the final subject as the block value"""
  return make_continuation(STOP, None, keep=keep)


def make_operator_continuation(op: Optional[str], left: Any, next_k: Dict) -> Dict:
  """Pending operator; op None is the base frame of a full expression"""
  return make_continuation(OPERATOR, next_k, op=op, left=left)


def make_let_continuation(pattern: Any, export: Optional[Dict], next_k: Dict) -> Dict:
  return make_continuation(LET_BINDING, next_k, pattern=pattern, export=export)


def make_expression_statement_continuation(next_k: Dict) -> Dict:
  return make_continuation(EXPRESSION_STATEMENT, next_k)


def make_if_continuation(clauses: Sequence[Tuple[Tuple[Any, ...], Any]], index: int,
                         else_block: Optional[Any], rest: Tuple[Any, ...], env: Dict,
                         next_k: Dict) -> Dict:
  """Waiting for the condition of clause `index` of an if chain"""
  return make_continuation(IF_CONDITION, next_k, clauses=tuple(clauses), index=index,
                           else_block=else_block, rest=rest, env=env)


def make_parent_continuation(tokens: Tuple[Any, ...], env: Dict, next_k: Dict) -> Dict:
  """Restore the caller's input and environment after a nested block"""
  return make_continuation(PARENT, next_k, tokens=tuple(tokens), env=env)


def make_block_continuation(next_k: Dict) -> Dict:
  """Continue the enclosing block after a statement-form construct"""
  return make_continuation(BLOCK, next_k)


def make_use_continuation(name: str, next_k: Dict) -> Dict:
  return make_continuation(USE_IMPORT, next_k, name=name)


def make_native_continuation(handler: Callable, next_k: Dict) -> Dict:
  """Frame whose resumption calls a builtin-supplied Python handler

  The handler has the builtin signature and receives `next_k` as its
  continuation.
  """
  return make_continuation(NATIVE, next_k, handler=handler)


def is_continuation(value: Any) -> bool:
  return (isinstance(value, dict) and value.get('type') in CONTINUATION_KINDS
          and 'depth' in value and 'next' in value)


def continuation_chain(k: Optional[Dict]) -> Tuple[str, ...]:
  """Kinds of every frame from the top of the chain down"""
  kinds = []
  while k is not None:
    kind = k['type']
    if kind == OPERATOR and k['op']:
      kind = f"{kind}({k['op']})"
    kinds.append(kind)
    k = k['next']
  return tuple(kinds)


# ============================================================================
# INVOCATIONS
# ============================================================================

def make_invocation(state: str, tokens: Sequence[Any], subject: Any, next_k: Dict, env: Dict) -> Dict:
  """Engine-internal invocation carrying a full environment"""
  return {'state': state, 'tokens': tuple(tokens), 'subject': subject, 'next': next_k, 'env': env}


def block_invocation(tokens: Sequence[Any], env: Dict, next_k: Dict) -> Dict:
  return make_invocation(STATE_BLOCK, tokens, UNIT, next_k, env)


def expression_invocation(tokens: Sequence[Any], env: Dict, next_k: Dict) -> Dict:
  return make_invocation(STATE_EXPRESSION, tokens, UNIT, next_k, env)


def resume_invocation(next_k: Dict, tokens: Sequence[Any], subject: Any, env: Dict) -> Dict:
  return make_invocation(STATE_RESUME, tokens, subject, next_k, env)


# ============================================================================
# BUILTIN PROTOCOL
# ============================================================================

def call_continuation(k: Dict, tokens: Sequence[Any], subject: Any,
                      patterns: Sequence[Any], values: Sequence[Any]) -> Dict:
  """Resume `k` with the produced subject and the unconsumed input"""
  return {
      'state': STATE_RESUME,
      'tokens': tuple(tokens),
      'subject': subject,
      'next': k,
      'patterns': tuple(patterns),
      'values': tuple(values)
  }


def call_expression(tokens: Sequence[Any], k: Dict,
                    patterns: Sequence[Any], values: Sequence[Any]) -> Dict:
  """Evaluate `tokens` as an expression, then resume `k`"""
  return {
      'state': STATE_EXPRESSION,
      'tokens': tuple(tokens),
      'subject': UNIT,
      'next': k,
      'patterns': tuple(patterns),
      'values': tuple(values)
  }


def describe_invocation(invocation: Dict) -> str:
  """State dump: remaining input, subject and continuation chain"""
  lines = [
      f"state:   {invocation.get('state')}",
      f"tokens:  {render_fragments(invocation.get('tokens', ())) or '<empty>'}",
      f"subject: {render_fragment(invocation.get('subject', UNIT))}",
      f"next:    {' -> '.join(continuation_chain(invocation.get('next'))) or '<none>'}",
  ]
  return '\n'.join(lines)
