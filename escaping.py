"""
Splice Escaping
Rewrites the `$` marker so fragments can be spliced into generated matchers
and templates as literal values
"""

from typing import Any, Sequence, Tuple

from fragments import (
  ESCAPED, DOLLAR, PAREN, Group, Token, is_group, make_group
)


ESCAPED_DOLLAR = Token(ESCAPED, '$')
DEFAULT_SUBSTITUTE: Tuple[Any, ...] = (ESCAPED_DOLLAR,)


def _as_substitute(substitute: Any) -> Tuple[Any, ...]:
  if isinstance(substitute, (tuple, list)):
    if not substitute:
      raise ValueError("Escape substitute must contain at least one fragment")
    return tuple(substitute)
  return (substitute,)


# ============================================================================
# FULL ESCAPING
# ============================================================================

def escape_sequence(fragments: Sequence[Any], substitute: Any = DEFAULT_SUBSTITUTE) -> Tuple[Any, ...]:
  """Replace every `$` in a fragment sequence, at every depth"""
  replacement = _as_substitute(substitute)
  result = []
  for fragment in fragments:
    if fragment == DOLLAR:
      result.extend(replacement)
    elif isinstance(fragment, Group):
      result.append(make_group(fragment.delimiter,
                               escape_sequence(fragment.children, replacement),
                               fragment.span))
    else:
      result.append(fragment)
  return tuple(result)


def escape(fragment: Any, substitute: Any = DEFAULT_SUBSTITUTE) -> Any:
  """Escape a single fragment

  A bare `$` token cannot be replaced by a multi-token substitute in place,
  so it is wrapped in an invisible group in that case.
  """
  escaped = escape_sequence((fragment,), substitute)
  if len(escaped) == 1:
    return escaped[0]
  return make_group('', escaped)


# ============================================================================
# REPETITION-ONLY ESCAPING
# ============================================================================

def escape_repetitions_sequence(fragments: Sequence[Any], substitute: Any = DEFAULT_SUBSTITUTE) -> Tuple[Any, ...]:
  """Replace only the `$` tokens that open a repetition `$( ... )`"""
  replacement = _as_substitute(substitute)
  result = []
  for index, fragment in enumerate(fragments):
    following = fragments[index + 1] if index + 1 < len(fragments) else None
    if fragment == DOLLAR and is_group(following, PAREN):
      result.extend(replacement)
    elif isinstance(fragment, Group):
      result.append(make_group(fragment.delimiter,
                               escape_repetitions_sequence(fragment.children, replacement),
                               fragment.span))
    else:
      result.append(fragment)
  return tuple(result)


def escape_repetitions(fragment: Any, substitute: Any = DEFAULT_SUBSTITUTE) -> Any:
  """Escape the repetition markers inside a single fragment"""
  escaped = escape_repetitions_sequence((fragment,), substitute)
  return escaped[0]


# ============================================================================
# UNESCAPING
# ============================================================================

def unescape_sequence(fragments: Sequence[Any], substitute: Any = DEFAULT_SUBSTITUTE) -> Tuple[Any, ...]:
  """Reinstate `$` wherever the substitute sequence occurs"""
  replacement = _as_substitute(substitute)
  width = len(replacement)
  result = []
  index = 0
  while index < len(fragments):
    if tuple(fragments[index:index + width]) == replacement:
      result.append(DOLLAR)
      index += width
      continue
    fragment = fragments[index]
    if isinstance(fragment, Group):
      fragment = make_group(fragment.delimiter,
                            unescape_sequence(fragment.children, replacement),
                            fragment.span)
    result.append(fragment)
    index += 1
  return tuple(result)


def unescape(fragment: Any, substitute: Any = DEFAULT_SUBSTITUTE) -> Any:
  """Undo `escape` or `escape_repetitions` on a single fragment"""
  restored = unescape_sequence((fragment,), substitute)
  if len(restored) == 1:
    return restored[0]
  return make_group('', restored)


def contains_marker(fragment: Any) -> bool:
  """True when `$` appears anywhere inside the fragment"""
  if fragment == DOLLAR:
    return True
  if isinstance(fragment, Group):
    return any(contains_marker(child) for child in fragment.children)
  return False
