"""
Utilities module for Splice
Syntactic helpers shared by the static pass and the interpreter
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import operator

from fragments import (
  BRACE, BRACKET, PAREN, FALSE, TRUE, fragment_span, is_bool, is_group, is_ident,
  is_punct, make_bool, render_fragment, render_fragments
)
from error_handling import UnexpectedTokenError, UnsupportedOperandError


# Binding strength of binary operators; suffix calls and `!` bind tighter
PRECEDENCE = {'==': 3, '!=': 3, '&&': 2, '||': 1}

# Punctuation after which a braced group still belongs to an if condition
CONDITION_CONTINUATIONS = ('==', '!=', '&&', '||', '!')

VISIBILITY_PUBLIC = 'public'
VISIBILITY_UNIT = 'unit'
VISIBILITY_MODULE = 'module'

KEYWORDS = ('let', 'emit', 'use', 'pub', 'else')


# ==================== TOKEN STREAM UTILITIES ====================

def peek(tokens: Sequence[Any], index: int = 0) -> Any:
  """
  Token at `index`, or None past the end of input

  Args:
    tokens: Remaining input
    index: Offset from the front

  Returns:
    The fragment or None
  """
  return tokens[index] if index < len(tokens) else None


def preview_tokens(tokens: Sequence[Any], limit: int = 6) -> str:
  """Render the first few tokens of the remaining input for traces"""
  head = render_fragments(tokens[:limit])
  if len(tokens) > limit:
    head += ' ...'
  return head or '<empty>'


def binary_operator(token: Any) -> Optional[str]:
  """Operator text when `token` is a binary operator"""
  if is_punct(token) and token.text in PRECEDENCE:
    return token.text
  return None


def expect_terminator(tokens: Sequence[Any], construct: str) -> Tuple[Any, ...]:
  """
  Consume a `;` ending a statement

  Args:
    tokens: Input directly after the statement
    construct: Statement name for error messages

  Returns:
    The input after the terminator (end of input also terminates)

  Raises:
    UnexpectedTokenError if anything else follows
  """
  head = peek(tokens)
  if head is None:
    return ()
  if is_punct(head, ';'):
    return tuple(tokens[1:])
  raise UnexpectedTokenError(
    f"expected `;` after {construct}, found `{render_fragment(head)}`",
    fragment_span(head)
  )


# ==================== PATH UTILITIES ====================

def read_path(tokens: Sequence[Any]) -> Optional[Tuple[List[str], Tuple[Any, ...]]]:
  """
  Read a path `a::b::c` from the front of the input

  Args:
    tokens: Remaining input

  Returns:
    (segments, rest) or None when the input does not start with an identifier

  Examples:
    read_path(`a::b::c (x)`) -> (['a', 'b', 'c'], `(x)`)
    read_path(`parse::<expr>(x)`) -> (['parse'], `:: < expr > (x)`)
  """
  if not is_ident(peek(tokens)):
    return None
  segments = [tokens[0].text]
  position = 1
  while is_punct(peek(tokens, position), '::') and is_ident(peek(tokens, position + 1)):
    segments.append(tokens[position + 1].text)
    position += 2
  return segments, tuple(tokens[position:])


def join_path(segments: Sequence[str]) -> str:
  return '::'.join(segments)


# ==================== STATEMENT PREFIX UTILITIES ====================

def read_attributes(tokens: Sequence[Any]) -> Tuple[Tuple[Any, ...], Tuple[Any, ...]]:
  """
  Consume leading `#[...]` attributes

  Returns:
    (attribute groups, rest)
  """
  attributes = []
  position = 0
  while is_punct(peek(tokens, position), '#') and is_group(peek(tokens, position + 1), BRACKET):
    attributes.append(tokens[position + 1])
    position += 2
  return tuple(attributes), tuple(tokens[position:])


def read_visibility(tokens: Sequence[Any]) -> Tuple[Optional[str], Tuple[Any, ...]]:
  """
  Consume a visibility qualifier

  Returns:
    (visibility, rest) where visibility is None for private items

  Examples:
    read_visibility(`pub let`) -> ('public', `let`)
    read_visibility(`pub(crate) fn`) -> ('unit', `fn`)
    read_visibility(`pub(self) let`) -> ('module', `let`)
  """
  if not is_ident(peek(tokens), 'pub'):
    return None, tuple(tokens)

  qualifier = peek(tokens, 1)
  if not is_group(qualifier, PAREN):
    return VISIBILITY_PUBLIC, tuple(tokens[1:])

  inner = qualifier.children
  if len(inner) == 1 and is_ident(inner[0], 'crate'):
    return VISIBILITY_UNIT, tuple(tokens[2:])
  if len(inner) == 1 and is_ident(inner[0], 'self'):
    return VISIBILITY_MODULE, tuple(tokens[2:])
  raise UnexpectedTokenError(
    f"unsupported visibility `pub{render_fragment(qualifier)}`",
    fragment_span(qualifier)
  )


# ==================== CONDITIONAL UTILITIES ====================

def split_if_chain(tokens: Sequence[Any]) -> Dict:
  """
  Split an if chain into its clauses

  Args:
    tokens: Input directly after the leading `if`

  Returns:
    {'clauses': [(condition tokens, block)], 'else': block or None, 'rest': tokens}

  Raises:
    UnexpectedTokenError if a condition has no block or `else` is malformed
  """
  clauses = []
  position = 0
  while True:
    start = position
    while True:
      fragment = peek(tokens, position)
      if fragment is None:
        raise UnexpectedTokenError("expected a block after the if condition",
                                   fragment_span(peek(tokens, start)))
      if is_group(fragment, BRACE) and position > start:
        previous = tokens[position - 1]
        if not (is_punct(previous) and previous.text in CONDITION_CONTINUATIONS):
          break
      position += 1

    clauses.append((tuple(tokens[start:position]), tokens[position]))
    position += 1

    if not is_ident(peek(tokens, position), 'else'):
      return {'clauses': clauses, 'else': None, 'rest': tuple(tokens[position:])}

    following = peek(tokens, position + 1)
    if is_ident(following, 'if'):
      position += 2
      continue
    if is_group(following, BRACE):
      return {'clauses': clauses, 'else': following, 'rest': tuple(tokens[position + 2:])}
    raise UnexpectedTokenError("expected `if` or a block after `else`",
                               fragment_span(following))


# ==================== ERROR MESSAGE BUILDERS ====================

def operand_error(op: str, operand: Any) -> UnsupportedOperandError:
  """
  Generate an unsupported operand error

  Args:
    op: Operator text
    operand: Offending fragment

  Returns:
    UnsupportedOperandError with formatted message
  """
  return UnsupportedOperandError(
    f"`{op}` expects `true` or `false`, got `{render_fragment(operand)}`",
    fragment_span(operand)
  )


def require_bool(op: str, operand: Any) -> bool:
  if not is_bool(operand):
    raise operand_error(op, operand)
  return operand == TRUE


# ==================== BOOLEAN OPERATION FACTORIES ====================

def binary_boolean_op(op: Callable[[bool, bool], bool], op_name: str) -> Callable[[Any, Any], Any]:
  """
  Factory for eager boolean operators

  Both operands are already evaluated; the result follows the full truth table.

  Examples:
    splice_and = binary_boolean_op(operator.and_, '&&')
    splice_and(TRUE, FALSE) -> FALSE
  """
  def boolean(left: Any, right: Any) -> Any:
    return make_bool(op(require_bool(op_name, left), require_bool(op_name, right)))

  return boolean


def negate(operand: Any) -> Any:
  return FALSE if require_bool('!', operand) else TRUE


BOOLEAN_OPERATORS = {
  '&&': binary_boolean_op(operator.and_, '&&'),
  '||': binary_boolean_op(operator.or_, '||'),
}
