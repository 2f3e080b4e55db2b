"""
Splice Syntax Fragments
The only runtime value type: atomic tokens, delimited groups and function values
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Tuple


# ============================================================================
# DATA STRUCTURES (Frozen Dataclasses)
# ============================================================================

@dataclass(frozen=True)
class SourceSpan:
  """Source location of a fragment"""
  filename: str
  line: int
  column: int

  def __str__(self) -> str:
    return f"{self.filename}:{self.line}:{self.column}"


@dataclass(frozen=True)
class Token:
  """Atomic fragment: IDENT, LITERAL, LIFETIME, PUNCT or ESCAPED"""
  kind: str
  text: str
  span: Optional[SourceSpan] = field(default=None, compare=False, repr=False)

  def __str__(self) -> str:
    return self.text


@dataclass(frozen=True)
class Group:
  """Delimiter-balanced sequence of fragments"""
  delimiter: str
  children: Tuple[Any, ...] = ()
  span: Optional[SourceSpan] = field(default=None, compare=False, repr=False)

  def __str__(self) -> str:
    return render_fragment(self)


@dataclass(frozen=True, eq=False)
class Closure:
  """Function value: parameter pattern, captured environment and body"""
  name: Optional[str]
  parameters: Group
  pattern: Any
  env: Any
  body: Tuple[Any, ...]

  def __str__(self) -> str:
    return f"<fn {self.name or 'anonymous'}>"


@dataclass(frozen=True, eq=False)
class Builtin:
  """Builtin function imported into a scope by `use`"""
  path: str
  function: Callable

  def __str__(self) -> str:
    return f"<builtin {self.path}>"


IDENT = 'IDENT'
LITERAL = 'LITERAL'
LIFETIME = 'LIFETIME'
PUNCT = 'PUNCT'
ESCAPED = 'ESCAPED'

PAREN = '('
BRACKET = '['
BRACE = '{'
INVISIBLE = ''

CLOSING = {PAREN: ')', BRACKET: ']', BRACE: '}', INVISIBLE: ''}


def make_token(kind: str, text: str, span: Optional[SourceSpan] = None) -> Token:
  """Create an atomic token"""
  return Token(kind, text, span)


def make_group(delimiter: str, children: Iterable[Any] = (), span: Optional[SourceSpan] = None) -> Group:
  """Create a group, freezing its children"""
  return Group(delimiter, tuple(children), span)


def ident(text: str) -> Token:
  return Token(IDENT, text)


def punct(text: str) -> Token:
  return Token(PUNCT, text)


TRUE = ident('true')
FALSE = ident('false')
UNIT = Group(PAREN, ())
DOLLAR = punct('$')


# ============================================================================
# PREDICATES
# ============================================================================

def is_fragment(value: Any) -> bool:
  return isinstance(value, (Token, Group, Closure, Builtin))


def is_token(value: Any, kind: Optional[str] = None, text: Optional[str] = None) -> bool:
  """Check token kind and text; None matches anything"""
  if not isinstance(value, Token):
    return False
  if kind is not None and value.kind != kind:
    return False
  return text is None or value.text == text


def is_ident(value: Any, text: Optional[str] = None) -> bool:
  return is_token(value, IDENT, text)


def is_punct(value: Any, text: Optional[str] = None) -> bool:
  return is_token(value, PUNCT, text)


def is_group(value: Any, delimiter: Optional[str] = None) -> bool:
  if not isinstance(value, Group):
    return False
  return delimiter is None or value.delimiter == delimiter


def is_closure(value: Any) -> bool:
  return isinstance(value, Closure)


def is_builtin(value: Any) -> bool:
  return isinstance(value, Builtin)


def is_bool(value: Any) -> bool:
  return value == TRUE or value == FALSE


def make_bool(flag: bool) -> Token:
  return TRUE if flag else FALSE


def fragment_span(value: Any) -> Optional[SourceSpan]:
  return getattr(value, 'span', None)


# ============================================================================
# RENDERING
# ============================================================================

def render_fragment(value: Any) -> str:
  """Render a fragment as source text"""
  if isinstance(value, Token):
    return value.text
  if isinstance(value, (Closure, Builtin)):
    return str(value)
  if isinstance(value, Group):
    inner = render_fragments(value.children)
    if value.delimiter == INVISIBLE:
      return inner
    if value.delimiter == BRACE:
      return f"{{ {inner} }}" if inner else "{}"
    return f"{value.delimiter}{inner}{CLOSING[value.delimiter]}"
  raise TypeError(f"Not a syntax fragment: {value!r}")


def render_fragments(values: Iterable[Any]) -> str:
  """Render a fragment sequence separated by single spaces"""
  return ' '.join(render_fragment(value) for value in values)


def pretty_print_fragment(value: Any, indent: int = 0) -> str:
  """Pretty print a fragment tree for debugging"""
  pad = "  " * indent
  if isinstance(value, Group):
    label = value.delimiter + CLOSING[value.delimiter] if value.delimiter else 'INVISIBLE'
    result = f"{pad}GROUP({label})\n"
    for child in value.children:
      result += pretty_print_fragment(child, indent + 1)
    return result
  if isinstance(value, Closure):
    return f"{pad}CLOSURE({value.name or 'anonymous'})\n"
  if isinstance(value, Builtin):
    return f"{pad}BUILTIN({value.path})\n"
  return f"{pad}{value.kind}({value.text!r})\n"
