"""
Splice Semantics Analysis - Pure Functional Style
Static pass run before evaluation: statement shapes and exhaustive
conditional expressions
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from fragments import BRACE, PAREN, fragment_span, is_group, is_ident, is_punct, render_fragment, render_fragments
from utilities import peek, read_attributes, read_path, read_visibility, split_if_chain, join_path
from error_handling import MissingElseError, UnexpectedTokenError


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_statement_info(kind: str, span: Any = None, name: Optional[str] = None,
                        visibility: Optional[str] = None,
                        children: Optional[List[Dict]] = None,
                        detail: str = '') -> Dict:
  """Create an immutable statement summary"""
  return {
      'kind': kind,
      'span': span,
      'name': name,
      'visibility': visibility,
      'children': children or [],
      'detail': detail
  }


def format_statement_info(info: Dict, indent: int = 0) -> str:
  """Render a statement summary tree"""
  pad = "  " * indent
  line = f"{pad}{info['kind'].upper()}"
  if info['visibility']:
    line += f" [{info['visibility']}]"
  if info['name']:
    line += f" {info['name']}"
  if info['detail']:
    line += f": {info['detail']}"
  lines = [line]
  for child in info['children']:
    lines.append(format_statement_info(child, indent + 1))
  return '\n'.join(lines)


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def find_statement_end(tokens: Sequence[Any]) -> int:
  """Index of the first top-level `;`, or the input length"""
  for index, fragment in enumerate(tokens):
    if is_punct(fragment, ';'):
      return index
  return len(tokens)


def analyze_expression(tokens: Sequence[Any], debug: bool = False) -> List[Dict]:
  """Check an expression; returns summaries of nested blocks

  Every `if` in expression position must end in `else`.
  """
  children: List[Dict] = []
  position = 0
  while position < len(tokens):
    fragment = tokens[position]

    if is_ident(fragment, 'if'):
      chain = split_if_chain(tokens[position + 1:])
      if chain['else'] is None:
        raise MissingElseError("`if` used as an expression must have an `else` branch",
                               fragment_span(fragment))
      children.append(analyze_if_chain(chain, fragment_span(fragment), 'if-expression', debug))
      position = len(tokens) - len(chain['rest'])
      continue

    if is_ident(fragment, 'fn') and is_group(peek(tokens, position + 1), PAREN):
      body = peek(tokens, position + 2)
      if not is_group(body, BRACE):
        raise UnexpectedTokenError("expected a braced function body", fragment_span(fragment))
      children.append(make_statement_info(
          'closure', fragment_span(fragment),
          detail=render_fragment(tokens[position + 1]),
          children=analyze_block(body.children, debug)))
      position += 3
      continue

    position += 1

  return children


def analyze_if_chain(chain: Dict, span: Any, kind: str, debug: bool = False) -> Dict:
  """Check every condition and branch of an if chain"""
  children = []
  for condition, block in chain['clauses']:
    if not condition:
      raise UnexpectedTokenError("missing condition in `if`", span)
    children.extend(analyze_expression(condition, debug))
    children.append(make_statement_info('branch', fragment_span(block),
                                        detail=render_fragments(condition),
                                        children=analyze_block(block.children, debug)))
  if chain['else'] is not None:
    children.append(make_statement_info('else', fragment_span(chain['else']),
                                        children=analyze_block(chain['else'].children, debug)))
  return make_statement_info(kind, span, children=children,
                             detail=f"{len(chain['clauses'])} clause(s)")


def analyze_let(tokens: Sequence[Any], visibility: Optional[str], debug: bool = False) -> Tuple[Dict, Tuple[Any, ...]]:
  """`let PAT = EXPR;`"""
  keyword = tokens[0]
  pattern = peek(tokens, 1)
  if pattern is None or not is_punct(peek(tokens, 2), '='):
    raise UnexpectedTokenError("expected `let PATTERN = EXPRESSION;`", fragment_span(keyword))
  if visibility is not None and not is_ident(pattern):
    raise UnexpectedTokenError("exported `let` must bind a single identifier",
                               fragment_span(pattern))

  expression = tokens[3:]
  end = find_statement_end(expression)
  if end == 0:
    raise UnexpectedTokenError("missing expression after `=`", fragment_span(tokens[2]))
  info = make_statement_info('let', fragment_span(keyword),
                             name=render_fragment(pattern), visibility=visibility,
                             children=analyze_expression(expression[:end], debug),
                             detail=render_fragments(expression[:end]))
  return info, tuple(expression[end + 1:])


def analyze_fn(tokens: Sequence[Any], visibility: Optional[str], debug: bool = False) -> Tuple[Dict, Tuple[Any, ...]]:
  """`fn name(PAT) { body }`"""
  keyword = tokens[0]
  name = peek(tokens, 1)
  parameters = peek(tokens, 2)
  body = peek(tokens, 3)
  if not (is_ident(name) and is_group(parameters, PAREN) and is_group(body, BRACE)):
    raise UnexpectedTokenError("expected `fn NAME(PATTERN) { BODY }`", fragment_span(keyword))
  info = make_statement_info('fn', fragment_span(keyword), name=name.text,
                             visibility=visibility,
                             detail=render_fragment(parameters),
                             children=analyze_block(body.children, debug))
  return info, tuple(tokens[4:])


def analyze_use(tokens: Sequence[Any], debug: bool = False) -> Tuple[Dict, Tuple[Any, ...]]:
  """`use path (as alias)?;`"""
  keyword = tokens[0]
  path = read_path(tokens[1:])
  if path is None:
    raise UnexpectedTokenError("expected a path after `use`", fragment_span(keyword))
  segments, rest = path
  alias = segments[-1]
  if is_ident(peek(rest), 'as'):
    if not is_ident(peek(rest, 1)):
      raise UnexpectedTokenError("expected an identifier after `as`", fragment_span(rest[0]))
    alias = rest[1].text
    rest = rest[2:]
  if rest and not is_punct(rest[0], ';'):
    raise UnexpectedTokenError(f"expected `;` after `use`, found `{render_fragment(rest[0])}`",
                               fragment_span(rest[0]))
  info = make_statement_info('use', fragment_span(keyword), name=alias, detail=join_path(segments))
  return info, tuple(rest[1:])


def analyze_statement(tokens: Sequence[Any], debug: bool = False) -> Tuple[Optional[Dict], Tuple[Any, ...]]:
  """Check one statement; returns its summary and the remaining input"""
  head = tokens[0]
  if is_punct(head, ';'):
    return None, tuple(tokens[1:])

  attributes, rest = read_attributes(tokens)
  visibility, rest = read_visibility(rest)
  if attributes or visibility:
    if is_ident(peek(rest), 'let'):
      return analyze_let(rest, visibility or 'private', debug)
    if is_ident(peek(rest), 'fn'):
      return analyze_fn(rest, visibility or 'private', debug)
    raise UnexpectedTokenError("expected `let` or `fn` after attributes or visibility",
                               fragment_span(peek(rest)) or fragment_span(head))

  if is_ident(head, 'let'):
    return analyze_let(tokens, None, debug)

  if is_ident(head, 'fn') and is_ident(peek(tokens, 1)):
    return analyze_fn(tokens, None, debug)

  if is_ident(head, 'emit'):
    body = peek(tokens, 1)
    if not is_group(body, BRACE):
      raise UnexpectedTokenError("expected `emit { ... }`", fragment_span(head))
    return make_statement_info('emit', fragment_span(head), detail=render_fragments(body.children)), tuple(tokens[2:])

  if is_ident(head, 'use'):
    return analyze_use(tokens, debug)

  if is_ident(head, 'if'):
    chain = split_if_chain(tokens[1:])
    return analyze_if_chain(chain, fragment_span(head), 'if', debug), chain['rest']

  end = find_statement_end(tokens)
  info = make_statement_info('expression', fragment_span(head),
                             detail=render_fragments(tokens[:end]),
                             children=analyze_expression(tokens[:end], debug))
  return info, tuple(tokens[end + 1:])


def analyze_block(fragments: Sequence[Any], debug: bool = False) -> List[Dict]:
  """Check every statement of a block, recursing into nested blocks"""
  statements = []
  tokens = tuple(fragments)
  while tokens:
    info, tokens = analyze_statement(tokens, debug)
    if info is not None:
      if debug:
        print(f"[analyze] {info['kind']} {info['name'] or ''} {info['detail']}".rstrip())
      statements.append(info)
  return statements


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

def create_analyzer(debug: bool = False):
  """Factory function returning an analyzer object"""
  return type('Analyzer', (), {
      'analyze': lambda self, fragments: analyze_block(fragments, debug),
      'format': lambda self, statements: '\n'.join(format_statement_info(info) for info in statements),
      'debug': debug
  })()


def create_debug_analyzer():
  """Factory function returning a debug analyzer"""
  return create_analyzer(debug=True)
