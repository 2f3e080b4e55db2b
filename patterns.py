"""
Splice Pattern Matching
Compiles fragments into first-class matchers, destructures values against
them and transcribes bindings back into fragments
"""

from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from fragments import (
  BRACE, CLOSING, DOLLAR, ESCAPED, IDENT, INVISIBLE, LIFETIME, LITERAL, PAREN, PUNCT,
  Group, Token, TRUE, FALSE, is_group, is_ident, is_punct, is_token,
  make_group, render_fragment, render_fragments
)
from error_handling import (
  DuplicateBindingError, InvalidPatternError, PatternMismatchError, TranscriptionError
)


FRAGMENT_KINDS = ('tt', 'ident', 'literal', 'lifetime', 'block', 'path', 'expr')
EXPR_TERMINATORS = (',', ';', '=>')
REPETITION_OPERATORS = ('*', '+', '?')


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_literal_pattern(fragment: Any) -> Dict:
  return {'type': 'PATTERN_LITERAL', 'value': fragment}


def make_capture_pattern(name: str, kind: str) -> Dict:
  return {'type': 'PATTERN_CAPTURE', 'name': name, 'kind': kind}


def make_discard_pattern() -> Dict:
  return {'type': 'PATTERN_DISCARD'}


def make_group_pattern(delimiter: str, elements: Tuple[Dict, ...]) -> Dict:
  return {'type': 'PATTERN_GROUP', 'delimiter': delimiter, 'elements': elements}


def make_sequence_pattern(elements: Tuple[Dict, ...]) -> Dict:
  """Matcher applied to a fragment sequence rather than a single fragment"""
  return {'type': 'PATTERN_SEQUENCE', 'elements': elements}


def make_repeat_pattern(elements: Tuple[Dict, ...], separator: Optional[Any], operator: str) -> Dict:
  return {
      'type': 'PATTERN_REPEAT',
      'elements': elements,
      'separator': separator,
      'operator': operator
  }


# ============================================================================
# COMPILATION
# ============================================================================

def _read_repetition_suffix(fragments: Sequence[Any], index: int) -> Optional[Tuple[Optional[Any], str, int]]:
  """Read `sep? op` after a repetition group; None if absent"""
  if index < len(fragments):
    head = fragments[index]
    if is_punct(head) and head.text in REPETITION_OPERATORS:
      return None, head.text, index + 1
    if index + 1 < len(fragments) and isinstance(head, Token) and head != DOLLAR:
      operator = fragments[index + 1]
      if is_punct(operator) and operator.text in ('*', '+'):
        return head, operator.text, index + 2
  return None


def compile_matcher(fragments: Sequence[Any]) -> Tuple[Dict, ...]:
  """Compile a fragment sequence written in matcher syntax

  `$name:kind` captures, `$( ... ) sep? op` repeats, an ESCAPED token stands
  for a literal `$`, everything else matches itself.
  """
  elements: List[Dict] = []
  index = 0
  while index < len(fragments):
    fragment = fragments[index]

    if fragment == DOLLAR:
      following = fragments[index + 1] if index + 1 < len(fragments) else None

      if is_ident(following):
        # bare `$name` captures a single token tree
        if index + 2 >= len(fragments) or not is_punct(fragments[index + 2], ':'):
          elements.append(make_capture_pattern(following.text, 'tt'))
          index += 2
          continue
        if index + 3 >= len(fragments) or not is_ident(fragments[index + 3]):
          raise InvalidPatternError(f"missing fragment specifier after `${following.text}:`",
                                    following.span)
        kind = fragments[index + 3].text
        if kind not in FRAGMENT_KINDS:
          raise InvalidPatternError(f"unknown fragment kind `{kind}`", fragments[index + 3].span)
        elements.append(make_capture_pattern(following.text, kind))
        index += 4
        continue

      if is_group(following, PAREN):
        inner = compile_matcher(following.children)
        if not inner:
          raise InvalidPatternError("repetition matches an empty sequence", following.span)
        suffix = _read_repetition_suffix(fragments, index + 2)
        if suffix is None:
          raise InvalidPatternError("expected one of `*`, `+` or `?` after repetition",
                                    following.span)
        separator, operator, index = suffix
        elements.append(make_repeat_pattern(inner, separator, operator))
        continue

      raise InvalidPatternError("unexpected `$` in matcher", fragment.span)

    if is_token(fragment, ESCAPED):
      elements.append(make_literal_pattern(Token(PUNCT, fragment.text)))
    elif isinstance(fragment, Group):
      elements.append(make_group_pattern(fragment.delimiter, compile_matcher(fragment.children)))
    else:
      elements.append(make_literal_pattern(fragment))
    index += 1

  return tuple(elements)


def compile_pattern(fragment: Any) -> Dict:
  """Compile the left side of a binding

  A bare identifier captures the whole value, `_` discards it, a delimited
  group destructures, an invisible group is a matcher over the value alone.
  """
  if is_ident(fragment, '_'):
    pattern = make_discard_pattern()
  elif is_ident(fragment):
    pattern = make_sequence_pattern((make_capture_pattern(fragment.text, 'tt'),))
  elif is_group(fragment, INVISIBLE):
    pattern = make_sequence_pattern(compile_matcher(fragment.children))
  elif isinstance(fragment, Group):
    pattern = make_group_pattern(fragment.delimiter, compile_matcher(fragment.children))
  else:
    pattern = make_literal_pattern(fragment)
  pattern_names(pattern)
  return pattern


def capture_pattern_fragment(name: str, kind: str = 'tt') -> Group:
  """Environment pattern fragment `$name:kind` for a plain binding"""
  return make_group(INVISIBLE, (DOLLAR, Token(IDENT, name), Token(PUNCT, ':'), Token(IDENT, kind)))


def pattern_names(pattern: Dict, depth: int = 0, names: Optional[Dict[str, int]] = None) -> Dict[str, int]:
  """Names bound by a pattern with their repetition depth"""
  if names is None:
    names = {}
  pattern_type = pattern['type']
  if pattern_type == 'PATTERN_CAPTURE':
    name = pattern['name']
    if name != '_':
      if name in names:
        raise DuplicateBindingError(f"duplicate binding `{name}` in pattern")
      names[name] = depth
  elif pattern_type in ('PATTERN_GROUP', 'PATTERN_SEQUENCE'):
    for element in pattern['elements']:
      pattern_names(element, depth, names)
  elif pattern_type == 'PATTERN_REPEAT':
    for element in pattern['elements']:
      pattern_names(element, depth + 1, names)
  return names


def render_pattern(pattern: Dict) -> str:
  """Render a compiled pattern back to matcher syntax"""
  pattern_type = pattern['type']
  if pattern_type == 'PATTERN_LITERAL':
    return render_fragment(pattern['value'])
  if pattern_type == 'PATTERN_DISCARD':
    return '_'
  if pattern_type == 'PATTERN_CAPTURE':
    return f"${pattern['name']}:{pattern['kind']}"
  inner = ' '.join(render_pattern(element) for element in pattern['elements'])
  if pattern_type == 'PATTERN_SEQUENCE':
    return inner
  if pattern_type == 'PATTERN_GROUP':
    delimiter = pattern['delimiter']
    return f"{delimiter}{inner}{CLOSING[delimiter]}"
  separator = render_fragment(pattern['separator']) if pattern['separator'] is not None else ''
  return f"$({inner}){separator}{pattern['operator']}"


# ============================================================================
# MATCHING
# ============================================================================

def _single(fragments: Sequence[Any], start: int, end: int) -> Any:
  if end - start == 1:
    return fragments[start]
  return make_group(INVISIBLE, fragments[start:end])


def _capture_extent(kind: str, fragments: Sequence[Any], start: int) -> Optional[int]:
  """End position of a typed capture starting at `start`, or None"""
  if start >= len(fragments):
    return None
  head = fragments[start]

  if kind == 'tt':
    return start + 1
  if kind == 'ident':
    return start + 1 if is_ident(head) and head.text != '_' else None
  if kind == 'literal':
    if is_token(head, LITERAL) or head == TRUE or head == FALSE:
      return start + 1
    if is_punct(head, '-') and start + 1 < len(fragments) and is_token(fragments[start + 1], LITERAL):
      return start + 2
    return None
  if kind == 'lifetime':
    return start + 1 if is_token(head, LIFETIME) else None
  if kind == 'block':
    return start + 1 if is_group(head, BRACE) else None
  if kind == 'path':
    position = start
    if is_punct(head, '::'):
      position += 1
    if position >= len(fragments) or not is_ident(fragments[position]):
      return None
    position += 1
    while (position + 1 < len(fragments) and is_punct(fragments[position], '::')
           and is_ident(fragments[position + 1])):
      position += 2
    return position
  if kind == 'expr':
    position = start
    while position < len(fragments):
      fragment = fragments[position]
      if is_punct(fragment) and fragment.text in EXPR_TERMINATORS:
        break
      position += 1
    return position if position > start else None
  return None


def _match_element(element: Dict, fragments: Sequence[Any], start: int) -> Iterator[Tuple[Dict, int]]:
  """Yield (bindings, end) for each way one element matches at `start`"""
  element_type = element['type']

  if element_type == 'PATTERN_LITERAL':
    if start < len(fragments) and fragments[start] == element['value']:
      yield {}, start + 1

  elif element_type == 'PATTERN_GROUP':
    if start < len(fragments) and is_group(fragments[start], element['delimiter']):
      bindings = _match_all(element['elements'], fragments[start].children)
      if bindings is not None:
        yield bindings, start + 1

  elif element_type == 'PATTERN_CAPTURE':
    end = _capture_extent(element['kind'], fragments, start)
    if end is not None:
      name = element['name']
      yield ({} if name == '_' else {name: (0, _single(fragments, start, end))}), end

  elif element_type == 'PATTERN_REPEAT':
    yield from _match_repeat(element, fragments, start)

  elif element_type == 'PATTERN_DISCARD':
    if start < len(fragments):
      yield {}, start + 1


def _match_repeat(element: Dict, fragments: Sequence[Any], start: int) -> Iterator[Tuple[Dict, int]]:
  """Greedy repetition, backing off one iteration at a time"""
  operator = element['operator']
  separator = element['separator']
  limit = 1 if operator == '?' else len(fragments) + 1
  minimum = 1 if operator == '+' else 0

  iterations: List[Tuple[Dict, int]] = []
  position = start
  while len(iterations) < limit:
    cursor = position
    if iterations and separator is not None:
      if cursor >= len(fragments) or fragments[cursor] != separator:
        break
      cursor += 1
    found = None
    for bindings, end in _match_elements(element['elements'], fragments, cursor):
      if end > position:
        found = (bindings, end)
        break
    if found is None:
      break
    iterations.append(found)
    position = found[1]

  names = pattern_names(make_sequence_pattern(element['elements']))
  for count in range(len(iterations), minimum - 1, -1):
    chosen = [bindings for bindings, _ in iterations[:count]]
    merged = {
        name: (depth + 1, [bindings[name][1] for bindings in chosen])
        for name, depth in names.items()
    }
    yield merged, (iterations[count - 1][1] if count else start)


def _match_elements(elements: Sequence[Dict], fragments: Sequence[Any], start: int) -> Iterator[Tuple[Dict, int]]:
  """Yield (bindings, end) for each way the elements match a prefix

  Everything except a repetition matches in at most one way, so those
  elements are consumed in a loop and only repetitions branch.
  """
  bindings: Dict = {}
  position = start
  for index, element in enumerate(elements):
    if element['type'] == 'PATTERN_REPEAT':
      for head_bindings, head_end in _match_repeat(element, fragments, position):
        for rest_bindings, end in _match_elements(elements[index + 1:], fragments, head_end):
          yield {**bindings, **head_bindings, **rest_bindings}, end
      return
    found = next(_match_element(element, fragments, position), None)
    if found is None:
      return
    bindings.update(found[0])
    position = found[1]
  yield bindings, position


def _match_all(elements: Sequence[Dict], fragments: Sequence[Any]) -> Optional[Dict]:
  """Bindings for the first way the elements consume every fragment"""
  for bindings, end in _match_elements(elements, fragments, 0):
    if end == len(fragments):
      return bindings
  return None


def try_match_sequence(elements: Sequence[Dict], fragments: Sequence[Any]) -> Optional[Dict]:
  """Match a compiled matcher against a whole fragment sequence"""
  return _match_all(elements, tuple(fragments))


def try_match(pattern: Dict, value: Any) -> Optional[Dict]:
  """Match a compiled pattern against one value, None on mismatch"""
  pattern_type = pattern['type']
  if pattern_type == 'PATTERN_SEQUENCE':
    return _match_all(pattern['elements'], (value,))
  return _match_all((pattern,), (value,))


def match_pattern(pattern: Dict, value: Any) -> Dict:
  """Destructure a value; a mismatch is fatal"""
  bindings = try_match(pattern, value)
  if bindings is None:
    raise PatternMismatchError(
        f"`{render_fragment(value)}` does not match pattern `{render_pattern(pattern)}`",
        getattr(value, 'span', None))
  return bindings


# ============================================================================
# TRANSCRIPTION (substitution)
# ============================================================================

def _capture_at(name: str, capture: Tuple[int, Any], indices: Tuple[int, ...]) -> Any:
  depth, value = capture
  if depth > len(indices):
    raise TranscriptionError(f"variable `{name}` is still repeating at this depth")
  for index in indices[:depth]:
    value = value[index]
  return value


def _referenced_names(fragments: Sequence[Any]) -> List[str]:
  names = []
  for index, fragment in enumerate(fragments):
    if fragment == DOLLAR and index + 1 < len(fragments) and is_ident(fragments[index + 1]):
      names.append(fragments[index + 1].text)
    elif isinstance(fragment, Group):
      names.extend(_referenced_names(fragment.children))
  return names


def _transcribe_repetition(body: Sequence[Any], separator: Optional[Any], bindings: Dict,
                           indices: Tuple[int, ...]) -> List[Any]:
  depth = len(indices)
  repeating = [name for name in dict.fromkeys(_referenced_names(body))
               if name in bindings and bindings[name][0] > depth]
  if not repeating:
    raise TranscriptionError(
        f"repetition `$({render_fragments(body)})` contains no variables repeating at this depth")

  counts = {name: _repeat_count(bindings[name], indices) for name in repeating}
  if len(set(counts.values())) != 1:
    detail = ', '.join(f"`{name}` repeats {count} times" for name, count in counts.items())
    raise TranscriptionError(f"meta-variables repeat a different number of times: {detail}")

  result: List[Any] = []
  for iteration in range(next(iter(counts.values()))):
    if iteration and separator is not None:
      result.append(separator)
    result.extend(transcribe_sequence(body, bindings, indices + (iteration,)))
  return result


def _repeat_count(capture: Tuple[int, Any], indices: Tuple[int, ...]) -> int:
  _, value = capture
  for index in indices:
    value = value[index]
  return len(value)


def transcribe_sequence(fragments: Sequence[Any], bindings: Dict, indices: Tuple[int, ...] = ()) -> Tuple[Any, ...]:
  """Substitute `$name` and expand `$( ... ) sep? op` in one pass"""
  result: List[Any] = []
  index = 0
  while index < len(fragments):
    fragment = fragments[index]
    following = fragments[index + 1] if index + 1 < len(fragments) else None

    if fragment == DOLLAR and is_ident(following) and following.text in bindings:
      result.append(_capture_at(following.text, bindings[following.text], indices))
      index += 2
      continue

    if fragment == DOLLAR and is_group(following, PAREN):
      suffix = _read_repetition_suffix(fragments, index + 2)
      if suffix is not None:
        separator, _, index = suffix
        result.extend(_transcribe_repetition(following.children, separator, bindings, indices))
        continue

    if isinstance(fragment, Group):
      result.append(make_group(fragment.delimiter,
                               transcribe_sequence(fragment.children, bindings, indices),
                               fragment.span))
    else:
      result.append(fragment)
    index += 1

  return tuple(result)


def transcribe(fragment: Any, bindings: Dict) -> Any:
  """Substitute bindings inside a single fragment"""
  if isinstance(fragment, Group):
    return make_group(fragment.delimiter,
                      transcribe_sequence(fragment.children, bindings),
                      fragment.span)
  return fragment
