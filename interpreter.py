"""
Splice Interpreter - Continuation Passing Style
Block, expression and operator machines driven by a trampoline
Side effects (emitted output, exports) collected in the execution context
"""

from typing import Any, Callable, Dict, Optional, Sequence

from fragments import (
  BRACE, FALSE, PAREN, TRUE, UNIT, Builtin, Group, fragment_span, is_builtin, is_closure,
  is_fragment, is_group, is_ident, is_punct, make_bool, render_fragment, render_fragments
)
from escaping import escape
from patterns import compile_matcher, try_match_sequence
from environment import (
  empty_environment, env_bind, env_child, env_extend, env_from_protocol, env_lookup,
  env_substitute, env_substitute_sequence, render_environment
)
from continuations import (
  BLOCK, EXPRESSION_STATEMENT, IF_CONDITION, LET_BINDING, NATIVE, OPERATOR, PARENT,
  STATE_BLOCK, STATE_EXPRESSION, STATE_RESUME, STOP, USE_IMPORT, block_invocation,
  describe_invocation, expression_invocation, is_continuation, make_block_continuation,
  make_expression_statement_continuation, make_if_continuation, make_invocation,
  make_let_continuation, make_operator_continuation, make_parent_continuation,
  make_stop, make_use_continuation, resume_invocation
)
from closures import call_closure, make_closure
from exports import (
  export_binding, expand_export, make_compilation_unit, make_export_builtin, resolve_export
)
from stdlib import create_builtin_registry, register_builtin
from semantics import analyze_block
from parsing import create_parser
from utilities import (
  BOOLEAN_OPERATORS, KEYWORDS, PRECEDENCE, binary_operator, expect_terminator, join_path,
  negate, peek, preview_tokens, read_attributes, read_path, read_visibility, require_bool,
  split_if_chain
)
from error_handling import (
  BuiltinContractViolation, MissingElseError, NameResolutionError, RecursionLimitExceeded,
  SpliceRuntimeError, UnexpectedTokenError, UnsupportedOperandError
)


DEFAULT_RECURSION_LIMIT = 512


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_execution_context(unit: Optional[Dict] = None, registry: Optional[Dict] = None,
                           recursion_limit: int = DEFAULT_RECURSION_LIMIT,
                           debug: bool = False, module: str = '') -> Dict:
  """Per-evaluation state: the only mutable structure of a run"""
  return {
      'unit': unit if unit is not None else make_compilation_unit(),
      'registry': registry if registry is not None else create_builtin_registry(),
      'module': module,
      'recursion_limit': recursion_limit,
      'debug': debug,
      'chunks': [],
      'output': [],
      'steps': 0,
      'result': UNIT
  }


def make_block_result(context: Dict) -> Dict:
  """Everything a host reads back after evaluating a block"""
  return {
      'value': context['result'],
      'chunks': tuple(context['chunks']),
      'output': list(context['output']),
      'text': '\n'.join(context['output']),
      'exports': context['unit']['exports'],
      'unit': context['unit'],
      'registry': context['registry'],
      'steps': context['steps']
  }


# ============================================================================
# OPERATORS
# ============================================================================

def fragments_equal(left: Any, right: Any) -> bool:
  """Literal equality through a generated matcher

  The left operand is escaped so a `$` inside it is compared as a plain
  token rather than read as a capture or repetition.
  """
  matcher = compile_matcher((escape(left),))
  return try_match_sequence(matcher, (right,)) is not None


def apply_binary(op: str, left: Any, right: Any) -> Any:
  if op == '==':
    return make_bool(fragments_equal(left, right))
  if op == '!=':
    return make_bool(not fragments_equal(left, right))
  return BOOLEAN_OPERATORS[op](left, right)


# ============================================================================
# BUILTIN PROTOCOL BOUNDARY
# ============================================================================

PROTOCOL_KEYS = ('state', 'tokens', 'subject', 'next', 'patterns', 'values')


def accept_builtin_result(result: Any, env: Dict, name: str) -> Dict:
  """Validate a builtin's returned invocation and convert it to engine form"""
  if result is None:
    raise BuiltinContractViolation(f"builtin `{name}` returned without invoking a continuation")
  if not isinstance(result, dict) or any(key not in result for key in PROTOCOL_KEYS):
    raise BuiltinContractViolation(
        f"builtin `{name}` returned a malformed invocation: {result!r:.80}")
  if result['state'] not in (STATE_RESUME, STATE_EXPRESSION):
    raise BuiltinContractViolation(f"builtin `{name}` returned unknown state {result['state']!r}")
  if not is_continuation(result['next']):
    raise BuiltinContractViolation(f"builtin `{name}` did not pass a continuation")
  if not all(is_fragment(token) for token in result['tokens']):
    raise BuiltinContractViolation(f"builtin `{name}` returned remaining input that is not fragments")
  if not is_fragment(result['subject']):
    raise BuiltinContractViolation(f"builtin `{name}` produced a subject that is not a fragment")

  new_env = env_from_protocol(result['patterns'], result['values'], env)
  if new_env is None:
    raise BuiltinContractViolation(
        f"builtin `{name}` returned an environment that does not extend the one it received")
  return make_invocation(result['state'], result['tokens'], result['subject'], result['next'], new_env)


def invoke_builtin(builtin: Callable, name: str, tokens: Sequence[Any], subject: Any,
                   k: Dict, env: Dict) -> Dict:
  result = builtin(tuple(tokens), subject, k, env['patterns'], env['values'])
  return accept_builtin_result(result, env, name)


def lookup_builtin(segments: Sequence[str], env: Dict, context: Dict) -> Optional[Builtin]:
  """Builtin imported into the current scope, else the registry entry"""
  path = join_path(segments)
  if len(segments) == 1:
    capture = env_lookup(env, path)
    if capture is not None and capture[0] == 0 and is_builtin(capture[1]):
      return capture[1]
  function = context['registry'].get(path)
  return Builtin(path, function) if function is not None else None


# ============================================================================
# EXPRESSION MACHINE
# ============================================================================

def eval_expression(tokens: Sequence[Any], env: Dict, k: Dict, context: Dict) -> Dict:
  """Full expression: a primary under a base operator frame"""
  return eval_primary(tokens, env, make_operator_continuation(None, None, k), context)


def eval_primary(tokens: Sequence[Any], env: Dict, k: Dict, context: Dict) -> Dict:
  """Classify the next fragment and produce its value"""
  head = peek(tokens)
  if head is None:
    raise UnexpectedTokenError("expected an expression, found end of input")
  rest = tuple(tokens[1:])

  if head == TRUE or head == FALSE:
    return resume_invocation(k, rest, head, env)

  if is_ident(head, 'if'):
    chain = split_if_chain(rest)
    if chain['else'] is None:
      raise MissingElseError("`if` used as an expression must have an `else` branch",
                             fragment_span(head))
    return eval_if_chain(chain, env, k)

  if is_ident(head, 'fn'):
    closure = make_closure(None, peek(rest), peek(rest, 1), env)
    return resume_invocation(k, rest[2:], closure, env)

  if is_punct(head, '!'):
    return eval_primary(rest, env, make_operator_continuation('!', None, k), context)

  if is_ident(head) and head.text in KEYWORDS or is_punct(head, ';'):
    raise UnexpectedTokenError(f"expected an expression, found `{head.text}`", fragment_span(head))

  if is_ident(head):
    return eval_path(tokens, env, k, context)

  if isinstance(head, Group):
    return resume_invocation(k, rest, env_substitute(head, env), env)

  return resume_invocation(k, rest, head, env)


def eval_path(tokens: Sequence[Any], env: Dict, k: Dict, context: Dict) -> Dict:
  """Identifier or path: local binding, then builtin registry, then exports"""
  segments, rest = read_path(tokens)
  span = fragment_span(tokens[0])

  if len(segments) == 1:
    capture = env_lookup(env, segments[0])
    if capture is not None:
      depth, value = capture
      if depth > 0:
        raise NameResolutionError(f"variable `{segments[0]}` is still repeating at this depth", span)
      if is_builtin(value):
        return invoke_builtin(value.function, value.path, rest, UNIT, k, env)
      return resume_invocation(k, rest, value, env)

  path = join_path(segments)
  builtin = context['registry'].get(path)
  if builtin is not None:
    return invoke_builtin(builtin, path, rest, UNIT, k, env)

  entry = resolve_export(context['unit'], segments, context['module'])
  if entry is not None:
    return invoke_builtin(make_export_builtin(entry), path, rest, UNIT, k, env)

  raise NameResolutionError(f"cannot find `{path}` in this scope", span)


def eval_if_chain(chain: Dict, env: Dict, k: Dict) -> Dict:
  """Evaluate the first condition of an if chain"""
  condition = chain['clauses'][0][0]
  if not condition:
    raise UnexpectedTokenError("missing condition in `if`", fragment_span(chain['clauses'][0][1]))
  return expression_invocation(
      condition, env,
      make_if_continuation(chain['clauses'], 0, chain['else'], chain['rest'], env, k))


# ============================================================================
# OPERATOR MACHINE
# ============================================================================

def eval_operator(k: Dict, tokens: Sequence[Any], subject: Any, env: Dict, context: Dict) -> Dict:
  """Resume an operator frame with the value of its operand

  Suffix calls bind tightest and keep the same frame, then `!` applies, then
  binary operators combine left to right unless the next one binds tighter.
  """
  op = k['op']
  head = peek(tokens)

  if is_punct(head, '.') and is_ident(peek(tokens, 1)):
    segments, rest = read_path(tokens[1:])
    builtin = lookup_builtin(segments, env, context)
    if builtin is None:
      raise NameResolutionError(f"no builtin named `{join_path(segments)}` for method call",
                                fragment_span(tokens[1]))
    return invoke_builtin(builtin.function, builtin.path, rest, subject, k, env)

  if is_group(head, PAREN):
    if is_closure(subject):
      return call_closure(subject, head, tokens[1:], env, k)
    raise UnsupportedOperandError(f"`{render_fragment(subject)}` is not a function",
                                  fragment_span(head))

  if op == '!':
    return resume_invocation(k['next'], tokens, negate(subject), env)

  following = binary_operator(head)
  if op is not None:
    if following is not None and PRECEDENCE[following] > PRECEDENCE[op]:
      return eval_primary(tokens[1:], env, make_operator_continuation(following, subject, k), context)
    return resume_invocation(k['next'], tokens, apply_binary(op, k['left'], subject), env)

  if following is not None:
    return eval_primary(tokens[1:], env, make_operator_continuation(following, subject, k), context)
  return resume_invocation(k['next'], tokens, subject, env)


# ============================================================================
# BLOCK MACHINE
# ============================================================================

def eval_block(tokens: Sequence[Any], env: Dict, k: Dict, context: Dict) -> Dict:
  """Evaluate the next statement of a block"""
  head = peek(tokens)
  if head is None:
    return resume_invocation(k, (), UNIT, env)

  if is_punct(head, ';'):
    return block_invocation(tokens[1:], env, k)

  attributes, rest = read_attributes(tokens)
  visibility, rest = read_visibility(rest)
  export = None
  if visibility is not None:
    export = {'visibility': visibility, 'attributes': attributes}
  if attributes or visibility:
    if is_ident(peek(rest), 'let'):
      return eval_let(rest, env, k, export)
    if is_ident(peek(rest), 'fn'):
      return eval_fn(rest, env, k, export, context)
    raise UnexpectedTokenError("expected `let` or `fn` after attributes or visibility",
                               fragment_span(head))

  if is_ident(head, 'let'):
    return eval_let(tokens, env, k, None)

  if is_ident(head, 'fn') and is_ident(peek(tokens, 1)):
    return eval_fn(tokens, env, k, None, context)

  if is_ident(head, 'emit'):
    return eval_emit(tokens, env, k, context)

  if is_ident(head, 'use'):
    return eval_use(tokens, env, k, context)

  if is_ident(head, 'if'):
    chain = split_if_chain(tokens[1:])
    return eval_if_chain(chain, env, make_block_continuation(k))

  return expression_invocation(tokens, env, make_expression_statement_continuation(k))


def eval_let(tokens: Sequence[Any], env: Dict, k: Dict, export: Optional[Dict]) -> Dict:
  """`let PAT = EXPR;`"""
  pattern = peek(tokens, 1)
  if pattern is None or not is_punct(peek(tokens, 2), '='):
    raise UnexpectedTokenError("expected `let PATTERN = EXPRESSION;`", fragment_span(tokens[0]))
  if export is not None and not is_ident(pattern):
    raise UnexpectedTokenError("exported `let` must bind a single identifier", fragment_span(pattern))
  return expression_invocation(tokens[3:], env, make_let_continuation(pattern, export, k))


def eval_fn(tokens: Sequence[Any], env: Dict, k: Dict, export: Optional[Dict], context: Dict) -> Dict:
  """`fn name(PAT) { body }`: the closure does not see its own name"""
  name = peek(tokens, 1)
  if not is_ident(name):
    raise UnexpectedTokenError("expected a function name after `fn`", fragment_span(tokens[0]))
  closure = make_closure(name.text, peek(tokens, 2), peek(tokens, 3), env)
  if export is not None:
    context['unit'] = export_binding(context['unit'], context['module'], name.text, closure,
                                     export['visibility'], export['attributes'])
  return block_invocation(tokens[4:], env_bind(env, name.text, closure), k)


def eval_emit(tokens: Sequence[Any], env: Dict, k: Dict, context: Dict) -> Dict:
  """`emit { ... }`: substitute the body and append it to the output"""
  body = peek(tokens, 1)
  if not is_group(body, BRACE):
    raise UnexpectedTokenError("expected `emit { ... }`", fragment_span(tokens[0]))
  chunk = env_substitute_sequence(body.children, env)
  context['chunks'].append(chunk)
  context['output'].append(render_fragments(chunk))
  if context['debug']:
    print(f"[emit] {render_fragments(chunk)}")
  return block_invocation(tokens[2:], env, k)


def eval_use(tokens: Sequence[Any], env: Dict, k: Dict, context: Dict) -> Dict:
  """`use path (as alias)?;`: bind an export or a builtin in the current scope"""
  path = read_path(tokens[1:])
  if path is None:
    raise UnexpectedTokenError("expected a path after `use`", fragment_span(tokens[0]))
  segments, rest = path
  alias = segments[-1]
  if is_ident(peek(rest), 'as') and is_ident(peek(rest, 1)):
    alias = rest[1].text
    rest = rest[2:]
  rest = expect_terminator(rest, '`use`')

  name = join_path(segments)
  builtin = lookup_builtin(segments, env, context)
  if builtin is not None:
    return block_invocation(rest, env_bind(env, alias, builtin), k)

  entry = resolve_export(context['unit'], segments, context['module'])
  if entry is None:
    raise NameResolutionError(f"unresolved import `{name}`", fragment_span(tokens[1]))
  return invoke_builtin(make_export_builtin(entry), name, rest, UNIT,
                        make_use_continuation(alias, k), env)


# ============================================================================
# CONTINUATION RESUMPTION
# ============================================================================

def resume_continuation(k: Dict, tokens: Sequence[Any], subject: Any, env: Dict, context: Dict) -> Optional[Dict]:
  """Hand a produced value to the continuation frame `k`"""
  kind = k['type']

  if kind == OPERATOR:
    return eval_operator(k, tokens, subject, env, context)

  elif kind == LET_BINDING:
    rest = expect_terminator(tokens, '`let` binding')
    new_env = env_extend(env, k['pattern'], subject)
    export = k['export']
    if export is not None:
      context['unit'] = export_binding(context['unit'], context['module'], k['pattern'].text,
                                       subject, export['visibility'], export['attributes'])
    return block_invocation(rest, new_env, k['next'])

  elif kind == EXPRESSION_STATEMENT:
    if not tokens:
      return resume_invocation(k['next'], (), subject, env)
    rest = expect_terminator(tokens, 'expression')
    return block_invocation(rest, env, k['next'])

  elif kind == IF_CONDITION:
    return resume_if_condition(k, tokens, subject)

  elif kind == PARENT:
    return resume_invocation(k['next'], k['tokens'], subject, k['env'])

  elif kind == BLOCK:
    if not tokens:
      return resume_invocation(k['next'], (), subject, env)
    return block_invocation(tokens, env, k['next'])

  elif kind == USE_IMPORT:
    return block_invocation(tokens, env_bind(env, k['name'], subject), k['next'])

  elif kind == NATIVE:
    handler = k['handler']
    name = getattr(handler, '__name__', 'native continuation')
    return invoke_builtin(handler, name, tokens, subject, k['next'], env)

  elif kind == STOP:
    if tokens:
      raise UnexpectedTokenError(f"unexpected `{preview_tokens(tokens)}` after end of block",
                                 fragment_span(tokens[0]))
    context['result'] = subject if k['keep'] else UNIT
    return None

  raise BuiltinContractViolation(f"unknown continuation kind {kind!r}")


def resume_if_condition(k: Dict, tokens: Sequence[Any], subject: Any) -> Dict:
  """Pick the branch for a finished condition or test the next clause"""
  if tokens:
    raise UnexpectedTokenError(f"unexpected `{preview_tokens(tokens)}` in if condition",
                               fragment_span(tokens[0]))
  taken = require_bool('if', subject)
  clauses, index, saved_env = k['clauses'], k['index'], k['env']

  if taken:
    block = clauses[index][1]
  elif index + 1 < len(clauses):
    return expression_invocation(
        clauses[index + 1][0], saved_env,
        make_if_continuation(clauses, index + 1, k['else_block'], k['rest'], saved_env, k['next']))
  elif k['else_block'] is not None:
    block = k['else_block']
  else:
    return resume_invocation(k['next'], k['rest'], UNIT, saved_env)

  return block_invocation(block.children, env_child(saved_env),
                          make_parent_continuation(k['rest'], saved_env, k['next']))


# ============================================================================
# TRAMPOLINE
# ============================================================================

def format_state_snapshot(invocation: Dict) -> str:
  snapshot = describe_invocation(invocation)
  env = invocation.get('env')
  if env is not None:
    snapshot += f"\nenv:     {render_environment(env)}"
  return snapshot


def step(invocation: Dict, context: Dict) -> Optional[Dict]:
  """Run one transfer of control"""
  state = invocation['state']
  tokens, env, k = invocation['tokens'], invocation['env'], invocation['next']

  if state == STATE_BLOCK:
    return eval_block(tokens, env, k, context)
  elif state == STATE_EXPRESSION:
    return eval_expression(tokens, env, k, context)
  elif state == STATE_RESUME:
    return resume_continuation(k, tokens, invocation['subject'], env, context)
  raise BuiltinContractViolation(f"unknown invocation state {state!r}")


def run_machine(invocation: Dict, context: Dict) -> Any:
  """Trampoline: every continuation invocation returns here"""
  while invocation is not None:
    context['steps'] += 1
    k = invocation['next']
    try:
      if k is not None and k['depth'] > context['recursion_limit']:
        raise RecursionLimitExceeded(
            f"continuation depth exceeded the limit of {context['recursion_limit']}")
      if context['debug']:
        print(f"[step {context['steps']}] {invocation['state']} "
              f"| {preview_tokens(invocation['tokens'])} "
              f"| subject={render_fragment(invocation['subject'])} "
              f"| next={k['type'] if k else None}")
      invocation = step(invocation, context)
    except SpliceRuntimeError as error:
      if error.state_snapshot is None:
        error.state_snapshot = format_state_snapshot(invocation)
      raise
  return context['result']


# ============================================================================
# BLOCK EVALUATION
# ============================================================================

def evaluate_block(fragments: Sequence[Any], unit: Optional[Dict] = None,
                   registry: Optional[Dict] = None, module: str = '',
                   recursion_limit: int = DEFAULT_RECURSION_LIMIT,
                   debug: bool = False, keep_result: bool = True) -> Dict:
  """
  Check and evaluate one block of fragments.
  Returns the block value, emitted chunks and the (possibly extended) unit.
  """
  analyze_block(fragments, debug)
  context = make_execution_context(unit, registry, recursion_limit, debug, module)
  run_machine(block_invocation(fragments, empty_environment(), make_stop(keep_result)), context)
  return make_block_result(context)


def evaluate_source(text: str, filename: str = "<input>", **options) -> Dict:
  """Read and evaluate source text"""
  fragments = create_parser(options.get('debug', False)).parse_string(text, filename)
  return evaluate_block(fragments, **options)


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

def create_interpreter(debug: bool = False, recursion_limit: int = DEFAULT_RECURSION_LIMIT,
                       unit: Optional[Dict] = None, registry: Optional[Dict] = None,
                       module: str = ''):
  """Factory function returning an interpreter

  The compilation unit and registry persist across calls, so exports made by
  one block are visible to the next.
  """
  state = {
      'unit': unit if unit is not None else make_compilation_unit(),
      'registry': registry if registry is not None else create_builtin_registry()
  }

  def interpret(fragments):
    result = evaluate_block(fragments, state['unit'], state['registry'], module,
                            recursion_limit, debug)
    state['unit'] = result['unit']
    state['registry'] = result['registry']
    return result

  def interpret_source(text, filename="<input>"):
    return interpret(create_parser(debug).parse_string(text, filename))

  def add_builtin(path, func):
    state['registry'] = register_builtin(state['registry'], path, func)

  def read_export(path):
    entry = state['unit']['exports'].get(path)
    if entry is None:
      raise NameResolutionError(f"no export named `{path}`")
    return expand_export(entry)

  return type('Interpreter', (), {
      'interpret': lambda self, fragments: interpret(fragments),
      'interpret_source': lambda self, text, filename="<input>": interpret_source(text, filename),
      'register_builtin': lambda self, path, func: add_builtin(path, func),
      'expand_export': lambda self, path: read_export(path),
      'unit': property(lambda self: state['unit']),
      'registry': property(lambda self: state['registry']),
      'debug': debug,
      'recursion_limit': recursion_limit,
      'module': module
  })()


def create_debug_interpreter():
  """Factory function returning a debug interpreter"""
  return create_interpreter(debug=True)
