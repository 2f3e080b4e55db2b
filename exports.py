"""
Splice Exports
Compilation units and their name-addressed export tables
"""

from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from escaping import escape_repetitions, unescape
from patterns import transcribe
from continuations import call_continuation
from utilities import VISIBILITY_MODULE, VISIBILITY_PUBLIC, VISIBILITY_UNIT, join_path
from error_handling import DuplicateBindingError, ExportVisibilityError


ROOT_SEGMENT = 'crate'
VISIBILITIES = (VISIBILITY_PUBLIC, VISIBILITY_UNIT, VISIBILITY_MODULE)


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_compilation_unit(name: str = ROOT_SEGMENT, dependencies: Optional[Sequence[Dict]] = None) -> Dict:
  """Create an empty compilation unit

  `dependencies` are other units whose public exports are reachable as
  `<unit name>::path`.
  """
  return {
      'name': name,
      'exports': {},
      'dependencies': {unit['name']: unit for unit in dependencies or ()}
  }


def make_export_entry(module: str, name: str, value: Any, visibility: str,
                      attributes: Tuple[Any, ...] = ()) -> Dict:
  """Export table entry; the value is kept as a template with repetitions escaped"""
  return {
      'path': join_path([segment for segment in module.split('::') if segment] + [name]),
      'module': module,
      'name': name,
      'template': escape_repetitions(value),
      'visibility': visibility,
      'attributes': tuple(attributes)
  }


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def export_binding(unit: Dict, module: str, name: str, value: Any, visibility: str,
                   attributes: Tuple[Any, ...] = ()) -> Dict:
  """Return a unit with `name` exported from `module`"""
  if visibility not in VISIBILITIES:
    raise ValueError(f"Unknown visibility: {visibility}")
  entry = make_export_entry(module, name, value, visibility, attributes)
  if entry['path'] in unit['exports']:
    raise DuplicateBindingError(f"`{entry['path']}` is already exported")
  return {**unit, 'exports': {**unit['exports'], entry['path']: entry}}


def is_visible(entry: Dict, from_module: str, same_unit: bool = True) -> bool:
  """Visibility of an entry when referenced from `from_module`"""
  visibility = entry['visibility']
  if visibility == VISIBILITY_PUBLIC:
    return True
  if not same_unit:
    return False
  if visibility == VISIBILITY_UNIT:
    return True
  owner = entry['module']
  return not owner or from_module == owner or from_module.startswith(owner + '::')


def resolve_export(unit: Dict, segments: Sequence[str], from_module: str = '') -> Optional[Dict]:
  """Find the export a path refers to

  `crate::a::b` is absolute within the unit, `dep::a` names a dependency
  unit, and anything else is relative to `from_module`. Returns None when no
  export exists; raises ExportVisibilityError when it exists but cannot be
  seen from `from_module`.
  """
  segments = list(segments)
  if segments and segments[0] == 'self':
    segments = segments[1:]
  if not segments:
    return None

  if segments[0] == ROOT_SEGMENT and len(segments) > 1:
    target, path, same_unit = unit, join_path(segments[1:]), True
  elif segments[0] in unit['dependencies'] and len(segments) > 1:
    target, path, same_unit = unit['dependencies'][segments[0]], join_path(segments[1:]), False
  else:
    module_segments = [segment for segment in from_module.split('::') if segment]
    target, path, same_unit = unit, join_path(module_segments + segments), True

  entry = target['exports'].get(path)
  if entry is None:
    return None
  if not is_visible(entry, from_module, same_unit):
    raise ExportVisibilityError(
        f"`{join_path(segments)}` is private to module `{entry['module'] or ROOT_SEGMENT}`")
  return entry


def expand_export(entry: Dict) -> Any:
  """Read an exported value back: transcribe the template, then unescape"""
  return unescape(transcribe(entry['template'], {}))


def make_export_builtin(entry: Dict) -> Callable:
  """Builtin producing the exported value as its subject"""
  def export_builtin(tokens, subject, continuation, patterns, values):
    return call_continuation(continuation, tokens, expand_export(entry), patterns, values)

  export_builtin.__name__ = f"export_{entry['name']}"
  return export_builtin


def list_exports(unit: Dict) -> Dict[str, Any]:
  """Path -> expanded value for every export of the unit"""
  return {path: expand_export(entry) for path, entry in unit['exports'].items()}
