"""
Splice - Main Entry Point
Compile-stage interpreter whose values are syntax fragments
"""

import sys
import argparse
from pathlib import Path
import os

# Readline support for history in interactive mode
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from fragments import UNIT, render_fragment
from parsing import create_parser, create_debug_parser, pretty_print_fragments
from semantics import create_analyzer, create_debug_analyzer
from interpreter import DEFAULT_RECURSION_LIMIT, create_interpreter
from error_handling import (
  SpliceParseError, SpliceRuntimeError, SpliceSemanticsError, format_runtime_error
)


VERSION = 'Splice v0.1.0'


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      description='Splice - evaluate a block and print the code it emits',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.splice              # Run a script, print emitted output
  %(prog)s -i                         # Interactive mode
  %(prog)s --tokens script.splice     # Show the fragment tree
  %(prog)s --analyze script.splice    # Show the statement summary
  %(prog)s --debug script.splice      # Trace every evaluation step
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='Splice script file to evaluate'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--tokens',
      action='store_true',
      help='Read file and show the fragment tree (for debugging)'
  )

  parser.add_argument(
      '--analyze',
      action='store_true',
      help='Read and check file, show the statement summary (for debugging)'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Enable debug output for all stages'
  )

  parser.add_argument(
      '--recursion-limit',
      type=int,
      default=DEFAULT_RECURSION_LIMIT,
      help=f'Maximum continuation depth (default: {DEFAULT_RECURSION_LIMIT})'
  )

  parser.add_argument(
      '--module',
      default='',
      help='Module path the block is evaluated in, e.g. a::b'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


def show_tokens(script_path: str, debug: bool = False) -> int:
  """Read a script file and show the fragment tree"""
  try:
    parser = create_debug_parser() if debug else create_parser()
    fragments = parser.parse_file(script_path)
    print(f"Read {len(fragments)} top-level fragments:")
    print("=" * 50)
    print(pretty_print_fragments(fragments), end='')
    return 0
  except SpliceParseError as e:
    print(f"Parse error in '{script_path}': {e}")
    return 1


def analyze_file(script_path: str, debug: bool = False) -> int:
  """Read and check a script file, show the statement summary"""
  try:
    parser = create_debug_parser() if debug else create_parser()
    analyzer = create_debug_analyzer() if debug else create_analyzer()
    statements = analyzer.analyze(parser.parse_file(script_path))
    print(f"Checked {len(statements)} statements:")
    print("=" * 50)
    print(analyzer.format(statements))
    return 0
  except SpliceParseError as e:
    print(f"Parse error in '{script_path}': {e}")
    return 1
  except (SpliceSemanticsError, SpliceRuntimeError) as e:
    print(f"Semantic analysis error in '{script_path}': {e}")
    return 1


def print_result(result, debug: bool = False) -> None:
  """Emitted chunks one per line, then the block value unless it is unit"""
  for line in result['output']:
    print(line)
  if result['value'] != UNIT:
    print(f"=> {render_fragment(result['value'])}")
  if debug:
    print(f"[{result['steps']} steps, {len(result['exports'])} exports]")


def run_script_file(script_path: str, debug: bool = False,
                    recursion_limit: int = DEFAULT_RECURSION_LIMIT, module: str = '') -> int:
  """Evaluate a script file and print what it emits"""
  interpreter = create_interpreter(debug=debug, recursion_limit=recursion_limit, module=module)
  try:
    parser = create_debug_parser() if debug else create_parser()
    result = interpreter.interpret(parser.parse_file(script_path))
    print_result(result, debug)
    return 0
  except SpliceParseError as e:
    print(f"Parse error in '{script_path}': {e}")
    return 1
  except SpliceSemanticsError as e:
    print(f"Semantic analysis error in '{script_path}': {e}")
    return 1
  except SpliceRuntimeError as e:
    print(f"\n{'='*70}")
    print(f"Runtime Error in '{script_path}'")
    print(f"{'='*70}")
    print(f"\n{format_runtime_error(e, debug)}")
    print(f"\n{'='*70}\n")
    return 1


def setup_readline() -> None:
  """Setup readline history for interactive mode"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.splice_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First run, no history yet

  readline.set_history_length(1000)

  import atexit
  atexit.register(readline.write_history_file, history_file)


def run_interactive_mode(debug: bool = False, recursion_limit: int = DEFAULT_RECURSION_LIMIT,
                         module: str = '') -> None:
  """Evaluate one block per line; exports persist between lines"""
  print(f"{VERSION} - Interactive Mode")
  print("Type 'exit' to quit, ':exports' to list exports")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()

  parser = create_debug_parser() if debug else create_parser()
  interpreter = create_interpreter(debug=debug, recursion_limit=recursion_limit, module=module)
  line_number = 0

  while True:
    try:
      line = input("splice> ")
    except (EOFError, KeyboardInterrupt):
      print()
      break

    line = line.strip()
    if not line:
      continue
    if line in ('exit', 'quit'):
      break
    line_number += 1
    try:
      if line == ':exports':
        for path in interpreter.unit['exports']:
          print(f"  {path} = {render_fragment(interpreter.expand_export(path))}")
        continue
      result = interpreter.interpret(parser.parse_string(line, f"<line {line_number}>"))
      print_result(result, debug)
    except SpliceParseError as e:
      print(f"Parse error: {e}")
    except SpliceSemanticsError as e:
      print(f"Semantic analysis error: {e}")
    except SpliceRuntimeError as e:
      print(format_runtime_error(e, debug))


def main() -> None:
  """Main entry point for Splice"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args()

  if args.script:
    if not Path(args.script).exists():
      print(f"Error: Script file '{args.script}' does not exist")
      sys.exit(1)

    if args.tokens:
      status = show_tokens(args.script, debug=args.debug)
    elif args.analyze:
      status = analyze_file(args.script, debug=args.debug)
    else:
      status = run_script_file(args.script, debug=args.debug,
                               recursion_limit=args.recursion_limit, module=args.module)
    sys.exit(status)

  elif args.interactive:
    run_interactive_mode(debug=args.debug, recursion_limit=args.recursion_limit,
                         module=args.module)

  else:
    arg_parser.print_help()


if __name__ == "__main__":
  main()
