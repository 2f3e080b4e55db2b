"""
Error handling for Splice
Parse errors with detailed context, plus the fatal runtime error taxonomy
"""

from typing import List, Optional, Dict
from pyparsing import ParseException
import re


# ============================================================================
# PARSE ERRORS
# ============================================================================

class SpliceParseError(Exception):
    """Reader error carrying line/column context"""
    def __init__(self, message: str, location: int = 0, line: int = 0, column: int = 0,
                 expected: Optional[List[str]] = None, got: Optional[str] = None,
                 context: Optional[str] = None, suggestions: Optional[List[str]] = None,
                 filename: str = "<input>"):
        self.message = message
        self.location = location
        self.line = line
        self.column = column
        self.expected = expected or []
        self.got = got
        self.context = context
        self.suggestions = suggestions or []
        self.filename = filename
        super().__init__(message)

    def __str__(self) -> str:
        if not self.line:
            return f"{self.filename}: {self.message}"
        parts = [f"{self.filename}:{self.line}:{self.column}: {self.message}"]
        if self.expected:
            parts.append(f"  expected {' or '.join(self.expected)}")
        if self.got:
            parts.append(f"  found {self.got}")
        if self.context:
            parts.append(self.context)
        parts.extend(f"  hint: {suggestion}" for suggestion in self.suggestions)
        return '\n'.join(parts)


def source_excerpt(source_text: str, line_num: int, col_num: int, radius: int = 2) -> str:
    """Numbered source lines around `line_num` with a caret under the column"""
    lines = source_text.split('\n')
    excerpt = []
    for number in range(max(1, line_num - radius), min(len(lines), line_num + radius) + 1):
        excerpt.append(f"{number:4d} | {lines[number - 1]}")
        if number == line_num:
            excerpt.append(f"     | {' ' * (col_num - 1)}^")
    return '\n'.join(excerpt)


def found_text(source_text: str, line_num: int, col_num: int) -> str:
    """Short description of the text at the error location"""
    lines = source_text.split('\n')
    if line_num > len(lines):
        return "end of input"
    rest = lines[line_num - 1][col_num - 1:col_num + 9].strip()
    return f"'{rest}'" if rest else "end of line"


def count_delimiters(source_text: str) -> Dict[str, int]:
    """Count opening minus closing delimiters, ignoring string contents"""
    stripped = re.sub(r'"(?:[^"\\]|\\.)*"', '""', source_text)
    return {
        '()': stripped.count('(') - stripped.count(')'),
        '[]': stripped.count('[') - stripped.count(']'),
        '{}': stripped.count('{') - stripped.count('}'),
    }


def delimiter_suggestions(source_text: str, got: str) -> List[str]:
    """Hints for unbalanced delimiters and stray characters"""
    suggestions = []

    for pair, balance in count_delimiters(source_text).items():
        if balance > 0:
            suggestions.append(f"{balance} unclosed '{pair[0]}' - add the matching '{pair[1]}'")
        elif balance < 0:
            suggestions.append(f"{-balance} unmatched '{pair[1]}' - remove it or add an opening '{pair[0]}'")

    if "`" in got:
        suggestions.append("Backticks are not tokens in Splice - use a string literal instead")

    if got.startswith("'\"") or source_text.count('"') % 2:
        suggestions.append("String literal is not terminated")

    return suggestions


def parse_error_from_exception(exc: ParseException, source_text: str, filename: str = "<input>") -> SpliceParseError:
    """Convert a pyparsing exception into a SpliceParseError with source context"""
    got = found_text(source_text, exc.lineno, exc.column)
    match = re.search(r"Expected\s+(.+?)(?:,\s+found|\s+\(|$)", str(exc))
    return SpliceParseError(
        message=str(exc),
        location=exc.loc,
        line=exc.lineno,
        column=exc.column,
        expected=[match.group(1)] if match else ["a token or closing delimiter"],
        got=got,
        context=source_excerpt(source_text, exc.lineno, exc.column),
        suggestions=delimiter_suggestions(source_text, got),
        filename=filename
    )


# ============================================================================
# SEMANTIC ERRORS (raised before evaluation)
# ============================================================================

class SpliceSemanticsError(Exception):
    """Static check failure"""
    def __init__(self, message: str, span=None):
        self.message = message
        self.span = span
        super().__init__(f"{span}: {message}" if span else message)


class MissingElseError(SpliceSemanticsError):
    """`if` in expression position without a final `else`"""
    pass


# ============================================================================
# RUNTIME ERRORS (fatal, abort the whole block)
# ============================================================================

class SpliceRuntimeError(Exception):
    """Base class of every evaluation failure"""
    def __init__(self, message: str, span=None):
        self.message = message
        self.span = span
        self.state_snapshot: Optional[str] = None
        super().__init__(f"{span}: {message}" if span else message)


class NameResolutionError(SpliceRuntimeError):
    """Identifier is neither a local binding, a builtin nor an export"""
    pass


class ExportVisibilityError(NameResolutionError):
    """Export exists but is not visible from the requesting module"""
    pass


class DuplicateBindingError(SpliceRuntimeError):
    """Name declared twice in the same scope"""
    pass


class PatternMismatchError(SpliceRuntimeError):
    """Pattern does not structurally fit the value"""
    pass


class InvalidPatternError(PatternMismatchError):
    """Matcher syntax is malformed"""
    pass


class UnsupportedOperandError(SpliceRuntimeError):
    """Operator applied to a fragment of the wrong shape"""
    pass


class BuiltinContractViolation(SpliceRuntimeError):
    """Builtin did not return a well-formed continuation invocation"""
    pass


class RecursionLimitExceeded(SpliceRuntimeError):
    """Continuation chain grew past the configured limit"""
    pass


class UnexpectedTokenError(SpliceRuntimeError):
    """Statement or expression has an unexpected shape"""
    pass


class TranscriptionError(SpliceRuntimeError):
    """Invalid repetition while substituting bindings"""
    pass


class BreakpointError(SpliceRuntimeError):
    """Raised by the breakpoint builtin with the evaluator state"""
    pass


def format_runtime_error(error: SpliceRuntimeError, debug: bool = False) -> str:
    """Format a runtime error, with its state snapshot in debug mode"""
    result = f"{type(error).__name__}: {error}"
    if debug and error.state_snapshot:
        result += "\n  Evaluator state:\n"
        result += '\n'.join(f"    {line}" for line in error.state_snapshot.split('\n'))
    return result
