"""
Splice Lexical Reader
Turns source text into syntax fragments: tokens and delimiter-balanced groups
"""

from typing import Any, List, Tuple
import re

from pyparsing import (
    Forward, ParseException, ParserElement, Regex, StringEnd, Suppress, ZeroOrMore,
    col, cpp_style_comment, lineno
)

from fragments import (
    BRACE, BRACKET, CLOSING, IDENT, LIFETIME, LITERAL, PAREN, PUNCT, Group, SourceSpan,
    Token, make_group, make_token, pretty_print_fragment
)
from error_handling import SpliceParseError, parse_error_from_exception

# Enable packrat parsing for performance
ParserElement.enable_packrat()


# Longest first so `::` wins over `:` and `..=` over `..`
PUNCTUATION = (
    '...', '..=', '<<=', '>>=',
    '::', '->', '=>', '==', '!=', '<=', '>=', '&&', '||', '+=', '-=', '*=', '/=',
    '%=', '^=', '&=', '|=', '<<', '>>', '..',
    '+', '-', '*', '/', '%', '^', '!', '&', '|', '=', '<', '>', '@', '.', ',', ';',
    ':', '#', '$', '?', '~', '\\'
)


class SpliceGrammar:
    """Splice token grammar using pyparsing"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.filename = "<input>"
        self._setup_grammar()

    def _span(self, source: str, location: int) -> SourceSpan:
        return SourceSpan(self.filename, lineno(location, source), col(location, source))

    def _token_action(self, kind: str):
        def make(source, location, tokens):
            return make_token(kind, tokens[0], self._span(source, location))
        return make

    def _group_action(self, delimiter: str):
        def make(source, location, tokens):
            return make_group(delimiter, tokens.as_list(), self._span(source, location))
        return make

    def _setup_grammar(self):
        """Setup the grammar: atoms plus the three delimited group kinds"""

        fragment = Forward()

        # Literals
        string_literal = Regex(r'b?"(?:[^"\\]|\\.)*"')
        char_literal = Regex(r"b?'(?:[^'\\]|\\.)'")
        number = Regex(r'[0-9][0-9_]*(?:\.[0-9][0-9_]*)?(?:[eE][+-]?[0-9_]+)?[A-Za-z0-9_]*')
        literal = (string_literal | char_literal | number).set_parse_action(self._token_action(LITERAL))

        lifetime = Regex(r"'[A-Za-z_][A-Za-z0-9_]*").set_parse_action(self._token_action(LIFETIME))
        identifier = Regex(r'[A-Za-z_][A-Za-z0-9_]*').set_parse_action(self._token_action(IDENT))
        punctuation = Regex('|'.join(re.escape(p) for p in PUNCTUATION)).set_parse_action(
            self._token_action(PUNCT))

        # Delimited groups
        def delimited(delimiter: str):
            body = Suppress(delimiter) + ZeroOrMore(fragment) + Suppress(CLOSING[delimiter])
            return body.set_parse_action(self._group_action(delimiter))

        groups = delimited(PAREN) | delimited(BRACKET) | delimited(BRACE)

        fragment <<= groups | literal | lifetime | identifier | punctuation

        program = ZeroOrMore(fragment) + StringEnd()
        program.ignore(cpp_style_comment)

        # Store the main parsers
        self.program = program
        self.fragment = fragment

    def parse_program(self, text: str, filename: str = "<input>") -> Tuple[Any, ...]:
        """Read a complete block of source"""
        self.filename = filename
        try:
            result = self.program.parse_string(text, parse_all=True)
        except ParseException as e:
            raise parse_error_from_exception(e, text, filename)
        fragments = tuple(result.as_list())
        if self.debug:
            print(f"[parse] {filename}: {len(fragments)} top-level fragments")
        return fragments


class SpliceReader:
    """Main reader: source text or files to fragments"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = SpliceGrammar(debug)

    def parse_file(self, filepath: str) -> Tuple[Any, ...]:
        """Read a Splice source file"""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise SpliceParseError(f"File not found: {filepath}", filename=filepath)
        except UnicodeDecodeError as e:
            raise SpliceParseError(f"Cannot decode file {filepath}: {e}", filename=filepath)
        return self.grammar.parse_program(content, filepath)

    def parse_string(self, text: str, filename: str = "<input>") -> Tuple[Any, ...]:
        """Read Splice source from a string"""
        return self.grammar.parse_program(text, filename)

    def tokenize(self, text: str, filename: str = "<input>") -> List[Token]:
        """Flat token list, delimiters included as punctuation"""
        return flatten_fragments(self.parse_string(text, filename))


# Factory functions for creating readers
def create_parser(debug: bool = False) -> SpliceReader:
    """Create a Splice reader"""
    return SpliceReader(debug=debug)


def create_debug_parser() -> SpliceReader:
    """Create a Splice reader with debug enabled"""
    return SpliceReader(debug=True)


# Utility functions for working with fragment trees
def flatten_fragments(fragments) -> List[Token]:
    """Flatten groups back into a token stream"""
    result = []
    for fragment in fragments:
        if isinstance(fragment, Group):
            if fragment.delimiter:
                result.append(Token(PUNCT, fragment.delimiter, fragment.span))
            result.extend(flatten_fragments(fragment.children))
            if fragment.delimiter:
                result.append(Token(PUNCT, CLOSING[fragment.delimiter], fragment.span))
        else:
            result.append(fragment)
    return result


def pretty_print_fragments(fragments) -> str:
    """Pretty print a fragment sequence for debugging"""
    return ''.join(pretty_print_fragment(fragment) for fragment in fragments)
