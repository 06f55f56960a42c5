#!/usr/bin/env python3
"""
Regex pattern compiler.

Parses a regular expression source string into an immutable AST of matching
nodes that the backtracking matcher in regex_matcher.py walks. The accepted
syntax is a Python/PCRE-flavoured subset: literals, alternation, groups
(capturing, named, non-capturing, inline-flag), character classes,
greedy and lazy quantifiers, anchors, word boundaries, backreferences and
look-around assertions.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Union, List, Tuple, Optional

logger = logging.getLogger(__name__)

# Quantifier max_count value meaning "no upper bound"
UNBOUNDED = -1

# Deepest group nesting accepted by the parser
MAX_NESTING_DEPTH = 100

# Highest code point, used when complementing character ranges
MAX_CODEPOINT = 0x10FFFF

# Anchor kinds
START_INPUT = "start_input"
END_INPUT = "end_input"
START_LINE = "start_line"
END_LINE = "end_line"

# ASCII definitions of the shorthand classes
DIGIT_RANGES = (('0', '9'),)
WORD_RANGES = (('0', '9'), ('A', 'Z'), ('_', '_'), ('a', 'z'))
SPACE_RANGES = (('\t', '\r'), (' ', ' '))  # \t \n \v \f \r and space

SHORTHAND_RANGES = {
    'd': DIGIT_RANGES,
    'w': WORD_RANGES,
    's': SPACE_RANGES,
}

CONTROL_ESCAPES = {
    'n': '\n',
    't': '\t',
    'r': '\r',
    'f': '\f',
    'v': '\v',
    'a': '\a',
}

HEX_ESCAPE_LENGTHS = {'x': 2, 'u': 4, 'U': 8}

FLAG_LETTERS = "imsx"

# Characters that need a backslash when rendered back into a pattern
METACHARACTERS = "\\[]{}()*+?|^$."
CLASS_METACHARACTERS = "\\[]^-"


# =============================================================================
# Errors and Flags
# =============================================================================

class ErrorKind(Enum):
    """Categories of pattern compilation failures."""
    UNBALANCED_GROUP = "unbalanced group"
    INVALID_QUANTIFIER_RANGE = "invalid quantifier"
    VARIABLE_WIDTH_LOOKBEHIND = "variable-width look-behind"
    UNDEFINED_BACKREFERENCE = "undefined backreference"
    DUPLICATE_GROUP_NAME = "duplicate group name"
    INVALID_SYNTAX = "invalid syntax"


class CompileError(ValueError):
    """Raised when a pattern (or replacement template) cannot be compiled."""

    def __init__(self, kind: ErrorKind, message: str,
                 pattern: Optional[str] = None, pos: Optional[int] = None):
        self.kind = kind
        self.msg = message
        self.pattern = pattern
        self.pos = pos
        if pos is not None:
            message = f"{message} at position {pos}"
        super().__init__(message)


@dataclass(frozen=True)
class Flags:
    """Compile-time matching options."""
    ignore_case: bool = False
    multiline: bool = False
    dot_all: bool = False
    verbose: bool = False

    @classmethod
    def from_letters(cls, letters: str) -> 'Flags':
        """Build flags from inline-flag letters such as "im"."""
        return cls().with_letters(letters)

    def with_letters(self, on: str, off: str = "") -> 'Flags':
        """Return a copy with the letters in `on` set and those in `off` cleared."""
        values = {}
        for letters, value in ((on, True), (off, False)):
            for letter in letters:
                if letter not in FLAG_LETTERS:
                    raise ValueError(f"Unknown flag letter {letter!r}")
                values[_FLAG_FIELDS[letter]] = value
        return replace(self, **values)

    def letters(self) -> str:
        return "".join(letter for letter in FLAG_LETTERS
                       if getattr(self, _FLAG_FIELDS[letter]))


_FLAG_FIELDS = {
    'i': "ignore_case",
    'm': "multiline",
    's': "dot_all",
    'x': "verbose",
}


# =============================================================================
# AST Node Types
# =============================================================================

@dataclass(frozen=True)
class Literal:
    """A literal character to match."""
    char: str
    ignore_case: bool = False

    def __repr__(self):
        suffix = ", i" if self.ignore_case else ""
        return f"Literal({self.char!r}{suffix})"


@dataclass(frozen=True)
class AnyChar:
    """Matches any character (.), newline only in dot-all mode."""
    dot_all: bool = False

    def __repr__(self):
        return "AnyChar(s)" if self.dot_all else "AnyChar()"


@dataclass(frozen=True)
class CharClass:
    """A character class like [a-z] or [^0-9]."""
    ranges: Tuple[Tuple[str, str], ...]  # sorted, merged (low, high) pairs
    negated: bool = False

    def matches(self, ch: str) -> bool:
        for low, high in self.ranges:
            if ch < low:
                break
            if ch <= high:
                return not self.negated
        return self.negated

    def __repr__(self):
        neg = "^" if self.negated else ""
        items = ", ".join(low if low == high else f"{low}-{high}"
                          for low, high in self.ranges)
        return f"CharClass({neg}[{items!s}])"


@dataclass(frozen=True)
class Concat:
    """Sequence of patterns (abc)."""
    children: Tuple['Node', ...]

    def __repr__(self):
        return f"Concat({list(self.children)})"


@dataclass(frozen=True)
class Alternation:
    """Ordered alternation of patterns (a|b|c)."""
    alternatives: Tuple['Node', ...]

    def __repr__(self):
        return f"Alt({list(self.alternatives)})"


@dataclass(frozen=True)
class Group:
    """A group; index is None for non-capturing groups."""
    child: 'Node'
    index: Optional[int] = None
    name: Optional[str] = None

    def __repr__(self):
        if self.index is None:
            return f"Group(?:{self.child})"
        label = f"{self.index}" if self.name is None else f"{self.index}:{self.name}"
        return f"Group#{label}({self.child})"


@dataclass(frozen=True)
class Quantifier:
    """Quantifier applied to a node."""
    child: 'Node'
    min_count: int
    max_count: int  # UNBOUNDED (-1) means unlimited
    greedy: bool = True

    def __repr__(self):
        q = _quantifier_suffix(self)
        return f"Quantifier({self.child}, {q})"


@dataclass(frozen=True)
class Anchor:
    """Zero-width anchor: start/end of input or of a line."""
    kind: str

    def __repr__(self):
        return f"Anchor({self.kind})"


@dataclass(frozen=True)
class WordBoundary:
    """\\b, or \\B when negated."""
    negated: bool = False

    def __repr__(self):
        return "\\B" if self.negated else "\\b"


@dataclass(frozen=True)
class Backreference:
    """Matches the text most recently captured by group `index`."""
    index: int
    name: Optional[str] = None
    ignore_case: bool = False

    def __repr__(self):
        return f"Backref({self.name or self.index})"


@dataclass(frozen=True)
class LookAround:
    """Look-ahead or look-behind assertion, positive or negative."""
    child: 'Node'
    ahead: bool
    positive: bool
    width: int = 0  # fixed width of child, used by look-behind

    def __repr__(self):
        direction = "" if self.ahead else "<"
        op = "=" if self.positive else "!"
        return f"LookAround({direction}{op}{self.child})"


# Type alias for all node types
Node = Union[
    Literal, AnyChar, CharClass, Concat, Alternation, Group,
    Quantifier, Anchor, WordBoundary, Backreference, LookAround
]

ZERO_WIDTH_ASSERTIONS = (Anchor, WordBoundary, LookAround)
SINGLE_CHAR_NODES = (Literal, AnyChar, CharClass)

EMPTY = Concat(())


# =============================================================================
# Character Range Helpers
# =============================================================================

def normalize_ranges(ranges) -> Tuple[Tuple[str, str], ...]:
    """Sort ranges and merge overlapping or adjacent ones."""
    merged: List[List[int]] = []
    for low, high in sorted((ord(lo), ord(hi)) for lo, hi in ranges):
        if merged and low <= merged[-1][1] + 1:
            merged[-1][1] = max(merged[-1][1], high)
        else:
            merged.append([low, high])
    return tuple((chr(lo), chr(hi)) for lo, hi in merged)


def complement_ranges(ranges) -> Tuple[Tuple[str, str], ...]:
    """Ranges covering every code point not covered by `ranges`."""
    result = []
    next_low = 0
    for low, high in normalize_ranges(ranges):
        if ord(low) > next_low:
            result.append((chr(next_low), chr(ord(low) - 1)))
        next_low = ord(high) + 1
    if next_low <= MAX_CODEPOINT:
        result.append((chr(next_low), chr(MAX_CODEPOINT)))
    return tuple(result)


def fold_case_ranges(ranges) -> Tuple[Tuple[str, str], ...]:
    """Add the opposite-case ASCII letters of every range."""
    extra = []
    for low, high in ranges:
        for first, last, shift in (('a', 'z', -32), ('A', 'Z', 32)):
            lo = max(ord(low), ord(first))
            hi = min(ord(high), ord(last))
            if lo <= hi:
                extra.append((chr(lo + shift), chr(hi + shift)))
    return normalize_ranges(list(ranges) + extra)


def _has_case(ch: str) -> bool:
    return ch.lower() != ch.upper()


def fixed_width(node: Node) -> Optional[int]:
    """Return the statically known match width of a node, or None."""
    if isinstance(node, SINGLE_CHAR_NODES):
        return 1
    if isinstance(node, ZERO_WIDTH_ASSERTIONS):
        return 0
    if isinstance(node, Concat):
        total = 0
        for child in node.children:
            width = fixed_width(child)
            if width is None:
                return None
            total += width
        return total
    if isinstance(node, Alternation):
        widths = {fixed_width(alt) for alt in node.alternatives}
        if len(widths) != 1:
            return None
        return widths.pop()
    if isinstance(node, Group):
        return fixed_width(node.child)
    if isinstance(node, Quantifier):
        if node.min_count != node.max_count:
            return None
        width = fixed_width(node.child)
        if width is None:
            return None
        return width * node.min_count
    if isinstance(node, Backreference):
        return None
    raise ValueError(f"Unsupported node type: {type(node)}")


# =============================================================================
# Hand-written Recursive Descent Parser
# =============================================================================

class RegexParser:
    """
    Recursive descent parser for the supported regex syntax.

    Grammar (roughly):
        pattern     -> global_flags? alternation
        alternation -> sequence ('|' sequence)*
        sequence    -> term*
        term        -> atom quantifier?
        atom        -> literal | escape | charclass | group | '.' | '^' | '$'
        quantifier  -> ('*' | '+' | '?' | '{n}' | '{n,}' | '{,m}' | '{n,m}') '?'?
        group       -> '(' alternation ')' | '(?:' alternation ')'
                     | '(?P<name>' alternation ')' | '(?<name>' alternation ')'
                     | '(?=' | '(?!' | '(?<=' | '(?<!' alternation ')'
                     | '(?' flags ('-' flags)? ':' alternation ')'
                     | '(?P=name)'
        charclass   -> '[' '^'? ']'? (cc_item ('-' cc_item)?)* ']'
    """

    def __init__(self, pattern: str, flags: Flags = Flags()):
        self.pattern = pattern
        self.pos = 0
        self.length = len(pattern)
        self.flags = flags
        self.global_flags = flags
        self.group_count = 0
        self.group_names = {}
        self.open_groups = set()
        self.depth = 0

    def parse(self) -> Node:
        self._parse_global_flags()
        result = self._parse_alternation()
        if self.pos < self.length:
            # Only a stray ')' stops the top-level alternation early
            raise self._error(ErrorKind.UNBALANCED_GROUP, "unbalanced parenthesis")
        return result

    def _error(self, kind: ErrorKind, message: str, pos: Optional[int] = None) -> CompileError:
        return CompileError(kind, message, self.pattern, self.pos if pos is None else pos)

    def _peek(self, offset: int = 0) -> Optional[str]:
        pos = self.pos + offset
        if pos < self.length:
            return self.pattern[pos]
        return None

    def _advance(self, count: int = 1):
        self.pos += count

    def _match(self, s: str) -> bool:
        if self.pattern.startswith(s, self.pos):
            self.pos += len(s)
            return True
        return False

    def _skip_ignored(self):
        """Skip whitespace and comments in verbose mode."""
        if not self.flags.verbose:
            return
        while self.pos < self.length:
            ch = self.pattern[self.pos]
            if ch in " \t\n\r\f\v":
                self.pos += 1
            elif ch == '#':
                newline = self.pattern.find('\n', self.pos)
                self.pos = self.length if newline == -1 else newline + 1
            else:
                break

    def _parse_global_flags(self):
        """Apply leading (?imsx) groups to the whole pattern."""
        while self.pattern.startswith("(?", self.pos):
            end = self.pos + 2
            while end < self.length and self.pattern[end] in FLAG_LETTERS:
                end += 1
            if end == self.pos + 2 or end >= self.length or self.pattern[end] != ')':
                return
            self.flags = self.flags.with_letters(self.pattern[self.pos + 2:end])
            self.global_flags = self.flags
            self.pos = end + 1

    def _parse_alternation(self) -> Node:
        """Parse alternation: sequence ('|' sequence)*"""
        alternatives = [self._parse_sequence()]

        while self._peek() == '|':
            self._advance()
            alternatives.append(self._parse_sequence())

        if len(alternatives) == 1:
            return alternatives[0]
        return Alternation(tuple(alternatives))

    def _parse_sequence(self) -> Node:
        """Parse sequence: term*"""
        terms = []

        while True:
            self._skip_ignored()
            ch = self._peek()
            # Stop at alternation or group end
            if ch is None or ch in '|)':
                break
            terms.append(self._parse_term())

        if len(terms) == 1:
            return terms[0]
        return Concat(tuple(terms))

    def _parse_term(self) -> Node:
        """Parse term: atom quantifier?"""
        atom_pos = self.pos
        atom = self._parse_atom()
        self._skip_ignored()

        quantifier = self._parse_quantifier()
        if quantifier is None:
            return atom

        if isinstance(atom, ZERO_WIDTH_ASSERTIONS):
            raise self._error(ErrorKind.INVALID_QUANTIFIER_RANGE,
                              "cannot repeat a zero-width assertion", atom_pos)

        self._skip_ignored()
        if self._at_quantifier():
            raise self._error(ErrorKind.INVALID_QUANTIFIER_RANGE, "multiple repeat")

        min_c, max_c, greedy = quantifier
        return Quantifier(atom, min_c, max_c, greedy)

    def _parse_atom(self) -> Node:
        """Parse atom: literal | escape | charclass | group | '.' | anchor"""
        ch = self._peek()

        # Character class
        if ch == '[':
            return self._parse_charclass()

        # Group
        if ch == '(':
            return self._parse_group()

        if ch == ']':
            raise self._error(ErrorKind.UNBALANCED_GROUP, "unbalanced bracket")

        # Escape sequence
        if ch == '\\':
            return self._parse_escape()

        # Any character
        if ch == '.':
            self._advance()
            return AnyChar(self.flags.dot_all)

        # Anchors
        if ch == '^':
            self._advance()
            return Anchor(START_LINE if self.flags.multiline else START_INPUT)
        if ch == '$':
            self._advance()
            return Anchor(END_LINE if self.flags.multiline else END_INPUT)

        # Quantifiers shouldn't appear here
        if self._at_quantifier():
            raise self._error(ErrorKind.INVALID_QUANTIFIER_RANGE, "nothing to repeat")

        # Literal character
        self._advance()
        return self._literal(ch)

    def _literal(self, ch: str) -> Literal:
        return Literal(ch, self.flags.ignore_case and _has_case(ch))

    # -------------------------------------------------------------------------
    # Escapes
    # -------------------------------------------------------------------------

    def _parse_escape(self) -> Node:
        """Parse escape sequence outside a character class."""
        escape_pos = self.pos
        self._advance()  # consume '\'
        ch = self._peek()

        if ch is None:
            raise self._error(ErrorKind.INVALID_SYNTAX, "bad escape (end of pattern)", escape_pos)

        # Predefined classes
        if ch in 'dDwWsS':
            self._advance()
            return self._make_class(SHORTHAND_RANGES[ch.lower()], negated=ch.isupper())

        if ch in 'bB':
            self._advance()
            return WordBoundary(negated=(ch == 'B'))

        if ch == 'A':
            self._advance()
            return Anchor(START_INPUT)
        if ch in 'Zz':
            self._advance()
            return Anchor(END_INPUT)

        # Numbered backreference: one or two digits
        if ch in '123456789':
            start = self.pos
            self._advance()
            if self._peek() is not None and self._peek() in '0123456789':
                self._advance()
            return self._backreference(int(self.pattern[start:self.pos]), escape_pos)

        # Named backreference: \k<name>
        if ch == 'k':
            self._advance()
            if not self._match('<'):
                raise self._error(ErrorKind.INVALID_SYNTAX, "missing < after \\k")
            name = self._parse_name('>')
            return self._named_backreference(name, escape_pos)

        return self._literal(self._parse_char_escape(escape_pos, in_class=False))

    def _parse_char_escape(self, escape_pos: int, in_class: bool) -> str:
        """Parse an escape that denotes a single character."""
        ch = self._peek()
        if ch is None:
            raise self._error(ErrorKind.INVALID_SYNTAX, "bad escape (end of pattern)", escape_pos)

        if ch in CONTROL_ESCAPES:
            self._advance()
            return CONTROL_ESCAPES[ch]

        # Inside a class \b is a backspace
        if in_class and ch == 'b':
            self._advance()
            return '\b'

        # Octal: \0 followed by up to two octal digits
        if ch == '0':
            self._advance()
            start = self.pos
            while self.pos - start < 2 and self._peek() is not None and self._peek() in '01234567':
                self._advance()
            return chr(int(self.pattern[start:self.pos] or '0', 8))

        # Hex escapes: \xNN, \uNNNN, \UNNNNNNNN
        if ch in HEX_ESCAPE_LENGTHS:
            self._advance()
            size = HEX_ESCAPE_LENGTHS[ch]
            hex_digits = self.pattern[self.pos:self.pos + size]
            if len(hex_digits) != size or any(c not in "0123456789abcdefABCDEF" for c in hex_digits):
                raise self._error(ErrorKind.INVALID_SYNTAX, f"incomplete escape \\{ch}{hex_digits}", escape_pos)
            value = int(hex_digits, 16)
            if value > MAX_CODEPOINT:
                raise self._error(ErrorKind.INVALID_SYNTAX, f"bad escape \\{ch}{hex_digits}", escape_pos)
            self._advance(size)
            return chr(value)

        # Unknown letter or digit escapes are reserved
        if ch.isascii() and ch.isalnum():
            raise self._error(ErrorKind.INVALID_SYNTAX, f"bad escape \\{ch}", escape_pos)

        # Escaped literal (special chars)
        self._advance()
        return ch

    def _backreference(self, index: int, pos: int) -> Backreference:
        if index > self.group_count:
            raise self._error(ErrorKind.UNDEFINED_BACKREFERENCE, f"invalid group reference {index}", pos)
        if index in self.open_groups:
            raise self._error(ErrorKind.UNDEFINED_BACKREFERENCE, "cannot refer to an open group", pos)
        return Backreference(index, None, self.flags.ignore_case)

    def _named_backreference(self, name: str, pos: int) -> Backreference:
        if name not in self.group_names:
            raise self._error(ErrorKind.UNDEFINED_BACKREFERENCE, f"unknown group name {name!r}", pos)
        ref = self._backreference(self.group_names[name], pos)
        return Backreference(ref.index, name, ref.ignore_case)

    def _parse_name(self, terminator: str) -> str:
        """Read a group name up to (and consuming) the terminator."""
        start = self.pos
        end = self.pattern.find(terminator, start)
        if end == -1:
            raise self._error(ErrorKind.INVALID_SYNTAX, f"missing {terminator}, unterminated name")
        name = self.pattern[start:end]
        if not name.isidentifier():
            raise self._error(ErrorKind.INVALID_SYNTAX, f"bad character in group name {name!r}")
        self.pos = end + 1
        return name

    # -------------------------------------------------------------------------
    # Character classes
    # -------------------------------------------------------------------------

    def _parse_charclass(self) -> CharClass:
        """Parse character class: [...]"""
        open_pos = self.pos
        self._advance()  # consume '['

        negated = self._match('^')
        ranges = []
        first = True

        while True:
            ch = self._peek()
            if ch is None:
                raise self._error(ErrorKind.UNBALANCED_GROUP, "unterminated character set", open_pos)
            # A ']' right after '[' or '[^' is literal
            if ch == ']' and not first:
                self._advance()
                break
            first = False

            item_pos = self.pos
            item = self._parse_cc_item()

            # Check for range; a '-' before ']' is literal
            if isinstance(item, str) and self._peek() == '-' and self._peek(1) not in (']', None):
                self._advance()  # consume '-'
                end_item = self._parse_cc_item()
                if not isinstance(end_item, str) or end_item < item:
                    raise self._error(ErrorKind.INVALID_SYNTAX, "bad character range",
                                      item_pos)
                ranges.append((item, end_item))
            elif isinstance(item, str):
                ranges.append((item, item))
            else:
                ranges.extend(item)

        return self._make_class(ranges, negated)

    def _parse_cc_item(self):
        """Parse one class member: a single char, or the ranges of a shorthand."""
        ch = self._peek()

        if ch == '\\':
            escape_pos = self.pos
            self._advance()
            ch = self._peek()
            if ch is not None and ch in 'dDwWsS':
                self._advance()
                ranges = SHORTHAND_RANGES[ch.lower()]
                return complement_ranges(ranges) if ch.isupper() else ranges
            return self._parse_char_escape(escape_pos, in_class=True)

        self._advance()
        return ch

    def _make_class(self, ranges, negated: bool) -> CharClass:
        if self.flags.ignore_case:
            return CharClass(fold_case_ranges(ranges), negated)
        return CharClass(normalize_ranges(ranges), negated)

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    def _parse_group(self) -> Node:
        """Parse group: (...) with various modifiers."""
        open_pos = self.pos
        self._advance()  # consume '('

        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise self._error(ErrorKind.INVALID_SYNTAX, "groups nested too deeply", open_pos)

        if self._match('?'):
            node = self._parse_extension(open_pos)
        else:
            node = self._parse_capture(open_pos, None)

        self.depth -= 1
        return node

    def _close_group(self, open_pos: int):
        if not self._match(')'):
            raise self._error(ErrorKind.UNBALANCED_GROUP, "missing ), unterminated subpattern", open_pos)

    def _parse_capture(self, open_pos: int, name: Optional[str]) -> Group:
        """Parse the body of a capturing group, assigning its index."""
        if name is not None:
            if name in self.group_names:
                raise self._error(ErrorKind.DUPLICATE_GROUP_NAME,
                                  f"redefinition of group name {name!r}", open_pos)
        self.group_count += 1
        index = self.group_count
        if name is not None:
            self.group_names[name] = index

        self.open_groups.add(index)
        child = self._parse_alternation()
        self._close_group(open_pos)
        self.open_groups.discard(index)
        return Group(child, index, name)

    def _parse_extension(self, open_pos: int) -> Node:
        """Parse the part of a group following '(?'."""
        # Non-capturing: (?:...)
        if self._match(':'):
            child = self._parse_alternation()
            self._close_group(open_pos)
            return Group(child)

        # Named group: (?P<name>...)
        if self._match('P<'):
            name = self._parse_name('>')
            return self._parse_capture(open_pos, name)

        # Named backreference: (?P=name)
        if self._match('P='):
            name = self._parse_name(')')
            return self._named_backreference(name, open_pos)

        # Lookahead: (?=...) or (?!...)
        if self._peek() in ('=', '!'):
            positive = self._peek() == '='
            self._advance()
            child = self._parse_alternation()
            self._close_group(open_pos)
            return LookAround(child, ahead=True, positive=positive)

        # Lookbehind: (?<=...) or (?<!...)
        if self._peek() == '<' and self._peek(1) in ('=', '!'):
            positive = self._peek(1) == '='
            self._advance(2)
            child = self._parse_alternation()
            self._close_group(open_pos)
            width = fixed_width(child)
            if width is None:
                raise self._error(ErrorKind.VARIABLE_WIDTH_LOOKBEHIND,
                                  "look-behind requires fixed-width pattern", open_pos)
            return LookAround(child, ahead=False, positive=positive, width=width)

        # Named group: (?<name>...)
        if self._match('<'):
            name = self._parse_name('>')
            return self._parse_capture(open_pos, name)

        # Inline flags: (?i:...), (?ms-i:...)
        if self._peek() is not None and self._peek() in FLAG_LETTERS + '-':
            return self._parse_flag_group(open_pos)

        modifier = self._peek()
        raise self._error(ErrorKind.INVALID_SYNTAX, f"unknown extension ?{modifier or ''}", open_pos)

    def _read_flag_letters(self) -> str:
        start = self.pos
        while self._peek() is not None and self._peek() in FLAG_LETTERS:
            self._advance()
        return self.pattern[start:self.pos]

    def _parse_flag_group(self, open_pos: int) -> Node:
        """Parse a scoped inline-flag group (?flags-flags:...)."""
        on = self._read_flag_letters()
        off = ""
        if self._match('-'):
            off = self._read_flag_letters()
            if not off:
                raise self._error(ErrorKind.INVALID_SYNTAX, "missing flag after -")

        if self._peek() == ')':
            raise self._error(ErrorKind.INVALID_SYNTAX,
                              "global flags not at the start of the expression", open_pos)
        if not self._match(':'):
            raise self._error(ErrorKind.INVALID_SYNTAX, "missing : after inline flags")

        saved = self.flags
        self.flags = self.flags.with_letters(on, off)
        child = self._parse_alternation()
        self.flags = saved
        self._close_group(open_pos)
        return Group(child)

    # -------------------------------------------------------------------------
    # Quantifiers
    # -------------------------------------------------------------------------

    def _scan_braces(self) -> Optional[Tuple[int, int, int]]:
        """Scan a {n}, {n,}, {,m} or {n,m} quantifier at the current position.

        Returns:
            Tuple of (min, max, end position), or None when the brace is a
            plain literal
        """
        digits = "0123456789"
        i = self.pos + 1
        j = i
        while j < self.length and self.pattern[j] in digits:
            j += 1
        low = self.pattern[i:j]

        if j < self.length and self.pattern[j] == '}':
            if not low:
                return None
            return int(low), int(low), j + 1

        if j >= self.length or self.pattern[j] != ',':
            return None

        k = j + 1
        while k < self.length and self.pattern[k] in digits:
            k += 1
        high = self.pattern[j + 1:k]
        if k >= self.length or self.pattern[k] != '}':
            return None

        min_c = int(low) if low else 0
        max_c = int(high) if high else UNBOUNDED
        return min_c, max_c, k + 1

    def _at_quantifier(self) -> bool:
        ch = self._peek()
        if ch is None:
            return False
        if ch in '*+?':
            return True
        return ch == '{' and self._scan_braces() is not None

    def _parse_quantifier(self) -> Optional[Tuple[int, int, bool]]:
        """Parse quantifier: *, +, ?, {n}, {n,}, {,m}, {n,m} with optional lazy (?)"""
        ch = self._peek()

        if ch == '*':
            self._advance()
            return (0, UNBOUNDED, self._parse_greediness())

        if ch == '+':
            self._advance()
            return (1, UNBOUNDED, self._parse_greediness())

        if ch == '?':
            self._advance()
            return (0, 1, self._parse_greediness())

        if ch == '{':
            scanned = self._scan_braces()
            if scanned is None:
                return None
            min_c, max_c, end = scanned
            if max_c != UNBOUNDED and min_c > max_c:
                raise self._error(ErrorKind.INVALID_QUANTIFIER_RANGE, "min repeat greater than max repeat")
            self.pos = end
            return (min_c, max_c, self._parse_greediness())

        return None

    def _parse_greediness(self) -> bool:
        """Consume an optional lazy modifier; return True when greedy."""
        if self._peek() == '?':
            self._advance()
            return False
        return True


def parse_regex(pattern: str, flags: Flags = Flags()) -> Node:
    """Parse a regex pattern into an AST."""
    parser = RegexParser(pattern, flags)
    return parser.parse()


# =============================================================================
# AST Optimizer
# =============================================================================

class ASTOptimizer:
    """Simplifies a regex AST without changing what or how it matches."""

    def optimize(self, ast: Node) -> Node:
        """Apply all optimizations (run until fixed point)."""
        prev = None
        current = ast
        passes = 0
        # Run until no changes (fixed point)
        while prev != current:
            prev = current
            current = self._transform(current)
            passes += 1
        logger.debug("AST optimizer reached a fixed point after %d passes", passes)
        return current

    def _transform(self, node: Node) -> Node:
        """Recursively transform a node and its children."""
        # First transform children
        node = self._transform_children(node)
        # Then apply optimizations to this node
        node = self._flatten_sequence(node)
        node = self._alternation_to_charclass(node)
        node = self._extract_common_prefix(node)
        return node

    def _transform_children(self, node: Node) -> Node:
        """Recursively transform children of a node."""
        if isinstance(node, Quantifier):
            return Quantifier(self._transform(node.child),
                              node.min_count, node.max_count, node.greedy)

        if isinstance(node, Concat):
            return Concat(tuple(self._transform(c) for c in node.children))

        if isinstance(node, Alternation):
            return Alternation(tuple(self._transform(a) for a in node.alternatives))

        if isinstance(node, Group):
            return Group(self._transform(node.child), node.index, node.name)

        if isinstance(node, LookAround):
            return LookAround(self._transform(node.child), node.ahead, node.positive, node.width)

        return node  # Leaf nodes

    def _flatten_sequence(self, node: Node) -> Node:
        """Flatten nested sequences and unwrap non-capturing groups."""
        if isinstance(node, Concat):
            flattened = []
            for child in node.children:
                if isinstance(child, Concat):
                    flattened.extend(child.children)
                else:
                    flattened.append(child)
            if len(flattened) == 1:
                return flattened[0]
            return Concat(tuple(flattened))

        if isinstance(node, Group) and node.index is None:
            return node.child

        return node

    def _class_ranges(self, node: Node) -> Optional[tuple]:
        """Ranges matched by a single-char node, if it can join a class."""
        if isinstance(node, Literal):
            ranges = ((node.char, node.char),)
            if not node.ignore_case:
                return ranges
            # Class case folding is ASCII-only
            return fold_case_ranges(ranges) if node.char.isascii() else None
        if isinstance(node, CharClass) and not node.negated:
            return node.ranges
        return None

    def _alternation_to_charclass(self, node: Node) -> Node:
        """Convert alternation of single chars to CharClass."""
        if not isinstance(node, Alternation):
            return node

        ranges = []
        for alt in node.alternatives:
            alt_ranges = self._class_ranges(alt)
            # Check if ALL alternatives are single-char items
            if alt_ranges is None:
                return node
            ranges.extend(alt_ranges)

        return CharClass(normalize_ranges(ranges), negated=False)

    def _to_children(self, node: Node) -> Tuple[Node, ...]:
        if isinstance(node, Concat):
            return node.children
        return (node,)

    def _extract_common_prefix(self, node: Node) -> Node:
        """Extract a common prefix of single-char nodes from alternation."""
        if not isinstance(node, Alternation) or len(node.alternatives) < 2:
            return node

        seqs = [self._to_children(alt) for alt in node.alternatives]

        # Find common prefix length; only deterministic single-char nodes
        # can be hoisted without changing backtracking order
        prefix_len = 0
        while all(len(s) > prefix_len for s in seqs):
            first = seqs[0][prefix_len]
            if not isinstance(first, SINGLE_CHAR_NODES):
                break
            if not all(s[prefix_len] == first for s in seqs[1:]):
                break
            prefix_len += 1

        if prefix_len == 0:
            return node

        # Build: prefix + Alternation(suffixes)
        suffixes = []
        for s in seqs:
            remaining = s[prefix_len:]
            if len(remaining) == 1:
                suffixes.append(remaining[0])
            else:
                suffixes.append(Concat(tuple(remaining)))

        return Concat(tuple(seqs[0][:prefix_len]) + (Alternation(tuple(suffixes)),))


# =============================================================================
# AST Rendering
# =============================================================================

def _quantifier_suffix(node: Quantifier) -> str:
    if node.min_count == 0 and node.max_count == 1:
        q = "?"
    elif node.min_count == 0 and node.max_count == UNBOUNDED:
        q = "*"
    elif node.min_count == 1 and node.max_count == UNBOUNDED:
        q = "+"
    elif node.min_count == node.max_count:
        q = f"{{{node.min_count}}}"
    elif node.max_count == UNBOUNDED:
        q = f"{{{node.min_count},}}"
    else:
        q = f"{{{node.min_count},{node.max_count}}}"
    if not node.greedy:
        q += "?"
    return q


def _escape_char(c: str, specials: str = METACHARACTERS) -> str:
    """Escape a character for use in a pattern."""
    if c in specials:
        return f"\\{c}"
    for letter, value in CONTROL_ESCAPES.items():
        if c == value:
            return f"\\{letter}"
    if not c.isprintable() or c in " #":
        code = ord(c)
        if code <= 0xFF:
            return f"\\x{code:02x}"
        if code <= 0xFFFF:
            return f"\\u{code:04x}"
        return f"\\U{code:08x}"
    return c


def _charclass_to_pattern(node: CharClass) -> str:
    for letter, ranges in SHORTHAND_RANGES.items():
        if node.ranges == ranges:
            return f"\\{letter.upper()}" if node.negated else f"\\{letter}"

    parts = []
    for low, high in node.ranges:
        if low == high:
            parts.append(_escape_char(low, CLASS_METACHARACTERS))
        else:
            low_text = _escape_char(low, CLASS_METACHARACTERS)
            high_text = _escape_char(high, CLASS_METACHARACTERS)
            parts.append(f"{low_text}-{high_text}")
    neg = "^" if node.negated else ""
    return f"[{neg}{''.join(parts)}]"


def pattern_to_string(ast: Node) -> str:
    """Convert an AST back to pattern text that compiles to the same AST shape."""
    if isinstance(ast, Literal):
        text = _escape_char(ast.char)
        return f"(?i:{text})" if ast.ignore_case else text
    elif isinstance(ast, AnyChar):
        return "(?s:.)" if ast.dot_all else "."
    elif isinstance(ast, CharClass):
        return _charclass_to_pattern(ast)
    elif isinstance(ast, Quantifier):
        child = pattern_to_string(ast.child)
        if isinstance(ast.child, (Concat, Alternation, Quantifier)):
            child = f"(?:{child})"
        return f"{child}{_quantifier_suffix(ast)}"
    elif isinstance(ast, Alternation):
        return "|".join(pattern_to_string(a) for a in ast.alternatives)
    elif isinstance(ast, Concat):
        parts = []
        for child in ast.children:
            text = pattern_to_string(child)
            if isinstance(child, Alternation):
                text = f"(?:{text})"
            parts.append(text)
        return "".join(parts)
    elif isinstance(ast, Group):
        child = pattern_to_string(ast.child)
        if ast.index is None:
            return f"(?:{child})"
        if ast.name is not None:
            return f"(?P<{ast.name}>{child})"
        return f"({child})"
    elif isinstance(ast, Anchor):
        return {
            START_INPUT: "\\A",
            END_INPUT: "\\Z",
            START_LINE: "(?m:^)",
            END_LINE: "(?m:$)",
        }[ast.kind]
    elif isinstance(ast, WordBoundary):
        return "\\B" if ast.negated else "\\b"
    elif isinstance(ast, Backreference):
        text = f"(?P={ast.name})" if ast.name else f"\\{ast.index}"
        return f"(?i:{text})" if ast.ignore_case else text
    elif isinstance(ast, LookAround):
        child = pattern_to_string(ast.child)
        direction = "" if ast.ahead else "<"
        op = "=" if ast.positive else "!"
        return f"(?{direction}{op}{child})"
    raise ValueError(f"Unsupported node type: {type(ast)}")
