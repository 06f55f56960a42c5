#!/usr/bin/env python3
"""
Backtracking regular-expression engine.

Public, `re`-style interface over the pattern compiler (regex_parser.py) and
the backtracking matcher (regex_matcher.py):

    >>> pattern = compile(r"([_*])(.+?)\\1")
    >>> pattern.sub(r"<i>\\2</i>", "The result of _2 * 3_ is _6_.")
    'The result of <i>2 * 3</i> is <i>6</i>.'

Can also be run as a script to try a pattern from the command line.
"""

import argparse
import functools
import io
import logging
import sys
from types import MappingProxyType
from typing import Callable, Iterator, List, Optional, Tuple, Union

from regex_parser import (
    ASTOptimizer, CompileError, ErrorKind, Flags, Node, RegexParser,
    CONTROL_ESCAPES, METACHARACTERS, pattern_to_string,
)
from regex_matcher import (
    DEFAULT_BACKTRACK_LIMIT, MatchError, MatchErrorKind, is_start_anchored, match_at,
)

__all__ = [
    "compile", "search", "match", "fullmatch", "findall", "finditer",
    "split", "sub", "subn", "escape", "purge",
    "Pattern", "Match", "Flags", "CompileError", "ErrorKind",
    "MatchError", "MatchErrorKind", "DEFAULT_BACKTRACK_LIMIT",
]

logger = logging.getLogger(__name__)

# Compiled patterns kept by the module-level helpers
CACHE_SIZE = 256

# Escaped by escape() so the result also works in verbose patterns
ESCAPED_EXTRAS = "-# \t\n\r\v\f"


# =============================================================================
# Replacement Templates
# =============================================================================

def parse_template(template: str, pattern: 'Pattern') -> List[Union[str, int]]:
    """Split a replacement template into literal text and group indices.

    Supports \\N, \\g<N>, \\g<name> and the usual character escapes.
    """
    parts: List[Union[str, int]] = []
    literal: List[str] = []
    pos = 0
    length = len(template)

    def add_group(index: int):
        if literal:
            parts.append("".join(literal))
            literal.clear()
        parts.append(index)

    def error(kind: ErrorKind, message: str, at: int) -> CompileError:
        return CompileError(kind, message, template, at)

    while pos < length:
        ch = template[pos]
        if ch != '\\':
            literal.append(ch)
            pos += 1
            continue

        escape_pos = pos
        pos += 1
        if pos >= length:
            raise error(ErrorKind.INVALID_SYNTAX, "bad escape (end of template)", escape_pos)
        ch = template[pos]

        if ch == 'g':
            if not template.startswith('<', pos + 1):
                raise error(ErrorKind.INVALID_SYNTAX, "missing <", pos + 1)
            end = template.find('>', pos + 2)
            if end == -1:
                raise error(ErrorKind.INVALID_SYNTAX, "missing >, unterminated name", pos + 2)
            name = template[pos + 2:end]
            if name.isdigit():
                index = int(name)
            elif name in pattern.groupindex:
                index = pattern.groupindex[name]
            elif name.isidentifier():
                raise error(ErrorKind.UNDEFINED_BACKREFERENCE, f"unknown group name {name!r}", escape_pos)
            else:
                raise error(ErrorKind.INVALID_SYNTAX, f"bad character in group name {name!r}", escape_pos)
            if index > pattern.groups:
                raise error(ErrorKind.UNDEFINED_BACKREFERENCE, f"invalid group reference {index}", escape_pos)
            add_group(index)
            pos = end + 1

        elif ch in '123456789':
            end = pos + 1
            if end < length and template[end] in '0123456789':
                end += 1
            index = int(template[pos:end])
            if index > pattern.groups:
                raise error(ErrorKind.UNDEFINED_BACKREFERENCE, f"invalid group reference {index}", escape_pos)
            add_group(index)
            pos = end

        elif ch == '0':
            literal.append('\0')
            pos += 1

        elif ch in CONTROL_ESCAPES:
            literal.append(CONTROL_ESCAPES[ch])
            pos += 1

        elif ch == '\\':
            literal.append('\\')
            pos += 1

        elif ch.isascii() and ch.isalpha():
            raise error(ErrorKind.INVALID_SYNTAX, f"bad escape \\{ch}", escape_pos)

        else:
            # Unknown non-letter escapes are kept as written
            literal.append('\\' + ch)
            pos += 1

    if literal:
        parts.append("".join(literal))
    return parts


def expand_template(parts: List[Union[str, int]], match: 'Match') -> str:
    """Build replacement text; unmatched groups expand to ''."""
    return "".join(part if isinstance(part, str) else (match.group(part) or "")
                   for part in parts)


# =============================================================================
# Match Objects
# =============================================================================

class Match:
    """Result of a successful match attempt."""

    def __init__(self, pattern: 'Pattern', string: str, pos: int, endpos: int, captures):
        self.re = pattern
        self.string = string
        self.pos = pos
        self.endpos = endpos
        self._captures = captures

    def _index(self, group: Union[int, str]) -> int:
        if isinstance(group, str):
            if group in self.re.groupindex:
                return self.re.groupindex[group]
        elif isinstance(group, int) and 0 <= group <= self.re.groups:
            return group
        raise IndexError(f"no such group: {group!r}")

    def span(self, group: Union[int, str] = 0) -> Tuple[int, int]:
        span = self._captures[self._index(group)]
        return span if span is not None else (-1, -1)

    def start(self, group: Union[int, str] = 0) -> int:
        return self.span(group)[0]

    def end(self, group: Union[int, str] = 0) -> int:
        return self.span(group)[1]

    def _group(self, group: Union[int, str], default=None) -> Optional[str]:
        span = self._captures[self._index(group)]
        if span is None:
            return default
        return self.string[span[0]:span[1]]

    def group(self, *groups):
        """Return one group (a string) or several (a tuple); None if unmatched."""
        if not groups:
            return self._group(0)
        if len(groups) == 1:
            return self._group(groups[0])
        return tuple(self._group(g) for g in groups)

    def __getitem__(self, group):
        return self._group(group)

    def groups(self, default=None) -> tuple:
        return tuple(self._group(i, default) for i in range(1, self.re.groups + 1))

    def groupdict(self, default=None) -> dict:
        return {name: self._group(index, default)
                for name, index in self.re.groupindex.items()}

    def expand(self, template: str) -> str:
        return expand_template(parse_template(template, self.re), self)

    def __repr__(self):
        return f"<Match span={self.span()!r}, match={self.group()!r}>"


# =============================================================================
# Compiled Patterns
# =============================================================================

class Pattern:
    """A compiled, immutable regular expression."""

    def __init__(self, source: str, flags: Flags, ast: Node, groups: int,
                 groupindex: dict, backtrack_limit: Optional[int] = DEFAULT_BACKTRACK_LIMIT):
        self.source = source
        self.flags = flags
        self.ast = ast
        self.groups = groups
        self.groupindex = MappingProxyType(dict(groupindex))
        self.backtrack_limit = backtrack_limit
        self._start_anchored = is_start_anchored(ast)

    def __repr__(self):
        letters = self.flags.letters()
        suffix = f", flags={letters!r}" if letters else ""
        return f"Pattern({self.source!r}{suffix})"

    def __eq__(self, other):
        if not isinstance(other, Pattern):
            return NotImplemented
        return (self.source, self.flags, self.ast, self.backtrack_limit) == \
               (other.source, other.flags, other.ast, other.backtrack_limit)

    def __hash__(self):
        return hash((self.source, self.flags, self.backtrack_limit))

    def _bounds(self, string: str, pos: int, endpos: Optional[int]) -> Tuple[str, int, int]:
        """Clamp pos/endpos and return the text visible to the matcher."""
        length = len(string)
        endpos = length if endpos is None else max(0, min(endpos, length))
        pos = max(0, min(pos, endpos))
        text = string if endpos == length else string[:endpos]
        return text, pos, endpos

    def _attempt(self, string: str, text: str, start: int, pos: int, endpos: int,
                 full: bool = False) -> Optional[Match]:
        captures = match_at(self.ast, self.groups, text, start, self.backtrack_limit, full)
        if captures is None:
            return None
        return Match(self, string, pos, endpos, captures)

    def match_at(self, string: str, pos: int = 0, endpos: Optional[int] = None) -> Optional[Match]:
        """Match only at offset `pos`."""
        text, pos, endpos = self._bounds(string, pos, endpos)
        return self._attempt(string, text, pos, pos, endpos)

    match = match_at

    def fullmatch(self, string: str, pos: int = 0, endpos: Optional[int] = None) -> Optional[Match]:
        """Match at offset `pos` consuming everything up to `endpos`."""
        text, pos, endpos = self._bounds(string, pos, endpos)
        return self._attempt(string, text, pos, pos, endpos, full=True)

    def _search(self, string: str, text: str, start: int, pos: int, endpos: int) -> Optional[Match]:
        if self._start_anchored:
            last = start
        else:
            last = len(text)
        for offset in range(start, last + 1):
            found = self._attempt(string, text, offset, pos, endpos)
            if found is not None:
                return found
        return None

    def search(self, string: str, pos: int = 0, endpos: Optional[int] = None) -> Optional[Match]:
        """Return the first match trying each start offset left to right."""
        text, pos, endpos = self._bounds(string, pos, endpos)
        return self._search(string, text, pos, pos, endpos)

    def finditer(self, string: str, pos: int = 0, endpos: Optional[int] = None) -> Iterator[Match]:
        """Yield successive non-overlapping matches."""
        text, pos, endpos = self._bounds(string, pos, endpos)
        start = pos
        while start <= len(text):
            found = self._search(string, text, start, pos, endpos)
            if found is None:
                return
            yield found
            match_start, match_end = found.span()
            # Step past empty matches so the scan always makes progress
            start = match_end if match_end > match_start else match_end + 1

    def findall(self, string: str, pos: int = 0, endpos: Optional[int] = None) -> list:
        """Return all matches as strings, group strings or tuples of groups."""
        results = []
        for found in self.finditer(string, pos, endpos):
            if self.groups == 0:
                results.append(found.group())
            elif self.groups == 1:
                results.append(found.group(1) or "")
            else:
                results.append(found.groups(default=""))
        return results

    def split(self, string: str, maxsplit: int = 0) -> list:
        """Split around matches; captured groups are kept in the result."""
        pieces = []
        last = 0
        splits = 0
        for found in self.finditer(string):
            if maxsplit and splits >= maxsplit:
                break
            match_start, match_end = found.span()
            pieces.append(string[last:match_start])
            pieces.extend(found.groups())
            last = match_end
            splits += 1
        pieces.append(string[last:])
        return pieces

    def subn(self, repl: Union[str, Callable[[Match], str]], string: str,
             count: int = 0) -> Tuple[str, int]:
        """Replace matches; return the new string and the number of replacements."""
        if callable(repl):
            expand = repl
        else:
            parts = parse_template(repl, self)
            expand = functools.partial(_expand_parts, parts)

        pieces = []
        last = 0
        replaced = 0
        for found in self.finditer(string):
            if count and replaced >= count:
                break
            match_start, match_end = found.span()
            pieces.append(string[last:match_start])
            pieces.append(expand(found))
            last = match_end
            replaced += 1
        pieces.append(string[last:])
        return "".join(pieces), replaced

    def sub(self, repl: Union[str, Callable[[Match], str]], string: str, count: int = 0) -> str:
        return self.subn(repl, string, count)[0]


def _expand_parts(parts, match: Match) -> str:
    return expand_template(parts, match)


# =============================================================================
# Module-level API
# =============================================================================

def _make_flags(flags: Union[Flags, str, None], ignore_case: bool, multiline: bool,
                dot_all: bool, verbose: bool) -> Flags:
    if flags is None:
        flags = Flags()
    elif isinstance(flags, str):
        flags = Flags.from_letters(flags)
    return Flags(
        ignore_case=flags.ignore_case or ignore_case,
        multiline=flags.multiline or multiline,
        dot_all=flags.dot_all or dot_all,
        verbose=flags.verbose or verbose,
    )


@functools.lru_cache(maxsize=CACHE_SIZE)
def _compile(source: str, flags: Flags, backtrack_limit: Optional[int], optimize: bool) -> Pattern:
    parser = RegexParser(source, flags)
    ast = parser.parse()
    if optimize:
        ast = ASTOptimizer().optimize(ast)
    logger.debug("Compiled %r with %d group(s): %r", source, parser.group_count, ast)
    return Pattern(source, parser.global_flags, ast, parser.group_count,
                   parser.group_names, backtrack_limit)


def compile(source: Union[str, Pattern], flags: Union[Flags, str, None] = None, *,
            ignore_case: bool = False, multiline: bool = False,
            dot_all: bool = False, verbose: bool = False,
            backtrack_limit: Optional[int] = DEFAULT_BACKTRACK_LIMIT,
            optimize: bool = True) -> Pattern:
    """Compile a pattern.

    Args:
        source: Pattern text (an already compiled Pattern is returned as-is)
        flags: Flags object or inline-flag letters such as "im"
        ignore_case, multiline, dot_all, verbose: Individual flags, OR-ed
            into `flags`
        backtrack_limit: Choice points a single match attempt may resume
            before MatchError is raised; None disables the limit
        optimize: Run the AST optimizer

    Raises:
        CompileError: The pattern is malformed
    """
    if isinstance(source, Pattern):
        return source
    flags = _make_flags(flags, ignore_case, multiline, dot_all, verbose)
    return _compile(source, flags, backtrack_limit, optimize)


def purge():
    """Clear the compiled pattern cache."""
    _compile.cache_clear()


def search(pattern, string: str, flags=None, **options) -> Optional[Match]:
    return compile(pattern, flags, **options).search(string)


def match(pattern, string: str, flags=None, **options) -> Optional[Match]:
    return compile(pattern, flags, **options).match(string)


def fullmatch(pattern, string: str, flags=None, **options) -> Optional[Match]:
    return compile(pattern, flags, **options).fullmatch(string)


def finditer(pattern, string: str, flags=None, **options) -> Iterator[Match]:
    return compile(pattern, flags, **options).finditer(string)


def findall(pattern, string: str, flags=None, **options) -> list:
    return compile(pattern, flags, **options).findall(string)


def split(pattern, string: str, maxsplit: int = 0, flags=None, **options) -> list:
    return compile(pattern, flags, **options).split(string, maxsplit)


def sub(pattern, repl, string: str, count: int = 0, flags=None, **options) -> str:
    return compile(pattern, flags, **options).sub(repl, string, count)


def subn(pattern, repl, string: str, count: int = 0, flags=None, **options) -> Tuple[str, int]:
    return compile(pattern, flags, **options).subn(repl, string, count)


def escape(text: str) -> str:
    """Backslash-escape every regex metacharacter in `text`."""
    return "".join(f"\\{c}" if c in METACHARACTERS or c in ESCAPED_EXTRAS else c
                   for c in text)


# =============================================================================
# Main
# =============================================================================

def _format_match(found: Match) -> str:
    line = f"{found.span()}: {found.group()!r}"
    if found.re.groups:
        line += f" groups={found.groups()!r}"
    return line


def main(argv=None):
    # Ensure UTF-8 output on Windows
    if sys.platform == 'win32':
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

    parser = argparse.ArgumentParser(
        description="Match a regular expression with the backtracking engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example usage:
    python backtrack_regex.py -p "\\b\\w+\\b" -t "two words"
    python backtrack_regex.py -p "(\\d+)" -t "a1b22" --mode sub -r "<\\1>"
    python backtrack_regex.py -p "a|ab" --dump-ast
"""
    )
    parser.add_argument("--pattern", "-p", required=True, help="The pattern to compile")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--text", "-t", help="Input text")
    source.add_argument("--file", "-f", help="Read input text from this file")
    parser.add_argument("--mode", default="findall",
                        choices=["search", "match", "fullmatch", "findall", "split", "sub"],
                        help="Operation to run (default: findall)")
    parser.add_argument("--replace", "-r", default="", help="Replacement template for --mode sub")
    parser.add_argument("-i", "--ignore-case", action="store_true", help="Case-insensitive matching")
    parser.add_argument("-m", "--multiline", action="store_true", help="^ and $ match at line boundaries")
    parser.add_argument("-s", "--dot-all", action="store_true", help=". also matches newline")
    parser.add_argument("-x", "--verbose-pattern", action="store_true",
                        help="Ignore whitespace and #-comments in the pattern")
    parser.add_argument("--backtrack-limit", type=int, default=DEFAULT_BACKTRACK_LIMIT,
                        help=f"Backtracking budget per match attempt (default: {DEFAULT_BACKTRACK_LIMIT})")
    parser.add_argument("--no-optimize", action="store_true", help="Skip the AST optimizer")
    parser.add_argument("--dump-ast", action="store_true", help="Print the compiled AST")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    # Compile the pattern
    try:
        pattern = compile(args.pattern,
                          ignore_case=args.ignore_case, multiline=args.multiline,
                          dot_all=args.dot_all, verbose=args.verbose_pattern,
                          backtrack_limit=args.backtrack_limit,
                          optimize=not args.no_optimize)
    except ValueError as e:
        print(f"Error parsing pattern: {e}", file=sys.stderr)
        sys.exit(1)

    if args.dump_ast:
        print(f"AST:       {pattern.ast!r}")
        print(f"Rendered:  {pattern_to_string(pattern.ast)}")
        print(f"Groups:    {pattern.groups} {dict(pattern.groupindex)}")

    if args.text is not None:
        text = args.text
    elif args.file:
        with open(args.file, encoding='utf-8') as f:
            text = f.read()
    elif args.dump_ast:
        return
    else:
        text = sys.stdin.read()

    try:
        if args.mode in ("search", "match", "fullmatch"):
            found = getattr(pattern, args.mode)(text)
            if found is None:
                print("No match")
                sys.exit(1)
            print(_format_match(found))
        elif args.mode == "findall":
            for found in pattern.finditer(text):
                print(_format_match(found))
        elif args.mode == "split":
            for piece in pattern.split(text):
                print(repr(piece))
        else:
            print(pattern.sub(args.replace, text))
    except ValueError as e:
        print(f"Error parsing replacement: {e}", file=sys.stderr)
        sys.exit(1)
    except MatchError as e:
        print(f"Error matching pattern: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
