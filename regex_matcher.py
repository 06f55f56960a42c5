#!/usr/bin/env python3
"""
Backtracking matcher for regex ASTs produced by regex_parser.py.

The matcher keeps its control state in plain data instead of the Python call
stack:

- the continuation is an immutable linked list of pending tasks
  ``(task, rest)`` describing what remains to be matched,
- the capture table is an immutable tuple of ``(start, end)`` spans,
- every choice point is a ``(pos, continuation, captures)`` triple pushed
  onto a list; failing pops the latest one.

Because choice points hold the capture tuple they were created with,
restoring a choice point undoes every capture made after it. Only nested
look-around assertions recurse, and that depth is bounded by the pattern.
"""

import logging
from enum import Enum
from typing import Optional, Tuple

from regex_parser import (
    Node, Literal, AnyChar, CharClass, Concat, Alternation, Group,
    Quantifier, Anchor, WordBoundary, Backreference, LookAround,
    UNBOUNDED, START_INPUT, END_INPUT, START_LINE, END_LINE,
)

logger = logging.getLogger(__name__)

# Resumed choice points allowed per match attempt
DEFAULT_BACKTRACK_LIMIT = 1_000_000

WORD_CHARS = frozenset("0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz")

# Continuation task opcodes
_MATCH_NODE = 0    # (_MATCH_NODE, node)
_CLOSE_GROUP = 1   # (_CLOSE_GROUP, index, start)
_REPEAT = 2        # (_REPEAT, quantifier, iterations done, start of last iteration)
_AT_POSITION = 3   # (_AT_POSITION, pos)

Captures = Tuple[Optional[Tuple[int, int]], ...]


class MatchErrorKind(Enum):
    BACKTRACK_LIMIT_EXCEEDED = "backtrack limit exceeded"


class MatchError(RuntimeError):
    """Raised when a match attempt exhausts its backtracking budget."""

    def __init__(self, kind: MatchErrorKind, limit: int):
        self.kind = kind
        self.limit = limit
        super().__init__(f"{kind.value} (limit {limit})")


def is_word_char(ch: str) -> bool:
    return ch in WORD_CHARS


def _set_capture(captures: Captures, index: int, span: Tuple[int, int]) -> Captures:
    return captures[:index] + (span,) + captures[index + 1:]


class BacktrackMatcher:
    """Runs match attempts of pattern nodes against one input string.

    The backtrack counter is shared by every run() on the same instance, so
    look-around sub-matches draw from the budget of the enclosing attempt.
    """

    def __init__(self, text: str, backtrack_limit: Optional[int] = DEFAULT_BACKTRACK_LIMIT):
        self.text = text
        self.length = len(text)
        self.backtrack_limit = backtrack_limit
        self.backtracks = 0

    def run(self, node: Node, pos: int, captures: Captures,
            tail=None) -> Optional[Tuple[int, Captures]]:
        """Match node at pos followed by the continuation `tail`.

        Returns:
            Tuple of (end position, captures) for the first success in
            backtracking order, or None
        """
        text = self.text
        length = self.length
        stack = []
        cont = ((_MATCH_NODE, node), tail)

        while True:
            if cont is None:
                return pos, captures

            task, cont = cont
            op = task[0]
            ok = True

            if op == _MATCH_NODE:
                node = task[1]

                if isinstance(node, Literal):
                    if pos < length and (text[pos] == node.char or
                                         (node.ignore_case and text[pos].lower() == node.char.lower())):
                        pos += 1
                    else:
                        ok = False

                elif isinstance(node, CharClass):
                    if pos < length and node.matches(text[pos]):
                        pos += 1
                    else:
                        ok = False

                elif isinstance(node, AnyChar):
                    if pos < length and (node.dot_all or text[pos] != '\n'):
                        pos += 1
                    else:
                        ok = False

                elif isinstance(node, Concat):
                    for child in reversed(node.children):
                        cont = ((_MATCH_NODE, child), cont)

                elif isinstance(node, Alternation):
                    # Later alternatives become choice points, first one on top
                    alternatives = node.alternatives
                    for alt in reversed(alternatives[1:]):
                        stack.append((pos, ((_MATCH_NODE, alt), cont), captures))
                    cont = ((_MATCH_NODE, alternatives[0]), cont)

                elif isinstance(node, Group):
                    if node.index is not None:
                        cont = ((_CLOSE_GROUP, node.index, pos), cont)
                    cont = ((_MATCH_NODE, node.child), cont)

                elif isinstance(node, Quantifier):
                    cont = ((_REPEAT, node, 0, -1), cont)

                elif isinstance(node, Anchor):
                    ok = self._anchor_holds(node.kind, pos)

                elif isinstance(node, WordBoundary):
                    before = pos > 0 and text[pos - 1] in WORD_CHARS
                    after = pos < length and text[pos] in WORD_CHARS
                    ok = (before != after) != node.negated

                elif isinstance(node, Backreference):
                    span = captures[node.index]
                    if span is None:
                        # Group has not participated: never matches
                        ok = False
                    else:
                        captured = text[span[0]:span[1]]
                        size = len(captured)
                        candidate = text[pos:pos + size]
                        if candidate == captured or (node.ignore_case and
                                                     candidate.lower() == captured.lower()):
                            pos += size
                        else:
                            ok = False

                elif isinstance(node, LookAround):
                    ok = self._look_around(node, pos, captures)

                else:
                    raise ValueError(f"Unsupported node type: {type(node)}")

            elif op == _CLOSE_GROUP:
                captures = _set_capture(captures, task[1], (task[2], pos))

            elif op == _REPEAT:
                quantifier, count, last_start = task[1], task[2], task[3]
                again = ((_MATCH_NODE, quantifier.child),
                         ((_REPEAT, quantifier, count + 1, pos), cont))

                if last_start == pos and count >= quantifier.min_count:
                    # Zero-width iteration: stop looping, keep its captures
                    pass
                elif count < quantifier.min_count:
                    cont = again
                elif quantifier.max_count != UNBOUNDED and count >= quantifier.max_count:
                    pass
                elif quantifier.greedy:
                    stack.append((pos, cont, captures))
                    cont = again
                else:
                    stack.append((pos, again, captures))

            elif op == _AT_POSITION:
                ok = pos == task[1]

            if not ok:
                if not stack:
                    return None
                self._count_backtrack()
                pos, cont, captures = stack.pop()

    def _count_backtrack(self):
        self.backtracks += 1
        if self.backtrack_limit is not None and self.backtracks > self.backtrack_limit:
            logger.debug("Backtrack limit %d exceeded", self.backtrack_limit)
            raise MatchError(MatchErrorKind.BACKTRACK_LIMIT_EXCEEDED, self.backtrack_limit)

    def _anchor_holds(self, kind: str, pos: int) -> bool:
        if kind == START_INPUT:
            return pos == 0
        if kind == END_INPUT:
            return pos == self.length
        if kind == START_LINE:
            return pos == 0 or self.text[pos - 1] == '\n'
        if kind == END_LINE:
            return pos == self.length or self.text[pos] == '\n'
        raise ValueError(f"Unknown anchor kind: {kind!r}")

    def _look_around(self, node: LookAround, pos: int, captures: Captures) -> bool:
        """Evaluate an assertion; captures made inside it are not kept."""
        if node.ahead:
            result = self.run(node.child, pos, captures)
        else:
            start = pos - node.width
            if start < 0:
                result = None
            else:
                # Look-behind must end exactly where the assertion sits
                result = self.run(node.child, start, captures, ((_AT_POSITION, pos), None))
        return (result is not None) == node.positive


def match_at(ast: Node, group_count: int, text: str, start: int,
             backtrack_limit: Optional[int] = DEFAULT_BACKTRACK_LIMIT,
             full: bool = False) -> Optional[Captures]:
    """Try to match `ast` at exactly `start`.

    Args:
        ast: Compiled pattern AST
        group_count: Number of capturing groups in the pattern
        text: Input string
        start: Offset at which the match must begin
        backtrack_limit: Choice points that may be resumed before giving up,
            None for no limit
        full: Require the match to end at the end of `text`

    Returns:
        Capture table with slot 0 holding the whole-match span, or None

    Raises:
        MatchError: The backtracking budget was exhausted
    """
    matcher = BacktrackMatcher(text, backtrack_limit)
    captures = (None,) * (group_count + 1)
    tail = ((_AT_POSITION, len(text)), None) if full else None
    result = matcher.run(ast, start, captures, tail)
    if result is None:
        return None
    end, captures = result
    return _set_capture(captures, 0, (start, end))


def is_start_anchored(ast: Node) -> bool:
    """True when every match must begin at offset 0."""
    if isinstance(ast, Anchor):
        return ast.kind == START_INPUT
    if isinstance(ast, Concat):
        return bool(ast.children) and is_start_anchored(ast.children[0])
    if isinstance(ast, Group):
        return is_start_anchored(ast.child)
    if isinstance(ast, Alternation):
        return all(is_start_anchored(alt) for alt in ast.alternatives)
    return False
