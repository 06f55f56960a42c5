import pytest

from regex_parser import (
    ASTOptimizer, Alternation, AnyChar, Anchor, Backreference, CharClass,
    CompileError, Concat, ErrorKind, Flags, Group, Literal, LookAround,
    Quantifier, RegexParser, WordBoundary, MAX_NESTING_DEPTH, UNBOUNDED,
    START_INPUT, END_INPUT, START_LINE, END_LINE,
    complement_ranges, fixed_width, fold_case_ranges, normalize_ranges,
    parse_regex, pattern_to_string,
)


def lits(text, ignore_case=False):
    return tuple(Literal(c, ignore_case) for c in text)


def test_precedence():
    assert parse_regex("ab|c*") == Alternation((
        Concat(lits("ab")),
        Quantifier(Literal('c'), 0, UNBOUNDED, True),
    ))


def test_empty_pattern_and_empty_alternative():
    assert parse_regex("") == Concat(())
    assert parse_regex("a|") == Alternation((Literal('a'), Concat(())))


@pytest.mark.parametrize("source,expected", [
    ("a?", (0, 1, True)),
    ("a*", (0, UNBOUNDED, True)),
    ("a+", (1, UNBOUNDED, True)),
    ("a{3}", (3, 3, True)),
    ("a{2,}", (2, UNBOUNDED, True)),
    ("a{,4}", (0, 4, True)),
    ("a{2,5}", (2, 5, True)),
    ("a+?", (1, UNBOUNDED, False)),
    ("a{2,5}?", (2, 5, False)),
    ("a??", (0, 1, False)),
])
def test_quantifier_forms(source, expected):
    min_c, max_c, greedy = expected
    assert parse_regex(source) == Quantifier(Literal('a'), min_c, max_c, greedy)


def test_brace_without_quantifier_is_literal():
    assert parse_regex("a{x}") == Concat(lits("a{x}"))
    assert parse_regex("{") == Literal('{')
    assert parse_regex("a{1") == Concat(lits("a{1"))


def test_anchors_and_boundaries():
    assert parse_regex("^$") == Concat((Anchor(START_INPUT), Anchor(END_INPUT)))
    multiline = Flags(multiline=True)
    assert parse_regex("^$", multiline) == Concat((Anchor(START_LINE), Anchor(END_LINE)))
    assert parse_regex(r"\A\Z\b\B") == Concat((
        Anchor(START_INPUT), Anchor(END_INPUT), WordBoundary(False), WordBoundary(True),
    ))


def test_dot_respects_dot_all():
    assert parse_regex(".") == AnyChar(False)
    assert parse_regex(".", Flags(dot_all=True)) == AnyChar(True)
    assert parse_regex("(?s:.).") == Concat((Group(AnyChar(True)), AnyChar(False)))


def test_shorthand_classes():
    assert parse_regex(r"\d") == CharClass((('0', '9'),), False)
    assert parse_regex(r"\W") == CharClass((('0', '9'), ('A', 'Z'), ('_', '_'), ('a', 'z')), True)
    assert parse_regex(r"\s") == CharClass((('\t', '\r'), (' ', ' ')), False)


def test_charclass_ranges_and_literal_dash():
    assert parse_regex("[a-c-]") == CharClass((('-', '-'), ('a', 'c')), False)
    assert parse_regex("[-a]") == CharClass((('-', '-'), ('a', 'a')), False)
    assert parse_regex("[]a]") == CharClass(((']', ']'), ('a', 'a')), False)
    assert parse_regex("[^\\d_]") == CharClass((('0', '9'), ('_', '_')), True)


def test_charclass_escapes():
    assert parse_regex(r"[\]\\\b]") == CharClass((('\b', '\b'), ('\\', ']')), False)
    assert parse_regex(r"[\x41-\x43]") == CharClass((('A', 'C'),), False)


def test_negated_shorthand_inside_class():
    node = parse_regex(r"[\D]")
    assert not node.negated
    assert node.matches('a')
    assert node.matches('€')
    assert not node.matches('5')

    letters = parse_regex(r"[^\W\d_]")
    assert letters.matches('q')
    assert not letters.matches('_')
    assert not letters.matches('7')
    assert not letters.matches(' ')


def test_ignore_case_expands_classes():
    flags = Flags(ignore_case=True)
    assert parse_regex("[a-c]", flags) == CharClass((('A', 'C'), ('a', 'c')), False)
    assert parse_regex("[^x]", flags) == CharClass((('X', 'X'), ('x', 'x')), True)
    assert parse_regex("a1", flags) == Concat((Literal('a', True), Literal('1', False)))


def test_group_numbering_and_names():
    parser = RegexParser(r"(a)(?:b)(?P<x>c)(?<y>d)")
    ast = parser.parse()
    assert parser.group_count == 3
    assert parser.group_names == {"x": 2, "y": 3}
    assert ast.children == (
        Group(Literal('a'), 1),
        Group(Literal('b')),
        Group(Literal('c'), 2, "x"),
        Group(Literal('d'), 3, "y"),
    )


def test_nested_groups_numbered_by_opening_paren():
    ast = parse_regex("((a)(b))")
    assert ast == Group(Concat((Group(Literal('a'), 2), Group(Literal('b'), 3))), 1)


def test_backreferences():
    assert parse_regex(r"(a)\1") == Concat((Group(Literal('a'), 1), Backreference(1)))
    named = Concat((Group(Literal('a'), 1, "x"), Backreference(1, "x")))
    assert parse_regex(r"(?P<x>a)(?P=x)") == named
    assert parse_regex(r"(?P<x>a)\k<x>") == named
    assert parse_regex(r"(a)\1", Flags(ignore_case=True)).children[1] == Backreference(1, None, True)


def test_lookarounds():
    assert parse_regex("(?=a)(?!b)") == Concat((
        LookAround(Literal('a'), ahead=True, positive=True),
        LookAround(Literal('b'), ahead=True, positive=False),
    ))
    assert parse_regex("(?<=ab)c") == Concat((
        LookAround(Concat(lits("ab")), ahead=False, positive=True, width=2),
        Literal('c'),
    ))
    assert parse_regex("(?<!a{3}|bcd)") == LookAround(
        Alternation((Quantifier(Literal('a'), 3, 3, True), Concat(lits("bcd")))),
        ahead=False, positive=False, width=3,
    )


def test_inline_flags():
    assert parse_regex("(?i:a)b") == Concat((Group(Literal('a', True)), Literal('b')))
    assert parse_regex("(?-i:a)b", Flags(ignore_case=True)) == Concat((Group(Literal('a')), Literal('b', True)))
    assert parse_regex("(?m)^a") == Concat((Anchor(START_LINE), Literal('a')))
    assert parse_regex("(?im:^a)") == Group(Concat((Anchor(START_LINE), Literal('a', True))))


def test_global_flags_recorded_on_parser():
    parser = RegexParser("(?i)(?s)a.")
    parser.parse()
    assert parser.global_flags == Flags(ignore_case=True, dot_all=True)


def test_verbose_mode():
    flags = Flags(verbose=True)
    assert parse_regex("a b # comment\n c", flags) == Concat(lits("abc"))
    assert parse_regex("[ ]", flags) == CharClass(((' ', ' '),), False)
    assert parse_regex(r"a\ b", flags) == Concat(lits("a b"))
    assert parse_regex("a +", flags) == Quantifier(Literal('a'), 1, UNBOUNDED, True)
    assert parse_regex("(?x) a | b ") == Alternation((Literal('a'), Literal('b')))


def test_escapes():
    assert parse_regex(r"\x41é\n\0\.") == Concat(lits("Aé\n\0."))
    assert parse_regex(r"\U0001F600") == Literal("\U0001F600")


@pytest.mark.parametrize("source,kind", [
    ("(ab", ErrorKind.UNBALANCED_GROUP),
    ("ab)", ErrorKind.UNBALANCED_GROUP),
    ("[ab", ErrorKind.UNBALANCED_GROUP),
    ("[]", ErrorKind.UNBALANCED_GROUP),
    ("a]", ErrorKind.UNBALANCED_GROUP),
    ("a{3,1}", ErrorKind.INVALID_QUANTIFIER_RANGE),
    ("*a", ErrorKind.INVALID_QUANTIFIER_RANGE),
    ("a|+", ErrorKind.INVALID_QUANTIFIER_RANGE),
    ("a**", ErrorKind.INVALID_QUANTIFIER_RANGE),
    ("a{2}{3}", ErrorKind.INVALID_QUANTIFIER_RANGE),
    ("a*??", ErrorKind.INVALID_QUANTIFIER_RANGE),
    ("^*", ErrorKind.INVALID_QUANTIFIER_RANGE),
    (r"\b+", ErrorKind.INVALID_QUANTIFIER_RANGE),
    ("(?=a)*", ErrorKind.INVALID_QUANTIFIER_RANGE),
    ("(?<=a+)b", ErrorKind.VARIABLE_WIDTH_LOOKBEHIND),
    ("(?<=a|bc)d", ErrorKind.VARIABLE_WIDTH_LOOKBEHIND),
    (r"(a)(?<=\1)", ErrorKind.VARIABLE_WIDTH_LOOKBEHIND),
    ("(?<!a{1,2})", ErrorKind.VARIABLE_WIDTH_LOOKBEHIND),
    (r"(a)\2", ErrorKind.UNDEFINED_BACKREFERENCE),
    (r"\1(a)", ErrorKind.UNDEFINED_BACKREFERENCE),
    (r"(a\1)", ErrorKind.UNDEFINED_BACKREFERENCE),
    ("(?P=nope)", ErrorKind.UNDEFINED_BACKREFERENCE),
    (r"\k<nope>", ErrorKind.UNDEFINED_BACKREFERENCE),
    ("(?P<x>a)(?P<x>b)", ErrorKind.DUPLICATE_GROUP_NAME),
    ("(?<x>a)|(?P<x>b)", ErrorKind.DUPLICATE_GROUP_NAME),
    (r"\q", ErrorKind.INVALID_SYNTAX),
    ("a\\", ErrorKind.INVALID_SYNTAX),
    (r"\x4", ErrorKind.INVALID_SYNTAX),
    ("[z-a]", ErrorKind.INVALID_SYNTAX),
    (r"[a-\d]", ErrorKind.INVALID_SYNTAX),
    ("(?P<1x>a)", ErrorKind.INVALID_SYNTAX),
    ("(?#comment)", ErrorKind.INVALID_SYNTAX),
    ("a(?i)", ErrorKind.INVALID_SYNTAX),
    ("(?i-:a)", ErrorKind.INVALID_SYNTAX),
])
def test_compile_errors(source, kind):
    with pytest.raises(CompileError) as excinfo:
        parse_regex(source)
    assert excinfo.value.kind is kind
    assert excinfo.value.pattern == source


def test_compile_error_reports_position():
    with pytest.raises(CompileError) as excinfo:
        parse_regex("ab(cd")
    assert excinfo.value.pos == 2
    assert "position 2" in str(excinfo.value)
    assert isinstance(excinfo.value, ValueError)


def test_nesting_limit():
    deep = "(" * (MAX_NESTING_DEPTH + 1) + ")" * (MAX_NESTING_DEPTH + 1)
    with pytest.raises(CompileError) as excinfo:
        parse_regex(deep)
    assert excinfo.value.kind is ErrorKind.INVALID_SYNTAX

    ok = "(" * MAX_NESTING_DEPTH + "a" + ")" * MAX_NESTING_DEPTH
    assert parse_regex(ok) is not None


@pytest.mark.parametrize("source,width", [
    ("abc", 3),
    (r"a\d.", 3),
    ("(ab|cd)e", 3),
    ("(?:ab){3}", 6),
    (r"^a\b(?=xyz)", 1),
    ("a|bc", None),
    ("a*", None),
    ("a{1,2}", None),
    (r"(a)\1", None),
])
def test_fixed_width(source, width):
    assert fixed_width(parse_regex(source)) == width


def test_range_helpers():
    assert normalize_ranges([('c', 'e'), ('a', 'b'), ('d', 'g')]) == (('a', 'g'),)
    assert complement_ranges([('b', 'c')]) == (('\x00', 'a'), ('d', '\U0010ffff'))
    assert fold_case_ranges([('X', 'b')]) == (('A', 'B'), ('X', 'b'), ('x', 'z'))


def test_optimizer_folds_single_char_alternation():
    optimized = ASTOptimizer().optimize(parse_regex("a|b|[0-9]"))
    assert optimized == CharClass((('0', '9'), ('a', 'b')), False)


def test_optimizer_flattens_and_factors_prefix():
    optimizer = ASTOptimizer()
    assert optimizer.optimize(parse_regex("(?:ab)c")) == Concat(lits("abc"))
    assert optimizer.optimize(parse_regex("abc|abd")) == Concat((
        Literal('a'), Literal('b'), CharClass((('c', 'd'),), False),
    ))


def test_optimizer_keeps_capturing_groups():
    ast = parse_regex("(a)|(a)b")
    assert ASTOptimizer().optimize(ast) == ast


@pytest.mark.parametrize("source", [
    r"(a|b)*c",
    r"[^\d_]+?x{2,3}",
    r"(?P<w>\w+)\s(?P=w)",
    r"(?<=\$)\d+(?!\.)",
    r"\bfoo\B|^\.$",
    r"a(?:b|c)d{,2}",
    "[\\]\\-]\\ #",
])
def test_pattern_to_string_round_trip(source):
    ast = parse_regex(source)
    assert parse_regex(pattern_to_string(ast)) == ast
