import pytest

from backtrack_regex import main


def test_findall_mode(capsys):
    main(["-p", r"(\d)\d*", "-t", "a1b22"])
    out = capsys.readouterr().out.splitlines()
    assert out == ["(1, 2): '1' groups=('1',)", "(3, 5): '22' groups=('2',)"]


def test_search_modes(capsys):
    main(["-p", "b+", "-t", "abbc", "--mode", "search"])
    assert capsys.readouterr().out.strip() == "(1, 3): 'bb'"

    with pytest.raises(SystemExit) as excinfo:
        main(["-p", "b+", "-t", "abbc", "--mode", "match"])
    assert excinfo.value.code == 1
    assert "No match" in capsys.readouterr().out


def test_flags(capsys):
    main(["-p", "^B", "-t", "a\nb", "-i", "-m", "--mode", "search"])
    assert capsys.readouterr().out.strip() == "(2, 3): 'b'"


def test_sub_and_split_modes(capsys):
    main(["-p", r"(\d+)", "-t", "a1b22", "--mode", "sub", "-r", r"<\1>"])
    assert capsys.readouterr().out.strip() == "a<1>b<22>"

    main(["-p", ",", "-t", "x,y", "--mode", "split"])
    assert capsys.readouterr().out.splitlines() == ["'x'", "'y'"]


def test_text_from_file(tmp_path, capsys):
    source = tmp_path / "input.txt"
    source.write_text("one two", encoding="utf-8")
    main(["-p", r"\w+", "-f", str(source)])
    assert len(capsys.readouterr().out.splitlines()) == 2


def test_dump_ast(capsys):
    main(["-p", "a|b", "--dump-ast"])
    out = capsys.readouterr().out
    assert "AST:" in out
    assert "Rendered:  [a-b]" in out

    main(["-p", "a|b", "--dump-ast", "--no-optimize"])
    assert "Rendered:  a|b" in capsys.readouterr().out


def test_bad_pattern_exits(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["-p", "(ab", "-t", "ab"])
    assert excinfo.value.code == 1
    assert "Error parsing pattern: missing ), unterminated subpattern at position 0" in capsys.readouterr().err


def test_bad_replacement_exits(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["-p", "a", "-t", "a", "--mode", "sub", "-r", r"\3"])
    assert excinfo.value.code == 1
    assert "Error parsing replacement" in capsys.readouterr().err


def test_backtrack_limit_exits(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["-p", "(a*)*b", "-t", "a" * 30, "--backtrack-limit", "100"])
    assert excinfo.value.code == 2
    assert "Error matching pattern: backtrack limit exceeded (limit 100)" in capsys.readouterr().err
