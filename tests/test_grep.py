import io

import pytest

from teachos.grep import grep_lines, main, match, match_here, match_star


@pytest.mark.parametrize(
    "pattern,text,expected",
    [
        ("^ab", "abc", True),
        ("^ab", "cab", False),
        ("b$", "ab", True),
        ("b$", "ba", False),
        ("a.*c", "xxabbbc", True),
        ("a.c", "abc", True),
        ("a.c", "ac", False),
        ("x", "abc", False),
        ("^$", "", True),
        ("^$", "a", False),
        ("", "anything", True),
        ("ab*c", "ac", True),
        ("ab*c", "abbbbc", True),
    ],
)
def test_match(pattern, text, expected):
    assert match(pattern, text) is expected


def test_match_here_anchored():
    assert match_here("bc", "bcd") is True
    assert match_here("bc", "abc") is False


def test_match_star():
    assert match_star("a", "b", "aaab") is True
    assert match_star("a", "b", "aaac") is False
    assert match_star(".", "$", "anything") is True


def test_grep_lines_selects_matching():
    stream = io.StringIO("foo\nbar\nfoobar\n")
    assert list(grep_lines("foo", stream)) == ["foo\n", "foobar\n"]


def test_unterminated_last_line_dropped():
    assert list(grep_lines("foo", io.StringIO("foo\nfoo"))) == ["foo\n"]


def test_line_spanning_chunks_is_kept():
    lines = [f"line{i:04d} foo\n" for i in range(200)]
    result = list(grep_lines("foo", io.StringIO("".join(lines))))
    assert result == lines


def test_overlong_line_start_discarded():
    text = "a" * 2000 + "\nfoo\n"
    result = list(grep_lines("a", io.StringIO(text)))
    assert len(result) == 1
    assert len(result[0]) < 2001


def test_main_file(tmp_path, capsys):
    path = tmp_path / "input.txt"
    path.write_text("hello\nworld\nhelp\n")
    assert main(["^hel", str(path)]) == 0
    assert capsys.readouterr().out == "hello\nhelp\n"


def test_main_usage(capsys):
    assert main([]) == 1
    assert "usage: grep" in capsys.readouterr().err


def test_main_missing_file(tmp_path, capsys):
    missing = tmp_path / "nope"
    assert main(["x", str(missing)]) == 1
    assert f"grep: cannot open {missing}" in capsys.readouterr().out