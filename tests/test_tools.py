"""Tests for the filesystem and utility tools."""

import re
from datetime import datetime
from types import SimpleNamespace

from toyagent.tools import (
    LS_MAX_DEPTH,
    get_time,
    glob_to_regex,
    grep,
    is_ignored,
    ls,
    pwd,
    read_file,
    slugify,
    write_report,
)


def _ctx(tmp_path):
    return SimpleNamespace(base_dir=str(tmp_path), verbose=False)


def _tree(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.py").write_text("def alpha():\n    return 1\n")
    (tmp_path / "src" / "b.py").write_text("def beta():\n    return alpha()\n")
    (tmp_path / "src" / "deep").mkdir()
    (tmp_path / "src" / "deep" / "c.txt").write_text("Alpha in text\n")
    (tmp_path / "README.md").write_text("# readme\n")
    (tmp_path / ".hidden").write_text("secret\n")


# ---------------------------------------------------------------------------
# get_time / pwd
# ---------------------------------------------------------------------------


class TestSimpleTools:
    def test_get_time_is_iso_with_offset(self, tmp_path):
        out = get_time(_ctx(tmp_path), {})
        parsed = datetime.fromisoformat(out)
        assert parsed.utcoffset() is not None
        assert re.search(r"\.\d{3}", out)

    def test_pwd(self, tmp_path):
        assert pwd(_ctx(tmp_path), {}) == str(tmp_path.resolve())


# ---------------------------------------------------------------------------
# ls
# ---------------------------------------------------------------------------


class TestLs:
    def test_direct_children(self, tmp_path):
        _tree(tmp_path)
        out = ls(_ctx(tmp_path), {}).splitlines()
        assert out[0] == "ls . (depth=1, showing 2/2 items)"
        assert out[1:] == ["README.md", "src/"]

    def test_depth(self, tmp_path):
        _tree(tmp_path)
        out = ls(_ctx(tmp_path), {"path": "src", "depth": 2}).splitlines()
        assert out[1:] == ["a.py", "b.py", "deep/", "deep/c.txt"]

    def test_dot_entries(self, tmp_path):
        _tree(tmp_path)
        out = ls(_ctx(tmp_path), {"dot": True})
        assert ".hidden" in out

    def test_truncation_warning(self, tmp_path):
        for i in range(5):
            (tmp_path / f"f{i}.txt").write_text("")
        out = ls(_ctx(tmp_path), {"max_entries": 2}).splitlines()
        assert out[0] == "ls . (depth=1, showing 2/5 items)"
        assert out[3] == "..."
        assert out[4].startswith("[WARN] Output truncated. Total entries: 5.")

    def test_gitignore(self, tmp_path):
        _tree(tmp_path)
        (tmp_path / ".gitignore").write_text("*.md\nbuild/\n")
        (tmp_path / "build").mkdir()
        out = ls(_ctx(tmp_path), {}).splitlines()
        assert out[1:] == ["src/"]
        out = ls(_ctx(tmp_path), {"gitignore": False}).splitlines()
        assert "README.md" in out and "build/" in out

    def test_depth_clamped(self, tmp_path):
        out = ls(_ctx(tmp_path), {"depth": 999})
        assert f"depth={LS_MAX_DEPTH}" in out

    def test_missing_dir(self, tmp_path):
        out = ls(_ctx(tmp_path), {"path": "nope"})
        assert out.startswith("Error: failed to list 'nope'")

    def test_is_ignored_anchored(self):
        assert is_ignored("docs/build", True, ["docs/build"])
        assert not is_ignored("other/build", True, ["docs/build"])
        assert not is_ignored("build", False, ["build/"])


# ---------------------------------------------------------------------------
# read_file
# ---------------------------------------------------------------------------


class TestReadFile:
    def test_whole_file(self, tmp_path):
        (tmp_path / "f.txt").write_text("one\ntwo\nthree\n")
        out = read_file(_ctx(tmp_path), {"path": "f.txt"}).splitlines()
        assert out[0].endswith("lines 1-3 of 3")
        assert out[1:] == ["1 | one", "2 | two", "3 | three"]

    def test_range(self, tmp_path):
        (tmp_path / "f.txt").write_text("\n".join(str(i) for i in range(1, 21)))
        out = read_file(
            _ctx(tmp_path), {"path": "f.txt", "start_line": 9, "line_count": 3}
        ).splitlines()
        assert out[0].endswith("lines 9-11 of 20")
        assert out[1:] == [" 9 | 9", "10 | 10", "11 | 11"]

    def test_beyond_eof(self, tmp_path):
        (tmp_path / "f.txt").write_text("a\nb\n")
        out = read_file(_ctx(tmp_path), {"path": "f.txt", "start_line": 5})
        assert out == "Error: start_line (5) is beyond EOF (total lines: 2)"

    def test_too_large_without_range(self, tmp_path):
        (tmp_path / "big.txt").write_text("x\n" * 600)
        out = read_file(_ctx(tmp_path), {"path": "big.txt"})
        assert out.startswith("Error: file is too large to read entirely (lines=600")
        ranged = read_file(_ctx(tmp_path), {"path": "big.txt", "start_line": 1, "line_count": 2})
        assert ranged.splitlines()[0].endswith("lines 1-2 of 600")

    def test_empty_file(self, tmp_path):
        (tmp_path / "e.txt").write_text("")
        out = read_file(_ctx(tmp_path), {"path": "e.txt"})
        assert out.endswith("lines 0-0 of 0")

    def test_binary_file(self, tmp_path):
        (tmp_path / "b.bin").write_bytes(b"\x00\x01\x02")
        assert read_file(_ctx(tmp_path), {"path": "b.bin"}).startswith(
            "Error: binary file detected"
        )

    def test_directory_rejected(self, tmp_path):
        (tmp_path / "d").mkdir()
        assert "is not a file" in read_file(_ctx(tmp_path), {"path": "d"})

    def test_missing(self, tmp_path):
        assert read_file(_ctx(tmp_path), {"path": "gone.txt"}).startswith(
            "Error: path does not exist"
        )

    def test_path_required(self, tmp_path):
        assert read_file(_ctx(tmp_path), {}) == "Error: 'path' is required"


# ---------------------------------------------------------------------------
# grep
# ---------------------------------------------------------------------------


class TestGrep:
    def test_grouped_output(self, tmp_path):
        _tree(tmp_path)
        out = grep(_ctx(tmp_path), {"pattern": "alpha"})
        assert out.splitlines()[0].startswith("grep alpha | path=. | recursive=true")
        assert "==> src/a.py <== (1 matches)" in out
        assert "==> src/b.py <== (1 matches)" in out
        assert "     1 | def alpha():" in out
        assert "summary: files_scanned=" in out
        assert "c.txt" not in out

    def test_ignore_case(self, tmp_path):
        _tree(tmp_path)
        out = grep(_ctx(tmp_path), {"pattern": "alpha", "ignore_case": True})
        assert "==> src/deep/c.txt <== (1 matches)" in out

    def test_literal_mode(self, tmp_path):
        (tmp_path / "f.txt").write_text("a.b\naxb\n")
        out = grep(_ctx(tmp_path), {"pattern": "a.b", "regex": False})
        assert "(1 matches)" in out

    def test_include_and_exclude_globs(self, tmp_path):
        _tree(tmp_path)
        out = grep(_ctx(tmp_path), {"pattern": "alpha", "include_glob": "**/*.py", "exclude_glob": "src/b.py"})
        assert "src/a.py" in out
        assert "==> src/b.py" not in out

    def test_filter(self, tmp_path):
        _tree(tmp_path)
        out = grep(_ctx(tmp_path), {"pattern": "alpha", "filter": "return"})
        assert "==> src/b.py" in out
        assert "==> src/a.py" not in out

    def test_no_matches(self, tmp_path):
        _tree(tmp_path)
        out = grep(_ctx(tmp_path), {"pattern": "zebra"})
        assert "(no matches)" in out

    def test_truncation(self, tmp_path):
        (tmp_path / "f.txt").write_text("hit\n" * 10)
        out = grep(_ctx(tmp_path), {"pattern": "hit", "max_output_lines": 3})
        assert "shown_lines=3/3" in out
        assert "truncated=true" in out
        assert "NOTE: output truncated" in out

    def test_skips_git_and_binary(self, tmp_path):
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "config").write_text("needle\n")
        (tmp_path / "bin.dat").write_bytes(b"needle\x00")
        (tmp_path / "ok.txt").write_text("needle\n")
        out = grep(_ctx(tmp_path), {"pattern": "needle"})
        assert "ok.txt" in out
        assert "==> .git" not in out
        assert "bin.dat" not in out

    def test_invalid_regex(self, tmp_path):
        assert grep(_ctx(tmp_path), {"pattern": "("}).startswith("Error: invalid regex")

    def test_pattern_required(self, tmp_path):
        assert grep(_ctx(tmp_path), {"pattern": " "}) == "Error: 'pattern' is required"

    def test_glob_to_regex(self):
        assert glob_to_regex("*.py").match("a.py")
        assert not glob_to_regex("*.py").match("src/a.py")
        assert glob_to_regex("**/*.py").match("src/deep/a.py")


# ---------------------------------------------------------------------------
# write_report
# ---------------------------------------------------------------------------


class TestWriteReport:
    def test_writes_markdown(self, tmp_path):
        out = write_report(_ctx(tmp_path), {"title": "My Findings!", "body": "All good."})
        assert out.startswith("Success: report written to '.toyagent/docs/")
        rel = out.split("'")[1]
        assert rel.endswith("-my-findings.md")
        assert (tmp_path / rel).read_text() == "# My Findings!\n\nAll good."

    def test_requires_title_and_body(self, tmp_path):
        assert write_report(_ctx(tmp_path), {"body": "x"}) == "Error: 'title' is required"
        assert write_report(_ctx(tmp_path), {"title": "x"}) == "Error: 'body' is required"

    def test_slugify(self):
        assert slugify("Hello, World") == "hello-world"
        assert slugify("!!!") == "report"
