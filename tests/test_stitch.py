import os
import subprocess
from pathlib import Path

import pytest

from gitstitch.git import GitError
from gitstitch.stitch import StitchResult, main, parse_ref, stitch


@pytest.fixture(autouse=True)
def _isolated_git(monkeypatch):
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.delenv("GIT_STITCH_VERBOSE", raising=False)


def _git(cwd, *args):
    return subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    ).stdout


def _init(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    _git(path, "init", "-q")
    _git(path, "symbolic-ref", "HEAD", "refs/heads/master")
    _git(path, "config", "commit.gpgsign", "false")
    return path


def _make_repo(path: Path, commits):
    _init(path)
    for message, files in commits:
        for name, content in files.items():
            target = path / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        _git(path, "add", ".")
        _git(path, "commit", "-q", "-m", message)
    return path


def _mono(path: Path, remotes):
    _init(path)
    for name, url in remotes.items():
        _git(path, "remote", "add", name, str(url))
        _git(path, "fetch", "-q", name)
    return path


def _basic_repos(tmp_path):
    repo1 = _make_repo(
        tmp_path / "repo1",
        [
            ("Initial commit", {"README.md": "# Repo 1"}),
            ("Add feature", {"feature.txt": "feature1"}),
        ],
    )
    repo2 = _make_repo(
        tmp_path / "repo2",
        [
            ("Initial commit", {"README.md": "# Repo 2"}),
            ("Add config", {"config.json": '{"name": "repo2"}'}),
        ],
    )
    return repo1, repo2


def test_parse_ref_splits_on_first_slash():
    assert parse_ref("origin/feature/x") == ("origin", "feature/x")


def test_parse_ref_rejects_missing_slash():
    with pytest.raises(ValueError, match="must be in format 'remote/branch'"):
        parse_ref("master")


def test_stitch_basic_structure(tmp_path, capsys):
    repo1, repo2 = _basic_repos(tmp_path)
    mono = _mono(tmp_path / "mono", {"repo1": repo1, "repo2": repo2})

    result = stitch(["repo1/master", "repo2/master"], fetch=True, cwd=mono)

    out = capsys.readouterr().out
    assert "Fetching repo1... " in out
    assert f"repo1/master is {result.parents['repo1']}" in out

    files = set(_git(mono, "ls-tree", "-r", "--name-only", result.commit_hash).split())
    assert files == {
        "repo1/README.md",
        "repo1/feature.txt",
        "repo2/README.md",
        "repo2/config.json",
    }
    assert result.remotes == ("repo1", "repo2")
    assert _git(mono, "show", "-s", "--format=%B", result.commit_hash).strip() == "git-stitch merge"
    assert _git(mono, "show", "-s", "--format=%an <%ae>", result.commit_hash).strip() == (
        "git-stitch <git-stitch@localhost>"
    )


def test_stitch_parents_sorted_and_timestamp_is_newest(tmp_path, capsys):
    zeta = _make_repo(tmp_path / "zeta", [("Initial commit", {"z.txt": "z"})])
    alpha = _make_repo(tmp_path / "alpha", [("Initial commit", {"a.txt": "a"})])
    mono = _mono(tmp_path / "mono", {"zeta": zeta, "alpha": alpha})

    result = stitch(["zeta/master", "alpha/master"], fetch=False, cwd=mono)

    assert result.remotes == ("alpha", "zeta")
    parents = _git(mono, "show", "-s", "--format=%P", result.commit_hash).split()
    assert parents == [result.parents["alpha"], result.parents["zeta"]]
    parent_times = [
        int(_git(mono, "show", "-s", "--format=%ct", p)) for p in parents
    ]
    assert result.timestamp == max(parent_times)
    assert int(_git(mono, "show", "-s", "--format=%ct", result.commit_hash)) == result.timestamp
    assert "Fetching" not in capsys.readouterr().out


def test_stitch_is_deterministic(tmp_path):
    repo1 = _make_repo(tmp_path / "repo1", [("Initial commit", {"README.md": "# Repo 1"})])
    repo2 = _make_repo(tmp_path / "repo2", [("Initial commit", {"README.md": "# Repo 2"})])
    remotes = {"repo1": repo1, "repo2": repo2}
    mono1 = _mono(tmp_path / "mono1", remotes)
    mono2 = _mono(tmp_path / "mono2", remotes)

    first = stitch(["repo1/master", "repo2/master"], fetch=False, cwd=mono1)
    second = stitch(["repo1/master", "repo2/master"], fetch=False, cwd=mono2)

    assert isinstance(first, StitchResult)
    assert first.commit_hash == second.commit_hash
    assert first.tree_hash == second.tree_hash


def test_stitch_preserves_subdirectories(tmp_path):
    repo1 = _make_repo(
        tmp_path / "repo1",
        [
            (
                "Initial structure with subdirectories",
                {
                    "README.md": "# Repo1",
                    "src/main/app.go": "package main\nfunc main() {}",
                    "src/utils.go": "package src\nfunc Helper() {}",
                    "docs/api.md": "# API Documentation",
                },
            )
        ],
    )
    repo2 = _make_repo(
        tmp_path / "repo2",
        [
            (
                "Initial JS structure",
                {"index.js": "console.log('hello');", "lib/helper.js": "module.exports = {};"},
            )
        ],
    )
    mono = _mono(tmp_path / "mono", {"repo1": repo1, "repo2": repo2})
    result = stitch(["repo1/master", "repo2/master"], fetch=False, cwd=mono)

    expected = {
        "repo1/README.md": "# Repo1",
        "repo1/src/main/app.go": "package main\nfunc main() {}",
        "repo1/src/utils.go": "package src\nfunc Helper() {}",
        "repo1/docs/api.md": "# API Documentation",
        "repo2/index.js": "console.log('hello');",
        "repo2/lib/helper.js": "module.exports = {};",
    }
    for path, content in expected.items():
        assert _git(mono, "show", f"{result.commit_hash}:{path}").strip() == content


def test_stitch_unknown_remote(tmp_path):
    mono = _init(tmp_path / "mono")
    with pytest.raises(GitError, match="remote 'nosuch' does not exist"):
        stitch(["nosuch/master"], fetch=False, cwd=mono)


def test_stitch_requires_refs(tmp_path):
    with pytest.raises(ValueError, match="No refs specified"):
        stitch([], fetch=False, cwd=tmp_path)


def test_main_prints_stitched_commit(tmp_path, monkeypatch, capsys):
    repo1, repo2 = _basic_repos(tmp_path)
    mono = _mono(tmp_path / "mono", {"repo1": repo1, "repo2": repo2})
    monkeypatch.chdir(mono)

    assert main(["-no-fetch", "repo1/master", "repo2/master"]) == 0

    out = capsys.readouterr().out
    stitched = [line for line in out.splitlines() if "Stitched" in line]
    assert len(stitched) == 1
    assert stitched[0].startswith("Stitched repo1 & repo2 into ")
    commit_hash = stitched[0].split()[-1]
    assert _git(mono, "cat-file", "-t", commit_hash).strip() == "commit"
    assert f"  git checkout -b mono {commit_hash}" in out
    assert f"  git reset {commit_hash}" in out


def test_main_without_arguments_prints_usage(capsys):
    assert main([]) == 1
    assert "Usage: git-stitch [-no-fetch] ref1 [ref2...]" in capsys.readouterr().err


def test_main_only_flag(capsys):
    assert main(["-no-fetch"]) == 1
    assert "Error: No refs specified" in capsys.readouterr().err


def test_main_bad_ref_format(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(_init(tmp_path / "mono"))
    assert main(["-no-fetch", "master"]) == 1
    assert "must be in format 'remote/branch'" in capsys.readouterr().err


def test_main_missing_remote(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(_init(tmp_path / "mono"))
    assert main(["nosuch/master"]) == 1
    assert "remote 'nosuch' does not exist" in capsys.readouterr().err