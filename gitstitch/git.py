"""Thin helpers around the git command line shared by the stitch and rip tools."""

from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence, Union

PathLike = Union[str, Path, None]

MERGE_MESSAGE = "git-stitch merge"


class GitError(RuntimeError):
    """A git command failed or produced output that could not be understood."""


@dataclass(frozen=True)
class CommitInfo:
    """Metadata of a single commit."""

    hash: str
    message: str
    author_name: str
    author_email: str
    author_timestamp: int
    committer_name: str
    committer_email: str
    committer_timestamp: int

    def identity_env(self) -> dict[str, str]:
        """Environment variables that make git reuse this commit's identity and dates."""
        return {
            "GIT_AUTHOR_NAME": self.author_name,
            "GIT_AUTHOR_EMAIL": self.author_email,
            "GIT_COMMITTER_NAME": self.committer_name,
            "GIT_COMMITTER_EMAIL": self.committer_email,
            "GIT_AUTHOR_DATE": str(self.author_timestamp),
            "GIT_COMMITTER_DATE": str(self.committer_timestamp),
        }


@dataclass(frozen=True)
class FileChange:
    """A path touched by a commit together with its status letter (A, M or D)."""

    path: str
    status: str


def is_verbose() -> bool:
    """True when GIT_STITCH_VERBOSE is set to a non-empty value."""
    return os.environ.get("GIT_STITCH_VERBOSE", "") != ""


def _say(message: str) -> None:
    if is_verbose():
        print(message)


def run_git(
    args: Sequence[str],
    cwd: PathLike = None,
    input: str | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """Run git with the given arguments and return its standard output.

    ``env`` holds variables added on top of the current environment.
    Raises GitError when git cannot be started or exits with a non-zero status.
    """
    full_env = {**os.environ, **env} if env else None
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            input=input,
            env=full_env,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="surrogateescape",
            check=False,
        )
    except OSError as exc:
        raise GitError(f"failed to run git: {exc}") from exc
    if result.returncode != 0:
        detail = result.stderr.strip() or result.stdout.strip()
        raise GitError(
            f"git {' '.join(args)} failed with exit status {result.returncode}: {detail}"
        )
    return result.stdout


def parse_commit_info(output: str) -> CommitInfo:
    """Parse NUL-separated ``git show`` output of hash, body, author and committer."""
    parts = output.strip().split("\x00")
    if len(parts) < 8:
        raise GitError("unexpected git show output")
    try:
        author_timestamp = int(parts[4])
        committer_timestamp = int(parts[7])
    except ValueError as exc:
        raise GitError(f"invalid timestamp in git show output: {exc}") from exc
    return CommitInfo(
        hash=parts[0],
        message=parts[1].strip(),
        author_name=parts[2],
        author_email=parts[3],
        author_timestamp=author_timestamp,
        committer_name=parts[5],
        committer_email=parts[6],
        committer_timestamp=committer_timestamp,
    )


def parse_name_status(output: str) -> list[FileChange]:
    """Parse ``git diff-tree --name-status`` output into file changes."""
    changes = []
    for line in output.strip().split("\n"):
        if not line:
            continue
        status, sep, path = line.partition("\t")
        if sep:
            changes.append(FileChange(path=path, status=status))
    return changes


def parse_tree_dirs(output: str) -> list[str]:
    """Return the sorted names of the directory entries in ``git ls-tree`` output."""
    dirs = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 4 and fields[1] == "tree":
            dirs.append(" ".join(fields[3:]))
    return sorted(dirs)


def find_base_merge_commit(cwd: PathLike = None) -> str:
    """Return the most recent commit whose message mentions the stitch merge."""
    output = run_git(["log", f"--grep={MERGE_MESSAGE}", "--format=%H", "-1"], cwd)
    commit_hash = output.strip()
    if not commit_hash:
        raise GitError(f"no merge commit found with message '{MERGE_MESSAGE}'")
    return commit_hash


def get_commit_info(commit_hash: str, cwd: PathLike = None) -> CommitInfo:
    """Read the metadata of one commit."""
    output = run_git(
        [
            "show",
            "-s",
            "--format=%H%x00%B%x00%an%x00%ae%x00%at%x00%cn%x00%ce%x00%ct",
            commit_hash,
        ],
        cwd,
    )
    return parse_commit_info(output)


def get_commits_since(base_commit: str, cwd: PathLike = None) -> list[CommitInfo]:
    """Commits reachable from HEAD but not from ``base_commit``, oldest first.

    Commits whose metadata cannot be read are reported on stderr and skipped.
    """
    output = run_git(["rev-list", "--reverse", f"{base_commit}..HEAD"], cwd)
    commits = []
    for commit_hash in output.split():
        try:
            commits.append(get_commit_info(commit_hash, cwd))
        except GitError as exc:
            print(
                f"Warning: failed to get info for commit {commit_hash}: {exc}",
                file=sys.stderr,
            )
    return commits


def get_remotes_from_base_commit(base_commit: str, cwd: PathLike = None) -> list[str]:
    """Top-level directories of the base commit, sorted."""
    return parse_tree_dirs(run_git(["ls-tree", base_commit], cwd))


def get_original_commit_for_remote(
    base_commit: str, remote: str, cwd: PathLike = None
) -> str:
    """Find the parent of the base commit whose tree matches ``remote``'s directory.

    Falls back to the first parent when no tree matches.
    """
    try:
        output = run_git(["show", "-s", "--format=%P", base_commit], cwd)
    except GitError as exc:
        raise GitError(f"failed to get parents of base commit {base_commit}: {exc}") from exc
    parents = output.split()
    if not parents:
        raise GitError(f"no parents found for base commit {base_commit}")
    _say(f"Base commit {base_commit} has parents: {parents}")

    for index, parent in enumerate(parents):
        try:
            parent_tree = run_git(["rev-parse", f"{parent}^{{tree}}"], cwd).strip()
        except GitError as exc:
            _say(f"Warning: couldn't get tree for parent {parent}: {exc}")
            continue

        _say(
            f"Running 'git rev-parse {base_commit}:{remote}' in directory "
            f"{cwd if cwd is not None else os.getcwd()}"
        )
        try:
            remote_tree = run_git(["rev-parse", f"{base_commit}:{remote}"], cwd).strip()
        except GitError as exc:
            _say(f"Warning: couldn't get tree for remote {remote} in base commit: {exc}")
            continue
        _say(f"Got tree hash for remote {remote}: {remote_tree}")

        matches = parent_tree == remote_tree
        _say(
            f"Comparing parent {index} ({parent}) tree {parent_tree} with remote "
            f"{remote} tree {remote_tree} - match: {str(matches).lower()}"
        )
        if matches:
            _say(f"Found matching parent {parent} for remote {remote} (trees match: {parent_tree})")
            return parent

    _say(f"No exact match found for remote {remote}, using first parent {parents[0]}")
    return parents[0]


def get_changed_files_with_status(commit_hash: str, cwd: PathLike = None) -> list[FileChange]:
    """Files changed by a commit relative to its first parent, with status letters."""
    output = run_git(
        ["diff-tree", "--no-commit-id", "--name-status", "-r", commit_hash], cwd
    )
    return parse_name_status(output)