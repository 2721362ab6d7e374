"""Combine several repositories into one synthetic monorepo commit."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from importlib import metadata
from typing import Mapping, Sequence

from gitstitch.git import MERGE_MESSAGE, GitError, PathLike, run_git

USAGE = "Usage: git-stitch [-no-fetch] ref1 [ref2...]"

_IDENTITY_NAME = "git-stitch"
_IDENTITY_EMAIL = "git-stitch@localhost"


@dataclass(frozen=True)
class StitchResult:
    """The commit made by a stitch and what went into it."""

    commit_hash: str
    tree_hash: str
    remotes: tuple[str, ...]
    parents: Mapping[str, str]
    timestamp: int


def parse_ref(ref: str) -> tuple[str, str]:
    """Split a ``remote/branch`` reference into its remote and branch."""
    remote, sep, branch = ref.partition("/")
    if not sep:
        raise ValueError(f"ref {ref} must be in format 'remote/branch'")
    return remote, branch


def _resolve_ref(ref: str, fetch: bool, cwd: PathLike) -> tuple[str, str, int]:
    remote, _branch = parse_ref(ref)
    try:
        run_git(["remote", "get-url", remote], cwd)
    except GitError as exc:
        raise GitError(f"remote '{remote}' does not exist") from exc

    if fetch:
        print(f"Fetching {remote}... ", end="", flush=True)
        try:
            run_git(["fetch", remote], cwd)
        except GitError as exc:
            raise GitError(f"fetching {remote}: {exc}") from exc

    try:
        commit_hash = run_git(["rev-parse", ref], cwd).strip()
    except GitError as exc:
        raise GitError(f"getting commit for {ref}: {exc}") from exc
    print(f"{ref} is {commit_hash}")

    try:
        raw = run_git(["show", "-s", "--format=%ct", commit_hash], cwd)
    except GitError as exc:
        raise GitError(f"getting timestamp for {commit_hash}: {exc}") from exc
    try:
        timestamp = int(raw.strip())
    except ValueError as exc:
        raise GitError(f"parsing timestamp for {commit_hash}: {exc}") from exc
    return remote, commit_hash, timestamp


def stitch(refs: Sequence[str], fetch: bool = True, cwd: PathLike = None) -> StitchResult:
    """Create a commit whose tree holds each ref's tree under its remote's name.

    The commit has the refs as parents, sorted by remote, a fixed identity and
    the newest committer date among them, so the same inputs give the same hash.
    """
    if not refs:
        raise ValueError("No refs specified")

    commits: dict[str, str] = {}
    max_timestamp = 0
    for ref in refs:
        remote, commit_hash, timestamp = _resolve_ref(ref, fetch, cwd)
        commits[remote] = commit_hash
        max_timestamp = max(max_timestamp, timestamp)

    remotes = tuple(sorted(commits))
    entries = []
    for remote in remotes:
        commit_hash = commits[remote]
        try:
            tree = run_git(["rev-parse", f"{commit_hash}^{{tree}}"], cwd).strip()
        except GitError as exc:
            raise GitError(f"getting tree for {commit_hash}: {exc}") from exc
        entries.append(f"040000 tree {tree}\t{remote}")

    try:
        tree_hash = run_git(["mktree"], cwd, input="\n".join(entries) + "\n").strip()
    except GitError as exc:
        raise GitError(f"creating tree: {exc}") from exc

    args = ["commit-tree", tree_hash, "-m", MERGE_MESSAGE]
    for remote in remotes:
        args += ["-p", commits[remote]]
    env = {
        "GIT_AUTHOR_NAME": _IDENTITY_NAME,
        "GIT_AUTHOR_EMAIL": _IDENTITY_EMAIL,
        "GIT_COMMITTER_NAME": _IDENTITY_NAME,
        "GIT_COMMITTER_EMAIL": _IDENTITY_EMAIL,
        "GIT_AUTHOR_DATE": str(max_timestamp),
        "GIT_COMMITTER_DATE": str(max_timestamp),
    }
    try:
        commit_hash = run_git(args, cwd, env=env).strip()
    except GitError as exc:
        raise GitError(f"creating commit: {exc}") from exc

    return StitchResult(
        commit_hash=commit_hash,
        tree_hash=tree_hash,
        remotes=remotes,
        parents=dict(commits),
        timestamp=max_timestamp,
    )


def _build_info() -> str:
    try:
        return metadata.version("gitstitch")
    except metadata.PackageNotFoundError:
        return "dev (unknown)"


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point; returns the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print(f"git-stitch {_build_info()}", file=sys.stderr)
        print("Combines multiple repositories into a monorepo structure.\n", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return 1

    fetch = True
    if args[0] == "-no-fetch":
        fetch = False
        args = args[1:]
    if not args:
        print("Error: No refs specified", file=sys.stderr)
        return 1

    try:
        result = stitch(args, fetch=fetch)
    except (GitError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Stitched {' & '.join(result.remotes)} into {result.commit_hash}")
    print("To check out the new commit, run:")
    print(f"  git checkout -b mono {result.commit_hash}")
    print("Or to update your current branch:")
    print(f"  git reset {result.commit_hash}")
    return 0