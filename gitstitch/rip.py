"""Split commits made on top of a stitched monorepo back into per-repository branches."""

from __future__ import annotations

import sys
import tempfile
import time
from importlib import metadata
from pathlib import Path
from typing import Iterable, Sequence

from gitstitch.git import (
    CommitInfo,
    FileChange,
    GitError,
    PathLike,
    find_base_merge_commit,
    get_changed_files_with_status,
    get_commits_since,
    get_original_commit_for_remote,
    get_remotes_from_base_commit,
    is_verbose,
    run_git,
)

USAGE = "Usage: git-rip [prefix]"


def _say(message: str) -> None:
    if is_verbose():
        print(message)


def default_prefix() -> str:
    """Branch prefix used when none is given: ``rip-<unix time>``."""
    return f"rip-{int(time.time())}"


def group_changes_by_remote(
    changes: Iterable[FileChange], remotes: Iterable[str]
) -> dict[str, list[FileChange]]:
    """Group monorepo changes by their top-level directory.

    Paths are made relative to that directory; changes outside the known
    remotes, or at the top level, are dropped.
    """
    known = set(remotes)
    grouped: dict[str, list[FileChange]] = {}
    for change in changes:
        remote, sep, path = change.path.partition("/")
        if sep and remote in known:
            grouped.setdefault(remote, []).append(FileChange(path=path, status=change.status))
    return grouped


def _file_mode(commit_hash: str, path: str, cwd: PathLike) -> str:
    try:
        output = run_git(["ls-tree", commit_hash, path], cwd)
    except GitError as exc:
        raise GitError(f"failed to get mode for {path}: {exc}") from exc
    fields = output.split()
    if not fields:
        raise GitError(f"invalid ls-tree output for {path}")
    return fields[0]


def apply_change(
    commit: CommitInfo,
    remote: str,
    change: FileChange,
    parent_commit: str,
    cwd: PathLike = None,
) -> str:
    """Commit one file change on top of ``parent_commit`` and return the new commit.

    The change is applied through a private index so the working tree and the
    repository's own index are left alone. The new commit reuses the message,
    authorship and dates of ``commit``.
    """
    file_path = change.path
    monorepo_path = f"{remote}/{file_path}"

    try:
        parent_tree = run_git(["rev-parse", f"{parent_commit}^{{tree}}"], cwd).strip()
    except GitError as exc:
        raise GitError(f"failed to get parent tree: {exc}") from exc

    with tempfile.TemporaryDirectory(prefix="git-rip-") as tmp:
        index_env = {"GIT_INDEX_FILE": str(Path(tmp).resolve() / "index")}

        try:
            run_git(["read-tree", parent_tree], cwd, env=index_env)
        except GitError as exc:
            raise GitError(f"failed to read parent tree into index: {exc}") from exc

        if change.status == "D":
            try:
                run_git(["update-index", "--remove", file_path], cwd, env=index_env)
            except GitError as exc:
                raise GitError(f"failed to remove file from index: {exc}") from exc
            _say(f"Removed {file_path} from index")
        elif change.status in ("A", "M"):
            try:
                blob = run_git(["rev-parse", f"{commit.hash}:{monorepo_path}"], cwd).strip()
            except GitError as exc:
                raise GitError(f"failed to get blob hash for {monorepo_path}: {exc}") from exc
            mode = _file_mode(commit.hash, monorepo_path, cwd)
            try:
                run_git(
                    ["update-index", "--add", "--cacheinfo", mode, blob, file_path],
                    cwd,
                    env=index_env,
                )
            except GitError as exc:
                raise GitError(f"failed to update index for {file_path}: {exc}") from exc
            _say(f"Updated {file_path} in index with mode {mode} and blob {blob}")

        try:
            new_tree = run_git(["write-tree"], cwd, env=index_env).strip()
        except GitError as exc:
            raise GitError(f"failed to write tree from index: {exc}") from exc

    _say(f"Created tree {new_tree} for change {change.status} {file_path}")

    try:
        new_commit = run_git(
            ["commit-tree", new_tree, "-p", parent_commit, "-m", commit.message],
            cwd,
            env=commit.identity_env(),
        )
    except GitError as exc:
        raise GitError(
            f"failed to create commit-tree (parent: {parent_commit}, tree: {new_tree}): {exc}"
        ) from exc
    return new_commit.strip()


def create_commit_for_remote(
    commit: CommitInfo,
    remote: str,
    changes: Iterable[FileChange],
    parent_commit: str,
    cwd: PathLike = None,
) -> str:
    """Apply the changes one after another, each as its own commit; return the last."""
    current = parent_commit
    for change in changes:
        try:
            current = apply_change(commit, remote, change, current, cwd)
        except GitError as exc:
            raise GitError(f"failed to apply change {change.path}: {exc}") from exc
    return current


def rip(prefix: str, cwd: PathLike = None) -> dict[str, str] | None:
    """Replay the commits made since the stitch merge onto per-remote branches.

    Creates a branch ``<prefix>-<remote>`` for every remote and returns a
    mapping of branch name to commit, in remote order. Returns None when there
    are no commits since the merge.
    """
    try:
        base_commit = find_base_merge_commit(cwd)
    except GitError as exc:
        raise GitError(f"finding base commit: {exc}") from exc
    _say(f"Found base commit: {base_commit}")

    try:
        commits = get_commits_since(base_commit, cwd)
    except GitError as exc:
        raise GitError(f"getting commits: {exc}") from exc
    if not commits:
        return None

    try:
        remotes = get_remotes_from_base_commit(base_commit, cwd)
    except GitError as exc:
        raise GitError(f"getting remotes from base commit: {exc}") from exc

    heads: dict[str, str] = {}
    for remote in remotes:
        try:
            heads[remote] = get_original_commit_for_remote(base_commit, remote, cwd)
        except GitError as exc:
            raise GitError(f"getting original commit for {remote}: {exc}") from exc
        _say(f"Remote {remote} starts from commit {heads[remote]}")

    for commit in commits:
        _say(f"Processing commit: {commit.hash}")
        try:
            changed = get_changed_files_with_status(commit.hash, cwd)
        except GitError as exc:
            raise GitError(f"getting changed files for {commit.hash}: {exc}") from exc

        grouped = group_changes_by_remote(changed, remotes)
        for remote in remotes:
            changes = grouped.get(remote)
            if not changes:
                continue
            _say(f"Creating commit for {remote} with file changes: {changes}")
            try:
                new_commit = create_commit_for_remote(commit, remote, changes, heads[remote], cwd)
            except GitError as exc:
                raise GitError(
                    f"creating commit for {remote}: {exc}\n"
                    f"Commit details: {commit}\n"
                    f"Parent commit: {heads[remote]}"
                ) from exc
            heads[remote] = new_commit
            _say(f"Created commit {new_commit} for {remote}")

    branches: dict[str, str] = {}
    for remote in remotes:
        branch = f"{prefix}-{remote}"
        try:
            run_git(["branch", branch, heads[remote]], cwd)
        except GitError as exc:
            raise GitError(f"creating branch {branch}: {exc}") from exc
        branches[branch] = heads[remote]
    return branches


def _build_info() -> str:
    try:
        return metadata.version("gitstitch")
    except metadata.PackageNotFoundError:
        return "dev (unknown)"


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point; returns the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    if args and args[0] in ("-h", "--help"):
        print(f"git-rip {_build_info()}")
        print("Splits monorepo commits back into separate repository branches.\n")
        print(USAGE)
        print("\nIf no prefix is specified, 'rip-<timestamp>' is used.")
        return 0

    prefix = args[0] if args else default_prefix()
    try:
        branches = rip(prefix)
    except GitError as exc:
        print(f"Error {exc}", file=sys.stderr)
        return 1

    if branches is None:
        print("No commits to rip since base commit")
        return 0

    print("Branches created:")
    for branch in branches:
        print(f"  {branch}")
    return 0