# gitstitch

This package provides two small git commands. They let you work on several
repositories as though they were one monorepo, and then split the work back
out.

- `git-stitch` takes one ref from each of several remotes and makes a single
  synthetic merge commit. In that commit, each remote's tree sits in a
  top-level directory named after the remote.
- `git-rip` walks the commits made on top of that merge commit. It replays
  each file change onto the repository the change belongs to, and leaves one
  new branch per remote.

Both commands run `git` in the current directory. `git` must be on your
`PATH`.

## Installation

```
pip install .
```

To also install the test requirements:

```
pip install .[test]
```

## Stitching

First add the repositories you want to combine as remotes of a fresh
repository. Then stitch them:

```
git init mono && cd mono
git remote add romeo ../romeo
git remote add juliet ../juliet
git-stitch romeo/main juliet/main
```

Each ref must have the form `remote/branch`, and the remote must already
exist. By default each remote is fetched before its ref is resolved. To skip
fetching, pass `-no-fetch` as the first argument:

```
git-stitch -no-fetch romeo/main juliet/main
```

The merge commit is deterministic, so the same inputs always give the same
commit hash. The commit is built like this:

- The message is `git-stitch merge`.
- The author and the committer are both `git-stitch <git-stitch@localhost>`.
- The date is the newest committer date among the stitched refs.
- The parents are the stitched commits, ordered by remote name.

`git-stitch` only creates the commit. It does not move any branch. It prints
the new hash together with the commands that use it:

```
Stitched juliet & romeo into <commit>
To check out the new commit, run:
  git checkout -b mono <commit>
Or to update your current branch:
  git reset <commit>
```

If you run it with no arguments, it prints usage and exits with status 1.

## Working in the monorepo

Edit, add, delete and rename files under `romeo/` and `juliet/`, and commit
as usual. A single commit may touch several of the repositories.

## Ripping

```
git-rip verona
```

`git-rip` starts from the most recent commit whose message contains
`git-stitch merge`. It takes every commit reachable from `HEAD` after that
merge, oldest first, and does the following:

- It finds each remote's starting commit, which is the merge parent whose
  tree matches that remote's directory. If no parent matches, it uses the
  first parent.
- It replays every file that was added, modified or deleted under a remote's
  directory onto that remote's line of history. Paths are taken relative to
  the remote's directory.
- Each file change becomes its own commit. That commit keeps the original
  message, author, committer and timestamps. A rename shows up as a delete
  plus an add.
- A commit that touches none of a remote's files adds nothing to that
  remote's history.

The changes are applied through a temporary private index. Your working tree
and your own index are not touched.

At the end, `git-rip` creates one branch per remote, named
`<prefix>-<remote>`. In the example above these are `verona-juliet` and
`verona-romeo`. If you give no prefix, it uses `rip-<unix timestamp>`. If
there are no commits after the merge, it says so and creates no branches.

Run `git-rip --help` to see its usage.

To see each step as it happens, set `GIT_STITCH_VERBOSE` to any non-empty
value.

## Using it from Python

```python
from gitstitch.stitch import stitch
from gitstitch.rip import rip

result = stitch(["romeo/main", "juliet/main"], fetch=False, cwd="mono")
print(result.commit_hash, result.tree_hash, result.remotes, result.timestamp)

branches = rip("verona", cwd="mono")
if branches is not None:
    for branch, commit in branches.items():
        print(branch, commit)
```

- `stitch()` returns a `StitchResult`. Its `parents` field maps each remote
  to the commit that was stitched in. `stitch()` also prints its progress
  lines, such as the resolved hash of each ref.
- `rip()` returns a mapping of branch name to commit. It returns `None` when
  there is nothing to rip.
- `gitstitch.stitch.parse_ref()` splits a `remote/branch` ref. It raises
  `ValueError` for a malformed ref, and `stitch()` raises the same error when
  it gets no refs.
- `gitstitch.rip.group_changes_by_remote()` sorts changed paths by their
  top-level directory.
- `gitstitch.git` holds the lower-level helpers, `run_git()`, `CommitInfo`
  and `FileChange`.

A failing git command raises `gitstitch.git.GitError`.