[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gitstitch"
version = "0.1.0"
description = "Stitch several git repositories into one monorepo commit and rip monorepo commits back into per-repository branches."
requires-python = ">=3.10"
dependencies = []
keywords = ["git", "monorepo", "subtree", "split", "merge"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Version Control :: Git",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
git-stitch = "gitstitch.stitch:main"
git-rip = "gitstitch.rip:main"

[tool.hatch.build.targets.wheel]
packages = ["gitstitch"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
