"""Stitch git repositories into a monorepo commit and rip changes back into per-repository branches."""

__version__ = "0.1.0"