"""Matching of tap/scope-qualified package names."""

from __future__ import annotations

from typing import Iterable


def short_name(name: str) -> str:
    """Trailing component of a qualified name, e.g. ``oven-sh/bun/bun`` -> ``bun``."""
    return name.rsplit("/", 1)[-1]


class DeclaredNames:
    """A set of declared package names that matches full or short names.

    ``"oven-sh/bun/bun" in DeclaredNames(["bun"])`` and
    ``"bun" in DeclaredNames(["oven-sh/bun/bun"])`` are both true.
    """

    def __init__(self, names: Iterable[str]) -> None:
        self.full = set(names)
        self.short = {short_name(n) for n in self.full}

    def __contains__(self, installed: object) -> bool:
        if not isinstance(installed, str):
            return False
        return installed in self.full or short_name(installed) in self.short

    def __len__(self) -> int:
        return len(self.full)


def dedupe(names: Iterable[str]) -> tuple[str, ...]:
    """Drop repeated names, keeping the first occurrence."""
    return tuple(dict.fromkeys(n for n in names if n))
