"""Exception types shared across dotlink."""

from __future__ import annotations


class DotlinkError(RuntimeError):
    """Raised when dotlink encounters an unrecoverable state."""


class DetectionError(DotlinkError):
    """Raised when a detection strategy cannot reach a verdict."""


class AmbiguousMatchError(DetectionError):
    """Raised when a fuzzy match finds more than one installed program."""

    def __init__(self, component: str, pattern: str, matches: list[str]) -> None:
        self.component = component
        self.pattern = pattern
        self.matches = matches
        joined = ", ".join(repr(name) for name in matches)
        super().__init__(f"Pattern '{pattern}' for component '{component}' matched {len(matches)} programs: {joined}")


class MissingInstallPathError(DotlinkError):
    """Raised when a component is reconciled without a resolved install path."""


class AttributeUpdateError(OSError):
    """Raised when hidden/system attributes cannot be applied to a link."""
