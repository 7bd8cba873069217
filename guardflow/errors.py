"""
guardflow.errors
================

Exception hierarchy for the guardflow toolchain.

Every error carries an optional source location and renders itself in the
GCC-style ``file:line:col: error: message`` form so that the CLI can print
it verbatim.

Hierarchy
---------
::

    GuardflowError
    ├── FrontendError          source text rejected by the grammar / lowering
    ├── ConfigError            malformed configuration mapping or file
    ├── NotFoundError          lookup matched nothing          (LookupError)
    └── AmbiguousMatchError    lookup matched more than once   (LookupError)

An *unknown* analysis result is **not** an error; it is returned as a
regular :class:`~guardflow.platform_check.PlatformCheckResult`.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class GuardflowError(Exception):
    """Base exception for all guardflow errors."""

    def __init__(
        self,
        message: str,
        *,
        source_name: str = "",
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.source_name = source_name
        self.line = line
        self.column = column

    @property
    def location(self) -> str:
        parts = [self.source_name or "<input>"]
        if self.line:
            parts.append(str(self.line))
            if self.column:
                parts.append(str(self.column))
        return ":".join(parts)

    def to_gcc_format(self) -> str:
        """Format as a GCC-style error message."""
        return f"{self.location}: error: {self.message}"

    def __str__(self) -> str:
        if self.source_name or self.line:
            return self.to_gcc_format()
        return self.message


# ---------------------------------------------------------------------------
# Front-end / configuration
# ---------------------------------------------------------------------------

class FrontendError(GuardflowError):
    """Source text could not be turned into functions and CFGs."""


class ConfigError(GuardflowError):
    """A configuration mapping or file is malformed."""


# ---------------------------------------------------------------------------
# Lookup errors (query driver)
# ---------------------------------------------------------------------------

class NotFoundError(GuardflowError, LookupError):
    """A lookup (function, call site, statement block) matched nothing.

    Attributes
    ----------
    target : str
        Human-readable identity of what was looked for.
    """

    def __init__(self, message: str, *, target: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.target = target


class AmbiguousMatchError(GuardflowError, LookupError):
    """A lookup that must be unique matched several candidates.

    Attributes
    ----------
    target : str
        Human-readable identity of what was looked for.
    matches : list
        The competing candidates, in discovery order.
    """

    def __init__(
        self,
        message: str,
        *,
        target: str = "",
        matches: Optional[Sequence[Any]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.target = target
        self.matches: List[Any] = list(matches or [])
