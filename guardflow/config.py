"""
guardflow.config
================

Tuning knobs for CFG construction and the platform-check analysis.

Configuration is a plain dataclass.  It can be built in code, from a
mapping, or from a JSON file::

    {
        "predicate_functions": ["IsOSPlatform", "IsPlatform"],
        "join_policy": "conservative",
        "fold_constant_conditions": true
    }
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, List, Mapping, Tuple, Union

from guardflow.errors import ConfigError


class JoinPolicy(enum.Enum):
    """How facts arriving over different paths are combined.

    ``CONSERVATIVE``
        Any join of two paths yields *unknown*.
    ``AGREE``
        A join of two equal facts yields that fact; anything else *unknown*.
    """

    CONSERVATIVE = "conservative"
    AGREE = "agree"


@dataclass(frozen=True)
class AnalysisConfig:
    """Tuning knobs for guardflow."""

    predicate_functions: Tuple[str, ...] = ("IsOSPlatform",)
    join_policy: JoinPolicy = JoinPolicy.CONSERVATIVE
    fold_constant_conditions: bool = True

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if not self.predicate_functions:
            warnings.append(
                "predicate_functions is empty; no condition will be recognised"
            )
        for name in self.predicate_functions:
            if not name.isidentifier():
                warnings.append(f"predicate function {name!r} is not an identifier")
        return warnings

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AnalysisConfig":
        """Build a config from a mapping, rejecting unknown keys and bad types."""
        if not isinstance(data, Mapping):
            raise ConfigError("configuration must be a JSON object")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown configuration key(s): {', '.join(unknown)}")

        kwargs: dict = {}
        if "predicate_functions" in data:
            names = data["predicate_functions"]
            if not isinstance(names, (list, tuple)) or not all(
                isinstance(n, str) for n in names
            ):
                raise ConfigError("predicate_functions must be a list of strings")
            kwargs["predicate_functions"] = tuple(names)
        if "join_policy" in data:
            try:
                kwargs["join_policy"] = JoinPolicy(data["join_policy"])
            except ValueError:
                choices = ", ".join(p.value for p in JoinPolicy)
                raise ConfigError(
                    f"join_policy must be one of: {choices}"
                ) from None
        if "fold_constant_conditions" in data:
            fold = data["fold_constant_conditions"]
            if not isinstance(fold, bool):
                raise ConfigError("fold_constant_conditions must be a boolean")
            kwargs["fold_constant_conditions"] = fold
        return cls(**kwargs)


def load_config(path: Union[str, Path]) -> AnalysisConfig:
    """Load an :class:`AnalysisConfig` from a JSON file."""
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read configuration: {exc}", source_name=str(p)) from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(
            f"invalid JSON: {exc.msg}",
            source_name=str(p),
            line=exc.lineno,
            column=exc.colno,
        ) from exc
    try:
        return AnalysisConfig.from_mapping(data)
    except ConfigError as exc:
        exc.source_name = str(p)
        raise
