"""
guardflow.platform_check
========================

The platform-check predicate domain and its leaf-condition recognizer.

A :class:`PlatformCheckResult` is one of

* **empty**   - no constraint is known (the identity of :meth:`conjoin`);
* **leaf**    - ``(platform, is_negated)``: the named platform check held
  (or, when negated, did not hold) on every path reaching the point;
* **unknown** - constraints exist but cannot be expressed in this domain.

:class:`PlatformChecker` maps a boolean expression onto that domain, and
:class:`PlatformCheckPredicatePass` plugs both into the generic backward
pass of :mod:`guardflow.predicate_pass`.

Typical usage::

    from guardflow.platform_check import PlatformCheckPredicatePass

    fact = PlatformCheckPredicatePass().analyze(cfg, block)
    if fact.guarantees("Windows"):
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from guardflow.config import AnalysisConfig, JoinPolicy
from guardflow.operations import (
    BinaryOperation,
    BinaryOperatorKind,
    Invocation,
    LocalReference,
    MemberReference,
    Operation,
    OperationVisitor,
    UnaryOperation,
    UnaryOperatorKind,
)
from guardflow.predicate_pass import PredicatePass

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlatformCheckResult:
    """A fact of the platform-check domain.

    Build instances through :meth:`empty`, :meth:`unknown` and
    :meth:`create`; the constructor does not enforce the invariants.
    """

    platform: Optional[str] = None
    is_negated: bool = False
    is_unknown: bool = False

    @classmethod
    def empty(cls) -> "PlatformCheckResult":
        return _EMPTY

    @classmethod
    def unknown(cls) -> "PlatformCheckResult":
        return _UNKNOWN

    @classmethod
    def create(cls, platform: str, negated: bool = False) -> "PlatformCheckResult":
        """Return the leaf fact "*platform* held" (or did not, if *negated*)."""
        if not platform:
            raise ValueError("a platform check needs a non-empty platform name")
        return cls(platform=platform, is_negated=negated)

    @property
    def is_empty(self) -> bool:
        return self.platform is None and not self.is_unknown

    @property
    def is_leaf(self) -> bool:
        return self.platform is not None

    def negate(self) -> "PlatformCheckResult":
        """Flip the polarity of a leaf; *empty* and *unknown* are unchanged."""
        if not self.is_leaf:
            return self
        return PlatformCheckResult(self.platform, not self.is_negated)

    def conjoin(self, other: "PlatformCheckResult") -> "PlatformCheckResult":
        """Both facts hold.

        *empty* is the identity.  Two identical leaves collapse into one;
        any other combination has no representation and yields *unknown*.
        """
        if self.is_empty:
            return other
        if other.is_empty:
            return self
        if self.is_leaf and self == other:
            return self
        return _UNKNOWN

    def guarantees(self, platform: str, negated: bool = False) -> bool:
        """Whether this fact proves ``(platform, negated)``.

        *empty* and *unknown* never prove anything.
        """
        return self.is_leaf and self.platform == platform and self.is_negated == negated

    def describe(self) -> str:
        """Short human-readable rendering, distinguishing all three shapes."""
        if self.is_unknown:
            return "unknown"
        if self.is_empty:
            return "empty"
        return f"!{self.platform}" if self.is_negated else str(self.platform)

    def to_dict(self) -> dict:
        if self.is_unknown:
            shape = "unknown"
        elif self.is_empty:
            shape = "empty"
        else:
            shape = "leaf"
        return {
            "kind": shape,
            "platform": self.platform,
            "negated": self.is_negated,
        }


_EMPTY = PlatformCheckResult()
_UNKNOWN = PlatformCheckResult(is_unknown=True)


# ---------------------------------------------------------------------------
# Leaf condition recognizer
# ---------------------------------------------------------------------------

class PlatformChecker(OperationVisitor[PlatformCheckResult]):
    """Classify a boolean expression as a platform-check fact.

    Recognised shapes, recursively:

    * ``!E`` and ``~E``              -> ``negate(E)``
    * ``E1 && E2`` and ``E1 & E2``   -> ``conjoin(E1, E2)``
    * ``F(X.Member)`` or ``F(Name)`` where ``F`` is a configured predicate
      function and ``Name`` is not a local or parameter
                                     -> leaf ``Member`` or ``Name``

    Everything else is *unknown*.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = config or AnalysisConfig()
        self._predicates = frozenset(self.config.predicate_functions)

    def check(self, negated: bool, condition: Operation) -> PlatformCheckResult:
        result = self.visit(condition)
        if result.is_unknown:
            logger.debug("Unrecognised condition %r", condition.syntax.text)
        return result.negate() if negated else result

    def check_all(
        self, conditions: Iterable[Tuple[bool, Operation]]
    ) -> PlatformCheckResult:
        """Conjoin the facts of several ``(negated, condition)`` pairs."""
        result = PlatformCheckResult.empty()
        for negated, condition in conditions:
            result = result.conjoin(self.check(negated, condition))
        return result

    # ----- visitor ----------------------------------------------------------

    def default_visit(self, operation: Optional[Operation], argument: Any) -> PlatformCheckResult:
        return PlatformCheckResult.unknown()

    def visit_unary(self, operation: UnaryOperation, argument: Any) -> PlatformCheckResult:
        if operation.operator in (UnaryOperatorKind.NOT, UnaryOperatorKind.BITWISE_NEGATION):
            return self.visit(operation.operand, argument).negate()
        return PlatformCheckResult.unknown()

    def visit_binary(self, operation: BinaryOperation, argument: Any) -> PlatformCheckResult:
        if operation.operator in (BinaryOperatorKind.CONDITIONAL_AND, BinaryOperatorKind.AND):
            left = self.visit(operation.left, argument)
            right = self.visit(operation.right, argument)
            return left.conjoin(right)
        return PlatformCheckResult.unknown()

    def visit_invocation(self, operation: Invocation, argument: Any) -> PlatformCheckResult:
        if operation.method_name in self._predicates and len(operation.arguments) == 1:
            name = _constant_name(operation.arguments[0])
            if name:
                return PlatformCheckResult.create(name)
        return PlatformCheckResult.unknown()


def _constant_name(operation: Operation) -> Optional[str]:
    """Name of the constant or property *operation* refers to, if any."""
    if isinstance(operation, MemberReference):
        return operation.member or None
    if isinstance(operation, LocalReference) and not operation.is_declared:
        return operation.name or None
    return None


# ---------------------------------------------------------------------------
# Predicate pass instantiation
# ---------------------------------------------------------------------------

class PlatformCheckPredicatePass(PredicatePass[PlatformCheckResult]):
    """Backward predicate pass over the platform-check domain.

    With the default ``JoinPolicy.CONSERVATIVE`` every path join yields
    *unknown*, even when both sides agree.  ``JoinPolicy.AGREE`` keeps a
    fact that is identical on both sides.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = config or AnalysisConfig()
        self.checker = PlatformChecker(self.config)

    def empty_state(self) -> PlatformCheckResult:
        return PlatformCheckResult.empty()

    def condition_state(self, negated: bool, condition: Operation) -> PlatformCheckResult:
        return self.checker.check(negated, condition)

    def and_states(
        self, left: PlatformCheckResult, right: PlatformCheckResult
    ) -> PlatformCheckResult:
        return left.conjoin(right)

    def or_states(
        self, left: PlatformCheckResult, right: PlatformCheckResult
    ) -> PlatformCheckResult:
        if self.config.join_policy is JoinPolicy.AGREE and left == right:
            return left
        return PlatformCheckResult.unknown()
