"""
guardflow — Platform-guard analysis over control flow graphs
============================================================

Given a call site, guardflow determines which platform check is guaranteed
to hold whenever control reaches it, by walking the enclosing function's
control flow graph backwards from the call.

Core modules
------------
operations
    Operation tree (expressions and statement-level operations).
frontend
    Parsimonious grammar for a small C#-like language.
ctrlflow_graph
    Basic blocks, branches, CFG construction and DOT output.
predicate_pass
    Generic backward predicate pass, parameterised over a fact domain.
platform_check
    Platform-check fact domain and leaf-condition recognizer.
query
    Call-site lookup and result interpretation.
config
    Analysis configuration.
errors
    Exception hierarchy.

Quick start
-----------
>>> from guardflow import parse_source, build_cfg, find_function, analyze_call
>>> unit = parse_source('''
... void Main() {
...     if (RuntimeInformation.IsOSPlatform(OSPlatform.Windows)) { WindowsApi(); }
... }''')
>>> guard = analyze_call(build_cfg(find_function(unit, "Main")), "WindowsApi")
>>> guard.fact.describe()
'Windows'

Package layout
--------------
::

    guardflow/
    ├── __init__.py            ← this file
    ├── __main__.py
    ├── config.py
    ├── ctrlflow_graph.py
    ├── errors.py
    ├── frontend.py
    ├── operations.py
    ├── platform_check.py
    ├── predicate_pass.py
    └── query.py
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__all__: List[str] = ["__version__"]          # populated incrementally below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: module name -> public names re-exported at package level
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "GuardflowError",
        "FrontendError",
        "ConfigError",
        "NotFoundError",
        "AmbiguousMatchError",
    ],
    "config": [
        "AnalysisConfig",
        "JoinPolicy",
        "load_config",
    ],
    "operations": [
        "SyntaxSpan",
        "Operation",
        "OperationKind",
        "Invocation",
        "OperationVisitor",
        "format_operation",
    ],
    "frontend": [
        "CompilationUnit",
        "FunctionDecl",
        "parse_source",
        "parse_file",
    ],
    "ctrlflow_graph": [
        "BasicBlock",
        "ControlFlowBranch",
        "ControlFlowGraph",
        "ConditionKind",
        "connect",
        "build_cfg",
        "build_all_cfgs",
        "cfg_summary",
    ],
    "predicate_pass": [
        "PredicatePass",
        "edge_polarity",
    ],
    "platform_check": [
        "PlatformCheckResult",
        "PlatformChecker",
        "PlatformCheckPredicatePass",
    ],
    "query": [
        "CallSiteGuard",
        "find_function",
        "find_invocations",
        "enclosing_statement",
        "find_block",
        "analyze_call",
        "analyze_calls",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace.

    The submodule itself is bound too, so that both
    ``guardflow.query.analyze_call`` and ``guardflow.analyze_call`` work.
    """
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"guardflow: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            raise AttributeError(f"guardflow.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, obj)
        __all__.append(name)

    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)
    _log.debug("Loaded guardflow.%s (%d names)", module_rel_name, len(names))


# ---------------------------------------------------------------------------
# Eagerly import everything at package load time
# ---------------------------------------------------------------------------

for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

# Clean up loop variables from the module namespace
del _mod, _names
