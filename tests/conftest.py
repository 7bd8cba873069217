# tests/conftest.py
"""
Shared helpers, source snippets and fixtures for the guardflow test-suite.
"""

from typing import List, Optional

import pytest

from guardflow.config import AnalysisConfig
from guardflow.ctrlflow_graph import (
    BasicBlock,
    BlockKind,
    ConditionKind,
    ControlFlowGraph,
    build_cfg,
)
from guardflow.frontend import parse_source
from guardflow.operations import (
    Invocation,
    LocalReference,
    MemberReference,
    Operation,
    SyntaxSpan,
)
from guardflow.query import CallSiteGuard, analyze_call, find_function


# ── Source snippets ──────────────────────────────────────────────

SCENARIO_A = """
class Program
{
    static void Main()
    {
        if (RuntimeInformation.IsOSPlatform(OSPlatform.Windows))
        {
            Target();
        }
    }
}
"""

SCENARIO_B = """
class Program
{
    static void Main()
    {
        if (!RuntimeInformation.IsOSPlatform(OSPlatform.Windows))
        {
        }
        else
        {
            Target();
        }
    }
}
"""

SCENARIO_C = """
class Program
{
    static void Main()
    {
        if (!RuntimeInformation.IsOSPlatform(OSPlatform.Windows))
        {
            if (!RuntimeInformation.IsOSPlatform(OSPlatform.Linux))
            {
                return;
            }
        }
        Target();
    }
}
"""

SCENARIO_D = """
class Program
{
    static void Main()
    {
        while (true)
        {
            Target();
        }
    }
}
"""

SCENARIO_E = """
class Program
{
    static void Main(string[] args)
    {
        int x = args.Length;
        if (x > 0)
        {
            Target();
        }
    }
}
"""


# ── Source helpers ───────────────────────────────────────────────

def main_cfg(source: str, config: Optional[AnalysisConfig] = None,
             function: str = "Main") -> ControlFlowGraph:
    """Parse *source* and build the CFG of *function*."""
    unit = parse_source(source, "<test>")
    return build_cfg(find_function(unit, function), config)


def guard_of(source: str, call: str = "Target",
             config: Optional[AnalysisConfig] = None) -> CallSiteGuard:
    """Guard of the single call of *call* in ``Main`` of *source*."""
    return analyze_call(main_cfg(source, config), call, config)


def in_main(body: str) -> str:
    """Wrap statements in ``void Main() { ... }``."""
    return "void Main()\n{\n" + body + "\n}\n"


# ── Operation helpers ────────────────────────────────────────────

def span(text: str, kind: str = "expression") -> SyntaxSpan:
    return SyntaxSpan(kind=kind, text=text, start=0, end=len(text))


def local(name: str) -> LocalReference:
    return LocalReference(syntax=span(name, "local-reference"), name=name)


def platform_check(platform: str,
                   predicate: str = "IsOSPlatform") -> Invocation:
    """``predicate(OSPlatform.<platform>)`` built by hand."""
    argument = MemberReference(
        syntax=span(f"OSPlatform.{platform}", "member-reference"),
        instance=local("OSPlatform"),
        member=platform,
    )
    return Invocation(
        syntax=span(f"{predicate}(OSPlatform.{platform})", "invocation"),
        target=local(predicate),
        arguments=[argument],
    )


# ── Graph helpers ────────────────────────────────────────────────

def make_blocks(count: int) -> List[BasicBlock]:
    """*count* unconnected blocks with dense ordinals."""
    return [BasicBlock(ordinal=i) for i in range(count)]


def make_graph(blocks: List[BasicBlock], name: str = "toy") -> ControlFlowGraph:
    blocks[0].kind = BlockKind.ENTRY
    blocks[-1].kind = BlockKind.EXIT
    return ControlFlowGraph(name, blocks)


def set_branch(block: BasicBlock, condition: Operation,
               kind: ConditionKind = ConditionKind.WHEN_FALSE) -> None:
    block.branch_value = condition
    block.condition_kind = kind


# ── Fixtures ─────────────────────────────────────────────────────

@pytest.fixture
def config():
    return AnalysisConfig()


@pytest.fixture
def write_source(tmp_path):
    """Write a source file into ``tmp_path`` and return its path."""
    def _write(text: str, name: str = "Program.cs"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write
