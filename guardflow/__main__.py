#!/usr/bin/env python3
"""guardflow/__main__.py — CLI entry-point for guardflow.

Usage examples
--------------
    # Which platform guard protects every call of WindowsApi in Main?
    python -m guardflow check Program.cs --call WindowsApi

    # Fail (exit 3) unless every call is guarded by IsOSPlatform(OSPlatform.Windows)
    python -m guardflow check Program.cs --call WindowsApi --require Windows

    # Dump the CFG of Program.Main as Graphviz DOT, or render it to SVG
    python -m guardflow dump-cfg Program.cs --function Program.Main -o main.dot
    python -m guardflow dump-cfg Program.cs --render svg -o main

    # Show version and exit
    python -m guardflow --version

Exit codes
----------
    0   Success (every required guarantee holds).
    1   Analysis error (function or call site not found, ambiguous match).
    2   Infrastructure failure (missing file, bad config, parse error).
    3   A required platform guarantee does not hold.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from guardflow import __version__
from guardflow.config import AnalysisConfig, load_config
from guardflow.ctrlflow_graph import build_cfg, cfg_summary
from guardflow.errors import ConfigError, FrontendError, GuardflowError
from guardflow.frontend import parse_file
from guardflow.query import CallSiteGuard, analyze_calls, find_function

_log = logging.getLogger("guardflow")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2
EXIT_VIOLATION: int = 3


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``guardflow`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("guardflow")
    root.setLevel(level)
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _load_config(raw: Optional[str]) -> AnalysisConfig:
    config = load_config(_resolve_path(raw, "config file")) if raw else AnalysisConfig()
    for warning in config.validate():
        _log.warning("config: %s", warning)
    return config


# ===========================================================================
# Sub-command implementations
# ===========================================================================

# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

def _emit_guards(guards: List[CallSiteGuard], fmt: str, stream: TextIO) -> None:
    if fmt == "json":
        stream.write(json.dumps([g.to_dict() for g in guards], indent=2) + "\n")
    else:
        for guard in guards:
            stream.write(guard.describe() + "\n")


def cmd_check(args: argparse.Namespace) -> int:
    """Report the platform guard of every call of ``--call`` in a function.

    With ``--require`` the verdict is printed as well: ``All good`` when
    every call site is guaranteed, ``Sorry, you must be on PLATFORM``
    otherwise.
    """
    source = _resolve_path(args.source, "source file")
    config = _load_config(args.config)

    unit = parse_file(source)
    function = find_function(unit, args.function)
    _log.info("Analysing %s in %s", function.qualified_name, source)
    cfg = build_cfg(function, config)
    guards = analyze_calls(cfg, args.call, config)

    _emit_guards(guards, args.format, sys.stdout)

    if args.require is None:
        return EXIT_OK
    if all(g.is_guaranteed(args.require, args.negated) for g in guards):
        print("All good")
        return EXIT_OK
    prefix = "not " if args.negated else ""
    print(f"Sorry, you must {prefix}be on {args.require}")
    return EXIT_VIOLATION


# ---------------------------------------------------------------------------
# dump-cfg
# ---------------------------------------------------------------------------

def _render(dot_source: str, fmt: str, output: Optional[str], name: str) -> Path:
    """Render DOT through the ``graphviz`` package (``viz`` extra)."""
    try:
        import graphviz  # type: ignore[import-untyped]
    except ImportError:
        _log.error(
            "graphviz is not installed.  "
            "Install it with: pip install 'guardflow[viz]'"
        )
        raise SystemExit(EXIT_INFRA)
    stem = output if output not in (None, "-") else name
    try:
        rendered = graphviz.Source(dot_source).render(
            filename=stem, format=fmt, cleanup=True
        )
    except graphviz.ExecutableNotFound as exc:
        _log.error("Cannot render %s: %s", name, exc)
        raise SystemExit(EXIT_INFRA) from exc
    return Path(rendered)


def cmd_dump_cfg(args: argparse.Namespace) -> int:
    """Write the CFG of one function as DOT, a text listing, or a rendering."""
    source = _resolve_path(args.source, "source file")
    config = _load_config(args.config)

    unit = parse_file(source)
    function = find_function(unit, args.function)
    cfg = build_cfg(function, config)

    if args.render:
        path = _render(cfg.to_dot(cfg.name), args.render, args.output, cfg.name)
        _log.info("Rendered %s to %s", cfg.name, path)
        return EXIT_OK

    text = cfg.to_dot(cfg.name) if args.format == "dot" else cfg_summary(cfg)
    out = _open_output(args.output)
    try:
        out.write(text + "\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guardflow",
        description=(
            "Find the platform check guaranteed to guard a call site, "
            "by backward analysis over the function's control flow graph."
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # Shared argument groups (reusable) ------------------------------------

    def _add_source_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "source",
            metavar="SOURCE",
            help="Source file to analyse.",
        )
        p.add_argument(
            "--function",
            default="Main",
            metavar="NAME",
            help="Function to analyse, simple or qualified (default: Main).",
        )
        p.add_argument(
            "-c", "--config",
            default=None,
            metavar="FILE",
            help="JSON analysis configuration.",
        )

    # --- check -------------------------------------------------------------
    p_check = subparsers.add_parser(
        "check",
        help="Report the platform guard of every call of a method.",
        description=(
            "Locate every call of --call in the function, find the basic "
            "block holding it, and report the platform check guaranteed "
            "on every path reaching that block."
        ),
    )
    _add_source_args(p_check)
    p_check.add_argument(
        "--call",
        required=True,
        metavar="METHOD",
        help="Name of the invoked method whose call sites are analysed.",
    )
    p_check.add_argument(
        "--require",
        default=None,
        metavar="PLATFORM",
        help="Exit with 3 unless every call is guarded by this platform.",
    )
    p_check.add_argument(
        "--negated",
        action="store_true",
        help="Require the negated check (not on PLATFORM) instead.",
    )
    p_check.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text).",
    )
    p_check.set_defaults(func=cmd_check)

    # --- dump-cfg ----------------------------------------------------------
    p_dump = subparsers.add_parser(
        "dump-cfg",
        help="Dump the control flow graph of a function.",
    )
    _add_source_args(p_dump)
    p_dump.add_argument(
        "-f", "--format",
        choices=["dot", "text"],
        default="dot",
        help="Output format (default: dot).",
    )
    p_dump.add_argument(
        "-o", "--output",
        default=None,
        metavar="FILE",
        help='Output file ("-" or omit for stdout).',
    )
    p_dump.add_argument(
        "--render",
        default=None,
        metavar="FMT",
        help="Render with Graphviz to FMT (svg, png, pdf ...); needs the viz extra.",
    )
    p_dump.set_defaults(func=cmd_dump_cfg)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the guardflow CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    # No subcommand given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except (FrontendError, ConfigError) as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    except GuardflowError as exc:
        _log.error("%s", exc)
        return EXIT_ERROR
    except OSError as exc:
        _log.error("I/O error: %s", exc)
        return EXIT_INFRA
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130  # Standard UNIX convention for SIGINT
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA


# ---------------------------------------------------------------------------
# Module execution support
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    raise SystemExit(main())
