#!/usr/bin/env python3
"""
maybecfg - one template, many gated forms

Expands template modules whose routines are written once and annotated
with @maybe(...) into generated modules holding one copy per declared
context (typically sync and async), each behind its own `if <predicate>:`
gate.

As an aside, this codebase leverages the ChRIS "plugin" concept/pattern as
general purpose python app development framework.

Philosophy:
    - One template: sync and async forms never drift apart
    - Declarative contexts: name, predicate, async-ness and renames per form
    - Pure expansion: same template in, byte-identical module out
    - Fail loudly: a malformed template fails the run, nothing is half-written

Usage:
    maybecfg inputdir/ outputdir/ [--pattern GLOB] [--check] [--show]

    Every template below inputdir matching GLOB that holds annotated items
    is expanded to the same relative path below outputdir.

Examples:
    # Generate the package's client modules
    maybecfg templates/ src/mypkg/ --pattern "client/*.py"

    # CI: fail if the generated modules are out of date
    maybecfg templates/ src/mypkg/ --check

    # Look at what would be generated, verbosely
    maybecfg templates/ /tmp/out --show -vv
"""

import sys
from pathlib import Path
from argparse import ArgumentParser, Namespace, ArgumentDefaultsHelpFormatter

from chris_plugin import chris_plugin
from .config import appsettings
from .lib import MaybeError, source_expand, __version__, LOG, state_connectToLogger
from .lib.highlight import source_highlight
from .models import ProgramState, pipeline


DISPLAY_TITLE = r"""
                       _
  _ __ ___   __ _ _   _| |__   ___  ___ / _| __ _
 | '_ ` _ \ / _` | | | | '_ \ / _ \/ __| |_ / _` |
 | | | | | | (_| | |_| | |_) |  __/ (__|  _| (_| |
 |_| |_| |_|\__,_|\__, |_.__/ \___|\___|_|  \__, |
                  |___/                     |___/
  One template, many gated forms
"""

# Define CLI arguments
parser = ArgumentParser(
    description="maybecfg - expand sync/async (and other) forms from one annotated template",
    formatter_class=ArgumentDefaultsHelpFormatter,
)

parser.add_argument(
    "--pattern",
    default=appsettings.default_pattern,
    type=str,
    help="Glob (relative to inputdir) selecting template files",
)

parser.add_argument(
    "--check",
    action="store_true",
    help="Do not write; exit 1 if any generated module differs from what is in outputdir",
)

parser.add_argument(
    "--show",
    action="store_true",
    help="Print every generated module to stdout (highlighted on a terminal)",
)

parser.add_argument(
    "-v",
    "--verbosity",
    action="count",
    default=1,
    help="Increase output verbosity (can be repeated: -v, -vv)",
)

parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")


def env_check(inputstate: ProgramState) -> ProgramState:
    """
    Validate the input directory and prepare the output directory.

    Args:
        inputstate: Initial program state with CLI options

    Returns:
        ProgramState with envOK set

    Exits:
        1 if the input directory does not exist or is also the output directory
    """
    state = inputstate.copy()

    if state.verbosity >= 2:
        LOG(DISPLAY_TITLE, level=2)

    LOG("Checking environment...", level=2)

    if state.inputdir is None or not state.inputdir.is_dir():
        print(f"Error: Input directory not found: {state.inputdir}", file=sys.stderr)
        state.envOK = False
        sys.exit(1)

    if state.outputdir.resolve() == state.inputdir.resolve():
        print(
            f"Error: Output directory is the input directory: {state.outputdir} "
            "(generated modules would overwrite their templates)",
            file=sys.stderr,
        )
        state.envOK = False
        sys.exit(1)

    if not state.check:
        state.outputdir.mkdir(parents=True, exist_ok=True)
    LOG(f"Input directory: {state.inputdir}", level=2)
    LOG(f"Output directory: {state.outputdir}", level=2)

    state.envOK = True
    return state


def sources_discover(inputstate: ProgramState) -> ProgramState:
    """
    Find template files below the input directory.

    Files below outputdir are skipped when outputdir lies inside inputdir,
    so generated modules are never re-read as templates.

    Returns:
        ProgramState with templateFiles (paths relative to inputdir, sorted)
    """
    state = inputstate.copy()

    LOG(f"Discovering templates matching '{state.pattern}'...", level=1)

    outputdir = state.outputdir.resolve()
    found = []
    for path in sorted(state.inputdir.glob(state.pattern)):
        if not path.is_file():
            continue
        if outputdir != state.inputdir.resolve() and outputdir in path.resolve().parents:
            continue
        found.append(path.relative_to(state.inputdir))

    state.templateFiles = found
    LOG(f"Found {len(found)} candidate files", level=2)
    return state


def sources_expand(inputstate: ProgramState) -> ProgramState:
    """
    Expand every template file in memory.

    Files holding no annotated item are dropped from the run.

    Returns:
        ProgramState with expansions keyed by relative template path

    Exits:
        1 on the first file that fails to parse or expand
    """
    state = inputstate.copy()

    LOG("Expanding templates...", level=1)

    expansions = {}
    for relative in state.templateFiles:
        path = state.inputdir / relative
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            print(f"Error reading {path}: {e}", file=sys.stderr)
            sys.exit(1)

        try:
            result = source_expand(source, str(relative))
        except SyntaxError as e:
            print(f"Parse error in {path}: {e}", file=sys.stderr)
            sys.exit(1)
        except MaybeError as e:
            print(e.location_describe(source), file=sys.stderr)
            sys.exit(1)

        if result.items_expanded:
            expansions[relative] = result
        else:
            LOG(f"Skipping {relative}: no annotated items", level=2)

    state.expansions = expansions
    return state


def outputs_write(inputstate: ProgramState) -> ProgramState:
    """
    Write generated modules, or compare them with outputdir in --check mode.

    Returns:
        ProgramState with writeResult:
            - written: relative paths written
            - stale: relative paths whose output is missing or differs
            - copies: total number of gated copies emitted

    Exits:
        1 in --check mode when any output is stale
    """
    state = inputstate.copy()

    written = []
    stale = []
    for relative, result in state.expansions.items():
        target = state.outputdir / relative
        if state.check:
            current = target.read_text(encoding="utf-8") if target.exists() else None
            if current != result.source:
                stale.append(relative)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(result.source, encoding="utf-8")
        written.append(relative)
        LOG(f"Wrote {target}", level=2)

    state.writeResult = {
        "written": written,
        "stale": stale,
        "copies": sum(r.copies_emitted for r in state.expansions.values()),
    }

    if stale:
        for relative in stale:
            print(f"Out of date: {state.outputdir / relative}", file=sys.stderr)
        sys.exit(1)

    return state


def results_report(inputstate: ProgramState) -> ProgramState:
    """
    Display expansion results (and the generated modules with --show).

    Returns:
        ProgramState unchanged (terminal pipeline stage)
    """
    state: ProgramState = inputstate.copy()
    if state.writeResult is None:
        print("Error: Expansion did not run", file=sys.stderr)
        sys.exit(1)

    if state.show:
        colour = sys.stdout.isatty()
        for relative, result in state.expansions.items():
            print(f"# ---- {relative}")
            print(source_highlight(result.source, colour=colour))

    verb = "Checked" if state.check else "Generated"
    LOG(f"\n✓ {verb} {len(state.expansions)} modules", level=1)
    LOG(f"  Copies emitted: {state.writeResult['copies']}", level=1)
    if state.writeResult["written"]:
        LOG(f"  Output: {state.outputdir}", level=1)
    return state


@chris_plugin(
    parser=parser,
    title="maybecfg - one template, many gated forms",
    category="Utility",
    min_memory_limit="100Mi",
    min_cpu_limit="500m",
)
def main(options: Namespace, inputdir: Path, outputdir: Path):
    """
    Main entry point - expand template modules into generated modules.

    Orchestrates the full pipeline:
        1. env_check: Validate directories
        2. sources_discover: Find template files
        3. sources_expand: Expand annotated items in memory
        4. outputs_write: Write (or check) generated modules
        5. results_report: Display results to user

    Args:
        options: CLI arguments from argparse
        inputdir: Directory containing template modules
        outputdir: Directory where generated modules are written

    Note:
        This function is wrapped by @chris_plugin which handles CLI
        argument parsing and invokes this function with parsed values.
    """

    state: ProgramState = ProgramState.state_createFromNamespace(
        options=options, inputdir=inputdir, outputdir=outputdir
    )

    # Connect state to logger for entire pipeline
    state_connectToLogger(state)

    pipeline(state, env_check, sources_discover, sources_expand, outputs_write, results_report)


if __name__ == "__main__":
    main()  # type: ignore  # @chris_plugin decorator transforms signature
