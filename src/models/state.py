"""
Program state model and pipeline helper

Defines ProgramState dataclass for the functional pipeline pattern and
the pipeline() helper for composing transformation stages.
"""

from pathlib import Path
from argparse import Namespace
from typing import Any, Optional, Type, TypeVar, List, Dict, Callable
from dataclasses import dataclass, field


PS = TypeVar("PS", bound="ProgramState")


@dataclass
class ProgramState:
    """
    Central state container for the expansion pipeline (state bus pattern).

    This dataclass carries all program state through the functional pipeline,
    with each stage adding new fields as the expansion progresses.

    Pipeline stages and their state additions:
        - Initial: inputdir, outputdir, verbosity, pattern, check, show
        - env_check: envOK
        - sources_discover: templateFiles
        - sources_expand: expansions
        - outputs_write: writeResult
        - results_report: (no additions, terminal stage)

    Attributes:
        inputdir: Directory containing template modules
        outputdir: Directory receiving generated modules (same relative paths)
        verbosity: Logging verbosity level (1-3)
        pattern: Glob selecting template files below inputdir
        check: Compare against existing outputs instead of writing
        show: Print every generated module (highlighted) to stdout
        envOK: Environment validation passed
        templateFiles: Template files found, relative to inputdir
        expansions: Expansion results keyed by relative template path
        writeResult: Summary of the write / check stage
    """

    # CLI arguments
    inputdir: Optional[Path] = field(default=None)
    outputdir: Optional[Path] = field(default=None)
    verbosity: int = field(default=1)
    pattern: str = field(default="**/*.py")
    check: bool = field(default=False)
    show: bool = field(default=False)

    # Pipeline state
    envOK: bool = field(default=False)
    templateFiles: List[Path] = field(default_factory=list)
    expansions: Dict[Path, Any] = field(default_factory=dict)  # Dict[Path, ExpansionResult]
    writeResult: Optional[Dict] = field(default=None)

    @classmethod
    def state_createFromNamespace(
        cls: Type["ProgramState"], options: Namespace, inputdir: Path, outputdir: Path
    ) -> "ProgramState":
        """
        Create ProgramState from argparse Namespace and directory paths.

        Args:
            options: Parsed CLI arguments (pattern, check, show, verbosity)
            inputdir: Directory containing template files
            outputdir: Directory for generated modules

        Returns:
            ProgramState instance with all CLI options as attributes
        """
        options_dict = vars(options)

        import dataclasses
        valid_fields = {f.name for f in dataclasses.fields(cls)}

        # Only CLI options that are also state fields
        filtered_options = {k: v for k, v in options_dict.items() if k in valid_fields}

        merged_args = {**filtered_options, "inputdir": inputdir, "outputdir": outputdir}
        return cls(**merged_args)

    def copy(self: PS) -> PS:
        """
        Creates a shallow copy of the ProgramState instance.

        Returns:
            A new ProgramState instance.
        """
        return type(self)(**self.__dict__)


def pipeline(
    initial_state: ProgramState, *stages: Callable[[ProgramState], ProgramState]
) -> ProgramState:
    """
    Execute a functional pipeline of state transformations.

    Each stage is a function (ProgramState) -> ProgramState that receives
    the output of the previous stage and returns a new state.

    Example:
        final_state = pipeline(
            initial_state,
            env_check,
            sources_discover,
            sources_expand,
            outputs_write,
            results_report,
        )
    """
    from functools import reduce
    return reduce(lambda state, stage: stage(state), stages, initial_state)
