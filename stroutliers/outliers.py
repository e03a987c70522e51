# File: stroutliers/outliers.py
# Location: stroutliers/stroutliers/outliers.py

"""
Outlier engine invocation module.

The STRling outlier engine is an external program. It may be installed as an
executable, shipped as a Python script, or importable as a module; the form
is resolved once per run into an OutliersRunner. The engine is then called a
single time with every retained sample, from inside the workspace so that its
per-sample ``*.STRs.tsv`` files land there.
"""

import logging
import os
from abc import ABC, abstractmethod
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

from .pipeline_core.error_handling import RunnerFailure

logger = logging.getLogger(__name__)

DEFAULT_TARGET = "strling-outliers.py"
DEFAULT_MODULE = "strling_outliers"


@dataclass(frozen=True)
class OutliersRunner(ABC):
    """Base class of the engine execution strategies."""

    target: str

    @property
    @abstractmethod
    def mode(self) -> str:
        """Short label used in log messages."""

    @abstractmethod
    def base_command(self) -> List[str]:
        """argv prefix that starts the engine."""

    def build_command(
        self,
        genotype_paths: Sequence[Union[str, Path]],
        unplaced_paths: Sequence[Union[str, Path]] = (),
    ) -> List[str]:
        """
        Build the full engine command line.

        One ``--genotypes <path>`` pair per retained sample, followed by a
        single ``--unplaced`` flag carrying every unplaced table, if any.

        Parameters
        ----------
        genotype_paths : sequence of path
            Chromosome subset files, in retained-sample order
        unplaced_paths : sequence of path
            Non-empty unplaced tables

        Returns
        -------
        List[str]
            argv for subprocess
        """
        cmd = self.base_command()
        for path in genotype_paths:
            cmd += ["--genotypes", str(path)]
        if unplaced_paths:
            cmd.append("--unplaced")
            cmd += [str(p) for p in unplaced_paths]
        return cmd

    def describe(self) -> str:
        return f"{self.mode}({self.target})"


@dataclass(frozen=True)
class ExecutableRunner(OutliersRunner):
    """Engine is directly executable."""

    @property
    def mode(self) -> str:
        return "exe"

    def base_command(self) -> List[str]:
        return [self.target]


@dataclass(frozen=True)
class ScriptRunner(OutliersRunner):
    """Engine is a Python script run by ``interpreter``."""

    interpreter: str = "python"

    @property
    def mode(self) -> str:
        return "py"

    def base_command(self) -> List[str]:
        return [self.interpreter, self.target]


@dataclass(frozen=True)
class ModuleRunner(OutliersRunner):
    """Engine is an importable module run with ``interpreter -m``."""

    interpreter: str = "python"

    @property
    def mode(self) -> str:
        return "mod"

    def base_command(self) -> List[str]:
        return [self.interpreter, "-m", self.target]


def resolve_interpreter(configured: Optional[str] = None) -> str:
    """Interpreter for script/module runners: configured, else pypy3, else this Python."""
    if configured:
        return configured
    if shutil.which("pypy3"):
        return "pypy3"
    return sys.executable or "python"


def resolve_outliers_runner(
    target: Optional[str] = None,
    module: Optional[str] = None,
    interpreter: Optional[str] = None,
) -> OutliersRunner:
    """
    Resolve how the engine will be executed.

    Precedence:
    1. ``target`` found on PATH: executable
    2. ``target`` is an existing file: script if it ends with ``.py``, else executable
    3. otherwise: module ``module`` run through the interpreter

    Parameters
    ----------
    target : str, optional
        Program name or path (default: ``strling-outliers.py``)
    module : str, optional
        Module name for the last resort (default: ``strling_outliers``)
    interpreter : str, optional
        Interpreter for script and module forms

    Returns
    -------
    OutliersRunner
        The strategy used for the whole run
    """
    target = target or DEFAULT_TARGET
    module = module or DEFAULT_MODULE

    found = shutil.which(target)
    if found:
        runner = ExecutableRunner(str(Path(found).resolve()) if os.sep in target else target)
    elif Path(target).is_file():
        # the engine runs from the workspace, so relative paths must be anchored here
        path = str(Path(target).resolve())
        if target.endswith(".py"):
            runner = ScriptRunner(path, resolve_interpreter(interpreter))
        else:
            runner = ExecutableRunner(path)
    else:
        runner = ModuleRunner(module, resolve_interpreter(interpreter))

    logger.info(f"Outliers runner: {runner.describe()}")
    return runner


def engine_environment(overrides: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Copy of the current environment with ``overrides`` applied (thread pinning, locale)."""
    env = dict(os.environ)
    for key, value in (overrides or {}).items():
        env[str(key)] = str(value)
    return env


def run_outliers(
    runner: OutliersRunner,
    genotype_paths: Sequence[Union[str, Path]],
    unplaced_paths: Sequence[Union[str, Path]],
    work_dir: Union[str, Path],
    log_path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """
    Run the engine once with every retained sample.

    Combined stdout/stderr is appended to ``log_path`` (discarded without one).
    There is no retry: any non-zero exit fails the run, whatever the engine
    has already written.

    Parameters
    ----------
    runner : OutliersRunner
        Resolved execution strategy
    genotype_paths : sequence of path
        Retained chromosome subsets
    unplaced_paths : sequence of path
        Non-empty unplaced tables of retained samples
    work_dir : str or Path
        Engine working directory
    log_path : str or Path, optional
        Diagnostic log receiving the engine output
    env : Mapping, optional
        Environment for the engine process

    Returns
    -------
    int
        Exit status (always 0 on return)

    Raises
    ------
    RunnerFailure
        If the engine exits with a non-zero status.
    """
    cmd = runner.build_command(genotype_paths, unplaced_paths)
    logger.debug("Running command: %s", " ".join(cmd))

    if log_path is not None:
        with open(log_path, "a", encoding="utf-8") as log_f:
            result = subprocess.run(
                cmd, stdout=log_f, stderr=subprocess.STDOUT, cwd=str(work_dir), env=env
            )
    else:
        result = subprocess.run(
            cmd, stdout=subprocess.DEVNULL, stderr=subprocess.STDOUT, cwd=str(work_dir), env=env
        )

    if result.returncode != 0:
        logger.error(f"outliers exit={result.returncode}")
        raise RunnerFailure(result.returncode, Path(log_path) if log_path is not None else None)
    return result.returncode
