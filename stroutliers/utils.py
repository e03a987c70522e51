# File: stroutliers/utils.py
# Location: stroutliers/stroutliers/utils.py

"""
Utility functions module.

Provides helpers for chromosome naming, CPU capacity probing, running
commands and checking tool availability.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Union

import psutil

from .pipeline_core.error_handling import InvalidTaskIndex

logger = logging.getLogger("stroutliers")

CHROMOSOMES: List[str] = [f"chr{i}" for i in range(1, 23)] + ["chrX", "chrY"]


def chromosome_for_task(index: Union[int, str]) -> str:
    """
    Map a scheduler array index to a chromosome id.

    Indices 1-22 map to ``chr1``..``chr22``, 23 to ``chrX`` and 24 to ``chrY``.

    Parameters
    ----------
    index : int or str
        Array task index

    Returns
    -------
    str
        Chromosome id

    Raises
    ------
    InvalidTaskIndex
        For any other index.
    """
    try:
        value = int(index)
    except (TypeError, ValueError):
        raise InvalidTaskIndex(index)
    if 1 <= value <= len(CHROMOSOMES):
        return CHROMOSOMES[value - 1]
    raise InvalidTaskIndex(index)


def tool_available(tool: str) -> bool:
    """Return True if ``tool`` is found in PATH."""
    found = shutil.which(tool) is not None
    logger.debug(f"Tool {tool}: {'found' if found else 'not found'} in PATH")
    return found


def available_cpus(environ: Optional[Mapping[str, str]] = None) -> int:
    """
    Return the number of CPUs this process may use.

    The scheduler's allocation (``SLURM_CPUS_ON_NODE``) wins; otherwise the
    process CPU affinity, then the logical CPU count reported by psutil.
    """
    environ = os.environ if environ is None else environ
    slurm_cpus = environ.get("SLURM_CPUS_ON_NODE")
    if slurm_cpus:
        try:
            return max(1, int(slurm_cpus))
        except ValueError:
            logger.warning(f"Ignoring non-numeric SLURM_CPUS_ON_NODE={slurm_cpus!r}")

    process = psutil.Process()
    if hasattr(process, "cpu_affinity"):
        try:
            return max(1, len(process.cpu_affinity()))
        except (psutil.Error, OSError):
            pass
    return psutil.cpu_count(logical=True) or 1


def extract_parallelism(cpus: int, reserve: int = 2) -> int:
    """
    Number of concurrent extraction tasks for ``cpus`` CPUs.

    ``reserve`` CPUs are left for the orchestrating process, with a floor of one worker.
    """
    return max(1, cpus - reserve)


def run_command(
    cmd: List[str],
    output_file: Optional[Union[str, Path]] = None,
    append: bool = False,
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
    ok_returncodes=(0,),
) -> int:
    """
    Run a command, writing stdout to ``output_file`` if provided.

    Parameters
    ----------
    cmd : list of str
        Command and its arguments.
    output_file : str or Path, optional
        File receiving stdout. Without it stdout is discarded.
    append : bool
        Append to ``output_file`` instead of truncating it.
    cwd : str or Path, optional
        Working directory for the command.
    env : Mapping, optional
        Environment for the command.
    ok_returncodes : tuple of int
        Exit statuses treated as success.

    Returns
    -------
    int
        The command's exit status.

    Raises
    ------
    subprocess.CalledProcessError
        If the exit status is not in ``ok_returncodes``.
    """
    logger.debug("Running command: %s", " ".join(str(c) for c in cmd))
    if output_file:
        with open(output_file, "a" if append else "w", encoding="utf-8") as out_f:
            result = subprocess.run(
                cmd, stdout=out_f, stderr=subprocess.PIPE, text=True, cwd=cwd, env=env
            )
    else:
        result = subprocess.run(
            cmd, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE, text=True, cwd=cwd, env=env
        )

    if result.returncode not in ok_returncodes:
        logger.error("Command failed: %s\nError: %s", " ".join(str(c) for c in cmd), result.stderr)
        raise subprocess.CalledProcessError(result.returncode, cmd, stderr=result.stderr)
    logger.debug("Command completed with status %d.", result.returncode)
    return result.returncode


def count_lines(path: Union[str, Path]) -> int:
    """Count newline-terminated lines in a file (like ``wc -l``)."""
    count = 0
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(1 << 20), b""):
            count += block.count(b"\n")
    return count


def format_size(n_bytes: int) -> str:
    """Format a byte count as megabytes with one decimal."""
    return f"{n_bytes / 1048576:.1f} MB"
