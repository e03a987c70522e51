"""
Workspace - Node-local scratch space for a single chromosome run.

This module provides the Workspace class that owns every intermediate file of
a run: the per-sample chromosome subsets and the engine's working directory.
The directory name embeds the chromosome and the process id so concurrent
runs on the same node never share it. A directory left behind by an earlier
run with the same name is removed before the new tree is created.
"""

import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


class Workspace:
    """Manages the scratch directory tree for one chromosome run.

    Layout::

        <tmp_root>/strling_<chromosome>_<pid>/            root_dir
            <sample>-genotype.txt                         chromosome subsets
            work_<chromosome>/                            work_dir (engine cwd)

    Attributes
    ----------
    tmp_root : Path
        Node-local parent directory (scheduler scratch or system temp)
    chromosome : str
        Chromosome this workspace belongs to
    pid : int
        Process id embedded in the directory name
    root_dir : Path
        Private directory of this run
    work_dir : Path
        Directory used as the engine's current working directory
    timestamp : str
        Creation timestamp, used in log messages
    """

    def __init__(
        self, chromosome: str, tmp_root: Optional[Union[str, Path]] = None, pid: Optional[int] = None
    ):
        """Create the workspace directories.

        Parameters
        ----------
        chromosome : str
            Chromosome id (e.g. ``chr3``)
        tmp_root : str or Path, optional
            Parent directory; defaults to the system temporary directory
        pid : int, optional
            Process id to embed; defaults to the current process
        """
        self.chromosome = chromosome
        self.pid = pid if pid is not None else os.getpid()
        self.tmp_root = Path(tmp_root).resolve() if tmp_root else Path(tempfile.gettempdir())
        self.timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        self.root_dir = self.tmp_root / f"strling_{chromosome}_{self.pid}"
        self.work_dir = self.root_dir / f"work_{chromosome}"

        # leftover from a killed run that had the same pid
        if self.root_dir.exists():
            logger.warning(f"Removing stale workspace {self.root_dir}")
            shutil.rmtree(self.root_dir)
        self.work_dir.mkdir(parents=True)

        logger.debug(f"Workspace initialized: root_dir={self.root_dir}")
        logger.debug(f"Engine working directory: {self.work_dir}")

    def get_subset_path(self, sample_id: str, suffix: str = "-genotype.txt") -> Path:
        """Return the private subset path for one sample.

        Every sample maps to a distinct file, so parallel extraction tasks
        never write to the same path.

        Parameters
        ----------
        sample_id : str
            Sample identifier
        suffix : str
            Genotype table suffix (default: ``-genotype.txt``)

        Returns
        -------
        Path
            Subset file path inside ``root_dir``
        """
        return self.root_dir / f"{sample_id}{suffix}"

    def list_work_files(self, pattern: str) -> List[Path]:
        """List non-empty regular files in ``work_dir`` matching a glob, sorted by name.

        Parameters
        ----------
        pattern : str
            Glob pattern, e.g. ``*.STRs.tsv``

        Returns
        -------
        List[Path]
            Matching files in lexicographic order
        """
        if not self.work_dir.exists():
            return []
        return sorted(
            (p for p in self.work_dir.glob(pattern) if p.is_file() and p.stat().st_size > 0),
            key=lambda p: p.name,
        )

    def cleanup(self) -> None:
        """Remove the whole workspace tree."""
        try:
            if self.root_dir.exists():
                shutil.rmtree(self.root_dir)
                logger.debug(f"Cleaned up workspace: {self.root_dir}")
        except OSError as e:
            logger.warning(f"Error during cleanup of {self.root_dir}: {e}")

    def __repr__(self) -> str:
        """Return string representation of the workspace."""
        return f"Workspace(chromosome='{self.chromosome}', root_dir='{self.root_dir}')"

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit with automatic cleanup."""
        self.cleanup()
