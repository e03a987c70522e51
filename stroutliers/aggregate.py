# File: stroutliers/aggregate.py
# Location: stroutliers/stroutliers/aggregate.py

"""
Result aggregation and archiving module.

Aggregation merges the engine's per-sample ``*.STRs.tsv`` files into one
chromosome table. The table is written to a temporary path next to its final
location and renamed into place only when it holds at least one data row, so
the final path never shows a partial or header-only table.

Archiving then moves the per-sample files into the permanent per-chromosome
archive. Existing files are renamed aside with a timestamp suffix first.
"""

import errno
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import smart_open

from .models import AggregateResult
from .pipeline_core.error_handling import AggregationEmpty, ArchiveMoveWarning

logger = logging.getLogger(__name__)


def _first_field(line: bytes) -> bytes:
    return line.split(b"\t", 1)[0].rstrip(b"\r\n")


def _terminated(line: bytes) -> bytes:
    return line if line.endswith(b"\n") else line + b"\n"


def temporary_path(output_path: Union[str, Path]) -> Path:
    """Temporary sibling of ``output_path`` used while the aggregate is built."""
    output_path = Path(output_path)
    return output_path.with_name(output_path.name + ".tmp")


def aggregate_sample_outputs(
    sample_outputs: Iterable[Union[str, Path]],
    chromosome: str,
    output_path: Union[str, Path],
) -> AggregateResult:
    """
    Merge per-sample engine outputs into the chromosome table.

    The header comes from the first file in lexicographic order. Data rows
    from every file are re-checked against ``chromosome`` (column 1); rows
    for any other chromosome are dropped. Output is byte-identical for
    identical inputs.

    Parameters
    ----------
    sample_outputs : Iterable[str or Path]
        Non-empty per-sample outputs
    chromosome : str
        Target chromosome id
    output_path : str or Path
        Permanent aggregate path

    Returns
    -------
    AggregateResult
        Published path, row count and per-file row counts

    Raises
    ------
    AggregationEmpty
        If there are no input files or no data row survives. Nothing is
        left at ``output_path`` or at the temporary path.
    """
    files = sorted((Path(p) for p in sample_outputs), key=lambda p: p.name)
    output_path = Path(output_path)
    if not files:
        raise AggregationEmpty(f"No per-sample outputs to aggregate for {chromosome}")

    key = chromosome.encode()
    tmp_path = temporary_path(output_path)
    rows_per_file: Dict[str, int] = {}
    total = 0

    try:
        with open(tmp_path, "wb") as out:
            header_written = False
            for path in files:
                with smart_open.open(str(path), "rb") as f:
                    header = f.readline()
                    if not header_written and header:
                        out.write(_terminated(header))
                        header_written = True
                    n = 0
                    for line in f:
                        if _first_field(line) == key:
                            out.write(_terminated(line))
                            n += 1
                rows_per_file[path.name] = n
                total += n
            out.flush()
            os.fsync(out.fileno())

        if total == 0:
            raise AggregationEmpty(f"Aggregated header-only: {tmp_path}")

        os.replace(tmp_path, output_path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    logger.info(f"Wrote {output_path} (rows: {total})")
    return AggregateResult(
        chromosome=chromosome,
        path=output_path,
        data_rows=total,
        source_files=files,
        rows_per_file=rows_per_file,
    )


def backup_path(path: Union[str, Path], timestamp: Optional[int] = None) -> Path:
    """
    Free ``<name>.bak.<epoch seconds>`` path next to ``path``.

    A numeric suffix is appended if a backup from the same second exists.
    """
    path = Path(path)
    timestamp = int(time.time()) if timestamp is None else timestamp
    candidate = path.with_name(f"{path.name}.bak.{timestamp}")
    n = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.bak.{timestamp}.{n}")
        n += 1
    return candidate


def move_into_place(src: Union[str, Path], dst: Union[str, Path]) -> None:
    """
    Move ``src`` to ``dst`` so ``dst`` only ever appears complete.

    A rename is used when both live on one filesystem. Across filesystems the
    data is copied to a hidden sibling of ``dst`` and renamed over it, then
    ``src`` is removed.
    """
    src, dst = Path(src), Path(dst)
    try:
        os.replace(src, dst)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise

    partial = dst.with_name(f".{dst.name}.partial.{os.getpid()}")
    try:
        shutil.copyfile(src, partial)
        os.replace(partial, dst)
    finally:
        if partial.exists():
            partial.unlink()
    src.unlink()


def archive_sample_outputs(
    sample_outputs: Iterable[Union[str, Path]], archive_dir: Union[str, Path]
) -> Tuple[int, List[ArchiveMoveWarning]]:
    """
    Move per-sample outputs into the permanent archive directory.

    Archiving is best-effort: a failed move is logged and reported, and the
    remaining files are still processed. If ``archive_dir`` cannot be created,
    every file is reported as a failed move and left where it is.

    Parameters
    ----------
    sample_outputs : Iterable[str or Path]
        Files already consumed by aggregation
    archive_dir : str or Path
        ``<outliers>/per-sample/<chromosome>``

    Returns
    -------
    Tuple[int, List[ArchiveMoveWarning]]
        Number of files moved, and one warning per failed move
    """
    archive_dir = Path(archive_dir)
    sample_outputs = [Path(p) for p in sample_outputs]
    saved = 0
    problems: List[ArchiveMoveWarning] = []

    try:
        archive_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Cannot create archive directory {archive_dir}: {e}")
        for src in sample_outputs:
            warning = ArchiveMoveWarning(f"move failed: {src}: {e}")
            logger.warning(str(warning))
            problems.append(warning)
        return saved, problems

    for src in sample_outputs:
        src = Path(src)
        dst = archive_dir / src.name
        try:
            if dst.exists():
                backup = backup_path(dst)
                os.replace(dst, backup)
                logger.info(f"Backed up existing {dst.name} to {backup.name}")
            move_into_place(src, dst)
            saved += 1
        except OSError as e:
            warning = ArchiveMoveWarning(f"move failed: {src}: {e}")
            logger.warning(str(warning))
            problems.append(warning)

    logger.info(f"Saved {saved} per-sample files into {archive_dir}")
    return saved, problems
