"""Shared pytest fixtures for all test modules."""

import sys
import textwrap
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

from stroutliers.config import load_config, merge_overrides

GENOTYPE_HEADER = "chrom\tleft\tright\trepeatunit\tallele1_est\tallele2_est\tspanning_reads\n"

FAKE_ENGINE = textwrap.dedent(
    '''
    """Stand-in for the STRling outlier engine used by the tests."""
    import argparse
    import json
    import os
    import sys
    from pathlib import Path

    parser = argparse.ArgumentParser()
    parser.add_argument("--genotypes", action="append", default=[])
    parser.add_argument("--unplaced", nargs="*", default=[])
    args = parser.parse_args()

    calls = os.environ.get("FAKE_ENGINE_CALLS")
    if calls:
        with open(calls, "a") as f:
            f.write(json.dumps({"argv": sys.argv[1:], "cwd": os.getcwd(),
                                "omp": os.environ.get("OMP_NUM_THREADS")}) + "\\n")

    print(f"fake engine: {len(args.genotypes)} samples, {len(args.unplaced)} unplaced")
    exit_code = int(os.environ.get("FAKE_ENGINE_EXIT", "0"))
    if exit_code:
        print("fake engine: failing on request", file=sys.stderr)
        sys.exit(exit_code)

    for genotype in args.genotypes:
        sample = Path(genotype).name[: -len("-genotype.txt")]
        with open(genotype) as src, open(f"{sample}.STRs.tsv", "w") as out:
            src.readline()
            out.write("chrom\\tleft\\tright\\trepeatunit\\tsample\\tdepth\\tz\\tp\\n")
            for line in src:
                fields = line.rstrip("\\n").split("\\t")
                out.write("\\t".join(fields[:4] + [sample, "30", "0.5", "0.3"]) + "\\n")
            out.write("chrUn\\t1\\t2\\tA\\t" + sample + "\\t1\\t0\\t1\\n")
    '''
)


def write_genotype_table(path: Path, rows_per_chromosome: Dict[str, int]) -> Path:
    """Write a genotype table with the given number of rows per chromosome."""
    lines = [GENOTYPE_HEADER]
    for chromosome, n in rows_per_chromosome.items():
        for i in range(n):
            left = 1000 + i * 100
            lines.append(f"{chromosome}\t{left}\t{left + 20}\tCAG\t{10 + i}\t{12 + i}\t4\n")
    path.write_text("".join(lines))
    return path


@pytest.fixture
def results_dir(tmp_path) -> Path:
    """Results directory with 10 samples; 7 carry chr3 rows (12,0,5,8,3,0,4)."""
    directory = tmp_path / "results"
    directory.mkdir()
    chr3_rows = [12, 0, 5, 8, 3, 0, 4]
    for i in range(10):
        rows = {"chr1": 6, "chr2": 3}
        if i < len(chr3_rows):
            rows["chr3"] = chr3_rows[i]
        write_genotype_table(directory / f"S{i:02d}-genotype.txt", rows)
    # unplaced tables: one non-empty, one empty
    (directory / "S00-unplaced.txt").write_text("chrom\tleft\tright\tcount\nchrUn\t1\t100\t3\n")
    (directory / "S02-unplaced.txt").write_text("")
    return directory


@pytest.fixture
def fake_engine(tmp_path) -> Path:
    """Path to a Python script that behaves like the outlier engine."""
    script = tmp_path / "bin" / "fake_outliers.py"
    script.parent.mkdir()
    script.write_text(FAKE_ENGINE)
    return script


@pytest.fixture
def pipeline_config(tmp_path, results_dir, fake_engine):
    """Complete run configuration using the fake engine and the Python row filter."""

    def _make(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        values = {
            "results_dir": str(results_dir),
            "log_dir": str(tmp_path / "logs"),
            "tmp_root": str(tmp_path / "scratch"),
            "outliers_runner": str(fake_engine),
            "python_interpreter": sys.executable,
            "row_filter": "python",
        }
        values.update(overrides or {})
        return merge_overrides(load_config(), values, environ={})

    return _make


@pytest.fixture
def genotype_header() -> str:
    """Header line of a genotype table."""
    return GENOTYPE_HEADER


@pytest.fixture
def make_genotype_table():
    """Factory writing genotype tables with given row counts per chromosome."""
    return write_genotype_table
