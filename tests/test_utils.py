"""Tests for utility functions."""

import subprocess
import sys
from unittest.mock import patch

import pytest

from stroutliers.pipeline_core.error_handling import InvalidTaskIndex
from stroutliers.utils import (
    CHROMOSOMES,
    available_cpus,
    chromosome_for_task,
    count_lines,
    extract_parallelism,
    format_size,
    run_command,
    tool_available,
)


class TestChromosomeForTask:
    """Array index to chromosome mapping."""

    @pytest.mark.parametrize(
        "index,expected",
        [(1, "chr1"), (3, "chr3"), (22, "chr22"), (23, "chrX"), (24, "chrY"), ("7", "chr7")],
    )
    def test_valid(self, index, expected):
        assert chromosome_for_task(index) == expected

    @pytest.mark.parametrize("index", [0, 25, -1, "abc", None])
    def test_invalid(self, index):
        with pytest.raises(InvalidTaskIndex):
            chromosome_for_task(index)

    def test_chromosome_list(self):
        assert len(CHROMOSOMES) == 24
        assert CHROMOSOMES[-2:] == ["chrX", "chrY"]


class TestCpus:
    """CPU capacity and extraction parallelism."""

    def test_scheduler_allocation_wins(self):
        assert available_cpus({"SLURM_CPUS_ON_NODE": "16"}) == 16

    def test_invalid_scheduler_value_ignored(self):
        assert available_cpus({"SLURM_CPUS_ON_NODE": "lots"}) >= 1

    def test_probe_without_scheduler(self):
        assert available_cpus({}) >= 1

    @pytest.mark.parametrize("cpus,expected", [(16, 14), (3, 1), (2, 1), (1, 1), (0, 1)])
    def test_extract_parallelism(self, cpus, expected):
        assert extract_parallelism(cpus) == expected

    def test_extract_parallelism_custom_reserve(self):
        assert extract_parallelism(8, reserve=0) == 8


class TestRunCommand:
    """Tests for run_command."""

    def test_output_written(self, tmp_path):
        out = tmp_path / "out.txt"
        rc = run_command([sys.executable, "-c", "print('hello')"], output_file=out)
        assert rc == 0
        assert out.read_text() == "hello\n"

    def test_append(self, tmp_path):
        out = tmp_path / "out.txt"
        out.write_text("first\n")
        run_command([sys.executable, "-c", "print('second')"], output_file=out, append=True)
        assert out.read_text() == "first\nsecond\n"

    def test_failure_raises(self):
        with pytest.raises(subprocess.CalledProcessError):
            run_command([sys.executable, "-c", "import sys; sys.exit(2)"])

    def test_accepted_returncode(self):
        rc = run_command([sys.executable, "-c", "import sys; sys.exit(1)"], ok_returncodes=(0, 1))
        assert rc == 1


class TestMisc:
    """Small helpers."""

    def test_tool_available(self):
        with patch("stroutliers.utils.shutil.which", return_value="/usr/bin/rg"):
            assert tool_available("rg")
        with patch("stroutliers.utils.shutil.which", return_value=None):
            assert not tool_available("rg")

    def test_count_lines(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("a\nb\nc\n")
        assert count_lines(path) == 3

    def test_format_size(self):
        assert format_size(1048576) == "1.0 MB"
