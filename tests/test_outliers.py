"""Tests for outlier engine resolution and invocation."""

import sys
from unittest.mock import patch

import pytest

from stroutliers.outliers import (
    ExecutableRunner,
    ModuleRunner,
    OutliersRunner,
    ScriptRunner,
    engine_environment,
    resolve_interpreter,
    resolve_outliers_runner,
    run_outliers,
)
from stroutliers.pipeline_core.error_handling import RunnerFailure


class TestBuildCommand:
    """Command line construction."""

    def test_genotypes_repeated_and_unplaced_grouped(self):
        runner = ExecutableRunner("strling-outliers.py")
        cmd = runner.build_command(
            ["/w/A-genotype.txt", "/w/B-genotype.txt"], ["/r/A-unplaced.txt"]
        )
        assert cmd == [
            "strling-outliers.py",
            "--genotypes",
            "/w/A-genotype.txt",
            "--genotypes",
            "/w/B-genotype.txt",
            "--unplaced",
            "/r/A-unplaced.txt",
        ]

    def test_no_unplaced_flag_without_tables(self):
        cmd = ExecutableRunner("x").build_command(["/w/A-genotype.txt"], [])
        assert "--unplaced" not in cmd

    def test_script_and_module_prefixes(self):
        assert ScriptRunner("/opt/o.py", "pypy3").build_command(["g"])[:2] == ["pypy3", "/opt/o.py"]
        assert ModuleRunner("strling_outliers", "python3").build_command(["g"])[:3] == [
            "python3",
            "-m",
            "strling_outliers",
        ]

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            OutliersRunner("x")

    def test_describe(self):
        assert ExecutableRunner("x").describe() == "exe(x)"
        assert ScriptRunner("y.py").describe() == "py(y.py)"
        assert ModuleRunner("z").describe() == "mod(z)"


class TestResolveOutliersRunner:
    """Resolution precedence: PATH executable, existing file, then module."""

    def test_on_path(self):
        with patch("stroutliers.outliers.shutil.which", return_value="/usr/bin/strling-outliers.py"):
            runner = resolve_outliers_runner("strling-outliers.py")
        assert isinstance(runner, ExecutableRunner)
        assert runner.target == "strling-outliers.py"

    def test_existing_script(self, tmp_path, monkeypatch):
        """A relative script path is anchored to an absolute path."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / "outliers.py").write_text("print('x')\n")
        with patch("stroutliers.outliers.shutil.which", return_value=None):
            runner = resolve_outliers_runner("outliers.py", interpreter="python3")
        assert isinstance(runner, ScriptRunner)
        assert runner.target == str((tmp_path / "outliers.py").resolve())
        assert runner.interpreter == "python3"

    def test_existing_non_script_file(self, tmp_path):
        binary = tmp_path / "outliers"
        binary.write_text("")
        with patch("stroutliers.outliers.shutil.which", return_value=None):
            runner = resolve_outliers_runner(str(binary))
        assert isinstance(runner, ExecutableRunner)

    def test_module_fallback(self):
        with patch("stroutliers.outliers.shutil.which", return_value=None):
            runner = resolve_outliers_runner("does-not-exist.py", interpreter="python3")
        assert isinstance(runner, ModuleRunner)
        assert runner.target == "strling_outliers"
        assert runner.base_command() == ["python3", "-m", "strling_outliers"]


class TestResolveInterpreter:
    """Interpreter choice for script and module runners."""

    def test_configured(self):
        assert resolve_interpreter("/opt/python") == "/opt/python"

    def test_pypy_preferred(self):
        with patch("stroutliers.outliers.shutil.which", return_value="/usr/bin/pypy3"):
            assert resolve_interpreter() == "pypy3"

    def test_current_interpreter(self):
        with patch("stroutliers.outliers.shutil.which", return_value=None):
            assert resolve_interpreter() == sys.executable


class TestRunOutliers:
    """Engine invocation."""

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("OMP_NUM_THREADS", "8")
        env = engine_environment({"OMP_NUM_THREADS": "1", "LC_ALL": "C"})
        assert env["OMP_NUM_THREADS"] == "1"
        assert env["LC_ALL"] == "C"

    def test_output_appended_to_log(self, tmp_path):
        script = tmp_path / "engine.py"
        script.write_text("import os, sys\nprint('cwd', os.getcwd())\nprint('err', file=sys.stderr)\n")
        log = tmp_path / "run.log"
        log.write_text("existing\n")
        work = tmp_path / "work"
        work.mkdir()

        rc = run_outliers(ScriptRunner(str(script), sys.executable), ["g"], [], work, log_path=log)

        text = log.read_text()
        assert rc == 0
        assert text.startswith("existing\n")
        assert f"cwd {work}" in text
        assert "err" in text

    def test_failure(self, tmp_path):
        script = tmp_path / "engine.py"
        script.write_text("import sys\nsys.exit(4)\n")
        log = tmp_path / "run.log"
        with pytest.raises(RunnerFailure) as exc_info:
            run_outliers(ScriptRunner(str(script), sys.executable), [], [], tmp_path, log_path=log)
        assert exc_info.value.returncode == 4
        assert exc_info.value.log_path == log
