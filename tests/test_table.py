"""Tests for collecting run outputs into a CSV table."""

from __future__ import annotations

import csv
import logging
from pathlib import Path

import pytest

from envsets.environment import Environment
from envsets.errors import TableError
from experiments.table import ResultAggregator, balance_multiline


def _series(tmp_path: Path) -> Path:
    series_dir = tmp_path / "series"
    (series_dir / "runs").mkdir(parents=True)
    (series_dir / ".exomat_series").touch()
    return series_dir


def _add_run(
    series_dir: Path, name: str, envs: dict[str, str], outputs: dict[str, str]
) -> Path:
    run_dir = series_dir / "runs" / name
    run_dir.mkdir()
    Environment(envs).to_file(run_dir / "environment.env")
    for var, content in outputs.items():
        (run_dir / f"out_{var}").write_text(content)
    return run_dir


def _read_csv(path: Path) -> list[list[str]]:
    with open(path, newline="") as f:
        return list(csv.reader(f))


class TestBalanceMultiline:
    def test_broadcasts_single_values(self) -> None:
        assert balance_multiline({"a": "1\n2", "b": "x"}) == {
            "a": ["1", "2"],
            "b": ["x", "x"],
        }

    def test_mismatch(self) -> None:
        with pytest.raises(TableError, match="Mismatched number of values"):
            balance_multiline({"a": "1\n2", "b": "1\n2\n3"}, where="run_0_rep0")

    def test_empty(self) -> None:
        assert balance_multiline({}) == {}


class TestResultAggregator:
    def test_multiline_rows_and_broadcast(self, tmp_path: Path) -> None:
        series_dir = _series(tmp_path)
        _add_run(series_dir, "run_0_rep0", {"FOO": "1"}, {"x": "a\nb"})
        _add_run(series_dir, "run_1_rep0", {"FOO": "2"}, {"x": "c"})

        table = ResultAggregator(series_dir).collect()

        assert table == {"FOO": ["1", "1", "2"], "x": ["a", "b", "c"]}

    def test_broadcast_within_later_run(self, tmp_path: Path) -> None:
        series_dir = _series(tmp_path)
        _add_run(series_dir, "run_0_rep0", {}, {"x": "a\nb", "y": "1\n2"})
        _add_run(series_dir, "run_1_rep0", {}, {"x": "c", "y": "3\n4"})

        table = ResultAggregator(series_dir).collect()

        assert table["x"] == ["a", "b", "c", "c"]
        assert table["y"] == ["1", "2", "3", "4"]

    def test_missing_variable_filled_with_na(self, tmp_path: Path) -> None:
        series_dir = _series(tmp_path)
        _add_run(series_dir, "run_0_rep0", {}, {"x": "1\n2", "y": "only here"})
        _add_run(series_dir, "run_1_rep0", {}, {"x": "3\n4\n5"})

        table = ResultAggregator(series_dir).collect()

        assert table["x"] == ["1", "2", "3", "4", "5"]
        assert table["y"] == ["only here", "only here", "NA", "NA", "NA"]

    def test_custom_na_value(self, tmp_path: Path) -> None:
        series_dir = _series(tmp_path)
        _add_run(series_dir, "run_0_rep0", {}, {"x": "1"})
        _add_run(series_dir, "run_1_rep0", {}, {"y": "2"})

        table = ResultAggregator(series_dir, na_value="").collect()

        assert table == {"x": ["1", ""], "y": ["", "2"]}

    def test_output_shadows_environment(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        series_dir = _series(tmp_path)
        _add_run(series_dir, "run_0_rep0", {"FOO": "input"}, {"FOO": "output"})

        with caplog.at_level(logging.WARNING):
            table = ResultAggregator(series_dir).collect()

        assert table == {"FOO": ["output"]}
        assert "shadows input environment variable $FOO" in caplog.text

    def test_reserved_columns(self, tmp_path: Path) -> None:
        series_dir = _series(tmp_path)
        _add_run(series_dir, "run_0_rep0", {"EXP_SRC_DIR": "/src", "REPETITION": "0"}, {})

        table = ResultAggregator(series_dir).collect()

        assert table == {"REPETITION": ["0"]}

    def test_empty_output_name(self, tmp_path: Path) -> None:
        series_dir = _series(tmp_path)
        _add_run(series_dir, "run_0_rep0", {}, {"": "value"})

        with pytest.raises(TableError, match="variable name missing"):
            ResultAggregator(series_dir).collect()

    def test_missing_environment_file(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        series_dir = _series(tmp_path)
        run_dir = _add_run(series_dir, "run_0_rep0", {}, {"x": "1"})
        (run_dir / "environment.env").unlink()

        with caplog.at_level(logging.ERROR):
            table = ResultAggregator(series_dir).collect()

        assert table == {"x": ["1"]}
        assert "could not load environment variables" in caplog.text

    def test_undecodable_environment_file(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        series_dir = _series(tmp_path)
        run_dir = _add_run(series_dir, "run_0_rep0", {}, {"x": "1"})
        (run_dir / "environment.env").write_bytes("FOO=caf\xe9\n".encode("latin-1"))

        with caplog.at_level(logging.ERROR):
            table = ResultAggregator(series_dir).collect()

        assert table == {"x": ["1"]}
        assert "could not load environment variables" in caplog.text

    def test_output_is_stripped(self, tmp_path: Path) -> None:
        series_dir = _series(tmp_path)
        _add_run(series_dir, "run_0_rep0", {}, {"x": "  42\n\n"})

        assert ResultAggregator(series_dir).collect() == {"x": ["42"]}


class TestMakeTable:
    def test_writes_sorted_csv(self, tmp_path: Path) -> None:
        series_dir = _series(tmp_path)
        _add_run(series_dir, "run_0_rep0", {"FOO": "a,b", "REPETITION": "0"}, {"b": "2", "a": '1 "q"'})
        _add_run(series_dir, "run_0_rep1", {"FOO": "a,b", "REPETITION": "1"}, {"b": "3", "a": "4"})

        path = ResultAggregator(series_dir).make_table()

        assert path == series_dir / "series.csv"
        assert _read_csv(path) == [
            ["FOO", "REPETITION", "a", "b"],
            ["a,b", "0", '1 "q"', "2"],
            ["a,b", "1", "4", "3"],
        ]

    def test_empty_series_writes_empty_file(self, tmp_path: Path) -> None:
        series_dir = _series(tmp_path)

        path = ResultAggregator(series_dir).make_table()

        assert path.read_text() == ""

    def test_custom_output_path(self, tmp_path: Path) -> None:
        series_dir = _series(tmp_path)
        _add_run(series_dir, "run_0_rep0", {}, {"x": "1"})

        path = ResultAggregator(series_dir).make_table(tmp_path / "out" / "table.csv")

        assert _read_csv(path) == [["x"], ["1"]]
