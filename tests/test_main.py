"""
Smoke tests for the command-line entry point.
Run with:  pytest tests/test_main.py
"""

from __future__ import annotations

from main import parse_args, run
from ppg_vitals.export import read_samples_csv
from ppg_vitals.storage import JsonFileStore, SessionRepository


class TestCli:

    def test_simulated_recording_is_saved_and_exported(self, tmp_path, capsys):
        store = tmp_path / "store.json"
        csv_path = tmp_path / "out.csv"
        code = run(parse_args([
            "--simulate", "72", "--duration", "30",
            "--store", str(store), "--export", str(csv_path), "--name", "Ada",
        ]))
        assert code == 0
        assert "Session 0001" in capsys.readouterr().out
        sessions = SessionRepository(JsonFileStore(store)).list_sessions()
        assert [s.id for s in sessions] == ["0001"]
        assert len(read_samples_csv(csv_path)) == 900

    def test_no_save(self, tmp_path):
        store = tmp_path / "store.json"
        assert run(parse_args(["--simulate", "72", "--store", str(store), "--no-save"])) == 0
        assert not store.exists()

    def test_too_short_recording_exits_with_error(self, tmp_path):
        store = tmp_path / "store.json"
        code = run(parse_args(["--simulate", "72", "--duration", "5", "--store", str(store)]))
        assert code == 2

    def test_list_empty_store(self, tmp_path, capsys):
        assert run(parse_args(["--list", "--store", str(tmp_path / "s.json")])) == 0
        assert "No stored sessions." in capsys.readouterr().out
