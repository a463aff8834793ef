"""Tests for the emotikairos command line."""

import pytest

from emotikairos.cli import main


def test_export(raw_data_file, tmp_path, capsys):
    out = tmp_path / "out"
    assert main(["export", str(raw_data_file["path"]), "-o", str(out)]) == 0
    assert (out / "raw_data_HR.csv").exists()
    assert "raw_data_timeSyncMap.csv" in capsys.readouterr().out


def test_export_with_report(raw_data_file, tmp_path):
    pytest.importorskip("matplotlib")
    out = tmp_path / "out"
    assert main(["export", str(raw_data_file["path"]), "-o", str(out),
                 "--report"]) == 0
    assert (out / "raw_data_sync_report.png").exists()


def test_missing_input(tmp_path, capsys):
    assert main(["export", str(tmp_path / "missing.csv")]) == 1
    assert "does not exist" in capsys.readouterr().out


def test_heart_rate(raw_data_file, capsys):
    assert main(["hr", str(raw_data_file["path"])]) == 0
    assert "Average heart rate: 64.0 bpm" in capsys.readouterr().out


def test_heart_rate_none(tmp_path, capsys):
    path = tmp_path / "raw.csv"
    path.write_text("1000,1,0,DC,1,100\n")
    assert main(["hr", str(path)]) == 1
    assert "No heart rate" in capsys.readouterr().out


def test_requires_command():
    with pytest.raises(SystemExit):
        main([])


def test_export_min_sync_packets(raw_data_file, tmp_path):
    out = tmp_path / "out"
    assert main(["export", str(raw_data_file["path"]), "-o", str(out),
                 "--min-sync-packets", "1000"]) == 0
    sync_map = (out / "raw_data_timeSyncMap.csv").read_text()
    assert "need at least 1000" in sync_map
