# shirpur-delivery-core/tests/test_main.py
"""Command-line demo."""

import main


def test_demo_runs(capsys):
    assert main.main(["--ticks", "5"]) == 0

    out = capsys.readouterr().out
    assert "Shortcut to delivered rejected: Cannot transition from Confirmed to Delivered" in out
    assert "AGT-01 accepted ORD-001" in out
    assert "ORD-003" not in out.split("LIVE TRACKING")[0].split("orders within")[1]
    assert "Delivered" in out


def test_demo_exports_reports(tmp_path, capsys):
    export_dir = tmp_path / "reports"
    assert main.main(["--ticks", "2", "--export", str(export_dir)]) == 0
    assert (export_dir / "agents.csv").exists()
    assert (export_dir / "orders.csv").exists()


def test_negative_ticks_rejected(capsys):
    assert main.main(["--ticks", "-1"]) == 1
    assert "ERROR" in capsys.readouterr().out
