from __future__ import annotations

from esplink.cli import main as main_mod


def test_bad_config_file_prints_error(tmp_path, capsys):
    cfg = tmp_path / "esp.yml"
    cfg.write_text("heartbeat_interval_s: -1\n", encoding="utf-8")

    rc = main_mod.main(["--port", "COM7", "--config", str(cfg), "ls"])

    out = capsys.readouterr().out
    assert rc == 1
    assert out.startswith("ERROR: ")


def test_missing_config_file_prints_error(tmp_path, capsys):
    rc = main_mod.main(["--port", "COM7", "--config", str(tmp_path / "nope.yml"), "status"])

    assert rc == 1
    assert "ERROR:" in capsys.readouterr().out


def test_dispatches_to_command(monkeypatch):
    seen = []
    monkeypatch.setitem(main_mod.COMMANDS, "ls", lambda args, cfg: seen.append((args.port, cfg.driver)) or 0)

    assert main_mod.main(["--port", "COM7", "ls"]) == 0
    assert seen == [("COM7", "serial")]
