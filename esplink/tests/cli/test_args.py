from __future__ import annotations

import pytest

from esplink.cli.args import DATA_FILE, DEFAULT_TIMEOUT_S, parse_args


def test_port_and_command_required():
    with pytest.raises(SystemExit):
        parse_args(["ls"])
    with pytest.raises(SystemExit):
        parse_args(["--port", "COM3"])


def test_global_options():
    args = parse_args(["--port", "COM3", "--config", "esp.yml", "--timeout", "2.5", "-vv", "--log-file", "x.log", "ls"])

    assert args.port == "COM3"
    assert args.config == "esp.yml"
    assert args.timeout == 2.5
    assert args.verbose == 2
    assert args.log_file == "x.log"
    assert args.cmd == "ls"


def test_defaults():
    args = parse_args(["--port", "/dev/ttyUSB0", "status"])

    assert args.timeout == DEFAULT_TIMEOUT_S
    assert args.verbose == 0
    assert args.config is None


def test_get_and_put():
    g = parse_args(["--port", "COM3", "get", "Data_jobs.csv", "out/jobs.csv"])
    p = parse_args(["--port", "COM3", "put", "local.txt"])

    assert (g.remote, g.local) == ("Data_jobs.csv", "out/jobs.csv")
    assert (p.local, p.remote) == ("local.txt", None)


def test_clear_and_rows_default_to_job_log():
    assert parse_args(["--port", "COM3", "clear"]).name == DATA_FILE
    assert parse_args(["--port", "COM3", "rows"]).remote == DATA_FILE


def test_sync_time_command_name():
    assert parse_args(["--port", "COM3", "sync-time"]).cmd == "sync-time"


@pytest.mark.parametrize("value", ["0", "-1", "soon"])
def test_timeout_must_be_positive_number(value):
    with pytest.raises(SystemExit):
        parse_args(["--port", "COM3", "--timeout", value, "ls"])
