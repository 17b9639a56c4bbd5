# esplink/cli/args.py
from __future__ import annotations

import argparse
from typing import Optional

DATA_FILE = "Data_jobs.csv"
DEFAULT_TIMEOUT_S = 10.0


def _positive_float(v: str) -> float:
    try:
        f = float(v)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{v}'") from None
    if f <= 0:
        raise argparse.ArgumentTypeError(f"Must be > 0, got {v}")
    return f


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="esplink", description="Talk to an ESP32 controller over serial.")
    parser.add_argument("--port", required=True, help="Serial port (e.g. /dev/ttyUSB0, COM3).")
    parser.add_argument("--config", default=None, help="YAML config file (session + serial settings).")
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=DEFAULT_TIMEOUT_S,
        help="Seconds to wait for the connection and for each device reply.",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-v info, -vv debug).")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")

    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("status", help="Connect, read the board serial and print the session status.")
    sub.add_parser("ls", help="List files on the device flash.")

    p_get = sub.add_parser("get", help="Download a file from the device.")
    p_get.add_argument("remote")
    p_get.add_argument("local")

    p_put = sub.add_parser("put", help="Upload a local file to the device.")
    p_put.add_argument("local")
    p_put.add_argument("remote", nargs="?", default=None, help="Remote name (default: local file name).")

    p_rm = sub.add_parser("rm", help="Delete a file on the device.")
    p_rm.add_argument("remote")

    sub.add_parser("config", help="Print the device configuration.")
    sub.add_parser("time", help="Print the device clocks.")
    sub.add_parser("sync-time", help="Set the device clock to the current UTC time.")

    p_clear = sub.add_parser("clear", help="Clear a CSV data file on the device, keeping its header.")
    p_clear.add_argument("name", nargs="?", default=DATA_FILE)

    p_rows = sub.add_parser("rows", help="Download a job log and print its rows.")
    p_rows.add_argument("remote", nargs="?", default=DATA_FILE)

    p_raw = sub.add_parser("raw", help="Send one raw line and print what comes back.")
    p_raw.add_argument("text")

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
