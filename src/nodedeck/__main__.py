"""Module entrypoint for `python -m nodedeck`."""

from nodedeck.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
