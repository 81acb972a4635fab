"""Module entrypoint for `python -m consolepipe`."""

from consolepipe.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
