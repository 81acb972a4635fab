"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import logging as py_logging
import shlex
import subprocess
import sys
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from .config import AppConfig, load_config
from .console import ProcessConsole, Sink
from .errors import ConsolePipeError, ExitCode, user_facing_error
from .logging import configure_logging, default_log_path, normalize_level
from .process import ProcessSession
from .process.session import IS_WINDOWS

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_DISPATCH_POLL_SECONDS = 0.1
_STOP_TIMEOUT_SECONDS = 5.0


def _log_level_type(value: str) -> str:
    normalized = normalize_level(value)
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="consolepipe",
        description="Run a child process and relay its input, output and error streams.",
    )
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default=None)
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument("--echo-input", action="store_true", default=None)
    parser.add_argument(
        "--no-diagnostics",
        dest="show_diagnostics",
        action="store_false",
        default=None,
        help="Do not print start/exit lines",
    )
    parser.add_argument("path", help="Executable to run")
    parser.add_argument("arguments", nargs=argparse.REMAINDER, help="Arguments passed to the executable")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def join_arguments(arguments: Sequence[str]) -> str:
    if IS_WINDOWS:
        return subprocess.list2cmdline(list(arguments))
    return shlex.join(arguments)


def exit_status(code: int | None) -> int:
    if code is None:
        return int(ExitCode.RUNTIME_ERROR)
    if code < 0:
        return 128 - code
    return code


def _stream_sink(stream: TextIO) -> Sink:
    def _write(text: str) -> None:
        stream.write(text)
        stream.flush()

    return _write


def _forward_input(console: ProcessConsole, source: TextIO, *, echo: bool) -> None:
    for line in source:
        if not console.is_running:
            return
        console.write_input(line.rstrip("\r\n"), echo=echo)


def run_session(
    namespace: argparse.Namespace,
    config: AppConfig,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    session = ProcessSession(options=config.session_options(), session_id="cli")
    console = ProcessConsole(
        session,
        output_sink=_stream_sink(stdout or sys.stdout),
        error_sink=_stream_sink(stderr or sys.stderr),
        show_diagnostics=config.show_diagnostics,
        suppress_echo=config.suppress_echo,
    )
    error = console.start(namespace.path, join_arguments(namespace.arguments))
    if error is not None:
        raise error

    forwarder = threading.Thread(
        target=_forward_input,
        args=(console, stdin or sys.stdin),
        kwargs={"echo": config.echo_input},
        name="consolepipe-input",
        daemon=True,
    )
    forwarder.start()

    try:
        while console.exit_code is None:
            console.dispatch_pending(timeout=_DISPATCH_POLL_SECONDS)
    except KeyboardInterrupt:
        session.stop()
        session.wait_for_exit(_STOP_TIMEOUT_SECONDS)
        console.dispatch_pending()
    finally:
        console.detach()
    return exit_status(console.exit_code)


def _apply_overrides(config: AppConfig, namespace: argparse.Namespace) -> AppConfig:
    if namespace.log_level is not None:
        config.log_level = namespace.log_level
    if namespace.echo_input is not None:
        config.echo_input = namespace.echo_input
    if namespace.show_diagnostics is not None:
        config.show_diagnostics = namespace.show_diagnostics
    return config


def main(
    argv: Sequence[str] | None = None,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    log_path = default_log_path()
    logger = configure_logging(level="WARN", log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    config = _apply_overrides(load_config(namespace.config), namespace)
    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    logger = configure_logging(level=config.log_level, log_file=log_path)

    try:
        logger.debug("Starting session path=%s arguments=%s", namespace.path, namespace.arguments)
        return run_session(namespace, config, stdin=stdin, stdout=stdout, stderr=stderr)
    except ConsolePipeError as exc:
        logger.error(
            "Handled ConsolePipeError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=stderr or sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=stderr or sys.stderr)
        except Exception:
            pass
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
