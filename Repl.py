#!/usr/bin/env python3
# Repl.py - cargo console: interactive prompt and script mode over the task runner
import logging
import os
import shlex
import signal
import sys

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import confirm

import argparser
import commands
import Interrupt
from config import load_config
from display import TerminalDisplay
from output_surface import OutputSurfaces
from process_subsystem import ProcessSupervisor
from task_runner import TaskRunner

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Globals & integration
# ------------------------------------------------------------
RUNNER = None
parser = argparser.build_parser()

_COMMANDS = sorted(list(commands.CATALOG) + ["jobs", "show", "kill", "wait", "exit"])
_TASK_COMMANDS = {"show", "kill", "wait"}


def prompt():
    return f"cargo:{os.path.basename(os.getcwd()) or '/'}> "


def build_runner(config, display=None):
    supervisor = ProcessSupervisor(kill_timeout=config["console"]["kill_timeout"])
    surfaces = OutputSurfaces(display=display)
    env = None
    if config["cargo"]["env"]:
        env = dict(os.environ)
        env.update({k: str(v) for k, v in config["cargo"]["env"].items()})
    return TaskRunner(supervisor=supervisor, surfaces=surfaces,
                      notify=lambda msg: print(msg), env=env)


def setup(config, script_mode=False):
    global RUNNER
    RUNNER = build_runner(config, display=TerminalDisplay())
    commands.bind(RUNNER, program=config["cargo"]["program"],
                  confirm=confirm, script_mode=script_mode)
    Interrupt.bind_runner(RUNNER)
    return RUNNER


class ConsoleCompleter(Completer):
    def __init__(self, names, task_names):
        self.names = names
        self.task_names = task_names

    def get_completions(self, document, complete_event):
        word_before_cursor = document.get_word_before_cursor(WORD=True)
        word_len = len(word_before_cursor)
        words = document.text_before_cursor.split()

        # 1. Command names at the start of the line
        if not words or (len(words) == 1 and words[0] == word_before_cursor):
            for name in self.names:
                if name.startswith(word_before_cursor):
                    yield Completion(name, -word_len)
            return

        # 2. Task names after show/kill/wait
        if words[0] in _TASK_COMMANDS:
            for name in self.task_names():
                if name.startswith(word_before_cursor):
                    yield Completion(name, -word_len)


def _task_names():
    if RUNNER is None:
        return []
    return [s.name for s in RUNNER.tasks()]


# -----------------------
# Line processor
# -----------------------
def split_commands(line: str):
    """Split a line on top-level ';' tokens; '#' starts a comment."""
    lexer = shlex.shlex(line, posix=True, punctuation_chars=";")
    lexer.whitespace_split = True
    tokens = list(lexer)
    groups = []
    cur = []
    for tok in tokens:
        if tok == ";":
            if cur:
                groups.append(cur)
            cur = []
        else:
            cur.append(tok)
    if cur:
        groups.append(cur)
    return groups


def run_command(argv):
    try:
        args = argparser.parse_command(parser, argv)
    except ValueError as e:
        print(e)
        return 2
    except SystemExit:
        # --help
        return 0
    if not hasattr(args, "func"):
        print(f"Unknown command: {argv[0]}")
        return 127
    rc = args.func(args)
    return rc if rc is not None else 0


def process_line(line: str, history: list):
    if not line or not line.strip():
        return 0
    history.append(line)
    try:
        groups = split_commands(os.path.expandvars(line))
    except ValueError as e:
        print(f"parse error: {e}")
        return 1
    last = 0
    for argv in groups:
        last = run_command(argv)
    return last


# -----------------------
# Script mode runner
# -----------------------
def run_script(path: str, config=None):
    if not os.path.exists(path):
        print(f"Script not found: {path}", file=sys.stderr)
        return 1
    setup(config or load_config(), script_mode=True)
    previous = Interrupt.setup_signals()
    history = []
    last = 0
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                l = line.rstrip("\n")
                if not l or l.strip().startswith("#"):
                    continue
                last = process_line(l, history)
        RUNNER.wait_all()
    except KeyboardInterrupt:
        Interrupt.stop_running()
        print("\nScript interrupted.", file=sys.stderr)
        last = 130
    finally:
        RUNNER.shutdown()
        signal.signal(signal.SIGINT, previous)
    return last


# -----------------------
# Main loop
# -----------------------
def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, str(config["console"]["log_level"]).upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    if argv:
        return run_script(argv[0], config)

    setup(config)
    session = PromptSession(history=FileHistory(os.path.expanduser(config["console"]["history_file"])),
                            completer=ConsoleCompleter(_COMMANDS, _task_names))
    history = []
    try:
        with patch_stdout(raw=True):
            while True:
                try:
                    line = session.prompt(prompt())
                except KeyboardInterrupt:
                    continue
                except EOFError:
                    print("Exiting console.")
                    break
                try:
                    process_line(line, history)
                except SystemExit:
                    break
                except Exception:
                    logger.exception("command failed: %s", line)
    finally:
        RUNNER.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
