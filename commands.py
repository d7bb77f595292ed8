#!/usr/bin/env python3
# commands.py - cargo actions and console builtins

import os
import sys
from pathlib import Path

from external_runner import SpawnError

# action -> (task name, argv suffix, hidden by default, takes extra args)
CATALOG = {
    "bench":  ("Bench",  ["bench"],  False, True),
    "build":  ("Build",  ["build"],  False, True),
    "clean":  ("Clean",  ["clean"],  True,  False),
    "doc":    ("Doc",    ["doc"],    False, True),
    "new":    ("New",    ["new"],    True,  False),
    "run":    ("Run",    ["run"],    False, True),
    "search": ("Search", ["search"], False, False),
    "test":   ("Test",   ["test"],   False, True),
    "update": ("Update", ["update"], False, False),
}

# actions that do not belong to an existing project
PROJECTLESS = {"new", "search"}

PROGRAM = "cargo"

# injected by Repl
RUNNER = None
SCRIPT_MODE = False
CONFIRM = None


def bind(runner, program="cargo", confirm=None, script_mode=False):
    global RUNNER, PROGRAM, CONFIRM, SCRIPT_MODE
    RUNNER = runner
    PROGRAM = program
    CONFIRM = confirm
    SCRIPT_MODE = script_mode


def command_for(action, *params, binary=False, extra=(), program=None):
    """Return (task_name, argv, hidden) for a catalog action."""
    if action not in CATALOG:
        raise ValueError(f"unknown action: {action}")
    task, suffix, hidden, takes_extra = CATALOG[action]
    argv = [program or PROGRAM, *suffix]

    if action == "new":
        if len(params) != 1 or not params[0]:
            raise ValueError("new: expected a project name")
        argv.append(params[0])
        if binary:
            argv.append("--bin")
    elif action == "search":
        term = " ".join(params).strip()
        if not term:
            raise ValueError("search: expected a search term")
        argv.append(term)
    elif params:
        raise ValueError(f"{action}: unexpected arguments {' '.join(params)}")

    if extra:
        if not takes_extra:
            raise ValueError(f"{action}: does not take extra arguments")
        argv.extend(extra)
    return task, argv, hidden


def find_project_root(start=None):
    """Nearest directory at or above start holding a Cargo.toml, or None."""
    path = Path(start or os.getcwd()).resolve()
    for candidate in (path, *path.parents):
        if (candidate / "Cargo.toml").is_file():
            return str(candidate)
    return None


def _print(msg=""):
    print(msg)


# -----------------------
# Cargo actions
# Each function accepts argparse-style 'args' from the parser
# -----------------------
def _launch(action, *params, binary=False, extra=(), hidden=None):
    if RUNNER is None:
        _print("task runner not available")
        return 1
    try:
        task, argv, default_hidden = command_for(action, *params, binary=binary, extra=extra)
    except ValueError as e:
        _print(str(e))
        return 2

    cwd = None
    if action not in PROJECTLESS:
        cwd = find_project_root()
        if cwd is None:
            _print(f"{action}: no Cargo.toml found, running in {os.getcwd()}")

    try:
        RUNNER.run(task, argv, hidden=default_hidden if hidden is None else hidden, cwd=cwd)
    except SpawnError as e:
        _print(f"{task}: {e}")
        return e.code

    if SCRIPT_MODE:
        RUNNER.wait(task)
        state = RUNNER.state(task)
        return 0 if state.label == "finished" else 1
    return 0


def simple_action(args):
    return _launch(args.command, extra=getattr(args, "extra", None) or ())


def new_project(args):
    binary = args.binary
    if binary is None:
        if CONFIRM is not None and not SCRIPT_MODE:
            binary = CONFIRM("Create Bin Project? ")
        else:
            binary = True
    return _launch("new", args.name, binary=binary)


def search_crates(args):
    return _launch("search", *args.term)


# -----------------------
# Console builtins
# -----------------------
def jobs_builtin(args):
    if RUNNER is None:
        _print("task runner not available")
        return 1
    tasks = RUNNER.tasks()
    if not tasks:
        _print("No tasks.")
        return 0
    for state in tasks:
        _print(str(state))
    return 0


def show_builtin(args):
    if RUNNER is None:
        _print("task runner not available")
        return 1
    name = _task_name(args.task)
    surface = RUNNER.surfaces.get(name)
    if surface is None:
        _print(f"show: {args.task}: no output yet")
        return 1
    RUNNER.surfaces.show(name)
    return 0


def kill_builtin(args):
    if RUNNER is None:
        _print("task runner not available")
        return 1
    name = _task_name(args.task)
    if not RUNNER.cancel(name):
        _print(f"kill: {args.task}: not running")
        return 1
    return 0


def wait_builtin(args):
    if RUNNER is None:
        _print("task runner not available")
        return 1
    timeout = getattr(args, "timeout", None)
    if args.task:
        ok = RUNNER.wait(_task_name(args.task), timeout)
    else:
        ok = RUNNER.wait_all(timeout)
    if not ok:
        _print("wait: timed out")
        return 1
    return 0


def exit_console(args):
    if RUNNER is not None:
        RUNNER.shutdown()
    sys.exit(0)


def _task_name(name):
    """Accept either the task name ("Build") or its action ("build")."""
    if name in CATALOG:
        return CATALOG[name][0]
    for task, _, _, _ in CATALOG.values():
        if task.lower() == name.lower():
            return task
    return name
