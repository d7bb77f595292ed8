# external_runner.py
from __future__ import annotations
import os, shutil, signal, subprocess
from typing import Optional

NOT_FOUND = 127
NOT_EXEC  = 126


class SpawnError(Exception):
    """The executable could not be launched (missing or not executable)."""

    def __init__(self, argv, code: int, reason: str):
        self.argv = list(argv)
        self.code = code
        self.reason = reason
        super().__init__(f"{self.argv[0] if self.argv else '<empty>'}: {reason}")


def resolve_executable(cmd: str) -> Optional[str]:
    """Return absolute path to executable or None.
    If cmd contains '/', treat it as a direct path. Otherwise search PATH."""
    if "/" in cmd:
        return cmd if os.path.exists(cmd) else None
    return shutil.which(cmd)


def _popen_platform(argv, cwd=None, env=None):
    # stderr is merged so the reader sees one stream in production order
    if os.name == "nt":
        return subprocess.Popen(argv, cwd=cwd, env=env,
                                stdin=subprocess.DEVNULL, stdout=subprocess.PIPE,
                                stderr=subprocess.STDOUT,
                                creationflags=subprocess.CREATE_NEW_PROCESS_GROUP)
    return subprocess.Popen(argv, cwd=cwd, env=env,
                            stdin=subprocess.DEVNULL, stdout=subprocess.PIPE,
                            stderr=subprocess.STDOUT,
                            start_new_session=True)


def start_background(argv: list[str], cwd: Optional[str] = None,
                     env: Optional[dict] = None) -> subprocess.Popen:
    """Non-blocking spawn; caller owns the Popen and reads its stdout.
    Raises SpawnError when the program cannot be started."""
    if not argv:
        raise SpawnError(argv, NOT_FOUND, "empty command line")
    exe = resolve_executable(argv[0])
    if not exe:
        raise SpawnError(argv, NOT_FOUND, "command not found")
    try:
        return _popen_platform([exe, *argv[1:]], cwd=cwd, env=env)
    except PermissionError:
        raise SpawnError(argv, NOT_EXEC, "permission denied")
    except FileNotFoundError:
        raise SpawnError(argv, NOT_FOUND, "no such file or directory")
    except OSError as e:
        raise SpawnError(argv, NOT_EXEC, e.strerror or str(e))


def terminate(proc: subprocess.Popen, sig: int = signal.SIGTERM) -> bool:
    """Signal the whole process group of proc. False if it was already gone."""
    if proc.poll() is not None:
        return False
    try:
        if os.name == "nt":
            if sig == signal.SIGTERM:
                proc.send_signal(signal.CTRL_BREAK_EVENT)
            else:
                proc.kill()
        else:
            os.killpg(os.getpgid(proc.pid), sig)
    except ProcessLookupError:
        return False
    return True


def describe_exit(returncode: int) -> str:
    """Status label for a reaped child, in the wording users know from shells."""
    if returncode == 0:
        return "finished"
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        return f"killed by signal {name}"
    return f"exited abnormally with code {returncode}"
