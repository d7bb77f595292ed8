# Interrupt.py — Ctrl-C handling for script mode

import signal
import sys

# TaskRunner instance is created in Repl.py, not here.
# We only store a reference once Repl.py gives it to us.
RUNNER = None


def bind_runner(runner):
    """
    Repl.py must call this once:
        Interrupt.bind_runner(RUNNER)
    so stop_running() knows which tasks to stop.
    """
    global RUNNER
    RUNNER = runner


# -----------------------------
#   SIGINT  (Ctrl-C)
# -----------------------------
def handle_sigint(signum, frame):
    # Runs between bytecodes of whatever the main thread is doing, possibly
    # inside a runner or surface lock. Touch nothing here; the caller that
    # catches KeyboardInterrupt calls stop_running().
    raise KeyboardInterrupt


def stop_running():
    """Cancel every running task. Returns the names that were stopped."""
    if RUNNER is None:
        return []
    running = [s.name for s in RUNNER.tasks() if s.status == "Running"]
    for name in running:
        RUNNER.cancel(name)
    if running:
        print(f"\n[!] Interrupted: {', '.join(running)}", file=sys.stderr)
    return running


# -----------------------------
#   SETUP
# -----------------------------
def setup_signals():
    # Ctrl-C stops the script; running tasks are cancelled by the caller.
    return signal.signal(signal.SIGINT, handle_sigint)
