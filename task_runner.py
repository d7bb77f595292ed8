#!/usr/bin/env python3
# task_runner.py — named tasks: one process, one output surface each

import logging
import threading

import highlighter
from external_runner import SpawnError
from output_surface import OutputSurfaces, NotWritableError
from process_subsystem import ProcessSupervisor

logger = logging.getLogger(__name__)

IDLE = "Idle"
RUNNING = "Running"
FINISHED = "Finished"


class TaskState:
    def __init__(self, name):
        self.name = name
        self.argv = []
        self.hidden = False
        self.status = IDLE
        self.generation = 0
        self.label = None
        self.handle = None
        # serializes reset/append/finalize for this name
        self.lock = threading.RLock()
        self.done = threading.Event()

    def __str__(self):
        label = f" ({self.label})" if self.status == FINISHED and self.label else ""
        return f"{self.name:<8} {self.status}{label}\t{' '.join(self.argv)}"


class TaskRunner:
    """Starts task processes and keeps their surfaces in step with them.

    notify(message) receives the user-visible completion messages."""

    def __init__(self, supervisor=None, surfaces=None, notify=None, cwd=None, env=None):
        self.supervisor = supervisor or ProcessSupervisor()
        self.surfaces = surfaces or OutputSurfaces()
        self.notify = notify or logger.info
        self.cwd = cwd
        self.env = env
        self.states = {}
        self.lock = threading.Lock()

    def state(self, name):
        with self.lock:
            state = self.states.get(name)
            if state is None:
                state = self.states[name] = TaskState(name)
            return state

    def status(self, name):
        with self.lock:
            state = self.states.get(name)
        return state.status if state else IDLE

    def tasks(self):
        with self.lock:
            return [s for _, s in sorted(self.states.items())]

    def run(self, name, argv, hidden=False, cwd=None):
        """Start argv as task name, superseding any earlier run of it.

        Returns the ProcessHandle without waiting for the process.
        Raises SpawnError after recording the failure on the surface."""
        state = self.state(name)
        with state.lock:
            self.supervisor.cleanup(name)
            state.generation += 1
            generation = state.generation
            # anyone waiting on the superseded run is released
            state.done.set()
            state.done = threading.Event()
            state.argv = list(argv)
            state.hidden = hidden
            state.label = None
            state.handle = None

            self.surfaces.reset(name)
            state.status = RUNNING
            try:
                handle = self.supervisor.start(
                    name, argv,
                    on_output=lambda text: self._on_output(state, generation, text),
                    cwd=cwd or self.cwd, env=self.env)
            except SpawnError as e:
                logger.warning("%s: could not start %s: %s", name, " ".join(argv[:1]), e.reason)
                self._append(state, f"{e}\n")
                self._finish(state, "spawn failed")
                raise

            state.handle = handle
            handle.on_exit(lambda exit_status: self._on_exit(state, generation, exit_status))

        if not hidden:
            self.surfaces.show(name)
        return handle

    def cancel(self, name):
        """Stop the live run of name. False when nothing was running."""
        state = self.state(name)
        with state.lock:
            if not self.supervisor.cleanup(name):
                return False
            state.generation += 1
            self._finish(state, "killed")
        return True

    def wait(self, name, timeout=None):
        """Block until the current run of name is over. True if it finished."""
        state = self.state(name)
        with state.lock:
            if state.status != RUNNING:
                return True
            done = state.done
        return done.wait(timeout)

    def wait_all(self, timeout=None):
        for state in self.tasks():
            if not self.wait(state.name, timeout):
                return False
        return True

    def shutdown(self):
        for state in self.tasks():
            self.cancel(state.name)
        self.supervisor.shutdown()

    def _on_output(self, state, generation, text):
        with state.lock:
            if generation != state.generation:
                logger.debug("%s: dropping %d chars from superseded run", state.name, len(text))
                return
            self._append(state, text)

    def _append(self, state, text):
        surface = self.surfaces.get(state.name)
        if surface is not None:
            # rescan just enough of the old tail to catch a word split across reads
            offset, head = surface.tail(highlighter.OVERLAP)
            annotations = highlighter.shift(highlighter.annotate(head + text), offset)
        else:
            annotations = ()
        try:
            self.surfaces.append(state.name, text, annotations)
        except NotWritableError:
            logger.error("%s: output after finalize dropped", state.name, exc_info=True)

    def _on_exit(self, state, generation, exit_status):
        with state.lock:
            if generation != state.generation:
                logger.debug("%s: ignoring exit of superseded run (%s)", state.name, exit_status.label)
                return
            self._finish(state, exit_status.label)

    def _finish(self, state, label):
        state.status = FINISHED
        state.label = label
        state.handle = None
        self.surfaces.finalize(state.name, label)
        if label == "finished":
            self.notify(f"{state.name} finished.")
        else:
            self.notify(f"{state.name} {label}.")
        state.done.set()
