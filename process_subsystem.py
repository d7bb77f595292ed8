#!/usr/bin/env python3
# process_subsystem.py — one live child process per task name

import codecs
import logging
import os
import signal
import threading

from external_runner import start_background, terminate, describe_exit

logger = logging.getLogger(__name__)

READ_SIZE = 4096


class ExitStatus:
    """How a child ended: a return code, or the signal that killed it."""

    def __init__(self, returncode):
        self.returncode = returncode

    @property
    def signal(self):
        return -self.returncode if self.returncode < 0 else None

    @property
    def ok(self):
        return self.returncode == 0

    @property
    def label(self):
        return describe_exit(self.returncode)

    def __repr__(self):
        return f"ExitStatus({self.returncode})"


class ProcessHandle:
    def __init__(self, task, proc, command, generation):
        self.task = task
        self.proc = proc
        self.pid = proc.pid
        self.command = command
        self.generation = generation
        self.status = "Running"
        self.exit_status = None
        self.lock = threading.Lock()
        self._callbacks = []
        self._done = threading.Event()

    def on_exit(self, callback):
        """Register a one-shot callback(exit_status). Fires now if the child already exited."""
        with self.lock:
            if self.exit_status is None:
                self._callbacks.append(callback)
                return
            exit_status = self.exit_status
        callback(exit_status)

    def wait(self, timeout=None):
        return self._done.wait(timeout)

    def _finish(self, exit_status):
        with self.lock:
            self.exit_status = exit_status
            if self.status == "Running":
                self.status = "Done" if exit_status.ok else "Exited"
            callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            try:
                cb(exit_status)
            except Exception:
                logger.exception("exit callback for %s (pid %s) failed", self.task, self.pid)
        self._done.set()


class ProcessSupervisor:
    def __init__(self, spawn=start_background, kill_timeout=5.0):
        self.handles = {}
        # most recent handle per task, kept after it leaves the live table
        self.last = {}
        self.lock = threading.Lock()
        # held across cleanup, spawn and register so starts of one task never overlap
        self._start_locks = {}
        self.kill_timeout = kill_timeout
        self._spawn = spawn
        self._next_generation = 1

    def start(self, task, argv, on_output=None, cwd=None, env=None):
        """Spawn argv for task, replacing any live process of that task.

        on_output(text) is called from a reader thread with decoded chunks
        in the order they were read. Raises SpawnError."""
        with self._start_lock(task):
            self.cleanup(task)
            proc = self._spawn(list(argv), cwd=cwd, env=env)
            with self.lock:
                generation = self._next_generation
                self._next_generation += 1
                handle = ProcessHandle(task, proc, list(argv), generation)
                self.handles[task] = handle
                self.last[task] = handle
        logger.info("started %s (pid %s): %s", task, handle.pid, " ".join(argv))

        t = threading.Thread(target=self._pump, args=(handle, on_output),
                             name=f"pump-{task}-{generation}", daemon=True)
        t.start()
        return handle

    def cleanup(self, task):
        """Detach and terminate the live process for task. Does not wait for exit."""
        with self.lock:
            handle = self.handles.pop(task, None)
        if handle is None:
            return False

        with handle.lock:
            if handle.status == "Running":
                handle.status = "Terminated"
        if terminate(handle.proc):
            logger.info("terminating %s (pid %s)", task, handle.pid)
            if self.kill_timeout is not None:
                timer = threading.Timer(self.kill_timeout, self._escalate, args=(handle,))
                timer.daemon = True
                timer.start()
        return True

    def on_exit(self, task, callback):
        """One-shot callback for the latest process of task, even if it already exited."""
        with self.lock:
            handle = self.handles.get(task) or self.last.get(task)
        if handle is None:
            raise KeyError(f"task {task!r} was never started")
        handle.on_exit(callback)

    def is_running(self, task):
        with self.lock:
            return task in self.handles

    def status(self, task):
        with self.lock:
            handle = self.handles.get(task)
        return handle.status if handle else None

    def live(self):
        with self.lock:
            return [h for _, h in sorted(self.handles.items())]

    def shutdown(self):
        with self.lock:
            tasks = list(self.handles)
        for task in tasks:
            self.cleanup(task)

    def _start_lock(self, task):
        with self.lock:
            lock = self._start_locks.get(task)
            if lock is None:
                lock = self._start_locks[task] = threading.Lock()
            return lock

    def _escalate(self, handle):
        if handle.proc.poll() is None:
            logger.warning("%s (pid %s) ignored SIGTERM, killing", handle.task, handle.pid)
            terminate(handle.proc, getattr(signal, "SIGKILL", signal.SIGTERM))

    def _pump(self, handle, on_output):
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        fd = handle.proc.stdout.fileno()
        try:
            while True:
                data = os.read(fd, READ_SIZE)
                if not data:
                    break
                text = decoder.decode(data)
                if text and on_output is not None:
                    self._deliver(handle, on_output, text)
            tail = decoder.decode(b"", final=True)
            if tail and on_output is not None:
                self._deliver(handle, on_output, tail)
        except OSError:
            logger.exception("reading output of %s (pid %s) failed", handle.task, handle.pid)
        finally:
            handle.proc.stdout.close()

        rc = handle.proc.wait()
        with self.lock:
            if self.handles.get(handle.task) is handle:
                del self.handles[handle.task]
        logger.info("%s (pid %s) %s", handle.task, handle.pid, describe_exit(rc))
        handle._finish(ExitStatus(rc))

    def _deliver(self, handle, on_output, text):
        try:
            on_output(text)
        except Exception:
            logger.exception("output callback for %s (pid %s) failed", handle.task, handle.pid)
