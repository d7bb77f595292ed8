# Runner_test.py
import sys, threading, time, unittest
from unittest import mock

import highlighter
from external_runner import SpawnError
from highlighter import Annotation, ERROR, WARNING
from output_surface import OutputSurfaces
from process_subsystem import ProcessSupervisor
from task_runner import TaskRunner, IDLE, RUNNING, FINISHED
from Surface_test import RecordingDisplay

CHATTY = ("import time\n"
          "while True:\n"
          "    print('old', flush=True)\n"
          "    time.sleep(0.01)\n")
SLEEPER = "import time\nprint('ready', flush=True)\ntime.sleep(30)"


def py(code):
    return [sys.executable, "-c", code]


def wait_for(predicate, timeout=10):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestTaskRunner(unittest.TestCase):
    def setUp(self):
        self.display = RecordingDisplay()
        self.messages = []
        self.runner = TaskRunner(supervisor=ProcessSupervisor(kill_timeout=1.0),
                                 surfaces=OutputSurfaces(display=self.display),
                                 notify=self.messages.append)

    def tearDown(self):
        self.runner.shutdown()

    def shown(self, name):
        return [e for e in self.display.events if e == ("shown", name)]

    def test_build_shows_once_and_notifies(self):
        self.assertEqual(self.runner.status("Build"), IDLE)
        self.runner.run("Build", py("print('Compiling demo v0.1.0')"))
        self.assertEqual(len(self.shown("Build")), 1)
        self.assertTrue(self.runner.wait("Build", 10))
        self.assertEqual(self.runner.status("Build"), FINISHED)
        surface = self.runner.surfaces.get("Build")
        self.assertEqual(surface.text, "Compiling demo v0.1.0\n")
        self.assertEqual(surface.status, "finished")
        self.assertFalse(surface.writable)
        self.assertEqual(self.messages, ["Build finished."])
        self.assertEqual(len(self.shown("Build")), 1)

    def test_hidden_task_never_shown(self):
        self.runner.run("Clean", py("print('removed')"), hidden=True)
        self.assertTrue(self.runner.wait("Clean", 10))
        self.assertEqual(self.shown("Clean"), [])
        self.assertFalse(self.runner.surfaces.get("Clean").visible)
        self.assertEqual(self.runner.surfaces.get("Clean").text, "removed\n")

    def test_status_while_running(self):
        self.runner.run("Run", py(SLEEPER))
        self.assertEqual(self.runner.status("Run"), RUNNING)
        self.assertFalse(self.runner.wait("Run", 0.05))

    def test_abnormal_exit_is_a_status(self):
        self.runner.run("Test", py("import sys; print('test result: FAILED'); sys.exit(101)"))
        self.assertTrue(self.runner.wait("Test", 10))
        surface = self.runner.surfaces.get("Test")
        self.assertEqual(surface.status, "exited abnormally with code 101")
        self.assertIn("FAILED", surface.text)
        self.assertEqual(self.messages, ["Test exited abnormally with code 101."])

    def test_run_twice_keeps_one_process(self):
        first = self.runner.run("Test", py(SLEEPER))
        second = self.runner.run("Test", py(SLEEPER))
        self.assertEqual(self.runner.supervisor.live(), [second])
        self.assertTrue(first.wait(10))
        self.assertIsNotNone(first.proc.poll())
        self.assertTrue(self.runner.supervisor.is_running("Test"))

    def test_superseded_run_cannot_write(self):
        first = self.runner.run("Test", py(CHATTY))
        surface = self.runner.surfaces.get("Test")
        self.assertTrue(wait_for(lambda: "old" in surface.text))

        self.runner.run("Test", py("print('new')"))
        self.assertTrue(self.runner.wait("Test", 10))
        self.assertTrue(first.wait(10))

        self.assertEqual(surface.text, "new\n")
        self.assertEqual(surface.status, "finished")
        self.assertEqual(self.runner.status("Test"), FINISHED)
        # the superseded run's exit is not reported
        self.assertEqual(self.messages, ["Test finished."])

    def test_spawn_failure(self):
        with self.assertRaises(SpawnError):
            self.runner.run("Build", ["__no_such_cargo__", "build"])
        surface = self.runner.surfaces.get("Build")
        self.assertEqual(surface.status, "spawn failed")
        self.assertIn("command not found", surface.text)
        self.assertFalse(surface.writable)
        self.assertFalse(self.runner.supervisor.is_running("Build"))
        self.assertEqual(self.runner.status("Build"), FINISHED)
        self.assertEqual(self.shown("Build"), [])
        self.assertEqual(self.messages, ["Build spawn failed."])

    def test_rerun_after_finish(self):
        self.runner.run("Doc", py("print('one')"))
        self.assertTrue(self.runner.wait("Doc", 10))
        self.runner.run("Doc", py("print('two')"))
        self.assertTrue(self.runner.wait("Doc", 10))
        self.assertEqual(self.runner.surfaces.get("Doc").text, "two\n")

    def test_severity_annotations(self):
        self.runner.run("Build", py("print('warning: unused variable')\nprint('error: aborting')"))
        self.assertTrue(self.runner.wait("Build", 10))
        annotations = self.runner.surfaces.get("Build").sorted_annotations()
        self.assertEqual(annotations, [Annotation(0, 7, WARNING), Annotation(25, 30, ERROR)])

    def test_keyword_split_across_chunks(self):
        code = ("import sys, time\n"
                "sys.stdout.write('err'); sys.stdout.flush(); time.sleep(0.1)\n"
                "sys.stdout.write('or: boom\\n'); sys.stdout.flush()\n")
        self.runner.run("Build", py(code))
        self.assertTrue(self.runner.wait("Build", 10))
        surface = self.runner.surfaces.get("Build")
        self.assertEqual(surface.text, "error: boom\n")
        self.assertEqual(surface.sorted_annotations(), [Annotation(0, 5, ERROR)])

    def test_long_open_line_rescans_only_the_tail(self):
        self.runner.surfaces.reset("Build")
        state = self.runner.state("Build")
        scanned = []
        real = highlighter.annotate

        def annotate(text):
            scanned.append(len(text))
            return real(text)

        with mock.patch("highlighter.annotate", annotate):
            for _ in range(500):
                self.runner._append(state, "x" * 20)
            self.runner._append(state, "war")
            self.runner._append(state, "ning")
        surface = self.runner.surfaces.get("Build")
        self.assertEqual(surface.sorted_annotations(), [Annotation(10000, 10007, WARNING)])
        self.assertLessEqual(max(scanned), 20 + highlighter.OVERLAP)

    def test_cancel(self):
        handle = self.runner.run("Run", py(SLEEPER))
        surface = self.runner.surfaces.get("Run")
        self.assertTrue(wait_for(lambda: "ready" in surface.text))
        self.assertTrue(self.runner.cancel("Run"))
        self.assertEqual(surface.status, "killed")
        self.assertEqual(self.runner.status("Run"), FINISHED)
        self.assertTrue(handle.wait(10))
        self.assertEqual(surface.status, "killed")
        self.assertEqual(self.messages, ["Run killed."])
        self.assertFalse(self.runner.cancel("Run"))

    def test_append_after_finalize_is_logged(self):
        self.runner.run("Bench", py("pass"))
        self.assertTrue(self.runner.wait("Bench", 10))
        state = self.runner.state("Bench")
        with self.assertLogs("task_runner", level="ERROR"):
            self.runner._append(state, "late\n")
        self.assertEqual(self.runner.surfaces.get("Bench").text, "")

    def test_tasks_are_independent(self):
        self.runner.run("Build", py("print('b')"))
        self.runner.run("Test", py("print('t')"))
        self.assertTrue(self.runner.wait_all(10))
        self.assertEqual(self.runner.surfaces.get("Build").text, "b\n")
        self.assertEqual(self.runner.surfaces.get("Test").text, "t\n")
        self.assertEqual([s.name for s in self.runner.tasks()], ["Build", "Test"])

    def test_concurrent_runs_of_one_task(self):
        errors = []

        def spam():
            try:
                for _ in range(3):
                    self.runner.run("Run", py(SLEEPER))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=spam) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(30)
        self.assertEqual(errors, [])
        self.assertEqual(len(self.runner.supervisor.live()), 1)


if __name__ == "__main__":
    unittest.main()
