# Highlighter_test.py
import unittest
from highlighter import annotate, shift, Annotation, ERROR, WARNING


class TestAnnotate(unittest.TestCase):
    def test_warning_prefix(self):
        self.assertEqual(annotate("warning: unused variable"),
                         {Annotation(0, 7, WARNING)})

    def test_error_and_warning(self):
        found = annotate("2 errors; 1 warning")
        self.assertEqual(sorted(a.severity for a in found), [ERROR, WARNING])
        self.assertIn(Annotation(2, 7, ERROR), found)
        self.assertIn(Annotation(12, 19, WARNING), found)

    def test_all_clear(self):
        self.assertEqual(annotate("all clear"), frozenset())

    def test_case_sensitive(self):
        self.assertEqual(annotate("Error: WARNING"), frozenset())

    def test_every_occurrence(self):
        found = annotate("error[E0308]: mismatched types\nerror: aborting")
        self.assertEqual({a.start for a in found}, {0, 31})

    def test_idempotent(self):
        text = "warning: x\nerror: y"
        self.assertEqual(annotate(text), annotate(text))

    def test_shift(self):
        self.assertEqual(shift(annotate("error"), 10), {Annotation(10, 15, ERROR)})


if __name__ == "__main__":
    unittest.main()
