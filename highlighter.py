# highlighter.py — severity spans in raw tool output
import re
from collections import namedtuple

ERROR = "error"
WARNING = "warning"

Annotation = namedtuple("Annotation", ["start", "end", "severity"])

# a keyword split across two appends has at most this many chars in the first
OVERLAP = max(len(ERROR), len(WARNING)) - 1

# Case-sensitive: cargo and rustc print these words in lowercase.
_PATTERNS = (
    (re.compile(r"error"), ERROR),
    (re.compile(r"warning"), WARNING),
)


def annotate(text):
    """Return a frozenset of Annotation(start, end, severity) for text."""
    found = set()
    for pattern, severity in _PATTERNS:
        for m in pattern.finditer(text):
            found.add(Annotation(m.start(), m.end(), severity))
    return frozenset(found)


def shift(annotations, offset):
    return frozenset(Annotation(a.start + offset, a.end + offset, a.severity)
                     for a in annotations)
