# display.py - terminal view of output surfaces
# Visible surfaces are echoed as they grow; "error"/"warning" spans get colour.

import sys
import threading

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.styles import Style

from highlighter import ERROR, WARNING

STYLE = Style.from_dict({
    "error": "#ff5f5f bold",
    "warning": "#ffd75f",
    "header": "#5fafff bold",
    "status": "#5fd75f",
    "status.failed": "#ff5f5f",
})

_SEVERITY_CLASS = {
    ERROR: "class:error",
    WARNING: "class:warning",
}


def fragments(text, offset, annotations):
    """Split text (starting at surface offset) into prompt_toolkit (style, text) pairs."""
    end = offset + len(text)
    spans = sorted((a for a in annotations if a.start < end and a.end > offset),
                   key=lambda a: (a.start, a.end))
    result = []
    pos = offset
    for a in spans:
        start = max(a.start, pos)
        stop = min(a.end, end)
        if stop <= start:
            continue
        if start > pos:
            result.append(("", text[pos - offset:start - offset]))
        result.append((_SEVERITY_CLASS.get(a.severity, ""), text[start - offset:stop - offset]))
        pos = stop
    if pos < end:
        result.append(("", text[pos - offset:]))
    return result


def _print(formatted, style=None, end="\n"):
    # resolve sys.stdout per call so patch_stdout keeps the prompt intact
    print_formatted_text(formatted, style=style, end=end, file=sys.stdout)


class TerminalDisplay:
    def __init__(self, output=_print, style=STYLE):
        self._output = output
        self.style = style
        self.lock = threading.Lock()

    def _emit(self, parts, end=""):
        with self.lock:
            self._output(FormattedText(parts), style=self.style, end=end)

    def shown(self, surface):
        parts = [("class:header", f"--- {surface.name} ---\n")]
        text = surface.text
        if text:
            parts.extend(fragments(text, 0, surface.annotations))
            if not text.endswith("\n"):
                parts.append(("", "\n"))
        self._emit(parts)
        if surface.status is not None:
            self.finalized(surface)

    def appended(self, surface, text, offset):
        if not surface.visible:
            return
        self._emit(fragments(text, offset, surface.annotations))

    def finalized(self, surface):
        if not surface.visible:
            return
        failed = surface.status != "finished"
        style = "class:status.failed" if failed else "class:status"
        lead = "" if not surface.text or surface.text.endswith("\n") else "\n"
        self._emit([("", lead), (style, f"--- {surface.name} {surface.status} ---\n")])
