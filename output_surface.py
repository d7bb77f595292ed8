#!/usr/bin/env python3
# output_surface.py — per-task append-only output buffers

import logging
import threading

logger = logging.getLogger(__name__)


class NotWritableError(Exception):
    """Append to a surface that is read-only (finalized) or was never reset."""


class Surface:
    def __init__(self, name):
        self.name = name
        self.chunks = []
        self.annotations = set()
        self.writable = False
        self.status = None
        self.visible = False
        self.lock = threading.RLock()
        self._length = 0

    @property
    def text(self):
        with self.lock:
            return "".join(self.chunks)

    def tail(self, n):
        """(offset, text) of at most the last n characters."""
        with self.lock:
            parts = []
            need = n
            for chunk in reversed(self.chunks):
                if need <= 0:
                    break
                piece = chunk[-need:]
                parts.append(piece)
                need -= len(piece)
            text = "".join(reversed(parts))
            return self._length - len(text), text

    def sorted_annotations(self):
        with self.lock:
            return sorted(self.annotations)


class OutputSurfaces:
    """Registry of surfaces keyed by task name.

    display, if given, is the host view: it gets shown(surface),
    appended(surface, text, offset) and finalized(surface) calls."""

    def __init__(self, display=None):
        self.surfaces = {}
        self.display = display
        self.lock = threading.Lock()

    def get(self, name):
        with self.lock:
            return self.surfaces.get(name)

    def names(self):
        with self.lock:
            return sorted(self.surfaces)

    def reset(self, name):
        with self.lock:
            surface = self.surfaces.get(name)
            if surface is None:
                surface = self.surfaces[name] = Surface(name)
        with surface.lock:
            surface.chunks = []
            surface.annotations = set()
            surface._length = 0
            surface.status = None
            surface.visible = False
            surface.writable = True
        logger.debug("surface %s reset", name)
        return surface

    def append(self, name, text, annotations=()):
        """Append text; annotations are in offsets of the whole surface content."""
        surface = self.get(name)
        if surface is None:
            raise NotWritableError(f"{name}: no such surface")
        with surface.lock:
            if not surface.writable:
                raise NotWritableError(f"{name}: surface is read-only ({surface.status})")
            offset = surface._length
            surface.chunks.append(text)
            surface._length += len(text)
            surface.annotations.update(annotations)
            if self.display is not None:
                self.display.appended(surface, text, offset)

    def finalize(self, name, status_label):
        surface = self.get(name)
        if surface is None:
            raise KeyError(name)
        with surface.lock:
            surface.writable = False
            surface.status = status_label
            if self.display is not None:
                self.display.finalized(surface)

    def show(self, name):
        surface = self.get(name)
        if surface is None:
            raise KeyError(name)
        with surface.lock:
            surface.visible = True
            if self.display is not None:
                self.display.shown(surface)
