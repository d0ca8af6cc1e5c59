"""Stage summaries for backup and restore.

StageTimer sits between the store and the progress printer, counts the
paths a stage archives or extracts, and prints the count with the elapsed
time once the stage is done.
"""

import time

# Progress prefixes: "> " archived, "+ " directory created, "< " file extracted.
PATH_MARKERS = (">", "+", "<")


class StageTimer:
    """Per-stage path count and wall-clock time.

    Usage:
        t = StageTimer(console)
        store.create(name, callback=t.track(printer))
        t.mark("backup")        # prints "  backup  12 paths  0.8s"
    """

    def __init__(self, console, clock=time.monotonic):
        self.console = console
        self.clock = clock
        self.paths = 0
        self._stage_start = clock()

    def track(self, callback=None):
        """Wrap a progress callback so the current stage counts its paths."""
        def _count(line):
            if line[:1] in PATH_MARKERS:
                self.paths += 1
            if callback:
                callback(line)
        return _count

    def mark(self, label):
        now = self.clock()
        elapsed = now - self._stage_start
        noun = "path" if self.paths == 1 else "paths"
        self.console.print(f"  [dim]{label}  {self.paths} {noun}  {elapsed:.1f}s[/dim]")
        self._stage_start = now
        self.paths = 0
        return elapsed
