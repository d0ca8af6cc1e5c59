import os
import threading
import time
from datetime import datetime, timezone

from gsb.config import read_config, target_dir, write_config
from gsb.errors import (
    ConflictError,
    NotFoundError,
    RetentionViolation,
    TimestampExhausted,
    ValidationError,
)
from gsb.log import write_log
from gsb.snapshot.archive import archive, snapshot_name
from gsb.snapshot.base import SnapshotStore
from gsb.snapshot.catalog import list_snapshots
from gsb.snapshot.restore import restore as restore_package

# Attempts at finding a free timestamp name, one second apart.
CREATE_ATTEMPTS = 3


def _utcnow():
    return datetime.now(timezone.utc)


class LocalSnapshotStore(SnapshotStore):
    """Zip snapshots under ``<root>/<target>/``.

    One instance is meant to be shared by every caller in the process: its two
    locks serialize delete-class and restore-class operations across *all*
    targets. Creating and listing snapshots take no lock.
    """

    def __init__(self, root, staged_restore=False, audit_log=None, clock=None, sleep=time.sleep):
        self.root = os.path.abspath(root)
        self.staged_restore = staged_restore
        self.audit_log = audit_log
        self.delete_lock = threading.Lock()
        self.restore_lock = threading.Lock()
        self._clock = clock or _utcnow
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def targets(self):
        """Names of all targets under the root."""
        if not os.path.isdir(self.root):
            return []
        with os.scandir(self.root) as entries:
            return sorted(e.name for e in entries if e.is_dir())

    def add_target(self, name, source):
        """Register a new target backed up from `source`."""
        path = target_dir(self.root, name, must_exist=False)
        if os.path.lexists(path):
            raise ConflictError(f"target {name!r} already exists")
        source = os.path.abspath(os.path.expanduser(source))
        if not os.path.isdir(source):
            raise NotFoundError(f"source directory not found: {source}")
        os.makedirs(self.root, exist_ok=True)
        os.mkdir(path, 0o755)
        write_config(path, source)
        self._log({"event": "add", "target": name, "source": source})
        return path

    def storage_dir(self, name):
        return target_dir(self.root, name)

    def source(self, name):
        return read_config(self.storage_dir(name))

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def create(self, name, callback=None):
        src = self.source(name)
        storage = self.storage_dir(name)
        for attempt in range(CREATE_ATTEMPTS):
            if attempt:
                self._sleep(1)
            snapshot = snapshot_name(self._clock())
            dest = os.path.join(storage, snapshot)
            if os.path.lexists(dest):
                continue
            try:
                archive(src, dest, callback)
            except ConflictError:
                # Lost a race for this second to a concurrent backup.
                continue
            self._log({"event": "backup", "target": name, "snapshot": snapshot})
            return snapshot
        raise TimestampExhausted()

    def list(self, name):
        return list_snapshots(self.storage_dir(name))

    def restore(self, name, snapshot, callback=None):
        path = self._snapshot_path(name, snapshot)
        src = self.source(name)
        with self.restore_lock:
            restore_package(path, src, callback, staged=self.staged_restore)
        self._log({"event": "restore", "target": name, "snapshot": snapshot})

    def delete(self, name, snapshot, callback=None):
        path = self._snapshot_path(name, snapshot)
        with self.delete_lock:
            saves = self.list(name)
            if len(saves) <= 1:
                raise RetentionViolation("no save to be deleted")
            if snapshot == saves[0]:
                raise RetentionViolation("the first save cannot be deleted")
            if snapshot not in saves:
                raise NotFoundError(f"save not found: {snapshot}")
            self._remove(path, callback)
        self._log({"event": "delete", "target": name, "snapshot": snapshot})

    def prune(self, name, callback=None):
        storage = self.storage_dir(name)
        removed = []
        with self.delete_lock:
            saves = self.list(name)
            if len(saves) <= 1:
                raise RetentionViolation("no save to be deleted")
            for snapshot in saves[1:]:
                self._remove(os.path.join(storage, snapshot), callback)
                removed.append(snapshot)
        self._log({"event": "prune", "target": name, "removed": removed})
        return removed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _snapshot_path(self, name, snapshot):
        if not snapshot or os.path.basename(snapshot) != snapshot or snapshot in (".", ".."):
            raise ValidationError(f"bad save name {snapshot!r}")
        return os.path.join(self.storage_dir(name), snapshot)

    def _remove(self, path, callback=None):
        if callback:
            callback(f"- removing {path} ...")
        os.remove(path)

    def _log(self, entry):
        if self.audit_log:
            write_log(entry, self.audit_log)
