from abc import ABC, abstractmethod


class SnapshotStore(ABC):
    """Base interface for snapshot backends.

    Implementations: LocalSnapshotStore.
    """

    @abstractmethod
    def create(self, name, callback=None):
        """Snapshot the target's source directory. Returns the snapshot name."""
        pass

    @abstractmethod
    def restore(self, name, snapshot, callback=None):
        """Restore a snapshot over the target's source directory."""
        pass

    @abstractmethod
    def list(self, name):
        """List the target's snapshots, newest first."""
        pass

    @abstractmethod
    def delete(self, name, snapshot, callback=None):
        """Delete one snapshot, never the newest or the last one."""
        pass

    @abstractmethod
    def prune(self, name, callback=None):
        """Delete every snapshot except the newest. Returns the removed names."""
        pass
