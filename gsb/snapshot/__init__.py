from gsb.snapshot.local import LocalSnapshotStore


def create_snapshot_store(config=None, audit_log=None):
    """Create a snapshot store from config.

    Config keys:
        root: directory holding one subdirectory per target
        staged_restore: extract into a sibling directory and swap it in
    """
    from gsb.config import DEFAULT_CONFIG

    config = config or {}
    root = config.get("root") or DEFAULT_CONFIG["root"]
    return LocalSnapshotStore(
        root,
        staged_restore=bool(config.get("staged_restore", False)),
        audit_log=audit_log,
    )
