import os

from gsb.snapshot.archive import parse_snapshot_name


def list_snapshots(storage_dir):
    """Snapshot file names in `storage_dir`, newest first.

    Anything that isn't a regular file with a valid timestamp name (the config
    record, subdirectories, stray files) is skipped. Errors listing the
    directory itself propagate.
    """
    saves = []
    with os.scandir(storage_dir) as entries:
        for entry in entries:
            if entry.is_dir():
                continue
            if parse_snapshot_name(entry.name) is None:
                continue
            saves.append(entry.name)
    # Fixed-width timestamps: lexical order is chronological order.
    saves.sort(reverse=True)
    return saves
