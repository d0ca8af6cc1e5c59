"""Shared fixtures: a small live directory tree and a store rooted in tmp_path."""

import os
import stat

import pytest

from gsb.snapshot.archive import archive
from gsb.snapshot.local import LocalSnapshotStore

TREE = {
    "a.txt": (b"alpha\n", 0o644),
    "run.sh": (b"#!/bin/sh\necho hi\n", 0o755),
    "sub/b.txt": (b"bravo\n", 0o600),
    "sub/deep/c.bin": (bytes(range(256)) * 40, 0o640),
}
DIR_MODES = {"sub": 0o750, "sub/deep": 0o700}


def make_tree(root):
    """Create TREE under `root` and return it."""
    os.makedirs(root, exist_ok=True)
    for rel, (data, mode) in TREE.items():
        path = os.path.join(root, rel)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        os.chmod(path, mode)
    for rel, mode in DIR_MODES.items():
        os.chmod(os.path.join(root, rel), mode)
    return root


def read_tree(root):
    """Map relative path -> (contents or None for directories, mode bits)."""
    result = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for d in dirnames:
            path = os.path.join(dirpath, d)
            result[os.path.relpath(path, root)] = (None, stat.S_IMODE(os.stat(path).st_mode))
        for name in filenames:
            path = os.path.join(dirpath, name)
            with open(path, "rb") as f:
                result[os.path.relpath(path, root)] = (f.read(), stat.S_IMODE(os.stat(path).st_mode))
    return result


@pytest.fixture
def live(tmp_path):
    """A populated live directory named 'game'."""
    return make_tree(str(tmp_path / "live" / "game"))


@pytest.fixture
def store(tmp_path):
    """A store with no sleeping between timestamp attempts."""
    sleeps = []
    s = LocalSnapshotStore(
        str(tmp_path / "root"),
        audit_log=str(tmp_path / "logs.jsonl"),
        sleep=sleeps.append,
    )
    s.sleeps = sleeps
    return s


@pytest.fixture
def target(store, live):
    """Target 'game' registered in `store`, backed by `live`."""
    store.add_target("game", live)
    return "game"


def add_saves(store, name, *stamps):
    """Archive the target's source under each given 14-digit stamp."""
    storage = store.storage_dir(name)
    src = store.source(name)
    for stamp in stamps:
        archive(src, os.path.join(storage, stamp + ".zip"))
    return [stamp + ".zip" for stamp in stamps]
