"""Restore a package over a live directory.

Sequence: defensive backup (only when the chosen package is missing), open
and validate the package, remove the live tree, extract, drop the defensive
backup. The default sequence is not atomic: a failure after the live tree is
removed leaves it empty or partial. ``staged=True`` extracts into a sibling
directory first and swaps it into place with renames.
"""

import os
import shutil
import tempfile
import zipfile

from gsb.errors import ConflictError, NotFoundError, ValidationError
from gsb.snapshot.archive import archive

BACKUP_SUFFIX = ".bkup.zip"

_CREATE_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0)


def _entry_mode(info, default):
    mode = (info.external_attr >> 16) & 0o7777
    return mode or default


def _check_entries(zf, root, tgt):
    """Every entry must land on `tgt` or somewhere beneath it."""
    tgt_real = os.path.realpath(tgt)
    for info in zf.infolist():
        dest = os.path.realpath(os.path.join(root, info.filename))
        if dest != tgt_real and not dest.startswith(tgt_real + os.sep):
            raise ValidationError(f"unsafe entry in package: {info.filename!r}")


def _extract(zf, root, callback=None):
    """Recreate every entry of `zf` under `root`, in stored order."""
    dir_modes = []
    for info in zf.infolist():
        path = os.path.join(root, info.filename)
        if info.is_dir():
            if callback:
                callback(f"+ {path} ...")
            os.makedirs(path, exist_ok=True)
            dir_modes.append((path, _entry_mode(info, 0o755)))
            continue
        if callback:
            callback(f"< {path} ...")
        os.makedirs(os.path.dirname(path), exist_ok=True)
        mode = _entry_mode(info, 0o644)
        fd = os.open(path, _CREATE_FLAGS, mode)
        with zf.open(info) as src, os.fdopen(fd, "wb") as dst:
            shutil.copyfileobj(src, dst)
        os.chmod(path, mode)
    # Deepest first, so a read-only directory doesn't block its children.
    for path, mode in reversed(dir_modes):
        os.chmod(path, mode)


def defensive_backup(tgt, callback=None):
    """Archive `tgt` next to itself as `<tgt>.bkup.zip`. Returns the backup path.

    Never overwrites an existing backup: it may be the only copy left.
    """
    backup = tgt + BACKUP_SUFFIX
    if os.path.lexists(backup):
        raise ConflictError(f"please remove {backup}")
    try:
        archive(tgt, backup, callback)
    except Exception as e:
        if callback:
            callback(f"unable to backup for recover: {e}")
        raise
    return backup


def _swap(staged, tgt):
    """Move `staged` into place at `tgt`, removing whatever was there."""
    old = None
    if os.path.lexists(tgt):
        old = tempfile.mkdtemp(prefix=".gsb-old-", dir=os.path.dirname(tgt))
        old_tree = os.path.join(old, os.path.basename(tgt))
        os.rename(tgt, old_tree)
    try:
        os.rename(staged, tgt)
    except OSError:
        if old:
            os.rename(old_tree, tgt)
            os.rmdir(old)
        raise
    if old:
        shutil.rmtree(old)


def _replace(zf, tgt, callback=None):
    try:
        # A symlinked live directory is replaced, not followed.
        if os.path.islink(tgt):
            os.remove(tgt)
        else:
            shutil.rmtree(tgt)
    except FileNotFoundError:
        pass
    except OSError as e:
        if callback:
            callback(f"unable to remove target: {e}")
        raise
    _extract(zf, os.path.dirname(tgt), callback)


def _replace_staged(zf, tgt, callback=None):
    parent = os.path.dirname(tgt)
    staging = tempfile.mkdtemp(prefix=".gsb-restore-", dir=parent)
    try:
        _extract(zf, staging, callback)
        staged_tree = os.path.join(staging, os.path.basename(tgt))
        if not os.path.isdir(staged_tree):
            os.mkdir(staged_tree)
        _swap(staged_tree, tgt)
    finally:
        shutil.rmtree(staging, ignore_errors=True)


def restore(src, tgt, callback=None, staged=False):
    """Make the directory `tgt` contain exactly the package `src`.

    A defensive backup of `tgt` is taken only when `src` does not exist; it is
    removed again once the restore succeeds.
    """
    tgt = os.path.abspath(tgt)
    if callback:
        callback(f"~ {tgt} <- {src}")

    backup = None
    if not os.path.exists(src):
        backup = defensive_backup(tgt, callback)

    try:
        zf = zipfile.ZipFile(src)
    except FileNotFoundError:
        raise NotFoundError(f"save not found: {src}")
    except zipfile.BadZipFile as e:
        if callback:
            callback(f"unable to open zip: {e}")
        raise ValidationError(f"not a valid save package: {src}")

    with zf:
        _check_entries(zf, os.path.dirname(tgt), tgt)
        if staged:
            _replace_staged(zf, tgt, callback)
        else:
            _replace(zf, tgt, callback)

    if backup:
        try:
            os.remove(backup)
        except OSError as e:
            if callback:
                callback(f"unable to cleanup: {e}")
