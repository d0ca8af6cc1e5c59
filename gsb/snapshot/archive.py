"""Zip packages of a directory tree.

A package records the tree relative to the *parent* of the source directory,
so the first entry is always ``<basename>/``. Restore relies on this to root
extraction at the parent of the live directory.
"""

import os
import re
import shutil
import zipfile
from datetime import datetime, timezone

from gsb.errors import ConflictError, NotFoundError

SNAPSHOT_FORMAT = "%Y%m%d%H%M%S"
SNAPSHOT_SUFFIX = ".zip"

# ASCII digits only: lexical order must stay chronological order.
_SNAPSHOT_RE = re.compile(r"^[0-9]{14}\.zip$")


def snapshot_name(now=None):
    """Snapshot file name for `now` (UTC, second precision)."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(SNAPSHOT_FORMAT) + SNAPSHOT_SUFFIX


def parse_snapshot_name(name):
    """Return the UTC creation time encoded in `name`, or None if it isn't a snapshot."""
    if not _SNAPSHOT_RE.match(name):
        return None
    try:
        parsed = datetime.strptime(name[: -len(SNAPSHOT_SUFFIX)], SNAPSHOT_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def entry_name(path, root, sep=os.sep, is_dir=False):
    """Package entry name for `path`: relative to `root`, always `/`-separated."""
    rel = os.path.relpath(path, root)
    if sep != "/":
        rel = rel.replace(sep, "/")
    if is_dir and not rel.endswith("/"):
        rel += "/"
    return rel


def _raise(err):
    raise err


def _walk(src):
    """Yield (path, is_dir) for `src` and everything under it.

    Symlinked directories are yielded as files so that, like any other
    unreadable file, they fail the archive instead of being skipped.
    """
    for dirpath, dirnames, filenames in os.walk(src, onerror=_raise):
        links = [d for d in dirnames if os.path.islink(os.path.join(dirpath, d))]
        dirnames[:] = sorted(d for d in dirnames if d not in links)
        yield dirpath, True
        for name in sorted(filenames + links):
            yield os.path.join(dirpath, name), False


def _zip_info(name, st):
    info = zipfile.ZipInfo(name, date_time=_date_time(st.st_mtime))
    info.external_attr = (st.st_mode & 0xFFFF) << 16
    if name.endswith("/"):
        info.external_attr |= 0x10  # MS-DOS directory flag
        info.compress_type = zipfile.ZIP_STORED
    else:
        info.compress_type = zipfile.ZIP_DEFLATED
        info.file_size = st.st_size
    return info


def _date_time(mtime):
    dt = datetime.fromtimestamp(mtime)
    # Zip timestamps cannot predate 1980.
    if dt.year < 1980:
        return (1980, 1, 1, 0, 0, 0)
    return dt.timetuple()[:6]


def archive_into(src, fp, callback=None, sep=os.sep):
    """Write a package of `src` into the open binary file `fp`."""
    root = os.path.dirname(os.path.abspath(src))
    with zipfile.ZipFile(fp, "w") as zf:
        for path, is_dir in _walk(src):
            if callback:
                callback(f"> {path}")
            st = os.stat(path)
            info = _zip_info(entry_name(path, root, sep=sep, is_dir=is_dir), st)
            if is_dir:
                zf.writestr(info, b"")
                continue
            with open(path, "rb") as f, zf.open(info, "w") as out:
                shutil.copyfileobj(f, out)


def archive(src, dest, callback=None, sep=os.sep):
    """Package the directory `src` into a new zip file at `dest`.

    `dest` is created exclusively; if the walk fails part way the partial
    package is left where it is.
    """
    if callback:
        callback(f"~ {src} -> {dest}")
    if not os.path.isdir(src):
        raise NotFoundError(f"source directory not found: {src}")
    try:
        fp = open(dest, "xb")
    except FileExistsError:
        raise ConflictError(f"{dest} already exists")
    with fp:
        archive_into(src, fp, callback, sep)
