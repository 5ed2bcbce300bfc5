"""
Write-then-rename output so a failed repair never leaves a half-written archive.
"""

import os
import shutil
import tempfile
from contextlib import contextmanager


@contextmanager
def atomic_output(path):
    """Yield a binary file that replaces path only if the block completes.

    The temporary file lives in the destination directory so the final
    os.replace() stays on one filesystem. When path already exists its
    permission bits are carried over. On any exception the temporary file
    is removed and the exception propagates.
    """
    path = os.path.abspath(path)
    directory, basename = os.path.split(path)
    tmp = tempfile.NamedTemporaryFile(
        dir=directory, prefix=f".{basename}.", suffix=".tmp", delete=False)
    try:
        with tmp:
            yield tmp
            tmp.flush()
            os.fsync(tmp.fileno())
        if os.path.exists(path):
            shutil.copymode(path, tmp.name)
        os.replace(tmp.name, path)
    except BaseException:
        if os.path.exists(tmp.name):
            os.unlink(tmp.name)
        raise
