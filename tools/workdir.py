"""Launch-private working copies of the distribution's config files.

create_working_copy copies every auxiliary file into a fresh temp directory,
keeping paths relative to the distribution home, so customizers never touch
the shared extracted distribution.
remove_working_copy deletes such a directory.
"""
from pathlib import Path
import shutil
import tempfile
from typing import Optional

from loguru import logger

from config.schema import ExtractedFileSet

WORKDIR_PREFIX = "embedded-cassandra-"


def create_working_copy(file_set: ExtractedFileSet, root: Optional[str] = None) -> ExtractedFileSet:
    """Copy ``file_set.files`` into a new temp dir and return a file set pointing at the copies.

    The executable is not copied.
    """
    if root is not None:
        Path(root).mkdir(parents=True, exist_ok=True)
    workdir = Path(tempfile.mkdtemp(prefix=WORKDIR_PREFIX, dir=root))

    copies = []
    for src in file_set.files:
        try:
            relative = src.relative_to(file_set.base_dir)
        except ValueError:
            relative = Path(src.name)
        dst = workdir / relative
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)
        copies.append(dst)

    logger.debug("Created working copy", workdir=str(workdir), files=len(copies))
    return ExtractedFileSet(executable=file_set.executable, base_dir=workdir, files=tuple(copies))


def remove_working_copy(path: Path) -> None:
    path = Path(path)
    if path.exists():
        shutil.rmtree(path)
        logger.debug("Removed working copy", workdir=str(path))
