"""File copies between the source directory and the working directory."""

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable

logger = logging.getLogger('mirrorsync.mirror')


def _copy_file(src: Path, dst: Path) -> bool:
    if not src.is_file():
        return False
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dst)
    return True


def copy_into_working_copy(source_dir: Path, repo_dir: Path, relative_paths: Iterable[str]) -> int:
    """
    Copy the given source files into the working directory.

    Files vanished since they were listed are skipped. Nothing is deleted.

    Returns:
        Number of files copied
    """
    count = 0
    for rel_path in relative_paths:
        if _copy_file(source_dir / rel_path, repo_dir / rel_path):
            count += 1
    logger.debug(f"Copied {count} files from {source_dir} into {repo_dir}")
    return count


def copy_from_working_copy(repo_dir: Path, source_dir: Path, exclude_dirs=(".git",)) -> int:
    """
    Copy every file of the working directory back into the source directory.

    Directories named in exclude_dirs are skipped at any depth. Nothing is deleted.

    Returns:
        Number of files copied
    """
    if not repo_dir.is_dir():
        return 0

    count = 0
    for dirpath, dirnames, filenames in os.walk(repo_dir):
        dirnames[:] = [d for d in dirnames if d not in exclude_dirs]
        rel_dir = Path(dirpath).relative_to(repo_dir)
        for name in filenames:
            if _copy_file(Path(dirpath) / name, source_dir / rel_dir / name):
                count += 1
    logger.debug(f"Copied {count} files from {repo_dir} into {source_dir}")
    return count
