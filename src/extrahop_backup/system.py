import logging
import shutil
import subprocess
import sys
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class SystemStrategy:
    """Base class defining the interface for platform-specific file handling."""

    def force_remove(self, path: Path) -> None:
        """Last-resort removal of a directory tree after `shutil.rmtree` failed.

        The generic implementation has no OS-level fallback and only logs.

        Args:
            path (Path): The directory to remove.
        """
        logger.warning(f"Cleaning up. Leaving {path} behind.")


class WindowsStrategy(SystemStrategy):
    """System strategy implementation for Windows.

    Git for Windows leaves read-only pack files in a checkout, which
    `shutil.rmtree` refuses to delete; `rmdir /S /Q` removes them.
    """

    def force_remove(self, path: Path) -> None:
        cmd = ["cmd.exe", "/C", "rmdir", "/S", "/Q", str(path)]
        logger.warning(f"Cleaning up. Invoking OS deletion: {cmd}")
        try:
            subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            logger.error(f"Cleaning up. OS deletion failed: {e}")


def get_system() -> SystemStrategy:
    """Factory function to retrieve the platform-specific system strategy.

    Returns:
        SystemStrategy: A WindowsStrategy on Windows, the base strategy elsewhere.
    """
    if sys.platform == "win32":
        return WindowsStrategy()
    return SystemStrategy()


def remove_tree(path: Path, system: SystemStrategy | None = None) -> bool:
    """Deletes a directory tree, falling back to the platform strategy.

    Args:
        path (Path): The directory to remove.
        system (SystemStrategy | None): Strategy used when `shutil.rmtree`
            fails. Defaults to `get_system()`.

    Returns:
        bool: True if the directory no longer exists.
    """
    logger.info(f"Cleaning up. Deleting {path}")
    try:
        shutil.rmtree(path)
        return True
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning(f"Cleaning up. Can't delete: {e}")
        (system or get_system()).force_remove(path)
        return not path.exists()
