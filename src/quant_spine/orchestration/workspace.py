"""Run-scoped workspace directories.

Each run gets an exclusively owned directory under the workspace root.
The context manager removes it on every exit path, including exceptions
raised inside the ``with`` block, which then propagate unchanged.
"""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from quant_spine.core.errors import WorkspaceError
from quant_spine.core.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def allocate_workspace(root: Path | str, prefix: str = "workflow_") -> Iterator[Path]:
    """Create a unique directory under ``root`` and remove it afterwards.

    Raises:
        WorkspaceError: The directory could not be created.
    """
    root = Path(root)
    try:
        root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=root))
    except OSError as e:
        raise WorkspaceError(f"Cannot create workspace under {root}", cause=e).with_context(
            workspace=str(root)
        ) from e

    logger.debug("workspace.created", workspace=str(path))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.warning("workspace.cleanup_incomplete", workspace=str(path))
        else:
            logger.debug("workspace.removed", workspace=str(path))
