"""Ephemeral working directories for clones and scanner output."""

import asyncio
import logging
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "repo-scan-"


@asynccontextmanager
async def scan_workspace(
    prefix: str = WORKSPACE_PREFIX,
    root: Optional[str] = None,
) -> AsyncIterator[Path]:
    """Yield a fresh temporary directory and remove it on every exit path.

    Removal runs on success, on exceptions raised inside the block and on
    task cancellation, in a worker thread off the event loop.
    """
    if root:
        Path(root).mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=root))
    logger.debug("Workspace created: %s", path)
    try:
        yield path
    finally:
        await asyncio.to_thread(shutil.rmtree, path, ignore_errors=True)
        logger.debug("Workspace removed: %s", path)
