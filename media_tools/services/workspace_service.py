from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from media_tools.config import Settings
from media_tools.errors import ResourceError
from media_tools.models.job_contract import Workspace
from media_tools.utils.filesystem import ensure_dir, remove_tree

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "job"


class WorkspaceService:
    """Allocates and reclaims per-request scratch directories under the temp root."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def root(self) -> Path:
        return self.settings.temp_root

    def create(self) -> Workspace:
        path = self.root / f"{WORKSPACE_PREFIX}-{time.time_ns()}-{uuid.uuid4().hex}"
        try:
            ensure_dir(self.root)
            path.mkdir()
        except OSError as exc:
            raise ResourceError(f"Could not allocate workspace: {exc.strerror or exc}") from exc
        logger.debug("workspace.created %s", path.name)
        return Workspace(path=path)

    def destroy(self, workspace: Workspace) -> None:
        if workspace.destroyed:
            return
        pending = workspace.pending_writers()
        if pending:
            logger.info("workspace.destroy_deferred %s writers=%d", workspace.name, len(pending))
            asyncio.gather(*pending, return_exceptions=True).add_done_callback(
                lambda _: self.destroy(workspace)
            )
            return
        workspace.destroyed = True
        try:
            remove_tree(workspace.path)
        except OSError:
            logger.warning("workspace.destroy_failed %s", workspace.name, exc_info=True)
            return
        logger.debug("workspace.destroyed %s", workspace.name)

    @contextmanager
    def scoped(self) -> Iterator[Workspace]:
        """Yield a fresh workspace and destroy it on every exit path.

        When the body calls ``workspace.transfer()`` and exits normally, the
        new owner is responsible for calling :meth:`destroy`.
        """
        workspace = self.create()
        try:
            yield workspace
        except BaseException:
            self.destroy(workspace)
            raise
        if not workspace.transferred:
            self.destroy(workspace)

    def sweep(self, max_age_seconds: float) -> int:
        """Remove workspaces left behind by a previous process. Returns the count removed."""
        if not self.root.is_dir():
            return 0
        cutoff = time.time() - max_age_seconds
        removed = 0
        for candidate in self.root.glob(f"{WORKSPACE_PREFIX}-*"):
            try:
                if candidate.stat().st_mtime > cutoff:
                    continue
                remove_tree(candidate)
            except OSError:
                logger.warning("workspace.sweep_failed %s", candidate.name, exc_info=True)
                continue
            removed += 1
        if removed:
            logger.info("workspace.swept count=%d", removed)
        return removed
