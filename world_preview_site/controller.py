"""Preview dialog/session controller.

Wires gallery gestures to the generation client and the renderer dispatcher.
Each activation starts a new session with a fresh token; results that come
back for an older token are dropped so a slow response can never replace the
view of a newer one.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .generator import GenerationClient, GenerationFailed
from .page import DISABLED_HREF, DownloadLink, PointerEvent, PreviewDialog, StatusBoard
from .render import Mounted, MountHandle, RendererDispatcher
from .scene import ViewerError
from .schema import SourceItem
from .viewer import ViewerMount

logger = logging.getLogger(__name__)

STATUS_PREPARING = "Preparing preview…"
STATUS_REGENERATING = "Regenerating…"
STATUS_ERROR = "Error generating preview."


class ViewerState(str, enum.Enum):
    CLOSED = "closed"
    OPENING = "opening"
    DISPLAYING = "displaying"
    ERROR = "error"


@dataclass
class ViewerSession:
    token: int
    title: str
    item: SourceItem
    handle: Optional[MountHandle] = None
    strategy: Optional[str] = None


class PreviewController:
    def __init__(
        self,
        *,
        client: GenerationClient,
        dispatcher: RendererDispatcher,
        dialog: PreviewDialog,
        mount: ViewerMount,
        status: StatusBoard,
        download: DownloadLink,
        gallery: Sequence[SourceItem] = (),
    ):
        self.client = client
        self.dispatcher = dispatcher
        self.dialog = dialog
        self.mount = mount
        self.status = status
        self.download = download
        self.gallery = list(gallery)
        self.state = ViewerState.CLOSED
        self.session: Optional[ViewerSession] = None
        self._token = 0

    def _teardown(self) -> None:
        self.dispatcher.clear(self.mount)
        if self.session is not None and self.session.handle is not None:
            self.session.handle.dispose()

    def _begin(self, item: SourceItem, status_text: str) -> ViewerSession:
        self._token += 1
        self._teardown()
        self.session = ViewerSession(token=self._token, title=item.title, item=item)
        self.state = ViewerState.OPENING
        self.status.set_status(status_text)
        self.status.clear_log()
        return self.session

    def _is_current(self, session: ViewerSession) -> bool:
        return self.session is session and session.token == self._token

    async def open_item(self, item: SourceItem) -> ViewerState:
        """Open the dialog for ``item`` and display its generated world."""
        session = self._begin(item, STATUS_PREPARING)
        self.dialog.title = item.title
        self.download.href = DISABLED_HREF
        if not self.dialog.open:
            self.dialog.show_modal()
        return await self._run(session, force=False)

    async def regenerate(self) -> Optional[ViewerState]:
        """Regenerate the item shown under the current title, bypassing the cache."""
        if not self.dialog.open:
            return None
        title = (self.dialog.title or "").strip()
        item = next((i for i in self.gallery if i.title.strip() == title), None)
        if item is None:
            logger.debug("No gallery item titled %r to regenerate", title)
            return None
        session = self._begin(item, STATUS_REGENERATING)
        return await self._run(session, force=True)

    async def _run(self, session: ViewerSession, force: bool) -> ViewerState:
        try:
            outcome = await self.client.generate(session.item.to_request(force=force))
            if not self._is_current(session):
                logger.debug("Discarding stale generation for %r", session.title)
                return self.state
            mounted: Mounted = await self.dispatcher.mount(self.mount, outcome.result)
        except (GenerationFailed, ViewerError) as e:
            if not self._is_current(session):
                logger.debug("Discarding stale failure for %r: %s", session.title, e)
                return self.state
            logger.error("World preview failed for %r: %s", session.title, e)
            self.dispatcher.clear(self.mount)
            self.state = ViewerState.ERROR
            self.status.set_status(STATUS_ERROR)
            self.status.log(str(e) or e.__class__.__name__)
            return self.state

        if not self._is_current(session):
            mounted.handle.dispose()
            return self.state

        session.handle = mounted.handle
        session.strategy = mounted.strategy
        self.download.href = outcome.result.url or DISABLED_HREF
        self.status.set_status(mounted.status)
        if outcome.served_from_cache:
            self.status.log("Loaded from session cache.")
        self.state = ViewerState.DISPLAYING
        return self.state

    def close(self) -> None:
        self._token += 1
        self._teardown()
        self.session = None
        self.dialog.close()
        self.state = ViewerState.CLOSED

    async def handle_grid_click(self, event: PointerEvent) -> Optional[ViewerState]:
        if event.propagation_stopped or event.target is None:
            return None
        return await self.open_item(event.target)

    async def handle_explore_click(self, event: PointerEvent) -> Optional[ViewerState]:
        event.prevent_default()
        event.stop_propagation()
        if event.target is None:
            return None
        return await self.open_item(event.target)

    def handle_dialog_click(self, event: PointerEvent) -> None:
        """Close when the pointer lands outside the dialog's current rectangle."""
        if not self.dialog.bounding_rect().contains(event.client_x, event.client_y):
            self.close()
