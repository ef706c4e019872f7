from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable

from src.domain.errors import RenderCancelledError, RenderError, UnknownIdentity
from src.domain.models import RenderState, RenderStatus
from src.domain.ports import Rasterizer, RenderTask
from src.services.page_registry import PageRegistry

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 0.4


@dataclass
class _InFlight:
    generation: int
    render_task: RenderTask
    task: asyncio.Task[None]


class RenderScheduler:
    """Lazily renders page thumbnails, one request in flight per identity.

    Every request draws a new generation from a counter that only grows, and
    a finished render is applied only while its generation is still the
    identity's current one. A stale render that could not be stopped in time
    is therefore dropped instead of overwriting a newer thumbnail.
    """

    def __init__(
        self,
        registry: PageRegistry,
        rasterizer: Rasterizer,
        default_scale: float = DEFAULT_SCALE,
    ) -> None:
        self.registry = registry
        self.rasterizer = rasterizer
        self.default_scale = default_scale
        self._proxies: dict[str, Any] = {}
        self._states: dict[str, RenderState] = {}
        self._in_flight: dict[str, _InFlight] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._generations = itertools.count(1)

    # Document proxies

    def attach_document(self, document_id: str, proxy: Any) -> None:
        previous = self._proxies.get(document_id)
        if previous is not None and previous is not proxy:
            self.detach_document(document_id)
        self._proxies[document_id] = proxy

    def detach_document(self, document_id: str) -> None:
        for identity in [
            identity
            for identity, state in self._states.items()
            if state.document_id == document_id
        ]:
            self.dispose(identity)
        proxy = self._proxies.pop(document_id, None)
        if proxy is not None:
            self.rasterizer.close(proxy)

    def attached_documents(self) -> list[str]:
        return list(self._proxies)

    # Rendering

    def state(self, identity: str) -> RenderState | None:
        return self._states.get(identity)

    def thumbnail(self, identity: str) -> bytes | None:
        state = self._states.get(identity)
        if state is None or state.status != RenderStatus.RENDERED:
            return None
        return state.surface

    def _resolve_scale(self, scale: float | None) -> float:
        return self.default_scale if scale is None else scale

    def request_render(self, identity: str, scale: float | None = None) -> RenderState:
        scale = self._resolve_scale(scale)
        document_id, page_index = self.registry.resolve(identity)
        proxy = self._proxies.get(document_id)
        if proxy is None:
            raise UnknownIdentity(f"No rasterizer document attached for {document_id}")

        current = self._states.get(identity)
        if (
            current is not None
            and current.status == RenderStatus.RENDERED
            and current.scale == scale
        ):
            return current

        self._cancel_in_flight(identity)
        loop = asyncio.get_running_loop()
        state = RenderState(
            identity=identity,
            document_id=document_id,
            status=RenderStatus.PENDING,
            generation=next(self._generations),
            scale=scale,
        )
        try:
            page = self.rasterizer.get_page(proxy, page_index)
            render_task = self.rasterizer.render(page, scale)
        except Exception as exc:
            logger.exception("Page render error for %s", identity)
            state = replace(state, status=RenderStatus.FAILED, error=str(exc) or repr(exc))
            self._states[identity] = state
            return state

        self._states[identity] = state
        task = loop.create_task(self._run(identity, state.generation, render_task))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._in_flight[identity] = _InFlight(state.generation, render_task, task)
        return state

    async def _run(self, identity: str, generation: int, render_task: RenderTask) -> None:
        try:
            surface = await render_task
        except RenderCancelledError:
            logger.debug("Render of %s (generation %d) cancelled", identity, generation)
            self._settle(identity, generation, RenderStatus.CANCELLED)
            return
        except Exception as exc:
            if self._is_current(identity, generation):
                logger.exception("Page render error for %s", identity)
            self._settle(identity, generation, RenderStatus.FAILED, error=str(exc) or repr(exc))
            return
        self._settle(identity, generation, RenderStatus.RENDERED, surface=surface)

    def _is_current(self, identity: str, generation: int) -> bool:
        state = self._states.get(identity)
        return state is not None and state.generation == generation

    def _settle(
        self,
        identity: str,
        generation: int,
        status: RenderStatus,
        surface: bytes | None = None,
        error: str | None = None,
    ) -> None:
        in_flight = self._in_flight.get(identity)
        if in_flight is not None and in_flight.generation == generation:
            del self._in_flight[identity]

        if not self._is_current(identity, generation):
            logger.debug("Discarding stale render of %s (generation %d)", identity, generation)
            return
        self._states[identity] = replace(
            self._states[identity], status=status, surface=surface, error=error
        )

    def _cancel_in_flight(self, identity: str) -> None:
        in_flight = self._in_flight.pop(identity, None)
        if in_flight is None:
            return
        try:
            in_flight.render_task.cancel()
        except Exception:
            logger.debug("Cancelling render of %s failed", identity, exc_info=True)

    def dispose(self, identity: str) -> None:
        self._cancel_in_flight(identity)
        self._states.pop(identity, None)

    def sync_visible(
        self, identities: Iterable[str], scale: float | None = None
    ) -> dict[str, RenderState]:
        """Render what is in view and release what has left it."""
        visible = list(identities)
        visible_set = set(visible)
        for identity in [identity for identity in self._states if identity not in visible_set]:
            self.dispose(identity)
        states: dict[str, RenderState] = {}
        for identity in visible:
            current = self._current_for(identity, scale)
            states[identity] = current or self.request_render(identity, scale)
        return states

    def _current_for(self, identity: str, scale: float | None) -> RenderState | None:
        """Return the live state if it already covers ``scale``."""
        state = self._states.get(identity)
        if state is None or state.scale != self._resolve_scale(scale):
            return None
        if state.status in (RenderStatus.PENDING, RenderStatus.RENDERED):
            return state
        return None

    async def wait_idle(self) -> None:
        """Wait for every started render, superseded ones included."""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    async def render(self, identity: str, scale: float | None = None) -> bytes:
        """Request a render and wait until the identity's latest one settles."""
        state = self._current_for(identity, scale) or self.request_render(identity, scale)
        while state.status == RenderStatus.PENDING:
            in_flight = self._in_flight.get(identity)
            if in_flight is None:
                break
            await asyncio.wait([in_flight.task])
            current = self._states.get(identity)
            if current is None:
                raise RenderCancelledError(f"Render of {identity} was disposed")
            state = current

        if state.status == RenderStatus.RENDERED and state.surface is not None:
            return state.surface
        if state.status == RenderStatus.FAILED:
            raise RenderError(identity, state.error or "unknown error")
        raise RenderCancelledError(f"Render of {identity} was cancelled")

    def close(self) -> None:
        for identity in list(self._states):
            self.dispose(identity)
        for document_id in list(self._proxies):
            self.detach_document(document_id)
