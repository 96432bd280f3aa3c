"""
Rebuild coordination for watch mode.

Change events can arrive faster than the engine finishes rebuilding, so
several rebuild requests may be in flight at once. Every request is appended
to the context's pending queue. Each build-end notification from the engine
settles exactly one request, the oldest unsettled one, and only the request
that is last in the queue at that moment gets the real outcome. Every other
request is settled with ``SupersededRequest``, which callers ignore.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional

from rebundle.build.bridge import VirtualFileBridge
from rebundle.build.config import BundleConfig
from rebundle.build.context import BuildContext, PendingRequest
from rebundle.build.engine import BundlingEngine, OutputManifest
from rebundle.build.errors import BuildFailure, SupersededRequest

_log = logging.getLogger(__name__)


class RebuildCoordinator:
    """Owns the engine's watch session and settles pending rebuild requests."""

    def __init__(
        self,
        context: BuildContext,
        engine: BundlingEngine,
        config: BundleConfig,
        bridge: VirtualFileBridge,
    ):
        self.context = context
        self.engine = engine
        self.config = config
        self.bridge = bridge
        self.started = False
        self._ordinal = 0
        self._engine_calls: set[asyncio.Task] = set()

    # =========================================================================
    # Triggering
    # =========================================================================

    def submit(self) -> PendingRequest:
        """Queue a rebuild request and kick the engine.

        The first call starts the engine's watch session (which performs the
        initial build); later calls ask the running session to rebuild.
        """
        loop = asyncio.get_running_loop()
        self._ordinal += 1
        request = PendingRequest(ordinal=self._ordinal, future=loop.create_future())
        self.context.pending.append(request)

        if not self.started:
            _log.debug("coordinator: starting watch session (request #%d)", request.ordinal)
            self.started = True
            self.bridge.attach(self)
            self._call_engine(self.engine.start_watch(self.config, self.bridge), starting=True)
        else:
            _log.debug("coordinator: rebuild requested (#%d, %d pending)",
                       request.ordinal, len(self.context.pending))
            self._call_engine(self.engine.rebuild(), starting=False)

        return request

    def trigger_rebuild(self) -> asyncio.Future:
        """Queue a rebuild request; returns the future it will be settled through."""
        return self.submit().future

    def _call_engine(self, call: Awaitable[None], starting: bool) -> None:
        task = asyncio.ensure_future(call)
        self._engine_calls.add(task)
        task.add_done_callback(lambda t: self._engine_call_done(t, starting))

    def _engine_call_done(self, task: asyncio.Task, starting: bool) -> None:
        self._engine_calls.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return

        # The engine died before it could report through the bridge
        if starting:
            self.started = False
        failure = BuildFailure("Bundling engine error", [str(exc) or type(exc).__name__])
        failure.__cause__ = exc
        self.notify_failure(failure)

    # =========================================================================
    # Notifications
    # =========================================================================

    def _next_unsettled(self) -> Optional[PendingRequest]:
        for request in self.context.pending:
            if not request.resolved:
                return request
        return None

    def _is_latest(self, request: PendingRequest) -> bool:
        pending = self.context.pending
        return bool(pending) and pending[-1] is request

    def notify_success(self, manifest: OutputManifest) -> None:
        request = self._next_unsettled()
        if request is None:
            _log.debug("coordinator: success with no pending request, dropped")
            return

        if self._is_latest(request):
            request.generation = self.context.next_generation()
            _log.debug("coordinator: request #%d succeeded (generation %d)",
                       request.ordinal, request.generation)
            request.future.set_result(manifest)
            self.context.pending.clear()
            return

        _log.debug("coordinator: request #%d superseded (success)", request.ordinal)
        request.future.set_exception(SupersededRequest(request.ordinal))

    def notify_failure(self, error: BaseException) -> None:
        request = self._next_unsettled()
        if request is None:
            _log.debug("coordinator: failure with no pending request, dropped: %s", error)
            return

        if self._is_latest(request):
            request.generation = self.context.next_generation()
            _log.debug("coordinator: request #%d failed (generation %d)",
                       request.ordinal, request.generation)
            if not isinstance(error, BuildFailure):
                failure = BuildFailure("Bundle failed", [str(error)])
                failure.__cause__ = error
                error = failure
            request.future.set_exception(error)
            return

        _log.debug("coordinator: request #%d superseded (failure)", request.ordinal)
        request.future.set_exception(SupersededRequest(request.ordinal))

    # =========================================================================
    # Teardown
    # =========================================================================

    async def stop(self) -> None:
        """Settle outstanding requests and dispose of the watch session."""
        for request in self.context.pending:
            if not request.resolved:
                request.future.set_exception(SupersededRequest(request.ordinal))
        self.context.pending.clear()
        self.bridge.detach()

        for task in list(self._engine_calls):
            task.cancel()
        if self._engine_calls:
            await asyncio.gather(*self._engine_calls, return_exceptions=True)

        if self.started:
            self.started = False
            await self.engine.dispose()
