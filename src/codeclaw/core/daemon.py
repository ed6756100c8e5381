"""
Daemon.

The Daemon wires all CodeClaw components together for one process lifetime:
  - Creates the registries (correlation store, trust, tasks, sessions)
  - Starts the messaging channel
  - Builds the permission bridge, task runner, and message router
  - Runs the inbound message consumer
  - Drains everything on shutdown (SIGTERM/SIGINT or fatal channel auth loss)

Every inbound message is handled in its own asyncio task, so a long-running
agent task never blocks replies to its permission prompts.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from codeclaw.channels.base import BaseChannel, InboundMessage
from codeclaw.core.approval.store import CorrelationStore
from codeclaw.core.bridge import PermissionBridge
from codeclaw.core.browser import FileBrowser
from codeclaw.core.config import CodeClawConfig
from codeclaw.core.engine import TaskEngine
from codeclaw.core.exceptions import ChannelAuthError, SessionError
from codeclaw.core.router import ChatState, MessageRouter
from codeclaw.core.runner import TaskRunner
from codeclaw.core.sessions import SessionRegistry, load_sessions, save_sessions
from codeclaw.core.tasks import TaskRegistry
from codeclaw.core.trust import TrustCache

logger = logging.getLogger(__name__)

_HANDLER_DRAIN_SECONDS = 10.0


class Daemon:
    """
    Top-level orchestrator.

    Lifecycle::

        daemon = Daemon(config, channel, engine)
        await daemon.start()    # blocks until shutdown
        await daemon.stop()     # from a signal handler or another task
    """

    def __init__(self, config: CodeClawConfig, channel: BaseChannel, engine: TaskEngine) -> None:
        self._config = config
        self._channel = channel
        self._engine = engine

        self.store = CorrelationStore()
        self.trust = TrustCache()
        self.tasks = TaskRegistry()
        self.sessions = SessionRegistry()
        self.browser = FileBrowser()

        self.bridge = PermissionBridge(
            send=channel.send,
            store=self.store,
            trust=self.trust,
            timeout_seconds=config.approvals.timeout_seconds,
        )
        self.runner = TaskRunner(
            engine=engine,
            bridge=self.bridge,
            tasks=self.tasks,
            sessions=self.sessions,
            trust=self.trust,
            send=channel.send,
        )
        self.router = MessageRouter(
            channel=channel,
            bridge=self.bridge,
            runner=self.runner,
            state=ChatState(default_working_dir=config.agent.resolved_working_dir),
            browser=self.browser,
        )

        self._handlers: set[asyncio.Task[None]] = set()
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the channel and process messages until shutdown."""
        logger.info("CodeClaw starting (cwd=%s)", self._config.agent.resolved_working_dir)
        self._restore_sessions()
        try:
            await self._channel.start()
            self._setup_signal_handlers()
            logger.info("CodeClaw ready. Send a message to start.")
            await self._run_loop()
        finally:
            await self._cleanup()
            logger.info("CodeClaw stopped")

    async def stop(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def _run_loop(self) -> None:
        consumer = asyncio.create_task(self._message_consumer(), name="message_consumer")
        stopper = asyncio.create_task(self._shutdown_event.wait(), name="shutdown_wait")
        done, _ = await asyncio.wait({consumer, stopper}, return_when=asyncio.FIRST_COMPLETED)

        for t in (consumer, stopper):
            t.cancel()
        await asyncio.gather(consumer, stopper, return_exceptions=True)

        if consumer in done and not consumer.cancelled():
            exc = consumer.exception()
            if isinstance(exc, ChannelAuthError):
                logger.critical("Channel authentication lost: %s", exc)
                raise exc
            if exc is not None:
                logger.error("Message consumer failed: %s", exc)

    async def _message_consumer(self) -> None:
        async for message in self._channel.receive():
            self.dispatch(message)

    def dispatch(self, message: InboundMessage) -> asyncio.Task[None]:
        task = asyncio.create_task(self._handle(message), name=f"msg_{message.conversation_id}")
        self._handlers.add(task)
        task.add_done_callback(self._handlers.discard)
        return task

    async def _handle(self, message: InboundMessage) -> None:
        try:
            await self.router.handle(message)
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            logger.exception("Message handler error in %s", message.conversation_id)

    # ------------------------------------------------------------------
    # Signal handling
    # ------------------------------------------------------------------

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._shutdown_event.set)
            except (NotImplementedError, RuntimeError):
                # Windows or not the main thread
                pass

    # ------------------------------------------------------------------
    # Session persistence
    # ------------------------------------------------------------------

    def _restore_sessions(self) -> None:
        if not self._config.sessions.persist:
            return
        try:
            load_sessions(self.sessions, self._config.state_path)
        except SessionError as exc:
            logger.warning("Starting without saved sessions: %s", exc)

    def _save_sessions(self) -> None:
        if not self._config.sessions.persist:
            return
        try:
            save_sessions(self.sessions, self._config.state_path)
        except SessionError as exc:
            logger.error("%s", exc)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def _cleanup(self) -> None:
        logger.info("Shutting down...")
        self.runner.shutdown()
        if self._handlers:
            _, still_running = await asyncio.wait(
                set(self._handlers), timeout=_HANDLER_DRAIN_SECONDS
            )
            for t in still_running:
                t.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
        self._save_sessions()
        await self._channel.close()
