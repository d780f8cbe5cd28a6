# catalog_bot/workflows/router.py

from __future__ import annotations

from typing import Iterable

from ..config import BotSettings, logger
from ..errors import CatalogBotError, GENERIC_FAILURE_MESSAGE
from ..services.ingestion import IngestionPipeline
from ..services.repository import CatalogRepository
from ..services.transport import TelegramTransport
from ..ui import messages
from .engine import FlowContext, FlowEngine, FlowTable, InboundEvent, StepResult
from .session import ConversationState, ConversationStore


class ConversationRouter:
    """
    Routes operator events to their single active flow.

    Every read-modify-write of a user's state happens under that user's lock.
    `cancel` is the exception: it pops the state straight away and marks it
    cancelled, and a dispatch still running for that state compensates when it
    unwinds.
    """

    def __init__(
        self,
        engine: FlowEngine,
        store: ConversationStore,
        *,
        repository: CatalogRepository,
        transport: TelegramTransport,
        pipeline: IngestionPipeline,
        settings: BotSettings,
    ):
        self.engine = engine
        self.store = store
        self.repository = repository
        self.transport = transport
        self.pipeline = pipeline
        self.settings = settings

    def _context(self, state: ConversationState) -> FlowContext:
        return FlowContext(
            repository=self.repository,
            transport=self.transport,
            pipeline=self.pipeline,
            settings=self.settings,
            user_id=state.user_id,
            chat_id=state.chat_id,
            should_continue=lambda: not state.cancelled,
        )

    def has_active_flow(self, user_id: int) -> bool:
        return user_id in self.store

    async def start(self, user_id: int, chat_id: int, command: str) -> bool:
        """Starts the flow bound to `command` unless the user already has one."""
        table = self.engine.table_for_command(command)
        if table is None:
            raise ValueError(f"No flow is bound to command '{command}'.")

        async with self.store.locked(user_id):
            if self.store.get(user_id) is not None:
                logger.info(f"User {user_id} tried /{table.command} with a flow in progress.")
                await self.transport.send_text(chat_id, messages.OPERATION_IN_PROGRESS)
                return False

            state = ConversationState(
                flow=table.name, step=table.first_step.name, user_id=user_id, chat_id=chat_id
            )
            self.store.put(state)
            logger.info(f"User {user_id} started flow '{table.name}'.")
            ctx = self._context(state)
            try:
                await self.engine.prompt(ctx, state)
            except Exception as e:
                await self._fail(state, e)
            return True

    async def dispatch(self, user_id: int, event: InboundEvent) -> bool:
        """
        Feeds one event to the user's active flow. Returns False when the user
        has no flow, so the caller can treat the event as unrelated.
        """
        async with self.store.locked(user_id):
            state = self.store.get(user_id)
            if state is None:
                return False

            ctx = self._context(state)
            try:
                result = await self.engine.advance(ctx, state, event)
            except Exception as e:
                await self._fail(state, e)
                return True

            if state.cancelled:
                await self._compensate(state)
            elif result in (StepResult.COMMITTED, StepResult.ABORTED):
                self.store.discard(state)
                await self._compensate(state)
            return True

    async def cancel(self, user_id: int) -> bool:
        """Destroys the user's flow whatever step it is at."""
        state = self.store.pop(user_id)
        if state is None:
            return False
        state.cancelled = True
        logger.info(f"User {user_id} cancelled flow '{state.flow}' at step '{state.step}'.")
        if not self.store.is_locked(user_id):
            await self._compensate(state)
        return True

    async def cancel_all(self) -> None:
        for state in self.store.active_states():
            await self.cancel(state.user_id)

    async def _compensate(self, state: ConversationState) -> None:
        """Deletes records created by a flow that did not reach completion."""
        for entity in reversed(state.created):
            try:
                if entity.kind == "series":
                    await self.repository.delete_series(entity.series_id)
                elif entity.season_number is not None:
                    await self.repository.delete_season(entity.series_id, entity.season_number)
                logger.info(
                    f"[COMPENSATE] Removed {entity.kind} {entity.series_id}"
                    f"{'' if entity.season_number is None else f' S{entity.season_number}'}."
                )
            except Exception as e:
                logger.error(f"[COMPENSATE] Could not remove {entity}: {e}", exc_info=e)
        state.created.clear()

    def _describe(self, state: ConversationState) -> FlowTable | None:
        try:
            return self.engine.table(state.flow)
        except CatalogBotError:
            return None

    async def _fail(self, state: ConversationState, error: Exception) -> None:
        self.store.discard(state)
        if isinstance(error, CatalogBotError):
            logger.warning(
                f"Flow '{state.flow}' for user {state.user_id} ended at step "
                f"'{state.step}': {error.user_message}"
            )
            user_message = error.user_message
        else:
            logger.error(
                f"Flow '{state.flow}' for user {state.user_id} crashed at step '{state.step}'.",
                exc_info=error,
            )
            user_message = GENERIC_FAILURE_MESSAGE
        await self._compensate(state)

        if state.cancelled:
            return
        table = self._describe(state)
        text = messages.failure_message(
            user_message,
            table.label if table else "Operation",
            table.command if table else "help",
        )
        try:
            await self.transport.send_text(state.chat_id, text)
        except CatalogBotError as e:
            logger.error(f"Failed to send the failure message to {state.chat_id}: {e}")

    @property
    def commands(self) -> Iterable[str]:
        return [table.command for table in self.engine.tables]
