# catalog_bot/workflows/engine.py

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Literal, Sequence, Union

from telegram import Message
from telegram.constants import ParseMode

from ..config import BotSettings, logger
from ..errors import CatalogBotError, UnexpectedState, ValidationError
from ..models import FileRef
from ..services.ingestion import IngestionPipeline
from ..services.repository import CatalogRepository
from ..services.transport import TelegramTransport
from .session import ConversationState

COMMIT = "__commit__"
ABORT = "__abort__"

CHOICE_PREFIX = "flow:"

EventKind = Literal["text", "file", "choice"]
TEXT_INPUT = frozenset({"text", "choice"})
FILE_INPUT = frozenset({"file"})
ANY_INPUT = frozenset({"text", "file", "choice"})


class StepResult(str, Enum):
    """What a single inbound event did to the flow."""

    ADVANCED = "advanced"
    REPROMPTED = "reprompted"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class InboundEvent:
    kind: EventKind
    text: str = ""
    file: FileRef | None = None

    @classmethod
    def from_text(cls, text: str) -> "InboundEvent":
        return cls("text", text=text)

    @classmethod
    def from_file(cls, file: FileRef) -> "InboundEvent":
        return cls("file", text=file.file_name, file=file)

    @classmethod
    def from_choice(cls, value: str) -> "InboundEvent":
        return cls("choice", text=value)


@dataclass
class FlowContext:
    """Services and addressing available to step functions."""

    repository: CatalogRepository
    transport: TelegramTransport
    pipeline: IngestionPipeline
    settings: BotSettings
    user_id: int
    chat_id: int
    should_continue: Callable[[], bool] = field(default=lambda: True)

    async def reply(self, text: str, **kwargs: Any) -> Message:
        kwargs.setdefault("parse_mode", ParseMode.HTML)
        return await self.transport.send_text(self.chat_id, text, **kwargs)


MaybeAwaitable = Union[Any, Awaitable[Any]]
PromptSource = Union[str, Callable[[FlowContext, ConversationState], MaybeAwaitable]]
OptionsSource = Union[
    Sequence[tuple[str, str]], Callable[[ConversationState], Sequence[tuple[str, str]]], None
]
Validator = Callable[[FlowContext, ConversationState, InboundEvent], MaybeAwaitable]
Transition = Callable[[FlowContext, ConversationState, Any], MaybeAwaitable]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(frozen=True)
class Step:
    """
    One state of a flow.

    `validate` turns the inbound event into a value or raises `ValidationError`;
    it must not touch the state. `transition` stores the value and returns the
    name of the next step, `COMMIT` or `ABORT`. Entering a step marked
    `commit_point` keeps every entity created so far.
    """

    name: str
    prompt: PromptSource
    validate: Validator
    transition: Transition
    accepts: frozenset[str] = TEXT_INPUT
    options: OptionsSource = None
    commit_point: bool = False
    wrong_kind_message: str = "❌ Please reply with text."


@dataclass(frozen=True)
class FlowTable:
    name: str
    command: str
    label: str
    steps: tuple[Step, ...]
    commit: Callable[[FlowContext, ConversationState], Awaitable[None]]

    def __post_init__(self) -> None:
        names = [step.name for step in self.steps]
        if not names:
            raise ValueError(f"Flow '{self.name}' has no steps.")
        if len(set(names)) != len(names):
            raise ValueError(f"Flow '{self.name}' has duplicate step names.")

    @property
    def first_step(self) -> Step:
        return self.steps[0]

    def step(self, name: str) -> Step:
        for step in self.steps:
            if step.name == name:
                return step
        raise UnexpectedState(f"❌ The '{self.label}' operation reached an unknown step.")


class FlowEngine:
    """Interprets flow tables one inbound event at a time."""

    def __init__(self, tables: Iterable[FlowTable]):
        self._tables: dict[str, FlowTable] = {}
        self._commands: dict[str, FlowTable] = {}
        for table in tables:
            self._tables[table.name] = table
            self._commands[table.command.lower()] = table

    @property
    def tables(self) -> list[FlowTable]:
        return list(self._tables.values())

    def table(self, name: str) -> FlowTable:
        try:
            return self._tables[name]
        except KeyError:
            raise UnexpectedState(f"❌ Unknown operation '{name}'.")

    def table_for_command(self, command: str) -> FlowTable | None:
        return self._commands.get(command.lstrip("/").lower())

    async def prompt(self, ctx: FlowContext, state: ConversationState) -> None:
        step = self.table(state.flow).step(state.step)
        prompt = step.prompt
        text = prompt if isinstance(prompt, str) else await _resolve(prompt(ctx, state))
        options = step.options(state) if callable(step.options) else step.options
        if options:
            await ctx.transport.present_choice(
                ctx.chat_id,
                text,
                [(label, f"{CHOICE_PREFIX}{value}") for label, value in options],
                with_cancel=True,
                parse_mode=ParseMode.HTML,
            )
        else:
            await ctx.reply(text)

    async def advance(
        self, ctx: FlowContext, state: ConversationState, event: InboundEvent
    ) -> StepResult:
        table = self.table(state.flow)
        step = table.step(state.step)

        try:
            if event.kind not in step.accepts:
                raise ValidationError(step.wrong_kind_message)
            value = await _resolve(step.validate(ctx, state, event))
            next_step = await _resolve(step.transition(ctx, state, value))
        except ValidationError as e:
            logger.info(f"[FLOW] {state.flow}/{step.name} rejected input from user {state.user_id}.")
            try:
                await ctx.reply(e.user_message)
                if step.options:
                    await self.prompt(ctx, state)
            except CatalogBotError as send_error:
                # The step stays put; the user can answer the earlier prompt again
                logger.warning(
                    f"[FLOW] Could not re-prompt {state.flow}/{step.name} for user "
                    f"{state.user_id}: {send_error}"
                )
            return StepResult.REPROMPTED

        if state.cancelled:
            return StepResult.ABORTED

        if next_step == COMMIT:
            await table.commit(ctx, state)
            if state.cancelled:
                return StepResult.ABORTED
            state.mark_commit_point()
            logger.info(f"[FLOW] {state.flow} committed for user {state.user_id}.")
            return StepResult.COMMITTED

        if next_step == ABORT:
            logger.info(f"[FLOW] {state.flow} aborted by user {state.user_id}.")
            return StepResult.ABORTED

        target = table.step(next_step)
        if target.name == state.step:
            return StepResult.ADVANCED

        state.step = target.name
        if target.commit_point:
            state.mark_commit_point()
        await self.prompt(ctx, state)
        return StepResult.ADVANCED
