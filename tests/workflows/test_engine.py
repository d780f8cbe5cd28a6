from unittest.mock import AsyncMock

import pytest

from catalog_bot.errors import UnexpectedState, ValidationError
from catalog_bot.models import FileRef
from catalog_bot.workflows.engine import (
    ABORT,
    COMMIT,
    FILE_INPUT,
    FlowContext,
    FlowEngine,
    FlowTable,
    InboundEvent,
    Step,
    StepResult,
)
from catalog_bot.workflows.session import ConversationState


def _validate_name(ctx, state, event):
    text = event.text.strip()
    if not text:
        raise ValidationError("❌ Name please.")
    return text


def _store_name(ctx, state, value):
    state.data["name"] = value
    state.track_series("ws_toy_2020_abc")
    return "confirm"


def _confirm(ctx, state, value):
    if value == "again":
        return "confirm"
    return COMMIT if value == "yes" else ABORT


def _toy_table(commit=None) -> FlowTable:
    return FlowTable(
        name="toy",
        command="toy",
        label="Toy",
        steps=(
            Step(name="name", prompt="Name?", validate=_validate_name, transition=_store_name),
            Step(
                name="confirm",
                prompt=lambda ctx, state: f"Keep {state.data['name']}?",
                validate=lambda ctx, state, event: event.text,
                transition=_confirm,
                options=(("Yes", "yes"), ("No", "no")),
                commit_point=True,
            ),
            Step(
                name="file",
                prompt="File?",
                validate=lambda ctx, state, event: event.file,
                transition=lambda ctx, state, value: COMMIT,
                accepts=FILE_INPUT,
                wrong_kind_message="❌ Send a file.",
            ),
        ),
        commit=commit or AsyncMock(),
    )


@pytest.fixture
def ctx(repository, transport, pipeline, settings):
    return FlowContext(
        repository=repository,
        transport=transport,
        pipeline=pipeline,
        settings=settings,
        user_id=123,
        chat_id=456,
    )


def _state(step: str = "name") -> ConversationState:
    return ConversationState(flow="toy", step=step, user_id=123, chat_id=456)


def test_flow_table_rejects_duplicate_steps():
    step = Step(name="a", prompt="A", validate=lambda *a: None, transition=lambda *a: COMMIT)
    with pytest.raises(ValueError):
        FlowTable(name="bad", command="bad", label="Bad", steps=(step, step), commit=AsyncMock())


def test_unknown_step_is_unexpected_state():
    with pytest.raises(UnexpectedState):
        _toy_table().step("nowhere")


def test_table_for_command_ignores_slash_and_case():
    table = _toy_table()
    engine = FlowEngine([table])

    assert engine.table_for_command("/TOY") is table
    assert engine.table_for_command("other") is None


@pytest.mark.asyncio
async def test_invalid_input_reprompts_without_touching_state(ctx, sent_texts):
    engine = FlowEngine([_toy_table()])
    state = _state()

    result = await engine.advance(ctx, state, InboundEvent.from_text("   "))

    assert result is StepResult.REPROMPTED
    assert state.step == "name"
    assert state.data == {}
    assert sent_texts() == ["❌ Name please."]


@pytest.mark.asyncio
async def test_invalid_choice_re_presents_the_keyboard(ctx, telegram_bot):
    def _reject(ctx, state, value):
        raise ValidationError("❌ Pick yes or no.")

    table = _toy_table()
    steps = list(table.steps)
    steps[1] = Step(
        name="confirm", prompt="Keep?", validate=lambda c, s, e: e.text, transition=_reject,
        options=(("Yes", "yes"),),
    )
    engine = FlowEngine(
        [FlowTable(name="toy", command="toy", label="Toy", steps=tuple(steps), commit=table.commit)]
    )

    result = await engine.advance(ctx, _state("confirm"), InboundEvent.from_text("maybe"))

    assert result is StepResult.REPROMPTED
    last = telegram_bot.send_message.await_args.kwargs
    assert last["text"] == "Keep?"
    assert last["reply_markup"].inline_keyboard[0][0].callback_data == "flow:yes"


@pytest.mark.asyncio
async def test_advancing_prompts_next_step_and_commit_point_keeps_entities(
    ctx, telegram_bot
):
    engine = FlowEngine([_toy_table()])
    state = _state()

    result = await engine.advance(ctx, state, InboundEvent.from_text("Alice"))

    assert result is StepResult.ADVANCED
    assert state.step == "confirm"
    assert state.data["name"] == "Alice"
    # Entering the confirm step makes the tracked series permanent
    assert state.created == []
    kwargs = telegram_bot.send_message.await_args.kwargs
    assert kwargs["text"] == "Keep Alice?"
    buttons = [b.callback_data for row in kwargs["reply_markup"].inline_keyboard for b in row]
    assert buttons == ["flow:yes", "flow:no", "cancel_operation"]


@pytest.mark.asyncio
async def test_self_loop_does_not_reprompt(ctx, telegram_bot):
    engine = FlowEngine([_toy_table()])
    state = _state("confirm")
    state.data["name"] = "Alice"

    result = await engine.advance(ctx, state, InboundEvent.from_choice("again"))

    assert result is StepResult.ADVANCED
    telegram_bot.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_commit_runs_the_table_commit(ctx):
    commit = AsyncMock()
    engine = FlowEngine([_toy_table(commit)])
    state = _state("confirm")

    result = await engine.advance(ctx, state, InboundEvent.from_choice("yes"))

    assert result is StepResult.COMMITTED
    commit.assert_awaited_once_with(ctx, state)


@pytest.mark.asyncio
async def test_abort_skips_commit(ctx):
    commit = AsyncMock()
    engine = FlowEngine([_toy_table(commit)])

    result = await engine.advance(ctx, _state("confirm"), InboundEvent.from_choice("no"))

    assert result is StepResult.ABORTED
    commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_wrong_event_kind_is_rejected(ctx, sent_texts):
    engine = FlowEngine([_toy_table()])
    state = _state("file")

    result = await engine.advance(ctx, state, InboundEvent.from_text("not a file"))
    assert result is StepResult.REPROMPTED
    assert sent_texts() == ["❌ Send a file."]

    result = await engine.advance(
        ctx, state, InboundEvent.from_file(FileRef(file_id="f", file_name="a.mkv"))
    )
    assert result is StepResult.COMMITTED


@pytest.mark.asyncio
async def test_cancel_during_transition_aborts(ctx):
    def _cancel_midway(ctx, state, value):
        state.cancelled = True
        return "confirm"

    table = _toy_table()
    steps = (Step(name="name", prompt="Name?", validate=_validate_name, transition=_cancel_midway),) + table.steps[1:]
    engine = FlowEngine(
        [FlowTable(name="toy", command="toy", label="Toy", steps=steps, commit=table.commit)]
    )
    state = _state()

    result = await engine.advance(ctx, state, InboundEvent.from_text("Alice"))

    assert result is StepResult.ABORTED
    assert state.step == "name"
