import pytest

from chat_relay.core.errors import UpstreamRejection
from chat_relay.providers.base import ProviderTurn
from chat_relay.schemas import GenerationSettings, Message
from chat_relay.services.frames import Done, ErrorFrame, TextFragment
from chat_relay.services.relay import (
    TIMEOUT_MESSAGE,
    open_stream,
    relay_frames,
    split_history,
    sse_events,
)
from chat_relay.tests.fakes import ScriptedProvider

pytestmark = pytest.mark.anyio


async def _collect(agen) -> list:
    return [item async for item in agen]


async def _relay(provider: ScriptedProvider, history=None, **kwargs) -> list:
    history = history or [Message(role="user", content="hi")]
    fragments = await open_stream(provider, history, GenerationSettings())
    return await _collect(relay_frames(fragments, **kwargs))


def test_split_history_single_message_seeds_nothing() -> None:
    seed, turn = split_history([Message(role="user", content="only")])
    assert seed == []
    assert turn == "only"


def test_split_history_rejects_empty() -> None:
    with pytest.raises(ValueError):
        split_history([])


async def test_open_stream_seeds_all_but_last_turn() -> None:
    provider = ScriptedProvider(["ok"])
    history = [
        Message(role="user", content="q1"),
        Message(role="assistant", content="a1"),
        Message(role="user", content="q2"),
    ]
    settings = GenerationSettings(
        model="gemini-2.5-flash",
        temperature=0.2,
        maxTokens=512,
        topP=0.5,
        topK=7,
        systemInstruction="be brief",
    )

    await open_stream(provider, history, settings)

    assert provider.seeds == [[ProviderTurn("user", "q1"), ProviderTurn("model", "a1")]]
    assert provider.turns == ["q2"]
    params = provider.params[0]
    assert (params.model, params.temperature, params.top_p, params.top_k, params.max_output_tokens) == (
        "gemini-2.5-flash",
        0.2,
        0.5,
        7,
        512,
    )
    assert params.system_instruction == "be brief"


async def test_open_stream_propagates_send_failure() -> None:
    provider = ScriptedProvider(send_error=UpstreamRejection("bad model"))
    with pytest.raises(UpstreamRejection):
        await open_stream(provider, [Message(role="user", content="hi")], GenerationSettings())


async def test_fragments_then_done_in_order() -> None:
    frames = await _relay(ScriptedProvider(["a", "b", "c"]))
    assert frames == [TextFragment("a"), TextFragment("b"), TextFragment("c"), Done()]


async def test_empty_chunks_are_not_forwarded() -> None:
    frames = await _relay(ScriptedProvider(["", "a", "", "b"]))
    assert frames == [TextFragment("a"), TextFragment("b"), Done()]


async def test_zero_fragments_is_just_done() -> None:
    assert await _relay(ScriptedProvider([])) == [Done()]


@pytest.mark.parametrize("k", [0, 1, 3])
async def test_failure_after_k_fragments_ends_with_one_error(k: int) -> None:
    provider = ScriptedProvider(["x", "y", "z"], fail_after=k, stream_error=RuntimeError("quota exceeded"))
    frames = await _relay(provider)
    assert frames == [TextFragment(t) for t in ["x", "y", "z"][:k]] + [ErrorFrame("quota exceeded")]
    assert provider.closed


async def test_exception_without_message_still_has_readable_error() -> None:
    frames = await _relay(ScriptedProvider(["x"], fail_after=1, stream_error=RuntimeError()))
    assert frames[-1] == ErrorFrame("Stream error")


async def test_timeout_ends_stream_with_error_frame() -> None:
    provider = ScriptedProvider(["a", "b"], delay=0.5)
    frames = await _relay(provider, timeout_seconds=0.05)
    assert frames == [ErrorFrame(TIMEOUT_MESSAGE)]
    assert provider.closed


async def test_consumer_going_away_releases_upstream() -> None:
    provider = ScriptedProvider(["a", "b", "c"])
    fragments = await open_stream(provider, [Message(role="user", content="hi")], GenerationSettings())
    frames = relay_frames(fragments)

    assert await frames.__anext__() == TextFragment("a")
    await frames.aclose()

    assert provider.closed
    assert provider.pulled == 1


async def test_sse_events_scenario_bytes() -> None:
    fragments = await open_stream(
        ScriptedProvider(["Hel", "lo!"]), [Message(role="user", content="hi")], GenerationSettings()
    )
    events = await _collect(sse_events(relay_frames(fragments)))
    assert "".join(events) == 'data: {"text":"Hel"}\n\ndata: {"text":"lo!"}\n\ndata: [DONE]\n\n'


async def test_closing_wire_stream_releases_upstream() -> None:
    provider = ScriptedProvider(["a", "b", "c"])
    fragments = await open_stream(provider, [Message(role="user", content="hi")], GenerationSettings())
    events = sse_events(relay_frames(fragments))

    assert await events.__anext__() == 'data: {"text":"a"}\n\n'
    await events.aclose()

    assert provider.closed
    assert provider.pulled == 1
