"""Module-level API tests against the default runtime."""

from __future__ import annotations

import pytest

import castor
from castor import (
    Dispatcher,
    GenerationRequest,
    Message,
    ProviderId,
    Runtime,
    SessionStore,
)
from tests.helpers import ScriptedAdapter

pytestmark = pytest.mark.unit


@pytest.fixture
def runtime(store: SessionStore):
    """Install a runtime with a scripted OpenAI adapter as the default."""
    adapter = ScriptedAdapter(ProviderId.OPENAI, script=[{"text": "pong"}])
    rt = Runtime(dispatcher=Dispatcher({ProviderId.OPENAI: adapter}), sessions=store)
    castor.set_runtime(rt)
    yield rt
    castor.set_runtime(None)


@pytest.mark.asyncio
async def test_generate_text_uses_default_runtime(runtime: Runtime) -> None:
    result = await castor.generate_text(
        GenerationRequest(
            provider="openai",
            model="gpt-4o-mini",
            messages=[Message(role="user", content="ping")],
        )
    )

    assert result.text == "pong"


def test_session_helpers_share_the_default_store(runtime: Runtime) -> None:
    snapshot = castor.create_session("openai", "gpt-4o-mini", system_prompt="sys")
    session = castor.get_session(snapshot.id)
    assert session is not None

    castor.append_session_messages(session, [Message(role="user", content="hi")])
    castor.queue_session_instructions(session, ["later"])
    castor.queue_session_tool_outputs(session, [{"call_id": "c", "output": "o"}])
    castor.update_session_defaults(session, {"top_p": 0.5})

    view = castor.serialize_session(session)
    assert [m.role for m in view.messages] == ["system", "user"]
    assert view.queued_instructions == ["later"]
    assert view.queued_tool_outputs[0].call_id == "c"
    assert view.defaults.top_p == 0.5
    assert [s.id for s in castor.list_active_sessions()] == [snapshot.id]

    assert castor.delete_session(snapshot.id) is True
    assert castor.get_session(snapshot.id) is None


def test_describe_providers_lists_every_provider() -> None:
    infos = castor.describe_providers()

    assert [info.provider for info in infos] == list(ProviderId)


@pytest.mark.asyncio
async def test_shutdown_closes_adapters_and_clears_sessions(
    runtime: Runtime,
) -> None:
    adapter = runtime.dispatcher.adapter_for(ProviderId.OPENAI)
    castor.create_session("openai", "m")

    await castor.shutdown()

    assert isinstance(adapter, ScriptedAdapter)
    assert adapter.closed is True
    assert len(runtime.sessions) == 0


@pytest.mark.asyncio
async def test_runtime_context_manager_closes_on_exit(store: SessionStore) -> None:
    adapter = ScriptedAdapter()
    async with Runtime(
        dispatcher=Dispatcher({ProviderId.OPENAI: adapter}), sessions=store
    ) as rt:
        rt.sessions.create("openai", "m")

    assert adapter.closed is True
    assert len(store) == 0


def test_public_names_are_exported() -> None:
    for name in castor.__all__:
        assert hasattr(castor, name), name
