from __future__ import annotations

import json

from hypothesis import given
from hypothesis import strategies as st
import pytest

from castor.errors import ValidationError
from castor.models import Message, ProviderId, ToolCall, ToolDefinition
from castor.providers.base import dump_arguments, load_arguments
from castor.providers.ollama import extract_fallback_tool_calls, strip_code_fence

pytestmark = pytest.mark.unit


def test_provider_id_parse_accepts_values_and_members() -> None:
    assert ProviderId.parse("google") is ProviderId.GOOGLE
    assert ProviderId.parse(ProviderId.OLLAMA) is ProviderId.OLLAMA


def test_provider_id_parse_lists_supported_values() -> None:
    with pytest.raises(ValidationError) as exc:
        ProviderId.parse("cohere")

    assert exc.value.hint is not None
    assert "anthropic" in exc.value.hint


def test_message_from_dict_accepts_camel_case_keys() -> None:
    message = Message.from_dict(
        {
            "role": "assistant",
            "content": None,
            "toolCalls": [{"id": "c1", "name": "f", "arguments": "{}"}],
        }
    )

    assert message.content == ""
    assert message.tool_calls == [ToolCall(id="c1", name="f", arguments="{}")]


def test_message_to_dict_omits_unset_optional_fields() -> None:
    assert Message(role="user", content="hi").to_dict() == {
        "role": "user",
        "content": "hi",
    }
    assert Message(role="tool", content="ok", tool_call_id="c1").to_dict() == {
        "role": "tool",
        "content": "ok",
        "tool_call_id": "c1",
    }


def test_tool_definition_from_dict_requires_name() -> None:
    with pytest.raises(ValidationError):
        ToolDefinition.from_dict({"description": "nameless"})

    tool = ToolDefinition.from_dict({"name": "f", "parameters": {"type": "object"}})
    assert tool.parameters == {"type": "object"}


# =============================================================================
# Tool-call arguments
# =============================================================================


def test_load_arguments_treats_empty_string_as_empty_object() -> None:
    assert load_arguments("") == {}


def test_load_arguments_rejects_malformed_json() -> None:
    with pytest.raises(ValidationError):
        load_arguments("{oops")


def test_dump_arguments_keeps_strings_and_defaults_none() -> None:
    assert dump_arguments('{"a": 1}') == '{"a": 1}'
    assert dump_arguments(None) == "{}"


_json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.text(max_size=20),
    lambda children: st.lists(children, max_size=4)
    | st.dictionaries(st.text(max_size=8), children, max_size=4),
    max_leaves=12,
)


@given(st.dictionaries(st.text(max_size=8), _json_values, max_size=5))
def test_arguments_survive_native_object_hop(args: dict[str, object]) -> None:
    """Providers that take native objects must not alter the arguments."""
    encoded = dump_arguments(args)

    assert load_arguments(encoded) == args
    assert json.loads(dump_arguments(load_arguments(encoded))) == args


# =============================================================================
# Fallback tool-call extraction
# =============================================================================


def test_strip_code_fence_removes_language_tag() -> None:
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence("plain") == "plain"


def test_fallback_accepts_fenced_single_object() -> None:
    calls = extract_fallback_tool_calls('```json\n{"name":"x","arguments":{}}\n```')

    assert calls == [ToolCall(id="fallback_call_0", name="x", arguments="{}")]


def test_fallback_accepts_array_and_skips_nameless_items() -> None:
    text = json.dumps(
        [
            {"name": "a", "arguments": {"n": 1}},
            {"arguments": {}},
            "noise",
            {"name": "b"},
        ]
    )

    calls = extract_fallback_tool_calls(text)

    assert [(c.id, c.name, c.arguments) for c in calls] == [
        ("fallback_call_0", "a", '{"n": 1}'),
        ("fallback_call_3", "b", "{}"),
    ]


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        "Sure! I would open the canvas for you.",
        "```\nnot json\n```",
        "[1, 2, 3]",
    ],
)
def test_fallback_yields_nothing_for_prose_or_junk(text: str) -> None:
    assert extract_fallback_tool_calls(text) == []


def test_fallback_decodes_json_encoded_argument_strings() -> None:
    text = json.dumps({"name": "x", "arguments": '{"a": 1}'})

    calls = extract_fallback_tool_calls(text)

    assert [(c.name, c.arguments) for c in calls] == [("x", '{"a": 1}')]
    assert load_arguments(calls[0].arguments) == {"a": 1}


@pytest.mark.parametrize(
    "arguments",
    ["plain words", "[1, 2]", "7", '"quoted"', [1, 2], 3, True],
)
def test_fallback_skips_items_whose_arguments_are_not_objects(
    arguments: object,
) -> None:
    text = json.dumps(
        [{"name": "bad", "arguments": arguments}, {"name": "ok", "arguments": {}}]
    )

    calls = extract_fallback_tool_calls(text)

    assert [(c.id, c.name) for c in calls] == [("fallback_call_1", "ok")]


@given(st.text(max_size=200))
def test_fallback_never_raises(text: str) -> None:
    calls = extract_fallback_tool_calls(text)

    assert isinstance(calls, list)
    assert all(call.name for call in calls)
    for call in calls:
        assert isinstance(load_arguments(call.arguments), dict)
