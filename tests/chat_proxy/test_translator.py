import pytest

from hfbridge.chat_proxy.config import DEFAULT_FALLBACK_TEXT
from hfbridge.chat_proxy.models import ChatMessage
from hfbridge.chat_proxy.translator import Translator


def _msgs(*pairs):
    return [ChatMessage(role=r, content=c) for r, c in pairs]


def test_build_prompt_keeps_order_and_prefixes():
    prompt = Translator.build_prompt(
        _msgs(
            ("system", "Be brief."),
            ("user", "Hi"),
            ("assistant", "Hello!"),
            ("user", "How are you?"),
        )
    )
    assert prompt == (
        "System: Be brief.\n\n"
        "User: Hi\n\n"
        "Assistant: Hello!\n\n"
        "User: How are you?\n\n"
        "Assistant:"
    )


def test_build_prompt_contents_appear_once_in_order():
    contents = ["first", "second", "third"]
    prompt = Translator.build_prompt(
        _msgs(("user", contents[0]), ("assistant", contents[1]), ("user", contents[2]))
    )
    positions = [prompt.index(c) for c in contents]
    assert positions == sorted(positions)
    assert all(prompt.count(c) == 1 for c in contents)
    assert prompt.endswith("Assistant:")


def test_build_prompt_skips_unknown_roles():
    prompt = Translator.build_prompt(_msgs(("tool", "ignored"), ("user", "Hi")))
    assert "ignored" not in prompt
    assert prompt == "User: Hi\n\nAssistant:"


def test_build_prompt_empty_conversation_is_just_the_cue():
    assert Translator.build_prompt([]) == "Assistant:"


@pytest.mark.parametrize(
    "payload",
    [
        [{"generated_text": "Hello there"}],
        {"generated_text": "Hello there"},
        "Hello there",
    ],
)
def test_extract_text_accepts_all_upstream_shapes(payload):
    assert Translator().extract_text(payload) == "Hello there"


@pytest.mark.parametrize(
    "payload",
    [None, [], {}, "", "   \n", [{"generated_text": ""}], {"error": "boom"}, 42],
)
def test_extract_text_falls_back_to_apology(payload):
    assert Translator().extract_text(payload) == DEFAULT_FALLBACK_TEXT


def test_custom_fallback_text():
    translator = Translator(fallback_text="No answer.")
    assert translator.extract_text(None) == "No answer."


def test_strip_reasoning_removes_every_span_and_trims():
    text = "<think>plan\nsteps</think>\n\nAnswer part one. <think>more\n</think>Done.  "
    assert Translator().strip_reasoning(text, False) == "Answer part one. Done."


def test_strip_reasoning_identity_when_shown():
    text = "<think>plan</think> Answer  "
    assert Translator().strip_reasoning(text, True) == text


def test_strip_reasoning_uses_injected_default():
    text = "<think>plan</think>Answer"
    assert Translator(show_reasoning=True).strip_reasoning(text) == text
    assert Translator(show_reasoning=False).strip_reasoning(text) == "Answer"


def test_strip_reasoning_custom_markers():
    translator = Translator(reasoning_open="[[", reasoning_close="]]")
    assert translator.strip_reasoning("[[hidden]] visible", False) == "visible"


def test_strip_reasoning_leaves_unclosed_marker():
    text = "<think>never closed"
    assert Translator().strip_reasoning(text, False) == text


def test_final_text_reasoning_only_reply_falls_back():
    payload = [{"generated_text": "<think>only thoughts</think>"}]
    assert Translator().final_text(payload) == DEFAULT_FALLBACK_TEXT


def test_assemble_response_shape_and_usage():
    translator = Translator(model_alias="deepseek-r1")
    prompt = "User: Hi\n\nAssistant:"
    body = translator.assemble_response("Hello there", prompt)

    assert body["object"] == "chat.completion"
    assert body["id"].startswith("chatcmpl-")
    assert body["model"] == "deepseek-r1"
    assert isinstance(body["created"], int)
    assert body["choices"] == [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "Hello there"},
            "finish_reason": "stop",
        }
    ]
    assert body["usage"] == {
        "prompt_tokens": 3,
        "completion_tokens": 2,
        "total_tokens": 5,
    }


def test_assemble_response_without_usage():
    body = Translator(include_usage=False).assemble_response("Hi", "User: x\n\nAssistant:")
    assert "usage" not in body
