import pytest

from src.statewise.errors import MalformedModelOutput, ModelOutputError
from src.statewise.llm.response_parser import (
    parse_model_json,
    parse_model_object,
    strip_code_fence,
)


@pytest.mark.parametrize(
    "text",
    [
        '{"a":1}',
        '```json\n{"a":1}\n```',
        '```\n{"a":1}\n```',
        '  ```JSON\n{"a": 1}\n```  ',
    ],
)
def test_fenced_and_bare_json_parse_the_same(text):
    assert parse_model_json(text) == {"a": 1}


def test_strip_code_fence_leaves_plain_text_alone():
    assert strip_code_fence("  hello there ") == "hello there"


def test_malformed_output_carries_parse_error_and_raw_text():
    with pytest.raises(MalformedModelOutput) as exc_info:
        parse_model_json("```json\n{not json}\n```")

    error = exc_info.value
    assert isinstance(error, ModelOutputError)
    assert "Expecting property name" in error.parse_error
    assert error.raw_text == "```json\n{not json}\n```"


def test_parse_model_object_requires_an_object():
    with pytest.raises(MalformedModelOutput, match="expected a JSON object"):
        parse_model_object("[1, 2]")
