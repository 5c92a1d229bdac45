import pytest

from mathtutor.parsing import extract_json_object


@pytest.mark.parametrize(
    "text",
    [
        '{"score": 2}',
        '```json\n{"score": 2}\n```',
        'Sure! Here is the result: {"score": 2} Hope that helps.',
    ],
)
def test_finds_object(text):
    assert extract_json_object(text) == {"score": 2}


@pytest.mark.parametrize("text", ["", "no json here", "[1, 2]", "{broken"])
def test_rejects_non_objects(text):
    with pytest.raises(ValueError):
        extract_json_object(text)
