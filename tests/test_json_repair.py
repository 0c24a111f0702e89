from __future__ import annotations

import builtins

import pytest

from scrum_sensei.errors import JSONSalvageError
from scrum_sensei.json_repair import (
    clean_model_text,
    extract_json_object,
    extract_quiz_data,
    repair_structure,
    salvage_json,
)


def test_valid_json_is_returned_unchanged() -> None:
    payload = '{"questions": [{"id": "q1", "options": ["a", "b"]}], "count": 1}'
    assert salvage_json(payload) == {"questions": [{"id": "q1", "options": ["a", "b"]}], "count": 1}


def test_missing_comma_between_fields_is_recovered() -> None:
    text = '{"type": "strategy" "content": "Review daily"}'
    assert salvage_json(text) == {"type": "strategy", "content": "Review daily"}


def test_missing_comma_between_objects_is_recovered() -> None:
    text = '[{"id": 1} {"id": 2}]'
    assert salvage_json(text) == [{"id": 1}, {"id": 2}]


def test_trailing_commas_are_dropped() -> None:
    assert salvage_json('{"a": [1, 2, 3,],}') == {"a": [1, 2, 3]}


def test_code_fence_and_prefix_are_stripped() -> None:
    text = 'Result: ```json\n{"type": "motivation", "content": "Keep going"}\n```'
    assert salvage_json(text) == {"type": "motivation", "content": "Keep going"}


def test_chatter_around_payload_is_ignored() -> None:
    text = 'Here is your quiz:\n[{"question": "What is a sprint?"}]\nGood luck!'
    assert salvage_json(text) == [{"question": "What is a sprint?"}]


def test_truncated_array_is_closed() -> None:
    text = '{"questions": [{"question": "What is a backlog?", "answer": "A list'
    value = salvage_json(text)
    assert value["questions"][0]["question"] == "What is a backlog?"
    assert value["questions"][0]["answer"] == "A list"


def test_stray_backslashes_are_escaped() -> None:
    value = salvage_json('{"path": "C:\\temp\\q.txt"}')
    assert value["path"].startswith("C:")


def test_duplicate_answer_pairs_collapse() -> None:
    cleaned = clean_model_text('{"answer": "a", "answer": "b"}')
    assert cleaned == '{"answer": "a"}'


def test_repair_structure_leaves_valid_text_parseable() -> None:
    assert repair_structure('{"a": 1, "b": [true, null]}') == '{"a": 1, "b": [true, null]}'


def test_quiz_fragments_are_extracted_by_pattern() -> None:
    text = (
        'question: What is the timebox of a daily scrum\n'
        'options: ["15 minutes", "1 hour"]\n'
        'answer: 15 minutes\n'
        'explanation: It is a short sync\n'
    )
    data = extract_quiz_data(text)
    assert data is not None
    question = data["questions"][0]
    assert question["question"].startswith("What is the timebox")
    assert question["options"] == ["15 minutes", "1 hour"]
    assert question["type"] == "multiple-choice"


def test_closed_string_ending_in_escaped_backslash_is_not_truncated() -> None:
    assert salvage_json('{"a": "x\\\\"') == {"a": "x\\"}


def test_stray_brackets_without_payload_raise() -> None:
    with pytest.raises(JSONSalvageError):
        salvage_json("}{")
    with pytest.raises(JSONSalvageError):
        salvage_json("Result: [")
    assert salvage_json("{}") == {}


def test_garbage_raises_salvage_error() -> None:
    with pytest.raises(JSONSalvageError):
        salvage_json("this is definitely not json")


def test_none_raises_salvage_error() -> None:
    with pytest.raises(JSONSalvageError):
        salvage_json(None)


def test_extract_json_object_rejects_arrays() -> None:
    with pytest.raises(JSONSalvageError):
        extract_json_object("[1, 2]")


def test_code_is_never_evaluated(monkeypatch: pytest.MonkeyPatch) -> None:
    def _forbidden(*args, **kwargs):
        raise AssertionError("evaluation attempted")

    monkeypatch.setattr(builtins, "eval", _forbidden)
    monkeypatch.setattr(builtins, "exec", _forbidden)
    with pytest.raises(JSONSalvageError):
        salvage_json("__import__('os').system('echo hacked')")
