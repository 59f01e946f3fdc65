from deskbridge.prompts import REVIEW_CHECKLIST, ReviewType, format_review_prompt


def test_review_prompt_with_all_parts() -> None:
    prompt = format_review_prompt(
        "def add(a, b):\n    return a + b\n\n",
        language="python",
        context="Hot path in billing",
        review_type=ReviewType.PERFORMANCE,
    )

    parts = prompt.split("\n\n")
    assert parts[0] == "Please review the following code:"
    assert parts[1] == "Language: python"
    assert parts[2] == "Review Type: performance"
    assert parts[3] == "Context: Hot path in billing"
    assert "```python\ndef add(a, b):\n    return a + b\n```" in prompt
    for item in REVIEW_CHECKLIST:
        assert f"- {item}" in prompt


def test_review_prompt_minimal() -> None:
    prompt = format_review_prompt("x = 1")

    assert "Language:" not in prompt
    assert "Review Type:" not in prompt
    assert "Context:" not in prompt
    assert "```\nx = 1\n```" in prompt


def test_review_type_accepts_plain_string() -> None:
    prompt = format_review_prompt("x = 1", review_type="security")
    assert "Review Type: security" in prompt
