"""Prompt builders for the request flavours the CLI offers."""

from __future__ import annotations

from enum import Enum


class ReviewType(str, Enum):
    GENERAL = "general"
    SECURITY = "security"
    PERFORMANCE = "performance"
    STYLE = "style"


REVIEW_CHECKLIST = (
    "Code quality and best practices",
    "Potential bugs or issues",
    "Performance considerations",
    "Security concerns (if applicable)",
    "Suggestions for improvement",
)


def format_review_prompt(
    code: str,
    *,
    language: str | None = None,
    context: str | None = None,
    review_type: ReviewType | None = None,
) -> str:
    parts = ["Please review the following code:"]
    if language:
        parts.append(f"Language: {language}")
    if review_type is not None:
        parts.append(f"Review Type: {ReviewType(review_type).value}")
    if context:
        parts.append(f"Context: {context}")
    parts.append(f"```{language or ''}\n{code.rstrip()}\n```")
    checklist = "\n".join(f"- {item}" for item in REVIEW_CHECKLIST)
    parts.append(f"Please provide a comprehensive code review including:\n{checklist}")
    return "\n\n".join(parts)
