"""Heuristics that pull the application's reply out of a raw window dump.

The dump is every visible text element joined by blank lines, in accessibility
tree order. Nothing here is a structured parse: the goal is a plausible best
guess that never leaks the prompt itself or obvious UI chrome.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

__all__ = [
    "ChromeMarkers",
    "DEFAULT_MARKERS",
    "extract_reply",
    "has_generating_indicator",
]

_TIMESTAMP_RE = re.compile(r"^\d{1,2}:\d{2}(\s*[ap]\.?m\.?)?$", re.IGNORECASE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")


@dataclass(frozen=True, slots=True)
class ChromeMarkers:
    # whole-line button and menu labels; the reply ends where these begin
    labels: frozenset[str] = frozenset(
        {"copy", "share", "edit", "regenerate", "retry", "more", "new chat"}
    )
    # disclaimer and empty-state text, matched anywhere
    phrases: tuple[str, ...] = (
        "Claude can make mistakes",
        "Please double-check responses",
        "How can I help you today?",
        "Reply to Claude",
        "Start a new chat",
    )
    # lines dropped without ending the reply
    skip_lines: frozenset[str] = frozenset(
        {"you", "user", "me", "claude", "assistant", "ai", "today", "yesterday"}
    )
    generating_glyphs: tuple[str, ...] = ("▍",)
    generating_phrases: tuple[str, ...] = ("is typing",)
    generating_lines: frozenset[str] = frozenset(
        {"thinking", "thinking...", "thinking…"}
    )
    empty_states: tuple[str, ...] = ("How can I help you today?", "Start a new chat")
    min_fallback_length: int = 10


DEFAULT_MARKERS = ChromeMarkers()


def _normalize(text: str, markers: ChromeMarkers) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    for glyph in markers.generating_glyphs:
        text = text.replace(glyph, "")
    return text


def _is_generating_line(line: str, markers: ChromeMarkers) -> bool:
    lowered = line.strip().lower()
    if lowered in markers.generating_lines:
        return True
    return any(phrase in lowered for phrase in markers.generating_phrases)


def has_generating_indicator(raw_text: str, markers: ChromeMarkers = DEFAULT_MARKERS) -> bool:
    if any(glyph in raw_text for glyph in markers.generating_glyphs):
        return True
    return any(_is_generating_line(line, markers) for line in raw_text.splitlines())


def _chrome_cut(region: str, prompt: str, markers: ChromeMarkers) -> str:
    """Truncate `region` at the earliest chrome marker or repeated prompt."""
    cut = len(region)
    for needle in (*markers.phrases, prompt):
        idx = region.find(needle)
        if 0 <= idx < cut:
            cut = idx
    offset = 0
    for line in region.splitlines(keepends=True):
        if offset >= cut:
            break
        if line.strip().lower() in markers.labels:
            cut = offset
            break
        offset += len(line)
    return region[:cut]


def _clean(
    region: str,
    markers: ChromeMarkers,
    *,
    drop_chrome: bool = False,
    prompt_lines: frozenset[str] = frozenset(),
) -> str:
    kept: list[str] = []
    for line in region.split("\n"):
        stripped = line.strip()
        lowered = stripped.lower()
        if lowered in markers.skip_lines:
            continue
        if _TIMESTAMP_RE.match(stripped):
            continue
        if _is_generating_line(stripped, markers):
            continue
        if stripped in prompt_lines:
            continue
        if drop_chrome:
            if lowered in markers.labels:
                continue
            if any(phrase in stripped for phrase in markers.phrases):
                continue
        kept.append(stripped)
    text = "\n".join(kept).strip()
    return _BLANK_RUN_RE.sub("\n\n", text)


def _is_empty_state(text: str, markers: ChromeMarkers) -> bool:
    return text.strip() in markers.empty_states


def _prompt_lines(prompt: str) -> list[str]:
    return [line.strip() for line in prompt.split("\n") if line.strip()]


def _find_lines(lines: list[str], needle: list[str]) -> tuple[int, int] | None:
    """Locate `needle` as consecutive non-blank lines of `lines`, ignoring
    surrounding whitespace and blank lines in between.

    Returns the (start, end) slice of `lines` covering the match.
    """
    if not needle:
        return None
    for start, line in enumerate(lines):
        if line.strip() != needle[0]:
            continue
        pos, matched = start, 0
        while pos < len(lines) and matched < len(needle):
            stripped = lines[pos].strip()
            if stripped:
                if stripped != needle[matched]:
                    break
                matched += 1
            pos += 1
        if matched == len(needle):
            return start, pos
    return None


def _region_after_prompt(text: str, prompt: str) -> str | None:
    needle = _prompt_lines(prompt)
    idx = text.find(prompt)
    if idx >= 0:
        rest = text[idx + len(prompt) :].split("\n")
    else:
        # the app re-renders multi-line prompts with its own indentation and spacing
        lines = text.split("\n")
        found = _find_lines(lines, needle)
        if found is None:
            return None
        rest = lines[found[1] :]
    again = _find_lines(rest, needle)
    if again is not None:
        rest = rest[: again[0]]
    return "\n".join(rest)


def extract_reply(
    raw_text: str,
    original_prompt: str,
    markers: ChromeMarkers = DEFAULT_MARKERS,
) -> str | None:
    if not raw_text or not raw_text.strip():
        return None
    text = _normalize(raw_text, markers)
    prompt = _normalize(original_prompt, markers).strip()

    region = _region_after_prompt(text, prompt) if prompt else None
    if region is not None:
        reply = _clean(_chrome_cut(region, prompt, markers), markers)
        return reply or None

    # prompt not found (truncated bubble, reflowed text): keep the whole window
    # minus chrome and prompt lines, but only when it looks like content
    if _is_empty_state(text, markers):
        return None
    prompt_lines = frozenset(_prompt_lines(prompt))
    fallback = _clean(text, markers, drop_chrome=True, prompt_lines=prompt_lines)
    if len(fallback) <= markers.min_fallback_length:
        return None
    if _is_empty_state(fallback, markers):
        return None
    return fallback
