"""Prompt templates shared by every narration backend.

The on-device and cloud paths send identical prompts so their output can be
parsed by the same confidence parser regardless of where it came from.
"""

from __future__ import annotations

from typing import Any

from labnarrator.base.frames import ExtractedFrame
from labnarrator.base.lab import Lab

INVENTORY_SYSTEM_PROMPT = """You are a technical documentation analyst. Examine these screenshots from an \
infrastructure lab environment. List EVERY visible element:
- Application/tool names and versions
- Panel titles and menu items
- CLI commands and their output
- IP addresses, hostnames, configuration values
- Status indicators, progress bars, error messages
- Any text visible in the interface

For each observation, note which region of the screen it appears in (top-left, top-right, bottom-left, \
bottom-right, center).
Only list what you can actually read or identify. If text is partially obscured, note it as "[partial] ..."
Be exhaustive: missing a detail is worse than listing too many."""

NARRATION_SYSTEM_TEMPLATE = """Using the visual inventory below and this sequence of frames from a lab titled \
"{title}" with objective "{objective}", describe what the user did step by step.

CONTEXT (Lab Metadata):
{metadata}

VISUAL INVENTORY FROM PASS 1:
{inventory}

Rules:
- Only describe actions supported by visual evidence from the inventory
- Note what changed between consecutive frames
- Explain the technical significance of each action
- Use professional language suitable for a recruiter or hiring manager
- For each claim, prefix with confidence: [HIGH] visually confirmed, [MEDIUM] likely based on context, \
[LOW] inferred but not directly visible
- Structure as numbered steps
- Be specific about tools, commands, and configurations observed
- Output ONLY the narration text, no JSON wrapping"""

NARRATION_USER_PROMPT = (
    "Based on the visual inventory and these frames, generate the step-by-step narration with confidence ratings."
)

METADATA_SYSTEM_PROMPT = (
    "You are a Technical Lab Narrator. Based on the lab steps and objective, create a professional narration. "
    "Prefix each step with [HIGH] confidence."
)

SUGGESTION_SYSTEM_PROMPT = (
    "You help an engineer write up home-lab exercises for a portfolio. "
    "Suggest up to 3 short completions for the field being edited. "
    "Reply with one suggestion per line, without numbering, quotes or commentary."
)


def build_metadata_context(lab: Lab) -> str:
    """Render the lab fields every prompt uses as context."""
    steps = "\n".join(f"  {i}. {step}" for i, step in enumerate(lab.steps, start=1))
    parts = [
        f"Lab Title: {lab.title}",
        f"Objective: {lab.objective}",
        f"Environment: {lab.environment}",
        f"Tags: {', '.join(lab.tags)}",
        f"Steps:\n{steps}",
        f"Expected Outcome: {lab.outcome}",
    ]
    if lab.description:
        parts.insert(1, f"Description: {lab.description}")
    return "\n".join(parts)


def build_image_parts(
    frames: list[ExtractedFrame],
    *,
    include_tiles: bool,
    max_tiles: int | None = None,
) -> list[dict[str, Any]]:
    """Build OpenAI-style ``image_url`` content parts from frames.

    Args:
        frames: Extracted frames, in time order
        include_tiles: Whether quadrant tiles follow each full frame
        max_tiles: Upper bound on the total number of tiles sent (None = all)
    """
    parts: list[dict[str, Any]] = []
    tiles_sent = 0
    for frame in frames:
        parts.append({"type": "image_url", "image_url": {"url": frame.full_image}})
        if not include_tiles:
            continue
        for tile in frame.quadrant_tiles:
            if max_tiles is not None and tiles_sent >= max_tiles:
                break
            parts.append({"type": "image_url", "image_url": {"url": tile}})
            tiles_sent += 1
    return parts


def inventory_messages(
    frames: list[ExtractedFrame], lab_title: str, *, max_tiles: int | None = None
) -> list[dict[str, Any]]:
    """Messages for the inventory pass: frames plus quadrant tiles."""
    intro = (
        f"Analyze these {len(frames)} frames (with quadrant detail tiles) from the lab \"{lab_title}\". "
        "List every visible element."
    )
    return [
        {"role": "system", "content": INVENTORY_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [{"type": "text", "text": intro}, *build_image_parts(frames, include_tiles=True, max_tiles=max_tiles)],
        },
    ]


def narration_system_prompt(title: str, objective: str, metadata: str, inventory: str) -> str:
    return NARRATION_SYSTEM_TEMPLATE.format(title=title, objective=objective, metadata=metadata, inventory=inventory)


def narration_messages(
    frames: list[ExtractedFrame], title: str, objective: str, metadata: str, inventory: str
) -> list[dict[str, Any]]:
    """Messages for the narration pass: full frames only, grounded on the inventory."""
    return [
        {"role": "system", "content": narration_system_prompt(title, objective, metadata, inventory)},
        {
            "role": "user",
            "content": [{"type": "text", "text": NARRATION_USER_PROMPT}, *build_image_parts(frames, include_tiles=False)],
        },
    ]


def metadata_messages(lab: Lab) -> list[dict[str, str]]:
    """Messages for text-only backends, which narrate from lab metadata alone."""
    user_prompt = (
        f"Lab: {lab.title}\nMetadata:\n{build_metadata_context(lab)}\n\n"
        f"Objective: {lab.objective}\n\nPlease narrate the demonstration based on these steps."
    )
    return [
        {"role": "system", "content": METADATA_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def suggestion_messages(field_name: str, partial_value: str, context: str = "") -> list[dict[str, str]]:
    user_prompt = f"Field: {field_name}\nCurrent value: {partial_value}"
    if context:
        user_prompt = f"{user_prompt}\nContext: {context}"
    return [
        {"role": "system", "content": SUGGESTION_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def parse_suggestions(raw_text: str, limit: int = 3) -> list[str]:
    """Turn a one-per-line model reply into a clean suggestion list."""
    suggestions: list[str] = []
    for line in raw_text.splitlines():
        cleaned = line.strip().lstrip("-*0123456789.) ").strip().strip("\"'")
        if cleaned and cleaned not in suggestions:
            suggestions.append(cleaned)
        if len(suggestions) >= limit:
            break
    return suggestions
