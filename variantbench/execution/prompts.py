"""Prompt assembly for variations and function-result follow-ups."""

import json
from typing import Any


def build_prompt(
    base_prompt: str,
    *,
    system_prompt: str | None = None,
    context: str | None = None,
) -> str:
    """Assemble the outbound prompt: system preamble, base prompt, context."""
    prompt = base_prompt
    if system_prompt:
        prompt = f"System: {system_prompt}\n\nUser: {base_prompt}"
    if context:
        prompt = f"{prompt}\n\nContext: {context}"
    return prompt


def build_follow_up_prompt(
    original_prompt: str,
    function_results: list[tuple[str, dict[str, Any] | None]],
) -> str:
    """Append resolved function results to the original prompt."""
    sections = [original_prompt]
    for function_name, payload in function_results:
        result_text = json.dumps(payload if payload is not None else {}, default=str)
        sections.append(f"Function {function_name} was called and returned: {result_text}")
    sections.append(
        "Please provide a natural, helpful response to the user based on this information."
    )
    return "\n\n".join(sections)


def fallback_function_text(function_names: list[str]) -> str:
    """Response text used when the follow-up generation produced nothing."""
    if len(function_names) == 1:
        return f"I called the {function_names[0]} function for you."
    return f"I called the {', '.join(function_names)} functions for you."
