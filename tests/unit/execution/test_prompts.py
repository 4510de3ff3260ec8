"""Tests for prompt assembly."""

from variantbench.execution.prompts import (
    build_follow_up_prompt,
    build_prompt,
    fallback_function_text,
)


class TestBuildPrompt:
    """Tests for build_prompt ordering."""

    def test_base_prompt_only(self) -> None:
        assert build_prompt("Say hello") == "Say hello"

    def test_system_then_user_then_context(self) -> None:
        prompt = build_prompt(
            "Say hello", system_prompt="Be brief", context="Greeting test"
        )

        assert prompt == "System: Be brief\n\nUser: Say hello\n\nContext: Greeting test"
        assert prompt.index("Be brief") < prompt.index("Say hello") < prompt.index("Greeting test")

    def test_context_without_system_prompt(self) -> None:
        assert build_prompt("Say hello", context="c") == "Say hello\n\nContext: c"


class TestFollowUpPrompt:
    """Tests for function-result follow-up prompts."""

    def test_includes_serialized_results(self) -> None:
        prompt = build_follow_up_prompt(
            "Weather?", [("get_current_weather", {"temperature": 72})]
        )

        assert prompt.startswith("Weather?\n\n")
        assert 'Function get_current_weather was called and returned: {"temperature": 72}' in prompt
        assert prompt.endswith("based on this information.")

    def test_fallback_text(self) -> None:
        assert fallback_function_text(["a"]) == "I called the a function for you."
        assert fallback_function_text(["a", "b"]) == "I called the a, b functions for you."
