"""Tests for prompt rendering."""

from __future__ import annotations

from bookmark_ai import prompts
from bookmark_ai.models import SearchBookmark


def test_summary_prompt_truncates_content() -> None:
    text = prompts.create_summary_prompt("T", "https://x.example", "D", "a" * 2500)
    sections = text.split("\n\n")
    if sections[:3] != ["Title: T", "URL: https://x.example", "Description: D"]:
        msg = f"Unexpected header sections {sections[:3]}"
        raise AssertionError(msg)
    if sections[3] != "Content preview: " + "a" * 2000 + "...":
        raise AssertionError("Content should be cut to 2000 chars with an ellipsis")


def test_tags_prompt_mentions_existing_tags_only_when_present() -> None:
    with_tags = prompts.create_tags_prompt("T", "https://x.example", None, ["python", "web"])
    if "User's existing tags (for context): python, web" not in with_tags:
        raise AssertionError("Existing tags should be listed")
    if "existing tags" in prompts.create_tags_prompt("T", "https://x.example"):
        raise AssertionError("No tags section without existing tags")


def test_category_and_search_prompts() -> None:
    category = prompts.create_category_prompt("T", "https://x.example", None, ["A", "B"])
    if not category.endswith("Available categories: A, B\n\nSelect the most appropriate category from the list above."):
        raise AssertionError("Category prompt should end with the category list and instruction")
    search = prompts.create_semantic_search_prompt(
        "rust", [SearchBookmark(id="b1", title="Rust book", url="https://r.example", tags=["lang"])],
    )
    expected = (
        'Search query: "rust"\n\nBookmarks to search:\n'
        "1. ID: b1\n   Title: Rust book\n   URL: https://r.example\n   Tags: lang"
    )
    if search != expected:
        msg = f"Unexpected search prompt {search!r}"
        raise AssertionError(msg)
