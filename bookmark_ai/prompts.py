"""System prompts and user-message builders for the AI suggestion calls."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Sequence

    from .models import SearchBookmark

# Content beyond this many characters is cut before it reaches the model.
CONTENT_PREVIEW_LIMIT = 2000

SUMMARY_SYSTEM_PROMPT = """You are a helpful assistant that creates concise summaries of web content for a bookmarking application.

Your task is to generate a brief, informative summary that helps users quickly understand what a bookmarked page is about.

Guidelines:
- Keep summaries between 2-3 sentences (50-100 words)
- Focus on the main topic and key points
- Use clear, accessible language
- Avoid technical jargon unless necessary
- Do not include opinions or editorializing
- Do not mention the source/website name
- Write in third person

Respond with ONLY the summary text, no additional formatting or explanation."""  # noqa: E501

TAGS_SYSTEM_PROMPT = """You are a helpful assistant that suggests relevant tags for bookmarked web content.

Your task is to analyze the content and suggest 3-5 descriptive tags that would help users organize and find this bookmark later.

Guidelines:
- Suggest between 3-5 tags
- Tags should be lowercase, single words or short phrases (max 2-3 words)
- Use common, recognizable terms
- Consider the topic, type of content, and potential use cases
- Avoid overly specific or overly generic tags
- Prioritize tags that would be useful for categorization

Respond with a JSON object in this format:
{
  "tags": ["tag1", "tag2", "tag3"],
  "reasoning": "Brief explanation of why these tags were chosen"
}"""  # noqa: E501

CATEGORY_SYSTEM_PROMPT = """You are a helpful assistant that categorizes bookmarked web content.

Your task is to analyze the content and suggest the most appropriate category from the user's existing categories.

Guidelines:
- Select exactly ONE category that best fits the content
- Consider the primary purpose and topic of the content
- If no category is a good fit, suggest "Other" or the closest match
- Provide a confidence score (0.0 to 1.0) for your suggestion
- Higher confidence means you're more certain about the match

Respond with a JSON object in this format:
{
  "category": "Category Name",
  "confidence": 0.85,
  "reasoning": "Brief explanation of why this category was chosen"
}"""  # noqa: E501

SEMANTIC_SEARCH_SYSTEM_PROMPT = """You are a helpful assistant that performs semantic search over a collection of bookmarks.

Your task is to analyze the user's search query and rank the provided bookmarks by relevance.

Guidelines:
- Consider semantic meaning, not just keyword matching
- Rank bookmarks from most to least relevant
- Include a relevance score (0.0 to 1.0) for each bookmark
- Only include bookmarks with relevance > 0.3
- Consider synonyms, related concepts, and user intent
- If no bookmarks are relevant, return an empty array

Respond with a JSON object in this format:
{
  "results": [
    { "id": "bookmark-id", "score": 0.95, "reason": "Brief explanation" },
    { "id": "bookmark-id", "score": 0.85, "reason": "Brief explanation" }
  ],
  "interpretation": "How you interpreted the search query"
}"""  # noqa: E501


def _header(title: str, url: str, description: str | None) -> list[str]:
    parts = [f"Title: {title}", f"URL: {url}"]
    if description:
        parts.append(f"Description: {description}")
    return parts


def create_summary_prompt(
    title: str, url: str, description: str | None = None, content: str | None = None,
) -> str:
    parts = _header(title, url, description)
    if content:
        preview = content[:CONTENT_PREVIEW_LIMIT]
        ellipsis = "..." if len(content) > CONTENT_PREVIEW_LIMIT else ""
        parts.append(f"Content preview: {preview}{ellipsis}")
    return "\n\n".join(parts)


def create_tags_prompt(
    title: str,
    url: str,
    description: str | None = None,
    existing_tags: Sequence[str] | None = None,
) -> str:
    parts = _header(title, url, description)
    if existing_tags:
        parts.append(f"User's existing tags (for context): {', '.join(existing_tags)}")
        parts.append("Try to use existing tags when appropriate, but don't force it.")
    return "\n\n".join(parts)


def create_category_prompt(
    title: str, url: str, description: str | None, categories: Sequence[str],
) -> str:
    parts = _header(title, url, description)
    parts.append(f"Available categories: {', '.join(categories)}")
    parts.append("Select the most appropriate category from the list above.")
    return "\n\n".join(parts)


def create_semantic_search_prompt(query: str, bookmarks: Sequence[SearchBookmark]) -> str:
    """Render the query and a numbered bookmark listing for semantic search."""
    blocks: list[str] = []
    for position, bookmark in enumerate(bookmarks, start=1):
        lines = [
            f"{position}. ID: {bookmark.id}",
            f"   Title: {bookmark.title}",
            f"   URL: {bookmark.url}",
        ]
        if bookmark.description:
            lines.append(f"   Description: {bookmark.description}")
        if bookmark.tags:
            lines.append(f"   Tags: {', '.join(bookmark.tags)}")
        if bookmark.category:
            lines.append(f"   Category: {bookmark.category}")
        blocks.append("\n".join(lines))
    listing = "\n\n".join(blocks)
    return f'Search query: "{query}"\n\nBookmarks to search:\n{listing}'
