"""
Versioned prompt templates for the recommendation call.

Conventions:
  1. Prompt text lives in frozen PromptTemplate objects, never inline in adapters.
  2. The template version is logged with every completion for traceability.
  3. One template serves every provider (OpenAI, Azure, Ollama, mock).
  4. The rating history is the only field that may be truncated.
  5. Rendering is pure: the same PromptContext always yields the same messages.
"""

from dataclasses import dataclass, field

from booktracker.domain.entities import PromptContext, RatingSignal


# ── Token Budget ─────────────────────────────────────────────────
# Approximation used for budgeting only: ~4 characters per token.

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    return len(text) // CHARS_PER_TOKEN


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Cut ``text`` to roughly ``max_tokens``, preferring a line boundary."""
    budget = max_tokens * CHARS_PER_TOKEN
    if len(text) <= budget:
        return text
    kept = text[:budget]
    # never leave half a rating line behind
    last_break = kept.rfind("\n")
    if last_break > budget * 0.5:
        kept = kept[:last_break]
    return kept + "\n[History truncated]"


# ── Template ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class PromptTemplate:
    """
    A system/user message pair with ``str.format`` placeholders.

    Attributes:
        name:              Identifier written to the logs.
        version:           Bumped whenever the wording changes.
        system:            Instructions and output contract for the model.
        user_template:     The per-user request.
        max_tokens:        Output token cap sent to the provider.
        input_token_limit: Budget for the truncatable field in the user message.
        tags:              Free-form labels.
    """

    name: str
    version: str
    system: str
    user_template: str
    max_tokens: int = 1024
    input_token_limit: int = 4000
    tags: tuple[str, ...] = field(default_factory=tuple)

    def render(self, **kwargs: str) -> dict[str, str]:
        return {
            "system": self.system.format(**kwargs),
            "user": self.user_template.format(**kwargs),
        }

    def render_with_truncation(self, content_key: str, **kwargs: str) -> dict[str, str]:
        """Like ``render``, but first fits ``kwargs[content_key]`` into ``input_token_limit``."""
        if content_key in kwargs:
            kwargs[content_key] = truncate_to_tokens(kwargs[content_key], self.input_token_limit)
        return self.render(**kwargs)


# ── Recommendation Prompt ────────────────────────────────────────

RECOMMEND_BOOKS = PromptTemplate(
    name="recommend_books",
    version="2.1.0",
    system=(
        "You are a book recommendation expert. Analyze the user's reading history "
        "and generate personalized recommendations.\n\n"
        "Rules:\n"
        "- Recommend exactly {count} books.\n"
        "- Match the user's preferred genres, themes and authors where given.\n"
        "- NEVER recommend a book from the user's \"already owns\" list.\n"
        "- Never recommend the same book twice.\n"
        "- Give each book a one-sentence reason tied to the books the user rated.\n"
        "- Give each book a confidenceScore from 0 (weak match) to 5 (strong match).\n\n"
        "Output format:\n"
        "Respond with a single JSON array and nothing else: no prose, no markdown. "
        "Each element must be an object with exactly these keys:\n"
        '{{"title": string, "author": string, "genre": string or null, '
        '"reason": string, "confidenceScore": number}}'
    ),
    user_template=(
        "Based on my reading history:\n"
        "{ratings}\n"
        "{preferences_section}"
        "{owned_section}"
        "\nRecommend {count} books I'll love. Respond with the JSON array only."
    ),
    max_tokens=1000,
    input_token_limit=3000,
    tags=("recommendations", "ratings", "json"),
)


# ── Rendering Helpers ────────────────────────────────────────────

NOTES_TOKEN_LIMIT = 60


def _label(score: int) -> str:
    if score >= 4:
        return "Loved"
    if score >= 3:
        return "Enjoyed"
    return "Disliked"


def format_signal(signal: RatingSignal) -> str:
    """One bullet line describing a rated book."""
    line = f'- {_label(signal.score)} "{signal.title}" by {signal.author} ({signal.score}/5 stars)'
    if signal.genres:
        line += f" [genres: {', '.join(signal.genres)}]"
    if signal.notes and signal.notes.strip():
        notes = " ".join(signal.notes.split())
        if estimate_tokens(notes) > NOTES_TOKEN_LIMIT:
            notes = notes[: NOTES_TOKEN_LIMIT * CHARS_PER_TOKEN].rstrip() + "..."
        line += f" - {notes}"
    return line


def _preferences_section(ctx: PromptContext) -> str:
    parts = []
    if ctx.preferred_genres:
        parts.append(f"Preferred genres: {', '.join(ctx.preferred_genres)}")
    if ctx.preferred_themes:
        parts.append(f"Favorite themes: {', '.join(ctx.preferred_themes)}")
    if ctx.favorite_authors:
        parts.append(f"Favorite authors: {', '.join(ctx.favorite_authors)}")
    if not parts:
        return ""
    return "\n" + "\n".join(parts) + "\n"


def _owned_section(ctx: PromptContext, max_titles: int) -> str:
    if not ctx.already_owned:
        return ""
    owned = ", ".join(
        f'"{title}" by {author}' for title, author in ctx.already_owned[:max_titles]
    )
    return f"\nI already own these books, do NOT recommend any of them: {owned}\n"


def render_recommendation_prompt(
    ctx: PromptContext,
    max_owned_titles: int = 50,
) -> dict[str, str]:
    """
    Render the recommendation prompt for one generation call.

    Args:
        ctx: Signals, preferences and owned books for the requesting user.
        max_owned_titles: Cap on owned books listed in the exclusion line.

    Returns:
        Dict with 'system' and 'user' keys ready for any LLM adapter.
    """
    ratings = "\n".join(format_signal(signal) for signal in ctx.signals)
    return RECOMMEND_BOOKS.render_with_truncation(
        content_key="ratings",
        ratings=ratings,
        preferences_section=_preferences_section(ctx),
        owned_section=_owned_section(ctx, max_owned_titles),
        count=str(ctx.requested_count),
    )
