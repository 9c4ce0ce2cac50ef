import asyncio
import json
import logging

from booktracker.domain.entities import RawCompletion
from booktracker.ports.llm import LLMPort
from booktracker.prompts.templates import estimate_tokens

logger = logging.getLogger(__name__)

_MOCK_CATALOGUE = [
    ("The Left Hand of Darkness", "Ursula K. Le Guin", "Science Fiction"),
    ("Piranesi", "Susanna Clarke", "Fantasy"),
    ("The Remains of the Day", "Kazuo Ishiguro", "Literary Fiction"),
    ("A Memory Called Empire", "Arkady Martine", "Science Fiction"),
    ("The Name of the Rose", "Umberto Eco", "Mystery"),
    ("Circe", "Madeline Miller", "Fantasy"),
    ("Station Eleven", "Emily St. John Mandel", "Literary Fiction"),
    ("The Dispossessed", "Ursula K. Le Guin", "Science Fiction"),
    ("The Secret History", "Donna Tartt", "Literary Fiction"),
    ("Hyperion", "Dan Simmons", "Science Fiction"),
]


class MockLLMAdapter(LLMPort):
    """
    Mock LLM adapter for running without API access.

    Returns a deterministic JSON array drawn from a fixed catalogue, sized
    from the "Recommend exactly N books" instruction in the system message.
    """

    def __init__(self, latency: float = 0.2) -> None:
        self._latency = latency

    async def complete(
        self,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
    ) -> RawCompletion:
        await asyncio.sleep(self._latency)  # simulate LLM latency
        count = _requested_count(system)
        items = [
            {
                "title": title,
                "author": author,
                "genre": genre,
                "reason": f"Readers who rated your favourites highly often enjoy this {genre.lower()} title.",
                "confidenceScore": round(5 - index * 0.3, 1),
            }
            for index, (title, author, genre) in enumerate(_MOCK_CATALOGUE[:count])
        ]
        text = json.dumps(items, indent=2)
        logger.info("MockLLM: complete called (%d recommendations)", len(items))
        return RawCompletion(
            text=text,
            prompt_tokens=estimate_tokens(system + user),
            completion_tokens=estimate_tokens(text),
        )


def _requested_count(system: str) -> int:
    marker = "Recommend exactly "
    start = system.find(marker)
    if start < 0:
        return 5
    digits = system[start + len(marker):].split(" ", 1)[0]
    return int(digits) if digits.isdigit() else 5
