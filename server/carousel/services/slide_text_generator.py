"""Thin client for the slide text generator (Google Gemini).

Only text comes back from the model; styles are always assigned by
``slide_template.seed_slides`` from the local defaults.
"""

import json
import logging
from typing import Optional

from google import genai
from google.genai import types

from carousel.config import settings
from carousel.schemas.slide import GeneratedSlideText
from carousel.services.errors import MissingCredentialError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You write Instagram carousels with depth, aesthetics and cognitive clarity.

The user picks one of two modes:
1) EDITORIAL: emotional and deep. Structure: opening, mirror, mirror, turn,
   turn, confession, conceptual solution, expansion, neuro/technical
   explanation, provocative synthesis.
2) CULTURAL: critical and sophisticated, about zeitgeist and behaviour.
   Structure: cultural headline, social context, cultural signal, diagnosis,
   impact on people, cognitive consequence, turn of awareness, new
   interpretation, final insight, aesthetic closing.

Rules:
- Return ONLY JSON: {"slides": [{"primaryText": "...", "secondaryText": "..."}]}
- primaryText is short and striking; secondaryText adds context (may be empty).
- Do not ask questions, do not start a conversation, do not describe images.
- Write in a premium style with short sentences, in the language of the topic.
"""


class SlideTextGenerator:
    """Wrapper for the Google Gemini API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = settings.gemini_api_key if api_key is None else api_key
        if not api_key:
            raise MissingCredentialError("Text generation API key is not configured")
        self.client = genai.Client(api_key=api_key)
        self.model = model or settings.generation_model

    async def generate(
        self,
        mode: str,
        topic: str,
        objective: str,
        emotion: str,
        brand_context: str = "",
        slide_count: Optional[int] = None,
    ) -> list[GeneratedSlideText]:
        slide_count = slide_count or settings.slides_per_carousel
        user_text = (
            f"Create a {slide_count}-slide carousel.\n"
            f"Mode: {mode}\nTopic: {topic}\nObjective: {objective}\nEmotion: {emotion}\n"
        )
        if brand_context:
            user_text += f"Brand context:\n{brand_context}\n"

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=user_text,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_PROMPT,
                response_mime_type="application/json",
                temperature=0.8,
            ),
        )
        text = (response.text or "").strip()
        logger.info(f"Generation response: len={len(text)}, text='{text[:200]}'")
        return parse_generated_slides(text)


def parse_generated_slides(text: str) -> list[GeneratedSlideText]:
    """Parse the model's JSON answer; anything unreadable yields no slides."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse generation JSON: {text[:200]}")
        return []

    items = payload.get("slides", []) if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        return []
    return [
        GeneratedSlideText.model_validate(item)
        for item in items
        if isinstance(item, dict)
    ]
