import logging
from typing import Optional

import anthropic
from anthropic import Anthropic

from .errors import ConfigurationError, InvalidRequest, RemoteError

logger = logging.getLogger(__name__)

CURATOR_PROMPT = """You are an art curator writing descriptions for a contemporary art gallery.

Analyze this artwork image and write a compelling 2-3 sentence description suitable for a gallery listing.

Focus on:
- The visual elements (colors, composition, textures, shapes)
- The mood and emotional impact
- The artistic style or technique
- What the artwork might represent or evoke

Write in an engaging, accessible style that helps viewers connect with the piece. Avoid overly academic language.{context}

Respond with ONLY the description text, no preamble or formatting."""


def build_prompt(title: Optional[str] = None, category: Optional[str] = None, artist: Optional[str] = None) -> str:
    parts = []
    if title:
        parts.append(f'Title: "{title}"')
    if category:
        parts.append(f"Category: {category}")
    if artist:
        parts.append(f"Artist: {artist}")
    context = "\n\nContext about this artwork:\n" + "\n".join(parts) if parts else ""
    return CURATOR_PROMPT.format(context=context)


class VisionClient:
    """Writes gallery descriptions from an image URL with Claude."""

    def __init__(self, api_key: Optional[str], model: str, max_tokens: int = 300, client=None):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or (bool(self.api_key) and self.api_key.startswith("sk-ant-"))

    @property
    def client(self):
        if self._client is None:
            if not self.configured:
                raise ConfigurationError("AI descriptions are not configured (ANTHROPIC_API_KEY)")
            self._client = Anthropic(api_key=self.api_key)
        return self._client

    def describe(
        self,
        image_url: str,
        title: Optional[str] = None,
        category: Optional[str] = None,
        artist: Optional[str] = None,
    ) -> str:
        if not image_url:
            raise InvalidRequest("no image URL provided")
        client = self.client
        try:
            message = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "image", "source": {"type": "url", "url": image_url}},
                        {"type": "text", "text": build_prompt(title, category, artist)},
                    ],
                }],
            )
        except anthropic.APIError as exc:
            logger.error("Anthropic description request failed: %s", exc)
            raise RemoteError("AI description request failed") from exc

        text = ""
        if message.content and getattr(message.content[0], "text", None):
            text = message.content[0].text.strip()
        if not text:
            logger.error("Unexpected Anthropic response: %r", message)
            raise RemoteError("unexpected response from AI service")
        return text
