"""
Gemini adapter: send a video (inline bytes or a staged gs:// reference)
together with the story prompt and return the generated text.
"""
import logging
from threading import Lock
from typing import Callable, Optional

from google import genai
from google.genai import types

from storyteller.domain.errors import GenerationError
from storyteller.domain.models import VideoSource
from storyteller.domain.prompts import normalize_story

logger = logging.getLogger(__name__)


def api_key_client_factory(api_key: str) -> Callable[[], genai.Client]:
    """Client for the Gemini Developer API (inline video bytes)."""
    return lambda: genai.Client(api_key=api_key)


def vertex_client_factory(project: str, location: str) -> Callable[[], genai.Client]:
    """Client for Vertex AI, which can read gs:// URIs directly."""
    return lambda: genai.Client(vertexai=True, project=project, location=location)


class GeminiStoryGenerator:
    def __init__(self, client_factory: Callable[[], genai.Client], model: str, prompt: str) -> None:
        self._client_factory = client_factory
        self._client: Optional[genai.Client] = None
        self._client_lock = Lock()
        self.model = model
        self.prompt = prompt

    @property
    def client(self) -> genai.Client:
        # Built on first use so the app can start without credentials.
        with self._client_lock:
            if self._client is None:
                self._client = self._client_factory()
            return self._client

    def _video_part(self, source: VideoSource) -> types.Part:
        if source.is_staged:
            return types.Part.from_uri(file_uri=source.uri, mime_type=source.mime_type)
        return types.Part.from_bytes(data=source.data, mime_type=source.mime_type)

    def generate(self, source: VideoSource) -> str:
        """
        Run one generation call and return the normalised story text.

        Any client error propagates unchanged; an empty reply raises
        GenerationError.
        """
        logger.info("Generating story with %s (%s)", self.model, source.mime_type)
        response = self.client.models.generate_content(
            model=self.model,
            contents=[self._video_part(source), self.prompt],
        )
        text = getattr(response, "text", None)
        if not text or not text.strip():
            raise GenerationError("Model returned an empty response")
        return normalize_story(text)
