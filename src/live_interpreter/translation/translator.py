"""Conversational translation through a local LLM served by Ollama."""

import asyncio
import logging
import time

import ollama

from .config import (
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OLLAMA_TIMEOUT,
    LANGUAGE_NAMES,
    TRANSLATION_MAX_TOKENS,
    TRANSLATION_TEMPERATURE,
)
from .exceptions import ProviderError
from .interfaces import (
    PipelineStage,
    TranslationResponse,
    TranslationService,
    parse_direction,
)

logger = logging.getLogger(__name__)

_STAGE = PipelineStage.TRANSLATION.value

# Each instruction is written in the speaker's own language
DIRECTION_PROMPTS = {
    "zh-to-vi": (
        "你是一個專業的中文到越南文翻譯。\n"
        "請將用戶輸入的中文翻譯成自然流暢的越南文。\n"
        "語氣要友善、自然，像朋友之間的對話。\n"
        "只輸出譯文，不要加任何解釋或備注。"
    ),
    "vi-to-zh": (
        "Bạn là một dịch giả chuyên nghiệp từ tiếng Việt sang tiếng Trung.\n"
        "Hãy dịch văn bản tiếng Việt của người dùng sang tiếng Trung tự nhiên.\n"
        "Giọng điệu thân thiện, tự nhiên như cuộc trò chuyện giữa bạn bè.\n"
        "Chỉ xuất bản dịch, không thêm giải thích."
    ),
}

GENERIC_PROMPT = (
    "You are a professional interpreter translating {source} into {target}.\n"
    "Translate the user's message into natural, friendly {target}, "
    "as in a conversation between friends.\n"
    "Output only the translation, with no explanations or notes."
)


def build_system_prompt(direction: str) -> str:
    """
    System instruction for a translation direction.

    Raises:
        ValueError: If the direction tag is malformed
    """
    if direction in DIRECTION_PROMPTS:
        return DIRECTION_PROMPTS[direction]
    source, target = parse_direction(direction)
    return GENERIC_PROMPT.format(
        source=LANGUAGE_NAMES.get(source, source),
        target=LANGUAGE_NAMES.get(target, target),
    )


class OllamaTranslator(TranslationService):
    """Translates utterances with a chat model running under Ollama."""

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        base_url: str = DEFAULT_OLLAMA_BASE_URL,
        timeout: float = DEFAULT_OLLAMA_TIMEOUT,
        temperature: float = TRANSLATION_TEMPERATURE,
        max_tokens: int = TRANSLATION_MAX_TOKENS,
    ) -> None:
        """
        Initialize the translator.

        Args:
            model: Ollama model name
            base_url: Ollama service URL
            timeout: Request timeout in seconds
            temperature: Sampling temperature
            max_tokens: Upper bound on generated tokens
        """
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = ollama.AsyncClient(host=base_url)

    async def translate(self, text: str, direction: str) -> TranslationResponse:
        try:
            system_prompt = build_system_prompt(direction)
        except ValueError as e:
            raise ProviderError(_STAGE, str(e)) from e

        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._client.chat(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": text},
                    ],
                    options={
                        "temperature": self.temperature,
                        "num_predict": self.max_tokens,
                    },
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"❌ Translation timed out after {self.timeout}s")
            raise ProviderError(_STAGE, f"Translation timed out after {self.timeout}s") from e
        except Exception as e:
            logger.error(f"❌ Translation request failed: {e}")
            raise ProviderError(_STAGE, f"Translation request failed: {e}") from e

        try:
            translated = response["message"]["content"].strip()
        except (KeyError, TypeError, AttributeError) as e:
            raise ProviderError(_STAGE, f"Malformed translation response: {e}") from e

        if not translated:
            raise ProviderError(_STAGE, "Translation response was empty")

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.debug(f"🌐 [{direction}] {elapsed_ms}ms | {text!r} -> {translated!r}")
        return TranslationResponse(text=translated, elapsed_ms=elapsed_ms)
