from typing import List, Optional
from fastapi import HTTPException
from scriptgenius.core.config import settings
from scriptgenius.core.exceptions import (
    ScriptGenerationError,
    ServiceNotConfiguredError,
    UpstreamAuthError,
    UpstreamRateLimitError,
)
from scriptgenius.ai.prompts import SCRIPT_PROMPT, SYSTEM_PROMPT, build_steering
import openai
import logging
import re

logger = logging.getLogger(__name__)

_BOLD_PATTERN = re.compile(r"\*\*(.*?)\*\*", re.DOTALL)


def clean_script(text: str) -> str:
    """Strip markdown bold markers and surrounding whitespace from model output."""
    return _BOLD_PATTERN.sub(r"\1", text or "").strip()


def classify_generation_error(error: Exception) -> HTTPException:
    """Map a provider failure onto the error surfaced to the client."""
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return UpstreamAuthError()
    if isinstance(error, openai.RateLimitError):
        return UpstreamRateLimitError()

    message = str(error).lower()
    if "api key" in message:
        return UpstreamAuthError()
    if "quota" in message or "rate limit" in message:
        return UpstreamRateLimitError()
    return ScriptGenerationError()


class ScriptChain:
    """LLM chain that writes short-form video scripts."""

    def __init__(self):
        self.llm = None
        self.prompt = None
        self.chain = None

    def _ensure_initialized(self):
        """Lazy initialization of chain components."""
        if self.chain is None:
            if not settings.OPENROUTER_API_KEY:
                logger.error("OPENROUTER_API_KEY is not set")
                raise ServiceNotConfiguredError("Script generation")

            logger.info("Initializing ScriptChain components...")
            from langchain_openai import ChatOpenAI
            from langchain_core.prompts import ChatPromptTemplate
            from langchain_core.output_parsers import StrOutputParser

            self.llm = ChatOpenAI(
                model=settings.LLM_MODEL,
                temperature=settings.LLM_TEMPERATURE,
                max_tokens=settings.LLM_MAX_TOKENS,
                api_key=settings.OPENROUTER_API_KEY,
                base_url=settings.OPENROUTER_BASE_URL
            )

            self.prompt = ChatPromptTemplate.from_messages([
                ("system", SYSTEM_PROMPT),
                ("human", SCRIPT_PROMPT),
            ])

            self.chain = self.prompt | self.llm | StrOutputParser()
            logger.info("ScriptChain initialized.")

    async def generate(
        self,
        topic: str,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None
    ) -> str:
        """Generate a script for a topic. Raises an HTTP error on provider failure."""
        self._ensure_initialized()

        try:
            raw = await self.chain.ainvoke({
                "topic": topic.strip(),
                "steering": build_steering(category, tags)
            })
        except Exception as e:
            logger.error(f"AI model error: {e}")
            raise classify_generation_error(e) from e

        script = clean_script(raw)
        if not script:
            logger.error("Empty response from AI model")
            raise ScriptGenerationError()
        return script


# Singleton instance
script_chain = ScriptChain()
