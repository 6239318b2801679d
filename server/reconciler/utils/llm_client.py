"""
AI fallback client backed by a local Ollama model (through LangChain)
"""
import json
from typing import Dict, Any, Optional
from loguru import logger

from ..config import get_llm
from .errors import ParseError


def _strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith('```json'):
        cleaned = cleaned[7:]
    elif cleaned.startswith('```'):
        cleaned = cleaned[3:]
    if cleaned.endswith('```'):
        cleaned = cleaned[:-3]
    return cleaned.strip()


class LLMClient:
    """Thin wrapper around the LangChain Ollama LLM"""

    def __init__(self, llm=None):
        # anything exposing ``ainvoke(prompt) -> str`` works here
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm(json_mode=True)
        return self._llm

    async def complete_raw(self, prompt: str) -> str:
        response = await self.llm.ainvoke(prompt)
        # chat models return a message object, plain LLMs return a string
        return getattr(response, "content", response) or ""

    async def complete_json(self, prompt: str) -> Dict[str, Any]:
        """Ask for a JSON object; raises ParseError carrying the raw text when it is not one"""
        raw_text = await self.complete_raw(prompt)
        cleaned = _strip_code_fences(raw_text)

        start = cleaned.find('{')
        end = cleaned.rfind('}')
        if start == -1 or end <= start:
            raise ParseError("No JSON object in model output", raw_text=raw_text)

        try:
            result = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON in model output: {e}", raw_text=raw_text)

        if not isinstance(result, dict):
            raise ParseError("Model output is not a JSON object", raw_text=raw_text)
        return result

    async def complete(self, prompt: str, expect_structured: bool = True) -> Dict[str, Any]:
        """Never raises; an empty dict means the model gave nothing usable"""
        try:
            if expect_structured:
                return await self.complete_json(prompt)
            return {"text": (await self.complete_raw(prompt)).strip()}
        except ParseError as e:
            logger.warning(f"🤖 AI response could not be parsed: {e}")
            logger.debug(f"Model output: {e.raw_text[:500]}")
        except Exception as e:
            logger.warning(f"🤖 AI call failed: {str(e)}")
        return {}


def build_lookup_prompt(title: str, authors: Optional[str] = None, year: Optional[str] = None) -> str:
    """Prompt asking the model for bibliographic details of a known work"""
    details = [f'Title: "{title}"']
    if authors:
        details.append(f"Authors: {authors}")
    if year:
        details.append(f"Year: {year}")

    return f"""You are a bibliographic assistant. Give the publication details for this work.

{chr(10).join(details)}

Return ONLY a valid JSON object with any of these fields you are confident about:
{{
    "title": "full title",
    "date": "publication year",
    "publicationTitle": "journal or book title",
    "publisher": "publisher",
    "volume": "volume",
    "issue": "issue",
    "pages": "page range",
    "DOI": "DOI",
    "ISBN": "ISBN",
    "abstractNote": "abstract",
    "url": "url"
}}

Rules:
1. Omit any field you are not sure about, never guess
2. Return ONLY the JSON object, no additional text
"""
