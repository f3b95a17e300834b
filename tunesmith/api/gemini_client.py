"""
Gemini REST API client.
Sends prompts that must be answered with JSON and lists the available models.
"""

import json
import logging
import re
from typing import Dict, Any, List, Optional

import aiohttp

from tunesmith.api.base_client import APIError, BaseAPIClient, LLMResponseError

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"```$")

def parse_llm_json(raw_text: str) -> Any:
    """Parse model output as JSON after stripping Markdown code fences."""
    text = (raw_text or "").strip()
    if text.startswith("```"):
        text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text)).strip()

    try:
        return json.loads(text)
    except ValueError as e:
        snippet = text[:500]
        logger.error(f"Failed to parse Gemini response: {snippet}{'...' if len(text) > 500 else ''}")
        raise LLMResponseError("Gemini response was not valid JSON") from e

class GeminiClient(BaseAPIClient):
    """Gemini generateContent client with JSON response mode."""

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: int = 120,
        session: Optional[aiohttp.ClientSession] = None
    ):
        super().__init__(base_url=base_url, timeout=timeout, session=session)
        self.api_key = api_key
        self.default_model = default_model

    def _get_auth_headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise APIError("GEMINI_API_KEY is not configured.")
        return {"x-goog-api-key": self.api_key}

    @staticmethod
    def _model_path(model_name: str) -> str:
        return model_name if model_name.startswith("models/") else f"models/{model_name}"

    async def generate_text(self, prompt: str, model_name: Optional[str] = None) -> str:
        """Send a prompt and return the concatenated text of the first candidate."""
        model = self._model_path(model_name or self.default_model)
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"}
        }

        logger.info(f"Sending request to Gemini API ({model})")
        result = await self._make_request("POST", f"{model}:generateContent", data=payload)
        logger.info("Received response from Gemini API")

        candidates = result.get("candidates") or []
        if not candidates:
            raise LLMResponseError("Gemini returned no candidates", body=result)

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        if not text.strip():
            raise LLMResponseError("Gemini returned an empty response", body=result)
        return text

    async def generate_json(self, prompt: str, model_name: Optional[str] = None) -> Any:
        """Send a prompt and parse the answer as JSON."""
        text = await self.generate_text(prompt, model_name)
        return parse_llm_json(text)

    async def list_models(self) -> Dict[str, Any]:
        """
        List models that support content generation.

        Returns:
            ``{"models": [...], "default_model": str}`` sorted by display name
        """
        logger.info("Fetching Gemini model catalog")
        result = await self._make_request("GET", "models", params={"pageSize": 50})

        models: List[Dict[str, Any]] = []
        for model in result.get("models", []):
            if "generateContent" not in (model.get("supportedGenerationMethods") or []):
                continue
            models.append({
                "name": model.get("name"),
                "display_name": model.get("displayName") or model.get("name"),
                "description": model.get("description", ""),
                "input_token_limit": model.get("inputTokenLimit"),
                "output_token_limit": model.get("outputTokenLimit")
            })

        models.sort(key=lambda entry: entry["display_name"] or "")
        return {"models": models, "default_model": self.default_model}
