from __future__ import annotations

from typing import Any, Optional

import httpx
import requests
from google import genai
from google.genai import types as genai_types
from loguru import logger

from config import Configuration
from utils import strip_thinking_tokens


class LLMError(RuntimeError):
    pass


class LLMTimeoutError(LLMError):
    """No response from the model server within the timeout."""


class LLMUpstreamError(LLMError):
    """The model server answered with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMSetupError(LLMError):
    """The request could not be built or the response could not be read."""


class LanguageModelClient:
    """Text generation over the Hugging Face Inference API or Gemini."""

    def __init__(self, cfg: Configuration, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.provider = (cfg.llm_provider or "huggingface").lower()
        self.model_id = cfg.llm_model_id
        self.session = session or requests.Session()
        self._gemini: Optional[genai.Client] = None

    def generate(self, prompt: str, *, max_tokens: Optional[int] = None, temperature: Optional[float] = None) -> str:
        max_tokens = max_tokens or self.cfg.llm_max_new_tokens
        temperature = self.cfg.llm_temperature if temperature is None else temperature
        logger.debug("llm generate provider={} model={} prompt_len={}", self.provider, self.model_id, len(prompt))
        if self.provider == "google":
            text = self._generate_gemini(prompt, max_tokens, temperature)
        elif self.provider == "huggingface":
            text = self._generate_huggingface(prompt, max_tokens, temperature)
        else:
            raise LLMSetupError(f"unsupported provider: {self.provider}")
        return strip_thinking_tokens(text)

    def _generate_huggingface(self, prompt: str, max_tokens: int, temperature: float) -> str:
        if not self.cfg.huggingface_api_key:
            raise LLMSetupError("HUGGINGFACE_API_KEY is not configured")
        url = f"{self.cfg.huggingface_base_url.rstrip('/')}/{self.model_id}"
        headers = {
            "Authorization": f"Bearer {self.cfg.huggingface_api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": max_tokens,
                "temperature": temperature,
                "top_p": 0.95,
                "do_sample": True,
                "return_full_text": False,
            },
            "options": {"use_cache": True, "wait_for_model": True},
        }
        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=self.cfg.llm_timeout)
        except requests.Timeout as exc:
            logger.error("llm request timed out after {}s", self.cfg.llm_timeout)
            raise LLMTimeoutError("No response from API server") from exc
        except requests.ConnectionError as exc:
            logger.error("llm connection failed: {}", exc)
            raise LLMTimeoutError("No response from API server") from exc
        except requests.RequestException as exc:
            raise LLMSetupError(str(exc)) from exc

        if not resp.ok:
            message = _error_message(resp)
            logger.error("llm upstream {}: {}", resp.status_code, message)
            raise LLMUpstreamError(message, status_code=resp.status_code)

        try:
            data: Any = resp.json()
        except ValueError as exc:
            raise LLMSetupError("invalid json response") from exc

        if isinstance(data, list) and data and isinstance(data[0], dict):
            text = data[0].get("generated_text")
        elif isinstance(data, dict):
            if data.get("error"):
                raise LLMUpstreamError(str(data["error"]), status_code=resp.status_code)
            text = data.get("generated_text")
        else:
            text = None
        if text is None:
            raise LLMSetupError("response did not contain generated_text")
        logger.debug("llm response received, length={}", len(text))
        return str(text)

    def _client(self) -> genai.Client:
        if self._gemini is None:
            if not self.cfg.llm_api_key:
                raise LLMSetupError("LLM_API_KEY is not configured")
            try:
                self._gemini = genai.Client(api_key=self.cfg.llm_api_key)
            except Exception as exc:
                raise LLMSetupError(f"gemini client init failed: {exc}") from exc
        return self._gemini

    def _generate_gemini(self, prompt: str, max_tokens: int, temperature: float) -> str:
        client = self._client()
        try:
            response = client.models.generate_content(
                model=self.model_id,
                contents=prompt,
                config=genai_types.GenerateContentConfig(
                    max_output_tokens=max_tokens,
                    temperature=temperature,
                    http_options=genai_types.HttpOptions(timeout=self.cfg.llm_timeout * 1000),
                ),
            )
        except (httpx.TimeoutException, TimeoutError) as exc:
            raise LLMTimeoutError("No response from API server") from exc
        except Exception as exc:
            logger.error("gemini generate failed: {}", exc)
            raise LLMUpstreamError(str(exc)) from exc
        return response.text or ""


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:300] or f"HTTP {resp.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return str(body)[:300]
