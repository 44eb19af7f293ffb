from __future__ import annotations

import os
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from utils import mask_secret


class Configuration(BaseModel):
    # Google Places
    google_maps_api_key: Optional[str] = Field(default=None)
    maps_base_url: str = Field(default="https://maps.googleapis.com/maps/api")
    maps_timeout: int = Field(default=15)
    maps_cache_ttl: int = Field(default=60 * 30)
    nearby_radius_m: int = Field(default=2000)
    restaurant_radius_m: int = Field(default=1500)
    max_candidates: int = Field(default=5)

    # LLM
    llm_provider: str = Field(default="huggingface")
    huggingface_api_key: Optional[str] = Field(default=None)
    huggingface_base_url: str = Field(default="https://api-inference.huggingface.co/models")
    llm_model_id: str = Field(default="EleutherAI/gpt-neo-1.3B")
    # gemini key, only used when llm_provider == "google"
    llm_api_key: Optional[str] = Field(default=None)
    llm_timeout: int = Field(default=300)
    llm_max_new_tokens: int = Field(default=800)
    llm_temperature: float = Field(default=0.7)

    # Server
    app_env: str = Field(default="production")
    port: int = Field(default=5000)

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        load_dotenv()
        raw: dict[str, Any] = {}

        env_map = {
            "google_maps_api_key": os.getenv("GOOGLE_MAPS_API_KEY"),
            "maps_base_url": os.getenv("MAPS_BASE_URL"),
            "maps_timeout": os.getenv("MAPS_TIMEOUT"),
            "maps_cache_ttl": os.getenv("MAPS_CACHE_TTL"),
            "nearby_radius_m": os.getenv("NEARBY_RADIUS_M"),
            "restaurant_radius_m": os.getenv("RESTAURANT_RADIUS_M"),
            "max_candidates": os.getenv("MAX_CANDIDATES"),
            # LLM
            "llm_provider": os.getenv("LLM_PROVIDER"),
            "huggingface_api_key": os.getenv("HUGGINGFACE_API_KEY"),
            "huggingface_base_url": os.getenv("HUGGINGFACE_BASE_URL"),
            "llm_model_id": os.getenv("LLM_MODEL_ID") or os.getenv("GPTJ_MODEL_ID"),
            "llm_api_key": os.getenv("LLM_API_KEY"),
            "llm_timeout": os.getenv("LLM_TIMEOUT"),
            "llm_max_new_tokens": os.getenv("LLM_MAX_NEW_TOKENS"),
            "llm_temperature": os.getenv("LLM_TEMPERATURE"),
            "app_env": os.getenv("APP_ENV"),
            "port": os.getenv("PORT"),
        }

        for k, v in env_map.items():
            if v is None or v == "":
                continue
            raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    @property
    def debug(self) -> bool:
        return self.app_env.strip().lower() == "development"

    def require_maps(self) -> None:
        if not self.google_maps_api_key:
            raise ValueError("GOOGLE_MAPS_API_KEY is required")

    def require_llm(self) -> None:
        provider = self.llm_provider.lower()
        if provider == "huggingface" and not self.huggingface_api_key:
            raise ValueError("HUGGINGFACE_API_KEY is required")
        if provider == "google" and not self.llm_api_key:
            raise ValueError("LLM_API_KEY is required for the google provider")
        if provider not in {"huggingface", "google"}:
            raise ValueError(f"unsupported LLM_PROVIDER: {self.llm_provider}")

    def log_summary(self) -> str:
        return (
            "env=%s maps_key=%s maps_timeout=%s llm_provider=%s model=%s llm_timeout=%s hf_key=%s"
            % (
                self.app_env,
                mask_secret(self.google_maps_api_key),
                self.maps_timeout,
                self.llm_provider,
                self.llm_model_id,
                self.llm_timeout,
                mask_secret(self.huggingface_api_key),
            )
        )
