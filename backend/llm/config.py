"""LLM backend settings and sampling parameters."""

import os
from dataclasses import dataclass, field, replace
from typing import Any

_DEFAULT_BASE_URL = "https://us-south.ml.cloud.ibm.com"
_DEFAULT_IAM_URL = "https://iam.cloud.ibm.com/identity/token"
_DEFAULT_MODEL_ID = "ibm/granite-3-8b-instruct"


@dataclass(frozen=True)
class LLMSettings:
    api_key: str | None = None
    project_id: str | None = None
    base_url: str = _DEFAULT_BASE_URL
    iam_url: str = _DEFAULT_IAM_URL
    model_id: str = _DEFAULT_MODEL_ID
    timeout_s: float = 30.0
    api_version: str = "2023-05-29"
    token_refresh_margin_s: float = 60.0  # refresh this long before expiry

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and bool(self.project_id)

    @property
    def generation_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/ml/v1/text/generation?version={self.api_version}"

    @classmethod
    def from_env(cls) -> "LLMSettings":
        return cls(
            api_key=os.getenv("WATSONX_API_KEY") or None,
            project_id=os.getenv("WATSONX_PROJECT_ID") or None,
            base_url=os.getenv("WATSONX_URL", _DEFAULT_BASE_URL),
            iam_url=os.getenv("WATSONX_IAM_URL", _DEFAULT_IAM_URL),
            model_id=os.getenv("WATSONX_MODEL_ID", _DEFAULT_MODEL_ID),
            timeout_s=float(os.getenv("LLM_TIMEOUT_S", "30")),
        )


@dataclass(frozen=True)
class SamplingParams:
    max_new_tokens: int = 500
    temperature: float = 0.7
    top_p: float = 0.9
    repetition_penalty: float = 1.1
    stop_sequences: tuple[str, ...] = field(default_factory=lambda: ("\n\n", "###", "---"))

    def with_temperature(self, temperature: float) -> "SamplingParams":
        return replace(self, temperature=temperature)

    def to_payload(self) -> dict[str, Any]:
        return {
            "max_new_tokens": self.max_new_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "repetition_penalty": self.repetition_penalty,
            "stop_sequences": list(self.stop_sequences),
        }


DEFAULT_SAMPLING = SamplingParams()
