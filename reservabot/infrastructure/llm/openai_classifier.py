from __future__ import annotations

from openai import OpenAI

from reservabot.application.exceptions import LLMContractError, LLMUpstreamError
from reservabot.application.ports.semantic_classifier import SemanticClassifierPort


class OpenAISemanticClassifier(SemanticClassifierPort):
    """
    OpenAI-backed adapter implementing SemanticClassifierPort.

    Contract guarantees:
    - classify returns the raw, non-empty model text (JSON mode)
    - Raises:
        LLMUpstreamError: networking/provider failures and timeouts
        LLMContractError: empty response text
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.0,
        timeout_seconds: float = 10.0,
        max_tokens: int = 600,
    ) -> None:
        self.client = OpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    def classify(self, prompt: str) -> str:
        try:
            resp = self.client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": "Return only valid JSON. Do not include markdown or extra text."},
                    {"role": "user", "content": prompt},
                ],
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise LLMUpstreamError(f"OpenAI API error: {e}") from e

        content = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        if not content:
            raise LLMContractError("Semantic classifier returned empty response text.")

        return content
