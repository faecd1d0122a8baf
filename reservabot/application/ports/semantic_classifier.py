from __future__ import annotations

from abc import ABC, abstractmethod


class SemanticClassifierPort(ABC):
    @abstractmethod
    def classify(self, prompt: str) -> str:
        """
        Send a fully built prompt to the semantic model.

        Requirements:
        - Return the raw model text; it must be parseable as a JSON object with
          intention, confidence, extractedData, missingFields and suggestedReply
        - Raise LLMUpstreamError on provider, network or timeout failures
        - Raise LLMContractError on an empty response
        """
        raise NotImplementedError
