"""Pipeline services: the LLM matching collaborator."""

from services.llm_matching_service import LLMMatchingService, logic_based_matching

__all__ = [
    "LLMMatchingService",
    "logic_based_matching",
]
