from typing import List, Optional
from pydantic import BaseModel, Field


class LLMOptions(BaseModel):
    """Uniform request options translated by each provider"""
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(1000, gt=0)
    top_p: float = Field(1.0, ge=0.0, le=1.0)
    stop_sequences: List[str] = Field(default_factory=list)
    system_prompt: Optional[str] = None

    @classmethod
    def default(cls) -> "LLMOptions":
        return cls()

    @classmethod
    def planning(cls) -> "LLMOptions":
        """Balanced creativity with room for a structured plan"""
        return cls(temperature=0.7, max_tokens=1500)

    @classmethod
    def chat(cls) -> "LLMOptions":
        return cls(temperature=0.8, max_tokens=500)

    @classmethod
    def deterministic(cls) -> "LLMOptions":
        return cls(temperature=0.0, max_tokens=1000)

    def with_system_prompt(self, system_prompt: Optional[str]) -> "LLMOptions":
        return self.model_copy(update={"system_prompt": system_prompt})

    def with_temperature(self, temperature: float) -> "LLMOptions":
        return self.model_validate({**self.model_dump(), "temperature": temperature})

    def with_max_tokens(self, max_tokens: int) -> "LLMOptions":
        return self.model_validate({**self.model_dump(), "max_tokens": max_tokens})
