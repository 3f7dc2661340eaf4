import json
import random
import re
from dataclasses import dataclass
from typing import Protocol

import openai
from openai import OpenAI

from recipe_ingest.settings import get_settings


class LLMCallError(RuntimeError):
    def __init__(self, message: str, *, provider: str, raw: str | None = None):
        super().__init__(message)
        self.provider = provider
        self.raw = raw


@dataclass(frozen=True)
class LLMReply:
    text: str
    finish_reason: str | None = None
    model: str | None = None

    @property
    def truncated(self) -> bool:
        """True when the provider stopped because the output-token budget ran out."""
        return self.finish_reason == "length"


class LLMClient(Protocol):
    provider: str

    def complete(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> LLMReply: ...


class OpenAILLMClient:
    """Chat-completions client for OpenAI and OpenAI-compatible endpoints."""

    provider = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ):
        s = get_settings()
        api_key = api_key or s.openai_api_key
        if not api_key:
            raise ValueError("OPENAI_API_KEY is required for LLM_PROVIDER=openai")

        self.model = model or s.llm_model
        self._client = OpenAI(
            api_key=api_key,
            base_url=base_url or s.openai_base_url,
            timeout=timeout if timeout is not None else s.llm_timeout_seconds,
        )

    def complete(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> LLMReply:
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIError as e:
            raise LLMCallError(f"{type(e).__name__}: {e}", provider=self.provider) from e

        if not response.choices:
            raise LLMCallError("LLM response had no choices", provider=self.provider)

        choice = response.choices[0]
        content = choice.message.content if choice.message else None
        if not content:
            raise LLMCallError("LLM response content was empty", provider=self.provider)

        return LLMReply(
            text=content.strip(),
            finish_reason=choice.finish_reason,
            model=response.model,
        )


_HEADING = re.compile(r"^#\s+(.+?)\s*$", re.MULTILINE)
_SUBHEADING = re.compile(r"^##\s+(.+?)\s*$", re.MULTILINE)
_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_LEVEL = re.compile(r"(\d+)\s*Star", re.IGNORECASE)

CHAOS_MODES = ("fence", "reasoning", "trailing_comma", "truncate")


class MockLLMClient:
    """
    Offline stand-in that answers from the markdown embedded in the prompt.
    - Deterministic for the same prompt
    - With chaos enabled, mangles replies the way real models do (fences,
      reasoning preambles, trailing commas, truncation)
    """

    provider = "mock"
    model = "mock-1"

    def __init__(
        self,
        *,
        chaos_enabled: bool = False,
        chaos_rate: float = 0.0,
        chaos_seed: int | None = None,
    ):
        self.chaos_enabled = chaos_enabled
        self.chaos_rate = chaos_rate
        self._rng = random.Random(chaos_seed)

    def complete(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> LLMReply:
        text = json.dumps(self._build_payload(prompt), ensure_ascii=False, indent=2)

        if self.chaos_enabled and self._rng.random() < self.chaos_rate:
            mode = self._rng.choice(CHAOS_MODES)
            if mode == "truncate":
                return LLMReply(text=text[: len(text) * 3 // 5], finish_reason="length", model=self.model)
            text = _apply_chaos(text, mode)

        return LLMReply(text=text, finish_reason="stop", model=self.model)

    @staticmethod
    def _build_payload(prompt: str) -> dict:
        heading = _HEADING.search(prompt)
        title = heading.group(1) if heading else "未命名"
        subheadings = _SUBHEADING.findall(prompt)

        summary = ""
        if heading:
            for line in prompt[heading.end():].splitlines():
                line = line.strip()
                if line and not line.startswith(("#", "-", "*", "|", "!")):
                    summary = line[:100]
                    break

        level = _LEVEL.search(title)
        stars = prompt.count("★")
        return {
            "title": title,
            "name": title,
            "category": "mock",
            "starLevel": int(level.group(1)) if level else max(stars, 1),
            "tags": subheadings[:5],
            "summary": summary,
            "description": summary,
            "dishes": [
                {"name": name, "filePath": path, "category": path.split("/")[-2] if "/" in path else ""}
                for name, path in _LINK.findall(prompt)
            ],
        }


def _apply_chaos(text: str, mode: str) -> str:
    if mode == "fence":
        return f"```json\n{text}\n```"
    if mode == "reasoning":
        return f"<think>\nLet me look at the recipe first.\n</think>\n{text}"
    if mode == "trailing_comma":
        return re.sub(r"\n}$", ",\n}", text)
    return text
