from pathlib import Path

import pytest

from recipe_ingest.llm_client import LLMReply
from recipe_ingest.profiles import IngestionProfile

TIP_FILES = {
    "learn/学习焯水.md": "# 学习焯水\n\n焯水可以去除肉类的血水和腥味。\n\n## 操作\n\n- 冷水下锅\n",
    "learn/学习炒与煎.md": "# 学习炒与煎\n\n炒和煎是最常见的烹饪方式。\n\n## 火候\n",
    "厨房准备.md": "# 厨房准备\n\n开始做饭前需要准备的工具。\n\n## 工具\n\n## 调料\n",
}


@pytest.fixture(autouse=True)
def force_mock_provider(monkeypatch, tmp_path):
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("LLM_MODEL", "mock-1")
    monkeypatch.setenv("MOCK_CHAOS", "0")
    monkeypatch.setenv("PACING_DELAY_SECONDS", "0")
    monkeypatch.setenv("KEEP_RAW_LLM_OUTPUT", "0")
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "output"))
    monkeypatch.setenv("CONTENT_ROOT", str(tmp_path / "content"))


@pytest.fixture
def content_root(tmp_path) -> Path:
    root = tmp_path / "content"
    for rel, text in TIP_FILES.items():
        path = root / "tips" / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def output_dir(tmp_path) -> Path:
    return tmp_path / "output"


@pytest.fixture
def tips_profile(content_root) -> IngestionProfile:
    return IngestionProfile(
        name="tips",
        source_dir=content_root / "tips",
        prompt="请分析以下内容并返回JSON：\n{{content}}",
        required_fields=["title", "category", "tags", "summary"],
        max_artifacts=3,
    )


class ScriptedClient:
    """LLM client that plays back canned replies (or raises canned errors) in order."""

    provider = "scripted"
    model = "scripted-1"

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def complete(self, prompt, *, system_prompt, max_tokens, temperature):
        self.calls.append(
            {
                "prompt": prompt,
                "system_prompt": system_prompt,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return LLMReply(text=reply, finish_reason="stop", model=self.model)
        return reply


@pytest.fixture
def scripted_client():
    return ScriptedClient
