import json
from unittest.mock import patch

import pytest

from recipe_ingest.extract import (
    SYSTEM_PROMPT,
    analyze_file,
    failed_record,
    fallback_fields,
    get_llm_client,
    render_prompt,
)
from recipe_ingest.llm_client import LLMCallError, LLMReply, MockLLMClient, OpenAILLMClient
from recipe_ingest.profiles import IngestionProfile
from recipe_ingest.schema import FallbackRecord, ParsedRecord
from recipe_ingest.settings import Settings


@pytest.fixture
def star_profile(tmp_path):
    return IngestionProfile(
        name="starsystem",
        source_dir=tmp_path / "starsystem",
        prompt="分析星级菜单：\n{{content}}",
        required_fields=["title", "starLevel", "dishes", "tags"],
        max_artifacts=3,
    )


def test_render_prompt_substitutes_content_once():
    assert render_prompt("A {{content}} B", "x") == "A x B"
    assert render_prompt("{{content}}", "has {{content}} inside") == "has {{content}} inside"


def test_render_prompt_requires_placeholder():
    with pytest.raises(ValueError):
        render_prompt("no placeholder here", "x")


def test_parsed_reply_becomes_record_with_relative_path(tips_profile, scripted_client):
    base = tips_profile.source_dir
    client = scripted_client(
        ['{"title": "学习焯水", "category": "基础知识", "tags": ["焯水"], "summary": "去腥"}']
    )

    record = analyze_file(
        base / "learn" / "学习焯水.md", "# 学习焯水", base_dir=base, profile=tips_profile, client=client
    )

    assert isinstance(record, ParsedRecord)
    assert record.file_path == "learn/学习焯水.md"
    assert record.error is None
    assert record.fields["category"] == "基础知识"

    call = client.calls[0]
    assert call["prompt"] == "请分析以下内容并返回JSON：\n# 学习焯水"
    assert call["system_prompt"] == SYSTEM_PROMPT
    assert call["max_tokens"] == 8000
    assert call["temperature"] == pytest.approx(0.3)


def test_token_budget_comes_from_settings(monkeypatch, tips_profile, scripted_client):
    monkeypatch.setenv("LLM_MAX_TOKENS", "1234")
    base = tips_profile.source_dir
    client = scripted_client(['{"title": "x"}'])

    analyze_file(base / "厨房准备.md", "# x", base_dir=base, profile=tips_profile, client=client)

    assert client.calls[0]["max_tokens"] == 1234


def test_missing_fields_are_backfilled(tips_profile, scripted_client):
    base = tips_profile.source_dir
    client = scripted_client(['{"title": "厨房准备", "tags": []}'])

    record = analyze_file(base / "厨房准备.md", "# x", base_dir=base, profile=tips_profile, client=client)

    assert record.fields == {
        "title": "厨房准备",
        "tags": [],
        "category": "未分类",
        "summary": "暂无描述",
    }


def test_truncated_reply_is_repaired(tips_profile, scripted_client):
    base = tips_profile.source_dir
    text = '{\n  "title": "焯水",\n  "category": "基础",\n  "tags": ["入门"],\n  "summary": "去腥'
    client = scripted_client([LLMReply(text=text, finish_reason="length", model="m")])

    record = analyze_file(base / "厨房准备.md", "# x", base_dir=base, profile=tips_profile, client=client)

    assert isinstance(record, ParsedRecord)
    assert record.fields == {"title": "焯水", "category": "基础", "tags": ["入门"], "summary": "暂无描述"}


def test_unrepairable_reply_falls_back_and_persists_failure(tmp_path, star_profile, scripted_client):
    base = star_profile.source_dir
    failure_dir = tmp_path / "output"
    client = scripted_client(["I'm sorry, I can't produce JSON for this file."])

    record = analyze_file(
        base / "3Star.md",
        "# 三星菜单",
        base_dir=base,
        profile=star_profile,
        client=client,
        failure_dir=failure_dir,
    )

    assert isinstance(record, FallbackRecord)
    assert record.file_path == "3Star.md"
    assert record.error
    assert record.fields["title"] == "3Star"
    assert record.fields["starLevel"] == 3
    assert record.fields["dishes"] == []
    assert record.fields["tags"] == []
    assert record.fields["difficultyDescription"] == "解析失败，请手动处理"

    failures = list((failure_dir / "fail").glob("ingest_failure_*.json"))
    assert len(failures) == 1
    payload = json.loads(failures[0].read_text(encoding="utf-8"))
    assert payload["file_path"] == "3Star.md"
    assert payload["provider"] == "scripted"
    assert payload["error_type"] == "JSONRepairError"
    assert payload["raw_output_sha256"]
    assert payload["raw_output_preview"] == ""


def test_fallback_level_defaults_to_one():
    assert fallback_fields("starsystem/menu.md")["starLevel"] == 1
    assert fallback_fields("starsystem/7Star.md")["starLevel"] == 7
    assert "error" not in fallback_fields("x.md")


def test_provider_errors_propagate(tips_profile, scripted_client):
    base = tips_profile.source_dir
    client = scripted_client([LLMCallError("APITimeoutError: timed out", provider="scripted")])

    with pytest.raises(LLMCallError):
        analyze_file(base / "厨房准备.md", "# x", base_dir=base, profile=tips_profile, client=client)


def test_empty_reply_is_a_provider_error(tips_profile, scripted_client):
    base = tips_profile.source_dir
    client = scripted_client(["   "])

    with pytest.raises(LLMCallError, match="empty"):
        analyze_file(base / "厨房准备.md", "# x", base_dir=base, profile=tips_profile, client=client)


def test_record_item_merges_bookkeeping_fields():
    parsed = ParsedRecord(fields={"title": "a"}, file_path="x/a.md", processed_at="2024-01-01 00:00:00")
    assert parsed.to_item() == {"title": "a", "filePath": "x/a.md", "processedAt": "2024-01-01 00:00:00"}

    fallback = FallbackRecord(fields={"title": "b"}, file_path="b.md", error="bad json")
    item = fallback.to_item()
    assert item["error"] == "bad json"
    assert item["filePath"] == "b.md"


def test_get_llm_client_follows_provider_setting(monkeypatch):
    assert isinstance(get_llm_client(), MockLLMClient)

    monkeypatch.setenv("LLM_PROVIDER", "carrier-pigeon")
    with pytest.raises(ValueError, match="Unsupported LLM_PROVIDER"):
        get_llm_client()


def test_openai_client_is_built_from_given_settings(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    settings = Settings(
        llm_provider="openai",
        llm_model="deepseek-ai/DeepSeek-R1-0528",
        openai_api_key="from-settings",
        openai_base_url="http://llm.local/v1",
        llm_timeout_seconds=7,
    )

    with patch("recipe_ingest.llm_client.OpenAI") as mock_class:
        client = get_llm_client(settings)

    assert isinstance(client, OpenAILLMClient)
    assert client.model == "deepseek-ai/DeepSeek-R1-0528"
    mock_class.assert_called_once_with(api_key="from-settings", base_url="http://llm.local/v1", timeout=7.0)


def test_failed_record_is_built_from_stem_and_content(tmp_path):
    profile = IngestionProfile(
        name="dishes",
        source_dir=tmp_path / "dishes",
        prompt="{{content}}",
        required_fields=["name", "category", "tags", "description"],
    )
    content = "# 红烧肉\n" + "肥而不腻" * 40

    record = failed_record(
        tmp_path / "dishes" / "meat_dish" / "红烧肉.md",
        content,
        base_dir=tmp_path / "dishes",
        profile=profile,
        error="APITimeoutError: timed out",
    )

    assert isinstance(record, FallbackRecord)
    assert record.file_path == "meat_dish/红烧肉.md"
    assert record.error == "APITimeoutError: timed out"
    assert record.fields["name"] == "红烧肉"
    assert record.fields["category"] == "未分类"
    assert record.fields["tags"] == []
    assert record.fields["description"] == "暂无描述"
    assert record.fields["summary"] == content[:100] + "..."
