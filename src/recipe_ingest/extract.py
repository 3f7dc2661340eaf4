import logging
import re
from pathlib import Path
from typing import Any

from recipe_ingest.llm_client import LLMCallError, LLMClient, LLMReply, MockLLMClient, OpenAILLMClient
from recipe_ingest.persist_failures import persist_failure
from recipe_ingest.profiles import CONTENT_PLACEHOLDER, IngestionProfile
from recipe_ingest.repair import JSONRepairError, parse_json_reply
from recipe_ingest.schema import ExtractedRecord, FallbackRecord, ParsedRecord
from recipe_ingest.settings import Settings, get_settings
from recipe_ingest.validate import UNCATEGORIZED, backfill_required_fields

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "你是一个专业的内容分析助手，擅长分析和归纳各种类型的内容。"
    "请确保你的回答是有效的JSON格式，不要添加任何额外的解释文字。"
)

PARSE_FAILED_DESCRIPTION = "解析失败，请手动处理"
SUMMARY_PREVIEW_CHARS = 100

_LEADING_LEVEL = re.compile(r"^(\d+)")


def render_prompt(template: str, content: str) -> str:
    if CONTENT_PLACEHOLDER not in template:
        raise ValueError(f"Prompt template has no {CONTENT_PLACEHOLDER} placeholder")
    return template.replace(CONTENT_PLACEHOLDER, content, 1)


def request_reply(client: LLMClient, prompt: str, settings: Settings | None = None) -> LLMReply:
    s = settings or get_settings()
    reply = client.complete(
        prompt,
        system_prompt=SYSTEM_PROMPT,
        max_tokens=s.llm_max_tokens,
        temperature=s.llm_temperature,
    )
    if not reply.text.strip():
        raise LLMCallError("LLM response content was empty", provider=client.provider)
    if reply.truncated:
        logger.warning("LLM reply was truncated by the token budget (max_tokens=%d)", s.llm_max_tokens)
    return reply


def fallback_fields(file_path: Path | str) -> dict[str, Any]:
    """Minimal synthetic fields for a file whose reply could not be parsed."""
    stem = Path(file_path).stem
    level = _LEADING_LEVEL.match(stem)
    return {
        "title": stem,
        "starLevel": int(level.group(1)) if level else 1,
        "dishes": [],
        "tags": [],
        "recommendedFor": [],
        "difficultyDescription": PARSE_FAILED_DESCRIPTION,
    }


def failed_record(
    file_path: Path,
    content: str,
    *,
    base_dir: Path,
    profile: IngestionProfile,
    error: str,
) -> FallbackRecord:
    """Stand-in record for a file whose read or model call raised."""
    preview = content[:SUMMARY_PREVIEW_CHARS] + "..." if content else ""
    fields = {
        "title": Path(file_path).stem,
        "category": UNCATEGORIZED,
        "tags": [],
        "summary": preview,
    }
    fields, _ = backfill_required_fields(fields, profile.required_fields, file_path)
    return FallbackRecord(
        fields=fields,
        file_path=Path(file_path).relative_to(base_dir).as_posix(),
        error=error,
    )


def analyze_file(
    file_path: Path,
    content: str,
    *,
    base_dir: Path,
    profile: IngestionProfile,
    client: LLMClient,
    settings: Settings | None = None,
    failure_dir: Path | None = None,
) -> ExtractedRecord:
    """
    Run one source file through the model and return a validated record.
    - Provider and network errors propagate; the caller decides what to do per file
    - An unrepairable reply becomes a FallbackRecord instead of raising
    """
    s = settings or get_settings()
    relative = Path(file_path).relative_to(base_dir).as_posix()

    reply = request_reply(client, render_prompt(profile.prompt, content), s)

    try:
        fields = parse_json_reply(reply.text, truncated=reply.truncated)
        error = None
    except JSONRepairError as e:
        logger.error("Falling back to a synthetic record for %s: %s", relative, e)
        fields = fallback_fields(file_path)
        error = str(e)
        if failure_dir is not None:
            fail_path = persist_failure(
                output_dir=failure_dir,
                file_path=relative,
                provider=client.provider,
                model=reply.model or s.llm_model,
                error_type=type(e).__name__,
                error_message=str(e),
                raw_output=e.raw,
                keep_raw=s.keep_raw_llm_output,
            )
            logger.error("Persisted failure artifact to: %s", fail_path)

    fields, _ = backfill_required_fields(fields, profile.required_fields, file_path)

    if error is not None:
        return FallbackRecord(fields=fields, file_path=relative, error=error)
    return ParsedRecord(fields=fields, file_path=relative)


def get_llm_client(settings: Settings | None = None) -> LLMClient:
    s = settings or get_settings()
    if s.llm_provider == "mock":
        seed_raw = s.mock_chaos_seed.strip()
        return MockLLMClient(
            chaos_enabled=s.mock_chaos,
            chaos_rate=s.mock_chaos_rate,
            chaos_seed=int(seed_raw) if seed_raw.isdigit() else None,
        )
    if s.llm_provider == "openai":
        return OpenAILLMClient(
            api_key=s.openai_api_key,
            base_url=s.openai_base_url,
            model=s.llm_model,
            timeout=s.llm_timeout_seconds,
        )
    raise ValueError(f"Unsupported LLM_PROVIDER: {s.llm_provider}")
