from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from recipe_ingest.settings import Settings, get_settings

CONTENT_PLACEHOLDER = "{{content}}"

DEFAULT_REQUIRED_FIELDS = ["title", "category", "tags", "summary"]


class UnknownProfileError(KeyError):
    pass


class IngestionProfile(BaseModel):
    name: str = Field(..., min_length=1)
    source_dir: Path
    prompt: str
    required_fields: list[str] = Field(default_factory=lambda: list(DEFAULT_REQUIRED_FIELDS))
    max_artifacts: int = Field(10, ge=1)

    @field_validator("prompt")
    @classmethod
    def validate_placeholder(cls, v: str) -> str:
        count = v.count(CONTENT_PLACEHOLDER)
        if count != 1:
            raise ValueError(
                f"Prompt must contain {CONTENT_PLACEHOLDER} exactly once (found {count})."
            )
        return v


DISHES_PROMPT = """
请分析以下菜品相关的markdown文件内容，并提供以下信息：
  1. 菜品名称和描述
  2. 菜品分类（基于文件路径）
  3. 星级难度（1-5星，根据文件中的★符号或复杂程度判断）
  4. 预计制作时间（根据操作步骤估算，单位：分钟）
  5. 服务人数（根据分量描述）
  6. 必备原料和工具列表（从"必备原料和工具"部分提取）
  7. 制作步骤（从"操作"部分提取，按顺序编号）
  8. 标签（根据菜品特点生成3-8个标签）
  9. 适合人群与重要提示

请以JSON格式返回结果，包含以下字段：
- name: 菜品名称
- description: 菜品描述
- category: 菜品分类（从文件路径提取）
- starLevel: 星级难度（1-5）
- estimatedTime: 预计制作时间（分钟）
- servings: 服务人数
- ingredients: 原料列表 [{ name, amount, unit, isOptional }]
- tools: 工具列表 [string]
- steps: 制作步骤 [{ stepNumber, instruction, tips, estimatedTime }]
- tags: 标签数组
- suitableFor: 适合人群数组
- importantNotes: 重要提示数组

文件内容：
{{content}}
"""

TIPS_PROMPT = """
请分析以下烹饪相关的markdown文件内容，并提供以下信息：
  1. 文件标题和主题
  2. 内容分类（例如：基础知识、烹饪技巧、食材选择、厨房工具等）
  3. 难度级别（初级、中级、高级）
  4. 关键词标签（3-8个）
  5. 内容摘要（50-100字）
  6. 适用人群与重要提示

请以JSON格式返回结果，包含以下字段：
- title: 标题
- category: 分类
- difficulty: 难度级别
- tags: 关键词标签数组
- summary: 内容摘要
- targetAudience: 适用人群
- importantNotes: 重要提示数组

文件内容：
{{content}}
"""

STARSYSTEM_PROMPT = """
你是一个专业的菜谱分析师，请分析以下星级菜单的markdown文件内容。

请严格按照以下JSON格式返回结果，保持紧凑格式，不要添加任何其他文本：

{
  "title": "菜单标题",
  "starLevel": 数字(1-7),
  "dishes": [{"name": "菜品名称", "filePath": "文件路径", "category": "分类"}],
  "difficultyDescription": "简短难度描述(20字以内)",
  "recommendedFor": ["推荐人群"],
  "tags": ["标签1", "标签2"]
}

分析要求：
1. 从文件名中提取星级信息 (1-7)
2. 解析markdown链接，提取菜品信息
3. 根据菜品路径判断分类 (如: aquatic, breakfast, meat_dish等)

文件内容：
{{content}}
"""

# name -> (subdirectory under CONTENT_ROOT, prompt, required fields, artifacts kept)
BUILTIN_PROFILES = {
    "dishes": ("dishes", DISHES_PROMPT, ["name", "category", "tags", "description"], 10),
    "tips": ("tips", TIPS_PROMPT, ["title", "category", "tags", "summary"], 5),
    "starsystem": ("starsystem", STARSYSTEM_PROMPT, ["title", "starLevel", "dishes", "tags"], 3),
}


def list_profiles() -> list[str]:
    return list(BUILTIN_PROFILES)


def get_profile(name: str, settings: Settings | None = None) -> IngestionProfile:
    s = settings or get_settings()
    if name not in BUILTIN_PROFILES:
        raise UnknownProfileError(f"Unknown ingestion profile: {name}")

    subdir, prompt, required, keep = BUILTIN_PROFILES[name]
    return IngestionProfile(
        name=name,
        source_dir=Path(s.content_root) / subdir,
        prompt=prompt,
        required_fields=list(required),
        max_artifacts=keep,
    )
