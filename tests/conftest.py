"""Shared pytest fixtures."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, ConsolidationDefaults, DefaultsConfig, ModelConfig
from review_council.models import ChangedFile, ProviderResponse, ReviewContext, ReviewMetadata
from review_council.providers.base import AIProvider

# src/app.py: old line 11 replaced by new lines 11-12; old 12 is new 13.
SAMPLE_PATCH = "\n".join([
    "diff --git a/src/app.py b/src/app.py",
    "--- a/src/app.py",
    "+++ b/src/app.py",
    "@@ -10,3 +10,4 @@ def main():",
    "     setup()",
    "-    run(old=True)",
    "+    config = load()",
    "+    run(config)",
    "     teardown()",
])

README_PATCH = "\n".join([
    "diff --git a/README.md b/README.md",
    "--- a/README.md",
    "+++ b/README.md",
    "@@ -1,2 +1,3 @@",
    " # App",
    "+",
    "+Usage notes.",
    " More text.",
])


def suggestion_json(
    file: str = "src/app.py",
    line: int = 11,
    title: str = "Check load() result",
    type: str = "bug",
    confidence: float = 0.8,
    **extra,
) -> dict:
    return {
        "file": file,
        "line": line,
        "type": type,
        "title": title,
        "description": f"{title} before use.",
        "suggestion": "Handle the failure case.",
        "confidence": confidence,
        **extra,
    }


def response_json(suggestions: list[dict] | None = None, summary: str = "Looks mostly fine.", **extra) -> str:
    return json.dumps({"summary": summary, "suggestions": suggestions or [], **extra})


@pytest.fixture
def worktree(tmp_path: Path) -> Path:
    """Worktree holding the new-side versions of the sample files."""
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text(
        "\n".join(f"line {i}" for i in range(1, 21)) + "\n", encoding="utf-8"
    )
    (root / "README.md").write_text("# App\n\nUsage notes.\nMore text.\n", encoding="utf-8")
    return root


@pytest.fixture
def changed_files() -> list[ChangedFile]:
    return [ChangedFile(path="src/app.py", patch=SAMPLE_PATCH), ChangedFile(path="README.md", patch=README_PATCH)]


@pytest.fixture
def review_context(worktree: Path, changed_files: list[ChangedFile]) -> ReviewContext:
    return ReviewContext(
        review_id=42,
        changed_files=changed_files,
        worktree_path=str(worktree),
        metadata=ReviewMetadata(
            title="Load config before running",
            description="Moves config loading into main().",
            repository="acme/app",
            pr_number=7,
            base_branch="main",
            head_branch="feature/config",
        ),
    )


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="anthropic",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        output_dir=tmp_path / "output",
        voice_timeout_sec=30,
        consolidation_timeout_sec=60,
        default_tier="balanced",
        consolidation=ConsolidationDefaults(provider="claude", model="claude-opus-4-1"),
        default_voice="claude",
    )


@pytest.fixture
def sample_app_config(sample_defaults_config: DefaultsConfig) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-5",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=4096,
    )
    return AppConfig(
        defaults=sample_defaults_config,
        models={"claude": model_cfg},
        available_providers={"claude"},
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str | None = None) -> None:
        self._name = provider_name
        self._response_content = response_content if response_content is not None else response_json()
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=ProviderResponse(
                provider=provider_name,
                model="mock-model",
                content=self._response_content,
                latency_sec=0.1,
                token_count=10,
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(  # type: ignore[override]
        self,
        prompt: str,
        *,
        timeout_sec: float,
        model: str | None = None,
        tier: str | None = None,
    ) -> ProviderResponse:
        """Default implementation; replaced by AsyncMock in __init__."""
        return ProviderResponse(
            provider=self._name,
            model=model or "mock-model",
            content=self._response_content,
            latency_sec=0.1,
            token_count=10,
        )


def make_response(content: str, provider: str = "mock") -> ProviderResponse:
    return ProviderResponse(provider=provider, model="mock-model", content=content, latency_sec=0.1, token_count=10)


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()
