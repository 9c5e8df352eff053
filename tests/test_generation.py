"""
tests/test_generation.py — Unit tests for the multi-provider fan-out.

Run with:  pytest tests/test_generation.py -v

Providers are stub adapters; the draft store is a recording fake, so these
tests exercise only the coordinator.
"""

import asyncio
import itertools
from types import SimpleNamespace

import pytest

from src.integrations.llm_providers import PROVIDER_IDS, ProviderAdapter
from src.services.generation import SYSTEM_PROMPT, GenerationService

LABELS = dict(zip(PROVIDER_IDS, ["GPT-OSS", "Gemma", "GLM", "Gemini", "Groq", "Claude"]))


class StubAdapter(ProviderAdapter):
    def __init__(self, provider_id, fail=False, delay=0.0, started=None):
        super().__init__(provider_id, LABELS[provider_id], "key", "model")
        self.fail = fail
        self.delay = delay
        self.started = started
        self.calls = []

    async def _call(self, prompt, system_prompt):
        self.calls.append((prompt, system_prompt))
        if self.started is not None:
            self.started.append(self.provider_id)
        await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError(f"{self.provider_id} down")
        return f"{self.provider_id} says: {prompt}"


class BrokenAdapter(StubAdapter):
    """Raises past ProviderAdapter.generate."""

    async def generate(self, prompt, system_prompt):
        raise ValueError("adapter bug")


class RecordingDrafts:
    def __init__(self):
        self.created = []

    async def create(self, prompt, outputs):
        self.created.append((prompt, dict(outputs)))
        return SimpleNamespace(id=f"draft-{len(self.created)}")


# ═════════════════════════════════════════════
# FAN-OUT
# ═════════════════════════════════════════════

class TestGenerationService:

    @pytest.mark.asyncio
    async def test_all_succeed(self):
        drafts = RecordingDrafts()
        service = GenerationService([StubAdapter(pid) for pid in PROVIDER_IDS], drafts)

        result = await service.generate("AI in hiring")

        assert result.draft_id == "draft-1"
        assert set(result.outputs) == set(PROVIDER_IDS)
        assert result.outputs["groq"] == "groq says: AI in hiring"
        assert result.failed == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failing",
        [set(c) for n in range(len(PROVIDER_IDS) + 1) for c in itertools.combinations(PROVIDER_IDS, n)],
    )
    async def test_every_failure_subset_keeps_one_entry_per_provider(self, failing):
        drafts = RecordingDrafts()
        providers = [StubAdapter(pid, fail=pid in failing) for pid in PROVIDER_IDS]
        service = GenerationService(providers, drafts)

        result = await service.generate("topic")

        assert set(result.outputs) == set(PROVIDER_IDS)
        for pid, output in result.outputs.items():
            if pid in failing:
                assert output == f"[{LABELS[pid]} error: {pid} down]"
            else:
                assert output == f"{pid} says: topic"
        assert set(result.failed) == failing

    @pytest.mark.asyncio
    async def test_exactly_one_draft_written_with_full_set(self):
        drafts = RecordingDrafts()
        providers = [StubAdapter(pid, fail=pid == "gemini") for pid in PROVIDER_IDS]
        service = GenerationService(providers, drafts)

        result = await service.generate("topic")

        assert len(drafts.created) == 1
        prompt, outputs = drafts.created[0]
        assert prompt == "topic"
        assert outputs == result.outputs

    @pytest.mark.asyncio
    async def test_providers_run_concurrently(self):
        started = []
        providers = [StubAdapter(pid, delay=0.05, started=started) for pid in PROVIDER_IDS]
        service = GenerationService(providers, RecordingDrafts())

        loop = asyncio.get_running_loop()
        t0 = loop.time()
        await service.generate("topic")
        elapsed = loop.time() - t0

        assert sorted(started) == sorted(PROVIDER_IDS)
        # Sequential would take 6 × 0.05s
        assert elapsed < 0.25

    @pytest.mark.asyncio
    async def test_slow_failure_does_not_cancel_siblings(self):
        providers = [
            StubAdapter("openai", fail=True),
            StubAdapter("groq", delay=0.05),
        ]
        service = GenerationService(providers, RecordingDrafts())

        result = await service.generate("topic")

        assert result.outputs["groq"] == "groq says: topic"
        assert result.outputs["openai"].startswith("[GPT-OSS error:")

    @pytest.mark.asyncio
    async def test_adapter_raising_past_generate_is_captured(self):
        providers = [BrokenAdapter("claude"), StubAdapter("groq")]
        service = GenerationService(providers, RecordingDrafts())

        result = await service.generate("topic")

        assert result.outputs["claude"] == "[GLM error: adapter bug]"
        assert result.outputs["groq"] == "groq says: topic"

    @pytest.mark.asyncio
    async def test_fixed_system_prompt_sent_to_every_provider(self):
        providers = [StubAdapter(pid) for pid in PROVIDER_IDS]
        await GenerationService(providers, RecordingDrafts()).generate("topic")

        for p in providers:
            assert p.calls == [("topic", SYSTEM_PROMPT)]
