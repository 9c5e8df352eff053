"""
src/services/generation.py — Multi-provider fan-out for LinkedIn post drafts.

generate() calls every configured provider concurrently, waits for all of
them to settle, and stores one Draft carrying every output. A failing or slow
provider never cancels or hides the others: the result always has exactly
one entry per provider.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Protocol

from src.integrations.llm_providers import ProviderAdapter, ProviderResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a LinkedIn content strategist. Write a compelling, professional "
    "LinkedIn post based on the following topic. Keep it under 3000 characters. "
    "Use line breaks for readability. Do not use hashtags unless specifically asked."
)


class DraftCreator(Protocol):
    async def create(self, prompt: str, outputs: dict[str, str]): ...


@dataclass
class GenerationResult:
    draft_id: str
    outputs: dict[str, str]
    results: list[ProviderResult] = field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [r.provider_id for r in self.results if not r.ok]


class GenerationService:
    def __init__(
        self,
        providers: list[ProviderAdapter],
        drafts: DraftCreator,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.providers = providers
        self.drafts = drafts
        self.system_prompt = system_prompt

    async def _settle_all(self, prompt: str) -> list[ProviderResult]:
        settled = await asyncio.gather(
            *(p.generate(prompt, self.system_prompt) for p in self.providers),
            return_exceptions=True,
        )
        results: list[ProviderResult] = []
        for provider, outcome in zip(self.providers, settled):
            if isinstance(outcome, ProviderResult):
                results.append(outcome)
            else:
                # Adapters catch their own errors; this covers a broken adapter.
                logger.error("%s raised past its adapter: %r", provider.label, outcome)
                results.append(
                    ProviderResult.failure(
                        provider.provider_id, provider.label, str(outcome) or "unknown"
                    )
                )
        return results

    async def generate(self, prompt: str) -> GenerationResult:
        start = time.perf_counter()
        results = await self._settle_all(prompt)
        outputs = {r.provider_id: r.to_output() for r in results}

        draft = await self.drafts.create(prompt, outputs)

        elapsed = time.perf_counter() - start
        failed = [r.label for r in results if not r.ok]
        logger.info(
            "Generated draft %s: %d/%d providers ok (%.1fs)%s",
            draft.id,
            len(results) - len(failed),
            len(results),
            elapsed,
            f" — failed: {', '.join(failed)}" if failed else "",
        )
        return GenerationResult(draft_id=draft.id, outputs=outputs, results=results)
