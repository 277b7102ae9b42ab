"""The research workflow: gather, gate, then answer directly or via agents."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .agents import AgentPool, AgentRequest, AgentResult, AgentSpec, synthesis_prompt
from .attempts import AttemptContext, AttemptController
from .bus import BaseEventBus
from .config import WorkflowConfig
from .contracts import (
    ConfigurationError,
    ContextItem,
    QuerySubmitted,
    ResearchAnswer,
    StepOutcome,
    WorkflowRun,
)
from .generation import Generation, TextGenerator
from .persistence import InMemoryStepStore, StepStore
from .projector import ProgressProjector
from .quality import QualityGate
from .sources import ContextSource, GatherResult, gather_sources, rank_contexts

logger = logging.getLogger(__name__)

NO_CONTEXT_ANSWER = (
    "No context found for the given query. Please try a different search term."
)


def answer_prompt(query: str, contexts: Sequence[ContextItem]) -> str:
    context_text = "\n\n".join(
        f"[{i + 1}] {c.title or c.source}\n{c.text}" for i, c in enumerate(contexts)
    )
    return (
        "You are a research assistant. Answer this question using the provided "
        "research context. Cite sources using [1], [2], etc.\n\n"
        f"Question: {query}\n\n"
        f"Research Context:\n{context_text}"
    )


class ResearchWorkflow:
    """Runs research queries end to end and publishes their progress.

    With ``agents`` set, the specialists run in parallel after the gather and
    a synthesis step combines their outputs; otherwise one generation step
    answers from the gathered context.
    """

    def __init__(
        self,
        bus: BaseEventBus,
        sources: Sequence[ContextSource],
        generator: TextGenerator,
        *,
        store: Optional[StepStore] = None,
        agents: Optional[Sequence[AgentSpec]] = None,
        synthesizer: Optional[TextGenerator] = None,
        config: Optional[WorkflowConfig] = None,
        gate: Optional[QualityGate] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.bus = bus
        self.sources = list(sources)
        self.generator = generator
        self.store = store or InMemoryStepStore()
        self.agents = list(agents or [])
        self.synthesizer = synthesizer or generator
        self.config = config or WorkflowConfig()
        self.gate = gate or QualityGate(self.config.min_contexts, label="context items")
        self._sleep = sleep

    async def handle(self, trigger: QuerySubmitted) -> WorkflowRun:
        """Execute the run for ``trigger``, resuming a checkpointed run if one exists."""
        run = WorkflowRun.from_trigger(trigger)
        stored = await self.store.get_run(run.run_id)
        if stored is not None:
            logger.info(
                f"Resuming run {stored.run_id} at attempt {stored.attempt} "
                f"for session_id={trigger.session_id}"
            )
            run = stored

        projector = ProgressProjector(self.bus, run.session_id)
        controller = AttemptController(
            projector,
            self.store,
            max_attempts=self.config.max_attempts,
            backoff=self.config.backoff,
            step_retries=self.config.step_retries,
            step_timeout=self.config.step_timeout,
            sleep=self._sleep,
        )
        if not run.is_terminal:
            await projector.run_started(run)
        return await controller.execute(run, self._attempt)

    async def _attempt(self, ctx: AttemptContext) -> StepOutcome:
        run = ctx.run
        if not self.sources:
            raise ConfigurationError("No context sources configured")

        gathered = await ctx.steps.run(
            "fetch-sources",
            lambda: gather_sources(self.sources, run.query),
            result_type=GatherResult,
        )
        if not gathered.is_ok:
            return gathered
        result: GatherResult = gathered.value
        for report in result.reports:
            await ctx.projector.source_result(
                report.source, report.success, count=report.count, error=report.error
            )

        quality = await ctx.gate(self.gate, result.items)
        if not quality.is_ok:
            return quality

        # only this attempt's items are used, even when quality is low
        ranked = rank_contexts(result.items)
        top = ranked[: self.config.top_contexts]
        await ctx.projector.contexts(len(ranked), top)

        if not ranked:
            return StepOutcome.ok(
                ResearchAnswer(
                    answer=NO_CONTEXT_ANSWER,
                    model="none",
                    tokens_used=0,
                    contexts_used=0,
                    quality=quality.value,
                )
            )

        if self.agents:
            return await self._answer_with_agents(ctx, ranked, top, quality.value)

        generated = await self._stream_step(
            ctx, "generate-llm-response", self.generator, answer_prompt(run.query, top)
        )
        if not generated.is_ok:
            return generated
        return StepOutcome.ok(self._answer(generated.value, ranked, top, quality.value))

    async def _answer_with_agents(
        self,
        ctx: AttemptContext,
        ranked: List[ContextItem],
        top: List[ContextItem],
        quality: str,
    ) -> StepOutcome:
        run = ctx.run
        request = AgentRequest(
            query=run.query,
            session_id=run.session_id,
            user_id=run.user_id,
            contexts=top,
        )
        pool = AgentPool(ctx.projector, backoff=self.config.backoff, sleep=self._sleep)
        pooled = await ctx.steps.run(
            "run-agents",
            lambda: pool.run_all(self.agents, request),
            result_type=List[AgentResult],
        )
        if not pooled.is_ok:
            return pooled
        results: List[AgentResult] = pooled.value
        if not any(r.succeeded for r in results):
            return StepOutcome.retryable("All agents failed", step="run-agents")

        synthesized = await self._stream_step(
            ctx, "synthesize", self.synthesizer, synthesis_prompt(run.query, results)
        )
        if not synthesized.is_ok:
            return synthesized
        return StepOutcome.ok(self._answer(synthesized.value, ranked, top, quality))

    async def _stream_step(
        self, ctx: AttemptContext, name: str, generator: TextGenerator, prompt: str
    ) -> StepOutcome:
        async def generate() -> Generation:
            # one stream per try; a retried generation restarts from empty
            stream = ctx.projector.answer_stream()
            try:
                generation = await generator.generate(prompt, on_chunk=stream.push)
            except Exception:
                await stream.finish()
                raise
            finally:
                # a timed-out try is cancelled and cannot await the drain
                stream.end()
            await stream.finish()
            return generation

        return await ctx.steps.run(name, generate, result_type=Generation)

    @staticmethod
    def _answer(
        generation: Generation,
        ranked: List[ContextItem],
        top: List[ContextItem],
        quality: str,
    ) -> ResearchAnswer:
        return ResearchAnswer(
            answer=generation.text,
            model=generation.model,
            tokens_used=generation.tokens_used,
            contexts_used=len(ranked),
            quality=quality,
            top_contexts=top,
        )
