"""Consultation orchestration: estimate, gate, then four debate rounds.

Round 1  every roster agent answers independently (parallel, failures isolated)
Round 2  a judge synthesizes consensus and tensions (failure is fatal)
Round 3  surviving agents cross-examine, a judge extracts the record
Round 4  a judge issues one verdict with confidence and dissent

The policy mode picks the prompt family (see consult.strategies); only
converge mode may stop after Round 2. Every round is followed by the cost
breaker. Every fatal condition moves the state machine to Aborted before the
exception leaves ``consult``.
"""

import asyncio
import dataclasses
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from config.config_loader import PolicyConfig
from consult import events
from consult.cost_estimator import CostEstimator, estimate_token_savings
from consult.cost_gate import ConsentDecision, CostGate
from consult.cost_ledger import CostLedger
from consult.events import EventBus
from consult.extraction import ArtifactExtractionError, extract_artifact
from consult.filtering import filter_cross_exam, filter_synthesis
from consult.models import (
    Agent,
    AgentInfo,
    AgentResponse,
    ArtifactKind,
    ConsultationResult,
    CostEstimate,
    CostSummary,
    CrossExamArtifact,
    Dissent,
    IndependentArtifact,
    SynthesisArtifact,
    TokenTotals,
    TokenUsage,
    VerdictArtifact,
)
from consult.pricing import PriceTable
from consult.providers.base import AIProvider
from consult.roster import judge_agent
from consult.state_machine import ConsultState, ConsultStateMachine
from consult.strategies import get_strategy

logger = logging.getLogger(__name__)

EarlyTerminationPrompt = Callable[[float], Awaitable[bool]]

# Aborted reason for a declined estimate. Not a failure.
CONSENT_DENIED_REASON = "User cancelled"


class ConsultationError(RuntimeError):
    """Base for consultation failures raised by the orchestrator."""


class ConsultationCancelled(ConsultationError):
    """The user declined the cost estimate. Expected outcome, not a failure."""


class ConsultationAborted(ConsultationError):
    """The consultation could not continue."""


class AllAgentsFailedError(ConsultationAborted):
    pass


class CostThresholdExceededError(ConsultationAborted):
    pass


class MissingSynthesisError(ConsultationAborted):
    pass


@dataclass
class ConsultationSession:
    consultation_id: str
    question: str
    context: str
    machine: ConsultStateMachine
    agents: list[Agent]
    estimate: CostEstimate | None = None
    actual_cost_usd: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    agent_responses: list[AgentResponse] = field(default_factory=list)
    tokens_saved: int = 0
    result: ConsultationResult | None = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def mean_consensus_confidence(synthesis: SynthesisArtifact) -> float:
    points = synthesis.consensus_points
    if not points:
        return 0.0
    return sum(cp.confidence for cp in points) / len(points)


def verdict_from_synthesis(synthesis: SynthesisArtifact) -> VerdictArtifact:
    """Verdict for early termination: top consensus point, mean confidence, tensions as medium dissent."""
    ranked = sorted(synthesis.consensus_points, key=lambda cp: cp.confidence, reverse=True)
    return VerdictArtifact(
        recommendation=ranked[0].point if ranked else "No clear recommendation",
        confidence=mean_consensus_confidence(synthesis),
        evidence=tuple(cp.point for cp in synthesis.consensus_points),
        dissent=tuple(
            Dissent(
                agent=t.viewpoints[0].agent if t.viewpoints else "unknown",
                concern=t.topic,
                severity="medium",
            )
            for t in synthesis.tensions
        ),
        created_at=_now(),
    )


class ConsultOrchestrator:
    """Runs one consultation at a time over a fixed roster.

    Collaborators are injected so the engine does no interactive I/O of
    its own: consent and early-termination questions go through the
    ``cost_gate`` and ``early_termination_prompt`` callables.
    """

    def __init__(
        self,
        agents: Sequence[Agent],
        judge_provider: AIProvider,
        policy: PolicyConfig,
        *,
        ledger: CostLedger | None = None,
        event_bus: EventBus | None = None,
        cost_gate: CostGate | None = None,
        estimator: CostEstimator | None = None,
        price_table: PriceTable | None = None,
        verbose: bool = False,
        early_termination_prompt: EarlyTerminationPrompt | None = None,
    ) -> None:
        if not agents:
            raise ValueError("At least one agent is required")
        self.agents = list(agents)
        self.judge_provider = judge_provider
        self.policy = policy
        self.strategy = get_strategy(policy.mode)
        self.price_table = price_table or PriceTable()
        self.ledger = ledger or CostLedger(self.price_table)
        self.event_bus = event_bus or EventBus()
        self.cost_gate = cost_gate or CostGate()
        self.estimator = estimator or CostEstimator(self.price_table)
        self.verbose = verbose
        self.early_termination_prompt = early_termination_prompt
        self.last_session: ConsultationSession | None = None
        self._lock = asyncio.Lock()

    async def consult(
        self,
        question: str,
        context: str = "",
        *,
        allow_cost_overruns: bool = False,
    ) -> ConsultationResult:
        """Run a full consultation.

        Raises:
            ConsultationCancelled: The user declined the estimate.
            ConsultationAborted: All agents failed, cost breaker tripped, or
                synthesis was missing.
            ProviderError / ArtifactExtractionError: A judge call failed.
        """
        async with self._lock:
            consultation_id = f"consult-{uuid.uuid4().hex[:12]}"
            session = ConsultationSession(
                consultation_id=consultation_id,
                question=question,
                context=context,
                machine=ConsultStateMachine(consultation_id, self.event_bus),
                agents=list(self.agents),
            )
            self.last_session = session
            try:
                return await self._run(session, allow_cost_overruns)
            except Exception as exc:
                if not session.machine.is_terminal():
                    session.machine.transition(ConsultState.ABORTED, reason=str(exc))
                raise

    async def _run(self, session: ConsultationSession, allow_cost_overruns: bool) -> ConsultationResult:
        start = time.monotonic()
        machine = session.machine

        machine.transition(ConsultState.ESTIMATING)
        self._publish(events.CONSULTATION_STARTED, session, {
            "question": session.question,
            "mode": self.strategy.name,
            "agents": [{"name": a.name, "model": a.model} for a in session.agents],
        })

        estimate = self.estimator.estimate(
            session.question, session.agents, self.policy.max_rounds, context=session.context,
        )
        session.estimate = estimate
        self._publish(events.COST_ESTIMATED, session, {
            "estimated_cost": estimate.estimated_cost_usd,
            "input_tokens": estimate.input_tokens,
            "output_tokens": estimate.output_tokens,
        })

        machine.transition(ConsultState.AWAITING_CONSENT)
        await self._gate(session, estimate, allow_cost_overruns)

        # Round 1
        machine.transition(ConsultState.INDEPENDENT)
        round1 = await self._run_independent(session)
        self._check_cost_threshold(session)
        if not round1:
            raise AllAgentsFailedError("All agents failed in Round 1")
        self._round_completed(session, 1, ArtifactKind.INDEPENDENT)

        # Round 2
        machine.transition(ConsultState.SYNTHESIS)
        synthesis = await self._run_synthesis(session, round1)
        self._check_cost_threshold(session)
        self._round_completed(session, 2, ArtifactKind.SYNTHESIS)

        if await self._should_terminate_early(synthesis):
            verdict = verdict_from_synthesis(synthesis)
            machine.transition(ConsultState.COMPLETE, reason="High confidence after synthesis")
            return self._finish(session, start, round1, synthesis, None, verdict, early_termination=True)

        # Round 3
        machine.transition(ConsultState.CROSS_EXAM)
        cross_exam: CrossExamArtifact | None = None
        if synthesis is not None:
            cross_exam = await self._run_cross_exam(session, round1, synthesis)
            self._check_cost_threshold(session)
            self._round_completed(session, 3, ArtifactKind.CROSS_EXAM)
        else:
            logger.warning("Skipping Round 3: no synthesis artifact")

        # Round 4
        machine.transition(ConsultState.VERDICT)
        verdict = await self._run_verdict(session, round1, synthesis, cross_exam)
        self._check_cost_threshold(session)
        self._round_completed(session, 4, ArtifactKind.VERDICT)

        machine.transition(ConsultState.COMPLETE)
        return self._finish(session, start, round1, synthesis, cross_exam, verdict)

    # --- gate ---------------------------------------------------------------

    async def _gate(self, session: ConsultationSession, estimate: CostEstimate, allow_cost_overruns: bool) -> None:
        if allow_cost_overruns:
            logger.info("Estimated cost $%.4f approved via --yes", estimate.estimated_cost_usd)
            self._publish(events.USER_CONSENT, session, {"approved": True, "auto_approved": True})
            return

        if not self.cost_gate.should_prompt_user(estimate, self.policy):
            self.cost_gate.display_auto_approved(estimate.estimated_cost_usd)
            self._publish(events.USER_CONSENT, session, {"approved": True, "auto_approved": True})
            return

        decision = await self.cost_gate.get_user_consent(estimate, len(session.agents), self.policy.max_rounds)
        if decision == ConsentDecision.DENIED:
            self._publish(events.USER_CONSENT, session, {"approved": False, "auto_approved": False})
            session.machine.transition(ConsultState.ABORTED, reason=CONSENT_DENIED_REASON)
            raise ConsultationCancelled("Consultation cancelled by user")
        self._publish(events.USER_CONSENT, session, {
            "approved": True,
            "auto_approved": False,
            "always": decision == ConsentDecision.ALWAYS,
        })

    # --- rounds -------------------------------------------------------------

    async def _invoke(self, session: ConsultationSession, agent: Agent, prompt: str, round_number: int) -> AgentResponse:
        """Call one agent and account for its tokens. Raises on provider failure."""
        self._publish(events.AGENT_THINKING, session, {"agent": agent.name, "model": agent.model, "round": round_number})
        start = time.monotonic()
        response = await agent.provider.call(
            [{"role": "user", "content": prompt}],
            system_prompt=agent.system_prompt,
        )
        usage = response.usage or TokenUsage()
        self._track_actual_cost(session, agent.model, usage)
        agent_response = AgentResponse(
            agent_name=agent.name,
            model=agent.model,
            content=response.text,
            tokens=usage,
            duration_sec=time.monotonic() - start,
            timestamp=_now(),
        )
        self._publish(events.AGENT_COMPLETED, session, {
            "agent": agent.name,
            "round": round_number,
            "duration_sec": agent_response.duration_sec,
            "tokens": usage.total,
        })
        return agent_response

    def _agent_failed(self, session: ConsultationSession, agent: Agent, round_number: int, exc: Exception) -> None:
        logger.warning("%s failed in round %d: %s", agent.name, round_number, exc)
        self._publish(events.AGENT_FAILED, session, {"agent": agent.name, "round": round_number, "error": str(exc)})

    async def _run_independent(self, session: ConsultationSession) -> list[IndependentArtifact]:
        """Fan the question out to the roster. Failed agents keep an error response and no artifact."""
        prompt = self.strategy.independent_prompt(session.question, session.context)

        async def one(agent: Agent) -> tuple[AgentResponse, IndependentArtifact | None]:
            start = time.monotonic()
            try:
                response = await self._invoke(session, agent, prompt, 1)
            except Exception as exc:
                self._agent_failed(session, agent, 1, exc)
                failed = AgentResponse(
                    agent_name=agent.name,
                    model=agent.model,
                    content="",
                    tokens=TokenUsage(),
                    duration_sec=time.monotonic() - start,
                    timestamp=_now(),
                    error=str(exc),
                )
                return failed, None
            try:
                artifact = extract_artifact(ArtifactKind.INDEPENDENT, response.content, agent_id=agent.name)
            except ArtifactExtractionError as exc:
                self._agent_failed(session, agent, 1, exc)
                return dataclasses.replace(response, error=str(exc)), None
            self._publish(events.ROUND_ARTIFACT, session, {"round": 1, "agent": agent.name, "artifact": artifact})
            return response, artifact

        results = await asyncio.gather(*(one(agent) for agent in session.agents))
        session.agent_responses = [response for response, _ in results]
        artifacts = [artifact for _, artifact in results if artifact is not None]
        logger.info("Round 1: %d/%d agents produced artifacts", len(artifacts), len(session.agents))
        return artifacts

    async def _run_synthesis(self, session: ConsultationSession, round1: list[IndependentArtifact]) -> SynthesisArtifact:
        judge = judge_agent(self.judge_provider, "Synthesis")
        response = await self._invoke(session, judge, self.strategy.synthesis_prompt(session.question, round1), 2)
        synthesis = extract_artifact(ArtifactKind.SYNTHESIS, response.content)
        logger.info(
            "Round 2: %d consensus points, %d tensions",
            len(synthesis.consensus_points), len(synthesis.tensions),
        )
        self._publish(events.ROUND_ARTIFACT, session, {"round": 2, "agent": judge.name, "artifact": synthesis})
        return synthesis

    def _filtered_synthesis(self, session: ConsultationSession, synthesis: SynthesisArtifact, points: int, tensions: int) -> SynthesisArtifact:
        if self.verbose:
            return synthesis
        filtered = filter_synthesis(synthesis, points, tensions)
        session.tokens_saved += estimate_token_savings([dataclasses.asdict(synthesis)], [dataclasses.asdict(filtered)])
        return filtered

    async def _run_cross_exam(
        self,
        session: ConsultationSession,
        round1: list[IndependentArtifact],
        synthesis: SynthesisArtifact,
    ) -> CrossExamArtifact:
        limits = self.policy.filter
        fed = self._filtered_synthesis(session, synthesis, limits.round3_consensus_points, limits.round3_tensions)

        positions = {artifact.agent_id: artifact for artifact in round1}
        survivors = [agent for agent in session.agents if agent.name in positions]

        async def one(agent: Agent) -> AgentResponse | None:
            prompt = self.strategy.cross_exam_prompt(agent.name, session.question, positions[agent.name], fed)
            try:
                return await self._invoke(session, agent, prompt, 3)
            except Exception as exc:
                self._agent_failed(session, agent, 3, exc)
                return None

        responses = [r for r in await asyncio.gather(*(one(agent) for agent in survivors)) if r is not None]
        if not responses:
            raise AllAgentsFailedError("All agents failed in Round 3 Cross-Exam")
        logger.info("Round 3: %d/%d agents responded", len(responses), len(survivors))

        judge = judge_agent(self.judge_provider, "Cross-Exam")
        judge_prompt = self.strategy.cross_exam_judge_prompt([(r.agent_name, r.content) for r in responses], fed)
        judge_response = await self._invoke(session, judge, judge_prompt, 3)
        cross_exam = extract_artifact(ArtifactKind.CROSS_EXAM, judge_response.content)
        self._publish(events.ROUND_ARTIFACT, session, {"round": 3, "agent": judge.name, "artifact": cross_exam})
        return cross_exam

    async def _run_verdict(
        self,
        session: ConsultationSession,
        round1: list[IndependentArtifact],
        synthesis: SynthesisArtifact | None,
        cross_exam: CrossExamArtifact | None,
    ) -> VerdictArtifact:
        if synthesis is None:
            raise MissingSynthesisError("Cannot generate Verdict without Synthesis artifact")

        limits = self.policy.filter
        fed_synthesis = self._filtered_synthesis(session, synthesis, limits.round4_consensus_points, limits.round4_tensions)
        fed_cross_exam = cross_exam
        if cross_exam is not None and not self.verbose:
            fed_cross_exam = filter_cross_exam(cross_exam, limits.round4_challenges, limits.round4_rebuttals)
            session.tokens_saved += estimate_token_savings(
                [dataclasses.asdict(cross_exam)], [dataclasses.asdict(fed_cross_exam)],
            )

        judge = judge_agent(self.judge_provider, "Verdict")
        prompt = self.strategy.verdict_prompt(session.question, round1, fed_synthesis, fed_cross_exam)
        response = await self._invoke(session, judge, prompt, 4)
        verdict = extract_artifact(ArtifactKind.VERDICT, response.content, mode=self.strategy.name)
        logger.info("Round 4: verdict confidence %.2f, %d dissent", verdict.confidence, len(verdict.dissent))
        self._publish(events.ROUND_ARTIFACT, session, {"round": 4, "agent": judge.name, "artifact": verdict})
        return verdict

    async def _should_terminate_early(self, synthesis: SynthesisArtifact) -> bool:
        if not self.strategy.allows_early_termination:
            logger.info("%s mode: all rounds will execute", self.strategy.name.capitalize())
            return False
        if not self.policy.early_termination or self.early_termination_prompt is None:
            return False
        confidence = mean_consensus_confidence(synthesis)
        if confidence < self.policy.early_termination_confidence:
            return False
        accepted = await self.early_termination_prompt(confidence)
        logger.info("Early termination at confidence %.2f %s", confidence, "accepted" if accepted else "declined")
        return accepted

    # --- cost ---------------------------------------------------------------

    def _track_actual_cost(self, session: ConsultationSession, model: str, usage: TokenUsage) -> None:
        session.actual_cost_usd += self.price_table.cost(model, usage.input, usage.output)
        session.input_tokens += usage.input
        session.output_tokens += usage.output

    def _check_cost_threshold(self, session: ConsultationSession) -> None:
        """Abort when actual spend exceeds estimate * cost_overrun_ratio. No-op without an estimate."""
        estimated = session.estimate.estimated_cost_usd if session.estimate else 0.0
        if estimated == 0:
            return
        limit = estimated * self.policy.cost_overrun_ratio
        if session.actual_cost_usd > limit:
            percent_over = (session.actual_cost_usd - estimated) / estimated * 100
            logger.error(
                "Cost exceeded estimate by %.1f%% (estimated $%.4f, actual $%.4f), aborting",
                percent_over, estimated, session.actual_cost_usd,
            )
            if not session.machine.is_terminal():
                session.machine.transition(ConsultState.ABORTED, reason="Cost threshold exceeded")
            raise CostThresholdExceededError("Cost threshold exceeded")

    # --- result -------------------------------------------------------------

    def _finish(
        self,
        session: ConsultationSession,
        start: float,
        round1: list[IndependentArtifact],
        synthesis: SynthesisArtifact | None,
        cross_exam: CrossExamArtifact | None,
        verdict: VerdictArtifact | None,
        early_termination: bool = False,
    ) -> ConsultationResult:
        if early_termination:
            completed_rounds = 2
        elif verdict is not None:
            completed_rounds = 4
        elif cross_exam is not None:
            completed_rounds = 3
        else:
            completed_rounds = 2

        consensus = ""
        if verdict is not None:
            consensus = verdict.recommendation
        elif synthesis is not None and synthesis.consensus_points:
            consensus = synthesis.consensus_points[0].point

        estimated = session.estimate.estimated_cost_usd if session.estimate else 0.0
        result = ConsultationResult(
            consultation_id=session.consultation_id,
            timestamp=_now(),
            question=session.question,
            context=session.context,
            agents=[AgentInfo(name=a.name, model=a.model) for a in session.agents],
            agent_responses=list(session.agent_responses),
            state=session.machine.state.value,
            rounds=self.policy.max_rounds,
            completed_rounds=completed_rounds,
            round1=list(round1),
            round2=synthesis,
            round3=cross_exam,
            round4=verdict,
            consensus=consensus,
            confidence=verdict.confidence if verdict else 0.0,
            recommendation=verdict.recommendation if verdict else "",
            concerns=list(cross_exam.unresolved) if cross_exam else [],
            dissent=list(verdict.dissent) if verdict else [],
            cost=CostSummary(
                estimated_usd=estimated,
                actual_usd=session.actual_cost_usd,
                tokens=TokenTotals(
                    input=session.input_tokens,
                    output=session.output_tokens,
                    total=session.input_tokens + session.output_tokens,
                ),
                exceeded=estimated > 0 and session.actual_cost_usd > estimated * self.policy.cost_overrun_ratio,
            ),
            duration_sec=time.monotonic() - start,
            early_termination=early_termination,
            tokens_saved_via_filtering=session.tokens_saved,
            mode=self.strategy.name,
        )
        session.result = result
        self._publish(events.CONSULTATION_COMPLETED, session, {
            "state": result.state,
            "completed_rounds": completed_rounds,
            "actual_cost": session.actual_cost_usd,
            "early_termination": early_termination,
        })
        return result

    # --- events -------------------------------------------------------------

    def _publish(self, event: str, session: ConsultationSession, payload: dict) -> None:
        self.event_bus.publish(event, {"consultation_id": session.consultation_id, **payload})

    def _round_completed(self, session: ConsultationSession, round_number: int, kind: ArtifactKind) -> None:
        self._publish(events.ROUND_COMPLETED, session, {"round_number": round_number, "artifact_type": kind.value})
