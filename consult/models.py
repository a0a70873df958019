"""Pure dataclasses for the consultation engine. No logic, no deps."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from consult.providers.base import AIProvider


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TokenUsage:
    input: int = 0
    output: int = 0
    cached_read: int = 0       # served from provider cache (discounted)
    cached_write: int = 0      # written to provider cache (surcharged)

    @property
    def total(self) -> int:
        return self.input + self.output


@dataclass
class ProviderResponse:
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage | None = None


@dataclass
class Agent:
    name: str
    model: str
    provider: "AIProvider"
    system_prompt: str


@dataclass
class AgentResponse:
    agent_name: str
    model: str
    content: str
    tokens: TokenUsage
    duration_sec: float
    timestamp: str
    error: str | None = None   # set when the call or its extraction failed


@dataclass(frozen=True)
class CostEstimate:
    input_tokens: int
    output_tokens: int
    total_tokens: int
    estimated_cost_usd: float


class ArtifactKind(str, Enum):
    INDEPENDENT = "independent"
    SYNTHESIS = "synthesis"
    CROSS_EXAM = "cross_exam"
    VERDICT = "verdict"


@dataclass(frozen=True)
class IndependentArtifact:
    agent_id: str
    position: str
    key_points: tuple[str, ...]
    rationale: str
    confidence: float
    prose_excerpt: str
    created_at: str
    schema_version: str = "1.0"
    round_number: int = 1
    artifact_type: ArtifactKind = ArtifactKind.INDEPENDENT


@dataclass(frozen=True)
class ConsensusPoint:
    point: str
    supporting_agents: tuple[str, ...]
    confidence: float


@dataclass(frozen=True)
class Viewpoint:
    agent: str
    viewpoint: str


@dataclass(frozen=True)
class Tension:
    topic: str
    viewpoints: tuple[Viewpoint, ...]


@dataclass(frozen=True)
class SynthesisArtifact:
    consensus_points: tuple[ConsensusPoint, ...]
    tensions: tuple[Tension, ...]
    priority_order: tuple[str, ...]
    created_at: str
    schema_version: str = "1.0"
    round_number: int = 2
    artifact_type: ArtifactKind = ArtifactKind.SYNTHESIS


@dataclass(frozen=True)
class Challenge:
    challenger: str
    target_agent: str
    challenge: str
    evidence: tuple[str, ...]


@dataclass(frozen=True)
class Rebuttal:
    agent: str
    rebuttal: str


@dataclass(frozen=True)
class CrossExamArtifact:
    challenges: tuple[Challenge, ...]
    rebuttals: tuple[Rebuttal, ...]
    unresolved: tuple[str, ...]
    created_at: str
    schema_version: str = "1.0"
    round_number: int = 3
    artifact_type: ArtifactKind = ArtifactKind.CROSS_EXAM


@dataclass(frozen=True)
class Dissent:
    agent: str
    concern: str
    severity: str              # "high", "medium", "low"


@dataclass(frozen=True)
class ExploreOption:
    """One entry in an explore-mode verdict menu."""
    option: str
    description: str = ""
    pros: tuple[str, ...] = ()
    cons: tuple[str, ...] = ()
    best_when: str = ""


@dataclass(frozen=True)
class VerdictArtifact:
    recommendation: str
    confidence: float
    evidence: tuple[str, ...]
    dissent: tuple[Dissent, ...]
    created_at: str
    options: tuple[ExploreOption, ...] = ()
    synergies: tuple[str, ...] = ()
    schema_version: str = "1.0"
    round_number: int = 4
    artifact_type: ArtifactKind = ArtifactKind.VERDICT


Artifact = Union[IndependentArtifact, SynthesisArtifact, CrossExamArtifact, VerdictArtifact]


@dataclass(frozen=True)
class StateTransition:
    from_state: str
    to_state: str
    timestamp: str
    reason: str | None = None


@dataclass
class TokenTotals:
    input: int = 0
    output: int = 0
    total: int = 0


@dataclass
class CostSummary:
    estimated_usd: float
    actual_usd: float
    tokens: TokenTotals
    exceeded: bool = False


@dataclass
class AgentInfo:
    name: str
    model: str


@dataclass
class ConsultationResult:
    consultation_id: str
    timestamp: str
    question: str
    context: str
    agents: list[AgentInfo]
    agent_responses: list[AgentResponse]
    state: str
    rounds: int                # configured
    completed_rounds: int      # furthest round that produced its artifact
    round1: list[IndependentArtifact] = field(default_factory=list)
    round2: SynthesisArtifact | None = None
    round3: CrossExamArtifact | None = None
    round4: VerdictArtifact | None = None
    consensus: str = ""
    confidence: float = 0.0
    recommendation: str = ""
    concerns: list[str] = field(default_factory=list)
    dissent: list[Dissent] = field(default_factory=list)
    cost: CostSummary | None = None
    duration_sec: float = 0.0
    early_termination: bool = False
    tokens_saved_via_filtering: int = 0
    mode: str = "converge"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
