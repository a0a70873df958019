"""Prompt templates for the four consultation rounds.

Each round asks for a JSON object; the schemas here mirror what
consult.extraction accepts. Converge templates push toward one decision,
explore templates toward a menu of options. Builders take the template to
fill, defaulting to converge.
"""

import json
from collections.abc import Sequence

from consult.models import CrossExamArtifact, IndependentArtifact, SynthesisArtifact

JSON_INSTRUCTION = (
    "IMPORTANT: You must provide your response in valid JSON format ONLY.\n"
    "Do not include any introductory or concluding text."
)

INDEPENDENT_TEMPLATE = """You are participating in a rigorous multi-model consultation.
Your goal is to take a strong position and defend it with evidence.

### Question:
{question}
{context_section}
### Instructions:
Take a strong position. What is the best answer to this question?
Be decisive. Avoid hedging or listing multiple options.
Support your position with clear reasoning and evidence.

{json_instruction}
Use the following schema:

{{
  "position": "Your definitive answer (1-2 sentences)",
  "key_points": ["Key argument 1", "Key argument 2", "Key argument 3"],
  "rationale": "Detailed defense of your position (2-3 paragraphs)",
  "confidence": 0.0-1.0 (how certain you are this is the right answer),
  "prose_excerpt": "A quote-worthy summary of your stance"
}}"""

SYNTHESIS_TEMPLATE = """You are the Consensus Judge in a rigorous multi-model consultation.

Synthesize the perspectives below, focusing on where they agree and where they conflict.

### Question:
{question}

### Expert Perspectives:
{perspectives}

### Instructions:
1. Identify strong consensus: what do the experts clearly agree on?
2. Find disagreements: where do positions conflict, and what is at stake?
3. Rank priorities: what matters most for making a decision?

{json_instruction}
Use the following schema:

{{
  "consensus_points": [
    {{
      "point": "Statement of agreement",
      "supporting_agents": ["Agent Name 1", "Agent Name 2"],
      "confidence": 0.0-1.0 (how strong is this consensus?)
    }}
  ],
  "tensions": [
    {{
      "topic": "Area of disagreement",
      "viewpoints": [
        {{"agent": "Agent Name 1", "viewpoint": "Summary of their view"}},
        {{"agent": "Agent Name 2", "viewpoint": "Summary of their view"}}
      ]
    }}
  ],
  "priority_order": ["Most important topic", "Second topic"]
}}"""

CROSS_EXAM_TEMPLATE = """You are {agent_name} in a rigorous multi-model consultation.

Your role: challenge weak arguments, find flaws, and defend your position.

### Question:
{question}

### Your Round 1 Position:
{own_position}

### Current Consensus (Round 2):
{consensus}

### Identified Tensions:
{tensions}

### Instructions:
1. Challenge weak arguments: what is wrong with the opposing positions?
2. Defend your position: if your view was challenged, rebut it.
3. Expose flaws: what are others missing or getting wrong?

{json_instruction}
Use the following schema:

{{
  "critique": "Your critique of the consensus or opposing views",
  "challenges": [
    {{
      "target_agent": "Agent Name (or 'Consensus')",
      "challenge_point": "Specific argument you are challenging",
      "evidence": "Why it is wrong, from your expertise"
    }}
  ],
  "defense": "Defense of your position against the tensions",
  "revised_position": "Your position after considering the others"
}}"""

CROSS_EXAM_JUDGE_TEMPLATE = """You are the Debate Judge.
Review the challenges and defenses from the cross-examination round.

### Previous Consensus:
{consensus}

### Agent Cross-Examination Responses:
{responses}

### Instructions:
1. Extract challenges: who challenged whom, and on what evidence?
2. Extract rebuttals: who defended their position well?
3. Identify unresolved tensions: what disagreements remain significant?

{json_instruction}
Use the following schema:

{{
  "challenges": [
    {{
      "challenger": "Agent Name",
      "target_agent": "Agent Name",
      "challenge": "The core challenge point",
      "evidence": ["Evidence 1", "Evidence 2"]
    }}
  ],
  "rebuttals": [
    {{"agent": "Agent Name", "rebuttal": "The defense provided"}}
  ],
  "unresolved": ["Tension 1", "Tension 2"]
}}"""

VERDICT_TEMPLATE = """You are the Final Judge in a high-stakes multi-model consultation.

Issue ONE definitive recommendation. Do not present multiple options.

### Question:
{question}

### Positions (Round 1):
{positions}

### Consensus (Round 2):
{consensus}

### Tensions (Round 2):
{tensions}

### Cross-Examination (Round 3):
{cross_exam}

### Instructions:
1. Weigh the evidence, prioritizing points that survived cross-examination.
2. Provide ONE clear, actionable recommendation.
3. Assess confidence:
   - High (>0.9): strong consensus, no unresolved issues.
   - Medium (0.7-0.9): general agreement with some minor dissent.
   - Low (<0.7): major unresolved tensions or significant dissent.
4. Document dissent: list who disagrees and why.

{json_instruction}
Use the following schema:

{{
  "_analysis": "Step-by-step reasoning about the evidence before committing to a verdict",
  "recommendation": "The single, definitive recommendation",
  "confidence": 0.0-1.0,
  "evidence": ["Key supporting point 1", "Key supporting point 2"],
  "dissent": [
    {{"agent": "Agent Name", "concern": "Why they disagree", "severity": "high/medium/low"}}
  ]
}}

Fill "_analysis" FIRST, then base your recommendation on it."""


# --- explore mode ----------------------------------------------------------------
# Divergent framing: widen the option space instead of narrowing to one answer.

EXPLORE_INDEPENDENT_TEMPLATE = """You are participating in a collaborative exploration session.
Your goal is to generate diverse perspectives and explore possibilities.

### Question:
{question}
{context_section}
### Instructions:
Think expansively. What are the different angles, approaches, or solutions?
Consider unconventional ideas alongside practical ones.

{json_instruction}
Use the following schema:

{{
  "position": "Your distinct perspective or approach (1-2 sentences)",
  "key_points": ["Key insight 1", "Key insight 2", "Key insight 3"],
  "rationale": "Why this perspective is valuable (2-3 paragraphs)",
  "confidence": 0.0-1.0 (how strongly you believe in this approach),
  "prose_excerpt": "A compelling summary of your perspective"
}}"""

EXPLORE_SYNTHESIS_TEMPLATE = """You are the Synthesis Facilitator in a collaborative exploration.

Map the landscape of ideas while keeping what makes each one distinct.
Common themes and unique insights are both valuable.

### Question:
{question}

### Expert Perspectives:
{perspectives}

### Instructions:
1. Identify common themes: what patterns emerge across perspectives?
2. Preserve unique insights: which novel ideas must not be lost?
3. Note where approaches differ in interesting ways.

{json_instruction}
Use the following schema:

{{
  "consensus_points": [
    {{
      "point": "Theme or pattern across perspectives",
      "supporting_agents": ["Agent Name 1", "Agent Name 2"],
      "confidence": 0.0-1.0
    }}
  ],
  "tensions": [
    {{
      "topic": "Area where approaches differ",
      "viewpoints": [
        {{"agent": "Agent Name 1", "viewpoint": "Their approach"}},
        {{"agent": "Agent Name 2", "viewpoint": "Their approach"}}
      ]
    }}
  ],
  "priority_order": ["Theme 1", "Theme 2"]
}}"""

EXPLORE_CROSS_EXAM_TEMPLATE = """You are {agent_name} in a collaborative exploration session.

Your role: build on the emerging synthesis. Add value, don't just critique.

### Question:
{question}

### Your Round 1 Perspective:
{own_position}

### Current Themes (Round 2):
{consensus}

### Areas of Difference:
{tensions}

### Instructions:
1. Build on ideas: how can these themes be extended?
2. Bridge differences: can different approaches be combined?
3. Add new angles: what has not been explored yet?

{json_instruction}
Use the following schema:

{{
  "extensions": ["New angle or insight to add"],
  "bridges": ["Way to combine different approaches"],
  "gaps": ["Unexplored area worth considering"],
  "refined_position": "Your perspective after seeing the others"
}}"""

EXPLORE_CROSS_EXAM_JUDGE_TEMPLATE = """You are the Exploration Facilitator.
Review the extensions and bridges from the collaborative exploration round.

### Previous Themes:
{consensus}

### Agent Extensions:
{responses}

### Instructions:
1. Record each extension as a challenge to the current themes.
2. Record each bridge as a rebuttal that reconciles differences.
3. List the gaps that remain unexplored.

{json_instruction}
Use the following schema:

{{
  "challenges": [
    {{
      "challenger": "Agent Name",
      "target_agent": "Consensus",
      "challenge": "Extension or new angle provided",
      "evidence": ["Supporting detail"]
    }}
  ],
  "rebuttals": [
    {{"agent": "Agent Name", "rebuttal": "Bridge or reconciliation provided"}}
  ],
  "unresolved": ["Remaining gap 1", "Remaining gap 2"]
}}"""

EXPLORE_VERDICT_TEMPLATE = """You are the Final Facilitator in a collaborative exploration.

Present a menu of valid options with clear trade-offs.
Do NOT pick a single winner. Preserve optionality for the user.

### Question:
{question}

### Perspectives (Round 1):
{positions}

### Themes (Round 2):
{consensus}

### Areas of Difference (Round 2):
{tensions}

### Extensions (Round 3):
{cross_exam}

### Instructions:
1. List 2-4 distinct, valid approaches.
2. Give the pros and cons of each.
3. Note where options can be combined.
4. Say when each option fits best.

{json_instruction}
Use the following schema:

{{
  "_analysis": "Step-by-step reasoning about which options emerged strongest",
  "recommendations": [
    {{
      "option": "Option name",
      "description": "What this approach entails",
      "pros": ["Advantage 1"],
      "cons": ["Disadvantage 1"],
      "best_when": "Scenario where this option shines"
    }}
  ],
  "synergies": ["Ways options can be combined"],
  "confidence": 0.0-1.0 (confidence in the quality of this menu),
  "summary": "Brief summary of the exploration"
}}

Fill "_analysis" FIRST, then base your options on it."""


# (field, label) pairs pulled from each agent's cross-exam JSON for the judge
CROSS_EXAM_FIELDS = (
    ("critique", "Critique"),
    ("challenges", "Challenges"),
    ("defense", "Defense"),
    ("revised_position", "Revised Position"),
)
EXPLORE_CROSS_EXAM_FIELDS = (
    ("extensions", "Extensions"),
    ("bridges", "Bridges"),
    ("gaps", "Gaps"),
    ("refined_position", "Refined Position"),
)


def build_independent_prompt(question: str, context: str = "", template: str = INDEPENDENT_TEMPLATE) -> str:
    context_section = f"\n### Context:\n{context}\n" if context else ""
    return template.format(
        question=question,
        context_section=context_section,
        json_instruction=JSON_INSTRUCTION,
    )


def _format_perspective(artifact: IndependentArtifact) -> str:
    points = "\n".join(f"- {kp}" for kp in artifact.key_points)
    return (
        f"### Agent: {artifact.agent_id}\n"
        f"**Position:** {artifact.position}\n"
        f"**Key Points:**\n{points}\n"
        f"**Rationale:** {artifact.rationale}\n"
        f"**Confidence:** {artifact.confidence}"
    )


def build_synthesis_prompt(
    question: str,
    round1: Sequence[IndependentArtifact],
    template: str = SYNTHESIS_TEMPLATE,
) -> str:
    return template.format(
        question=question,
        perspectives="\n---\n".join(_format_perspective(a) for a in round1),
        json_instruction=JSON_INSTRUCTION,
    )


def _format_consensus(synthesis: SynthesisArtifact) -> str:
    lines = [f"- {cp.point} (Confidence: {cp.confidence})" for cp in synthesis.consensus_points]
    return "\n".join(lines) or "No consensus points identified yet."


def _format_tensions(synthesis: SynthesisArtifact) -> str:
    lines = [
        f"- {t.topic}: " + " vs ".join(f"{v.agent}: {v.viewpoint}" for v in t.viewpoints)
        for t in synthesis.tensions
    ]
    return "\n".join(lines) or "No significant tensions identified."


def build_cross_exam_prompt(
    agent_name: str,
    question: str,
    own: IndependentArtifact,
    synthesis: SynthesisArtifact,
    template: str = CROSS_EXAM_TEMPLATE,
) -> str:
    return template.format(
        agent_name=agent_name,
        question=question,
        own_position=f"{own.position}\n{own.rationale}",
        consensus=_format_consensus(synthesis),
        tensions=_format_tensions(synthesis),
        json_instruction=JSON_INSTRUCTION,
    )


def _format_cross_exam_response(agent_name: str, content: str, fields: Sequence[tuple[str, str]]) -> str:
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        lines = []
        for key, label in fields:
            value = data.get(key)
            text = json.dumps(value) if isinstance(value, (list, dict)) else (value or "")
            lines.append(f"**{label}:** {text}")
        content = "\n".join(lines)
    return f"### Agent: {agent_name}\n{content}"


def build_cross_exam_judge_prompt(
    responses: Sequence[tuple[str, str]],
    synthesis: SynthesisArtifact,
    template: str = CROSS_EXAM_JUDGE_TEMPLATE,
    fields: Sequence[tuple[str, str]] = CROSS_EXAM_FIELDS,
) -> str:
    """``responses`` are (agent name, raw text) pairs from the cross-exam round."""
    return template.format(
        consensus=_format_consensus(synthesis),
        responses="\n---\n".join(_format_cross_exam_response(name, text, fields) for name, text in responses),
        json_instruction=JSON_INSTRUCTION,
    )


def build_verdict_prompt(
    question: str,
    round1: Sequence[IndependentArtifact],
    synthesis: SynthesisArtifact,
    cross_exam: CrossExamArtifact | None,
    template: str = VERDICT_TEMPLATE,
) -> str:
    positions = "\n".join(f"- {a.agent_id}: {a.position} (Confidence: {a.confidence})" for a in round1)
    consensus = "\n".join(f"- {cp.point}" for cp in synthesis.consensus_points) or "None"

    if cross_exam is None:
        cross_exam_text = "No cross-examination conducted."
    else:
        challenges = "\n".join(f"- {c.challenger} -> {c.target_agent}: {c.challenge}" for c in cross_exam.challenges)
        rebuttals = "\n".join(f"- {r.agent}: {r.rebuttal}" for r in cross_exam.rebuttals)
        cross_exam_text = (
            f"**Challenges:**\n{challenges or 'None'}\n\n"
            f"**Rebuttals:**\n{rebuttals or 'None'}\n\n"
            f"**Unresolved Issues:**\n{', '.join(cross_exam.unresolved) or 'None'}"
        )

    return template.format(
        question=question,
        positions=positions,
        consensus=consensus,
        tensions=_format_tensions(synthesis),
        cross_exam=cross_exam_text,
        json_instruction=JSON_INSTRUCTION,
    )
