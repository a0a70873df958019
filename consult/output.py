"""Rich console output and markdown/JSON file save for consultation results."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from consult.cost_ledger import LedgerSummary
from consult.models import AgentResponse, ConsultationResult, CostEstimate

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_SEVERITY_STYLE = {"high": "red", "medium": "yellow", "low": "dim"}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _response_preview(response: AgentResponse, words: int = 50) -> str:
    """Return first N words of a response."""
    all_words = response.content.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_cost_estimate(estimate: CostEstimate, agent_count: int, max_rounds: int) -> None:
    console.print(
        Panel(
            f"Agents: {agent_count}   Rounds: {max_rounds}\n"
            f"Tokens: ~{estimate.input_tokens:,} in / ~{estimate.output_tokens:,} out\n"
            f"[bold]Estimated cost: ${estimate.estimated_cost_usd:.4f}[/bold]",
            title="[bold]Cost Estimate[/bold]",
            border_style="yellow",
        )
    )


def print_round1_summary(responses: list[AgentResponse]) -> None:
    """Print a brief summary of Round 1 responses to the console."""
    console.print(Rule("[bold cyan]Round 1: Independent Analysis[/bold cyan]"))
    for resp in responses:
        if resp.error:
            body, style = f"[red]Failed:[/red] {escape(resp.error)}", "red"
        else:
            body, style = _response_preview(resp), "dim"
        console.print(
            Panel(
                body,
                title=f"[bold]{resp.agent_name}[/bold] ({resp.model})",
                subtitle=f"{resp.duration_sec:.1f}s",
                border_style=style,
            )
        )


def print_result(result: ConsultationResult) -> None:
    """Print the verdict, dissent and unresolved concerns."""
    console.print(Rule("[bold green]Council Verdict[/bold green]"))
    summary = f"Rounds: {result.completed_rounds}/{result.rounds} | Duration: {result.duration_sec:.1f}s"
    if result.cost:
        summary += f" | Cost: ${result.cost.actual_usd:.4f} (est. ${result.cost.estimated_usd:.4f})"
    if result.early_termination:
        summary += " | early termination"
    console.print(Text(summary, style="dim"))
    console.print(Markdown(f"**Recommendation** (confidence {result.confidence:.2f})\n\n{result.recommendation}"))

    if result.round4 and result.round4.options:
        table = Table(title="Options", show_header=True, header_style="bold")
        table.add_column("Option")
        table.add_column("Pros")
        table.add_column("Cons")
        table.add_column("Best when")
        for o in result.round4.options:
            table.add_row(o.option, "\n".join(o.pros), "\n".join(o.cons), o.best_when)
        console.print(table)

    if result.dissent:
        table = Table(title="Dissent", show_header=True, header_style="bold")
        table.add_column("Agent")
        table.add_column("Severity")
        table.add_column("Concern")
        for d in result.dissent:
            table.add_row(d.agent, Text(d.severity, style=_SEVERITY_STYLE.get(d.severity, "")), d.concern)
        console.print(table)

    if result.concerns:
        console.print("[bold]Unresolved:[/bold]")
        for concern in result.concerns:
            console.print(f"  - {concern}")

    if result.tokens_saved_via_filtering:
        console.print(f"[green]Saved ~{result.tokens_saved_via_filtering} tokens via artifact filtering[/green]")


def print_ledger_summary(summary: LedgerSummary) -> None:
    console.print(
        Text(
            f"{summary.total_calls} calls ({summary.failed_calls} failed) | "
            f"{summary.input_tokens:,} in / {summary.output_tokens:,} out | "
            f"cache hit {summary.cache_hit_rate:.0%} | "
            f"${summary.total_cost:.4f} (${summary.cost_without_cache:.4f} without cache) | "
            f"avg {summary.average_latency_ms:.0f}ms",
            style="dim",
        )
    )


def render_markdown(result: ConsultationResult) -> str:
    lines: list[str] = [
        f"# Council Consultation: {result.question[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Consultation:** {result.consultation_id}",
        f"**Mode:** {result.mode}",
        f"**Panel:** {', '.join(f'{a.name} ({a.model})' for a in result.agents)}",
        f"**Rounds:** {result.completed_rounds}/{result.rounds}"
        + (" (early termination)" if result.early_termination else ""),
        f"**Duration:** {result.duration_sec:.1f}s",
    ]
    if result.cost:
        lines.append(
            f"**Cost:** ${result.cost.actual_usd:.4f} (estimated ${result.cost.estimated_usd:.4f}, "
            f"{result.cost.tokens.total:,} tokens)"
        )
    lines += ["", "---", ""]

    if result.context:
        lines += ["## Context", "", result.context, ""]

    lines += ["## Round 1: Independent Analysis", ""]
    for resp in result.agent_responses:
        lines.append(f"### {resp.agent_name} ({resp.model})")
        lines.append("")
        if resp.error:
            lines.append(f"*Failed: {resp.error}*")
        else:
            artifact = next((a for a in result.round1 if a.agent_id == resp.agent_name), None)
            if artifact:
                lines.append(f"**Position:** {artifact.position} (confidence {artifact.confidence:.2f})")
                lines.append("")
                lines += [f"- {kp}" for kp in artifact.key_points]
                lines.append("")
                lines.append(artifact.rationale)
            else:
                lines.append(resp.content)
        lines.append("")

    if result.round2:
        lines += ["## Round 2: Synthesis", "", "**Consensus:**", ""]
        lines += [f"- {cp.point} ({', '.join(cp.supporting_agents)}; {cp.confidence:.2f})"
                  for cp in result.round2.consensus_points]
        lines += ["", "**Tensions:**", ""]
        for t in result.round2.tensions:
            lines.append(f"- {t.topic}")
            lines += [f"  - {v.agent}: {v.viewpoint}" for v in t.viewpoints]
        lines.append("")

    if result.round3:
        lines += ["## Round 3: Cross-Examination", "", "**Challenges:**", ""]
        lines += [f"- {c.challenger} -> {c.target_agent}: {c.challenge}" for c in result.round3.challenges]
        lines += ["", "**Rebuttals:**", ""]
        lines += [f"- {r.agent}: {r.rebuttal}" for r in result.round3.rebuttals]
        lines += ["", "**Unresolved:**", ""]
        lines += [f"- {u}" for u in result.round3.unresolved]
        lines.append("")

    if result.round4:
        lines += [
            "## Verdict",
            "",
            f"**Recommendation:** {result.round4.recommendation}",
            f"**Confidence:** {result.round4.confidence:.2f}",
            "",
            "**Evidence:**",
            "",
        ]
        lines += [f"- {e}" for e in result.round4.evidence]
        for o in result.round4.options:
            lines += ["", f"### Option: {o.option}", ""]
            if o.description:
                lines.append(o.description)
            lines += [f"- Pro: {p}" for p in o.pros]
            lines += [f"- Con: {c}" for c in o.cons]
            if o.best_when:
                lines.append(f"- Best when: {o.best_when}")
        if result.round4.synergies:
            lines += ["", "**Synergies:**", ""]
            lines += [f"- {s}" for s in result.round4.synergies]
        if result.round4.dissent:
            lines += ["", "**Dissent:**", ""]
            lines += [f"- {d.agent} [{d.severity}]: {d.concern}" for d in result.round4.dissent]
        lines.append("")

    return "\n".join(lines)


def save_to_file(result: ConsultationResult, output_dir: Path, as_json: bool = False) -> Path:
    """Save the consultation transcript.

    Args:
        result: The completed ConsultationResult.
        output_dir: Directory to save the file in.
        as_json: Write the full result as JSON instead of markdown.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    suffix = "json" if as_json else "md"
    filepath = output_dir / f"{timestamp}_{_slug(result.question)}.{suffix}"

    if as_json:
        filepath.write_text(json.dumps(result.to_dict(), indent=2, default=str), encoding="utf-8")
    else:
        filepath.write_text(render_markdown(result), encoding="utf-8")
    logger.info("Consultation saved to: %s", filepath)
    return filepath
