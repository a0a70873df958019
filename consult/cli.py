"""Click CLI: wires config, providers, consent prompts and output around the orchestrator."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from config.config_loader import AppConfig, load_config, save_auto_approve_threshold
from consult import events
from consult.cost_gate import ConsentDecision, CostGate
from consult.cost_ledger import CostLedger
from consult.events import EventBus
from consult.healthcheck import run_health_checks
from consult.models import Agent, CostEstimate
from consult.orchestrator import CONSENT_DENIED_REASON, ConsultationCancelled, ConsultationError, ConsultOrchestrator
from consult.output import print_cost_estimate, print_ledger_summary, print_result, print_round1_summary, save_to_file
from consult.pricing import PriceTable
from consult.providers.base import AIProvider, ProviderError
from consult.roster import build_judge, build_roster
from consult.state_machine import ROUND_FOR_STATE, ConsultState
from consult.strategies import MODES

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


class ConsoleConsentPrompt:
    """Interactive consent for estimates above the auto-approve threshold."""

    def __init__(self, user_settings_path: Path | None = None) -> None:
        self._user_settings_path = user_settings_path

    async def __call__(self, estimate: CostEstimate, agent_count: int, max_rounds: int) -> ConsentDecision:
        print_cost_estimate(estimate, agent_count, max_rounds)
        answer = click.prompt(
            "Proceed?",
            type=click.Choice(["y", "n", "always"], case_sensitive=False),
            default="y",
        ).lower()
        if answer == "n":
            return ConsentDecision.DENIED
        if answer == "always":
            threshold = click.prompt(
                "Auto-approve consultations under (USD)",
                type=click.FloatRange(min=0),
                default=max(round(estimate.estimated_cost_usd * 2, 2), 0.5),
            )
            kwargs = {"user_settings_path": self._user_settings_path} if self._user_settings_path else {}
            path = save_auto_approve_threshold(threshold, **kwargs)
            console.print(f"[dim]Saved auto-approve threshold ${threshold:.2f} to {path}[/dim]")
            return ConsentDecision.ALWAYS
        return ConsentDecision.APPROVED


async def _confirm_early_termination(confidence: float) -> bool:
    return click.confirm(
        f"Consensus confidence is {confidence:.0%}. Skip cross-examination and verdict?",
        default=True,
    )


def _progress_printer(event: str, payload: dict[str, Any]) -> None:
    """Event bus subscriber that narrates the consultation on the console."""
    if event == events.STATE_CHANGE:
        to_state = ConsultState(payload["to_state"])
        if to_state in ROUND_FOR_STATE:
            console.print(f"[bold cyan]Round {ROUND_FOR_STATE[to_state]}[/bold cyan] {to_state.value}...")
        elif to_state == ConsultState.ABORTED and payload.get("reason") != CONSENT_DENIED_REASON:
            console.print(f"[red]Aborted:[/red] {escape(payload.get('reason') or 'unknown reason')}")
    elif event == events.AGENT_COMPLETED:
        console.print(
            f"  [green]OK[/green]   {payload['agent']} "
            f"({payload['duration_sec']:.1f}s, {payload['tokens']} tokens)"
        )
    elif event == events.AGENT_FAILED:
        short_err = payload["error"].splitlines()[0][:120] if payload.get("error") else "unknown error"
        console.print(f"  [red]FAIL[/red] {payload['agent']}: {escape(short_err)}")


def _check_and_filter_providers(providers: dict[str, AIProvider]) -> dict[str, AIProvider]:
    """Run health checks and drop failing providers. Exits if none pass."""
    console.print("\n[bold]Checking providers...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(providers))

    failed_names: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {escape(short_err)}")
            failed_names.append(name)

    working = {n: p for n, p in providers.items() if n not in failed_names}
    if not working:
        console.print("\n[bold red]Error:[/bold red] No providers passed the health check.")
        sys.exit(1)
    if failed_names and not click.confirm("Continue with working providers only?", default=True):
        sys.exit(0)
    console.print()
    return working


def _build_orchestrator(
    config: AppConfig,
    agents: list[Agent],
    judge: AIProvider,
    ledger: CostLedger,
    price_table: PriceTable,
    verbose: bool,
) -> ConsultOrchestrator:
    bus = EventBus()
    bus.subscribe(events.WILDCARD, _progress_printer)
    return ConsultOrchestrator(
        agents,
        judge,
        config.policy,
        ledger=ledger,
        event_bus=bus,
        cost_gate=CostGate(ConsoleConsentPrompt()),
        price_table=price_table,
        verbose=verbose,
        early_termination_prompt=_confirm_early_termination,
    )


@click.command()
@click.argument("question", required=False)
@click.option("--context", "context_text", default="", help="Extra context passed to every agent")
@click.option("--context-file", type=click.Path(exists=True, dir_okay=False), help="Read extra context from a file")
@click.option("--yes", "assume_yes", is_flag=True, help="Approve the cost estimate without prompting")
@click.option("--mode", type=click.Choice(MODES), default=None,
              help="converge: one recommendation. explore: a menu of options (default: from config)")
@click.option("--verbose", is_flag=True, help="DEBUG logging and unfiltered artifacts between rounds")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--json", "as_json", is_flag=True, help="Save the result as JSON instead of markdown")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    question: str | None,
    context_text: str,
    context_file: str | None,
    assume_yes: bool,
    mode: str | None,
    verbose: bool,
    output_path: str | None,
    as_json: bool,
    skip_health_check: bool,
) -> None:
    """Council Consult -- cost-gated four-round multi-model consultation.

    \b
    Examples:
      council-consult "Should we use REST or GraphQL?"
      council-consult "Is this auth flow safe?" --context-file design.md
      council-consult "Monorepo vs polyrepo?" --yes --json
      council-consult "How could we cut CI time?" --mode explore
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    if not question:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument.")
        sys.exit(1)

    context = context_text
    if context_file:
        file_text = Path(context_file).read_text(encoding="utf-8").strip()
        context = f"{context}\n\n{file_text}".strip() if context else file_text

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)
    if mode:
        config.policy.mode = mode

    price_table = PriceTable.from_config(config.pricing)
    ledger = CostLedger(price_table)
    providers: dict[str, AIProvider] = {}
    agents = build_roster(config, ledger, providers)
    try:
        judge = build_judge(config, ledger, providers)
    except ProviderError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    if not skip_health_check:
        working = _check_and_filter_providers(providers)
        agents = [a for a in agents if a.provider in working.values()]
        if judge not in working.values():
            console.print("[bold red]Error:[/bold red] Judge provider failed the health check.")
            sys.exit(1)

    if not agents:
        console.print("[bold red]Error:[/bold red] No agents available. Check API keys in .env.")
        sys.exit(1)

    console.print(
        f"\n[bold cyan]Council Consult[/bold cyan]: {len(agents)} agents, "
        f"judge {judge.model_string()}, {config.policy.mode} mode"
    )
    console.print(f"Panel: {', '.join(f'{a.name} ({a.model})' for a in agents)}")
    console.print(f"Question: [italic]{question[:80]}{'...' if len(question) > 80 else ''}[/italic]\n")

    orchestrator = _build_orchestrator(config, agents, judge, ledger, price_table, verbose)
    try:
        result = asyncio.run(orchestrator.consult(question, context, allow_cost_overruns=assume_yes))
    except ConsultationCancelled:
        console.print("[yellow]Consultation cancelled.[/yellow]")
        sys.exit(0)
    except (ConsultationError, ProviderError, ValueError) as exc:
        console.print(f"[bold red]Consultation failed:[/bold red] {escape(str(exc))}")
        print_ledger_summary(ledger.summary())
        sys.exit(1)

    print_round1_summary(result.agent_responses)
    print_result(result)
    print_ledger_summary(ledger.summary())

    output_dir = Path(output_path) if output_path else config.defaults.output_dir
    saved_path = save_to_file(result, output_dir, as_json=as_json)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


if __name__ == "__main__":
    main()
