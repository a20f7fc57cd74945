#!/usr/bin/env python3
"""
Interactive Drafting Session.

Chat with the assistant about one draft from the terminal. Messages are
stored in the opinion store, so a session can be resumed later.

Commands:
    /opinion   draft all five sections from the conversation
    /sections  list the draft's sections
    /review    review the draft and run the final quality check
    /quit      leave the session

Usage:
    python scripts/opinion_chat.py --draft 42
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from app.config import get_settings
from app.dependencies import Services, build_services
from src.agents import OrchestrationError, ReviewError, join_sections
from src.knowledge import MessageRole
from src.utils.logger import setup_logging

console = Console()


async def chat_turn(services: Services, draft_id: int, message: str) -> None:
    """Answer one message and store both sides of the exchange."""
    history = services.store.list_messages(draft_id)
    services.store.add_message(draft_id, MessageRole.USER, message)

    with console.status("[bold green]Thinking..."):
        response = await services.orchestrator.handle_message(message, history, draft_id)

    services.store.add_message(
        draft_id,
        MessageRole.ASSISTANT,
        response.message,
        metadata=response.metadata_json(),
    )

    console.print(Panel(
        response.message,
        title=f"[cyan]{response.phase.value}[/] ({response.workflow_state.completeness}%)",
        border_style="blue",
    ))
    if response.sources:
        console.print("[dim]Sources: " + ", ".join(s.file_name for s in response.sources) + "[/dim]")
    for suggestion in response.suggestions:
        console.print(f"  [yellow]›[/] {suggestion}")


async def draft_opinion(services: Services, draft_id: int) -> None:
    history = services.store.list_messages(draft_id)
    if not history:
        console.print("[yellow]Nothing to draft from yet - describe the matter first.[/]")
        return

    with console.status("[bold green]Drafting opinion..."):
        drafted = await services.orchestrator.draft_complete_opinion(history, draft_id)

    for section in drafted:
        services.store.add_section(draft_id, section.section_type.value, section.title, section.content)
    console.print(f"[green]✓ Drafted {len(drafted)} sections[/]")


def show_sections(services: Services, draft_id: int) -> None:
    sections = services.store.list_sections(draft_id)
    if not sections:
        console.print("[yellow]No sections yet.[/]")
        return

    table = Table(title=f"Draft {draft_id}", show_header=True)
    table.add_column("#", style="dim", width=3)
    table.add_column("Type", width=12)
    table.add_column("Title", width=30)
    table.add_column("AI", width=4)
    table.add_column("Preview", width=50)

    for section in sections:
        table.add_row(
            str(section.order),
            section.section_type,
            section.title,
            "yes" if section.ai_generated else "no",
            section.content[:50].replace("\n", " "),
        )
    console.print(table)


async def review_draft(services: Services, draft_id: int) -> None:
    sections = services.store.list_sections(draft_id)
    if not sections:
        console.print("[yellow]No sections to review.[/]")
        return

    with console.status("[bold green]Reviewing..."):
        feedback = await services.review.review_opinion(sections)
        check = await services.review.final_quality_check(join_sections(sections))

    console.print(f"\n[bold]Overall score:[/] {feedback.overall_score}/100")
    console.print(f"[bold]Ready for client:[/] {'yes' if feedback.ready_for_client else 'no'}")
    for recommendation in feedback.recommendations:
        console.print(f"  • {recommendation}")

    style = "green" if check.passes_check else "red"
    console.print(f"\n[{style}]Final check {'passed' if check.passes_check else 'failed'}[/]")
    for issue in check.critical_issues:
        console.print(f"  [red]✗[/] {issue}")
    for warning in check.warnings:
        console.print(f"  [yellow]![/] {warning}")


async def run_session(services: Services, draft_id: int) -> None:
    console.print(f"[bold]Opinion Drafting Assistant[/] - draft {draft_id}")
    console.print("[dim]Commands: /opinion /sections /review /quit[/]")

    while True:
        try:
            message = console.input("\n[bold green]You:[/] ").strip()
        except (EOFError, KeyboardInterrupt):
            break

        if not message:
            continue
        if message == "/quit":
            break

        try:
            match message:
                case "/opinion":
                    await draft_opinion(services, draft_id)
                case "/sections":
                    show_sections(services, draft_id)
                case "/review":
                    await review_draft(services, draft_id)
                case _:
                    await chat_turn(services, draft_id, message)
        except (OrchestrationError, ReviewError) as e:
            cause = f" ({e.__cause__})" if e.__cause__ else ""
            console.print(f"[red]{e}{cause}[/]")

    console.print("\n[dim]Session saved.[/]")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Interactive tax opinion drafting session"
    )
    parser.add_argument(
        "--draft",
        type=int,
        required=True,
        help="Draft to work on",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()

    setup_logging(args.log_level)
    services = build_services(get_settings())

    asyncio.run(run_session(services, args.draft))


if __name__ == "__main__":
    main()
