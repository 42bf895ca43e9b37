"""CLI interface for plancoach using Rich."""

import argparse
import logging
import os
from datetime import date

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import FloatPrompt, IntPrompt, Prompt
from rich.table import Table

from src.agent.coach_chat import ChatOutcome, CoachChat
from src.agent.llm import GenerationError, GenerativeClient, get_client
from src.memory.conversation import WELCOME_MESSAGE, ConversationLog
from src.memory.profile import (
    AthleteProfile,
    format_pace,
    load_profile,
    revise_objective,
    save_profile,
)
from src.memory.session_store import SessionNotFoundError, SessionStore
from src.memory.training_session import SessionStatus
from src.tools.activity_importer import ActivityImporter
from src.tools.strava_client import (
    DEFAULT_DAYS,
    ProviderError,
    StravaClient,
    StravaCredentials,
    refresh_credentials,
)

console = Console()

STATUS_STYLES = {
    SessionStatus.PLANNED: "cyan",
    SessionStatus.COMPLETED: "green",
    SessionStatus.CANCELLED: "red",
    SessionStatus.POSTPONED: "yellow",
}


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _build_chat() -> CoachChat:
    store = SessionStore()
    return CoachChat(
        store=store,
        history=ConversationLog(),
        llm=GenerativeClient(client=get_client()),
        profile=load_profile(),
    )


def _print_outcome(outcome: ChatOutcome) -> None:
    if outcome.stale or outcome.reply is None:
        return
    style = "red" if outcome.error else "blue"
    console.print(Panel(escape(outcome.reply), title="Coach", style=style))
    if outcome.plan_updated:
        result = outcome.reconciliation
        console.print(
            f"[dim]Plan updated: {result.deleted} replaced, {result.inserted} scheduled "
            f"(batch {result.batch_id[:8]})[/dim]"
        )


def display_plan(store: SessionStore, include_past: bool = False) -> None:
    """Display sessions as a Rich table."""
    today = date.today()
    sessions = [s for s in store.all() if include_past or s.date.date() >= today]
    if not sessions:
        console.print("[dim]No sessions scheduled. Try `plancoach new-plan`.[/dim]")
        return

    table = Table(title="Training Plan", show_lines=True)
    table.add_column("Date", style="bold", width=16)
    table.add_column("Sport", width=10)
    table.add_column("Discipline", style="cyan", width=14)
    table.add_column("Duration", justify="right", width=9)
    table.add_column("Intensity", width=9)
    table.add_column("Status", width=10)
    table.add_column("Description", width=36)
    table.add_column("Id", style="dim", width=8)

    for s in sessions:
        style = STATUS_STYLES[s.status]
        table.add_row(
            s.date.strftime("%a %Y-%m-%d"),
            s.sport,
            s.discipline.label,
            f"{s.duration_minutes} min",
            s.intensity.value,
            f"[{style}]{s.status.value}[/{style}]",
            s.description,
            s.id[:8],
        )
    console.print(table)


def display_profile(profile: AthleteProfile) -> None:
    paces = profile.effective_paces()
    lines = [
        f"Goal: {profile.goal_type} on {profile.goal_date.isoformat()} "
        f"({profile.weeks_remaining()} weeks)",
        f"Sports: {', '.join(profile.sports)} | {profile.weekly_hours} h/week",
        f"Max aerobic speed: {profile.max_aerobic_speed_kmh or '-'} km/h",
        f"Paces: endurance {format_pace(paces['endurance'])} | "
        f"threshold {format_pace(paces['threshold'])} | MAS {format_pace(paces['mas'])}",
    ]
    if profile.injuries:
        lines.append(f"Constraints: {profile.injuries}")
    console.print(Panel("\n".join(lines), title=profile.name or "Athlete", style="green"))


def edit_profile() -> None:
    """Interactive profile edit; offers a plan rebuild on significant changes."""
    existing = load_profile()
    profile = existing or AthleteProfile()

    profile.name = Prompt.ask("Name", default=profile.name or "Athlete")
    goal_type = Prompt.ask("Goal", default=profile.goal_type)
    goal_date_raw = Prompt.ask("Goal date (YYYY-MM-DD)", default=profile.goal_date.isoformat())
    try:
        goal_date = date.fromisoformat(goal_date_raw)
    except ValueError:
        console.print(f"[red]Invalid date: {goal_date_raw}[/red]")
        return
    mas = FloatPrompt.ask(
        "Max aerobic speed (km/h)", default=profile.max_aerobic_speed_kmh or 15.0,
    )
    profile.weekly_hours = IntPrompt.ask("Hours per week", default=profile.weekly_hours)
    sports = Prompt.ask("Sports (comma separated)", default=", ".join(profile.sports))
    profile.sports = [s.strip() for s in sports.split(",") if s.strip()]

    changed = revise_objective(profile, goal_type=goal_type, goal_date=goal_date, max_aerobic_speed_kmh=mas)
    profile.onboarding_complete = True
    path = save_profile(profile)
    console.print(f"[green]Profile saved to {path}[/green]")
    display_profile(profile)

    if existing is not None and changed:
        console.print("[yellow]Your objective changed. Run `plancoach new-plan` to rebuild the plan.[/yellow]")


def run_import(days: int) -> None:
    """Fetch recent provider activities and merge them into the store."""
    credentials = StravaCredentials.from_env()
    if credentials is None:
        console.print("[red]STRAVA_ACCESS_TOKEN not set in environment[/red]")
        return

    client_id = os.environ.get("STRAVA_CLIENT_ID")
    client_secret = os.environ.get("STRAVA_CLIENT_SECRET")
    refresher = None
    if client_id and client_secret:
        def refresher(creds):
            return refresh_credentials(creds, client_id, client_secret)

    console.print(f"[yellow]Fetching activities from the last {days} days...[/yellow]")
    try:
        with StravaClient(credentials, refresher=refresher) as client:
            activities = client.fetch_activities(days=days)
    except ProviderError as e:
        hint = " Try again later." if e.retryable else ""
        console.print(f"[red]Import failed: {e}.{hint}[/red]")
        return

    result = ActivityImporter(SessionStore()).import_activities(activities)
    if result.inserted:
        summary = ", ".join(
            f"{s.sport} {s.distance_km:.1f}km" if s.distance_km else f"{s.sport} {s.duration_minutes}min"
            for s in result.inserted
        )
        noun = "activity" if result.inserted_count == 1 else "activities"
        console.print(Panel(
            f"Imported {result.inserted_count} new {noun}: {summary}",
            title="Activity Import", style="green",
        ))
    else:
        console.print("[dim]No new activities found.[/dim]")


def run_check(llm: GenerativeClient | None = None) -> bool:
    """Send a test prompt to the generative service and report the reply."""
    console.print("[yellow]Checking connection...[/yellow]")
    try:
        llm = llm or GenerativeClient(client=get_client())
        reply = llm.check_connection()
    except (ValueError, GenerationError) as e:
        console.print(f"[red]Connection failed: {e}[/red]")
        return False
    console.print(f"[green]{escape(reply)}[/green]")
    return True


def record_done(session_prefix: str) -> None:
    """Mark a session completed, asking for its post-session metrics."""
    store = SessionStore()
    matches = [s for s in store.all() if s.id.startswith(session_prefix)]
    if len(matches) != 1:
        console.print(f"[red]{'No' if not matches else 'Ambiguous'} session matching {session_prefix}[/red]")
        return
    session = matches[0]

    distance = Prompt.ask("Distance (km)", default="")
    heart_rate = Prompt.ask("Average heart rate", default="")
    effort = IntPrompt.ask("Perceived effort (1-10)", default=5)
    comment = Prompt.ask("Comment", default="")
    try:
        store.record_completion(
            session.id,
            distance_km=float(distance) if distance else None,
            avg_heart_rate=int(heart_rate) if heart_rate else None,
            perceived_effort=effort,
            comment=comment or None,
        )
    except (ValueError, SessionNotFoundError) as e:
        console.print(f"[red]Could not record session: {e}[/red]")
        return
    console.print(f"[green]{session.discipline.label} on {session.date:%Y-%m-%d} marked completed.[/green]")


def run_chat(chat: CoachChat) -> None:
    """Interactive chat mode. `/new`, `/adjust`, `/plan`, `/reset` are shortcuts."""
    if not chat.history.messages():
        chat.history.add_assistant_message(WELCOME_MESSAGE)
        console.print(Panel(escape(WELCOME_MESSAGE), title="Coach", style="blue"))

    while True:
        try:
            user_input = Prompt.ask("\n[bold]You[/bold]")
        except (KeyboardInterrupt, EOFError):
            user_input = "exit"

        command = user_input.strip().lower()
        if command in ("exit", "quit", "q"):
            console.print("[dim]See you next time![/dim]")
            break
        if not command:
            continue

        if command == "/new":
            console.print("[dim]Building a new plan...[/dim]")
            _print_outcome(chat.start_new_plan())
        elif command == "/adjust":
            _start_adjustment(chat)
        elif command == "/plan":
            display_plan(chat.store)
        elif command == "/reset":
            chat.clear_conversation()
            console.print("[dim]Conversation cleared.[/dim]")
        else:
            _print_outcome(chat.send_message(user_input))


def _start_adjustment(chat: CoachChat) -> None:
    batch_id = chat.modify_current_plan()
    if batch_id is None:
        console.print("[yellow]No current plan found; your next request will build a new one.[/yellow]")
    console.print(Panel(escape(chat.history.messages()[-1].content), title="Coach", style="blue"))


def main(args: list[str] | None = None):
    """Main CLI entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        prog="plancoach",
        description="plancoach - conversational training plan assistant",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Show log output (-v info, -vv debug)",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("chat", help="Interactive chat with the coach (default)")
    sub.add_parser("new-plan", help="Generate a fresh plan, replacing upcoming generated sessions")
    adjust = sub.add_parser("adjust", help="Ask the coach to change the current plan")
    adjust.add_argument("request", nargs="+", help="What to change")
    plan = sub.add_parser("plan", help="List scheduled sessions")
    plan.add_argument("--all", action="store_true", help="Include past sessions")
    imp = sub.add_parser("import-strava", help="Import recent activities from Strava")
    imp.add_argument("--days", type=int, default=DEFAULT_DAYS, help="Look-back window in days")
    sub.add_parser("profile", help="Create or edit the athlete profile")
    done = sub.add_parser("done", help="Record a completed session")
    done.add_argument("session_id", help="Session id (or unique prefix)")
    sub.add_parser("reset-chat", help="Delete the conversation history")
    sub.add_parser("check", help="Check the connection to the generative service")

    parsed = parser.parse_args(args)
    configure_logging(parsed.verbose)

    if parsed.command == "plan":
        display_plan(SessionStore(), include_past=parsed.all)
        return

    if parsed.command == "import-strava":
        run_import(parsed.days)
        return

    if parsed.command == "profile":
        edit_profile()
        return

    if parsed.command == "done":
        record_done(parsed.session_id)
        return

    if parsed.command == "reset-chat":
        ConversationLog().clear()
        console.print("[dim]Conversation cleared.[/dim]")
        return

    if parsed.command == "check":
        run_check()
        return

    try:
        chat = _build_chat()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        return

    if parsed.command == "new-plan":
        console.print("[yellow]Generating your training plan...[/yellow]\n")
        _print_outcome(chat.start_new_plan())
        display_plan(chat.store)
        return

    if parsed.command == "adjust":
        _start_adjustment(chat)
        _print_outcome(chat.send_message(" ".join(parsed.request)))
        display_plan(chat.store)
        return

    # Default: chat mode
    run_chat(chat)


if __name__ == "__main__":
    main()
