from . import db
from typing import Any

try:
    import llm  # type: ignore
    hookimpl = llm.hookimpl  # type: ignore
except ImportError:
    import pluggy
    hookimpl = pluggy.HookimplMarker("llm")


def summarize_parsed(parsed: Any) -> str:
    """Plain-text rendition of a parsed reply for the terminal."""
    lines = []
    if parsed.pathway is not None:
        pathway = parsed.pathway
        lines.append(f"Learning Pathway: {pathway.title}")
        lines.append(pathway.description)
        if pathway.prerequisites:
            lines.append("Prerequisites: " + ", ".join(pathway.prerequisites))
        for level in pathway.level_names():
            steps = pathway.steps_for(level)
            lines.append(f"\n{level} ({len(steps)} steps)")
            for i, step in enumerate(steps, 1):
                lines.append(f"  {i}. {step.title}")
    elif parsed.card is not None:
        card = parsed.card
        lines.append(f"Learning Card: {card.title}")
        if card.difficulty or card.estimated_time:
            lines.append(" | ".join(p for p in (card.difficulty, card.estimated_time) if p))
        lines.append(card.overview)
        for concept in card.concepts:
            lines.append(f"  - {concept.title}: {concept.description}")
        if card.explore.suggested_questions:
            lines.append("Suggested questions:")
            for question in card.explore.suggested_questions:
                lines.append(f"  ? {question}")
    else:
        lines.append(parsed.text)
    return "\n".join(lines)


def _load_progress(email: str, message_id: str) -> Any:
    from .chat import find_pathway
    from .progress import PathwayProgress
    from .storage import DatabaseStorage

    user = db.get_or_create_user(email)
    _, parsed = find_pathway(message_id)
    return PathwayProgress(parsed.pathway, DatabaseStorage(user.id), namespace=message_id).load()


@hookimpl  # type: ignore[misc]
def register_commands(cli: Any) -> None:
    import click

    @cli.command("lc-init-db")  # type: ignore[misc]
    def init_db() -> None:
        """Initialize the learning cards database."""
        db.init_db()
        click.echo("Database initialized.")

    @cli.command("lc-ask")  # type: ignore[misc]
    @click.argument("question")
    @click.option("--model", default="gpt-4o-mini", help="LLM model name to use for the answer")
    def ask(question: str, model: str) -> None:
        """Ask one question and print the learning card or pathway."""
        from .parsing import parse_assistant_content
        from .prompts import system_prompt
        from .providers import DEFAULT_CHAT_MODEL
        import llm  # type: ignore

        llm_model = llm.get_model(model)
        response = llm_model.prompt(question, system=system_prompt(DEFAULT_CHAT_MODEL))
        parsed = parse_assistant_content(response.text())
        click.echo(summarize_parsed(parsed))

    @cli.command("lc-chats")  # type: ignore[misc]
    @click.argument("email")
    def list_chats(email: str) -> None:
        """List the chats of a user, newest first."""
        user = db.get_or_create_user(email)
        chats = db.get_chats_by_user(user.id)
        if not chats:
            click.echo("No chats found.")
            return
        for chat in chats:
            click.echo(f"{chat.id}  {chat.created_at:%Y-%m-%d %H:%M}  [{chat.visibility}] {chat.title}")

    @cli.command("lc-progress")  # type: ignore[misc]
    @click.argument("email")
    @click.argument("message_id")
    def show_progress(email: str, message_id: str) -> None:
        """Show progress through the pathway stored in a message."""
        try:
            progress = _load_progress(email, message_id)
        except LookupError as e:
            raise click.ClickException(str(e))
        summary = progress.calculate_progress()
        click.echo(f"{progress.pathway.title}: {summary.percentage}% Complete "
                   f"({summary.completed} of {summary.total} steps completed)")
        for level in progress.pathway.level_names():
            level_summary = progress.level_progress(level)
            click.echo(f"  {level}: {level_summary.completed}/{level_summary.total} ({level_summary.percentage}%)")

    @cli.command("lc-reset-progress")  # type: ignore[misc]
    @click.argument("email")
    @click.argument("message_id")
    def reset_progress(email: str, message_id: str) -> None:
        """Clear stored progress and quiz answers for a pathway."""
        try:
            progress = _load_progress(email, message_id)
        except LookupError as e:
            raise click.ClickException(str(e))
        progress.reset()
        click.echo("Progress reset.")
