"""
Typer CLI for the skillpath adaptive-learning core.

Commands:
    skillpath db init                          - Create database tables
    skillpath curriculum list                  - List curriculum skills
    skillpath curriculum seed-prerequisites    - Copy declared prerequisites into override rows
    skillpath record                           - Record one practice attempt
    skillpath due                              - Show review cards past due
    skillpath recommend                        - Show recommendations for a level
    skillpath path                             - Show the learning path for a level
    skillpath errors                           - Show the most frequent error tags

Usage:
    skillpath --help
    skillpath db init
    skillpath record learner-1 CP.MA.N1.1 --exercise ex-42 --correct --quality 4
    skillpath path learner-1 CE1 --json
"""

from __future__ import annotations

import json
import sys
from typing import NoReturn

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from skillpath import __version__
from skillpath.adaptive.learning_engine import LearningEngine, load_curriculum
from skillpath.adaptive.prerequisite_resolver import PrerequisiteResolver
from skillpath.config import get_settings
from skillpath.core.errors import SkillpathError
from skillpath.core.models import AttemptOutcome, MasteryLevel, Priority
from skillpath.curriculum.registry import CurriculumRegistry
from skillpath.db.database import configure_engine, init_db

app = typer.Typer(
    help="skillpath: mastery, spaced repetition and prerequisite-aware recommendations",
    no_args_is_help=True,
)

console = Console()

PRIORITY_STYLES = {
    Priority.HIGH: "bold red",
    Priority.MEDIUM: "yellow",
    Priority.LOW: "dim",
}


def configure_logging(level: str, log_file: str | None = None) -> None:
    """Route loguru output to stderr (and optionally a rotating file)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB", retention=5)


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Dependency injection container for CLI commands.

    Lazily builds the curriculum and engine so commands that need neither
    (db init) stay cheap.
    """

    def __init__(self, curriculum_path: str | None = None):
        self.settings = get_settings()
        self.curriculum_path = curriculum_path
        self._curriculum: CurriculumRegistry | None = None
        self._engine: LearningEngine | None = None

    @property
    def curriculum(self) -> CurriculumRegistry:
        if self._curriculum is None:
            if self.curriculum_path:
                self._curriculum = CurriculumRegistry.from_file(self.curriculum_path)
            else:
                self._curriculum = load_curriculum(self.settings)
        return self._curriculum

    @property
    def engine(self) -> LearningEngine:
        if self._engine is None:
            self._engine = LearningEngine(curriculum=self.curriculum, settings=self.settings)
        return self._engine


def _context(ctx: typer.Context) -> CLIContext:
    return ctx.obj


def _fail(error: Exception) -> NoReturn:
    rprint(f"[red]✗[/red] {error}")
    raise typer.Exit(code=1)


def _print_json(data) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.callback()
def main_callback(
    ctx: typer.Context,
    database_url: str | None = typer.Option(
        None, "--database-url", envvar="SKILLPATH_DATABASE_URL", help="SQLAlchemy URL (overrides settings)"
    ),
    curriculum: str | None = typer.Option(None, "--curriculum", "-c", help="Curriculum JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Adaptive-learning core CLI."""
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)
    configure_engine(database_url, echo=False)
    ctx.obj = CLIContext(curriculum_path=curriculum)


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Create all tables from the SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    init_db()
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# CURRICULUM COMMANDS
# ========================================

curriculum_app = typer.Typer(help="Curriculum reference data")
app.add_typer(curriculum_app, name="curriculum")


@curriculum_app.command("list")
def curriculum_list(
    ctx: typer.Context,
    level: str | None = typer.Option(None, "--level", "-l", help="Only this level"),
    domain: str | None = typer.Option(None, "--domain", "-d", help="Only this domain (e.g. mathematiques)"),
    leaps: bool = typer.Option(False, "--leaps", help="Only qualitative-leap skills"),
) -> None:
    """List curriculum skills with their declared prerequisites."""
    try:
        registry = _context(ctx).curriculum
    except FileNotFoundError as e:
        _fail(e)

    levels = [level] if level else list(registry.levels)
    table = Table(title=f"Curriculum '{registry.name}'")
    table.add_column("Code", style="cyan")
    table.add_column("Domain")
    table.add_column("Title")
    table.add_column("Prerequisites", style="dim")
    table.add_column("Leap", justify="center")

    count = 0
    for lvl in levels:
        if domain:
            skills = registry.skills_by_domain(lvl, domain)
        elif leaps:
            skills = registry.skills_with_leaps(lvl)
        else:
            skills = registry.skills_of(lvl)
        for skill in skills:
            if leaps and not skill.is_qualitative_leap:
                continue
            count += 1
            table.add_row(
                skill.code,
                f"{skill.domain}/{skill.subdomain}",
                skill.title,
                ", ".join(skill.prerequisite_codes) or "-",
                "★" if skill.is_qualitative_leap else "",
            )

    if count == 0:
        rprint("[yellow]⚠[/yellow] No skills match")
        return
    console.print(table)


@curriculum_app.command("seed-prerequisites")
def curriculum_seed(
    ctx: typer.Context,
    level: str | None = typer.Option(None, "--level", "-l", help="Only reseed this level"),
) -> None:
    """Replace prerequisite overrides with the curriculum's declared edges."""
    try:
        resolver = PrerequisiteResolver(_context(ctx).curriculum)
        written = resolver.seed_overrides_from_curriculum(level)
    except (SkillpathError, FileNotFoundError) as e:
        _fail(e)
    rprint(f"[green]✓[/green] Seeded {written} prerequisite edges")


# ========================================
# LEARNER COMMANDS
# ========================================


@app.command("record")
def record(
    ctx: typer.Context,
    learner_id: str = typer.Argument(..., help="Learner identifier"),
    skill_code: str = typer.Argument(..., help="Skill code"),
    exercise_id: str = typer.Option(..., "--exercise", "-e", help="Exercise identifier"),
    correct: bool = typer.Option(..., "--correct/--incorrect", help="Whether the answer was correct"),
    quality: float = typer.Option(..., "--quality", "-q", help="Recall quality 0-5"),
    hints: int = typer.Option(0, "--hints", help="Hints used"),
    seconds: int = typer.Option(0, "--time", help="Time spent in seconds"),
    tags: list[str] | None = typer.Option(None, "--tag", "-t", help="Error tag (repeatable)"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Record one practice attempt and show the updated state."""
    outcome = AttemptOutcome(
        learner_id=learner_id,
        exercise_id=exercise_id,
        skill_code=skill_code,
        is_correct=correct,
        quality=quality,
        hints_used=hints,
        time_spent_seconds=seconds,
        error_tags=list(tags or []),
    )
    try:
        result = _context(ctx).engine.record_outcome_and_update(outcome)
    except (SkillpathError, FileNotFoundError) as e:
        _fail(e)

    if as_json:
        _print_json(result.to_dict())
        return

    mastery = result.mastery
    schedule = result.spaced_repetition
    rprint(f"\n[bold]{skill_code}[/bold] for {learner_id} (outcome #{result.outcome_id})")
    rprint(f"  Mastery: [{mastery.level.color}]{mastery.level.display_name}[/] {mastery.percent:.1f}%")
    rprint(f"  Average quality: {mastery.average_quality:.2f}")
    rprint(f"  Next review: {schedule.next_review_at:%Y-%m-%d %H:%M} ({schedule.interval_days}d)")
    if mastery.needs_review:
        rprint("  [yellow]⚠ Needs review[/yellow]")
    if result.blocked.is_blocked:
        rprint(f"  [red]Blocked by:[/red] {', '.join(result.blocked.blocking_prerequisites)}")
    if result.struggling.is_struggling:
        rprint(
            f"  [red]Struggling:[/red] {result.struggling.recent_failures} failures "
            f"in the last {result.struggling.window} attempts"
        )
    for action in result.remediation:
        rprint(f"  → {action.action}: {action.reason}")


@app.command("due")
def due(
    ctx: typer.Context,
    learner_id: str = typer.Argument(..., help="Learner identifier"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Maximum cards"),
) -> None:
    """Show review cards past due, soonest first."""
    try:
        cards = _context(ctx).engine.get_due_reviews(learner_id, limit=limit)
    except (SkillpathError, FileNotFoundError) as e:
        _fail(e)

    if not cards:
        rprint("[green]✓[/green] Nothing due")
        return

    table = Table(title=f"Due reviews for {learner_id}")
    table.add_column("Skill", style="cyan")
    table.add_column("Due", style="yellow")
    table.add_column("Interval", justify="right")
    table.add_column("Rep", justify="right")
    table.add_column("EF", justify="right", style="dim")
    for card in cards:
        table.add_row(
            card.skill_code,
            f"{card.next_review_at:%Y-%m-%d %H:%M}",
            f"{card.interval_days}d",
            str(card.repetition_number),
            f"{card.easiness_factor:.2f}",
        )
    console.print(table)


@app.command("recommend")
def recommend(
    ctx: typer.Context,
    learner_id: str = typer.Argument(..., help="Learner identifier"),
    level: str = typer.Argument(..., help="Curriculum level (e.g. CP, CE1)"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
) -> None:
    """Show prioritized recommendations for a level."""
    try:
        recommendations = _context(ctx).engine.get_recommendations(learner_id, level)
    except (SkillpathError, FileNotFoundError) as e:
        _fail(e)

    if as_json:
        _print_json([r.to_dict() for r in recommendations])
        return

    table = Table(title=f"Recommendations for {learner_id} ({level})")
    table.add_column("Priority")
    table.add_column("Skill", style="cyan")
    table.add_column("Type")
    table.add_column("Reason")
    for rec in recommendations:
        style = PRIORITY_STYLES[rec.priority]
        table.add_row(f"[{style}]{rec.priority.value}[/]", rec.skill_code, rec.type.value, rec.reason)
    console.print(table)


@app.command("path")
def path(
    ctx: typer.Context,
    learner_id: str = typer.Argument(..., help="Learner identifier"),
    level: str = typer.Argument(..., help="Curriculum level (e.g. CP, CE1)"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
) -> None:
    """Show the learning path for a level."""
    try:
        learning_path = _context(ctx).engine.get_learning_path(learner_id, level)
    except (SkillpathError, FileNotFoundError) as e:
        _fail(e)

    if as_json:
        _print_json(learning_path.to_dict())
        return

    table = Table(title=f"Learning path for {learner_id} ({level})")
    table.add_column("Skill", style="cyan")
    table.add_column("Level")
    table.add_column("Progress", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Next review", style="dim")
    table.add_column("Blocked by", style="red")
    for view in learning_path.skills:
        level_style = view.mastery_level.color
        table.add_row(
            view.skill_code,
            f"[{level_style}]{view.mastery_level.display_name}[/]",
            f"{view.progress_percent:.1f}%",
            f"{view.successful_attempts}/{view.total_attempts}",
            f"{view.next_review_at:%Y-%m-%d}" if view.next_review_at else "-",
            ", ".join(view.blocking_prerequisites) or "",
        )
    console.print(table)

    summary = learning_path.summary
    rprint(
        f"\n[bold]{summary.overall_progress:.1f}%[/bold] mastered  "
        f"[{MasteryLevel.MASTERED.color}]{summary.mastered} mastered[/]  "
        f"[{MasteryLevel.IN_PROGRESS.color}]{summary.in_progress} in progress[/]  "
        f"{summary.not_started} not started  [red]{summary.blocked} blocked[/red]"
    )


@app.command("errors")
def errors(
    ctx: typer.Context,
    learner_id: str = typer.Argument(..., help="Learner identifier"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Maximum patterns"),
) -> None:
    """Show the most frequent error tags."""
    try:
        patterns = _context(ctx).engine.get_error_patterns(learner_id, limit=limit)
    except (SkillpathError, FileNotFoundError) as e:
        _fail(e)

    if not patterns:
        rprint("[green]✓[/green] No error patterns recorded")
        return

    table = Table(title=f"Error patterns for {learner_id}")
    table.add_column("Tag", style="red")
    table.add_column("Skill", style="cyan")
    table.add_column("Occurrences", justify="right")
    table.add_column("Last seen", style="dim")
    for pattern in patterns:
        table.add_row(pattern.tag, pattern.skill_code, str(pattern.occurrences), f"{pattern.last_seen_at:%Y-%m-%d %H:%M}")
    console.print(table)


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint(f"[bold]skillpath[/bold] v{__version__}")


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
