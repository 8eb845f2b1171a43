"""CLI interface using Typer."""

from __future__ import annotations

import json
from datetime import date
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from goaltrack.config import get_settings
from goaltrack.db import get_db
from goaltrack.errors import MissingBiometricsError
from goaltrack.logging import configure_logging
from goaltrack.profiles import ActivityLevel, GoalType, Sex
from goaltrack.tracking.goals import GoalManager, GoalParams
from goaltrack.tracking.models import Goal, Reflection, Sentiment, TargetSnapshot
from goaltrack.tracking.reflection import ReflectionWorkflow
from goaltrack.tracking.timeline import get_suggested_date
from goaltrack.tracking.user_settings import UserSettings
from goaltrack.tracking.weights import WeightLog

app = typer.Typer(
    help="Calorie targets, weight goals and weekly reflections",
    no_args_is_help=True,
)
console = Console()

profile_app = typer.Typer(help="Manage biometric profile")
goal_app = typer.Typer(help="Create and manage the active goal")
weight_app = typer.Typer(help="Log weight with EWMA trend")
reflect_app = typer.Typer(help="Weekly reflection check-ins")

app.add_typer(profile_app, name="profile")
app.add_typer(goal_app, name="goal")
app.add_typer(weight_app, name="weight")
app.add_typer(reflect_app, name="reflect")


# ============================================================================
# Helpers
# ============================================================================


def output_json(response: dict, file=None) -> None:
    """Output JSON response to stdout or file."""
    json_str = json.dumps(response, indent=2)
    if file:
        file.write(json_str)
    else:
        print(json_str)


def fail(command: str, message: str, json_output: bool, suggestion: Optional[str] = None) -> None:
    """Report an error in the requested format and exit with status 1."""
    if json_output:
        response = {"success": False, "command": command, "errors": [message]}
        if suggestion:
            response["suggestions"] = [suggestion]
        output_json(response)
    else:
        console.print(f"[red]{message}[/red]")
        if suggestion:
            console.print(suggestion)
    raise typer.Exit(1)


def parse_date(value: Optional[str], command: str, json_output: bool) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        fail(command, f"Invalid date: {value} (expected YYYY-MM-DD)", json_output)


def build_services() -> tuple[GoalManager, WeightLog, UserSettings, ReflectionWorkflow]:
    """Wire the goal, weight, settings and reflection services to the database."""
    db = get_db()
    settings = get_settings()
    goals = GoalManager(db)
    weights = WeightLog(db)
    user_settings = UserSettings(db)
    workflow = ReflectionWorkflow(
        db,
        goals,
        weights,
        user_settings,
        cadence_days=settings.reflection.cadence_days,
        smoothing_threshold=settings.reflection.smoothing_threshold,
    )
    return goals, weights, user_settings, workflow


def targets_dict(targets: TargetSnapshot) -> dict:
    return {
        "calories": targets.calories,
        "protein_g": targets.protein_g,
        "carbs_g": targets.carbs_g,
        "fat_g": targets.fat_g,
    }


def goal_dict(goal: Goal) -> dict:
    return {
        "goal_id": goal.goal_id,
        "goal_type": goal.goal_type.value,
        "planning_mode": goal.planning_mode.value,
        "target_weight_kg": goal.target_weight_kg,
        "target_rate_percent": round(goal.target_rate_percent, 3),
        "target_date": goal.target_date.isoformat() if goal.target_date else None,
        "start_date": goal.start_date.isoformat(),
        "start_weight_kg": goal.start_weight_kg,
        "eating_style": goal.eating_style.value,
        "protein_priority": goal.protein_priority.value,
        "is_active": goal.is_active,
        "initial_tdee": goal.initial_tdee,
        "current_tdee": goal.current_tdee,
        "initial_targets": targets_dict(goal.initial_targets),
        "current_targets": targets_dict(goal.current_targets),
    }


def reflection_dict(reflection: Reflection) -> dict:
    return {
        "reflection_id": reflection.reflection_id,
        "reflected_at": reflection.reflected_at.isoformat(),
        "weight_kg": reflection.weight_kg,
        "weight_trend_kg": (
            round(reflection.weight_trend_kg, 2)
            if reflection.weight_trend_kg is not None
            else None
        ),
        "sentiment": reflection.sentiment.value if reflection.sentiment else None,
        "weight_change_kg": (
            round(reflection.weight_change_kg, 2)
            if reflection.weight_change_kg is not None
            else None
        ),
        "previous": targets_dict(reflection.previous),
        "new": targets_dict(reflection.new),
    }


def print_targets(title: str, targets: TargetSnapshot) -> None:
    table = Table(title=title)
    table.add_column("Calories", justify="right", style="cyan")
    table.add_column("Protein", justify="right")
    table.add_column("Carbs", justify="right")
    table.add_column("Fat", justify="right")
    table.add_row(
        f"{targets.calories}",
        f"{targets.protein_g}g",
        f"{targets.carbs_g}g",
        f"{targets.fat_g}g",
    )
    console.print(table)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level (default from config, WARNING)"
    ),
) -> None:
    """Set up logging and make sure the schema exists."""
    configure_logging(log_level or get_settings().logging.level)
    get_db().initialize_schema()


# ============================================================================
# Profile Commands
# ============================================================================


@profile_app.command("set")
def profile_set(
    sex: Optional[Sex] = typer.Option(None, "--sex", help="Biological sex"),
    dob: Optional[str] = typer.Option(None, "--dob", help="Date of birth (YYYY-MM-DD)"),
    height: Optional[float] = typer.Option(None, "--height", help="Height in cm"),
    activity: Optional[ActivityLevel] = typer.Option(
        None, "--activity", help="Activity level"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Set one or more profile fields."""
    fields = {}
    if sex is not None:
        fields["sex"] = sex
    if dob is not None:
        fields["date_of_birth"] = parse_date(dob, "profile set", json_output)
    if height is not None:
        if height <= 0:
            fail("profile set", "Height must be positive", json_output)
        fields["height_cm"] = height
    if activity is not None:
        fields["activity_level"] = activity

    if not fields:
        fail("profile set", "Nothing to update", json_output,
             "Pass at least one of --sex, --dob, --height, --activity")

    goals, _, _, _ = build_services()
    profile = goals.update_profile(**fields)

    if json_output:
        output_json({
            "success": True,
            "command": "profile set",
            "data": {"updated": sorted(fields), "missing": profile.missing_biometrics()},
            "human_summary": f"Updated {', '.join(sorted(fields))}",
        })
    else:
        console.print(f"[green]Updated {', '.join(sorted(fields))}[/green]")


@profile_app.command("show")
def profile_show(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show the biometric profile."""
    goals, _, _, _ = build_services()
    profile = goals.load_profile()
    age = profile.age_on(date.today())

    if json_output:
        output_json({
            "success": True,
            "command": "profile show",
            "data": {
                "sex": profile.sex.value if profile.sex else None,
                "date_of_birth": (
                    profile.date_of_birth.isoformat() if profile.date_of_birth else None
                ),
                "age": age,
                "height_cm": profile.height_cm,
                "activity_level": (
                    profile.activity_level.value if profile.activity_level else None
                ),
                "missing": profile.missing_biometrics(),
            },
            "human_summary": f"{profile.sex.value if profile.sex else '?'}, {age or '?'}y, {profile.height_cm or '?'}cm",
        })
        return

    console.print("[bold]Profile[/bold]")
    console.print(f"  Sex: {profile.sex.value if profile.sex else '-'}")
    console.print(f"  Date of birth: {profile.date_of_birth or '-'}" + (f" ({age}y)" if age is not None else ""))
    console.print(f"  Height: {profile.height_cm or '-'} cm")
    console.print(f"  Activity: {profile.activity_level.value if profile.activity_level else '-'}")
    missing = profile.missing_biometrics()
    if missing:
        console.print(f"[yellow]Missing: {', '.join(missing)}[/yellow]")


# ============================================================================
# Goal Commands
# ============================================================================


@goal_app.command("create")
def goal_create(
    goal_type: GoalType = typer.Option(..., "--type", help="Goal direction"),
    rate: float = typer.Option(0.5, "--rate", help="Rate in % of body weight per week"),
    weight: Optional[float] = typer.Option(
        None, "--weight", help="Current weight in kg (default: latest logged)"
    ),
    target_weight: Optional[float] = typer.Option(None, "--target-weight", help="Target weight in kg"),
    target_date: Optional[str] = typer.Option(
        None, "--target-date", help="Reach target by (YYYY-MM-DD); switches to timeline planning"
    ),
    eating_style: Optional[str] = typer.Option(
        None, "--style", help="Eating style (flexible/carb_focused/fat_focused/very_low_carb)"
    ),
    protein_priority: Optional[str] = typer.Option(
        None, "--protein", help="Protein priority (standard/active/athletic/maximum)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Create a new active goal, replacing any current one."""
    goals, weights, _, _ = build_services()
    profile = goals.load_profile()
    current_weight = weight
    if current_weight is None:
        weights.load_latest()
        current_weight = weights.latest_weight
    parsed_date = parse_date(target_date, "goal create", json_output)

    params = GoalParams.from_profile(
        profile,
        goal_type=goal_type,
        current_weight_kg=current_weight,
        today=date.today(),
        target_rate_percent=rate,
        target_weight_kg=target_weight,
        planning_mode="timeline" if parsed_date else "rate",
        target_date=parsed_date,
        eating_style=eating_style,
        protein_priority=protein_priority,
    )

    try:
        goal = goals.create_goal(params)
    except MissingBiometricsError as e:
        fail("goal create", str(e), json_output,
             "Set them with: goaltrack profile set ... / goaltrack weight add ...")
    except ValueError as e:
        fail("goal create", str(e), json_output)

    completion = goals.estimated_completion()
    if json_output:
        data = goal_dict(goal)
        data["estimated_completion"] = completion.isoformat() if completion else None
        output_json({
            "success": True,
            "command": "goal create",
            "data": data,
            "human_summary": f"{goal.goal_type.value} goal: {goal.current_target_calories} kcal/day",
        })
    else:
        console.print(f"[green]Created {goal.goal_type.value} goal (ID: {goal.goal_id})[/green]")
        console.print(f"  Rate: {goal.target_rate_percent:.2f}% body weight/week")
        if completion:
            console.print(f"  Estimated completion: {completion.isoformat()}")
        print_targets("Daily Targets", goal.current_targets)


@goal_app.command("show")
def goal_show(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show the active goal and its current targets."""
    goals, _, _, _ = build_services()
    goal = goals.load_active_goal()
    if goal is None:
        fail("goal show", "No active goal", json_output,
             "Create one with: goaltrack goal create --type lose --rate 0.5")

    goals.load_current_weight()
    completion = goals.estimated_completion()
    time_left = goals.time_to_goal()

    if json_output:
        data = goal_dict(goal)
        data["estimated_completion"] = completion.isoformat() if completion else None
        data["weeks_to_goal"] = time_left[0] if time_left else None
        output_json({
            "success": True,
            "command": "goal show",
            "data": data,
            "human_summary": f"{goal.goal_type.value}: {goal.current_target_calories} kcal/day",
        })
        return

    lines = [
        f"Type: {goal.goal_type.value} ({goal.planning_mode.value})",
        f"Started: {goal.start_date.isoformat()} at {goal.start_weight_kg:.1f} kg",
        f"Rate: {goal.target_rate_percent:.2f}%/week",
    ]
    if goal.target_weight_kg:
        lines.append(f"Target: {goal.target_weight_kg:.1f} kg")
    if completion:
        lines.append(f"Estimated completion: {completion.isoformat()}")
    if time_left:
        lines.append(f"About {time_left[0]} weeks (~{time_left[1]} months) to go")
    console.print(Panel("\n".join(lines), title=f"Goal {goal.goal_id}"))
    print_targets("Current Targets", goal.current_targets)


@goal_app.command("complete")
def goal_complete(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Mark the active goal completed."""
    goals, _, _, _ = build_services()
    goals.load_active_goal()
    completed = goals.complete_goal()
    if completed is None:
        fail("goal complete", "No active goal", json_output)

    if json_output:
        output_json({
            "success": True,
            "command": "goal complete",
            "data": {"goal_id": completed.goal_id},
            "human_summary": f"Completed goal {completed.goal_id}",
        })
    else:
        console.print(f"[green]Completed goal {completed.goal_id}[/green]")


@goal_app.command("suggest-date")
def goal_suggest_date(
    target_weight: float = typer.Option(..., "--target-weight", help="Target weight in kg"),
    goal_type: GoalType = typer.Option(..., "--type", help="Goal direction"),
    weight: Optional[float] = typer.Option(
        None, "--weight", help="Current weight in kg (default: latest logged)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Earliest date a target weight can be reached at the safe maximum rate."""
    _, weights, _, _ = build_services()
    current = weight
    if current is None:
        weights.load_latest()
        current = weights.latest_weight
    if not current:
        fail("goal suggest-date", "No current weight", json_output,
             "Pass --weight or log one with: goaltrack weight add 90")

    suggested = get_suggested_date(current, target_weight, goal_type)
    if json_output:
        output_json({
            "success": True,
            "command": "goal suggest-date",
            "data": {"suggested_date": suggested.isoformat()},
            "human_summary": f"Earliest safe date: {suggested.isoformat()}",
        })
    else:
        console.print(f"Earliest safe date: [cyan]{suggested.isoformat()}[/cyan]")


# ============================================================================
# Weight Commands
# ============================================================================


@weight_app.command("add")
def weight_add(
    weight: float = typer.Argument(..., help="Weight in kg"),
    date_str: Optional[str] = typer.Option(
        None, "--date", "-d", help="Date (YYYY-MM-DD, default: today)"
    ),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Optional notes"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Log a weight (replaces any entry for the same date)."""
    entry_date = parse_date(date_str, "weight add", json_output) or date.today()
    _, weights, _, _ = build_services()
    try:
        entry = weights.add_entry(entry_date, weight, notes)
    except ValueError as e:
        fail("weight add", str(e), json_output)

    if json_output:
        output_json({
            "success": True,
            "command": "weight add",
            "data": {
                "date": entry.date.isoformat(),
                "weight_kg": entry.weight_kg,
                "trend_kg": round(entry.trend_kg, 2) if entry.trend_kg is not None else None,
            },
            "human_summary": f"Logged {entry.weight_kg:.1f} kg, trend: {entry.trend_kg:.1f} kg",
        })
    else:
        console.print(f"[green]Logged:[/green] {entry.weight_kg:.1f} kg on {entry.date}")
        console.print(f"[blue]Trend:[/blue] {entry.trend_kg:.1f} kg")


@weight_app.command("list")
def weight_list(
    limit: int = typer.Option(30, "--limit", "-l", help="Number of entries to show"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List weight history with trends, newest first."""
    _, weights, _, _ = build_services()
    history = weights.history(limit=limit)

    if json_output:
        output_json({
            "success": True,
            "command": "weight list",
            "data": {
                "entries": [
                    {
                        "date": e.date.isoformat(),
                        "weight_kg": e.weight_kg,
                        "trend_kg": round(e.trend_kg, 2) if e.trend_kg is not None else None,
                    }
                    for e in history
                ]
            },
            "human_summary": f"{len(history)} entries",
        })
        return

    if not history:
        console.print("No weight entries found")
        return

    table = Table(title="Weight History")
    table.add_column("Date", style="cyan")
    table.add_column("Weight", justify="right")
    table.add_column("Trend", justify="right", style="blue")
    for entry in history:
        table.add_row(
            entry.date.isoformat(),
            f"{entry.weight_kg:.1f}",
            f"{entry.trend_kg:.1f}" if entry.trend_kg is not None else "-",
        )
    console.print(table)


@weight_app.command("trend")
def weight_trend(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show the current trend weight."""
    _, weights, _, _ = build_services()
    weights.reload()
    if weights.trend_weight is None:
        fail("weight trend", "No weight entries yet", json_output)
    weekly = weights.weekly_change()

    if json_output:
        output_json({
            "success": True,
            "command": "weight trend",
            "data": {
                "latest_weight_kg": weights.latest_weight,
                "trend_kg": round(weights.trend_weight, 2),
                "weekly_change_kg": round(weekly, 2) if weekly is not None else None,
            },
            "human_summary": f"Trend: {weights.trend_weight:.1f} kg",
        })
    else:
        console.print(f"Latest: {weights.latest_weight:.1f} kg")
        console.print(f"[blue]Trend:[/blue] {weights.trend_weight:.1f} kg")
        if weekly is not None:
            console.print(f"Weekly change: {weekly:+.2f} kg")


@weight_app.command("delete")
def weight_delete(
    date_str: str = typer.Argument(..., help="Date of the entry (YYYY-MM-DD)"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Delete the entry for a date; later trends are recomputed."""
    entry_date = parse_date(date_str, "weight delete", json_output)
    _, weights, _, _ = build_services()
    if not weights.delete_entry(entry_date):
        fail("weight delete", f"No entry for {date_str}", json_output)

    if json_output:
        output_json({
            "success": True,
            "command": "weight delete",
            "data": {"date": date_str},
            "human_summary": f"Deleted entry for {date_str}",
        })
    else:
        console.print(f"[green]Deleted entry for {date_str}[/green]")


# ============================================================================
# Reflection Commands
# ============================================================================


@reflect_app.command("status")
def reflect_status(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show whether a weekly reflection is due."""
    _, _, _, workflow = build_services()
    banner = workflow.initialize()

    if json_output:
        output_json({
            "success": True,
            "command": "reflect status",
            "data": {
                "should_show_banner": banner.should_show_banner,
                "last_reflection_date": (
                    banner.last_reflection_date.isoformat()
                    if banner.last_reflection_date
                    else None
                ),
                "days_since_last_reflection": banner.days_since_last_reflection,
                "banner_dismiss_count": banner.banner_dismiss_count,
            },
            "human_summary": "Reflection due" if banner.should_show_banner else "No reflection due",
        })
        return

    if banner.should_show_banner:
        console.print("[yellow]Time for your weekly reflection![/yellow]")
        console.print("Run: [cyan]goaltrack reflect submit <weight-kg>[/cyan]")
    else:
        console.print("No reflection due")
    if banner.days_since_last_reflection is not None:
        console.print(f"  Last reflection: {banner.days_since_last_reflection} days ago")


@reflect_app.command("submit")
def reflect_submit(
    weight: float = typer.Argument(..., help="Today's weight in kg"),
    sentiment: Optional[Sentiment] = typer.Option(
        None, "--sentiment", "-s", help="How the week went"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Submit a reflection: log today's weight and revise targets if needed."""
    goals, _, _, workflow = build_services()
    workflow.initialize()
    if goals.get_active() is None:
        fail("reflect submit", "No active goal", json_output,
             "Create one with: goaltrack goal create --type lose --rate 0.5")
    if weight <= 0:
        fail("reflect submit", "Weight must be positive", json_output)
    missing = goals.load_profile().missing_biometrics()
    if missing:
        fail("reflect submit", f"Profile is missing {', '.join(missing)}", json_output,
             "Set them with: goaltrack profile set ...")

    workflow.start_reflection()
    workflow.set_input_weight(weight)
    workflow.set_sentiment(sentiment)
    result = workflow.submit_reflection()
    if result is None:
        fail("reflect submit", workflow.submit_error or "Reflection not submitted", json_output)

    if json_output:
        data = reflection_dict(result.reflection)
        data["changed"] = result.changed
        output_json({
            "success": True,
            "command": "reflect submit",
            "data": data,
            "human_summary": (
                f"Targets updated to {result.applied.calories} kcal"
                if result.changed
                else f"Targets unchanged at {result.applied.calories} kcal"
            ),
        })
        return

    console.print(f"[green]Reflection saved[/green] (trend {result.trend_weight_kg:.1f} kg)")
    if result.weight_change_kg is not None:
        console.print(f"  Since last reflection: {result.weight_change_kg:+.1f} kg")
    if result.changed:
        print_targets("New Targets", result.applied)
    else:
        console.print(f"  Targets unchanged at {result.applied.calories} kcal")


@reflect_app.command("dismiss")
def reflect_dismiss(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Dismiss the reflection reminder."""
    _, _, _, workflow = build_services()
    workflow.initialize()
    workflow.dismiss_banner()
    count = workflow.banner.banner_dismiss_count

    if json_output:
        output_json({
            "success": True,
            "command": "reflect dismiss",
            "data": {"banner_dismiss_count": count},
            "human_summary": f"Dismissed ({count} times)",
        })
    else:
        console.print(f"Reminder dismissed ({count} times)")


@reflect_app.command("history")
def reflect_history(
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Max reflections to show"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List past reflections, newest first."""
    _, _, _, workflow = build_services()
    history = workflow.get_history(limit)

    if json_output:
        output_json({
            "success": True,
            "command": "reflect history",
            "data": {"reflections": [reflection_dict(r) for r in history]},
            "human_summary": f"{len(history)} reflections",
        })
        return

    if not history:
        console.print("No reflections yet")
        return

    table = Table(title="Reflections")
    table.add_column("Date", style="cyan")
    table.add_column("Weight", justify="right")
    table.add_column("Trend", justify="right", style="blue")
    table.add_column("Change", justify="right")
    table.add_column("Calories", justify="right")
    table.add_column("Mood")
    for r in history:
        calories = (
            f"{r.previous.calories} -> {r.new.calories}"
            if r.targets_changed
            else f"{r.new.calories}"
        )
        table.add_row(
            r.reflected_at.date().isoformat(),
            f"{r.weight_kg:.1f}",
            f"{r.weight_trend_kg:.1f}" if r.weight_trend_kg is not None else "-",
            f"{r.weight_change_kg:+.1f}" if r.weight_change_kg is not None else "-",
            calories,
            r.sentiment.value if r.sentiment else "",
        )
    console.print(table)


if __name__ == "__main__":
    app()
