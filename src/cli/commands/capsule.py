"""Capsule CLI commands."""

import json
import sys

import click
from rich.console import Console
from rich.table import Table

from capsules import Capsule, CapsuleError, CapsuleFilter
from capsules.intent import detect_invalidation_intent, extract_capsule_references
from cli.utils import get_components
from shared_types import CapsuleStatus, CapsuleType, GraphDirection

console = Console()


def _fail(e: Exception):
    console.print(f"[red]{e}[/]")
    sys.exit(1)


@click.group()
def capsule():
    """Recorded decisions and findings."""
    pass


@capsule.command("list")
@click.option("--session", "session_id", default=None, help="Filter by session ID")
@click.option("--repo", "repo_id", default=None, help="Filter by repo ID")
@click.option("--phase", default=None, help="Filter by phase")
@click.option("--tag", default=None, help="Exact tag (case-insensitive)")
@click.option("--file", "file_path", default=None, help="Substring of any tag")
@click.option("--status", type=click.Choice([s.value for s in CapsuleStatus]), default=None)
@click.option("--type", "capsule_type", type=click.Choice([t.value for t in CapsuleType]), default=None)
@click.option("--all", "include_invalidated", is_flag=True, help="Include invalidated capsules")
@click.option("--evolution", is_flag=True, help="Show every phase revision of a question")
@click.pass_context
def capsule_list(ctx, session_id, repo_id, phase, tag, file_path, status, capsule_type, include_invalidated, evolution):
    """List capsules, latest phase per question by default."""
    c = get_components(ctx.obj.get("home"))
    f = CapsuleFilter(
        session_id=session_id,
        repo_id=repo_id,
        phase=phase,
        tag=tag,
        file_path=file_path,
        status=CapsuleStatus(status) if status else None,
        type=CapsuleType(capsule_type) if capsule_type else None,
        include_invalidated=include_invalidated or status == CapsuleStatus.INVALIDATED,
        show_evolution=evolution,
    )
    capsules = c["store"].list_capsules(f)
    if not capsules:
        console.print("No capsules found.")
        return

    table = Table(title="Capsules")
    table.add_column("ID", style="dim")
    table.add_column("Phase", width=12)
    table.add_column("Question")
    table.add_column("Choice")
    table.add_column("Status", width=12)
    for cap in capsules:
        table.add_row(cap.id, cap.phase, cap.question[:60], cap.choice[:40], str(cap.status))
    console.print(table)


def _print_capsule(cap: Capsule):
    console.print(f"[bold]{cap.question}[/]")
    console.print(f"ID: {cap.id}")
    console.print(f"Session: {cap.session_id}  Phase: {cap.phase}")
    console.print(f"Type: {cap.type}  Status: {cap.status}")
    console.print(f"Choice: {cap.choice}")
    if cap.alternatives:
        console.print(f"Alternatives: {', '.join(cap.alternatives)}")
    console.print(f"Rationale: {cap.rationale}")
    if cap.tags:
        console.print(f"Tags: {', '.join(cap.tags)}")
    if cap.invalidation_reason:
        console.print(f"Invalidated: {cap.invalidation_reason}")
    for ch in cap.challenges:
        console.print(f"  [dim]{ch.timestamp:%Y-%m-%d}[/] {ch.resolution}: {ch.reason}")


@capsule.command("show")
@click.argument("capsule_id")
@click.pass_context
def capsule_show(ctx, capsule_id: str):
    """Show one capsule."""
    c = get_components(ctx.obj.get("home"))
    try:
        _print_capsule(c["store"].get(capsule_id))
    except CapsuleError as e:
        _fail(e)


@capsule.command("chain")
@click.argument("capsule_id")
@click.pass_context
def capsule_chain(ctx, capsule_id: str):
    """Show what a capsule replaced and what replaced it."""
    c = get_components(ctx.obj.get("home"))
    try:
        chain = c["store"].get_chain(capsule_id)
    except CapsuleError as e:
        _fail(e)
        return

    if chain.superseded_by:
        console.print(f"Superseded by: {chain.superseded_by.id} | {chain.superseded_by.question}")
    console.print(f"[bold]Current:[/] {chain.current.id} | {chain.current.question} -> {chain.current.choice}")
    for older in chain.supersedes:
        console.print(f"Supersedes: {older.id} | {older.question} -> {older.choice}")


@capsule.command("graph")
@click.argument("capsule_id")
@click.option("-d", "--depth", default=0, help="Max hops (default from config)")
@click.option("--direction", type=click.Choice([d.value for d in GraphDirection]), default="both")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON")
@click.pass_context
def capsule_graph(ctx, capsule_id: str, depth: int, direction: str, as_json: bool):
    """Show the dependency graph around a capsule."""
    c = get_components(ctx.obj.get("home"))
    try:
        g = c["graph"].build(capsule_id, depth=depth, direction=direction)
    except CapsuleError as e:
        _fail(e)
        return
    if as_json:
        click.echo(json.dumps(g.to_dict(), indent=2, default=str))
    else:
        click.echo(g.rendering, nl=False)


@capsule.command("invalidate")
@click.argument("capsule_id")
@click.option("-r", "--reason", required=True, help="Why the capsule no longer holds")
@click.option("-l", "--learned", default="", help="What was learned")
@click.option("--superseded-by", default=None, help="ID of the replacing capsule")
@click.pass_context
def capsule_invalidate(ctx, capsule_id: str, reason: str, learned: str, superseded_by):
    """Mark a capsule invalidated."""
    c = get_components(ctx.obj.get("home"))
    try:
        c["store"].invalidate(capsule_id, reason, learned=learned, superseded_by=superseded_by)
    except (CapsuleError, ValueError) as e:
        _fail(e)
    console.print(f"Invalidated {capsule_id}")


@capsule.command("tags")
@click.pass_context
def capsule_tags(ctx):
    """List every tag in use."""
    c = get_components(ctx.obj.get("home"))
    for tag in c["store"].list_tags():
        click.echo(tag)


@capsule.command("check")
@click.option("--session", "session_id", required=True)
@click.option("--phase", required=True)
@click.option("-q", "--question", required=True)
@click.option("-c", "--choice", default="")
@click.pass_context
def capsule_check(ctx, session_id: str, phase: str, question: str, choice: str):
    """Check a proposed decision for duplicates and contradictions."""
    c = get_components(ctx.obj.get("home"))
    proposed = Capsule.create(session_id, phase, question, choice=choice)
    result = c["similarity"].check(c["store"].list_capsules(), proposed)
    if result is None:
        console.print("No similar or contradicting capsules. Suggested action: create")
        return
    for m in result.similar:
        console.print(f"[yellow]similar[/] ({m.confidence}) {m.capsule_id}: {m.question}")
    for x in result.contradicts:
        console.print(f"[red]contradicts[/] {x.capsule_id}: {x.question} -> {x.choice}")
    console.print(f"Suggested action: {result.suggested_action}")


@capsule.command("link-commits")
@click.argument("target")
@click.argument("commits", nargs=-1, required=True)
@click.option("--session", "is_session", is_flag=True, help="TARGET is a session ID")
@click.pass_context
def capsule_link_commits(ctx, target: str, commits: tuple, is_session: bool):
    """Attach commit SHAs to a capsule or every capsule of a session."""
    c = get_components(ctx.obj.get("home"))
    try:
        if is_session:
            count = c["store"].link_commits_for_session(target, list(commits))
            console.print(f"Linked {len(commits)} commit(s) to {count} capsule(s) in {target}")
        else:
            c["store"].link_commits(target, list(commits))
            console.print(f"Linked {len(commits)} commit(s) to {target}")
    except CapsuleError as e:
        _fail(e)


@capsule.command("enrich")
@click.argument("session_id")
@click.pass_context
def capsule_enrich(ctx, session_id: str):
    """Tag a session's capsules with files from its ledger manifest."""
    c = get_components(ctx.obj.get("home"))
    count = c["store"].enrich_tags_from_manifest(session_id)
    console.print(f"Enriched {count} capsule(s)")


@capsule.command("intent")
@click.argument("text")
@click.option("--capsule", "capsule_id", default=None, help="Capsule the text refers to")
def capsule_intent(text: str, capsule_id):
    """Check whether TEXT signals that a prior decision should be revisited."""
    intent = detect_invalidation_intent(text, capsule_id=capsule_id)
    if not intent.detected:
        console.print("No invalidation intent detected.")
        return
    console.print(f"Confidence: {intent.confidence} ({intent.confidence_level()})")
    console.print(f"Action: {intent.action_description()}")
    refs = extract_capsule_references(text)
    if refs:
        console.print(f"References: {', '.join(refs)}")
    console.print(intent.prompt(), markup=False)
