"""Recall CLI command."""

import click
from rich.console import Console

from cli.utils import get_components
from recall import RecallQuery, format_context, format_terminal

console = Console()


@click.command()
@click.option("-f", "--file", "files", multiple=True, help="File path (repeatable)")
@click.option("-t", "--tag", "tags", multiple=True, help="Tag query (repeatable)")
@click.option("-q", "--query", default="", help="Substring over question/choice/rationale")
@click.option("--repo", "repo_id", default="", help="Repo ID")
@click.option("--repo-path", default="", help="Local checkout for git correlation")
@click.option("-n", "--max", "max_capsules", default=0, help="Max capsules")
@click.option("--evolution", is_flag=True, help="Include every phase revision")
@click.option("--all", "include_invalidated", is_flag=True, help="Include invalidated capsules")
@click.option("--full", is_flag=True, help="Show full detail")
@click.option("--context", "as_context", is_flag=True, help="Emit a token-budgeted markdown block")
@click.option("--budget", default=None, type=int, help="Token budget for --context")
@click.pass_context
def recall(ctx, files, tags, query, repo_id, repo_path, max_capsules, evolution, include_invalidated, full, as_context, budget):
    """Recall prior decisions by file, tag, text or repo; most recent when no filter."""
    c = get_components(ctx.obj.get("home"))
    q = RecallQuery(
        files=list(files),
        tags=list(tags),
        query=query,
        repo_id=repo_id,
        repo_path=repo_path,
        max_capsules=max_capsules,
        include_evolution=evolution,
        include_invalidated=include_invalidated,
    )
    result = c["recall"].query(q)
    if as_context:
        tokens = budget if budget is not None else c["config"].recall.max_context_tokens
        click.echo(format_context(result, token_budget=tokens), nl=False)
    else:
        click.echo(format_terminal(result, full=full), nl=False)
