"""memvault CLI: memory records backed by markdown files, JSON caches and a graph.

Commands:
    memvault init [NAME]            create memvault.toml + storage root
    memvault write < request.json   write (or upsert) a record
    memvault read ID                dump a record
    memvault list                   index listing with filters
    memvault search QUERY           keyword search
    memvault semantic QUERY         embedding search
    memvault health                 consistency report
    memvault sync / rebuild         repair index and graph
    memvault prune/promote/archive  housekeeping
    memvault bulk ...               delete, tag, link or unlink by filter
    memvault graph ...              path, impact, components, mermaid
    memvault export / import        portable packages
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.table import Table

from memvault import audit, maintenance, transfer
from memvault.config import VaultConfig, init_config, load_config
from memvault.errors import VaultError
from memvault.mermaid import render
from memvault.models import EDGE_LABELS, MEMORY_TYPES, SCOPES, TEMPORARY_TYPES
from memvault.similarity import DUPLICATE_THRESHOLD
from memvault.traversal import calculate_impact, connected_components, find_shortest_path
from memvault.writer import WriteRequest, tag_memory, untag_memory, update_memory, write_memory

if TYPE_CHECKING:
    from memvault.embedder import EmbeddingProvider
    from memvault.vault import Vault

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _VaultGroup(click.Group):
    """Turns library errors into clean CLI errors instead of tracebacks."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except VaultError as exc:
            raise click.ClickException(str(exc)) from exc


def _load_cfg() -> VaultConfig:
    try:
        return load_config()
    except (OSError, ValueError, VaultError) as exc:
        raise click.ClickException(str(exc)) from exc


def _vault(ctx: click.Context) -> Vault:
    cfg: VaultConfig = ctx.obj["cfg"]
    return cfg.open_vault(ctx.obj["scope"])


def _provider(ctx: click.Context, model: str | None = None) -> EmbeddingProvider:
    cfg: VaultConfig = ctx.obj["cfg"]
    if model:
        cfg.embeddings.model = model
    return cfg.provider()


def _emit(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(cls=_VaultGroup)
@click.version_option(package_name="memvault")
@click.option("--scope", "-s", default=None, type=click.Choice([*SCOPES, "global"]), help="Storage scope")
@click.option("--verbose", "-v", count=True, help="-v info, -vv debug")
@click.pass_context
def cli(ctx: click.Context, scope: str | None, verbose: int) -> None:
    """memvault: durable memory records with an index and a relationship graph."""
    level = logging.WARNING if verbose == 0 else logging.INFO if verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    ctx.ensure_object(dict)
    if ctx.invoked_subcommand != "init":
        ctx.obj["cfg"] = _load_cfg()
    ctx.obj["scope"] = scope


# ---------------------------------------------------------------------------
# memvault init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
@click.pass_context
def init(ctx: click.Context, name: str | None, root: str) -> None:
    """Create memvault.toml and the storage root in the current project."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, name=name)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("memvault.toml already exists, skipping init")

    cfg = load_config(root_path)
    storage = cfg.ensure_dirs(ctx.obj["scope"])
    click.echo(f"Storage root: {storage}")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--input", "-i", "source", default="-", show_default=True, help="JSON request file (- = stdin)")
@click.option("--auto-link", is_flag=True, help="Link to similar memories after writing")
@click.pass_context
def write(ctx: click.Context, source: str, auto_link: bool) -> None:
    """Write a memory from a JSON request ({"title", "content", "type", "tags", ...})."""
    cfg: VaultConfig = ctx.obj["cfg"]
    try:
        payload = json.loads(_read_input(source))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"request is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise click.ClickException("request must be a JSON object")
    payload.setdefault("autoLinkThreshold", cfg.autolink.threshold)
    request = WriteRequest.from_dict(payload)
    request.auto_link = request.auto_link or auto_link or cfg.autolink.enabled
    provider = _provider(ctx) if request.auto_link else None
    result = write_memory(_vault(ctx), request, provider)
    _emit(result.to_dict())


@cli.command()
@click.argument("memory_id")
@click.option("--json", "as_json", is_flag=True, help="Emit the parsed record as JSON")
@click.pass_context
def read(ctx: click.Context, memory_id: str, as_json: bool) -> None:
    """Show a memory."""
    vault = _vault(ctx)
    record = vault.read(memory_id, lenient=True)
    if as_json:
        _emit(record.to_dict())
        return
    fm = record.frontmatter
    click.echo(f"# {fm.title}  [{fm.type}]  {record.id}")
    click.echo(f"tags: {', '.join(fm.tags)}   updated: {fm.updated}")
    if fm.links:
        click.echo(f"links: {', '.join(fm.links)}")
    click.echo("")
    click.echo(record.content)


@cli.command("list")
@click.option("--type", "memory_type", default=None, type=click.Choice(MEMORY_TYPES))
@click.option("--tag", "tags", multiple=True, help="Require tag (repeatable)")
@click.option("--pattern", "-p", default=None, help="Glob on ids, e.g. 'gotcha-*'")
@click.option("--limit", "-l", default=50, show_default=True)
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def list_cmd(
    ctx: click.Context, memory_type: str | None, tags: tuple[str, ...], pattern: str | None, limit: int, as_json: bool,
) -> None:
    """List indexed memories, newest first."""
    entries = _vault(ctx).list_memories(memory_type=memory_type, tags=tags, pattern=pattern, limit=limit)
    if as_json:
        _emit([e.to_dict() for e in entries])
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("id", no_wrap=True)
    table.add_column("type", style="cyan")
    table.add_column("title")
    table.add_column("tags", style="dim")
    table.add_column("updated", style="dim", no_wrap=True)
    for e in entries:
        table.add_row(e.id, e.type, e.title, ", ".join(e.tags), e.updated[:19])
    Console().print(table)


@cli.command()
@click.argument("query")
@click.option("--type", "memory_type", default=None, type=click.Choice(MEMORY_TYPES))
@click.option("--limit", "-l", default=20, show_default=True)
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def search(ctx: click.Context, query: str, memory_type: str | None, limit: int, as_json: bool) -> None:
    """Keyword search over titles, tags and content."""
    hits = _vault(ctx).search(query, limit=limit, memory_type=memory_type)
    if as_json:
        _emit([h.to_dict() for h in hits])
        return
    if not hits:
        click.echo("No matches.")
    for h in hits:
        click.echo(f"{h.score:.2f}  {h.id}  {h.title}")
        if h.snippet:
            click.echo(f"      {h.snippet}")


@cli.command()
@click.argument("query")
@click.option("--type", "memory_type", default=None, type=click.Choice(MEMORY_TYPES))
@click.option("--threshold", "-t", default=0.5, show_default=True)
@click.option("--limit", "-l", default=20, show_default=True)
@click.option("--model", default=None, help="Override [embeddings] model")
@click.pass_context
def semantic(
    ctx: click.Context, query: str, memory_type: str | None, threshold: float, limit: int, model: str | None,
) -> None:
    """Embedding similarity search (fills in missing vectors first)."""
    vault = _vault(ctx)
    hits = vault.embeddings.semantic_search(
        query, _provider(ctx, model), threshold=threshold, limit=limit, memory_type=memory_type,
    )
    _emit([h.to_dict() for h in hits])


@cli.command()
@click.argument("memory_id")
@click.option("--threshold", "-t", default=0.85, show_default=True)
@click.option("--limit", "-l", default=5, show_default=True)
@click.pass_context
def similar(ctx: click.Context, memory_id: str, threshold: float, limit: int) -> None:
    """Memories whose embeddings are close to MEMORY_ID."""
    matches = _vault(ctx).embeddings.find_similar_to_memory(
        memory_id, _provider(ctx), threshold=threshold, limit=limit,
    )
    _emit([{"id": m.id, "similarity": round(m.similarity, 4)} for m in matches])


@cli.command()
@click.option("--model", default=None, help="Override [embeddings] model")
@click.pass_context
def embed(ctx: click.Context, model: str | None) -> None:
    """Generate missing or stale embeddings for every memory."""
    vault = _vault(ctx)
    result = vault.embeddings.batch_embed(_provider(ctx, model))
    _emit(result.to_dict())
    if result.failures:
        ctx.exit(1)


@cli.command()
@click.argument("memory_id")
@click.pass_context
def delete(ctx: click.Context, memory_id: str) -> None:
    """Delete a memory and clean up index, graph and embeddings."""
    result = _vault(ctx).delete(memory_id)
    _emit(result.to_dict())


@cli.command()
@click.argument("memory_id")
@click.option("--title", default=None)
@click.option("--content", default=None, help="New body ('-' reads stdin)")
@click.option("--severity", default=None)
@click.option("--source", default=None)
@click.pass_context
def update(
    ctx: click.Context, memory_id: str, title: str | None, content: str | None,
    severity: str | None, source: str | None,
) -> None:
    """Change a memory's title, body, severity or source in place."""
    fields = {k: v for k, v in {"title": title, "severity": severity, "source": source}.items() if v is not None}
    body = _read_input("-") if content == "-" else content
    record = update_memory(_vault(ctx), memory_id, content=body, **fields)
    _emit(record.to_dict())


@cli.command()
@click.argument("memory_id")
@click.argument("tags", nargs=-1, required=True)
@click.pass_context
def tag(ctx: click.Context, memory_id: str, tags: tuple[str, ...]) -> None:
    """Add tags to a memory."""
    _emit(tag_memory(_vault(ctx), memory_id, list(tags)).to_dict())


@cli.command()
@click.argument("memory_id")
@click.argument("tags", nargs=-1, required=True)
@click.pass_context
def untag(ctx: click.Context, memory_id: str, tags: tuple[str, ...]) -> None:
    """Remove tags from a memory (the scope tag stays)."""
    _emit(untag_memory(_vault(ctx), memory_id, list(tags)).to_dict())


@cli.command()
@click.argument("old_id")
@click.argument("new_id")
@click.pass_context
def rename(ctx: click.Context, old_id: str, new_id: str) -> None:
    """Give a memory a new id, carrying its edges and references along."""
    _emit(_vault(ctx).rename(old_id, new_id).to_dict())


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("source")
@click.argument("target")
@click.option("--label", "-l", default="relates-to", show_default=True, help=f"e.g. {', '.join(EDGE_LABELS[:5])}")
@click.pass_context
def link(ctx: click.Context, source: str, target: str, label: str) -> None:
    """Create a SOURCE -> TARGET edge."""
    _emit(_vault(ctx).link(source, target, label).to_dict())


@cli.command()
@click.argument("source")
@click.argument("target")
@click.option("--label", "-l", default=None, help="Only this label (default: all)")
@click.pass_context
def unlink(ctx: click.Context, source: str, target: str, label: str | None) -> None:
    """Remove SOURCE -> TARGET edges."""
    removed = _vault(ctx).unlink(source, target, label)
    _emit({"removed": removed})


@cli.command("suggest-links")
@click.option("--threshold", "-t", default=0.75, show_default=True)
@click.option("--limit", "-l", default=20, show_default=True)
@click.option("--auto-link", is_flag=True, help="Create the suggested edges")
@click.pass_context
def suggest_links(ctx: click.Context, threshold: float, limit: int, auto_link: bool) -> None:
    """Propose edges between similar, unlinked memories."""
    result = _vault(ctx).suggest_links(_provider(ctx), threshold=threshold, limit=limit, auto_link=auto_link)
    _emit(result.to_dict())


@cli.command()
@click.option("--threshold", "-t", default=DUPLICATE_THRESHOLD, show_default=True)
@click.option("--limit", "-l", default=20, show_default=True)
@click.option("--model", default=None, help="Override [embeddings] model")
@click.pass_context
def duplicates(ctx: click.Context, threshold: float, limit: int, model: str | None) -> None:
    """Pairs of memories with near-identical embeddings."""
    pairs = _vault(ctx).find_duplicates(_provider(ctx, model), threshold=threshold, limit=limit)
    _emit([p.to_dict() for p in pairs])


# ---------------------------------------------------------------------------
# memvault graph
# ---------------------------------------------------------------------------


@cli.group()
def graph() -> None:
    """Relationship graph queries."""


@graph.command("path")
@click.argument("start")
@click.argument("end")
@click.pass_context
def graph_path(ctx: click.Context, start: str, end: str) -> None:
    """Shortest directed path between two memories."""
    path = find_shortest_path(_vault(ctx).graph(), start, end)
    if path is None:
        raise click.ClickException(f"No path from {start} to {end}")
    click.echo(" -> ".join(path))


@graph.command("impact")
@click.argument("memory_id")
@click.option("--depth", "-d", default=3, show_default=True)
@click.pass_context
def graph_impact(ctx: click.Context, memory_id: str, depth: int) -> None:
    """What removing a memory would affect."""
    _emit(calculate_impact(_vault(ctx).graph(), memory_id, max_depth=depth).to_dict())


@graph.command("components")
@click.pass_context
def graph_components(ctx: click.Context) -> None:
    """Connected components, largest first."""
    for i, component in enumerate(connected_components(_vault(ctx).graph()), start=1):
        click.echo(f"{i:>3}  ({len(component)})  {', '.join(component)}")


@graph.command("mermaid")
@click.option("--from", "from_node", default=None, help="Centre on this memory")
@click.option("--depth", "-d", default=1, show_default=True)
@click.option("--type", "node_type", default=None, type=click.Choice(MEMORY_TYPES))
@click.option("--direction", default="TB", type=click.Choice(["TB", "BT", "LR", "RL"]))
@click.pass_context
def graph_mermaid(ctx: click.Context, from_node: str | None, depth: int, node_type: str | None, direction: str) -> None:
    """Mermaid flowchart of the graph."""
    vault = _vault(ctx)
    titles = {e.id: e.title for e in vault.index.load()}
    click.echo(render(vault.graph(), direction=direction, from_node=from_node, depth=depth,
                      node_type=node_type, titles=titles))


# ---------------------------------------------------------------------------
# Health and repair
# ---------------------------------------------------------------------------

_SCORE_STYLE = {"healthy": "green", "warning": "yellow", "critical": "red"}


@cli.command()
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    """Cross-check files, index and graph and score the result."""
    cfg: VaultConfig = ctx.obj["cfg"]
    report = audit.validate(_vault(ctx), hub_degree=cfg.health.hub_degree)
    if as_json:
        _emit(report.to_dict())
        return
    console = Console()
    style = _SCORE_STYLE[report.status]
    console.print(f"[bold {style}]Health {report.score:.0f}/100[/bold {style}] ({report.rating})")

    stats = Table(show_header=False, box=None)
    stats.add_column("Metric", style="dim", no_wrap=True)
    stats.add_column("Value", justify="right")
    for key, value in report.stats.items():
        stats.add_row(key, str(value))
    console.print(stats)

    if not report.issues:
        console.print("[green]No issues found.[/green]")
        return
    issues = Table(show_header=True, header_style="bold")
    issues.add_column("issue")
    issues.add_column("count", justify="right")
    issues.add_column("penalty", justify="right")
    issues.add_column("fix", style="cyan")
    for issue in report.issues:
        fixes = issue.fixes
        fix = f"memvault {fixes[0]}" + (f" (+{len(fixes) - 1} more)" if len(fixes) > 1 else "")
        issues.add_row(issue.kind, str(issue.count), f"-{issue.penalty:g}", fix)
    console.print(issues)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Report what would change")
@click.pass_context
def sync(ctx: click.Context, dry_run: bool) -> None:
    """Reconcile index and graph with the files, keeping existing edges."""
    _emit(audit.sync(_vault(ctx), dry_run=dry_run).to_dict())


@cli.command()
@click.option("--yes", is_flag=True, help="Confirm: edges not recorded in `links` are lost")
@click.pass_context
def rebuild(ctx: click.Context, yes: bool) -> None:
    """Rebuild index and graph from the files alone (destructive)."""
    if not yes:
        raise click.ClickException("rebuild drops graph edges not recorded in `links`; pass --yes to proceed")
    _emit(audit.rebuild(_vault(ctx)).to_dict())


@cli.command()
@click.argument("memory_id")
@click.pass_context
def reindex(ctx: click.Context, memory_id: str) -> None:
    """Re-derive one memory's index entry and graph node from its file."""
    _emit(_vault(ctx).reindex(memory_id).to_dict())


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Counts per type and storage location."""
    vault = _vault(ctx)
    entries = vault.index.load()
    table = Table(title=f"memvault: {vault.root}", show_header=True, header_style="bold")
    table.add_column("type", style="dim")
    table.add_column("count", justify="right")
    table.add_column("location", style="dim")
    for memory_type in MEMORY_TYPES:
        n = sum(1 for e in entries if e.type == memory_type)
        if n:
            table.add_row(memory_type, str(n), "temporary" if memory_type in TEMPORARY_TYPES else "permanent")
    g = vault.graph()
    table.add_row("", "", "")
    table.add_row("nodes", str(len(g.nodes)), "graph.json")
    table.add_row("edges", str(len(g.edges)), "graph.json")
    Console().print(table)


# ---------------------------------------------------------------------------
# Housekeeping: prune, promote, archive, bulk edits
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--ttl", "ttl_days", default=maintenance.DEFAULT_TTL_DAYS, show_default=True, help="Days")
@click.option("--concluded-ttl", "concluded_ttl_days", default=maintenance.CONCLUDED_TTL_DAYS, show_default=True)
@click.option("--dry-run", is_flag=True)
@click.pass_context
def prune(ctx: click.Context, ttl_days: float, concluded_ttl_days: float, dry_run: bool) -> None:
    """Delete temporary memories older than their TTL."""
    result = maintenance.prune(_vault(ctx), ttl_days=ttl_days, concluded_ttl_days=concluded_ttl_days, dry_run=dry_run)
    _emit(result.to_dict())


@cli.command()
@click.argument("memory_id")
@click.argument("target_type", type=click.Choice(MEMORY_TYPES))
@click.pass_context
def promote(ctx: click.Context, memory_id: str, target_type: str) -> None:
    """Change a memory's type, moving and renaming it to match."""
    _emit(maintenance.promote(_vault(ctx), memory_id, target_type).to_dict())


@cli.command()
@click.argument("memory_id")
@click.option("--restore", is_flag=True, help="Bring an archived memory back")
@click.pass_context
def archive(ctx: click.Context, memory_id: str, restore: bool) -> None:
    """Move a memory to archive/, out of the index and graph."""
    vault = _vault(ctx)
    result = maintenance.restore(vault, memory_id) if restore else maintenance.archive(vault, memory_id)
    _emit(result.to_dict())


def _filter_options(f: Any) -> Any:
    f = click.option("--dry-run", is_flag=True)(f)
    f = click.option("--id", "ids", multiple=True, help="Only these ids")(f)
    f = click.option("--scope", "filter_scope", default=None, type=click.Choice(SCOPES))(f)
    f = click.option("--type", "memory_type", default=None, type=click.Choice(MEMORY_TYPES))(f)
    f = click.option("--tag", "tags", multiple=True, help="Must carry all of these")(f)
    return click.option("--pattern", "-p", default=None, help="Glob on ids, e.g. 'decision-*'")(f)


def _filters(pattern: str | None, tags: tuple[str, ...], memory_type: str | None,
             filter_scope: str | None, ids: tuple[str, ...]) -> dict[str, Any]:
    return {"pattern": pattern, "tags": list(tags), "type": memory_type, "scope": filter_scope, "ids": list(ids)}


@cli.group()
def bulk() -> None:
    """Apply one change to every memory matching the filters."""


@bulk.command("delete")
@_filter_options
@click.pass_context
def bulk_delete(ctx: click.Context, dry_run: bool, **criteria: Any) -> None:
    """Delete matching memories."""
    _emit(maintenance.bulk_delete(_vault(ctx), dry_run=dry_run, **_filters(**criteria)).to_dict())


@bulk.command("tag")
@click.option("--add", "add", multiple=True)
@click.option("--remove", "remove", multiple=True)
@_filter_options
@click.pass_context
def bulk_tag(
    ctx: click.Context, add: tuple[str, ...], remove: tuple[str, ...], dry_run: bool, **criteria: Any
) -> None:
    """Add and/or remove tags on matching memories."""
    result = maintenance.bulk_tag(_vault(ctx), add=add, remove=remove, dry_run=dry_run, **_filters(**criteria))
    _emit(result.to_dict())


@bulk.command("link")
@click.argument("target")
@click.option("--label", "-l", default="relates-to", show_default=True)
@_filter_options
@click.pass_context
def bulk_link(ctx: click.Context, target: str, label: str, dry_run: bool, **criteria: Any) -> None:
    """Link matching memories to TARGET."""
    result = maintenance.bulk_link(_vault(ctx), target, label=label, dry_run=dry_run, **_filters(**criteria))
    _emit(result.to_dict())


@bulk.command("unlink")
@click.argument("target")
@click.option("--label", "-l", default=None, help="Only this label (default: all)")
@_filter_options
@click.pass_context
def bulk_unlink(ctx: click.Context, target: str, label: str | None, dry_run: bool, **criteria: Any) -> None:
    """Remove links from matching memories to TARGET."""
    result = maintenance.bulk_unlink(_vault(ctx), target, label=label, dry_run=dry_run, **_filters(**criteria))
    _emit(result.to_dict())


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------


@cli.command("export")
@click.option("--type", "memory_type", default=None, type=click.Choice(MEMORY_TYPES))
@click.option("--tag", "tags", multiple=True)
@click.option("--pattern", "-p", default=None)
@click.option("--graph", "include_graph", is_flag=True, help="Include edges between exported memories")
@click.option("--format", "fmt", default="json", type=click.Choice(transfer.FORMATS), show_default=True)
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False), help="Write to file instead of stdout")
@click.pass_context
def export_cmd(
    ctx: click.Context, memory_type: str | None, tags: tuple[str, ...], pattern: str | None,
    include_graph: bool, fmt: str, output: str | None,
) -> None:
    """Export memories to a portable JSON or YAML package."""
    vault = _vault(ctx)
    result = transfer.export_memories(
        vault, type=memory_type, tags=tags or None, pattern=pattern, include_graph=include_graph, format=fmt,
    )
    if output:
        Path(output).write_text(result.serialised, encoding="utf-8")
        click.echo(f"Exported {result.count} memories to {output}", err=True)
    else:
        click.echo(result.serialised, nl=False)


@cli.command("import")
@click.argument("source", default="-")
@click.option("--strategy", default="merge", type=click.Choice(transfer.STRATEGIES), show_default=True)
@click.option("--dry-run", is_flag=True)
@click.pass_context
def import_cmd(ctx: click.Context, source: str, strategy: str, dry_run: bool) -> None:
    """Import a package from SOURCE (file path, or - for stdin)."""
    result = transfer.import_memories(
        _vault(ctx), raw=_read_input(source), strategy=strategy, dry_run=dry_run,
    )
    _emit(result.to_dict())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
