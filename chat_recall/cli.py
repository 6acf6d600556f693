"""Typer-based CLI for Chat Recall.

Provides commands:
- recallctl config: Resolved request-kind table and finder settings
- recallctl candidates: Run the local lexical stage over a threads file
- recallctl serve: Start the HTTP API
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import TypeAdapter
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import config
from .logging_config import setup_logging
from .prompts import format_date
from .request_config import KIND_DEFAULTS, UNIFIED_CHAT_MODEL_ENV, RequestConfigRegistry
from .retrieval import resolve_max_candidates, score_candidates
from .store import ThreadMeta

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(help="Chat Recall Command-Line Interface")


# ============================================================================
# Config Command
# ============================================================================


@app.command("config")
def show_config(
    json_output: bool = typer.Option(False, "--json", help="JSON output for scripting"),
) -> None:
    """Show model, reasoning effort and verbosity per request kind.

    Model overrides are read from the current environment, so this shows
    exactly what the server would resolve at startup.
    """
    registry = RequestConfigRegistry.from_env()
    table_rows = registry.table()

    if json_output:
        output = {
            "request_kinds": {kind: cfg.as_log_fields() for kind, cfg in table_rows.items()},
            "finder": {
                "max_candidates": resolve_max_candidates(),
                "max_candidates_cap": config.MAX_CANDIDATES_CAP,
                "top_k": min(config.CHAT_FINDER_TOPK, config.MAX_TOPK_CAP),
            },
        }
        console.print(json.dumps(output, indent=2))
        return

    console.print(Panel("⚙️  Chat Recall Configuration", style="bold blue"))

    kinds_table = Table(title="Request Kinds", show_header=True)
    kinds_table.add_column("Kind", style="cyan")
    kinds_table.add_column("Model", style="white")
    kinds_table.add_column("Reasoning")
    kinds_table.add_column("Verbosity")
    kinds_table.add_column("Override Env", style="dim")
    for kind, cfg in table_rows.items():
        env_var = KIND_DEFAULTS[cfg.kind].env_var
        if cfg.chained:
            env_var = f"{UNIFIED_CHAT_MODEL_ENV} / {env_var}"
        kinds_table.add_row(kind, cfg.model, cfg.reasoning_effort, cfg.verbosity, env_var)
    console.print(kinds_table)
    console.print()

    finder_table = Table(title="Chat Finder", show_header=False)
    finder_table.add_column("Key", style="cyan")
    finder_table.add_column("Value", style="white")
    finder_table.add_row("Max candidates", str(resolve_max_candidates()))
    finder_table.add_row("Candidates cap", str(config.MAX_CANDIDATES_CAP))
    finder_table.add_row("Top K", str(min(config.CHAT_FINDER_TOPK, config.MAX_TOPK_CAP)))
    console.print(finder_table)


# ============================================================================
# Candidates Command: local lexical stage only
# ============================================================================


def _load_threads(path: Path) -> List[ThreadMeta]:
    """Load a JSON list of thread metadata (camelCase or snake_case keys)."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("threads", [])
    return TypeAdapter(List[ThreadMeta]).validate_python(payload)


@app.command()
def candidates(
    query: str = typer.Argument(..., help="Search query"),
    threads_file: Path = typer.Option(..., "--threads", "-t", help="JSON file with thread metadata"),
    max_candidates: Optional[int] = typer.Option(None, "--max", "-m", min=1, help="Candidates to keep"),
    json_output: bool = typer.Option(False, "--json", help="JSON output for scripting"),
) -> None:
    """Score threads against QUERY with the lexical scorer (no LLM call).

    Example:
        recallctl candidates "paris trip" --threads threads.json --max 10
    """
    if not threads_file.exists():
        console.print(f"❌ Threads file not found: {threads_file}")
        raise typer.Exit(1)

    try:
        threads = _load_threads(threads_file)
    except ValueError as e:
        console.print(f"❌ Invalid threads file: {e}")
        raise typer.Exit(1)

    limit = resolve_max_candidates(max_candidates)
    scored = score_candidates(threads, query)[:limit]

    if json_output:
        output = {
            "query": query,
            "limit": limit,
            "candidates": [
                {"chatId": c.thread.id, "title": c.thread.title, "score": c.score, "updatedAt": c.thread.updated_at}
                for c in scored
            ],
        }
        console.print(json.dumps(output, indent=2, ensure_ascii=False))
        return

    console.print(f"🔎 Query: {query}  ({len(threads)} threads, limit {limit})")
    result_table = Table(show_header=True)
    result_table.add_column("#", justify="right")
    result_table.add_column("Score", justify="right", style="green")
    result_table.add_column("Title", style="white")
    result_table.add_column("Updated", style="dim")
    result_table.add_column("ID", style="dim")
    for i, candidate in enumerate(scored, 1):
        result_table.add_row(
            str(i),
            f"{candidate.score:.1f}",
            candidate.thread.title,
            format_date(candidate.thread.updated_at),
            candidate.thread.id,
        )
    console.print(result_table)


# ============================================================================
# Serve Command
# ============================================================================


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    log_level: str = typer.Option(config.LOG_LEVEL, "--log-level", help="Logging level"),
) -> None:
    """Run the HTTP API with uvicorn."""
    from .api import run_server

    setup_logging(level=log_level, format_type=config.LOG_FORMAT, log_file=config.LOG_FILE)
    if not config.OPENAI_API_KEY:
        console.print("❌ OPENAI_API_KEY is not set")
        raise typer.Exit(1)

    console.print(f"🚀 Serving on http://{host}:{port}")
    run_server(host=host, port=port, log_level=log_level.lower())


# ============================================================================
# Entry Point
# ============================================================================


if __name__ == "__main__":
    app()
