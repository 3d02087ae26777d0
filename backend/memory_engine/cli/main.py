"""CLI entrypoint for the memory engine."""

from __future__ import annotations

import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer

from memory_engine.core.config import Settings, get_settings
from memory_engine.core.errors import MemoryEngineError
from memory_engine.core.logging import configure_logging
from memory_engine.core.metrics import render_metrics
from memory_engine.engine import MemoryEngine
from memory_engine.utils.serialization import dumps_pretty

app = typer.Typer(name="memx", help="Memory engine maintenance commands")

MEMORY_DIR_OPTION = typer.Option(None, "--memory-dir", help="Override the memory directory")


def _settings(memory_dir: Optional[Path]) -> Settings:
    settings = get_settings()
    if memory_dir is not None:
        settings = settings.model_copy(update={"memory_dir": memory_dir.expanduser()})
    return settings


@contextmanager
def _engine(memory_dir: Optional[Path]) -> Iterator[MemoryEngine]:
    configure_logging()
    try:
        with MemoryEngine.from_settings(_settings(memory_dir)) as engine:
            yield engine
    except MemoryEngineError as exc:
        typer.echo(f"Error ({exc.error_code}): {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def index(
    path: Optional[Path] = typer.Argument(None, help="File or directory to index (default: memory dir)"),
    memory_dir: Optional[Path] = MEMORY_DIR_OPTION,
) -> None:
    """Index the memory directory, or a single file or subdirectory of it."""
    with _engine(memory_dir) as engine:
        if path is None:
            payload = engine.initialize().to_dict()
        elif path.expanduser().is_dir():
            payload = engine.indexer.index_directory(path).to_dict()
        else:
            result = engine.indexer.index_file(path)
            payload = {"path": str(result.path), "status": result.status, "chunks": result.chunks}
        typer.echo(dumps_pretty(payload))


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    k: Optional[int] = typer.Option(None, "--k", help="Maximum number of results"),
    min_score: Optional[float] = typer.Option(None, "--min-score", help="Drop results scored below this"),
    memory_dir: Optional[Path] = MEMORY_DIR_OPTION,
) -> None:
    """Run a hybrid search over chunks and daily logs."""
    with _engine(memory_dir) as engine:
        results = engine.search(query, max_results=k, min_score=min_score)
        typer.echo(dumps_pretty([result.to_dict() for result in results]))


@app.command()
def stats(
    metrics: bool = typer.Option(False, "--metrics", help="Print Prometheus metrics instead"),
    memory_dir: Optional[Path] = MEMORY_DIR_OPTION,
) -> None:
    """Show index statistics."""
    with _engine(memory_dir) as engine:
        payload = engine.statistics()
        if metrics:
            typer.echo(render_metrics().decode("utf-8"))
        else:
            typer.echo(dumps_pretty(payload))


@app.command()
def health(memory_dir: Optional[Path] = MEMORY_DIR_OPTION) -> None:
    """Check tables, integrity and full-text parity."""
    with _engine(memory_dir) as engine:
        report = engine.store.health_check()
        typer.echo(dumps_pretty(report))
        if not report["ok"]:
            raise typer.Exit(code=1)


@app.command()
def optimize(memory_dir: Optional[Path] = MEMORY_DIR_OPTION) -> None:
    """Optimize the full-text index, then VACUUM and ANALYZE."""
    with _engine(memory_dir) as engine:
        engine.store.optimize()
        typer.echo(dumps_pretty({"status": "ok"}))


@app.command()
def clean(
    days: int = typer.Option(..., "--days", min=0, help="Delete chunks older than this many days"),
    memory_dir: Optional[Path] = MEMORY_DIR_OPTION,
) -> None:
    """Remove expired chunks."""
    with _engine(memory_dir) as engine:
        typer.echo(dumps_pretty({"removed": engine.store.clean_expired(days)}))


@app.command("archive-logs")
def archive_logs(
    days: int = typer.Option(30, "--days", min=0, help="Keep this many days of logs at the top level"),
    memory_dir: Optional[Path] = MEMORY_DIR_OPTION,
) -> None:
    """Move old daily logs into archive/YYYY-MM/."""
    with _engine(memory_dir) as engine:
        moved = engine.archive_logs(days)
        typer.echo(dumps_pretty([{"from": str(src), "to": str(dst)} for src, dst in moved]))


@app.command()
def watch(memory_dir: Optional[Path] = MEMORY_DIR_OPTION) -> None:
    """Index once, then keep the index current until interrupted."""
    with _engine(memory_dir) as engine:
        engine.initialize()
        engine.start(watch=True)
        typer.echo(f"Watching {engine.memory_dir} (Ctrl+C to stop)")
        try:
            while True:
                time.sleep(1.0)
        except KeyboardInterrupt:
            typer.echo("Stopping")


if __name__ == "__main__":
    app()
