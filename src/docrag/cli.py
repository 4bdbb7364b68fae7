"""Command line interface for DocRAG."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from docrag.config import AppConfig
from docrag.embedding.encoder import EmbeddingConfig, EmbeddingModel
from docrag.errors import DocRagError
from docrag.generation.answer import AnswerGenerator, OpenAIGenerator
from docrag.index.corpus import CorpusManager
from docrag.index.search import Searcher
from docrag.index.storage import SQLiteCorpusStore
from docrag.ingestion.loader import load_documents

console = Console()
app = typer.Typer(help="DocRAG - bounded document indexing and retrieval")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _resolve_db(db: Optional[Path], *, must_exist: bool) -> Path:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    resolved_db = config.resolve_db_path(Path.cwd())
    if must_exist and not resolved_db.exists():
        raise typer.BadParameter(f"Corpus store not found: {resolved_db}")
    return resolved_db


def _load_corpus(
    store: SQLiteCorpusStore, config: AppConfig, embedder: EmbeddingModel | None = None
) -> CorpusManager:
    corpus = CorpusManager(
        config.limits, embedder, chunk_size=config.chunk_size, overlap=config.overlap
    )
    corpus.restore(store.load())
    return corpus


@app.command()
def index(
    inputs: List[Path] = typer.Argument(
        ..., help="Files or folders with .txt, .md or .pdf documents.", resolve_path=True
    ),
    db: Path = typer.Option(None, "--db", help="Corpus store path"),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    chunk_size: int = typer.Option(AppConfig().chunk_size, help="Chunk size in characters"),
    overlap: int = typer.Option(AppConfig().overlap, help="Chunk overlap"),
    lexical_only: bool = typer.Option(False, "--lexical-only", help="Skip embedding generation"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Add documents to the corpus and rebuild the index."""
    _setup_logging(verbose)
    config = AppConfig(model_name=model, chunk_size=chunk_size, overlap=overlap)
    resolved_db = _resolve_db(db, must_exist=False)
    _ensure_db_parent(resolved_db)

    documents = load_documents(inputs)
    if not documents:
        console.print("[yellow]No documents found.[/yellow]")
        return

    embedder = None if lexical_only else EmbeddingModel(EmbeddingConfig(model_name=config.model_name))
    store = SQLiteCorpusStore(resolved_db)
    try:
        corpus = _load_corpus(store, config, embedder)
        known = {doc.id for doc in corpus.get_documents()}
        fresh = [doc for doc in documents if doc.id not in known]
        for doc in documents:
            if doc.error:
                console.print(f"[yellow]Skipping {doc.name}: {doc.error}[/yellow]")

        console.print(f"Indexing into [bold]{resolved_db}[/bold]...")
        try:
            corpus.add_documents(fresh)
            stats = corpus.index()
        except DocRagError as exc:
            console.print(f"[red]Indexing failed: {exc}[/red]")
            raise typer.Exit(code=1)
        finally:
            store.save(corpus.snapshot())

        console.print(
            f"Indexed: {stats.indexed}, failed: {stats.failed}, chunks: {stats.chunks}, "
            f"embeddings: {stats.embeddings}"
        )
        for doc_id, reason in stats.failures.items():
            console.print(f"[yellow]{doc_id}: {reason}[/yellow]")
    finally:
        store.close()


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="Corpus store path"),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    mode: str = typer.Option("lexical", help="Ranking mode: lexical or vector"),
    top_k: int = typer.Option(5, help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Rank chunks against a query."""
    _setup_logging(verbose)
    if mode not in ("lexical", "vector"):
        raise typer.BadParameter("mode must be 'lexical' or 'vector'")
    config = AppConfig(model_name=model)
    resolved_db = _resolve_db(db, must_exist=True)

    embedder = EmbeddingModel(EmbeddingConfig(model_name=config.model_name)) if mode == "vector" else None
    store = SQLiteCorpusStore(resolved_db)
    try:
        corpus = _load_corpus(store, config)
    finally:
        store.close()

    with Searcher(corpus, embedder) as searcher:
        results = searcher.search(query, top_k=top_k, mode=mode)  # type: ignore[arg-type]
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Offset")
    table.add_column("Snippet")

    for result in results:
        snippet = result.content.replace("\n", " ")
        table.add_row(f"{result.score:.4f}", result.document_name, str(result.chunk.start), snippet[:180])

    console.print(table)


@app.command()
def context(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="Corpus store path"),
    max_length: int = typer.Option(AppConfig().context_length, help="Maximum context length"),
) -> None:
    """Print the context passage a generator would receive."""
    config = AppConfig()
    resolved_db = _resolve_db(db, must_exist=True)
    store = SQLiteCorpusStore(resolved_db)
    try:
        corpus = _load_corpus(store, config)
    finally:
        store.close()

    with Searcher(corpus) as searcher:
        text = searcher.context(query, max_length=max_length)
    if not text:
        console.print("[yellow]No context found.[/yellow]")
        return
    console.print(text, markup=False)


@app.command()
def ask(
    query: str = typer.Argument(..., help="Question to answer from the corpus"),
    db: Path = typer.Option(None, "--db", help="Corpus store path"),
    generation_model: str = typer.Option(AppConfig().generation_model, help="Chat model name"),
    max_length: int = typer.Option(AppConfig().context_length, help="Maximum context length"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Answer a question with retrieved context."""
    _setup_logging(verbose)
    config = AppConfig(generation_model=generation_model)
    resolved_db = _resolve_db(db, must_exist=True)
    store = SQLiteCorpusStore(resolved_db)
    try:
        corpus = _load_corpus(store, config)
    finally:
        store.close()

    generator = OpenAIGenerator(config.generation_model, timeout=config.generation_timeout)
    with Searcher(corpus) as searcher:
        answerer = AnswerGenerator(searcher, generator, max_context_length=max_length)
        try:
            result = answerer.rag_answer(query)
        except DocRagError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=1)
    console.print(result.answer)


@app.command()
def remove(
    doc_id: str = typer.Argument(..., help="Document id"),
    db: Path = typer.Option(None, "--db", help="Corpus store path"),
) -> None:
    """Remove a document and its chunks from the corpus."""
    resolved_db = _resolve_db(db, must_exist=True)
    store = SQLiteCorpusStore(resolved_db)
    try:
        corpus = _load_corpus(store, AppConfig())
        if not corpus.remove_document(doc_id):
            console.print(f"[yellow]Document {doc_id} not found.[/yellow]")
            return
        store.save(corpus.snapshot())
    finally:
        store.close()
    console.print(f"Removed document {doc_id}.")


@app.command()
def stats(
    db: Path = typer.Option(None, "--db", help="Corpus store path"),
) -> None:
    """Show corpus statistics and documents."""
    resolved_db = _resolve_db(db, must_exist=True)
    store = SQLiteCorpusStore(resolved_db)
    try:
        corpus = _load_corpus(store, AppConfig())
    finally:
        store.close()

    summary = corpus.stats()
    console.print(
        f"Documents: {summary.total_documents} ({summary.indexed_documents} indexed), "
        f"chunks: {summary.total_chunks}, embeddings: {summary.total_embeddings}, "
        f"characters: {summary.total_characters:,}"
    )

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Indexed")
    table.add_column("Error")
    for doc in corpus.get_documents():
        table.add_row(doc.id, doc.name, "yes" if doc.indexed else "no", doc.error or doc.index_error or "")
    console.print(table)


@app.command()
def clear(
    db: Path = typer.Option(None, "--db", help="Corpus store path"),
) -> None:
    """Remove every document, chunk and embedding."""
    resolved_db = _resolve_db(db, must_exist=False)
    if not resolved_db.exists():
        console.print("[yellow]Corpus store not found, nothing to clear.[/yellow]")
        return
    store = SQLiteCorpusStore(resolved_db)
    try:
        corpus = _load_corpus(store, AppConfig())
        corpus.clear()
        store.save(corpus.snapshot())
    finally:
        store.close()
    console.print("Corpus cleared.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="Corpus store path"),
    lexical_only: bool = typer.Option(False, "--lexical-only", help="Skip embedding generation"),
) -> None:
    """Start the web API."""
    try:
        import uvicorn

        from docrag.web.app import create_app
    except ImportError as exc:
        raise typer.BadParameter(
            "The web extras are not installed. Install them with \"python -m pip install '.[web]'\""
        ) from exc

    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)
    embedder = None if lexical_only else EmbeddingModel(EmbeddingConfig(model_name=config.model_name))

    console.print(f"Starting web API on http://{host}:{port} (store: {resolved_db})")
    uvicorn.run(
        create_app(config, embedder=embedder, db_path=resolved_db),
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
