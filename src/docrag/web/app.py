"""FastAPI application exposing a corpus over HTTP."""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, List, Literal

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from docrag.config import AppConfig
from docrag.embedding.encoder import EmbeddingProvider
from docrag.errors import CapacityError, IndexTimeoutError, ValidationError
from docrag.index.corpus import CorpusManager
from docrag.index.search import Searcher
from docrag.index.storage import SQLiteCorpusStore
from docrag.models import Document

LOGGER = logging.getLogger(__name__)


class DocumentPayload(BaseModel):
    name: str
    text: str
    id: str | None = None
    error: str | None = None


class AddDocumentsPayload(BaseModel):
    documents: List[DocumentPayload]


class SearchPayload(BaseModel):
    query: str
    top_k: int = 5
    mode: Literal["lexical", "vector"] = "lexical"


class ContextPayload(BaseModel):
    query: str
    max_length: int | None = None
    mode: Literal["lexical", "vector"] = "lexical"


def _corpus(request: Request) -> CorpusManager:
    return request.app.state.corpus


def _searcher(request: Request) -> Searcher:
    return request.app.state.searcher


def _persist(request: Request) -> None:
    db_path: Path | None = request.app.state.db_path
    if db_path is None:
        return
    store = SQLiteCorpusStore(db_path)
    try:
        store.save(_corpus(request).snapshot())
    finally:
        store.close()


def _to_document(payload: DocumentPayload) -> Document:
    document = Document.from_text(payload.id or uuid.uuid4().hex[:16], payload.name, payload.text)
    document.error = payload.error
    return document


def create_app(
    config: AppConfig | None = None,
    *,
    corpus: CorpusManager | None = None,
    embedder: EmbeddingProvider | None = None,
    db_path: Path | None = None,
) -> FastAPI:
    """Build the API around one corpus, optionally persisted at ``db_path``."""
    config = config or AppConfig()
    if corpus is None:
        corpus = CorpusManager(
            config.limits, embedder, chunk_size=config.chunk_size, overlap=config.overlap
        )
        if db_path is not None and db_path.exists():
            store = SQLiteCorpusStore(db_path)
            try:
                corpus.restore(store.load())
            finally:
                store.close()

    app = FastAPI(title="DocRAG", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.config = config
    app.state.corpus = corpus
    app.state.searcher = Searcher(corpus, embedder or corpus.embedder)
    app.state.db_path = db_path

    @app.on_event("startup")
    async def startup_event() -> None:
        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        app.state.searcher.close()

    @app.get("/documents")
    async def list_documents(request: Request) -> dict[str, Any]:
        corpus = _corpus(request)
        documents = [
            {
                "id": doc.id,
                "name": doc.name,
                "character_count": doc.character_count,
                "size_bytes": doc.size_bytes,
                "indexed": doc.indexed,
                "error": doc.error or doc.index_error,
            }
            for doc in corpus.get_documents()
        ]
        return {"documents": documents}

    @app.post("/documents")
    async def add_documents(payload: AddDocumentsPayload, request: Request) -> dict[str, Any]:
        if not payload.documents:
            raise HTTPException(status_code=400, detail="Documents array is required")
        try:
            added = await asyncio.to_thread(
                _corpus(request).add_documents, [_to_document(doc) for doc in payload.documents]
            )
        except CapacityError as exc:
            raise HTTPException(status_code=413, detail=str(exc)) from exc
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        await asyncio.to_thread(_persist, request)
        return {"status": "ok", "added": [doc.id for doc in added]}

    @app.delete("/documents/{doc_id}")
    async def delete_document(doc_id: str, request: Request) -> dict[str, Any]:
        if not await asyncio.to_thread(_corpus(request).remove_document, doc_id):
            raise HTTPException(status_code=404, detail=f"Document with ID {doc_id} not found")
        await asyncio.to_thread(_persist, request)
        return {"status": "ok", "deleted_id": doc_id}

    @app.post("/index")
    async def index_documents(request: Request) -> dict[str, Any]:
        try:
            stats = await asyncio.to_thread(_corpus(request).index)
        except IndexTimeoutError as exc:
            await asyncio.to_thread(_persist, request)
            raise HTTPException(status_code=504, detail=str(exc)) from exc
        await asyncio.to_thread(_persist, request)
        return {
            "status": "ok",
            "stats": {
                "indexed": stats.indexed,
                "failed": stats.failed,
                "chunks": stats.chunks,
                "embeddings": stats.embeddings,
                "fallback_embeddings": stats.fallback_embeddings,
                "failures": stats.failures,
                "elapsed": stats.elapsed,
            },
        }

    @app.post("/search")
    async def search(payload: SearchPayload, request: Request) -> dict[str, Any]:
        query = payload.query.strip()
        if not query:
            raise HTTPException(status_code=400, detail="Empty query")
        top_k = max(1, min(payload.top_k, 50))
        results = await asyncio.to_thread(_searcher(request).search, query, top_k=top_k, mode=payload.mode)
        return {
            "results": [
                {
                    "chunk_id": result.chunk.id,
                    "document_id": result.chunk.document_id,
                    "document_name": result.document_name,
                    "score": result.score,
                    "content": result.content,
                }
                for result in results
            ]
        }

    @app.post("/context")
    async def context(payload: ContextPayload, request: Request) -> dict[str, Any]:
        max_length = payload.max_length or request.app.state.config.context_length
        text = await asyncio.to_thread(
            _searcher(request).context, payload.query, max_length=max_length, mode=payload.mode
        )
        return {"context": text, "length": len(text)}

    @app.get("/stats")
    async def stats(request: Request) -> dict[str, Any]:
        corpus = _corpus(request)
        summary = corpus.stats()
        return {
            "total_documents": summary.total_documents,
            "indexed_documents": summary.indexed_documents,
            "total_chunks": summary.total_chunks,
            "total_embeddings": summary.total_embeddings,
            "total_characters": summary.total_characters,
            "available": corpus.is_available(),
        }

    @app.get("/debug")
    async def debug(request: Request) -> dict[str, Any]:
        return _corpus(request).debug_info()

    @app.post("/clear")
    async def clear(request: Request) -> dict[str, str]:
        await asyncio.to_thread(_corpus(request).clear)
        await asyncio.to_thread(_persist, request)
        return {"status": "ok"}

    return app
