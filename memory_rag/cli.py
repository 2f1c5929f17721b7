from __future__ import annotations

import argparse
import json
import logging

from memory_rag.adapters.chunking.word_chunker import WordChunker
from memory_rag.adapters.embeddings.cache import EmbeddingCache
from memory_rag.adapters.embeddings.dummy_embedder import DummyHashEmbedder
from memory_rag.adapters.embeddings.retry import RetryPolicy
from memory_rag.adapters.embeddings.voyage import VoyageEmbedder
from memory_rag.adapters.extractors.html_extractor import HtmlExtractor
from memory_rag.adapters.extractors.registry import ExtractorRegistry
from memory_rag.adapters.extractors.text_extractor import TextExtractor
from memory_rag.adapters.sources.local_folder import LocalFolderSource
from memory_rag.adapters.stores.json_file import JsonFileStore
from memory_rag.config.settings import Settings
from memory_rag.core.models import MEMORY_TYPES, ScoredResult
from memory_rag.pipelines.ingestion import IngestionPipeline
from memory_rag.pipelines.memories import MemoryWriter
from memory_rag.search.service import SearchService


def _build_embedder(args, settings: Settings):
    if getattr(args, "dummy_embedder", False):
        return DummyHashEmbedder()
    return VoyageEmbedder(
        api_key=settings.voyage_api_key,
        model=settings.voyage_model,
        api_url=settings.voyage_api_url,
        batch_size=settings.embedding_batch_size,
        timeout_seconds=settings.embedding_timeout_seconds,
        retry=RetryPolicy(
            max_attempts=settings.embedding_max_retries,
            initial_backoff=settings.embedding_initial_backoff,
            max_backoff=settings.embedding_max_backoff,
        ),
        cache=EmbeddingCache(
            max_size=settings.embedding_cache_size,
            ttl_seconds=settings.embedding_cache_ttl_seconds,
        ),
    )


def _build_store(settings: Settings) -> JsonFileStore:
    return JsonFileStore(settings.store_path)


def _build_search(settings: Settings, store: JsonFileStore, embedder) -> SearchService:
    dims = embedder.dim if isinstance(embedder, DummyHashEmbedder) else settings.embedding_dimensions
    return SearchService(
        store,
        expected_dims=dims,
        scan_cap=settings.search_scan_cap,
        default_limit=settings.search_limit,
        default_threshold=settings.search_threshold,
    )


def _print_results(results: list[ScoredResult]) -> None:
    if not results:
        print("(no matches above threshold)")
        return
    for i, r in enumerate(results, start=1):
        chunk = r.payload.get("chunk")
        text = chunk.content if chunk is not None else r.payload.get("content", "")
        print(f"[{i}] similarity={r.similarity:.4f} id={r.candidate_id}")
        print(f"    {text[:160]}")


def cmd_ingest_local(args) -> None:
    settings = Settings()
    store = _build_store(settings)
    pipeline = IngestionPipeline(
        store=store,
        chunker=WordChunker(chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap),
        embedder=_build_embedder(args, settings),
        source=LocalFolderSource(root=args.path or settings.ingest_local_path, recursive=True),
        extractor_registry=ExtractorRegistry(extractors=[HtmlExtractor(), TextExtractor()]),
        batch_size=settings.embedding_batch_size,
    )
    stats = pipeline.run()
    store.save()
    print("✅ Ingestion complete")
    print(stats)


def _file_metadata(args) -> dict:
    metadata = {}
    if args.metadata:
        try:
            metadata = json.loads(args.metadata)
        except ValueError as exc:
            raise SystemExit(f"--metadata is not valid JSON: {exc}")
        if not isinstance(metadata, dict):
            raise SystemExit("--metadata must be a JSON object")
    if args.author:
        metadata["author"] = args.author
    if args.year is not None:
        metadata["year"] = args.year
    return metadata


def cmd_ingest_file(args) -> None:
    settings = Settings()
    store = _build_store(settings)
    pipeline = IngestionPipeline(
        store=store,
        chunker=WordChunker(chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap),
        embedder=_build_embedder(args, settings),
        batch_size=settings.embedding_batch_size,
    )
    print(f"📚 Ingesting: {args.title}")
    result = pipeline.ingest_file(
        args.path,
        args.title,
        _file_metadata(args),
        chunk_size=args.chunk_size,
        chunk_overlap=args.chunk_overlap,
    )
    store.save()
    print("✅ Ingestion complete")
    print(f"   Document ID: {result.document_id}")
    print(f"   Chunks created: {result.chunks_created}")
    print(f"   Embeddings generated: {result.embeddings_created}")
    print(f"   Processing time: {result.processing_time_ms / 1000:.2f}s")


def cmd_store_memory(args) -> None:
    settings = Settings()
    store = _build_store(settings)
    writer = MemoryWriter(store=store, embedder=_build_embedder(args, settings))
    memory_id = writer.store_memory(
        args.memory_type,
        args.content,
        importance_score=args.importance,
        agent_id=args.agent_id,
    )
    store.save()
    print("✅ Memory stored")
    print(f"   Memory ID: {memory_id}")


def cmd_search(args) -> None:
    settings = Settings()
    store = _build_store(settings)
    embedder = _build_embedder(args, settings)
    service = _build_search(settings, store, embedder)

    query = embedder.embed(args.text).embedding
    response = service.similarity_search(
        query,
        memory_type=args.memory_type,
        agent_id=args.agent_id,
        limit=args.limit,
        threshold=args.threshold,
    )
    _print_results(response.results)
    print(f"({response.timing_ms:.1f}ms)")

    if response.results:
        service.update_access_counts([r.candidate_id for r in response.results])
        store.save()


def cmd_search_chunks(args) -> None:
    settings = Settings()
    store = _build_store(settings)
    embedder = _build_embedder(args, settings)
    service = _build_search(settings, store, embedder)

    query = embedder.embed(args.text).embedding
    cursor = args.cursor
    while True:
        page = service.paginated_similarity_search(
            query, limit=args.limit, threshold=args.threshold, cursor=cursor, model=args.model
        )
        _print_results(page.results)
        print(f"({page.timing_ms:.1f}ms) has_more={page.has_more} next_cursor={page.next_cursor}")
        if not (args.all_pages and page.has_more):
            break
        cursor = page.next_cursor


def cmd_list_memories(args) -> None:
    store = _build_store(Settings())
    for m in store.list_vector_memories(memory_type=args.memory_type, limit=args.limit):
        print(f"{m.id} [{m.memory_type}] accessed={m.access_count} {m.content[:100]}")


def main() -> None:
    parser = argparse.ArgumentParser(prog="memory-rag")
    sub = parser.add_subparsers(dest="cmd", required=True)

    ingest = sub.add_parser("ingest-local", help="Chunk, embed and index files from INGEST_LOCAL_PATH")
    ingest.add_argument("--path", help="Folder to ingest (defaults to INGEST_LOCAL_PATH)")

    ingest_file = sub.add_parser("ingest-file", help="Chunk, embed and index a single file under a given title")
    ingest_file.add_argument("path")
    ingest_file.add_argument("title")
    ingest_file.add_argument("--metadata", help="JSON object stored with the document")
    ingest_file.add_argument("--author")
    ingest_file.add_argument("--year", type=int)
    ingest_file.add_argument("--chunk-size", dest="chunk_size", type=int)
    ingest_file.add_argument("--chunk-overlap", dest="chunk_overlap", type=int)

    store_memory = sub.add_parser("store-memory", help="Embed and store an agent memory")
    store_memory.add_argument("memory_type", choices=MEMORY_TYPES)
    store_memory.add_argument("content")
    store_memory.add_argument("--agent-id")
    store_memory.add_argument("--importance", type=float)

    search = sub.add_parser("search", help="Similarity search over stored memories")
    search.add_argument("text")
    search.add_argument("--type", dest="memory_type", choices=MEMORY_TYPES)
    search.add_argument("--agent-id")

    search_chunks = sub.add_parser("search-chunks", help="Paginated similarity search over document chunks")
    search_chunks.add_argument("text")
    search_chunks.add_argument("--cursor")
    search_chunks.add_argument("--model")
    search_chunks.add_argument("--all-pages", action="store_true", help="Follow cursors until the scan is done")

    list_memories = sub.add_parser("list-memories", help="List stored memories")
    list_memories.add_argument("--type", dest="memory_type", choices=MEMORY_TYPES)
    list_memories.add_argument("--limit", type=int, default=50)

    for p in (search, search_chunks):
        p.add_argument("--limit", type=int)
        p.add_argument("--threshold", type=float)

    for p in (ingest, ingest_file, store_memory, search, search_chunks):
        p.add_argument(
            "--dummy-embedder",
            dest="dummy_embedder",
            action="store_true",
            help="Use the offline hash embedder instead of Voyage AI",
        )

    args = parser.parse_args()

    logging.basicConfig(
        level=Settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "ingest-local":
        cmd_ingest_local(args)
    elif args.cmd == "ingest-file":
        cmd_ingest_file(args)
    elif args.cmd == "store-memory":
        cmd_store_memory(args)
    elif args.cmd == "search":
        cmd_search(args)
    elif args.cmd == "search-chunks":
        cmd_search_chunks(args)
    elif args.cmd == "list-memories":
        cmd_list_memories(args)
    else:
        raise SystemExit(f"Unknown command: {args.cmd}")


if __name__ == "__main__":
    main()
