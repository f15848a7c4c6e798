"""Pinecone vector index gateway for drive file chunks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from pinecone import Pinecone, ServerlessSpec

from app.config.logger import app_logger
from app.config.settings import settings
from app.services.embeddings import embed_texts
from app.services.exceptions import VectorIndexFailure

if TYPE_CHECKING:
    from app.models.file_record import FileRecord
    from app.services.chunker import TextChunk

_pinecone_client: Pinecone | None = None
_pinecone_index = None

UPSERT_BATCH_SIZE = 100
DELETE_BATCH_SIZE = 1000


def chunk_vector_id(file_id: str, ordinal: int) -> str:
    return f"{file_id}_chunk_{ordinal}"


def vector_ids_for_file(file_id: str, chunk_count: int) -> List[str]:
    return [chunk_vector_id(file_id, i) for i in range(chunk_count or 0)]


def get_pinecone_client() -> Pinecone:
    """Return a singleton Pinecone client."""
    global _pinecone_client
    if _pinecone_client is None:
        if not settings.PINECONE_API_KEY:
            raise ValueError("PINECONE_API_KEY must be configured")
        _pinecone_client = Pinecone(api_key=settings.PINECONE_API_KEY)
        app_logger.info("Pinecone client initialized")
    return _pinecone_client


def get_pinecone_index():
    """Return the Pinecone index for drive chunks, creating it if necessary."""
    global _pinecone_index
    if _pinecone_index is not None:
        return _pinecone_index

    pc = get_pinecone_client()
    index_name = settings.PINECONE_INDEX_NAME

    existing = [idx["name"] for idx in pc.list_indexes()]
    if index_name not in existing:
        app_logger.info(f"Creating Pinecone index '{index_name}' for drive chunks")
        sample_embedding = embed_texts(["drive sync init vector dimension sample"])[0]
        dimension = len(sample_embedding)
        pc.create_index(
            name=index_name,
            dimension=dimension,
            metric="cosine",
            spec=ServerlessSpec(
                cloud="aws",
                region=settings.PINECONE_REGION or "us-east-1",
            ),
        )

    _pinecone_index = pc.Index(index_name)
    app_logger.info(f"Using Pinecone index '{index_name}'")
    return _pinecone_index


class VectorIndexGateway:
    """File-scoped writes against a vector index.

    ``index`` is anything with Pinecone's ``upsert(vectors=..., namespace=...)``
    and ``delete(ids=..., namespace=...)`` methods. Every call carries
    ``_request_timeout`` in seconds.
    """

    def __init__(self, index: Any, namespace: str = "", timeout: Optional[float] = None):
        self.index = index
        self.namespace = namespace
        self.timeout = settings.REQUEST_TIMEOUT_SECONDS if timeout is None else timeout

    def upsert_chunks(
        self,
        record: "FileRecord",
        chunks: Sequence["TextChunk"],
        vectors: Sequence[Sequence[float]],
    ) -> List[str]:
        """Upsert one vector per chunk and return the ids written, in order.

        On failure the ids written so far are attached to the raised
        ``VectorIndexFailure`` as ``written_ids``.
        """
        if len(chunks) != len(vectors):
            raise ValueError(f"{len(chunks)} chunks but {len(vectors)} vectors")

        payload = [
            {
                "id": chunk.vector_id,
                "values": list(vector),
                "metadata": {
                    "filename": record.filename,
                    "filepath": record.filepath,
                    "fileurl": record.fileurl,
                    "chunk": chunk.text,
                },
            }
            for chunk, vector in zip(chunks, vectors)
        ]

        written: List[str] = []
        for i in range(0, len(payload), UPSERT_BATCH_SIZE):
            batch = payload[i : i + UPSERT_BATCH_SIZE]
            try:
                self.index.upsert(
                    vectors=batch, namespace=self.namespace, _request_timeout=self.timeout
                )
            except Exception as exc:
                raise VectorIndexFailure(
                    f"Upsert failed for {record.id}: {exc}", written_ids=written
                ) from exc
            written.extend(item["id"] for item in batch)
        return written

    def delete_many(self, ids: Sequence[str]) -> int:
        """Delete vectors by id; absent ids are ignored by the index."""
        ids = list(ids)
        for i in range(0, len(ids), DELETE_BATCH_SIZE):
            try:
                self.index.delete(
                    ids=ids[i : i + DELETE_BATCH_SIZE],
                    namespace=self.namespace,
                    _request_timeout=self.timeout,
                )
            except Exception as exc:
                raise VectorIndexFailure(f"Delete failed: {exc}") from exc
        return len(ids)

    def delete_file(self, file_id: str, chunk_count: int) -> int:
        """Delete every vector a file with ``chunk_count`` chunks owns."""
        return self.delete_many(vector_ids_for_file(file_id, chunk_count))


def get_vector_gateway() -> VectorIndexGateway:
    return VectorIndexGateway(get_pinecone_index(), namespace=settings.PINECONE_NAMESPACE)
