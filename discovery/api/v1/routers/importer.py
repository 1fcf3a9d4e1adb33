from fastapi import APIRouter, UploadFile, File, Query, HTTPException
from fastapi import Depends
from typing import List, Dict, Any
import json
import time
from pydantic import ValidationError
from pymongo.errors import PyMongoError
import logging

from discovery.api.deps import mongo_db
from discovery.api.v1.schemas.discovery import BulkIngestResult
from discovery.domain.models.product import ProductIn
from discovery.domain.repositories.product_repo import ProductRepo

router = APIRouter(prefix="/products/import", tags=["import"])

DEFAULT_BATCH_SIZE = 500          # default batch size for bulk writes
MAX_JSON_ARRAY_MB = 5             # max allowed size for JSON array uploads (in MB)
CHUNK_SIZE = 64 * 1024            # 64KB
MAX_REPORTED_ERRORS = 100

logger = logging.getLogger(__name__)

def _is_probably_jsonl(first_bytes: bytes) -> bool:
    # JSON array starts with '[' (maybe after whitespace), JSONL does not
    s = first_bytes.lstrip()
    return not s.startswith(b"[")

# UploadFile doesn't implement __aiter__
async def _iter_bytes(upload: UploadFile, chunk_size: int = CHUNK_SIZE):
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        yield chunk

async def _stream_jsonl_docs(upload: UploadFile):
    # Re-buffer chunks into lines and yield parsed JSON objects
    await upload.seek(0)
    buffer = b""
    async for chunk in _iter_bytes(upload):
        buffer += chunk
        while True:
            nl = buffer.find(b"\n")
            if nl == -1:
                break
            line = buffer[:nl].strip()
            buffer = buffer[nl + 1 :]
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise HTTPException(status_code=400, detail=f"Invalid JSONL line: {e}")
    tail = buffer.strip()
    if tail:
        try:
            yield json.loads(tail)
        except json.JSONDecodeError as e:
            raise HTTPException(status_code=400, detail=f"Invalid JSONL tail: {e}")

async def _read_json_array(upload: UploadFile) -> List[Any]:
    content = await upload.read()
    # hard stop to avoid accidental OOMs on giant arrays
    if len(content) > MAX_JSON_ARRAY_MB * 1024 * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"JSON array too large (> {MAX_JSON_ARRAY_MB} MB). Prefer JSONL."
        )
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON array: {e}")
    if not isinstance(data, list):
        raise HTTPException(status_code=400, detail="Top-level JSON must be an array or send JSONL.")
    return data

async def _upsert_batch(repo: ProductRepo, batch: List[Dict[str, Any]], ordered: bool):
    try:
        return await repo.upsert_many(batch, ordered=ordered)
    except PyMongoError as e:
        logger.error("[import] bulk_write batch failed: %s", e)
        raise HTTPException(status_code=503, detail="MongoDB unavailable.")

@router.post("", response_model=BulkIngestResult)
async def import_products(
    file: UploadFile = File(..., description="JSON array (.json) or JSONL/NDJSON (.jsonl/.ndjson) of products."),
    ordered: bool = Query(False, description="Mongo ordered writes. False is faster and continues on errors."),
    batch_size: int = Query(DEFAULT_BATCH_SIZE, ge=1, le=5000, description="Batch size for bulk writes."),
    db = Depends(mongo_db),
):
    """
    Upsert products by product_id. Each document is validated and gets its
    search_keywords derived from name/brand/category/tags; invalid documents
    are skipped and reported.
    """
    start = time.perf_counter()
    repo = ProductRepo(db)

    head = await file.read(512)
    await file.seek(0)
    is_jsonl = _is_probably_jsonl(head)

    if is_jsonl:
        docs_iter = _stream_jsonl_docs(file)
    else:
        data = await _read_json_array(file)

        async def _array_iter():
            for doc in data:
                yield doc
        docs_iter = _array_iter()

    received = upserted = modified = 0
    errors: List[str] = []
    batch: List[Dict[str, Any]] = []
    async for raw in docs_iter:
        received += 1
        try:
            batch.append(ProductIn.model_validate(raw).to_document())
        except ValidationError as e:
            if len(errors) < MAX_REPORTED_ERRORS:
                pid = raw.get("product_id") if isinstance(raw, dict) else None
                errors.append(f"#{received} product_id={pid}: {e.error_count()} validation error(s)")
            continue
        if len(batch) >= batch_size:
            u, m = await _upsert_batch(repo, batch, ordered)
            upserted += u
            modified += m
            batch.clear()
    if batch:
        u, m = await _upsert_batch(repo, batch, ordered)
        upserted += u
        modified += m

    elapsed_ms = (time.perf_counter() - start) * 1000.0
    logger.info(
        "[import] done format=%s received=%s upserted=%s modified=%s errors=%s time_ms=%.1f",
        "jsonl" if is_jsonl else "json_array", received, upserted, modified, len(errors), elapsed_ms,
    )
    return BulkIngestResult(
        format="jsonl" if is_jsonl else "json_array",
        received=received,
        upserted=upserted,
        modified=modified,
        errors=errors,
        processing_time_ms=elapsed_ms,
    )
