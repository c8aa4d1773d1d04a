"""
Chunk records and JSONL loading for the PDF chunk corpus.
"""

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import List, Optional


ROOT = Path(__file__).resolve().parents[2]
CHUNKS_PATH = ROOT / "data" / "chunks.jsonl"


@dataclasses.dataclass(frozen=True)
class ChunkRecord:
    """A bounded span of a PDF document's text, scoped to one session."""

    id: str
    document_id: str
    session_id: str
    text: str


def load_chunks(
    path: Path | None = None,
    session_id: Optional[str] = None,
) -> List[ChunkRecord]:
    """Load chunks from a JSONL dump. If session_id is set, only that session's chunks are loaded."""
    if path is None:
        path = CHUNKS_PATH
    if not path.exists():
        raise FileNotFoundError(f"chunks.jsonl not found at {path}")

    chunks: List[ChunkRecord] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            obj = json.loads(line)
            if session_id and obj.get("session_id") != session_id:
                continue
            chunks.append(
                ChunkRecord(
                    id=obj["id"],
                    document_id=obj["document_id"],
                    session_id=obj["session_id"],
                    text=obj["text"],
                )
            )
    return chunks
