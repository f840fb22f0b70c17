from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("RAG_ALLOW_ANONYMOUS", "true")
os.environ["RAG_ANSWERER"] = "extractive"
os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["EMBEDDING_DIMENSION"] = "256"
os.environ["RAG_MIN_SIMILARITY"] = "0.1"
os.environ["RAG_MIN_INDEX_CHARS"] = "100"
os.environ.pop("RAG_STORE_URI", None)
os.environ.pop("RAG_API_KEY_MAP", None)
os.environ.pop("OPENAI_API_KEY", None)
