"""Repo-root Uvicorn entrypoint for the food truck query service.

    uvicorn app.main:app --host localhost --port 3003

Re-exports the FastAPI app defined in `backend/app/main.py`; the batch import lives in
`backend/ingest.py`.
"""

from backend.app.main import app  # re-export
