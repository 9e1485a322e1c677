import logging

from fastapi import APIRouter, Depends, Request

from ..errors import NoMatchError
from ..schemas.search import QueryRequest, QueryResponse
from ..services.answer import AnswerSynthesizer
from ..services.retrieval import NO_MATCHES, HybridRetriever
from ..utils.error_handlers import create_error_response, get_error_message

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Query"])


def get_retriever(request: Request) -> HybridRetriever:
    state = request.app.state
    return HybridRetriever(state.database, state.embedder)


def get_synthesizer(request: Request) -> AnswerSynthesizer:
    return AnswerSynthesizer(request.app.state.chat)


@router.post("/", response_model=QueryResponse)
async def answer_query(
    payload: QueryRequest | None = None,
    retriever: HybridRetriever = Depends(get_retriever),
    synthesizer: AnswerSynthesizer = Depends(get_synthesizer),
):
    """Answer a free-text food question with approved trucks, locations and schedules."""
    query = ((payload.query if payload else None) or "").strip()
    if not query:
        return create_error_response(400, get_error_message("missing_query"))

    trucks = await retriever.retrieve(query)
    if trucks is NO_MATCHES:
        raise NoMatchError(f"no approved trucks for {query!r}")

    answer = await synthesizer.answer(query, trucks)
    logger.info("request completed")
    return {"success": True, "response": answer}
