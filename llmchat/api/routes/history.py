"""FastGPT chat history and message feedback endpoints."""

from typing import Any

from fastapi import APIRouter, Query

from llmchat.api.dependencies import SessionServiceDep
from llmchat.api.responses import success_response
from llmchat.core.logging import get_logger
from llmchat.models.history import FeedbackRequest


router = APIRouter()
logger = get_logger(__name__)


def _dump(model: Any) -> Any:
    return model.model_dump(by_alias=True, exclude_none=True)


@router.get("/history")
async def list_histories(
    session_service: SessionServiceDep,
    agent_id: str = Query(..., alias="agentId", min_length=1),
    page: int | None = Query(None, ge=1),
    page_size: int | None = Query(None, alias="pageSize", ge=1, le=100),
) -> dict[str, Any]:
    """List the FastGPT chat sessions of an agent."""
    histories = await session_service.list_histories(agent_id, page, page_size)
    return success_response([_dump(h) for h in histories], total=len(histories))


@router.get("/history/{chat_id}")
async def get_history_detail(
    chat_id: str,
    session_service: SessionServiceDep,
    agent_id: str = Query(..., alias="agentId", min_length=1),
) -> dict[str, Any]:
    detail = await session_service.get_history_detail(agent_id, chat_id)
    return success_response(_dump(detail))


@router.delete("/history/{chat_id}")
async def delete_history(
    chat_id: str,
    session_service: SessionServiceDep,
    agent_id: str = Query(..., alias="agentId", min_length=1),
) -> dict[str, Any]:
    await session_service.delete_history(agent_id, chat_id)
    logger.info("chat_history_deleted", agent_id=agent_id, chat_id=chat_id, category="request")
    return success_response(None)


@router.delete("/history")
async def clear_histories(
    session_service: SessionServiceDep,
    agent_id: str = Query(..., alias="agentId", min_length=1),
) -> dict[str, Any]:
    await session_service.clear_histories(agent_id)
    logger.info("chat_histories_cleared", agent_id=agent_id, category="request")
    return success_response(None)


@router.post("/feedback")
async def update_user_feedback(
    feedback: FeedbackRequest, session_service: SessionServiceDep
) -> dict[str, Any]:
    """Rate an assistant message; omit both feedback fields to clear the rating."""
    await session_service.update_user_feedback(feedback)
    logger.info(
        "chat_feedback_updated",
        agent_id=feedback.agent_id,
        chat_id=feedback.chat_id,
        data_id=feedback.data_id,
        good=bool(feedback.user_good_feedback),
        bad=bool(feedback.user_bad_feedback),
        category="request",
    )
    return success_response(None)
