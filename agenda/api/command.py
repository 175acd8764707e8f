from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from agenda.config import settings
from agenda.connectors.llm import LLMConfig
from agenda.core.dispatcher import ConversationDispatcher
from agenda.dependencies import get_dispatcher
from agenda.schemas.command import SubmitRequest, SubmitResponse, TurnRequest, TurnResponse

log = structlog.get_logger()

router = APIRouter()

SUPPORTED_PROVIDERS = ("gemini", "openai", "anthropic")


def _llm_config(body: TurnRequest) -> LLMConfig:
    provider = (body.provider or settings.llm_provider).lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Unsupported LLM provider: {provider}")
    return LLMConfig.from_settings(api_key=body.api_key, provider=provider)


@router.post("", response_model=TurnResponse)
async def handle_command(
    body: TurnRequest,
    dispatcher: Annotated[ConversationDispatcher, Depends(get_dispatcher)],
):
    config = _llm_config(body)
    structlog.contextvars.bind_contextvars(session_id=body.session_id)
    try:
        # 1. Match / extract / merge / next question
        response = await dispatcher.handle_turn(body.session_id, body.text, config)
    finally:
        structlog.contextvars.unbind_contextvars("session_id")

    log.info(
        "command.handled",
        session_id=body.session_id,
        skill=response.skill_name,
        ready=response.ready_to_submit,
        fallback_mode=not config.api_key,
    )
    return response


@router.post("/submit", response_model=SubmitResponse)
async def submit_form(
    body: SubmitRequest,
    dispatcher: Annotated[ConversationDispatcher, Depends(get_dispatcher)],
):
    if dispatcher.session(body.session_id) is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No form in progress for this session")
    # Validation errors come back in the body, not as an HTTP error.
    return dispatcher.submit(body.session_id)


@router.delete("/{session_id}")
async def reset_session(
    session_id: str,
    dispatcher: Annotated[ConversationDispatcher, Depends(get_dispatcher)],
):
    return {"reset": dispatcher.reset(session_id)}
