import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chat_relay import conversation_service
from chat_relay.db_store import DatabaseStore
from chat_relay.logging_middleware import RequestLoggingMiddleware
from chat_relay.models import MAX_PRIMARY_KEY, init_db
from chat_relay.schemas import QuestionRequest, QuestionResponse
from chat_relay.settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
)


@lru_cache(maxsize=1)
def get_store() -> DatabaseStore:
    return DatabaseStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if get_settings().db_auto_create:
        init_db()
    yield


app = FastAPI(title="Chat Relay", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)


# -------- Error mapping --------
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        errors.append({
            "field": ".".join(loc) or "body",
            "rule": err.get("type"),
            "message": err.get("msg"),
        })
    return JSONResponse(status_code=400, content={"errors": errors})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Unhandled exceptions become a 500 inside RequestLoggingMiddleware.

INVALID_INPUT = {400: {"description": "Invalid input"}}
INTERNAL_ERROR = {500: {"description": "Internal server error"}}
CONVERSATION_NOT_FOUND = {404: {"description": "Conversation not found"}}
MESSAGE_NOT_FOUND = {404: {"description": "Message not found"}}


# -------- Routes --------
@app.get("/")
def root():
    return {"hello": "world"}


@app.get("/health")
def health_check():
    return {
        "status": "ok",
        "service": "chat-relay",
        "env": get_settings().app_env,
    }


@app.post(
    "/questions",
    response_model=QuestionResponse,
    summary="Send a question to the chatbot and get a response",
    description=(
        "Saves the user's question, relays it to the external chatbot API, saves the "
        "bot's answer and returns it. Without sessionId a new conversation is started."
    ),
    responses={**INVALID_INPUT, **INTERNAL_ERROR},
)
def send_question(
    payload: QuestionRequest,
    request: Request,
    store: DatabaseStore = Depends(get_store),
):
    session_id, answer = conversation_service.submit_question(
        store, payload.question, payload.session_id
    )
    request.state.session_id = session_id
    return QuestionResponse(sessionId=session_id, message=answer)


@app.get(
    "/conversation",
    summary="List conversations",
    description="Paginated conversations, optionally filtered by session id, each with its last message.",
    responses={**INVALID_INPUT, **INTERNAL_ERROR},
)
def get_all_conversations(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PRIMARY_KEY),
    store: DatabaseStore = Depends(get_store),
):
    return conversation_service.list_conversations(
        store, session_id=session_id, page=page, limit=limit
    )


@app.get(
    "/conversation/{id_or_uuid}",
    summary="Get a conversation by primary id or session UUID",
    description="Conversation details including its last message.",
    responses={**CONVERSATION_NOT_FOUND, **INTERNAL_ERROR},
)
def get_conversation(id_or_uuid: str, store: DatabaseStore = Depends(get_store)):
    conversation = conversation_service.get_conversation(store, id_or_uuid)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found.")
    return conversation


@app.delete(
    "/conversation/{conversation_id}",
    status_code=204,
    summary="Delete a conversation",
    description="Deletes the conversation row only; its messages are kept.",
    responses={**INVALID_INPUT, **CONVERSATION_NOT_FOUND, **INTERNAL_ERROR},
)
def delete_conversation(
    conversation_id: int = Path(..., ge=1, le=MAX_PRIMARY_KEY),
    store: DatabaseStore = Depends(get_store),
):
    if not conversation_service.delete_conversation(store, conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found.")
    return Response(status_code=204)


@app.delete(
    "/message/{message_id}",
    status_code=204,
    summary="Delete a message",
    description=(
        "Deletes a single message. Conversations pointing at it as their last "
        "message have messagesId and lastMessages set to null."
    ),
    responses={**INVALID_INPUT, **MESSAGE_NOT_FOUND, **INTERNAL_ERROR},
)
def delete_message(
    message_id: int = Path(..., ge=1, le=MAX_PRIMARY_KEY),
    store: DatabaseStore = Depends(get_store),
):
    if not conversation_service.delete_message(store, message_id):
        raise HTTPException(status_code=404, detail="Message not found.")
    return Response(status_code=204)
