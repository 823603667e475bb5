from fastapi import FastAPI, Depends, HTTPException, Query, Request, status, UploadFile, File
from fastapi.responses import StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from langgraph.checkpoint.postgres.aio import AsyncPostgresSaver
from contextlib import asynccontextmanager
from typing import List, Optional
import logging

from config import settings
from database import SessionLocal, engine, get_db
from dtos.chat_request import ChatRequest
from errors import PersistenceError
from graph import Orchestrator
from models import Base
from schemas import (
    ThreadResponse, ChatEntryResponse, CheckpointMessage, Identity,
    DocumentResponse, DocumentListResponse,
)
from services.auth import AuthService
from services.chat import ChatService
from services.documents import DocumentService
from services.files import StoredFileAccessor
from services.minio import get_minio_service
from services.streaming import SSE_HEADERS
from services.threads import TitleGenerator
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level.upper())

    # Create registry, transcript and document tables if they don't exist
    Base.metadata.create_all(bind=engine)

    async with AsyncPostgresSaver.from_conn_string(settings.checkpoint_database_url) as saver:
        await saver.setup()  # initialize checkpoint tables if needed
        orchestrator = Orchestrator.from_settings(
            settings,
            checkpointer=saver,
            file_accessor=StoredFileAccessor(SessionLocal, get_minio_service),
        )
        app.state.chat_service = ChatService(
            orchestrator=orchestrator,
            session_factory=SessionLocal,
            title_generator=TitleGenerator(orchestrator.model),
        )
        logger.info("Chat service ready")

        yield


app = FastAPI(
    title="LangGraph Chat Orchestrator",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=3600
)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Identity:
    """Verified identity of the caller from the bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing or invalid bearer token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    identity = AuthService.verify_identity(credentials.credentials)
    if identity is None:
        raise credentials_exception

    return identity


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def _persistence_failure(e: PersistenceError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "langgraph-chat-orchestrator"}


@app.post("/chat/stream")
async def stream_chat(
    req: ChatRequest,
    request: Request,
    identity: Identity = Depends(get_current_identity),
    chat_service: ChatService = Depends(get_chat_service),
):
    if req.user.id != identity.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User does not match token")

    return StreamingResponse(
        chat_service.stream_turn(req, identity, is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@app.get("/chat/history", response_model=List[ThreadResponse])
async def get_chat_history(
    userId: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    chat_service: ChatService = Depends(get_chat_service),
) -> List[ThreadResponse]:
    """List a user's threads, most recently active first."""
    if not userId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="userId is required")
    if userId != identity.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot list another user's threads")

    try:
        threads = chat_service.list_threads(userId, skip, limit)
    except PersistenceError as e:
        raise _persistence_failure(e)

    return [ThreadResponse.model_validate(thread) for thread in threads]


@app.get("/chat/transcript", response_model=List[ChatEntryResponse])
async def get_transcript(
    threadId: Optional[str] = Query(None),
    identity: Identity = Depends(get_current_identity),
    chat_service: ChatService = Depends(get_chat_service),
) -> List[ChatEntryResponse]:
    """Completed turns of a thread, oldest first."""
    if not threadId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="threadId is required")

    try:
        if not chat_service.get_thread(threadId, identity.id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
        entries = chat_service.get_transcript(threadId)
    except PersistenceError as e:
        raise _persistence_failure(e)

    return [ChatEntryResponse.model_validate(entry) for entry in entries]


@app.get("/chat/messages", response_model=List[CheckpointMessage])
async def get_messages(
    threadId: Optional[str] = Query(None),
    identity: Identity = Depends(get_current_identity),
    chat_service: ChatService = Depends(get_chat_service),
) -> List[CheckpointMessage]:
    """Messages of the stored conversation state."""
    if not threadId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="threadId is required")

    try:
        if not chat_service.get_thread(threadId, identity.id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
        return await chat_service.get_messages(threadId)
    except PersistenceError as e:
        raise _persistence_failure(e)


@app.put("/chat/feedback")
async def update_feedback(
    threadId: Optional[str] = Query(None),
    messageId: Optional[str] = Query(None),
    feedback: Optional[str] = Query(None),
    identity: Identity = Depends(get_current_identity),
    chat_service: ChatService = Depends(get_chat_service),
) -> dict:
    """Attach feedback to one transcript entry."""
    if not threadId or not messageId or not feedback:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="threadId, messageId and feedback are required"
        )

    try:
        if not chat_service.get_thread(threadId, identity.id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
        if not chat_service.attach_feedback(threadId, messageId, feedback):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    except PersistenceError as e:
        raise _persistence_failure(e)

    return {"status": "ok"}


@app.delete("/chat/threads/{thread_id}")
async def delete_thread(
    thread_id: str,
    identity: Identity = Depends(get_current_identity),
    chat_service: ChatService = Depends(get_chat_service),
) -> dict:
    """Delete a thread with its transcript and stored state."""
    try:
        deleted = await chat_service.delete_thread(thread_id, identity.id)
    except PersistenceError as e:
        raise _persistence_failure(e)

    if not deleted:
        raise HTTPException(status_code=404, detail="Thread not found")

    return {"message": "Thread deleted successfully"}


@app.post("/documents/upload", response_model=DocumentResponse)
async def upload_document(
    file: UploadFile = File(...),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> DocumentResponse:
    """
    Upload a PDF to ask questions about.

    The returned ``id`` is the ``fileId`` to send with chat turns.
    Maximum file size: 10MB
    """
    file_content = await file.read()
    file_size = len(file_content)
    await file.seek(0)

    try:
        document = DocumentService.upload_document(
            db=db,
            storage=get_minio_service(),
            user_id=identity.id,
            filename=file.filename or "",
            file_data=file.file,
            file_size=file_size,
            content_type=file.content_type or "application/pdf"
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not document:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload document"
        )

    return DocumentResponse.model_validate(document)


@app.get("/documents", response_model=DocumentListResponse)
async def list_documents(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> DocumentListResponse:
    """List the caller's uploaded documents."""
    documents = DocumentService.get_user_documents(db=db, user_id=identity.id, skip=skip, limit=limit)
    total = DocumentService.count_user_documents(db, identity.id)

    return DocumentListResponse(
        documents=[DocumentResponse.model_validate(doc) for doc in documents],
        total=total,
        page=(skip // limit) + 1,
        page_size=limit
    )
