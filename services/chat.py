"""Chat turns: registry, transcript, orchestration and streaming for one request."""
from contextlib import contextmanager
from typing import AsyncIterator, Awaitable, Callable, Iterator, List, Optional
from uuid import uuid4
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dtos.chat_request import ChatRequest
from errors import OrchestrationError, PersistenceError, PreconditionError
from graph import Orchestrator
from models.threads import Thread
from models.transcripts import ChatEntry
from schemas.auth import Identity
from schemas.chat import ChatEntryCreate, CheckpointMessage
from services.locks import ThreadLockRegistry
from services.streaming import StreamEmitter
from services.threads import ThreadService, TitleGenerator
from services.transcript import TranscriptService
from state import TurnInput

logger = logging.getLogger(__name__)


class ChatService:
    """
    Runs chat turns and serves the thread registry and transcript.

    Turn policy:
      * the user entry is written to the transcript before the graph runs;
      * the assistant entry is written only when the turn completes, so a
        failed turn leaves no assistant entry behind;
      * a title is generated only for a new thread that has no registry row;
      * a turn that fails after the graph started has any unanswered tool-call
        request removed from its checkpoint.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        session_factory: Callable[[], Session],
        title_generator: TitleGenerator,
        locks: Optional[ThreadLockRegistry] = None,
    ):
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self.title_generator = title_generator
        self.locks = locks or ThreadLockRegistry()

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Database error while trying to {action}")
            raise PersistenceError(f"Failed to {action}: {e}") from e
        finally:
            db.close()

    async def create_or_update_thread(
        self,
        identity: Identity,
        thread_id: str,
        is_new_thread: bool,
        first_message: str,
    ) -> Optional[str]:
        """Upsert registry metadata. Returns the title if one was generated by this call."""
        with self._session("update thread registry") as db:
            thread = ThreadService.get_thread(db, thread_id)
            if thread is not None and thread.user_id != identity.id:
                raise PreconditionError(f"Thread {thread_id} belongs to another user")

            title = None
            if is_new_thread and thread is None:
                title = await self.title_generator.generate(first_message)
                logger.info(f"Generated title for thread {thread_id}")

            ThreadService.upsert_thread(db, identity, thread_id, title)
            return title

    def append_turn(self, thread_id: str, user_id: str, entry: ChatEntryCreate) -> ChatEntry:
        with self._session("append transcript entry") as db:
            return TranscriptService.append_turn(db, thread_id, user_id, entry)

    def attach_feedback(self, thread_id: str, message_id: str, feedback: str) -> bool:
        with self._session("attach feedback") as db:
            return TranscriptService.attach_feedback(db, thread_id, message_id, feedback)

    def list_threads(self, user_id: str, skip: int = 0, limit: int = 20) -> List[Thread]:
        with self._session("list threads") as db:
            return ThreadService.get_user_threads(db, user_id, skip, limit)

    def get_thread(self, thread_id: str, user_id: Optional[str] = None) -> Optional[Thread]:
        with self._session("read thread") as db:
            return ThreadService.get_thread(db, thread_id, user_id)

    def get_transcript(self, thread_id: str) -> List[ChatEntry]:
        with self._session("read transcript") as db:
            return TranscriptService.get_transcript(db, thread_id)

    async def get_messages(self, thread_id: str) -> List[CheckpointMessage]:
        return await self.orchestrator.state_store.messages_for_display(thread_id)

    async def delete_thread(self, thread_id: str, user_id: str) -> bool:
        """
        Remove checkpoint, transcript and registry entry together.

        The SQL deletes are flushed but only committed after the checkpoint
        delete succeeds, so a checkpoint failure leaves everything in place.
        """
        async with self.locks.hold(thread_id):
            with self._session("delete thread") as db:
                if not ThreadService.delete_thread(db, thread_id, user_id, commit=False):
                    return False
                try:
                    await self.orchestrator.state_store.delete(thread_id)
                except PersistenceError:
                    db.rollback()
                    raise
                db.commit()

        logger.info(f"Deleted thread {thread_id}")
        return True

    async def _discard_unanswered_tool_calls(self, thread_id: str) -> None:
        try:
            await self.orchestrator.state_store.repair(thread_id)
        except PersistenceError:
            logger.error(f"Checkpoint for thread {thread_id} still holds unanswered tool calls")

    async def stream_turn(
        self,
        request: ChatRequest,
        identity: Identity,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[str]:
        """Run one turn and yield wire chunks as the graph produces them."""
        is_new_thread = not request.thread_id
        thread_id = request.thread_id or str(uuid4())
        emitter = StreamEmitter(self.orchestrator.search_tool_name)

        yield emitter.thread_id_event(thread_id)

        async with self.locks.hold(thread_id):
            started = completed = False
            try:
                turn = TurnInput.parse(
                    thread_id=thread_id,
                    message=request.message,
                    file_id=request.file_id,
                    file_type=request.file_type,
                )
                title = await self.create_or_update_thread(identity, thread_id, is_new_thread, request.message)
                self.append_turn(thread_id, identity.id, ChatEntryCreate(
                    id=request.human_id, type="user", text=request.message,
                ))

                logger.info(f"Starting turn on thread {thread_id} (document mode: {bool(turn.file_id)})")
                started = True
                events = self.orchestrator.stream_events(turn)
                try:
                    async for event in events:
                        if is_disconnected is not None and await is_disconnected():
                            logger.info(f"Client disconnected from thread {thread_id}; cancelling turn")
                            return
                        chunk = emitter.translate(event)
                        if chunk:
                            yield chunk
                finally:
                    await events.aclose()

                if title:
                    yield emitter.title_event(title)

                self.append_turn(thread_id, identity.id, ChatEntryCreate(
                    id=request.assistant_id,
                    type="assistant",
                    text=emitter.assistant_text,
                    is_web_search=emitter.is_web_search,
                    urls=emitter.urls,
                ))
                completed = True
                logger.info(f"Completed turn on thread {thread_id}")
            except OrchestrationError as e:
                logger.error(f"Turn on thread {thread_id} failed ({e.error_type}): {e}")
                yield emitter.error_event(e)
            except Exception as e:
                logger.exception(f"Unexpected error in turn on thread {thread_id}")
                yield emitter.error_event(OrchestrationError(str(e)))
            finally:
                if started and not completed:
                    await self._discard_unanswered_tool_calls(thread_id)
