from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from config.settings import Settings
from relay.clients.completion import CompletionClient
from relay.clients.record_store import LATEST_QUERY, RecordStoreClient, encode_log, thread_query
from relay.clients.render import render
from relay.core.prompt import DEFAULT_ASSISTANT_CONFIG, NO_REPLY_TEXT
from relay.core.session_store import SessionStore
from relay.errors import (
    PersistError,
    RecordStoreError,
    ThreadNotFoundError,
    ValidationError,
)
from relay.models import (
    ChatExchange,
    ChatInput,
    ChatReply,
    ChatThread,
    ChatTurn,
    MessageListInput,
    ThreadChatInput,
)


logger = logging.getLogger(__name__)


def _describe(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ())) or "body"
    return f"Invalid {location}: {error.get('msg')}"


def parse_chat_input(body: Any) -> ChatInput:
    """Validate a request body into one of the two input modes.

    A body carrying ``messages`` is a message list; anything else must
    reference a stored thread.
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    if "messages" in body:
        if not body.get("messages"):
            raise ValidationError("Missing messages")
        input_cls = MessageListInput
    else:
        if not body.get("chatRecordId") or not body.get("message"):
            raise ValidationError("Missing chatRecordId or message")
        input_cls = ThreadChatInput

    try:
        return input_cls.model_validate(body)
    except PydanticValidationError as exc:
        raise ValidationError(_describe(exc)) from exc


class ChatHistory:
    """Chat-thread access bound to the configured record-store app."""

    def __init__(
        self, record_store: RecordStoreClient, app_id: Optional[str], token: Optional[str]
    ) -> None:
        self._store = record_store
        self._app_id = app_id
        self._token = token

    async def get(self, record_id: str) -> Optional[ChatThread]:
        threads = await self._store.fetch_by_query(
            self._app_id, self._token, thread_query(record_id)
        )
        return threads[0] if threads else None

    async def latest(self) -> Optional[ChatThread]:
        threads = await self._store.fetch_by_query(self._app_id, self._token, LATEST_QUERY)
        return threads[0] if threads else None

    async def append(self, thread: ChatThread, exchange: ChatExchange) -> ChatThread:
        updated = thread.with_exchange(exchange)
        await self._store.update(self._app_id, self._token, thread.id, encode_log(updated.log))
        return updated


class ThreadChatPolicy:
    """The thread must exist and its history must be written."""

    name = "thread"

    def __init__(self, history: ChatHistory, default_model: str) -> None:
        self.history = history
        self.default_model = default_model

    async def resolve_context(self, payload: ThreadChatInput) -> ChatThread:
        thread = await self.history.get(payload.chat_record_id)
        if thread is None:
            raise ThreadNotFoundError(f"Chat record not found: {payload.chat_record_id}")
        return thread

    def build_turns(self, payload: ThreadChatInput, thread: ChatThread) -> List[ChatTurn]:
        return [
            ChatTurn(role="system", content=thread.assistant_config or DEFAULT_ASSISTANT_CONFIG),
            ChatTurn(role="user", content=payload.message),
        ]

    async def persist(self, payload: ThreadChatInput, thread: ChatThread, html: str) -> None:
        exchange = ChatExchange(user_message=payload.message, ai_reply=html)
        try:
            await self.history.append(thread, exchange)
        except RecordStoreError as exc:
            raise PersistError(f"Failed to save chat history: {exc}") from exc


class MessageListPolicy:
    """Answering is the contract; history is written on a best-effort basis."""

    name = "messages"

    def __init__(self, history: ChatHistory, default_model: str) -> None:
        self.history = history
        self.default_model = default_model

    async def resolve_context(self, payload: MessageListInput) -> None:
        return None

    def build_turns(self, payload: MessageListInput, context: None) -> List[ChatTurn]:
        return list(payload.messages)

    async def persist(self, payload: MessageListInput, context: None, html: str) -> None:
        # Only the last turn of the supplied conversation is recorded.
        user_message = payload.messages[-1].content
        try:
            if payload.chat_record_id:
                thread = await self.history.get(payload.chat_record_id)
            else:
                thread = await self.history.latest()
            if thread is None:
                logger.info("No chat record to append history to; skipping")
                return
            await self.history.append(
                thread, ChatExchange(user_message=user_message, ai_reply=html)
            )
        except Exception as exc:
            # History is best-effort here; the reply is returned regardless.
            logger.warning("Chat history save failed: %s", exc)


class ChatOrchestrator:
    """Runs one chat request from validation to session cleanup."""

    def __init__(
        self,
        sessions: SessionStore,
        completion: CompletionClient,
        history: ChatHistory,
        thread_default_model: str = "gpt-5",
        messages_default_model: str = "gpt-4o",
        renderer: Callable[[str], str] = render,
    ) -> None:
        self.sessions = sessions
        self.completion = completion
        self.renderer = renderer
        self._thread_policy = ThreadChatPolicy(history, thread_default_model)
        self._messages_policy = MessageListPolicy(history, messages_default_model)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sessions: SessionStore,
        completion: CompletionClient,
        record_store: RecordStoreClient,
    ) -> "ChatOrchestrator":
        history = ChatHistory(
            record_store, settings.kintone_chat_app_id, settings.kintone_chat_token
        )
        return cls(
            sessions,
            completion,
            history,
            thread_default_model=settings.thread_default_model,
            messages_default_model=settings.messages_default_model,
        )

    def _policy_for(self, payload: ChatInput):
        if isinstance(payload, ThreadChatInput):
            return self._thread_policy
        return self._messages_policy

    async def handle_chat(self, body: Any) -> ChatReply:
        payload = parse_chat_input(body)
        policy = self._policy_for(payload)
        model = payload.model or policy.default_model

        with self.sessions.scoped(payload, model) as session_id:
            logger.info(
                "Chat request: mode=%s model=%s session=%s", policy.name, model, session_id
            )
            context = await policy.resolve_context(payload)
            reply = await self.completion.complete(model, policy.build_turns(payload, context))
            html = self.renderer(reply or NO_REPLY_TEXT)
            await policy.persist(payload, context, html)
            logger.info("Chat request done: session=%s reply_chars=%s", session_id, len(html))
            return ChatReply(reply=html)
