from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from relay.errors import CompletionServiceError
from relay.models import ChatTurn


logger = logging.getLogger(__name__)

ChatModelFactory = Callable[[str], BaseChatModel]


def to_lc_messages(turns: Sequence[ChatTurn]) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    for turn in turns:
        if turn.role == "system":
            messages.append(SystemMessage(content=turn.content))
        elif turn.role == "assistant":
            messages.append(AIMessage(content=turn.content))
        else:
            messages.append(HumanMessage(content=turn.content))
    return messages


def _reply_text(result: object) -> str:
    if not isinstance(result, BaseMessage):
        raise CompletionServiceError(
            f"Unexpected completion result: {type(result).__name__}"
        )
    content = result.content
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # Multi-part content: keep the text parts only.
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text") or "")
        return "".join(parts)
    raise CompletionServiceError(
        f"Unexpected completion content: {type(content).__name__}"
    )


class CompletionClient:
    """Sends a conversation to the chat completion service."""

    def __init__(
        self,
        api_key: Optional[str],
        temperature: float = 0.7,
        timeout: Optional[float] = None,
        chat_model_factory: Optional[ChatModelFactory] = None,
    ) -> None:
        self._api_key = api_key
        self._temperature = temperature
        self._timeout = timeout
        self._factory = chat_model_factory or self._build_openai_model

    def _build_openai_model(self, model: str) -> BaseChatModel:
        if not self._api_key:
            raise CompletionServiceError(
                "OPENAI_API_KEY not set. Please configure it in environment or .env"
            )
        # No retries: one upstream failure is one caller-visible failure.
        return ChatOpenAI(
            model=model,
            api_key=self._api_key,
            temperature=self._temperature,
            timeout=self._timeout,
            max_retries=0,
        )

    async def complete(self, model: str, turns: Sequence[ChatTurn]) -> str:
        try:
            llm = self._factory(model)
            result = await llm.ainvoke(to_lc_messages(turns))
        except CompletionServiceError:
            raise
        except Exception as exc:
            logger.error("Completion call failed: model=%s error=%s", model, exc)
            raise CompletionServiceError(f"Completion service call failed: {exc}") from exc
        return _reply_text(result)
