# storefront/services/chat_service.py
import secrets
from datetime import datetime, timezone
from typing import Any, Dict

from redis import RedisError
from sqlalchemy.orm import Session

from storefront.data.models.conversation import ConversationModel, MessageModel
from storefront.domain.errors import ConversationBusy, ExternalServiceError, InvalidInput
from storefront.domain.status import MessageRole
from storefront.repos.conversation_repo import ConversationRepo
from storefront.services.chat_tools import ToolRegistry
from storefront.services.completion_client import CompletionClient
from storefront.services.lock_service import LockService
from storefront.utils.settings import CHAT_CONTEXT_WINDOW, CHAT_MAX_TOOL_ROUNDS, STORE_NAME
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 2000

# never stored: replaying it into later prompts makes the model repeat it
GENERIC_FAILURE_MESSAGE = "I encountered an error processing your request. Please try again."

TOOL_LIMIT_MESSAGE = (
    "I couldn't finish looking that up. Please try rephrasing your question "
    "or ask about one thing at a time."
)

EMPTY_REPLY_MESSAGE = "I'm sorry, I don't have an answer for that right now."

SYSTEM_INSTRUCTION = (
    f"You are the AI shopping assistant for {STORE_NAME}. You have tools to search products "
    "and check the customer's order status. Always use tools when the customer asks for store data "
    "and answer from the tool output. If the customer is angry or the request is too complex, "
    "escalate to a human. Be concise."
)


def _is_failure(message: MessageModel) -> bool:
    return message.role == MessageRole.ASSISTANT.value and message.content == GENERIC_FAILURE_MESSAGE


def _to_content(message: MessageModel) -> dict:
    role = "user" if message.role == MessageRole.USER.value else "model"
    return {"role": role, "parts": [{"text": message.content}]}


def _transcript(messages: list[MessageModel]) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


class ChatService:
    """
    Shopping-assistant conversation, one per user.

    A turn: store the user message, build a bounded context (recent window
    plus a rolling summary), then ask the model, running the tools it
    requests, until it answers or the round limit is hit.
    """

    def __init__(
        self,
        db: Session,
        completion_client: CompletionClient | None = None,
        tool_registry: ToolRegistry | None = None,
        lock_service: LockService | None = None,
        context_window: int = CHAT_CONTEXT_WINDOW,
        max_tool_rounds: int = CHAT_MAX_TOOL_ROUNDS,
    ):
        self.repo = ConversationRepo(db)
        self.client = completion_client or CompletionClient()
        self.tools = tool_registry or ToolRegistry(db)
        self.lock_service = lock_service
        self.context_window = context_window
        self.max_tool_rounds = max_tool_rounds

    def get_or_create_conversation(self, user_id: int) -> ConversationModel:
        conversation = self.repo.get_by_user(user_id)
        if conversation:
            return conversation
        return self.repo.create(ConversationModel(user_id=user_id))

    def process_user_message(self, user_id: int, content: str) -> Dict[str, Any]:
        content = (content or "").strip()
        if not content:
            raise InvalidInput("Message cannot be empty")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise InvalidInput(f"Message is too long (max {MAX_MESSAGE_LENGTH} characters)")

        if self.lock_service is None:
            return self._process(user_id, content)

        token = secrets.token_hex(8)
        try:
            acquired = self.lock_service.acquire_conversation_lock(user_id, token)
        except RedisError as e:
            logger.error(f"Chat lock for user {user_id} unavailable: {e}")
            raise ExternalServiceError("Chat is temporarily unavailable")
        if not acquired:
            raise ConversationBusy()

        try:
            return self._process(user_id, content)
        finally:
            try:
                self.lock_service.release_conversation_lock(user_id, token)
            except RedisError as e:
                # the TTL frees it
                logger.warning(f"Chat lock release for user {user_id} failed: {e}")

    def _process(self, user_id: int, content: str) -> Dict[str, Any]:
        conversation = self.get_or_create_conversation(user_id)
        prior = self.repo.get_messages(conversation.id)

        #stored before any model call, a crash mid-call keeps the user's input
        user_message = self.repo.add_message(
            MessageModel(conversation_id=conversation.id, role=MessageRole.USER.value, content=content)
        )

        if not self.client.is_configured:
            logger.warning("Completion API key missing, answering offline")
            reply = (
                f'(Offline assistant) I received: "{content}". '
                "Configure GEMINI_API_KEY to enable product search and order lookups."
            )
        else:
            try:
                reply = self._run_model(conversation, prior, content, user_id)
            except ExternalServiceError as e:
                logger.error(f"Chat turn for user {user_id} failed: {e}")
                reply = GENERIC_FAILURE_MESSAGE

        if reply == GENERIC_FAILURE_MESSAGE:
            assistant_message = {
                "id": None,
                "role": MessageRole.ASSISTANT.value,
                "content": reply,
                "created_at": datetime.now(timezone.utc),
            }
        else:
            assistant_message = self.repo.add_message(
                MessageModel(conversation_id=conversation.id, role=MessageRole.ASSISTANT.value, content=reply)
            )

        return {"userMessage": user_message, "assistantMessage": assistant_message}

    def build_context(self, conversation: ConversationModel, prior: list[MessageModel]) -> tuple[list[dict], str | None]:
        """
        Returns (contents, summary). Short histories go out whole; longer ones
        as the last `context_window` messages plus the summary of the rest.
        """
        usable = [m for m in prior if not _is_failure(m)]

        if len(usable) <= self.context_window:
            return [_to_content(m) for m in usable], conversation.summary

        older = usable[: -self.context_window]
        recent = usable[-self.context_window:]
        summary = self._refresh_summary(conversation, older)
        return [_to_content(m) for m in recent], summary

    def _refresh_summary(self, conversation: ConversationModel, older: list[MessageModel]) -> str | None:
        covered = len(older)
        if conversation.summary and conversation.summarized_count == covered:
            return conversation.summary

        try:
            summary = self.client.summarize(_transcript(older))
        except ExternalServiceError as e:
            # stale summary beats a failed turn
            logger.warning(f"Summary refresh for conversation {conversation.id} failed: {e}")
            return conversation.summary

        self.repo.save_summary(conversation, summary, covered)
        logger.info(f"Conversation {conversation.id} summary now covers {covered} messages")
        return summary

    def _run_model(
        self,
        conversation: ConversationModel,
        prior: list[MessageModel],
        content: str,
        user_id: int,
    ) -> str:
        contents, summary = self.build_context(conversation, prior)
        contents.append({"role": "user", "parts": [{"text": content}]})

        system = SYSTEM_INSTRUCTION
        if summary:
            system = f"{SYSTEM_INSTRUCTION}\n\nSummary of the earlier conversation: {summary}"

        result = self.client.generate(contents, system_instruction=system, tools=self.tools.definitions)

        rounds = 0
        while result.function_calls:
            if rounds >= self.max_tool_rounds:
                logger.warning(f"Tool round limit ({self.max_tool_rounds}) reached for user {user_id}")
                return TOOL_LIMIT_MESSAGE

            rounds += 1
            logger.info(
                f"Round {rounds}: model requested {[c.name for c in result.function_calls]} for user {user_id}"
            )

            contents.append(result.content)
            contents.append({"role": "user", "parts": self.tools.execute_all(result.function_calls, user_id)})

            result = self.client.generate(contents, system_instruction=system, tools=self.tools.definitions)

        reply = result.text.strip()
        return reply or EMPTY_REPLY_MESSAGE

    def get_history(self, user_id: int) -> list[MessageModel]:
        conversation = self.repo.get_by_user(user_id)
        if not conversation:
            return []
        return self.repo.get_messages(conversation.id)

    def clear_history(self, user_id: int) -> None:
        conversation = self.repo.get_by_user(user_id)
        if conversation:
            self.repo.clear(conversation)
            logger.info(f"Conversation {conversation.id} cleared")
