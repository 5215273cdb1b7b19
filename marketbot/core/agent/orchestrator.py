"""
Conversation orchestrator.
One inbound message -> one Response: extract (AI first when enabled),
resolve the transition, render and persist the session.
"""

import logging
from typing import Any, Optional

from marketbot.config import settings
from marketbot.core.agent.ai import AIExtractor
from marketbot.core.agent.entities import extract
from marketbot.core.agent.intents import Intent
from marketbot.core.agent.models import ConversationSession, Response
from marketbot.core.agent.responses import BTN_HELP, BTN_TRY_AGAIN, ResponseGenerator
from marketbot.core.agent.states import AgentState, ResponseType, resolve
from marketbot.core.commands import CommandRouter
from marketbot.core.errors import AIExtractionError
from marketbot.core.sessions import SessionManager

logger = logging.getLogger(__name__)

# Generic texts an AI reply may replace
AI_REPLACEABLE = {ResponseType.HELP, ResponseType.WELCOME, ResponseType.MENU}

FAILURE_TEXT = "Sorry, something went wrong on our side. Please try again."


class Orchestrator:
    """Drives the marketplace conversation state machine."""

    def __init__(
        self,
        sessions: SessionManager[ConversationSession],
        generator: ResponseGenerator,
        ai_extractor: Optional[AIExtractor] = None,
        commands: Optional[CommandRouter] = None,
        command_prefix: Optional[str] = None,
        history_limit: Optional[int] = None,
    ):
        self.sessions = sessions
        self.generator = generator
        self.ai_extractor = ai_extractor
        self.commands = commands
        self.command_prefix = command_prefix or settings.command_prefix
        self.history_limit = history_limit or settings.history_limit

    async def process(self, user_id: str, message: str) -> Response:
        """
        Handle one inbound message.

        Args:
            user_id: Chat user id
            message: Raw text

        Returns:
            Response (text, actions, state, intent, entities)
        """
        user_id = str(user_id)
        message = (message or "").strip()

        if self.commands and message.startswith(self.command_prefix):
            replies: list[str] = []

            async def reply(text: str) -> None:
                replies.append(text)

            try:
                handled = await self.commands.route(message, user_id, reply)
            except Exception as e:
                logger.error(f"Command failed for user {user_id}: {e}", exc_info=True)
                return Response(text=FAILURE_TEXT, actions=[BTN_TRY_AGAIN, BTN_HELP])
            if handled:
                return Response(text="\n\n".join(replies))

        async with self.sessions.lock(user_id):
            try:
                return await self._turn(user_id, message)
            except Exception as e:
                # Session is not persisted: the failed turn leaves no trace
                logger.error(f"Turn failed for user {user_id}: {e}", exc_info=True)
                return Response(text=FAILURE_TEXT, actions=[BTN_TRY_AGAIN, BTN_HELP])

    async def _extract(
        self, message: str, session: ConversationSession
    ) -> tuple[Intent, dict[str, Any], Optional[str]]:
        if self.ai_extractor is not None:
            try:
                result = await self.ai_extractor.extract(message, session)
                return result.intent, result.entities, result.reply
            except AIExtractionError as e:
                logger.warning(f"AI extraction failed, using rules: {e}")

        result = extract(message)
        return result.intent or Intent.HELP, result.entities, None

    def _resolve_product_ref(self, session: ConversationSession, entities: dict[str, Any]) -> None:
        """Map a position in the last result list ("2", "#2") to the listing id."""
        ref = entities.get("product_id")
        result_ids = session.context.get("last_result_ids") or []
        if ref and str(ref).isdigit() and 1 <= int(ref) <= len(result_ids):
            entities["product_id"] = result_ids[int(ref) - 1]

    def _rating_reply(
        self, session: ConversationSession, message: str, intent: Intent, entities: dict[str, Any]
    ) -> Intent:
        """A bare 1-5 answer to the rating prompt is a star count, not a listing."""
        if session.state is not AgentState.RATING or "rating" in entities:
            return intent
        if message.isdigit() and 1 <= int(message) <= 5:
            entities.pop("product_id", None)
            entities["rating"] = int(message)
            return Intent.SUBMIT_RATING
        return intent

    async def _turn(self, user_id: str, message: str) -> Response:
        session = await self.sessions.load(user_id)
        session.add_turn("user", message, self.history_limit)

        intent, entities, ai_reply = await self._extract(message, session)
        intent = self._rating_reply(session, message, intent, entities)
        self._resolve_product_ref(session, entities)

        previous_state = session.state
        transition = resolve(session.state, intent, entities)

        if transition.clear_context:
            session.clear_context()
        else:
            session.merge_entities(entities)
        if transition.selects_product:
            session.context["active_product_id"] = entities["product_id"]
            session.context.pop("checkout_info", None)

        context = dict(session.context)
        context["user_id"] = user_id
        if "rating" in entities:
            context["rating"] = entities["rating"]

        response = await self.generator.generate(transition.response, context)

        if ai_reply and transition.response in AI_REPLACEABLE:
            response.text = ai_reply

        if "result_ids" in response.data:
            session.context["last_result_ids"] = response.data["result_ids"]
        if "checkout_info" in response.data:
            session.context["checkout_info"] = response.data["checkout_info"]

        session.state = transition.next_state
        session.add_turn("assistant", response.text, self.history_limit)
        await self.sessions.save(session)

        if previous_state != session.state:
            logger.info(
                f"User {user_id}: {getattr(previous_state, 'value', previous_state)} "
                f"-[{intent.value}]-> {session.state_value}"
            )
        return response.with_turn(session.state, intent, entities)

    async def request_rating(self, user_id: str, product_id: str) -> Response:
        """Move a user into RATING for a completed purchase and return the prompt."""
        user_id = str(user_id)
        async with self.sessions.lock(user_id):
            session = await self.sessions.load(user_id)
            session.context["active_product_id"] = str(product_id)
            session.state = AgentState.RATING
            response = await self.generator.generate(ResponseType.RATING_PROMPT, session.context)
            session.add_turn("assistant", response.text, self.history_limit)
            await self.sessions.save(session)

        logger.info(f"User {user_id}: asked to rate listing {product_id}")
        return response.with_turn(session.state, None, {})

    async def reset(self, user_id: str) -> None:
        """Forget the conversation of a user."""
        user_id = str(user_id)
        async with self.sessions.lock(user_id):
            await self.sessions.delete(user_id)

    async def get_session(self, user_id: str) -> ConversationSession:
        user_id = str(user_id)
        async with self.sessions.lock(user_id):
            return await self.sessions.load(user_id)

    async def sweep_expired(self) -> int:
        return await self.sessions.sweep_expired()
