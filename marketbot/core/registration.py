"""
Group registration flow.
Secondary state machine walking an admin through name -> invite link ->
category before the group is stored for marketplace monitoring.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from html import escape
from typing import Optional

from marketbot.config import settings
from marketbot.core.agent.models import Response, utcnow
from marketbot.core.errors import MarketbotError
from marketbot.core.marketplace import MarketplaceStore
from marketbot.core.sessions import SessionManager

logger = logging.getLogger(__name__)


class RegistrationState(str, Enum):
    """Registration steps."""
    IDLE = "idle"
    AWAITING_GROUP_NAME = "awaiting_group_name"
    AWAITING_INVITE_LINK = "awaiting_invite_link"
    AWAITING_CATEGORY = "awaiting_category"


@dataclass
class RegistrationSession:
    """Per-user registration progress."""
    user_id: str
    state: RegistrationState = RegistrationState.IDLE
    group_name: Optional[str] = None
    invite_code: Optional[str] = None
    category: Optional[str] = None
    last_interaction: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "state": self.state.value,
            "group_name": self.group_name,
            "invite_code": self.invite_code,
            "category": self.category,
            "last_interaction": self.last_interaction.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RegistrationSession":
        return cls(
            user_id=str(data["user_id"]),
            state=RegistrationState(data.get("state", RegistrationState.IDLE.value)),
            group_name=data.get("group_name"),
            invite_code=data.get("invite_code"),
            category=data.get("category"),
            last_interaction=datetime.fromisoformat(data["last_interaction"]),
        )


INVITE_LINK_PATTERNS = (
    re.compile(r"chat\.whatsapp\.com/([A-Za-z0-9_-]+)"),   # shareable link
    re.compile(r"^([A-Za-z0-9_-]{22})$"),                  # bare token
)

# keyword -> category slug, checked in order
CATEGORY_SYNONYMS = (
    (("electronics", "electronic", "phones", "gadgets"), "electronics"),
    (("fashion", "clothes", "clothing", "shoes"), "fashion"),
    (("real estate", "property", "housing", "land"), "real_estate"),
    (("vehicles", "vehicle", "cars", "motorbikes"), "vehicles"),
    (("general", "everything", "misc"), "general"),
)

START_PATTERN = re.compile(r"\bregister group\b|^register$")

BTN_CANCEL = "Cancel"
BTN_SEARCH = "🔍 Search Products"
BTN_REGISTER = "📋 Register Group"
BTN_HELP = "❓ Help"
CATEGORY_BUTTONS = ["📱 Electronics", "👕 Fashion", "🏠 Real Estate", "🚗 Vehicles", "📦 General", BTN_CANCEL]


def extract_invite_code(text: str) -> Optional[str]:
    """Invite code from a shareable link or a bare 22-character token."""
    text = (text or "").strip()
    for pattern in INVITE_LINK_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def slugify(text: str) -> str:
    slug = re.sub(r"\W+", "_", text.strip().lower()).strip("_")
    return slug or "general"


def map_category(text: str) -> str:
    """Canonical slug for known synonyms, slugified free text otherwise."""
    lowered = text.lower()
    for keywords, slug in CATEGORY_SYNONYMS:
        if any(keyword in lowered for keyword in keywords):
            return slug
    return slugify(text)


class RegistrationFlow:
    """Handles registration turns; returns None for messages it does not own."""

    def __init__(self, store: MarketplaceStore, sessions: SessionManager[RegistrationSession]):
        self.store = store
        self.sessions = sessions

    async def process_group_command(self, user_id: str, message: str) -> Optional[Response]:
        """
        Process a possible registration message.

        Args:
            user_id: Chat user id
            message: Raw text

        Returns:
            Response, or None when this is not a registration turn
        """
        user_id = str(user_id)
        async with self.sessions.lock(user_id):
            session = await self.sessions.load(user_id)
            response = await self._step(session, (message or "").strip())
            if response is None:
                return None

            session.last_interaction = utcnow()
            if session.state is RegistrationState.IDLE:
                await self.sessions.delete(user_id)
            else:
                await self.sessions.save(session)
            response.state = session.state.value
            return response

    @staticmethod
    def _reset(session: RegistrationSession) -> None:
        session.state = RegistrationState.IDLE
        session.group_name = None
        session.invite_code = None
        session.category = None

    async def _step(self, session: RegistrationSession, message: str) -> Optional[Response]:
        lowered = message.lower()

        if lowered == "cancel" and session.state is not RegistrationState.IDLE:
            self._reset(session)
            logger.info(f"User {session.user_id} cancelled group registration")
            return Response(
                text="Group registration cancelled. How else can I help you today?",
                actions=[BTN_SEARCH, BTN_REGISTER, BTN_HELP],
            )

        if START_PATTERN.search(lowered):
            self._reset(session)
            session.state = RegistrationState.AWAITING_GROUP_NAME
            return Response(
                text=(
                    "Let's register your group for marketplace monitoring! 📋\n\n"
                    "What's the name of your group?\n\n"
                    "Type 'cancel' at any time to stop the registration process."
                ),
                actions=[BTN_CANCEL],
            )

        if session.state is RegistrationState.AWAITING_GROUP_NAME:
            if not message:
                return Response(text="Please send the name of your group.", actions=[BTN_CANCEL])
            session.group_name = message
            session.state = RegistrationState.AWAITING_INVITE_LINK
            return Response(
                text=(
                    f'Great! Now please send me the invite link for your group "{escape(message)}".\n\n'
                    "You can get this by:\n"
                    "1. Opening your group\n"
                    "2. Tapping the group name at the top\n"
                    "3. Choosing 'Invite to Group via Link'\n"
                    "4. Copying and sending the link here"
                ),
                actions=[BTN_CANCEL],
            )

        if session.state is RegistrationState.AWAITING_INVITE_LINK:
            return await self._accept_invite_link(session, message)

        if session.state is RegistrationState.AWAITING_CATEGORY:
            return await self._accept_category(session, message)

        return None

    async def _accept_invite_link(self, session: RegistrationSession, message: str) -> Response:
        invite_code = extract_invite_code(message)
        if invite_code is None:
            return Response(
                text=(
                    "That doesn't look like a valid group invite link. Please send a link in the "
                    "format 'https://chat.whatsapp.com/ABCDEF123456'."
                ),
                actions=[BTN_CANCEL],
            )

        try:
            registered = await self.store.is_group_registered(invite_code)
        except MarketbotError as e:
            logger.error(f"Invite lookup failed for {invite_code}: {e}", exc_info=True)
            return Response(
                text="❌ Sorry, I couldn't check that link right now. Please send it again in a moment.",
                actions=[BTN_CANCEL],
            )

        if registered:
            self._reset(session)
            return Response(
                text="This group is already registered for marketplace monitoring! No need to register it again.",
                actions=[BTN_SEARCH, BTN_HELP],
            )

        session.invite_code = invite_code
        session.state = RegistrationState.AWAITING_CATEGORY
        return Response(
            text="Perfect! Now please select a category for your marketplace group:",
            actions=list(CATEGORY_BUTTONS),
        )

    async def _accept_category(self, session: RegistrationSession, message: str) -> Response:
        category = map_category(message)
        group_name = session.group_name or ""
        invite_code = session.invite_code or ""
        self._reset(session)

        try:
            await self.store.register_group(invite_code, group_name, category, session.user_id)
        except MarketbotError as e:
            logger.error(f"Group registration failed for {invite_code}: {e}", exc_info=True)
            return Response(
                text="❌ Sorry, there was an error registering your group. Please try again later.",
                actions=[BTN_SEARCH, BTN_REGISTER, BTN_HELP],
            )

        setup_url = f"{settings.website_url.rstrip('/')}/setup-guide.html"
        return Response(
            text=(
                f'✅ Success! Your group "{escape(group_name)}" has been registered as a '
                f"{escape(category)} marketplace.\n\n"
                "<b>Important next step:</b>\n"
                "Link the bot to your group so it can monitor new listings.\n\n"
                f"Follow the setup guide: {setup_url}"
            ),
            actions=[BTN_SEARCH, BTN_HELP],
        )
