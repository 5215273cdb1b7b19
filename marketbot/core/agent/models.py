"""
Conversation session and response models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from marketbot.core.agent.intents import Intent
from marketbot.core.agent.states import AgentState, coerce_state


def utcnow() -> datetime:
    return datetime.utcnow()


@dataclass
class ChatTurn:
    """Single message in the session history."""
    role: str                   # user / assistant
    content: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChatTurn":
        timestamp = data.get("timestamp")
        return cls(
            role=data.get("role", "user"),
            content=data.get("content", ""),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else utcnow(),
        )


@dataclass
class ConversationSession:
    """Per-user conversation state."""
    user_id: str
    state: Union[AgentState, str] = AgentState.INITIAL
    context: dict[str, Any] = field(default_factory=dict)
    history: list[ChatTurn] = field(default_factory=list)
    last_interaction: datetime = field(default_factory=utcnow)

    def add_turn(self, role: str, content: str, limit: int) -> None:
        """Append a turn, evicting the oldest beyond `limit`."""
        self.history.append(ChatTurn(role=role, content=content))
        if len(self.history) > limit:
            del self.history[: len(self.history) - limit]
        self.last_interaction = utcnow()

    def merge_entities(self, entities: dict[str, Any]) -> None:
        """Carry extracted entities into the context; later values win."""
        for key, value in entities.items():
            if value is None or value == "":
                continue
            # product_id is a per-turn reference, selection is explicit
            if key == "product_id":
                continue
            self.context[key] = value

    def clear_context(self) -> None:
        self.context.clear()

    @property
    def state_value(self) -> str:
        return self.state.value if isinstance(self.state, AgentState) else str(self.state)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "state": self.state_value,
            "context": dict(self.context),
            "history": [turn.to_dict() for turn in self.history],
            "last_interaction": self.last_interaction.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationSession":
        last_interaction = data.get("last_interaction")
        return cls(
            user_id=str(data["user_id"]),
            state=coerce_state(data.get("state", AgentState.INITIAL.value)),
            context=dict(data.get("context") or {}),
            history=[ChatTurn.from_dict(turn) for turn in data.get("history") or []],
            last_interaction=(
                datetime.fromisoformat(last_interaction) if last_interaction else utcnow()
            ),
        )


@dataclass
class Response:
    """Reply produced for one inbound message."""
    text: str
    actions: list[str] = field(default_factory=list)
    state: Optional[str] = None
    intent: Optional[str] = None
    entities: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)

    def with_turn(
        self,
        state: Union[AgentState, str],
        intent: Optional[Intent],
        entities: dict[str, Any],
    ) -> "Response":
        """Stamp the state, intent and entities of the turn."""
        self.state = state.value if isinstance(state, AgentState) else str(state)
        self.intent = intent.value if intent else None
        self.entities = dict(entities)
        return self

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "actions": list(self.actions),
            "state": self.state,
            "intent": self.intent,
            "entities": dict(self.entities),
        }
