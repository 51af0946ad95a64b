"""Rule-based auto-responder with a per-user silence window.

The bot answers from a fixed keyword table. When nothing in the table
matches, it tells the user a human agent is coming and stays quiet for that
user until the silence window expires.
"""

import threading
from datetime import timedelta
from typing import Optional

from support_relay.config import settings
from support_relay.logging_config import get_logger
from support_relay.services.mute_store import Clock, MuteStore, build_mute_store, utcnow

logger = get_logger("bot_engine")

DEFAULT_SILENCE_MINUTES = 30

# Order matters: the first keyword found in the text wins.
KEYWORD_RESPONSES: tuple[tuple[str, str], ...] = (
    ("hello", "Hello! Welcome to Cortex AI, How may I assist you today?"),
    ("hi", "Hi there! How may I assist you?"),
    (
        "help",
        "I can help you with:\n1. Account Status\n2. KYC \n3. Deposit&Withdrawals\n"
        "4. Technical support\nWhat would you like to know?",
    ),
    ("bye", "Thank you for chatting with us. Have a great day!"),
    ("thanks", "You're welcome! Is there anything else I can help you with?"),
)

MSG_ESCALATION = (
    "You're in the queue. Please wait patiently while we connect you with a live "
    "customer care agent. We appreciate your patience."
)
MSG_FILE_RECEIVED = "Hello! I received your file successfully. Thank you for sharing it"
MSG_BOT_ERROR = "Sorry, I encountered an error. Please try again."


def match_keyword(text: Optional[str]) -> Optional[str]:
    """Return the canned response for the first keyword contained in text."""
    lowered = (text or "").lower()
    for keyword, response in KEYWORD_RESPONSES:
        if keyword in lowered:
            return response
    return None


class BotDecisionEngine:
    def __init__(
        self,
        mute_store: MuteStore,
        clock: Clock = utcnow,
        silence_minutes: int = DEFAULT_SILENCE_MINUTES,
    ):
        self.mute_store = mute_store
        self.clock = clock
        self.silence_window = timedelta(minutes=silence_minutes)

    def silence(self, user_id: str) -> None:
        until = self.clock() + self.silence_window
        self.mute_store.set(user_id, until)
        logger.info(
            "Bot silenced",
            extra={"context": {"user_id": user_id, "silenced_until": until.isoformat()}},
        )

    def is_silenced(self, user_id: str) -> bool:
        """Check the silence window, clearing it once it has expired."""
        until = self.mute_store.get(user_id)
        if until is None:
            return False
        if self.clock() < until:
            return True
        self.mute_store.clear(user_id)
        return False

    def classify(self, user_id: str, text: Optional[str]) -> str:
        response = match_keyword(text)
        if response is not None:
            return response
        self.silence(user_id)
        return MSG_ESCALATION

    def decide(self, user_id: str, text: Optional[str], has_attachment: bool = False) -> Optional[str]:
        """
        Pick the bot reply for a user message that has already been stored.

        Returns None while the user is silenced: no bot message may be
        persisted or broadcast in that case.
        """
        if self.is_silenced(user_id):
            return None
        if has_attachment:
            return MSG_FILE_RECEIVED
        return self.classify(user_id, text)


_bot_engine: Optional[BotDecisionEngine] = None
_bot_engine_lock = threading.Lock()


def get_bot_engine() -> BotDecisionEngine:
    """Get or create the process-wide bot engine."""
    global _bot_engine
    if _bot_engine is None:
        with _bot_engine_lock:
            if _bot_engine is None:
                _bot_engine = BotDecisionEngine(
                    build_mute_store(settings),
                    silence_minutes=settings.bot_silence_minutes,
                )
    return _bot_engine
