from support_relay.services.bot_engine import (
    BotDecisionEngine,
    get_bot_engine,
    match_keyword,
)
from support_relay.services.conversation_store import (
    ConversationStore,
    NotFoundError,
    user_lock,
)
from support_relay.services.ingest_service import IngestOutcome, ingest
from support_relay.services.result import Result
