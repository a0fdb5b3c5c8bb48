# backend/clear_conversation.py

import sys
import asyncio
import logging

from flowbot.config.settings import settings
from flowbot.errors import PersistenceError
from flowbot.models.message import ConversationKey
from flowbot.utils.lifecycle import build_memory_store

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def clear_conversation(plugin: str, user_id: str) -> bool:
    """
    Wipes one conversation's memory (flow progress and saved values) from the
    configured memory backend. Returns False if the backend could not be reached.
    """
    store = build_memory_store(settings)
    conversation = ConversationKey(plugin=plugin, user_id=user_id)
    logger.info(f"Using '{store.backend}' memory backend.")

    try:
        await store.ping()
        before = await store.load(conversation)
        if not before:
            logger.info(f"Conversation '{conversation.storage_id}' has no memory. No action needed.")
            return True
        await store.clear(conversation)
        logger.info(f"Cleared {len(before)} keys for conversation '{conversation.storage_id}'.")
        return True
    except PersistenceError as e:
        logger.error(f"Could not clear conversation '{conversation.storage_id}': {e.message}")
        logger.error("Please check that the memory backend is running and reachable.")
        return False
    finally:
        await store.close()


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: python clear_conversation.py <plugin> <user_id>")
        sys.exit(2)
    ok = asyncio.run(clear_conversation(sys.argv[1], sys.argv[2]))
    sys.exit(0 if ok else 1)
