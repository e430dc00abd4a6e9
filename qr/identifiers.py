# qr/identifiers.py

import logging
import secrets
from typing import Any, Callable, Dict, Optional

from pymongo.errors import DuplicateKeyError

from core.config import CODE_ID_BYTES, MAX_CODE_ID_ATTEMPTS
from core.exceptions import IdentifierExhaustedError

logger = logging.getLogger(__name__)

def generate_code_id(nbytes: Optional[int] = None) -> str:
    """
    Returns a fresh, unguessable, URL-safe code identifier.
    Drawn from the OS CSPRNG; nothing about it is sequential.
    """
    return secrets.token_urlsafe(nbytes or CODE_ID_BYTES)

async def insert_with_unique_code_id(
    collection,
    build_document: Callable[[str], Dict[str, Any]],
    max_attempts: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Inserts the document built for a newly minted code_id and returns it with `_id` set.

    The unique index on code_id is the arbiter: a collision surfaces as DuplicateKeyError,
    in which case a new identifier is drawn. Existing records are never touched.
    `build_document` is called once per attempt so fields derived from the identifier
    (image URL, scan URL) always match the code_id that is finally stored.
    """
    attempts = max_attempts or MAX_CODE_ID_ATTEMPTS
    for attempt in range(1, attempts + 1):
        code_id = generate_code_id()
        candidate = build_document(code_id)
        candidate["code_id"] = code_id
        try:
            result = await collection.insert_one(candidate)
        except DuplicateKeyError:
            logger.warning("Code identifier collision on attempt %d/%d, drawing a new one", attempt, attempts)
            continue
        candidate["_id"] = result.inserted_id
        return candidate
    logger.error("Gave up allocating a code identifier after %d attempts", attempts)
    raise IdentifierExhaustedError(attempts)
