from __future__ import annotations

import logging
from typing import Optional

import pydantic
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from reivun_bot.errors import ValidationError
from reivun_bot.storage.db import KeyValueEntry
from reivun_bot.types import Credentials

logger = logging.getLogger("reivun_bot.storage")

CREDENTIALS_KEY = "credentials"


class CredentialStore:
    """Single-record credential persistence on top of the local key/value table.

    `save` always overwrites. `load` treats a payload that no longer parses as
    never saved, so a damaged row cannot block a fresh `save`.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._sessions = async_sessionmaker(bind=engine, expire_on_commit=False)

    @staticmethod
    def validate(credentials: Credentials) -> None:
        missing = credentials.missing_fields()
        if missing:
            raise ValidationError(missing)

    async def save(self, credentials: Credentials) -> None:
        payload = credentials.model_dump_json(by_alias=True)
        async with self._sessions() as session:
            entry = await session.get(KeyValueEntry, CREDENTIALS_KEY)
            if entry is None:
                entry = KeyValueEntry(key=CREDENTIALS_KEY, value=payload)
            else:
                entry.value = payload
            session.add(entry)
            await session.commit()
        logger.info("credentials_saved")

    async def load(self) -> Optional[Credentials]:
        async with self._sessions() as session:
            entry = await session.get(KeyValueEntry, CREDENTIALS_KEY)
        if entry is None:
            return None
        try:
            return Credentials.model_validate_json(entry.value)
        except pydantic.ValidationError:
            logger.warning("credentials_corrupt")
            return None
