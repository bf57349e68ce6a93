__all__ = ["CredentialStore", "KeyValueEntry", "create_engine", "init_db"]

from reivun_bot.storage.credentials import CredentialStore
from reivun_bot.storage.db import KeyValueEntry, create_engine, init_db
