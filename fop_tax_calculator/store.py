"""Per-user document persistence for profiles, incomes and advisor chats."""

import os
import re
from base64 import b64decode, b64encode
from pathlib import Path
from typing import Any

import yaml

from fop_tax_calculator.config import Chat, Income, UserProfile
from fop_tax_calculator.errors import NotAuthenticatedError

_SAFE_KEY = re.compile(r"[A-Za-z0-9_-]+")


class DocumentStore:
    """Singleton class for per-user documents and data directory management."""

    _dir_env_var_name = "FOP_TAX_CALCULATOR_DATA_DIR"
    _dir_mode = 0o700
    _file_mode = 0o600

    @classmethod
    def data_dir(cls) -> Path:
        """Return path to persisted documents directory."""
        if path := os.environ.get(cls._dir_env_var_name):
            return Path(path).expanduser()
        return Path.home() / ".fop-tax-calculator"

    @classmethod
    def get_profile(cls, user_id: str | None) -> UserProfile:
        """Return stored profile, creating the default one on first access."""
        if not user_id:
            return UserProfile()
        path = cls._user_dir(user_id) / "profile.yaml"
        if not path.is_file():
            profile = UserProfile()
            cls._write_entry(path, profile.to_entry_data())
            return profile
        return UserProfile.from_entry_data(cls._read_entry(path))

    @classmethod
    def save_profile(cls, user_id: str | None, profile: UserProfile) -> None:
        """Merge profile fields into the stored profile document."""
        user_id = cls._require_user(user_id)
        path = cls._user_dir(user_id) / "profile.yaml"
        payload = cls._read_entry(path) if path.is_file() else {}
        payload.update(profile.to_entry_data())
        cls._write_entry(path, payload)

    @classmethod
    def get_incomes(cls, user_id: str | None) -> list[Income]:
        """Return all income records of the user."""
        if not user_id:
            return []
        return [Income.from_entry_data(x) for x in cls._read_collection(user_id, "incomes")]

    @classmethod
    def add_income(cls, user_id: str | None, income: Income) -> None:
        """Persist one income record under its id."""
        user_id = cls._require_user(user_id)
        path = cls._collection_dir(user_id, "incomes") / f"{cls._safe_key(income.id)}.yaml"
        cls._write_entry(path, income.to_entry_data())

    @classmethod
    def delete_income(cls, user_id: str | None, income_id: str) -> None:
        """Delete income record by id; missing records are ignored."""
        user_id = cls._require_user(user_id)
        path = cls._collection_dir(user_id, "incomes") / f"{cls._safe_key(income_id)}.yaml"
        path.unlink(missing_ok=True)

    @classmethod
    def update_income(cls, user_id: str | None, income: Income) -> None:
        """Replace income record by deleting and recreating it under the same id."""
        cls.delete_income(user_id, income.id)
        cls.add_income(user_id, income)

    @classmethod
    def get_chats(cls, user_id: str | None) -> list[Chat]:
        """Return advisor chats, newest first."""
        if not user_id:
            return []
        chats = [Chat.from_entry_data(x) for x in cls._read_collection(user_id, "chats")]
        return sorted(chats, key=lambda chat: chat.timestamp, reverse=True)

    @classmethod
    def save_chat(cls, user_id: str | None, chat: Chat) -> None:
        """Create or update chat document by chat id."""
        user_id = cls._require_user(user_id)
        path = cls._collection_dir(user_id, "chats") / f"{cls._safe_key(chat.id)}.yaml"
        cls._write_entry(path, chat.to_entry_data())

    @classmethod
    def delete_chat(cls, user_id: str | None, chat_id: str) -> None:
        """Delete chat document by id; missing chats are ignored."""
        user_id = cls._require_user(user_id)
        path = cls._collection_dir(user_id, "chats") / f"{cls._safe_key(chat_id)}.yaml"
        path.unlink(missing_ok=True)

    @staticmethod
    def _require_user(user_id: str | None) -> str:
        """Return user id or raise when no identity is resolved."""
        if not user_id:
            raise NotAuthenticatedError()
        return user_id

    @staticmethod
    def _safe_key(key: str) -> str:
        """Return key usable as a file or directory name."""
        if not _SAFE_KEY.fullmatch(key):
            raise ValueError(f"Invalid document key: {key!r}")
        return key

    @classmethod
    def _user_dir(cls, user_id: str) -> Path:
        """Return document directory of one user."""
        return cls.data_dir() / cls._safe_key(user_id)

    @classmethod
    def _collection_dir(cls, user_id: str, collection: str) -> Path:
        """Return directory of one user collection."""
        return cls._user_dir(user_id) / collection

    @classmethod
    def _read_collection(cls, user_id: str, collection: str) -> list[dict[str, Any]]:
        """Read all documents of one collection in creation order."""
        collection_dir = cls._collection_dir(user_id, collection)
        if not collection_dir.is_dir():
            return []
        paths = sorted(collection_dir.glob("*.yaml"), key=lambda x: x.stat().st_mtime_ns)
        return [cls._read_entry(path) for path in paths]

    @staticmethod
    def _read_entry(path: Path) -> dict[str, Any]:
        """Decode one persisted document payload."""
        encoded = path.read_text(encoding="utf-8").strip()
        decoded = b64decode(encoded.encode("ascii"), validate=True).decode("utf-8")
        return dict(yaml.safe_load(decoded) or {})

    @classmethod
    def _write_entry(cls, path: Path, payload: dict[str, Any]) -> None:
        """Persist one document payload with private file modes."""
        data_dir = cls.data_dir()
        path.parent.mkdir(parents=True, exist_ok=True, mode=cls._dir_mode)
        for directory in (path.parent, *path.parent.parents):
            if directory != data_dir and data_dir not in directory.parents:
                break
            directory.chmod(cls._dir_mode)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, cls._file_mode)
        with os.fdopen(fd, "w", encoding="utf-8") as stream:
            decoded = yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)
            encoded = b64encode(decoded.encode("utf-8")).decode("ascii")
            stream.write(encoded)
        path.chmod(cls._file_mode)
