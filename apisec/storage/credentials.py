"""
JSON fixture of test accounts.

The file always holds ``{"users": [...]}``. Writes go through a temp file
and ``os.replace`` so readers never see half a document, but there is no
lock: two processes saving at the same time can lose one of the updates.
"""

import json
import logging
import os
import random
import string
import tempfile
from pathlib import Path

from pydantic import ValidationError

from apisec.config import DEFAULT_PASSWORD, DEFAULT_USER, RANDOM_SUFFIX_LENGTH, USERS_FIXTURE
from apisec.models.credentials import TestUser

log = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def random_suffix(length: int = RANDOM_SUFFIX_LENGTH) -> str:
    return "".join(random.choices(_SUFFIX_ALPHABET, k=length))


def _same_account(entry, user: TestUser) -> bool:
    if not isinstance(entry, dict):
        return False
    if user.email and entry.get("email") == user.email:
        return True
    return bool(user.username) and entry.get("username") == user.username


class CredentialStore:
    """Load, save and mint test users backed by one JSON file."""

    def __init__(self, path: Path | str = USERS_FIXTURE) -> None:
        self.path = Path(path)

    # ── Reading ───────────────────────────────────────────────────────

    def _entries(self) -> list:
        """Raw ``users`` list as stored. Missing or corrupt files read as empty."""
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            log.warning("could not read %s: %s", self.path, e)
            return []

        entries = raw.get("users") if isinstance(raw, dict) else None
        if not isinstance(entries, list):
            log.warning("%s has no users list", self.path)
            return []
        return entries

    def load(self) -> list[TestUser]:
        """All stored users that validate; malformed entries are skipped."""
        users: list[TestUser] = []
        for entry in self._entries():
            try:
                users.append(TestUser.model_validate(entry))
            except ValidationError as e:
                log.debug("skipping malformed user entry %r: %s", entry, e)
        return users

    # ── Writing ───────────────────────────────────────────────────────

    def save(self, user: TestUser) -> bool:
        """Append *user* unless an entry with the same email or username exists.

        Existing entries are written back untouched, extra keys and entries
        that do not validate included. Returns True when the file was rewritten.
        """
        entries = self._entries()
        if any(_same_account(entry, user) for entry in entries):
            log.debug("user %s already stored", user.identity)
            return False
        entries.append(user.model_dump(exclude_none=True))
        self._write(entries)
        log.info("saved test user %s to %s", user.identity, self.path)
        return True

    def _write(self, entries: list) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        doc = {"users": entries}
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".users-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(doc, fh, indent=2)
                fh.write("\n")
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    # ── Minting ───────────────────────────────────────────────────────

    def create_random(self, prefix: str = "e2e", persist: bool = True) -> TestUser:
        suffix = random_suffix()
        user = TestUser(
            username=f"{prefix}{suffix}",
            email=f"{prefix}+{suffix}@example.com",
            password=DEFAULT_PASSWORD,
        )
        if persist:
            self.save(user)
        return user

    def find_or_create(self, prefix: str = "e2e") -> TestUser:
        users = self.load()
        if users:
            return users[0]
        return self.create_random(prefix, persist=True)

    # ── Lookup helpers ────────────────────────────────────────────────

    def _users_or_default(self) -> list[TestUser]:
        return self.load() or [TestUser.model_validate(DEFAULT_USER)]

    def get_user(self, index: int = 0) -> TestUser:
        """User at *index*, wrapping around the stored list."""
        users = self._users_or_default()
        return users[index % len(users)]

    def get_users(self, count: int) -> list[TestUser]:
        return [self.get_user(i) for i in range(count)]

    def get_random_user(self) -> TestUser:
        return random.choice(self._users_or_default())

    def get_user_with_username(self) -> TestUser:
        """First stored user that has a username, else the first user."""
        users = self._users_or_default()
        return next((u for u in users if u.username), users[0])
