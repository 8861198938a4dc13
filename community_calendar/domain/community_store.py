"""JSON-backed document store for community users, publications and related records.

The on-disk format is a single JSON object with one list per collection.
Writes go to a temporary file in the same directory and are moved into place,
so a crash never leaves a half-written store behind.
"""

from __future__ import annotations

import contextlib
import copy
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Optional

from ..calendar.models import CommunityUser, Listing, NewsItem, Publication

logger = logging.getLogger(__name__)

COLLECTIONS = ("users", "publications", "listings", "news", "profiles", "sessions", "accounts")


class CommunityStore:
    """Persistent store for the community portal's records.

    Users, publications, listings and news are held as pydantic models.
    Profiles, sessions and accounts are plain dicts keyed by ``user_id``;
    only their removal on user deletion matters here. When ``path`` is None
    the store lives in memory only.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._lock = threading.RLock()
        self._in_transaction = False
        self._users: dict[str, CommunityUser] = {}
        self._publications: dict[str, Publication] = {}
        self._listings: dict[str, Listing] = {}
        self._news: dict[str, NewsItem] = {}
        self._profiles: list[dict[str, Any]] = []
        self._sessions: list[dict[str, Any]] = []
        self._accounts: list[dict[str, Any]] = []

        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self.load()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def load(self) -> None:
        """Load the store from disk; a missing file means an empty store.

        Raises:
            ValueError: If the file exists but does not hold a JSON object
        """
        if self._path is None:
            return
        with self._lock:
            if not self._path.exists():
                logger.debug("Store file not found; starting empty: %s", self._path)
                return

            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
            if not isinstance(data, dict):
                raise ValueError(f"Store file {self._path} must contain a JSON object")  # noqa: TRY004

            self._users = {u["id"]: CommunityUser.model_validate(u) for u in data.get("users", [])}
            self._publications = {
                p["id"]: Publication.model_validate(p) for p in data.get("publications", [])
            }
            self._listings = {item["id"]: Listing.model_validate(item) for item in data.get("listings", [])}
            self._news = {item["id"]: NewsItem.model_validate(item) for item in data.get("news", [])}
            self._profiles = list(data.get("profiles", []))
            self._sessions = list(data.get("sessions", []))
            self._accounts = list(data.get("accounts", []))
            logger.debug(
                "Loaded store %s (%d users, %d publications)",
                self._path,
                len(self._users),
                len(self._publications),
            )

    def _snapshot(self) -> dict[str, Any]:
        return {
            "users": [u.model_dump(mode="json") for u in self._users.values()],
            "publications": [p.model_dump(mode="json") for p in self._publications.values()],
            "listings": [item.model_dump(mode="json") for item in self._listings.values()],
            "news": [item.model_dump(mode="json") for item in self._news.values()],
            "profiles": copy.deepcopy(self._profiles),
            "sessions": copy.deepcopy(self._sessions),
            "accounts": copy.deepcopy(self._accounts),
        }

    def _restore(self, snapshot: dict[str, Any]) -> None:
        self._users = {u["id"]: CommunityUser.model_validate(u) for u in snapshot["users"]}
        self._publications = {p["id"]: Publication.model_validate(p) for p in snapshot["publications"]}
        self._listings = {item["id"]: Listing.model_validate(item) for item in snapshot["listings"]}
        self._news = {item["id"]: NewsItem.model_validate(item) for item in snapshot["news"]}
        self._profiles = snapshot["profiles"]
        self._sessions = snapshot["sessions"]
        self._accounts = snapshot["accounts"]

    def _persist(self) -> None:
        """Write the store to disk atomically. Called with the lock held."""
        if self._path is None or self._in_transaction:
            return

        data = self._snapshot()
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(data, tf, ensure_ascii=False, indent=2)
                tf.flush()
                os.fsync(tf.fileno())
            tmp_path.replace(self._path)
        except OSError:
            logger.exception("Failed to persist store to %s", self._path)
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise

    @contextlib.contextmanager
    def transaction(self) -> Iterator[CommunityStore]:
        """Group several writes into one all-or-nothing unit.

        Collections are snapshotted on entry and restored if the block
        raises; on success the store is persisted once.
        """
        with self._lock:
            if self._in_transaction:
                # nested blocks join the outer transaction
                yield self
                return

            snapshot = self._snapshot()
            self._in_transaction = True
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                logger.debug("Transaction rolled back")
                raise
            finally:
                self._in_transaction = False
            self._persist()

    # Users

    def get_user(self, user_id: str) -> Optional[CommunityUser]:
        with self._lock:
            return self._users.get(user_id)

    def list_users(self) -> list[CommunityUser]:
        with self._lock:
            return list(self._users.values())

    def put_user(self, user: CommunityUser) -> CommunityUser:
        with self._lock:
            self._users[user.id] = user
            self._persist()
            return user

    # Publications

    def get_publication(self, publication_id: str) -> Optional[Publication]:
        with self._lock:
            return self._publications.get(publication_id)

    def list_publications(self) -> list[Publication]:
        with self._lock:
            return list(self._publications.values())

    def put_publication(self, publication: Publication) -> Publication:
        with self._lock:
            self._publications[publication.id] = publication
            self._persist()
            return publication

    def delete_publication(self, publication_id: str) -> bool:
        with self._lock:
            removed = self._publications.pop(publication_id, None) is not None
            if removed:
                self._persist()
            return removed

    # Listings and news

    def put_listing(self, listing: Listing) -> Listing:
        with self._lock:
            self._listings[listing.id] = listing
            self._persist()
            return listing

    def put_news(self, item: NewsItem) -> NewsItem:
        with self._lock:
            self._news[item.id] = item
            self._persist()
            return item

    # Auth-side records

    def add_profile(self, user_id: str, **fields: Any) -> None:
        with self._lock:
            self._profiles.append({"user_id": user_id, **fields})
            self._persist()

    def add_session(self, user_id: str, **fields: Any) -> None:
        with self._lock:
            self._sessions.append({"user_id": user_id, **fields})
            self._persist()

    def add_account(self, user_id: str, **fields: Any) -> None:
        with self._lock:
            self._accounts.append({"user_id": user_id, **fields})
            self._persist()

    def count_records(self, collection: str, user_id: str) -> int:
        """Number of profile, session or account rows belonging to ``user_id``."""
        with self._lock:
            rows = {"profiles": self._profiles, "sessions": self._sessions, "accounts": self._accounts}[collection]
            return sum(1 for row in rows if row.get("user_id") == user_id)

    # Dependency counts

    def count_publications_by_author(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for p in self._publications.values() if p.author_id == user_id)

    def count_listings_by_owner(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for item in self._listings.values() if item.user_id == user_id)

    def count_news_by_author(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for item in self._news.values() if item.author_id == user_id)

    def delete_user_records(self, user_ids: list[str]) -> int:
        """Remove users with their profiles, roles, sessions and accounts.

        Rows are removed in dependency order: profiles, roles, sessions,
        accounts, then the user rows themselves.

        Returns:
            Number of user rows removed.
        """
        targets = set(user_ids)
        with self._lock:
            self._profiles = [row for row in self._profiles if row.get("user_id") not in targets]
            for user_id in targets:
                user = self._users.get(user_id)
                if user is not None:
                    self._users[user_id] = user.model_copy(update={"roles": []})
            self._sessions = [row for row in self._sessions if row.get("user_id") not in targets]
            self._accounts = [row for row in self._accounts if row.get("user_id") not in targets]
            removed = 0
            for user_id in targets:
                if self._users.pop(user_id, None) is not None:
                    removed += 1
            self._persist()
            return removed
