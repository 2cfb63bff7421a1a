"""Entity resolution - maps free-text dealer and user names to directory ids."""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session
from structlog import get_logger

from report_ingest.database.models import User, VerifiedDealer
from report_ingest.reports.normalization import name_tokens, normalize

logger = get_logger()

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DealerEntry:
    id: int
    dealer_party_name: Optional[str] = None
    dealer_code: Optional[str] = None
    zone: Optional[str] = None


@dataclass(frozen=True)
class UserEntry:
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class DirectoryReader(Protocol):
    """Source of the dealer and user directories."""

    def load_dealers(self) -> List[DealerEntry]:
        ...

    def load_users(self) -> List[UserEntry]:
        ...


class SqlDirectoryReader:
    """Reads the directories from the verified_dealers and users tables."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def load_dealers(self) -> List[DealerEntry]:
        with self.session_factory() as session:
            rows = session.execute(
                select(
                    VerifiedDealer.id,
                    VerifiedDealer.dealer_party_name,
                    VerifiedDealer.dealer_code,
                    VerifiedDealer.zone
                )
            ).all()
        return [DealerEntry(*row) for row in rows]

    def load_users(self) -> List[UserEntry]:
        with self.session_factory() as session:
            rows = session.execute(select(User.id, User.first_name, User.last_name)).all()
        return [UserEntry(*row) for row in rows]


@dataclass(frozen=True)
class UserKey:
    id: int
    strict_name: str
    tokens: Tuple[str, ...]


@dataclass(frozen=True)
class DirectorySnapshot:
    """Immutable lookup tables built from one directory read."""
    dealer_map: Dict[str, int] = field(default_factory=dict)
    user_map: Dict[str, int] = field(default_factory=dict)
    users: Tuple[UserKey, ...] = ()
    loaded_at: Optional[datetime] = None

    @classmethod
    def build(cls, dealers: List[DealerEntry], users: List[UserEntry], loaded_at: datetime) -> "DirectorySnapshot":
        dealer_map: Dict[str, int] = {}
        for dealer in sorted(dealers, key=lambda d: d.id):
            for raw in (dealer.dealer_party_name, dealer.dealer_code):
                key = normalize(raw)
                if key:
                    dealer_map.setdefault(key, dealer.id)

        user_keys = []
        user_map: Dict[str, int] = {}
        for user in sorted(users, key=lambda u: u.id):
            strict = normalize(user.full_name)
            if not strict:
                continue
            user_map.setdefault(strict, user.id)
            user_keys.append(UserKey(id=user.id, strict_name=strict, tokens=tuple(name_tokens(user.full_name))))

        return cls(dealer_map=dealer_map, user_map=user_map, users=tuple(user_keys), loaded_at=loaded_at)


class EntityResolutionCache:
    """
    TTL cache over the dealer and user directories.

    A refresh re-reads both directories and replaces the whole snapshot with a
    single reference assignment, so readers never observe a half-built map.
    """

    def __init__(
        self,
        reader: DirectoryReader,
        ttl: timedelta = timedelta(seconds=300),
        clock: Clock = utc_now
    ):
        self.reader = reader
        self.ttl = ttl
        self.clock = clock
        self._snapshot = DirectorySnapshot()
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> DirectorySnapshot:
        return self._snapshot

    def _is_stale(self, snapshot: DirectorySnapshot) -> bool:
        return snapshot.loaded_at is None or self.clock() - snapshot.loaded_at >= self.ttl

    def refresh(self, force: bool = False) -> DirectorySnapshot:
        """Reload the directories when the snapshot is stale (or when forced)."""
        with self._lock:
            if not force and not self._is_stale(self._snapshot):
                return self._snapshot

            dealers = self.reader.load_dealers()
            users = self.reader.load_users()
            snapshot = DirectorySnapshot.build(dealers, users, loaded_at=self.clock())
            self._snapshot = snapshot

        logger.info(
            "entity_cache_refreshed",
            dealers=len(snapshot.dealer_map),
            users=len(snapshot.users)
        )
        return snapshot

    def _current(self) -> DirectorySnapshot:
        snapshot = self._snapshot
        if self._is_stale(snapshot):
            snapshot = self.refresh()
        return snapshot

    def resolve_dealer(self, name) -> Optional[int]:
        """Dealer id by normalized party name or dealer code."""
        key = normalize(name)
        if not key:
            return None
        return self._current().dealer_map.get(key)

    def resolve_user(self, raw) -> Optional[int]:
        """
        Resolve a user by name, trying progressively looser matches.

        Steps: exact normalized name; substring either way; every directory
        token present in the input; single input token equal to a directory
        token. The first step with candidates decides, preferring the longest
        directory name and then the lowest id.
        """
        key = normalize(raw)
        if not key:
            return None

        snapshot = self._current()
        exact = snapshot.user_map.get(key)
        if exact is not None:
            return exact

        tokens = name_tokens(raw)
        token_set = set(tokens)
        ladder = [
            lambda u: u.strict_name in key or key in u.strict_name,
            lambda u: bool(u.tokens) and set(u.tokens) <= token_set,
            lambda u: len(tokens) == 1 and tokens[0] in u.tokens,
        ]
        for step in ladder:
            candidates = [u for u in snapshot.users if step(u)]
            if candidates:
                best = min(candidates, key=lambda u: (-len(u.strict_name), u.id))
                return best.id
        return None
