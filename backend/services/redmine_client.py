"""Redmine REST client used by the productivity report.

The report is best-effort analytics, so this client never raises on tracker
trouble: user lookups that fail return None, and issue paging stops at the
first failed page and hands back whatever was accumulated.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests

from services.cache import TTLCache

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
DEFAULT_TIMEOUT = 8
DEFAULT_BATCH_TIMEOUT = 45
DEFAULT_MAX_WORKERS = 6
DEFAULT_USER_CACHE_TTL = 3600


class Deadline:
    """Absolute point in time that every tracker call must finish by."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def timeout_for(self, per_request: float) -> float:
        """Per-request timeout, shortened when the deadline is closer."""
        return min(per_request, self.remaining())


@dataclass
class UserIssues:
    """Issues fetched for one user: open ones, closed ones, and whether paging completed."""

    issues: list = field(default_factory=list)
    closed_issues: list = field(default_factory=list)
    fetch_succeeded: bool = True


class RedmineClient:
    """Fetches users and issues from Redmine for the productivity report."""

    def __init__(self, base_url: str, api_key: Optional[str] = None,
                 username: Optional[str] = None, password: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT,
                 batch_timeout: float = DEFAULT_BATCH_TIMEOUT,
                 max_workers: int = DEFAULT_MAX_WORKERS,
                 cache_ttl: float = DEFAULT_USER_CACHE_TTL,
                 clock: Callable[[], float] = time.monotonic):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.username = username
        self.password = password
        self.timeout = timeout
        self.batch_timeout = batch_timeout
        self.max_workers = max(1, max_workers)
        self._clock = clock
        self._user_cache = TTLCache(cache_ttl, clock=clock)

    @classmethod
    def from_config(cls, config) -> "RedmineClient":
        """Build a client from a Flask config mapping."""
        return cls(
            base_url=config.get("REDMINE_URL", ""),
            api_key=config.get("REDMINE_API_KEY") or None,
            username=config.get("REDMINE_USERNAME") or None,
            password=config.get("REDMINE_PASSWORD") or None,
            timeout=config.get("REDMINE_TIMEOUT", DEFAULT_TIMEOUT),
            batch_timeout=config.get("REDMINE_BATCH_TIMEOUT", DEFAULT_BATCH_TIMEOUT),
            max_workers=config.get("REDMINE_MAX_CONNECTIONS", DEFAULT_MAX_WORKERS),
            cache_ttl=config.get("REDMINE_USER_CACHE_TTL", DEFAULT_USER_CACHE_TTL),
        )

    @property
    def is_configured(self) -> bool:
        has_basic = bool(self.username and self.password)
        return bool(self.base_url) and (has_basic or bool(self.api_key))

    @property
    def user_cache(self) -> TTLCache:
        return self._user_cache

    def _new_deadline(self) -> Deadline:
        return Deadline(self.batch_timeout, clock=self._clock)

    def _request(self, endpoint: str, params: Optional[dict] = None,
                 timeout: Optional[float] = None):
        """Make authenticated request to Redmine API.

        Basic auth wins when both username and password are configured,
        otherwise the API key header is sent.
        """
        headers = {"Accept": "application/json"}
        auth = None
        if self.username and self.password:
            auth = (self.username, self.password)
        elif self.api_key:
            headers["X-Redmine-API-Key"] = self.api_key

        response = requests.get(
            f"{self.base_url}{endpoint}",
            auth=auth,
            headers=headers,
            params=params,
            timeout=timeout if timeout is not None else self.timeout
        )
        response.raise_for_status()
        return response.json()

    def _lookup_user_id(self, username: str, deadline: Deadline) -> tuple:
        """Resolve a login to a Redmine user id.

        Returns (user_id, ok). ``ok`` is False when a request failed, which
        lets the batch fetch tell "no such user" apart from "lookup broke".
        """
        cached = self._user_cache.get(username)
        if cached is not None:
            return cached, True

        offset = 0
        while True:
            if deadline.expired:
                logger.warning(f"Deadline reached while looking up Redmine user {username}")
                return None, False

            try:
                data = self._request(
                    "/users.json",
                    params={"login": username, "limit": PAGE_SIZE, "offset": offset},
                    timeout=deadline.timeout_for(self.timeout)
                )
            except (requests.exceptions.RequestException, ValueError) as e:
                logger.warning(f"Failed to fetch Redmine user {username}: {e}")
                return None, False

            if not isinstance(data, dict):
                logger.warning(f"Unexpected Redmine user lookup reply for {username}: {type(data).__name__}")
                return None, False

            for user in data.get("users") or []:
                if user.get("login") == username:
                    user_id = str(user["id"])
                    self._user_cache.set(username, user_id)
                    return user_id, True

            total = data.get("total_count") or 0
            offset += data.get("limit") or PAGE_SIZE
            if offset >= total:
                return None, True

    def resolve_user_id(self, username: str, deadline: Optional[Deadline] = None) -> Optional[str]:
        """Get the Redmine user id for a login, or None if it cannot be found."""
        if not self.is_configured:
            return None
        user_id, _ = self._lookup_user_id(username, deadline or self._new_deadline())
        return user_id

    def _fetch_issue_pages(self, params: dict, deadline: Deadline) -> tuple:
        """Page through /issues.json until total_count is reached.

        Returns (issues, ok). A failed page ends paging with ok=False and the
        issues collected so far.
        """
        all_issues = []
        offset = 0

        while True:
            if deadline.expired:
                logger.warning(
                    f"Deadline reached while paging issues for assignee "
                    f"{params.get('assigned_to_id')} at offset {offset}"
                )
                return all_issues, False

            try:
                data = self._request(
                    "/issues.json",
                    params={**params, "limit": PAGE_SIZE, "offset": offset},
                    timeout=deadline.timeout_for(self.timeout)
                )
            except (requests.exceptions.RequestException, ValueError) as e:
                logger.warning(
                    f"Issue page fetch failed for assignee {params.get('assigned_to_id')} "
                    f"at offset {offset}: {e}"
                )
                return all_issues, False

            if not isinstance(data, dict):
                logger.warning(
                    f"Unexpected issue page reply for assignee {params.get('assigned_to_id')} "
                    f"at offset {offset}: {type(data).__name__}"
                )
                return all_issues, False

            issues = data.get("issues") or []
            all_issues.extend(issues)
            total_count = data.get("total_count") or 0

            if len(all_issues) >= total_count or not issues:
                return all_issues, True

            offset += PAGE_SIZE

    @staticmethod
    def _issue_filter(remote_id: str, date_from, date_to) -> dict:
        return {
            "assigned_to_id": remote_id,
            "created_on": f"><{date_from}|{date_to}",
        }

    def fetch_all_issues(self, remote_id: str, date_from, date_to,
                         deadline: Optional[Deadline] = None) -> list:
        """Get issues assigned to a user and created within [date_from, date_to].

        Redmine's default status filter applies, so this returns open issues.
        """
        issues, _ = self._fetch_issue_pages(
            self._issue_filter(remote_id, date_from, date_to),
            deadline or self._new_deadline()
        )
        return issues

    def fetch_closed_issues(self, remote_id: str, date_from, date_to,
                            deadline: Optional[Deadline] = None) -> list:
        """Get closed issues assigned to a user and created within [date_from, date_to]."""
        params = self._issue_filter(remote_id, date_from, date_to)
        params["status_id"] = "closed"
        issues, _ = self._fetch_issue_pages(params, deadline or self._new_deadline())
        return issues

    def _fetch_user_issues(self, remote_id: str, date_from, date_to,
                           deadline: Deadline) -> UserIssues:
        base = self._issue_filter(remote_id, date_from, date_to)
        issues, issues_ok = self._fetch_issue_pages(base, deadline)
        closed_issues, closed_ok = self._fetch_issue_pages(
            {**base, "status_id": "closed"}, deadline
        )
        return UserIssues(issues, closed_issues, issues_ok and closed_ok)

    def batch_fetch(self, usernames: list, date_from, date_to,
                    deadline: Optional[Deadline] = None) -> dict:
        """Fetch open and closed issues for many users at once.

        Logins are resolved one after another (the cache absorbs repeats),
        then each resolved user's fetch pair runs on a bounded thread pool.
        Every username gets an entry. If the deadline passes before all
        pairs finish, the result is an empty dict.
        """
        if not self.is_configured or not usernames:
            return {}

        deadline = deadline or self._new_deadline()

        user_ids = {}
        results = {}
        for username in usernames:
            user_id, ok = self._lookup_user_id(username, deadline)
            if deadline.expired:
                logger.warning(
                    f"Redmine batch fetch timed out resolving users "
                    f"({len(user_ids)}/{len(usernames)} resolved)"
                )
                return {}
            if user_id:
                user_ids[username] = user_id
            else:
                results[username] = UserIssues(fetch_succeeded=ok)

        if not user_ids:
            return results

        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = {
                executor.submit(self._fetch_user_issues, user_id, date_from, date_to, deadline): username
                for username, user_id in user_ids.items()
            }
            done, not_done = wait(futures, timeout=deadline.remaining())

            if not_done:
                logger.warning(
                    f"Redmine batch fetch timed out after {self.batch_timeout}s "
                    f"({len(done)}/{len(futures)} users finished)"
                )
                return {}

            for future in done:
                username = futures[future]
                try:
                    results[username] = future.result()
                except Exception:
                    logger.exception(f"Unexpected error fetching Redmine issues for {username}")
                    results[username] = UserIssues(fetch_succeeded=False)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return results
