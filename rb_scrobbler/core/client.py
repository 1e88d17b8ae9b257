"""Scrobbling service clients."""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence

import requests

from .. import __version__
from ..exceptions import (
    AuthError,
    AuthProtocolError,
    InvalidCredentialsError,
    RejectedBatchError,
    ServiceUnavailableError,
    SessionExpiredError,
    SubmitProtocolError,
    TransientSubmitError,
)
from ..models.outcome import RecordOutcome
from ..models.record import LogRecord
from ..models.session import Credentials, Session
from ..utils.logger import redact_secrets

LASTFM_API_ROOT = "https://ws.audioscrobbler.com/2.0/"
USER_AGENT = f"rb-scrobbler/{__version__}"

# track.scrobble accepts at most 50 entries per call
MAX_BATCH_SIZE = 50

SIGNING_SKIP = {"format", "callback"}
REDACTED_PARAMS = {"api_sig", "sk", "password"}

# Last.fm API error codes
ERROR_AUTH_FAILED = 4
ERROR_INVALID_SESSION = 9
ERROR_INVALID_API_KEY = 10
ERROR_SERVICE_OFFLINE = 11
ERROR_UNAUTHORIZED_TOKEN = 14
ERROR_TEMPORARY = 16
ERROR_SUSPENDED_API_KEY = 26
ERROR_RATE_LIMIT = 29

CREDENTIAL_ERRORS = {
    ERROR_AUTH_FAILED,
    ERROR_INVALID_API_KEY,
    ERROR_UNAUTHORIZED_TOKEN,
    ERROR_SUSPENDED_API_KEY,
}
TRANSIENT_ERRORS = {ERROR_SERVICE_OFFLINE, ERROR_TEMPORARY, ERROR_RATE_LIMIT}

# ignoredMessage codes returned per scrobble
IGNORED_ACCEPTED = "0"
IGNORED_DAILY_LIMIT = "5"
IGNORED_REASONS = {
    "1": "artist ignored",
    "2": "track ignored",
    "3": "timestamp too old",
    "4": "timestamp too new",
    IGNORED_DAILY_LIMIT: "daily scrobble limit exceeded",
}


def md5_hex(s: str) -> str:
    return hashlib.md5(s.encode("utf-8")).hexdigest()


def build_api_sig(params: Dict[str, str], api_secret: str) -> str:
    """
    Sort parameters (excluding 'format'/'callback') by ASCII key, concatenate key+value,
    append secret, MD5.
    """
    items = [(k, v) for k, v in params.items() if k not in SIGNING_SKIP]
    items.sort(key=lambda kv: kv[0])
    sig_str = "".join(k + v for k, v in items) + api_secret
    return md5_hex(sig_str)


def _redacted(params: Dict[str, str]) -> Dict[str, str]:
    return {k: v for k, v in params.items() if k.lower() not in REDACTED_PARAMS}


class _TransientFailure(Exception):
    """A request failed in a way that is worth retrying."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class _ApiError(Exception):
    """Error payload returned by the API."""

    def __init__(self, code: Optional[int], message: str):
        super().__init__(f"error {code}: {message}" if code is not None else message)
        self.code = code
        self.message = message


class ScrobbleClient(ABC):
    """Authenticates with a scrobbling service and submits batches.

    The client owns its Session. Callers authenticate once and then submit
    batches; re-authentication after an expired session is handled here.
    """

    max_batch_size: int = MAX_BATCH_SIZE

    @abstractmethod
    def authenticate(self, credentials: Credentials) -> Session:
        """Obtain a session.

        Raises:
            InvalidCredentialsError: If the service rejects the credentials
            ServiceUnavailableError: On network errors or server failures
            AuthProtocolError: If the response cannot be understood
        """

    @abstractmethod
    def submit(self, batch: Sequence[LogRecord]) -> List[RecordOutcome]:
        """Submit a batch and return one outcome per record, in order.

        Raises:
            AuthError: If the session cannot be (re-)established
            SubmitError: If the batch as a whole could not be submitted
        """

    def close(self) -> None:
        """Release network resources. The client must not be used afterwards."""


class LastFmClient(ScrobbleClient):
    """Last.fm 2.0 API client built on requests."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        api_root: str = LASTFM_API_ROOT,
        timeout: float = 30,
        max_attempts: int = 5,
        backoff_base: float = 2.0,
        backoff_max: float = 300.0,
        http: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize client.

        Args:
            logger: Logger instance
            api_root: API endpoint
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per batch for transient failures
            backoff_base: First retry delay in seconds, doubled each attempt
            backoff_max: Upper bound for a single retry delay
            http: requests session to use (a new one if omitted)
            sleep: Sleep function used between retries
        """
        self.logger = logger or logging.getLogger(__name__)
        self.api_root = api_root
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.sleep = sleep

        self._owns_http = http is None
        self.http = http or requests.Session()
        self.http.headers.update({"User-Agent": USER_AGENT})

        self._credentials: Optional[Credentials] = None
        self._session: Optional[Session] = None

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    @property
    def session(self) -> Optional[Session]:
        """Copy of the current session, for display only."""
        return replace(self._session) if self._session else None

    # ---------------------------
    # Authentication
    # ---------------------------

    def authenticate(self, credentials: Credentials) -> Session:
        self._credentials = credentials

        if credentials.session_key:
            self.logger.info("Using configured Last.fm session key")
            self._session = Session(
                key=credentials.session_key,
                endpoint=self.api_root,
                username=credentials.username,
            )
        else:
            self._login()

        return self.session

    def _login(self) -> None:
        credentials = self._credentials
        if credentials is None or not credentials.can_login:
            raise InvalidCredentialsError(
                "A Last.fm username and password are required to obtain a session"
            )

        self.logger.info(f"Requesting Last.fm session for {credentials.username}")
        params = {
            "method": "auth.getMobileSession",
            "api_key": credentials.api_key,
            "username": credentials.username,
            "password": credentials.password,
            "format": "json",
        }

        try:
            data = self._request(params, retry=False)
        except _TransientFailure as e:
            raise ServiceUnavailableError(f"Last.fm unavailable: {e}") from e
        except _ApiError as e:
            if e.code in CREDENTIAL_ERRORS:
                raise InvalidCredentialsError(e.message) from e
            raise AuthProtocolError(f"Unexpected handshake error: {e}") from e
        except requests.RequestException as e:
            raise ServiceUnavailableError(f"Last.fm unavailable: {e}") from e

        sess = data.get("session") if isinstance(data, dict) else None
        key = sess.get("key") if isinstance(sess, dict) else None
        if not key:
            raise AuthProtocolError(f"Incomplete session response: {data}")

        self._session = Session(key=key, endpoint=self.api_root, username=sess.get("name"))
        self.logger.info(f"Authenticated as {self._session.username}")

    # ---------------------------
    # Scrobbling
    # ---------------------------

    def build_scrobble_params(self, batch: Sequence[LogRecord]) -> Dict[str, str]:
        """Build parameter dict for track.scrobble."""
        params: Dict[str, str] = {
            "method": "track.scrobble",
            "api_key": self._credentials.api_key,
            "sk": self._session.key,
            "format": "json",
        }
        for i, record in enumerate(batch):
            params[f"artist[{i}]"] = record.artist
            params[f"track[{i}]"] = record.title
            params[f"timestamp[{i}]"] = str(record.timestamp)
            params[f"duration[{i}]"] = str(record.duration_seconds)
            params[f"chosenByUser[{i}]"] = "1" if record.source.chosen_by_user else "0"
            if record.album:
                params[f"album[{i}]"] = record.album
            if record.track_number is not None:
                params[f"trackNumber[{i}]"] = str(record.track_number)
            if record.music_brainz_id:
                params[f"mbid[{i}]"] = record.music_brainz_id
        return params

    def submit(self, batch: Sequence[LogRecord]) -> List[RecordOutcome]:
        if not batch:
            return []
        if len(batch) > self.max_batch_size:
            raise ValueError(f"Batch of {len(batch)} exceeds the limit of {self.max_batch_size}")
        if self._session is None:
            raise AuthError("submit() called before authenticate()")

        reauthenticated = False
        while True:
            params = self.build_scrobble_params(batch)
            try:
                data = self._request(params)
            except _TransientFailure as e:
                raise TransientSubmitError(
                    f"Giving up after {self.max_attempts} attempt(s): {e}"
                ) from e
            except _ApiError as e:
                if e.code == ERROR_INVALID_SESSION:
                    self._session.invalidate()
                    if reauthenticated:
                        raise SessionExpiredError(
                            "Session rejected again after re-authenticating"
                        ) from e
                    self.logger.warning("Last.fm session expired, re-authenticating")
                    self._login()
                    reauthenticated = True
                    continue
                if e.code in CREDENTIAL_ERRORS:
                    raise InvalidCredentialsError(e.message) from e
                raise RejectedBatchError(f"Batch rejected: {e}", code=e.code) from e
            except requests.RequestException as e:
                raise RejectedBatchError(f"Request failed: {e}") from e

            return self._parse_outcomes(batch, data)

    def _parse_outcomes(self, batch: Sequence[LogRecord], data: dict) -> List[RecordOutcome]:
        scrob = data.get("scrobbles") if isinstance(data, dict) else None
        if not isinstance(scrob, dict):
            raise SubmitProtocolError(f"Unexpected response: {data}")

        payload = scrob.get("scrobble")
        items = payload if isinstance(payload, list) else ([payload] if payload else [])
        if len(items) != len(batch):
            raise SubmitProtocolError(
                f"Response has {len(items)} entries for a batch of {len(batch)}"
            )

        outcomes = []
        for record, item in zip(batch, items):
            if not isinstance(item, dict):
                raise SubmitProtocolError(f"Unexpected scrobble entry: {item!r}")
            msg = item.get("ignoredMessage") or {}
            if not isinstance(msg, dict):
                raise SubmitProtocolError(f"Unexpected ignoredMessage: {msg!r}")
            code = str(msg.get("code", IGNORED_ACCEPTED))
            if code == IGNORED_ACCEPTED:
                outcomes.append(RecordOutcome.accepted(record))
                continue

            reason = msg.get("#text") or IGNORED_REASONS.get(code, f"ignored (code {code})")
            if code == IGNORED_DAILY_LIMIT:
                outcomes.append(RecordOutcome.failed(record, reason))
            else:
                outcomes.append(RecordOutcome.ignored(record, reason))
            self.logger.debug(f"{record}: {reason}")

        return outcomes

    # ---------------------------
    # Transport
    # ---------------------------

    def _request(self, params: Dict[str, str], retry: bool = True) -> dict:
        """Send a signed request, retrying transient failures with backoff."""
        attempts = self.max_attempts if retry else 1

        for attempt in range(1, attempts + 1):
            try:
                return self._call(params)
            except _TransientFailure as e:
                if attempt >= attempts:
                    raise
                delay = e.retry_after if e.retry_after is not None else self._backoff(attempt)
                self.logger.warning(
                    f"{e} (attempt {attempt}/{attempts}), retrying in {delay:g}s"
                )
                self.sleep(delay)

        raise _TransientFailure("no attempts made")

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_max, self.backoff_base * 2 ** (attempt - 1))

    def _call(self, params: Dict[str, str]) -> dict:
        """Single signed POST; classifies the response."""
        params = dict(params)
        params["api_sig"] = build_api_sig(params, self._credentials.api_secret)
        self.logger.debug(
            "Request: " + json.dumps(_redacted(params), ensure_ascii=False)[:6000]
        )

        try:
            resp = self.http.post(self.api_root, data=params, timeout=self.timeout)
        except requests.Timeout as e:
            raise _TransientFailure(f"Request timed out after {self.timeout}s") from e
        except requests.ConnectionError as e:
            raise _TransientFailure(f"Network error ({e.__class__.__name__})") from e

        self.logger.debug(f"Response {resp.status_code}: {redact_secrets(resp.text[:2000])}")

        if resp.status_code == 429:
            raise _TransientFailure("Rate limited (HTTP 429)", self._retry_after(resp))
        if resp.status_code >= 500:
            raise _TransientFailure(f"Server error (HTTP {resp.status_code})")

        try:
            data = resp.json()
        except ValueError:
            if not resp.ok:
                raise _ApiError(None, f"HTTP {resp.status_code}") from None
            # Callers reject the empty payload as a protocol error
            self.logger.warning(f"Response is not JSON: {resp.text[:200]!r}")
            return {}

        if isinstance(data, dict) and "error" in data:
            try:
                code = int(data["error"])
            except (TypeError, ValueError):
                code = None
            message = str(data.get("message") or "unknown error")
            if code in TRANSIENT_ERRORS:
                raise _TransientFailure(f"Last.fm error {code}: {message}")
            raise _ApiError(code, message)

        if not resp.ok:
            raise _ApiError(None, f"HTTP {resp.status_code}")
        return data

    def _retry_after(self, resp: requests.Response) -> Optional[float]:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return None
        try:
            return min(self.backoff_max, max(0.0, float(retry_after)))
        except ValueError:
            return None
