"""Initialization phase and signal tracking for session resolution.

``LocalSignals.load`` reads every device-local signal once, up front, so
resolve() never runs against partially hydrated state. ``SessionTracker``
then records what the asynchronous loaders (identity check, business
lookup) report and produces ``SessionInputs`` snapshots on demand.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from tally.services.device_storage import DeviceStorage, StorageKeys
from tally.services.session_resolver import SessionInputs


def _flag(storage: DeviceStorage, key: str) -> bool:
    return storage.get(key) == "true"


def _text(storage: DeviceStorage, key: str) -> str | None:
    value = storage.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class LocalSignals:
    """Device-local session signals.

    Attributes:
        is_guest: Guest mode enabled on this device.
        country: Selected country code, if any.
        language: Selected language code, if any.
        welcome_seen: Welcome screen acknowledged.
        dev_bypass: Developer override flag (already gated by environment).
    """

    is_guest: bool = False
    country: str | None = None
    language: str | None = None
    welcome_seen: bool = False
    dev_bypass: bool = False

    @property
    def has_country(self) -> bool:
        return self.country is not None

    @property
    def has_language(self) -> bool:
        return self.language is not None

    @classmethod
    def load(
        cls,
        storage: DeviceStorage,
        *,
        allow_dev_bypass: bool = False,
    ) -> "LocalSignals":
        """Read all local signals in one pass.

        Args:
            storage: Device storage.
            allow_dev_bypass: Honor the dev-bypass flag (development builds).

        Returns:
            Fully populated LocalSignals.
        """
        return cls(
            is_guest=_flag(storage, StorageKeys.GUEST_MODE),
            country=_text(storage, StorageKeys.COUNTRY),
            language=_text(storage, StorageKeys.LANGUAGE),
            welcome_seen=storage.get(StorageKeys.WELCOME_SEEN) is not None,
            dev_bypass=allow_dev_bypass
            and _flag(storage, StorageKeys.DEV_BYPASS_AUTH),
        )


class SessionTracker:
    """Collects loader results and snapshots them for resolve().

    Identity loading starts at construction; the auth wait is measured on a
    monotonic clock so wall-clock changes cannot extend the hold.

    Args:
        local: Signals from the initialization phase.
        clock: Monotonic seconds (injected for tests).
    """

    def __init__(
        self,
        local: LocalSignals,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._local = local
        self._clock = clock
        self._auth_started = clock()
        self._is_loading_auth = True
        self._is_loading_business = False
        self._user_id: str | None = None
        self._has_business: bool | None = None

    @property
    def local(self) -> LocalSignals:
        return self._local

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def has_business_profile(self) -> bool | None:
        return self._has_business

    def reload_local(
        self, storage: DeviceStorage, *, allow_dev_bypass: bool = False
    ) -> None:
        """Re-read device signals (after onboarding or guest-mode changes)."""
        self._local = LocalSignals.load(storage, allow_dev_bypass=allow_dev_bypass)

    def auth_started(self) -> None:
        """A new identity check began (e.g. after sign-out)."""
        self._is_loading_auth = True
        self._auth_started = self._clock()

    def auth_resolved(self, user_id: str | None) -> None:
        """Identity check finished; ``None`` means signed out."""
        self._is_loading_auth = False
        self._user_id = user_id
        if user_id is None:
            self._has_business = None
            self._is_loading_business = False

    def business_started(self) -> None:
        """Business lookup began."""
        self._is_loading_business = True

    def business_resolved(self, has_business: bool) -> None:
        """Business lookup finished."""
        self._is_loading_business = False
        self._has_business = has_business

    def inputs(self, path: str) -> SessionInputs:
        """Snapshot every signal for ``path``."""
        wait = self._clock() - self._auth_started if self._is_loading_auth else 0.0
        return SessionInputs(
            path=path,
            user_id=self._user_id,
            is_guest=self._local.is_guest,
            has_country=self._local.has_country,
            has_language=self._local.has_language,
            has_business_profile=self._has_business,
            welcome_seen=self._local.welcome_seen,
            dev_bypass=self._local.dev_bypass,
            is_loading_auth=self._is_loading_auth,
            is_loading_business=self._is_loading_business,
            auth_wait_seconds=wait,
        )
