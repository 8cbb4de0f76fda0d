# =============================================================================
# core/auth_state.py - Auth State Observer
# =============================================================================
# Tracks "who is signed in" reactively.
#
# An identity source reports the current user as soon as something watches
# it, and again on every sign-in / sign-out. AuthStateObserver turns those
# reports into an AuthState {user, loading} that consumers can listen to.
#
# Usage:
#   identity = TokenIdentity(verify=decode_access_token, token=token)
#   observer = AuthStateObserver()
#   observer.listen(lambda state: print(state.user))
#   observer.bind(identity)        # -> AuthState(user=..., loading=False)
#   identity.set_token(None)       # -> AuthState(user=None, loading=False)
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from app.auth.models import AuthUser

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class AuthState:
    user: AuthUser | None = None
    loading: bool = True


class IdentitySource(Protocol):
    """
    A subscribable "current user" stream.

    `watch` must report the current identity during (or right after)
    registration, then on every change.
    """

    def watch(
        self,
        on_user: Callable[[AuthUser | None], None],
        on_error: Callable[[Exception], None],
    ) -> Unsubscribe:
        ...


class AuthStateObserver:
    """
    Exposes the AuthState of whichever identity source it is bound to.

    Starts in the loading state. Rebinding drops the previous source first,
    so a stale source can never overwrite the current user.
    """

    def __init__(self):
        self._state = AuthState()
        self._identity: IdentitySource | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._listeners: list[Callable[[AuthState], None]] = []
        self._generation = 0

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def user(self) -> AuthUser | None:
        return self._state.user

    def listen(self, callback: Callable[[AuthState], None]) -> Unsubscribe:
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def bind(self, identity: IdentitySource | None) -> None:
        self._release()
        self._identity = identity

        if identity is None:
            self._set_state(AuthState(user=None, loading=False))
            return

        generation = self._generation

        def on_user(user: AuthUser | None) -> None:
            if generation == self._generation:
                self._set_state(AuthState(user=user, loading=False))

        def on_error(error: Exception) -> None:
            if generation == self._generation:
                logger.error(f"Auth state change error: {error}")
                self._set_state(AuthState(user=None, loading=False))

        self._unsubscribe = identity.watch(on_user, on_error)

    def close(self) -> None:
        self._release()
        self._identity = None
        self._listeners.clear()

    def _release(self) -> None:
        self._generation += 1
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            unsubscribe()

    def _set_state(self, state: AuthState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            listener(state)


class TokenIdentity:
    """
    Identity source driven by access tokens.

    Used by WebSocket streams: the client can push a fresh token (after a
    refresh or a sign-in as someone else) or sign out, and every watcher
    re-resolves.
    """

    def __init__(
        self,
        verify: Callable[[str], AuthUser],
        token: str | None = None,
    ):
        self.verify = verify
        self._token = token
        self._watchers: list[tuple[Callable[[AuthUser | None], None], Callable[[Exception], None]]] = []

    @property
    def token(self) -> str | None:
        return self._token

    def watch(
        self,
        on_user: Callable[[AuthUser | None], None],
        on_error: Callable[[Exception], None],
    ) -> Unsubscribe:
        watcher = (on_user, on_error)
        self._watchers.append(watcher)
        self._report(on_user, on_error)

        def remove() -> None:
            if watcher in self._watchers:
                self._watchers.remove(watcher)

        return remove

    def set_token(self, token: str | None) -> None:
        self._token = token
        for on_user, on_error in list(self._watchers):
            self._report(on_user, on_error)

    def _report(
        self,
        on_user: Callable[[AuthUser | None], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        if not self._token:
            on_user(None)
            return
        try:
            user = self.verify(self._token)
        except Exception as e:
            on_error(e)
            return
        on_user(user)
