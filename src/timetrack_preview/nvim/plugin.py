"""pynvim remote plugin exposing the time tracking preview to Neovim."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import pynvim
from pynvim.api import Nvim, NvimError

from ..app import PreviewSession, check_environment, configure_logging, create_session, load_settings
from ..services.settings import SettingsStore
from .host import NvimHost

__all__ = ["TimeTrackingPlugin"]

LOGGER = logging.getLogger(__name__)
_USER_CONFIG_VAR = "time_tracking"


@pynvim.plugin
class TimeTrackingPlugin:
    """Routes autocommands and user commands into a :class:`PreviewSession`.

    The session is built on first use so that ``g:time_tracking`` set in
    ``init.lua`` after the host starts is still honored.
    """

    def __init__(self, nvim: Nvim) -> None:
        self._nvim = nvim
        self._host = NvimHost(nvim)
        self._session: PreviewSession | None = None
        self._store: SettingsStore | None = None

    # ------------------------------------------------------------------
    # Autocommands
    # ------------------------------------------------------------------
    @pynvim.autocmd("VimEnter,BufWinEnter,BufEnter,BufWritePost", pattern="*", eval="win_getid()")
    def on_window_entered(self, window: int) -> None:
        self._dispatch_autocmd("BufEnter", window=int(window))

    @pynvim.autocmd("TextChanged,TextChangedI", pattern="*", eval='expand("<abuf>")')
    def on_text_changed(self, buffer: str) -> None:
        if self._session is None:
            return
        self._dispatch_autocmd("TextChanged", buffer=int(buffer))

    @pynvim.autocmd("WinClosed", pattern="*", eval='expand("<amatch>")')
    def on_window_closed(self, window: str) -> None:
        if self._session is None:
            return
        self._dispatch_autocmd("WinClosed", window=int(window))

    @pynvim.autocmd("BufWinLeave,TabEnter", pattern="*")
    def on_window_left(self) -> None:
        if self._session is None:
            return
        self._dispatch_autocmd("TabEnter")

    @pynvim.autocmd("QuitPre", pattern="*", sync=True)
    def on_quit_pre(self) -> None:
        if self._session is None:
            return
        self._dispatch_autocmd("QuitPre", sync=True)

    @pynvim.autocmd("VimLeavePre", pattern="*", sync=True)
    def on_vim_leave(self) -> None:
        if self._session is None:
            return
        self._dispatch_autocmd("VimLeavePre", sync=True)
        self._session.teardown()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    @pynvim.command("TimeTrackingToggle", nargs=0)
    def toggle(self, *args: Any) -> None:
        self._dispatch_command("TimeTrackingToggle")

    @pynvim.command("TimeTrackingPreview", nargs=0)
    def preview(self, *args: Any) -> None:
        self._dispatch_command("TimeTrackingPreview")

    @pynvim.command("TimeTrackingUpdate", nargs=0)
    def update(self, *args: Any) -> None:
        self._dispatch_command("TimeTrackingUpdate")

    @pynvim.command("TimeTrackingClose", nargs=0)
    def close(self, *args: Any) -> None:
        self._dispatch_command("TimeTrackingClose")

    @pynvim.command("TimeTrackingCheck", nargs=0)
    def check(self, *args: Any) -> None:
        session = self._ensure_session()
        store_path = self._store.path if self._store is not None else None
        report = check_environment(session.settings, settings_path=store_path)
        self._host.notify("\n".join(report.lines()), error=not report.ok)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _dispatch_autocmd(
        self,
        name: str,
        *,
        window: int | None = None,
        buffer: int | None = None,
        sync: bool = False,
    ) -> None:
        session = self._ensure_session()
        session.dispatcher.on_autocmd(name, window=window, buffer=buffer, sync=sync)

    def _dispatch_command(self, name: str) -> None:
        session = self._ensure_session()
        session.dispatcher.on_command(name, sync=False)

    def _ensure_session(self) -> PreviewSession:
        if self._session is not None:
            return self._session
        overrides = self._user_overrides()
        self._store = SettingsStore()
        settings = load_settings(store=self._store, overrides=overrides)
        configure_logging(settings.debug_logging, log_dir=settings.log_dir)
        self._session = create_session(self._host, settings, loop=self._nvim.loop)
        return self._session

    def _user_overrides(self) -> Mapping[str, Any] | None:
        try:
            raw = self._nvim.vars.get(_USER_CONFIG_VAR)
        except NvimError as exc:
            LOGGER.warning("Unable to read g:%s: %s", _USER_CONFIG_VAR, exc)
            return None
        if not raw:
            return None
        if not isinstance(raw, Mapping):
            LOGGER.warning("g:%s must be a dictionary, got %s", _USER_CONFIG_VAR, type(raw).__name__)
            return None
        return dict(raw)

    @property
    def session(self) -> PreviewSession | None:
        return self._session
