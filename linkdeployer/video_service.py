"""Main video stage backed by mpv in idle mode, driven over its JSON IPC socket."""

from __future__ import annotations

import json
import logging
import os
import socket
import subprocess
import threading
import time
from dataclasses import dataclass
from queue import Queue
from typing import Callable, Optional

from .deployer import PlayableSink, StageSurface

logger = logging.getLogger(__name__)

# 720p max keeps streaming smooth on small boxes
YT_DLP_FORMAT = "best[height<=720]/best"

# Marker put on the main loop queue when the current item ends naturally
STAGE_ENDED = "stage-ended"


@dataclass
class StageFailed:
    """Put on the main loop queue when mpv could not play the current item."""

    reason: str


def _mpv_ipc_send(sock_path: str, command: list) -> Optional[dict]:
    """Send a command to mpv via IPC socket, return its reply."""
    try:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(5.0)
        sock.connect(sock_path)
        msg = json.dumps({"command": command}) + "\n"
        sock.sendall(msg.encode())
        data = sock.recv(4096).decode()
        sock.close()
    except (socket.error, OSError) as e:
        logger.debug("mpv IPC error: %s", e)
        return None

    # Events can arrive before the reply; the reply is the line carrying "error"
    for line in data.splitlines():
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            continue
        if "error" in msg:
            return msg
    return None


class MpvSink(PlayableSink):
    """The mpv player as an addressable playback element."""

    def __init__(self, ipc_socket: str) -> None:
        self.ipc_socket = ipc_socket
        self.source: Optional[str] = None

    def set_source(self, url: str) -> None:
        self.source = url

    def load(self) -> None:
        if not self.source:
            return
        resp = _mpv_ipc_send(self.ipc_socket, ["loadfile", self.source, "replace"])
        if resp is None:
            logger.warning("Could not send loadfile to mpv on %s", self.ipc_socket)
        elif resp.get("error") != "success":
            logger.warning("mpv loadfile error: %s", resp.get("error", "unknown"))

    def play_when_ready(self) -> None:
        # mpv starts playback once the file is loaded unless paused
        _mpv_ipc_send(self.ipc_socket, ["set_property", "pause", False])


class MpvStage(StageSurface):
    """
    mpv running with --idle as the application's main stage.

    A reader thread watches mpv events and puts STAGE_ENDED on the queue when
    a file ends with reason "eof". Reason "error" puts a StageFailed instead.
    The main loop then calls dispatch_ended() or dispatch_failed() so observers
    run on the main thread.
    """

    def __init__(self, ipc_socket: str, events: Queue) -> None:
        self.ipc_socket = ipc_socket
        self.events = events
        self.proc: Optional[subprocess.Popen] = None
        self._ended_callbacks: list[Callable[[], None]] = []
        self._failed_callbacks: list[Callable[[str], None]] = []
        self._sink = MpvSink(ipc_socket)

    # -- process ----------------------------------------------------------

    def start(self) -> bool:
        """Start mpv in idle mode (black screen) with an IPC server."""
        if os.path.exists(self.ipc_socket):
            try:
                os.unlink(self.ipc_socket)
            except OSError:
                pass
        cmd = [
            "mpv",
            "--idle=yes",
            "--force-window=yes",
            "--no-osc",
            "--no-input-default-bindings",
            "--fs",
            f"--ytdl-format={YT_DLP_FORMAT}",
            f"--input-ipc-server={self.ipc_socket}",
        ]
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error("mpv not found. Install with: apt install mpv")
            return False

        for _ in range(50):
            if os.path.exists(self.ipc_socket):
                self.proc = proc
                threading.Thread(target=self._watch_events, daemon=True).start()
                return True
            time.sleep(0.1)
        proc.terminate()
        logger.error("mpv did not create IPC socket in time")
        return False

    def stop(self) -> None:
        if self.proc is None:
            return
        self.proc.terminate()
        try:
            self.proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self.proc.kill()
        self.proc = None

    def is_running(self) -> bool:
        return self.proc is not None and self.proc.poll() is None

    def _watch_events(self) -> None:
        """Read mpv's event stream until the socket closes."""
        try:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            sock.connect(self.ipc_socket)
            stream = sock.makefile("r", encoding="utf-8")
        except OSError as e:
            logger.error("Could not watch mpv events: %s", e)
            return

        with sock, stream:
            for line in stream:
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if is_natural_end(event):
                    logger.debug("mpv reported end of file")
                    self.events.put(STAGE_ENDED)
                elif is_playback_error(event):
                    reason = event.get("file_error") or "playback error"
                    logger.warning("mpv could not play the current item: %s", reason)
                    self.events.put(StageFailed(reason))
        logger.info("mpv event stream closed")

    # -- StageSurface -----------------------------------------------------

    def get_current_playable_sink(self) -> Optional[PlayableSink]:
        return self._sink if self.is_running() else None

    def subscribe_ended(self, callback: Callable[[], None]) -> None:
        self._ended_callbacks.append(callback)

    def unsubscribe_ended(self, callback: Callable[[], None]) -> None:
        if callback in self._ended_callbacks:
            self._ended_callbacks.remove(callback)

    def subscribe_failed(self, callback: Callable[[str], None]) -> None:
        self._failed_callbacks.append(callback)

    def unsubscribe_failed(self, callback: Callable[[str], None]) -> None:
        if callback in self._failed_callbacks:
            self._failed_callbacks.remove(callback)

    def dispatch_ended(self) -> None:
        """Notify observers that the current item ended. Call from the main thread."""
        for callback in list(self._ended_callbacks):
            callback()

    def dispatch_failed(self, reason: str) -> None:
        """Notify observers that the current item failed. Call from the main thread."""
        for callback in list(self._failed_callbacks):
            callback(reason)


def is_natural_end(event: dict) -> bool:
    """True for mpv's end-file event when playback reached the end of the item."""
    return event.get("event") == "end-file" and event.get("reason") == "eof"


def is_playback_error(event: dict) -> bool:
    """True for mpv's end-file event when the item could not be played."""
    return event.get("event") == "end-file" and event.get("reason") == "error"
