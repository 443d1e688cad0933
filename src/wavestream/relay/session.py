"""Per-client relay session.

A :class:`RelaySession` sits between one client connection and at most one
live engine process. It owns:

- the engine process handle
- the reassembly state for the engine's output (partial text line, byte
  buffer, and the frame size learned from the HEADER line)
- a run generation counter used to discard output from stopped runs

Lifecycle:
    create on connect -> start/stop any number of times -> close on
    disconnect. Starting a run always kills and reaps the previous engine
    process first. Stop, restart and close always reset the reassembly
    state, whether or not a run was active.

The transport is abstract: the session is given two callables, one for
JSON text messages and one for binary frames.

Example:
    >>> session = RelaySession(send_text=ws.send_text, send_bytes=ws.send_bytes)
    >>> session.handle_message('{"type": "start", "cfg": {...}}')  # doctest: +SKIP
    >>> session.close()
"""

from __future__ import annotations

import codecs
import contextlib
import logging
import queue
import subprocess
import sys
import threading
from collections.abc import Callable, Sequence

import psutil

from .protocol import (
    ControlMessageError,
    Energy,
    Header,
    Perf,
    StartCommand,
    analytics_message,
    engine_args,
    meta_message,
    parse_control,
    parse_line,
)

logger = logging.getLogger(__name__)

READ_CHUNK = 65536
TERMINATE_TIMEOUT = 5.0
SENDER_JOIN_TIMEOUT = 0.5


def default_engine_command() -> list[str]:
    """Command that launches the engine with the current interpreter."""
    return [sys.executable, "-m", "wavestream.cli.engine"]


def terminate_process(proc: subprocess.Popen, timeout: float = TERMINATE_TIMEOUT) -> int:
    """Forcefully kill an engine process and its children, and reap it.

    Returns only once the process has exited.

    Returns:
        The process exit code.

    Raises:
        subprocess.TimeoutExpired: If the process survives SIGKILL for longer
            than ``timeout`` seconds.
    """
    children = []
    if proc.poll() is None:
        try:
            children = psutil.Process(proc.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            pass

    for child in children:
        with contextlib.suppress(psutil.NoSuchProcess):
            child.kill()

    if proc.poll() is None:
        proc.kill()
    returncode = proc.wait(timeout=timeout)

    if children:
        psutil.wait_procs(children, timeout=timeout)
    return returncode


class FrameAssembler:
    """Reassembles engine output chunks into text lines and whole frames.

    Frames are held back until the frame size is known from the header.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self._bytes = bytearray()
        self._text = ""
        self.frame_size = 0

    @property
    def pending_bytes(self) -> int:
        return len(self._bytes)

    @property
    def pending_text(self) -> str:
        return self._text

    def feed_text(self, chunk: str) -> list[str]:
        """Add text output; return the complete, non-empty lines."""
        self._text += chunk
        *lines, self._text = self._text.split("\n")
        return [line.strip() for line in lines if line.strip()]

    def feed_binary(self, chunk: bytes) -> list[bytes]:
        """Add binary output; return every frame completed so far."""
        self._bytes += chunk
        return self.drain()

    def drain(self) -> list[bytes]:
        if self.frame_size <= 0:
            return []
        frames = []
        while len(self._bytes) >= self.frame_size:
            frames.append(bytes(self._bytes[: self.frame_size]))
            del self._bytes[: self.frame_size]
        return frames


class RelaySession:
    """Relay state for one client connection.

    Engine output is reassembled by two reader threads and queued on a
    per-run outbox. A separate sender thread hands queued messages to the
    client, so a slow or backpressured client never delays a stop.

    Args:
        send_text: Sends a JSON text message to the client
        send_bytes: Sends a binary frame to the client
        engine_command: Command prefix for the engine process; the start
            configuration is appended as options (default: this package's
            engine CLI)
        launcher: Process factory with the ``subprocess.Popen`` signature
        cwd: Working directory for the engine process
    """

    def __init__(
        self,
        send_text: Callable[[str], None],
        send_bytes: Callable[[bytes], None],
        engine_command: Sequence[str] | None = None,
        launcher: Callable[..., subprocess.Popen] = subprocess.Popen,
        cwd: str | None = None,
    ):
        self._send_text = send_text
        self._send_bytes = send_bytes
        self._engine_command = list(engine_command or default_engine_command())
        self._launcher = launcher
        self._cwd = cwd

        # _lifecycle serializes start/stop/close; _lock guards reassembly
        # state and is never held while calling into the client
        self._lifecycle = threading.RLock()
        self._lock = threading.Lock()

        self._assembler = FrameAssembler()
        self._proc: subprocess.Popen | None = None
        self._readers: list[threading.Thread] = []
        self._sender: threading.Thread | None = None
        self._outbox: queue.Queue | None = None
        # Written only under _lifecycle
        self._generation = 0
        self._closed = False

    @property
    def process(self) -> subprocess.Popen | None:
        """The engine process of the current run, if any."""
        return self._proc

    @property
    def is_running(self) -> bool:
        proc = self._proc
        return proc is not None and proc.poll() is None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def assembler(self) -> FrameAssembler:
        return self._assembler

    def handle_message(self, raw: str | bytes) -> None:
        """Dispatch one client control message.

        Malformed messages are logged and dropped; the session stays usable.
        """
        try:
            command = parse_control(raw)
        except ControlMessageError as e:
            logger.warning("Dropping malformed control message: %s", e)
            return

        if isinstance(command, StartCommand):
            self.start(command.cfg)
        else:
            self.stop()

    def start(self, cfg: dict) -> None:
        """Stop any current run, then launch a new engine for ``cfg``.

        A launch failure is logged; the session stays open without a run.

        Raises:
            RuntimeError: If the session has been closed.
            ControlMessageError: If ``cfg`` lacks a required key.
        """
        try:
            args = engine_args(cfg)
        except KeyError as e:
            raise ControlMessageError(f"Start configuration is missing {e}") from e

        with self._lifecycle:
            if self._closed:
                raise RuntimeError("Cannot start an engine on a closed session")

            self.stop()

            command = self._engine_command + args
            logger.info("Launching engine: %s", " ".join(command))
            try:
                proc = self._launcher(
                    command,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    cwd=self._cwd,
                )
            except OSError as e:
                logger.error("Failed to launch engine: %s", e)
                return

            generation = self._generation
            outbox: queue.Queue = queue.Queue()
            with self._lock:
                self._proc = proc
            self._outbox = outbox

            self._sender = threading.Thread(
                target=self._pump_outbox,
                args=(outbox, generation),
                name=f"relay-sender-{proc.pid}",
                daemon=True,
            )
            self._readers = [
                threading.Thread(
                    target=self._pump_stderr,
                    args=(proc, generation, outbox),
                    name=f"relay-stderr-{proc.pid}",
                    daemon=True,
                ),
                threading.Thread(
                    target=self._pump_stdout,
                    args=(proc, generation, outbox),
                    name=f"relay-stdout-{proc.pid}",
                    daemon=True,
                ),
            ]
            self._sender.start()
            for reader in self._readers:
                reader.start()

    def stop(self) -> None:
        """Kill the current run (if any) and reset all buffered output.

        The engine is killed before any wait on the reader or sender
        threads. A sender blocked inside the client is waited on for at
        most ``SENDER_JOIN_TIMEOUT`` seconds and discards everything queued
        behind the blocked message.
        """
        with self._lifecycle:
            self._generation += 1
            proc, self._proc = self._proc, None

            if proc is not None:
                returncode = terminate_process(proc)
                logger.info("Engine stopped for session (exit code %s)", returncode)

            with self._lock:
                self._assembler.reset()

            readers, self._readers = self._readers, []
            for reader in readers:
                if reader is not threading.current_thread():
                    reader.join(timeout=TERMINATE_TIMEOUT)

            sender, self._sender = self._sender, None
            outbox, self._outbox = self._outbox, None
            if outbox is not None:
                outbox.put(None)
            if sender is not None and sender is not threading.current_thread():
                sender.join(timeout=SENDER_JOIN_TIMEOUT)
                if sender.is_alive():
                    logger.warning(
                        "Client is still blocked on a send; stopped run output will be dropped"
                    )

    def close(self) -> None:
        """Stop any run and mark the session as ended."""
        with self._lifecycle:
            self.stop()
            self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # -------------------------------------------------------------------------
    # Engine output
    # -------------------------------------------------------------------------

    def _handle_line(self, line: str) -> list[str | bytes]:
        """Act on one engine text line and return what to send.

        Caller holds ``_lock``.
        """
        message = parse_line(line)
        if isinstance(message, Header):
            self._assembler.frame_size = message.frame_bytes
            return [meta_message(message.nx, message.ny), *self._assembler.drain()]
        if isinstance(message, (Perf, Energy)):
            return [analytics_message(message)]
        return []

    def _pump_stderr(
        self, proc: subprocess.Popen, generation: int, outbox: queue.Queue
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = proc.stderr.read1(READ_CHUNK)
            if not chunk:
                break
            text = decoder.decode(chunk)
            with self._lock:
                if generation != self._generation:
                    break
                for line in self._assembler.feed_text(text):
                    logger.debug("engine: %s", line)
                    for item in self._handle_line(line):
                        outbox.put(item)

    def _pump_stdout(
        self, proc: subprocess.Popen, generation: int, outbox: queue.Queue
    ) -> None:
        while True:
            chunk = proc.stdout.read1(READ_CHUNK)
            if not chunk:
                break
            with self._lock:
                if generation != self._generation:
                    break
                for frame in self._assembler.feed_binary(chunk):
                    outbox.put(frame)

        returncode = proc.wait()
        with self._lock:
            if self._proc is proc:
                self._proc = None
                logger.info("Engine exited with code %s", returncode)

    def _pump_outbox(self, outbox: queue.Queue, generation: int) -> None:
        """Send queued output to the client until the run is stopped."""
        while True:
            item = outbox.get()
            if item is None:
                break
            if generation != self._generation:
                continue
            try:
                if isinstance(item, bytes):
                    self._send_bytes(item)
                else:
                    self._send_text(item)
            except Exception as e:
                logger.warning("Failed to send output to client: %s", e)
