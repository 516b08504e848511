"""Session engine for NTN dongle communication.

Owns the transport, runs the unlock handshake, drives the polling
scheduler, runs the read loop and publishes telemetry snapshots.

Two tasks run per session:

- the read loop: blocking reads, frame validation, decoding against the
  pending command, snapshot merges. Sole writer of the telemetry cache.
- the driver: handshake, then polling. Sole writer of the pending command.
"""

import asyncio
import logging

from ntn_gateway.core.cache import TelemetryCache
from ntn_gateway.core.errors import HandshakeVerificationFailed, TransportIoError, TransportOpenError
from ntn_gateway.core.events import EventLog
from ntn_gateway.core.models import DongleConfig, LogEvent, TelemetrySnapshot
from ntn_gateway.protocol.constants import (
    BAUD_RATE,
    CONFIG_STEP_DELAY,
    POLL_INTERVAL,
    STARTUP_DELAY,
    UNIT_ID,
    Command,
    SessionState,
)
from ntn_gateway.protocol.correlation import PendingCommand
from ntn_gateway.protocol.frames import CodecError, decode_and_validate, hex_string
from ntn_gateway.protocol.scheduler import (
    PollingScheduler,
    RetryPolicy,
    Step,
    config_steps,
    unlock_step,
    verify_step,
)
from ntn_gateway.serial.assembler import FrameAssembler
from ntn_gateway.serial.transport import Transport

logger = logging.getLogger(__name__)

# How long disconnect waits for the read loop after cancelling the read
READ_EXIT_TIMEOUT = 2.0

_ACTIVE_STATES = (
    SessionState.CONNECTING,
    SessionState.HANDSHAKING,
    SessionState.POLLING,
    SessionState.CLOSING,
)


class SessionEngine:
    """Runs one dongle session over a Transport.

    Lifecycle: Idle -> Connecting -> Handshaking -> Polling -> Closing ->
    Disconnected. A failed open ends in Faulted. A failed unlock does not
    end the session: polling continues with whatever the device answers.
    """

    def __init__(
        self,
        transport: Transport,
        cache: TelemetryCache | None = None,
        events: EventLog | None = None,
        unit_id: int = UNIT_ID,
        baudrate: int = BAUD_RATE,
        scheduler: PollingScheduler | None = None,
        retry_policy: RetryPolicy | None = None,
        poll_interval: float = POLL_INTERVAL,
        startup_delay: float = STARTUP_DELAY,
        config_step_delay: float = CONFIG_STEP_DELAY,
    ):
        """Initialize session engine.

        Args:
            transport: Byte stream to the dongle.
            cache: Telemetry snapshot store.
            events: Event feed for sent/received/system events.
            unit_id: Modbus unit id of the dongle.
            baudrate: Line speed passed to ``transport.open()``.
            scheduler: Command sequencing policy.
            retry_policy: Unlock handshake retry policy.
            poll_interval: Seconds between status sequences.
            startup_delay: Settle time after open before the first unlock.
            config_step_delay: Pause after each configuration write.
        """
        self._transport = transport
        self._cache = cache or TelemetryCache()
        self._events = events or EventLog()
        self._unit_id = unit_id
        self._baudrate = baudrate
        self._scheduler = scheduler or PollingScheduler(unit_id=unit_id)
        self._retry_policy = retry_policy or RetryPolicy()
        self._poll_interval = poll_interval
        self._startup_delay = startup_delay
        self._config_step_delay = config_step_delay

        self._state = SessionState.IDLE
        self._pending = PendingCommand()
        self._assembler = FrameAssembler()
        self._read_task: asyncio.Task | None = None
        self._driver_task: asyncio.Task | None = None
        self._wakeup = asyncio.Event()
        self._current_step: Step | None = None
        self._verify_waiter: asyncio.Future | None = None
        self._unlock_verified = False
        self._unlock_attempts = 0

    # -- properties ----------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state

    @property
    def connected(self) -> bool:
        """Whether the transport is open and the session active."""
        return self._state in _ACTIVE_STATES and self._transport.is_open

    @property
    def running(self) -> bool:
        """Whether the driver task is alive."""
        return self._driver_task is not None and not self._driver_task.done()

    @property
    def unlock_verified(self) -> bool:
        """Whether the last handshake verified the unlock."""
        return self._unlock_verified

    @property
    def unlock_attempts(self) -> int:
        """Password attempts made in the last handshake."""
        return self._unlock_attempts

    @property
    def pending_command(self) -> Command | None:
        """Command the next reply will be attributed to."""
        return self._pending.current

    @property
    def cache(self) -> TelemetryCache:
        return self._cache

    @property
    def events(self) -> EventLog:
        return self._events

    async def snapshot(self) -> TelemetrySnapshot:
        """Current telemetry, by value."""
        return await self._cache.get()

    def logs(self) -> list[LogEvent]:
        """Event feed, oldest first."""
        return self._events.get_all()

    def clear_logs(self) -> None:
        self._events.clear()

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            logger.debug("Session state %s -> %s", self._state.value, state.value)
            self._state = state

    # -- connect / disconnect -------------------------------------------------

    async def connect(self) -> None:
        """Open the transport and start the session.

        Returns once the port is open and the read loop and driver tasks
        are running; the handshake continues in the background.

        Raises:
            TransportOpenError: If the transport cannot be opened. The
                session is left Faulted.
        """
        if self._state in _ACTIVE_STATES:
            logger.debug("Session already active (%s)", self._state.value)
            return

        # Leftovers of a stopped session (e.g. Faulted after a failed unlock)
        if self._read_task is not None or self._transport.is_open:
            await self.disconnect()

        self._set_state(SessionState.CONNECTING)
        await self._cache.reset()
        self._pending.clear()
        self._assembler.reset()
        self._unlock_verified = False
        self._unlock_attempts = 0

        self._events.system(f"Opening transport at {self._baudrate} baud...")
        try:
            await self._transport.open(self._baudrate)
        except TransportOpenError as e:
            self._events.system(f"Connection failed: {e}", is_error=True)
            self._set_state(SessionState.FAULTED)
            raise

        self._events.system("Transport open")
        self._read_task = asyncio.create_task(self._read_loop(), name="ntn-read-loop")
        # Let the read loop take the reader before anything is written
        await asyncio.sleep(0)

        self._set_state(SessionState.HANDSHAKING)
        self._driver_task = asyncio.create_task(self._drive(), name="ntn-driver")

    async def disconnect(self) -> None:
        """Stop polling, cancel the outstanding read, wait for the read loop, close.

        Every step runs even if an earlier one fails.
        """
        if self._state is SessionState.CLOSING:
            logger.debug("Disconnect already in progress")
            return
        idle = self._state in (SessionState.IDLE, SessionState.DISCONNECTED)
        if idle and self._read_task is None and not self._transport.is_open:
            return

        self._events.system("Disconnecting...")
        self._set_state(SessionState.CLOSING)

        try:
            await self._stop_driver()
        except Exception as e:
            logger.warning("Error stopping driver: %s", e)

        try:
            self._transport.cancel_read()
        except Exception as e:
            logger.debug("Read cancel error (ignoring): %s", e)

        read_exited = False
        try:
            read_exited = await self._stop_read_loop()
        except Exception as e:
            logger.debug("Read loop await error: %s", e)

        if read_exited:
            try:
                await self._transport.close()
            except Exception as e:
                self._events.system(f"Port close error: {e}", is_error=True)
        else:
            # The blocked read may still be using the port
            self._events.system("Read did not return, port left open", is_error=True)

        self._pending.clear()
        self._set_state(SessionState.DISCONNECTED)
        self._events.system("Disconnected")

    async def _stop_driver(self) -> None:
        task = self._driver_task
        self._driver_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._drop_scheduled()

    async def _stop_read_loop(self) -> bool:
        """Wait for the read loop to return after its read was cancelled.

        Returns:
            False if it had to be cancelled; its read may still be running.
        """
        task = self._read_task
        self._read_task = None
        if task is None:
            return True
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=READ_EXIT_TIMEOUT)
            return True
        except TimeoutError:
            logger.warning("Read loop did not exit after cancel, cancelling task")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            return False

    def _drop_scheduled(self) -> None:
        """Cancel queued steps and fail any configuration apply waiting on them."""
        dropped = self._scheduler.cancel()
        if self._current_step is not None:
            dropped.append(self._current_step)
            self._current_step = None
        for step in dropped:
            if step.completion is not None and not step.completion.done():
                step.completion.set_result(False)

    # -- writing ---------------------------------------------------------------

    async def _write(self, data: bytes) -> bool:
        """Hand bytes to the transport; failures are logged, not raised."""
        try:
            await self._transport.write(data)
        except TransportIoError as e:
            self._events.system(f"Write error: {e}", is_error=True)
            return False
        self._events.sent(data, hex_string(data))
        return True

    async def _execute(self, step: Step) -> bool:
        """Set the pending command, write, then wait out the step delay."""
        self._current_step = step
        self._pending.expect(step.command)
        ok = await self._write(step.frame)

        if step.completion is not None:
            if not ok:
                # The rest of a failed group is never written
                self._scheduler.discard(step.completion)
                if not step.completion.done():
                    step.completion.set_result(False)
            elif step.final and not step.completion.done():
                step.completion.set_result(True)

        if step.delay_after > 0:
            await asyncio.sleep(step.delay_after)
        self._current_step = None
        return ok

    # -- driver ------------------------------------------------------------------

    async def _drive(self) -> None:
        """Handshake, then poll until the session closes."""
        try:
            if self._startup_delay > 0:
                await asyncio.sleep(self._startup_delay)

            verified = await self._handshake()
            if not verified and not self._retry_policy.continue_degraded:
                self._events.system("Session stopped: dongle is locked", is_error=True)
                self._set_state(SessionState.FAULTED)
                return

            self._set_state(SessionState.POLLING)
            await self._poll()

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Session driver failed")
            self._events.system(f"Session error: {e}", is_error=True)
        finally:
            self._drop_scheduled()

    async def _handshake(self) -> bool:
        """Unlock the dongle with bounded retries.

        Returns:
            True if a verification read returned a model name.
        """
        policy = self._retry_policy

        for attempt in range(1, policy.max_attempts + 1):
            self._unlock_attempts = attempt
            self._events.system(f"Initializing dongle (password attempt {attempt}/{policy.max_attempts})...")

            try:
                await self._unlock_once()
            except HandshakeVerificationFailed as e:
                logger.debug("Unlock attempt %d failed: %s", attempt, e)
                self._events.system("Unlock verification failed, retrying...", is_error=True)
                continue

            self._unlock_verified = True
            self._events.system("Dongle unlocked successfully")
            return True

        self._events.system(
            f"CRITICAL: Failed to unlock dongle after {policy.max_attempts} attempts",
            is_error=True,
        )
        return False

    async def _unlock_once(self) -> None:
        """Write the password, then read the model name back.

        Raises:
            HandshakeVerificationFailed: Empty model name or no reply in time.
        """
        policy = self._retry_policy

        await self._execute(unlock_step(self._unit_id))
        await asyncio.sleep(policy.settle_delay)

        waiter = asyncio.get_running_loop().create_future()
        self._verify_waiter = waiter
        try:
            await self._execute(verify_step(self._unit_id))
            verified = await asyncio.wait_for(waiter, timeout=policy.verify_timeout)
        except TimeoutError:
            raise HandshakeVerificationFailed("no verification reply") from None
        finally:
            self._verify_waiter = None

        if not verified:
            raise HandshakeVerificationFailed("empty model name")

    async def _poll(self) -> None:
        """Run the static sequence, then a status sequence every poll interval."""
        loop = asyncio.get_running_loop()
        self._scheduler.start()
        next_tick: float | None = None

        while self._state is SessionState.POLLING:
            step = self._scheduler.next_step()
            if step is not None:
                await self._execute(step)
                continue

            now = loop.time()
            if next_tick is None:
                # Static info is done; the periodic timer starts now
                next_tick = now + self._poll_interval
            if now >= next_tick:
                self._scheduler.tick()
                while next_tick <= now:
                    next_tick += self._poll_interval
                continue

            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=next_tick - now)
            except TimeoutError:
                pass

    # -- configuration -------------------------------------------------------------

    async def apply_config(self, config: DongleConfig) -> bool:
        """Write the network configuration to the dongle.

        The four writes (remote port, APN, remote IP, local port) are queued
        ahead of the next scheduled step; a step already in flight finishes
        first.

        Returns:
            True once all four frames were handed to the transport; False if
            the session is not polling, a write failed or the session closed.

        Raises:
            ValueError: If a value does not fit its register field.
        """
        if self._state is not SessionState.POLLING:
            self._events.system("Configuration rejected: session is not polling", is_error=True)
            return False

        completion = asyncio.get_running_loop().create_future()
        steps = config_steps(
            config,
            unit_id=self._unit_id,
            delay_after=self._config_step_delay,
            completion=completion,
        )

        self._events.system(
            f"Applying configuration (APN={config.apn}, remote={config.remote_ip}:{config.remote_port}, "
            f"local port={config.local_port})"
        )
        self._scheduler.inject(steps)
        self._wakeup.set()

        success = await completion
        if success:
            self._events.system("Configuration written, replug the dongle to activate it")
        else:
            self._events.system("Configuration apply failed", is_error=True)
        return success

    # -- read loop -------------------------------------------------------------------

    async def _read_loop(self) -> None:
        """Read chunks until end of stream, a read error, or cancellation."""
        try:
            async with self._transport.reader():
                while True:
                    try:
                        chunk = await self._transport.read()
                    except TransportIoError as e:
                        self._events.system(f"Read error: {e}", is_error=True)
                        break

                    if chunk is None:
                        if self._state is not SessionState.CLOSING:
                            self._events.system("Transport closed unexpectedly", is_error=True)
                        break
                    if not chunk:
                        continue

                    for raw in self._assembler.feed(chunk):
                        await self._handle_frame(raw)
        except TransportIoError as e:
            self._events.system(f"Read loop could not start: {e}", is_error=True)
        finally:
            logger.debug(
                "Read loop exited (%d bytes unframed, stats %s)",
                self._assembler.pending,
                self._assembler.stats,
            )

    async def _handle_frame(self, raw: bytes) -> None:
        """Validate, decode against the pending command, merge, log."""
        dump = hex_string(raw)
        try:
            frame = decode_and_validate(raw)
        except CodecError as e:
            self._events.received(raw, f"{dump} | Invalid frame: {e}", is_error=True)
            return

        result = self._pending.resolve(frame)
        if result is None:
            self._events.received(raw, dump)
            return

        if result.updates:
            await self._cache.merge(result.updates)

        waiter = self._verify_waiter
        if result.verified is not None and waiter is not None and not waiter.done():
            waiter.set_result(result.verified)

        self._events.received(raw, f"{dump} | {result.description}")
