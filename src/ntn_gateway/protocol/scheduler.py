"""Command sequencing policy for a dongle session.

The scheduler decides *what* to send next. It owns no task and never
sleeps; the session engine pops steps, writes them, and waits out each
step's ``delay_after`` before asking again.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass

from ntn_gateway.core.models import DongleConfig
from ntn_gateway.protocol.constants import (
    ADDR_APN,
    ADDR_LOCAL_PORT,
    ADDR_PASSWORD,
    ADDR_REMOTE_IP,
    ADDR_REMOTE_PORT,
    APN_REGISTERS,
    CONFIG_STEP_DELAY,
    LOCAL_PORT_REGISTERS,
    PASSWORD_REGISTERS,
    READ_REGISTERS,
    REMOTE_IP_REGISTERS,
    REMOTE_PORT_REGISTERS,
    STATIC_STEP_DELAY,
    STATUS_STEP_DELAY,
    UNIT_ID,
    UNLOCK_ATTEMPTS,
    UNLOCK_SETTLE_DELAY,
    UNLOCK_VERIFY_TIMEOUT,
    Command,
    FunctionCode,
)
from ntn_gateway.protocol.decoder import encode_modbus_string
from ntn_gateway.protocol.frames import encode_read_registers, encode_write_multiple_registers

logger = logging.getLogger(__name__)

STATIC_SEQUENCE = (Command.READ_MODEL, Command.READ_FIRMWARE, Command.READ_IMSI)
STATUS_SEQUENCE = (Command.READ_STATUS, Command.READ_SINR, Command.READ_RSRP)


@dataclass
class Step:
    """One scheduled command.

    Attributes:
        command: Correlation key set as pending before the write.
        frame: Encoded request.
        delay_after: Seconds to wait before the next step.
        completion: Resolved by the engine for grouped steps
            (configuration apply): False on a failed write or cancellation,
            True after the step marked ``final`` was written.
        final: Last step of its group.
    """

    command: Command
    frame: bytes
    delay_after: float = 0.0
    completion: asyncio.Future | None = None
    final: bool = False


@dataclass
class RetryPolicy:
    """Unlock handshake retry policy.

    Attributes:
        max_attempts: Password write + verification rounds before giving up.
        settle_delay: Wait between password write and verification read.
        verify_timeout: How long to wait for the verification reply.
        continue_degraded: Keep polling after all attempts failed.
    """

    max_attempts: int = UNLOCK_ATTEMPTS
    settle_delay: float = UNLOCK_SETTLE_DELAY
    verify_timeout: float = UNLOCK_VERIFY_TIMEOUT
    continue_degraded: bool = True


def read_step(command: Command, delay_after: float = 0.0, unit_id: int = UNIT_ID) -> Step:
    """Build a Read Input Registers step for a read command."""
    address, count = READ_REGISTERS[command]
    frame = encode_read_registers(unit_id, FunctionCode.READ_INPUT_REGISTERS, address, count)
    return Step(command=command, frame=frame, delay_after=delay_after)


def unlock_step(unit_id: int = UNIT_ID) -> Step:
    """Password write with the fixed all-zero password."""
    frame = encode_write_multiple_registers(unit_id, ADDR_PASSWORD, [0] * PASSWORD_REGISTERS)
    return Step(command=Command.UNLOCK_WRITE, frame=frame)


def verify_step(unit_id: int = UNIT_ID) -> Step:
    """Model-name read used to confirm the unlock."""
    return read_step(Command.VERIFY_MODEL, unit_id=unit_id)


def config_steps(
    config: DongleConfig,
    unit_id: int = UNIT_ID,
    delay_after: float = CONFIG_STEP_DELAY,
    completion: asyncio.Future | None = None,
) -> list[Step]:
    """Build the four configuration writes: remote port, APN, remote IP, local port.

    Raises:
        ValueError: If a value does not fit its register field.
    """
    fields = (
        (ADDR_REMOTE_PORT, REMOTE_PORT_REGISTERS, config.remote_port),
        (ADDR_APN, APN_REGISTERS, config.apn),
        (ADDR_REMOTE_IP, REMOTE_IP_REGISTERS, config.remote_ip),
        (ADDR_LOCAL_PORT, LOCAL_PORT_REGISTERS, config.local_port),
    )
    # Encode everything first so a bad value rejects the whole apply
    frames = [
        encode_write_multiple_registers(unit_id, address, encode_modbus_string(value, width))
        for address, width, value in fields
    ]
    steps = [
        Step(command=Command.WRITE_CONFIG, frame=frame, delay_after=delay_after, completion=completion)
        for frame in frames
    ]
    steps[-1].final = True
    return steps


class PollingScheduler:
    """Sequences static info reads, periodic status reads and config writes.

    Static info is planned once on ``start()``. A status sequence is planned
    on each ``tick()`` but only after the static sequence drained and only
    when nothing else is planned, so sequences never interleave. Injected
    steps (configuration writes) go ahead of planned ones without
    pre-empting the step already in flight.
    """

    def __init__(
        self,
        unit_id: int = UNIT_ID,
        static_step_delay: float = STATIC_STEP_DELAY,
        status_step_delay: float = STATUS_STEP_DELAY,
    ):
        self.unit_id = unit_id
        self.static_step_delay = static_step_delay
        self.status_step_delay = status_step_delay

        self._planned: deque[Step] = deque()
        self._injected: deque[Step] = deque()
        self._static_pending = False

    def static_info_steps(self) -> list[Step]:
        return [read_step(cmd, self.static_step_delay, self.unit_id) for cmd in STATIC_SEQUENCE]

    def status_steps(self) -> list[Step]:
        steps = [read_step(cmd, self.status_step_delay, self.unit_id) for cmd in STATUS_SEQUENCE]
        steps[-1].delay_after = 0.0
        return steps

    @property
    def static_complete(self) -> bool:
        """Whether the static info sequence has been fully handed out."""
        return not self._static_pending

    def start(self) -> None:
        """Plan the one-shot static info sequence."""
        self._planned.clear()
        self._planned.extend(self.static_info_steps())
        self._static_pending = True

    def tick(self) -> bool:
        """Plan a status sequence for this poll period.

        Returns:
            True if a sequence was planned, False if skipped because the
            static sequence or a previous status sequence is still queued.
        """
        if self._static_pending or self._planned:
            logger.debug("Poll tick skipped, previous sequence still queued")
            return False
        self._planned.extend(self.status_steps())
        return True

    def inject(self, steps: list[Step]) -> None:
        """Queue extra steps ahead of the next planned step."""
        self._injected.extend(steps)

    def next_step(self) -> Step | None:
        """Pop the next step to execute, injected steps first."""
        if self._injected:
            return self._injected.popleft()
        if self._planned:
            step = self._planned.popleft()
            if not self._planned:
                self._static_pending = False
            return step
        return None

    def discard(self, completion: asyncio.Future) -> list[Step]:
        """Drop the queued steps of one group.

        Returns:
            The dropped steps.
        """
        dropped = [s for s in self._injected if s.completion is completion]
        if dropped:
            self._injected = deque(s for s in self._injected if s.completion is not completion)
            logger.debug("Discarded %d steps of an abandoned group", len(dropped))
        return dropped

    def cancel(self) -> list[Step]:
        """Drop every queued step.

        Returns:
            The dropped steps, so their completions can be resolved.
        """
        dropped = list(self._injected) + list(self._planned)
        self._injected.clear()
        self._planned.clear()
        self._static_pending = False
        if dropped:
            logger.debug("Cancelled %d scheduled steps", len(dropped))
        return dropped
