"""
User control commands for controllable devices.

A command sets the state fields the simulation engine consumes on its next
cycle (battery control mode, appliance on/off, hot-water boost, EV charger
target).  Commands are written through the repository's batch update, so
between a command and a concurrent simulation cycle the last writer wins.

Operations:
- apply_control(device, command): Return the device's state with the command applied.
- send_control(repository, device_id, command): Load, apply, and persist.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import Union

from pydantic import BaseModel, Field, model_validator

from hems.src.models import (
    ApplianceDevice,
    BatteryControlMode,
    BatteryDevice,
    Device,
    DeviceState,
    EVChargerDevice,
    HotWaterStorageDevice,
    StateUpdate,
)
from hems.src.repository import DeviceRepository

logger = logging.getLogger(__name__)


class BatteryControlCommand(BaseModel):
    """Set the battery control mode.

    ``power_w`` is required (and positive) for the force modes and ignored
    otherwise.
    """

    mode: BatteryControlMode
    power_w: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _require_force_power(self) -> BatteryControlCommand:
        if self.mode in ("force_charge", "force_discharge") and self.power_w is None:
            raise ValueError(f"power_w is required for mode '{self.mode}'")
        return self


class ApplianceControlCommand(BaseModel):
    is_on: bool


class HotWaterControlCommand(BaseModel):
    boost_on: bool
    target_temperature_c: float | None = None


class EVChargerControlCommand(BaseModel):
    is_charging: bool
    target_power_w: float | None = Field(default=None, ge=0)


ControlCommand = Union[
    BatteryControlCommand,
    ApplianceControlCommand,
    HotWaterControlCommand,
    EVChargerControlCommand,
]


def apply_control(device: Device, command: ControlCommand) -> DeviceState:
    """Return *device*'s state with *command* applied.

    Raises:
        ValueError: If the command does not match the device type, or the
            appliance is not controllable.
    """
    match device, command:
        case BatteryDevice(), BatteryControlCommand():
            force_power_w = command.power_w if command.mode.startswith("force_") else None
            return device.state.model_copy(
                update={"control_mode": command.mode, "force_power_w": force_power_w}
            )

        case ApplianceDevice(), ApplianceControlCommand():
            if not device.config.is_controllable:
                raise ValueError(f"Appliance {device.id} is not controllable")
            power_w = device.config.power_w if command.is_on else 0.0
            return device.state.model_copy(update={"is_on": command.is_on, "power_w": power_w})

        case HotWaterStorageDevice(), HotWaterControlCommand():
            update: dict = {"is_boost_on": command.boost_on}
            if command.target_temperature_c is not None:
                update["target_temperature_c"] = max(
                    device.config.min_temperature_c,
                    min(device.config.max_temperature_c, command.target_temperature_c),
                )
            return device.state.model_copy(update=update)

        case EVChargerDevice(), EVChargerControlCommand():
            config = device.config
            requested_w = (
                command.target_power_w
                if command.target_power_w is not None
                else device.state.target_power_w
            )
            if requested_w is None:
                requested_w = config.max_power_w
            target_w = max(config.min_power_w, min(config.max_power_w, requested_w))
            return device.state.model_copy(
                update={
                    "is_charging": command.is_charging,
                    "target_power_w": target_w,
                    "power_w": target_w if command.is_charging else 0.0,
                }
            )

    raise ValueError(
        f"{type(command).__name__} cannot be applied to {device.device_type} device {device.id}"
    )


async def send_control(
    repository: DeviceRepository,
    device_id: str,
    command: ControlCommand,
) -> DeviceState:
    """Apply *command* to the stored device and persist the new state.

    Returns:
        The persisted state.

    Raises:
        LookupError: If no device has *device_id*.
        ValueError: If the command does not match the device.
        RepositoryError: If the write fails.
    """
    device = await repository.get_device(device_id)
    if device is None:
        raise LookupError(f"Device {device_id} not found")

    state = apply_control(device, command)
    await repository.batch_update_state([StateUpdate(device_id, state)])
    logger.info("Applied %s to device %s", type(command).__name__, device_id)
    return state
