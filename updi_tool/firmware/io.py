# firmware/io.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..errors import DriverError, DriverInitError, UnsupportedDevice
from .map import FUSES_ADDRESS, FlashGeometry, lookup_sim_device
from .simulate import SimTarget

logger = logging.getLogger(__name__)


# ---- Контракт драйвера (сессии) ----
class NvmDriver(Protocol):
    def device_info(self) -> dict: ...
    def enter_progmode(self) -> None: ...
    def leave_progmode(self) -> None: ...
    def unlock(self) -> None: ...
    def chip_erase(self) -> None: ...
    def flash_info(self) -> FlashGeometry: ...
    def read_flash(self, address: int, size: int) -> bytes: ...
    def write_flash(self, address: int, data: bytes) -> None: ...
    def read_mem(self, address: int, size: int) -> bytes: ...
    def write_mem(self, address: int, data: bytes) -> None: ...
    def write_fuse(self, index: int, value: int) -> None: ...
    def close(self) -> None: ...


# ---- Реализация: симулятор ----
@dataclass
class SimDriver:
    target: SimTarget
    progmode: bool = field(default=False, init=False)

    def _mem(self, op, *args):
        try:
            return op(*args)
        except ValueError as exc:
            raise DriverError(str(exc)) from exc

    def _check_flash_range(self, address: int, size: int):
        flash = self.target.device.flash
        if address < flash.flash_start or address + size > flash.flash_end:
            raise DriverError(f"flash access {address:04x}+{size} out of range")

    def _require_progmode(self, what: str):
        if not self.progmode:
            raise DriverError(f"{what}: device not in programming mode")

    def device_info(self) -> dict:
        sig = self._mem(self.target.signature)
        return {
            "backend": "sim",
            "device": self.target.device.name,
            "device_id": sig.hex().upper(),
            "store": str(self.target.store),
        }

    def enter_progmode(self) -> None:
        if self.target.locked:
            raise DriverError("device is locked", code=-1)
        self.progmode = True

    def leave_progmode(self) -> None:
        self.progmode = False

    def unlock(self) -> None:
        # ключ chip erase снимает блокировку и стирает flash
        self._mem(self.target.erase_flash)
        self.target.locked = False
        self.progmode = True

    def chip_erase(self) -> None:
        self._require_progmode("chip erase")
        self._mem(self.target.erase_flash)

    def flash_info(self) -> FlashGeometry:
        return self.target.device.flash

    def read_flash(self, address: int, size: int) -> bytes:
        self._check_flash_range(address, size)
        return self._mem(self.target.read, address, size)

    def write_flash(self, address: int, data: bytes) -> None:
        self._require_progmode("write flash")
        self._check_flash_range(address, len(data))
        self._mem(self.target.write, address, bytes(data))

    def read_mem(self, address: int, size: int) -> bytes:
        return self._mem(self.target.read, address, size)

    def write_mem(self, address: int, data: bytes) -> None:
        self._mem(self.target.write, address, bytes(data))

    def write_fuse(self, index: int, value: int) -> None:
        self._mem(self.target.write, FUSES_ADDRESS + index, bytes([value]))

    def close(self) -> None:
        self.progmode = False


def open_driver(device: str, comport: str | None, baudrate: int,
                sim_store: Path | None = None) -> NvmDriver:
    """Создать сессию: симулятор, если задан sim_store, иначе реальный UPDI через COM-порт."""
    if sim_store is not None:
        dev = lookup_sim_device(device)
        if dev is None:
            raise UnsupportedDevice(f"Device {device} not supported by simulator")
        logger.info("Using simulated %s (%s)", dev.name, sim_store)
        try:
            return SimDriver(SimTarget(sim_store, dev))
        except OSError as exc:
            raise DriverInitError(f"cannot open simulator store {sim_store}: {exc}") from exc

    from ..updi_transport.serialupdi import SerialUpdiDriver
    return SerialUpdiDriver.open(device, comport, baudrate)
