# updi_transport/serialupdi.py
"""
Реальный UPDI через обычный TTL-UART (RX и TX соединены через резистор).

Сам протокол (break/sync, ключи, NVMCTRL) делает pymcuprog; здесь только
тонкий слой, который приводит его к контракту NvmDriver:
- постраничная запись flash и чтение кусками не больше 256 байт
- любые исключения библиотеки/порта превращаются в DriverError
"""
from __future__ import annotations
import logging
from contextlib import contextmanager
from dataclasses import dataclass

from pymcuprog.deviceinfo import deviceinfo
from pymcuprog.pymcuprog_errors import PymcuprogError
from pymcuprog.serialupdi.application import UpdiApplication
from serial import SerialException

from ..config import UPDI_MAX_TRANSFER
from ..errors import DriverError, DriverInitError, UnsupportedDevice
from ..firmware.map import FlashGeometry

logger = logging.getLogger(__name__)

_LINK_ERRORS = (PymcuprogError, SerialException, OSError)


@dataclass(frozen=True)
class UpdiTarget:
    """Описание чипа в том виде, в каком его ждёт стек serialupdi."""
    name: str
    flash_start: int
    flash_size: int
    flash_pagesize: int
    syscfg_address: int
    nvmctrl_address: int
    sigrow_address: int
    fuses_address: int
    userrow_address: int

    @classmethod
    def lookup(cls, name: str) -> "UpdiTarget":
        key = name.lower()
        if key.startswith(("tiny", "mega")):
            # pymcuprog знает чипы как attiny817, atmega4809
            key = "at" + key
        try:
            info = deviceinfo.getdeviceinfo(key)
        except (ImportError, PymcuprogError) as exc:
            raise UnsupportedDevice(f"Device {name} not support") from exc
        try:
            return cls(
                name=key,
                flash_start=info["flash_address_byte"],
                flash_size=info["flash_size_bytes"],
                flash_pagesize=info["flash_page_size_bytes"],
                syscfg_address=info["syscfg_base"],
                nvmctrl_address=info["nvmctrl_base"],
                sigrow_address=info["signatures_address_byte"],
                fuses_address=info["fuses_address_byte"],
                userrow_address=info["user_row_address_byte"],
            )
        except KeyError as exc:
            raise UnsupportedDevice(f"Device {name} is not an UPDI device (no {exc})") from exc

    @property
    def geometry(self) -> FlashGeometry:
        return FlashGeometry(self.flash_start, self.flash_size, self.flash_pagesize)


@contextmanager
def _link(what: str):
    try:
        yield
    except _LINK_ERRORS as exc:
        raise DriverError(f"{what}: {exc}", code=getattr(exc, "errno", None)) from exc


class SerialUpdiDriver:
    def __init__(self, app: UpdiApplication, target: UpdiTarget):
        self.app = app
        self.target = target

    @classmethod
    def open(cls, device: str, comport: str, baudrate: int) -> "SerialUpdiDriver":
        target = UpdiTarget.lookup(device)
        try:
            app = UpdiApplication(comport, baudrate, target)
        except _LINK_ERRORS as exc:
            raise DriverInitError(f"Nvm initialize failed on {comport}: {exc}") from exc
        logger.info("UPDI link up on %s @ %d for %s", comport, baudrate, target.name)
        return cls(app, target)

    def device_info(self) -> dict:
        with _link("read device info"):
            info = self.app.read_device_info()
        return dict(info) if isinstance(info, dict) else {"device": self.target.name}

    def enter_progmode(self) -> None:
        with _link("enter progmode"):
            self.app.enter_progmode()

    def leave_progmode(self) -> None:
        with _link("leave progmode"):
            self.app.leave_progmode()

    def unlock(self) -> None:
        with _link("unlock device"):
            self.app.unlock()

    def chip_erase(self) -> None:
        with _link("chip erase"):
            self.app.nvm.chip_erase()

    def flash_info(self) -> FlashGeometry:
        return self.target.geometry

    def read_flash(self, address: int, size: int) -> bytes:
        return self.read_mem(address, size)

    def write_flash(self, address: int, data: bytes) -> None:
        page = self.target.flash_pagesize
        with _link(f"write flash at {address:04x}"):
            for off in range(0, len(data), page):
                self.app.nvm.write_flash(address + off, data[off:off + page])

    def read_mem(self, address: int, size: int) -> bytes:
        out = bytearray()
        with _link(f"read memory at {address:04x}"):
            for off in range(0, size, UPDI_MAX_TRANSFER):
                n = min(UPDI_MAX_TRANSFER, size - off)
                out.extend(self.app.readwrite.read_data(address + off, n))
        return bytes(out)

    def write_mem(self, address: int, data: bytes) -> None:
        with _link(f"write memory at {address:04x}"):
            # UpdiApplication.write_data в pymcuprog 3.19 зациклен на себя
            self.app.readwrite.write_data(address, data)

    def write_fuse(self, index: int, value: int) -> None:
        with _link(f"write fuse {index}"):
            self.app.nvm.write_fuse(self.target.fuses_address + index, [value])

    def close(self) -> None:
        phy = getattr(self.app, "phy", None)
        ser = getattr(phy, "ser", None)
        if ser is not None:
            ser.close()
