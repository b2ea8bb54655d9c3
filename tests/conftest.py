from __future__ import annotations
from pathlib import Path

import pytest
from intelhex import IntelHex

from updi_tool.errors import DriverError
from updi_tool.firmware.map import FlashGeometry


class FakeDriver:
    """
    Записывающий фейк драйвера: плоская память 64 КБ, журнал вызовов,
    отказ любого метода через fail={"chip_erase": код}.
    """
    def __init__(self, geometry=FlashGeometry(0x8000, 8192, 64), locked=False, fail=None):
        self.geometry = geometry
        self.mem = bytearray(0x10000)
        self.mem[geometry.flash_start:geometry.flash_end] = b"\xff" * geometry.flash_size
        self.locked = locked
        self.fail = dict(fail or {})
        self.calls = []

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise DriverError(f"{name} failed", code=self.fail[name])

    def names(self):
        return [c[0] for c in self.calls]

    def device_info(self):
        self._call("device_info")
        return {"device": "fake"}

    def enter_progmode(self):
        self._call("enter_progmode")
        if self.locked:
            raise DriverError("locked", code=-1)

    def leave_progmode(self):
        self._call("leave_progmode")

    def unlock(self):
        self._call("unlock")
        self.locked = False

    def chip_erase(self):
        self._call("chip_erase")
        g = self.geometry
        self.mem[g.flash_start:g.flash_end] = b"\xff" * g.flash_size

    def flash_info(self):
        self._call("flash_info")
        return self.geometry

    def read_flash(self, address, size):
        self._call("read_flash", address, size)
        return bytes(self.mem[address:address + size])

    def write_flash(self, address, data):
        self._call("write_flash", address, len(data))
        self.mem[address:address + len(data)] = data

    def read_mem(self, address, size):
        self._call("read_mem", address, size)
        return bytes(self.mem[address:address + size])

    def write_mem(self, address, data):
        self._call("write_mem", address, bytes(data))
        self.mem[address:address + len(data)] = data

    def write_fuse(self, index, value):
        self._call("write_fuse", index, value)
        self.mem[0x1280 + index] = value

    def close(self):
        self._call("close")


@pytest.fixture
def fake():
    return FakeDriver()


def make_hex(path: Path, start: int, data: bytes) -> Path:
    ih = IntelHex()
    ih.frombytes(data, offset=start)
    ih.write_hex_file(str(path))
    return path


@pytest.fixture
def page_hex(tmp_path):
    """Одна страница (64 байта) программы, адресованная с нуля."""
    return make_hex(tmp_path / "fw.hex", 0, bytes(range(64)))
