# firmware/simulate.py
from pathlib import Path

from ..config import ERASED_BYTE
from .map import DATA_SPACE_SIZE, SIGROW_ADDRESS, SimDevice


class SimTarget:
    """
    Очень простой симулятор UPDI-микроконтроллера:
    - хранит всё адресное пространство (64 КБ) в файле .bin (создаётся при первом запуске)
    - flash отображена с flash_start, фьюзы лежат с 0x1280, сигнатура с 0x1100
    - умеет «блокироваться»: пока locked, в режим программирования не войти
    """
    def __init__(self, store: Path, device: SimDevice, locked: bool = False):
        self.store = Path(store)
        self.device = device
        self.locked = locked
        self.store.parent.mkdir(parents=True, exist_ok=True)
        if not self.store.exists() or self.store.stat().st_size != DATA_SPACE_SIZE:
            # создаём «чистый» чип: flash стёрта, в SIGROW сигнатура
            image = bytearray(DATA_SPACE_SIZE)
            flash = device.flash
            image[flash.flash_start:flash.flash_end] = bytes([ERASED_BYTE]) * flash.flash_size
            image[SIGROW_ADDRESS:SIGROW_ADDRESS + len(device.signature)] = device.signature
            self.store.write_bytes(image)

    def read(self, addr: int, size: int) -> bytes:
        data = self.store.read_bytes()
        end = addr + size
        if addr < 0 or size < 0 or end > len(data):
            raise ValueError("Read out of range")
        return data[addr:end]

    def write(self, addr: int, chunk: bytes):
        data = bytearray(self.store.read_bytes())
        end = addr + len(chunk)
        if addr < 0 or end > len(data):
            raise ValueError("Write out of range")
        data[addr:end] = chunk
        self.store.write_bytes(bytes(data))

    def erase_flash(self):
        flash = self.device.flash
        self.write(flash.flash_start, bytes([ERASED_BYTE]) * flash.flash_size)

    def signature(self) -> bytes:
        return self.read(SIGROW_ADDRESS, len(self.device.signature))
