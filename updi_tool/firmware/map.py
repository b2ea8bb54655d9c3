# firmware/map.py
from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class FlashGeometry:
    flash_start: int
    flash_size: int
    flash_pagesize: int

    def __post_init__(self):
        ps = self.flash_pagesize
        if ps <= 0 or ps & (ps - 1):
            raise ValueError(f"flash page size must be a power of two, got {ps}")

    @property
    def flash_end(self) -> int:
        """Первый адрес за пределами flash."""
        return self.flash_start + self.flash_size


@dataclass(frozen=True)
class SimDevice:
    name: str
    signature: bytes
    flash: FlashGeometry


# Карта памяти tinyAVR 0/1 и megaAVR 0 (одинаковая для всего семейства):
SIGROW_ADDRESS = 0x1100
FUSES_ADDRESS = 0x1280
DATA_SPACE_SIZE = 0x10000

# Небольшая «база» устройств для симулятора. Для реального железа
# геометрия берётся из pymcuprog.deviceinfo.
SIM_DEVICES = {
    d.name: d
    for d in (
        SimDevice("tiny814", bytes([0x1E, 0x93, 0x22]), FlashGeometry(0x8000, 8 * 1024, 64)),
        SimDevice("tiny816", bytes([0x1E, 0x93, 0x21]), FlashGeometry(0x8000, 8 * 1024, 64)),
        SimDevice("tiny817", bytes([0x1E, 0x93, 0x20]), FlashGeometry(0x8000, 8 * 1024, 64)),
        SimDevice("tiny1614", bytes([0x1E, 0x94, 0x22]), FlashGeometry(0x8000, 16 * 1024, 64)),
        SimDevice("tiny3217", bytes([0x1E, 0x95, 0x22]), FlashGeometry(0x8000, 32 * 1024, 128)),
        SimDevice("mega4809", bytes([0x1E, 0x96, 0x51]), FlashGeometry(0x4000, 48 * 1024, 128)),
    )
}


def lookup_sim_device(name: str) -> SimDevice | None:
    # принимаем и "tiny817", и "attiny817"
    key = name.lower()
    if key.startswith("at"):
        key = key[2:]
    return SIM_DEVICES.get(key)
