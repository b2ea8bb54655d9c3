import pytest
from intelhex import IntelHex

from conftest import FakeDriver
from updi_tool.errors import AddressOutOfRange, HexParseError, SaveError
from updi_tool.firmware.hexfile import HexImage, load_hex, save_flash, unload_hex
from updi_tool.firmware.map import FlashGeometry

TINY817 = FlashGeometry(0x8000, 8192, 64)


def _ih(start, data):
    ih = IntelHex()
    ih.frombytes(data, offset=start)
    return ih


def test_zero_based_file_is_moved_to_flash_start(page_hex):
    image = load_hex(page_hex, TINY817)
    assert (image.addr_from, image.addr_to) == (0x8000, 0x803F)
    assert image.offset == 0
    assert len(image) == 64
    assert bytes(image.data) == bytes(range(64))


def test_unaligned_range_is_padded_to_pages():
    image = load_hex(_ih(0x8005, b"\x11\x22\x33"), TINY817)
    assert image.addr_from == 0x8000
    assert image.addr_to == 0x803F
    assert image.offset == 5
    assert image.data[5:8] == b"\x11\x22\x33"
    assert image.data[:5] == b"\xff" * 5
    assert image.data[8:] == b"\xff" * (64 - 8)


def test_last_byte_on_page_boundary_gets_next_page():
    image = load_hex(_ih(0x8000, bytes(65)), TINY817)
    assert image.addr_to == 0x807F
    assert len(image) == 128
    assert image.data[65:] == b"\xff" * 63


def test_gaps_between_records_stay_erased():
    ih = _ih(0x10, b"\x01")
    ih[0x30] = 0x02
    image = load_hex(ih, TINY817)
    assert image.addr_from == 0x8000
    assert image.data[0x10] == 0x01
    assert image.data[0x30] == 0x02
    assert image.data[0x11:0x30] == b"\xff" * 0x1F


@pytest.mark.parametrize("geometry", [
    FlashGeometry(0x8000, 8192, 64),
    FlashGeometry(0x4000, 48 * 1024, 128),
    FlashGeometry(0x0, 4096, 32),
])
@pytest.mark.parametrize("start,size", [(0, 1), (0x3F, 2), (0x100, 300), (0x7FF, 1)])
def test_aligned_bounds_cover_records(geometry, start, size):
    a = start + (geometry.flash_start if start < geometry.flash_start else 0)
    image = load_hex(_ih(start, b"\xa5" * size), geometry)
    ps = geometry.flash_pagesize
    assert image.addr_from % ps == 0
    assert (image.addr_to + 1) % ps == 0
    assert image.addr_from <= a
    assert image.addr_to >= a + size - 1
    assert geometry.flash_start <= image.addr_from
    assert image.addr_to < geometry.flash_end
    assert len(image) == image.addr_to - image.addr_from + 1


def test_range_over_flash_end_is_rejected():
    with pytest.raises(AddressOutOfRange):
        load_hex(_ih(0x1FF0, bytes(0x20)), TINY817)


def test_absolute_address_past_flash_is_rejected():
    with pytest.raises(AddressOutOfRange):
        load_hex(_ih(0xA000, b"\x00"), TINY817)


def test_missing_file(tmp_path):
    with pytest.raises(HexParseError):
        load_hex(tmp_path / "nope.hex", TINY817)


def test_malformed_file(tmp_path):
    bad = tmp_path / "bad.hex"
    bad.write_text(":10000000ZZ\n")
    with pytest.raises(HexParseError):
        load_hex(bad, TINY817)


def test_empty_file(tmp_path):
    empty = tmp_path / "empty.hex"
    empty.write_text(":00000001FF\n")
    with pytest.raises(HexParseError):
        load_hex(empty, TINY817)


def test_unload_is_idempotent(page_hex):
    image = load_hex(page_hex, TINY817)
    unload_hex(image)
    unload_hex(image)
    unload_hex(None)
    assert len(image) == 0


def test_save_reads_whole_flash(fake, tmp_path):
    fake.mem[0x8000:0x8004] = b"\xde\xad\xbe\xef"
    saved = save_flash(fake, tmp_path / "fw.hex")

    assert saved.path == tmp_path / "fw.hex.save"
    assert saved.image.addr_from == 0x8000
    assert saved.image.addr_to == 0x8000 + 8191
    assert len(saved.image) == 8192
    assert ("read_flash", 0x8000, 8192) in fake.calls

    ih = IntelHex(str(saved.path))
    assert ih.minaddr() == 0x8000
    assert ih.maxaddr() == 0x8000 + 8191
    assert ih.tobinstr(start=0x8000, size=4) == b"\xde\xad\xbe\xef"


def test_saved_file_loads_back(fake, tmp_path):
    saved = save_flash(fake, tmp_path / "fw.hex")
    image = load_hex(saved.path, TINY817)
    assert isinstance(image, HexImage)
    assert bytes(image.data) == bytes(saved.image.data)


def test_save_read_failure(tmp_path):
    drv = FakeDriver(fail={"read_flash": 5})
    with pytest.raises(SaveError) as err:
        save_flash(drv, tmp_path / "fw.hex")
    assert err.value.code == 5
    assert not (tmp_path / "fw.hex.save").exists()


def test_save_unwritable_destination(fake, tmp_path):
    with pytest.raises(SaveError):
        save_flash(fake, tmp_path / "missing_dir" / "fw.hex")

