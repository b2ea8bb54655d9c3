import json

import pytest
from intelhex import IntelHex
from typer.testing import CliRunner

import updi_tool.main as cli
from conftest import make_hex
from updi_tool.errors import Stage

runner = CliRunner()


@pytest.fixture(autouse=True)
def session_log(tmp_path, monkeypatch):
    log = tmp_path / "logs" / "session.jsonl"
    monkeypatch.setattr(cli, "LOG_FILE", log)
    return log


def _run(tmp_path, *args):
    return runner.invoke(cli.app, ["run", "-d", "tiny817", "--sim",
                                   "--sim-store", str(tmp_path / "sim.bin"), *args])


def test_program_then_check(tmp_path):
    hexfile = make_hex(tmp_path / "fw.hex", 0, bytes(range(100)))

    result = _run(tmp_path, "-f", str(hexfile), "-p")
    assert result.exit_code == 0, result.output
    assert "совпадает" in result.output

    result = _run(tmp_path, "-f", str(hexfile), "-k")
    assert result.exit_code == 0, result.output


def test_check_against_blank_chip_fails_with_flash_code(tmp_path):
    hexfile = make_hex(tmp_path / "fw.hex", 0, b"\x01\x02")
    result = _run(tmp_path, "-f", str(hexfile), "-k")
    assert result.exit_code == Stage.FLASH.exit_code
    assert "flash" in result.output


def test_save_writes_hex(tmp_path):
    base = tmp_path / "dump.hex"
    result = _run(tmp_path, "-f", str(base), "-s")
    assert result.exit_code == 0, result.output
    ih = IntelHex(str(tmp_path / "dump.hex.save"))
    assert len(ih) == 8192
    assert ih.minaddr() == 0x8000


def test_fuse_write_and_direct_read(tmp_path):
    result = _run(tmp_path, "-F", "2:0x7e", "-r", "1280;3")
    assert result.exit_code == 0, result.output
    assert "00 00 7e" in result.output


def test_direct_write_readback(tmp_path):
    result = _run(tmp_path, "-w", "3f00;de;ad")
    assert result.exit_code == 0, result.output
    assert "Readback" in result.output
    assert "de ad" in result.output


def test_bad_fuse_spec(tmp_path):
    result = _run(tmp_path, "-F", "3")
    assert result.exit_code == Stage.FUSE.exit_code
    assert not (tmp_path / "sim.bin").exists()


def test_missing_device(tmp_path):
    result = runner.invoke(cli.app, ["run", "-c", "/dev/null"])
    assert result.exit_code == Stage.CONFIG.exit_code


def test_unknown_sim_device(tmp_path):
    result = runner.invoke(cli.app, ["run", "-d", "mega328p", "--sim",
                                     "--sim-store", str(tmp_path / "sim.bin")])
    assert result.exit_code == Stage.UNSUPPORTED.exit_code


def test_run_is_logged(tmp_path, session_log):
    _run(tmp_path, "-F", "3")
    records = [json.loads(line) for line in session_log.read_text(encoding="utf-8").splitlines()]
    assert records[-1]["kind"] == "run"
    assert records[-1]["payload"]["exit_code"] == Stage.FUSE.exit_code
    assert records[-1]["payload"]["stage"] == "fuse"


def test_devices_lists_sim_table():
    result = runner.invoke(cli.app, ["devices"])
    assert result.exit_code == 0
    assert "tiny817" in result.output


def test_ports(monkeypatch):
    monkeypatch.setattr(cli.list_ports, "comports", lambda: [])
    result = runner.invoke(cli.app, ["ports"])
    assert result.exit_code == 0
