from pathlib import Path

LOG_DIR = Path(__file__).parent / "logs"

LOG_FILE = LOG_DIR / "session.jsonl"
SIM_STORE = LOG_DIR / "sim_updi.bin"
APP_NAME = "UPDI CLI"

DEFAULT_BAUDRATE = 115200

# суффикс файла, в который сохраняется считанная прошивка (-s)
SAVE_SUFFIX = ".save"

# прямое чтение памяти: не больше 255 байт за раз
READ_MAX_LEN = 255
# прямая запись памяти: окно 16 байт на одну транзакцию
WRITE_WINDOW = 16

ERASED_BYTE = 0xFF

# максимум байт в одной UPDI-транзакции чтения (repeat 0xFF + 1)
UPDI_MAX_TRANSFER = 0x100
