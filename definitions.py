from pathlib import Path

# Define the root directory of the project
ROOT_DIR = Path(__file__).resolve().parent

# Define specific directories
LOGS_DIR = ROOT_DIR / "logs"
CONFIG_DIR = ROOT_DIR / "config"
