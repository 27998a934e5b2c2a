"""
Configuration & Path Management
===============================
This module serves as the central registry for engine limits and file paths.

Why is this file needed?
------------------------
1. Abstraction: The input cap, log cap and undo depth are read by several
   modules. Keeping them here prevents magic numbers drifting apart.
2. Deployment: It resolves where the durable state file lives, both in
   development and when the app is frozen with PyInstaller (sys._MEIPASS).

Exports:
    MAX_INPUT_LENGTH (int): Longest operand text accepted from digit entry.
    CALCULATION_LOG_LIMIT (int): Entries kept in the calculation log.
    UNDO_LIMIT (int): Commands kept in the undo history.
    DEFAULT_STORAGE_PATH (str): Absolute path of the default HDF5 state file.
"""
import sys
import os
from pathlib import Path


def get_data_path(relative_path: str) -> str:
    """
    Get absolute path for a user data file, works for dev and for PyInstaller.
    """
    if hasattr(sys, '_MEIPASS'):
        # Frozen app: keep data next to the executable, not in the temp folder
        base_path: str = os.path.dirname(sys.executable)
        return os.path.join(base_path, relative_path)

    home: Path = Path.home()
    return os.path.join(str(home), relative_path)


# Engine limits
MAX_INPUT_LENGTH: int = 15
CALCULATION_LOG_LIMIT: int = 100
UNDO_LIMIT: int = 50

# Largest n for which n! is finite in double precision
FACTORIAL_LIMIT: int = 170

# Number formatting
MAX_PLAIN_LENGTH: int = 12
EXPONENT_DIGITS: int = 5

# Persistence
STORAGE_FILENAME: str = ".calculatorcore.h5"
DEFAULT_STORAGE_PATH: str = get_data_path(STORAGE_FILENAME)

# Logging
LOG_MAX_BYTES: int = 1_000_000
LOG_BACKUP_COUNT: int = 3
