"""Internal helpers for the asr_bridge package."""

import sys
from pathlib import Path

# Ensure the project root (parent of this package) is importable when running
# entry points via ``python asr_bridge/main.py``.
PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

__version__ = "0.3.0"

__all__ = ["PACKAGE_DIR", "PROJECT_ROOT", "__version__"]
