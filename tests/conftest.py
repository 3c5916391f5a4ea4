"""Pytest configuration and fixtures."""

import os
import sys
from pathlib import Path

# Keep tests independent of a developer's .env / shell
os.environ.setdefault("API_TOKEN", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
