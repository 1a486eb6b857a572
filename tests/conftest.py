"""Pytest configuration for the treelox test suite."""

import sys
from pathlib import Path

# Add src directory to path for treelox imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
