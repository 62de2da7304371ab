"""
Pytest configuration and fixtures for fabricbot tests.
"""

import sys
from pathlib import Path

# Add src directory to path so imports work without installing the package
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))
