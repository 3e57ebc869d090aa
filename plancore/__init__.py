"""
Floor Plan Core Engine
Wall-network cleanup, room detection, spatial indexing, corner editing and
parametric dimension solving for architectural floor plans.
"""

__version__ = "1.0.0"
__author__ = "Floor Plan Engine"

from pathlib import Path

# Package paths
PACKAGE_ROOT = Path(__file__).parent
RULES_DIR = PACKAGE_ROOT / "rules"
