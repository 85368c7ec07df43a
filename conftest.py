# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Root conftest.py so the packages and tests/ are importable without installation."""

import sys
from pathlib import Path

_repo_root = Path(__file__).parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))
