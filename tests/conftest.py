from __future__ import annotations

import sys
from pathlib import Path

from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_SRC = (_PROJECT_ROOT / "src").resolve()
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

# Local overrides (e.g. BACKEND_PORT) for manual runs; never overrides the test env
load_dotenv(_PROJECT_ROOT / ".env", override=False)
