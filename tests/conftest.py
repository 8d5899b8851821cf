from __future__ import annotations

import os
import tempfile

# Send the debug log file to a throwaway directory for the test run.
os.environ.setdefault("EARCON_LOG_DIR", tempfile.mkdtemp(prefix="earcon-logs-"))
