import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

# Settings are read at import time; tests must never reach the real sheet or AI endpoint.
os.environ.setdefault("DISCORD_BOT_TOKEN", "test-token")
os.environ["SHEET_SCRIPT_URL"] = ""
os.environ["AI_API_KEY"] = ""
