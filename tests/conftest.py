import os
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

# Keep test runs away from the on-disk state file.
os.environ.setdefault("STATE_DB_PATH", ":memory:")
