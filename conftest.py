# conftest.py  (at repo root)
# Make `import server` work regardless of how pytest picks its rootdir.
import sys, pathlib
ROOT = pathlib.Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
