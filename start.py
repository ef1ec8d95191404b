#!/usr/bin/env python
"""Start the media resolution service."""

import os
import sys
from pathlib import Path

# Relative config paths (config.yaml) resolve against the repo root
script_dir = Path(__file__).parent.resolve()
os.chdir(script_dir)

sys.path.insert(0, str(script_dir / "src"))

if __name__ == "__main__":
    from media_svc.main import run
    run()
