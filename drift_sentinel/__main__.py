"""Allow running the drift sentinel with ``python -m drift_sentinel``."""

import sys

from .main import main

sys.exit(main())
