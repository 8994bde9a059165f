"""
Allow running fleetctl as a module: python -m fleetdock.cli
"""

import sys
from .fleetctl import main

if __name__ == "__main__":
    sys.exit(main())
