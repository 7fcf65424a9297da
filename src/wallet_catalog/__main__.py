"""Allow ``python -m wallet_catalog``."""

import sys

from wallet_catalog.cli import main

if __name__ == "__main__":
    sys.exit(main())
