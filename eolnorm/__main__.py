"""Allow ``python -m eolnorm``."""

import sys

from eolnorm.normalize import main

if __name__ == "__main__":
    sys.exit(main())
