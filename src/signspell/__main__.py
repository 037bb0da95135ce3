"""Allow ``python -m signspell``."""

import sys

from signspell.cli import main

sys.exit(main())
