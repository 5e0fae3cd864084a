"""Allow ``python -m docmap.cli`` execution."""

import sys

from docmap.cli.main import main

sys.exit(main())
