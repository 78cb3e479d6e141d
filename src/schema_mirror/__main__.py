import sys

from schema_mirror.cli import main

sys.exit(main())
