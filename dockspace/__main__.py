import sys

from dockspace.cli import main

sys.exit(main())
