import sys

from prodspace.cli import main

sys.exit(main())
