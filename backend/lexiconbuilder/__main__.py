import sys

from lexiconbuilder.cli import main

sys.exit(main())
