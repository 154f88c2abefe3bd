import sys

from kudash.cli import main

sys.exit(main())
