import sys

from wattlink.cli import main

sys.exit(main())
