import sys

from restreamer.cli import main

sys.exit(main())
