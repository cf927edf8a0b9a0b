import sys

from cronlock.cli.main import main

sys.exit(main())
