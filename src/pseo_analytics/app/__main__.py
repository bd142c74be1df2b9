import sys

from pseo_analytics.app.cli import main

raise SystemExit(main(sys.argv[1:]))
