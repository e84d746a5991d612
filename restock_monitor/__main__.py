import sys

from restock_monitor.main import main

sys.exit(main())
