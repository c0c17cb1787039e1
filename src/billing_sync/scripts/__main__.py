import sys

from billing_sync.scripts import main

sys.exit(main())
