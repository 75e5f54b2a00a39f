import sys

from bell_sync.main import main

sys.exit(main())
