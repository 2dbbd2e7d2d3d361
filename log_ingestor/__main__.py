import sys

from log_ingestor.main import main

sys.exit(main())
