import sys

from layerpull.main import main

sys.exit(main())
