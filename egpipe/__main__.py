import sys

from egpipe.main import main

sys.exit(main())
