import sys

from .witxgen import main

sys.exit(main())
