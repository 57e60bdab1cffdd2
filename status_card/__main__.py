import sys

from status_card.server import main

sys.exit(main())
