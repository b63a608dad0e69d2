import sys

from housing_selection.pipeline import main

sys.exit(main())
