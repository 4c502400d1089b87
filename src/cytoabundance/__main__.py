import sys

from cytoabundance.cli import main

sys.exit(main())
