import sys

from visionstruct.cli import main

sys.exit(main())
