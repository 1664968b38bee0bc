import sys

from healer.interfaces.cli import main

sys.exit(main())
