import sys

from railsdeploy.cli import main

sys.exit(main())
