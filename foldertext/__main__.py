import sys

from foldertext.cli import main

sys.exit(main())
