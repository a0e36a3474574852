import sys

from rocbuild.main import main

sys.exit(main())
