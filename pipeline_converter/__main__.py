import sys

from pipeline_converter.cli import main

if __name__ == "__main__":
    sys.exit(main())
