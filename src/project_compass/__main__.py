"""Allow ``python -m project_compass``."""

from project_compass.cli import main

if __name__ == "__main__":
    main()
