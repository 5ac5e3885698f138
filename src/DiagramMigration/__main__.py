"""Allow ``python -m DiagramMigration``."""

from DiagramMigration.cli import main

if __name__ == "__main__":
    main()
