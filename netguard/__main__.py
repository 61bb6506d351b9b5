"""Allow ``python -m netguard``; the detached watchdog runs this way."""

from netguard.cli import main

if __name__ == "__main__":
    main()
