"""Allow ``python -m hiveclock``."""

from hiveclock.cli import main

if __name__ == "__main__":
    main()
