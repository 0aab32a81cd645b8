"""Allow ``python -m stackops``."""

from .cli import main

raise SystemExit(main())
