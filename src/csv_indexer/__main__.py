"""Allow ``python -m csv_indexer``."""

from csv_indexer.cli import main


raise SystemExit(main())
