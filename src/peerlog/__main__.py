"""Allow `python -m peerlog`."""

from peerlog.cli import main

raise SystemExit(main())
