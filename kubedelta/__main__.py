"""Entry point for `python -m kubedelta`.

Usage:
    python -m kubedelta
    uv run python -m kubedelta
"""

from __future__ import annotations

import asyncio

from kubedelta.app import main

asyncio.run(main())
