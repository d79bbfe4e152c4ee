#!/usr/bin/env python3

"""Compatibility wrapper.

The project is packaged under `src/prom_dns_http_sd`. This wrapper allows
running `./prom-dns-http-sd.py` from a fresh checkout without installing.

Note: This file intentionally tweaks sys.path before importing the package.
"""

import sys
from pathlib import Path


sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from prom_dns_http_sd.cli import main  # noqa: E402


if __name__ == "__main__":
    main()
