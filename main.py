#!/usr/bin/env python3
"""Toolchain Manager entry point"""

import sys

try:
    import aiohttp  # noqa
    import qasync   # noqa
    from PyQt6.QtWidgets import QApplication  # noqa
except ImportError as e:
    print(f"Critical import failed: {e}")
    print("Please run: pip install -e .")
    sys.exit(1)


if __name__ == "__main__":
    from toolchain_manager.ui.main import main

    try:
        main()
    except KeyboardInterrupt:
        pass
