"""
Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from clusterwait.cli import main

if __name__ == "__main__":
    main()
