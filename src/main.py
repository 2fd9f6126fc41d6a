"""
vacancysync - Reservation workbook to remote store synchronization service.

Watches facility reservation workbooks on a shared store, syncs the monthly
counts to the remote reservation table and reports every applied change.
"""

import sys
from vacancysync.interface.cli import main


if __name__ == "__main__":
    sys.exit(main())
