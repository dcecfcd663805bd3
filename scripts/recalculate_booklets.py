#!/usr/bin/env python3
"""
Recalculate every booklet's status from its damaged and issued pages.
Run this after manual database edits or a restore.
"""

import sys
sys.path.insert(0, ".")

from vesitrail import create_app, db
from vesitrail.services.booklets import BookletService


def recalculate_booklets():
    app = create_app()

    with app.app_context():
        print("Recalculating booklet statuses...")

        try:
            updated = BookletService.recalculate_all_statuses()
        except Exception as e:
            print(f"Error: {e}")
            db.session.rollback()
            return 1

        print(f"Done! {updated} booklet(s) updated.")

    return 0


if __name__ == "__main__":
    sys.exit(recalculate_booklets())
