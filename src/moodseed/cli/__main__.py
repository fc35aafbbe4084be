"""CLI entry point for moodseed.cli module.

Enables execution via: python -m moodseed.cli.reconcile_credits
"""

from moodseed.cli.reconcile_credits import main

if __name__ == "__main__":
    raise SystemExit(main())
