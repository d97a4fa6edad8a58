"""
Tally — Membership Reconciliation & Engagement Metrics for Discord
===================================================================
Keeps a per-member activity ledger, reconciles it against the live guild
roster, and publishes time-windowed activity statistics and per-role
participation metrics to a staff channel.

Package layout::

    tally/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Shared defaults + message templates
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # activity, join_leave, activity_stats, role_metrics
    ├── engine/
    │   ├── windows.py     # Cutoffs, day keys, activity predicates
    │   ├── roles.py       # Role classification by naming convention
    │   └── overlap.py     # "Active holders of role X" counting strategies
    ├── services/
    │   ├── activity_ledger.py       # Activity record data access
    │   ├── join_leave_service.py    # Join / leave / rejoin bookkeeping
    │   ├── membership.py            # Live roster lookups (MembershipOracle)
    │   ├── reporter.py              # Chunked, throttled channel output
    │   ├── leaver_scanner.py        # Ledger ↔ roster reconciliation
    │   ├── activity_stats_service.py  # Windowed activity snapshots
    │   ├── role_metrics_service.py  # Daily role participation report
    │   └── healthcheck_service.py   # hc-ping.com heartbeat
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        └── cogs/
            ├── activity.py    # Message / reaction / voice activity capture
            ├── membership.py  # Join / leave capture
            ├── reports.py     # /activity-scan, /activity-report
            └── tasks.py       # Daily scan + report, healthcheck loop
"""

__version__ = "0.1.0"
