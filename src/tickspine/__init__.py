"""
tickspine: scheduled market-data collection on named job queues.

Components:
    queue        named job queues with retry/backoff (in-memory and SQLite)
    execution    handler registry and bounded worker pools
    scheduling   cron/interval triggers that enqueue one job per entity
    health       queue health classification and completed-job cleanup
    collectors   candle and quote collection handlers
    notifications  email / web push delivery handler
"""

__version__ = "0.1.0"
