"""
monitor_core — App usage intervention monitor v1.3
==================================================
Architecture: periodic daemon threads sharing one cancel event.

  constants.py       → Version, thresholds, tracked apps, server environments
  config.py          → Paths, logging, config load/save/build
  events.py          → Tagged event union + JSON wire codec
  foreground.py      → ForegroundMonitor (usage oracle → poll observations)
  platform_usage.py  → Desktop usage oracle, screen lock, single instance
  classifier.py      → SessionClassifier (tap → session state machine)
  intervention.py    → InterventionController (overlay trigger + cooldown)
  event_store.py     → EventStore (thread-safe pending events)
  daily_summary.py   → DailyStats (per-app daily totals)
  http_client.py     → HTTP session with retry/pooling
  api.py             → CollectorClient (health, item, batch)
  network.py         → Connectivity check, battery, device status
  offline_queue.py   → OfflineQueue (one file per undelivered event)
  sync.py            → SyncEngine (chunking, per-item fallback, replay)
  app.py             → MonitorService (owns components + periodic tasks)
  runner.py          → CLI + auto-restart wrapper
"""
