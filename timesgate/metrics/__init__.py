"""Host telemetry: raw sensor collection and reduction to canonical metrics.

  - Models: SystemMetrics snapshot, disks, raw sensor readings
  - Aggregator: picks one CPU/GPU temperature out of competing sensors
  - Sources: psutil / nvidia-smi backed hardware readers
  - Provider: the poll-on-demand entry point used by the API and sync loops
"""
