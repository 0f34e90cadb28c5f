"""Times Gate PC monitor: host telemetry pushed to Divoom LAN displays.

Quickstart::

    from timesgate.db import init_db
    from timesgate.device.client import DivoomClient
    from timesgate.metrics.provider import MetricsProvider
    from timesgate.sync.manager import DeviceSyncManager

    init_db()
    manager = DeviceSyncManager(MetricsProvider(), DivoomClient())
    await manager.restore_all()     # resume every enabled device
"""

__version__ = "1.0.0"
