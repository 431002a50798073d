"""ewbf_collect.collector
Polls EWBF miner hosts and forwards their stats to InfluxDB.

Modules
-------
ewbf_client   : GET /getstat against one miner host
influx_client : InfluxDB 1.x store client over influxdb.InfluxDBClient
models        : status payload, metric point and measurement schema
extractor     : payload -> per-GPU and per-host points
sink          : one independent write per point
poller        : one poll per host per cycle, in a worker pool
"""

__all__ = ["ewbf_client", "influx_client", "models", "extractor", "sink", "poller"]
