"""
Core scheduling engine.

The `DownloadQueue` owns every job and decides when attempts run, while the
`ProgressAggregator` condenses per-job progress into the overall view.
"""
