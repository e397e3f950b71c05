"""Command-line entry points: devtrail-integrity, devtrail-search, devtrail-recorder."""
