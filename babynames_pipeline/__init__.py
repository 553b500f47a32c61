"""Baby-names batch transfer pipeline: CSV -> Postgres -> HubSpot."""

__version__ = "0.1.0"
