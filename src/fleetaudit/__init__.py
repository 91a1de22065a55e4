"""fleetaudit - audit and remediation pipeline for a managed site fleet."""

__version__ = "1.0.0"
