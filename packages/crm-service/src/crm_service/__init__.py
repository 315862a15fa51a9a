"""CRM service: tenant-isolated customers, vehicles and notes over gRPC."""

__version__ = "1.0.0"
