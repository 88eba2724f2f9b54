# License API client
from keygate.client.client import LicenseClient as LicenseClient

__all__ = ["LicenseClient"]
