class SoftCatalogError(Exception):
    """Base error for the software catalog."""


class PersistenceError(SoftCatalogError):
    """A catalog or installation store write could not be completed."""


class DetectionInProgress(SoftCatalogError):
    """Another detection pass currently holds the process-wide guard."""


class CatalogDistributionError(SoftCatalogError):
    """Downloading, importing or swapping a catalog file failed."""
