"""Source loaders that import raw clinical tables into a store."""

from clinireport.adapters.ingesters.csv_loader import CSVTableLoader

__all__ = ["CSVTableLoader"]
