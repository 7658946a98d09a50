"""Dataset file I/O."""

from .tabular import dataset_rows, read_dataset_csv, write_dataset_csv

__all__ = ["dataset_rows", "read_dataset_csv", "write_dataset_csv"]
