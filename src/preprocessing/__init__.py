"""
Preprocessing: validated observation tables and predictor standardization.

**Usage:**
```python
from preprocessing import ObservationTable, Standardizer

table = ObservationTable.from_frame(frame, outcome="y")
scaled = Standardizer().fit(table)

# New rows always reuse the fit-time stats
z_new = Standardizer.apply(table.validate_row({"x1": 0.3, "x2": 1.2}), scaled.stats)
```
"""

from preprocessing.exceptions import DegenerateColumnError, InvalidDataError
from preprocessing.standardizer import ColumnStats, StandardizedMatrix, Standardizer
from preprocessing.table import ObservationTable

__all__ = [
    "ObservationTable",
    "Standardizer",
    "StandardizedMatrix",
    "ColumnStats",
    "DegenerateColumnError",
    "InvalidDataError",
]
