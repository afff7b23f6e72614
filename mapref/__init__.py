"""mapref - reference index for MapComplete theme and layer documents."""

__version__ = "0.1.0"
