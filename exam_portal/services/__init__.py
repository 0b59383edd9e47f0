"""Business rules; each function takes a ``sqlmodel.Session`` first."""
