"""Data layer: schemas, storage, ticker universe and PostgreSQL mirror."""
