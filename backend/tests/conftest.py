# backend/tests/conftest.py
import os

# in-memory DB shared by the app and the tests; must be set before app.db is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("NOM_EMAIL_API_KEY", None)
os.environ.pop("NOM_RATES_YEAR", None)

import pytest  # noqa: E402

import app.models  # noqa: E402,F401
from app.db import Base, engine  # noqa: E402

Base.metadata.create_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
