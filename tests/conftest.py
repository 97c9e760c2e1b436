"""
Pytest configuration - shared fixtures
"""
import sys
import os
from unittest.mock import Mock
from typing import Generator
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Add backend directory to sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../backend"))

from factories import ollama_reply
from groceries.database import Base, get_db
from groceries.dependencies import get_grocery_parser, limiter
from groceries.main import app
from groceries.models.category import Category
from groceries.models.product import Product, ProductAlias
from groceries.models.parser_log import ParserLog
from groceries.services.category_cache import CategoryCache
from groceries.services.llm_service import GroceryParser
from groceries.services.normalization import seed_default_categories
from groceries.services.parser_log_service import ParserCallRecorder, ParserStats


def make_memory_engine():
    return create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def test_engine():
    engine = make_memory_engine()
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_db(test_engine) -> Generator[Session, None, None]:
    """Create in-memory SQLite database for testing"""
    TestingSession = sessionmaker(bind=test_engine, autocommit=False, autoflush=False)
    session = TestingSession()

    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def db_session(test_db):
    """Alias for test_db for clarity"""
    return test_db


@pytest.fixture
def seeded_db(test_db) -> Session:
    """Database with the default categories"""
    seed_default_categories(test_db)
    test_db.commit()
    return test_db


@pytest.fixture
def catalog(seeded_db):
    """A few known products; 'tomato' is an alias of Tomates"""

    def category(name):
        return seeded_db.query(Category).filter(Category.name == name).one()

    products = {
        "pommes": Product(name="Pommes", category=category("Fruits et légumes")),
        "tomates": Product(name="Tomates", category=category("Fruits et légumes")),
        "lait": Product(name="Lait", category=category("Produits laitiers")),
        "pain": Product(name="Pain", category=category("Boulangerie")),
    }
    seeded_db.add_all(products.values())
    seeded_db.flush()
    seeded_db.add(ProductAlias(product_id=products["tomates"].id, alias="tomato"))
    seeded_db.commit()
    return products


@pytest.fixture
def mock_ollama():
    """Mock Ollama client for testing"""
    client = Mock()
    client.generate.return_value = ollama_reply([])
    return client


@pytest.fixture
def log_session_factory():
    """Parser log writer on its own engine, like the separate session used in production"""
    engine = make_memory_engine()
    Base.metadata.create_all(engine, tables=[ParserLog.__table__])
    factory = sessionmaker(bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def parser_stats():
    return ParserStats()


@pytest.fixture
def grocery_parser(mock_ollama, parser_stats):
    return GroceryParser(
        client=mock_ollama,
        category_cache=CategoryCache(ttl=300),
        recorder=ParserCallRecorder(stats=parser_stats),
        model="test-model",
    )


@pytest.fixture
def offline_parser(parser_stats):
    """Parser without a configured client"""
    return GroceryParser(
        client=None,
        category_cache=CategoryCache(ttl=300),
        recorder=ParserCallRecorder(stats=parser_stats),
        model="test-model",
    )


@pytest.fixture
def client(test_db, grocery_parser):
    """API client bound to the test database and the mocked parser"""

    def _get_db():
        yield test_db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_grocery_parser] = lambda: grocery_parser
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        limiter.enabled = True
